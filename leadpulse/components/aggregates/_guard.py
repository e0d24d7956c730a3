"""
ScopeGuard - per-scope exclusion between live increments and reconciliation.

Increments take a shared hold without ever waiting: if the scope is held
exclusively the increment is refused and the caller defers to the
reconciler. The reconciler takes the exclusive hold and waits only for
in-flight increments on that same scope to finish.

The guard covers one process. Staleness across processes is decided by the
counter store's per-scope generation, which every replace bumps.

A scope is tracked only while it has holds or waiters.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass

from .models import Scope


@dataclass
class _ScopeState:
    shared: int = 0
    exclusive: bool = False
    waiters: int = 0

    @property
    def idle(self) -> bool:
        return self.shared == 0 and not self.exclusive and self.waiters == 0


class ScopeGuard:
    """Shared/exclusive holds keyed by scope."""

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._states: dict[Scope, _ScopeState] = {}

    def __len__(self) -> int:
        """Number of scopes currently tracked."""
        with self._cond:
            return len(self._states)

    def is_exclusive(self, scope: Scope) -> bool:
        with self._cond:
            state = self._states.get(scope)
            return state is not None and state.exclusive

    def _release(self, scope: Scope, state: _ScopeState) -> None:
        # Caller holds self._cond
        if state.idle and self._states.get(scope) is state:
            del self._states[scope]
        self._cond.notify_all()

    @contextmanager
    def try_shared(self, scope: Scope) -> Iterator[bool]:
        """
        Non-blocking shared hold.

        Yields True if acquired. Yields False, holding nothing, when the
        scope is exclusively held.
        """
        with self._cond:
            state = self._states.get(scope)
            if state is None:
                state = self._states[scope] = _ScopeState()
            acquired = not state.exclusive
            if acquired:
                state.shared += 1

        try:
            yield acquired
        finally:
            if acquired:
                with self._cond:
                    state.shared -= 1
                    self._release(scope, state)

    @contextmanager
    def exclusive(self, scope: Scope, timeout: float | None = None) -> Iterator[None]:
        """
        Exclusive hold for one scope; other scopes are unaffected.

        Raises TimeoutError if the hold cannot be taken within `timeout`
        seconds.
        """
        with self._cond:
            state = self._states.get(scope)
            if state is None:
                state = self._states[scope] = _ScopeState()
            state.waiters += 1
            try:
                if not self._cond.wait_for(lambda: not state.exclusive, timeout=timeout):
                    raise TimeoutError(f"Scope {scope} is already being reconciled")
                state.exclusive = True
                # New shared holds are refused from here on; drain in-flight ones.
                if not self._cond.wait_for(lambda: state.shared == 0, timeout=timeout):
                    state.exclusive = False
                    raise TimeoutError(f"Scope {scope} has increments still in flight")
            finally:
                state.waiters -= 1
                if not state.exclusive:
                    self._release(scope, state)

        try:
            yield
        finally:
            with self._cond:
                state.exclusive = False
                self._release(scope, state)
