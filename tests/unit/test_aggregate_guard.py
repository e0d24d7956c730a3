"""
Tests for ScopeGuard shared/exclusive holds.
"""

from __future__ import annotations

import threading
from uuid import uuid4

import pytest

from leadpulse.components.aggregates import Scope, ScopeGuard


@pytest.fixture
def guard() -> ScopeGuard:
    return ScopeGuard()


@pytest.fixture
def scope() -> Scope:
    return Scope.link(uuid4())


class TestSharedHolds:
    """Increments take non-blocking shared holds."""

    def test_shared_acquired_when_idle(self, guard: ScopeGuard, scope: Scope) -> None:
        with guard.try_shared(scope) as acquired:
            assert acquired is True

    def test_shared_holds_stack(self, guard: ScopeGuard, scope: Scope) -> None:
        with guard.try_shared(scope) as first:
            with guard.try_shared(scope) as second:
                assert first and second

    def test_refused_while_exclusive(self, guard: ScopeGuard, scope: Scope) -> None:
        with guard.exclusive(scope):
            with guard.try_shared(scope) as acquired:
                assert acquired is False
            assert guard.is_exclusive(scope)


class TestExclusiveHolds:
    """Reconciliation takes exclusive holds per scope."""

    def test_exclusive_flag(self, guard: ScopeGuard, scope: Scope) -> None:
        assert not guard.is_exclusive(scope)
        with guard.exclusive(scope):
            assert guard.is_exclusive(scope)
        assert not guard.is_exclusive(scope)

    def test_other_scopes_unaffected(self, guard: ScopeGuard, scope: Scope) -> None:
        other = Scope.page(uuid4())
        with guard.exclusive(scope):
            with guard.try_shared(other) as acquired:
                assert acquired is True

    def test_second_exclusive_times_out(self, guard: ScopeGuard, scope: Scope) -> None:
        with guard.exclusive(scope):
            with pytest.raises(TimeoutError):
                with guard.exclusive(scope, timeout=0.01):
                    pass
            # The failed attempt must not release the first hold
            assert guard.is_exclusive(scope)

    def test_exclusive_waits_for_in_flight_shared(self, guard: ScopeGuard, scope: Scope) -> None:
        held = threading.Event()
        release = threading.Event()

        def increment() -> None:
            with guard.try_shared(scope) as acquired:
                assert acquired
                held.set()
                release.wait(timeout=5)

        worker = threading.Thread(target=increment)
        worker.start()
        held.wait(timeout=5)

        with pytest.raises(TimeoutError):
            with guard.exclusive(scope, timeout=0.05):
                pass
        # Timed-out attempt releases the scope
        assert not guard.is_exclusive(scope)

        release.set()
        worker.join(timeout=5)
        with guard.exclusive(scope, timeout=1.0):
            assert guard.is_exclusive(scope)

    def test_exclusive_released_on_error(self, guard: ScopeGuard, scope: Scope) -> None:
        with pytest.raises(RuntimeError):
            with guard.exclusive(scope):
                raise RuntimeError("boom")
        assert not guard.is_exclusive(scope)


class TestTracking:
    """Idle scopes are forgotten."""

    def test_idle_scopes_dropped(self, guard: ScopeGuard) -> None:
        for _ in range(100):
            scope = Scope.link(uuid4())
            with guard.try_shared(scope):
                pass
            with guard.exclusive(scope):
                pass
            guard.is_exclusive(scope)
        assert len(guard) == 0

    def test_held_scopes_tracked(self, guard: ScopeGuard, scope: Scope) -> None:
        with guard.exclusive(scope):
            with guard.try_shared(Scope.page(uuid4())):
                assert len(guard) == 2
        assert len(guard) == 0

    def test_timeouts_leave_nothing_behind(self, guard: ScopeGuard, scope: Scope) -> None:
        with guard.exclusive(scope):
            with pytest.raises(TimeoutError):
                with guard.exclusive(scope, timeout=0.01):
                    pass
        assert len(guard) == 0
