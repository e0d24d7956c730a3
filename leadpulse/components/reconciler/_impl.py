"""
Reconciler - recompute-and-replace of aggregate buckets from raw events.

Key behaviors:
- Ranges are widened per granularity to whole buckets before counting
- The scope is held exclusively from scan to overwrite; other scopes proceed
- Overwrite is all-or-nothing; a failed run leaves existing buckets untouched
- Running twice over the same events yields the same buckets
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Sequence
from datetime import datetime

from leadpulse.components.aggregates import (
    METRIC_CLICKS,
    METRIC_LEADS,
    METRIC_SCORE_SUM,
    AggregateStore,
    BucketWindow,
    CounterKey,
    Scope,
    ScopeKind,
    TimeRange,
    calculate_bucket_start,
    widen_to_buckets,
)
from leadpulse.components.events import EventStorePort
from leadpulse.core.errors import StoreError

from .models import (
    DEFAULT_CONFIG,
    ReconcileBatchResult,
    ReconcileError,
    ReconcileResult,
    ReconcilerConfig,
)

logger = logging.getLogger(__name__)


# --- Pending Queue ---


class ReconcileQueue:
    """
    Thread-safe set of scopes awaiting reconciliation.

    A scope appears at most once; adding it again widens its range to cover
    both. Scopes come out in the order they were first added.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._pending: dict[Scope, TimeRange] = {}

    def add(self, scope: Scope, time_range: TimeRange | None = None) -> None:
        time_range = time_range or TimeRange()
        with self._lock:
            existing = self._pending.get(scope)
            self._pending[scope] = time_range if existing is None else existing.merge(time_range)

    def pop(self, max_items: int | None = None) -> list[tuple[Scope, TimeRange]]:
        """Remove and return up to `max_items` entries (all when None)."""
        with self._lock:
            scopes = list(self._pending)
            if max_items is not None:
                scopes = scopes[:max_items]
            return [(scope, self._pending.pop(scope)) for scope in scopes]

    def pending(self) -> dict[Scope, TimeRange]:
        with self._lock:
            return dict(self._pending)

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)

    def __contains__(self, scope: object) -> bool:
        with self._lock:
            return scope in self._pending


# --- Reconciler ---


class Reconciler:
    """Re-derives a scope's buckets from the event store and overwrites them."""

    def __init__(
        self,
        event_store: EventStorePort,
        aggregates: AggregateStore,
        queue: ReconcileQueue | None = None,
        config: ReconcilerConfig | None = None,
    ) -> None:
        self._events = event_store
        self._aggregates = aggregates
        self._queue = queue if queue is not None else ReconcileQueue()
        self._config = config or DEFAULT_CONFIG

    @property
    def queue(self) -> ReconcileQueue:
        return self._queue

    def reconcile(self, scope: Scope, time_range: TimeRange | None = None) -> ReconcileResult:
        """
        Recount `scope` over `time_range` (all history when None).

        Returns a failed result, leaving aggregates as they were, when the
        exclusive hold times out or the store errors.
        """
        time_range = time_range or TimeRange()
        windows = [widen_to_buckets(time_range, g) for g in self._aggregates.granularities]

        try:
            with self._aggregates.guard.exclusive(
                scope, timeout=self._config.exclusive_timeout_seconds
            ):
                values, scanned = self._recount(scope, windows)
                self._aggregates.overwrite(scope, windows, values)
        except TimeoutError as e:
            logger.warning("Reconcile of %s skipped: %s", scope, e)
            return self._failure(scope, time_range, "busy", str(e))
        except StoreError as e:
            logger.exception("Reconcile of %s failed", scope)
            return self._failure(scope, time_range, "store_error", str(e))

        logger.info(
            "Reconciled %s: %d events, %d buckets",
            scope,
            scanned,
            len(values),
        )
        return ReconcileResult(
            scope=scope,
            time_range=time_range,
            buckets_written=len(values),
            events_scanned=scanned,
            success=True,
        )

    def reconcile_pending(self, max_items: int | None = None) -> ReconcileBatchResult:
        """Drain the pending queue; failed scopes go back on it."""
        items = self._queue.pop(max_items)
        results: list[ReconcileResult] = []
        succeeded = 0
        failed = 0

        for scope, time_range in items:
            result = self.reconcile(scope, time_range)
            results.append(result)
            if result.success:
                succeeded += 1
            else:
                failed += 1
                self._queue.add(scope, time_range)

        return ReconcileBatchResult(
            total_processed=len(results),
            succeeded=succeeded,
            failed=failed,
            results=results,
        )

    def _recount(
        self,
        scope: Scope,
        windows: Sequence[BucketWindow],
    ) -> tuple[dict[CounterKey, int], int]:
        """Exact counters for every bucket in `windows`, and the events read."""
        lo, hi = _span(windows)
        values: dict[CounterKey, int] = {}
        scanned = 0

        def add(metric: str, window: BucketWindow, ts: datetime, amount: int) -> None:
            bucket_start = calculate_bucket_start(ts, window.granularity)
            if not window.contains(bucket_start):
                return
            key = CounterKey(scope, metric, window.granularity, bucket_start)
            values[key] = values.get(key, 0) + amount

        if scope.kind == ScopeKind.LINK:
            for click in self._events.iter_clicks(scope.entity_id, lo, hi):
                scanned += 1
                for window in windows:
                    add(METRIC_CLICKS, window, click.occurred_at, 1)
        else:
            for lead in self._events.iter_leads(scope.entity_id, lo, hi):
                scanned += 1
                for window in windows:
                    add(METRIC_LEADS, window, lead.occurred_at, 1)
                    add(METRIC_SCORE_SUM, window, lead.occurred_at, lead.score)

        return values, scanned

    @staticmethod
    def _failure(scope: Scope, time_range: TimeRange, code: str, message: str) -> ReconcileResult:
        return ReconcileResult(
            scope=scope,
            time_range=time_range,
            success=False,
            errors=[ReconcileError(code=code, message=message, scope=scope)],
        )


def _span(windows: Sequence[BucketWindow]) -> tuple[datetime | None, datetime | None]:
    """Smallest time range covering every window (None means unbounded)."""
    starts = [w.start for w in windows]
    ends = [w.end for w in windows]
    lo = None if any(s is None for s in starts) else min(s for s in starts if s is not None)
    hi = None if any(e is None for e in ends) else max(e for e in ends if e is not None)
    return lo, hi
