"""
AggregateStore - Incrementally maintained day/week/month rollups.

Key behaviors:
- One increment call updates day, week and month buckets together or not at all
- Increments never wait: a scope under reconciliation refuses them
- An increment whose token predates a replace of its scope is refused, even
  when the replace ran in another process
- Reads are lazy, ordered by bucket start, and see committed buckets only
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator, Mapping, Sequence
from datetime import datetime
from uuid import UUID

from leadpulse.core.entities import BucketReading

from ._buckets import calculate_bucket_end, calculate_bucket_start
from ._guard import ScopeGuard
from .models import (
    DEFAULT_CONFIG,
    METRIC_CLICKS,
    METRIC_LEADS,
    METRIC_SCORE_SUM,
    AggregateConfig,
    BucketWindow,
    CounterDelta,
    CounterKey,
    Granularity,
    Scope,
    ScopeKind,
    ScopeToken,
)
from .ports import CounterStorePort

logger = logging.getLogger(__name__)


# --- In-Memory Counter Store ---


class InMemoryCounterStore:
    """In-memory counter store for testing/dev."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counters: dict[CounterKey, int] = {}
        self._generations: dict[Scope, int] = {}

    def generation(self, scope: Scope) -> int:
        with self._lock:
            return self._generations.get(scope, 0)

    def increment(
        self,
        scope: Scope,
        deltas: Sequence[CounterDelta],
        expected_generation: int | None = None,
    ) -> bool:
        with self._lock:
            if (
                expected_generation is not None
                and self._generations.get(scope, 0) != expected_generation
            ):
                return False
            for delta in deltas:
                self._counters[delta.key] = self._counters.get(delta.key, 0) + delta.amount
            return True

    def scan(
        self,
        scope: Scope,
        granularity: Granularity,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[tuple[datetime, dict[str, int]]]:
        window = BucketWindow(granularity=granularity, start=start, end=end)
        buckets: dict[datetime, dict[str, int]] = {}
        with self._lock:
            for key, value in self._counters.items():
                if (
                    key.scope == scope
                    and key.granularity == granularity
                    and window.contains(key.bucket_start)
                ):
                    buckets.setdefault(key.bucket_start, {})[key.metric] = value
        return sorted(buckets.items())

    def replace(
        self,
        scope: Scope,
        windows: Sequence[BucketWindow],
        values: Mapping[CounterKey, int],
    ) -> None:
        by_granularity = {w.granularity: w for w in windows}
        with self._lock:
            stale = [
                key
                for key in self._counters
                if key.scope == scope
                and key.granularity in by_granularity
                and by_granularity[key.granularity].contains(key.bucket_start)
            ]
            for key in stale:
                del self._counters[key]
            for key, value in values.items():
                self._counters[key] = value
            self._generations[scope] = self._generations.get(scope, 0) + 1

    def snapshot(self) -> dict[CounterKey, int]:
        """Copy of every counter (for testing)."""
        with self._lock:
            return dict(self._counters)


# --- Aggregate Store ---


class AggregateStore:
    """
    Aggregate store over a counter-store port.

    Click buckets are keyed by link; lead-count and score-sum buckets by page.
    """

    def __init__(
        self,
        counter_store: CounterStorePort | None = None,
        guard: ScopeGuard | None = None,
        config: AggregateConfig | None = None,
    ) -> None:
        self._counters = counter_store or InMemoryCounterStore()
        self._guard = guard or ScopeGuard()
        self._config = config or DEFAULT_CONFIG

    @property
    def guard(self) -> ScopeGuard:
        return self._guard

    @property
    def counter_store(self) -> CounterStorePort:
        return self._counters

    @property
    def granularities(self) -> tuple[Granularity, ...]:
        return self._config.granularities

    def begin(self, scope: Scope) -> ScopeToken:
        """Take a generation token before appending the event it will count."""
        return ScopeToken(scope=scope, generation=self._counters.generation(scope))

    # --- Writes ---

    def increment_click(
        self,
        link_id: UUID,
        timestamp: datetime,
        *,
        token: ScopeToken | None = None,
    ) -> bool:
        """
        Count one click in every granularity.

        Returns False, changing nothing, if the link's scope is being
        reconciled here or has been replaced anywhere since `token` was taken.
        """
        scope = Scope.link(link_id)
        deltas = [
            CounterDelta(self._key(scope, METRIC_CLICKS, g, timestamp), 1)
            for g in self._config.granularities
        ]
        return self._apply(scope, deltas, token)

    def increment_lead(
        self,
        page_id: UUID,
        timestamp: datetime,
        score: int,
        *,
        token: ScopeToken | None = None,
    ) -> bool:
        """Count one lead and add its score in every granularity."""
        scope = Scope.page(page_id)
        deltas: list[CounterDelta] = []
        for g in self._config.granularities:
            deltas.append(CounterDelta(self._key(scope, METRIC_LEADS, g, timestamp), 1))
            deltas.append(CounterDelta(self._key(scope, METRIC_SCORE_SUM, g, timestamp), score))
        return self._apply(scope, deltas, token)

    def _apply(
        self,
        scope: Scope,
        deltas: Sequence[CounterDelta],
        token: ScopeToken | None,
    ) -> bool:
        if token is not None and token.scope != scope:
            raise ValueError(f"Token for {token.scope} used on {scope}")
        expected = token.generation if token is not None else None

        with self._guard.try_shared(scope) as acquired:
            if not acquired:
                logger.debug("Increment refused for %s (reconciliation window)", scope)
                return False
            if not self._counters.increment(scope, deltas, expected):
                logger.debug("Increment refused for %s (stale generation)", scope)
                return False
            return True

    def overwrite(
        self,
        scope: Scope,
        windows: Sequence[BucketWindow],
        values: Mapping[CounterKey, int],
    ) -> None:
        """
        Replace a scope's buckets in `windows` with `values`.

        The caller must hold the scope exclusively (see ScopeGuard.exclusive).
        """
        if not self._guard.is_exclusive(scope):
            raise RuntimeError(f"Overwrite of {scope} requires an exclusive hold")
        self._counters.replace(scope, windows, values)

    # --- Reads ---

    def read(
        self,
        entity_id: UUID,
        granularity: Granularity,
        start: datetime | None = None,
        end: datetime | None = None,
        *,
        kind: ScopeKind = ScopeKind.LINK,
    ) -> Iterator[BucketReading]:
        """
        Ordered bucket series for a link (clicks) or page (leads, score sum).

        Includes the buckets containing `start` and `end`. Lazy: nothing is
        fetched until the first item is requested.
        """
        scope = Scope(kind, entity_id)
        lo = calculate_bucket_start(start, granularity) if start is not None else None
        hi = None
        if end is not None:
            hi = calculate_bucket_end(calculate_bucket_start(end, granularity), granularity)

        for bucket_start, metrics in self._counters.scan(scope, granularity, lo, hi):
            if kind == ScopeKind.LINK:
                yield BucketReading(
                    granularity=granularity.value,
                    bucket_start=bucket_start,
                    count=metrics.get(METRIC_CLICKS, 0),
                )
            else:
                yield BucketReading(
                    granularity=granularity.value,
                    bucket_start=bucket_start,
                    count=metrics.get(METRIC_LEADS, 0),
                    score_sum=metrics.get(METRIC_SCORE_SUM, 0),
                )

    def totals(
        self,
        entity_id: UUID,
        *,
        kind: ScopeKind = ScopeKind.LINK,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> dict[str, int]:
        """Sum of day buckets over a range."""
        count = 0
        score_sum = 0
        for reading in self.read(entity_id, Granularity.DAY, start, end, kind=kind):
            count += reading.count
            score_sum += reading.score_sum or 0

        if kind == ScopeKind.LINK:
            return {"count": count}
        return {"count": count, "score_sum": score_sum}

    @staticmethod
    def _key(scope: Scope, metric: str, granularity: Granularity, ts: datetime) -> CounterKey:
        return CounterKey(
            scope=scope,
            metric=metric,
            granularity=granularity,
            bucket_start=calculate_bucket_start(ts, granularity),
        )
