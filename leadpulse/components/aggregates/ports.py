"""
Aggregates component - Port interfaces.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import datetime
from typing import Protocol

from .models import BucketWindow, CounterDelta, CounterKey, Granularity, Scope


class CounterStorePort(Protocol):
    """
    Counter store capability.

    Increments are deltas, so concurrent writers compose without
    read-modify-write. Every scope carries a generation that each replace
    bumps; it is shared by every process using the same store. Adapters
    raise TransientStoreError when unavailable.
    """

    def generation(self, scope: Scope) -> int:
        """Current generation of `scope` (0 if never replaced)."""
        ...

    def increment(
        self,
        scope: Scope,
        deltas: Sequence[CounterDelta],
        expected_generation: int | None = None,
    ) -> bool:
        """
        Apply all deltas of `scope` atomically: all of them or none.

        Returns False, applying nothing, when `expected_generation` is given
        and differs from the scope's generation at the time of the write.
        """
        ...

    def scan(
        self,
        scope: Scope,
        granularity: Granularity,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[tuple[datetime, dict[str, int]]]:
        """
        Committed buckets with start <= bucket_start < end, ordered.

        Each item maps metric name to value. All metrics come from one
        consistent snapshot, so a bucket is never seen half-updated.
        """
        ...

    def replace(
        self,
        scope: Scope,
        windows: Sequence[BucketWindow],
        values: Mapping[CounterKey, int],
    ) -> None:
        """
        Atomically overwrite a scope's buckets and bump its generation.

        Every counter of `scope` whose bucket falls in one of `windows` is
        removed, then `values` are written. All or nothing.
        """
        ...
