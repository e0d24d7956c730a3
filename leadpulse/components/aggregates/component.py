"""
Aggregates component - Dashboard reads over rolled-up buckets.

Invariants:
- Buckets are UTC; weeks start Monday, months on the 1st
- Reads include the buckets containing both `start` and `end`
- Before reconciliation a bucket may undercount, never overcount
"""

from __future__ import annotations

from ._impl import AggregateStore
from .models import BucketSeriesOutput, ReadBucketsInput, ScopeKind, TotalsOutput


def run_read(inp: ReadBucketsInput, *, store: AggregateStore) -> BucketSeriesOutput:
    """
    Read an ordered bucket series.

    Args:
        inp: Entity, scope kind, granularity and optional range.
        store: Aggregate store to read from.

    Returns:
        BucketSeriesOutput with the committed buckets in order.
    """
    buckets = tuple(
        store.read(
            inp.entity_id,
            inp.granularity,
            inp.start,
            inp.end,
            kind=inp.kind,
        )
    )
    return BucketSeriesOutput(
        entity_id=inp.entity_id,
        granularity=inp.granularity,
        buckets=buckets,
        success=True,
    )


def run_totals(inp: ReadBucketsInput, *, store: AggregateStore) -> TotalsOutput:
    """Totals over the day buckets a range touches."""
    totals = store.totals(inp.entity_id, kind=inp.kind, start=inp.start, end=inp.end)
    return TotalsOutput(
        entity_id=inp.entity_id,
        kind=inp.kind,
        count=totals.get("count", 0),
        score_sum=totals.get("score_sum") if inp.kind == ScopeKind.PAGE else None,
        success=True,
    )
