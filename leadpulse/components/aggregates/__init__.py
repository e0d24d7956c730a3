"""
Aggregates component - Day/week/month rollups of clicks and leads.
"""

from ._buckets import (
    calculate_bucket_end,
    calculate_bucket_start,
    iter_bucket_starts,
    widen_to_buckets,
)
from ._guard import ScopeGuard
from ._impl import AggregateStore, InMemoryCounterStore
from .component import run_read, run_totals
from .models import (
    DEFAULT_CONFIG,
    METRIC_CLICKS,
    METRIC_LEADS,
    METRIC_SCORE_SUM,
    SCOPE_METRICS,
    AggregateConfig,
    BucketSeriesOutput,
    BucketWindow,
    CounterDelta,
    CounterKey,
    Granularity,
    ReadBucketsInput,
    Scope,
    ScopeKind,
    ScopeToken,
    TimeRange,
    TotalsOutput,
)
from .ports import CounterStorePort

__all__ = [
    # Entry points
    "run_read",
    "run_totals",
    # Service
    "AggregateStore",
    "InMemoryCounterStore",
    "ScopeGuard",
    # Buckets
    "calculate_bucket_end",
    "calculate_bucket_start",
    "iter_bucket_starts",
    "widen_to_buckets",
    # Models
    "DEFAULT_CONFIG",
    "METRIC_CLICKS",
    "METRIC_LEADS",
    "METRIC_SCORE_SUM",
    "SCOPE_METRICS",
    "AggregateConfig",
    "BucketSeriesOutput",
    "BucketWindow",
    "CounterDelta",
    "CounterKey",
    "Granularity",
    "ReadBucketsInput",
    "Scope",
    "ScopeKind",
    "ScopeToken",
    "TimeRange",
    "TotalsOutput",
    # Ports
    "CounterStorePort",
]
