"""
Aggregates component - Data models.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from uuid import UUID

from leadpulse.core.entities import BucketReading

# --- Enums ---


class Granularity(str, Enum):
    """Time bucket granularity."""

    DAY = "day"
    WEEK = "week"
    MONTH = "month"


class ScopeKind(str, Enum):
    """Entity an aggregate belongs to."""

    LINK = "link"
    PAGE = "page"


# Metric names stored in the counter store
METRIC_CLICKS = "clicks"
METRIC_LEADS = "leads"
METRIC_SCORE_SUM = "score_sum"

SCOPE_METRICS: dict[ScopeKind, tuple[str, ...]] = {
    ScopeKind.LINK: (METRIC_CLICKS,),
    ScopeKind.PAGE: (METRIC_LEADS, METRIC_SCORE_SUM),
}


# --- Configuration ---


@dataclass(frozen=True)
class AggregateConfig:
    """Aggregate configuration."""

    granularities: tuple[Granularity, ...] = (
        Granularity.DAY,
        Granularity.WEEK,
        Granularity.MONTH,
    )


DEFAULT_CONFIG = AggregateConfig()


# --- Keys ---


@dataclass(frozen=True)
class Scope:
    """
    Unit of exclusion for reconciliation.

    A link scope owns its click buckets; a page scope owns its lead and
    score-sum buckets.
    """

    kind: ScopeKind
    entity_id: UUID

    @classmethod
    def link(cls, link_id: UUID) -> Scope:
        return cls(ScopeKind.LINK, link_id)

    @classmethod
    def page(cls, page_id: UUID) -> Scope:
        return cls(ScopeKind.PAGE, page_id)

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.entity_id}"


@dataclass(frozen=True)
class CounterKey:
    """Address of a single counter."""

    scope: Scope
    metric: str
    granularity: Granularity
    bucket_start: datetime


@dataclass(frozen=True)
class CounterDelta:
    key: CounterKey
    amount: int


@dataclass(frozen=True)
class BucketWindow:
    """Half-open range of bucket starts [start, end) for one granularity."""

    granularity: Granularity
    start: datetime | None
    end: datetime | None

    def contains(self, bucket_start: datetime) -> bool:
        if self.start is not None and bucket_start < self.start:
            return False
        if self.end is not None and bucket_start >= self.end:
            return False
        return True


@dataclass(frozen=True)
class ScopeToken:
    """Stored generation of a scope, observed before an event append."""

    scope: Scope
    generation: int


@dataclass(frozen=True)
class TimeRange:
    """Half-open time range [start, end); None means unbounded."""

    start: datetime | None = None
    end: datetime | None = None

    def merge(self, other: TimeRange) -> TimeRange:
        """Smallest range covering both."""
        start = None if self.start is None or other.start is None else min(self.start, other.start)
        end = None if self.end is None or other.end is None else max(self.end, other.end)
        return TimeRange(start=start, end=end)


# --- Component Input/Output ---


@dataclass(frozen=True)
class ReadBucketsInput:
    """Input for reading a bucket series."""

    entity_id: UUID
    kind: ScopeKind
    granularity: Granularity
    start: datetime | None = None
    end: datetime | None = None


@dataclass(frozen=True)
class BucketSeriesOutput:
    """Ordered bucket series."""

    entity_id: UUID
    granularity: Granularity
    buckets: tuple[BucketReading, ...]
    success: bool = True


@dataclass(frozen=True)
class TotalsOutput:
    """Sum over a range; score_sum is set for pages only."""

    entity_id: UUID
    kind: ScopeKind
    count: int
    score_sum: int | None = None
    success: bool = True
