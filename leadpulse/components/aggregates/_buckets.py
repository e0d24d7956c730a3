"""
Bucket boundary calculation.

All boundaries are UTC. Weeks start on Monday (ISO), months on the 1st.
"""

from __future__ import annotations

from collections.abc import Iterator
from datetime import datetime, timedelta

from leadpulse.core.entities import ensure_utc

from .models import BucketWindow, Granularity, TimeRange


def calculate_bucket_start(timestamp: datetime, granularity: Granularity) -> datetime:
    """Start of the bucket containing `timestamp`."""
    ts = ensure_utc(timestamp)
    day = ts.replace(hour=0, minute=0, second=0, microsecond=0)

    if granularity == Granularity.DAY:
        return day
    elif granularity == Granularity.WEEK:
        return day - timedelta(days=day.weekday())
    elif granularity == Granularity.MONTH:
        return day.replace(day=1)
    else:
        msg = f"Unknown granularity: {granularity}"
        raise ValueError(msg)


def calculate_bucket_end(bucket_start: datetime, granularity: Granularity) -> datetime:
    """End of a bucket (exclusive)."""
    if granularity == Granularity.DAY:
        return bucket_start + timedelta(days=1)
    elif granularity == Granularity.WEEK:
        return bucket_start + timedelta(weeks=1)
    elif granularity == Granularity.MONTH:
        if bucket_start.month == 12:
            return bucket_start.replace(year=bucket_start.year + 1, month=1)
        return bucket_start.replace(month=bucket_start.month + 1)
    else:
        msg = f"Unknown granularity: {granularity}"
        raise ValueError(msg)


def iter_bucket_starts(
    start: datetime,
    end: datetime,
    granularity: Granularity,
) -> Iterator[datetime]:
    """Bucket starts from the bucket containing `start` up to (excluding) `end`."""
    current = calculate_bucket_start(start, granularity)
    end = ensure_utc(end)
    while current < end:
        yield current
        current = calculate_bucket_end(current, granularity)


def widen_to_buckets(time_range: TimeRange, granularity: Granularity) -> BucketWindow:
    """
    Expand a time range to whole buckets.

    Reconciliation overwrites whole buckets, so the scan must cover every
    bucket the range touches from its first instant to its last.
    """
    start = None
    end = None
    if time_range.start is not None:
        start = calculate_bucket_start(time_range.start, granularity)
    if time_range.end is not None:
        # end is exclusive: the last touched instant is just before it
        last = ensure_utc(time_range.end) - timedelta(microseconds=1)
        end = calculate_bucket_end(calculate_bucket_start(last, granularity), granularity)
    return BucketWindow(granularity=granularity, start=start, end=end)
