"""
Tests for bucket boundary calculation.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone

import pytest

from leadpulse.components.aggregates import (
    Granularity,
    TimeRange,
    calculate_bucket_end,
    calculate_bucket_start,
    iter_bucket_starts,
    widen_to_buckets,
)


class TestBucketStart:
    """Bucket start truncation per granularity."""

    def test_day_bucket_start(self) -> None:
        ts = datetime(2024, 6, 12, 14, 30, 45, 123456, tzinfo=UTC)
        assert calculate_bucket_start(ts, Granularity.DAY) == datetime(2024, 6, 12, tzinfo=UTC)

    @pytest.mark.parametrize(
        "ts",
        [
            datetime(2024, 6, 10, 0, 0, tzinfo=UTC),
            datetime(2024, 6, 12, 9, 0, tzinfo=UTC),
            datetime(2024, 6, 16, 23, 59, 59, tzinfo=UTC),
        ],
    )
    def test_week_starts_monday(self, ts: datetime) -> None:
        """Monday through Sunday share the Monday bucket."""
        assert calculate_bucket_start(ts, Granularity.WEEK) == datetime(2024, 6, 10, tzinfo=UTC)

    def test_next_monday_opens_new_week(self) -> None:
        ts = datetime(2024, 6, 17, 0, 0, tzinfo=UTC)
        assert calculate_bucket_start(ts, Granularity.WEEK) == ts

    def test_month_bucket_start(self) -> None:
        ts = datetime(2024, 12, 31, 23, 0, tzinfo=UTC)
        assert calculate_bucket_start(ts, Granularity.MONTH) == datetime(2024, 12, 1, tzinfo=UTC)

    def test_offset_timestamp_bucketed_in_utc(self) -> None:
        """01:00 at +05:00 on a Monday is still Sunday in UTC."""
        ts = datetime(2024, 6, 10, 1, 0, tzinfo=timezone(timedelta(hours=5)))
        assert calculate_bucket_start(ts, Granularity.DAY) == datetime(2024, 6, 9, tzinfo=UTC)
        assert calculate_bucket_start(ts, Granularity.WEEK) == datetime(2024, 6, 3, tzinfo=UTC)

    def test_naive_datetime_treated_as_utc(self) -> None:
        ts = datetime(2024, 6, 12, 14, 30)  # noqa: DTZ001
        result = calculate_bucket_start(ts, Granularity.DAY)
        assert result.tzinfo == UTC


class TestBucketEnd:
    """Bucket end is exclusive."""

    def test_day_end(self) -> None:
        start = datetime(2024, 2, 28, tzinfo=UTC)
        assert calculate_bucket_end(start, Granularity.DAY) == datetime(2024, 2, 29, tzinfo=UTC)

    def test_week_end(self) -> None:
        start = datetime(2024, 12, 30, tzinfo=UTC)
        assert calculate_bucket_end(start, Granularity.WEEK) == datetime(2025, 1, 6, tzinfo=UTC)

    def test_month_end_rolls_year(self) -> None:
        start = datetime(2024, 12, 1, tzinfo=UTC)
        assert calculate_bucket_end(start, Granularity.MONTH) == datetime(2025, 1, 1, tzinfo=UTC)

    def test_month_end_february(self) -> None:
        start = datetime(2024, 2, 1, tzinfo=UTC)
        assert calculate_bucket_end(start, Granularity.MONTH) == datetime(2024, 3, 1, tzinfo=UTC)


class TestIterBucketStarts:
    """Enumerating bucket starts across a range."""

    def test_days_in_range(self) -> None:
        starts = list(
            iter_bucket_starts(
                datetime(2024, 6, 12, 10, 0, tzinfo=UTC),
                datetime(2024, 6, 15, tzinfo=UTC),
                Granularity.DAY,
            )
        )
        assert starts == [
            datetime(2024, 6, 12, tzinfo=UTC),
            datetime(2024, 6, 13, tzinfo=UTC),
            datetime(2024, 6, 14, tzinfo=UTC),
        ]

    def test_months_across_year(self) -> None:
        starts = list(
            iter_bucket_starts(
                datetime(2024, 11, 20, tzinfo=UTC),
                datetime(2025, 1, 2, tzinfo=UTC),
                Granularity.MONTH,
            )
        )
        assert starts == [
            datetime(2024, 11, 1, tzinfo=UTC),
            datetime(2024, 12, 1, tzinfo=UTC),
            datetime(2025, 1, 1, tzinfo=UTC),
        ]


class TestWidenToBuckets:
    """Time ranges expand to whole buckets."""

    def test_widen_within_one_day(self) -> None:
        time_range = TimeRange(
            datetime(2024, 6, 12, 10, 0, tzinfo=UTC),
            datetime(2024, 6, 12, 11, 0, tzinfo=UTC),
        )
        day = widen_to_buckets(time_range, Granularity.DAY)
        week = widen_to_buckets(time_range, Granularity.WEEK)
        month = widen_to_buckets(time_range, Granularity.MONTH)

        assert (day.start, day.end) == (
            datetime(2024, 6, 12, tzinfo=UTC),
            datetime(2024, 6, 13, tzinfo=UTC),
        )
        assert (week.start, week.end) == (
            datetime(2024, 6, 10, tzinfo=UTC),
            datetime(2024, 6, 17, tzinfo=UTC),
        )
        assert (month.start, month.end) == (
            datetime(2024, 6, 1, tzinfo=UTC),
            datetime(2024, 7, 1, tzinfo=UTC),
        )

    def test_end_on_boundary_does_not_touch_next_bucket(self) -> None:
        time_range = TimeRange(
            datetime(2024, 6, 12, tzinfo=UTC),
            datetime(2024, 6, 13, tzinfo=UTC),
        )
        day = widen_to_buckets(time_range, Granularity.DAY)
        assert day.end == datetime(2024, 6, 13, tzinfo=UTC)

    def test_unbounded_stays_unbounded(self) -> None:
        window = widen_to_buckets(TimeRange(), Granularity.WEEK)
        assert window.start is None
        assert window.end is None

    def test_window_contains_is_half_open(self) -> None:
        window = widen_to_buckets(
            TimeRange(datetime(2024, 6, 12, 5, tzinfo=UTC), datetime(2024, 6, 12, 6, tzinfo=UTC)),
            Granularity.DAY,
        )
        assert window.contains(datetime(2024, 6, 12, tzinfo=UTC))
        assert not window.contains(datetime(2024, 6, 13, tzinfo=UTC))
        assert not window.contains(datetime(2024, 6, 11, tzinfo=UTC))


class TestTimeRangeMerge:
    """Merging pending ranges."""

    def test_merge_covers_both(self) -> None:
        a = TimeRange(datetime(2024, 6, 1, tzinfo=UTC), datetime(2024, 6, 2, tzinfo=UTC))
        b = TimeRange(datetime(2024, 6, 5, tzinfo=UTC), datetime(2024, 6, 6, tzinfo=UTC))
        merged = a.merge(b)
        assert merged.start == datetime(2024, 6, 1, tzinfo=UTC)
        assert merged.end == datetime(2024, 6, 6, tzinfo=UTC)

    def test_merge_with_unbounded_is_unbounded(self) -> None:
        a = TimeRange(datetime(2024, 6, 1, tzinfo=UTC), datetime(2024, 6, 2, tzinfo=UTC))
        merged = a.merge(TimeRange())
        assert merged.start is None
        assert merged.end is None
