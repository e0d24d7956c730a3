"""
Domain entities for the lead capture and click-analytics pipeline.

- Page / Link: owned by the publishing layer, read-only here
- ClickEvent / Lead: immutable facts, the source of truth
- BucketReading: derived aggregate value, reconstructable from facts

All timestamps are stored in UTC.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Literal
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field

__all__ = [
    "BucketReading",
    "ClickEvent",
    "Lead",
    "LeadSource",
    "Link",
    "Page",
    "UAClass",
    "ensure_utc",
]


def ensure_utc(ts: datetime) -> datetime:
    """Normalize a datetime to aware UTC (naive values are taken as UTC)."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=UTC)
    return ts.astimezone(UTC)


class LeadSource(str, Enum):
    """Where a lead came from."""

    DIRECT = "direct"
    SOCIAL = "social"
    REFERRAL = "referral"
    UNKNOWN = "unknown"


class UAClass(str, Enum):
    """User agent classification."""

    BOT = "bot"
    REAL = "real"
    UNKNOWN = "unknown"


# --- Publishing layer (read-only) ---


class Page(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    owner_id: UUID
    slug: str
    display_name: str | None = None


class Link(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    page_id: UUID
    url: str
    label: str
    sort_order: int = 0
    is_active: bool = True


# --- Facts ---


class ClickEvent(BaseModel):
    """
    A single visitor click on a link.

    Never updated, never deleted. Two clicks by the same visitor are two
    events; only redelivery of the same id is a duplicate.
    """

    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    link_id: UUID
    page_id: UUID
    ip_address: str | None = None
    user_agent: str | None = None
    ua_class: UAClass = UAClass.UNKNOWN
    occurred_at: datetime


class Lead(BaseModel):
    """
    A captured email submission.

    Re-submission by the same email is a new Lead; history is kept.
    """

    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    page_id: UUID
    email: str
    source: LeadSource = LeadSource.UNKNOWN
    score: int = Field(ge=0, le=100)
    message: str | None = None
    occurred_at: datetime


# --- Derived ---


class BucketReading(BaseModel):
    """One aggregate bucket as seen by a reader."""

    model_config = ConfigDict(frozen=True)

    granularity: Literal["day", "week", "month"]
    bucket_start: datetime
    count: int = 0
    score_sum: int | None = None  # lead buckets only
