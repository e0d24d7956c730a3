"""
Ingestion component input/output models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from uuid import UUID

from leadpulse.core.entities import ClickEvent, Lead, LeadSource

# --- Errors ---


class ErrorKind(str, Enum):
    """How a caller should react to an ingestion error."""

    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    TRANSIENT = "transient"


@dataclass(frozen=True)
class IngestionError:
    """Ingestion error."""

    code: str
    message: str
    kind: ErrorKind = ErrorKind.VALIDATION
    field_name: str | None = None

    @property
    def retryable(self) -> bool:
        return self.kind == ErrorKind.TRANSIENT


# --- Configuration ---


@dataclass(frozen=True)
class IngestionConfig:
    """Ingestion configuration."""

    # Validation
    max_email_length: int = 254
    max_message_length: int = 2000
    max_future_skew_seconds: int = 60

    # Idempotency keys are remembered this long
    idempotency_window_seconds: int = 86400

    # Event-store append retry (same event id on every attempt)
    append_max_attempts: int = 3
    append_backoff_seconds: tuple[float, ...] = (0.05, 0.2, 0.5)

    # User agent classification
    bot_patterns: tuple[str, ...] = (
        "bot",
        "crawler",
        "spider",
        "scraper",
        "wget",
        "curl",
        "python-requests",
        "go-http-client",
        "java/",
        "libwww",
        "httpclient",
        "facebookexternalhit",
        "slurp",
        "bytespider",
    )
    real_browser_patterns: tuple[str, ...] = (
        "mozilla/5.0",
        "chrome/",
        "firefox/",
        "safari/",
        "edge/",
        "opera/",
        "msie",
        "trident/",
    )


DEFAULT_CONFIG = IngestionConfig()


# --- Input Models ---


@dataclass(frozen=True)
class RecordClickInput:
    """Input for recording a link click."""

    link_id: UUID
    ip_address: str | None = None
    user_agent: str | None = None
    occurred_at: datetime | None = None
    event_id: UUID | None = None
    idempotency_key: str | None = None


@dataclass(frozen=True)
class CaptureLeadInput:
    """Input for capturing an email submission."""

    page_id: UUID
    email: str
    source: LeadSource | str | None = None
    occurred_at: datetime | None = None
    engagement_depth: int | None = None
    visitor_ip: str | None = None
    message: str | None = None
    lead_id: UUID | None = None
    idempotency_key: str | None = None


# --- Output Models ---


@dataclass(frozen=True)
class RecordClickOutput:
    """Output from recording a click."""

    event: ClickEvent | None
    errors: list[IngestionError] = field(default_factory=list)
    success: bool = True


@dataclass(frozen=True)
class CaptureLeadOutput:
    """Output from capturing a lead."""

    lead: Lead | None
    errors: list[IngestionError] = field(default_factory=list)
    success: bool = True
