"""
IngestionService - Validated, durable intake of clicks and leads.

Key behaviors:
- The event is appended durably before any aggregate reflects it
- Appends are retried on transient store errors with the same event id
- Aggregate increments are best effort: a refused or failed increment
  never fails the call, the scope is queued for reconciliation instead
- An idempotency key seen within the window returns the original event
- Only the caller that first claims an event id may increment for it
"""

from __future__ import annotations

import logging
import re
import threading
import time
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import TypeVar
from uuid import UUID, uuid4

from leadpulse.components.aggregates import AggregateStore, Scope, TimeRange
from leadpulse.components.events import EventStorePort
from leadpulse.components.reconciler import ReconcileQueue
from leadpulse.components.scoring import DEFAULT_CONFIG as DEFAULT_SCORING
from leadpulse.components.scoring import ScoringConfig, parse_source, score_lead
from leadpulse.core.entities import ClickEvent, Lead, LeadSource, Link, Page, UAClass, ensure_utc
from leadpulse.core.errors import StoreError, TransientStoreError
from leadpulse.core.ports.time import TimePort

from .models import DEFAULT_CONFIG, ErrorKind, IngestionConfig, IngestionError
from .ports import DirectoryPort, IdempotencyStorePort

logger = logging.getLogger(__name__)

T = TypeVar("T")

EMAIL_REGEX = re.compile(
    r"^[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+@"
    r"[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)+$"
)

# Smallest range that still covers a single event timestamp
_ONE_TICK = timedelta(microseconds=1)


# --- Pure Functions ---


def validate_email(
    email: str | None,
    config: IngestionConfig = DEFAULT_CONFIG,
) -> tuple[str | None, list[IngestionError]]:
    """
    Validate and normalize an email address.

    Returns (normalized_email, []) on success, (None, errors) otherwise.
    """
    normalized = email.strip().lower() if email else ""

    if not normalized:
        return None, [IngestionError("email_required", "Email is required", field_name="email")]

    if len(normalized) > config.max_email_length:
        return None, [
            IngestionError(
                "email_too_long",
                f"Email exceeds {config.max_email_length} characters",
                field_name="email",
            )
        ]

    if not EMAIL_REGEX.match(normalized):
        return None, [IngestionError("invalid_email", "Invalid email format", field_name="email")]

    return normalized, []


def classify_user_agent(
    user_agent: str | None,
    config: IngestionConfig = DEFAULT_CONFIG,
) -> UAClass:
    """Classify a user agent string as bot, real browser, or unknown."""
    if not user_agent:
        return UAClass.UNKNOWN

    ua_lower = user_agent.lower()

    # Bot patterns take priority over browser patterns
    for pattern in config.bot_patterns:
        if pattern in ua_lower:
            return UAClass.BOT

    for pattern in config.real_browser_patterns:
        if pattern in ua_lower:
            return UAClass.REAL

    return UAClass.UNKNOWN


# --- In-Memory Adapters ---


class InMemoryIdempotencyStore:
    """
    In-memory idempotency store.

    Expired entries are swept by `claim` at most once per
    `sweep_interval_seconds`, so memory is bounded by the keys claimed within
    one window plus one interval.
    """

    def __init__(
        self,
        time_port: TimePort | None = None,
        sweep_interval_seconds: int = 60,
    ) -> None:
        self._time = time_port
        self._sweep_interval = timedelta(seconds=sweep_interval_seconds)
        self._lock = threading.Lock()
        self._entries: dict[str, tuple[UUID, datetime]] = {}
        self._next_sweep: datetime | None = None

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _now(self) -> datetime:
        if self._time is not None:
            return self._time.now_utc()
        return datetime.now(UTC)

    def claim(self, key: str, event_id: UUID, ttl_seconds: int) -> UUID | None:
        now = self._now()
        with self._lock:
            if self._next_sweep is None or now >= self._next_sweep:
                self._sweep(now)
                self._next_sweep = now + self._sweep_interval
            entry = self._entries.get(key)
            if entry is not None and now <= entry[1]:
                return entry[0]
            self._entries[key] = (event_id, now + timedelta(seconds=ttl_seconds))
            return None

    def cleanup_expired(self) -> int:
        now = self._now()
        with self._lock:
            return self._sweep(now)

    def _sweep(self, now: datetime) -> int:
        # Caller holds self._lock
        expired = [k for k, (_, expires_at) in self._entries.items() if now > expires_at]
        for key in expired:
            del self._entries[key]
        return len(expired)


class InMemoryDirectory:
    """In-memory page/link directory for testing/dev."""

    def __init__(self) -> None:
        self._pages: dict[UUID, Page] = {}
        self._links: dict[UUID, Link] = {}

    def add_page(self, page: Page) -> Page:
        self._pages[page.id] = page
        return page

    def add_link(self, link: Link) -> Link:
        self._links[link.id] = link
        return link

    def get_page(self, page_id: UUID) -> Page | None:
        return self._pages.get(page_id)

    def get_link(self, link_id: UUID) -> Link | None:
        return self._links.get(link_id)

    def list_pages(self) -> list[Page]:
        return list(self._pages.values())

    def list_links(self, page_id: UUID, active_only: bool = True) -> list[Link]:
        links = [
            link
            for link in self._links.values()
            if link.page_id == page_id and (link.is_active or not active_only)
        ]
        return sorted(links, key=lambda link: link.sort_order)


# --- Ingestion Service ---


class IngestionService:
    """
    Records clicks and captures leads.

    Validation and lookup failures are returned as errors, never raised.
    """

    def __init__(
        self,
        directory: DirectoryPort,
        event_store: EventStorePort,
        aggregates: AggregateStore,
        queue: ReconcileQueue,
        time_port: TimePort,
        idempotency_store: IdempotencyStorePort | None = None,
        config: IngestionConfig | None = None,
        scoring_config: ScoringConfig | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._directory = directory
        self._events = event_store
        self._aggregates = aggregates
        self._queue = queue
        self._time = time_port
        self._idempotency = idempotency_store or InMemoryIdempotencyStore(time_port)
        self._config = config or DEFAULT_CONFIG
        self._scoring = scoring_config or DEFAULT_SCORING
        self._sleep = sleep

    # --- Clicks ---

    def record_click(
        self,
        link_id: UUID,
        ip_address: str | None,
        user_agent: str | None,
        occurred_at: datetime | None = None,
        *,
        event_id: UUID | None = None,
        idempotency_key: str | None = None,
    ) -> tuple[ClickEvent | None, list[IngestionError]]:
        """
        Record one visitor click.

        Returns:
            Tuple of (event, errors). Event is None when errors is non-empty.
        """
        ts, errors = self._resolve_timestamp(occurred_at)
        if errors:
            return None, errors

        link = self._directory.get_link(link_id)
        if link is None:
            return None, [_not_found("Link", link_id, "link_id")]
        if not link.is_active:
            return None, [
                IngestionError("inactive", f"Link {link_id} is inactive", field_name="link_id")
            ]

        try:
            event_id, owner, replay = self._claim(
                f"click:{link_id}", idempotency_key, event_id, self._events.get_click
            )
            if replay is not None:
                return replay, []

            scope = Scope.link(link_id)
            token = self._aggregates.begin(scope)
            event = ClickEvent(
                id=event_id,
                link_id=link_id,
                page_id=link.page_id,
                ip_address=ip_address,
                user_agent=user_agent,
                ua_class=classify_user_agent(user_agent, self._config),
                occurred_at=ts,
            )
            stored = self._with_retry("append_click", lambda: self._events.append_click(event))
        except TransientStoreError as e:
            logger.warning("Click on %s not recorded: %s", link_id, e)
            return None, [_unavailable()]

        # A racing delivery of the same id may have landed first; count what is stored
        stored_at = stored.occurred_at
        if owner:
            self._count(
                scope,
                stored_at,
                lambda: self._aggregates.increment_click(link_id, stored_at, token=token),
            )
        else:
            self._queue.add(scope, TimeRange(stored_at, stored_at + _ONE_TICK))

        return stored, []

    # --- Leads ---

    def capture_lead(
        self,
        page_id: UUID,
        email: str | None,
        source: LeadSource | str | None,
        occurred_at: datetime | None = None,
        *,
        engagement_depth: int | None = None,
        visitor_ip: str | None = None,
        message: str | None = None,
        lead_id: UUID | None = None,
        idempotency_key: str | None = None,
    ) -> tuple[Lead | None, list[IngestionError]]:
        """
        Capture an email submission and score it.

        Recency is the time since the page's previous lead. Engagement depth
        is taken from the caller, or derived from the visitor's clicks on this
        page when only `visitor_ip` is known.

        Returns:
            Tuple of (lead, errors). Lead is None when errors is non-empty.
        """
        ts, errors = self._resolve_timestamp(occurred_at)
        if errors:
            return None, errors

        normalized, errors = validate_email(email, self._config)
        if errors or normalized is None:
            return None, errors

        if message is not None and len(message) > self._config.max_message_length:
            return None, [
                IngestionError(
                    "message_too_long",
                    f"Message exceeds {self._config.max_message_length} characters",
                    field_name="message",
                )
            ]

        if engagement_depth is not None and engagement_depth < 0:
            return None, [
                IngestionError(
                    "invalid_engagement_depth",
                    "Engagement depth must be non-negative",
                    field_name="engagement_depth",
                )
            ]

        if self._directory.get_page(page_id) is None:
            return None, [_not_found("Page", page_id, "page_id")]

        try:
            lead_id, owner, replay = self._claim(
                f"lead:{page_id}", idempotency_key, lead_id, self._events.get_lead
            )
            if replay is not None:
                return replay, []

            last = self._with_retry(
                "last_lead_at", lambda: self._events.last_lead_at(page_id, ts)
            )
            recency = ts - last if last is not None else timedelta(0)

            depth = engagement_depth
            if depth is None:
                depth = 0
                if visitor_ip:
                    depth = self._with_retry(
                        "count_distinct_links",
                        lambda: self._events.count_distinct_links(page_id, visitor_ip, ts),
                    )

            resolved = parse_source(source)
            score = score_lead(resolved, recency, depth, self._scoring)

            scope = Scope.page(page_id)
            token = self._aggregates.begin(scope)
            lead = Lead(
                id=lead_id,
                page_id=page_id,
                email=normalized,
                source=resolved,
                score=score,
                message=message,
                occurred_at=ts,
            )
            stored = self._with_retry("append_lead", lambda: self._events.append_lead(lead))
        except TransientStoreError as e:
            logger.warning("Lead for page %s not captured: %s", page_id, e)
            return None, [_unavailable()]

        stored_at = stored.occurred_at
        if owner:
            self._count(
                scope,
                stored_at,
                lambda: self._aggregates.increment_lead(
                    page_id, stored_at, stored.score, token=token
                ),
            )
        else:
            self._queue.add(scope, TimeRange(stored_at, stored_at + _ONE_TICK))

        logger.debug("Captured lead %s for page %s (score %d)", stored.id, page_id, stored.score)
        return stored, []

    # --- Internals ---

    def _resolve_timestamp(
        self, occurred_at: datetime | None
    ) -> tuple[datetime, list[IngestionError]]:
        now = self._time.now_utc()
        if occurred_at is None:
            return now, []

        ts = ensure_utc(occurred_at)
        if ts > now + timedelta(seconds=self._config.max_future_skew_seconds):
            return ts, [
                IngestionError(
                    "timestamp_in_future",
                    "Event timestamp is too far in the future",
                    field_name="occurred_at",
                )
            ]
        return ts, []

    def _claim(
        self,
        namespace: str,
        idempotency_key: str | None,
        supplied_id: UUID | None,
        lookup: Callable[[UUID], T | None],
    ) -> tuple[UUID, bool, T | None]:
        """
        Decide the event id and whether this call owns its increment.

        Returns (event_id, owner, replay). `replay` is the stored event when
        the call repeats one that already landed.
        """
        key = idempotency_key
        if key is None and supplied_id is not None:
            key = f"id:{supplied_id}"
        if key is None:
            return uuid4(), True, None

        candidate = supplied_id or uuid4()
        bound = self._idempotency.claim(
            f"{namespace}:{key}", candidate, self._config.idempotency_window_seconds
        )
        event_id = bound or candidate

        if bound is not None or supplied_id is not None:
            existing = self._with_retry("lookup", lambda: lookup(event_id))
            if existing is not None:
                logger.debug("Replay of %s %s returns stored event", namespace, event_id)
                return event_id, False, existing

        return event_id, bound is None, None

    def _with_retry(self, op: str, fn: Callable[[], T]) -> T:
        attempts = max(1, self._config.append_max_attempts)
        backoff = self._config.append_backoff_seconds or (0.0,)
        attempt = 1
        while True:
            try:
                return fn()
            except TransientStoreError as e:
                if attempt >= attempts:
                    raise
                delay = backoff[min(attempt - 1, len(backoff) - 1)]
                logger.warning(
                    "%s failed (attempt %d/%d), retrying in %.2fs: %s",
                    op,
                    attempt,
                    attempts,
                    delay,
                    e,
                )
                self._sleep(delay)
                attempt += 1

    def _count(self, scope: Scope, ts: datetime, increment: Callable[[], bool]) -> None:
        """Run a best-effort increment; on refusal or failure queue the scope."""
        try:
            counted = increment()
        except StoreError as e:
            logger.warning("Increment for %s failed, deferring to reconciler: %s", scope, e)
            counted = False
        else:
            if not counted:
                logger.info("Increment for %s refused, deferring to reconciler", scope)

        if not counted:
            self._queue.add(scope, TimeRange(ts, ts + _ONE_TICK))


def _not_found(entity: str, entity_id: UUID, field_name: str) -> IngestionError:
    return IngestionError(
        "not_found",
        f"{entity} {entity_id} not found",
        kind=ErrorKind.NOT_FOUND,
        field_name=field_name,
    )


def _unavailable() -> IngestionError:
    return IngestionError(
        "store_unavailable",
        "Event store temporarily unavailable, try again",
        kind=ErrorKind.TRANSIENT,
    )
