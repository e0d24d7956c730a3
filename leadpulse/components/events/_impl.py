"""
In-memory event store for testing/dev.

Holds the same contract as the SQLite adapter: append is insert-only and
keyed by id, readers get a snapshot copy.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from datetime import datetime
from uuid import UUID

from leadpulse.core.entities import ClickEvent, Lead

from .models import ClickStats


def _in_range(ts: datetime, start: datetime | None, end: datetime | None) -> bool:
    if start is not None and ts < start:
        return False
    if end is not None and ts >= end:
        return False
    return True


class InMemoryEventStore:
    """In-memory event store for testing/dev."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._clicks: dict[UUID, ClickEvent] = {}
        self._leads: dict[UUID, Lead] = {}

    # --- Writes ---

    def append_click(self, event: ClickEvent) -> ClickEvent:
        with self._lock:
            existing = self._clicks.get(event.id)
            if existing is not None:
                return existing
            self._clicks[event.id] = event
            return event

    def append_lead(self, lead: Lead) -> Lead:
        with self._lock:
            existing = self._leads.get(lead.id)
            if existing is not None:
                return existing
            self._leads[lead.id] = lead
            return lead

    # --- Reads ---

    def get_click(self, event_id: UUID) -> ClickEvent | None:
        with self._lock:
            return self._clicks.get(event_id)

    def get_lead(self, lead_id: UUID) -> Lead | None:
        with self._lock:
            return self._leads.get(lead_id)

    def iter_clicks(
        self,
        link_id: UUID,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> Iterator[ClickEvent]:
        with self._lock:
            snapshot = [c for c in self._clicks.values() if c.link_id == link_id]
        snapshot.sort(key=lambda c: (c.occurred_at, str(c.id)))
        for click in snapshot:
            if _in_range(click.occurred_at, start, end):
                yield click

    def iter_leads(
        self,
        page_id: UUID,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> Iterator[Lead]:
        with self._lock:
            snapshot = [lead for lead in self._leads.values() if lead.page_id == page_id]
        snapshot.sort(key=lambda lead: (lead.occurred_at, str(lead.id)))
        for lead in snapshot:
            if _in_range(lead.occurred_at, start, end):
                yield lead

    def last_lead_at(self, page_id: UUID, before: datetime) -> datetime | None:
        with self._lock:
            times = [
                lead.occurred_at
                for lead in self._leads.values()
                if lead.page_id == page_id and lead.occurred_at <= before
            ]
        return max(times) if times else None

    def count_distinct_links(self, page_id: UUID, ip_address: str, before: datetime) -> int:
        with self._lock:
            links = {
                c.link_id
                for c in self._clicks.values()
                if c.page_id == page_id
                and c.ip_address == ip_address
                and c.occurred_at < before
            }
        return len(links)

    def list_leads(self, page_id: UUID, limit: int = 100) -> list[Lead]:
        with self._lock:
            leads = [lead for lead in self._leads.values() if lead.page_id == page_id]
        leads.sort(key=lambda lead: lead.occurred_at, reverse=True)
        return leads[:limit]

    def click_stats(self, page_id: UUID) -> ClickStats:
        with self._lock:
            clicks = [c for c in self._clicks.values() if c.page_id == page_id]
        unique = {c.ip_address for c in clicks if c.ip_address is not None}
        return ClickStats(total_clicks=len(clicks), unique_clicks=len(unique))

    def clicks_by_link(self, page_id: UUID) -> dict[UUID, int]:
        counts: dict[UUID, int] = {}
        with self._lock:
            for click in self._clicks.values():
                if click.page_id == page_id:
                    counts[click.link_id] = counts.get(click.link_id, 0) + 1
        return counts

    # --- Testing helpers ---

    def click_count(self) -> int:
        with self._lock:
            return len(self._clicks)

    def lead_count(self) -> int:
        with self._lock:
            return len(self._leads)
