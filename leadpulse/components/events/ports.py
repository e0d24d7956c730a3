"""
Events component - Port interfaces.
"""

from __future__ import annotations

from collections.abc import Iterator
from datetime import datetime
from typing import Protocol
from uuid import UUID

from leadpulse.core.entities import ClickEvent, Lead

from .models import ClickStats


class EventStorePort(Protocol):
    """
    Append-only store for raw facts.

    Appends are keyed by the event id: re-appending an id that is already
    stored is a no-op that returns the stored record, so a retried write can
    never produce a second event. Adapters raise TransientStoreError when the
    backing store is temporarily unavailable.
    """

    def append_click(self, event: ClickEvent) -> ClickEvent:
        """Persist a click event durably."""
        ...

    def append_lead(self, lead: Lead) -> Lead:
        """Persist a lead durably."""
        ...

    def get_click(self, event_id: UUID) -> ClickEvent | None:
        ...

    def get_lead(self, lead_id: UUID) -> Lead | None:
        ...

    def iter_clicks(
        self,
        link_id: UUID,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> Iterator[ClickEvent]:
        """Clicks for a link with start <= occurred_at < end."""
        ...

    def iter_leads(
        self,
        page_id: UUID,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> Iterator[Lead]:
        """Leads for a page with start <= occurred_at < end."""
        ...

    def last_lead_at(self, page_id: UUID, before: datetime) -> datetime | None:
        """Timestamp of the page's most recent lead at or before `before`."""
        ...

    def count_distinct_links(self, page_id: UUID, ip_address: str, before: datetime) -> int:
        """Distinct links of the page clicked from an IP before a point in time."""
        ...

    def list_leads(self, page_id: UUID, limit: int = 100) -> list[Lead]:
        """Leads for a page, newest first."""
        ...

    def click_stats(self, page_id: UUID) -> ClickStats:
        ...

    def clicks_by_link(self, page_id: UUID) -> dict[UUID, int]:
        ...
