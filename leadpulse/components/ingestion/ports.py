"""
Ingestion component - Port interfaces.
"""

from __future__ import annotations

from typing import Protocol
from uuid import UUID

from leadpulse.core.entities import Link, Page


class DirectoryPort(Protocol):
    """Read-only lookup of pages and links owned by the publishing layer."""

    def get_link(self, link_id: UUID) -> Link | None:
        ...

    def get_page(self, page_id: UUID) -> Page | None:
        ...

    def list_pages(self) -> list[Page]:
        ...

    def list_links(self, page_id: UUID, active_only: bool = True) -> list[Link]:
        """Links of a page ordered by sort_order."""
        ...


class IdempotencyStorePort(Protocol):
    """Remembers which event id an idempotency key was first given."""

    def claim(self, key: str, event_id: UUID, ttl_seconds: int) -> UUID | None:
        """
        Bind `key` to `event_id` unless it is already bound.

        Returns None if this call made the binding, otherwise the event id
        the key is already bound to. Check and bind are atomic.
        """
        ...

    def cleanup_expired(self) -> int:
        """Remove expired entries. Returns count removed."""
        ...
