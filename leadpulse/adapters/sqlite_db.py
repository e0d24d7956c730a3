"""
SQLite adapters for the event store, counter store and page directory.

Timestamps are stored as fixed-width UTC ISO strings so that string order is
time order. Busy, locked and I/O errors surface as TransientStoreError;
other database errors (a missing table included) as StoreError.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from datetime import datetime
from typing import Any
from uuid import UUID

from leadpulse.components.aggregates import (
    BucketWindow,
    CounterDelta,
    CounterKey,
    Granularity,
    Scope,
)
from leadpulse.components.events import ClickStats
from leadpulse.core.entities import (
    ClickEvent,
    Lead,
    LeadSource,
    Link,
    Page,
    UAClass,
    ensure_utc,
)
from leadpulse.core.errors import StoreError, TransientStoreError

# Primary result codes worth retrying; anything else will fail again.
_TRANSIENT_CODES = frozenset({sqlite3.SQLITE_BUSY, sqlite3.SQLITE_LOCKED, sqlite3.SQLITE_IOERR})

# -----------------------------------------------------------------------------
# Helper functions
# -----------------------------------------------------------------------------


def dict_factory(cursor: sqlite3.Cursor, row: tuple[Any, ...]) -> dict[str, Any]:
    """Convert SQLite row to dictionary."""
    return {col[0]: row[idx] for idx, col in enumerate(cursor.description)}


def format_dt(dt: datetime) -> str:
    """Fixed-width UTC ISO string."""
    return ensure_utc(dt).isoformat(timespec="microseconds")


def parse_dt(s: str) -> datetime:
    """Parse a stored timestamp back to aware UTC."""
    return ensure_utc(datetime.fromisoformat(s))


def is_transient(error: sqlite3.Error) -> bool:
    """Whether retrying the same statement later can succeed."""
    code = getattr(error, "sqlite_errorcode", None)
    if code is None:
        return False
    return (code & 0xFF) in _TRANSIENT_CODES


# -----------------------------------------------------------------------------
# Base SQLite Repository
# -----------------------------------------------------------------------------


class SQLiteRepoBase:
    """Base class for SQLite repositories."""

    def __init__(
        self,
        db_path: str,
        connection: sqlite3.Connection | None = None,
        busy_timeout_seconds: float = 5.0,
    ):
        self.db_path = db_path
        self._external_conn = connection
        self._busy_timeout = busy_timeout_seconds

    def _get_conn(self) -> sqlite3.Connection:
        """Get database connection (uses external if provided)."""
        if self._external_conn is not None:
            return self._external_conn

        conn = sqlite3.connect(self.db_path, timeout=self._busy_timeout)
        conn.row_factory = dict_factory
        conn.execute("PRAGMA foreign_keys = ON;")
        return conn

    def _should_close(self) -> bool:
        """Whether to close connection after use."""
        return self._external_conn is None

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        """Connection for one operation; rolls back and maps errors on failure."""
        conn = self._get_conn()
        try:
            yield conn
            if self._should_close():
                conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            if is_transient(e):
                raise TransientStoreError(str(e)) from e
            raise StoreError(str(e)) from e
        finally:
            if self._should_close():
                conn.close()

    @contextmanager
    def _write(self) -> Iterator[sqlite3.Connection]:
        """Like _connection, but takes the write lock before the first read."""
        with self._connection() as conn:
            if not conn.in_transaction:
                conn.execute("BEGIN IMMEDIATE")
            yield conn


# -----------------------------------------------------------------------------
# Event Store
# -----------------------------------------------------------------------------


class SQLiteEventStore(SQLiteRepoBase):
    """SQLite implementation of EventStorePort. Rows are never updated."""

    def append_click(self, event: ClickEvent) -> ClickEvent:
        with self._connection() as conn:
            conn.execute(
                """
                INSERT OR IGNORE INTO clicks (
                    id, link_id, page_id, ip_address, user_agent, ua_class, occurred_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    str(event.id),
                    str(event.link_id),
                    str(event.page_id),
                    event.ip_address,
                    event.user_agent,
                    event.ua_class.value,
                    format_dt(event.occurred_at),
                ),
            )
            row = conn.execute("SELECT * FROM clicks WHERE id = ?", (str(event.id),)).fetchone()
        return self._map_click(row)

    def append_lead(self, lead: Lead) -> Lead:
        with self._connection() as conn:
            conn.execute(
                """
                INSERT OR IGNORE INTO leads (
                    id, page_id, email, source, score, message, occurred_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    str(lead.id),
                    str(lead.page_id),
                    lead.email,
                    lead.source.value,
                    lead.score,
                    lead.message,
                    format_dt(lead.occurred_at),
                ),
            )
            row = conn.execute("SELECT * FROM leads WHERE id = ?", (str(lead.id),)).fetchone()
        return self._map_lead(row)

    def get_click(self, event_id: UUID) -> ClickEvent | None:
        with self._connection() as conn:
            row = conn.execute("SELECT * FROM clicks WHERE id = ?", (str(event_id),)).fetchone()
        return self._map_click(row) if row else None

    def get_lead(self, lead_id: UUID) -> Lead | None:
        with self._connection() as conn:
            row = conn.execute("SELECT * FROM leads WHERE id = ?", (str(lead_id),)).fetchone()
        return self._map_lead(row) if row else None

    def iter_clicks(
        self,
        link_id: UUID,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> Iterator[ClickEvent]:
        query, params = self._ranged("SELECT * FROM clicks WHERE link_id = ?", link_id, start, end)
        with self._connection() as conn:
            rows = conn.execute(query, params).fetchall()
        for row in rows:
            yield self._map_click(row)

    def iter_leads(
        self,
        page_id: UUID,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> Iterator[Lead]:
        query, params = self._ranged("SELECT * FROM leads WHERE page_id = ?", page_id, start, end)
        with self._connection() as conn:
            rows = conn.execute(query, params).fetchall()
        for row in rows:
            yield self._map_lead(row)

    def last_lead_at(self, page_id: UUID, before: datetime) -> datetime | None:
        with self._connection() as conn:
            row = conn.execute(
                """
                SELECT MAX(occurred_at) AS last_at FROM leads
                WHERE page_id = ? AND occurred_at <= ?
                """,
                (str(page_id), format_dt(before)),
            ).fetchone()
        return parse_dt(row["last_at"]) if row and row["last_at"] else None

    def count_distinct_links(self, page_id: UUID, ip_address: str, before: datetime) -> int:
        with self._connection() as conn:
            row = conn.execute(
                """
                SELECT COUNT(DISTINCT link_id) AS n FROM clicks
                WHERE page_id = ? AND ip_address = ? AND occurred_at < ?
                """,
                (str(page_id), ip_address, format_dt(before)),
            ).fetchone()
        return int(row["n"]) if row else 0

    def list_leads(self, page_id: UUID, limit: int = 100) -> list[Lead]:
        with self._connection() as conn:
            rows = conn.execute(
                """
                SELECT * FROM leads WHERE page_id = ?
                ORDER BY occurred_at DESC, id DESC
                LIMIT ?
                """,
                (str(page_id), limit),
            ).fetchall()
        return [self._map_lead(r) for r in rows]

    def click_stats(self, page_id: UUID) -> ClickStats:
        with self._connection() as conn:
            row = conn.execute(
                """
                SELECT COUNT(*) AS total, COUNT(DISTINCT ip_address) AS uniq
                FROM clicks WHERE page_id = ?
                """,
                (str(page_id),),
            ).fetchone()
        return ClickStats(total_clicks=int(row["total"]), unique_clicks=int(row["uniq"]))

    def clicks_by_link(self, page_id: UUID) -> dict[UUID, int]:
        with self._connection() as conn:
            rows = conn.execute(
                """
                SELECT link_id, COUNT(*) AS n FROM clicks
                WHERE page_id = ? GROUP BY link_id
                """,
                (str(page_id),),
            ).fetchall()
        return {UUID(r["link_id"]): int(r["n"]) for r in rows}

    @staticmethod
    def _ranged(
        base: str,
        entity_id: UUID,
        start: datetime | None,
        end: datetime | None,
    ) -> tuple[str, list[Any]]:
        query = base
        params: list[Any] = [str(entity_id)]
        if start is not None:
            query += " AND occurred_at >= ?"
            params.append(format_dt(start))
        if end is not None:
            query += " AND occurred_at < ?"
            params.append(format_dt(end))
        query += " ORDER BY occurred_at, id"
        return query, params

    def _map_click(self, row: dict[str, Any]) -> ClickEvent:
        return ClickEvent(
            id=UUID(row["id"]),
            link_id=UUID(row["link_id"]),
            page_id=UUID(row["page_id"]),
            ip_address=row["ip_address"],
            user_agent=row["user_agent"],
            ua_class=UAClass(row["ua_class"]),
            occurred_at=parse_dt(row["occurred_at"]),
        )

    def _map_lead(self, row: dict[str, Any]) -> Lead:
        return Lead(
            id=UUID(row["id"]),
            page_id=UUID(row["page_id"]),
            email=row["email"],
            source=LeadSource(row["source"]),
            score=row["score"],
            message=row["message"],
            occurred_at=parse_dt(row["occurred_at"]),
        )


# -----------------------------------------------------------------------------
# Counter Store
# -----------------------------------------------------------------------------


class SQLiteCounterStore(SQLiteRepoBase):
    """
    SQLite implementation of CounterStorePort.

    The generation check and the increment run in one write transaction, so
    a replace committed by any process in between is always seen.
    """

    def generation(self, scope: Scope) -> int:
        with self._connection() as conn:
            return self._generation(conn, scope)

    def increment(
        self,
        scope: Scope,
        deltas: Sequence[CounterDelta],
        expected_generation: int | None = None,
    ) -> bool:
        with self._write() as conn:
            if (
                expected_generation is not None
                and self._generation(conn, scope) != expected_generation
            ):
                return False
            conn.executemany(
                """
                INSERT INTO aggregate_buckets (
                    scope_kind, entity_id, metric, granularity, bucket_start, value
                ) VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(scope_kind, entity_id, metric, granularity, bucket_start)
                DO UPDATE SET value = value + excluded.value
                """,
                [(*self._key_params(d.key), d.amount) for d in deltas],
            )
        return True

    def scan(
        self,
        scope: Scope,
        granularity: Granularity,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[tuple[datetime, dict[str, int]]]:
        query = """
            SELECT bucket_start, metric, value FROM aggregate_buckets
            WHERE scope_kind = ? AND entity_id = ? AND granularity = ?
        """
        params: list[Any] = [scope.kind.value, str(scope.entity_id), granularity.value]
        if start is not None:
            query += " AND bucket_start >= ?"
            params.append(format_dt(start))
        if end is not None:
            query += " AND bucket_start < ?"
            params.append(format_dt(end))
        query += " ORDER BY bucket_start"

        with self._connection() as conn:
            rows = conn.execute(query, params).fetchall()

        buckets: dict[str, dict[str, int]] = {}
        for row in rows:
            buckets.setdefault(row["bucket_start"], {})[row["metric"]] = int(row["value"])
        return [(parse_dt(k), v) for k, v in sorted(buckets.items())]

    def replace(
        self,
        scope: Scope,
        windows: Sequence[BucketWindow],
        values: Mapping[CounterKey, int],
    ) -> None:
        with self._write() as conn:
            for window in windows:
                query = """
                    DELETE FROM aggregate_buckets
                    WHERE scope_kind = ? AND entity_id = ? AND granularity = ?
                """
                params: list[Any] = [
                    scope.kind.value,
                    str(scope.entity_id),
                    window.granularity.value,
                ]
                if window.start is not None:
                    query += " AND bucket_start >= ?"
                    params.append(format_dt(window.start))
                if window.end is not None:
                    query += " AND bucket_start < ?"
                    params.append(format_dt(window.end))
                conn.execute(query, params)

            conn.executemany(
                """
                INSERT INTO aggregate_buckets (
                    scope_kind, entity_id, metric, granularity, bucket_start, value
                ) VALUES (?, ?, ?, ?, ?, ?)
                """,
                [(*self._key_params(key), value) for key, value in values.items()],
            )
            conn.execute(
                """
                INSERT INTO scope_generations (scope_kind, entity_id, generation)
                VALUES (?, ?, 1)
                ON CONFLICT(scope_kind, entity_id) DO UPDATE SET generation = generation + 1
                """,
                (scope.kind.value, str(scope.entity_id)),
            )

    @staticmethod
    def _generation(conn: sqlite3.Connection, scope: Scope) -> int:
        row = conn.execute(
            "SELECT generation FROM scope_generations WHERE scope_kind = ? AND entity_id = ?",
            (scope.kind.value, str(scope.entity_id)),
        ).fetchone()
        return int(row["generation"]) if row else 0

    @staticmethod
    def _key_params(key: CounterKey) -> tuple[str, str, str, str, str]:
        return (
            key.scope.kind.value,
            str(key.scope.entity_id),
            key.metric,
            key.granularity.value,
            format_dt(key.bucket_start),
        )


# -----------------------------------------------------------------------------
# Directory (pages and links)
# -----------------------------------------------------------------------------


class SQLiteDirectory(SQLiteRepoBase):
    """SQLite implementation of DirectoryPort, plus saves for seeding."""

    def get_page(self, page_id: UUID) -> Page | None:
        with self._connection() as conn:
            row = conn.execute("SELECT * FROM pages WHERE id = ?", (str(page_id),)).fetchone()
        return self._map_page(row) if row else None

    def get_link(self, link_id: UUID) -> Link | None:
        with self._connection() as conn:
            row = conn.execute("SELECT * FROM links WHERE id = ?", (str(link_id),)).fetchone()
        return self._map_link(row) if row else None

    def list_pages(self) -> list[Page]:
        with self._connection() as conn:
            rows = conn.execute("SELECT * FROM pages ORDER BY created_at, id").fetchall()
        return [self._map_page(r) for r in rows]

    def list_links(self, page_id: UUID, active_only: bool = True) -> list[Link]:
        query = "SELECT * FROM links WHERE page_id = ?"
        if active_only:
            query += " AND is_active = 1"
        query += " ORDER BY sort_order ASC"
        with self._connection() as conn:
            rows = conn.execute(query, (str(page_id),)).fetchall()
        return [self._map_link(r) for r in rows]

    def save_page(self, page: Page) -> Page:
        with self._connection() as conn:
            conn.execute(
                """
                INSERT INTO pages (id, owner_id, slug, display_name)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    slug=excluded.slug,
                    display_name=excluded.display_name
                """,
                (str(page.id), str(page.owner_id), page.slug, page.display_name),
            )
        return page

    def save_link(self, link: Link) -> Link:
        with self._connection() as conn:
            conn.execute(
                """
                INSERT INTO links (id, page_id, url, label, sort_order, is_active)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    url=excluded.url,
                    label=excluded.label,
                    sort_order=excluded.sort_order,
                    is_active=excluded.is_active
                """,
                (
                    str(link.id),
                    str(link.page_id),
                    link.url,
                    link.label,
                    link.sort_order,
                    1 if link.is_active else 0,
                ),
            )
        return link

    def _map_page(self, row: dict[str, Any]) -> Page:
        return Page(
            id=UUID(row["id"]),
            owner_id=UUID(row["owner_id"]),
            slug=row["slug"],
            display_name=row["display_name"],
        )

    def _map_link(self, row: dict[str, Any]) -> Link:
        return Link(
            id=UUID(row["id"]),
            page_id=UUID(row["page_id"]),
            url=row["url"],
            label=row["label"],
            sort_order=row["sort_order"],
            is_active=bool(row["is_active"]),
        )
