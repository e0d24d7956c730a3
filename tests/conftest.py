import os
from datetime import UTC, datetime
from pathlib import Path
from uuid import uuid4

import pytest

from leadpulse.adapters.clock import FrozenClock
from leadpulse.adapters.sqlite.migrator import SQLiteMigrator
from leadpulse.adapters.sqlite_db import SQLiteDirectory
from leadpulse.app_shell.context import ServiceContext
from leadpulse.components.ingestion import InMemoryDirectory
from leadpulse.core.entities import Link, Page
from leadpulse.rules.loader import load_rules
from leadpulse.rules.models import Rules

ROOT = Path(__file__).resolve().parent.parent

# Wednesday; the ISO week starts Monday 2024-06-10
NOW = datetime(2024, 6, 12, 12, 0, tzinfo=UTC)


@pytest.fixture
def rules() -> Rules:
    """Real rules from the project root."""
    return load_rules(ROOT / "rules.yaml")


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(NOW)


@pytest.fixture
def page() -> Page:
    return Page(owner_id=uuid4(), slug="frog-pond", display_name="Frog Pond")


@pytest.fixture
def link(page: Page) -> Link:
    return Link(page_id=page.id, url="https://example.com/a", label="A", sort_order=0)


@pytest.fixture
def second_link(page: Page) -> Link:
    return Link(page_id=page.id, url="https://example.com/b", label="B", sort_order=1)


@pytest.fixture
def inactive_link(page: Page) -> Link:
    return Link(
        page_id=page.id,
        url="https://example.com/old",
        label="Old",
        sort_order=2,
        is_active=False,
    )


@pytest.fixture
def directory(
    page: Page, link: Link, second_link: Link, inactive_link: Link
) -> InMemoryDirectory:
    directory = InMemoryDirectory()
    directory.add_page(page)
    for item in (link, second_link, inactive_link):
        directory.add_link(item)
    return directory


@pytest.fixture
def ctx(rules: Rules, clock: FrozenClock, directory: InMemoryDirectory) -> ServiceContext:
    """In-memory pipeline with one page and three links."""
    return ServiceContext.create_in_memory(rules, clock=clock, directory=directory)


@pytest.fixture
def db_path(tmp_path) -> str:
    """Migrated temporary SQLite database."""
    path = os.path.join(str(tmp_path), "leadpulse.db")
    SQLiteMigrator(path, str(ROOT / "migrations")).run_migrations()
    return path


@pytest.fixture
def sqlite_ctx(
    db_path: str,
    rules: Rules,
    clock: FrozenClock,
    page: Page,
    link: Link,
    second_link: Link,
    inactive_link: Link,
) -> ServiceContext:
    """SQLite-backed pipeline seeded with the same page and links."""
    directory = SQLiteDirectory(db_path)
    directory.save_page(page)
    for item in (link, second_link, inactive_link):
        directory.save_link(item)
    return ServiceContext.create(db_path, rules, clock=clock)
