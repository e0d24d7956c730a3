"""
Regression tests for pipeline invariants.

These exercise the whole pipeline (ingestion, aggregates, reconciler) and
pin the properties a dashboard relies on:
- Aggregates never exceed the stored events, even under concurrent reconcile
- After the pending queue is drained, aggregates equal the stored events
- Reconciling twice yields the same buckets
- Re-submissions are separate leads
- A reconcile run by another process over the same database (the CLI) is
  honoured by live increments
"""

from __future__ import annotations

import threading
from datetime import UTC, datetime, timedelta
from uuid import UUID

import pytest

from leadpulse.adapters.clock import FrozenClock
from leadpulse.app_shell.context import ServiceContext
from leadpulse.components.aggregates import Granularity, Scope, ScopeKind
from leadpulse.core.entities import ClickEvent, Link, Page
from leadpulse.rules.models import Rules

DAY1 = datetime(2024, 6, 10, 9, 0, tzinfo=UTC)
DAY2 = datetime(2024, 6, 11, 9, 0, tzinfo=UTC)


def bucket_total(ctx: ServiceContext, entity_id: UUID, granularity: Granularity) -> int:
    return sum(b.count for b in ctx.aggregates.read(entity_id, granularity))


def stored_clicks(ctx: ServiceContext, link_id: UUID) -> int:
    return sum(1 for _ in ctx.event_store.iter_clicks(link_id))


@pytest.fixture(params=["memory", "sqlite"])
def pipeline(request: pytest.FixtureRequest) -> ServiceContext:
    """The same pipeline over in-memory and SQLite stores."""
    if request.param == "memory":
        return request.getfixturevalue("ctx")
    return request.getfixturevalue("sqlite_ctx")


class TestDashboardScenario:
    """Two clicks on Monday and one on Tuesday."""

    def test_day_and_week_buckets(self, pipeline: ServiceContext, link: Link) -> None:
        for ts in (DAY1, DAY1 + timedelta(hours=3), DAY2):
            _, errors = pipeline.ingestion.record_click(link.id, "10.0.0.1", None, ts)
            assert errors == []

        days = pipeline.aggregates.read(link.id, Granularity.DAY)
        assert [(b.bucket_start, b.count) for b in days] == [
            (datetime(2024, 6, 10, tzinfo=UTC), 2),
            (datetime(2024, 6, 11, tzinfo=UTC), 1),
        ]
        weeks = pipeline.aggregates.read(link.id, Granularity.WEEK)
        assert [(w.bucket_start, w.count) for w in weeks] == [
            (datetime(2024, 6, 10, tzinfo=UTC), 3),
        ]

    def test_reconcile_twice_is_stable(
        self, pipeline: ServiceContext, link: Link, page: Page
    ) -> None:
        for ts in (DAY1, DAY1 + timedelta(hours=3), DAY2):
            pipeline.ingestion.record_click(link.id, "10.0.0.1", None, ts)
        pipeline.ingestion.capture_lead(page.id, "a@example.com", "social", DAY1)
        pipeline.ingestion.capture_lead(page.id, "b@example.com", "direct", DAY2)

        def snapshot() -> list[tuple]:
            rows: list[tuple] = []
            for g in Granularity:
                rows.extend(pipeline.counter_store.scan(Scope.link(link.id), g))
                rows.extend(pipeline.counter_store.scan(Scope.page(page.id), g))
            return rows

        live = snapshot()
        for scope in (Scope.link(link.id), Scope.page(page.id)):
            assert pipeline.reconciler.reconcile(scope).success
        first = snapshot()
        for scope in (Scope.link(link.id), Scope.page(page.id)):
            assert pipeline.reconciler.reconcile(scope).success

        assert first == snapshot()
        # Live increments were already exact
        assert live == first


class TestLeadHistory:
    """Every submission is kept."""

    def test_concurrent_submissions_same_email(self, ctx: ServiceContext, page: Page) -> None:
        ids: list[UUID] = []
        failures: list[object] = []
        lock = threading.Lock()

        def submit() -> None:
            lead, errors = ctx.ingestion.capture_lead(page.id, "same@example.com", "direct")
            with lock:
                if lead is None:
                    failures.append(errors)
                else:
                    ids.append(lead.id)

        threads = [threading.Thread(target=submit) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert failures == []
        assert len(set(ids)) == 8
        assert ctx.event_store.lead_count() == 8

        stored = list(ctx.event_store.iter_leads(page.id))
        totals = ctx.aggregates.totals(page.id, kind=ScopeKind.PAGE)
        assert totals["count"] == 8
        assert totals["score_sum"] == sum(lead.score for lead in stored)


class TestConcurrentReconcile:
    """Live increments racing a reconcile loop."""

    CLICK_THREADS = 4
    CLICKS_PER_THREAD = 60

    def test_never_overcount_then_exact(
        self, ctx: ServiceContext, link: Link, second_link: Link
    ) -> None:
        start = threading.Barrier(self.CLICK_THREADS + 1)
        done = threading.Event()
        targets = (link, second_link)
        failures: list[object] = []

        def clicker(worker: int) -> None:
            start.wait()
            for i in range(self.CLICKS_PER_THREAD):
                target = targets[(worker + i) % 2]
                ts = DAY1 + timedelta(hours=(worker * self.CLICKS_PER_THREAD + i) % 72)
                _, errors = ctx.ingestion.record_click(target.id, None, None, ts)
                if errors:
                    failures.append(errors)

        def reconciler() -> None:
            start.wait()
            while not done.is_set():
                for target in targets:
                    ctx.reconciler.reconcile(Scope.link(target.id))

        threads = [threading.Thread(target=clicker, args=(w,)) for w in range(self.CLICK_THREADS)]
        background = threading.Thread(target=reconciler)
        background.start()
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        done.set()
        background.join()

        assert failures == []
        for target in targets:
            for g in Granularity:
                assert bucket_total(ctx, target.id, g) <= stored_clicks(ctx, target.id)

        ctx.reconciler.reconcile_pending()

        expected_total = self.CLICK_THREADS * self.CLICKS_PER_THREAD
        assert sum(stored_clicks(ctx, t.id) for t in targets) == expected_total
        for target in targets:
            for g in Granularity:
                assert bucket_total(ctx, target.id, g) == stored_clicks(ctx, target.id)
        assert len(ctx.queue) == 0


class TestSharedDatabase:
    """A server and a CLI process over one SQLite file."""

    def test_reconcile_elsewhere_invalidates_pending_increment(
        self,
        sqlite_ctx: ServiceContext,
        db_path: str,
        rules: Rules,
        clock: FrozenClock,
        link: Link,
    ) -> None:
        cli = ServiceContext.create(db_path, rules, clock=clock)
        scope = Scope.link(link.id)

        # Server: token, then durable append; its increment has not run yet
        token = sqlite_ctx.aggregates.begin(scope)
        event = ClickEvent(link_id=link.id, page_id=link.page_id, occurred_at=DAY1)
        sqlite_ctx.event_store.append_click(event)

        # CLI: its scan already counts the event
        assert cli.reconciler.reconcile(scope).success
        assert bucket_total(cli, link.id, Granularity.DAY) == 1

        # Server: the late increment must not count it again
        assert sqlite_ctx.aggregates.increment_click(link.id, DAY1, token=token) is False
        for g in Granularity:
            assert bucket_total(sqlite_ctx, link.id, g) == stored_clicks(sqlite_ctx, link.id)

    def test_ingestion_after_remote_reconcile_counts(
        self,
        sqlite_ctx: ServiceContext,
        db_path: str,
        rules: Rules,
        clock: FrozenClock,
        link: Link,
    ) -> None:
        cli = ServiceContext.create(db_path, rules, clock=clock)
        sqlite_ctx.ingestion.record_click(link.id, None, None, DAY1)
        assert cli.reconciler.reconcile(Scope.link(link.id)).success

        _, errors = sqlite_ctx.ingestion.record_click(link.id, None, None, DAY2)

        assert errors == []
        assert bucket_total(sqlite_ctx, link.id, Granularity.DAY) == 2
        assert len(sqlite_ctx.queue) == 0
