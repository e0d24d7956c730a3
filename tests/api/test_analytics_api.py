"""
Tests for the dashboard analytics routes.
"""

from __future__ import annotations

from datetime import UTC, datetime
from uuid import uuid4

from fastapi.testclient import TestClient

from leadpulse.app_shell.context import ServiceContext
from leadpulse.core.entities import Link, Page

DAY1 = datetime(2024, 6, 10, 9, 0, tzinfo=UTC)
DAY2 = datetime(2024, 6, 11, 9, 0, tzinfo=UTC)


def seed_clicks(ctx: ServiceContext, link: Link) -> None:
    """Two clicks on Monday, one on Tuesday."""
    ctx.ingestion.record_click(link.id, "10.0.0.1", None, DAY1)
    ctx.ingestion.record_click(link.id, "10.0.0.2", None, DAY1.replace(hour=18))
    ctx.ingestion.record_click(link.id, "10.0.0.1", None, DAY2)


class TestLinkSeries:
    """GET /api/analytics/links/{id}"""

    def test_day_series(self, client: TestClient, api_ctx: ServiceContext, link: Link) -> None:
        seed_clicks(api_ctx, link)

        response = client.get(f"/api/analytics/links/{link.id}")

        assert response.status_code == 200
        body = response.json()
        assert body["granularity"] == "day"
        assert body["kind"] == "link"
        assert [(b["bucket_start"][:10], b["count"]) for b in body["buckets"]] == [
            ("2024-06-10", 2),
            ("2024-06-11", 1),
        ]
        assert body["buckets"][0]["score_sum"] is None

    def test_week_series(self, client: TestClient, api_ctx: ServiceContext, link: Link) -> None:
        seed_clicks(api_ctx, link)

        response = client.get(f"/api/analytics/links/{link.id}", params={"granularity": "week"})

        buckets = response.json()["buckets"]
        assert len(buckets) == 1
        assert buckets[0]["count"] == 3

    def test_range_filter(self, client: TestClient, api_ctx: ServiceContext, link: Link) -> None:
        seed_clicks(api_ctx, link)

        response = client.get(
            f"/api/analytics/links/{link.id}",
            params={"start": "2024-06-11T00:00:00Z", "end": "2024-06-11T12:00:00Z"},
        )

        assert [b["count"] for b in response.json()["buckets"]] == [1]

    def test_start_after_end_400(self, client: TestClient, link: Link) -> None:
        response = client.get(
            f"/api/analytics/links/{link.id}",
            params={"start": "2024-06-12T00:00:00Z", "end": "2024-06-11T00:00:00Z"},
        )
        assert response.status_code == 400

    def test_unknown_link_404(self, client: TestClient) -> None:
        response = client.get(f"/api/analytics/links/{uuid4()}")
        assert response.status_code == 404

    def test_bad_granularity_422(self, client: TestClient, link: Link) -> None:
        response = client.get(f"/api/analytics/links/{link.id}", params={"granularity": "hour"})
        assert response.status_code == 422


class TestPageSeries:
    """GET /api/analytics/pages/{id}"""

    def test_lead_series(self, client: TestClient, api_ctx: ServiceContext, page: Page) -> None:
        api_ctx.ingestion.capture_lead(page.id, "a@example.com", "direct", DAY1)
        api_ctx.ingestion.capture_lead(page.id, "b@example.com", "social", DAY1)

        response = client.get(f"/api/analytics/pages/{page.id}", params={"granularity": "month"})

        assert response.status_code == 200
        buckets = response.json()["buckets"]
        assert len(buckets) == 1
        assert buckets[0]["bucket_start"].startswith("2024-06-01")
        assert buckets[0]["count"] == 2
        assert buckets[0]["score_sum"] == 180

    def test_unknown_page_404(self, client: TestClient) -> None:
        response = client.get(f"/api/analytics/pages/{uuid4()}")
        assert response.status_code == 404


class TestPageSummary:
    """GET /api/analytics/pages/{id}/summary"""

    def test_summary(
        self, client: TestClient, api_ctx: ServiceContext, page: Page, link: Link
    ) -> None:
        seed_clicks(api_ctx, link)
        api_ctx.ingestion.capture_lead(page.id, "a@example.com", "direct", DAY1)
        api_ctx.ingestion.capture_lead(page.id, "b@example.com", "social", DAY2)

        response = client.get(f"/api/analytics/pages/{page.id}/summary", params={"recent": 1})

        assert response.status_code == 200
        body = response.json()
        assert body["total_clicks"] == 3
        assert body["unique_clicks"] == 2
        assert body["clicks_by_link"] == {str(link.id): 3}
        assert body["lead_count"] == 2
        # direct 100; social 80 - 1 day since the previous lead
        assert body["score_sum"] == 179
        assert body["average_score"] == 89.5
        assert [lead["email"] for lead in body["recent_leads"]] == ["b@example.com"]

    def test_empty_page(self, client: TestClient, page: Page) -> None:
        body = client.get(f"/api/analytics/pages/{page.id}/summary").json()

        assert body["lead_count"] == 0
        assert body["average_score"] is None
        assert body["recent_leads"] == []


class TestAdminToken:
    """Dashboard routes require the admin token when one is configured."""

    def test_missing_token_401(
        self, admin_client: TestClient, client: TestClient, link: Link
    ) -> None:
        assert client.get(f"/api/analytics/links/{link.id}").status_code == 401
        assert admin_client.get(f"/api/analytics/links/{link.id}").status_code == 200

    def test_ingest_stays_public(
        self, admin_client: TestClient, client: TestClient, link: Link
    ) -> None:
        assert client.post(f"/api/links/{link.id}/click").status_code == 200
