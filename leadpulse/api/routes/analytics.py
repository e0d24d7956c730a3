"""
Dashboard analytics routes.

Bucket series come from the aggregate store and never scan raw events. The
page summary also reports raw click totals and the most recent leads.
"""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel

from leadpulse.api.deps import (
    get_aggregate_store,
    get_directory,
    get_event_store,
    require_admin,
)
from leadpulse.components.aggregates import (
    AggregateStore,
    Granularity,
    ReadBucketsInput,
    ScopeKind,
    run_read,
)
from leadpulse.components.events import EventStorePort
from leadpulse.components.ingestion import DirectoryPort
from leadpulse.core.entities import ensure_utc

router = APIRouter(dependencies=[Depends(require_admin)])


# --- Response Models ---


class BucketPoint(BaseModel):
    bucket_start: datetime
    count: int
    score_sum: int | None = None


class SeriesResponse(BaseModel):
    entity_id: UUID
    kind: ScopeKind
    granularity: Granularity
    buckets: list[BucketPoint]


class RecentLead(BaseModel):
    id: UUID
    email: str
    source: str
    score: int
    message: str | None
    occurred_at: datetime


class PageSummaryResponse(BaseModel):
    page_id: UUID
    total_clicks: int
    unique_clicks: int
    clicks_by_link: dict[str, int]
    lead_count: int
    score_sum: int
    average_score: float | None
    recent_leads: list[RecentLead]


# --- Helpers ---


def _series(
    store: AggregateStore,
    entity_id: UUID,
    kind: ScopeKind,
    granularity: Granularity,
    start: datetime | None,
    end: datetime | None,
) -> SeriesResponse:
    start = ensure_utc(start) if start is not None else None
    end = ensure_utc(end) if end is not None else None
    if start is not None and end is not None and start > end:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="start must not be after end",
        )

    output = run_read(
        ReadBucketsInput(
            entity_id=entity_id,
            kind=kind,
            granularity=granularity,
            start=start,
            end=end,
        ),
        store=store,
    )
    return SeriesResponse(
        entity_id=entity_id,
        kind=kind,
        granularity=granularity,
        buckets=[
            BucketPoint(bucket_start=b.bucket_start, count=b.count, score_sum=b.score_sum)
            for b in output.buckets
        ],
    )


# --- Routes ---


@router.get("/links/{link_id}", response_model=SeriesResponse)
def link_series(
    link_id: UUID,
    granularity: Granularity = Query(Granularity.DAY),
    start: datetime | None = Query(None),
    end: datetime | None = Query(None),
    store: AggregateStore = Depends(get_aggregate_store),
    directory: DirectoryPort = Depends(get_directory),
) -> SeriesResponse:
    """Click counts per bucket for a link."""
    if directory.get_link(link_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Link not found")
    return _series(store, link_id, ScopeKind.LINK, granularity, start, end)


@router.get("/pages/{page_id}", response_model=SeriesResponse)
def page_series(
    page_id: UUID,
    granularity: Granularity = Query(Granularity.DAY),
    start: datetime | None = Query(None),
    end: datetime | None = Query(None),
    store: AggregateStore = Depends(get_aggregate_store),
    directory: DirectoryPort = Depends(get_directory),
) -> SeriesResponse:
    """Lead counts and score sums per bucket for a page."""
    if directory.get_page(page_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Page not found")
    return _series(store, page_id, ScopeKind.PAGE, granularity, start, end)


@router.get("/pages/{page_id}/summary", response_model=PageSummaryResponse)
def page_summary(
    page_id: UUID,
    recent: int = Query(10, ge=0, le=100),
    store: AggregateStore = Depends(get_aggregate_store),
    events: EventStorePort = Depends(get_event_store),
    directory: DirectoryPort = Depends(get_directory),
) -> PageSummaryResponse:
    """Dashboard overview for a page."""
    if directory.get_page(page_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Page not found")

    stats = events.click_stats(page_id)
    by_link = events.clicks_by_link(page_id)
    totals = store.totals(page_id, kind=ScopeKind.PAGE)
    lead_count = totals.get("count", 0)
    score_sum = totals.get("score_sum", 0)
    leads = events.list_leads(page_id, limit=recent) if recent else []

    return PageSummaryResponse(
        page_id=page_id,
        total_clicks=stats.total_clicks,
        unique_clicks=stats.unique_clicks,
        clicks_by_link={str(k): v for k, v in by_link.items()},
        lead_count=lead_count,
        score_sum=score_sum,
        average_score=round(score_sum / lead_count, 2) if lead_count else None,
        recent_leads=[
            RecentLead(
                id=lead.id,
                email=lead.email,
                source=lead.source.value,
                score=lead.score,
                message=lead.message,
                occurred_at=lead.occurred_at,
            )
            for lead in leads
        ],
    )
