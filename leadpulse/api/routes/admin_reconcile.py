"""
Admin reconcile routes.

Guarded by X-Admin-Token when LEADPULSE_ADMIN_TOKEN is set.
"""

from datetime import datetime
from typing import Literal
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from leadpulse.api.deps import get_directory, get_reconciler, require_admin
from leadpulse.components.aggregates import Scope, TimeRange
from leadpulse.components.ingestion import DirectoryPort
from leadpulse.components.reconciler import (
    ReconcileInput,
    Reconciler,
    ReconcileResult,
    run_reconcile,
    run_reconcile_pending,
)
from leadpulse.core.entities import ensure_utc

router = APIRouter(dependencies=[Depends(require_admin)])


# --- Request/Response Models ---


class ReconcileRequest(BaseModel):
    kind: Literal["link", "page"]
    entity_id: UUID
    start: datetime | None = Field(None, description="Range start (inclusive)")
    end: datetime | None = Field(None, description="Range end (exclusive)")


class ReconcileResponse(BaseModel):
    success: bool
    scope: str
    events_scanned: int
    buckets_written: int
    errors: list[dict[str, str]] = []


class PendingResponse(BaseModel):
    total_processed: int
    succeeded: int
    failed: int
    remaining: int


def _to_response(result: ReconcileResult) -> ReconcileResponse:
    return ReconcileResponse(
        success=result.success,
        scope=str(result.scope),
        events_scanned=result.events_scanned,
        buckets_written=result.buckets_written,
        errors=[{"code": e.code, "message": e.message} for e in result.errors],
    )


# --- Routes ---


@router.post("", response_model=ReconcileResponse)
def reconcile(
    body: ReconcileRequest,
    reconciler: Reconciler = Depends(get_reconciler),
    directory: DirectoryPort = Depends(get_directory),
) -> ReconcileResponse:
    """Recount one link or page from raw events and overwrite its buckets."""
    start = ensure_utc(body.start) if body.start else None
    end = ensure_utc(body.end) if body.end else None
    if start is not None and end is not None and start >= end:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="start must be before end",
        )

    if body.kind == "link":
        if directory.get_link(body.entity_id) is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Link not found")
        scope = Scope.link(body.entity_id)
    else:
        if directory.get_page(body.entity_id) is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Page not found")
        scope = Scope.page(body.entity_id)
    result = run_reconcile(
        ReconcileInput(scope=scope, time_range=TimeRange(start, end)),
        reconciler=reconciler,
    )
    if not result.success:
        code = result.errors[0].code if result.errors else "error"
        raise HTTPException(
            status_code=(
                status.HTTP_409_CONFLICT if code == "busy" else status.HTTP_503_SERVICE_UNAVAILABLE
            ),
            detail=_to_response(result).model_dump(),
        )
    return _to_response(result)


@router.post("/pending", response_model=PendingResponse)
def reconcile_pending(
    max_items: int | None = Query(None, ge=1),
    reconciler: Reconciler = Depends(get_reconciler),
) -> PendingResponse:
    """Drain the pending queue now instead of waiting for the worker."""
    batch = run_reconcile_pending(reconciler=reconciler, max_items=max_items)
    return PendingResponse(
        total_processed=batch.total_processed,
        succeeded=batch.succeeded,
        failed=batch.failed,
        remaining=len(reconciler.queue),
    )
