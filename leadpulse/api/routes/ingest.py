"""
Public ingestion routes: link clicks and lead capture.

Unauthenticated. A click or lead is acknowledged once its event is durable;
aggregates may catch up later.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, NoReturn
from uuid import UUID

from fastapi import APIRouter, Depends, Header, HTTPException, status
from pydantic import BaseModel, Field

from leadpulse.api.deps import get_client_ip, get_ingestion_service
from leadpulse.components.ingestion import ErrorKind, IngestionError, IngestionService

router = APIRouter()


# --- Request/Response Models ---


class ClickRequest(BaseModel):
    """Optional click details; the body may be omitted."""

    occurred_at: datetime | None = Field(None, description="Client-side click time")
    event_id: UUID | None = Field(None, description="Pre-generated event id")


class ClickResponse(BaseModel):
    ok: bool = True
    event_id: UUID


class LeadRequest(BaseModel):
    """Email submission."""

    email: str = Field(..., description="Visitor email")
    source: str | None = Field(None, description="direct, social, referral")
    message: str | None = Field(None, description="Optional message to the page owner")
    occurred_at: datetime | None = Field(None, description="Client-side submit time")
    lead_id: UUID | None = Field(None, description="Pre-generated lead id")


class LeadResponse(BaseModel):
    ok: bool = True
    lead_id: UUID
    score: int


# --- Error mapping ---


def _status_for(error: IngestionError) -> int:
    if error.kind == ErrorKind.NOT_FOUND:
        return status.HTTP_404_NOT_FOUND
    if error.kind == ErrorKind.TRANSIENT:
        return status.HTTP_503_SERVICE_UNAVAILABLE
    if error.code == "inactive":
        return status.HTTP_409_CONFLICT
    return status.HTTP_400_BAD_REQUEST


def raise_for_errors(errors: list[IngestionError]) -> NoReturn:
    """Raise the HTTPException matching the first error."""
    first = errors[0]
    code = _status_for(first)
    headers = {"Retry-After": "1"} if first.retryable else None
    detail: dict[str, Any] = {
        "ok": False,
        "errors": [
            {
                "code": e.code,
                "message": e.message,
                "field": e.field_name,
                "retryable": e.retryable,
            }
            for e in errors
        ],
    }
    raise HTTPException(status_code=code, detail=detail, headers=headers)


# --- Routes ---


@router.post("/links/{link_id}/click", response_model=ClickResponse)
def record_click(
    link_id: UUID,
    body: ClickRequest | None = None,
    client_ip: str | None = Depends(get_client_ip),
    user_agent: Annotated[str | None, Header()] = None,
    idempotency_key: Annotated[str | None, Header()] = None,
    service: IngestionService = Depends(get_ingestion_service),
) -> ClickResponse:
    """Record a visitor click on a link."""
    body = body or ClickRequest()
    event, errors = service.record_click(
        link_id,
        client_ip,
        user_agent,
        body.occurred_at,
        event_id=body.event_id,
        idempotency_key=idempotency_key,
    )
    if event is None:
        raise_for_errors(errors)
    return ClickResponse(event_id=event.id)


@router.post(
    "/pages/{page_id}/leads",
    response_model=LeadResponse,
    status_code=status.HTTP_201_CREATED,
)
def capture_lead(
    page_id: UUID,
    body: LeadRequest,
    client_ip: str | None = Depends(get_client_ip),
    idempotency_key: Annotated[str | None, Header()] = None,
    service: IngestionService = Depends(get_ingestion_service),
) -> LeadResponse:
    """Capture an email submission and return its score."""
    lead, errors = service.capture_lead(
        page_id,
        body.email,
        body.source,
        body.occurred_at,
        visitor_ip=client_ip,
        message=body.message,
        lead_id=body.lead_id,
        idempotency_key=idempotency_key,
    )
    if lead is None:
        raise_for_errors(errors)
    return LeadResponse(lead_id=lead.id, score=lead.score)
