"""
Ingestion component - Clicks and leads from public traffic.

Invariants:
- No aggregate change without a durable event
- A retried append never produces a second event
- Clicks on unknown or inactive links leave no trace
- Two submissions of the same email are two leads
"""

from __future__ import annotations

from ._impl import IngestionService
from .models import CaptureLeadInput, CaptureLeadOutput, RecordClickInput, RecordClickOutput


def run_record_click(inp: RecordClickInput, *, service: IngestionService) -> RecordClickOutput:
    """
    Record a click.

    Args:
        inp: Link, visitor details and optional id/idempotency key.
        service: Ingestion service.

    Returns:
        RecordClickOutput with the stored event or errors.
    """
    event, errors = service.record_click(
        inp.link_id,
        inp.ip_address,
        inp.user_agent,
        inp.occurred_at,
        event_id=inp.event_id,
        idempotency_key=inp.idempotency_key,
    )
    return RecordClickOutput(event=event, errors=errors, success=len(errors) == 0)


def run_capture_lead(inp: CaptureLeadInput, *, service: IngestionService) -> CaptureLeadOutput:
    """
    Capture a lead.

    Args:
        inp: Page, email, source and optional scoring inputs.
        service: Ingestion service.

    Returns:
        CaptureLeadOutput with the stored lead (including its score) or errors.
    """
    lead, errors = service.capture_lead(
        inp.page_id,
        inp.email,
        inp.source,
        inp.occurred_at,
        engagement_depth=inp.engagement_depth,
        visitor_ip=inp.visitor_ip,
        message=inp.message,
        lead_id=inp.lead_id,
        idempotency_key=inp.idempotency_key,
    )
    return CaptureLeadOutput(lead=lead, errors=errors, success=len(errors) == 0)
