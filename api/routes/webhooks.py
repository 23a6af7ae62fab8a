"""
Webhook Routes for the Rapid Offer pipeline.

Receives skip-trace results from the enrichment provider. Providers retry
on non-2xx, so every outcome is acknowledged with a success-shaped body.
"""

import logging
from datetime import datetime
from typing import Any, List, Literal, Optional

from fastapi import APIRouter, Body, Depends
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as SchemaError
from pydantic.alias_generators import to_camel
from sqlalchemy.ext.asyncio import AsyncSession

from ..services import get_services
from database.models import utcnow
from database.repositories import LeadRepository
from database.session import get_db

logger = logging.getLogger(__name__)

router = APIRouter()


# ── Webhook Request Models ────────────────────────────────────────

class SkipTraceWebhook(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    lead_id: str
    status: Literal["pending", "completed", "no_data", "failed"] = "completed"
    provider: Optional[str] = None
    phones: List[str] = Field(default_factory=list)
    emails: List[str] = Field(default_factory=list)
    completed_at: Optional[datetime] = None


# ── Endpoints ─────────────────────────────────────────────────────

@router.post("/webhooks/skip-trace")
async def skip_trace_webhook(
    body: Any = Body(default=None),
    session: AsyncSession = Depends(get_db),
):
    """Store skip-trace contact data on the lead. Malformed deliveries are acknowledged, not stored."""
    services = get_services()
    try:
        payload = SkipTraceWebhook.model_validate(body)
    except SchemaError as e:
        logger.warning(f"Malformed skip-trace webhook ignored: {e.error_count()} error(s)")
        return {"success": True, "updated": False, "message": "Invalid payload"}

    try:
        async with session.begin_nested():
            lead = await LeadRepository(session).get_by_id(payload.lead_id)
            if lead is None:
                logger.warning(f"Skip-trace webhook for unknown lead {payload.lead_id}")
                return {"success": True, "updated": False, "message": "Lead not found"}

            completed_at = payload.completed_at or utcnow()
            lead.skip_trace = {
                "status": payload.status,
                "provider": payload.provider,
                "phones": payload.phones,
                "emails": payload.emails,
                "completed_at": completed_at.isoformat(),
            }
            await LeadRepository(session).save(lead)
    except Exception as e:
        logger.error(f"Skip-trace webhook failed for lead {payload.lead_id}: {e}")
        return {"success": True, "updated": False, "message": "Webhook received"}

    if payload.status == "completed":
        await services.recorder.record(
            session, "skip_trace_completed", "system",
            lead_id=lead.id, tenant_id=lead.tenant_id,
            metadata={
                "provider": payload.provider,
                "phone_count": len(payload.phones),
                "email_count": len(payload.emails),
            },
        )
    await services.pipeline.emit(lead, "lead:updated")
    logger.info(f"Skip trace {payload.status} stored on lead {lead.id}")
    return {"success": True, "updated": True, "lead_id": lead.id}
