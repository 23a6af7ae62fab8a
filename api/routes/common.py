"""
Helpers shared by the lead-facing route modules.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from api.errors import GuardrailError, LeadNotFoundError, ValidationError
from api.middleware.auth import require_tenant
from database.models import Lead
from database.repositories import LeadRepository

MANAGER_ROLES = ("manager", "admin")


async def load_lead(session: AsyncSession, lead_id: str, user: Dict[str, Any]) -> Lead:
    """Fetch a lead inside the caller's tenant; other tenants' leads look missing."""
    tenant_id = require_tenant(user)
    lead = await LeadRepository(session).get_by_id(lead_id, tenant_id)
    if lead is None:
        raise LeadNotFoundError(lead_id)
    return lead


def parse_date(value: Optional[str], name: str) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        raise ValidationError(f"Invalid {name}: {value}")
    if parsed.tzinfo is not None:
        parsed = parsed.replace(tzinfo=None) - parsed.utcoffset()
    return parsed


def target_user_id(user: Dict[str, Any], requested: Optional[str]) -> str:
    """Non-managers may only read their own KPIs."""
    if requested and requested != user.get("sub") and user.get("role") not in MANAGER_ROLES:
        raise GuardrailError("Only managers can view other users' KPIs")
    return requested or user.get("sub")
