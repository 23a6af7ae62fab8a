"""
Dialer-to-closer Handoff Manager for the Rapid Offer pipeline.

Owns the handoff state machine:

    none -> back_to_dialer <-> closer_review -> offer_sent -> contract_sent -> under_contract

and the deterministic handoff summary a closer reads. Every non-empty intake
field appears in the summary; anything missing renders as N/A.
"""

import logging
import re
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from sqlalchemy.ext.asyncio import AsyncSession

from api.analytics.collector import KpiRecorder, role_for_user
from api.errors import InvalidTransitionError, ValidationError
from api.middleware.metrics import record_handoff
from api.notifications.dispatcher import NotificationDispatcher
from database.models import Lead, utcnow
from lead_scoring.scoring_model import intake_or_column

logger = logging.getLogger(__name__)


class HandoffStatus(str, Enum):
    NONE = "none"
    BACK_TO_DIALER = "back_to_dialer"
    CLOSER_REVIEW = "closer_review"
    OFFER_SENT = "offer_sent"
    CONTRACT_SENT = "contract_sent"
    UNDER_CONTRACT = "under_contract"


# Closer states in pipeline order; moves only go forward along this list
CLOSER_PIPELINE = ("closer_review", "offer_sent", "contract_sent", "under_contract")

ALLOWED_TRANSITIONS: Dict[str, Tuple[str, ...]] = {
    "none": ("closer_review",),
    "back_to_dialer": ("closer_review",),
    "closer_review": ("back_to_dialer", "offer_sent", "contract_sent", "under_contract"),
    "offer_sent": ("back_to_dialer", "contract_sent", "under_contract"),
    "contract_sent": ("under_contract",),
    "under_contract": (),
}

# (intake key, camelCase name, label)
REQUIRED_INTAKE_FIELDS: Tuple[Tuple[str, str, str], ...] = (
    ("property_address", "propertyAddress", "Property Address"),
    ("occupancy_type", "occupancyType", "Occupancy Type"),
    ("condition_tier", "conditionTier", "Condition Tier"),
    ("mortgage_free_and_clear", "mortgageFreeAndClear", "Mortgage Free & Clear"),
    ("mortgage_current", "mortgageCurrent", "Mortgage Current Status"),
    ("motivation_rating", "motivationRating", "Motivation Rating"),
    ("timeline_to_close", "timelineToClose", "Timeline to Close"),
    ("seller_reason", "sellerReason", "Seller Reason"),
    ("seller_flexibility", "sellerFlexibility", "Seller Flexibility"),
)

HANDOFF_NOTIFY_ROLES = ("closer", "manager", "admin")

SECTION_RE = re.compile(r"^=== (.+) ===$")
NA = "N/A"


def check_transition(current: Optional[str], target: str):
    current = current or "none"
    if target not in ALLOWED_TRANSITIONS.get(current, ()):
        raise InvalidTransitionError(f"Invalid handoff transition: {current} -> {target}")


def _is_missing(value) -> bool:
    return value is None or value == "" or value == "unknown" or value == []


def missing_required_fields(intake: Optional[Dict[str, Any]]) -> List[str]:
    """Labels of the required intake fields that are empty or unknown, in fixed order."""
    intake = intake or {}
    return [label for key, _, label in REQUIRED_INTAKE_FIELDS if _is_missing(intake.get(key))]


def intake_is_complete(intake: Optional[Dict[str, Any]]) -> bool:
    return not missing_required_fields(intake)


# ── Summary ───────────────────────────────────────────────────────

def _text(value) -> str:
    if _is_missing(value) and value != "unknown":
        return NA
    if isinstance(value, bool):
        return "Yes" if value else "No"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _money(value) -> str:
    if value is None or value == "":
        return NA
    if isinstance(value, (int, float)):
        if float(value).is_integer():
            return f"${int(value):,}"
        return f"${value:,.2f}"
    return str(value)


def _rating(value) -> str:
    text = _text(value)
    return text if text == NA else f"{text}/5"


def generate_handoff_summary(lead) -> str:
    """Build the closer-facing summary from the lead and its dialer intake."""
    intake = lead.dialer_intake or {}
    sections: List[Tuple[str, List[str]]] = []

    sections.append(("PROPERTY SNAPSHOT", [
        f"Address: {_text(intake_or_column(lead, 'property_address'))}",
        f"Type: {_text(intake_or_column(lead, 'property_type'))}",
        f"Occupancy: {_text(intake.get('occupancy_type'))}",
        f"Condition: {_text(intake.get('condition_tier'))}",
        f"Beds: {_text(intake_or_column(lead, 'beds'))}",
        f"Baths: {_text(intake_or_column(lead, 'baths'))}",
        f"Sqft: {_text(intake_or_column(lead, 'sqft'))}",
        f"Year Built: {_text(intake_or_column(lead, 'year_built'))}",
    ]))

    sections.append(("FINANCIAL SNAPSHOT", [
        f"Asking Price: {_money(intake_or_column(lead, 'asking_price'))}",
        f"ARV: {_money(lead.arv)}",
        f"Free & Clear: {_text(intake.get('mortgage_free_and_clear'))}",
        f"Mortgage Balance: {_money(intake.get('mortgage_balance'))}",
        f"Monthly Payment: {_money(intake.get('mortgage_monthly_payment'))}",
        f"Mortgage Current: {_text(intake.get('mortgage_current'))}",
        f"Estimated Rent: {_money(intake.get('estimated_rent'))}",
        f"Rehab Estimate: {_money(intake.get('estimated_rehab_cost'))}",
        f"Annual Taxes: {_money(intake.get('annual_taxes'))}",
        f"Annual Insurance: {_money(intake.get('annual_insurance'))}",
    ]))

    sections.append(("SELLER PSYCHOLOGY", [
        f"Motivation Rating: {_rating(intake.get('motivation_rating'))}",
        f"Timeline: {_text(intake.get('timeline_to_close'))}",
        f"Reason: {_text(intake.get('seller_reason'))}",
        f"Flexibility: {_text(intake.get('seller_flexibility'))}",
        f"Dialer Confidence: {_rating(intake.get('dialer_confidence'))}",
    ]))

    lane = intake.get("recommended_offer_lane")
    if lane and lane != "unknown":
        sections.append(("DIALER RECOMMENDATION", [
            f"Recommended Lane: {str(lane).upper()}",
            f"Confidence: {_rating(intake.get('dialer_confidence'))}",
        ]))

    flags = intake.get("compliance_flags") or []
    sections.append(("COMPLIANCE", [
        f"Recording Disclosure: {_text(intake.get('recording_disclosure_given'))}",
        f"Offshore Mode: {_text(intake.get('offshore_mode_used'))}",
        f"Flags: {', '.join(flags) if flags else 'None'}",
    ]))

    red_flags = intake.get("red_flags") or []
    if red_flags:
        sections.append(("RED FLAGS", [f"- {flag}" for flag in red_flags]))

    if lead.notes:
        sections.append(("ADDITIONAL NOTES", [lead.notes]))

    return "\n\n".join(
        "\n".join([f"=== {name} ==="] + lines) for name, lines in sections
    )


def parse_handoff_summary(summary: str) -> Dict[str, Union[Dict[str, str], List[str], str]]:
    """
    Read a summary back into sections.

    Label sections become dicts, RED FLAGS a list, ADDITIONAL NOTES raw text.
    """
    parsed: Dict[str, Union[Dict[str, str], List[str], str]] = {}
    current: Optional[str] = None
    lines: List[str] = []

    def flush():
        if current is None:
            return
        if current == "RED FLAGS":
            parsed[current] = [line[2:] for line in lines if line.startswith("- ")]
        elif current == "ADDITIONAL NOTES":
            parsed[current] = "\n".join(lines).strip()
        else:
            section = {}
            for line in lines:
                if ": " in line:
                    label, value = line.split(": ", 1)
                    section[label] = value
            parsed[current] = section

    for line in (summary or "").splitlines():
        match = SECTION_RE.match(line)
        if match:
            flush()
            current = match.group(1)
            lines = []
        elif current is not None:
            lines.append(line)
    flush()
    return parsed


# ── Transitions ───────────────────────────────────────────────────

class HandoffManager:
    """
    Applies handoff transitions to a lead.

    Re-routing after a transition is left to the caller (the pipeline),
    so the handoff signal can raise priority.
    """

    def __init__(self, recorder: KpiRecorder, notifier: NotificationDispatcher):
        self.recorder = recorder
        self.notifier = notifier

    async def send_to_closer(
        self,
        session: AsyncSession,
        lead: Lead,
        user: Dict[str, Any],
        escalate: Optional[str] = None,
    ) -> Dict[str, Any]:
        current = lead.handoff_status or "none"
        check_transition(current, HandoffStatus.CLOSER_REVIEW.value)

        high_priority = escalate == "high_priority"
        if not lead.intake_completed_at and not high_priority:
            raise ValidationError(
                "Intake is incomplete. Complete all required fields or escalate as high_priority."
            )

        now = utcnow()
        summary = generate_handoff_summary(lead)
        missing = missing_required_fields(lead.dialer_intake)

        lead.handoff_status = HandoffStatus.CLOSER_REVIEW.value
        lead.intake_locked = True
        lead.escalated = high_priority
        lead.sent_to_closer_at = now
        lead.sent_to_closer_by = user.get("sub")
        lead.handoff_summary = summary
        lead.missing_fields = missing
        await session.flush()
        record_handoff(lead.handoff_status)

        await self.recorder.record(
            session, "handoff_sent", role_for_user(user),
            user_id=user.get("sub"), lead_id=lead.id, tenant_id=lead.tenant_id,
            metadata={
                "missing_fields": missing,
                "escalated": high_priority,
                "offshore_mode": bool((lead.dialer_intake or {}).get("offshore_mode_used")),
            },
        )
        await self.notifier.notify_roles(
            session, lead.tenant_id, HANDOFF_NOTIFY_ROLES,
            type="handoff",
            title=f"New handoff{' (ESCALATED)' if high_priority else ''}: "
                  f"{lead.property_address or lead.id}",
            message=f"{len(missing)} missing field(s)" if missing else "Intake complete",
            lead_id=lead.id,
        )
        logger.info(f"Lead {lead.id} sent to closer by {user.get('sub')} (escalated={high_priority})")
        return {"handoff_summary": summary, "missing_fields": missing}

    async def request_info(
        self, session: AsyncSession, lead: Lead, user: Dict[str, Any], note: Optional[str]
    ) -> Lead:
        check_transition(lead.handoff_status, HandoffStatus.BACK_TO_DIALER.value)
        if not note or not note.strip():
            raise ValidationError("A note describing the missing information is required")

        lead.handoff_status = HandoffStatus.BACK_TO_DIALER.value
        lead.intake_locked = False
        lead.closer_requested_info_at = utcnow()
        lead.closer_requested_info_note = note.strip()
        await session.flush()
        record_handoff(lead.handoff_status)

        await self.recorder.record(
            session, "followup_done", role_for_user(user),
            user_id=user.get("sub"), lead_id=lead.id, tenant_id=lead.tenant_id,
            metadata={"action": "request_info", "note": note.strip()},
        )
        await self.notifier.notify_roles(
            session, lead.tenant_id, ("dialer",),
            type="info_requested",
            title=f"Closer needs more info: {lead.property_address or lead.id}",
            message=note.strip(),
            lead_id=lead.id,
        )
        return lead

    async def advance(
        self, session: AsyncSession, lead: Lead, target: HandoffStatus, user: Dict[str, Any],
        now: Optional[datetime] = None,
    ) -> Lead:
        """Closer-side forward move: offer_sent, contract_sent or under_contract."""
        check_transition(lead.handoff_status, target.value)
        now = now or utcnow()

        closer = dict(lead.closer or {})
        if target == HandoffStatus.OFFER_SENT:
            closer["offer_sent_at"] = now.isoformat()
            closer["disposition"] = closer.get("disposition") or "negotiating"
            event_type = "offer_sent"
        elif target == HandoffStatus.CONTRACT_SENT:
            closer["contract_sent_at"] = now.isoformat()
            closer["disposition"] = "contract_sent"
            event_type = "contract_sent"
        else:
            closer["under_contract_at"] = now.isoformat()
            closer["disposition"] = "contract_sent"
            lead.status = "under_contract"
            event_type = "contract_signed"

        lead.closer = closer
        lead.handoff_status = target.value
        await session.flush()
        record_handoff(target.value)

        metadata: Dict[str, Any] = {"handoff_status": target.value}
        if event_type == "offer_sent":
            metadata["offer_amount"] = closer.get("offer_amount")
            metadata["asking_price"] = (lead.dialer_intake or {}).get("asking_price") or lead.asking_price
        await self.recorder.record(
            session, event_type, "closer",
            user_id=user.get("sub"), lead_id=lead.id, tenant_id=lead.tenant_id,
            metadata=metadata,
        )
        logger.info(f"Lead {lead.id} moved to {target.value} by {user.get('sub')}")
        return lead
