"""
SQLAlchemy ORM models for the Rapid Offer pipeline.

All persistent entities: leads, KPI events, weekly scorecards, closer KPIs,
buy boxes, scoring configs, users and notifications.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Column, String, Integer, Float, Boolean, DateTime, Text,
    JSON, Index, UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase


def _uuid() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Naive UTC timestamp, matching how DateTime columns are stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    pass


class Lead(Base):
    __tablename__ = "leads"

    id = Column(String(36), primary_key=True, default=_uuid)
    tenant_id = Column(String(36), nullable=False, index=True)
    dedupe_key = Column(String(512), nullable=False)

    # Identity / property facts
    source = Column(String(30), default="other")  # probate, code_violation, preforeclosure, tax_lien, other
    owner_name = Column(String(255), nullable=True)
    property_address = Column(String(512), nullable=True)
    city = Column(String(120), nullable=True)
    state = Column(String(30), nullable=True)
    zip_code = Column(String(12), nullable=True)
    county = Column(String(120), nullable=True)
    property_type = Column(String(40), nullable=True)
    beds = Column(Float, nullable=True)
    baths = Column(Float, nullable=True)
    sqft = Column(Integer, nullable=True)
    year_built = Column(Integer, nullable=True)
    asking_price = Column(Float, nullable=True)
    arv = Column(Float, nullable=True)
    delinquent_amount = Column(Float, nullable=True)
    description = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    status = Column(String(20), default="new")  # new, attempted, contacted, under_contract, dead
    lead_tier = Column(String(10), default="warm")  # hot, warm, cold
    tags = Column(JSON, default=list)
    next_follow_up = Column(DateTime, nullable=True)

    # Dialer intake
    dialer_intake = Column(JSON, default=dict)
    intake_completed_at = Column(DateTime, nullable=True)
    intake_locked = Column(Boolean, default=False)

    # Lead score
    score = Column(Integer, nullable=True)
    grade = Column(String(5), nullable=True)  # A, B, C, D, Dead
    evaluated_at = Column(DateTime, nullable=True)
    score_reasons = Column(JSON, default=list)
    score_failed_checks = Column(JSON, default=list)
    buy_box_id = Column(String(36), nullable=True)
    buy_box_label = Column(String(255), nullable=True)
    buy_box_market = Column(String(60), nullable=True)
    cash_flow = Column(JSON, nullable=True)
    score_override = Column(JSON, nullable=True)

    # Routing
    route = Column(String(20), nullable=True)  # immediate_closer, dialer_priority, nurture, archive
    priority_level = Column(String(10), nullable=True)  # urgent, high, normal, low
    sla_hours = Column(Integer, nullable=True)
    routing_reasons = Column(JSON, default=list)
    routed_at = Column(DateTime, nullable=True)
    routing_evaluated_at = Column(DateTime, nullable=True)
    routed_by = Column(String(36), nullable=True)
    previous_route = Column(String(20), nullable=True)
    previous_priority = Column(String(10), nullable=True)
    routing_override = Column(JSON, nullable=True)

    # Handoff
    handoff_status = Column(String(20), default="none")
    handoff_summary = Column(Text, nullable=True)
    missing_fields = Column(JSON, default=list)
    escalated = Column(Boolean, default=False)
    sent_to_closer_at = Column(DateTime, nullable=True)
    sent_to_closer_by = Column(String(36), nullable=True)
    closer_requested_info_at = Column(DateTime, nullable=True)
    closer_requested_info_note = Column(Text, nullable=True)

    # Closer + enrichment
    closer = Column(JSON, default=dict)
    skip_trace = Column(JSON, default=dict)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("tenant_id", "dedupe_key", name="uq_lead_tenant_dedupe"),
        Index("ix_lead_tenant_tier", "tenant_id", "lead_tier"),
        Index("ix_lead_tenant_handoff", "tenant_id", "handoff_status"),
        Index("ix_lead_routed", "tenant_id", "routed_at"),
    )


class KpiEvent(Base):
    """Append-only activity fact. Never updated or deleted."""

    __tablename__ = "kpi_events"

    id = Column(String(36), primary_key=True, default=_uuid)
    tenant_id = Column(String(36), nullable=True, index=True)
    user_id = Column(String(36), nullable=True, index=True)
    role = Column(String(10), nullable=False)  # dialer, closer
    lead_id = Column(String(36), nullable=True, index=True)
    event_type = Column(String(30), nullable=False)
    metadata_json = Column(JSON, default=dict)
    created_at = Column(DateTime, default=utcnow)

    __table_args__ = (
        Index("ix_kpi_user_role_time", "user_id", "role", "created_at"),
        Index("ix_kpi_type_time", "event_type", "created_at"),
    )


class ScorecardWeekly(Base):
    __tablename__ = "scorecards_weekly"

    id = Column(String(36), primary_key=True, default=_uuid)
    tenant_id = Column(String(36), nullable=True, index=True)
    user_id = Column(String(36), nullable=False)
    role = Column(String(10), nullable=False, default="dialer")
    week_start = Column(DateTime, nullable=False)
    week_end = Column(DateTime, nullable=False)

    intake_accuracy = Column(Integer, default=0)
    call_control = Column(Integer, default=0)
    script_adherence = Column(Integer, default=15)
    compliance = Column(Integer, default=20)
    professionalism = Column(Integer, default=8)
    total_score = Column(Integer, default=0)
    certification_status = Column(String(25), default="conditional")

    calls_made = Column(Integer, default=0)
    conversations = Column(Integer, default=0)
    intakes_completed = Column(Integer, default=0)
    handoffs_sent = Column(Integer, default=0)
    compliance_violations = Column(Integer, default=0)

    manager_notes = Column(Text, nullable=True)
    manager_override_score = Column(Integer, nullable=True)
    updated_by = Column(String(36), nullable=True)
    computed_at = Column(DateTime, default=utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "role", "week_start", name="uq_scorecard_user_week"),
    )


class CloserKPI(Base):
    __tablename__ = "closer_kpis"

    id = Column(String(36), primary_key=True, default=_uuid)
    tenant_id = Column(String(36), nullable=True, index=True)
    user_id = Column(String(36), nullable=False)
    week_start = Column(DateTime, nullable=False)
    week_end = Column(DateTime, nullable=False)

    leads_reviewed = Column(Integer, default=0)
    offers_sent = Column(Integer, default=0)
    buyer_blasts_sent = Column(Integer, default=0)
    contracts_sent = Column(Integer, default=0)
    contracts_signed = Column(Integer, default=0)
    avg_response_time_hours = Column(Float, nullable=True)
    conversion_rate = Column(Integer, default=0)
    offer_to_contract_rate = Column(Integer, default=0)
    avg_deal_spread = Column(Integer, nullable=True)
    computed_at = Column(DateTime, default=utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "week_start", name="uq_closer_kpi_user_week"),
    )


class BuyBox(Base):
    __tablename__ = "buy_boxes"

    id = Column(String(36), primary_key=True, default=_uuid)
    tenant_id = Column(String(36), nullable=False, index=True)
    market_key = Column(String(60), nullable=False)
    label = Column(String(255), nullable=False)
    property_types = Column(JSON, default=list)  # SFR, MF, Land, Commercial
    min_beds = Column(Float, nullable=True)
    min_baths = Column(Float, nullable=True)
    min_sqft = Column(Integer, nullable=True)
    min_year_built = Column(Integer, nullable=True)
    condition_allowed = Column(JSON, default=list)
    buy_price_min = Column(Float, nullable=False)
    buy_price_max = Column(Float, nullable=False)
    arv_min = Column(Float, nullable=True)
    arv_max = Column(Float, nullable=True)
    counties = Column(JSON, default=list)
    city_overrides = Column(JSON, default=dict)
    exclusions = Column(JSON, default=list)
    strategy = Column(String(20), default="flip")  # flip, buy_hold, commercial, wholesale, other
    requires_positive_cash_flow = Column(Boolean, default=False)
    cash_flow_config = Column(JSON, default=dict)
    active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=utcnow)

    __table_args__ = (
        Index("ix_buybox_market_active", "tenant_id", "market_key", "active"),
    )


class ScoringConfig(Base):
    __tablename__ = "scoring_configs"

    id = Column(String(36), primary_key=True, default=_uuid)
    market_key = Column(String(60), nullable=False)
    strategy = Column(String(20), nullable=False, default="flip")
    weights = Column(JSON, default=dict)
    active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=utcnow)

    __table_args__ = (
        Index("ix_scoring_market_strategy", "market_key", "strategy", "active"),
    )


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_uuid)
    tenant_id = Column(String(36), nullable=True, index=True)
    name = Column(String(255), nullable=True)
    email = Column(String(255), unique=True, nullable=True)
    role = Column(String(20), default="dialer")  # admin, manager, dialer, closer
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=utcnow)

    __table_args__ = (
        Index("ix_user_tenant_role", "tenant_id", "role"),
    )


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=_uuid)
    tenant_id = Column(String(36), nullable=True, index=True)
    user_id = Column(String(36), nullable=False, index=True)
    type = Column(String(40), nullable=False)  # handoff_received, buy_box_match
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=True)
    lead_id = Column(String(36), nullable=True)
    read = Column(Boolean, default=False)
    created_at = Column(DateTime, default=utcnow)
