"""
Scheduled job bodies: routing reconciliation and closer KPI refresh.

Each job opens its own session from the shared factory.
"""

import logging
from datetime import timedelta
from typing import Any, Dict

from api.analytics.closer_kpi import CloserKPIService
from api.analytics.scorecard import week_start_for
from api.pipeline import LeadPipeline
from database.repositories import KpiEventRepository, LeadRepository
from database.session import get_session_factory

logger = logging.getLogger(__name__)


async def routing_reconciliation(pipeline: LeadPipeline) -> Dict[str, Any]:
    """Route leads that were scored after their last routing evaluation."""
    factory = get_session_factory()
    routed = 0
    async with factory() as session:
        leads = await LeadRepository(session).needing_routing()
        for lead in leads:
            decision = await pipeline.route(session, lead)
            if decision is not None:
                routed += 1
        await session.commit()
    logger.info(f"Routing reconciliation: {routed}/{len(leads)} lead(s) routed")
    return {"candidates": len(leads), "routed": routed}


async def closer_kpi_refresh(service: CloserKPIService) -> Dict[str, Any]:
    """Recompute this week's CloserKPI for every closer with events."""
    factory = get_session_factory()
    week_start = week_start_for()
    async with factory() as session:
        closers = await KpiEventRepository(session).users_with_role_events(
            "closer", week_start, week_start + timedelta(days=7)
        )
        for tenant_id, user_id in closers:
            await service.refresh(session, user_id, week_start, tenant_id=tenant_id)
        await session.commit()
    return {"closers": len(closers), "week_start": week_start.isoformat()}
