"""
Service initialization and dependency injection for the Rapid Offer API.

Creates and manages all service instances used by the API.
"""

import logging
from typing import Optional

from config.settings import get_settings, Settings
from api.analytics.closer_kpi import CloserKPIService
from api.analytics.collector import KpiRecorder
from api.analytics.routing_performance import RoutingPerformanceService
from api.analytics.scorecard import ScorecardService
from api.handoff.manager import HandoffManager
from api.jobs import tasks
from api.jobs.scheduler import JobScheduler
from api.notifications.dispatcher import NotificationDispatcher
from api.pipeline import LeadPipeline
from api.realtime.connection_manager import ConnectionManager, get_connection_manager
from lead_scoring.compliance import ComplianceChecker
from lead_scoring.lead_router import DealRouter
from lead_scoring.scoring_model import LeadScorer

logger = logging.getLogger(__name__)

ROUTING_RECONCILIATION = "routing_reconciliation"
CLOSER_KPI_REFRESH = "closer_kpi_refresh"


class Services:
    """Container for all application services."""

    def __init__(self):
        self.settings: Optional[Settings] = None
        self.connections: Optional[ConnectionManager] = None
        self.compliance: Optional[ComplianceChecker] = None
        self.scorer: Optional[LeadScorer] = None
        self.router: Optional[DealRouter] = None
        self.recorder: Optional[KpiRecorder] = None
        self.notifier: Optional[NotificationDispatcher] = None
        self.pipeline: Optional[LeadPipeline] = None
        self.handoff: Optional[HandoffManager] = None
        self.scorecards: Optional[ScorecardService] = None
        self.closer_kpis: Optional[CloserKPIService] = None
        self.routing_performance: Optional[RoutingPerformanceService] = None
        self.scheduler: Optional[JobScheduler] = None
        self._initialized = False

    def initialize(self):
        """Initialize all services. Settings are re-read on every call."""
        self.settings = get_settings()
        logger.info("Initializing services")

        self._init_decision_core()
        self._init_side_effects()
        self._init_analytics()
        self._init_jobs()
        self._initialized = True
        logger.info("All services initialized successfully")

    def _init_decision_core(self):
        self.compliance = ComplianceChecker()
        self.scorer = LeadScorer()
        self.router = DealRouter(sla_hours=self.settings.sla_hours)

    def _init_side_effects(self):
        self.connections = get_connection_manager()
        self.recorder = KpiRecorder()
        self.notifier = NotificationDispatcher(self.connections)
        self.pipeline = LeadPipeline(
            scorer=self.scorer,
            router=self.router,
            recorder=self.recorder,
            notifier=self.notifier,
            connections=self.connections,
        )
        self.handoff = HandoffManager(self.recorder, self.notifier)

    def _init_analytics(self):
        self.scorecards = ScorecardService()
        self.closer_kpis = CloserKPIService()
        self.routing_performance = RoutingPerformanceService()

    def _init_jobs(self):
        self.scheduler = JobScheduler()
        self.scheduler.register(
            ROUTING_RECONCILIATION, lambda: tasks.routing_reconciliation(self.pipeline)
        )
        self.scheduler.register(
            CLOSER_KPI_REFRESH, lambda: tasks.closer_kpi_refresh(self.closer_kpis)
        )

    @property
    def is_ready(self) -> bool:
        return self._initialized and self.pipeline is not None

    def health(self) -> dict:
        """Return health status of all services."""
        return {
            "initialized": self._initialized,
            "pipeline": self.pipeline is not None,
            "scheduler": self.scheduler is not None,
            "websocket_connections": self.connections.active_count if self.connections else 0,
        }


# Singleton
_services = Services()


def get_services() -> Services:
    """Get the global services instance."""
    return _services


def initialize_services():
    """Initialize all services (called at startup)."""
    _services.initialize()
