"""
Prometheus metrics middleware for the Rapid Offer API.

Exposes /metrics endpoint with request counters, latency histograms,
and pipeline business metrics.
"""

import logging
import time

from fastapi import Request, Response
from prometheus_client import (
    Counter, Histogram, Gauge,
    generate_latest, CONTENT_TYPE_LATEST,
)
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

# Request metrics
REQUEST_COUNT = Counter(
    "rapid_offer_http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
)
REQUEST_LATENCY = Histogram(
    "rapid_offer_http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)
ACTIVE_REQUESTS = Gauge(
    "rapid_offer_http_active_requests",
    "Currently active HTTP requests",
)

# Business metrics
LEAD_SCORE_HIST = Histogram(
    "rapid_offer_lead_score",
    "Lead score distribution",
    buckets=[10, 20, 30, 40, 50, 60, 70, 80, 90, 100],
)
ROUTE_COUNT = Counter(
    "rapid_offer_routes_total",
    "Routing decisions",
    ["route", "priority_level"],
)
HANDOFF_COUNT = Counter(
    "rapid_offer_handoffs_total",
    "Handoff state transitions",
    ["to_status"],
)
KPI_EVENT_COUNT = Counter(
    "rapid_offer_kpi_events_total",
    "KPI events recorded",
    ["event_type", "role"],
)


def record_lead_score(score: float):
    LEAD_SCORE_HIST.observe(score)


def record_route(route: str, priority_level: str):
    ROUTE_COUNT.labels(route=route, priority_level=priority_level).inc()


def record_handoff(to_status: str):
    HANDOFF_COUNT.labels(to_status=to_status).inc()


def record_kpi_event(event_type: str, role: str):
    KPI_EVENT_COUNT.labels(event_type=event_type, role=role).inc()


class MetricsMiddleware(BaseHTTPMiddleware):
    """Middleware that records HTTP request metrics."""

    async def dispatch(self, request: Request, call_next):
        ACTIVE_REQUESTS.inc()
        start = time.time()

        try:
            response = await call_next(request)
        except Exception:
            ACTIVE_REQUESTS.dec()
            raise

        duration = time.time() - start
        # Route template keeps label cardinality bounded
        route = request.scope.get("route")
        endpoint = getattr(route, "path", request.url.path)

        REQUEST_COUNT.labels(
            method=request.method,
            endpoint=endpoint,
            status_code=response.status_code,
        ).inc()
        REQUEST_LATENCY.labels(
            method=request.method,
            endpoint=endpoint,
        ).observe(duration)
        ACTIVE_REQUESTS.dec()

        return response


async def metrics_endpoint(request: Request) -> Response:
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )
