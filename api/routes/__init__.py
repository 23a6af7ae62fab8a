"""
API Routes for the Rapid Offer pipeline.
"""

from . import (
    dialer, closer, kpi, leads, buy_boxes,
    webhooks, scheduled, realtime,
)

__all__ = [
    "dialer", "closer", "kpi", "leads", "buy_boxes",
    "webhooks", "scheduled", "realtime",
]
