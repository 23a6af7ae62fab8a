"""
API Module for the Rapid Offer pipeline.

FastAPI application with routes for:
- Dialer and closer queues and lead workflow
- KPI events, scorecards and reports
- Lead ingestion, buy boxes and scheduled jobs
"""

from .main import create_app, app

__all__ = ["create_app", "app"]
