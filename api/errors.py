"""
Domain errors for the Rapid Offer API.

Raised by the pipeline and services, mapped to JSON {"detail": ...}
responses by the handlers registered in create_app().
"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class RapidOfferError(Exception):
    """Base class for domain errors."""
    status_code = 500

    def __init__(self, detail: str = ""):
        super().__init__(detail)
        self.detail = detail


class ValidationError(RapidOfferError):
    status_code = 400


class GuardrailError(RapidOfferError):
    status_code = 403


class NotFoundError(RapidOfferError):
    status_code = 404


class LeadNotFoundError(NotFoundError):
    def __init__(self, lead_id: str = ""):
        super().__init__("Lead not found")
        self.lead_id = lead_id


class InvalidTransitionError(RapidOfferError):
    status_code = 409


class JobAlreadyRunningError(RapidOfferError):
    status_code = 409

    def __init__(self, job_name: str):
        super().__init__(f"Job already running: {job_name}")
        self.job_name = job_name


async def rapid_offer_error_handler(request: Request, exc: RapidOfferError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.detail}")
    else:
        logger.info(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.detail}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


def register_exception_handlers(app: FastAPI):
    app.add_exception_handler(RapidOfferError, rapid_offer_error_handler)
