"""
Scheduled job routes for the Rapid Offer pipeline.

Manual triggers and run state for the background jobs. The same jobs run
periodically from the lifespan when the scheduler is enabled.
"""

import logging
from typing import Dict

from fastapi import APIRouter, Depends

from ..middleware.auth import require_role
from ..services import get_services

logger = logging.getLogger(__name__)

router = APIRouter()

manager_user = require_role("manager", "admin")


@router.get("/scheduled/jobs")
async def list_jobs(user: Dict = Depends(manager_user)):
    scheduler = get_services().scheduler
    return {"jobs": scheduler.states()}


@router.post("/scheduled/jobs/{name}/run")
async def run_job(name: str, user: Dict = Depends(manager_user)):
    """Run a job now. Rejected with 409 while the same job is running."""
    scheduler = get_services().scheduler
    logger.info(f"Job {name} triggered by {user.get('sub')}")
    result = await scheduler.run(name)
    return {"success": True, "job": scheduler.state(name).to_dict(), "result": result}
