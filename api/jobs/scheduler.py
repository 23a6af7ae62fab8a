"""
Job scheduler for the Rapid Offer pipeline.

Holds per-job run state (idle/running, last start, last finish, last error)
and rejects overlapping runs of the same job. State checks and the switch to
"running" happen without an await in between, so on a single event loop two
callers can never both start the same job.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional

from api.errors import JobAlreadyRunningError, NotFoundError
from database.models import utcnow

logger = logging.getLogger(__name__)

JobFactory = Callable[[], Awaitable[Dict[str, Any]]]


@dataclass
class JobState:
    name: str
    status: str = "idle"  # idle, running
    last_started_at: Optional[datetime] = None
    last_finished_at: Optional[datetime] = None
    last_error: Optional[str] = None
    last_result: Optional[Dict[str, Any]] = None
    runs: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status,
            "last_started_at": self.last_started_at.isoformat() if self.last_started_at else None,
            "last_finished_at": self.last_finished_at.isoformat() if self.last_finished_at else None,
            "last_error": self.last_error,
            "last_result": self.last_result,
            "runs": self.runs,
        }


class JobScheduler:
    """Registry of named jobs with a run guard and an optional periodic loop."""

    def __init__(self):
        self._jobs: Dict[str, JobFactory] = {}
        self._states: Dict[str, JobState] = {}
        self._tasks: List[asyncio.Task] = []

    def register(self, name: str, factory: JobFactory):
        self._jobs[name] = factory
        self._states[name] = JobState(name=name)

    @property
    def job_names(self) -> List[str]:
        return list(self._jobs.keys())

    def state(self, name: str) -> JobState:
        if name not in self._states:
            raise NotFoundError(f"Unknown job: {name}")
        return self._states[name]

    def states(self) -> List[Dict[str, Any]]:
        return [state.to_dict() for state in self._states.values()]

    async def run(self, name: str) -> Dict[str, Any]:
        state = self.state(name)
        if state.status == "running":
            raise JobAlreadyRunningError(name)

        state.status = "running"
        state.last_started_at = utcnow()
        state.last_error = None
        logger.info(f"Job {name} started")
        try:
            result = await self._jobs[name]()
        except Exception as e:
            state.last_error = str(e)
            logger.error(f"Job {name} failed: {e}")
            raise
        finally:
            state.status = "idle"
            state.last_finished_at = utcnow()
            state.runs += 1

        state.last_result = result
        logger.info(f"Job {name} finished: {result}")
        return result

    def start_periodic(self, name: str, interval_seconds: float):
        """Run a job every interval until shutdown; overlaps and failures are logged."""
        async def _loop():
            while True:
                await asyncio.sleep(interval_seconds)
                try:
                    await self.run(name)
                except JobAlreadyRunningError:
                    logger.info(f"Job {name} still running, skipping this tick")
                except Exception as e:
                    logger.error(f"Periodic job {name} failed: {e}")

        self._tasks.append(asyncio.create_task(_loop()))
        logger.info(f"Job {name} scheduled every {interval_seconds:.0f}s")

    async def shutdown(self):
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks = []
