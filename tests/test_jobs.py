"""Tests for the job scheduler run guard."""

import asyncio

import pytest

from api.errors import JobAlreadyRunningError, NotFoundError
from api.jobs.scheduler import JobScheduler


def test_run_records_state():
    scheduler = JobScheduler()

    async def job():
        return {"processed": 3}

    scheduler.register("reconcile", job)
    result = asyncio.run(scheduler.run("reconcile"))

    state = scheduler.state("reconcile")
    assert result == {"processed": 3}
    assert state.status == "idle"
    assert state.runs == 1
    assert state.last_result == {"processed": 3}
    assert state.last_finished_at is not None


def test_overlapping_run_rejected():
    scheduler = JobScheduler()
    release = asyncio.Event()

    async def slow_job():
        await release.wait()
        return {}

    scheduler.register("slow", slow_job)

    async def scenario():
        first = asyncio.create_task(scheduler.run("slow"))
        await asyncio.sleep(0)
        assert scheduler.state("slow").status == "running"
        with pytest.raises(JobAlreadyRunningError):
            await scheduler.run("slow")
        release.set()
        await first

    asyncio.run(scenario())
    assert scheduler.state("slow").runs == 1


def test_failed_run_returns_to_idle():
    scheduler = JobScheduler()

    async def broken():
        raise RuntimeError("database unavailable")

    scheduler.register("broken", broken)
    with pytest.raises(RuntimeError):
        asyncio.run(scheduler.run("broken"))

    state = scheduler.state("broken")
    assert state.status == "idle"
    assert state.last_error == "database unavailable"


def test_unknown_job():
    with pytest.raises(NotFoundError):
        JobScheduler().state("missing")
