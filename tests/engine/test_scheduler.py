import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from cron_engine.errors import InvalidScheduleError
from cron_engine.scheduler import CronScheduler

JUST_BEFORE_MINUTE = datetime(2024, 5, 1, 12, 0, 59, 900000, tzinfo=timezone.utc)


@pytest.fixture(scope="function")
def on_fire():
    return AsyncMock(return_value=None)


@pytest_asyncio.fixture(scope="function")
async def scheduler(on_fire, notifier):
    scheduler = CronScheduler(on_fire, notifier, clock=lambda: JUST_BEFORE_MINUTE)
    yield scheduler
    await scheduler.stop()


@pytest.mark.asyncio
async def test_schedule_returns_next_run(scheduler, job_factory):
    job = job_factory(id="cron_1", schedule="*/5 * * * *")
    next_run = scheduler.schedule(job)

    assert next_run == datetime(2024, 5, 1, 12, 5, tzinfo=timezone.utc)
    assert scheduler.next_run_time("cron_1") == next_run
    assert scheduler.status() == {"cron_1"}


@pytest.mark.asyncio
async def test_timer_fires_at_minute_boundary(scheduler, on_fire, job_factory):
    scheduler.schedule(job_factory(id="cron_1", schedule="* * * * *"))

    await asyncio.sleep(0.4)

    on_fire.assert_awaited_once_with("cron_1")
    assert scheduler.next_run_time("cron_1") == datetime(2024, 5, 1, 12, 2, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_schedule_inactive_job(scheduler, job_factory):
    assert scheduler.schedule(job_factory(id="cron_1", is_active=False)) is None
    assert scheduler.status() == set()


@pytest.mark.asyncio
async def test_schedule_invalid_expression(scheduler, job_factory):
    with pytest.raises(InvalidScheduleError):
        scheduler.schedule(job_factory(id="cron_1", schedule="not a cron"))
    assert scheduler.status() == set()


@pytest.mark.asyncio
async def test_reschedule_replaces_timer(scheduler, job_factory):
    scheduler.schedule(job_factory(id="cron_1", schedule="0 * * * *"))
    scheduler.schedule(job_factory(id="cron_1", schedule="30 * * * *"))

    assert scheduler.status() == {"cron_1"}
    assert scheduler.next_run_time("cron_1") == datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_unschedule(scheduler, job_factory):
    scheduler.schedule(job_factory(id="cron_1"))

    assert scheduler.unschedule("cron_1") is True
    assert scheduler.unschedule("cron_1") is False
    assert scheduler.status() == set()
    assert scheduler.next_run_time("cron_1") is None


@pytest.mark.asyncio
async def test_refresh_all(scheduler, notifier, job_factory):
    scheduler.schedule(job_factory(id="cron_stale", name="Stale job"))
    jobs = [
        job_factory(id="cron_1", name="Job one"),
        job_factory(id="cron_2", name="Job two"),
        job_factory(id="cron_3", name="Job three"),
        job_factory(id="cron_4", name="Job four", is_active=False),
        job_factory(id="cron_5", name="Job five", schedule="61 * * * *"),
    ]

    failed = await scheduler.refresh_all(jobs)

    assert failed == ["cron_5"]
    assert scheduler.status() == {"cron_1", "cron_2", "cron_3"}
    notifier.notify_system_alert.assert_awaited_once()
    assert notifier.notify_system_alert.await_args.args[0] == "Job Scheduling Failed"


@pytest.mark.asyncio
async def test_stop_cancels_timers(scheduler, job_factory):
    scheduler.schedule(job_factory(id="cron_1"))
    scheduler.schedule(job_factory(id="cron_2"))

    await scheduler.stop()

    assert scheduler.status() == set()


@pytest.mark.asyncio
async def test_invalid_reschedule_removes_timer(scheduler, job_factory):
    scheduler.schedule(job_factory(id="cron_1", schedule="0 * * * *"))

    with pytest.raises(InvalidScheduleError):
        scheduler.schedule(job_factory(id="cron_1", schedule="99 * * * *"))

    assert scheduler.status() == set()
    assert scheduler.next_run_time("cron_1") is None
