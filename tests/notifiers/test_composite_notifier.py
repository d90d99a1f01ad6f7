import logging
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from cron_engine.domain.job import CronJob
from cron_engine.domain.outcome import ExecutionOutcome, ExecutionStatus
from cron_engine.notifiers.composite import CompositeNotifier
from cron_engine.notifiers.log import LoggingNotifier


def _job():
    return CronJob(id="cron_abc", name="Nightly backup", schedule="0 2 * * *", task_identifier="noop")


def _outcome(status):
    now = datetime.now(timezone.utc)
    return ExecutionOutcome(job_id="cron_abc", status=status, started_at=now, finished_at=now, duration_ms=0)


@pytest.mark.asyncio
async def test_composite_continues_after_failure():
    failing = AsyncMock()
    failing.notify_job_outcome = AsyncMock(side_effect=RuntimeError("smtp down"))
    failing.notify_system_alert = AsyncMock(side_effect=RuntimeError("smtp down"))
    healthy = AsyncMock()

    composite = CompositeNotifier([failing, healthy])
    job, outcome = _job(), _outcome(ExecutionStatus.SUCCESS)
    await composite.notify_job_outcome(job, outcome)
    await composite.notify_system_alert("Kind", "message", {"a": 1})

    healthy.notify_job_outcome.assert_awaited_once_with(job, outcome)
    healthy.notify_system_alert.assert_awaited_once_with("Kind", "message", {"a": 1})


@pytest.mark.asyncio
async def test_logging_notifier(caplog):
    notifier = LoggingNotifier()
    with caplog.at_level(logging.INFO, logger="cron_engine.notifiers.log"):
        await notifier.notify_job_outcome(_job(), _outcome(ExecutionStatus.SUCCESS))
        await notifier.notify_job_outcome(_job(), _outcome(ExecutionStatus.FAILURE))
        await notifier.notify_system_alert("Job Store Unavailable", "db down")

    messages = [record.getMessage() for record in caplog.records]
    assert any("Cron Job Completed: Nightly backup" in message for message in messages)
    assert any("Cron Job Failed: Nightly backup" in message for message in messages)
    assert any("System Alert: Job Store Unavailable" in message for message in messages)
