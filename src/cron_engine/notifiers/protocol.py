from typing import Any, Dict, Optional, Protocol

from cron_engine.domain.job import CronJob
from cron_engine.domain.outcome import ExecutionOutcome, ExecutionStatus

_OUTCOME_WORDS = {
    ExecutionStatus.SUCCESS: "Completed",
    ExecutionStatus.FAILURE: "Failed",
    ExecutionStatus.TIMEOUT: "Timed Out",
    ExecutionStatus.CANCELLED: "Cancelled",
}


def outcome_subject(job: CronJob, outcome: ExecutionOutcome) -> str:
    return f"Cron Job {_OUTCOME_WORDS[outcome.status]}: {job.name}"


def alert_subject(kind: str) -> str:
    return f"System Alert: {kind}"


class Notifier(Protocol):
    """
    Delivers job outcome messages and system alerts.
    Implementations should not raise for delivery problems they can log themselves.
    """

    async def notify_job_outcome(self, job: CronJob, outcome: ExecutionOutcome) -> None:
        """Report a finished execution to the job's notification recipients."""
        ...

    async def notify_system_alert(self, kind: str, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        """Report an engine-level problem to the administrators."""
        ...
