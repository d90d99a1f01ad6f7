import logging
from typing import Any, Dict, Optional

from cron_engine.domain.job import CronJob
from cron_engine.domain.outcome import ExecutionOutcome
from cron_engine.notifiers.protocol import Notifier, alert_subject, outcome_subject

logger = logging.getLogger(__name__)


class LoggingNotifier(Notifier):
    """
    Writes notifications to the log. Used when no delivery channel is configured.
    """

    async def notify_job_outcome(self, job: CronJob, outcome: ExecutionOutcome) -> None:
        if outcome.succeeded:
            logger.info("%s (%dms) -> %s", outcome_subject(job, outcome), outcome.duration_ms,
                        ", ".join(job.notification_recipients))
        else:
            logger.warning("%s (%dms): %s -> %s", outcome_subject(job, outcome), outcome.duration_ms,
                           outcome.error.message if outcome.error else "no error message",
                           ", ".join(job.notification_recipients))

    async def notify_system_alert(self, kind: str, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        logger.error("%s: %s %s", alert_subject(kind), message, details or {})
