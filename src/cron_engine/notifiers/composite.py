import logging
from typing import Any, Dict, List, Optional

from cron_engine.domain.job import CronJob
from cron_engine.domain.outcome import ExecutionOutcome
from cron_engine.notifiers.protocol import Notifier

logger = logging.getLogger(__name__)


class CompositeNotifier(Notifier):
    """
    Fans a notification out to several notifiers. One failing notifier does not stop the others.
    """

    def __init__(self, notifiers: List[Notifier]):
        self.notifiers: List[Notifier] = list(notifiers)

    async def notify_job_outcome(self, job: CronJob, outcome: ExecutionOutcome) -> None:
        for notifier in self.notifiers:
            try:
                await notifier.notify_job_outcome(job, outcome)
            except Exception:
                logger.exception("Notifier %s failed for job %s", type(notifier).__name__, job.id)

    async def notify_system_alert(self, kind: str, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        for notifier in self.notifiers:
            try:
                await notifier.notify_system_alert(kind, message, details)
            except Exception:
                logger.exception("Notifier %s failed for system alert '%s'", type(notifier).__name__, kind)
