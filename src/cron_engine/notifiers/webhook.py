import asyncio
import logging
from typing import Any, Dict, List, Optional

import aiohttp
from pydantic_core import to_jsonable_python

from cron_engine.domain.job import CronJob
from cron_engine.domain.outcome import ExecutionOutcome
from cron_engine.notifiers.protocol import Notifier, alert_subject, outcome_subject

logger = logging.getLogger(__name__)


class WebhookNotifier(Notifier):
    """
    Posts notifications as JSON documents to an HTTP endpoint (a mail relay, chat webhook, ...).

    Delivery failures are logged and reported as ``False``; they never propagate to the engine.
    """

    def __init__(
        self,
        url: str,
        admin_recipients: Optional[List[str]] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout_seconds: float = 10.0,
    ):
        self.url: str = url
        self.admin_recipients: List[str] = list(admin_recipients or [])
        self.headers: Dict[str, str] = dict(headers or {})
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)

    async def _post(self, document: Dict[str, Any]) -> bool:
        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.post(self.url, json=to_jsonable_python(document, fallback=str),
                                        headers=self.headers) as response:
                    if response.status >= 400:
                        logger.warning("Notification webhook %s returned HTTP %d", self.url, response.status)
                        return False
                    return True
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning("Notification webhook %s failed: %s", self.url, e)
            return False

    async def notify_job_outcome(self, job: CronJob, outcome: ExecutionOutcome) -> bool:
        document: Dict[str, Any] = {
            "type": "job_outcome",
            "subject": outcome_subject(job, outcome),
            "recipients": job.notification_recipients,
            "job": {
                "id": job.id,
                "name": job.name,
                "type": job.job_type.value,
                "schedule": job.schedule,
                "task": job.task_identifier,
            },
            "status": outcome.status.value,
            "trigger": outcome.trigger.value,
            "executed_at": outcome.finished_at,
            "duration_ms": outcome.duration_ms,
        }
        if outcome.succeeded:
            document["result"] = outcome.result
        elif outcome.error is not None:
            document["error"] = outcome.error.model_dump()
        return await self._post(document)

    async def notify_system_alert(self, kind: str, message: str, details: Optional[Dict[str, Any]] = None) -> bool:
        if not self.admin_recipients:
            logger.info("No admin recipients configured for system alerts")
            return False
        return await self._post({
            "type": "system_alert",
            "subject": alert_subject(kind),
            "recipients": self.admin_recipients,
            "message": message,
            "details": details or {},
        })
