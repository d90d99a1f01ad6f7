import asyncio
import logging
import time
import traceback
from datetime import datetime
from typing import Any, Dict, List, Optional, Set, Tuple, Union

from cron_engine.domain.job import CronJob, utc_now
from cron_engine.domain.outcome import ExecutionError, ExecutionOutcome, ExecutionStatus, TriggerSource
from cron_engine.errors import (
    AlreadyRunningError,
    HandlerError,
    JobInactiveError,
    JobNotFoundError,
    JobTimeoutError,
    UnknownTaskError,
)
from cron_engine.notifiers.protocol import Notifier
from cron_engine.storages.protocol import JobStore
from cron_engine.task_registry import TaskRegistry

logger = logging.getLogger(__name__)

_Invocation = Tuple[ExecutionStatus, Any, Optional[ExecutionError]]


def _describe(exc: BaseException) -> ExecutionError:
    if isinstance(exc, HandlerError):
        stack = exc.stack or "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        return ExecutionError(message=exc.message, stack=stack)
    message = str(exc) or type(exc).__name__
    return ExecutionError(
        message=message,
        stack="".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
    )


class ExecutionCoordinator:
    """
    Runs jobs: decides whether an execution may start, races the handler against the job's
    timeout, records the outcome and dispatches notifications.

    At most one execution per job id is in flight. The in-memory running table is the
    authoritative guard; the persisted ``is_running`` flag only mirrors it for outside observers.

    Timeouts are not preemptive: when the deadline passes the coordinator stops waiting and records
    a ``timeout`` outcome, but the handler keeps running in the background until it finishes on its
    own. Such handlers are only cancelled by :meth:`shutdown`.
    """

    def __init__(self, store: JobStore, registry: TaskRegistry, notifier: Notifier):
        self._store = store
        self._registry = registry
        self._notifier = notifier
        self._running: Dict[str, datetime] = {}
        self._lock = asyncio.Lock()
        self._overdue: Set[asyncio.Future] = set()

    @property
    def running_job_ids(self) -> List[str]:
        return list(self._running)

    def is_running(self, job_id: str) -> bool:
        return job_id in self._running

    async def execute(self, job_id: str) -> Optional[ExecutionOutcome]:
        """
        Timer entry point. Never raises for execution problems; a fire that lands while the job is
        already running is dropped.
        """
        try:
            return await self._run(job_id, TriggerSource.TIMER)
        except AlreadyRunningError:
            logger.warning("Job %s is already running, skipping execution", job_id)
        except JobInactiveError:
            logger.info("Skipping inactive job: %s", job_id)
        except JobNotFoundError:
            logger.error("Scheduled job not found: %s", job_id)
        except Exception as e:
            # Store failures while loading were already logged and alerted.
            logger.error("Execution of job %s aborted: %s", job_id, e)
        return None

    async def execute_manual(self, job_id: str) -> Union[ExecutionOutcome, AlreadyRunningError]:
        """
        On-demand entry point.

        Returns:
            The execution outcome, or an ``AlreadyRunningError`` instance when the job is in flight.

        Raises:
            JobNotFoundError: If the job does not exist.
            JobInactiveError: If the job is not active.
        """
        try:
            return await self._run(job_id, TriggerSource.MANUAL)
        except AlreadyRunningError as e:
            logger.warning("Manual trigger rejected: %s", e)
            return e

    async def shutdown(self) -> None:
        """
        Cancel handlers that outlived their timeout.
        """
        overdue = list(self._overdue)
        for future in overdue:
            future.cancel()
        await asyncio.gather(*overdue, return_exceptions=True)

    async def _run(self, job_id: str, trigger: TriggerSource) -> ExecutionOutcome:
        job = await self._load(job_id)

        async with self._lock:
            if job_id in self._running:
                raise AlreadyRunningError(job_id)
            if not job.is_active:
                raise JobInactiveError(job_id)
            self._running[job_id] = utc_now()

        try:
            return await self._run_guarded(job, trigger)
        finally:
            self._running.pop(job_id, None)

    async def _load(self, job_id: str) -> CronJob:
        try:
            job = await self._store.get(job_id)
        except Exception as e:
            logger.exception("Failed to load job %s", job_id)
            await self._alert("Job Store Unavailable", f"Failed to load job {job_id}",
                              {"job_id": job_id, "error": str(e)})
            raise
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    async def _run_guarded(self, job: CronJob, trigger: TriggerSource) -> ExecutionOutcome:
        started_at = utc_now()
        started = time.monotonic()

        try:
            await self._mark_running(job)
            logger.info("Executing job: %s (%s) task=%s trigger=%s", job.name, job.id, job.task_identifier,
                        trigger.value)
            status, result, error = await self._invoke(job)
        except asyncio.CancelledError:
            outcome = self._outcome(job, trigger, started_at, started, ExecutionStatus.CANCELLED, None,
                                    ExecutionError(message="Execution cancelled"))
            logger.warning("Job cancelled: %s after %dms", job.name, outcome.duration_ms)
            await self._record(job, outcome)
            raise

        outcome = self._outcome(job, trigger, started_at, started, status, result, error)
        if outcome.succeeded:
            logger.info("Job completed: %s (%dms)", job.name, outcome.duration_ms)
        else:
            logger.warning("Job %s: %s (%dms) %s", outcome.status.value, job.name, outcome.duration_ms,
                           error.message if error else "")

        recorded = await self._record(job, outcome)
        await self._notify(recorded or job, outcome)
        return outcome

    async def _mark_running(self, job: CronJob) -> None:
        try:
            await self._store.set_running(job.id, True)
        except Exception as e:
            logger.exception("Failed to mark job %s as running", job.id)
            await self._alert("Job Store Unavailable", f"Failed to mark job {job.name} as running",
                              {"job_id": job.id, "error": str(e)})

    async def _invoke(self, job: CronJob) -> _Invocation:
        try:
            handler = self._registry.resolve(job.task_identifier)
        except UnknownTaskError as e:
            return ExecutionStatus.FAILURE, None, _describe(e)

        try:
            invocation = asyncio.ensure_future(handler.async_execute(dict(job.config)))
        except Exception as e:
            return ExecutionStatus.FAILURE, None, _describe(e)

        try:
            done, _ = await asyncio.wait({invocation}, timeout=job.timeout_ms / 1000)
        except asyncio.CancelledError:
            invocation.cancel()
            raise

        if invocation not in done:
            self._track_overdue(job, invocation)
            return ExecutionStatus.TIMEOUT, None, ExecutionError(message=str(JobTimeoutError(job.timeout_ms)))
        if invocation.cancelled():
            return ExecutionStatus.CANCELLED, None, ExecutionError(message="Handler was cancelled")
        exc = invocation.exception()
        if exc is not None:
            return ExecutionStatus.FAILURE, None, _describe(exc)
        return ExecutionStatus.SUCCESS, invocation.result(), None

    def _track_overdue(self, job: CronJob, invocation: asyncio.Future) -> None:
        self._overdue.add(invocation)

        def finished(future: asyncio.Future) -> None:
            self._overdue.discard(future)
            if future.cancelled():
                logger.info("Overdue handler for job %s was cancelled", job.name)
            elif future.exception() is not None:
                logger.info("Overdue handler for job %s finished late with error: %s", job.name, future.exception())
            else:
                logger.info("Overdue handler for job %s finished late", job.name)

        invocation.add_done_callback(finished)

    def _outcome(
        self,
        job: CronJob,
        trigger: TriggerSource,
        started_at: datetime,
        started: float,
        status: ExecutionStatus,
        result: Any,
        error: Optional[ExecutionError],
    ) -> ExecutionOutcome:
        return ExecutionOutcome(
            job_id=job.id,
            status=status,
            trigger=trigger,
            started_at=started_at,
            finished_at=utc_now(),
            duration_ms=int((time.monotonic() - started) * 1000),
            result=result,
            error=error,
        )

    async def _record(self, job: CronJob, outcome: ExecutionOutcome) -> Optional[CronJob]:
        try:
            return await self._store.record_execution(job.id, outcome)
        except Exception as e:
            logger.exception("Failed to record execution of job %s", job.name)
            await self._alert("Job Store Unavailable", f"Failed to record execution of job {job.name}",
                              {"job_id": job.id, "status": outcome.status.value, "error": str(e)})
        try:
            await self._store.set_running(job.id, False)
        except Exception:
            logger.exception("Failed to clear running flag of job %s", job.name)
        return None

    async def _notify(self, job: CronJob, outcome: ExecutionOutcome) -> None:
        if not job.should_notify(outcome.status):
            return
        try:
            await self._notifier.notify_job_outcome(job, outcome)
        except Exception:
            logger.exception("Failed to send %s notification for job %s", outcome.status.value, job.name)

    async def _alert(self, kind: str, message: str, details: Dict[str, Any]) -> None:
        try:
            await self._notifier.notify_system_alert(kind, message, details)
        except Exception:
            logger.exception("Failed to send system alert '%s'", kind)
