import logging
from typing import Any, Dict, List, Optional, Union

from cron_engine.config import Settings, settings as default_settings
from cron_engine.coordinator import ExecutionCoordinator
from cron_engine.cron import next_fire_time, validate_schedule
from cron_engine.domain.job import EDITABLE_FIELDS, CronJob
from cron_engine.domain.outcome import ExecutionOutcome
from cron_engine.errors import (
    AlreadyRunningError,
    DuplicateJobNameError,
    InvalidScheduleError,
    JobNotFoundError,
    JobRunningError,
)
from cron_engine.notifiers.composite import CompositeNotifier
from cron_engine.notifiers.log import LoggingNotifier
from cron_engine.notifiers.protocol import Notifier
from cron_engine.notifiers.webhook import WebhookNotifier
from cron_engine.scheduler import Clock, CronScheduler
from cron_engine.storages.protocol import JobStore
from cron_engine.storages.sqlalchemy import SqlAlchemyJobStore
from cron_engine.task_registry import TaskRegistry, default_registry

logger = logging.getLogger(__name__)


class CronJobEngine:
    """
    The surface the HTTP layer talks to: job lifecycle, scheduling and manual triggers.

    One instance owns the timer table and the single-flight table; construct it at startup and
    pass it to whatever needs it.
    """

    def __init__(
        self,
        store: JobStore,
        registry: TaskRegistry,
        notifier: Optional[Notifier] = None,
        *,
        clock: Optional[Clock] = None,
        default_timeout_ms: Optional[int] = None,
        default_max_retries: Optional[int] = None,
        default_retry_delay_ms: Optional[int] = None,
        shutdown_grace_seconds: float = 5.0,
    ):
        self.store: JobStore = store
        self.registry: TaskRegistry = registry
        self.notifier: Notifier = notifier or LoggingNotifier()
        self.coordinator = ExecutionCoordinator(store, registry, self.notifier)
        self.scheduler = CronScheduler(self.coordinator.execute, self.notifier, clock=clock)
        self._defaults: Dict[str, Optional[int]] = {
            "timeout_ms": default_timeout_ms,
            "max_retries": default_max_retries,
            "retry_delay_ms": default_retry_delay_ms,
        }
        self.shutdown_grace_seconds = shutdown_grace_seconds
        self.is_started: bool = False

    # -- Lifecycle -------------------------------------------------------------

    async def initialize(self) -> int:
        """
        Load every active job from the store and schedule it. Returns the number of scheduled jobs.
        """
        try:
            jobs = await self.store.list_active()
        except Exception as e:
            logger.exception("Failed to initialize cron job engine")
            await self._alert("Cron Service Initialization Failed", str(e), {"error": repr(e)})
            raise

        for job in jobs:
            if job.task_identifier not in self.registry:
                logger.warning("Job %s (%s) references unknown task '%s'", job.name, job.id, job.task_identifier)

        await self.scheduler.refresh_all(jobs)
        await self._persist_next_runs(jobs)
        self.is_started = True
        scheduled = len(self.scheduler.status())
        logger.info("Cron job engine initialized with %d job(s)", scheduled)
        return scheduled

    async def start(self) -> int:
        return await self.initialize()

    async def stop(self) -> None:
        """
        Stop every timer, give in-flight executions the grace period to finish, then cancel
        whatever is still running, including handlers that outlived their timeout.
        """
        await self.scheduler.stop(self.shutdown_grace_seconds)
        await self.coordinator.shutdown()
        self.is_started = False
        logger.info("Cron job engine stopped")

    # -- Scheduling ------------------------------------------------------------

    async def schedule_job(self, job: CronJob) -> bool:
        """
        (Re)install the timer for a job definition.

        Returns:
            bool: True if a timer is now running for the job.

        Raises:
            InvalidScheduleError: If the schedule is malformed; any previous timer is removed and a
                system alert is sent.
        """
        try:
            next_run = self.scheduler.schedule(job)
        except InvalidScheduleError as e:
            logger.error("Failed to schedule job %s: %s", job.name, e)
            await self._alert("Job Scheduling Failed", f"Failed to schedule job: {job.name}",
                              {"job_id": job.id, "schedule": job.schedule, "error": str(e)})
            raise
        if next_run is not None:
            await self.store.update(job.id, {"next_execution_at": next_run})
        return next_run is not None

    def unschedule_job(self, job_id: str) -> bool:
        return self.scheduler.unschedule(job_id)

    async def refresh_all(self) -> List[str]:
        """
        Make the timer set mirror the store's active jobs. Returns ids of jobs that failed to schedule.
        """
        jobs = await self.store.list_active()
        failed = await self.scheduler.refresh_all(jobs)
        await self._persist_next_runs(jobs)
        return failed

    async def execute_manual(self, job_id: str) -> Union[ExecutionOutcome, AlreadyRunningError]:
        return await self.coordinator.execute_manual(job_id)

    def status(self) -> Dict[str, List[str]]:
        return {
            "scheduled_job_ids": sorted(self.scheduler.status()),
            "running_job_ids": sorted(self.coordinator.running_job_ids),
        }

    # -- Job lifecycle ---------------------------------------------------------

    async def create_job(self, job: CronJob) -> CronJob:
        """
        Validate and persist a new job definition, scheduling it when active.

        Raises:
            InvalidScheduleError: If the schedule is malformed.
            DuplicateJobNameError: If another job already uses the name.
            InvalidConfigError: If the config does not match the task's schema.
        """
        schedule = validate_schedule(job.schedule)
        if await self.store.get_by_name(job.name) is not None:
            raise DuplicateJobNameError(job.name)
        self._check_task(job.task_identifier, job.config)

        overrides: Dict[str, Any] = {
            field: value for field, value in self._defaults.items()
            if value is not None and field not in job.model_fields_set
        }
        data = job.model_dump(include=set(EDITABLE_FIELDS) | {"id", "created_at"})
        data.update(overrides)
        data["schedule"] = schedule
        data["next_execution_at"] = next_fire_time(schedule, self.scheduler.now())
        new_job = CronJob.model_validate(data)

        await self.store.create(new_job)
        logger.info("Created cron job: %s (%s)", new_job.name, new_job.id)
        if new_job.is_active:
            await self.schedule_job(new_job)
        return new_job

    async def update_job(self, job_id: str, patch: Dict[str, Any]) -> CronJob:
        """
        Apply a partial update to a job definition. Not allowed while the job is running.
        A schedule or activation change re-registers the timer.
        """
        job = await self.get_job(job_id)
        if job.is_running or self.coordinator.is_running(job_id):
            raise JobRunningError(job_id, "update")

        unknown = set(patch) - EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"Field(s) cannot be updated: {', '.join(sorted(unknown))}")

        patch = dict(patch)
        if "schedule" in patch:
            patch["schedule"] = validate_schedule(patch["schedule"])
            patch["next_execution_at"] = next_fire_time(patch["schedule"], self.scheduler.now())
        if "name" in patch and patch["name"] != job.name:
            existing = await self.store.get_by_name(patch["name"])
            if existing is not None and existing.id != job_id:
                raise DuplicateJobNameError(patch["name"])
        if "task_identifier" in patch or "config" in patch:
            self._check_task(patch.get("task_identifier", job.task_identifier), patch.get("config", job.config))

        updated = await self.store.update(job_id, patch)
        if updated is None:
            raise JobNotFoundError(job_id)
        logger.info("Updated cron job: %s (%s)", updated.name, updated.id)

        if "schedule" in patch or "is_active" in patch:
            await self._sync_timer(updated)
        return updated

    async def activate_job(self, job_id: str) -> CronJob:
        return await self._set_active(job_id, True)

    async def deactivate_job(self, job_id: str) -> CronJob:
        return await self._set_active(job_id, False)

    async def delete_job(self, job_id: str) -> bool:
        job = await self.get_job(job_id)
        if job.is_running or self.coordinator.is_running(job_id):
            raise JobRunningError(job_id, "delete")
        self.scheduler.unschedule(job_id)
        deleted = await self.store.delete(job_id)
        if deleted:
            logger.info("Deleted cron job: %s (%s)", job.name, job_id)
        return deleted

    async def get_job(self, job_id: str) -> CronJob:
        job = await self.store.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    async def list_jobs(self, limit: int = 100, offset: int = 0) -> List[CronJob]:
        return await self.store.list_jobs(limit, offset)

    async def stats(self) -> Dict[str, Any]:
        stats = await self.store.stats()
        stats["scheduled"] = len(self.scheduler.status())
        return stats

    # -- Internal --------------------------------------------------------------

    async def _set_active(self, job_id: str, is_active: bool) -> CronJob:
        updated = await self.store.update(job_id, {"is_active": is_active})
        if updated is None:
            raise JobNotFoundError(job_id)
        logger.info("%s cron job: %s (%s)", "Activated" if is_active else "Deactivated", updated.name, job_id)
        await self._sync_timer(updated)
        return updated

    async def _sync_timer(self, job: CronJob) -> None:
        if job.is_active:
            try:
                await self.schedule_job(job)
            except InvalidScheduleError:
                # Already alerted.
                logger.warning("Job %s stays active but unscheduled until its schedule is corrected", job.name)
        else:
            self.scheduler.unschedule(job.id)

    def _check_task(self, task_identifier: str, config: Dict[str, Any]) -> None:
        if task_identifier not in self.registry:
            logger.warning("Task '%s' is not registered; executions will fail until it is", task_identifier)
            return
        self.registry.validate_config(task_identifier, config)

    async def _persist_next_runs(self, jobs: List[CronJob]) -> None:
        for job in jobs:
            next_run = self.scheduler.next_run_time(job.id)
            if next_run is None:
                continue
            try:
                await self.store.update(job.id, {"next_execution_at": next_run})
            except Exception:
                logger.exception("Failed to store next execution time of job %s", job.id)

    async def _alert(self, kind: str, message: str, details: Dict[str, Any]) -> None:
        try:
            await self.notifier.notify_system_alert(kind, message, details)
        except Exception:
            logger.exception("Failed to send system alert '%s'", kind)


async def build_engine(
    config: Optional[Settings] = None,
    registry: Optional[TaskRegistry] = None,
    notifier: Optional[Notifier] = None,
) -> CronJobEngine:
    """
    Wire an engine from settings: SQL job store (tables created), registry and notifiers.
    """
    config = config or default_settings
    store = SqlAlchemyJobStore(config.database_url)
    await store.create_tables()

    if notifier is None:
        notifiers: List[Notifier] = [LoggingNotifier()]
        if config.alert_webhook_url:
            notifiers.append(WebhookNotifier(config.alert_webhook_url, config.get_admin_recipients()))
        notifier = notifiers[0] if len(notifiers) == 1 else CompositeNotifier(notifiers)

    return CronJobEngine(
        store,
        registry or default_registry(),
        notifier,
        default_timeout_ms=config.default_timeout_ms,
        default_max_retries=config.default_max_retries,
        default_retry_delay_ms=config.default_retry_delay_ms,
        shutdown_grace_seconds=config.shutdown_grace_seconds,
    )
