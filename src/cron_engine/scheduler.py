import asyncio
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Set

from cron_engine.cron import next_fire_time, validate_schedule
from cron_engine.domain.job import CronJob
from cron_engine.errors import InvalidScheduleError
from cron_engine.notifiers.protocol import Notifier

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_clock() -> datetime:
    return datetime.now(timezone.utc)


class CronScheduler:
    """
    Keeps one asyncio timer per active job.

    Each timer sleeps until the next UTC instant matching the job's cron expression and then hands
    the job id to ``on_fire`` in a separate task, so a slow execution never delays the timer.
    Missed instants (e.g. after the host was suspended) are skipped, not replayed.

    The timer table is only touched from the event loop thread, which makes every operation
    here atomic with respect to timer fires and manual triggers.
    """

    def __init__(
        self,
        on_fire: Callable[[str], Awaitable[object]],
        notifier: Optional[Notifier] = None,
        clock: Optional[Clock] = None,
    ):
        self._on_fire = on_fire
        self._notifier = notifier
        self._clock: Clock = clock or utc_clock
        self._timers: Dict[str, asyncio.Task] = {}
        self._next_fire: Dict[str, datetime] = {}
        self._fires: Set[asyncio.Task] = set()

    def schedule(self, job: CronJob) -> Optional[datetime]:
        """
        Install (or replace) the timer for a job.

        Returns:
            Optional[datetime]: The next fire time, or None when the job is inactive and no timer was started.

        Raises:
            InvalidScheduleError: If the job's schedule is malformed. Any existing timer is removed, so the
                job stays unscheduled until its schedule is corrected.
        """
        try:
            expression = validate_schedule(job.schedule)
        except InvalidScheduleError:
            self.unschedule(job.id)
            raise

        if job.id in self._timers:
            self.unschedule(job.id)

        if not job.is_active:
            logger.info("Job %s (%s) is inactive, timer not started", job.name, job.id)
            return None

        next_run = next_fire_time(expression, self._clock())
        self._next_fire[job.id] = next_run
        timer = asyncio.create_task(self._timer_loop(job.id, expression), name=f"cron-timer:{job.id}")
        timer.add_done_callback(lambda t: self._handle_timer_exit(job.id, t))
        self._timers[job.id] = timer
        logger.info("Scheduled job: %s (%s) next run %s", job.name, expression, next_run.isoformat())
        return next_run

    def unschedule(self, job_id: str) -> bool:
        """
        Stop and discard a job's timer. Returns False when no timer was installed.
        """
        timer = self._timers.pop(job_id, None)
        self._next_fire.pop(job_id, None)
        if timer is None:
            return False
        timer.cancel()
        logger.info("Unscheduled job: %s", job_id)
        return True

    async def refresh_all(self, jobs: Iterable[CronJob]) -> List[str]:
        """
        Discard every timer, then schedule each active job.

        A malformed schedule is reported as a system alert and does not prevent other jobs from
        being scheduled.

        Returns:
            List[str]: Ids of active jobs that could not be scheduled.
        """
        for job_id in list(self._timers):
            self.unschedule(job_id)

        failed: List[str] = []
        for job in jobs:
            if not job.is_active:
                continue
            try:
                self.schedule(job)
            except InvalidScheduleError as e:
                failed.append(job.id)
                logger.error("Failed to schedule job %s: %s", job.name, e)
                await self._alert("Job Scheduling Failed", f"Failed to schedule job: {job.name}",
                                  {"job_id": job.id, "schedule": job.schedule, "error": str(e)})
        logger.info("Refreshed %d cron job(s), %d failed", len(self._timers), len(failed))
        return failed

    def now(self) -> datetime:
        return self._clock()

    def status(self) -> Set[str]:
        return {job_id for job_id, timer in self._timers.items() if not timer.done()}

    def next_run_time(self, job_id: str) -> Optional[datetime]:
        return self._next_fire.get(job_id)

    async def stop(self, grace_seconds: float = 0) -> None:
        """
        Cancel every timer, then wait up to ``grace_seconds`` for fired executions.
        Executions still running after the grace period are cancelled.
        """
        timers = list(self._timers.values())
        for job_id in list(self._timers):
            self.unschedule(job_id)
        await asyncio.gather(*timers, return_exceptions=True)

        fires = list(self._fires)
        if not fires:
            return
        if grace_seconds > 0:
            _, pending = await asyncio.wait(fires, timeout=grace_seconds)
        else:
            pending = set(fires)
        for fire in pending:
            fire.cancel()
        await asyncio.gather(*fires, return_exceptions=True)

    async def _timer_loop(self, job_id: str, expression: str) -> None:
        last_fire: Optional[datetime] = None
        while True:
            now = self._clock()
            base = max(last_fire, now) if last_fire else now
            fire_at = next_fire_time(expression, base)
            self._next_fire[job_id] = fire_at
            delay = (fire_at - now).total_seconds()
            if delay > 0:
                await asyncio.sleep(delay)
            last_fire = fire_at
            self._fire(job_id)

    def _fire(self, job_id: str) -> None:
        logger.debug("Timer fired for job %s", job_id)
        fire = asyncio.create_task(self._on_fire(job_id), name=f"cron-fire:{job_id}")
        self._fires.add(fire)
        fire.add_done_callback(self._handle_fire_done)

    def _handle_fire_done(self, fire: asyncio.Task) -> None:
        self._fires.discard(fire)
        if not fire.cancelled() and fire.exception() is not None:
            logger.error("Execution triggered by %s raised", fire.get_name(), exc_info=fire.exception())

    def _handle_timer_exit(self, job_id: str, timer: asyncio.Task) -> None:
        if self._timers.get(job_id) is timer:
            del self._timers[job_id]
            self._next_fire.pop(job_id, None)
        if not timer.cancelled() and timer.exception() is not None:
            logger.error("Timer for job %s stopped unexpectedly", job_id, exc_info=timer.exception())

    async def _alert(self, kind: str, message: str, details: dict) -> None:
        if self._notifier is None:
            return
        try:
            await self._notifier.notify_system_alert(kind, message, details)
        except Exception:
            logger.exception("Failed to send system alert '%s'", kind)
