from typing import Any, Dict, List, Optional, Protocol

from cron_engine.domain.job import CronJob
from cron_engine.domain.outcome import ExecutionOutcome


class JobStore(Protocol):
    """
    Durable record of job definitions and their execution statistics.
    Every call is atomic from the engine's point of view.
    """

    async def get(self, job_id: str) -> Optional[CronJob]:
        """Retrieve a job by its ID."""
        ...

    async def get_by_name(self, name: str) -> Optional[CronJob]:
        """Retrieve a job by its unique name."""
        ...

    async def list_jobs(self, limit: int = 100, offset: int = 0) -> List[CronJob]:
        """List jobs with pagination, highest priority first."""
        ...

    async def list_active(self) -> List[CronJob]:
        """List every job with is_active set."""
        ...

    async def create(self, job: CronJob) -> str:
        """Persist a new job definition and return its ID."""
        ...

    async def update(self, job_id: str, patch: Dict[str, Any]) -> Optional[CronJob]:
        """Apply a partial update. Return the updated job, or None if it does not exist."""
        ...

    async def delete(self, job_id: str) -> bool:
        """Delete a job by its ID. Return True if successful, False otherwise."""
        ...

    async def set_running(self, job_id: str, is_running: bool) -> bool:
        """Set the persisted is_running flag. Return True if the job exists."""
        ...

    async def record_execution(self, job_id: str, outcome: ExecutionOutcome) -> Optional[CronJob]:
        """Fold an execution outcome into the job's statistics and clear is_running."""
        ...

    async def stats(self) -> Dict[str, Any]:
        """Aggregate counts across all jobs."""
        ...
