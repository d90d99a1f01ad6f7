import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo

from pydantic import BaseModel, Field, field_validator

from .outcome import ExecutionOutcome, ExecutionStatus

DEFAULT_TIMEOUT_MS = 300_000
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY_MS = 5_000

# Fields a caller may change after creation; execution statistics are owned by the engine.
EDITABLE_FIELDS = frozenset({
    "name", "description", "schedule", "job_type", "task_identifier", "config",
    "is_active", "timeout_ms", "max_retries", "retry_delay_ms", "priority", "tags",
    "notify_on_success", "notify_on_failure", "notification_recipients",
})


def utc_now() -> datetime:
    return datetime.now(ZoneInfo("UTC"))


class JobType(str, Enum):
    CLEANUP = "cleanup"
    BACKUP = "backup"
    ANALYTICS = "analytics"
    MAINTENANCE = "maintenance"
    NOTIFICATION = "notification"
    SYNC = "sync"
    OTHER = "other"


class LastError(BaseModel):
    message: str
    stack: Optional[str] = None
    timestamp: datetime = Field(default_factory=utc_now)


class CronJob(BaseModel):
    """
    A persisted definition of a recurring task together with its execution statistics.

    The schedule is stored as given; it is validated by the engine before the job is (re)scheduled,
    so a stored definition may carry an expression the scheduler refuses.
    """
    id: str = Field(default_factory=lambda: f"cron_{uuid.uuid4().hex[:12]}", description="Unique job identifier")
    name: str = Field(..., min_length=3, max_length=100, description="Unique human readable job name")
    description: Optional[str] = Field(None, max_length=500)
    schedule: str = Field(..., description="Five-field cron expression evaluated in UTC")
    job_type: JobType = JobType.OTHER
    task_identifier: str = Field(..., min_length=1, description="Key resolved against the task registry")
    config: Dict[str, Any] = Field(default_factory=dict, description="Opaque configuration passed verbatim to the handler")

    is_active: bool = True
    is_running: bool = False

    timeout_ms: int = Field(DEFAULT_TIMEOUT_MS, gt=0)
    # Kept for compatibility with stored definitions; executions are never retried automatically.
    max_retries: int = Field(DEFAULT_MAX_RETRIES, ge=0)
    retry_delay_ms: int = Field(DEFAULT_RETRY_DELAY_MS, ge=0)
    priority: int = Field(5, ge=1, le=10, description="Informational ordering hint, higher is more important")
    tags: List[str] = Field(default_factory=list)

    execution_count: int = 0
    success_count: int = 0
    failure_count: int = 0
    last_executed_at: Optional[datetime] = None
    last_execution_status: Optional[ExecutionStatus] = None
    last_execution_duration_ms: int = 0
    last_execution_result: Optional[Any] = None
    last_error: Optional[LastError] = None
    next_execution_at: Optional[datetime] = None

    notify_on_success: bool = False
    notify_on_failure: bool = True
    notification_recipients: List[str] = Field(default_factory=list)

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator("name", "task_identifier")
    @classmethod
    def strip_text(cls, v: str) -> str:
        return v.strip()

    @field_validator("created_at", "updated_at", "last_executed_at", "next_execution_at")
    @classmethod
    def check_timezone(cls, v: Optional[datetime]) -> Optional[datetime]:
        # SQLite discards timezone information; every stored instant is UTC.
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=ZoneInfo("UTC"))
        return v

    @field_validator("tags")
    @classmethod
    def check_tags(cls, v: List[str]) -> List[str]:
        tags = [tag.strip() for tag in v]
        for tag in tags:
            if len(tag) > 30:
                raise ValueError(f"Tag '{tag}' is longer than 30 characters")
        return tags

    @property
    def success_rate(self) -> float:
        if self.execution_count == 0:
            return 0.0
        return round(self.success_count / self.execution_count * 100, 2)

    @property
    def failure_rate(self) -> float:
        if self.execution_count == 0:
            return 0.0
        return round(self.failure_count / self.execution_count * 100, 2)

    def should_notify(self, status: ExecutionStatus) -> bool:
        if not self.notification_recipients:
            return False
        if status.is_success:
            return self.notify_on_success
        return self.notify_on_failure

    def apply_outcome(self, outcome: ExecutionOutcome) -> None:
        """
        Fold one finished execution into the statistics and clear the running flag.
        """
        self.last_executed_at = outcome.finished_at
        self.last_execution_status = outcome.status
        self.last_execution_duration_ms = outcome.duration_ms
        self.last_execution_result = outcome.result
        self.execution_count += 1

        if outcome.status.is_success:
            self.success_count += 1
            self.last_error = None
        else:
            self.failure_count += 1
            if outcome.error is not None:
                self.last_error = LastError(
                    message=outcome.error.message,
                    stack=outcome.error.stack,
                    timestamp=outcome.finished_at,
                )

        self.is_running = False
        self.updated_at = utc_now()
