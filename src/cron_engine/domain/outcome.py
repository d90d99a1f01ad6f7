from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class ExecutionStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"

    @property
    def is_success(self) -> bool:
        return self is ExecutionStatus.SUCCESS


class TriggerSource(str, Enum):
    TIMER = "timer"
    MANUAL = "manual"


class ExecutionError(BaseModel):
    message: str = Field(..., description="Human readable error message")
    stack: Optional[str] = Field(None, description="Formatted traceback, when one was captured")


class ExecutionOutcome(BaseModel):
    """
    The classification and measurements of one finished execution.
    """
    job_id: str = Field(..., description="Identifier of the executed job")
    status: ExecutionStatus
    trigger: TriggerSource = TriggerSource.TIMER
    started_at: datetime
    finished_at: datetime
    duration_ms: int = Field(..., ge=0, description="Wall-clock duration in milliseconds")
    result: Optional[Any] = None
    error: Optional[ExecutionError] = None

    @property
    def succeeded(self) -> bool:
        return self.status.is_success
