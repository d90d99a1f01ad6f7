from .job import CronJob, JobType, LastError
from .outcome import ExecutionError, ExecutionOutcome, ExecutionStatus, TriggerSource

__all__ = ["CronJob", "JobType", "LastError", "ExecutionError", "ExecutionOutcome", "ExecutionStatus", "TriggerSource"]
