"""
Cron Job Engine

This module defines the core concepts and components of a cron-driven job execution engine.

Core Concepts:

CronJob:
    A persisted definition of recurring work: a five-field cron schedule (evaluated in UTC), the
    identifier of the task to run, its configuration and its execution statistics.

Task handler:
    The pluggable code behind a task identifier. Handlers are registered in a TaskRegistry;
    the engine never knows what a task does.

Execution:
    One run of a job's handler, triggered by its timer or manually. Every execution ends in an
    ExecutionOutcome (success, failure, timeout or cancelled) that is folded into the job's
    statistics and may be sent to the job's notification recipients.

Relationships:
    - A CronJob has at most one execution in flight at any time.
    - The CronJobEngine owns the scheduler (timers) and the coordinator (executions).
"""

from cron_engine.domain import CronJob, ExecutionOutcome, ExecutionStatus, JobType, TriggerSource
from cron_engine.engine import CronJobEngine, build_engine
from cron_engine.errors import (
    AlreadyRunningError,
    CronEngineError,
    DuplicateJobNameError,
    HandlerError,
    InvalidConfigError,
    InvalidScheduleError,
    JobInactiveError,
    JobNotFoundError,
    JobRunningError,
    JobTimeoutError,
    UnknownTaskError,
)
from cron_engine.task_registry import TaskRegistry, default_registry

__all__ = [
    "CronJob",
    "CronJobEngine",
    "ExecutionOutcome",
    "ExecutionStatus",
    "JobType",
    "TaskRegistry",
    "TriggerSource",
    "build_engine",
    "default_registry",
    "AlreadyRunningError",
    "CronEngineError",
    "DuplicateJobNameError",
    "HandlerError",
    "InvalidConfigError",
    "InvalidScheduleError",
    "JobInactiveError",
    "JobNotFoundError",
    "JobRunningError",
    "JobTimeoutError",
    "UnknownTaskError",
]
