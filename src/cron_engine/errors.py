from typing import Optional


class CronEngineError(Exception):
    """
    Base class for every error raised by the engine.
    """


class InvalidScheduleError(CronEngineError, ValueError):
    def __init__(self, expression: str, reason: str):
        self.expression = expression
        self.reason = reason
        super().__init__(f"Invalid cron schedule '{expression}': {reason}")


class UnknownTaskError(CronEngineError, KeyError):
    def __init__(self, task_identifier: str):
        self.task_identifier = task_identifier
        super().__init__(task_identifier)

    def __str__(self) -> str:
        return f"Unknown task function: {self.task_identifier}"


class InvalidConfigError(CronEngineError, ValueError):
    pass


class HandlerError(CronEngineError):
    """
    Raised by (or wrapped around) a task handler failure.

    Attributes:
        stack (Optional[str]): Formatted traceback of the original exception, when available.
    """

    def __init__(self, message: str, stack: Optional[str] = None):
        self.message = message
        self.stack = stack
        super().__init__(message)


class JobTimeoutError(CronEngineError, TimeoutError):
    def __init__(self, timeout_ms: int):
        self.timeout_ms = timeout_ms
        super().__init__(f"Job execution timed out after {timeout_ms}ms")


class AlreadyRunningError(CronEngineError):
    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job {job_id} is already running")


class JobNotFoundError(CronEngineError, LookupError):
    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job not found: {job_id}")


class JobInactiveError(CronEngineError):
    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Cannot execute inactive job: {job_id}")


class JobRunningError(CronEngineError):
    def __init__(self, job_id: str, action: str):
        self.job_id = job_id
        super().__init__(f"Cannot {action} job {job_id} while it is running")


class DuplicateJobNameError(CronEngineError, ValueError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Cron job with name '{name}' already exists")
