from typing import Any, Dict, Protocol


class TaskHandler(Protocol):
    """
    Protocol class for task handlers.

    A handler performs the work named by a job's ``task_identifier``. It receives the job's
    configuration verbatim and returns an opaque, JSON-friendly result or raises on failure.
    """

    async def async_execute(self, config: Dict[str, Any]) -> Any:
        """
        Asynchronously run the task.

        Args:
            config (Dict[str, Any]): The job configuration.

        Returns:
            Any: The task result, recorded as the job's last execution result.
        """
        ...

    @staticmethod
    def task_identifier() -> str:
        """
        Return the identifier this handler is registered under.
        """
        ...
