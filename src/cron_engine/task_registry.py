import logging
from typing import Any, Dict, List, Type

from pydantic import BaseModel, ValidationError

from cron_engine.errors import InvalidConfigError, UnknownTaskError
from cron_engine.handlers.protocol import TaskHandler

logger = logging.getLogger(__name__)


class TaskRegistry:
    """
    Closed-world lookup from task identifier to handler.

    The registry is built from a mapping of task identifiers to the pydantic model describing the
    configuration each task accepts. Handler classes are then registered against those identifiers.
    """
    def __init__(self, schemas: Dict[str, Type[BaseModel]]):
        self._schemas: Dict[str, Type[BaseModel]] = dict(schemas)
        self._handlers: Dict[str, Type[TaskHandler]] = {}

    @property
    def task_identifiers(self) -> List[str]:
        return list(self._handlers)

    def __contains__(self, task_identifier: str) -> bool:
        return task_identifier in self._handlers

    def register(self, handler_class: Type[TaskHandler]) -> None:
        """
        Register a handler class for the task identifier it declares.

        Args:
            handler_class (Type[TaskHandler]): The handler class to register.

        Raises:
            ValueError: If the identifier has no schema or already has a handler.
        """
        task_identifier: str = handler_class.task_identifier()
        if task_identifier not in self._schemas:
            raise ValueError(f"Task '{task_identifier}' is not supported")
        if task_identifier in self._handlers:
            raise ValueError(f"A handler for task '{task_identifier}' is already registered")
        self._handlers[task_identifier] = handler_class
        logger.debug("Registered handler %s for task '%s'", handler_class.__name__, task_identifier)

    def validate_config(self, task_identifier: str, config: Dict[str, Any]) -> BaseModel:
        """
        Validate a job configuration against the task's schema.

        Raises:
            UnknownTaskError: If no handler is registered for the identifier.
            InvalidConfigError: If the configuration does not match the schema.
        """
        if task_identifier not in self._handlers:
            raise UnknownTaskError(task_identifier)
        schema_class = self._schemas[task_identifier]
        try:
            return schema_class.model_validate(config)
        except ValidationError as e:
            raise InvalidConfigError(f"Invalid config for task '{task_identifier}': {e}") from e

    def resolve(self, task_identifier: str) -> TaskHandler:
        """
        Get a handler instance for a task identifier.

        Returns:
            TaskHandler: A fresh instance of the registered handler.

        Raises:
            UnknownTaskError: If no handler is registered for the identifier.
        """
        handler_class = self._handlers.get(task_identifier)
        if handler_class is None:
            raise UnknownTaskError(task_identifier)
        return handler_class()


def default_registry() -> TaskRegistry:
    """
    Build a registry holding the generic built-in handlers.
    """
    from cron_engine.handlers.builtin import CleanupConfig, CleanupOldFilesHandler, NoopConfig, NoopHandler
    from cron_engine.handlers.http import HttpRequestConfig, HttpRequestHandler

    registry = TaskRegistry({
        NoopHandler.task_identifier(): NoopConfig,
        HttpRequestHandler.task_identifier(): HttpRequestConfig,
        CleanupOldFilesHandler.task_identifier(): CleanupConfig,
    })
    registry.register(NoopHandler)
    registry.register(HttpRequestHandler)
    registry.register(CleanupOldFilesHandler)
    return registry
