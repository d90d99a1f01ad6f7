import asyncio
from typing import Any, Dict, Type
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from pydantic import BaseModel

from cron_engine.domain.job import CronJob
from cron_engine.engine import CronJobEngine
from cron_engine.errors import HandlerError
from cron_engine.handlers.builtin import NoopConfig, NoopHandler
from cron_engine.handlers.protocol import TaskHandler
from cron_engine.storages.sqlalchemy import InMemoryJobStore
from cron_engine.task_registry import TaskRegistry


class EmptyConfig(BaseModel):
    pass


class SlowConfig(BaseModel):
    seconds: float = 0.2


class ExplodingHandler(TaskHandler):
    @staticmethod
    def task_identifier() -> str:
        return "explode"

    async def async_execute(self, config: Dict[str, Any]) -> Any:
        raise HandlerError("boom")


class CrashingHandler(TaskHandler):
    @staticmethod
    def task_identifier() -> str:
        return "crash"

    async def async_execute(self, config: Dict[str, Any]) -> Any:
        raise RuntimeError("unexpected crash")


class HangingHandler(TaskHandler):
    @staticmethod
    def task_identifier() -> str:
        return "hang"

    async def async_execute(self, config: Dict[str, Any]) -> Any:
        await asyncio.Event().wait()


class SlowHandler(TaskHandler):
    calls = 0

    @staticmethod
    def task_identifier() -> str:
        return "slow"

    async def async_execute(self, config: Dict[str, Any]) -> Any:
        SlowHandler.calls += 1
        await asyncio.sleep(config.get("seconds", 0.2))
        return {"slept": config.get("seconds", 0.2)}


@pytest.fixture(scope="function")
def schemas() -> Dict[str, Type[BaseModel]]:
    return {
        "noop": NoopConfig,
        "explode": EmptyConfig,
        "crash": EmptyConfig,
        "hang": EmptyConfig,
        "slow": SlowConfig,
    }


@pytest.fixture(scope="function")
def registry(schemas: Dict[str, Type[BaseModel]]) -> TaskRegistry:
    SlowHandler.calls = 0
    registry = TaskRegistry(schemas)
    for handler in (NoopHandler, ExplodingHandler, CrashingHandler, HangingHandler, SlowHandler):
        registry.register(handler)
    return registry


@pytest_asyncio.fixture(scope="function")
async def store():
    store = InMemoryJobStore()
    await store.create_tables()
    yield store
    await store.dispose()


@pytest.fixture(scope="function")
def notifier() -> AsyncMock:
    notifier = AsyncMock()
    notifier.notify_job_outcome = AsyncMock(return_value=None)
    notifier.notify_system_alert = AsyncMock(return_value=None)
    return notifier


@pytest_asyncio.fixture(scope="function")
async def engine(store, registry, notifier):
    engine = CronJobEngine(store, registry, notifier, shutdown_grace_seconds=0)
    yield engine
    await engine.stop()


def make_job(**kwargs: Any) -> CronJob:
    defaults: Dict[str, Any] = {
        "name": "Noop Job",
        "schedule": "0 0 * * *",
        "task_identifier": "noop",
    }
    defaults.update(kwargs)
    return CronJob(**defaults)


@pytest.fixture(scope="function")
def job_factory():
    return make_job


@pytest.fixture(scope="function")
def slow_handler():
    return SlowHandler
