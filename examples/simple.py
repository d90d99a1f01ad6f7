import asyncio
from typing import Any, Dict
from pydantic import BaseModel, Field
from cron_engine.config import configure_logging
from cron_engine.domain.job import CronJob, JobType
from cron_engine.engine import CronJobEngine
from cron_engine.handlers.builtin import NoopConfig, NoopHandler
from cron_engine.handlers.protocol import TaskHandler
from cron_engine.storages.sqlalchemy import InMemoryJobStore
from cron_engine.task_registry import TaskRegistry

class PrintConfig(BaseModel):
    message: str = Field(..., description="The message to print.")

class PrintHandler(TaskHandler):
    @staticmethod
    def task_identifier() -> str:
        return "print"

    async def async_execute(self, config: Dict[str, Any]) -> Any:
        print(f"Cron says: {config['message']}")
        return {"printed": config["message"]}

# Set up the registry and the engine
schemas = {"print": PrintConfig, "noop": NoopConfig}
registry = TaskRegistry(schemas)
registry.register(PrintHandler)
registry.register(NoopHandler)

async def main():
    configure_logging("INFO")
    store = InMemoryJobStore()
    await store.create_tables()
    engine = CronJobEngine(store, registry, shutdown_grace_seconds=1)
    await engine.start()

    job = await engine.create_job(CronJob(
        name="Every minute greeting",
        schedule="* * * * *",
        job_type=JobType.NOTIFICATION,
        task_identifier="print",
        config={"message": "hello from the scheduler"},
    ))
    print(f"Job created: {job.name}")
    print(f"Next run: {job.next_execution_at}")

    outcome = await engine.execute_manual(job.id)
    print(f"Manual run finished with status {outcome.status.value}: {outcome.result}")

    try:
        # Let the timer fire a couple of times
        await asyncio.sleep(130)
    finally:
        await engine.stop()
        print(await engine.stats())
        await store.dispose()

if __name__ == "__main__":
    asyncio.run(main())
