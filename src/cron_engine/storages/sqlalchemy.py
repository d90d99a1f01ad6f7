import asyncio
import logging
from typing import Any, Dict, List, Optional

from pydantic_core import to_jsonable_python
from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String, func
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.future import select
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from cron_engine.cron import next_fire_time
from cron_engine.domain.job import CronJob, LastError, utc_now
from cron_engine.domain.outcome import ExecutionOutcome, ExecutionStatus
from cron_engine.errors import InvalidScheduleError
from cron_engine.storages.protocol import JobStore

logger = logging.getLogger(__name__)

Base = declarative_base()


class CronJobModel(Base):
    __tablename__ = 'cron_jobs'

    id = Column(String, primary_key=True)
    name = Column(String(100), nullable=False, unique=True)
    description = Column(String(500))
    schedule = Column(String, nullable=False)
    job_type = Column(String, nullable=False, default="other")
    task_identifier = Column(String, nullable=False)
    config = Column(JSON, nullable=False, default=dict)

    is_active = Column(Boolean, default=True, index=True)
    is_running = Column(Boolean, default=False)

    timeout_ms = Column(Integer, nullable=False)
    max_retries = Column(Integer, nullable=False)
    retry_delay_ms = Column(Integer, nullable=False)
    priority = Column(Integer, nullable=False, default=5)
    tags = Column(JSON, nullable=False, default=list)

    execution_count = Column(Integer, nullable=False, default=0)
    success_count = Column(Integer, nullable=False, default=0)
    failure_count = Column(Integer, nullable=False, default=0)
    last_executed_at = Column(DateTime(timezone=True))
    last_execution_status = Column(String)
    last_execution_duration_ms = Column(Integer, nullable=False, default=0)
    last_execution_result = Column(JSON)
    last_error = Column(JSON)
    next_execution_at = Column(DateTime(timezone=True))

    notify_on_success = Column(Boolean, default=False)
    notify_on_failure = Column(Boolean, default=True)
    notification_recipients = Column(JSON, nullable=False, default=list)

    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)


class SqlAlchemyJobStore(JobStore):
    def __init__(self, db_url: str, **engine_kwargs: Any):
        self.engine = create_async_engine(db_url, **engine_kwargs)
        self.async_session = sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False
        )
        # Serialises read-modify-write cycles so concurrent executions never interleave on one row.
        self._write_lock = asyncio.Lock()

    async def create_tables(self):
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self):
        await self.engine.dispose()

    async def get(self, job_id: str) -> Optional[CronJob]:
        async with self.async_session() as session:
            db_job = await self._fetch(session, job_id)
            return self._db_to_job(db_job) if db_job else None

    async def get_by_name(self, name: str) -> Optional[CronJob]:
        async with self.async_session() as session:
            result = await session.execute(select(CronJobModel).filter_by(name=name))
            db_job = result.scalar_one_or_none()
            return self._db_to_job(db_job) if db_job else None

    async def list_jobs(self, limit: int = 100, offset: int = 0) -> List[CronJob]:
        async with self.async_session() as session:
            result = await session.execute(
                select(CronJobModel)
                .order_by(CronJobModel.priority.desc(), CronJobModel.created_at)
                .offset(offset)
                .limit(limit)
            )
            return [self._db_to_job(db_job) for db_job in result.scalars()]

    async def list_active(self) -> List[CronJob]:
        async with self.async_session() as session:
            result = await session.execute(
                select(CronJobModel)
                .filter_by(is_active=True)
                .order_by(CronJobModel.priority.desc(), CronJobModel.created_at)
            )
            return [self._db_to_job(db_job) for db_job in result.scalars()]

    async def create(self, job: CronJob) -> str:
        async with self._write_lock, self.async_session() as session:
            db_job = CronJobModel(id=job.id)
            self._job_to_db(job, db_job)
            session.add(db_job)
            await session.commit()
            return job.id

    async def update(self, job_id: str, patch: Dict[str, Any]) -> Optional[CronJob]:
        async with self._write_lock, self.async_session() as session:
            db_job = await self._fetch(session, job_id)
            if db_job is None:
                return None
            current = self._db_to_job(db_job)
            data = current.model_dump()
            data.update(patch)
            data["updated_at"] = utc_now()
            updated = CronJob.model_validate(data)
            self._job_to_db(updated, db_job)
            await session.commit()
            return updated

    async def delete(self, job_id: str) -> bool:
        async with self._write_lock, self.async_session() as session:
            db_job = await self._fetch(session, job_id)
            if db_job:
                await session.delete(db_job)
                await session.commit()
                return True
            return False

    async def set_running(self, job_id: str, is_running: bool) -> bool:
        async with self._write_lock, self.async_session() as session:
            db_job = await self._fetch(session, job_id)
            if db_job is None:
                return False
            db_job.is_running = is_running
            db_job.updated_at = utc_now()
            await session.commit()
            return True

    async def record_execution(self, job_id: str, outcome: ExecutionOutcome) -> Optional[CronJob]:
        async with self._write_lock, self.async_session() as session:
            db_job = await self._fetch(session, job_id)
            if db_job is None:
                logger.warning("Cannot record execution, job %s no longer exists", job_id)
                return None
            job = self._db_to_job(db_job)
            job.apply_outcome(outcome)
            try:
                job.next_execution_at = next_fire_time(job.schedule, outcome.finished_at)
            except InvalidScheduleError:
                job.next_execution_at = None
            self._job_to_db(job, db_job)
            await session.commit()
            return job

    async def stats(self) -> Dict[str, Any]:
        async with self.async_session() as session:
            async def count(*criteria) -> int:
                stmt = select(func.count(CronJobModel.id))
                if criteria:
                    stmt = stmt.where(*criteria)
                result = await session.execute(stmt)
                return result.scalar_one()

            total = await count()
            active = await count(CronJobModel.is_active.is_(True))
            running = await count(CronJobModel.is_running.is_(True))
            successful = await count(CronJobModel.last_execution_status == ExecutionStatus.SUCCESS.value)
            failed = await count(CronJobModel.last_execution_status == ExecutionStatus.FAILURE.value)
            by_type = await session.execute(
                select(CronJobModel.job_type, func.count(CronJobModel.id)).group_by(CronJobModel.job_type)
            )
            return {
                "total": total,
                "active": active,
                "running": running,
                "successful": successful,
                "failed": failed,
                "by_type": {job_type: n for job_type, n in by_type.all()},
            }

    async def _fetch(self, session: AsyncSession, job_id: str) -> Optional[CronJobModel]:
        result = await session.execute(select(CronJobModel).filter_by(id=job_id))
        return result.scalar_one_or_none()

    def _job_to_db(self, job: CronJob, db_job: CronJobModel) -> None:
        db_job.name = job.name
        db_job.description = job.description
        db_job.schedule = job.schedule
        db_job.job_type = job.job_type.value
        db_job.task_identifier = job.task_identifier
        db_job.config = to_jsonable_python(job.config, fallback=str)
        db_job.is_active = job.is_active
        db_job.is_running = job.is_running
        db_job.timeout_ms = job.timeout_ms
        db_job.max_retries = job.max_retries
        db_job.retry_delay_ms = job.retry_delay_ms
        db_job.priority = job.priority
        db_job.tags = list(job.tags)
        db_job.execution_count = job.execution_count
        db_job.success_count = job.success_count
        db_job.failure_count = job.failure_count
        db_job.last_executed_at = job.last_executed_at
        db_job.last_execution_status = job.last_execution_status.value if job.last_execution_status else None
        db_job.last_execution_duration_ms = job.last_execution_duration_ms
        db_job.last_execution_result = to_jsonable_python(job.last_execution_result, fallback=str)
        db_job.last_error = job.last_error.model_dump(mode="json") if job.last_error else None
        db_job.next_execution_at = job.next_execution_at
        db_job.notify_on_success = job.notify_on_success
        db_job.notify_on_failure = job.notify_on_failure
        db_job.notification_recipients = list(job.notification_recipients)
        db_job.created_at = job.created_at
        db_job.updated_at = job.updated_at

    def _db_to_job(self, db_job: CronJobModel) -> CronJob:
        return CronJob(
            id=db_job.id,
            name=db_job.name,
            description=db_job.description,
            schedule=db_job.schedule,
            job_type=db_job.job_type,
            task_identifier=db_job.task_identifier,
            config=db_job.config or {},
            is_active=db_job.is_active,
            is_running=db_job.is_running,
            timeout_ms=db_job.timeout_ms,
            max_retries=db_job.max_retries,
            retry_delay_ms=db_job.retry_delay_ms,
            priority=db_job.priority,
            tags=db_job.tags or [],
            execution_count=db_job.execution_count,
            success_count=db_job.success_count,
            failure_count=db_job.failure_count,
            last_executed_at=db_job.last_executed_at,
            last_execution_status=db_job.last_execution_status,
            last_execution_duration_ms=db_job.last_execution_duration_ms,
            last_execution_result=db_job.last_execution_result,
            last_error=LastError(**db_job.last_error) if db_job.last_error else None,
            next_execution_at=db_job.next_execution_at,
            notify_on_success=db_job.notify_on_success,
            notify_on_failure=db_job.notify_on_failure,
            notification_recipients=db_job.notification_recipients or [],
            created_at=db_job.created_at,
            updated_at=db_job.updated_at,
        )


class InMemoryJobStore(SqlAlchemyJobStore):
    def __init__(self):
        super().__init__("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
