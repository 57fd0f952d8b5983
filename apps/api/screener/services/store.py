"""
Persistence for screening output.

Every job run is a generation (`ScreeningRun`). Rows are written under the
run's id and become visible only when the run is published: the rows, the
COMPLETED mark and the pruning of older generations for the same
(job, screen date) commit in one transaction. Readers only ever see the
latest completed generation, so a crashed or racing run never leaves a day
half-deleted.
"""
import uuid
from datetime import date, datetime, timezone
from typing import Any, Dict, Generic, List, Optional, Type, TypeVar

import structlog
from sqlalchemy import delete, desc
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from screener.models import MergedResult, Method1Result, Method2Result, ScreeningParameters, ScreeningRun

logger = structlog.get_logger()

M = TypeVar("M")

METHOD1_JOB = "method1-screener"
METHOD2_JOB = "method2-screener"
COMBINER_JOB = "results-combiner"

JOB_MODELS = {
    METHOD1_JOB: Method1Result,
    METHOD2_JOB: Method2Result,
    COMBINER_JOB: MergedResult,
}


class Repository(Generic[M]):
    """list/get/create/update/delete for one entity type inside a session."""

    def __init__(self, session: AsyncSession, model: Type[M]):
        self.session = session
        self.model = model

    async def list(self, **filters) -> List[M]:
        stmt = select(self.model).filter_by(**filters).order_by(self.model.id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get(self, id: Any) -> Optional[M]:
        return await self.session.get(self.model, id)

    async def create(self, **values) -> M:
        obj = self.model(**values)
        self.session.add(obj)
        await self.session.flush()
        return obj

    async def update(self, id: Any, **values) -> Optional[M]:
        obj = await self.get(id)
        if obj is None:
            return None
        for key, value in values.items():
            setattr(obj, key, value)
        await self.session.flush()
        return obj

    async def delete(self, id: Any) -> bool:
        obj = await self.get(id)
        if obj is None:
            return False
        await self.session.delete(obj)
        await self.session.flush()
        return True


class ScreeningStore:
    def __init__(self, session_factory):
        self.session_factory = session_factory

    async def begin_run(self, job: str, screen_date: date) -> str:
        run_id = str(uuid.uuid4())
        async with self.session_factory() as session:
            session.add(ScreeningRun(
                run_id=run_id,
                job=job,
                screen_date=screen_date,
                status="PENDING",
                started_at=datetime.now(timezone.utc),
            ))
            await session.commit()
        return run_id

    async def publish_run(self, run_id: str, rows: List[Dict[str, Any]],
                          stats: Optional[Dict[str, Any]] = None) -> List[Any]:
        """
        Write `rows` under `run_id` and make the generation visible.
        A run overtaken by a newer completed one is marked SUPERSEDED and writes nothing.
        """
        async with self.session_factory() as session:
            async with session.begin():
                run = await session.get(ScreeningRun, run_id)
                if run is None:
                    raise ValueError(f"Unknown run {run_id}")
                job = run.job
                model = JOB_MODELS[job]

                newer = await session.execute(
                    select(ScreeningRun.run_id).where(
                        ScreeningRun.job == run.job,
                        ScreeningRun.screen_date == run.screen_date,
                        ScreeningRun.status == "COMPLETED",
                        ScreeningRun.started_at > run.started_at,
                    )
                )
                if newer.first() is not None:
                    run.status = "SUPERSEDED"
                    run.completed_at = datetime.now(timezone.utc)
                    run.stats_json = stats
                    logger.warning("Run overtaken by a newer generation, discarding rows",
                                   job=job, run_id=run_id)
                    return []

                repo = Repository(session, model)
                created = []
                for values in rows:
                    created.append(await repo.create(run_id=run_id, screen_date=run.screen_date, **values))

                older = await session.execute(
                    select(ScreeningRun).where(
                        ScreeningRun.job == run.job,
                        ScreeningRun.screen_date == run.screen_date,
                        ScreeningRun.run_id != run_id,
                        ScreeningRun.started_at < run.started_at,
                    )
                )
                older_runs = list(older.scalars().all())
                if older_runs:
                    older_ids = [r.run_id for r in older_runs]
                    await session.execute(delete(model).where(model.run_id.in_(older_ids)))
                    for r in older_runs:
                        if r.status in ("COMPLETED", "PENDING"):
                            r.status = "SUPERSEDED"

                run.status = "COMPLETED"
                run.completed_at = datetime.now(timezone.utc)
                run.stats_json = stats

            logger.info("Generation published", job=job, run_id=run_id,
                        rows=len(created), pruned_runs=len(older_runs))
            return created

    async def fail_run(self, run_id: str, error: str):
        async with self.session_factory() as session:
            run = await session.get(ScreeningRun, run_id)
            if run:
                run.status = "FAILED"
                run.completed_at = datetime.now(timezone.utc)
                run.error = error[:1000]
                await session.commit()

    async def latest_run(self, job: str, screen_date: date) -> Optional[ScreeningRun]:
        async with self.session_factory() as session:
            stmt = (
                select(ScreeningRun)
                .where(
                    ScreeningRun.job == job,
                    ScreeningRun.screen_date == screen_date,
                    ScreeningRun.status == "COMPLETED",
                )
                .order_by(desc(ScreeningRun.started_at))
                .limit(1)
            )
            result = await session.execute(stmt)
            return result.scalars().first()

    async def visible_rows(self, job: str, screen_date: date, **filters) -> List[Any]:
        """Rows of the latest completed generation for the day, empty if none."""
        run = await self.latest_run(job, screen_date)
        if run is None:
            return []
        async with self.session_factory() as session:
            return await Repository(session, JOB_MODELS[job]).list(run_id=run.run_id, **filters)

    async def load_parameters(self) -> Optional[ScreeningParameters]:
        async with self.session_factory() as session:
            stmt = select(ScreeningParameters).order_by(desc(ScreeningParameters.id)).limit(1)
            result = await session.execute(stmt)
            return result.scalars().first()
