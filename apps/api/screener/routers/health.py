from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import desc, text
from screener.database import get_db
from screener.models import ScreeningRun
from screener.services.store import JOB_MODELS
import structlog

router = APIRouter()
logger = structlog.get_logger()

@router.get("/health")
async def health_check(db: AsyncSession = Depends(get_db)):
    """Database ping plus the most recent generation of each persisted job."""
    health_status = {
        "status": "ok",
        "database": "unknown",
        "last_runs": {},
    }

    try:
        await db.execute(text("SELECT 1"))
        health_status["database"] = "connected"

        for job in JOB_MODELS:
            stmt = select(ScreeningRun).where(ScreeningRun.job == job).order_by(desc(ScreeningRun.started_at)).limit(1)
            run = (await db.execute(stmt)).scalars().first()
            if run:
                health_status["last_runs"][job] = {
                    "status": run.status,
                    "screen_date": run.screen_date.isoformat(),
                    "error": run.error,
                }
    except Exception as e:
        logger.error("Health check failed for database", error=str(e))
        health_status["database"] = "disconnected"
        health_status["status"] = "degraded"

    return health_status
