from fastapi import FastAPI
from contextlib import asynccontextmanager
from fastapi.middleware.cors import CORSMiddleware
import structlog
from screener.config import get_settings
from screener.database import create_tables
from screener.utils.logging import setup_logging
from screener.routers import health, jobs, results

settings = get_settings()
setup_logging()
log = structlog.get_logger()

@asynccontextmanager
async def lifespan(app: FastAPI):
    log.info("Application starting up...", version=settings.VERSION)
    await create_tables()
    yield
    log.info("Application shutting down...")

app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    lifespan=lifespan
)

# The scheduler and dashboards call from anywhere
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(health.router, tags=["Health"])
app.include_router(jobs.router, prefix=f"{settings.API_V1_STR}/jobs", tags=["Jobs"])
app.include_router(results.router, prefix=settings.API_V1_STR, tags=["Results"])

@app.get("/healthz")
def healthz():
    return {"status": "ok"}
