from fastapi import APIRouter, Body, Depends
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from typing import Any, Dict, Optional

from screener.config import get_settings
from screener.deps import get_provider, get_store
from screener.services.jobs import JobRunner
from screener.services.market_data import MarketDataProvider
from screener.services.store import ScreeningStore

router = APIRouter()

@router.post("/{job}")
async def run_job(
    job: str,
    event: Optional[Dict[str, Any]] = Body(None),
    provider: MarketDataProvider = Depends(get_provider),
    store: ScreeningStore = Depends(get_store),
):
    """
    Scheduler trigger. Returns the {statusCode, body} envelope with the
    envelope's status code as the HTTP status.
    """
    runner = JobRunner(provider, store, get_settings())
    resp = await runner.run(job, event)
    return JSONResponse(
        status_code=resp.status_code,
        content=jsonable_encoder(resp.model_dump(by_alias=True)),
    )
