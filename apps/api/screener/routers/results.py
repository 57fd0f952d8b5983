from fastapi import APIRouter, Depends
from datetime import date, datetime
from typing import Optional
from zoneinfo import ZoneInfo

from screener.config import get_settings
from screener.deps import get_store
from screener.schemas.config import Method1Config, Method2Config, merge_config, method1_overrides, method2_overrides
from screener.schemas.results import (
    MergedResultResponse, Method1ResultResponse, Method2ResultResponse, ParametersResponse, ResultsPage,
)
from screener.services.store import COMBINER_JOB, METHOD1_JOB, METHOD2_JOB, ScreeningStore

router = APIRouter()

def market_today() -> date:
    return datetime.now(ZoneInfo(get_settings().MARKET_TIMEZONE)).date()

async def visible(store: ScreeningStore, job: str, screen_date: Optional[date], schema, **filters):
    screen_date = screen_date or market_today()
    page = ResultsPage[schema]
    run = await store.latest_run(job, screen_date)
    if run is None:
        return page(screen_date=screen_date)
    rows = await store.visible_rows(job, screen_date, **filters)
    return page(
        screen_date=screen_date,
        run_id=run.run_id,
        count=len(rows),
        items=[schema.model_validate(r) for r in rows],
    )

@router.get("/results/merged", response_model=ResultsPage[MergedResultResponse])
async def get_merged(date: Optional[date] = None, store: ScreeningStore = Depends(get_store)):
    """Latest merged generation for the day, highest priority first."""
    page = await visible(store, COMBINER_JOB, date, MergedResultResponse)
    page.items.sort(key=lambda r: r.priority_score, reverse=True)
    return page

@router.get("/results/method1", response_model=ResultsPage[Method1ResultResponse])
async def get_method1(date: Optional[date] = None, store: ScreeningStore = Depends(get_store)):
    return await visible(store, METHOD1_JOB, date, Method1ResultResponse)

@router.get("/results/method2", response_model=ResultsPage[Method2ResultResponse])
async def get_method2(date: Optional[date] = None, passed_only: bool = False,
                      store: ScreeningStore = Depends(get_store)):
    filters = {"passed_all_gates": True} if passed_only else {}
    return await visible(store, METHOD2_JOB, date, Method2ResultResponse, **filters)

@router.get("/parameters", response_model=ParametersResponse)
async def get_parameters(store: ScreeningStore = Depends(get_store)):
    """Effective thresholds: stored record over built-in defaults."""
    params = await store.load_parameters()
    m1 = merge_config(Method1Config, method1_overrides(params))
    m2 = merge_config(Method2Config, method2_overrides(params))
    return ParametersResponse(
        method1_min_price=m1.min_price,
        method1_max_price=m1.max_price,
        method1_min_volume=m1.min_avg_volume,
        method1_min_atr_percent=m1.min_atr_percent,
        method1_max_spread=m1.max_spread,
        method2_max_risk_percent=m2.max_risk_percent,
        method2_max_vix=m2.max_vix,
        method2_min_setup_quality=m2.min_setup_quality,
        method2_min_risk_reward=m2.min_risk_reward,
        updated_by=params.updated_by if params else None,
        updated_at=params.updated_at if params else None,
    )
