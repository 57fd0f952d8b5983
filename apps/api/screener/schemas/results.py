from pydantic import BaseModel, ConfigDict
from datetime import date, datetime
from typing import Generic, List, Optional, TypeVar

T = TypeVar("T")

class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

class Method1ResultResponse(ORMModel):
    id: int
    screen_date: date
    screen_time: Optional[str] = None
    ticker: str
    last_price: float
    previous_close: Optional[float] = None
    gap_percent: Optional[float] = None
    volume: Optional[float] = None
    avg_volume: float
    relative_volume: Optional[float] = None
    has_catalyst: Optional[bool] = None
    catalyst_type: Optional[str] = None
    catalyst_description: Optional[str] = None
    vwap: Optional[float] = None
    ema9: Optional[float] = None
    ema20: Optional[float] = None
    atr: Optional[float] = None
    atr_percent: Optional[float] = None
    above_vwap: Optional[bool] = None
    market_aligned: Optional[bool] = None
    suggested_entry: Optional[float] = None
    suggested_stop: Optional[float] = None
    target1: Optional[float] = None
    target2: Optional[float] = None
    passed_method1: bool

class Method2ResultResponse(ORMModel):
    id: int
    screen_date: date
    ticker: str
    last_price: float
    volume_spike: Optional[float] = None
    atr_percent: Optional[float] = None
    passed_gate1: bool
    gate1_time: Optional[datetime] = None
    vwap: Optional[float] = None
    ema9: Optional[float] = None
    ema20: Optional[float] = None
    relative_volume: Optional[float] = None
    primary_trend: Optional[str] = None
    secondary_trend: Optional[str] = None
    passed_gate2: bool
    gate2_time: Optional[datetime] = None
    passed_gate3: bool
    gate3_time: Optional[datetime] = None
    risk_per_share: Optional[float] = None
    max_shares: Optional[int] = None
    vix_level: Optional[float] = None
    passed_gate4: bool
    gate4_time: Optional[datetime] = None
    setup_type: Optional[str] = None
    setup_quality: Optional[str] = None
    quality_score: Optional[int] = None
    suggested_entry: Optional[float] = None
    suggested_stop: Optional[float] = None
    suggested_target1: Optional[float] = None
    suggested_target2: Optional[float] = None
    risk_reward_ratio: Optional[float] = None
    passed_all_gates: bool

class MergedResultResponse(ORMModel):
    id: int
    screen_date: date
    screen_time: Optional[str] = None
    ticker: str
    current_price: float
    setup_type: Optional[str] = None
    setup_quality: Optional[str] = None
    catalyst_type: Optional[str] = None
    catalyst_description: Optional[str] = None
    suggested_entry: Optional[float] = None
    suggested_stop: Optional[float] = None
    suggested_target1: Optional[float] = None
    suggested_target2: Optional[float] = None
    risk_reward_ratio: Optional[float] = None
    primary_trend: Optional[str] = None
    secondary_trend: Optional[str] = None
    in_method1: bool
    in_method2: bool
    in_both_methods: bool
    priority_score: int
    is_active: Optional[bool] = True

class ResultsPage(BaseModel, Generic[T]):
    """Rows of the latest completed generation for a screen date."""
    screen_date: date
    run_id: Optional[str] = None
    count: int = 0
    items: List[T] = []

class ParametersResponse(BaseModel):
    method1_min_price: float
    method1_max_price: float
    method1_min_volume: float
    method1_min_atr_percent: float
    method1_max_spread: float
    method2_max_risk_percent: float
    method2_max_vix: float
    method2_min_setup_quality: str
    method2_min_risk_reward: float
    updated_by: Optional[str] = None
    updated_at: Optional[datetime] = None
