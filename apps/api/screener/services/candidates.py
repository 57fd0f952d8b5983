"""
Pipeline-internal candidate records and the typed skip outcome.

A candidate gains fields as it survives each stage. Fields owned by a stage
stay None until that stage has run, so None means "not yet evaluated",
never "failed".
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Generic, List, Optional, TypeVar


class SkipReason(str, Enum):
    DATA_MISSING = "DATA_MISSING"          # provider answered but the shape was unusable
    FETCH_FAILED = "FETCH_FAILED"          # provider call raised
    THRESHOLD_FAILED = "THRESHOLD_FAILED"  # evaluated and rejected


@dataclass
class Skip:
    ticker: str
    stage: str
    reason: SkipReason
    detail: str = ""


T = TypeVar("T")


@dataclass
class StageResult(Generic[T]):
    stage: str
    passed: List[T] = field(default_factory=list)
    skipped: List[Skip] = field(default_factory=list)

    def skip(self, ticker: str, reason: SkipReason, detail: str = "") -> None:
        self.skipped.append(Skip(ticker, self.stage, reason, detail))

    def skip_counts(self) -> dict:
        counts = {}
        for s in self.skipped:
            counts[s.reason.value] = counts.get(s.reason.value, 0) + 1
        return counts


@dataclass
class Method1Candidate:
    ticker: str
    last_price: float
    previous_close: float
    volume: float
    avg_volume: float

    # Stage A
    gap_percent: Optional[float] = None
    relative_volume: Optional[float] = None
    liquidity_passed: Optional[bool] = None

    # Stage B
    has_catalyst: Optional[bool] = None
    catalyst_type: Optional[str] = None
    catalyst_description: Optional[str] = None
    catalyst_passed: Optional[bool] = None

    # Stage C
    vwap: Optional[float] = None
    ema9: Optional[float] = None
    ema20: Optional[float] = None
    atr: Optional[float] = None
    atr_percent: Optional[float] = None
    above_vwap: Optional[bool] = None
    market_aligned: Optional[bool] = None
    technical_setup_passed: Optional[bool] = None
    suggested_entry: Optional[float] = None
    suggested_stop: Optional[float] = None
    target1: Optional[float] = None
    target2: Optional[float] = None
    passed_method1: Optional[bool] = None


@dataclass
class Method2Candidate:
    ticker: str
    last_price: float

    # Gate 1
    avg_volume_30d: Optional[float] = None
    pre_market_volume: Optional[float] = None
    volume_spike: Optional[float] = None
    atr_percent: Optional[float] = None
    passed_gate1: Optional[bool] = None
    gate1_time: Optional[datetime] = None

    # Gate 2
    vwap: Optional[float] = None
    ema9: Optional[float] = None
    ema20: Optional[float] = None
    above_vwap: Optional[bool] = None
    above_ema9: Optional[bool] = None
    above_ema20: Optional[bool] = None
    relative_volume: Optional[float] = None
    primary_trend: Optional[str] = None
    secondary_trend: Optional[str] = None
    market_aligned: Optional[bool] = None
    passed_gate2: Optional[bool] = None
    gate2_time: Optional[datetime] = None

    # Gate 3
    holds_above_vwap: Optional[bool] = None
    no_rejection_wick: Optional[bool] = None
    volume_expansion: Optional[bool] = None
    trend_agrees: Optional[bool] = None
    passed_gate3: Optional[bool] = None
    gate3_time: Optional[datetime] = None

    # Gate 4
    risk_per_share: Optional[float] = None
    max_shares: Optional[int] = None
    risk_check_passed: Optional[bool] = None
    vix_level: Optional[float] = None
    market_volatility_ok: Optional[bool] = None
    passed_gate4: Optional[bool] = None
    gate4_time: Optional[datetime] = None
    setup_type: Optional[str] = None
    setup_quality: Optional[str] = None
    quality_score: Optional[int] = None
    suggested_entry: Optional[float] = None
    suggested_stop: Optional[float] = None
    suggested_target1: Optional[float] = None
    suggested_target2: Optional[float] = None
    risk_reward_ratio: Optional[float] = None
    passed_all_gates: Optional[bool] = None
