from sqlalchemy import Column, String, Date, Float, Integer, Boolean, DateTime, ForeignKey
from screener.database import Base

class Method2Result(Base):
    __tablename__ = "method2_results"

    id = Column(Integer, primary_key=True, autoincrement=True)
    run_id = Column(String, ForeignKey("screening_runs.run_id"), nullable=False, index=True)
    screen_date = Column(Date, nullable=False, index=True)
    ticker = Column(String, nullable=False, index=True)
    last_price = Column(Float, nullable=False)

    # Gate 1: pre-market filter
    avg_volume_30d = Column(Float, nullable=True)
    pre_market_volume = Column(Float, nullable=True)
    volume_spike = Column(Float, nullable=True)
    atr_percent = Column(Float, nullable=True)
    passed_gate1 = Column(Boolean, default=False, nullable=False)
    gate1_time = Column(DateTime(timezone=True), nullable=True)

    # Gate 2: technical alignment
    vwap = Column(Float, nullable=True)
    ema9 = Column(Float, nullable=True)
    ema20 = Column(Float, nullable=True)
    above_vwap = Column(Boolean, nullable=True)
    above_ema9 = Column(Boolean, nullable=True)
    above_ema20 = Column(Boolean, nullable=True)
    relative_volume = Column(Float, nullable=True)
    primary_trend = Column(String, nullable=True) # BULLISH, BEARISH, NEUTRAL
    secondary_trend = Column(String, nullable=True)
    market_aligned = Column(Boolean, nullable=True)
    passed_gate2 = Column(Boolean, default=False, nullable=False)
    gate2_time = Column(DateTime(timezone=True), nullable=True)

    # Gate 3: execution confirmation
    holds_above_vwap = Column(Boolean, nullable=True)
    no_rejection_wick = Column(Boolean, nullable=True)
    volume_expansion = Column(Boolean, nullable=True)
    trend_agrees = Column(Boolean, nullable=True)
    passed_gate3 = Column(Boolean, default=False, nullable=False)
    gate3_time = Column(DateTime(timezone=True), nullable=True)

    # Gate 4: risk validation
    risk_per_share = Column(Float, nullable=True)
    max_shares = Column(Integer, nullable=True)
    risk_check_passed = Column(Boolean, nullable=True)
    vix_level = Column(Float, nullable=True)
    market_volatility_ok = Column(Boolean, nullable=True)
    passed_gate4 = Column(Boolean, default=False, nullable=False)
    gate4_time = Column(DateTime(timezone=True), nullable=True)

    setup_type = Column(String, nullable=True) # GAP_AND_GO, TREND_CONTINUATION, VWAP_RECLAIM
    setup_quality = Column(String, nullable=True) # A_PLUS, A, B, C
    quality_score = Column(Integer, nullable=True)
    suggested_entry = Column(Float, nullable=True)
    suggested_stop = Column(Float, nullable=True)
    suggested_target1 = Column(Float, nullable=True)
    suggested_target2 = Column(Float, nullable=True)
    risk_reward_ratio = Column(Float, nullable=True)

    passed_all_gates = Column(Boolean, default=False, nullable=False)
