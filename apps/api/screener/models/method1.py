from sqlalchemy import Column, String, Date, Float, Integer, Boolean, ForeignKey
from screener.database import Base

class Method1Result(Base):
    __tablename__ = "method1_results"

    id = Column(Integer, primary_key=True, autoincrement=True)
    run_id = Column(String, ForeignKey("screening_runs.run_id"), nullable=False, index=True)
    screen_date = Column(Date, nullable=False, index=True)
    screen_time = Column(String, nullable=True)
    ticker = Column(String, nullable=False, index=True)

    # Stage A: liquidity & volatility
    last_price = Column(Float, nullable=False)
    previous_close = Column(Float, nullable=True)
    gap_percent = Column(Float, nullable=True)
    volume = Column(Float, nullable=True)
    avg_volume = Column(Float, nullable=False)
    relative_volume = Column(Float, nullable=True)
    liquidity_passed = Column(Boolean, nullable=True)

    # Stage B: catalyst
    has_catalyst = Column(Boolean, nullable=True)
    catalyst_type = Column(String, nullable=True)
    catalyst_description = Column(String, nullable=True)
    catalyst_passed = Column(Boolean, nullable=True)

    # Stage C: technical setup
    vwap = Column(Float, nullable=True)
    ema9 = Column(Float, nullable=True)
    ema20 = Column(Float, nullable=True)
    atr = Column(Float, nullable=True)
    atr_percent = Column(Float, nullable=True)
    above_vwap = Column(Boolean, nullable=True)
    market_aligned = Column(Boolean, nullable=True)
    technical_setup_passed = Column(Boolean, nullable=True)

    suggested_entry = Column(Float, nullable=True)
    suggested_stop = Column(Float, nullable=True)
    target1 = Column(Float, nullable=True)
    target2 = Column(Float, nullable=True)

    passed_method1 = Column(Boolean, default=False, nullable=False)
