from sqlalchemy import Column, String, Date, Float, Integer, Boolean, ForeignKey
from screener.database import Base

class MergedResult(Base):
    __tablename__ = "merged_results"

    id = Column(Integer, primary_key=True, autoincrement=True)
    run_id = Column(String, ForeignKey("screening_runs.run_id"), nullable=False, index=True)
    screen_date = Column(Date, nullable=False, index=True)
    screen_time = Column(String, nullable=True)
    ticker = Column(String, nullable=False, index=True)

    current_price = Column(Float, nullable=False)
    setup_type = Column(String, nullable=True)
    setup_quality = Column(String, nullable=True)
    catalyst_type = Column(String, nullable=True)
    catalyst_description = Column(String, nullable=True)

    suggested_entry = Column(Float, nullable=True)
    suggested_stop = Column(Float, nullable=True)
    suggested_target1 = Column(Float, nullable=True)
    suggested_target2 = Column(Float, nullable=True)
    risk_reward_ratio = Column(Float, nullable=True)

    primary_trend = Column(String, nullable=True)
    secondary_trend = Column(String, nullable=True)

    in_method1 = Column(Boolean, nullable=False)
    in_method2 = Column(Boolean, nullable=False)
    in_both_methods = Column(Boolean, nullable=False)
    method1_result_id = Column(Integer, nullable=True)
    method2_result_id = Column(Integer, nullable=True)

    priority_score = Column(Integer, nullable=False)
    is_active = Column(Boolean, default=True)
