from sqlalchemy import Column, String, Float, Integer, DateTime
from screener.database import Base

class ScreeningParameters(Base):
    """Admin-maintained thresholds. Absent record means built-in defaults."""
    __tablename__ = "screening_parameters"

    id = Column(Integer, primary_key=True, autoincrement=True)
    method1_min_price = Column(Float, nullable=True)
    method1_max_price = Column(Float, nullable=True)
    method1_min_volume = Column(Float, nullable=True)
    method1_min_atr_percent = Column(Float, nullable=True)
    method1_max_spread = Column(Float, nullable=True)
    method2_max_risk_percent = Column(Float, nullable=True)
    method2_max_vix = Column(Float, nullable=True)
    method2_min_setup_quality = Column(String, nullable=True)
    method2_min_risk_reward = Column(Float, nullable=True)
    updated_by = Column(String, nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=True)
