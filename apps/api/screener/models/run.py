from sqlalchemy import Column, String, Date, DateTime, JSON
from screener.database import Base

class ScreeningRun(Base):
    """One generation of a job's output for a screen date."""
    __tablename__ = "screening_runs"

    run_id = Column(String, primary_key=True)
    job = Column(String, nullable=False, index=True)
    screen_date = Column(Date, nullable=False, index=True)
    status = Column(String, default="PENDING") # PENDING, COMPLETED, FAILED, SUPERSEDED
    started_at = Column(DateTime(timezone=True), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    stats_json = Column(JSON, nullable=True)
    error = Column(String, nullable=True)
