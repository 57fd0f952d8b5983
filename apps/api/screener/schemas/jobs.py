from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from datetime import date
from typing import Any, Dict, List, Optional

class JobEvent(BaseModel):
    """Invocation payload sent by the scheduler."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    config: Dict[str, Any] = {}
    screen_date: Optional[date] = None

class AnalyzerEvent(BaseModel):
    tickers: List[str] = []

class JobResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status_code: int = Field(200, serialization_alias="statusCode")
    body: Dict[str, Any] = {}

    @classmethod
    def ok(cls, **body) -> "JobResponse":
        return cls(status_code=200, body=body)

    @classmethod
    def bad_request(cls, message: str) -> "JobResponse":
        return cls(status_code=400, body={"error": message})

    @classmethod
    def failure(cls, message: str) -> "JobResponse":
        return cls(status_code=500, body={"error": message})
