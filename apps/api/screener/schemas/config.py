from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import Any, Dict, Literal, Optional, Type, TypeVar

SetupQuality = Literal["A_PLUS", "A", "B", "C"]

class ThresholdConfig(BaseModel):
    # Overrides arrive from the scheduler in camelCase (minPrice); snake_case is accepted too
    model_config = ConfigDict(extra="forbid", alias_generator=to_camel, populate_by_name=True)

class Method1Config(ThresholdConfig):
    min_price: float = 5
    max_price: float = 500
    min_avg_volume: float = 500_000
    min_gap_percent: float = 3
    max_gap_percent: float = 30
    # Stored for the parameters record; not read by any stage
    min_atr_percent: float = Field(2, alias="minATRPercent")
    max_spread: float = 0.5

class Method2Config(ThresholdConfig):
    min_price: float = 5
    max_price: float = 500
    min_volume_spike: float = 2.0
    min_atr_percent: float = Field(2, alias="minATRPercent")
    max_vix: float = Field(30, alias="maxVIX")
    max_risk_percent: float = 1
    account_size: float = 100_000
    min_risk_reward: float = 1.5
    min_setup_quality: SetupQuality = "C"

class ScannerConfig(ThresholdConfig):
    min_gap_percent: float = 3
    max_gap_percent: float = 50
    min_price: float = 1
    max_price: float = 500
    min_volume: float = 100_000
    gap_direction: Literal["up", "down", "both"] = "up"


def method1_overrides(params) -> Dict[str, Any]:
    """Stored ScreeningParameters -> Method1Config fields (None values are ignored)."""
    if params is None:
        return {}
    return {
        "min_price": params.method1_min_price,
        "max_price": params.method1_max_price,
        "min_avg_volume": params.method1_min_volume,
        "min_atr_percent": params.method1_min_atr_percent,
        "max_spread": params.method1_max_spread,
    }

def method2_overrides(params) -> Dict[str, Any]:
    if params is None:
        return {}
    return {
        "max_risk_percent": params.method2_max_risk_percent,
        "max_vix": params.method2_max_vix,
        "min_setup_quality": params.method2_min_setup_quality,
        "min_risk_reward": params.method2_min_risk_reward,
    }


C = TypeVar("C", bound=ThresholdConfig)

def merge_config(config_cls: Type[C], stored: Optional[Dict[str, Any]] = None,
                 override: Optional[Dict[str, Any]] = None) -> C:
    """
    Layer built-in defaults < stored parameters < invocation override.
    Only keys the override actually sets win; raises ValidationError on
    unknown keys or bad types.
    """
    values = config_cls().model_dump()
    if stored:
        values.update({k: v for k, v in stored.items() if v is not None and k in values})
    if override:
        partial = config_cls.model_validate(override)
        values.update({k: getattr(partial, k) for k in partial.model_fields_set})
    return config_cls(**values)
