"""
Indicator math shared by both screening methods.

Naming note: every quantity called "EMA" in this system (ema9, ema20) is a
simple arithmetic mean of the trailing N closes. Screening outcomes and stored
history depend on that exact math, so it lives behind `ema_as_sma` instead of
a real exponential average.
"""
import math
from enum import Enum
from typing import Any, Dict, Optional

import numpy as np
import pandas as pd

EMA_FAST_WINDOW = 9
EMA_SLOW_WINDOW = 20
ATR_WINDOW = 14
TREND_THRESHOLD_PERCENT = 0.3


class MarketTrend(str, Enum):
    BULLISH = "BULLISH"
    BEARISH = "BEARISH"
    NEUTRAL = "NEUTRAL"


def round2(value: float) -> float:
    return round(value, 2)


def ema_as_sma(closes: pd.Series, window: int) -> float:
    """
    Mean of the last `window` closes (fewer if the series is shorter).
    Deliberately NOT exponential, see module docstring.
    """
    return float(closes.tail(window).mean())


def average_true_range(bars: pd.DataFrame, window: int = ATR_WINDOW) -> float:
    """
    Arithmetic mean of true range over the last `window` bars.
    TR = max(high-low, |high-prev_close|, |low-prev_close|); the first bar of
    the window has no previous close inside the window and uses high-low.
    """
    df = bars.tail(window).copy()
    df['prev_close'] = df['close'].shift(1)
    df['tr1'] = df['high'] - df['low']
    df['tr2'] = (df['high'] - df['prev_close']).abs()
    df['tr3'] = (df['low'] - df['prev_close']).abs()
    # max(axis=1) skips the NaNs of the first row, leaving high-low
    df['tr'] = df[['tr1', 'tr2', 'tr3']].max(axis=1)
    return float(df['tr'].mean())


def latest_vwap(bars: pd.DataFrame, fallback: float) -> float:
    """Volume-weighted price of the most recent bar, `fallback` when absent."""
    if bars.empty or 'vwap' not in bars.columns:
        return fallback
    vw = bars['vwap'].iloc[-1]
    if pd.isnull(vw) or vw <= 0:
        return fallback
    return float(vw)


def gap_percent(last_price: float, previous_close: float) -> float:
    return (last_price - previous_close) / previous_close * 100


def intraday_change_percent(bar: Optional[Dict[str, Any]]) -> float:
    """(close - open) / open * 100 of a provider bar, 0 when unusable."""
    if not bar or not bar.get('o'):
        return 0.0
    return (bar.get('c', 0) - bar['o']) / bar['o'] * 100


def classify_trend(bar: Optional[Dict[str, Any]], threshold: float = TREND_THRESHOLD_PERCENT) -> MarketTrend:
    change = intraday_change_percent(bar)
    if change > threshold:
        return MarketTrend.BULLISH
    if change < -threshold:
        return MarketTrend.BEARISH
    return MarketTrend.NEUTRAL


def same_direction(a: float, b: float) -> bool:
    """Both strictly positive or both strictly negative."""
    return bool(np.sign(a) == np.sign(b) and a != 0)


def max_position_size(max_risk_dollars: float, risk_per_share: float) -> int:
    """Whole shares affordable for the risk budget; 0 when risk per share is not positive."""
    if risk_per_share <= 0:
        return 0
    return int(math.floor(max_risk_dollars / risk_per_share))
