import numpy as np
import pandas as pd
import pytest

from screener.services.indicators import (
    MarketTrend, average_true_range, classify_trend, ema_as_sma, gap_percent,
    latest_vwap, max_position_size, round2, same_direction,
)

def test_ema_is_simple_mean_of_trailing_closes():
    closes = pd.Series(np.arange(1, 21, dtype=float))

    # last 9 closes are 12..20
    assert ema_as_sma(closes, 9) == pytest.approx(16.0)
    assert ema_as_sma(closes, 20) == pytest.approx(10.5)

def test_ema_uses_all_closes_when_series_is_short():
    closes = pd.Series([10.0, 20.0, 30.0])
    assert ema_as_sma(closes, 9) == pytest.approx(20.0)

def test_atr_first_bar_uses_high_low():
    bars = pd.DataFrame({
        'high': [12.0, 15.0],
        'low': [10.0, 14.0],
        'close': [11.0, 14.5],
    })
    # TR = [2, max(1, |15-11|, |14-11|)] = [2, 4]
    assert average_true_range(bars) == pytest.approx(3.0)

def test_atr_window_ignores_close_before_window():
    # A far-away close just outside the 14-bar window must not leak into the first TR
    bars = pd.DataFrame({
        'high': [101.0] + [11.0] * 14,
        'low': [99.0] + [10.0] * 14,
        'close': [100.0] + [10.5] * 14,
    })
    assert average_true_range(bars) == pytest.approx(1.0)

def test_latest_vwap_fallbacks():
    assert latest_vwap(pd.DataFrame({'vwap': [9.0, 10.5]}), 12.0) == 10.5
    assert latest_vwap(pd.DataFrame({'vwap': [9.0, np.nan]}), 12.0) == 12.0
    assert latest_vwap(pd.DataFrame({'vwap': [9.0, 0.0]}), 12.0) == 12.0
    assert latest_vwap(pd.DataFrame({'close': [9.0]}), 12.0) == 12.0

def test_gap_percent():
    assert round2(gap_percent(10, 9)) == 11.11
    assert round2(gap_percent(9, 10)) == -10.0

def test_classify_trend():
    assert classify_trend({'o': 100, 'c': 100.5}) == MarketTrend.BULLISH
    assert classify_trend({'o': 100, 'c': 100.2}) == MarketTrend.NEUTRAL
    assert classify_trend({'o': 100, 'c': 99.5}) == MarketTrend.BEARISH
    assert classify_trend(None) == MarketTrend.NEUTRAL
    assert classify_trend({'o': 0, 'c': 5}) == MarketTrend.NEUTRAL

def test_same_direction():
    assert same_direction(1.5, 0.2)
    assert same_direction(-1.5, -0.2)
    assert not same_direction(1.5, -0.2)
    assert not same_direction(0, 0.2)
    assert not same_direction(0, 0)

def test_max_position_size():
    assert max_position_size(1000, 0.5) == 2000
    assert max_position_size(1000, 3) == 333
    assert max_position_size(1000, 0) == 0
    assert max_position_size(1000, -0.25) == 0
