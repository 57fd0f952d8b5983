import pytest

from conftest import SCREEN_DATE, FakeProvider, make_bars, snapshot_item
from screener.schemas.config import Method2Config
from screener.services.candidates import Method2Candidate, SkipReason
from screener.services.method2 import (
    DEFAULT_VIX, MAX_GAINERS, Method2Pipeline, classify_setup, quality_grade, quality_score,
)

def pipeline_for(provider=None, **config):
    return Method2Pipeline(provider or FakeProvider(), Method2Config(**config), SCREEN_DATE, request_delay=0)

def gate4_candidate(vwap=10.0, last_price=10.0, atr_percent=4.0, **overrides):
    values = dict(
        ticker="RISK", last_price=last_price, vwap=vwap, atr_percent=atr_percent,
        volume_spike=2.5, above_ema9=True, above_ema20=True,
        primary_trend="BULLISH", secondary_trend="NEUTRAL",
        passed_gate1=True, passed_gate2=True, passed_gate3=True,
    )
    values.update(overrides)
    return Method2Candidate(**values)

def market(**extra):
    """Provider where GOOD clears every gate."""
    values = dict(
        gainers=[snapshot_item("GOOD", 20, 18, 3_000_000, 1_000_000, high=21, low=19)],
        bars={"GOOD": make_bars([18.0] * 20, vwap=19.5)},
        prev={"SPY": {"o": 100, "c": 101}, "QQQ": {"o": 100, "c": 100.5}},
        tickers={"VIX": {"day": {"c": 15.0}}},
    )
    values.update(extra)
    return FakeProvider(**values)

# --- Gate 1 ---

def test_gate1_filters():
    gainers = [
        snapshot_item("GOOD", 20, 18, 3_000_000, 1_000_000, high=21, low=19),
        snapshot_item("NOSPIKE", 20, 18, 1_500_000, 1_000_000, high=21, low=19),
        snapshot_item("TIGHT", 20, 18, 3_000_000, 1_000_000, high=20.1, low=20),
        snapshot_item("PENNY", 2, 1.8, 3_000_000, 1_000_000, high=2.2, low=1.8),
        {"ticker": "EMPTY", "day": {"c": 20}},
    ]
    result = pipeline_for().gate1_premarket(gainers)

    assert [c.ticker for c in result.passed] == ["GOOD"]
    good = result.passed[0]
    assert good.volume_spike == 3.0
    assert good.atr_percent == 10.0
    assert good.passed_gate1 is True
    assert good.gate1_time is not None

    reasons = {s.ticker: (s.reason, s.detail) for s in result.skipped}
    assert reasons["NOSPIKE"] == (SkipReason.THRESHOLD_FAILED, "volume spike")
    assert reasons["TIGHT"] == (SkipReason.THRESHOLD_FAILED, "atr percent")
    assert reasons["PENNY"] == (SkipReason.THRESHOLD_FAILED, "price")
    assert reasons["EMPTY"][0] == SkipReason.DATA_MISSING

def test_gate1_only_reads_top_gainers():
    gainers = [
        snapshot_item(f"G{i:02d}", 20, 18, 3_000_000, 1_000_000, high=21, low=19)
        for i in range(MAX_GAINERS + 5)
    ]
    result = pipeline_for().gate1_premarket(gainers)
    assert len(result.passed) == MAX_GAINERS

def test_gate1_missing_prev_volume_uses_default_baseline():
    item = snapshot_item("NOVOL", 20, 18, 3_000_000, 0, high=21, low=19)
    result = pipeline_for().gate1_premarket([item])

    assert result.passed[0].avg_volume_30d == 1_000_000
    assert result.passed[0].volume_spike == 3.0

# --- Gate 2 / 3 ---

@pytest.mark.asyncio
async def test_gate2_requires_benchmark_alignment():
    pipeline = pipeline_for(market())
    gate1 = pipeline.gate1_premarket(pipeline.provider.gainers)

    result = await pipeline.gate2_alignment(gate1.passed, ("BEARISH", "BEARISH"))

    assert result.passed == []
    assert result.skipped[0].reason == SkipReason.THRESHOLD_FAILED

@pytest.mark.asyncio
async def test_gate2_short_history_is_data_missing():
    pipeline = pipeline_for(market(bars={"GOOD": make_bars([18.0] * 3)}))
    gate1 = pipeline.gate1_premarket(pipeline.provider.gainers)

    result = await pipeline.gate2_alignment(gate1.passed, ("BULLISH", "NEUTRAL"))

    assert result.skipped[0].reason == SkipReason.DATA_MISSING

@pytest.mark.asyncio
async def test_gate2_fetch_error_skips_ticker_and_continues():
    gainers = [
        snapshot_item("BROKEN", 20, 18, 3_000_000, 1_000_000, high=21, low=19),
        snapshot_item("GOOD", 20, 18, 3_000_000, 1_000_000, high=21, low=19),
    ]
    pipeline = pipeline_for(market(gainers=gainers, fail={("daily_bars", "BROKEN")}))
    gate1 = pipeline.gate1_premarket(pipeline.provider.gainers)

    result = await pipeline.gate2_alignment(gate1.passed, ("BULLISH", "NEUTRAL"))

    assert [c.ticker for c in result.passed] == ["GOOD"]
    assert result.skipped[0].ticker == "BROKEN"
    assert result.skipped[0].reason == SkipReason.FETCH_FAILED
    assert ("daily_bars", "GOOD") in pipeline.provider.calls

def test_gate3_no_rejection_wick_always_passes():
    pipeline = pipeline_for()
    stock = gate4_candidate(vwap=19.5, last_price=20, relative_volume=3.0)

    result = pipeline.gate3_confirmation([stock])

    assert result.passed[0].no_rejection_wick is True
    assert result.passed[0].passed_gate3 is True

def test_gate3_rejects_bearish_primary_trend():
    pipeline = pipeline_for()
    stock = gate4_candidate(vwap=19.5, last_price=20, relative_volume=3.0, primary_trend="BEARISH")

    result = pipeline.gate3_confirmation([stock])

    assert result.passed == []
    assert stock.trend_agrees is False

def test_gate3_requires_stronger_relative_volume():
    stock = gate4_candidate(vwap=19.5, last_price=20, relative_volume=1.8)
    result = pipeline_for().gate3_confirmation([stock])
    assert stock.volume_expansion is False
    assert result.passed == []

# --- Gate 4 ---

def test_gate4_position_sizing():
    stock = gate4_candidate()
    pipeline_for(account_size=100_000, max_risk_percent=1).gate4_risk([stock], vix_level=18.0)

    assert stock.suggested_entry == 10.1
    assert stock.suggested_stop == 9.6
    assert stock.risk_per_share == 0.5
    assert stock.max_shares == 2000
    assert stock.risk_check_passed is True
    assert stock.suggested_target1 == 10.85
    assert stock.suggested_target2 == 11.35

def test_gate4_nonpositive_risk_fails_without_division():
    # stop above entry
    stock = gate4_candidate(atr_percent=-2.0)
    result = pipeline_for().gate4_risk([stock], vix_level=18.0)

    assert stock.risk_per_share < 0
    assert stock.max_shares == 0
    assert stock.risk_check_passed is False
    assert stock.risk_reward_ratio == 1.5
    assert stock.passed_gate4 is False
    assert result.passed == []

def test_gate4_volatility_ceiling():
    stock = gate4_candidate()
    pipeline_for(max_vix=30).gate4_risk([stock], vix_level=31.0)

    assert stock.market_volatility_ok is False
    assert stock.passed_gate4 is False
    assert stock.passed_all_gates is False

def test_gate4_min_setup_quality_floor():
    stock = gate4_candidate()
    result = pipeline_for(min_setup_quality="A_PLUS").gate4_risk([stock], vix_level=18.0)

    assert stock.passed_gate4 is True
    assert stock.setup_quality != "A_PLUS"
    assert stock.passed_all_gates is False
    assert result.skipped[0].detail == "setup quality"

def test_setup_classification_and_quality():
    assert classify_setup(3.5, False, False) == "GAP_AND_GO"
    assert classify_setup(2.5, True, True) == "TREND_CONTINUATION"
    assert classify_setup(2.5, True, False) == "VWAP_RECLAIM"

    assert quality_score(3.0, "BULLISH", "BULLISH", 2.0) == 7
    assert quality_score(2.0, "NEUTRAL", "NEUTRAL", 1.5) == 3
    assert quality_score(1.0, "BEARISH", "BEARISH", 1.0) == 0
    assert [quality_grade(s) for s in (7, 6, 5, 4, 3, 2, 1)] == ["A_PLUS", "A_PLUS", "A", "A", "B", "B", "C"]

# --- full run ---

@pytest.mark.asyncio
async def test_run_end_to_end():
    outcome = await pipeline_for(market()).run()

    assert [c.ticker for c in outcome.final] == ["GOOD"]
    good = outcome.final[0]
    assert good.primary_trend == "BULLISH"
    assert good.secondary_trend == "BULLISH"
    assert good.vix_level == 15.0
    assert good.suggested_entry == 19.7
    assert good.suggested_stop == 17.5
    assert good.max_shares == 454
    assert good.setup_type == "TREND_CONTINUATION"
    assert good.setup_quality == "A_PLUS"
    assert good.passed_all_gates is True
    assert outcome.stats()["gate4"] == 1

@pytest.mark.asyncio
async def test_run_keeps_gate4_attempts_that_fail_admission():
    provider = market(tickers={"VIX": {"day": {"c": 45.0}}})
    outcome = await pipeline_for(provider).run()

    assert [c.ticker for c in outcome.final] == ["GOOD"]
    assert outcome.final[0].passed_all_gates is False
    assert outcome.stats()["gate4"] == 0

@pytest.mark.asyncio
async def test_gate_flags_are_monotonic():
    provider = market(
        gainers=[
            snapshot_item("GOOD", 20, 18, 3_000_000, 1_000_000, high=21, low=19),
            snapshot_item("WEAK", 20, 18, 1_800_000, 1_000_000, high=21, low=19),
            snapshot_item("LOWVOL", 20, 18, 2_500_000, 1_000_000, high=21, low=19),
        ],
        bars={
            "GOOD": make_bars([18.0] * 20, vwap=19.5),
            "LOWVOL": make_bars([18.0] * 20, vwap=19.5),
        },
    )
    outcome = await pipeline_for(provider, min_volume_spike=1.5).run()

    for stock in outcome.final:
        flags = [stock.passed_gate1, stock.passed_gate2, stock.passed_gate3, stock.passed_gate4]
        for earlier, later in zip(flags, flags[1:]):
            assert not later or earlier
        assert stock.gate1_time and stock.gate2_time and stock.gate3_time and stock.gate4_time

@pytest.mark.asyncio
async def test_benchmark_and_vix_failures_fall_back():
    provider = market(fail={("previous_close", "QQQ"), "snapshot_ticker"})
    pipeline = pipeline_for(provider)

    assert await pipeline.market_trends() == ("BULLISH", "NEUTRAL")
    assert await pipeline.volatility_level() == DEFAULT_VIX

@pytest.mark.asyncio
async def test_run_stops_when_gate1_empty():
    outcome = await pipeline_for(FakeProvider(gainers=[])).run()
    assert outcome.message == "No stocks passed Gate 1"
    assert outcome.final == []
