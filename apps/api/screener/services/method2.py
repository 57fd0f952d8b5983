"""
Method 2: four sequential gates per ticker.

Gate 1 pre-market filter -> Gate 2 technical alignment -> Gate 3 execution
confirmation -> Gate 4 risk validation. A ticker only enters gate N+1 after
passing gate N; every ticker that reaches Gate 4 is kept (admitted or not) so
the job can persist the full attempt.
"""
import asyncio
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Tuple

import structlog

from screener.schemas.config import Method2Config
from screener.services.candidates import Method2Candidate, SkipReason, StageResult
from screener.services.indicators import (
    EMA_FAST_WINDOW, EMA_SLOW_WINDOW, MarketTrend, classify_trend, ema_as_sma,
    latest_vwap, max_position_size, round2,
)
from screener.services.market_data import MarketDataError, MarketDataProvider
from screener.services.pipeline import PipelineOutcome

logger = structlog.get_logger()

MAX_GAINERS = 30
DEFAULT_AVG_VOLUME = 1_000_000
DEFAULT_VIX = 20.0
BARS_LOOKBACK_DAYS = 30
MIN_BARS = 5

GATE2_MIN_RELATIVE_VOLUME = 1.5
GATE3_MIN_RELATIVE_VOLUME = 2.0
VWAP_HOLD_TOLERANCE = 0.995

ENTRY_BUFFER = 0.01
MIN_SHARES = 10
TARGET1_R = 1.5
TARGET2_R = 2.5
DEFAULT_RISK_REWARD = 1.5

QUALITY_RANK = {'C': 0, 'B': 1, 'A': 2, 'A_PLUS': 3}


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def classify_setup(volume_spike: float, above_ema9: bool, above_ema20: bool) -> str:
    if volume_spike > 3:
        return 'GAP_AND_GO'
    if above_ema20 and above_ema9:
        return 'TREND_CONTINUATION'
    return 'VWAP_RECLAIM'


def quality_score(volume_spike: float, primary_trend: str, secondary_trend: str, risk_reward: float) -> int:
    """0-7 composite: volume spike 0-2, primary trend 0-2, secondary trend 0-1, risk/reward 0-2."""
    score = 0
    if volume_spike >= 3:
        score += 2
    elif volume_spike >= 2:
        score += 1

    if primary_trend == MarketTrend.BULLISH.value:
        score += 2
    elif primary_trend == MarketTrend.NEUTRAL.value:
        score += 1

    if secondary_trend == MarketTrend.BULLISH.value:
        score += 1

    if risk_reward >= 2:
        score += 2
    elif risk_reward >= 1.5:
        score += 1
    return score


def quality_grade(score: int) -> str:
    if score >= 6:
        return 'A_PLUS'
    if score >= 4:
        return 'A'
    if score >= 2:
        return 'B'
    return 'C'


class Method2Pipeline:
    def __init__(self, provider: MarketDataProvider, config: Method2Config, screen_date: date,
                 primary_benchmark: str = "SPY", secondary_benchmark: str = "QQQ",
                 volatility_index: str = "VIX", request_delay: float = 0.1):
        self.provider = provider
        self.config = config
        self.screen_date = screen_date
        self.primary_benchmark = primary_benchmark
        self.secondary_benchmark = secondary_benchmark
        self.volatility_index = volatility_index
        self.request_delay = request_delay

    async def run(self) -> PipelineOutcome:
        outcome = PipelineOutcome()

        gainers = await self.provider.snapshot_gainers()

        gate1 = self.gate1_premarket(gainers)
        outcome.stages.append(gate1)
        if not gate1.passed:
            outcome.message = "No stocks passed Gate 1"
            return outcome

        trends = await self.market_trends()
        gate2 = await self.gate2_alignment(gate1.passed, trends)
        outcome.stages.append(gate2)
        if not gate2.passed:
            outcome.message = "No stocks passed Gate 2"
            return outcome

        gate3 = self.gate3_confirmation(gate2.passed)
        outcome.stages.append(gate3)
        if not gate3.passed:
            outcome.message = "No stocks passed Gate 3"
            return outcome

        vix = await self.volatility_level()
        gate4 = self.gate4_risk(gate3.passed, vix)
        outcome.stages.append(gate4)
        outcome.final = gate3.passed
        return outcome

    async def market_trend(self, ticker: str) -> str:
        try:
            bar = await self.provider.previous_close(ticker)
        except MarketDataError as e:
            logger.warning("Benchmark trend unavailable, assuming neutral", ticker=ticker, error=str(e))
            return MarketTrend.NEUTRAL.value
        return classify_trend(bar).value

    async def market_trends(self) -> Tuple[str, str]:
        primary, secondary = await asyncio.gather(
            self.market_trend(self.primary_benchmark),
            self.market_trend(self.secondary_benchmark),
        )
        return primary, secondary

    async def volatility_level(self) -> float:
        try:
            snapshot = await self.provider.snapshot_ticker(self.volatility_index)
        except MarketDataError as e:
            logger.warning("Volatility index unavailable, using default", error=str(e))
            return DEFAULT_VIX
        return ((snapshot or {}).get('day') or {}).get('c') or DEFAULT_VIX

    def gate1_premarket(self, gainers: List[Dict[str, Any]]) -> StageResult[Method2Candidate]:
        cfg = self.config
        result: StageResult[Method2Candidate] = StageResult("gate1")

        for item in gainers[:MAX_GAINERS]:
            ticker = item.get('ticker', '')
            day, prev_day = item.get('day'), item.get('prevDay')
            if not day or not prev_day:
                result.skip(ticker, SkipReason.DATA_MISSING, "missing day/prevDay")
                continue

            last_price = day.get('c') or 0
            if last_price <= 0:
                result.skip(ticker, SkipReason.DATA_MISSING, "no last price")
                continue
            if last_price < cfg.min_price or last_price > cfg.max_price:
                result.skip(ticker, SkipReason.THRESHOLD_FAILED, "price")
                continue

            avg_volume_30d = prev_day.get('v') or DEFAULT_AVG_VOLUME
            pre_market_volume = day.get('v') or 0
            volume_spike = pre_market_volume / avg_volume_30d
            if volume_spike < cfg.min_volume_spike:
                result.skip(ticker, SkipReason.THRESHOLD_FAILED, "volume spike")
                continue

            atr_percent = ((day.get('h') or 0) - (day.get('l') or 0)) / last_price * 100
            if atr_percent < cfg.min_atr_percent:
                result.skip(ticker, SkipReason.THRESHOLD_FAILED, "atr percent")
                continue

            result.passed.append(Method2Candidate(
                ticker=ticker,
                last_price=last_price,
                avg_volume_30d=avg_volume_30d,
                pre_market_volume=pre_market_volume,
                volume_spike=round2(volume_spike),
                atr_percent=round2(atr_percent),
                passed_gate1=True,
            ))

        stamp = now_utc()
        for stock in result.passed:
            stock.gate1_time = stamp
        return result

    async def gate2_alignment(self, candidates: List[Method2Candidate],
                              trends: Tuple[str, str]) -> StageResult[Method2Candidate]:
        result: StageResult[Method2Candidate] = StageResult("gate2")
        primary, secondary = trends
        start = self.screen_date - timedelta(days=BARS_LOOKBACK_DAYS)

        for stock in candidates:
            try:
                bars = await self.provider.daily_bars(stock.ticker, start, self.screen_date)
            except MarketDataError as e:
                logger.debug("Gate 2 fetch failed", ticker=stock.ticker, error=str(e))
                result.skip(stock.ticker, SkipReason.FETCH_FAILED, str(e))
                await asyncio.sleep(self.request_delay)
                continue

            if len(bars) < MIN_BARS:
                result.skip(stock.ticker, SkipReason.DATA_MISSING, "%d bars" % len(bars))
                await asyncio.sleep(self.request_delay)
                continue

            closes = bars['close']
            ema20 = ema_as_sma(closes, EMA_SLOW_WINDOW)
            ema9 = ema_as_sma(closes, EMA_FAST_WINDOW)
            vwap = latest_vwap(bars, stock.last_price)
            relative_volume = stock.pre_market_volume / stock.avg_volume_30d

            is_bullish = stock.last_price > closes.iloc[-2]
            bullish_market = MarketTrend.BULLISH.value in (primary, secondary)
            bearish_market = MarketTrend.BEARISH.value in (primary, secondary)

            stock.vwap = round2(vwap)
            stock.ema9 = round2(ema9)
            stock.ema20 = round2(ema20)
            stock.above_vwap = stock.last_price > vwap
            stock.above_ema9 = stock.last_price > ema9
            stock.above_ema20 = stock.last_price > ema20
            stock.relative_volume = round2(relative_volume)
            stock.primary_trend = primary
            stock.secondary_trend = secondary
            stock.market_aligned = bool((is_bullish and bullish_market) or (not is_bullish and bearish_market))
            stock.passed_gate2 = (stock.above_vwap and stock.above_ema9 and stock.market_aligned
                                  and relative_volume >= GATE2_MIN_RELATIVE_VOLUME)

            if stock.passed_gate2:
                result.passed.append(stock)
            else:
                result.skip(stock.ticker, SkipReason.THRESHOLD_FAILED, "technical alignment")

            await asyncio.sleep(self.request_delay)

        stamp = now_utc()
        for stock in result.passed:
            stock.gate2_time = stamp
        return result

    def gate3_confirmation(self, candidates: List[Method2Candidate]) -> StageResult[Method2Candidate]:
        result: StageResult[Method2Candidate] = StageResult("gate3")

        for stock in candidates:
            stock.holds_above_vwap = stock.last_price > stock.vwap * VWAP_HOLD_TOLERANCE
            # TODO: evaluate upper-wick rejection on the latest bar; passes unconditionally until defined
            stock.no_rejection_wick = True
            stock.volume_expansion = stock.relative_volume >= GATE3_MIN_RELATIVE_VOLUME
            stock.trend_agrees = stock.primary_trend != MarketTrend.BEARISH.value
            stock.passed_gate3 = (stock.holds_above_vwap and stock.no_rejection_wick
                                  and stock.volume_expansion and stock.trend_agrees)

            if stock.passed_gate3:
                result.passed.append(stock)
            else:
                result.skip(stock.ticker, SkipReason.THRESHOLD_FAILED, "confirmation")

        stamp = now_utc()
        for stock in result.passed:
            stock.gate3_time = stamp
        return result

    def gate4_risk(self, candidates: List[Method2Candidate], vix_level: float) -> StageResult[Method2Candidate]:
        """Sizes and grades every candidate; `passed` holds the admitted ones."""
        cfg = self.config
        result: StageResult[Method2Candidate] = StageResult("gate4")
        max_risk_dollars = cfg.account_size * cfg.max_risk_percent / 100

        for stock in candidates:
            entry = round2(stock.vwap + ENTRY_BUFFER * stock.last_price)
            stop = round2(stock.vwap - stock.atr_percent / 100 * stock.last_price)
            risk_per_share = round2(entry - stop)
            max_shares = max_position_size(max_risk_dollars, risk_per_share)

            target1 = round2(entry + risk_per_share * TARGET1_R)
            target2 = round2(entry + risk_per_share * TARGET2_R)
            if risk_per_share > 0:
                risk_reward = round2((target1 - entry) / risk_per_share)
            else:
                risk_reward = DEFAULT_RISK_REWARD

            stock.suggested_entry = entry
            stock.suggested_stop = stop
            stock.suggested_target1 = target1
            stock.suggested_target2 = target2
            stock.risk_per_share = risk_per_share
            stock.max_shares = max_shares
            stock.risk_check_passed = max_shares >= MIN_SHARES and risk_per_share > 0
            stock.vix_level = vix_level
            stock.market_volatility_ok = vix_level < cfg.max_vix
            stock.risk_reward_ratio = risk_reward

            stock.setup_type = classify_setup(stock.volume_spike, stock.above_ema9, stock.above_ema20)
            stock.quality_score = quality_score(stock.volume_spike, stock.primary_trend,
                                                stock.secondary_trend, risk_reward)
            stock.setup_quality = quality_grade(stock.quality_score)

            stock.passed_gate4 = (stock.risk_check_passed and stock.market_volatility_ok
                                  and risk_reward >= cfg.min_risk_reward)
            stock.passed_all_gates = (stock.passed_gate4
                                      and QUALITY_RANK[stock.setup_quality] >= QUALITY_RANK[cfg.min_setup_quality])
            stock.gate4_time = now_utc()

            if stock.passed_all_gates:
                result.passed.append(stock)
            elif not stock.passed_gate4:
                result.skip(stock.ticker, SkipReason.THRESHOLD_FAILED, "risk validation")
            else:
                result.skip(stock.ticker, SkipReason.THRESHOLD_FAILED, "setup quality")

        return result
