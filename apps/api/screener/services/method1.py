"""
Method 1: liquidity & volatility scan -> catalyst detection -> technical setup.

Each stage consumes only the survivors of the previous one. Only tickers that
pass all three stages are returned (and persisted by the job).
"""
import asyncio
from datetime import date, timedelta
from typing import Any, Dict, List

import structlog

from screener.schemas.config import Method1Config
from screener.services.candidates import Method1Candidate, SkipReason, StageResult
from screener.services.indicators import (
    EMA_FAST_WINDOW, EMA_SLOW_WINDOW, average_true_range, ema_as_sma, gap_percent,
    intraday_change_percent, latest_vwap, round2, same_direction,
)
from screener.services.market_data import MarketDataError, MarketDataProvider
from screener.services.pipeline import PipelineOutcome

logger = structlog.get_logger()

MIN_RELATIVE_VOLUME = 1.5
MAX_LIQUIDITY_CANDIDATES = 50
NEWS_LIMIT = 5
STRONG_GAP_PERCENT = 5
CATALYST_KEYWORDS = ['earnings', 'beat', 'upgrade', 'fda', 'approval', 'contract', 'acquisition', 'guidance']
BARS_LOOKBACK_DAYS = 30
MIN_BARS = 5

ENTRY_BUFFER = 0.02
TARGET1_R = 1.5
TARGET2_R = 2.5


def catalyst_type_for(keyword: str) -> str:
    if 'earnings' in keyword:
        return 'EARNINGS'
    if 'upgrade' in keyword:
        return 'ANALYST_UPGRADE'
    return 'OTHER'


class Method1Pipeline:
    def __init__(self, provider: MarketDataProvider, config: Method1Config, screen_date: date,
                 benchmark: str = "SPY", request_delay: float = 0.1):
        self.provider = provider
        self.config = config
        self.screen_date = screen_date
        self.benchmark = benchmark
        self.request_delay = request_delay

    async def run(self) -> PipelineOutcome:
        outcome = PipelineOutcome()

        # A failing market snapshot is systemic and propagates to the job
        snapshot = await self.provider.snapshot_all()

        liquidity = self.liquidity_scan(snapshot)
        outcome.stages.append(liquidity)
        if not liquidity.passed:
            outcome.message = "No stocks passed Step 1"
            return outcome

        catalyst = await self.catalyst_check(liquidity.passed)
        outcome.stages.append(catalyst)
        if not catalyst.passed:
            outcome.message = "No stocks passed Step 2"
            return outcome

        technical = await self.technical_setup(catalyst.passed)
        outcome.stages.append(technical)
        outcome.final = technical.passed
        return outcome

    def liquidity_scan(self, snapshot: List[Dict[str, Any]]) -> StageResult[Method1Candidate]:
        """Stage A. Pure filter over snapshot tickers."""
        cfg = self.config
        result: StageResult[Method1Candidate] = StageResult("step1")
        ranked = []

        for item in snapshot:
            ticker = item.get('ticker', '')
            day, prev_day = item.get('day'), item.get('prevDay')
            if not day or not prev_day:
                result.skip(ticker, SkipReason.DATA_MISSING, "missing day/prevDay")
                continue

            last_price = day.get('c') or 0
            previous_close = prev_day.get('c') or 0
            if not previous_close:
                result.skip(ticker, SkipReason.DATA_MISSING, "no previous close")
                continue
            if last_price < cfg.min_price or last_price > cfg.max_price:
                result.skip(ticker, SkipReason.THRESHOLD_FAILED, "price")
                continue

            gap = gap_percent(last_price, previous_close)
            if abs(gap) < cfg.min_gap_percent or abs(gap) > cfg.max_gap_percent:
                result.skip(ticker, SkipReason.THRESHOLD_FAILED, "gap")
                continue

            volume = day.get('v') or 0
            avg_volume = prev_day.get('v') or volume
            if not avg_volume:
                result.skip(ticker, SkipReason.DATA_MISSING, "no volume baseline")
                continue
            if avg_volume < cfg.min_avg_volume:
                result.skip(ticker, SkipReason.THRESHOLD_FAILED, "avg volume")
                continue

            relative_volume = volume / avg_volume
            if relative_volume < MIN_RELATIVE_VOLUME:
                result.skip(ticker, SkipReason.THRESHOLD_FAILED, "relative volume")
                continue

            ranked.append((relative_volume, Method1Candidate(
                ticker=ticker,
                last_price=last_price,
                previous_close=previous_close,
                volume=volume,
                avg_volume=avg_volume,
                gap_percent=round2(gap),
                relative_volume=round2(relative_volume),
                liquidity_passed=True,
            )))

        # Resource cutoff: keep the strongest relative volume, snapshot order on ties
        ranked.sort(key=lambda pair: pair[0], reverse=True)
        for _, candidate in ranked[MAX_LIQUIDITY_CANDIDATES:]:
            result.skip(candidate.ticker, SkipReason.THRESHOLD_FAILED, "outside top %d" % MAX_LIQUIDITY_CANDIDATES)
        result.passed = [c for _, c in ranked[:MAX_LIQUIDITY_CANDIDATES]]
        return result

    async def catalyst_check(self, candidates: List[Method1Candidate]) -> StageResult[Method1Candidate]:
        """Stage B. News keyword match, with a strong-gap fallback that also covers news outages."""
        result: StageResult[Method1Candidate] = StageResult("step2")

        for stock in candidates:
            try:
                news = await self.provider.ticker_news(stock.ticker, NEWS_LIMIT)
            except MarketDataError as e:
                logger.debug("News fetch failed", ticker=stock.ticker, error=str(e))
                if stock.gap_percent > STRONG_GAP_PERCENT:
                    self._mark_catalyst(stock, 'SECTOR_MOMENTUM', f"Gap {stock.gap_percent}%")
                    result.passed.append(stock)
                else:
                    result.skip(stock.ticker, SkipReason.FETCH_FAILED, str(e))
                await asyncio.sleep(self.request_delay)
                continue

            catalyst_type, description = None, None
            if news:
                recent = news[0]
                title = recent.get('title') or ''
                combined = f"{title} {recent.get('description') or ''}".lower()
                for keyword in CATALYST_KEYWORDS:
                    if keyword in combined:
                        catalyst_type = catalyst_type_for(keyword)
                        description = title[:200]
                        break

            if catalyst_type is None and stock.gap_percent > STRONG_GAP_PERCENT:
                catalyst_type = 'SECTOR_MOMENTUM'
                description = f"Strong gap {stock.gap_percent}%"

            if catalyst_type:
                self._mark_catalyst(stock, catalyst_type, description)
                result.passed.append(stock)
            else:
                result.skip(stock.ticker, SkipReason.THRESHOLD_FAILED, "no catalyst")

            await asyncio.sleep(self.request_delay)

        return result

    @staticmethod
    def _mark_catalyst(stock: Method1Candidate, catalyst_type: str, description: str):
        stock.has_catalyst = True
        stock.catalyst_type = catalyst_type
        stock.catalyst_description = description
        stock.catalyst_passed = True

    async def technical_setup(self, candidates: List[Method1Candidate]) -> StageResult[Method1Candidate]:
        """Stage C. Price above VWAP and the 9-bar average, aligned with the benchmark."""
        result: StageResult[Method1Candidate] = StageResult("step3")
        start = self.screen_date - timedelta(days=BARS_LOOKBACK_DAYS)

        for stock in candidates:
            # Collect both outcomes so a second failure is not left unretrieved
            bars, benchmark_bar = await asyncio.gather(
                self.provider.daily_bars(stock.ticker, start, self.screen_date),
                self.provider.previous_close(self.benchmark),
                return_exceptions=True,
            )
            try:
                for fetched in (bars, benchmark_bar):
                    if isinstance(fetched, BaseException):
                        raise fetched
            except MarketDataError as e:
                logger.debug("Technical fetch failed", ticker=stock.ticker, error=str(e))
                result.skip(stock.ticker, SkipReason.FETCH_FAILED, str(e))
                await asyncio.sleep(self.request_delay)
                continue

            if len(bars) < MIN_BARS:
                result.skip(stock.ticker, SkipReason.DATA_MISSING, "%d bars" % len(bars))
                await asyncio.sleep(self.request_delay)
                continue

            self.evaluate_setup(stock, bars, intraday_change_percent(benchmark_bar))
            if stock.technical_setup_passed:
                result.passed.append(stock)
            else:
                result.skip(stock.ticker, SkipReason.THRESHOLD_FAILED, "technical setup")

            await asyncio.sleep(self.request_delay)

        return result

    @staticmethod
    def evaluate_setup(stock: Method1Candidate, bars, benchmark_change: float) -> Method1Candidate:
        ema20 = ema_as_sma(bars['close'], EMA_SLOW_WINDOW)
        ema9 = ema_as_sma(bars['close'], EMA_FAST_WINDOW)
        vwap = latest_vwap(bars, stock.last_price)
        atr = average_true_range(bars)

        stock.vwap = round2(vwap)
        stock.ema9 = round2(ema9)
        stock.ema20 = round2(ema20)
        stock.atr = round2(atr)
        stock.atr_percent = round2(atr / stock.last_price * 100)
        stock.above_vwap = stock.last_price > vwap
        stock.market_aligned = same_direction(stock.gap_percent, benchmark_change)
        stock.technical_setup_passed = stock.above_vwap and stock.last_price > ema9 and stock.market_aligned
        stock.passed_method1 = stock.technical_setup_passed

        if stock.technical_setup_passed:
            entry = round2(vwap + ENTRY_BUFFER * stock.last_price)
            stop = round2(vwap - atr)
            risk = entry - stop
            stock.suggested_entry = entry
            stock.suggested_stop = stop
            stock.target1 = round2(entry + TARGET1_R * risk)
            stock.target2 = round2(entry + TARGET2_R * risk)

        return stock
