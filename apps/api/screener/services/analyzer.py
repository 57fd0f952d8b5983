import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import structlog

from screener.services.market_data import MarketDataError, MarketDataProvider

logger = structlog.get_logger()

NEWS_LIMIT = 5


def pct_vs(price: float, level: Optional[float]) -> Optional[float]:
    if not level:
        return None
    return (price - level) / level * 100


def determine_trend(price: float, sma20: Optional[float], sma50: Optional[float],
                    sma200: Optional[float]) -> str:
    """bullish/bearish when at least 3 of the 4 moving-average checks agree."""
    bullish, bearish = 0, 0
    for level in (sma20, sma50, sma200):
        if level and price > level:
            bullish += 1
        elif level and price < level:
            bearish += 1

    if sma20 and sma50 and sma20 > sma50:
        bullish += 1
    elif sma20 and sma50 and sma20 < sma50:
        bearish += 1

    if bullish >= 3:
        return 'bullish'
    if bearish >= 3:
        return 'bearish'
    return 'neutral'


def determine_strength(rsi: Optional[float], macd: Optional[Dict[str, float]]) -> str:
    score = 0
    if rsi:
        if 50 < rsi < 70:
            score += 2
        elif 30 <= rsi <= 50:
            score += 1

    if macd:
        if macd['histogram'] > 0 and macd['value'] > macd['signal']:
            score += 2
        elif macd['histogram'] > 0 or macd['value'] > macd['signal']:
            score += 1

    if score >= 3:
        return 'strong'
    if score >= 1:
        return 'moderate'
    return 'weak'


def generate_signals(price: float, sma20: Optional[float], sma50: Optional[float], sma200: Optional[float],
                     rsi: Optional[float], macd: Optional[Dict[str, float]]) -> List[str]:
    signals = []

    if sma20 and sma50:
        if sma20 > sma50:
            signals.append('Golden cross (SMA20 > SMA50)')
        else:
            signals.append('Death cross (SMA20 < SMA50)')

    if sma200 and price > sma200:
        signals.append('Trading above 200 SMA (long-term bullish)')
    elif sma200 and price < sma200:
        signals.append('Trading below 200 SMA (long-term bearish)')

    if rsi:
        if rsi > 70:
            signals.append('RSI overbought (>70)')
        elif rsi < 30:
            signals.append('RSI oversold (<30)')
        elif rsi > 50:
            signals.append('RSI bullish (>50)')
        else:
            signals.append('RSI bearish (<50)')

    if macd:
        if macd['histogram'] > 0 and macd['value'] > macd['signal']:
            signals.append('MACD bullish crossover')
        elif macd['histogram'] < 0 and macd['value'] < macd['signal']:
            signals.append('MACD bearish crossover')

    return signals


class StockAnalyzer:
    """On-demand multi-indicator report per ticker. Reporting only."""

    def __init__(self, provider: MarketDataProvider, request_delay: float = 0.1):
        self.provider = provider
        self.request_delay = request_delay

    async def _indicator(self, ticker: str, kind: str, window: int) -> Optional[float]:
        try:
            return await self.provider.indicator(ticker, kind, window)
        except MarketDataError as e:
            logger.warning("Indicator unavailable", ticker=ticker, indicator=f"{kind}{window}", error=str(e))
            return None

    async def _macd(self, ticker: str) -> Optional[Dict[str, float]]:
        try:
            macd = await self.provider.macd(ticker)
        except MarketDataError as e:
            logger.warning("MACD unavailable", ticker=ticker, error=str(e))
            return None
        if not macd or None in macd.values():
            return None
        return macd

    async def _news(self, ticker: str) -> List[Dict[str, Any]]:
        try:
            items = await self.provider.ticker_news(ticker, NEWS_LIMIT)
        except MarketDataError as e:
            logger.warning("News unavailable", ticker=ticker, error=str(e))
            return []
        return [
            {"title": n.get('title'), "published": n.get('published_utc'), "url": n.get('article_url')}
            for n in items
        ]

    async def analyze(self, ticker: str) -> Optional[Dict[str, Any]]:
        """None when the provider has no price for the ticker."""
        prev, sma20, sma50, sma200, ema9, ema21, rsi, macd, news = await asyncio.gather(
            self.provider.previous_close(ticker),
            self._indicator(ticker, 'sma', 20),
            self._indicator(ticker, 'sma', 50),
            self._indicator(ticker, 'sma', 200),
            self._indicator(ticker, 'ema', 9),
            self._indicator(ticker, 'ema', 21),
            self._indicator(ticker, 'rsi', 14),
            self._macd(ticker),
            self._news(ticker),
        )

        price = (prev or {}).get('c') or 0
        if not price:
            return None

        return {
            "ticker": ticker,
            "price": price,
            "sma20": sma20,
            "sma50": sma50,
            "sma200": sma200,
            "ema9": ema9,
            "ema21": ema21,
            "rsi": rsi,
            "macd": macd,
            "price_vs_sma20": pct_vs(price, sma20),
            "price_vs_sma50": pct_vs(price, sma50),
            "price_vs_sma200": pct_vs(price, sma200),
            "trend": determine_trend(price, sma20, sma50, sma200),
            "strength": determine_strength(rsi, macd),
            "signals": generate_signals(price, sma20, sma50, sma200, rsi, macd),
            "news_count": len(news),
            "recent_news": news,
            "analyzed_at": datetime.now(timezone.utc).isoformat(),
        }

    async def analyze_many(self, tickers: List[str]) -> List[Dict[str, Any]]:
        results = []
        for ticker in tickers:
            try:
                report = await self.analyze(ticker.upper())
                if report is None:
                    logger.warning("No price data, skipping", ticker=ticker)
                else:
                    results.append(report)
            except MarketDataError as e:
                logger.error("Analysis failed", ticker=ticker, error=str(e))
            await asyncio.sleep(self.request_delay)
        return results
