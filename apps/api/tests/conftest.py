import os

# Point the app-level engine at SQLite before any screener module reads settings
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from datetime import date
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from screener.config import Settings
from screener.database import create_tables
from screener.services.market_data import MarketDataError, MarketDataProvider
from screener.services.store import ScreeningStore

SCREEN_DATE = date(2024, 3, 15)


def make_bars(closes, spread=1.0, vwap=None, volume=1_000_000):
    """Daily bars around `closes`; high/low sit `spread` above/below the close."""
    closes = np.asarray(closes, dtype=float)
    dates = pd.date_range(end='2024-03-15', periods=len(closes), freq='B')
    return pd.DataFrame({
        'open': closes,
        'high': closes + spread,
        'low': closes - spread,
        'close': closes,
        'volume': [volume] * len(closes),
        'vwap': closes if vwap is None else [np.nan] * (len(closes) - 1) + [vwap],
    }, index=dates)


def snapshot_item(ticker, price, prev_close, volume, prev_volume, high=None, low=None):
    return {
        "ticker": ticker,
        "day": {"o": prev_close, "h": high or price, "l": low or prev_close, "c": price, "v": volume},
        "prevDay": {"c": prev_close, "v": prev_volume},
        "todaysChange": price - prev_close,
        "todaysChangePerc": (price - prev_close) / prev_close * 100,
    }


class FakeProvider(MarketDataProvider):
    """
    In-process market data. `fail` holds method names or (method, ticker)
    pairs that raise MarketDataError.
    """

    def __init__(self, snapshot=None, gainers=None, news=None, bars=None, prev=None,
                 tickers=None, indicators=None, macd=None, fail=()):
        self.snapshot = snapshot or []
        self.gainers = gainers or []
        self.news = news or {}
        self.bars = bars or {}
        self.prev = prev or {}
        self.tickers = tickers or {}
        self.indicators = indicators or {}
        self.macd_values = macd or {}
        self.fail = set(fail)
        self.calls: List[tuple] = []

    def _call(self, method: str, ticker: Optional[str] = None):
        self.calls.append((method, ticker))
        if method in self.fail or (method, ticker) in self.fail:
            raise MarketDataError(f"{method} failed", status_code=500, url=f"/{method}")

    async def snapshot_all(self) -> List[Dict[str, Any]]:
        self._call("snapshot_all")
        return self.snapshot

    async def snapshot_gainers(self) -> List[Dict[str, Any]]:
        self._call("snapshot_gainers")
        return self.gainers

    async def snapshot_ticker(self, ticker: str):
        self._call("snapshot_ticker", ticker)
        return self.tickers.get(ticker)

    async def ticker_news(self, ticker: str, limit: int = 5):
        self._call("ticker_news", ticker)
        return self.news.get(ticker, [])[:limit]

    async def daily_bars(self, ticker: str, start_date: date, end_date: date) -> pd.DataFrame:
        self._call("daily_bars", ticker)
        return self.bars.get(ticker, pd.DataFrame(columns=['open', 'high', 'low', 'close', 'volume', 'vwap']))

    async def previous_close(self, ticker: str):
        self._call("previous_close", ticker)
        return self.prev.get(ticker)

    async def indicator(self, ticker: str, kind: str, window: int):
        self._call("indicator", ticker)
        return self.indicators.get((ticker, kind, window))

    async def macd(self, ticker: str):
        self._call("macd", ticker)
        return self.macd_values.get(ticker)


@pytest.fixture
def settings():
    return Settings(REQUEST_DELAY_SECONDS=0, DATABASE_URL="sqlite+aiosqlite:///:memory:")


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await create_tables(engine)

    yield sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
def store(session_factory):
    return ScreeningStore(session_factory)
