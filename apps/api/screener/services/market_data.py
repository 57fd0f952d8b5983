from abc import ABC, abstractmethod
from datetime import date
from typing import Any, Dict, List, Optional

import httpx
import pandas as pd
import structlog

logger = structlog.get_logger()

BAR_COLUMNS = {
    'o': 'open',
    'h': 'high',
    'l': 'low',
    'c': 'close',
    'v': 'volume',
    'vw': 'vwap',
    't': 'timestamp',
}


class MarketDataError(Exception):
    """Provider call failed: non-2xx status, transport error or unreadable body."""

    def __init__(self, message: str, status_code: Optional[int] = None, url: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.url = url


class MarketDataProvider(ABC):
    """
    Market data collaborator consumed by the screening jobs.
    Snapshot ticker dicts keep the provider's raw shape ({ticker, day, prevDay, ...});
    callers treat missing keys as "skip this ticker".
    """

    @abstractmethod
    async def snapshot_all(self) -> List[Dict[str, Any]]:
        """Full-market snapshot, one dict per ticker."""

    @abstractmethod
    async def snapshot_gainers(self) -> List[Dict[str, Any]]:
        """Gainers snapshot in the provider's own ranking order."""

    @abstractmethod
    async def snapshot_ticker(self, ticker: str) -> Optional[Dict[str, Any]]:
        """Single-ticker snapshot, None if the provider has no 'ticker' object."""

    @abstractmethod
    async def ticker_news(self, ticker: str, limit: int = 5) -> List[Dict[str, Any]]:
        """Most recent news first."""

    @abstractmethod
    async def daily_bars(self, ticker: str, start_date: date, end_date: date) -> pd.DataFrame:
        """
        Daily aggregate bars, oldest first.
        Columns: [open, high, low, close, volume, vwap]
        """

    @abstractmethod
    async def previous_close(self, ticker: str) -> Optional[Dict[str, Any]]:
        """Previous session bar ({o, h, l, c, v}), None if absent."""

    @abstractmethod
    async def indicator(self, ticker: str, kind: str, window: int) -> Optional[float]:
        """Latest provider-computed sma/ema/rsi value."""

    @abstractmethod
    async def macd(self, ticker: str) -> Optional[Dict[str, float]]:
        """Latest provider-computed MACD {value, signal, histogram}."""


class PolygonProvider(MarketDataProvider):
    def __init__(self, api_key: str, base_url: str = "https://api.polygon.io",
                 timeout: float = 10.0, client: Optional[httpx.AsyncClient] = None):
        self.api_key = api_key
        self.base_url = base_url.rstrip('/')
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.aclose()

    async def aclose(self):
        await self._client.aclose()

    async def _get(self, path: str, params: Optional[dict] = None) -> dict:
        url = f"{self.base_url}{path}"
        query = dict(params or {})
        query["apiKey"] = self.api_key
        try:
            resp = await self._client.get(url, params=query)
        except httpx.HTTPError as e:
            raise MarketDataError(f"Polygon request failed: {e}", url=path) from e

        if not resp.is_success:
            raise MarketDataError(f"Polygon API error: {resp.status_code}", status_code=resp.status_code, url=path)
        try:
            data = resp.json()
        except ValueError as e:
            raise MarketDataError("Polygon returned invalid JSON", status_code=resp.status_code, url=path) from e
        if not isinstance(data, dict):
            raise MarketDataError("Polygon returned an unexpected payload", status_code=resp.status_code, url=path)
        return data

    async def snapshot_all(self) -> List[Dict[str, Any]]:
        data = await self._get("/v2/snapshot/locale/us/markets/stocks/tickers")
        return data.get("tickers") or []

    async def snapshot_gainers(self) -> List[Dict[str, Any]]:
        data = await self._get("/v2/snapshot/locale/us/markets/stocks/gainers")
        return data.get("tickers") or []

    async def snapshot_ticker(self, ticker: str) -> Optional[Dict[str, Any]]:
        data = await self._get(f"/v2/snapshot/locale/us/markets/stocks/tickers/{ticker.upper()}")
        return data.get("ticker")

    async def ticker_news(self, ticker: str, limit: int = 5) -> List[Dict[str, Any]]:
        data = await self._get("/v2/reference/news", params={"ticker": ticker.upper(), "limit": limit})
        return data.get("results") or []

    async def daily_bars(self, ticker: str, start_date: date, end_date: date) -> pd.DataFrame:
        data = await self._get(
            f"/v2/aggs/ticker/{ticker.upper()}/range/1/day/{start_date.isoformat()}/{end_date.isoformat()}",
            params={"adjusted": "true", "sort": "asc"},
        )
        return bars_to_frame(data.get("results") or [])

    async def previous_close(self, ticker: str) -> Optional[Dict[str, Any]]:
        data = await self._get(f"/v2/aggs/ticker/{ticker.upper()}/prev")
        results = data.get("results") or []
        return results[0] if results else None

    async def indicator(self, ticker: str, kind: str, window: int) -> Optional[float]:
        if kind not in ("sma", "ema", "rsi"):
            raise ValueError(f"Unsupported indicator {kind}")
        data = await self._get(
            f"/v1/indicators/{kind}/{ticker.upper()}",
            params={"timespan": "day", "window": window},
        )
        values = (data.get("results") or {}).get("values") or []
        return values[0].get("value") if values else None

    async def macd(self, ticker: str) -> Optional[Dict[str, float]]:
        data = await self._get(f"/v1/indicators/macd/{ticker.upper()}", params={"timespan": "day"})
        values = (data.get("results") or {}).get("values") or []
        if not values:
            return None
        latest = values[0]
        return {
            "value": latest.get("value"),
            "signal": latest.get("signal"),
            "histogram": latest.get("histogram"),
        }


def bars_to_frame(results: List[Dict[str, Any]]) -> pd.DataFrame:
    """Provider aggregate rows -> OHLCV frame with lowercase columns."""
    if not results:
        return pd.DataFrame(columns=['open', 'high', 'low', 'close', 'volume', 'vwap'])

    df = pd.DataFrame(results).rename(columns=BAR_COLUMNS)
    if 'timestamp' in df.columns:
        df['date'] = pd.to_datetime(df['timestamp'], unit='ms')
        df.set_index('date', inplace=True)

    # Absent fields become NaN rather than failing the whole ticker
    return df.reindex(columns=['open', 'high', 'low', 'close', 'volume', 'vwap'])
