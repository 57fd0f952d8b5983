from typing import AsyncIterator

from screener.config import get_settings
from screener.database import AsyncSessionLocal
from screener.services.market_data import MarketDataProvider, PolygonProvider
from screener.services.store import ScreeningStore


def get_store() -> ScreeningStore:
    return ScreeningStore(AsyncSessionLocal)


async def get_provider() -> AsyncIterator[MarketDataProvider]:
    # One HTTP client per job invocation, closed when the request ends
    settings = get_settings()
    async with PolygonProvider(
        settings.POLYGON_API_KEY,
        base_url=settings.POLYGON_BASE_URL,
        timeout=settings.HTTP_TIMEOUT_SECONDS,
    ) as provider:
        yield provider
