from typing import Any, Dict, List

from screener.schemas.config import ScannerConfig
from screener.services.indicators import gap_percent, round2
from screener.services.market_data import MarketDataProvider

MAX_SCAN_RESULTS = 100


class MarketScanner:
    """Gap scan over the full-market snapshot. Reporting only, nothing is persisted."""

    def __init__(self, provider: MarketDataProvider, config: ScannerConfig):
        self.provider = provider
        self.config = config

    def accepts(self, item: Dict[str, Any]) -> bool:
        cfg = self.config
        day, prev_day = item.get('day'), item.get('prevDay')
        if not day or not prev_day:
            return False

        price = day.get('c') or 0
        previous_close = prev_day.get('c') or 0
        if price < cfg.min_price or price > cfg.max_price:
            return False
        if (day.get('v') or 0) < cfg.min_volume:
            return False
        if not previous_close:
            return False

        gap = gap_percent(price, previous_close)
        if abs(gap) < cfg.min_gap_percent or abs(gap) > cfg.max_gap_percent:
            return False
        if cfg.gap_direction == 'up' and gap < 0:
            return False
        if cfg.gap_direction == 'down' and gap > 0:
            return False
        return True

    @staticmethod
    def to_result(item: Dict[str, Any]) -> Dict[str, Any]:
        price = item['day']['c']
        previous_close = item['prevDay']['c']
        return {
            "ticker": item.get('ticker'),
            "price": price,
            "previous_close": previous_close,
            "gap_percent": round2(gap_percent(price, previous_close)),
            "volume": item['day'].get('v'),
            "todays_change": item.get('todaysChange'),
            "todays_change_percent": item.get('todaysChangePerc'),
        }

    async def scan(self) -> List[Dict[str, Any]]:
        snapshot = await self.provider.snapshot_all()
        results = [self.to_result(item) for item in snapshot if self.accepts(item)]
        results.sort(key=lambda r: abs(r["gap_percent"]), reverse=True)
        return results[:MAX_SCAN_RESULTS]
