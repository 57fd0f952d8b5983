from typing import Any, Dict, List, Optional

from screener.models import Method1Result, Method2Result
from screener.services.indicators import MarketTrend, round2

BASE_SCORE = 50
BOTH_METHODS_BONUS = 30
ONE_METHOD_BONUS = 15
QUALITY_BONUS = {'A_PLUS': 20, 'A': 15, 'B': 10, 'C': 5}
BULLISH_TREND_BONUS = 5
DEFAULT_RISK_REWARD = 1.5
DEFAULT_STOP_FACTOR = 0.97
DEFAULT_TARGET_FACTOR = 1.05


def first_present(*values):
    """First truthy value; zero counts as "not computed" like a missing field."""
    for v in values:
        if v:
            return v
    return None


class ResultsCombiner:
    def priority_score(self, in_method1: bool, in_method2: bool, setup_quality: Optional[str],
                       risk_reward: float, primary_trend: Optional[str] = None,
                       secondary_trend: Optional[str] = None) -> int:
        """
        Additive 0-100 score.
        base 50; +30 both methods / +15 one; quality A_PLUS 20, A 15, B 10, C 5;
        risk/reward >=2.5: 15, >=2.0: 10, >=1.5: 5; +5 per bullish benchmark.
        """
        score = BASE_SCORE
        if in_method1 and in_method2:
            score += BOTH_METHODS_BONUS
        elif in_method1 or in_method2:
            score += ONE_METHOD_BONUS

        score += QUALITY_BONUS.get(setup_quality, 0)

        if risk_reward >= 2.5:
            score += 15
        elif risk_reward >= 2.0:
            score += 10
        elif risk_reward >= 1.5:
            score += 5

        if primary_trend == MarketTrend.BULLISH.value:
            score += BULLISH_TREND_BONUS
        if secondary_trend == MarketTrend.BULLISH.value:
            score += BULLISH_TREND_BONUS

        return min(100, max(0, score))

    @staticmethod
    def risk_reward(entry: float, stop: float, target1: float) -> float:
        risk = (entry or 0) - (stop or 0)
        if risk <= 0:
            return DEFAULT_RISK_REWARD
        return round2(((target1 or 0) - (entry or 0)) / risk)

    def merge(self, method1_rows: List[Method1Result], method2_rows: List[Method2Result]) -> List[Dict[str, Any]]:
        """
        Union of admitted tickers from both methods, one merged record per ticker.
        Method 2 values win over Method 1, then price-relative defaults.
        """
        m1_map = {r.ticker: r for r in method1_rows if r.passed_method1}
        m2_map = {r.ticker: r for r in method2_rows if r.passed_all_gates}

        # Method 2 order first, then Method-1-only tickers, for stable output
        tickers = list(m2_map) + [t for t in m1_map if t not in m2_map]

        merged = []
        for ticker in tickers:
            m1, m2 = m1_map.get(ticker), m2_map.get(ticker)
            in_method1, in_method2 = m1 is not None, m2 is not None
            in_both = in_method1 and in_method2

            price = first_present(m2 and m2.last_price, m1 and m1.last_price) or 0
            setup_type = (m2 and m2.setup_type) or 'GAP_AND_GO'
            if m2 and m2.setup_quality:
                setup_quality = m2.setup_quality
            elif in_both:
                setup_quality = 'A_PLUS'
            elif in_method1:
                setup_quality = 'A'
            else:
                setup_quality = 'B'

            entry = first_present(m2 and m2.suggested_entry, m1 and m1.suggested_entry) or price
            stop = first_present(m2 and m2.suggested_stop, m1 and m1.suggested_stop) or round2(price * DEFAULT_STOP_FACTOR)
            target1 = first_present(m2 and m2.suggested_target1, m1 and m1.target1) or round2(price * DEFAULT_TARGET_FACTOR)
            target2 = first_present(m2 and m2.suggested_target2, m1 and m1.target2)

            rr = self.risk_reward(entry, stop, target1)
            primary = m2.primary_trend if m2 else None
            secondary = m2.secondary_trend if m2 else None

            merged.append({
                "ticker": ticker,
                "current_price": price,
                "setup_type": setup_type,
                "setup_quality": setup_quality,
                "catalyst_type": m1.catalyst_type if m1 else None,
                "catalyst_description": m1.catalyst_description if m1 else None,
                "suggested_entry": entry,
                "suggested_stop": stop,
                "suggested_target1": target1,
                "suggested_target2": target2,
                "risk_reward_ratio": rr,
                "primary_trend": primary,
                "secondary_trend": secondary,
                "in_method1": in_method1,
                "in_method2": in_method2,
                "in_both_methods": in_both,
                "method1_result_id": m1.id if m1 else None,
                "method2_result_id": m2.id if m2 else None,
                "priority_score": self.priority_score(in_method1, in_method2, setup_quality, rr, primary, secondary),
                "is_active": True,
            })

        return merged

    @staticmethod
    def membership_stats(merged: List[Dict[str, Any]]) -> Dict[str, int]:
        return {
            "method1_only": sum(1 for r in merged if r["in_method1"] and not r["in_method2"]),
            "method2_only": sum(1 for r in merged if r["in_method2"] and not r["in_method1"]),
            "both_methods": sum(1 for r in merged if r["in_both_methods"]),
        }
