"""
Price anomaly detection against recent approved comparables.

deviation = (price - median) / median; anomalous iff |deviation| is strictly
greater than the threshold (0.20). No comparables -> no anomaly.
"""

from __future__ import annotations

import statistics

from backend_listguard.database import Database
from backend_listguard.moderation.capabilities import PriceHistoryLookup
from backend_listguard.moderation.models import ModerationConfig, PriceAnalysis

SECONDS_PER_DAY = 86400


class DatabasePriceHistory(PriceHistoryLookup):
    """Reads approved listing prices from the store."""

    def __init__(self, db: Database) -> None:
        self._db = db

    def comparable_prices(self, category: str, unit: str, since_ts: int) -> list[float]:
        return self._db.get_comparable_prices(category, unit, since_ts)


def analyze_price(
    lookup: PriceHistoryLookup,
    price: float,
    category: str,
    unit: str,
    now_ts: int,
    config: ModerationConfig | None = None,
) -> PriceAnalysis:
    cfg = config or ModerationConfig()
    prices = [p for p in lookup.comparable_prices(category, unit, now_ts - cfg.price_window_days * SECONDS_PER_DAY) if p > 0]
    if not prices:
        return PriceAnalysis(detected=False, market_price=None, deviation=0.0, comparables=0)

    median = statistics.median(prices)
    deviation = (price - median) / median
    return PriceAnalysis(
        detected=abs(deviation) > cfg.price_deviation_threshold,
        market_price=median,
        deviation=deviation,
        comparables=len(prices),
    )
