"""
Price oracle adapter.

Converts between collateral quantities and their USD value. Feed answers come
with their own precision (8 decimals for USD pairs); the adapter upscales them
to the engine's 18-decimal precision so both conversions below are exact
inverses up to integer truncation:

    usd_value(asset, amount)            = price * amount // PRECISION
    token_amount_from_usd(asset, usd)   = usd * PRECISION // price
"""

import time
from typing import Callable, Optional

from .constants import PRECISION, STALE_PRICE_TIMEOUT
from .errors import UnsupportedFeedDecimals
from .price_feed import stale_check_latest_round_data
from .registry import CollateralRegistry


class PriceOracleAdapter:
    """
    Reads the feed bound to each collateral asset through the stale-price check.

    Args:
        registry: Collateral assets and their feeds
        stale_price_timeout: Maximum age of a price in seconds, None to accept any age
        clock: Callable returning the current time in seconds
    """

    def __init__(self, registry: CollateralRegistry, stale_price_timeout: Optional[float] = STALE_PRICE_TIMEOUT,
                 clock: Callable[[], float] = time.time):
        self.registry = registry
        self.stale_price_timeout = stale_price_timeout
        self.clock = clock

        for asset in registry:
            if asset.price_feed.decimals > 18:
                raise UnsupportedFeedDecimals(asset.price_feed.address, asset.price_feed.decimals)

    def price(self, asset: str) -> int:
        """Current USD price of one whole unit of ``asset``, scaled to 1e18."""
        feed = self.registry.price_feed(asset)
        round_data = stale_check_latest_round_data(feed, self.clock(), self.stale_price_timeout)
        return round_data.answer * 10 ** (18 - feed.decimals)

    def usd_value(self, asset: str, amount: int) -> int:
        return self.price(asset) * amount // PRECISION

    def token_amount_from_usd(self, asset: str, usd_amount: int) -> int:
        return usd_amount * PRECISION // self.price(asset)
