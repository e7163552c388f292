"""
pricing_source.py - Price oracle adapters for collateral valuation

Provides the price feeds the engine reads collateral prices from, plus the
staleness check every read goes through.

Classes:
- StaticPriceFeed: Prices that change only when explicitly updated
- TimeSeriesPriceFeed: Historical price paths replayed against a cursor

Functions:
- stale_check_latest_price: Fetch a quote and fail closed if it is unusable

Feeds answer with raw integers scaled by the feed's decimals (8 by default),
the way on-chain USD aggregators do.
"""

from __future__ import annotations
from bisect import bisect_right
from datetime import datetime, timedelta
from typing import Dict, List, Mapping, Optional, Tuple
import logging

from .core import (
    DEFAULT_FEED_DECIMALS, ORACLE_TIMEOUT,
    Numeric, PriceFeed, PriceQuote,
    OracleUnavailable, StalePrice, InvalidPrice,
    to_fixed,
)

logger = logging.getLogger(__name__)


def stale_check_latest_price(
    feed: PriceFeed,
    asset: str,
    now: datetime,
    timeout: timedelta = ORACLE_TIMEOUT,
) -> PriceQuote:
    """
    Fetch the latest quote for asset and reject it if it cannot be trusted.

    Args:
        feed: Price feed bound to the asset
        asset: Asset address
        now: Current engine time
        timeout: Maximum age of an acceptable quote

    Returns:
        The validated PriceQuote

    Raises:
        OracleUnavailable: If the feed call raises or returns something
            that is not a PriceQuote
        StalePrice: If the quote is older than timeout
        InvalidPrice: If the price is zero or negative
    """
    try:
        quote = feed.latest_price(asset)
    except Exception as exc:
        raise OracleUnavailable(asset, f"{type(exc).__name__}: {exc}") from exc
    if not isinstance(quote, PriceQuote):
        raise OracleUnavailable(asset, f"unexpected answer {quote!r}")

    if now - quote.updated_at > timeout:
        logger.warning("Stale price for %s: updated %s, now %s", asset, quote.updated_at, now)
        raise StalePrice(asset, quote.updated_at, now)
    if quote.price <= 0:
        raise InvalidPrice(asset, quote.price)
    return quote


class StaticPriceFeed:
    """
    Price feed with explicitly set prices.

    Prices are given in human units (e.g. Decimal("2000") or "2000") and
    stored scaled by decimals. Each price keeps its own update time.
    """

    def __init__(
        self,
        prices: Optional[Mapping[str, Numeric]] = None,
        updated_at: Optional[datetime] = None,
        decimals: int = DEFAULT_FEED_DECIMALS,
    ):
        """
        Initialize with a price map.

        Args:
            prices: Dictionary mapping asset addresses to USD prices
            updated_at: Update time recorded for the initial prices
                (default: 1970-01-01)
            decimals: Fixed-point precision of the answers
        """
        self.decimals = decimals
        self._updated_at = updated_at or datetime(1970, 1, 1)
        self.answers: Dict[str, Tuple[int, datetime]] = {}
        for asset, price in (prices or {}).items():
            self.answers[asset] = (to_fixed(price, decimals), self._updated_at)

    def latest_price(self, asset: str) -> PriceQuote:
        """Return the last price set for asset."""
        if asset not in self.answers:
            raise KeyError(f"No price for {asset}")
        price, updated_at = self.answers[asset]
        return PriceQuote(price, updated_at)

    def update_price(self, asset: str, price: Numeric, updated_at: Optional[datetime] = None):
        """
        Update the price of an asset.

        Args:
            asset: Asset address
            price: New USD price in human units
            updated_at: Update time (default: time of the previous update)
        """
        if updated_at is None:
            updated_at = self.answers[asset][1] if asset in self.answers else self._updated_at
        self.answers[asset] = (to_fixed(price, self.decimals), updated_at)

    def update_answer(self, asset: str, answer: int, updated_at: datetime):
        """Set a raw answer, already scaled by decimals."""
        self.answers[asset] = (answer, updated_at)

    def __repr__(self):
        return f"StaticPriceFeed({len(self.answers)} prices, decimals={self.decimals})"


class TimeSeriesPriceFeed:
    """
    Price feed replaying historical price paths.

    latest_price returns the most recent observation at or before the
    cursor, with that observation's own timestamp, so a cursor far past the
    last observation yields a stale quote.

    Supports two initialization patterns:
    - Empty initialization for incremental addition via add_price()
    - Batch initialization with complete price paths for simulations
    """

    def __init__(
        self,
        price_paths: Optional[Dict[str, List[Tuple[datetime, Numeric]]]] = None,
        decimals: int = DEFAULT_FEED_DECIMALS,
        as_of: Optional[datetime] = None,
    ):
        """
        Initialize the feed.

        Args:
            price_paths: Optional dict mapping assets to (timestamp, price)
                lists in human units
            decimals: Fixed-point precision of the answers
            as_of: Initial cursor (default: latest observation)

        Examples:
            feed = TimeSeriesPriceFeed({
                'WETH': [(t0, 2000), (t1, 1800), (t2, 1500)],
            })
            feed.advance_to(t1)
        """
        self.decimals = decimals
        self.price_history: Dict[str, List[Tuple[datetime, int]]] = {}
        self.as_of = as_of

        if price_paths:
            for asset, path in price_paths.items():
                if not path:
                    continue
                self.price_history[asset] = sorted(
                    ((ts, to_fixed(price, decimals)) for ts, price in path),
                    key=lambda x: x[0],
                )

    def add_price(self, asset: str, timestamp: datetime, price: Numeric):
        """Add a price observation in human units."""
        history = self.price_history.setdefault(asset, [])
        history.append((timestamp, to_fixed(price, self.decimals)))
        history.sort(key=lambda x: x[0])

    def advance_to(self, timestamp: datetime):
        """Move the cursor. It can only move forward."""
        if self.as_of is not None and timestamp < self.as_of:
            raise ValueError(f"Cannot move feed backwards: {timestamp} < {self.as_of}")
        self.as_of = timestamp

    def latest_price(self, asset: str) -> PriceQuote:
        """
        Return the observation at or before the cursor.

        Uses binary search for O(log n) lookup.

        Raises:
            KeyError: If the asset has no observation at or before the cursor
        """
        history = self.price_history.get(asset)
        if not history:
            raise KeyError(f"No price history for {asset}")

        if self.as_of is None:
            timestamp, price = history[-1]
            return PriceQuote(price, timestamp)

        timestamps = [ts for ts, _ in history]
        idx = bisect_right(timestamps, self.as_of)
        if idx == 0:
            raise KeyError(f"No price for {asset} at or before {self.as_of}")
        timestamp, price = history[idx - 1]
        return PriceQuote(price, timestamp)

    def get_all_timestamps(self, asset: Optional[str] = None) -> List[datetime]:
        """Sorted observation times for one asset, or the union over all assets."""
        if asset:
            return [ts for ts, _ in self.price_history.get(asset, [])]
        all_times = set()
        for path in self.price_history.values():
            all_times.update(ts for ts, _ in path)
        return sorted(all_times)

    def __repr__(self):
        total = sum(len(h) for h in self.price_history.values())
        return f"TimeSeriesPriceFeed({len(self.price_history)} assets, {total} observations)"
