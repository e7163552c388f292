"""
valuation.py - Conversions between collateral quantities and USD

Pure functions: every input is explicit, including the current time used
for the staleness check. The only external call is the price feed read.

Key Formulas (all integer, all divisions floor):
    price_18   = answer rescaled from feed decimals to 18
    amount_18  = amount rescaled from asset decimals to 18
    usd_value  = price_18 * amount_18 // PRECISION
    amount     = (usd * PRECISION // price_18) rescaled from 18 to asset decimals
"""

from __future__ import annotations
from datetime import datetime, timedelta
import logging

from .core import (
    PRECISION, STANDARD_DECIMALS, ORACLE_TIMEOUT,
    Asset, PriceQuote, InvalidPrice,
    rescale,
)
from .pricing_source import stale_check_latest_price

logger = logging.getLogger(__name__)


def normalized_price(asset: Asset, quote: PriceQuote) -> int:
    """Rescale a feed answer to 18 decimals."""
    if quote.price <= 0:
        raise InvalidPrice(asset.address, quote.price)
    return rescale(quote.price, asset.price_feed.decimals, STANDARD_DECIMALS)


def usd_value(
    asset: Asset,
    amount: int,
    now: datetime,
    timeout: timedelta = ORACLE_TIMEOUT,
) -> int:
    """
    USD value of amount native units of asset, 18 decimals.

    Args:
        asset: Registered collateral asset
        amount: Quantity in the asset's native decimals
        now: Current engine time
        timeout: Maximum oracle age

    Returns:
        USD value with 18 decimals

    Raises:
        StalePrice, OracleUnavailable, InvalidPrice: from the oracle read

    Example:
        # 15 WETH at $2000 -> 30000e18
        usd_value(weth, 15 * 10**18, now)
    """
    quote = stale_check_latest_price(asset.price_feed, asset.address, now, timeout)
    price = normalized_price(asset, quote)
    value = price * rescale(amount, asset.decimals, STANDARD_DECIMALS) // PRECISION
    logger.debug("usd_value(%s, %d) = %d at price %d", asset.address, amount, value, quote.price)
    return value


def asset_amount_from_usd(
    asset: Asset,
    usd_amount: int,
    now: datetime,
    timeout: timedelta = ORACLE_TIMEOUT,
) -> int:
    """
    Quantity of asset (native decimals) worth usd_amount (18 decimals).

    Inverse of usd_value, truncated toward zero, so
    usd_value(asset_amount_from_usd(x)) <= x.

    Raises:
        StalePrice, OracleUnavailable, InvalidPrice: from the oracle read
    """
    quote = stale_check_latest_price(asset.price_feed, asset.address, now, timeout)
    price = normalized_price(asset, quote)
    amount = rescale(usd_amount * PRECISION // price, STANDARD_DECIMALS, asset.decimals)
    logger.debug("asset_amount_from_usd(%s, %d) = %d at price %d",
                 asset.address, usd_amount, amount, quote.price)
    return amount
