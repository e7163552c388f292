"""
health.py - Health factor calculation

PURE FUNCTIONS - no engine state, no oracle access. Liquidator bots can
call these directly to simulate eligibility.

Key Formulas:
    adjusted      = collateral_value_usd * LIQUIDATION_THRESHOLD // LIQUIDATION_PRECISION
    health_factor = adjusted * PRECISION // total_debt
    solvent       <=> health_factor >= MIN_HEALTH_FACTOR

With a threshold of 50 only half of the collateral counts, which is a 200%
collateralization requirement.
"""

from __future__ import annotations

from .core import (
    PRECISION, LIQUIDATION_THRESHOLD, LIQUIDATION_PRECISION,
    MIN_HEALTH_FACTOR, MAX_HEALTH_FACTOR,
)


def collateral_adjusted_for_threshold(collateral_value_usd: int) -> int:
    """Portion of the collateral value that counts toward solvency."""
    return collateral_value_usd * LIQUIDATION_THRESHOLD // LIQUIDATION_PRECISION


def calculate_health_factor(total_debt: int, collateral_value_usd: int) -> int:
    """
    Compute the health factor of a position.

    Args:
        total_debt: Minted stable coin, 18 decimals
        collateral_value_usd: Total collateral value, 18 decimals

    Returns:
        Health factor, 18 decimals. MAX_HEALTH_FACTOR when there is no debt.

    Example:
        # $20000 collateral, 100 stable minted -> 100e18
        calculate_health_factor(100 * 10**18, 20_000 * 10**18)
    """
    if total_debt < 0 or collateral_value_usd < 0:
        raise ValueError("Debt and collateral value must be non-negative")
    if total_debt == 0:
        return MAX_HEALTH_FACTOR
    return collateral_adjusted_for_threshold(collateral_value_usd) * PRECISION // total_debt


def is_solvent(health_factor: int) -> bool:
    """True if health_factor meets MIN_HEALTH_FACTOR."""
    return health_factor >= MIN_HEALTH_FACTOR
