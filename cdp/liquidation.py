"""
liquidation.py - Liquidation sizing

Pure calculation of how much collateral a liquidator receives for covering
a given amount of debt. The engine performs the state changes; this module
only does the arithmetic so bots can quote a liquidation without touching
engine state.

Key Formulas:
    base_collateral  = asset_amount_from_usd(asset, debt_to_cover)
    bonus_collateral = base_collateral * LIQUIDATION_BONUS // LIQUIDATION_PRECISION
    total_seized     = base_collateral + bonus_collateral
"""

from __future__ import annotations
from dataclasses import dataclass

from .core import LIQUIDATION_BONUS, LIQUIDATION_PRECISION


@dataclass(frozen=True, slots=True)
class LiquidationQuote:
    """Collateral owed to a liquidator, in the asset's native decimals."""
    base_collateral: int
    bonus_collateral: int

    @property
    def total_collateral(self) -> int:
        return self.base_collateral + self.bonus_collateral


@dataclass(frozen=True, slots=True)
class LiquidationResult:
    """Outcome of a committed liquidation."""
    liquidator: str
    target: str
    collateral_asset: str
    debt_covered: int
    base_collateral: int
    bonus_collateral: int
    starting_health_factor: int
    ending_health_factor: int

    @property
    def total_collateral(self) -> int:
        return self.base_collateral + self.bonus_collateral


def calculate_liquidation_bonus(base_collateral: int) -> int:
    """Bonus collateral on top of base_collateral."""
    return base_collateral * LIQUIDATION_BONUS // LIQUIDATION_PRECISION


def calculate_liquidation(base_collateral: int) -> LiquidationQuote:
    """
    Size a liquidation from the debt-equivalent collateral amount.

    Args:
        base_collateral: Collateral worth exactly the debt being covered

    Returns:
        LiquidationQuote with base and bonus amounts

    Example:
        # $500 of debt at $1500/unit
        quote = calculate_liquidation(333333333333333333)
        quote.total_collateral  # 366666666666666666
    """
    if base_collateral < 0:
        raise ValueError(f"base_collateral must be non-negative, got {base_collateral}")
    return LiquidationQuote(base_collateral, calculate_liquidation_bonus(base_collateral))
