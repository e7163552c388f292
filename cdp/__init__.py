"""
cdp - Collateralized-Debt Engine

Accounts lock collateral and mint a USD-pegged stable coin against it. The
engine enforces a 200% collateralization requirement through the health
factor and lets third parties liquidate unhealthy accounts for a 10% bonus.

Usage:
    from datetime import datetime
    from cdp import CollateralEngine, StableCoin, StaticPriceFeed, Token, to_fixed

    t0 = datetime(2025, 1, 1)
    weth = Token("WETH", "Wrapped Ether")
    feed = StaticPriceFeed({"WETH": "2000"}, updated_at=t0)
    stable = StableCoin("DSC")

    engine = CollateralEngine([weth], [feed], stable, initial_time=t0)
    stable.transfer_ownership("", engine.address)

    weth.mint("alice", to_fixed(10))
    weth.approve("alice", engine.address, to_fixed(10))
    engine.deposit_collateral_and_mint("alice", "WETH", to_fixed(10), to_fixed(100))

    engine.get_health_factor("alice")  # 100e18
"""

# Core types
from .core import (
    Asset,
    PriceQuote,
    AccountInformation,
    EngineConstants,
    EngineEvent,
    EventType,
    PriceFeed,
    CollateralToken,
    StableIssuer,
    # Exceptions
    EngineError,
    ValidationError,
    ZeroAmount,
    UnsupportedAsset,
    LengthMismatch,
    DuplicateAsset,
    OracleError,
    StalePrice,
    OracleUnavailable,
    InvalidPrice,
    TransferFailed,
    MintFailed,
    BurnFailed,
    InsufficientCollateral,
    InsufficientDebt,
    HealthFactorBroken,
    HealthFactorOk,
    HealthFactorNotImproved,
    TokenError,
    InsufficientBalance,
    InsufficientAllowance,
    NotOwner,
    ReentrantCall,
    RollbackFailed,
    # Constants
    PRECISION,
    ADDITIONAL_FEED_PRECISION,
    LIQUIDATION_THRESHOLD,
    LIQUIDATION_PRECISION,
    LIQUIDATION_BONUS,
    MIN_HEALTH_FACTOR,
    MAX_HEALTH_FACTOR,
    ORACLE_TIMEOUT,
    # Fixed-point helpers
    to_fixed,
    from_fixed,
    rescale,
)

# Pricing
from .pricing_source import (
    StaticPriceFeed,
    TimeSeriesPriceFeed,
    stale_check_latest_price,
)

# Valuation
from .valuation import usd_value, asset_amount_from_usd

# Health factor
from .health import (
    calculate_health_factor,
    collateral_adjusted_for_threshold,
    is_solvent,
)

# Liquidation sizing
from .liquidation import (
    LiquidationQuote,
    LiquidationResult,
    calculate_liquidation,
    calculate_liquidation_bonus,
)

# Bookkeeping
from .ledger import CollateralLedger, LedgerSnapshot

# Tokens
from .token import Token, StableCoin

# Engine
from .engine import CollateralEngine

__all__ = [
    # Core
    'Asset', 'PriceQuote', 'AccountInformation', 'EngineConstants',
    'EngineEvent', 'EventType', 'PriceFeed', 'CollateralToken', 'StableIssuer',
    # Exceptions
    'EngineError', 'ValidationError', 'ZeroAmount', 'UnsupportedAsset',
    'LengthMismatch', 'DuplicateAsset', 'OracleError', 'StalePrice',
    'OracleUnavailable', 'InvalidPrice', 'TransferFailed', 'MintFailed',
    'BurnFailed', 'InsufficientCollateral', 'InsufficientDebt',
    'HealthFactorBroken', 'HealthFactorOk', 'HealthFactorNotImproved',
    'TokenError', 'InsufficientBalance', 'InsufficientAllowance', 'NotOwner',
    'ReentrantCall', 'RollbackFailed',
    # Constants
    'PRECISION', 'ADDITIONAL_FEED_PRECISION', 'LIQUIDATION_THRESHOLD',
    'LIQUIDATION_PRECISION', 'LIQUIDATION_BONUS', 'MIN_HEALTH_FACTOR',
    'MAX_HEALTH_FACTOR', 'ORACLE_TIMEOUT',
    'to_fixed', 'from_fixed', 'rescale',
    # Pricing
    'StaticPriceFeed', 'TimeSeriesPriceFeed', 'stale_check_latest_price',
    # Valuation
    'usd_value', 'asset_amount_from_usd',
    # Health
    'calculate_health_factor', 'collateral_adjusted_for_threshold', 'is_solvent',
    # Liquidation
    'LiquidationQuote', 'LiquidationResult', 'calculate_liquidation',
    'calculate_liquidation_bonus',
    # Ledger
    'CollateralLedger', 'LedgerSnapshot',
    # Tokens
    'Token', 'StableCoin',
    # Engine
    'CollateralEngine',
]

__version__ = '1.0.0'
