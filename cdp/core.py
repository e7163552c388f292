"""
Core types and pure helpers for the collateralized-debt engine.

This module provides the foundational pieces every other module builds on:
1. Constants: fixed-point scale, risk parameters, oracle timeout
2. Exceptions: EngineError and the domain-specific error types
3. Immutable data structures: Asset, PriceQuote, AccountInformation, EngineEvent
4. Protocols: PriceFeed, CollateralToken, StableIssuer
5. Fixed-point helpers: to_fixed, from_fixed, rescale

Amounts are plain Python ints interpreted as fixed-point numbers. Collateral
amounts use the asset's native decimals, USD values and stable-coin amounts
always use 18 decimals (PRECISION).
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation, ROUND_DOWN, localcontext
from enum import Enum
from typing import Any, Optional, Protocol, Union, runtime_checkable


# ============================================================================
# CONSTANTS
# ============================================================================

# 18-decimal fixed-point unit. USD values, stable amounts and health factors
# are all expressed in this scale.
PRECISION = 10 ** 18
STANDARD_DECIMALS = 18

# Oracle answers carry 8 decimals; multiplying by this brings them to 18.
DEFAULT_FEED_DECIMALS = 8
ADDITIONAL_FEED_PRECISION = 10 ** (STANDARD_DECIMALS - DEFAULT_FEED_DECIMALS)

# Only LIQUIDATION_THRESHOLD / LIQUIDATION_PRECISION of nominal collateral
# value counts toward solvency (50% => 200% over-collateralization).
LIQUIDATION_THRESHOLD = 50
LIQUIDATION_PRECISION = 100

# Extra collateral paid to a liquidator, in LIQUIDATION_PRECISION units.
LIQUIDATION_BONUS = 10

# A health factor at or above this value is solvent.
MIN_HEALTH_FACTOR = PRECISION

# Returned for accounts without debt.
MAX_HEALTH_FACTOR = 2 ** 256 - 1

# Prices older than this are rejected.
ORACLE_TIMEOUT = timedelta(hours=3)

Numeric = Union[int, str, Decimal]


# ============================================================================
# EXCEPTIONS
# ============================================================================

class EngineError(Exception):
    """Base exception for all engine-related errors."""
    pass


class ValidationError(EngineError):
    """Raised when input is rejected before any state is touched."""
    pass


class ZeroAmount(ValidationError):
    """Raised when an amount that must be positive is zero or negative."""

    def __init__(self, what: str = "amount"):
        super().__init__(f"{what} must be greater than zero")
        self.what = what


class UnsupportedAsset(ValidationError):
    """Raised when an asset is not registered with the engine."""

    def __init__(self, asset: str):
        super().__init__(f"Asset {asset} is not supported")
        self.asset = asset


class LengthMismatch(ValidationError):
    """Raised when collateral assets and price feeds are not paired 1:1."""

    def __init__(self, assets: int, feeds: int):
        super().__init__(
            f"Collateral assets and price feeds must have the same length "
            f"({assets} assets, {feeds} feeds)"
        )
        self.assets = assets
        self.feeds = feeds


class DuplicateAsset(ValidationError):
    """Raised when the same asset is registered twice."""

    def __init__(self, asset: str):
        super().__init__(f"Asset {asset} registered more than once")
        self.asset = asset


class OracleError(EngineError):
    """Base class for price oracle failures."""
    pass


class StalePrice(OracleError):
    """Raised when the latest price is older than the oracle timeout."""

    def __init__(self, asset: str, updated_at: datetime, now: datetime):
        super().__init__(
            f"Price for {asset} is stale: updated at {updated_at.isoformat()}, "
            f"now {now.isoformat()}"
        )
        self.asset = asset
        self.updated_at = updated_at
        self.now = now


class OracleUnavailable(OracleError):
    """Raised when the price feed call itself fails."""

    def __init__(self, asset: str, reason: str):
        super().__init__(f"Price feed for {asset} unavailable: {reason}")
        self.asset = asset
        self.reason = reason


class InvalidPrice(OracleError):
    """Raised when a feed answers with a zero or negative price."""

    def __init__(self, asset: str, price: int):
        super().__init__(f"Invalid price for {asset}: {price}")
        self.asset = asset
        self.price = price


class TransferFailed(EngineError):
    """Raised when a token transfer reports failure."""

    def __init__(self, asset: str, source: str, dest: str, amount: int):
        super().__init__(f"Transfer of {amount} {asset} from {source} to {dest} failed")
        self.asset = asset
        self.source = source
        self.dest = dest
        self.amount = amount


class MintFailed(EngineError):
    """Raised when the stable coin issuer reports a failed mint."""

    def __init__(self, account: str, amount: int):
        super().__init__(f"Minting {amount} to {account} failed")
        self.account = account
        self.amount = amount


class BurnFailed(EngineError):
    """Raised when the stable coin issuer reports a failed burn."""

    def __init__(self, amount: int):
        super().__init__(f"Burning {amount} failed")
        self.amount = amount


class InsufficientCollateral(EngineError):
    """Raised when a withdrawal exceeds the deposited amount."""

    def __init__(self, account: str, asset: str, available: int, requested: int):
        super().__init__(
            f"{account} has {available} {asset} deposited, cannot withdraw {requested}"
        )
        self.account = account
        self.asset = asset
        self.available = available
        self.requested = requested


class InsufficientDebt(EngineError):
    """Raised when a burn exceeds the account's minted debt."""

    def __init__(self, account: str, available: int, requested: int):
        super().__init__(f"{account} owes {available}, cannot burn {requested}")
        self.account = account
        self.available = available
        self.requested = requested


class HealthFactorBroken(EngineError):
    """Raised when an operation would leave an account below MIN_HEALTH_FACTOR."""

    def __init__(self, account: str, health_factor: int):
        super().__init__(f"Health factor of {account} broken: {health_factor}")
        self.account = account
        self.health_factor = health_factor


class HealthFactorOk(EngineError):
    """Raised when liquidating an account that is still solvent."""

    def __init__(self, account: str, health_factor: int):
        super().__init__(f"Health factor of {account} is ok: {health_factor}")
        self.account = account
        self.health_factor = health_factor


class HealthFactorNotImproved(EngineError):
    """Raised when a liquidation does not raise the target's health factor."""

    def __init__(self, account: str, starting: int, ending: int):
        super().__init__(
            f"Liquidation did not improve health factor of {account}: "
            f"{starting} -> {ending}"
        )
        self.account = account
        self.starting = starting
        self.ending = ending


class TokenError(EngineError):
    """Base class for errors raised by the reference token implementation."""
    pass


class InsufficientBalance(TokenError):
    """Raised when a holder tries to move more tokens than it has."""

    def __init__(self, token: str, holder: str, balance: int, requested: int):
        super().__init__(f"{holder} holds {balance} {token}, cannot move {requested}")
        self.token = token
        self.holder = holder
        self.balance = balance
        self.requested = requested


class InsufficientAllowance(TokenError):
    """Raised when a spender exceeds the allowance granted by the owner."""

    def __init__(self, token: str, owner: str, spender: str, allowance: int, requested: int):
        super().__init__(
            f"{spender} may spend {allowance} {token} of {owner}, not {requested}"
        )
        self.token = token
        self.owner = owner
        self.spender = spender
        self.allowance = allowance
        self.requested = requested


class NotOwner(TokenError):
    """Raised when someone other than the owner mints or burns the stable coin."""

    def __init__(self, token: str, caller: str):
        super().__init__(f"{caller} is not the owner of {token}")
        self.token = token
        self.caller = caller


class ReentrantCall(EngineError):
    """Raised when an engine entry point is entered from inside another one."""

    def __init__(self, operation: str):
        super().__init__(f"Reentrant call to {operation}")
        self.operation = operation


class RollbackFailed(EngineError):
    """Raised when compensating an external call fails during rollback."""

    def __init__(self, operation: str, errors: list):
        super().__init__(
            f"Rollback of {operation} incomplete: "
            + "; ".join(f"{name}: {err}" for name, err in errors)
        )
        self.operation = operation
        self.errors = errors


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class PriceFeed(Protocol):
    """
    USD price source for collateral assets.

    decimals is the fixed-point precision of the answers (8 for the usual
    USD feeds). latest_price may raise; the valuation layer converts any
    failure into OracleUnavailable.
    """
    decimals: int

    def latest_price(self, asset: str) -> 'PriceQuote':
        """Return the most recent price for asset."""
        ...


@runtime_checkable
class CollateralToken(Protocol):
    """
    Fungible token used as collateral.

    There is no ambient caller, so every mutating call names the account
    acting on the token. Both transfers return True on success; False or an
    exception means the transfer did not happen.

    revert_transfer_from undoes a completed transfer_from into the spender:
    the tokens go back to owner and the spent allowance is re-credited.
    """
    address: str
    decimals: int

    def balance_of(self, owner: str) -> int:
        ...

    def transfer(self, sender: str, to: str, amount: int) -> bool:
        ...

    def transfer_from(self, spender: str, owner: str, to: str, amount: int) -> bool:
        ...

    def revert_transfer_from(self, spender: str, owner: str, amount: int) -> bool:
        ...


@runtime_checkable
class StableIssuer(CollateralToken, Protocol):
    """
    The liability asset. Only its owner (the engine) may mint and burn.

    burn destroys amount from the caller's own balance.
    """

    def mint(self, caller: str, to: str, amount: int) -> bool:
        ...

    def burn(self, caller: str, amount: int) -> bool:
        ...


# ============================================================================
# DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True, slots=True)
class PriceQuote:
    """
    A single oracle answer.

    Attributes:
        price: Raw signed answer, scaled by the feed's decimals.
        updated_at: When the answer was last updated.
    """
    price: int
    updated_at: datetime

    def __post_init__(self):
        if isinstance(self.price, bool) or not isinstance(self.price, int):
            raise ValueError(f"PriceQuote price must be int, got {type(self.price)}")


@dataclass(frozen=True, slots=True)
class Asset:
    """
    A registered collateral type.

    Immutable once registered. The price feed is excluded from equality so
    two registrations of the same address compare equal.
    """
    address: str
    price_feed: PriceFeed = field(compare=False, repr=False)
    decimals: int = STANDARD_DECIMALS

    def __post_init__(self):
        if not self.address or not self.address.strip():
            raise ValueError("Asset address cannot be empty")
        if self.decimals < 0:
            raise ValueError(f"Asset decimals must be non-negative, got {self.decimals}")


@dataclass(frozen=True, slots=True)
class AccountInformation:
    """Debt, collateral value and resulting health factor of one account."""
    account: str
    total_debt: int
    collateral_value_usd: int
    health_factor: int


@dataclass(frozen=True, slots=True)
class EngineConstants:
    """Tunable constants, exposed for risk-monitoring callers."""
    precision: int
    additional_feed_precision: int
    liquidation_threshold: int
    liquidation_precision: int
    liquidation_bonus: int
    min_health_factor: int
    oracle_timeout: timedelta


class EventType(Enum):
    """Kinds of committed engine events."""
    COLLATERAL_DEPOSITED = "collateral_deposited"
    COLLATERAL_REDEEMED = "collateral_redeemed"
    STABLE_MINTED = "stable_minted"
    STABLE_BURNED = "stable_burned"
    LIQUIDATED = "liquidated"


@dataclass(frozen=True, slots=True)
class EngineEvent:
    """
    Audit record of a committed state change.

    For COLLATERAL_REDEEMED, account is the position the collateral left and
    counterparty the receiver (they differ during liquidation). For
    STABLE_BURNED, counterparty is whoever supplied the stable coin.
    """
    sequence: int
    event_type: EventType
    account: str
    amount: int
    timestamp: datetime
    asset: Optional[str] = None
    counterparty: Optional[str] = None

    def __repr__(self) -> str:
        parts = [f"#{self.sequence}", self.event_type.value, self.account, str(self.amount)]
        if self.asset:
            parts.append(f"asset={self.asset}")
        if self.counterparty:
            parts.append(f"counterparty={self.counterparty}")
        return f"EngineEvent({', '.join(parts)})"


# ============================================================================
# FIXED-POINT HELPERS
# ============================================================================

def rescale(value: int, from_decimals: int, to_decimals: int) -> int:
    """
    Move an integer fixed-point value between precisions.

    Scaling down truncates toward zero, matching integer division on
    non-negative values.
    """
    if from_decimals == to_decimals:
        return value
    if to_decimals > from_decimals:
        return value * 10 ** (to_decimals - from_decimals)
    return value // 10 ** (from_decimals - to_decimals)


def to_fixed(value: Numeric, decimals: int = STANDARD_DECIMALS) -> int:
    """
    Convert a human-readable number to an integer fixed-point amount.

    Floats are rejected; pass a str or Decimal to keep the value exact.
    Digits beyond the target precision are truncated.
    Malformed and non-finite values ('abc', 'inf', 'NaN') raise ValueError.

    Example:
        to_fixed("1.5")      # 1500000000000000000
        to_fixed("2000", 8)  # 200000000000
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise TypeError(f"to_fixed() expects int, str or Decimal, got {type(value).__name__}")
    if isinstance(value, int):
        return value * 10 ** decimals
    try:
        number = Decimal(value)
    except InvalidOperation as exc:
        raise ValueError(f"Not a number: {value!r}") from exc
    if not number.is_finite():
        raise ValueError(f"Not a finite number: {value!r}")
    with localcontext() as ctx:
        ctx.prec = 80
        scaled = number * (Decimal(10) ** decimals)
        return int(scaled.to_integral_value(rounding=ROUND_DOWN))


def from_fixed(value: int, decimals: int = STANDARD_DECIMALS) -> Decimal:
    """Convert an integer fixed-point amount back to a Decimal."""
    with localcontext() as ctx:
        ctx.prec = 80
        return Decimal(value) / (Decimal(10) ** decimals)


def require_positive(amount: Any, what: str = "amount") -> int:
    """Validate that amount is a positive int and return it."""
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise TypeError(f"{what} must be int, got {type(amount).__name__}")
    if amount <= 0:
        raise ZeroAmount(what)
    return amount
