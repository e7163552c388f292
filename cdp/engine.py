"""
engine.py - Collateralized-debt engine

The CollateralEngine is the only object that mutates positions. Accounts
deposit collateral, mint stable coin against it, repay and withdraw; third
parties liquidate accounts whose health factor fell below MIN_HEALTH_FACTOR.

Key responsibilities:
    - Position operations: deposit, mint, redeem, burn and their compositions
    - Solvency enforcement after every debt-increasing or collateral-decreasing step
    - Liquidation: eligibility, sizing with bonus, post-condition checks
    - Read-only query surface for liquidator bots and risk monitors
    - Always atomic: an operation either commits entirely or has no effect

Execution model:
    Every entry point runs under one guard. A call from the thread that
    already holds it (for example a token callback) raises ReentrantCall;
    calls from other threads wait their turn. Mutating entry points also
    open a transaction scope: the ledger is snapshotted, and on any failure
    the snapshot is restored, events are discarded, and completed external
    calls are compensated in reverse order.

    Within an operation, all bookkeeping and every solvency check run
    before the first external call. Pulls are undone with
    revert_transfer_from, which also re-credits the spent allowance, and
    burns are undone by re-minting. The last external call of an operation
    never needs compensating.
"""

from __future__ import annotations
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple
import logging
import threading

from .core import (
    # Constants
    PRECISION, ADDITIONAL_FEED_PRECISION, LIQUIDATION_THRESHOLD,
    LIQUIDATION_PRECISION, LIQUIDATION_BONUS, MIN_HEALTH_FACTOR, ORACLE_TIMEOUT,
    # Types
    Asset, AccountInformation, EngineConstants, EngineEvent, EventType,
    PriceFeed, CollateralToken, StableIssuer,
    # Exceptions
    LengthMismatch, ZeroAmount, TransferFailed, MintFailed, BurnFailed,
    HealthFactorBroken, HealthFactorOk, HealthFactorNotImproved,
    ReentrantCall, RollbackFailed,
    require_positive,
)
from .health import calculate_health_factor
from .ledger import CollateralLedger
from .liquidation import LiquidationQuote, LiquidationResult, calculate_liquidation
from .valuation import usd_value, asset_amount_from_usd

logger = logging.getLogger(__name__)


class CollateralEngine:
    """
    Position accounting and liquidation engine.

    The engine custodies collateral tokens under its own address and must be
    the owner of the stable coin it mints.

    Example:
        engine = CollateralEngine([weth], [feed], stable)
        stable.transfer_ownership("", engine.address)

        weth.approve("alice", engine.address, 10 * 10**18)
        engine.deposit_collateral_and_mint("alice", "WETH", 10 * 10**18, 100 * 10**18)
        engine.get_health_factor("alice")  # 100e18 at $2000/WETH
    """

    PRECISION = PRECISION
    ADDITIONAL_FEED_PRECISION = ADDITIONAL_FEED_PRECISION
    LIQUIDATION_THRESHOLD = LIQUIDATION_THRESHOLD
    LIQUIDATION_PRECISION = LIQUIDATION_PRECISION
    LIQUIDATION_BONUS = LIQUIDATION_BONUS
    MIN_HEALTH_FACTOR = MIN_HEALTH_FACTOR

    def __init__(
        self,
        collateral_tokens: Sequence[CollateralToken],
        price_feeds: Sequence[PriceFeed],
        stable_coin: StableIssuer,
        address: str = "cdp_engine",
        initial_time: Optional[datetime] = None,
        oracle_timeout: timedelta = ORACLE_TIMEOUT,
    ):
        """
        Create an engine.

        Args:
            collateral_tokens: Supported collateral, in order
            price_feeds: One feed per collateral token, same order
            stable_coin: Issuer of the liability asset
            address: Identity the engine holds custody under
            initial_time: Starting logical time (default: 1970-01-01)
            oracle_timeout: Maximum accepted price age

        Raises:
            LengthMismatch: If tokens and feeds are not paired 1:1
            DuplicateAsset: If a token appears twice
        """
        collateral_tokens = list(collateral_tokens)
        price_feeds = list(price_feeds)
        if len(collateral_tokens) != len(price_feeds):
            raise LengthMismatch(len(collateral_tokens), len(price_feeds))

        assets = [
            Asset(token.address, feed, token.decimals)
            for token, feed in zip(collateral_tokens, price_feeds)
        ]
        self._ledger = CollateralLedger(assets)
        self._tokens: Dict[str, CollateralToken] = {t.address: t for t in collateral_tokens}
        self.stable_coin = stable_coin
        self.address = address
        self.oracle_timeout = oracle_timeout
        self._current_time: datetime = initial_time or datetime(1970, 1, 1)
        # Audit trail of committed operations
        self.event_log: List[EngineEvent] = []

        self._lock = threading.Lock()
        self._owner: Optional[int] = None
        self._compensations: List[Tuple[str, Callable[[], Any]]] = []

        logger.info(
            "Engine %s created with collateral %s",
            address, ", ".join(self._ledger.list_assets()) or "<none>",
        )

    # ========================================================================
    # GUARD AND TRANSACTION SCOPE
    # ========================================================================

    @contextmanager
    def _guard(self, operation: str) -> Iterator[None]:
        """Serialize entry points and reject re-entry from the holding thread."""
        me = threading.get_ident()
        if self._owner == me:
            raise ReentrantCall(operation)
        with self._lock:
            self._owner = me
            try:
                yield
            finally:
                self._owner = None

    @contextmanager
    def _transaction(self, operation: str) -> Iterator[None]:
        """All-or-nothing scope around a mutating entry point."""
        with self._guard(operation):
            snapshot = self._ledger.snapshot()
            events_mark = len(self.event_log)
            self._compensations = []
            try:
                yield
            except BaseException as exc:
                self._ledger.restore(snapshot)
                del self.event_log[events_mark:]
                failures = self._run_compensations()
                logger.warning("%s rolled back: %r", operation, exc)
                if failures and isinstance(exc, Exception):
                    raise RollbackFailed(operation, failures) from exc
                raise
            finally:
                self._compensations = []

    def _run_compensations(self) -> List[Tuple[str, Any]]:
        """Undo completed external calls, newest first. Returns the failures."""
        failures: List[Tuple[str, Any]] = []
        while self._compensations:
            name, undo = self._compensations.pop()
            try:
                ok = undo()
            except Exception as exc:
                logger.error("Compensation '%s' failed: %s", name, exc)
                failures.append((name, exc))
                continue
            if ok is False:
                logger.error("Compensation '%s' reported failure", name)
                failures.append((name, "returned False"))
        return failures

    # ========================================================================
    # TIME MANAGEMENT
    # ========================================================================

    @property
    def current_time(self) -> datetime:
        """Current logical time, used for oracle staleness checks."""
        return self._current_time

    def advance_time(self, new_time: datetime) -> None:
        """
        Advance the engine's logical clock.

        Raises:
            ValueError: If new_time is before the current time
        """
        with self._guard("advance_time"):
            if new_time < self._current_time:
                raise ValueError(
                    f"Cannot move time backwards: {new_time} < {self._current_time}"
                )
            self._current_time = new_time

    # ========================================================================
    # POSITION OPERATIONS (Mutating)
    # ========================================================================

    def deposit_collateral(self, account: str, asset: str, amount: int) -> None:
        """
        Deposit collateral. The account must have approved the engine.

        Raises:
            ZeroAmount, UnsupportedAsset: Invalid input
            TransferFailed: If the token reports failure
        """
        with self._transaction("deposit_collateral"):
            self._record_deposit(account, asset, amount)
            self._pull(self._tokens[asset], account, amount)
        logger.info("%s deposited %d %s", account, amount, asset)

    def mint_stable(self, account: str, amount: int) -> None:
        """
        Mint stable coin against the account's collateral.

        Raises:
            ZeroAmount: If amount is not positive
            HealthFactorBroken: If the new debt breaks solvency
            MintFailed: If the issuer reports failure
        """
        with self._transaction("mint_stable"):
            self._record_mint(account, amount)
            self._assert_solvent(account)
            self._issue(account, amount)
        logger.info("%s minted %d", account, amount)

    def deposit_collateral_and_mint(
        self, account: str, asset: str, amount_collateral: int, amount_to_mint: int
    ) -> None:
        """Deposit collateral and mint stable coin in one step."""
        with self._transaction("deposit_collateral_and_mint"):
            self._record_deposit(account, asset, amount_collateral)
            self._record_mint(account, amount_to_mint)
            self._assert_solvent(account)
            self._pull(self._tokens[asset], account, amount_collateral)
            self._issue(account, amount_to_mint)
        logger.info("%s deposited %d %s and minted %d",
                    account, amount_collateral, asset, amount_to_mint)

    def redeem_collateral(self, account: str, asset: str, amount: int) -> None:
        """
        Withdraw collateral back to the account.

        Raises:
            InsufficientCollateral: If amount exceeds the deposit
            HealthFactorBroken: If the withdrawal breaks solvency
            TransferFailed: If the token reports failure
        """
        with self._transaction("redeem_collateral"):
            self._record_withdrawal(account, asset, amount, receiver=account)
            self._assert_solvent(account)
            self._push(self._tokens[asset], account, amount)
        logger.info("%s redeemed %d %s", account, amount, asset)

    def burn_stable(self, account: str, amount: int) -> None:
        """
        Repay debt with stable coin. The account must have approved the engine.

        Burning can only raise the health factor, so no solvency check runs.

        Raises:
            InsufficientDebt: If amount exceeds the account's debt
            TransferFailed: If the stable coin transfer reports failure
            BurnFailed: If the issuer reports failure
        """
        with self._transaction("burn_stable"):
            self._record_burn(amount, on_behalf_of=account, payer=account)
            self._pull(self.stable_coin, account, amount)
            self._destroy(amount)
        logger.info("%s burned %d", account, amount)

    def redeem_collateral_for_stable(
        self, account: str, asset: str, amount_collateral: int, amount_to_burn: int
    ) -> None:
        """Repay debt, then withdraw collateral, in one step."""
        with self._transaction("redeem_collateral_for_stable"):
            self._record_burn(amount_to_burn, on_behalf_of=account, payer=account)
            self._record_withdrawal(account, asset, amount_collateral, receiver=account)
            self._assert_solvent(account)
            self._pull(self.stable_coin, account, amount_to_burn)
            self._destroy(amount_to_burn)
            self._push(self._tokens[asset], account, amount_collateral)
        logger.info("%s burned %d and redeemed %d %s",
                    account, amount_to_burn, amount_collateral, asset)

    # ========================================================================
    # LIQUIDATION (Mutating)
    # ========================================================================

    def liquidate(
        self, liquidator: str, collateral_asset: str, target: str, debt_to_cover: int
    ) -> LiquidationResult:
        """
        Cover part or all of an unhealthy account's debt for its collateral.

        The liquidator pays debt_to_cover in stable coin (approved to the
        engine) and receives the equivalent collateral plus a 10% bonus.

        Args:
            liquidator: Account paying the debt and receiving collateral
            collateral_asset: Collateral to seize
            target: Account being liquidated
            debt_to_cover: Stable coin to burn on the target's behalf

        Returns:
            LiquidationResult with amounts and health factors

        Raises:
            ZeroAmount: If debt_to_cover, or the collateral it buys, is zero
            UnsupportedAsset: If collateral_asset is not registered
            HealthFactorOk: If the target is solvent
            InsufficientCollateral: If the target holds too little of the asset
            InsufficientDebt: If debt_to_cover exceeds the target's debt
            HealthFactorNotImproved: If the target ends no healthier
            HealthFactorBroken: If the liquidator ends insolvent
        """
        with self._transaction("liquidate"):
            require_positive(debt_to_cover, "debt_to_cover")
            asset = self._ledger.get_asset(collateral_asset)

            starting = self._health_factor(target)
            if starting >= MIN_HEALTH_FACTOR:
                raise HealthFactorOk(target, starting)

            quote = calculate_liquidation(
                asset_amount_from_usd(asset, debt_to_cover, self._current_time, self.oracle_timeout)
            )
            seized = quote.total_collateral
            if seized == 0:
                raise ZeroAmount("collateral to seize")

            self._record_withdrawal(target, collateral_asset, seized, receiver=liquidator)
            self._record_burn(debt_to_cover, on_behalf_of=target, payer=liquidator)

            ending = self._health_factor(target)
            if ending <= starting:
                raise HealthFactorNotImproved(target, starting, ending)
            self._assert_solvent(liquidator)

            self._emit(EventType.LIQUIDATED, target, debt_to_cover,
                       asset=collateral_asset, counterparty=liquidator)

            self._pull(self.stable_coin, liquidator, debt_to_cover)
            self._destroy(debt_to_cover)
            self._push(self._tokens[collateral_asset], liquidator, seized)

        logger.info(
            "%s liquidated %s: covered %d, seized %d %s (bonus %d), health %d -> %d",
            liquidator, target, debt_to_cover, seized, collateral_asset,
            quote.bonus_collateral, starting, ending,
        )
        return LiquidationResult(
            liquidator=liquidator,
            target=target,
            collateral_asset=collateral_asset,
            debt_covered=debt_to_cover,
            base_collateral=quote.base_collateral,
            bonus_collateral=quote.bonus_collateral,
            starting_health_factor=starting,
            ending_health_factor=ending,
        )

    # ========================================================================
    # INTERNAL STEPS (run inside a transaction scope)
    # ========================================================================

    # Bookkeeping steps touch only the ledger and the event log. Every one of
    # them, and every solvency check, runs before the first external call.

    def _record_deposit(self, account: str, asset: str, amount: int) -> None:
        self._ledger.record_deposit(account, asset, amount)
        self._emit(EventType.COLLATERAL_DEPOSITED, account, amount, asset=asset)

    def _record_mint(self, account: str, amount: int) -> None:
        self._ledger.record_mint(account, amount)
        self._emit(EventType.STABLE_MINTED, account, amount)

    def _record_withdrawal(self, account: str, asset: str, amount: int, receiver: str) -> None:
        self._ledger.record_withdrawal(account, asset, amount)
        self._emit(EventType.COLLATERAL_REDEEMED, account, amount,
                   asset=asset, counterparty=receiver)

    def _record_burn(self, amount: int, on_behalf_of: str, payer: str) -> None:
        self._ledger.record_burn(on_behalf_of, amount)
        self._emit(EventType.STABLE_BURNED, on_behalf_of, amount, counterparty=payer)

    def _pull(self, token: CollateralToken, owner: str, amount: int) -> None:
        """Move amount from owner into custody."""
        if not token.transfer_from(self.address, owner, self.address, amount):
            raise TransferFailed(token.address, owner, self.address, amount)
        self._compensations.append((
            f"return {amount} {token.address} to {owner}",
            lambda: token.revert_transfer_from(self.address, owner, amount),
        ))

    def _issue(self, account: str, amount: int) -> None:
        """Mint stable coin to account. Always the last external call."""
        if not self.stable_coin.mint(self.address, account, amount):
            raise MintFailed(account, amount)

    def _destroy(self, amount: int) -> None:
        """Burn stable coin held in custody."""
        if not self.stable_coin.burn(self.address, amount):
            raise BurnFailed(amount)
        self._compensations.append((
            f"re-mint {amount} burned {self.stable_coin.address}",
            lambda: self.stable_coin.mint(self.address, self.address, amount),
        ))

    def _push(self, token: CollateralToken, to: str, amount: int) -> None:
        """Move amount out of custody. Always the last external call."""
        if not token.transfer(self.address, to, amount):
            raise TransferFailed(token.address, self.address, to, amount)

    def _emit(
        self,
        event_type: EventType,
        account: str,
        amount: int,
        asset: Optional[str] = None,
        counterparty: Optional[str] = None,
    ) -> None:
        self.event_log.append(EngineEvent(
            sequence=len(self.event_log),
            event_type=event_type,
            account=account,
            amount=amount,
            timestamp=self._current_time,
            asset=asset,
            counterparty=counterparty,
        ))

    def _assert_solvent(self, account: str) -> None:
        health_factor = self._health_factor(account)
        if health_factor < MIN_HEALTH_FACTOR:
            raise HealthFactorBroken(account, health_factor)

    def _collateral_value(self, account: str) -> int:
        # Every registered asset is priced, held or not, so any stale feed
        # freezes health checks for everyone.
        total = 0
        for address in self._ledger.list_assets():
            total += usd_value(
                self._ledger.get_asset(address),
                self._ledger.get_collateral(account, address),
                self._current_time,
                self.oracle_timeout,
            )
        return total

    def _health_factor(self, account: str) -> int:
        return calculate_health_factor(
            self._ledger.get_debt(account), self._collateral_value(account)
        )

    # ========================================================================
    # READ-ONLY QUERIES
    # ========================================================================

    def get_health_factor(self, account: str) -> int:
        """Health factor of account, 18 decimals."""
        with self._guard("get_health_factor"):
            return self._health_factor(account)

    def get_account_information(self, account: str) -> AccountInformation:
        """Debt, collateral value and health factor of account."""
        with self._guard("get_account_information"):
            debt = self._ledger.get_debt(account)
            value = self._collateral_value(account)
            return AccountInformation(
                account=account,
                total_debt=debt,
                collateral_value_usd=value,
                health_factor=calculate_health_factor(debt, value),
            )

    def get_account_collateral_value(self, account: str) -> int:
        """USD value of all of account's collateral, 18 decimals."""
        with self._guard("get_account_collateral_value"):
            return self._collateral_value(account)

    def get_collateral_balance(self, account: str, asset: str) -> int:
        with self._guard("get_collateral_balance"):
            return self._ledger.get_collateral(account, asset)

    def get_collateral_balances(self, account: str) -> Dict[str, int]:
        with self._guard("get_collateral_balances"):
            return self._ledger.get_collateral_balances(account)

    def get_debt(self, account: str) -> int:
        with self._guard("get_debt"):
            return self._ledger.get_debt(account)

    def get_total_debt(self) -> int:
        with self._guard("get_total_debt"):
            return self._ledger.total_debt()

    def get_total_deposited(self, asset: str) -> int:
        with self._guard("get_total_deposited"):
            return self._ledger.total_deposited(asset)

    def list_accounts(self) -> List[str]:
        """Accounts holding collateral or debt."""
        with self._guard("list_accounts"):
            return self._ledger.list_accounts()

    def get_usd_value(self, asset: str, amount: int) -> int:
        """USD value of amount of asset, 18 decimals."""
        with self._guard("get_usd_value"):
            return usd_value(
                self._ledger.get_asset(asset), amount, self._current_time, self.oracle_timeout
            )

    def get_asset_amount_from_usd(self, asset: str, usd_amount: int) -> int:
        """Quantity of asset worth usd_amount."""
        with self._guard("get_asset_amount_from_usd"):
            return asset_amount_from_usd(
                self._ledger.get_asset(asset), usd_amount, self._current_time, self.oracle_timeout
            )

    def quote_liquidation(self, collateral_asset: str, debt_to_cover: int) -> LiquidationQuote:
        """Collateral a liquidator would receive for covering debt_to_cover."""
        require_positive(debt_to_cover, "debt_to_cover")
        with self._guard("quote_liquidation"):
            return calculate_liquidation(asset_amount_from_usd(
                self._ledger.get_asset(collateral_asset),
                debt_to_cover,
                self._current_time,
                self.oracle_timeout,
            ))

    def calculate_health_factor(self, total_debt: int, collateral_value_usd: int) -> int:
        """Health factor for hypothetical values. Pure."""
        return calculate_health_factor(total_debt, collateral_value_usd)

    def get_collateral_assets(self) -> List[str]:
        return self._ledger.list_assets()

    def get_collateral_token(self, asset: str) -> CollateralToken:
        self._ledger.get_asset(asset)
        return self._tokens[asset]

    def get_price_feed(self, asset: str) -> PriceFeed:
        return self._ledger.get_asset(asset).price_feed

    def constants(self) -> EngineConstants:
        """All tunable constants."""
        return EngineConstants(
            precision=self.PRECISION,
            additional_feed_precision=self.ADDITIONAL_FEED_PRECISION,
            liquidation_threshold=self.LIQUIDATION_THRESHOLD,
            liquidation_precision=self.LIQUIDATION_PRECISION,
            liquidation_bonus=self.LIQUIDATION_BONUS,
            min_health_factor=self.MIN_HEALTH_FACTOR,
            oracle_timeout=self.oracle_timeout,
        )

    def verify_conservation(self) -> Dict[str, Any]:
        """
        Check that recorded deposits equal the collateral in custody.

        See CollateralLedger.verify_conservation for the report format.
        """
        with self._guard("verify_conservation"):
            custody = {
                address: token.balance_of(self.address)
                for address, token in self._tokens.items()
            }
            return self._ledger.verify_conservation(custody)

    def __repr__(self) -> str:
        return (f"CollateralEngine({self.address}, "
                f"{len(self._tokens)} collateral assets, {len(self.event_log)} events)")
