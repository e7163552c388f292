"""
ledger.py - Collateral and debt bookkeeping

The CollateralLedger is the keyed store behind the engine. It records what
each account has deposited and how much stable coin it has minted, and
nothing else: it performs no transfers and reads no prices.

Key responsibilities:
    - Registry of supported collateral assets (fixed at construction)
    - Per-account, per-asset deposited amounts
    - Per-account minted debt
    - Explicit underflow guards on withdrawal and burn
    - Snapshots for all-or-nothing rollback
    - Conservation audit against the custodied token balances
"""

from __future__ import annotations
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from .core import (
    Asset,
    UnsupportedAsset, DuplicateAsset,
    InsufficientCollateral, InsufficientDebt,
    require_positive,
)


@dataclass(frozen=True, slots=True)
class LedgerSnapshot:
    """Frozen copy of all mutable ledger state."""
    deposits: Tuple[Tuple[str, Tuple[Tuple[str, int], ...]], ...]
    debt: Tuple[Tuple[str, int], ...]


class CollateralLedger:
    """
    Per-account collateral and debt bookkeeping.

    Zero entries are pruned, so an account with no collateral and no debt
    is indistinguishable from one that never existed.

    Thread Safety:
        Not thread-safe. The engine serializes all access.

    Example:
        ledger = CollateralLedger([weth, wbtc])
        ledger.record_deposit("alice", "WETH", 10 * 10**18)
        ledger.record_mint("alice", 100 * 10**18)
    """

    def __init__(self, assets: Iterable[Asset]):
        """
        Create a ledger for a fixed set of assets.

        Raises:
            DuplicateAsset: If an address appears twice
        """
        self._assets: Dict[str, Asset] = {}
        for asset in assets:
            if asset.address in self._assets:
                raise DuplicateAsset(asset.address)
            self._assets[asset.address] = asset
        self._deposits: Dict[str, Dict[str, int]] = {}
        self._debt: Dict[str, int] = {}
        # Running totals per asset, kept in step with _deposits
        self._totals: Dict[str, int] = defaultdict(int)

    # ========================================================================
    # REGISTRY
    # ========================================================================

    def list_assets(self) -> List[str]:
        """Registered asset addresses, in registration order."""
        return list(self._assets)

    def get_asset(self, address: str) -> Asset:
        """Return the Asset for an address."""
        if address not in self._assets:
            raise UnsupportedAsset(address)
        return self._assets[address]

    def is_supported(self, address: str) -> bool:
        return address in self._assets

    # ========================================================================
    # READS
    # ========================================================================

    def get_collateral(self, account: str, asset: str) -> int:
        """Deposited amount of asset for account (0 if none)."""
        if asset not in self._assets:
            raise UnsupportedAsset(asset)
        return self._deposits.get(account, {}).get(asset, 0)

    def get_collateral_balances(self, account: str) -> Dict[str, int]:
        """All non-zero deposits of an account."""
        return dict(self._deposits.get(account, {}))

    def get_debt(self, account: str) -> int:
        """Minted stable coin owed by account."""
        return self._debt.get(account, 0)

    def total_deposited(self, asset: str) -> int:
        """Sum of all deposits of asset across accounts."""
        if asset not in self._assets:
            raise UnsupportedAsset(asset)
        return self._totals.get(asset, 0)

    def total_debt(self) -> int:
        """Sum of all minted debt."""
        return sum(self._debt[a] for a in sorted(self._debt))

    def list_accounts(self) -> List[str]:
        """Accounts holding collateral or debt."""
        return sorted(set(self._deposits) | set(self._debt))

    # ========================================================================
    # BOOKKEEPING (Mutating)
    # ========================================================================

    def record_deposit(self, account: str, asset: str, amount: int) -> int:
        """
        Increase account's deposit of asset.

        Returns:
            The new deposited amount

        Raises:
            ZeroAmount: If amount is not positive
            UnsupportedAsset: If asset is not registered
        """
        require_positive(amount)
        if asset not in self._assets:
            raise UnsupportedAsset(asset)
        balances = self._deposits.setdefault(account, {})
        balances[asset] = balances.get(asset, 0) + amount
        self._totals[asset] += amount
        return balances[asset]

    def record_withdrawal(self, account: str, asset: str, amount: int) -> int:
        """
        Decrease account's deposit of asset.

        Returns:
            The remaining deposited amount

        Raises:
            ZeroAmount: If amount is not positive
            UnsupportedAsset: If asset is not registered
            InsufficientCollateral: If amount exceeds the deposit
        """
        require_positive(amount)
        available = self.get_collateral(account, asset)
        if amount > available:
            raise InsufficientCollateral(account, asset, available, amount)
        remaining = available - amount
        if remaining:
            self._deposits[account][asset] = remaining
        else:
            del self._deposits[account][asset]
            if not self._deposits[account]:
                del self._deposits[account]
        self._totals[asset] -= amount
        return remaining

    def record_mint(self, account: str, amount: int) -> int:
        """Increase account's debt. Returns the new debt."""
        require_positive(amount)
        self._debt[account] = self._debt.get(account, 0) + amount
        return self._debt[account]

    def record_burn(self, account: str, amount: int) -> int:
        """
        Decrease account's debt.

        Raises:
            ZeroAmount: If amount is not positive
            InsufficientDebt: If amount exceeds the debt
        """
        require_positive(amount)
        available = self.get_debt(account)
        if amount > available:
            raise InsufficientDebt(account, available, amount)
        remaining = available - amount
        if remaining:
            self._debt[account] = remaining
        else:
            del self._debt[account]
        return remaining

    # ========================================================================
    # SNAPSHOTS
    # ========================================================================

    def snapshot(self) -> LedgerSnapshot:
        """Capture all mutable state."""
        return LedgerSnapshot(
            deposits=tuple(
                (account, tuple(balances.items()))
                for account, balances in self._deposits.items()
            ),
            debt=tuple(self._debt.items()),
        )

    def restore(self, snapshot: LedgerSnapshot) -> None:
        """Replace all mutable state with a snapshot."""
        self._deposits = {account: dict(balances) for account, balances in snapshot.deposits}
        self._debt = dict(snapshot.debt)
        self._totals = defaultdict(int)
        for balances in self._deposits.values():
            for asset, amount in balances.items():
                self._totals[asset] += amount

    # ========================================================================
    # AUDIT
    # ========================================================================

    def verify_conservation(self, custody: Mapping[str, int]) -> Dict[str, Any]:
        """
        Verify that bookkeeping matches the collateral actually held.

        For every asset, the sum of deposits must equal the engine's token
        balance. Tokens sent to the engine outside deposit() show up as
        discrepancies.

        Args:
            custody: Asset address -> balance held by the engine

        Returns:
            Dict with keys:
            - 'valid': bool - True if every asset balances
            - 'totals': Dict[str, int] - Sum of deposits per asset
            - 'discrepancies': List[Dict] - asset, recorded, custodied, difference

        Example:
            report = ledger.verify_conservation({"WETH": weth.balance_of(engine)})
            assert report['valid'], report['discrepancies']
        """
        totals: Dict[str, int] = {}
        discrepancies: List[Dict[str, Any]] = []

        for asset in self._assets:
            recorded = sum(
                balances.get(asset, 0)
                for _, balances in sorted(self._deposits.items())
            )
            totals[asset] = recorded
            held: Optional[int] = custody.get(asset)
            if held is None:
                discrepancies.append({
                    'asset': asset,
                    'recorded': recorded,
                    'custodied': None,
                    'difference': None,
                    'error': 'custody balance missing',
                })
            elif held != recorded:
                discrepancies.append({
                    'asset': asset,
                    'recorded': recorded,
                    'custodied': held,
                    'difference': held - recorded,
                })

        return {
            'valid': len(discrepancies) == 0,
            'totals': totals,
            'discrepancies': discrepancies,
        }

    def __repr__(self) -> str:
        return (f"CollateralLedger({len(self._assets)} assets, "
                f"{len(self.list_accounts())} accounts)")
