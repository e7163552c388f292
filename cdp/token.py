"""
token.py - Reference fungible tokens

In-process implementations of the collateral transfer interface and the
stable coin issuer. The engine depends only on the CollateralToken and
StableIssuer protocols; these classes exist so the engine can be run,
simulated and tested without an external ledger.

Classes:
- Token: Fungible token with balances, allowances and an open faucet (mint)
- StableCoin: The liability asset; only its owner may mint or burn

Like the balances in a double-entry ledger, total_supply always equals the
sum of all balances: transfers move value, only mint and burn change supply.
"""

from __future__ import annotations
from typing import Dict, Tuple
import logging

from .core import (
    STANDARD_DECIMALS,
    InsufficientBalance, InsufficientAllowance, NotOwner,
)

logger = logging.getLogger(__name__)


def _require_amount(amount: int) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise TypeError(f"Token amount must be int, got {type(amount).__name__}")
    if amount < 0:
        raise ValueError(f"Token amount must be non-negative, got {amount}")


class Token:
    """
    Fungible token with allowances.

    Failed transfers raise (InsufficientBalance, InsufficientAllowance);
    successful ones return True, so callers can treat a False return from
    other implementations the same way.

    Example:
        weth = Token("WETH", "Wrapped Ether")
        weth.mint("alice", 10 * 10**18)
        weth.approve("alice", "engine", 10 * 10**18)
        weth.transfer_from("engine", "alice", "engine", 10 * 10**18)
    """

    def __init__(self, address: str, name: str = "", decimals: int = STANDARD_DECIMALS):
        if not address or not address.strip():
            raise ValueError("Token address cannot be empty")
        self.address = address
        self.name = name or address
        self.decimals = decimals
        self.balances: Dict[str, int] = {}
        self.allowances: Dict[Tuple[str, str], int] = {}
        self.total_supply = 0

    def balance_of(self, owner: str) -> int:
        return self.balances.get(owner, 0)

    def allowance(self, owner: str, spender: str) -> int:
        return self.allowances.get((owner, spender), 0)

    def approve(self, owner: str, spender: str, amount: int) -> bool:
        """Let spender move up to amount of owner's tokens."""
        _require_amount(amount)
        self.allowances[(owner, spender)] = amount
        return True

    def transfer(self, sender: str, to: str, amount: int) -> bool:
        """Move amount from sender to to."""
        _require_amount(amount)
        self._move(sender, to, amount)
        return True

    def transfer_from(self, spender: str, owner: str, to: str, amount: int) -> bool:
        """Move amount from owner to to, spending spender's allowance."""
        _require_amount(amount)
        allowed = self.allowance(owner, spender)
        if amount > allowed:
            raise InsufficientAllowance(self.address, owner, spender, allowed, amount)
        self._move(owner, to, amount)
        self.allowances[(owner, spender)] = allowed - amount
        return True

    def revert_transfer_from(self, spender: str, owner: str, amount: int) -> bool:
        """Return amount pulled by spender to owner and re-credit the allowance."""
        _require_amount(amount)
        self._move(spender, owner, amount)
        self.allowances[(owner, spender)] = self.allowance(owner, spender) + amount
        return True

    def mint(self, to: str, amount: int) -> bool:
        """Create amount new tokens for to. Unrestricted on plain tokens."""
        _require_amount(amount)
        self.balances[to] = self.balance_of(to) + amount
        self.total_supply += amount
        return True

    def _move(self, source: str, dest: str, amount: int) -> None:
        self._before_transfer(source, dest, amount)
        balance = self.balance_of(source)
        if amount > balance:
            raise InsufficientBalance(self.address, source, balance, amount)
        self.balances[source] = balance - amount
        self.balances[dest] = self.balance_of(dest) + amount

    def _before_transfer(self, source: str, dest: str, amount: int) -> None:
        """Hook run before every balance move. No-op by default."""

    def __repr__(self) -> str:
        return f"Token({self.address}, supply={self.total_supply}, decimals={self.decimals})"


class StableCoin(Token):
    """
    The USD-pegged liability asset.

    Minting and burning are restricted to the owner, which is the engine
    once ownership has been transferred to it.
    """

    def __init__(self, address: str = "STABLE", name: str = "Stable Coin", owner: str = ""):
        super().__init__(address, name, STANDARD_DECIMALS)
        self.owner = owner

    def transfer_ownership(self, caller: str, new_owner: str) -> None:
        """Hand minting rights to new_owner. The first owner may be unset."""
        if self.owner and caller != self.owner:
            raise NotOwner(self.address, caller)
        logger.info("%s ownership: %s -> %s", self.address, self.owner or "<unset>", new_owner)
        self.owner = new_owner

    def mint(self, caller: str, to: str, amount: int) -> bool:  # type: ignore[override]
        """Mint amount to to. Returns False for a zero amount."""
        if caller != self.owner:
            raise NotOwner(self.address, caller)
        _require_amount(amount)
        if amount == 0:
            return False
        return super().mint(to, amount)

    def burn(self, caller: str, amount: int) -> bool:
        """Destroy amount from the owner's own balance."""
        if caller != self.owner:
            raise NotOwner(self.address, caller)
        _require_amount(amount)
        if amount == 0:
            return False
        balance = self.balance_of(caller)
        if amount > balance:
            raise InsufficientBalance(self.address, caller, balance, amount)
        self.balances[caller] = balance - amount
        self.total_supply -= amount
        return True
