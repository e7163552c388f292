"""
conftest.py - Shared pytest fixtures for engine tests

Provides common fixtures used across unit, functional and conformance tests:
- Collateral tokens, price feed and stable coin
- Engines in various states (empty, deposited, minted, liquidatable)

Constants and funding helpers live in tests/fakes.py.
"""

import logging
import pytest
from datetime import timedelta

from cdp import StableCoin, StaticPriceFeed, Token

from tests.fakes import (
    T0, ENGINE, USER, LIQUIDATOR,
    COLLATERAL_AMOUNT, AMOUNT_TO_MINT, COLLATERAL_TO_COVER,
    WETH_PRICE, WBTC_PRICE,
    fund, make_engine,
)


@pytest.fixture
def weth():
    return Token("WETH", "Wrapped Ether")


@pytest.fixture
def wbtc():
    # 8-decimal collateral exercises decimal normalization
    return Token("WBTC", "Wrapped Bitcoin", decimals=8)


@pytest.fixture
def feed():
    return StaticPriceFeed({"WETH": WETH_PRICE, "WBTC": WBTC_PRICE}, updated_at=T0)


@pytest.fixture
def stable():
    return StableCoin("DSC", "Decentralized Stable Coin")


@pytest.fixture
def engine(weth, wbtc, feed, stable):
    return make_engine([weth, wbtc], [feed, feed], stable)


@pytest.fixture
def deposited(engine, weth):
    """USER has 10 WETH deposited and no debt."""
    fund(weth, USER, COLLATERAL_AMOUNT)
    engine.deposit_collateral(USER, "WETH", COLLATERAL_AMOUNT)
    return engine


@pytest.fixture
def minted(engine, weth):
    """USER has 10 WETH deposited and 100 DSC minted (health factor 100)."""
    fund(weth, USER, COLLATERAL_AMOUNT)
    engine.deposit_collateral_and_mint(USER, "WETH", COLLATERAL_AMOUNT, AMOUNT_TO_MINT)
    return engine


@pytest.fixture
def liquidatable(minted, weth, feed, stable):
    """
    USER is underwater after WETH drops to $15 (health factor 0.75).

    LIQUIDATOR deposited 20 WETH and minted 100 DSC before the drop, so it
    stays solvent (health factor 1.5) and has approved the engine to pull
    its DSC.
    """
    fund(weth, LIQUIDATOR, COLLATERAL_TO_COVER)
    minted.deposit_collateral_and_mint(LIQUIDATOR, "WETH", COLLATERAL_TO_COVER, AMOUNT_TO_MINT)
    stable.approve(LIQUIDATOR, ENGINE, AMOUNT_TO_MINT)
    feed.update_price("WETH", "15")
    return minted


@pytest.fixture(autouse=True)
def restore_root_logger():
    """Undo configure_logging() calls made by a test."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def later():
    """A time well inside the oracle timeout."""
    return T0 + timedelta(hours=1)
