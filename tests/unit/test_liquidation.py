"""
test_liquidation.py - Unit tests for CollateralEngine.liquidate

Tests:
- Eligibility: healthy and debt-free targets cannot be liquidated
- Sizing: base collateral plus 10% bonus, truncated
- Full and partial liquidation
- Input validation and rollback on every failure
"""

import pytest

from cdp import (
    EventType, LiquidationResult,
    ZeroAmount, UnsupportedAsset,
    InsufficientCollateral, InsufficientDebt, InsufficientAllowance,
    InsufficientBalance, HealthFactorOk,
    MAX_HEALTH_FACTOR, MIN_HEALTH_FACTOR,
    to_fixed,
)
from tests.fakes import (
    ENGINE, USER, LIQUIDATOR,
    COLLATERAL_AMOUNT, AMOUNT_TO_MINT, COLLATERAL_TO_COVER,
    snapshot_state,
)


# $100 of debt at $15/WETH
BASE_FOR_100 = 6666666666666666666
BONUS_FOR_100 = 666666666666666666


class TestEligibility:

    def test_healthy_target(self, minted, weth, stable):
        with pytest.raises(HealthFactorOk) as exc_info:
            minted.liquidate(LIQUIDATOR, 'WETH', USER, AMOUNT_TO_MINT)
        assert exc_info.value.health_factor == 100 * 10**18

    def test_target_without_debt(self, deposited):
        with pytest.raises(HealthFactorOk) as exc_info:
            deposited.liquidate(LIQUIDATOR, 'WETH', USER, 1)
        assert exc_info.value.health_factor == MAX_HEALTH_FACTOR

    def test_target_exactly_at_minimum(self, deposited):
        deposited.mint_stable(USER, to_fixed(10_000))
        assert deposited.get_health_factor(USER) == MIN_HEALTH_FACTOR
        with pytest.raises(HealthFactorOk):
            deposited.liquidate(LIQUIDATOR, 'WETH', USER, 1)

    def test_underwater_target(self, liquidatable):
        assert liquidatable.get_health_factor(USER) == 75 * 10**16


class TestFullLiquidation:

    def test_result(self, liquidatable):
        result = liquidatable.liquidate(LIQUIDATOR, 'WETH', USER, AMOUNT_TO_MINT)

        assert result == LiquidationResult(
            liquidator=LIQUIDATOR,
            target=USER,
            collateral_asset='WETH',
            debt_covered=AMOUNT_TO_MINT,
            base_collateral=BASE_FOR_100,
            bonus_collateral=BONUS_FOR_100,
            starting_health_factor=75 * 10**16,
            ending_health_factor=MAX_HEALTH_FACTOR,
        )
        assert result.total_collateral == BASE_FOR_100 + BONUS_FOR_100

    def test_balances_after(self, liquidatable, weth, stable):
        liquidatable.liquidate(LIQUIDATOR, 'WETH', USER, AMOUNT_TO_MINT)
        seized = BASE_FOR_100 + BONUS_FOR_100

        assert liquidatable.get_debt(USER) == 0
        assert liquidatable.get_collateral_balance(USER, 'WETH') == COLLATERAL_AMOUNT - seized
        assert weth.balance_of(LIQUIDATOR) == seized
        assert stable.balance_of(LIQUIDATOR) == 0
        # The target keeps the stable coin it minted
        assert stable.balance_of(USER) == AMOUNT_TO_MINT
        assert stable.total_supply == AMOUNT_TO_MINT

    def test_liquidator_position_untouched(self, liquidatable):
        liquidatable.liquidate(LIQUIDATOR, 'WETH', USER, AMOUNT_TO_MINT)
        assert liquidatable.get_collateral_balance(LIQUIDATOR, 'WETH') == COLLATERAL_TO_COVER
        assert liquidatable.get_debt(LIQUIDATOR) == AMOUNT_TO_MINT

    def test_events(self, liquidatable):
        mark = len(liquidatable.event_log)
        liquidatable.liquidate(LIQUIDATOR, 'WETH', USER, AMOUNT_TO_MINT)

        redeemed, burned, liquidated = liquidatable.event_log[mark:]
        assert redeemed.event_type == EventType.COLLATERAL_REDEEMED
        assert redeemed.account == USER
        assert redeemed.counterparty == LIQUIDATOR
        assert redeemed.amount == BASE_FOR_100 + BONUS_FOR_100
        assert burned.event_type == EventType.STABLE_BURNED
        assert burned.counterparty == LIQUIDATOR
        assert liquidated.event_type == EventType.LIQUIDATED
        assert liquidated.amount == AMOUNT_TO_MINT

    def test_conservation_holds(self, liquidatable):
        liquidatable.liquidate(LIQUIDATOR, 'WETH', USER, AMOUNT_TO_MINT)
        assert liquidatable.verify_conservation()['valid']

    def test_matches_quote(self, liquidatable):
        quote = liquidatable.quote_liquidation('WETH', AMOUNT_TO_MINT)
        result = liquidatable.liquidate(LIQUIDATOR, 'WETH', USER, AMOUNT_TO_MINT)
        assert quote.total_collateral == result.total_collateral


class TestPartialLiquidation:

    def test_half_the_debt(self, liquidatable):
        result = liquidatable.liquidate(LIQUIDATOR, 'WETH', USER, to_fixed(50))

        assert liquidatable.get_debt(USER) == to_fixed(50)
        assert result.ending_health_factor == 95 * 10**16
        assert result.ending_health_factor > result.starting_health_factor

    def test_repeated_until_healthy(self, liquidatable):
        liquidatable.liquidate(LIQUIDATOR, 'WETH', USER, to_fixed(50))
        result = liquidatable.liquidate(LIQUIDATOR, 'WETH', USER, to_fixed(50))

        assert result.starting_health_factor == 95 * 10**16
        assert result.ending_health_factor == MAX_HEALTH_FACTOR
        assert liquidatable.list_accounts() == [USER, LIQUIDATOR]


class TestValidation:

    def _assert_unchanged(self, engine, weth, before):
        assert snapshot_state(engine, [USER, LIQUIDATOR], [weth]) == before

    def test_zero_debt_to_cover(self, liquidatable):
        with pytest.raises(ZeroAmount):
            liquidatable.liquidate(LIQUIDATOR, 'WETH', USER, 0)

    def test_unsupported_asset(self, liquidatable):
        with pytest.raises(UnsupportedAsset):
            liquidatable.liquidate(LIQUIDATOR, 'DOGE', USER, AMOUNT_TO_MINT)

    def test_dust_that_buys_no_collateral(self, liquidatable, weth):
        before = snapshot_state(liquidatable, [USER, LIQUIDATOR], [weth])
        with pytest.raises(ZeroAmount) as exc_info:
            liquidatable.liquidate(LIQUIDATOR, 'WETH', USER, 1)
        assert exc_info.value.what == "collateral to seize"
        self._assert_unchanged(liquidatable, weth, before)

    def test_asset_target_does_not_hold(self, liquidatable, weth):
        before = snapshot_state(liquidatable, [USER, LIQUIDATOR], [weth])
        with pytest.raises(InsufficientCollateral):
            liquidatable.liquidate(LIQUIDATOR, 'WBTC', USER, AMOUNT_TO_MINT)
        self._assert_unchanged(liquidatable, weth, before)

    def test_more_collateral_than_target_holds(self, liquidatable, weth):
        # $150 at $15 plus bonus is 11 WETH
        with pytest.raises(InsufficientCollateral):
            liquidatable.liquidate(LIQUIDATOR, 'WETH', USER, to_fixed(150))

    def test_more_than_target_owes(self, liquidatable, weth, stable):
        stable.approve(LIQUIDATOR, ENGINE, to_fixed(101))
        before = snapshot_state(liquidatable, [USER, LIQUIDATOR], [weth])
        with pytest.raises(InsufficientDebt):
            liquidatable.liquidate(LIQUIDATOR, 'WETH', USER, to_fixed(101))
        self._assert_unchanged(liquidatable, weth, before)

    def test_liquidator_without_allowance(self, liquidatable, weth, stable):
        stable.approve(LIQUIDATOR, ENGINE, 0)
        before = snapshot_state(liquidatable, [USER, LIQUIDATOR], [weth])
        with pytest.raises(InsufficientAllowance):
            liquidatable.liquidate(LIQUIDATOR, 'WETH', USER, AMOUNT_TO_MINT)
        self._assert_unchanged(liquidatable, weth, before)

    def test_liquidator_without_stable_coin(self, liquidatable, stable):
        stable.approve("outsider", ENGINE, AMOUNT_TO_MINT)
        with pytest.raises(InsufficientBalance):
            liquidatable.liquidate("outsider", 'WETH', USER, AMOUNT_TO_MINT)
        assert liquidatable.get_debt(USER) == AMOUNT_TO_MINT
