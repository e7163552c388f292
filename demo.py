#!/usr/bin/env python3
"""
demo.py - Interactive Tutorial: Learn the Collateral Engine Step by Step

Each step builds on the previous one. Press Enter to advance.

WHAT YOU'LL LEARN:
  1-3:   Foundation     - Deployment, deposits, minting against collateral
  4-5:   Safety         - Rejected operations, atomicity, withdrawals
  6-8:   Liquidation    - Price crashes, quotes, liquidations that don't help
  9-10:  Oracle & Audit - Stale prices, the event log, conservation

Run:
    python demo.py           # Interactive mode (press Enter for each step)
    python demo.py --quick   # Run all steps without pausing
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
import sys

from cdp import (
    CollateralEngine, StableCoin, StaticPriceFeed, Token,
    EngineError, StalePrice,
    MIN_HEALTH_FACTOR, MAX_HEALTH_FACTOR, ORACLE_TIMEOUT,
    from_fixed, to_fixed,
)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class DemoConfig:
    """Configuration for the tutorial. Modify these to experiment."""
    start_time: datetime = datetime(2025, 1, 1, 9, 0, 0)

    weth_price: Decimal = Decimal("2000")
    crash_price: Decimal = Decimal("15")
    deep_crash_price: Decimal = Decimal("10")

    alice_collateral: Decimal = Decimal("10")
    alice_mint: Decimal = Decimal("100")
    alice_redeem: Decimal = Decimal("1")

    liquidator_collateral: Decimal = Decimal("20")
    liquidator_mint: Decimal = Decimal("100")
    debt_to_cover: Decimal = Decimal("50")


CONFIG = DemoConfig()

QUICK_MODE = "--quick" in sys.argv

ALICE = "alice"
LIQUIDATOR = "liquidator"


def wait_for_enter():
    """Pause for user input unless in quick mode."""
    if not QUICK_MODE:
        input("\n[Press Enter to continue...]")


def step_header(number: int, title: str, objective: str):
    """Print a step header with learning objective."""
    print(f"\n{'='*70}")
    print(f"STEP {number}: {title}")
    print(f"{'='*70}")
    print(f"\nObjective: {objective}\n")


def section_header(text: str):
    """Print a section header within a step."""
    print(f"\n--- {text} ---\n")


def fmt(amount: int) -> str:
    """Render an 18-decimal amount for humans."""
    if amount == MAX_HEALTH_FACTOR:
        return "inf"
    return f"{from_fixed(amount):,.4f}"


def show_account(engine: CollateralEngine, account: str):
    info = engine.get_account_information(account)
    print(f"{account:<12} collateral ${fmt(info.collateral_value_usd):>14}   "
          f"debt {fmt(info.total_debt):>10}   health {fmt(info.health_factor)}")


# ============================================================================
# PHASE 1: FOUNDATION (Steps 1-3)
# ============================================================================

def step_01_deploy():
    """Create tokens, a price feed, the stable coin and the engine."""
    step_header(1, "Deploying the Engine",
        "Understand the collaborators the engine is wired to.")

    print("""
    The engine never owns prices or tokens itself. It is wired to:

    1. COLLATERAL TOKENS - Assets users lock up (here: WETH)
    2. PRICE FEEDS       - One USD oracle per collateral token, same order
    3. STABLE COIN       - The liability asset; the engine must own it

    Tokens and feeds are paired by position. A mismatched pair of lists is
    rejected before anything is deployed.
    """)

    wait_for_enter()

    weth = Token("WETH", "Wrapped Ether")
    feed = StaticPriceFeed({"WETH": CONFIG.weth_price}, updated_at=CONFIG.start_time)
    stable = StableCoin("DSC", "Decentralized Stable Coin")

    print(">>> engine = CollateralEngine([weth], [feed], stable, initial_time=...)")
    engine = CollateralEngine([weth], [feed], stable, initial_time=CONFIG.start_time)
    print(">>> stable.transfer_ownership('', engine.address)")
    stable.transfer_ownership("", engine.address)

    section_header("Engine Constants")
    constants = engine.constants()
    print(f"Liquidation threshold: {constants.liquidation_threshold}/{constants.liquidation_precision}")
    print(f"Liquidation bonus:     {constants.liquidation_bonus}%")
    print(f"Min health factor:     {fmt(constants.min_health_factor)}")
    print(f"Oracle timeout:        {constants.oracle_timeout}")
    print(f"\n{engine!r}")

    return engine, weth, feed, stable


def step_02_deposit(engine, weth):
    """Lock collateral."""
    step_header(2, "Depositing Collateral",
        "Collateral moves into engine custody and is credited to the account.")

    amount = to_fixed(CONFIG.alice_collateral)
    weth.mint(ALICE, amount)

    print(f">>> weth.approve('{ALICE}', engine.address, ...)")
    weth.approve(ALICE, engine.address, amount)
    print(f">>> engine.deposit_collateral('{ALICE}', 'WETH', {CONFIG.alice_collateral} WETH)")
    engine.deposit_collateral(ALICE, "WETH", amount)

    section_header("Balances")
    print(f"Alice's wallet:       {fmt(weth.balance_of(ALICE))} WETH")
    print(f"Engine custody:       {fmt(weth.balance_of(engine.address))} WETH")
    print(f"Alice's deposit:      {fmt(engine.get_collateral_balance(ALICE, 'WETH'))} WETH")
    print(f"Health factor:        {fmt(engine.get_health_factor(ALICE))} (no debt)")


def step_03_mint(engine, stable):
    """Mint stable coin against the deposit."""
    step_header(3, "Minting Stable Coin",
        "Debt is only issued while collateral covers it twice over.")

    print("""
    health factor = (collateral value x 50 / 100) / debt

    Only half the collateral value counts, so an account needs 200%
    collateralization to keep its health factor at or above 1.0.
    """)

    wait_for_enter()

    print(f">>> engine.mint_stable('{ALICE}', {CONFIG.alice_mint} DSC)")
    engine.mint_stable(ALICE, to_fixed(CONFIG.alice_mint))

    section_header("Position")
    show_account(engine, ALICE)
    print(f"\nAlice holds {fmt(stable.balance_of(ALICE))} DSC; total supply {fmt(stable.total_supply)}")


# ============================================================================
# PHASE 2: SAFETY (Steps 4-5)
# ============================================================================

def step_04_rejected_mint(engine, stable):
    """An over-leveraged mint is rolled back."""
    step_header(4, "Rejected Operations",
        "An operation that would break solvency leaves no trace.")

    before_debt = engine.get_debt(ALICE)
    before_supply = stable.total_supply
    before_events = len(engine.event_log)

    huge = engine.get_account_collateral_value(ALICE)
    print(f">>> engine.mint_stable('{ALICE}', {fmt(huge)} DSC)")
    try:
        engine.mint_stable(ALICE, huge)
    except EngineError as e:
        print(f"Rejected: {type(e).__name__}: {e}")

    section_header("State After Rejection")
    print(f"Debt:         {fmt(before_debt)} -> {fmt(engine.get_debt(ALICE))}")
    print(f"DSC supply:   {fmt(before_supply)} -> {fmt(stable.total_supply)}")
    print(f"Event count:  {before_events} -> {len(engine.event_log)}")


def step_05_redeem(engine, weth):
    """Withdraw part of the collateral."""
    step_header(5, "Redeeming Collateral",
        "Withdrawals are allowed while the account stays solvent.")

    amount = to_fixed(CONFIG.alice_redeem)
    print(f">>> engine.redeem_collateral('{ALICE}', 'WETH', {CONFIG.alice_redeem} WETH)")
    engine.redeem_collateral(ALICE, "WETH", amount)

    section_header("Position")
    show_account(engine, ALICE)
    print(f"\nAlice's wallet: {fmt(weth.balance_of(ALICE))} WETH")


# ============================================================================
# PHASE 3: LIQUIDATION (Steps 6-8)
# ============================================================================

def step_06_price_crash(engine, weth, feed, stable):
    """Drop the collateral price until Alice is underwater."""
    step_header(6, "Price Crash",
        "A falling price pushes a position below the minimum health factor.")

    collateral = to_fixed(CONFIG.liquidator_collateral)
    weth.mint(LIQUIDATOR, collateral)
    weth.approve(LIQUIDATOR, engine.address, collateral)
    engine.deposit_collateral_and_mint(
        LIQUIDATOR, "WETH", collateral, to_fixed(CONFIG.liquidator_mint)
    )
    stable.approve(LIQUIDATOR, engine.address, to_fixed(CONFIG.liquidator_mint))
    print("A liquidator opens its own position while WETH is still expensive.\n")

    print(f">>> feed.update_price('WETH', '{CONFIG.crash_price}')")
    feed.update_price("WETH", CONFIG.crash_price)

    section_header("Positions")
    for account in engine.list_accounts():
        show_account(engine, account)

    hf = engine.get_health_factor(ALICE)
    print(f"\nAlice liquidatable: {hf < MIN_HEALTH_FACTOR}")


def step_07_liquidate(engine, weth):
    """Quote and execute a partial liquidation."""
    step_header(7, "Liquidation",
        "A third party repays debt and takes collateral plus a 10% bonus.")

    debt = to_fixed(CONFIG.debt_to_cover)
    quote = engine.quote_liquidation("WETH", debt)

    section_header("Quote")
    print(f"Debt to cover:  {fmt(debt)} DSC")
    print(f"Base:           {fmt(quote.base_collateral)} WETH")
    print(f"Bonus:          {fmt(quote.bonus_collateral)} WETH")
    print(f"Total:          {fmt(quote.total_collateral)} WETH")

    wait_for_enter()

    print(f">>> engine.liquidate('{LIQUIDATOR}', 'WETH', '{ALICE}', {CONFIG.debt_to_cover} DSC)")
    result = engine.liquidate(LIQUIDATOR, "WETH", ALICE, debt)

    section_header("Result")
    print(f"Health factor:  {fmt(result.starting_health_factor)} -> {fmt(result.ending_health_factor)}")
    print(f"Liquidator received {fmt(weth.balance_of(LIQUIDATOR))} WETH")
    show_account(engine, ALICE)


def step_08_not_improved(engine, feed):
    """A liquidation that would hurt the target is refused."""
    step_header(8, "When Liquidation Doesn't Help",
        "Below 110% collateralization the bonus outweighs the repaid debt.")

    print(f">>> feed.update_price('WETH', '{CONFIG.deep_crash_price}')")
    feed.update_price("WETH", CONFIG.deep_crash_price)
    show_account(engine, ALICE)

    print(f"\n>>> engine.liquidate('{LIQUIDATOR}', 'WETH', '{ALICE}', 10 DSC)")
    try:
        engine.liquidate(LIQUIDATOR, "WETH", ALICE, to_fixed(10))
    except EngineError as e:
        print(f"Rejected: {type(e).__name__}: {e}")

    print("""
    The position is now bad debt: no liquidation can improve it, and the
    engine leaves it untouched rather than make it worse.
    """)


# ============================================================================
# PHASE 4: ORACLE & AUDIT (Steps 9-10)
# ============================================================================

def step_09_stale_oracle(engine, feed):
    """Let the price go stale, then refresh it."""
    step_header(9, "Stale Prices",
        f"Prices older than {ORACLE_TIMEOUT} are never used.")

    later = engine.current_time + ORACLE_TIMEOUT + timedelta(minutes=1)
    print(f">>> engine.advance_time({later})")
    engine.advance_time(later)

    try:
        engine.get_health_factor(ALICE)
    except StalePrice as e:
        print(f"Health check refused: {e}")

    print(f"\n>>> feed.update_price('WETH', '{CONFIG.weth_price}', updated_at=engine.current_time)")
    feed.update_price("WETH", CONFIG.weth_price, updated_at=engine.current_time)
    show_account(engine, ALICE)


def step_10_audit(engine):
    """Walk the event log and verify custody."""
    step_header(10, "Audit Trail",
        "Every committed change is logged; custody always matches the books.")

    section_header("Event Log")
    for event in engine.event_log:
        print(f"  {event.timestamp:%H:%M}  {event!r}")

    section_header("Conservation")
    report = engine.verify_conservation()
    for asset, total in report['totals'].items():
        print(f"{asset}: {fmt(total)} recorded")
    print(f"Valid: {report['valid']}")
    print(f"Total debt: {fmt(engine.get_total_debt())}")


def main():
    print("=" * 70)
    print("       COLLATERAL ENGINE TUTORIAL")
    print("=" * 70)

    engine, weth, feed, stable = step_01_deploy()
    wait_for_enter()

    step_02_deposit(engine, weth)
    wait_for_enter()

    step_03_mint(engine, stable)
    wait_for_enter()

    step_04_rejected_mint(engine, stable)
    wait_for_enter()

    step_05_redeem(engine, weth)
    wait_for_enter()

    step_06_price_crash(engine, weth, feed, stable)
    wait_for_enter()

    step_07_liquidate(engine, weth)
    wait_for_enter()

    step_08_not_improved(engine, feed)
    wait_for_enter()

    step_09_stale_oracle(engine, feed)
    wait_for_enter()

    step_10_audit(engine)

    print("\n" + "=" * 70)
    print("       TUTORIAL COMPLETE!")
    print("=" * 70)
    print("""
    Next steps:
      - Copy config.example.yaml to config.yaml and try:
          cdp health --collateral WETH=10 --debt 100
      - Run tests: pytest tests/
    """)


if __name__ == "__main__":
    main()
