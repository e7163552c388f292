"""Command-line interface for read-only risk queries."""
from __future__ import annotations

import argparse
import sys
from typing import Optional, Sequence

from .config import build_engine, load_config
from .core import MAX_HEALTH_FACTOR, EngineError, from_fixed, to_fixed
from .health import calculate_health_factor, is_solvent
from .logging_setup import configure_logging


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse CLI parser."""
    parser = argparse.ArgumentParser(
        prog="cdp",
        description="Collateralized-debt engine risk queries",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to config.yaml (default: $CDP_CONFIG or ./config.yaml)",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: WARNING)",
    )

    sub = parser.add_subparsers(dest="command")

    sub.add_parser("constants", help="Print the engine's tunable constants")

    health = sub.add_parser("health", help="Simulate the health factor of a position")
    health.add_argument("--debt", required=True, help="Stable coin minted, e.g. 100")
    health.add_argument(
        "--collateral",
        action="append",
        default=[],
        metavar="ASSET=AMOUNT",
        help="Deposited collateral, repeatable, e.g. WETH=10",
    )

    quote = sub.add_parser("quote", help="Quote the collateral paid for a liquidation")
    quote.add_argument("--asset", required=True, help="Collateral asset to seize")
    quote.add_argument("--debt", required=True, help="Debt to cover, e.g. 500")

    return parser


def _parse_collateral(items: Sequence[str]) -> list[tuple[str, str]]:
    pairs = []
    for item in items:
        asset, sep, amount = item.partition("=")
        if not sep or not asset or not amount:
            raise ValueError(f"Expected ASSET=AMOUNT, got '{item}'")
        pairs.append((asset, amount))
    return pairs


def _format_health(health_factor: int) -> str:
    if health_factor == MAX_HEALTH_FACTOR:
        return "max (no debt)"
    return f"{from_fixed(health_factor):.4f}"


def _run(args: argparse.Namespace) -> int:
    """Execute the selected command. Returns the exit code."""
    configure_logging(args.log_level)
    deployment = build_engine(load_config(args.config))
    engine = deployment.engine

    if args.command == "constants":
        c = engine.constants()
        print(f"precision:                 {c.precision}")
        print(f"additional_feed_precision: {c.additional_feed_precision}")
        print(f"liquidation_threshold:     {c.liquidation_threshold}")
        print(f"liquidation_precision:     {c.liquidation_precision}")
        print(f"liquidation_bonus:         {c.liquidation_bonus}")
        print(f"min_health_factor:         {c.min_health_factor}")
        print(f"oracle_timeout:            {c.oracle_timeout}")
        print(f"collateral:                {', '.join(engine.get_collateral_assets())}")
        return 0

    if args.command == "health":
        debt = to_fixed(args.debt)
        value = 0
        for asset, amount in _parse_collateral(args.collateral):
            token = engine.get_collateral_token(asset)
            value += engine.get_usd_value(asset, to_fixed(amount, token.decimals))
        health_factor = calculate_health_factor(debt, value)
        print(f"collateral value: ${from_fixed(value):,.2f}")
        print(f"debt:             {from_fixed(debt):,.2f}")
        print(f"health factor:    {_format_health(health_factor)}")
        print(f"status:           {'solvent' if is_solvent(health_factor) else 'liquidatable'}")
        return 0

    if args.command == "quote":
        token = engine.get_collateral_token(args.asset)
        quote = engine.quote_liquidation(args.asset, to_fixed(args.debt))
        print(f"base collateral:  {from_fixed(quote.base_collateral, token.decimals)} {args.asset}")
        print(f"bonus collateral: {from_fixed(quote.bonus_collateral, token.decimals)} {args.asset}")
        print(f"total seized:     {from_fixed(quote.total_collateral, token.decimals)} {args.asset}")
        return 0

    build_parser().print_help()
    return 1


def main(argv: Optional[Sequence[str]] = None) -> None:
    """Entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        code = _run(args)
    except (EngineError, ValueError, ArithmeticError, FileNotFoundError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        sys.exit(2)
    sys.exit(code)
