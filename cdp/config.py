"""Configuration loader: reads config.yaml, interpolates env vars, builds an engine."""
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import load_dotenv

from .core import DEFAULT_FEED_DECIMALS, ORACLE_TIMEOUT, STANDARD_DECIMALS
from .engine import CollateralEngine
from .pricing_source import StaticPriceFeed
from .token import StableCoin, Token

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Frozen config dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AssetConfig:
    address: str
    name: str = ""
    decimals: int = STANDARD_DECIMALS
    price: Decimal = Decimal("0")
    feed_decimals: int = DEFAULT_FEED_DECIMALS


@dataclass(frozen=True)
class StableCoinConfig:
    address: str = "DSC"
    name: str = "Decentralized Stable Coin"


@dataclass(frozen=True)
class EngineConfig:
    address: str = "cdp_engine"
    oracle_timeout: timedelta = ORACLE_TIMEOUT
    start_time: Optional[datetime] = None
    stable_coin: StableCoinConfig = field(default_factory=StableCoinConfig)
    collateral: tuple[AssetConfig, ...] = ()
    log_level: str = "INFO"


@dataclass(frozen=True)
class Deployment:
    """An engine together with the collaborators built for it."""

    engine: CollateralEngine
    stable_coin: StableCoin
    tokens: dict[str, Token]
    feeds: dict[str, StaticPriceFeed]


# ---------------------------------------------------------------------------
# Env interpolation
# ---------------------------------------------------------------------------

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)}")


def _interpolate_env(value: Any) -> Any:
    """Recursively replace ${VAR} references with environment variable values."""
    if isinstance(value, str):
        return _ENV_VAR_RE.sub(lambda m: os.environ.get(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: _interpolate_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_interpolate_env(item) for item in value]
    return value


# ---------------------------------------------------------------------------
# YAML → dataclass builders
# ---------------------------------------------------------------------------


def _to_decimal(value: Any, what: str) -> Decimal:
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"{what} is not a number: {value!r}") from exc


def _build_collateral(raw: list[dict[str, Any]]) -> tuple[AssetConfig, ...]:
    assets: list[AssetConfig] = []
    for a in raw:
        address = str(a.get("address", ""))
        assets.append(
            AssetConfig(
                address=address,
                name=a.get("name", address),
                decimals=int(a.get("decimals", STANDARD_DECIMALS)),
                price=_to_decimal(a.get("price", 0), f"Price of '{address}'"),
                feed_decimals=int(a.get("feed_decimals", DEFAULT_FEED_DECIMALS)),
            )
        )
    return tuple(assets)


def _build_stable_coin(raw: dict[str, Any]) -> StableCoinConfig:
    return StableCoinConfig(
        address=raw.get("address", StableCoinConfig.address),
        name=raw.get("name", StableCoinConfig.name),
    )


def _build_start_time(raw: Any) -> Optional[datetime]:
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        return raw
    return datetime.fromisoformat(str(raw))


def _build_engine(raw: dict[str, Any]) -> dict[str, Any]:
    hours = _to_decimal(raw.get("oracle_timeout_hours", 3), "oracle_timeout_hours")
    return {
        "address": raw.get("address", EngineConfig.address),
        "oracle_timeout": timedelta(hours=float(hours)),
        "start_time": _build_start_time(raw.get("start_time")),
    }


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(config_path: str | Path | None = None) -> EngineConfig:
    """Load and validate engine configuration from YAML + .env.

    Args:
        config_path: Path to the YAML file. Defaults to ``$CDP_CONFIG`` or
            ``config.yaml`` in the working directory.
    """
    load_dotenv()

    if config_path is None:
        config_path = os.environ.get("CDP_CONFIG") or "config.yaml"
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    raw = _interpolate_env(raw)

    cfg = EngineConfig(
        **_build_engine(raw.get("engine", {})),
        stable_coin=_build_stable_coin(raw.get("stable_coin", {})),
        collateral=_build_collateral(raw.get("collateral", [])),
        log_level=raw.get("logging", {}).get("level", "INFO"),
    )

    _validate(cfg)
    logger.info("Configuration loaded from %s", config_path)
    return cfg


def _validate(cfg: EngineConfig) -> None:
    """Raise on invalid configuration."""
    if not cfg.address:
        raise ValueError("Engine address must not be empty")
    if cfg.oracle_timeout <= timedelta(0):
        raise ValueError("oracle_timeout_hours must be positive")
    if not cfg.collateral:
        raise ValueError("At least one collateral asset must be configured")

    seen: set[str] = set()
    for asset in cfg.collateral:
        if not asset.address:
            raise ValueError("Collateral asset has no address")
        if asset.address in seen:
            raise ValueError(f"Collateral asset '{asset.address}' configured twice")
        if asset.address == cfg.stable_coin.address:
            raise ValueError(f"'{asset.address}' cannot be both collateral and stable coin")
        seen.add(asset.address)
        if asset.decimals < 0 or asset.feed_decimals < 0:
            raise ValueError(f"Collateral asset '{asset.address}' has negative decimals")
        if asset.price <= 0:
            raise ValueError(f"Collateral asset '{asset.address}' needs a positive price")


def build_engine(cfg: EngineConfig, initial_time: Optional[datetime] = None) -> Deployment:
    """Create tokens, static price feeds, the stable coin and the engine.

    Ownership of the stable coin is handed to the engine.

    Args:
        cfg: Validated configuration
        initial_time: Engine and feed start time. Defaults to
            ``cfg.start_time``, then the current local time.
    """
    now = initial_time or cfg.start_time or datetime.now()

    tokens: dict[str, Token] = {}
    feeds: dict[str, StaticPriceFeed] = {}
    for asset in cfg.collateral:
        tokens[asset.address] = Token(asset.address, asset.name, asset.decimals)
        feeds[asset.address] = StaticPriceFeed(
            {asset.address: asset.price}, updated_at=now, decimals=asset.feed_decimals
        )

    stable = StableCoin(cfg.stable_coin.address, cfg.stable_coin.name)
    engine = CollateralEngine(
        list(tokens.values()),
        [feeds[address] for address in tokens],
        stable,
        address=cfg.address,
        initial_time=now,
        oracle_timeout=cfg.oracle_timeout,
    )
    stable.transfer_ownership("", engine.address)
    return Deployment(engine=engine, stable_coin=stable, tokens=tokens, feeds=feeds)
