"""Configuration loader: reads config.yaml and .env, validates the result and wires a protocol."""
from __future__ import annotations

import logging
import os
import re
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

import yaml
from dotenv import load_dotenv

from .collateral_token import ERC20Mock
from .constants import (
    LIQUIDATION_BONUS,
    LIQUIDATION_PRECISION,
    LIQUIDATION_THRESHOLD,
    MIN_HEALTH_FACTOR,
    STALE_PRICE_TIMEOUT,
)
from .engine import DSCEngine
from .price_feed import PriceFeed
from .stable_coin import DecentralizedStableCoin

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Frozen config dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CollateralConfig:
    symbol: str = ""
    name: str = ""
    feed_decimals: int = 8
    initial_price: float = 0.0


@dataclass(frozen=True)
class RiskConfig:
    liquidation_threshold: int = LIQUIDATION_THRESHOLD
    liquidation_bonus: int = LIQUIDATION_BONUS
    min_health_factor: float = MIN_HEALTH_FACTOR / 10**18
    stale_price_timeout: float | None = STALE_PRICE_TIMEOUT


@dataclass(frozen=True)
class SimulationConfig:
    days: int = 30
    price_volatility: float = 0.03
    seed: int | None = None
    include_price_moves: bool = False


@dataclass(frozen=True)
class AppConfig:
    collateral: tuple[CollateralConfig, ...] = ()
    risk: RiskConfig = field(default_factory=RiskConfig)
    simulation: SimulationConfig = field(default_factory=SimulationConfig)
    log_level: str = "INFO"


DEFAULT_COLLATERAL = (
    CollateralConfig(symbol="WETH", name="Wrapped Ether", feed_decimals=8, initial_price=2000.0),
    CollateralConfig(symbol="WBTC", name="Wrapped Bitcoin", feed_decimals=8, initial_price=1000.0),
)


def default_config() -> AppConfig:
    """WETH at $2000 and WBTC at $1000 with the protocol's default risk parameters."""
    return AppConfig(collateral=DEFAULT_COLLATERAL)


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


def _build_collateral(raw: list[dict[str, Any]]) -> tuple[CollateralConfig, ...]:
    collateral: list[CollateralConfig] = []
    for c in raw:
        collateral.append(
            CollateralConfig(
                symbol=str(c.get("symbol", "")),
                name=str(c.get("name", c.get("symbol", ""))),
                feed_decimals=int(c.get("feed_decimals", 8)),
                initial_price=float(c.get("initial_price", 0.0)),
            )
        )
    return tuple(collateral)


def _build_risk(raw: dict[str, Any]) -> RiskConfig:
    timeout = raw.get("stale_price_timeout", STALE_PRICE_TIMEOUT)
    return RiskConfig(
        liquidation_threshold=int(raw.get("liquidation_threshold", LIQUIDATION_THRESHOLD)),
        liquidation_bonus=int(raw.get("liquidation_bonus", LIQUIDATION_BONUS)),
        min_health_factor=float(raw.get("min_health_factor", 1.0)),
        stale_price_timeout=None if timeout in (None, "", "none") else float(timeout),
    )


def _build_simulation(raw: dict[str, Any]) -> SimulationConfig:
    seed = raw.get("seed")
    return SimulationConfig(
        days=int(raw.get("days", 30)),
        price_volatility=float(raw.get("price_volatility", 0.03)),
        seed=None if seed in (None, "") else int(seed),
        include_price_moves=bool(raw.get("include_price_moves", False)),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load and validate protocol configuration from YAML + .env.

    Args:
        config_path: Path to config.yaml. Defaults to ``config.yaml`` in the
            project root (two levels up from this file).
    """
    load_dotenv()

    if config_path is None:
        config_path = Path(__file__).resolve().parent.parent / "config.yaml"
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    raw = _interpolate_env(raw)

    cfg = AppConfig(
        collateral=_build_collateral(raw.get("collateral", [])),
        risk=_build_risk(raw.get("risk", {})),
        simulation=_build_simulation(raw.get("simulation", {})),
        log_level=str(raw.get("log_level", "INFO")),
    )

    _validate(cfg)
    logger.info("Configuration loaded from %s", config_path)
    return cfg


def _validate(cfg: AppConfig) -> None:
    """Raise on invalid configuration."""
    if not cfg.collateral:
        raise ValueError("At least one collateral token must be configured")

    seen: set[str] = set()
    for c in cfg.collateral:
        if not c.symbol:
            raise ValueError("Collateral entry has no symbol")
        if c.symbol in seen:
            raise ValueError(f"Collateral '{c.symbol}' is configured more than once")
        seen.add(c.symbol)
        if c.initial_price <= 0:
            raise ValueError(f"Collateral '{c.symbol}' needs a positive initial price")
        if not 0 <= c.feed_decimals <= 18:
            raise ValueError(f"Collateral '{c.symbol}' feed decimals must be between 0 and 18")

    risk = cfg.risk
    if not 0 < risk.liquidation_threshold < LIQUIDATION_PRECISION:
        raise ValueError("liquidation_threshold must be between 0 and 100 (exclusive)")
    if not 0 <= risk.liquidation_bonus < LIQUIDATION_PRECISION:
        raise ValueError("liquidation_bonus must be between 0 and 100")
    if risk.min_health_factor <= 0:
        raise ValueError("min_health_factor must be positive")
    if risk.stale_price_timeout is not None and risk.stale_price_timeout <= 0:
        raise ValueError("stale_price_timeout must be positive")


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


@dataclass
class Deployment:
    """A wired protocol: the engine plus the collaborators it talks to."""

    engine: DSCEngine
    dsc: DecentralizedStableCoin
    tokens: dict[str, ERC20Mock]
    feeds: dict[str, PriceFeed]

    def token_address(self, symbol: str) -> str:
        return self.tokens[symbol].address

    def set_price(self, symbol: str, price: float) -> None:
        """Publish a new USD price for ``symbol`` (in whole dollars)."""
        feed = self.feeds[symbol]
        feed.update_answer(to_feed_answer(price, feed.decimals))


def to_feed_answer(price: float, decimals: int) -> int:
    """Scale a USD price to a feed answer with ``decimals`` decimals."""
    return int(round(price * 10**decimals))


def build_protocol(
    cfg: AppConfig | None = None,
    clock: Callable[[], float] = time.time,
    deployer: str = "deployer",
) -> Deployment:
    """Deploy collateral tokens, price feeds, the stable coin and the engine.

    Ownership of the stable coin is handed to the engine so it becomes the
    only account able to mint.
    """
    cfg = cfg or default_config()
    _validate(cfg)

    tokens: dict[str, ERC20Mock] = {}
    feeds: dict[str, PriceFeed] = {}
    for c in cfg.collateral:
        tokens[c.symbol] = ERC20Mock(c.name or c.symbol, c.symbol, address=c.symbol)
        feeds[c.symbol] = PriceFeed(
            c.feed_decimals,
            to_feed_answer(c.initial_price, c.feed_decimals),
            address=f"{c.symbol}/USD",
            clock=clock,
        )

    dsc = DecentralizedStableCoin(owner=deployer)
    engine = DSCEngine(
        list(tokens.values()),
        list(feeds.values()),
        dsc,
        liquidation_threshold=cfg.risk.liquidation_threshold,
        liquidation_bonus=cfg.risk.liquidation_bonus,
        min_health_factor=int(round(cfg.risk.min_health_factor * 10**18)),
        stale_price_timeout=cfg.risk.stale_price_timeout,
        clock=clock,
    )
    dsc.transfer_ownership(deployer, engine.address)

    logger.info(
        "Deployed DSC engine with collateral %s",
        ", ".join(f"{c.symbol}@${c.initial_price:,.2f}" for c in cfg.collateral),
    )
    return Deployment(engine=engine, dsc=dsc, tokens=tokens, feeds=feeds)
