"""Decentralized Stable Coin: an overcollateralized stable coin engine."""

from .collateral_token import ERC20Mock
from .config import AppConfig, Deployment, build_protocol, default_config, load_config
from .engine import DSCEngine
from .liquidation import LiquidationResult
from .price_feed import PriceFeed
from .stable_coin import DecentralizedStableCoin

__all__ = [
    "AppConfig",
    "DSCEngine",
    "DecentralizedStableCoin",
    "Deployment",
    "ERC20Mock",
    "LiquidationResult",
    "PriceFeed",
    "build_protocol",
    "default_config",
    "load_config",
]
