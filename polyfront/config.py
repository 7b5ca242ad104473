"""
Configuration module for the Polymarket Frontrun Bot.
Loads settings from environment variables with validation.
"""

import json
import os
from dataclasses import dataclass, field
from typing import Optional
from dotenv import load_dotenv

from .clients.polygon_client import USDC_ADDRESS
from .utils.validation import (
    ValidationError,
    is_valid_rpc_url,
    normalize_address,
    normalize_private_key,
    validate_addresses,
)


@dataclass
class PolymarketConfig:
    """Polymarket API configuration."""
    api_key: Optional[str] = None
    api_secret: Optional[str] = None
    api_passphrase: Optional[str] = None

    # API endpoints
    clob_url: str = "https://clob.polymarket.com"
    data_api_url: str = "https://data-api.polymarket.com"


@dataclass
class WalletConfig:
    """Wallet and blockchain configuration."""
    private_key: str
    wallet_address: str
    rpc_url: str
    ws_rpc_url: str
    usdc_address: str = USDC_ADDRESS

    # Chain ID for Polygon Mainnet
    chain_id: int = 137


@dataclass
class FrontrunConfig:
    """Detection and sizing parameters."""
    target_addresses: list[str] = field(default_factory=list)
    fetch_interval_seconds: float = 1.0
    min_trade_size_usd: float = 100.0
    frontrun_size_multiplier: float = 0.5  # 0.0-1.0 of the watched trade
    gas_price_multiplier: float = 1.2      # >= 1.0
    retry_limit: int = 3
    aggregation_enabled: bool = False
    aggregation_window_seconds: float = 300.0


@dataclass
class RiskConfig:
    """Risk control settings."""
    simulation_mode: bool  # Detect and size, but don't send orders
    min_pol_balance: float
    min_usdc_balance: float


@dataclass
class LogConfig:
    """Logging configuration."""
    log_level: str
    json_logging: bool


@dataclass
class Config:
    """Main configuration container."""
    polymarket: PolymarketConfig
    wallet: WalletConfig
    frontrun: FrontrunConfig
    risk: RiskConfig
    logging: LogConfig


def get_env(key: str, default: Optional[str] = None, required: bool = True) -> str:
    """Get environment variable with validation."""
    value = os.getenv(key, default)
    if required and not value:
        raise ValidationError(
            f"Missing required environment variable: {key}\n"
            f"Please set {key} in your .env file.",
            key
        )
    return value or ""


def get_env_bool(key: str, default: bool = False) -> bool:
    """Get boolean environment variable."""
    value = os.getenv(key, str(default)).lower()
    return value in ("true", "1", "yes")


def get_env_int(key: str, default: int) -> int:
    """Get integer environment variable."""
    value = os.getenv(key, str(default))
    try:
        return int(value)
    except ValueError:
        raise ValidationError(f"Invalid {key}. Must be an integer.\nGot: {value}", key)


def get_env_float(key: str, default: float) -> float:
    """Get float environment variable."""
    value = os.getenv(key, str(default))
    try:
        return float(value)
    except ValueError:
        raise ValidationError(f"Invalid {key}. Must be a number.\nGot: {value}", key)


def parse_list(value: Optional[str]) -> list[str]:
    """Parse a JSON array or a comma separated list."""
    if not value:
        return []
    try:
        parsed = json.loads(value)
        if isinstance(parsed, list):
            return [str(item) for item in parsed]
    except json.JSONDecodeError:
        pass
    return [item.strip() for item in value.split(",") if item.strip()]


def derive_ws_url(rpc_url: str) -> str:
    """Swap an HTTP(S) RPC URL to its websocket counterpart."""
    if rpc_url.startswith("https://"):
        return "wss://" + rpc_url[len("https://"):]
    if rpc_url.startswith("http://"):
        return "ws://" + rpc_url[len("http://"):]
    return rpc_url


def load_frontrun_config() -> FrontrunConfig:
    """Load and validate the detection/sizing parameters."""
    target_addresses = validate_addresses(parse_list(os.getenv("TARGET_ADDRESSES")))

    fetch_interval = get_env_float("FETCH_INTERVAL", 1.0)
    if fetch_interval < 0.1:
        raise ValidationError(
            f"Invalid FETCH_INTERVAL. Must be a positive number (seconds) >= 0.1.\nGot: {fetch_interval}",
            "FETCH_INTERVAL"
        )

    min_trade_size = get_env_float("MIN_TRADE_SIZE_USD", 100.0)
    if min_trade_size < 0:
        raise ValidationError(
            f"Invalid MIN_TRADE_SIZE_USD. Must be >= 0.\nGot: {min_trade_size}",
            "MIN_TRADE_SIZE_USD"
        )

    frontrun_size_multiplier = get_env_float("FRONTRUN_SIZE_MULTIPLIER", 0.5)
    if not 0.0 <= frontrun_size_multiplier <= 1.0:
        raise ValidationError(
            f"Invalid FRONTRUN_SIZE_MULTIPLIER. Must be between 0.0 and 1.0.\nGot: {frontrun_size_multiplier}",
            "FRONTRUN_SIZE_MULTIPLIER"
        )

    gas_price_multiplier = get_env_float("GAS_PRICE_MULTIPLIER", 1.2)
    if gas_price_multiplier < 1.0:
        raise ValidationError(
            f"Invalid GAS_PRICE_MULTIPLIER. Must be >= 1.0.\nGot: {gas_price_multiplier}",
            "GAS_PRICE_MULTIPLIER"
        )

    retry_limit = get_env_int("RETRY_LIMIT", 3)
    if retry_limit < 1:
        raise ValidationError(
            f"Invalid RETRY_LIMIT. Must be >= 1.\nGot: {retry_limit}",
            "RETRY_LIMIT"
        )

    window_seconds = get_env_float("TRADE_AGGREGATION_WINDOW_SECONDS", 300.0)
    if window_seconds <= 0:
        raise ValidationError(
            f"Invalid TRADE_AGGREGATION_WINDOW_SECONDS. Must be > 0.\nGot: {window_seconds}",
            "TRADE_AGGREGATION_WINDOW_SECONDS"
        )

    return FrontrunConfig(
        target_addresses=target_addresses,
        fetch_interval_seconds=fetch_interval,
        min_trade_size_usd=min_trade_size,
        frontrun_size_multiplier=frontrun_size_multiplier,
        gas_price_multiplier=gas_price_multiplier,
        retry_limit=retry_limit,
        aggregation_enabled=get_env_bool("TRADE_AGGREGATION_ENABLED", False),
        aggregation_window_seconds=window_seconds,
    )


def load_config() -> Config:
    """Load and validate configuration from environment."""

    # Load .env file if present
    load_dotenv()

    rpc_url = get_env("RPC_URL").strip()
    if not is_valid_rpc_url(rpc_url):
        raise ValidationError(
            f"Invalid RPC_URL format. Expected HTTP or HTTPS URL.\nGot: {rpc_url}",
            "RPC_URL"
        )

    ws_rpc_url = (os.getenv("WS_RPC_URL") or derive_ws_url(rpc_url)).strip()
    if not is_valid_rpc_url(ws_rpc_url, schemes=("ws", "wss")):
        raise ValidationError(
            f"Invalid WS_RPC_URL format. Expected WS or WSS URL.\nGot: {ws_rpc_url}",
            "WS_RPC_URL"
        )

    return Config(
        polymarket=PolymarketConfig(
            api_key=get_env("POLYMARKET_API_KEY", required=False) or None,
            api_secret=get_env("POLYMARKET_API_SECRET", required=False) or None,
            api_passphrase=get_env("POLYMARKET_API_PASSPHRASE", required=False) or None,
        ),
        wallet=WalletConfig(
            private_key=normalize_private_key(get_env("PRIVATE_KEY")),
            wallet_address=normalize_address(get_env("PUBLIC_KEY"), "PUBLIC_KEY"),
            rpc_url=rpc_url,
            ws_rpc_url=ws_rpc_url,
            usdc_address=normalize_address(
                get_env("USDC_CONTRACT_ADDRESS", USDC_ADDRESS, required=False),
                "USDC_CONTRACT_ADDRESS"
            ),
        ),
        frontrun=load_frontrun_config(),
        risk=RiskConfig(
            simulation_mode=get_env_bool("SIMULATION_MODE", True),  # Default to simulation
            min_pol_balance=get_env_float("MIN_POL_BALANCE", 0.1),
            min_usdc_balance=get_env_float("MIN_USDC_BALANCE", 100.0),
        ),
        logging=LogConfig(
            log_level=get_env("LOG_LEVEL", "INFO", required=False),
            json_logging=get_env_bool("JSON_LOGGING", True),
        ),
    )
