"""
Tests for environment configuration.
"""

import pytest

from polyfront import config as config_module
from polyfront.config import derive_ws_url, load_config, load_frontrun_config, parse_list
from polyfront.utils.validation import ValidationError, normalize_private_key

from builders import OTHER, WATCHED


ENV_KEYS = (
    "TARGET_ADDRESSES", "FETCH_INTERVAL", "MIN_TRADE_SIZE_USD",
    "FRONTRUN_SIZE_MULTIPLIER", "GAS_PRICE_MULTIPLIER", "RETRY_LIMIT",
    "TRADE_AGGREGATION_ENABLED", "TRADE_AGGREGATION_WINDOW_SECONDS",
    "RPC_URL", "WS_RPC_URL", "PRIVATE_KEY", "PUBLIC_KEY", "SIMULATION_MODE",
    "USDC_CONTRACT_ADDRESS", "POLYMARKET_API_KEY", "POLYMARKET_API_SECRET",
    "POLYMARKET_API_PASSPHRASE",
)


@pytest.fixture
def env(monkeypatch):
    monkeypatch.setattr(config_module, "load_dotenv", lambda: None)
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("TARGET_ADDRESSES", WATCHED)
    monkeypatch.setenv("RPC_URL", "https://polygon-rpc.example.com")
    monkeypatch.setenv("PRIVATE_KEY", "ab" * 32)
    monkeypatch.setenv("PUBLIC_KEY", WATCHED.upper().replace("0X", "0x"))
    return monkeypatch


class TestFrontrunConfig:
    """Tests for detection and sizing parameters."""

    def test_defaults(self, env):
        frontrun = load_frontrun_config()

        assert frontrun.target_addresses == [WATCHED]
        assert frontrun.fetch_interval_seconds == 1.0
        assert frontrun.min_trade_size_usd == 100.0
        assert frontrun.frontrun_size_multiplier == 0.5
        assert frontrun.gas_price_multiplier == 1.2
        assert frontrun.retry_limit == 3
        assert frontrun.aggregation_enabled is False
        assert frontrun.aggregation_window_seconds == 300.0

    def test_targets_json_and_comma(self, env):
        env.setenv("TARGET_ADDRESSES", f'["{WATCHED}", "{OTHER}", "{WATCHED}"]')
        assert load_frontrun_config().target_addresses == [WATCHED, OTHER]

        env.setenv("TARGET_ADDRESSES", f"{WATCHED}, {OTHER}")
        assert load_frontrun_config().target_addresses == [WATCHED, OTHER]

    @pytest.mark.parametrize("key,value", [
        ("TARGET_ADDRESSES", ""),
        ("TARGET_ADDRESSES", "0x1234"),
        ("FETCH_INTERVAL", "0.05"),
        ("FETCH_INTERVAL", "soon"),
        ("MIN_TRADE_SIZE_USD", "-1"),
        ("FRONTRUN_SIZE_MULTIPLIER", "1.5"),
        ("GAS_PRICE_MULTIPLIER", "0.9"),
        ("RETRY_LIMIT", "0"),
        ("RETRY_LIMIT", "2.5"),
        ("TRADE_AGGREGATION_WINDOW_SECONDS", "0"),
    ])
    def test_rejects_invalid_values(self, env, key, value):
        env.setenv(key, value)

        with pytest.raises(ValidationError) as exc_info:
            load_frontrun_config()

        assert exc_info.value.field == key

    def test_aggregation_toggle(self, env):
        env.setenv("TRADE_AGGREGATION_ENABLED", "true")
        env.setenv("TRADE_AGGREGATION_WINDOW_SECONDS", "60")

        frontrun = load_frontrun_config()

        assert frontrun.aggregation_enabled is True
        assert frontrun.aggregation_window_seconds == 60.0


class TestLoadConfig:
    def test_loads_wallet(self, env):
        config = load_config()

        assert config.wallet.private_key == "0x" + "ab" * 32
        assert config.wallet.wallet_address == WATCHED
        assert config.wallet.ws_rpc_url == "wss://polygon-rpc.example.com"
        assert config.risk.simulation_mode is True
        assert config.polymarket.api_key is None

    def test_missing_private_key(self, env):
        env.delenv("PRIVATE_KEY")

        with pytest.raises(ValidationError) as exc_info:
            load_config()

        assert exc_info.value.field == "PRIVATE_KEY"

    def test_rejects_non_websocket_url(self, env):
        env.setenv("WS_RPC_URL", "https://polygon-rpc.example.com")

        with pytest.raises(ValidationError) as exc_info:
            load_config()

        assert exc_info.value.field == "WS_RPC_URL"


class TestHelpers:
    def test_parse_list(self):
        assert parse_list(None) == []
        assert parse_list('["a", "b"]') == ["a", "b"]
        assert parse_list("a, b,,") == ["a", "b"]

    def test_derive_ws_url(self):
        assert derive_ws_url("https://rpc.example") == "wss://rpc.example"
        assert derive_ws_url("http://localhost:8545") == "ws://localhost:8545"

    def test_rejects_sui_key(self):
        with pytest.raises(ValidationError):
            normalize_private_key("suiprivkey1abc")
