"""
Unit tests for configuration.
"""

import pytest

from currencyserver.config import ConfigError, ServerConfig, parse_endpoint


class TestParseEndpoint:
    """Tests for parse_endpoint()."""

    def test_empty_host_means_all_interfaces(self):
        assert parse_endpoint(":4040") == ("0.0.0.0", 4040)

    def test_host_and_port(self):
        assert parse_endpoint("localhost:5050") == ("localhost", 5050)

    @pytest.mark.parametrize("endpoint", ["localhost", "localhost:http", ""])
    def test_invalid(self, endpoint):
        with pytest.raises(ConfigError):
            parse_endpoint(endpoint)


class TestServerConfig:
    """Tests for ServerConfig."""

    def test_defaults(self):
        config = ServerConfig()

        assert config.endpoint == "0.0.0.0:4040"
        assert config.protocol == "text"
        assert config.idle_timeout == 45.0
        assert config.accept_backoff == 0.010
        assert config.accept_max_retries == 5
        config.validate()

    @pytest.mark.parametrize("overrides", [
        {"port": 70000},
        {"port": -1},
        {"protocol": "xml"},
        {"idle_timeout": 0},
        {"max_frame_size": 0},
        {"min_workers": 8, "max_workers": 4},
        {"log_level": "LOUD"},
        {"log_format": "yaml"},
    ])
    def test_validate_rejects(self, overrides):
        with pytest.raises(ConfigError):
            ServerConfig(**overrides).validate()

    def test_port_zero_allowed(self):
        ServerConfig(port=0).validate()

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("CURRENCY_ENDPOINT", "127.0.0.1:5050")
        monkeypatch.setenv("CURRENCY_PROTOCOL", "JSON")
        monkeypatch.setenv("CURRENCY_IDLE_TIMEOUT", "2.5")
        monkeypatch.setenv("CURRENCY_LOG_LEVEL", "debug")

        config = ServerConfig.from_env()

        assert (config.host, config.port) == ("127.0.0.1", 5050)
        assert config.protocol == "json"
        assert config.idle_timeout == 2.5
        assert config.log_level == "DEBUG"
        assert config.data_file is None
        config.validate()

    def test_from_env_bad_timeout(self, monkeypatch):
        monkeypatch.setenv("CURRENCY_IDLE_TIMEOUT", "soon")

        with pytest.raises(ConfigError):
            ServerConfig.from_env()
