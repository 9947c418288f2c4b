"""
Unit tests for server and client configuration.
"""

import pytest

from echoserver.config import ClientConfig, ServerConfig, DEFAULT_PORT, MULTIPLEXED, THREADED


class TestServerConfig:
    """Tests for ServerConfig."""

    def test_defaults(self):
        config = ServerConfig()

        assert config.port == DEFAULT_PORT == 8080
        assert config.backlog == 10
        assert config.mode == MULTIPLEXED
        assert config.read_timeout is None
        assert not config.threaded
        config.validate()

    def test_threaded_property(self):
        assert ServerConfig(mode=THREADED).threaded

    @pytest.mark.parametrize("kwargs", [
        {"port": -1},
        {"port": 65536},
        {"backlog": 0},
        {"mode": "forking"},
        {"poll_interval": 0},
        {"read_timeout": 0},
        {"read_timeout": -2.5},
    ])
    def test_invalid_values(self, kwargs):
        with pytest.raises(ValueError):
            ServerConfig(**kwargs).validate()

    def test_port_zero_allowed(self):
        ServerConfig(port=0).validate()

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("ECHO_HOST", "0.0.0.0")
        monkeypatch.setenv("ECHO_PORT", "9000")
        monkeypatch.setenv("ECHO_MODE", THREADED)
        monkeypatch.setenv("ECHO_READ_TIMEOUT", "2.5")
        monkeypatch.setenv("ECHO_LOG_LEVEL", "DEBUG")

        config = ServerConfig.from_env()

        assert config.host == "0.0.0.0"
        assert config.port == 9000
        assert config.threaded
        assert config.read_timeout == 2.5
        assert config.log_level == "DEBUG"

    def test_from_env_defaults(self, monkeypatch):
        for name in ("ECHO_HOST", "ECHO_PORT", "ECHO_MODE", "ECHO_READ_TIMEOUT", "ECHO_LOG_LEVEL"):
            monkeypatch.delenv(name, raising=False)

        assert ServerConfig.from_env() == ServerConfig()

    def test_blank_timeout_means_none(self, monkeypatch):
        monkeypatch.setenv("ECHO_READ_TIMEOUT", "  ")
        assert ServerConfig.from_env().read_timeout is None


class TestClientConfig:

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("ECHO_HOST", "10.0.0.5")
        monkeypatch.setenv("ECHO_PORT", "7000")
        monkeypatch.setenv("ECHO_CLIENT_TIMEOUT", "3")

        config = ClientConfig.from_env()

        assert config == ClientConfig(host="10.0.0.5", port=7000, timeout=3.0)
