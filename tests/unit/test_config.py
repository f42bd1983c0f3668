"""Unit tests for event bus configuration."""

import pytest
from pydantic import ValidationError

from collective_events.config import EventBusSettings, load_event_bus_settings


class TestEventBusSettings:
    """Test EventBusSettings."""

    def test_defaults(self, monkeypatch):
        """Test default configuration values."""
        for name in ("REDIS_HOST", "REDIS_PORT", "REDIS_PASSWORD", "REDIS_DB"):
            monkeypatch.delenv(name, raising=False)

        settings = EventBusSettings(_env_file=None)

        assert settings.host == "localhost"
        assert settings.port == 6379
        assert settings.password is None
        assert settings.block_ms == 1000
        assert settings.read_count == 10
        assert settings.wait_timeout_ms == 30000
        assert settings.url == "redis://localhost:6379/0"

    def test_from_environment(self, monkeypatch):
        monkeypatch.setenv("REDIS_HOST", "redis.internal")
        monkeypatch.setenv("REDIS_PORT", "6380")
        monkeypatch.setenv("REDIS_DB", "3")

        settings = EventBusSettings(_env_file=None)

        assert settings.url == "redis://redis.internal:6380/3"

    def test_password_is_quoted_in_url(self):
        settings = EventBusSettings(host="h", password="p@ss/word", _env_file=None)
        assert settings.url == "redis://:p%40ss%2Fword@h:6379/0"

    def test_pool_sizes_must_be_positive(self):
        with pytest.raises(ValidationError):
            EventBusSettings(max_connections=0, _env_file=None)
        with pytest.raises(ValidationError):
            EventBusSettings(max_blocking_connections=0, _env_file=None)

    def test_single_command_connection_is_allowed(self):
        settings = EventBusSettings(max_connections=1, _env_file=None)
        assert settings.max_connections == 1
        assert settings.max_blocking_connections == 50
        assert settings.pool_timeout == 20.0

    def test_block_ms_must_be_positive(self):
        with pytest.raises(ValidationError):
            EventBusSettings(block_ms=0, _env_file=None)


class TestLoadEventBusSettings:
    """Test loading settings from YAML."""

    def test_load_section(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text(
            "event_bus:\n"
            "  host: broker\n"
            "  block_ms: 250\n"
            "  unknown_key: ignored\n"
            "other_section:\n"
            "  host: elsewhere\n"
        )

        settings = load_event_bus_settings(str(config_file))

        assert settings.host == "broker"
        assert settings.block_ms == 250

    def test_missing_file(self, tmp_path, monkeypatch):
        monkeypatch.delenv("REDIS_BLOCK_MS", raising=False)

        settings = load_event_bus_settings(str(tmp_path / "missing.yaml"))

        assert settings.block_ms == 1000

    def test_missing_section(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("other_section:\n  host: elsewhere\n")

        settings = load_event_bus_settings(str(config_file))

        assert settings.host != "elsewhere"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
