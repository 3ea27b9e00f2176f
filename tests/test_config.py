"""Tests for monitor configuration."""

import sys
from pathlib import Path
from unittest.mock import patch

import pytest

from lan_status.config import (
    DEV_INVENTORY_PATH,
    PROD_INVENTORY_PATH,
    MonitorConfig,
)
from lan_status.main import main


ENV_VARS = [
    "APP_ENV", "YAML_PATH", "HOST", "PORT", "BROADCAST_INTERVAL_MS",
    "BATCH_SIZE", "PROBE_TIMEOUT", "WATCH_INTERVAL", "CORS_ORIGINS", "LOG_LEVEL",
]


@pytest.fixture
def clean_env(monkeypatch):
    for var in ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    return monkeypatch


class TestFromEnv:
    """Tests for environment configuration."""

    def test_defaults(self, clean_env):
        config = MonitorConfig.from_env()

        assert config.port == 12000
        assert config.batch_size == 20
        assert config.broadcast_interval_ms == 15000
        assert config.broadcast_interval_seconds == 15.0
        assert config.probe_timeout_seconds == 2.0
        assert config.inventory_path == DEV_INVENTORY_PATH
        assert config.validate() == []

    def test_overrides(self, clean_env):
        clean_env.setenv("PORT", "8080")
        clean_env.setenv("BATCH_SIZE", "5")
        clean_env.setenv("BROADCAST_INTERVAL_MS", "30000")
        clean_env.setenv("PROBE_TIMEOUT", "0.5")
        clean_env.setenv("YAML_PATH", "/tmp/inventory.yml")
        clean_env.setenv("CORS_ORIGINS", "http://a.local, http://b.local")

        config = MonitorConfig.from_env()

        assert config.port == 8080
        assert config.batch_size == 5
        assert config.broadcast_interval_seconds == 30.0
        assert config.probe_timeout_seconds == 0.5
        assert config.inventory_path == Path("/tmp/inventory.yml")
        assert config.cors_origins == ["http://a.local", "http://b.local"]

    def test_production_inventory_path(self, clean_env):
        clean_env.setenv("APP_ENV", "production")

        config = MonitorConfig.from_env()

        assert config.inventory_path == PROD_INVENTORY_PATH

    def test_explicit_path_wins_in_production(self, clean_env):
        clean_env.setenv("APP_ENV", "production")
        clean_env.setenv("YAML_PATH", "/data/machines.yml")

        assert MonitorConfig.from_env().inventory_path == Path("/data/machines.yml")

    def test_non_numeric_values_are_reported(self, clean_env):
        clean_env.setenv("PORT", "twelve-thousand")
        clean_env.setenv("BATCH_SIZE", "lots")

        config = MonitorConfig.from_env()

        assert config.port == 12000
        assert config.batch_size == 20
        errors = config.validate()
        assert any("PORT" in e for e in errors)
        assert any("BATCH_SIZE" in e for e in errors)

    def test_non_numeric_value_exits_cleanly(self, clean_env):
        clean_env.setenv("PROBE_TIMEOUT", "soon")
        clean_env.setattr(sys, "argv", ["lan-status"])

        with patch("lan_status.main.uvicorn.run") as run:
            with pytest.raises(SystemExit) as exc_info:
                main()

        assert exc_info.value.code == 1
        run.assert_not_called()


class TestFromYaml:
    """Tests for file configuration."""

    def test_missing_file_uses_defaults(self, tmp_path):
        config = MonitorConfig.from_yaml(tmp_path / "nope.yaml")

        assert config.port == 12000

    def test_load_sections(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "environment: production\n"
            "server:\n  port: 9000\n"
            "probe:\n  batch_size: 10\n  broadcast_interval_ms: 5000\n  timeout_seconds: 1\n"
            "watch:\n  interval_seconds: 4\n"
            "log_level: DEBUG\n"
        )

        config = MonitorConfig.from_yaml(path)

        assert config.environment == "production"
        assert config.inventory_path == PROD_INVENTORY_PATH
        assert config.port == 9000
        assert config.batch_size == 10
        assert config.broadcast_interval_ms == 5000
        assert config.probe_timeout_seconds == 1.0
        assert config.watch_interval_seconds == 4.0
        assert config.log_level == "DEBUG"


class TestValidate:
    """Tests for configuration validation."""

    def test_rejects_bad_values(self):
        config = MonitorConfig()
        config.batch_size = 0
        config.broadcast_interval_ms = 0
        config.probe_timeout_seconds = 0
        config.port = 70000

        errors = config.validate()

        assert any("batch size" in e for e in errors)
        assert any("interval" in e for e in errors)
        assert any("timeout" in e for e in errors)
        assert any("port" in e for e in errors)
