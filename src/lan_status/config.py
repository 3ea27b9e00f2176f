"""
LAN status monitor configuration.

Every setting has a default and can be overridden from the environment
(or from a YAML deployment file via --config).
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

logger = logging.getLogger(__name__)

DEV_INVENTORY_PATH = Path("machines.yml")
PROD_INVENTORY_PATH = Path("/usr/src/app/machines.yml")


def default_inventory_path(environment: str) -> Path:
    """Inventory location when YAML_PATH is not set."""
    if environment == "production":
        return PROD_INVENTORY_PATH
    return DEV_INVENTORY_PATH


@dataclass
class MonitorConfig:
    """Configuration for the status monitor service."""

    # Deployment
    environment: str = "development"
    inventory_path: Path = field(default_factory=lambda: DEV_INVENTORY_PATH)

    # Network settings
    host: str = "0.0.0.0"
    port: int = 12000
    cors_origins: list[str] = field(default_factory=lambda: ["*"])

    # Probing / broadcasting
    broadcast_interval_ms: int = 15000
    batch_size: int = 20
    probe_timeout_seconds: float = 2.0

    # External change detection (polling)
    watch_interval_seconds: float = 2.0

    # Logging
    log_level: str = "INFO"

    # Unparseable values seen while loading; reported by validate()
    load_errors: list[str] = field(default_factory=list, repr=False)

    @property
    def broadcast_interval_seconds(self) -> float:
        return self.broadcast_interval_ms / 1000

    @classmethod
    def from_env(cls) -> "MonitorConfig":
        """Load configuration from environment variables."""
        config = cls()

        config.environment = os.getenv("APP_ENV", "development")

        if yaml_path := os.getenv("YAML_PATH"):
            config.inventory_path = Path(yaml_path)
        else:
            config.inventory_path = default_inventory_path(config.environment)

        if host := os.getenv("HOST"):
            config.host = host

        config._number_from_env("PORT", "port", int)
        config._number_from_env("BROADCAST_INTERVAL_MS", "broadcast_interval_ms", int)
        config._number_from_env("BATCH_SIZE", "batch_size", int)
        config._number_from_env("PROBE_TIMEOUT", "probe_timeout_seconds", float)
        config._number_from_env("WATCH_INTERVAL", "watch_interval_seconds", float)

        if origins := os.getenv("CORS_ORIGINS"):
            config.cors_origins = [o.strip() for o in origins.split(",") if o.strip()]

        config.log_level = os.getenv("LOG_LEVEL", "INFO")

        return config

    def _number_from_env(self, var: str, attr: str, convert) -> None:
        if not (raw := os.getenv(var)):
            return
        try:
            setattr(self, attr, convert(raw))
        except ValueError:
            self.load_errors.append(f"Invalid {var}: {raw!r} is not a number")

    @classmethod
    def from_yaml(cls, path: Path) -> "MonitorConfig":
        """Load configuration from YAML file."""
        if not path.exists():
            logger.warning(f"Config file not found: {path}, using defaults")
            return cls()

        with open(path) as f:
            data = yaml.safe_load(f) or {}

        config = cls()
        config.environment = data.get("environment", "development")

        inventory: Optional[str] = data.get("inventory_path")
        config.inventory_path = (
            Path(inventory) if inventory
            else default_inventory_path(config.environment)
        )

        if "server" in data:
            s = data["server"]
            config.host = s.get("host", config.host)
            config.port = int(s.get("port", config.port))
            config.cors_origins = s.get("cors_origins", config.cors_origins)

        if "probe" in data:
            p = data["probe"]
            config.broadcast_interval_ms = int(
                p.get("broadcast_interval_ms", config.broadcast_interval_ms)
            )
            config.batch_size = int(p.get("batch_size", config.batch_size))
            config.probe_timeout_seconds = float(
                p.get("timeout_seconds", config.probe_timeout_seconds)
            )

        if "watch" in data:
            config.watch_interval_seconds = float(
                data["watch"].get("interval_seconds", config.watch_interval_seconds)
            )

        config.log_level = data.get("log_level", "INFO")

        return config

    def validate(self) -> list[str]:
        """Validate configuration, returning list of errors."""
        errors = list(self.load_errors)

        if self.batch_size < 1:
            errors.append(f"Invalid batch size: {self.batch_size}")

        if self.broadcast_interval_ms < 1:
            errors.append(f"Invalid broadcast interval: {self.broadcast_interval_ms}ms")

        if self.probe_timeout_seconds <= 0:
            errors.append(f"Invalid probe timeout: {self.probe_timeout_seconds}s")

        if self.watch_interval_seconds <= 0:
            errors.append(f"Invalid watch interval: {self.watch_interval_seconds}s")

        if not 1 <= self.port <= 65535:
            errors.append(f"Invalid port: {self.port}")

        return errors


# Example deployment config (--config):
"""
# /etc/lan-status/config.yaml

environment: production
inventory_path: /usr/src/app/machines.yml

server:
  host: 0.0.0.0
  port: 12000

probe:
  broadcast_interval_ms: 15000
  batch_size: 20
  timeout_seconds: 2

watch:
  interval_seconds: 2

log_level: INFO
"""
