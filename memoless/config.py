"""Configuration loader — reads config.yaml, interpolates env vars, validates."""
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

THORNODE_URLS: dict[str, str] = {
    "mainnet": "https://thornode.ninerealms.com",
    "stagenet": "https://stagenet-thornode.ninerealms.com",
}

# ---------------------------------------------------------------------------
# Frozen config dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class NetworkConfig:
    name: str = "mainnet"
    thornode_url: str = ""
    timeout: int = 15
    native_asset: str = "THOR.RUNE"

    @property
    def base_url(self) -> str:
        return (self.thornode_url or THORNODE_URLS.get(self.name, "")).rstrip("/")


@dataclass(frozen=True)
class PollingConfig:
    settle_delay: float = 6.0
    reference_initial_delay: float = 1.5
    reference_max_delay: float = 10.0
    reference_max_tries: int = 10
    reference_max_time: float = 90.0
    tracker_interval: float = 3.0
    tracker_max_attempts: int = 200


@dataclass(frozen=True)
class EncodingConfig:
    dust_decimals: int = 8
    average_block_time: float = 6.0


@dataclass(frozen=True)
class AppConfig:
    network: NetworkConfig = field(default_factory=NetworkConfig)
    polling: PollingConfig = field(default_factory=PollingConfig)
    encoding: EncodingConfig = field(default_factory=EncodingConfig)


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


def _build_network(raw: dict[str, Any]) -> NetworkConfig:
    return NetworkConfig(
        name=str(raw.get("name", "mainnet")).lower(),
        thornode_url=raw.get("thornode_url", "") or "",
        timeout=int(raw.get("timeout", 15)),
        native_asset=raw.get("native_asset", "THOR.RUNE"),
    )


def _build_polling(raw: dict[str, Any]) -> PollingConfig:
    defaults = PollingConfig()
    return PollingConfig(
        settle_delay=float(raw.get("settle_delay", defaults.settle_delay)),
        reference_initial_delay=float(
            raw.get("reference_initial_delay", defaults.reference_initial_delay)
        ),
        reference_max_delay=float(
            raw.get("reference_max_delay", defaults.reference_max_delay)
        ),
        reference_max_tries=int(
            raw.get("reference_max_tries", defaults.reference_max_tries)
        ),
        reference_max_time=float(
            raw.get("reference_max_time", defaults.reference_max_time)
        ),
        tracker_interval=float(raw.get("tracker_interval", defaults.tracker_interval)),
        tracker_max_attempts=int(
            raw.get("tracker_max_attempts", defaults.tracker_max_attempts)
        ),
    )


def _build_encoding(raw: dict[str, Any]) -> EncodingConfig:
    return EncodingConfig(
        dust_decimals=int(raw.get("dust_decimals", 8)),
        average_block_time=float(raw.get("average_block_time", 6.0)),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load and validate application configuration from YAML + .env.

    Args:
        config_path: Path to config.yaml. Defaults to ``config.yaml`` in the
            project root (one level up from this package).
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
        network=_build_network(raw.get("network", {}) or {}),
        polling=_build_polling(raw.get("polling", {}) or {}),
        encoding=_build_encoding(raw.get("encoding", {}) or {}),
    )

    validate_config(cfg)
    logger.info("Configuration loaded from %s", config_path)
    return cfg


def validate_config(cfg: AppConfig) -> None:
    """Raise on invalid configuration."""
    if not cfg.network.base_url:
        raise ValueError(
            f"Unknown network '{cfg.network.name}' and no thornode_url configured"
        )
    if cfg.network.timeout <= 0:
        raise ValueError("network.timeout must be positive")

    polling = cfg.polling
    if polling.reference_max_tries < 1 or polling.tracker_max_attempts < 1:
        raise ValueError("Polling attempt budgets must be at least 1")
    for name in (
        "settle_delay",
        "reference_initial_delay",
        "reference_max_delay",
        "reference_max_time",
        "tracker_interval",
    ):
        if getattr(polling, name) < 0:
            raise ValueError(f"polling.{name} must not be negative")

    if cfg.encoding.dust_decimals < 0:
        raise ValueError("encoding.dust_decimals must not be negative")
    if cfg.encoding.average_block_time <= 0:
        raise ValueError("encoding.average_block_time must be positive")
