"""Configuration for devicescope."""

import logging
import tomllib
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

from devicescope.errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_STORE_PATH = Path.home() / ".local" / "share" / "devicescope" / "store.db"


@dataclass(slots=True, frozen=True)
class DeviceScopeConfig:
    """Runtime settings for the telemetry core and the UI."""

    live_interval: float = 5.0  # Seconds between live-mode collections
    sample_interval: float = 1.0  # Seconds between performance samples
    window_capacity: int = 20
    provider_timeout: float = 10.0
    history_limit: int = 50
    store_path: Path = field(default=DEFAULT_STORE_PATH)
    reachability_host: str | None = None
    reachability_port: int = 53

    def __post_init__(self) -> None:
        for name in ("live_interval", "sample_interval", "provider_timeout"):
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be positive, got {getattr(self, name)!r}")
        for name in ("window_capacity", "history_limit"):
            if getattr(self, name) < 1:
                raise ConfigError(f"{name} must be at least 1, got {getattr(self, name)!r}")


def load_config(path: Path | None = None) -> DeviceScopeConfig:
    """
    Load configuration from the ``[devicescope]`` table of a TOML file.

    Args:
        path: TOML file to read. ``None`` returns the defaults.

    Raises:
        ConfigError: If the file is missing, malformed or holds unknown keys.
    """
    if path is None:
        return DeviceScopeConfig()

    logger.info("Loading configuration from %s", path)
    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except FileNotFoundError as e:
        raise ConfigError(f"configuration file not found: {path}") from e
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"cannot parse {path}: {e}") from e

    return config_from_mapping(data.get("devicescope", {}))


def config_from_mapping(values: dict[str, Any]) -> DeviceScopeConfig:
    """Build a config from plain values, applying them over the defaults."""
    known = {f.name for f in fields(DeviceScopeConfig)}
    unknown = set(values) - known
    if unknown:
        raise ConfigError(f"unknown configuration keys: {', '.join(sorted(unknown))}")

    overrides = dict(values)
    if "store_path" in overrides:
        overrides["store_path"] = Path(overrides["store_path"]).expanduser()
    try:
        return replace(DeviceScopeConfig(), **overrides)
    except TypeError as e:
        raise ConfigError(str(e)) from e
