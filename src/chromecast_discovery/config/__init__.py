"""Configuration loader for cast discovery.

Loads settings from a YAML file with built-in defaults. Supports environment
variable overrides using the CASTDISCOVERY_ prefix (e.g.,
CASTDISCOVERY_GC_INTERVAL=30).
"""

from __future__ import annotations

import logging
import os
import pathlib
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Settings model
# ---------------------------------------------------------------------------

class Settings(BaseModel):
    """Discovery options. Intervals and thresholds are in seconds."""

    mdns_enabled: bool = True
    mdns_host_strategy: Literal["rinfo", "srv"] = "rinfo"
    ssdp_enabled: bool = True
    ssdp_device_endpoint_http_timeout: int = Field(default=5000, gt=0)
    gc_interval: float = Field(default=0, ge=0)
    gc_threshold: float = Field(default=0, ge=0)
    update_interval: float = Field(default=0, ge=0)

    @field_validator("mdns_host_strategy", mode="before")
    @classmethod
    def _lowercase_strategy(cls, value: Any) -> Any:
        return value.lower() if isinstance(value, str) else value


# ---------------------------------------------------------------------------
# Environment variable overrides
# ---------------------------------------------------------------------------

_ENV_PREFIX = "CASTDISCOVERY_"


def _coerce(value: str) -> Any:
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return float(value)
    except ValueError:
        pass
    if value.lower() in ("true", "false"):
        return value.lower() == "true"
    return value


def _collect_env_overrides() -> dict[str, Any]:
    """Collect CASTDISCOVERY_* env vars that name a ``Settings`` field.

    Example: CASTDISCOVERY_UPDATE_INTERVAL=60
    becomes  {"update_interval": 60}
    """
    overrides: dict[str, Any] = {}
    for key, value in os.environ.items():
        if not key.startswith(_ENV_PREFIX):
            continue
        name = key[len(_ENV_PREFIX) :].lower()
        if name not in Settings.model_fields:
            logger.warning("Ignoring unknown setting %s", key)
            continue
        overrides[name] = _coerce(value)
    return overrides


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

_BUILTIN_DEFAULTS_PATH = pathlib.Path(__file__).resolve().parents[3] / "config" / "discovery_defaults.yaml"


def load_settings(
    config_path: pathlib.Path | None = None,
) -> Settings:
    """Load settings with layered precedence: defaults < file < env vars.

    Parameters
    ----------
    config_path:
        Path to a YAML config file. If ``None`` or the file does not exist,
        built-in defaults are used.
    """
    values: dict[str, Any] = {}

    path = config_path if config_path is not None else _BUILTIN_DEFAULTS_PATH
    if path.exists():
        with open(path) as fh:
            file_data = yaml.safe_load(fh)
        if isinstance(file_data, dict):
            values.update(file_data)

    values.update(_collect_env_overrides())
    return Settings(**values)
