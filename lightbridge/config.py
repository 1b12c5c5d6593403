"""Configuration helpers for the light bridge."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from .errors import ConfigurationError

LOGGER = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent.parent
DEFAULT_CONFIG_PATH = BASE_DIR / "config" / "lightbridge.yaml"


@dataclass(frozen=True)
class BridgeConfig:
    """Connection settings for the vendor lighting bridge."""

    base_url: str
    api_key: str
    bridge_id: str
    ca_cert_path: Optional[str] = None
    rate_limit_ms: int = 100
    timeout: float = 10.0

    @property
    def base_headers(self) -> Dict[str, str]:
        """Return the authenticated header set required by the bridge."""

        return {"hue-application-key": self.api_key}

    @property
    def resource_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/clip/v2/resource"


@dataclass(frozen=True)
class ScheduleConfig:
    """Settings for following the companion schedule service."""

    service_url: str
    interval_seconds: float = 10.0


@dataclass(frozen=True)
class EnvironmentConfig:
    """Bundle of configuration for a deployment."""

    bridge: BridgeConfig
    all_lights_group: str
    schedule: Optional[ScheduleConfig] = None
    transition_ms: Optional[int] = None
    port: int = 8000


def get_config_path() -> Path:
    """Return the YAML config path, honouring ``LIGHTBRIDGE_CONFIG``."""

    override = os.getenv("LIGHTBRIDGE_CONFIG")
    return Path(override) if override else DEFAULT_CONFIG_PATH


def load_config_file(path: Optional[Path] = None) -> Dict[str, Any]:
    """Load the optional YAML config file; a missing file yields an empty mapping."""

    config_path = path or get_config_path()
    if not config_path.exists():
        LOGGER.debug("Config file %s missing, using environment only", config_path)
        return {}

    try:
        raw_data = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Unable to parse config file {config_path}: {exc}") from exc

    if not isinstance(raw_data, dict):
        raise ConfigurationError(f"Config file {config_path} must contain a mapping")
    return raw_data


def _section(data: Mapping[str, Any], name: str) -> Dict[str, Any]:
    value = data.get(name)
    return dict(value) if isinstance(value, dict) else {}


def _pick(env_name: str, section: Mapping[str, Any], key: str, default: Any = None) -> Any:
    value = os.getenv(env_name)
    if value is not None and value != "":
        return value
    value = section.get(key)
    return default if value is None else value


def _require(name: str, value: Any) -> str:
    if value is None or str(value).strip() == "":
        raise ConfigurationError(f"Missing required configuration value: {name}")
    return str(value).strip()


def _as_number(name: str, value: Any, cast=float):
    try:
        number = cast(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"{name} must be a number, got {value!r}") from exc
    if number < 0:
        raise ConfigurationError(f"{name} must not be negative, got {value!r}")
    return number


def build_environment_config(path: Optional[Path] = None) -> EnvironmentConfig:
    """Construct an :class:`EnvironmentConfig` from the config file and environment.

    Environment variables override values read from the YAML file.

    Parameters
    ----------
    path:
        Optional override for the YAML config location. When omitted the
        ``LIGHTBRIDGE_CONFIG`` variable is consulted, falling back to
        ``config/lightbridge.yaml``.
    """

    file_data = load_config_file(path)
    bridge_section = _section(file_data, "bridge")
    schedule_section = _section(file_data, "schedule")
    server_section = _section(file_data, "server")

    bridge = BridgeConfig(
        base_url=_require("HUE_BRIDGE_BASE_URL", _pick("HUE_BRIDGE_BASE_URL", bridge_section, "base_url")),
        api_key=_require("HUE_BRIDGE_API_KEY", _pick("HUE_BRIDGE_API_KEY", bridge_section, "api_key")),
        bridge_id=_require("HUE_BRIDGE_ID", _pick("HUE_BRIDGE_ID", bridge_section, "bridge_id")),
        ca_cert_path=_require(
            "HUE_BRIDGE_CACERT_PEM_PATH",
            _pick("HUE_BRIDGE_CACERT_PEM_PATH", bridge_section, "ca_cert_path"),
        ),
        rate_limit_ms=_as_number(
            "HUE_BRIDGE_RATE_LIMIT_MS",
            _pick("HUE_BRIDGE_RATE_LIMIT_MS", bridge_section, "rate_limit_ms", 100),
            int,
        ),
        timeout=_as_number("HUE_BRIDGE_TIMEOUT", _pick("HUE_BRIDGE_TIMEOUT", bridge_section, "timeout", 10)),
    )

    schedule = None
    service_url = _pick("SCHEDULE_SERVICE_URL", schedule_section, "service_url")
    if service_url:
        schedule = ScheduleConfig(
            service_url=str(service_url).rstrip("/"),
            interval_seconds=_as_number(
                "PERIODIC_UPDATE_INTERVAL_SECONDS",
                _pick("PERIODIC_UPDATE_INTERVAL_SECONDS", schedule_section, "interval_seconds", 10),
            ),
        )
    else:
        LOGGER.info("SCHEDULE_SERVICE_URL not set; periodic updates disabled")

    transition = _pick("PERIODIC_UPDATE_ANIMATION_DURATION_MS", schedule_section, "transition_ms")
    transition_ms = None
    if transition is not None and str(transition).strip() != "":
        transition_ms = _as_number("PERIODIC_UPDATE_ANIMATION_DURATION_MS", transition, int)

    return EnvironmentConfig(
        bridge=bridge,
        all_lights_group=_require(
            "HUE_ALL_LIGHTS_GROUP_NAME",
            _pick("HUE_ALL_LIGHTS_GROUP_NAME", bridge_section, "all_lights_group"),
        ),
        schedule=schedule,
        transition_ms=transition_ms,
        port=_as_number("PORT", _pick("PORT", server_section, "port", 8000), int),
    )


def load_config(*args, **kwargs) -> EnvironmentConfig:
    """Alias for :func:`build_environment_config`."""
    return build_environment_config(*args, **kwargs)


__all__ = [
    "BridgeConfig",
    "ScheduleConfig",
    "EnvironmentConfig",
    "build_environment_config",
    "get_config_path",
    "load_config",
    "load_config_file",
]
