from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import Field, field_validator

from gemini_proxy.constants import (
    CODE_ASSIST_ENDPOINT,
    DEFAULT_CLIENT_ID,
    DEFAULT_CLIENT_SECRET,
)
from gemini_proxy.core.common.exceptions import ConfigurationError
from gemini_proxy.core.interfaces.model_bases import DomainModel

logger = logging.getLogger(__name__)

CONFIG_DIR_ENV = "GEMINI_PROXY_CONFIG_DIR"


def default_config_dir(env: Mapping[str, str] | None = None) -> Path:
    """Return the credential directory, honouring ``GEMINI_PROXY_CONFIG_DIR``."""
    env = os.environ if env is None else env
    override = env.get(CONFIG_DIR_ENV)
    if override:
        return Path(override)
    return Path.home() / ".gemini-proxy"


def _env_to_bool(name: str, default: bool, env: Mapping[str, str]) -> bool:
    """Return an environment variable parsed as a boolean flag."""
    value = env.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_to_int(name: str, default: int, env: Mapping[str, str]) -> int:
    """Return an environment variable parsed as an integer."""
    value = env.get(name)
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning(f"Ignoring non-integer value for {name}: {value!r}")
        return default


def _env_to_float(name: str, default: float, env: Mapping[str, str]) -> float:
    value = env.get(name)
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        logger.warning(f"Ignoring non-numeric value for {name}: {value!r}")
        return default


class LogLevel(str, Enum):
    """Log levels for configuration."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LoggingConfig(DomainModel):
    level: LogLevel = LogLevel.INFO
    log_file: str | None = None
    request_logging: bool = False
    response_logging: bool = False


class OAuthClientConfig(DomainModel):
    """OAuth installed-app client used for login and token refresh."""

    client_id: str = DEFAULT_CLIENT_ID
    client_secret: str = DEFAULT_CLIENT_SECRET


class BackendConfig(DomainModel):
    """Settings for the outbound Code Assist connection."""

    api_url: str = CODE_ASSIST_ENDPOINT
    connect_timeout: float = 60.0
    # time between chunks during streaming; long responses need a generous value
    read_timeout: float = 300.0

    @field_validator("api_url")
    @classmethod
    def validate_api_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("API URL must start with http:// or https://")
        return v.rstrip("/")


class AppConfig(DomainModel):
    """Complete application configuration."""

    host: str = "localhost"
    port: int = 3000
    config_dir: Path = Field(default_factory=default_config_dir)
    backend: BackendConfig = Field(default_factory=BackendConfig)
    oauth: OAuthClientConfig = Field(default_factory=OAuthClientConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @property
    def credentials_file(self) -> Path:
        return self.config_dir / "config.json"

    @classmethod
    def from_env(cls, *, environ: Mapping[str, str] | None = None) -> AppConfig:
        """Create AppConfig from environment variables."""
        env: Mapping[str, str] = os.environ if environ is None else environ
        return cls.model_validate(_env_overrides(env, cls()))


def _env_overrides(env: Mapping[str, str], base: AppConfig) -> dict[str, Any]:
    data = base.model_dump()
    data["host"] = env.get("APP_HOST", data["host"])
    data["port"] = _env_to_int("APP_PORT", data["port"], env)
    data["config_dir"] = default_config_dir(env) if CONFIG_DIR_ENV in env else data["config_dir"]

    backend = data["backend"]
    backend["api_url"] = env.get("CODE_ASSIST_ENDPOINT", backend["api_url"])
    backend["connect_timeout"] = _env_to_float(
        "PROXY_CONNECT_TIMEOUT", backend["connect_timeout"], env
    )
    backend["read_timeout"] = _env_to_float(
        "PROXY_READ_TIMEOUT", backend["read_timeout"], env
    )

    oauth = data["oauth"]
    oauth["client_id"] = env.get("GEMINI_CLIENT_ID", oauth["client_id"])
    oauth["client_secret"] = env.get("GEMINI_CLIENT_SECRET", oauth["client_secret"])

    log_cfg = data["logging"]
    if "LOG_LEVEL" in env:
        log_cfg["level"] = env["LOG_LEVEL"].upper()
    log_cfg["log_file"] = env.get("LOG_FILE", log_cfg["log_file"])
    log_cfg["request_logging"] = _env_to_bool(
        "REQUEST_LOGGING", log_cfg["request_logging"], env
    )
    return data


def _merge_dicts(d1: dict[str, Any], d2: dict[str, Any]) -> dict[str, Any]:
    for key, value in d2.items():
        if isinstance(value, dict) and isinstance(d1.get(key), dict):
            _merge_dicts(d1[key], value)
        else:
            d1[key] = value
    return d1


def load_config(
    config_path: str | Path | None = None,
    *,
    environ: Mapping[str, str] | None = None,
) -> AppConfig:
    """
    Load configuration from an optional YAML file, then apply environment overrides.

    Args:
        config_path: Optional path to a ``.yaml``/``.yml`` configuration file

    Returns:
        AppConfig instance
    """
    env: Mapping[str, str] = os.environ if environ is None else environ
    config_data: dict[str, Any] = AppConfig().model_dump()

    if config_path:
        import yaml

        path = Path(config_path)
        if not path.exists():
            logger.warning(f"Configuration file not found: {config_path}")
        else:
            if path.suffix.lower() not in (".yaml", ".yml"):
                raise ConfigurationError(
                    f"Unsupported configuration file format: {path.suffix}. Use YAML (.yaml/.yml)."
                )
            try:
                with open(path, encoding="utf-8") as f:
                    file_config = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                logger.critical(f"Error loading configuration file: {e!s}")
                raise ConfigurationError(
                    f"Invalid YAML in configuration file {path.name}"
                ) from e
            if not isinstance(file_config, dict):
                raise ConfigurationError(
                    f"Configuration file {path.name} must contain a mapping"
                )
            _merge_dicts(config_data, file_config)

    file_based = AppConfig.model_validate(config_data)
    return AppConfig.model_validate(_env_overrides(env, file_based))
