"""Server configuration.

Loads from config.yaml if present, with environment variable overrides.
``PORT``, ``HOST`` and ``MONGO_URI`` are read as-is; everything else uses the
pattern VISITS_<SECTION>_<KEY> (uppercase). The result is validated eagerly
and any problem is raised as ConfigError.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from visit_counter.errors import ConfigError


@dataclass
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = 8000
    env: str = "dev"  # "dev" or "prod"


@dataclass
class StorageConfig:
    backend: str = "mongo"  # "mongo" or "memory"
    mongo_uri: str = ""
    collection: str = "visits"
    server_selection_timeout_ms: int = 5000


@dataclass
class CacheConfig:
    ttl_seconds: float = 600.0
    check_period_seconds: float = 120.0


@dataclass
class LimitsConfig:
    rate_limit_window_seconds: float = 15 * 60.0
    rate_limit_max_requests: int = 100


@dataclass
class LoggingConfig:
    level: str = "info"
    format: str = "json"  # "console" or "json"
    file: str = "server.log"


@dataclass
class AppConfig:
    server: ServerConfig = field(default_factory=ServerConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    limits: LimitsConfig = field(default_factory=LimitsConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


# env var -> (section, key, parser)
_ENV_OVERRIDES = {
    "HOST": ("server", "host", str),
    "PORT": ("server", "port", int),
    "VISITS_SERVER_ENV": ("server", "env", str),
    "MONGO_URI": ("storage", "mongo_uri", str),
    "VISITS_STORAGE_BACKEND": ("storage", "backend", str),
    "VISITS_STORAGE_COLLECTION": ("storage", "collection", str),
    "VISITS_STORAGE_TIMEOUT_MS": ("storage", "server_selection_timeout_ms", int),
    "VISITS_CACHE_TTL": ("cache", "ttl_seconds", float),
    "VISITS_CACHE_CHECK_PERIOD": ("cache", "check_period_seconds", float),
    "VISITS_RATE_LIMIT_WINDOW": ("limits", "rate_limit_window_seconds", float),
    "VISITS_RATE_LIMIT_MAX": ("limits", "rate_limit_max_requests", int),
    "VISITS_LOG_LEVEL": ("logging", "level", str),
    "VISITS_LOG_FORMAT": ("logging", "format", str),
    "VISITS_LOG_FILE": ("logging", "file", str),
}

_SECTIONS = ("server", "storage", "cache", "limits", "logging")

_LOG_LEVELS = ("critical", "error", "warning", "info", "debug")


def _apply_env_overrides(config: AppConfig, environ: dict[str, str]) -> None:
    """Override config values from environment variables."""
    for env_key, (section, key, parse) in _ENV_OVERRIDES.items():
        val = environ.get(env_key)
        if val is None:
            continue
        try:
            setattr(getattr(config, section), key, parse(val))
        except ValueError as exc:
            raise ConfigError(f"{env_key}={val!r} is not a valid {parse.__name__}") from exc


def validate_config(config: AppConfig) -> None:
    """Raise ConfigError if the configuration cannot run a server."""
    if not isinstance(config.server.port, int) or not 0 < config.server.port < 65536:
        raise ConfigError(f"port must be an integer in 1-65535, got {config.server.port!r}")

    backend = config.storage.backend
    if backend not in ("mongo", "memory"):
        raise ConfigError(f"unknown storage backend {backend!r}")
    if backend == "mongo":
        uri = config.storage.mongo_uri
        if not uri:
            raise ConfigError("MONGO_URI is required for the mongo storage backend")
        if not uri.startswith(("mongodb://", "mongodb+srv://")):
            raise ConfigError("MONGO_URI must start with mongodb:// or mongodb+srv://")

    if config.cache.ttl_seconds <= 0 or config.cache.check_period_seconds <= 0:
        raise ConfigError("cache ttl and check period must be positive")
    if config.limits.rate_limit_window_seconds <= 0:
        raise ConfigError("rate limit window must be positive")
    if config.limits.rate_limit_max_requests < 1:
        raise ConfigError("rate limit max requests must be at least 1")
    if config.logging.format not in ("console", "json"):
        raise ConfigError(f"unknown log format {config.logging.format!r}")
    if str(config.logging.level).lower() not in _LOG_LEVELS:
        raise ConfigError(f"unknown log level {config.logging.level!r}")


def load_config(
    config_path: str | Path | None = None,
    environ: dict[str, str] | None = None,
) -> AppConfig:
    """Load configuration from YAML file + environment overrides, then validate."""
    config = AppConfig()
    if environ is None:
        environ = dict(os.environ)

    # Try to load YAML
    if config_path is None:
        config_path = Path("config.yaml")
    else:
        config_path = Path(config_path)

    if config_path.exists():
        try:
            with open(config_path) as f:
                raw = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"cannot parse {config_path}: {exc}") from exc
        if not isinstance(raw, dict):
            raise ConfigError(f"{config_path} must contain a mapping of sections")

        for section in _SECTIONS:
            values = raw.get(section) or {}
            if not isinstance(values, dict):
                raise ConfigError(f"section {section!r} in {config_path} must be a mapping")
            target = getattr(config, section)
            for k, v in values.items():
                if hasattr(target, k):
                    setattr(target, k, v)

    # Environment overrides always win
    _apply_env_overrides(config, environ)
    validate_config(config)
    return config
