"""Configuration loading from environment variables."""

from __future__ import annotations

import os

from gardenwatch.models.config import (
    APIConfig,
    BackoffConfig,
    GardenWatchConfig,
    KubernetesConfig,
    LogConfig,
    WatchConfig,
)


def _env(key: str, default: str = "") -> str:
    return os.environ.get(f"GARDENWATCH_{key}", default)


def _env_int(key: str, default: int, min_val: int | None = None, max_val: int | None = None) -> int:
    val = int(_env(key, str(default)))
    if min_val is not None:
        val = max(val, min_val)
    if max_val is not None:
        val = min(val, max_val)
    return val


def _env_float(key: str, default: float) -> float:
    return float(_env(key, str(default)))


def _env_list(key: str, default: str) -> tuple[str, ...]:
    raw = _env(key, default)
    return tuple(item.strip() for item in raw.split(",") if item.strip())


def _validate_log_level(value: str) -> str:
    valid = {"debug", "info", "warning", "error"}
    if value.lower() not in valid:
        raise ValueError(f"Invalid log level: {value}. Must be one of {valid}")
    return value.lower()


def _validate_log_format(value: str) -> str:
    valid = {"json", "console"}
    if value.lower() not in valid:
        raise ValueError(f"Invalid log format: {value}. Must be one of {valid}")
    return value.lower()


def _validate_jitter(value: float) -> float:
    if not 0.0 <= value <= 1.0:
        raise ValueError(f"Invalid backoff jitter: {value}. Must be within [0, 1]")
    return value


def _validate_resources(value: tuple[str, ...]) -> tuple[str, ...]:
    if not value:
        raise ValueError("GARDENWATCH_WATCH_RESOURCES must name at least one collection")
    return value


def load_config() -> GardenWatchConfig:
    """Load configuration from GARDENWATCH_* environment variables."""
    base_delay_ms = _env_int("BACKOFF_BASE_MS", 1000, min_val=1)
    return GardenWatchConfig(
        watch=WatchConfig(
            resources=_validate_resources(_env_list("WATCH_RESOURCES", "shoots")),
            namespaced_resources=_env_list("NAMESPACED_RESOURCES", "shoots"),
            namespace=_env("WATCH_NAMESPACE", ""),
            idle_timeout_seconds=max(_env_float("IDLE_TIMEOUT", 0.0), 0.0),
            healthy_after_seconds=max(_env_float("HEALTHY_AFTER", 10.0), 0.0),
        ),
        kubernetes=KubernetesConfig(
            api_group=_env("API_GROUP", "garden.sapcloud.io"),
            api_version=_env("API_VERSION", "v1beta1"),
            watch_timeout_seconds=_env_int("WATCH_TIMEOUT", 300, min_val=30, max_val=3600),
        ),
        backoff=BackoffConfig(
            base_delay_ms=base_delay_ms,
            max_delay_ms=_env_int("BACKOFF_MAX_MS", 60000, min_val=base_delay_ms),
            max_attempts=_env_int("BACKOFF_MAX_ATTEMPTS", 0, min_val=0),
            jitter=_validate_jitter(_env_float("BACKOFF_JITTER", 0.0)),
        ),
        api=APIConfig(
            host=_env("API_HOST", "0.0.0.0"),
            port=_env_int("API_PORT", 8080, min_val=1024, max_val=65535),
        ),
        log=LogConfig(
            level=_validate_log_level(_env("LOG_LEVEL", "info")),
            format=_validate_log_format(_env("LOG_FORMAT", "json")),
        ),
    )
