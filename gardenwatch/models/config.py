"""Configuration data structures."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class WatchConfig:
    """Which collections to watch and how the registry scopes them."""

    resources: tuple[str, ...] = ("shoots",)
    namespaced_resources: tuple[str, ...] = ("shoots",)
    namespace: str = ""
    idle_timeout_seconds: float = 0.0
    healthy_after_seconds: float = 10.0


@dataclass
class KubernetesConfig:
    """Cluster API coordinates for custom resource collections."""

    api_group: str = "garden.sapcloud.io"
    api_version: str = "v1beta1"
    watch_timeout_seconds: int = 300


@dataclass
class BackoffConfig:
    """Reconnection backoff configuration."""

    base_delay_ms: int = 1000
    max_delay_ms: int = 60000
    max_attempts: int = 0
    jitter: float = 0.0


@dataclass
class APIConfig:
    """Status API configuration."""

    host: str = "0.0.0.0"
    port: int = 8080


@dataclass
class LogConfig:
    """Logging configuration."""

    level: str = "info"
    format: str = "json"


@dataclass
class GardenWatchConfig:
    """Top-level gardenwatch configuration."""

    watch: WatchConfig = field(default_factory=WatchConfig)
    kubernetes: KubernetesConfig = field(default_factory=KubernetesConfig)
    backoff: BackoffConfig = field(default_factory=BackoffConfig)
    api: APIConfig = field(default_factory=APIConfig)
    log: LogConfig = field(default_factory=LogConfig)
