"""Configuration data structures."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class CacheConfig:
    """Resource cache and watch configuration."""

    watch_kinds: list[str] = field(default_factory=lambda: ["v1/Pod"])
    backoff_base: float = 0.5
    backoff_max: float = 30.0
    backoff_jitter: float = 0.2
    watch_timeout_seconds: int = 300
    list_page_size: int = 500


@dataclass
class MetricsConfig:
    """Prometheus exporter configuration."""

    enabled: bool = False
    port: int = 9090


@dataclass
class APIConfig:
    """Status API configuration."""

    enabled: bool = True
    port: int = 8080


@dataclass
class LogConfig:
    """Logging configuration."""

    level: str = "info"


@dataclass
class KubeCacheConfig:
    """Top-level kubecache configuration."""

    cache: CacheConfig = field(default_factory=CacheConfig)
    metrics: MetricsConfig = field(default_factory=MetricsConfig)
    api: APIConfig = field(default_factory=APIConfig)
    log: LogConfig = field(default_factory=LogConfig)
