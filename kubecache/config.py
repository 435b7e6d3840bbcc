"""Configuration loading from environment variables."""

from __future__ import annotations

import os

from kubecache.models.config import APIConfig, CacheConfig, KubeCacheConfig, LogConfig, MetricsConfig
from kubecache.models.resources import GroupVersionKind


def _env(key: str, default: str = "") -> str:
    return os.environ.get(f"KUBECACHE_{key}", default)


def _env_bool(key: str, default: bool = False) -> bool:
    val = _env(key, str(default).lower())
    return val.lower() in ("true", "1", "yes")


def _env_int(key: str, default: int, min_val: int | None = None, max_val: int | None = None) -> int:
    val = int(_env(key, str(default)))
    if min_val is not None:
        val = max(val, min_val)
    if max_val is not None:
        val = min(val, max_val)
    return val


def _env_float(key: str, default: float, min_val: float = 0.0) -> float:
    return max(float(_env(key, str(default))), min_val)


def _validate_watch_kinds(value: str) -> list[str]:
    kinds = [part.strip() for part in value.split(",") if part.strip()]
    if not kinds:
        raise ValueError("KUBECACHE_WATCH_KINDS must name at least one resource type")
    # Raises ValueError on a malformed entry
    return [str(GroupVersionKind.parse(kind)) for kind in kinds]


def _validate_log_level(value: str) -> str:
    valid = {"debug", "info", "warning", "error"}
    if value.lower() not in valid:
        raise ValueError(f"Invalid log level: {value}. Must be one of {valid}")
    return value.lower()


def load_config() -> KubeCacheConfig:
    """Load configuration from KUBECACHE_* environment variables."""
    return KubeCacheConfig(
        cache=CacheConfig(
            watch_kinds=_validate_watch_kinds(_env("WATCH_KINDS", "v1/Pod")),
            backoff_base=_env_float("BACKOFF_BASE", 0.5),
            backoff_max=_env_float("BACKOFF_MAX", 30.0),
            backoff_jitter=_env_float("BACKOFF_JITTER", 0.2),
            watch_timeout_seconds=_env_int("WATCH_TIMEOUT", 300, min_val=30, max_val=3600),
            list_page_size=_env_int("LIST_PAGE_SIZE", 500, min_val=1, max_val=5000),
        ),
        metrics=MetricsConfig(
            enabled=_env_bool("METRICS_ENABLED", False),
            port=_env_int("METRICS_PORT", 9090, min_val=1024, max_val=65535),
        ),
        api=APIConfig(
            enabled=_env_bool("API_ENABLED", True),
            port=_env_int("API_PORT", 8080, min_val=1024, max_val=65535),
        ),
        log=LogConfig(
            level=_validate_log_level(_env("LOG_LEVEL", "info")),
        ),
    )
