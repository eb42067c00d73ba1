"""Configuration loading from environment variables."""

from __future__ import annotations

import os

from kubemirror.models.config import (
    APIConfig,
    ClusterConfig,
    KubeMirrorConfig,
    LogConfig,
    LogsConfig,
    WatchConfig,
)


def _env(key: str, default: str = "") -> str:
    return os.environ.get(f"KUBEMIRROR_{key}", default)


def _env_bool(key: str, default: bool = False) -> bool:
    val = _env(key, str(default).lower())
    return val.lower() in ("true", "1", "yes")


def _env_int(key: str, default: int, min_val: int | None = None, max_val: int | None = None) -> int:
    raw = _env(key, str(default))
    try:
        val = int(raw)
    except ValueError as exc:
        raise ValueError(f"Invalid integer for KUBEMIRROR_{key}: {raw!r}") from exc
    if min_val is not None:
        val = max(val, min_val)
    if max_val is not None:
        val = min(val, max_val)
    return val


def _env_list(key: str) -> list[str]:
    """Split a comma-separated kind list, dropping blanks.

    Kind names are case-sensitive and kept exactly as written.
    """
    return [item.strip() for item in _env(key, "").split(",") if item.strip()]


def _validate_log_level(value: str) -> str:
    valid = {"debug", "info", "warning", "error"}
    if value.lower() not in valid:
        raise ValueError(f"Invalid log level: {value}. Must be one of {valid}")
    return value.lower()


def _validate_kind_filters(include: list[str], exclude: list[str]) -> None:
    overlap = set(include) & set(exclude)
    if overlap:
        raise ValueError(f"Kinds both included and excluded from watching: {sorted(overlap)}")


def load_config() -> KubeMirrorConfig:
    """Load configuration from KUBEMIRROR_* environment variables."""
    include_kinds = _env_list("WATCH_INCLUDE_KINDS")
    exclude_kinds = _env_list("WATCH_EXCLUDE_KINDS")
    _validate_kind_filters(include_kinds, exclude_kinds)

    return KubeMirrorConfig(
        cluster=ClusterConfig(
            kubeconfig=_env("KUBECONFIG", ""),
            request_timeout_seconds=_env_int("REQUEST_TIMEOUT_SECONDS", 30, min_val=1, max_val=600),
        ),
        watch=WatchConfig(
            enabled=_env_bool("WATCH_ENABLED", True),
            lazy=_env_bool("WATCH_LAZY", False),
            include_kinds=include_kinds,
            exclude_kinds=exclude_kinds,
            timeout_seconds=_env_int("WATCH_TIMEOUT_SECONDS", 300, min_val=60, max_val=3600),
            initial_list_attempts=_env_int("WATCH_INITIAL_LIST_ATTEMPTS", 3, min_val=1, max_val=10),
            list_page_size=_env_int("WATCH_LIST_PAGE_SIZE", 500, min_val=50, max_val=5000),
            sync_timeout_seconds=_env_int("SYNC_TIMEOUT_SECONDS", 60, min_val=0, max_val=3600),
        ),
        logs=LogsConfig(
            tail_ceiling=_env_int("LOG_TAIL_CEILING", 300, min_val=1, max_val=5000),
        ),
        api=APIConfig(
            enabled=_env_bool("API_ENABLED", True),
            port=_env_int("API_PORT", 8080, min_val=1024, max_val=65535),
        ),
        log=LogConfig(
            level=_validate_log_level(_env("LOG_LEVEL", "info")),
        ),
    )
