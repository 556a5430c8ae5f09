"""Configuration loading from environment variables."""

from __future__ import annotations

import os

from kubedelta.diff.masking import parse_path
from kubedelta.models.config import (
    DEFAULT_VOLATILE_FIELDS,
    APIConfig,
    ClassifierConfig,
    DiffConfig,
    DispatchConfig,
    DispatchMode,
    KubeDeltaConfig,
    LogConfig,
    NotificationConfig,
    SourceConfig,
    WatchConfig,
)
from kubedelta.models.resources import ResourceKind

_SUPPORTED_DIFF_TOOLS = {"", "git"}


def _env(key: str, default: str = "") -> str:
    return os.environ.get(f"KUBEDELTA_{key}", default)


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


def _env_float(key: str, default: float, min_val: float | None = None) -> float:
    val = float(_env(key, str(default)))
    if min_val is not None:
        val = max(val, min_val)
    return val


def _split_list(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def _parse_kinds(value: str) -> list[ResourceKind]:
    kinds: list[ResourceKind] = []
    for item in _split_list(value):
        kind = ResourceKind.parse(item)
        if kind not in kinds:
            kinds.append(kind)
    if not kinds:
        raise ValueError("KUBEDELTA_KINDS must name at least one resource kind")
    return kinds


def _volatile_fields() -> dict[ResourceKind, tuple[str, ...]]:
    default = ",".join(DEFAULT_VOLATILE_FIELDS)
    fields: dict[ResourceKind, tuple[str, ...]] = {}
    for kind in ResourceKind:
        key = f"VOLATILE_FIELDS_{kind.value.upper()}"
        paths = tuple(_split_list(_env(key, default)))
        for path in paths:
            try:
                parse_path(path)
            except ValueError as exc:
                raise ValueError(f"KUBEDELTA_{key}: {exc}") from exc
        fields[kind] = paths
    return fields


def _validate_log_level(value: str) -> str:
    valid = {"debug", "info", "warning", "error"}
    if value.lower() not in valid:
        raise ValueError(f"Invalid log level: {value}. Must be one of {valid}")
    return value.lower()


def _validate_dispatch_mode(value: str) -> DispatchMode:
    try:
        return DispatchMode(value.lower())
    except ValueError:
        raise ValueError(f"Invalid dispatch mode: {value}. Must be one of {[m.value for m in DispatchMode]}") from None


def _validate_diff_tool(value: str) -> str:
    if value.lower() not in _SUPPORTED_DIFF_TOOLS:
        raise ValueError(f"Unsupported diff tool: {value}. Must be empty or 'git'")
    return value.lower()


def load_config() -> KubeDeltaConfig:
    """Load configuration from KUBEDELTA_* environment variables."""
    return KubeDeltaConfig(
        source=SourceConfig(
            namespace=_env("NAMESPACE", "default"),
            kinds=_parse_kinds(_env("KINDS", ResourceKind.DEPLOYMENT.value)),
            watch_timeout_seconds=_env_int("WATCH_TIMEOUT", 300, min_val=10, max_val=3600),
        ),
        watch=WatchConfig(
            resync_interval=_env_float("RESYNC_INTERVAL", 10.0, min_val=1.0),
            sync_timeout=_env_float("SYNC_TIMEOUT", 30.0, min_val=1.0),
            backoff_initial=_env_float("BACKOFF_INITIAL", 1.0, min_val=0.1),
            backoff_max=_env_float("BACKOFF_MAX", 30.0, min_val=1.0),
        ),
        classifier=ClassifierConfig(volatile_fields=_volatile_fields()),
        dispatch=DispatchConfig(
            mode=_validate_dispatch_mode(_env("DISPATCH_MODE", "sync")),
            queue_size=_env_int("DISPATCH_QUEUE_SIZE", 1000, min_val=1, max_val=100_000),
        ),
        diff=DiffConfig(
            context_lines=_env_int("DIFF_CONTEXT", 3, min_val=0, max_val=50),
            tool=_validate_diff_tool(_env("DIFF_TOOL", "")),
        ),
        notifications=NotificationConfig(
            webhook_secret_ref=_env("WEBHOOK_SECRET_REF", ""),
        ),
        api=APIConfig(
            enabled=_env_bool("API_ENABLED", False),
            port=_env_int("API_PORT", 8080, min_val=1024, max_val=65535),
        ),
        log=LogConfig(
            level=_validate_log_level(_env("LOG_LEVEL", "info")),
        ),
    )
