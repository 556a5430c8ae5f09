"""Configuration data structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum

from kubedelta.models.resources import ResourceKind

DEFAULT_VOLATILE_FIELDS: tuple[str, ...] = ("status", "metadata.managedFields")


class DispatchMode(StrEnum):
    """How classified events reach handlers."""

    SYNC = "sync"
    QUEUE = "queue"


@dataclass
class SourceConfig:
    """Remote source scope and connection behaviour."""

    namespace: str = "default"
    kinds: list[ResourceKind] = field(default_factory=lambda: [ResourceKind.DEPLOYMENT])
    watch_timeout_seconds: int = 300


@dataclass
class WatchConfig:
    """Producer loop timing."""

    resync_interval: float = 10.0
    sync_timeout: float = 30.0
    backoff_initial: float = 1.0
    backoff_max: float = 30.0


@dataclass
class ClassifierConfig:
    """Per-kind volatility masks as dotted field paths."""

    volatile_fields: dict[ResourceKind, tuple[str, ...]] = field(
        default_factory=lambda: {kind: DEFAULT_VOLATILE_FIELDS for kind in ResourceKind}
    )


@dataclass
class DispatchConfig:
    """Event dispatcher configuration."""

    mode: DispatchMode = DispatchMode.SYNC
    queue_size: int = 1000


@dataclass
class DiffConfig:
    """Diff rendering configuration."""

    context_lines: int = 3
    tool: str = ""


@dataclass
class NotificationConfig:
    """Outbound notification configuration."""

    webhook_secret_ref: str = ""


@dataclass
class APIConfig:
    """REST API configuration."""

    enabled: bool = False
    port: int = 8080


@dataclass
class LogConfig:
    """Logging configuration."""

    level: str = "info"


@dataclass
class KubeDeltaConfig:
    """Top-level kubedelta configuration."""

    source: SourceConfig = field(default_factory=SourceConfig)
    watch: WatchConfig = field(default_factory=WatchConfig)
    classifier: ClassifierConfig = field(default_factory=ClassifierConfig)
    dispatch: DispatchConfig = field(default_factory=DispatchConfig)
    diff: DiffConfig = field(default_factory=DiffConfig)
    notifications: NotificationConfig = field(default_factory=NotificationConfig)
    api: APIConfig = field(default_factory=APIConfig)
    log: LogConfig = field(default_factory=LogConfig)
