"""Core data structures for kubedelta."""

from kubedelta.models.config import KubeDeltaConfig
from kubedelta.models.events import (
    Added,
    ChangeEvent,
    Deleted,
    DeltaType,
    DiffLine,
    DiffLineKind,
    ListResult,
    Modified,
    RawDelta,
    Verb,
)
from kubedelta.models.resources import (
    ResourceIdentity,
    ResourceKind,
    ResourceRecord,
    SyncState,
)

__all__ = [
    "Added",
    "ChangeEvent",
    "Deleted",
    "DeltaType",
    "DiffLine",
    "DiffLineKind",
    "KubeDeltaConfig",
    "ListResult",
    "Modified",
    "RawDelta",
    "ResourceIdentity",
    "ResourceKind",
    "ResourceRecord",
    "SyncState",
    "Verb",
]
