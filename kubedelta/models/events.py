"""Change events, raw deltas and diff lines."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum

from kubedelta.models.resources import ResourceIdentity, ResourceKind, ResourceRecord


class DeltaType(StrEnum):
    """Type of a raw watch notification."""

    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"
    BOOKMARK = "BOOKMARK"


class Verb(StrEnum):
    """Verb printed for a classified change."""

    CREATED = "CREATED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"


@dataclass(frozen=True)
class RawDelta:
    """One notification from the remote source, not yet parsed."""

    type: DeltaType
    kind: ResourceKind
    object: dict[str, object] = field(default_factory=dict)


@dataclass(frozen=True)
class ListResult:
    """Result of a full list: raw objects plus the collection revision."""

    items: list[dict[str, object]]
    revision: int


@dataclass(frozen=True)
class Added:
    """A resource appeared in the cache."""

    record: ResourceRecord
    verb = Verb.CREATED

    @property
    def identity(self) -> ResourceIdentity:
        return self.record.identity

    @property
    def kind(self) -> ResourceKind:
        return self.record.kind

    @property
    def revision(self) -> int:
        return self.record.resource_version


@dataclass(frozen=True)
class Modified:
    """A cached resource was replaced by a newer revision.

    Carries both snapshots so a diff can be computed without the cache.
    """

    old: ResourceRecord
    new: ResourceRecord
    verb = Verb.MODIFIED

    @property
    def identity(self) -> ResourceIdentity:
        return self.new.identity

    @property
    def kind(self) -> ResourceKind:
        return self.new.kind

    @property
    def revision(self) -> int:
        return self.new.resource_version


@dataclass(frozen=True)
class Deleted:
    """A resource was removed from the cache. Holds the last known state."""

    record: ResourceRecord
    verb = Verb.DELETED

    @property
    def identity(self) -> ResourceIdentity:
        return self.record.identity

    @property
    def kind(self) -> ResourceKind:
        return self.record.kind

    @property
    def revision(self) -> int:
        return self.record.resource_version


ChangeEvent = Added | Modified | Deleted


class DiffLineKind(StrEnum):
    """Classification of one line in a rendered diff."""

    CONTEXT = "context"
    ADDED = "added"
    REMOVED = "removed"


_PREFIXES = {
    DiffLineKind.CONTEXT: " ",
    DiffLineKind.ADDED: "+",
    DiffLineKind.REMOVED: "-",
}


@dataclass(frozen=True)
class DiffLine:
    """A single line of a line-oriented diff."""

    kind: DiffLineKind
    text: str

    def render(self) -> str:
        return f"{_PREFIXES[self.kind]}{self.text}"
