"""Resource identity, snapshot and sync-state data structures."""

from __future__ import annotations

import copy
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum

from kubedelta.errors import MalformedDelta


class ResourceKind(StrEnum):
    """Resource kinds kubedelta knows how to watch."""

    DEPLOYMENT = "Deployment"
    POD = "Pod"

    @classmethod
    def parse(cls, value: str) -> ResourceKind:
        """Resolve a kind name case-insensitively (``deployment``, ``Pod``...)."""
        for member in cls:
            if member.value.lower() == value.strip().lower():
                return member
        raise ValueError(f"Unknown resource kind: {value!r}. Must be one of {[m.value for m in cls]}")


_API_VERSIONS: dict[ResourceKind, str] = {
    ResourceKind.DEPLOYMENT: "apps/v1",
    ResourceKind.POD: "v1",
}


class SyncState(StrEnum):
    """Readiness of one watched collection."""

    NOT_SYNCED = "not_synced"
    SYNCING = "syncing"
    SYNCED = "synced"


@dataclass(frozen=True, order=True)
class ResourceIdentity:
    """Unique key of a watched resource."""

    kind: ResourceKind
    namespace: str
    name: str

    def __str__(self) -> str:
        if not self.namespace:
            return self.name
        return f"{self.namespace}/{self.name}"


@dataclass(frozen=True)
class ResourceRecord:
    """One versioned snapshot of a resource.

    Never mutated after creation: the cache replaces records wholesale.
    Two records with the same identity and resource_version are equal.
    """

    identity: ResourceIdentity
    resource_version: int
    api_version: str = ""
    metadata: dict[str, object] = field(default_factory=dict)
    spec: dict[str, object] = field(default_factory=dict)
    status: dict[str, object] = field(default_factory=dict)

    @property
    def kind(self) -> ResourceKind:
        return self.identity.kind

    @property
    def namespace(self) -> str:
        return self.identity.namespace

    @property
    def name(self) -> str:
        return self.identity.name

    @classmethod
    def from_object(cls, kind: ResourceKind, obj: object) -> ResourceRecord:
        """Build a record from a raw camelCase object dict.

        Raises:
            MalformedDelta: the payload is not a mapping, has no name, or its
                ``metadata.resourceVersion`` is not an integer.
        """
        if not isinstance(obj, Mapping):
            raise MalformedDelta(f"{kind} payload is not a mapping: {type(obj).__name__}")
        metadata = obj.get("metadata")
        if not isinstance(metadata, Mapping):
            raise MalformedDelta(f"{kind} payload has no metadata")
        name = metadata.get("name")
        if not isinstance(name, str) or not name:
            raise MalformedDelta(f"{kind} payload has no metadata.name")
        namespace = metadata.get("namespace") or ""
        if not isinstance(namespace, str):
            raise MalformedDelta(f"{kind} {name}: metadata.namespace is not a string")
        try:
            resource_version = int(str(metadata.get("resourceVersion", "")))
        except ValueError as exc:
            raise MalformedDelta(
                f"{kind} {namespace}/{name}: resourceVersion {metadata.get('resourceVersion')!r} is not an integer"
            ) from exc

        spec = obj.get("spec") or {}
        status = obj.get("status") or {}
        if not isinstance(spec, Mapping) or not isinstance(status, Mapping):
            raise MalformedDelta(f"{kind} {namespace}/{name}: spec/status must be mappings")

        return cls(
            identity=ResourceIdentity(kind=kind, namespace=namespace, name=name),
            resource_version=resource_version,
            api_version=str(obj.get("apiVersion") or _API_VERSIONS.get(kind, "")),
            metadata=copy.deepcopy(dict(metadata)),
            spec=copy.deepcopy(dict(spec)),
            status=copy.deepcopy(dict(status)),
        )

    def to_document(self) -> dict[str, object]:
        """Return the full object as a fresh plain dict."""
        return {
            "apiVersion": self.api_version,
            "kind": self.kind.value,
            "metadata": copy.deepcopy(self.metadata),
            "spec": copy.deepcopy(self.spec),
            "status": copy.deepcopy(self.status),
        }

    def detached(self) -> ResourceRecord:
        """Return a deep copy that shares no mutable state with this record."""
        return copy.deepcopy(self)
