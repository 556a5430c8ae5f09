"""In-memory resource cache for one watched kind.

The cache is the single authoritative index from ResourceIdentity to the
latest known ResourceRecord. Its only writer is the kind's ResourceWatcher,
which funnels every mutation through ``apply`` (one delta) or ``replace``
(a full list). Readers get detached copies, so they can never observe or
cause a partially-applied entry.

Ordering is last-write-wins on the integer revision marker: anything not
newer than what is stored (or than the recorded deletion of that key) is a
redelivery and is dropped.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable

import structlog

from kubedelta.errors import MalformedDelta, SyncTimeout
from kubedelta.models.events import Added, ChangeEvent, Deleted, DeltaType, Modified, RawDelta
from kubedelta.models.resources import ResourceIdentity, ResourceKind, ResourceRecord, SyncState
from kubedelta.observability.metrics import cache_synced, cached_objects, deltas_applied_total, deltas_dropped_total

_log = structlog.get_logger(component="cache")


class ResourceCache:
    """Authoritative index of one resource kind."""

    def __init__(self, kind: ResourceKind) -> None:
        self.kind = kind
        self._index: dict[ResourceIdentity, ResourceRecord] = {}
        # identity -> revision at which it was deleted
        self._tombstones: dict[ResourceIdentity, int] = {}
        self._revision = 0
        self._state = SyncState.NOT_SYNCED
        self._synced = asyncio.Event()

    # ------------------------------------------------------------------
    # Sync state
    # ------------------------------------------------------------------

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def revision(self) -> int:
        """Highest revision observed; a watch resumes from here."""
        return self._revision

    def mark_syncing(self) -> None:
        self._set_state(SyncState.SYNCING)

    def mark_synced(self) -> None:
        self._set_state(SyncState.SYNCED)
        self._synced.set()

    def _set_state(self, state: SyncState) -> None:
        if state != self._state:
            _log.info("cache_state_changed", kind=self.kind.value, old=self._state.value, new=state.value)
        self._state = state
        cache_synced.labels(kind=self.kind.value).set(1 if state == SyncState.SYNCED else 0)

    async def wait_synced(self, timeout: float) -> None:
        """Block the caller until the cache is synced.

        Raises:
            SyncTimeout: the cache did not sync within *timeout* seconds.
        """
        try:
            await asyncio.wait_for(self._synced.wait(), timeout=timeout)
        except TimeoutError:
            raise SyncTimeout(self.kind.value, timeout) from None

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, identity: ResourceIdentity) -> ResourceRecord | None:
        record = self._index.get(identity)
        return record.detached() if record is not None else None

    def get_by_name(self, namespace: str, name: str) -> ResourceRecord | None:
        return self.get(ResourceIdentity(kind=self.kind, namespace=namespace, name=name))

    def list(self, namespace: str | None = None) -> list[ResourceRecord]:
        """Snapshot of every cached record, sorted by identity."""
        records = list(self._index.values())
        if namespace is not None:
            records = [r for r in records if r.namespace == namespace]
        return [r.detached() for r in sorted(records, key=lambda r: r.identity)]

    def keys(self) -> set[ResourceIdentity]:
        return set(self._index)

    def __len__(self) -> int:
        return len(self._index)

    def __contains__(self, identity: object) -> bool:
        return identity in self._index

    # ------------------------------------------------------------------
    # Writes (producer only)
    # ------------------------------------------------------------------

    def apply(self, delta: RawDelta) -> ChangeEvent | None:
        """Apply one delta. Returns the resulting event, or None if dropped.

        Raises:
            MalformedDelta: the delta targets another kind or its object
                cannot be parsed into a record.
        """
        if delta.kind != self.kind:
            raise MalformedDelta(f"{delta.kind} delta sent to the {self.kind} cache")

        if delta.type == DeltaType.BOOKMARK:
            self._observe_revision(_bookmark_revision(delta))
            return None

        record = ResourceRecord.from_object(self.kind, delta.object)
        if delta.type == DeltaType.DELETED:
            event = self._delete(record)
        else:
            event = self._upsert(record)
        self._observe_revision(record.resource_version)
        return event

    def replace(self, items: Iterable[object], revision: int) -> list[ChangeEvent]:
        """Reconcile the index with a full list taken at *revision*.

        Malformed items are dropped with a warning. Entries missing from the
        list are deleted unless the cache already holds a newer revision.
        """
        listed: dict[ResourceIdentity, ResourceRecord] = {}
        for item in items:
            try:
                record = ResourceRecord.from_object(self.kind, item)
            except MalformedDelta as exc:
                deltas_dropped_total.labels(kind=self.kind.value, reason="malformed").inc()
                _log.warning("listed_object_dropped", kind=self.kind.value, error=str(exc))
                continue
            listed[record.identity] = record

        # the list is authoritative up to its revision
        self._tombstones = {k: rv for k, rv in self._tombstones.items() if rv > revision}

        events: list[ChangeEvent] = []
        for record in sorted(listed.values(), key=lambda r: r.identity):
            event = self._upsert(record)
            if event is not None:
                events.append(event)

        for identity in sorted(set(self._index) - set(listed)):
            stored = self._index[identity]
            if stored.resource_version > revision:
                continue
            del self._index[identity]
            self._tombstones[identity] = revision
            deltas_applied_total.labels(kind=self.kind.value, type="resync_delete").inc()
            events.append(Deleted(record=stored.detached()))

        self._observe_revision(revision)
        cached_objects.labels(kind=self.kind.value).set(len(self._index))
        return events

    def _upsert(self, record: ResourceRecord) -> ChangeEvent | None:
        identity = record.identity
        tombstone = self._tombstones.get(identity)
        if tombstone is not None and record.resource_version <= tombstone:
            self._drop(record, "deleted")
            return None

        current = self._index.get(identity)
        if current is not None and record.resource_version <= current.resource_version:
            self._drop(record, "stale")
            return None

        self._index[identity] = record
        self._tombstones.pop(identity, None)
        cached_objects.labels(kind=self.kind.value).set(len(self._index))
        if current is None:
            deltas_applied_total.labels(kind=self.kind.value, type="added").inc()
            return Added(record=record.detached())
        deltas_applied_total.labels(kind=self.kind.value, type="modified").inc()
        return Modified(old=current.detached(), new=record.detached())

    def _delete(self, record: ResourceRecord) -> ChangeEvent | None:
        identity = record.identity
        current = self._index.get(identity)
        if current is None:
            self._drop(record, "absent")
            return None
        if record.resource_version < current.resource_version:
            self._drop(record, "stale")
            return None

        del self._index[identity]
        self._tombstones[identity] = max(record.resource_version, current.resource_version)
        cached_objects.labels(kind=self.kind.value).set(len(self._index))
        deltas_applied_total.labels(kind=self.kind.value, type="deleted").inc()
        return Deleted(record=record.detached())

    def _drop(self, record: ResourceRecord, reason: str) -> None:
        deltas_dropped_total.labels(kind=self.kind.value, reason=reason).inc()
        _log.debug(
            "delta_dropped",
            kind=self.kind.value,
            resource=str(record.identity),
            revision=record.resource_version,
            reason=reason,
        )

    def _observe_revision(self, revision: int) -> None:
        if revision > self._revision:
            self._revision = revision


def _bookmark_revision(delta: RawDelta) -> int:
    metadata = delta.object.get("metadata")
    if not isinstance(metadata, dict):
        raise MalformedDelta(f"{delta.kind} bookmark has no metadata")
    try:
        return int(str(metadata.get("resourceVersion", "")))
    except ValueError as exc:
        raise MalformedDelta(f"{delta.kind} bookmark resourceVersion is not an integer") from exc
