"""Change classification: decide whether a Modified event is worth forwarding.

The remote source emits status and heartbeat churn far more often than real
spec changes. A Modified event is significant only when the two records still
differ after each kind's volatility mask has been applied. Added and Deleted
events are always significant.
"""

from __future__ import annotations

from collections.abc import Mapping

import structlog

from kubedelta.diff.masking import VolatilityMask
from kubedelta.models.events import ChangeEvent, Modified
from kubedelta.models.resources import ResourceKind, ResourceRecord
from kubedelta.observability.metrics import events_suppressed_total

_log = structlog.get_logger(component="diff.classifier")

# The revision marker changes on every write and never carries meaning.
REVISION_MASK = VolatilityMask.from_strings(["metadata.resourceVersion"])


class ChangeClassifier:
    """Per-kind volatility masks plus the significance check."""

    def __init__(self, masks: Mapping[ResourceKind, VolatilityMask] | None = None) -> None:
        self._masks: dict[ResourceKind, VolatilityMask] = dict(masks or {})

    def register(self, kind: ResourceKind, mask: VolatilityMask) -> None:
        """Declare the volatile fields of *kind*, replacing any previous mask."""
        self._masks[kind] = mask
        _log.debug("volatility_mask_registered", kind=kind.value, paths=str(mask))

    def mask_for(self, kind: ResourceKind) -> VolatilityMask:
        """Return the effective mask of *kind*, revision marker included."""
        return REVISION_MASK.union(self._masks.get(kind, VolatilityMask()))

    def comparison_key(self, record: ResourceRecord) -> dict[str, object]:
        return self.mask_for(record.kind).apply(record.to_document())

    def is_significant(self, event: ChangeEvent) -> bool:
        if not isinstance(event, Modified):
            return True
        if self.comparison_key(event.old) != self.comparison_key(event.new):
            return True
        events_suppressed_total.labels(kind=event.kind.value).inc()
        _log.debug(
            "modification_suppressed",
            kind=event.kind.value,
            resource=str(event.identity),
            old_revision=event.old.resource_version,
            new_revision=event.new.resource_version,
        )
        return False
