"""Error taxonomy for kubedelta.

Only startup failures and SyncTimeout are meant to reach the top-level
caller. Everything else is contained by the component that observes it
and logged.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from kubedelta.models.events import ChangeEvent


class KubeDeltaError(Exception):
    """Base class for every kubedelta error."""


class SourceUnavailable(KubeDeltaError):
    """The remote source could not be reached or the stream broke.

    Transient: the watcher retries with back-off and re-lists on recovery.
    """


class WatchExpired(SourceUnavailable):
    """The watch cannot resume from the requested revision (HTTP 410 Gone)."""


class SyncTimeout(KubeDeltaError):
    """The cache did not reach the synced state before the deadline."""

    def __init__(self, kind: str, timeout: float) -> None:
        super().__init__(f"{kind} cache did not sync within {timeout:g}s")
        self.kind = kind
        self.timeout = timeout


class MalformedDelta(KubeDeltaError):
    """A delta or listed object could not be turned into a ResourceRecord."""


class SerializationError(KubeDeltaError):
    """A record could not be rendered to its canonical text form."""


class DiffFailure(KubeDeltaError):
    """The external diff tool could not produce a diff."""


class HandlerError(KubeDeltaError):
    """An event handler raised while processing an event.

    Never raised out of the dispatcher; it is handed to the error sink.
    """

    def __init__(self, handler: str, event: ChangeEvent, cause: Exception) -> None:
        super().__init__(f"handler '{handler}' failed on {event.verb} {event.identity}: {cause}")
        self.handler = handler
        self.event = event
        self.cause = cause
