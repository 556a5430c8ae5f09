"""Abstract list+watch boundary every remote source implements."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator

from kubedelta.models.events import ListResult, RawDelta
from kubedelta.models.resources import ResourceKind


class RemoteSource(ABC):
    """List+watch access to a remote collection of resources.

    Implementations raise SourceUnavailable on connectivity loss and
    WatchExpired when a watch cannot resume from the requested revision.
    """

    @abstractmethod
    async def list(self, kind: ResourceKind) -> ListResult:
        """Return every object of *kind* in scope and the collection revision."""

    @abstractmethod
    def watch(self, kind: ResourceKind, from_revision: int) -> AsyncIterator[RawDelta]:
        """Stream deltas for *kind* newer than *from_revision*.

        The iterator may end when the server closes the stream; the caller
        re-watches. Closing the iterator (``aclose()``) must release the
        underlying connection.
        """

    async def close(self) -> None:  # noqa: B027
        """Release any pooled connections. Optional."""
