"""Console handler: the human-readable change report.

For every event it writes ``<KIND> <VERB>: <namespace>/<name>``. MODIFIED
events are followed by the diff of the two masked snapshots, one
``+``/``-``/`` `` prefixed line per diff line. When the snapshots cannot be
serialized, a single ``<diff unavailable: ...>`` line stands in for the diff.
"""

from __future__ import annotations

import sys
from collections.abc import Callable

import structlog

from kubedelta.diff.classifier import ChangeClassifier
from kubedelta.diff.engine import DEFAULT_CONTEXT_LINES, diff, render
from kubedelta.diff.external import external_diff
from kubedelta.dispatch.manager import EventHandler
from kubedelta.errors import DiffFailure, SerializationError
from kubedelta.models.events import ChangeEvent, DiffLine, Modified

_log = structlog.get_logger(component="dispatch.console")


def format_header(event: ChangeEvent) -> str:
    return f"{event.kind.value.upper()} {event.verb.value}: {event.identity}"


def _write_stdout(line: str) -> None:
    sys.stdout.write(line + "\n")
    sys.stdout.flush()


class ConsoleEventHandler(EventHandler):
    """Writes the change report line by line.

    Args:
        classifier: Source of the per-kind masks applied before diffing.
        emit:       Line sink. Defaults to stdout.
        context:    Context lines around each change.
        diff_tool:  ``"git"`` to diff through git; empty for in-process.
    """

    def __init__(
        self,
        classifier: ChangeClassifier,
        emit: Callable[[str], None] | None = None,
        context: int = DEFAULT_CONTEXT_LINES,
        diff_tool: str = "",
    ) -> None:
        self._classifier = classifier
        self._emit = emit or _write_stdout
        self._context = context
        self._diff_tool = diff_tool

    @property
    def name(self) -> str:
        return "console"

    async def handle(self, event: ChangeEvent) -> None:
        lines = [format_header(event)]
        if isinstance(event, Modified):
            try:
                lines.extend(render(await self._diff(event)))
            except SerializationError as exc:
                _log.error(
                    "diff_serialization_failed",
                    kind=event.kind.value,
                    resource=str(event.identity),
                    error=str(exc),
                )
                lines.append(f"  <diff unavailable: {exc}>")
        for line in lines:
            self._emit(line)

    async def _diff(self, event: Modified) -> list[DiffLine]:
        mask = self._classifier.mask_for(event.kind)
        if self._diff_tool == "git":
            try:
                return await external_diff(event.old, event.new, mask=mask, context=self._context)
            except DiffFailure as exc:
                _log.warning("external_diff_unavailable", resource=str(event.identity), error=str(exc))
        return diff(event.old, event.new, mask=mask, context=self._context)
