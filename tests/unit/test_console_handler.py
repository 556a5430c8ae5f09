"""Unit tests for the console change report."""

from __future__ import annotations

import pytest

from kubedelta.diff.classifier import ChangeClassifier
from kubedelta.diff.masking import VolatilityMask
from kubedelta.dispatch.console import ConsoleEventHandler, format_header
from kubedelta.models.events import Added, Deleted, Modified
from kubedelta.models.resources import ResourceKind, ResourceRecord
from tests.fakes import make_deployment


def _record(**kwargs: object) -> ResourceRecord:
    return ResourceRecord.from_object(ResourceKind.DEPLOYMENT, make_deployment(**kwargs))  # type: ignore[arg-type]


@pytest.fixture()
def classifier() -> ChangeClassifier:
    return ChangeClassifier({ResourceKind.DEPLOYMENT: VolatilityMask.from_strings(["status", "metadata.managedFields"])})


class TestFormatHeader:
    def test_verbs(self) -> None:
        record = _record()
        assert format_header(Added(record)) == "DEPLOYMENT CREATED: default/web"
        assert format_header(Deleted(record)) == "DEPLOYMENT DELETED: default/web"
        assert format_header(Modified(record, record)) == "DEPLOYMENT MODIFIED: default/web"

    def test_cluster_scoped_identity_has_no_slash(self) -> None:
        raw = make_deployment()
        raw["metadata"].pop("namespace")
        record = ResourceRecord.from_object(ResourceKind.DEPLOYMENT, raw)
        assert format_header(Added(record)) == "DEPLOYMENT CREATED: web"


class TestConsoleEventHandler:
    async def test_added_prints_header_only(self, classifier: ChangeClassifier) -> None:
        lines: list[str] = []
        await ConsoleEventHandler(classifier, emit=lines.append).handle(Added(_record()))
        assert lines == ["DEPLOYMENT CREATED: default/web"]

    async def test_deleted_prints_header_only(self, classifier: ChangeClassifier) -> None:
        lines: list[str] = []
        await ConsoleEventHandler(classifier, emit=lines.append).handle(Deleted(_record()))
        assert lines == ["DEPLOYMENT DELETED: default/web"]

    async def test_modified_prints_masked_diff(self, classifier: ChangeClassifier) -> None:
        lines: list[str] = []
        event = Modified(_record(rv=6, replicas=3), _record(rv=7, replicas=5))
        await ConsoleEventHandler(classifier, emit=lines.append).handle(event)

        assert lines[0] == "DEPLOYMENT MODIFIED: default/web"
        changed = [line for line in lines[1:] if line[:1] in "+-"]
        assert changed == ["-  replicas: 3", "+  replicas: 5"]
        assert not any("managedFields" in line or "readyReplicas" in line for line in lines)

    async def test_context_setting_is_honoured(self, classifier: ChangeClassifier) -> None:
        lines: list[str] = []
        event = Modified(_record(rv=6, replicas=3), _record(rv=7, replicas=5))
        await ConsoleEventHandler(classifier, emit=lines.append, context=0).handle(event)
        assert lines == ["DEPLOYMENT MODIFIED: default/web", "-  replicas: 3", "+  replicas: 5"]

    async def test_unserializable_record_prints_marker_line(self, classifier: ChangeClassifier) -> None:
        lines: list[str] = []
        raw = make_deployment(rv=7)
        raw["spec"]["handle"] = object()
        event = Modified(_record(rv=6), ResourceRecord.from_object(ResourceKind.DEPLOYMENT, raw))
        await ConsoleEventHandler(classifier, emit=lines.append).handle(event)
        assert len(lines) == 2
        assert lines[0] == "DEPLOYMENT MODIFIED: default/web"
        assert lines[1].startswith("  <diff unavailable: ")
        assert lines[1].endswith(">")

    async def test_missing_git_falls_back_to_in_process_diff(
        self, classifier: ChangeClassifier, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr("kubedelta.diff.external.shutil.which", lambda _name: None)
        lines: list[str] = []
        event = Modified(_record(rv=6, replicas=3), _record(rv=7, replicas=5))
        await ConsoleEventHandler(classifier, emit=lines.append, diff_tool="git").handle(event)
        assert "-  replicas: 3" in lines
        assert "+  replicas: 5" in lines

    def test_name(self, classifier: ChangeClassifier) -> None:
        assert ConsoleEventHandler(classifier).name == "console"
