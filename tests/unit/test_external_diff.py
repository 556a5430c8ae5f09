"""Unit tests for the git-backed diff."""

from __future__ import annotations

import shutil
from pathlib import Path

import pytest

from kubedelta.diff.classifier import REVISION_MASK
from kubedelta.diff.external import external_diff, git_command, parse_unified
from kubedelta.diff.masking import VolatilityMask
from kubedelta.errors import DiffFailure
from kubedelta.models.events import DiffLine, DiffLineKind
from kubedelta.models.resources import ResourceKind, ResourceRecord
from tests.fakes import make_deployment

_MASK = REVISION_MASK.union(VolatilityMask.from_strings(["status", "metadata.managedFields"]))

_GIT_OUTPUT = """\
diff --git a/old.yaml b/new.yaml
index 1111111..2222222 100644
--- a/old.yaml
+++ b/new.yaml
@@ -8,3 +8,3 @@ metadata:
 spec:
-  replicas: 3
+  replicas: 5
   selector:
\\ No newline at end of file
"""


def _record(**kwargs: object) -> ResourceRecord:
    return ResourceRecord.from_object(ResourceKind.DEPLOYMENT, make_deployment(**kwargs))  # type: ignore[arg-type]


def test_git_command() -> None:
    cmd = git_command(Path("/tmp/a.yaml"), Path("/tmp/b.yaml"), 2)
    assert cmd[:4] == ["git", "--no-pager", "diff", "--no-index"]
    assert "-U2" in cmd
    assert cmd[-2:] == ["/tmp/a.yaml", "/tmp/b.yaml"]


def test_parse_unified_skips_headers() -> None:
    assert parse_unified(_GIT_OUTPUT) == [
        DiffLine(DiffLineKind.CONTEXT, "spec:"),
        DiffLine(DiffLineKind.REMOVED, "  replicas: 3"),
        DiffLine(DiffLineKind.ADDED, "  replicas: 5"),
        DiffLine(DiffLineKind.CONTEXT, "  selector:"),
    ]


def test_parse_unified_empty_output() -> None:
    assert parse_unified("") == []


async def test_identical_records_need_no_tool(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("kubedelta.diff.external.shutil.which", lambda _name: None)
    assert await external_diff(_record(rv=5), _record(rv=6), mask=_MASK) == []


async def test_missing_git_raises(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("kubedelta.diff.external.shutil.which", lambda _name: None)
    with pytest.raises(DiffFailure):
        await external_diff(_record(rv=6, replicas=3), _record(rv=7, replicas=5), mask=_MASK)


@pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")
async def test_git_diff_matches_in_process_changes() -> None:
    lines = await external_diff(_record(rv=6, replicas=3), _record(rv=7, replicas=5), mask=_MASK, context=1)
    changes = [line for line in lines if line.kind != DiffLineKind.CONTEXT]
    assert changes == [
        DiffLine(DiffLineKind.REMOVED, "  replicas: 3"),
        DiffLine(DiffLineKind.ADDED, "  replicas: 5"),
    ]
