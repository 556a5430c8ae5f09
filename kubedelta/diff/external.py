"""Optional diff through an external tool (``git diff --no-index``).

Each call writes both canonical serializations into its own temporary
directory, so concurrent diffs never share scratch files. The directory is
removed when the call returns, whatever the outcome.
"""

from __future__ import annotations

import asyncio
import shutil
import tempfile
from pathlib import Path

import structlog

from kubedelta.diff.engine import DEFAULT_CONTEXT_LINES, canonical_yaml, record_document
from kubedelta.diff.masking import VolatilityMask
from kubedelta.errors import DiffFailure
from kubedelta.models.events import DiffLine, DiffLineKind
from kubedelta.models.resources import ResourceRecord

_log = structlog.get_logger(component="diff.external")

_TOOL_TIMEOUT_SECONDS = 10.0

_LINE_KINDS = {
    "+": DiffLineKind.ADDED,
    "-": DiffLineKind.REMOVED,
    " ": DiffLineKind.CONTEXT,
}


def git_command(old_path: Path, new_path: Path, context: int) -> list[str]:
    return [
        "git",
        "--no-pager",
        "diff",
        "--no-index",
        "--no-color",
        f"-U{context}",
        str(old_path),
        str(new_path),
    ]


def parse_unified(output: str) -> list[DiffLine]:
    """Turn unified diff output into DiffLines, dropping file and hunk headers."""
    lines: list[DiffLine] = []
    in_hunk = False
    for raw in output.splitlines():
        if raw.startswith("@@"):
            in_hunk = True
            continue
        if not in_hunk or raw.startswith("\\"):
            continue
        kind = _LINE_KINDS.get(raw[:1])
        if kind is None:
            # a new file header ("diff --git ...") ends the hunk
            in_hunk = False
            continue
        lines.append(DiffLine(kind, raw[1:]))
    return lines


async def external_diff(
    old: ResourceRecord,
    new: ResourceRecord,
    *,
    mask: VolatilityMask | None = None,
    context: int = DEFAULT_CONTEXT_LINES,
) -> list[DiffLine]:
    """Diff two records with git.

    Raises:
        SerializationError: either record cannot be serialized.
        DiffFailure: git is missing, times out, or exits with status > 1.
    """
    old_text = canonical_yaml(record_document(old, mask))
    new_text = canonical_yaml(record_document(new, mask))
    if old_text == new_text:
        return []
    if shutil.which("git") is None:
        raise DiffFailure("git executable not found on PATH")

    with tempfile.TemporaryDirectory(prefix="kubedelta-diff-") as scratch:
        old_path = Path(scratch) / "old.yaml"
        new_path = Path(scratch) / "new.yaml"
        old_path.write_text(old_text, encoding="utf-8")
        new_path.write_text(new_text, encoding="utf-8")

        proc = await asyncio.create_subprocess_exec(
            *git_command(old_path, new_path, context),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=_TOOL_TIMEOUT_SECONDS)
        except TimeoutError as exc:
            proc.kill()
            await proc.wait()
            raise DiffFailure(f"git diff timed out after {_TOOL_TIMEOUT_SECONDS:g}s") from exc

    # git diff exits 1 when the files differ; anything above is an error
    if proc.returncode is None or proc.returncode > 1:
        _log.warning("external_diff_failed", returncode=proc.returncode, stderr=stderr.decode(errors="replace")[:200])
        raise DiffFailure(f"git diff exited with status {proc.returncode}")
    return parse_unified(stdout.decode("utf-8", errors="replace"))
