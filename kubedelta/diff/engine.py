"""In-process diff engine.

Records are serialized to canonical YAML (sorted keys, block style) and
compared line by line. Stable key ordering is what makes the output
deterministic: the same pair of inputs always yields byte-identical lines.
"""

from __future__ import annotations

import difflib

import yaml

from kubedelta.diff.masking import VolatilityMask
from kubedelta.errors import SerializationError
from kubedelta.models.events import DiffLine, DiffLineKind
from kubedelta.models.resources import ResourceRecord

DEFAULT_CONTEXT_LINES = 3


def canonical_yaml(document: object) -> str:
    """Serialize *document* to YAML with sorted keys.

    Raises:
        SerializationError: the document holds a value YAML cannot represent
            or keys that cannot be ordered.
    """
    try:
        return yaml.safe_dump(
            document,
            sort_keys=True,
            default_flow_style=False,
            allow_unicode=True,
            width=4096,
        )
    except (yaml.YAMLError, TypeError) as exc:
        raise SerializationError(f"cannot serialize document: {exc}") from exc


def record_document(record: ResourceRecord, mask: VolatilityMask | None = None) -> dict[str, object]:
    document = record.to_document()
    if mask is not None:
        document = mask.apply(document)
    return document


def diff_documents(
    old: object,
    new: object,
    *,
    context: int = DEFAULT_CONTEXT_LINES,
) -> list[DiffLine]:
    """Line diff of two plain documents. Identical documents yield ``[]``."""
    old_lines = canonical_yaml(old).splitlines()
    new_lines = canonical_yaml(new).splitlines()
    if old_lines == new_lines:
        return []

    matcher = difflib.SequenceMatcher(a=old_lines, b=new_lines, autojunk=False)
    lines: list[DiffLine] = []
    for group in matcher.get_grouped_opcodes(context):
        for tag, i1, i2, j1, j2 in group:
            if tag == "equal":
                lines.extend(DiffLine(DiffLineKind.CONTEXT, text) for text in old_lines[i1:i2])
                continue
            if tag in ("replace", "delete"):
                lines.extend(DiffLine(DiffLineKind.REMOVED, text) for text in old_lines[i1:i2])
            if tag in ("replace", "insert"):
                lines.extend(DiffLine(DiffLineKind.ADDED, text) for text in new_lines[j1:j2])
    return lines


def diff(
    old: ResourceRecord,
    new: ResourceRecord,
    *,
    mask: VolatilityMask | None = None,
    context: int = DEFAULT_CONTEXT_LINES,
) -> list[DiffLine]:
    """Diff two snapshots of the same resource.

    When *mask* is given, masked fields are removed from both sides first so
    the output only shows the changes that made the event significant.
    """
    return diff_documents(record_document(old, mask), record_document(new, mask), context=context)


def render(lines: list[DiffLine]) -> list[str]:
    """Render diff lines with conventional ``+``/``-``/`` `` prefixes."""
    return [line.render() for line in lines]
