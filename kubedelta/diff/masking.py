"""Volatility masks: declared field paths ignored when comparing records.

A path is a dotted key sequence such as ``status`` or
``metadata.managedFields``. A literal dot inside a key is written ``\\.``,
e.g. ``metadata.annotations.deployment\\.kubernetes\\.io/revision``.
When a path crosses a list, it is applied to every element.
"""

from __future__ import annotations

import copy
import re
from collections.abc import Iterable
from dataclasses import dataclass

_UNESCAPED_DOT = re.compile(r"(?<!\\)\.")


def parse_path(path: str) -> tuple[str, ...]:
    """Split a dotted path into its keys, honouring ``\\.`` escapes."""
    if not path or not path.strip():
        raise ValueError("Field path must not be empty")
    keys = tuple(part.replace("\\.", ".") for part in _UNESCAPED_DOT.split(path.strip()))
    if any(not key for key in keys):
        raise ValueError(f"Field path has an empty segment: {path!r}")
    return keys


@dataclass(frozen=True)
class VolatilityMask:
    """A set of field paths to drop before deep comparison."""

    paths: tuple[tuple[str, ...], ...] = ()

    @classmethod
    def from_strings(cls, paths: Iterable[str]) -> VolatilityMask:
        parsed: list[tuple[str, ...]] = []
        for path in paths:
            keys = parse_path(path)
            if keys not in parsed:
                parsed.append(keys)
        return cls(paths=tuple(parsed))

    def union(self, other: VolatilityMask) -> VolatilityMask:
        merged = list(self.paths)
        merged.extend(p for p in other.paths if p not in merged)
        return VolatilityMask(paths=tuple(merged))

    def apply(self, document: dict[str, object]) -> dict[str, object]:
        """Return a deep copy of *document* with every masked path removed."""
        masked = copy.deepcopy(document)
        for keys in self.paths:
            _remove(masked, keys)
        return masked

    def __str__(self) -> str:
        return ",".join(".".join(k.replace(".", "\\.") for k in keys) for keys in self.paths)


def _remove(node: object, keys: tuple[str, ...]) -> None:
    if isinstance(node, list):
        for item in node:
            _remove(item, keys)
        return
    if not isinstance(node, dict) or keys[0] not in node:
        return
    if len(keys) == 1:
        del node[keys[0]]
        return
    _remove(node[keys[0]], keys[1:])
