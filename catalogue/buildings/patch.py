"""Field-level forward/reverse patches between two versions of a building."""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class Patch:
    """Forward and reverse halves of a single change.

    Attributes:
        forward: {field: new_value} for every changed field
        reverse: {field: old_value} for the same fields
    """

    forward: dict[str, Any] = field(default_factory=dict)
    reverse: dict[str, Any] = field(default_factory=dict)

    def is_empty(self) -> bool:
        return not self.forward


def diff(old: Mapping[str, Any], new: Mapping[str, Any], whitelist: Iterable[str]) -> Patch:
    """Compare two versions of a record and return the shallow patch between them.

    Only keys present in `new` and in `whitelist` are considered. A key is
    included when the values differ or their types differ; lists and nested
    mappings are replaced whole, never merged. A key missing from `old`
    compares as None.
    """
    allowed = frozenset(whitelist)
    forward: dict[str, Any] = {}
    reverse: dict[str, Any] = {}
    for key, value in new.items():
        if key not in allowed:
            continue
        previous = old.get(key)
        # 1 == True and 3 == 3.0 in Python; treat a type change as a change
        if type(previous) is type(value) and previous == value:
            continue
        forward[key] = value
        reverse[key] = previous
    return Patch(forward=forward, reverse=reverse)


def apply_patch(fields: Mapping[str, Any], patch: Mapping[str, Any]) -> dict[str, Any]:
    """Return a copy of `fields` with every key in `patch` overwritten."""
    result = dict(fields)
    result.update(patch)
    return result
