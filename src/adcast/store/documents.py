"""Value types shared by document store implementations."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Iterable, Mapping, Sequence

TV_SETUP = "tvSetup"
TVS = "tvs"
CAROUSELS = "carousels"

EQUALS = "=="
ARRAY_CONTAINS = "array-contains"


@dataclass(frozen=True, slots=True)
class Document:
    """A record id together with a copy of its fields."""

    id: str
    fields: Mapping[str, Any]


DocumentCallback = Callable[[Mapping[str, Any] | None], None]
QueryCallback = Callable[[Sequence[Document]], None]
ErrorCallback = Callable[[Exception], None]


@dataclass(frozen=True, slots=True)
class Filter:
    """Single ``field op value`` clause; supports ``==`` and ``array-contains``."""

    field: str
    op: str
    value: Any

    def __post_init__(self) -> None:
        if self.op not in (EQUALS, ARRAY_CONTAINS):
            raise ValueError(f"unsupported filter operator '{self.op}'")

    def matches(self, fields: Mapping[str, Any]) -> bool:
        current = fields.get(self.field)
        if self.op == EQUALS:
            return current == self.value
        if isinstance(current, (list, tuple, set, frozenset)):
            return self.value in current
        return False


def matches_all(filters: Iterable[Filter], fields: Mapping[str, Any]) -> bool:
    return all(clause.matches(fields) for clause in filters)


__all__ = [
    "ARRAY_CONTAINS",
    "CAROUSELS",
    "Document",
    "DocumentCallback",
    "EQUALS",
    "ErrorCallback",
    "Filter",
    "QueryCallback",
    "TVS",
    "TV_SETUP",
    "matches_all",
]
