from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Sequence

from activityportal.core.errors import InvalidFilterError


_MARKER = re.compile(r"\{(\d+)\}")


def _is_absent(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str) and not value.strip():
        return True
    return False


class PredicateBuilder:
    """Accumulates SQL conditions with numbered bind placeholders.

    Fragments reference their own values as ``{0}``, ``{1}``...; each marker is
    rewritten to the next free ``:pN`` name when the condition is added, so the
    rendered text never contains user input. Conditions whose value is absent
    (``None`` or a blank string) are skipped entirely.
    """

    def __init__(self, *, start: int = 1) -> None:
        self._start = start
        self._clauses: list[str] = []
        self._values: list[Any] = []

    @property
    def next_index(self) -> int:
        return self._start + len(self._values)

    @property
    def params(self) -> list[Any]:
        return list(self._values)

    def __bool__(self) -> bool:
        return bool(self._clauses)

    def condition(self, fragment: str, *values: Any) -> "PredicateBuilder":
        # Add a raw fragment; every marker must reference a supplied value.
        indexes = {int(match) for match in _MARKER.findall(fragment)}
        if indexes != set(range(len(values))):
            raise ValueError(f"fragment markers do not match {len(values)} values: {fragment}")
        base = self.next_index
        rendered = _MARKER.sub(lambda match: f":p{base + int(match.group(1))}", fragment)
        self._values.extend(values)
        self._clauses.append(rendered)
        return self

    def search(self, columns: Sequence[str], term: str | None) -> "PredicateBuilder":
        # Case-insensitive substring match OR-combined across columns.
        if _is_absent(term) or not columns:
            return self
        parts = " OR ".join(f"{column} ILIKE {{0}}" for column in columns)
        return self.condition(f"({parts})", f"%{term.strip()}%")  # type: ignore[union-attr]

    def equals(self, column: str, value: Any) -> "PredicateBuilder":
        if _is_absent(value):
            return self
        return self.condition(f"{column} = {{0}}", value)

    def one_of(self, column: str, values: Iterable[Any] | None) -> "PredicateBuilder":
        present = [value for value in (values or []) if not _is_absent(value)]
        if not present:
            return self
        markers = ", ".join(f"{{{index}}}" for index in range(len(present)))
        return self.condition(f"{column} IN ({markers})", *present)

    def at_least(self, column: str, value: Any) -> "PredicateBuilder":
        if _is_absent(value):
            return self
        return self.condition(f"{column} >= {{0}}", value)

    def at_most(self, column: str, value: Any) -> "PredicateBuilder":
        if _is_absent(value):
            return self
        return self.condition(f"{column} <= {{0}}", value)

    def below(self, column: str, value: Any) -> "PredicateBuilder":
        if _is_absent(value):
            return self
        return self.condition(f"{column} < {{0}}", value)

    def between(self, column: str, start: datetime | None, end: datetime | None) -> "PredicateBuilder":
        # Inclusive on both ends; either bound may be missing.
        return self.at_least(column, start).at_most(column, end)

    def within(self, column: str, start: datetime | None, end: datetime | None) -> "PredicateBuilder":
        # Half-open [start, end) window used by KPI and series queries.
        return self.at_least(column, start).below(column, end)

    def score_range(self, column: str, minimum: Any, maximum: Any) -> "PredicateBuilder":
        return self.at_least(column, minimum).at_most(column, maximum)

    def is_null(self, column: str) -> "PredicateBuilder":
        self._clauses.append(f"{column} IS NULL")
        return self

    def not_null(self, column: str) -> "PredicateBuilder":
        self._clauses.append(f"{column} IS NOT NULL")
        return self

    def bind(self, value: Any) -> str:
        # Reserve a placeholder outside the WHERE clause (LIMIT, OFFSET, CTE inputs).
        placeholder = f":p{self.next_index}"
        self._values.append(value)
        return placeholder

    def sql(self, prefix: str = "WHERE") -> str:
        if not self._clauses:
            return ""
        joined = " AND ".join(self._clauses)
        return f"{prefix} {joined}" if prefix else joined


@dataclass(frozen=True)
class SortSpec:
    # Map a public sort name onto a trusted column expression.
    column: str
    nulls_last: bool = False


@dataclass(frozen=True)
class SortField:
    name: str
    spec: SortSpec
    direction: str

    def sql(self) -> str:
        clause = f"{self.spec.column} {self.direction.upper()}"
        if self.spec.nulls_last:
            clause += " NULLS LAST"
        return clause


def parse_sort(
    *,
    sort_by: str | None,
    sort_order: str | None,
    allowed: dict[str, SortSpec],
    default: str,
    default_order: str = "desc",
) -> SortField:
    # Validate the requested sort against an allow-list before it reaches SQL text.
    name = (sort_by or default).strip()
    spec = allowed.get(name)
    if spec is None:
        raise InvalidFilterError(f"Unsupported sort field: {name}")
    direction = (sort_order or default_order).strip().lower()
    if direction not in {"asc", "desc"}:
        raise InvalidFilterError(f"Unsupported sort order: {sort_order}")
    return SortField(name=name, spec=spec, direction=direction)


def page_offset(page: int, limit: int) -> int:
    return (max(1, page) - 1) * limit


def total_pages(total: int, limit: int) -> int:
    if limit <= 0:
        return 0
    return (total + limit - 1) // limit
