from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from activityportal.core.config import get_settings
from activityportal.core.errors import SourceReadFailure
from activityportal.domain.activity import Activity, ActivityFilters, as_utc
from activityportal.persistence.executor import QueryExecutor
from activityportal.services.query_filters import PredicateBuilder


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SourceSlice:
    # Projected activities plus whether every matching row was read (fewer rows than the cap).
    activities: list[Activity]
    complete: bool


class SourceAdapter:
    """Reads one source table and projects its rows into activities.

    Subclasses describe the table through class attributes and implement
    ``project``. Every read is capped at ``limit()`` rows ordered by the
    source timestamp, newest first; callers merge across adapters.
    """

    name: str = ""
    select_sql: str = ""
    from_sql: str = ""
    id_column: str = ""
    order_column: str = ""
    # Earliest and latest timestamps a row can project; used for window push-down.
    earliest_column: str = ""
    latest_column: str = ""
    tenant_column: str | None = None
    base_conditions: tuple[str, ...] = ()
    default_limit: int = 100
    entity_types: frozenset[str] = frozenset()
    actions: frozenset[str] = frozenset()
    # Rough activities produced per row, used for the unfiltered total estimate.
    activities_per_row: int = 1
    # Row conditions selecting exactly the rows that project a given action.
    action_conditions: dict[str, str] = {}

    def limit(self) -> int:
        return get_settings().source_limit_overrides().get(self.name, self.default_limit)

    def emits(self, filters: ActivityFilters) -> bool:
        # Skip adapters that can never satisfy the categorical filters.
        if filters.entity_type and filters.entity_type not in self.entity_types:
            return False
        if filters.action and filters.action not in self.actions:
            return False
        return True

    def count_per_row(self, filters: ActivityFilters) -> int:
        # A row projects each action at most once.
        return 1 if filters.action else self.activities_per_row

    def _predicate(self, filters: ActivityFilters) -> PredicateBuilder:
        builder = PredicateBuilder()
        for condition in self.base_conditions:
            builder.condition(condition)
        action_condition = self.action_conditions.get(filters.action or "")
        if action_condition:
            builder.condition(action_condition)
        # A row can only fall inside the window if its span overlaps it.
        builder.at_least(self.latest_column or self.order_column, filters.date_from)
        builder.at_most(self.earliest_column or self.order_column, filters.date_to)
        if self.tenant_column:
            builder.equals(self.tenant_column, filters.tenant_id)
        return builder

    def build_query(self, filters: ActivityFilters) -> tuple[str, list[Any]]:
        builder = self._predicate(filters)
        limit = builder.bind(self.limit())
        query = (
            f"SELECT {self.select_sql} FROM {self.from_sql} {builder.sql()} "
            f"ORDER BY {self.order_column} DESC LIMIT {limit}"
        )
        return query, builder.params

    def build_count_query(self, filters: ActivityFilters) -> tuple[str, list[Any]]:
        builder = self._predicate(filters)
        return f"SELECT COUNT(*) AS total FROM {self.from_sql} {builder.sql()}", builder.params

    def build_origin_query(self, origin_id: str) -> tuple[str, list[Any]]:
        builder = PredicateBuilder()
        for condition in self.base_conditions:
            builder.condition(condition)
        builder.condition(f"CAST({self.id_column} AS TEXT) = {{0}}", origin_id)
        return f"SELECT {self.select_sql} FROM {self.from_sql} {builder.sql()} LIMIT 1", builder.params

    async def fetch(self, executor: QueryExecutor, filters: ActivityFilters) -> list[dict[str, Any]]:
        query, params = self.build_query(filters)
        try:
            return await executor.execute(query, params)
        except Exception as exc:  # noqa: BLE001 - surfaced as a source failure
            raise SourceReadFailure(self.name) from exc

    def project(self, row: dict[str, Any]) -> list[Activity]:
        raise NotImplementedError

    def project_rows(self, rows: list[dict[str, Any]]) -> list[Activity]:
        activities: list[Activity] = []
        for row in rows:
            activities.extend(self.project(row))
        return activities

    async def read(self, executor: QueryExecutor, filters: ActivityFilters) -> SourceSlice:
        # A failing source contributes nothing; the rest of the merge proceeds.
        try:
            rows = await self.fetch(executor, filters)
        except SourceReadFailure as exc:
            logger.warning("source_read_failed source=%s", exc.source, exc_info=exc.__cause__ or exc)
            return SourceSlice(activities=[], complete=False)
        return SourceSlice(activities=self.project_rows(rows), complete=len(rows) < self.limit())

    async def reconstruct(self, executor: QueryExecutor, filters: ActivityFilters) -> list[Activity]:
        return (await self.read(executor, filters)).activities

    async def count(self, executor: QueryExecutor, filters: ActivityFilters) -> int:
        query, params = self.build_count_query(filters)
        try:
            rows = await executor.execute(query, params)
        except Exception as exc:  # noqa: BLE001 - estimate degrades to zero
            logger.warning("source_count_failed source=%s", self.name, exc_info=exc)
            return 0
        if not rows:
            return 0
        return int(rows[0].get("total") or 0) * self.count_per_row(filters)

    async def fetch_by_origin(self, executor: QueryExecutor, origin_id: str) -> list[Activity]:
        query, params = self.build_origin_query(origin_id)
        try:
            rows = await executor.execute(query, params)
        except Exception as exc:  # noqa: BLE001 - lookup degrades to not found
            logger.warning("source_lookup_failed source=%s origin_id=%s", self.name, origin_id, exc_info=exc)
            return []
        return self.project_rows(rows)


def full_name(first: Any, last: Any) -> str | None:
    name = " ".join(part for part in (first, last) if part)
    return name or None


def text_or_none(value: Any) -> str | None:
    if value is None:
        return None
    return str(value)


def was_updated(created_at: datetime | None, updated_at: datetime | None) -> bool:
    # An update is only reconstructed when the row changed after creation.
    if created_at is None or updated_at is None:
        return False
    return as_utc(updated_at) != as_utc(created_at)


def updated_condition(alias: str) -> str:
    # SQL counterpart of was_updated for the row alias.
    return f'{alias}."updatedAt" <> {alias}."createdAt"'
