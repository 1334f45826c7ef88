from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, AsyncIterator

from activityportal.core.config import get_settings
from activityportal.core.errors import InvalidFilterError, SourceReadFailure
from activityportal.domain.activity import as_utc
from activityportal.domain.analytics import MetricWindow
from activityportal.persistence.executor import QueryExecutor
from activityportal.services.heuristics import round_half_up
from activityportal.services.query_filters import PredicateBuilder
from activityportal.services.sources.accounts import LOGIN_ACTIONS_SQL, LOGIN_SUCCESS

logger = logging.getLogger(__name__)

# Keys double as date_trunc units; only these literals ever reach the statement.
GRANULARITIES = {
    "hour": ("%Y-%m-%d %H:00:00", timedelta(hours=1)),
    "day": ("%Y-%m-%d", timedelta(days=1)),
}


@dataclass(frozen=True)
class SeriesMetric:
    name: str
    expression: str
    average: bool = False

    def value(self, raw: Any) -> int:
        if raw is None:
            return 0
        if self.average:
            return round_half_up(float(raw))
        return int(raw)


def _count(name: str, condition: str | None = None) -> SeriesMetric:
    if condition is None:
        return SeriesMetric(name, "COUNT(*)")
    return SeriesMetric(name, f"COUNT(*) FILTER (WHERE {condition})")


def _average(name: str, column: str) -> SeriesMetric:
    return SeriesMetric(name, f"AVG({column})", average=True)


@dataclass(frozen=True)
class SeriesSource:
    name: str
    from_sql: str
    timestamp_column: str
    metrics: tuple[SeriesMetric, ...]
    where: tuple[str, ...] = ()

    @property
    def metric_names(self) -> tuple[str, ...]:
        return tuple(metric.name for metric in self.metrics)


SERIES_SOURCES: dict[str, SeriesSource] = {
    source.name: source
    for source in (
        SeriesSource(
            name="logins",
            from_sql='public."SecurityLog" sl',
            timestamp_column='sl."createdAt"',
            where=(f"sl.action IN ({LOGIN_ACTIONS_SQL})",),
            metrics=(
                _count("total"),
                _count("success", f"sl.action = '{LOGIN_SUCCESS}'"),
                _count("failed", "sl.action LIKE '%FAIL%'"),
            ),
        ),
        SeriesSource(
            name="tasks",
            from_sql='public."Task" t',
            timestamp_column='t."createdAt"',
            metrics=(_count("created"), _count("completed", "t.status = 'PASS'")),
        ),
        SeriesSource(
            name="documents",
            from_sql='public."Document" d',
            timestamp_column='d."createdAt"',
            metrics=(_count("created"), _count("approved", "d.status = 'PASS'")),
        ),
        SeriesSource(
            name="vendor_scans",
            from_sql='public."VendorAPI" va',
            timestamp_column='va."lastSecurityScan"',
            where=('va."lastSecurityScan" IS NOT NULL',),
            metrics=(_count("scans"), _average("avg_score", "va.score")),
        ),
        SeriesSource(
            name="security_tests",
            from_sql='public."TestCase" tc',
            timestamp_column='tc."updatedAt"',
            where=("tc.status IS NOT NULL",),
            metrics=(_count("executions"), _count("passed", "tc.status = 'PASS'")),
        ),
        SeriesSource(
            name="audits",
            from_sql='public."AiAuditResult" ar',
            timestamp_column='ar."createdAt"',
            where=("ar.score IS NOT NULL",),
            metrics=(_count("audits"), _average("avg_score", "ar.score")),
        ),
    )
}


def series_source(name: str) -> SeriesSource:
    source = SERIES_SOURCES.get(name)
    if source is None:
        raise InvalidFilterError(f"Unsupported time series source: {name}")
    return source


def validate_granularity(granularity: str) -> str:
    if granularity not in GRANULARITIES:
        raise InvalidFilterError(f"Unsupported granularity: {granularity}")
    return granularity


def truncate(timestamp: datetime, granularity: str) -> datetime:
    value = as_utc(timestamp).replace(minute=0, second=0, microsecond=0)  # type: ignore[union-attr]
    if granularity == "day":
        value = value.replace(hour=0)
    return value


def bucket_label(timestamp: datetime, granularity: str) -> str:
    label_format, _ = GRANULARITIES[granularity]
    return truncate(timestamp, granularity).strftime(label_format)


def bucket_count(window: MetricWindow, granularity: str) -> int:
    _, step = GRANULARITIES[validate_granularity(granularity)]
    current = truncate(window.start, granularity)
    count = 0
    while current < window.end:
        count += 1
        current += step
    return count


def build_series_query(source: SeriesSource, window: MetricWindow, granularity: str) -> tuple[str, list[Any]]:
    # One row per non-empty bucket; the database does the counting.
    bucket_sql = f"date_trunc('{validate_granularity(granularity)}', {source.timestamp_column})"
    builder = PredicateBuilder()
    builder.within(source.timestamp_column, window.start, window.end)
    for condition in source.where:
        builder.condition(condition)
    columns = ", ".join(f"{metric.expression} AS {metric.name}" for metric in source.metrics)
    query = (
        f"SELECT {bucket_sql} AS bucket, {columns} FROM {source.from_sql} "
        f"{builder.sql()} GROUP BY 1 ORDER BY 1 ASC"
    )
    return query, builder.params


def aggregate_points(rows: list[dict[str, Any]], source: SeriesSource, granularity: str) -> list[dict[str, Any]]:
    # Label each aggregated bucket row; empty buckets are never returned by the query.
    points: list[dict[str, Any]] = []
    for row in sorted((row for row in rows if row.get("bucket") is not None), key=lambda row: as_utc(row["bucket"])):
        point: dict[str, Any] = {"time_bucket": bucket_label(row["bucket"], granularity)}
        for metric in source.metrics:
            point[metric.name] = metric.value(row.get(metric.name))
        points.append(point)
    return points


def zero_fill(
    points: list[dict[str, Any]],
    window: MetricWindow,
    granularity: str,
    metrics: tuple[str, ...],
) -> list[dict[str, Any]]:
    # Emit one point per bucket in the window so charts receive contiguous series.
    label_format, step = GRANULARITIES[validate_granularity(granularity)]
    by_label = {point["time_bucket"]: point for point in points}
    filled: list[dict[str, Any]] = []
    current = truncate(window.start, granularity)
    while current < window.end:
        label = current.strftime(label_format)
        filled.append(by_label.get(label) or {"time_bucket": label, **{name: 0 for name in metrics}})
        current += step
    return filled


class TimeSeries:
    """Bucketed metric series for one source over a window.

    Iterating (``async for``) runs the aggregate afresh every time, so the
    object can be consumed any number of times and holds no row state.
    """

    def __init__(self, executor: QueryExecutor, window: MetricWindow, source: str, granularity: str) -> None:
        self._executor = executor
        self.window = window
        self.source = series_source(source)
        self.granularity = validate_granularity(granularity)
        max_buckets = get_settings().timeseries_max_buckets
        if bucket_count(window, self.granularity) > max_buckets:
            raise InvalidFilterError(
                f"Window spans more than {max_buckets} {self.granularity} buckets; use a coarser granularity"
            )

    async def points(self) -> list[dict[str, Any]]:
        query, params = build_series_query(self.source, self.window, self.granularity)
        try:
            rows = await self._executor.execute(query, params)
        except Exception as exc:  # noqa: BLE001 - surfaced as a source failure
            raise SourceReadFailure(self.source.name) from exc
        logger.debug("time_series_read source=%s granularity=%s buckets=%s", self.source.name, self.granularity, len(rows))
        return aggregate_points(rows, self.source, self.granularity)

    async def filled_points(self) -> list[dict[str, Any]]:
        return zero_fill(await self.points(), self.window, self.granularity, self.source.metric_names)

    async def __aiter__(self) -> AsyncIterator[dict[str, Any]]:
        for point in await self.points():
            yield point


def bucket(executor: QueryExecutor, window: MetricWindow, source: str, granularity: str) -> TimeSeries:
    return TimeSeries(executor, window, source, granularity)


async def get_time_series(
    executor: QueryExecutor,
    window: MetricWindow,
    source: str,
    granularity: str = "day",
    *,
    fill_missing: bool = False,
) -> list[dict[str, Any]]:
    series = bucket(executor, window, source, granularity)
    if fill_missing:
        return await series.filled_points()
    return await series.points()
