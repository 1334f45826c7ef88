from __future__ import annotations

from datetime import datetime, timezone

import pytest

from activityportal.core.config import get_settings
from activityportal.core.errors import InvalidFilterError, SourceReadFailure
from activityportal.domain.analytics import MetricWindow
from activityportal.services.timeseries import (
    SERIES_SOURCES,
    aggregate_points,
    bucket,
    bucket_count,
    bucket_label,
    build_series_query,
    get_time_series,
    zero_fill,
)
from activityportal.tests.utils.fakes import FailingExecutor, FakeExecutor


WINDOW = MetricWindow(
    start=datetime(2026, 5, 1, tzinfo=timezone.utc),
    end=datetime(2026, 5, 4, tzinfo=timezone.utc),
)

LOGIN_BUCKETS = [
    {"bucket": datetime(2026, 5, 3), "total": 2, "success": 1, "failed": 1},
    {"bucket": datetime(2026, 5, 1), "total": 3, "success": 2, "failed": 1},
]


def test_bucket_labels() -> None:
    moment = datetime(2026, 5, 1, 9, 15, tzinfo=timezone.utc)

    assert bucket_label(moment, "day") == "2026-05-01"
    assert bucket_label(moment, "hour") == "2026-05-01 09:00:00"


def test_aggregated_buckets_are_labelled_in_ascending_order() -> None:
    points = aggregate_points(LOGIN_BUCKETS, SERIES_SOURCES["logins"], "day")

    assert points == [
        {"time_bucket": "2026-05-01", "total": 3, "success": 2, "failed": 1},
        {"time_bucket": "2026-05-03", "total": 2, "success": 1, "failed": 1},
    ]


def test_hourly_labels() -> None:
    rows = [{"bucket": datetime(2026, 5, 1, 17), "total": 1}, {"bucket": datetime(2026, 5, 1, 9), "total": 2}]

    points = aggregate_points(rows, SERIES_SOURCES["logins"], "hour")

    assert [point["time_bucket"] for point in points] == ["2026-05-01 09:00:00", "2026-05-01 17:00:00"]
    assert points[0] == {"time_bucket": "2026-05-01 09:00:00", "total": 2, "success": 0, "failed": 0}


def test_zero_fill_emits_every_bucket() -> None:
    points = aggregate_points(LOGIN_BUCKETS, SERIES_SOURCES["logins"], "day")
    filled = zero_fill(points, WINDOW, "day", SERIES_SOURCES["logins"].metric_names)

    assert [point["time_bucket"] for point in filled] == ["2026-05-01", "2026-05-02", "2026-05-03"]
    assert filled[1] == {"time_bucket": "2026-05-02", "total": 0, "success": 0, "failed": 0}


def test_average_metric_rounds_half_up_and_defaults_to_zero() -> None:
    rows = [
        {"bucket": datetime(2026, 5, 2), "scans": 2, "avg_score": 75.5},
        {"bucket": datetime(2026, 5, 3), "scans": 1, "avg_score": None},
    ]

    assert aggregate_points(rows, SERIES_SOURCES["vendor_scans"], "day") == [
        {"time_bucket": "2026-05-02", "scans": 2, "avg_score": 76},
        {"time_bucket": "2026-05-03", "scans": 1, "avg_score": 0},
    ]


def test_series_query_groups_by_bucket_without_row_limit() -> None:
    query, params = build_series_query(SERIES_SOURCES["tasks"], WINDOW, "day")

    assert query.startswith("SELECT date_trunc('day', t.\"createdAt\") AS bucket, COUNT(*) AS created")
    assert "COUNT(*) FILTER (WHERE t.status = 'PASS') AS completed" in query
    assert 't."createdAt" >= :p1 AND t."createdAt" < :p2' in query
    assert query.endswith("GROUP BY 1 ORDER BY 1 ASC")
    assert "LIMIT" not in query
    assert params == [WINDOW.start, WINDOW.end]


def test_hourly_query_averages_scores() -> None:
    query, _ = build_series_query(SERIES_SOURCES["vendor_scans"], WINDOW, "hour")

    assert "date_trunc('hour', va.\"lastSecurityScan\") AS bucket" in query
    assert "AVG(va.score) AS avg_score" in query
    assert 'va."lastSecurityScan" IS NOT NULL' in query


def test_unknown_source_and_granularity() -> None:
    with pytest.raises(InvalidFilterError):
        bucket(FakeExecutor(), WINDOW, "payments", "day")
    with pytest.raises(InvalidFilterError):
        bucket(FakeExecutor(), WINDOW, "logins", "week")


def test_window_too_large_for_granularity_is_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TIMESERIES_MAX_BUCKETS", "48")
    get_settings.cache_clear()

    assert bucket_count(WINDOW, "hour") == 72
    with pytest.raises(InvalidFilterError):
        bucket(FakeExecutor(), WINDOW, "logins", "hour")
    assert bucket(FakeExecutor(), WINDOW, "logins", "day").granularity == "day"


@pytest.mark.asyncio
async def test_series_can_be_iterated_repeatedly() -> None:
    executor = FakeExecutor().on('FROM public."SecurityLog" sl', LOGIN_BUCKETS)
    series = bucket(executor, WINDOW, "logins", "day")

    first = [point async for point in series]
    second = [point async for point in series]

    assert first == second
    assert len(first) == 2
    assert len(executor.calls) == 2
    assert all("GROUP BY 1" in query for query, _ in executor.calls)


@pytest.mark.asyncio
async def test_get_time_series_fill_missing() -> None:
    executor = FakeExecutor().on('FROM public."SecurityLog" sl', LOGIN_BUCKETS)

    sparse = await get_time_series(executor, WINDOW, "logins", "day")
    filled = await get_time_series(executor, WINDOW, "logins", "day", fill_missing=True)

    assert len(sparse) == 2
    assert len(filled) == 3


@pytest.mark.asyncio
async def test_series_read_failure_surfaces() -> None:
    with pytest.raises(SourceReadFailure):
        await get_time_series(FailingExecutor(), WINDOW, "tasks")
