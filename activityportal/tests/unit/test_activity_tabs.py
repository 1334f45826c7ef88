from __future__ import annotations

from datetime import datetime, timezone

import pytest

from activityportal.core.errors import InvalidFilterError, SourceReadFailure
from activityportal.domain.filters import TabFilters
from activityportal.services.activity_tabs import (
    AUDIT_TAB,
    LOGIN_TAB,
    TASK_TAB,
    VENDOR_SCAN_TAB,
    build_tab_queries,
    get_login_activity,
    get_security_test_activity,
    get_task_activity,
)
from activityportal.tests.utils.fakes import FailingExecutor, FakeExecutor


START = datetime(2026, 8, 1, tzinfo=timezone.utc)
END = datetime(2026, 8, 31, tzinfo=timezone.utc)


def test_login_tab_binds_dates_before_search() -> None:
    filters = TabFilters(date_from=START, date_to=END, search="ada", success=False, page=2, limit=25)

    data_query, count_query, params, count_params = build_tab_queries(LOGIN_TAB, filters)

    assert 'sl."createdAt" >= :p1 AND sl."createdAt" <= :p2' in count_query
    assert "sl.email ILIKE :p3" in count_query
    assert "sl.action LIKE '%FAIL%'" in count_query
    assert count_params == [START, END, "%ada%"]
    assert data_query.endswith('ORDER BY sl."createdAt" DESC LIMIT :p4 OFFSET :p5')
    assert params == [START, END, "%ada%", 25, 25]


def test_task_tab_options_and_sort() -> None:
    filters = TabFilters(status="FAIL", framework="fw-1", sort_by="status", sort_order="asc")

    data_query, count_query, params, _ = build_tab_queries(TASK_TAB, filters)

    assert count_query.endswith('WHERE t.status = :p1 AND CAST(t."frameworkId" AS TEXT) = :p2')
    assert "ORDER BY t.status ASC LIMIT :p3 OFFSET :p4" in data_query
    assert params == ["FAIL", "fw-1", 50, 0]


def test_scan_and_audit_tabs_keep_base_conditions() -> None:
    _, scan_count, _, scan_params = build_tab_queries(VENDOR_SCAN_TAB, TabFilters(grade="B", min_score=70))
    _, audit_count, _, audit_params = build_tab_queries(AUDIT_TAB, TabFilters())

    assert scan_count.endswith('WHERE va."lastSecurityScan" IS NOT NULL AND va.grade = :p1 AND va.score >= :p2')
    assert scan_params == ["B", 70]
    assert audit_count.endswith("WHERE ar.score IS NOT NULL")
    assert audit_params == []


def test_unknown_sort_is_rejected() -> None:
    with pytest.raises(InvalidFilterError):
        build_tab_queries(TASK_TAB, TabFilters(sort_by="ownerId"))


@pytest.mark.asyncio
async def test_listing_echoes_paging() -> None:
    executor = (
        FakeExecutor()
        .on('SELECT COUNT(*) AS total FROM public."Task" t', [{"total": 51}])
        .on('FROM public."Task" t', [{"id": "t-1", "title": "Rotate keys", "status": "PASS"}])
    )

    page = await get_task_activity(executor, TabFilters(page=2, limit=50))

    assert page == {
        "data": [{"id": "t-1", "title": "Rotate keys", "status": "PASS"}],
        "total": 51,
        "page": 2,
        "limit": 50,
        "total_pages": 2,
    }


@pytest.mark.asyncio
async def test_empty_listing() -> None:
    page = await get_login_activity(FakeExecutor(), TabFilters())

    assert page["data"] == []
    assert page["total"] == 0
    assert page["total_pages"] == 0


@pytest.mark.asyncio
async def test_listing_failure_names_the_table() -> None:
    with pytest.raises(SourceReadFailure) as excinfo:
        await get_security_test_activity(FailingExecutor(), TabFilters(result="FAIL"))

    assert excinfo.value.source == "security_tests"
