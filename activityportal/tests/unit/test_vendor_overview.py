from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from activityportal.core.errors import SourceReadFailure
from activityportal.domain.analytics import MetricWindow
from activityportal.services.vendor_overview import (
    band_conditions,
    build_contract_summary_query,
    build_external_stats_query,
    build_internal_stats_query,
    get_recent_vendor_activities,
    get_recent_vendors,
    get_vendor_contract_summary,
    get_vendor_stats,
    get_vendors_by_organization,
    vendor_overview,
)
from activityportal.tests.utils.fakes import FailingExecutor, FakeExecutor


NOW = datetime(2026, 7, 1, 12, 0, tzinfo=timezone.utc)
WINDOW = MetricWindow(start=NOW - timedelta(days=30), end=NOW)

INTERNAL_STATS = {
    "total_internal_vendors": 4,
    "completed_vendors": 1,
    "in_progress_vendors": 2,
    "not_started_vendors": 1,
    "vendors_added_in_period": 3,
}
EXTERNAL_STATS = {
    "total_external_vendors": 6,
    "vendors_assessed": 5,
    "low": 2,
    "medium": 1,
    "high": 1,
    "critical": 1,
    "not_assessed": 1,
    "grade_a": 2,
    "grade_c": 3,
    "no_grade": 1,
    "avg_security_score": 72.25,
    "scans_in_period": 4,
}


def _stats_executor() -> FakeExecutor:
    return (
        FakeExecutor()
        .on("AS total_internal_vendors", [INTERNAL_STATS])
        .on("AS total_external_vendors", [EXTERNAL_STATS])
    )


def test_band_conditions_follow_vendor_bands() -> None:
    assert band_conditions("va.score") == {
        "low": "va.score >= 80",
        "medium": "va.score >= 60 AND va.score < 80",
        "high": "va.score >= 40 AND va.score < 60",
        "critical": "va.score < 40",
        "not_assessed": "va.score IS NULL",
    }


def test_stats_queries_scope_by_organization() -> None:
    internal, internal_params = build_internal_stats_query(WINDOW, "org-1")
    external, external_params = build_external_stats_query(WINDOW, "org-1")

    assert internal.endswith('WHERE v."isActive" = true AND CAST(v."organizationId" AS TEXT) = :p3')
    assert 'v."createdAt" >= :p1 AND v."createdAt" < :p2' in internal
    assert internal_params == [WINDOW.start, WINDOW.end, "org-1"]
    assert 'INNER JOIN public."VendorOnOrganization" voo' in external
    assert external.endswith('WHERE CAST(voo."organizationId" AS TEXT) = :p3')
    assert external_params == [WINDOW.start, WINDOW.end, "org-1"]


def test_unscoped_external_stats_read_every_assessment() -> None:
    external, params = build_external_stats_query(WINDOW, None)

    assert "VendorOnOrganization" not in external
    assert "WHERE va" not in external.split("FROM")[-1]
    assert "COUNT(*) FILTER (WHERE va.score >= 60 AND va.score < 80) AS medium" in external
    assert "COUNT(*) FILTER (WHERE va.grade = 'F') AS grade_f" in external
    assert params == [WINDOW.start, WINDOW.end]


@pytest.mark.asyncio
async def test_vendor_stats_count_internal_vendors_as_unassessed() -> None:
    stats = await get_vendor_stats(_stats_executor(), WINDOW)

    assert stats["total_vendors"] == 10
    assert stats["internal_vendors"] == 4
    assert stats["external_vendors"] == 6
    assert stats["assessment_coverage"] == 50
    assert stats["risk_distribution"] == {"low": 2, "medium": 1, "high": 1, "critical": 1, "not_assessed": 5}
    assert stats["grade_distribution"] == {"A": 2, "B": 0, "C": 3, "D": 0, "F": 0, "Not Graded": 5}
    assert stats["avg_security_score"] == 72.25
    assert stats["review_status"] == {"completed": 1, "in_progress": 2, "not_started": 1}
    assert stats["recent_activity"] == {"vendors_added": 3, "scans_completed": 4}


@pytest.mark.asyncio
async def test_vendor_stats_on_empty_tables() -> None:
    stats = await get_vendor_stats(FakeExecutor(), WINDOW)

    assert stats["total_vendors"] == 0
    assert stats["assessment_coverage"] == 0
    assert stats["avg_security_score"] == 0.0


@pytest.mark.asyncio
async def test_recent_vendors_band_external_assessments_only() -> None:
    rows = [
        {"vendor_type": "external", "id": "9", "current_score": 55},
        {"vendor_type": "internal", "id": "3", "current_score": None},
    ]
    executor = FakeExecutor().on("'External Assessment' AS organization_name", rows)

    vendors = await get_recent_vendors(executor, limit=5)

    assert [vendor["risk_level"] for vendor in vendors] == ["high", None]
    assert executor.calls[0][1] == [5]
    assert executor.calls[0][0].rstrip().endswith("ORDER BY added_date DESC\nLIMIT :p1")


@pytest.mark.asyncio
async def test_vendors_by_organization_report_coverage() -> None:
    row = {
        "organization_id": "o-1",
        "organization_name": "Acme",
        "vendor_count": 4,
        "assessed_count": 3,
        "avg_score": 55.5,
        "high_risk_count": 1,
        "active_count": 4,
    }
    executor = FakeExecutor().on("HAVING COUNT(v.id) > 0", [row])

    organizations = await get_vendors_by_organization(executor)

    assert organizations[0]["assessment_coverage"] == 75
    assert organizations[0]["avg_score"] == 55.5
    assert executor.calls[0][1] == [50]


def test_contract_summary_binds_reference_time() -> None:
    query, params = build_contract_summary_query(NOW)

    assert params == [NOW, NOW + timedelta(days=30), NOW + timedelta(days=90)]
    assert 'v."contractEndDate" >= :p1 AND v."contractEndDate" <= :p2) AS expiring_30_days' in query
    assert 'v."contractEndDate" >= :p1 AND v."contractEndDate" <= :p3) AS expiring_90_days' in query
    assert "NOW()" not in query


@pytest.mark.asyncio
async def test_contract_summary_shape() -> None:
    row = {
        "total_contracts": 5,
        "active_contracts": 3,
        "expired_contracts": 1,
        "expiring_30_days": 1,
        "expiring_90_days": 2,
        "total_contract_value": 12500.5,
        "currencies_used": "EUR, USD",
    }
    executor = FakeExecutor().on("AS total_contracts", [row])

    summary = await get_vendor_contract_summary(executor, now=NOW)

    assert summary == {
        "total_contracts": 5,
        "active_contracts": 3,
        "expired_contracts": 1,
        "expiring_soon": {"next_30_days": 1, "next_90_days": 2},
        "total_contract_value": 12500.5,
        "currencies_used": ["EUR", "USD"],
    }
    empty = await get_vendor_contract_summary(FakeExecutor(), now=NOW)
    assert empty["currencies_used"] == []
    assert empty["expiring_soon"] == {"next_30_days": 0, "next_90_days": 0}


@pytest.mark.asyncio
async def test_recent_vendor_activities_bind_window_and_limit() -> None:
    executor = FakeExecutor()

    assert await get_recent_vendor_activities(executor, WINDOW, limit=15) == []
    query, params = executor.calls[0]
    assert "'score_change' AS activity_type" in query
    assert params == [WINDOW.start, WINDOW.end, 15]


@pytest.mark.asyncio
async def test_vendor_part_failure_names_the_read() -> None:
    with pytest.raises(SourceReadFailure) as excinfo:
        await get_vendors_by_organization(FailingExecutor())

    assert excinfo.value.source == "vendors_by_organization"


@pytest.mark.asyncio
async def test_overview_replaces_failed_parts_with_empty_values() -> None:
    executor = _stats_executor().fail_on("HAVING COUNT(v.id) > 0").fail_on("AS total_contracts")

    overview = await vendor_overview(executor, WINDOW)

    assert set(overview) == {
        "stats",
        "recent_vendors",
        "top_vendors_by_risk",
        "vendors_by_organization",
        "contract_summary",
        "security_trends",
        "recent_activities",
        "date_range",
    }
    assert overview["stats"]["total_vendors"] == 10
    assert overview["vendors_by_organization"] == []
    assert overview["contract_summary"]["total_contracts"] == 0
    assert overview["date_range"] == {"from": WINDOW.start, "to": WINDOW.end}


@pytest.mark.asyncio
async def test_overview_passes_organization_to_stats_only() -> None:
    executor = FakeExecutor()

    await vendor_overview(executor, WINDOW, organization_id="org-7")

    scoped = [params for _, params in executor.calls if "org-7" in params]
    assert len(scoped) == 2
    assert len(executor.calls) == 8
