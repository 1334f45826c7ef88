from __future__ import annotations

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from activityportal.core.errors import InvalidFilterError, NotFoundError
from activityportal.domain.analytics import MetricWindow
from activityportal.domain.filters import VendorSearchFilters
from activityportal.services.query_filters import PredicateBuilder
from activityportal.services.vendor_search import (
    apply_risk_band,
    build_vendor_queries,
    contract_status,
    get_top_vendors_by_risk,
    get_vendor_details,
    get_vendor_security_trends,
    scan_statistics,
    search_vendors,
    summarize_security_trends,
)
from activityportal.tests.utils.fakes import FakeExecutor


NOW = datetime(2026, 7, 1, 12, 0, tzinfo=timezone.utc)


def _band(band: str) -> tuple[str, list]:
    builder = apply_risk_band(PredicateBuilder(), "current_score", band)
    return builder.sql(), builder.params


def test_risk_band_bounds() -> None:
    assert _band("low") == ("WHERE current_score >= :p1", [80])
    assert _band("medium") == ("WHERE current_score >= :p1 AND current_score < :p2", [60, 80])
    assert _band("high") == ("WHERE current_score >= :p1 AND current_score < :p2", [40, 60])
    assert _band("critical") == ("WHERE current_score < :p1", [40])
    assert _band("not_assessed") == ("WHERE current_score IS NULL", [])


def test_queries_share_one_predicate() -> None:
    filters = VendorSearchFilters(search="acme", risk_level="medium", has_contract=True, page=3, limit=20)

    data_query, count_query, params, count_params = build_vendor_queries(filters)

    where = (
        "WHERE (name ILIKE :p1 OR website ILIKE :p1 OR domain ILIKE :p1 OR country ILIKE :p1 "
        "OR email ILIKE :p1 OR organization_name ILIKE :p1) "
        "AND current_score >= :p2 AND current_score < :p3 AND contract_start IS NOT NULL"
    )
    assert count_query.endswith(f"SELECT COUNT(*) AS total FROM vendor_search {where}")
    assert f"FROM vendor_search {where} ORDER BY added_date DESC, id ASC LIMIT :p4 OFFSET :p5" in data_query
    assert count_params == ["%acme%", 60, 80]
    assert params == ["%acme%", 60, 80, 20, 40]


def test_score_sort_puts_unscored_last() -> None:
    data_query, _, _, _ = build_vendor_queries(VendorSearchFilters(sort_by="score", sort_order="ASC"))

    assert "ORDER BY current_score ASC NULLS LAST, id ASC" in data_query


def test_review_status_maps_to_stored_value() -> None:
    _, count_query, _, count_params = build_vendor_queries(VendorSearchFilters(review_status="in_progress"))

    assert count_query.endswith("WHERE review_status = :p1")
    assert count_params == ["IN_PROGRESS"]


def test_invalid_options() -> None:
    with pytest.raises(InvalidFilterError):
        build_vendor_queries(VendorSearchFilters(sort_by="password"))
    with pytest.raises(ValidationError):
        VendorSearchFilters(limit=500)
    with pytest.raises(ValidationError):
        VendorSearchFilters(risk_level="extreme")


@pytest.mark.asyncio
async def test_search_vendors_pages_and_labels() -> None:
    executor = (
        FakeExecutor()
        .on("SELECT COUNT(*) AS total FROM vendor_search", [{"total": 41}])
        .on(
            "SELECT * FROM vendor_search",
            [
                {"id": "1", "name": "Acme", "current_score": 72, "document_count": 2},
                {"id": "9", "name": "Globex", "current_score": None, "scan_history_count": 1},
            ],
        )
    )

    result = await search_vendors(executor, VendorSearchFilters(page=2, limit=20))

    assert result["total"] == 41
    assert result["total_pages"] == 3
    assert result["page"] == 2
    assert [vendor["risk_level"] for vendor in result["data"]] == ["medium", "not_assessed"]
    assert result["data"][1]["document_count"] == 0


def test_contract_status() -> None:
    assert contract_status({}, NOW) == "No Contract"
    assert contract_status({"contract_start": datetime(2025, 1, 1), "contract_end": datetime(2026, 1, 1)}, NOW) == "Expired"
    assert contract_status({"contract_start": datetime(2026, 1, 1), "contract_end": None}, NOW) == "Active"
    assert contract_status({"contract_start": datetime(2027, 1, 1), "contract_end": datetime(2028, 1, 1)}, NOW) == "Future"


def test_scan_statistics() -> None:
    stats = scan_statistics([{"score": 70}, {"score": 64}], datetime(2026, 6, 21, 12, 0), NOW)

    assert stats == {"total_scans": 2, "score_trend": 6, "days_since_last_scan": 10}
    assert scan_statistics([], None, NOW)["days_since_last_scan"] is None


@pytest.mark.asyncio
async def test_vendor_details_unknown_raises() -> None:
    with pytest.raises(NotFoundError):
        await get_vendor_details(FakeExecutor(), "404", now=NOW)


@pytest.mark.asyncio
async def test_vendor_details_reads_history_only_with_assessment() -> None:
    executor = (
        FakeExecutor()
        .on("LAG(vah.score)", [{"id": "h2", "score": 81}, {"id": "h1", "score": 75}])
        .on('FROM public."DocumentVendor" dv', [{"id": "d1", "name": "SOC2"}])
        .on("WHERE CAST(v.id AS TEXT) = :p1", [{"id": "7", "name": "Acme", "vendor_api_id": "va-7", "current_score": 81}])
    )

    details = await get_vendor_details(executor, "7", now=NOW)

    assert details["vendor"]["risk_level"] == "low"
    assert details["vendor"]["contract_status"] == "No Contract"
    assert details["stats"]["score_trend"] == 6
    assert details["stats"]["document_count"] == 1
    _, params = executor.queries_containing("LAG(vah.score)")[0]
    assert params == ["va-7", 10]

    bare = FakeExecutor().on("WHERE CAST(v.id AS TEXT) = :p1", [{"id": "8", "name": "Initech"}])
    details = await get_vendor_details(bare, "8", now=NOW)
    assert details["scan_history"] == []
    assert bare.queries_containing("LAG(vah.score)") == []


@pytest.mark.asyncio
async def test_top_vendors_by_risk_binds_limit() -> None:
    executor = FakeExecutor().on("ORDER BY va.score ASC", [{"id": "1", "current_score": 22}])

    vendors = await get_top_vendors_by_risk(executor, limit=5)

    assert vendors[0]["risk_level"] == "critical"
    assert executor.calls[0][1] == [5]


def test_security_trends_group_by_day() -> None:
    rows = [
        {"created_at": datetime(2026, 6, 2, 9, 0), "score": 90},
        {"created_at": datetime(2026, 6, 1, 9, 0), "score": 45},
        {"created_at": datetime(2026, 6, 1, 10, 0), "score": 30},
        {"created_at": datetime(2026, 6, 1, 11, 0), "score": None},
    ]

    trends = summarize_security_trends(rows)

    assert [day["date"] for day in trends] == ["2026-06-01", "2026-06-02"]
    assert trends[0]["scan_count"] == 3
    assert trends[0]["avg_score"] == 38
    assert trends[0]["risk_distribution"] == {"low": 0, "medium": 0, "high": 1, "critical": 1}
    assert trends[1]["risk_distribution"]["low"] == 1


@pytest.mark.asyncio
async def test_security_trends_use_half_open_window() -> None:
    window = MetricWindow(start=datetime(2026, 6, 1, tzinfo=timezone.utc), end=NOW)
    executor = FakeExecutor()

    assert await get_vendor_security_trends(executor, window) == []
    query, params = executor.calls[0]
    assert 'vah."createdAt" >= :p1 AND vah."createdAt" < :p2' in query
    assert params == [window.start, window.end]
