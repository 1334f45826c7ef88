from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from activityportal.core.errors import NotFoundError, SourceReadFailure
from activityportal.domain.activity import as_utc
from activityportal.domain.analytics import MetricWindow
from activityportal.domain.filters import VendorSearchFilters
from activityportal.persistence.executor import QueryExecutor
from activityportal.services.heuristics import (
    VENDOR_NOT_ASSESSED,
    VENDOR_RISK_BANDS,
    VENDOR_RISK_FLOOR,
    round_half_up,
    vendor_risk_band,
)
from activityportal.services.query_filters import PredicateBuilder, SortSpec, page_offset, parse_sort, total_pages


logger = logging.getLogger(__name__)


REVIEW_STATUSES = {"completed": "COMPLETED", "in_progress": "IN_PROGRESS", "not_started": "NOT_STARTED"}
SCAN_HISTORY_LIMIT = 10

VENDOR_SORTS = {
    "created_at": SortSpec("added_date"),
    "name": SortSpec("name"),
    "score": SortSpec("current_score", nulls_last=True),
    "last_scan": SortSpec("last_scan", nulls_last=True),
    "organization": SortSpec("organization_name"),
}

# Internal vendors and external assessments projected onto one row shape.
VENDOR_UNION_SQL = """
WITH vendor_search AS (
  SELECT
    CAST(v.id AS TEXT) AS id,
    v.name,
    v.url AS website,
    va.domain,
    v.country,
    v.email,
    v."servicesProvided" AS description,
    v."createdAt" AS added_date,
    v."updatedAt" AS last_updated,
    v."reviewStatus" AS review_status,
    v."contractStartDate" AS contract_start,
    v."contractEndDate" AS contract_end,
    v."contractAmount" AS contract_amount,
    v."contractCurrency" AS contract_currency,
    CAST(v."ownerId" AS TEXT) AS added_by_user_id,
    COALESCE(u."firstName" || ' ' || u."lastName", 'System') AS added_by_name,
    u.email AS added_by_email,
    CAST(o.id AS TEXT) AS organization_id,
    o.name AS organization_name,
    CAST(va.id AS TEXT) AS vendor_api_id,
    va.score AS current_score,
    va.grade AS current_grade,
    va."lastSecurityScan" AS last_scan,
    va.status AS scan_status,
    (SELECT COUNT(*) FROM public."DocumentVendor" dv WHERE dv."vendorId" = v.id) AS document_count,
    (SELECT COUNT(*) FROM public."VendorAPIHistory" vah WHERE vah."vendorAPIId" = va.id) AS scan_history_count,
    'internal' AS vendor_type
  FROM public."Vendor" v
  LEFT JOIN public.users u ON v."ownerId" = u.id
  LEFT JOIN public."Organization" o ON v."organizationId" = o.id
  LEFT JOIN public."VendorAPI" va ON va.domain = v.url

  UNION ALL

  SELECT
    CAST(va.id AS TEXT) AS id,
    COALESCE(va.name, va.domain, 'Unknown') AS name,
    va.domain AS website,
    va.domain,
    NULL AS country,
    NULL AS email,
    'External Security Assessment' AS description,
    va."createdAt" AS added_date,
    va."updatedAt" AS last_updated,
    'COMPLETED' AS review_status,
    NULL AS contract_start,
    NULL AS contract_end,
    NULL AS contract_amount,
    NULL AS contract_currency,
    NULL AS added_by_user_id,
    'System' AS added_by_name,
    NULL AS added_by_email,
    CAST(o.id AS TEXT) AS organization_id,
    o.name AS organization_name,
    CAST(va.id AS TEXT) AS vendor_api_id,
    va.score AS current_score,
    va.grade AS current_grade,
    va."lastSecurityScan" AS last_scan,
    va.status AS scan_status,
    0 AS document_count,
    (SELECT COUNT(*) FROM public."VendorAPIHistory" vah WHERE vah."vendorAPIId" = va.id) AS scan_history_count,
    'external' AS vendor_type
  FROM public."VendorAPI" va
  LEFT JOIN public."VendorOnOrganization" voo ON va.id = voo."vendorId"
  LEFT JOIN public."Organization" o ON voo."organizationId" = o.id
)
"""

SEARCH_COLUMNS = ("name", "website", "domain", "country", "email", "organization_name")

VENDOR_DETAILS_SQL = """
SELECT
  CAST(v.id AS TEXT) AS id,
  v.name,
  v.email,
  v.url AS website,
  v.country,
  v."servicesProvided" AS description,
  v."reviewStatus" AS review_status,
  v."isActive" AS is_active,
  v."createdAt" AS created_at,
  v."updatedAt" AS updated_at,
  v."contractStartDate" AS contract_start,
  v."contractEndDate" AS contract_end,
  v."contractAmount" AS contract_amount,
  v."contractCurrency" AS contract_currency,
  COALESCE(u."firstName" || ' ' || u."lastName", 'System') AS added_by_name,
  u.email AS added_by_email,
  o.name AS organization_name,
  CAST(va.id AS TEXT) AS vendor_api_id,
  va.domain,
  va.score AS current_score,
  va.grade AS current_grade,
  va."lastSecurityScan" AS last_security_scan,
  va.status AS scan_status
FROM public."Vendor" v
LEFT JOIN public.users u ON v."ownerId" = u.id
LEFT JOIN public."Organization" o ON v."organizationId" = o.id
LEFT JOIN public."VendorAPI" va ON v.id = va.id
WHERE CAST(v.id AS TEXT) = :p1
LIMIT 1
"""

VENDOR_SCAN_HISTORY_SQL = """
SELECT
  CAST(vah.id AS TEXT) AS id,
  vah.score,
  vah.grade,
  vah."createdAt" AS created_at,
  LAG(vah.score) OVER (ORDER BY vah."createdAt") AS previous_score,
  LAG(vah.grade) OVER (ORDER BY vah."createdAt") AS previous_grade
FROM public."VendorAPIHistory" vah
WHERE CAST(vah."vendorAPIId" AS TEXT) = :p1
ORDER BY vah."createdAt" DESC
LIMIT :p2
"""

VENDOR_DOCUMENTS_SQL = """
SELECT
  CAST(dv.id AS TEXT) AS id,
  dv.name,
  dv.type,
  dv.description,
  dv."createdAt" AS created_at,
  dv."updatedAt" AS updated_at,
  COALESCE(u."firstName" || ' ' || u."lastName", 'System') AS created_by
FROM public."DocumentVendor" dv
LEFT JOIN public.users u ON dv."ownerId" = u.id
WHERE CAST(dv."vendorId" AS TEXT) = :p1
ORDER BY dv."createdAt" DESC
"""

TOP_VENDORS_BY_RISK_SQL = """
SELECT CAST(va.id AS TEXT) AS id, va.name, va.domain, va.score AS current_score, va.grade AS current_grade,
       va."lastSecurityScan" AS last_security_scan
FROM public."VendorAPI" va
WHERE va.score IS NOT NULL
ORDER BY va.score ASC, va."lastSecurityScan" DESC
LIMIT :p1
"""

SECURITY_TRENDS_SQL = """
SELECT vah."createdAt" AS created_at, vah.score
FROM public."VendorAPIHistory" vah
WHERE vah."createdAt" >= :p1 AND vah."createdAt" < :p2
ORDER BY vah."createdAt" ASC
"""


async def _read(executor: QueryExecutor, name: str, query: str, params: list[Any]) -> list[dict[str, Any]]:
    try:
        return await executor.execute(query, params)
    except Exception as exc:  # noqa: BLE001 - surfaced as a source failure
        raise SourceReadFailure(name) from exc


def apply_risk_band(builder: PredicateBuilder, column: str, band: str | None) -> PredicateBuilder:
    # Translate a band name into score bounds using the same thresholds as vendor_risk_band.
    if band is None:
        return builder
    if band == VENDOR_NOT_ASSESSED:
        return builder.is_null(column)
    ceiling: int | None = None
    for name, floor in VENDOR_RISK_BANDS:
        if name == band:
            builder.at_least(column, floor)
            return builder.below(column, ceiling)
        ceiling = floor
    if band == VENDOR_RISK_FLOOR:
        return builder.below(column, ceiling)
    return builder


def build_vendor_predicate(filters: VendorSearchFilters) -> PredicateBuilder:
    builder = PredicateBuilder()
    builder.search(SEARCH_COLUMNS, filters.search)
    apply_risk_band(builder, "current_score", filters.risk_level)
    builder.equals("organization_id", filters.organization_id)
    if filters.review_status:
        builder.equals("review_status", REVIEW_STATUSES[filters.review_status])
    if filters.has_contract is True:
        builder.not_null("contract_start")
    elif filters.has_contract is False:
        builder.is_null("contract_start")
    builder.score_range("current_score", filters.min_score, filters.max_score)
    builder.equals("added_by_user_id", filters.added_by)
    return builder


def build_vendor_queries(filters: VendorSearchFilters) -> tuple[str, str, list[Any], list[Any]]:
    # Data and count statements share one predicate over the union.
    sort = parse_sort(
        sort_by=filters.sort_by,
        sort_order=filters.sort_order,
        allowed=VENDOR_SORTS,
        default="created_at",
    )
    builder = build_vendor_predicate(filters)
    count_params = builder.params
    where = builder.sql()
    count_query = f"{VENDOR_UNION_SQL} SELECT COUNT(*) AS total FROM vendor_search {where}"
    limit = builder.bind(filters.limit)
    offset = builder.bind(page_offset(filters.page, filters.limit))
    data_query = (
        f"{VENDOR_UNION_SQL} SELECT * FROM vendor_search {where} "
        f"ORDER BY {sort.sql()}, id ASC LIMIT {limit} OFFSET {offset}"
    )
    return data_query, count_query, builder.params, count_params


def present_vendor(row: dict[str, Any]) -> dict[str, Any]:
    return {
        **row,
        "risk_level": vendor_risk_band(row.get("current_score")),
        "document_count": int(row.get("document_count") or 0),
        "scan_history_count": int(row.get("scan_history_count") or 0),
    }


async def search_vendors(executor: QueryExecutor, filters: VendorSearchFilters) -> dict[str, Any]:
    data_query, count_query, params, count_params = build_vendor_queries(filters)
    rows = await _read(executor, "vendor_search", data_query, params)
    count_rows = await _read(executor, "vendor_search_count", count_query, count_params)
    total = int(count_rows[0].get("total") or 0) if count_rows else 0
    return {
        "data": [present_vendor(row) for row in rows],
        "total": total,
        "page": filters.page,
        "limit": filters.limit,
        "total_pages": total_pages(total, filters.limit),
    }


def contract_status(vendor: dict[str, Any], now: datetime) -> str:
    start = vendor.get("contract_start")
    end = vendor.get("contract_end")
    if start is None:
        return "No Contract"
    start_at = as_utc(start) if isinstance(start, datetime) else None
    end_at = as_utc(end) if isinstance(end, datetime) else None
    if end_at is not None and end_at < now:
        return "Expired"
    if start_at is not None and start_at <= now and (end_at is None or now <= end_at):
        return "Active"
    return "Future"


def scan_statistics(history: list[dict[str, Any]], last_scan: Any, now: datetime) -> dict[str, Any]:
    # History is newest first; the trend compares the two latest scans.
    trend = 0
    if len(history) > 1:
        trend = (history[0].get("score") or 0) - (history[1].get("score") or 0)
    days_since = None
    if isinstance(last_scan, datetime):
        days_since = (now - as_utc(last_scan)).days  # type: ignore[operator]
    return {"total_scans": len(history), "score_trend": trend, "days_since_last_scan": days_since}


async def get_vendor_details(
    executor: QueryExecutor,
    vendor_id: str,
    *,
    now: datetime | None = None,
) -> dict[str, Any]:
    current = now or datetime.now(timezone.utc)
    rows = await _read(executor, "vendor_details", VENDOR_DETAILS_SQL, [vendor_id])
    if not rows:
        raise NotFoundError(f"Vendor not found: {vendor_id}")
    vendor = present_vendor(rows[0])
    vendor["contract_status"] = contract_status(vendor, current)
    history: list[dict[str, Any]] = []
    if vendor.get("vendor_api_id"):
        history = await _read(
            executor,
            "vendor_scan_history",
            VENDOR_SCAN_HISTORY_SQL,
            [vendor["vendor_api_id"], SCAN_HISTORY_LIMIT],
        )
    documents = await _read(executor, "vendor_documents", VENDOR_DOCUMENTS_SQL, [vendor_id])
    stats = scan_statistics(history, vendor.get("last_security_scan"), current)
    stats["document_count"] = len(documents)
    return {"vendor": vendor, "scan_history": history, "documents": documents, "stats": stats}


async def get_top_vendors_by_risk(executor: QueryExecutor, limit: int = 10) -> list[dict[str, Any]]:
    rows = await _read(executor, "top_vendors_by_risk", TOP_VENDORS_BY_RISK_SQL, [limit])
    return [{**row, "risk_level": vendor_risk_band(row.get("current_score"))} for row in rows]


def summarize_security_trends(rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
    # Daily scan counts with average score and band counts, ascending by day.
    days: dict[str, list[Any]] = {}
    for row in rows:
        created = as_utc(row.get("created_at"))
        if created is None:
            continue
        days.setdefault(created.strftime("%Y-%m-%d"), []).append(row.get("score"))
    trends = []
    for day in sorted(days):
        scores = days[day]
        scored = [float(score) for score in scores if score is not None]
        bands = {"low": 0, "medium": 0, "high": 0, "critical": 0}
        for score in scored:
            bands[vendor_risk_band(score)] += 1
        trends.append(
            {
                "date": day,
                "scan_count": len(scores),
                "avg_score": round_half_up(sum(scored) / len(scored)) if scored else 0,
                "risk_distribution": bands,
            }
        )
    return trends


async def get_vendor_security_trends(executor: QueryExecutor, window: MetricWindow) -> list[dict[str, Any]]:
    rows = await _read(executor, "vendor_security_trends", SECURITY_TRENDS_SQL, [window.start, window.end])
    return summarize_security_trends(rows)
