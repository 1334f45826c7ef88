from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from functools import partial
from typing import Any

from activityportal.core.config import get_settings
from activityportal.core.errors import SourceReadFailure
from activityportal.domain.analytics import MetricWindow
from activityportal.persistence.executor import QueryExecutor
from activityportal.services.fanout import FanoutCall, gather_with_defaults
from activityportal.services.heuristics import (
    HIGH_RISK_VENDOR_SCORE,
    VENDOR_NOT_ASSESSED,
    VENDOR_RISK_BANDS,
    VENDOR_RISK_FLOOR,
    ratio_pct,
    vendor_risk_band,
)
from activityportal.services.query_filters import PredicateBuilder
from activityportal.services.vendor_search import get_top_vendors_by_risk, get_vendor_security_trends


logger = logging.getLogger(__name__)

GRADES = ("A", "B", "C", "D", "F")
NOT_GRADED = "Not Graded"
RECENT_VENDORS_LIMIT = 20
TOP_RISK_LIMIT = 10
RECENT_ACTIVITIES_LIMIT = 50
EXPIRY_HORIZONS_DAYS = (30, 90)


def band_conditions(column: str) -> dict[str, str]:
    # Literal score bounds per risk band, aligned with vendor_risk_band.
    conditions: dict[str, str] = {}
    ceiling: int | None = None
    for name, floor in VENDOR_RISK_BANDS:
        upper = f" AND {column} < {ceiling}" if ceiling is not None else ""
        conditions[name] = f"{column} >= {floor}{upper}"
        ceiling = floor
    conditions[VENDOR_RISK_FLOOR] = f"{column} < {ceiling}"
    conditions[VENDOR_NOT_ASSESSED] = f"{column} IS NULL"
    return conditions


async def _read(executor: QueryExecutor, name: str, query: str, params: list[Any]) -> list[dict[str, Any]]:
    try:
        return await executor.execute(query, params)
    except Exception as exc:  # noqa: BLE001 - surfaced as a source failure
        raise SourceReadFailure(name) from exc


def _count(value: Any) -> int:
    return int(value or 0)


def _score(value: Any) -> float:
    if value is None:
        return 0.0
    return round(float(value), 2)


def build_internal_stats_query(window: MetricWindow, organization_id: str | None) -> tuple[str, list[Any]]:
    builder = PredicateBuilder()
    start = builder.bind(window.start)
    end = builder.bind(window.end)
    builder.condition('v."isActive" = true')
    builder.equals('CAST(v."organizationId" AS TEXT)', organization_id)
    query = (
        "SELECT COUNT(DISTINCT v.id) AS total_internal_vendors, "
        "COUNT(*) FILTER (WHERE v.\"reviewStatus\" = 'COMPLETED') AS completed_vendors, "
        "COUNT(*) FILTER (WHERE v.\"reviewStatus\" = 'IN_PROGRESS') AS in_progress_vendors, "
        "COUNT(*) FILTER (WHERE v.\"reviewStatus\" = 'NOT_STARTED') AS not_started_vendors, "
        f'COUNT(*) FILTER (WHERE v."createdAt" >= {start} AND v."createdAt" < {end}) AS vendors_added_in_period '
        f'FROM public."Vendor" v {builder.sql()}'
    )
    return query, builder.params


def build_external_stats_query(window: MetricWindow, organization_id: str | None) -> tuple[str, list[Any]]:
    builder = PredicateBuilder()
    start = builder.bind(window.start)
    end = builder.bind(window.end)
    join = ""
    if organization_id:
        join = 'INNER JOIN public."VendorOnOrganization" voo ON va.id = voo."vendorId" '
        builder.equals('CAST(voo."organizationId" AS TEXT)', organization_id)
    bands = band_conditions("va.score")
    columns = [
        "COUNT(DISTINCT va.id) AS total_external_vendors",
        "COUNT(DISTINCT va.id) FILTER (WHERE va.score IS NOT NULL) AS vendors_assessed",
        *(f"COUNT(*) FILTER (WHERE {condition}) AS {name}" for name, condition in bands.items()),
        *(f"COUNT(*) FILTER (WHERE va.grade = '{grade}') AS grade_{grade.lower()}" for grade in GRADES),
        "COUNT(*) FILTER (WHERE va.grade IS NULL) AS no_grade",
        "AVG(va.score) AS avg_security_score",
        f'COUNT(*) FILTER (WHERE va."lastSecurityScan" >= {start} AND va."lastSecurityScan" < {end}) AS scans_in_period',
    ]
    query = f'SELECT {", ".join(columns)} FROM public."VendorAPI" va {join}{builder.sql()}'
    return query, builder.params


def combine_vendor_stats(internal: dict[str, Any], external: dict[str, Any]) -> dict[str, Any]:
    # Internal vendors carry no score or grade, so they count as not assessed and not graded.
    internal_total = _count(internal.get("total_internal_vendors"))
    external_total = _count(external.get("total_external_vendors"))
    assessed = _count(external.get("vendors_assessed"))
    total = internal_total + external_total
    risk_distribution = {name: _count(external.get(name)) for name in band_conditions("va.score")}
    risk_distribution[VENDOR_NOT_ASSESSED] += internal_total
    grade_distribution: dict[str, int] = {grade: _count(external.get(f"grade_{grade.lower()}")) for grade in GRADES}
    grade_distribution[NOT_GRADED] = _count(external.get("no_grade")) + internal_total
    return {
        "total_vendors": total,
        "internal_vendors": internal_total,
        "external_vendors": external_total,
        "vendors_assessed": assessed,
        "assessment_coverage": ratio_pct(assessed, total),
        "risk_distribution": risk_distribution,
        "grade_distribution": grade_distribution,
        "avg_security_score": _score(external.get("avg_security_score")),
        "review_status": {
            "completed": _count(internal.get("completed_vendors")),
            "in_progress": _count(internal.get("in_progress_vendors")),
            "not_started": _count(internal.get("not_started_vendors")),
        },
        "recent_activity": {
            "vendors_added": _count(internal.get("vendors_added_in_period")),
            "scans_completed": _count(external.get("scans_in_period")),
        },
    }


async def get_vendor_stats(
    executor: QueryExecutor,
    window: MetricWindow,
    *,
    organization_id: str | None = None,
) -> dict[str, Any]:
    internal_query, internal_params = build_internal_stats_query(window, organization_id)
    external_query, external_params = build_external_stats_query(window, organization_id)
    internal = await _read(executor, "vendor_stats_internal", internal_query, internal_params)
    external = await _read(executor, "vendor_stats_external", external_query, external_params)
    return combine_vendor_stats(internal[0] if internal else {}, external[0] if external else {})


RECENT_VENDORS_SQL = """
SELECT
  'internal' AS vendor_type,
  CAST(v.id AS TEXT) AS id,
  v.name,
  v.email,
  v.url AS website,
  v."servicesProvided" AS description,
  v."createdAt" AS added_date,
  v."reviewStatus" AS review_status,
  v."isActive" AS is_active,
  o.name AS organization_name,
  u.email AS added_by_email,
  COALESCE(u."firstName" || ' ' || u."lastName", 'System') AS added_by_name,
  NULL AS current_score,
  NULL AS current_grade,
  NULL AS last_security_scan
FROM public."Vendor" v
LEFT JOIN public."Organization" o ON v."organizationId" = o.id
LEFT JOIN public.users u ON v."ownerId" = u.id
WHERE v."isActive" = true

UNION ALL

SELECT
  'external' AS vendor_type,
  CAST(va.id AS TEXT) AS id,
  va.name,
  NULL AS email,
  va.domain AS website,
  NULL AS description,
  va."createdAt" AS added_date,
  'COMPLETED' AS review_status,
  true AS is_active,
  'External Assessment' AS organization_name,
  NULL AS added_by_email,
  'System' AS added_by_name,
  va.score AS current_score,
  va.grade AS current_grade,
  va."lastSecurityScan" AS last_security_scan
FROM public."VendorAPI" va
WHERE va."createdAt" IS NOT NULL

ORDER BY added_date DESC
LIMIT :p1
"""


async def get_recent_vendors(executor: QueryExecutor, limit: int = RECENT_VENDORS_LIMIT) -> list[dict[str, Any]]:
    # Internal vendors have no assessment, so only external rows get a band.
    rows = await _read(executor, "recent_vendors", RECENT_VENDORS_SQL, [limit])
    return [
        {
            **row,
            "risk_level": vendor_risk_band(row.get("current_score")) if row.get("vendor_type") == "external" else None,
        }
        for row in rows
    ]


VENDORS_BY_ORGANIZATION_SQL = """
SELECT
  CAST(o.id AS TEXT) AS organization_id,
  o.name AS organization_name,
  COUNT(v.id) AS vendor_count,
  COUNT(va.score) AS assessed_count,
  AVG(va.score) AS avg_score,
  COUNT(*) FILTER (WHERE va.score < :p1) AS high_risk_count,
  COUNT(*) FILTER (WHERE v."isActive" = true) AS active_count
FROM public."Organization" o
LEFT JOIN public."Vendor" v ON o.id = v."organizationId"
LEFT JOIN public."VendorAPI" va ON v.id = va.id
GROUP BY o.id, o.name
HAVING COUNT(v.id) > 0
ORDER BY vendor_count DESC, avg_score ASC NULLS LAST
"""


def present_organization(row: dict[str, Any]) -> dict[str, Any]:
    vendor_count = _count(row.get("vendor_count"))
    assessed = _count(row.get("assessed_count"))
    return {
        **row,
        "vendor_count": vendor_count,
        "assessed_count": assessed,
        "avg_score": _score(row.get("avg_score")),
        "high_risk_count": _count(row.get("high_risk_count")),
        "active_count": _count(row.get("active_count")),
        "assessment_coverage": ratio_pct(assessed, vendor_count),
    }


async def get_vendors_by_organization(executor: QueryExecutor) -> list[dict[str, Any]]:
    rows = await _read(executor, "vendors_by_organization", VENDORS_BY_ORGANIZATION_SQL, [HIGH_RISK_VENDOR_SCORE])
    return [present_organization(row) for row in rows]


def build_contract_summary_query(now: datetime) -> tuple[str, list[Any]]:
    builder = PredicateBuilder()
    current = builder.bind(now)
    horizons = [(days, builder.bind(now + timedelta(days=days))) for days in EXPIRY_HORIZONS_DAYS]
    expiring = ", ".join(
        f'COUNT(*) FILTER (WHERE v."contractEndDate" >= {current} AND v."contractEndDate" <= {placeholder}) '
        f"AS expiring_{days}_days"
        for days, placeholder in horizons
    )
    query = (
        'SELECT COUNT(*) FILTER (WHERE v."contractStartDate" IS NOT NULL) AS total_contracts, '
        f'COUNT(*) FILTER (WHERE v."contractStartDate" <= {current} AND v."contractEndDate" >= {current}) '
        "AS active_contracts, "
        f'COUNT(*) FILTER (WHERE v."contractEndDate" < {current}) AS expired_contracts, '
        f"{expiring}, "
        "SUM(CASE WHEN v.\"contractAmount\" ~ '^[0-9]+(\\.[0-9]+)?$' "
        'THEN CAST(v."contractAmount" AS NUMERIC) ELSE 0 END) AS total_contract_value, '
        'STRING_AGG(DISTINCT v."contractCurrency", \', \') AS currencies_used '
        'FROM public."Vendor" v WHERE v."isActive" = true'
    )
    return query, builder.params


def present_contract_summary(row: dict[str, Any]) -> dict[str, Any]:
    currencies = row.get("currencies_used") or ""
    return {
        "total_contracts": _count(row.get("total_contracts")),
        "active_contracts": _count(row.get("active_contracts")),
        "expired_contracts": _count(row.get("expired_contracts")),
        "expiring_soon": {
            f"next_{days}_days": _count(row.get(f"expiring_{days}_days")) for days in EXPIRY_HORIZONS_DAYS
        },
        "total_contract_value": float(row.get("total_contract_value") or 0),
        "currencies_used": [currency for currency in currencies.split(", ") if currency],
    }


async def get_vendor_contract_summary(executor: QueryExecutor, *, now: datetime | None = None) -> dict[str, Any]:
    query, params = build_contract_summary_query(now or datetime.now(timezone.utc))
    rows = await _read(executor, "vendor_contract_summary", query, params)
    return present_contract_summary(rows[0] if rows else {})


RECENT_VENDOR_ACTIVITIES_SQL = """
SELECT
  'vendor_created' AS activity_type,
  CAST(v.id AS TEXT) AS vendor_id,
  v.name AS vendor_name,
  v."createdAt" AS occurred_at,
  'Vendor added to system' AS description,
  COALESCE(u."firstName" || ' ' || u."lastName", 'System') AS performed_by,
  u.email AS performed_by_email,
  o.name AS organization_name,
  json_build_object(
    'vendor_id', v.id,
    'vendor_name', v.name,
    'website', v.url,
    'country', v.country,
    'review_status', v."reviewStatus"
  ) AS metadata
FROM public."Vendor" v
LEFT JOIN public.users u ON v."ownerId" = u.id
LEFT JOIN public."Organization" o ON v."organizationId" = o.id
WHERE v."createdAt" >= :p1 AND v."createdAt" < :p2

UNION ALL

SELECT
  'security_scan' AS activity_type,
  CAST(v.id AS TEXT) AS vendor_id,
  COALESCE(v.name, va.name) AS vendor_name,
  va."lastSecurityScan" AS occurred_at,
  'Security assessment completed - Score: ' || COALESCE(CAST(va.score AS TEXT), 'N/A')
    || ', Grade: ' || COALESCE(va.grade, 'N/A') AS description,
  'System' AS performed_by,
  NULL AS performed_by_email,
  o.name AS organization_name,
  json_build_object(
    'vendor_id', v.id,
    'vendor_api_id', va.id,
    'score', va.score,
    'grade', va.grade,
    'domain', va.domain,
    'status', va.status
  ) AS metadata
FROM public."VendorAPI" va
LEFT JOIN public."Vendor" v ON va.id = v.id
LEFT JOIN public."Organization" o ON v."organizationId" = o.id
WHERE va."lastSecurityScan" >= :p1 AND va."lastSecurityScan" < :p2

UNION ALL

SELECT
  'score_change' AS activity_type,
  CAST(v.id AS TEXT) AS vendor_id,
  COALESCE(v.name, va.name) AS vendor_name,
  vah."createdAt" AS occurred_at,
  'Risk score updated to ' || COALESCE(CAST(vah.score AS TEXT), 'N/A')
    || ' (Grade: ' || COALESCE(vah.grade, 'N/A') || ')' AS description,
  'System' AS performed_by,
  NULL AS performed_by_email,
  o.name AS organization_name,
  json_build_object(
    'vendor_id', v.id,
    'vendor_api_id', va.id,
    'old_score', LAG(vah.score) OVER (PARTITION BY vah."vendorAPIId" ORDER BY vah."createdAt"),
    'new_score', vah.score,
    'old_grade', LAG(vah.grade) OVER (PARTITION BY vah."vendorAPIId" ORDER BY vah."createdAt"),
    'new_grade', vah.grade
  ) AS metadata
FROM public."VendorAPIHistory" vah
JOIN public."VendorAPI" va ON vah."vendorAPIId" = va.id
LEFT JOIN public."Vendor" v ON va.id = v.id
LEFT JOIN public."Organization" o ON v."organizationId" = o.id
WHERE vah."createdAt" >= :p1 AND vah."createdAt" < :p2

ORDER BY occurred_at DESC
LIMIT :p3
"""


async def get_recent_vendor_activities(
    executor: QueryExecutor,
    window: MetricWindow,
    limit: int = RECENT_ACTIVITIES_LIMIT,
) -> list[dict[str, Any]]:
    return await _read(
        executor,
        "recent_vendor_activities",
        RECENT_VENDOR_ACTIVITIES_SQL,
        [window.start, window.end, limit],
    )


def empty_vendor_stats() -> dict[str, Any]:
    return combine_vendor_stats({}, {})


async def vendor_overview(
    executor: QueryExecutor,
    window: MetricWindow,
    *,
    organization_id: str | None = None,
) -> dict[str, Any]:
    """Vendor-management dashboard: stats, listings, contracts and recent activity.

    Every part runs concurrently under the overview timeout; a part that fails
    or times out is replaced by its empty value instead of failing the whole view.
    """
    settings = get_settings()
    calls = [
        FanoutCall(
            "stats",
            partial(get_vendor_stats, executor, window, organization_id=organization_id),
            empty_vendor_stats,
        ),
        FanoutCall("recent_vendors", partial(get_recent_vendors, executor, RECENT_VENDORS_LIMIT), list),
        FanoutCall("top_vendors_by_risk", partial(get_top_vendors_by_risk, executor, TOP_RISK_LIMIT), list),
        FanoutCall("vendors_by_organization", partial(get_vendors_by_organization, executor), list),
        FanoutCall(
            "contract_summary",
            partial(get_vendor_contract_summary, executor),
            lambda: present_contract_summary({}),
        ),
        FanoutCall("security_trends", partial(get_vendor_security_trends, executor, window), list),
        FanoutCall(
            "recent_activities",
            partial(get_recent_vendor_activities, executor, window, RECENT_ACTIVITIES_LIMIT),
            list,
        ),
    ]
    results = await gather_with_defaults(calls, timeout_s=settings.vendor_overview_timeout_s)
    logger.debug("vendor_overview_built organization_id=%s", organization_id)
    return {**results, "date_range": {"from": window.start, "to": window.end}}
