from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from functools import partial
from typing import Any

from activityportal.core.config import get_settings
from activityportal.core.errors import AggregationFailure, NotFoundError, SourceReadFailure
from activityportal.domain.activity import Activity, ActivityFilters, as_utc
from activityportal.domain.analytics import Journey, LoginSession, MetricWindow, RiskProfile
from activityportal.persistence.executor import QueryExecutor
from activityportal.services.fanout import FanoutCall, gather_with_defaults
from activityportal.services.federation import collect
from activityportal.services.heuristics import (
    HIGH_RISK_VENDOR_SCORE,
    LoginAttempt,
    estimate_session_minutes,
    ratio_pct,
    risk_level,
    risk_score,
    round_half_up,
    vendor_risk_band,
)
from activityportal.services.query_filters import PredicateBuilder
from activityportal.services.sources.accounts import LOGIN_ACTIONS_SQL, LOGIN_SUCCESS


logger = logging.getLogger(__name__)


ACTIVE_DAYS_LOOKBACK = timedelta(days=30)
RECENT_TASKS = 5
RECENT_DOCUMENTS = 5
RECENT_SECURITY_EVENTS = 10

TASK_STATUS_LABELS = {
    "PASS": "completed",
    "NEEDS_ATTENTION": "in_progress",
    "NOT_RUN": "not_started",
    "FAIL": "failed",
}
DOCUMENT_STATUS_LABELS = {
    "PASS": "approved",
    "IN_PROGRESS": "in_review",
    "NOT_RUN": "created",
    "FAIL": "rejected",
}
SEVERITIES = ("HIGH", "MEDIUM", "LOW")
FEATURES = (("Tasks", "task_count"), ("Documents", "document_count"), ("Vendors", "vendor_count"))

PROFILE_SQL = """
SELECT
  u.id,
  u.email,
  u."firstName" AS first_name,
  u."lastName" AS last_name,
  u."createdAt" AS joined_date,
  u."currentOrganizationId" AS organization_id,
  o.name AS organization_name,
  o."createdAt" AS org_joined_date,
  (SELECT COUNT(*) FROM public."SecurityLog" sl
   WHERE sl.email = u.email AND sl.action = 'LOGIN_SUCCESS') AS total_logins,
  (SELECT MAX(sl."createdAt") FROM public."SecurityLog" sl
   WHERE sl.email = u.email AND sl.action = 'LOGIN_SUCCESS') AS last_login,
  (SELECT COUNT(DISTINCT DATE(sl."createdAt")) FROM public."SecurityLog" sl
   WHERE sl.email = u.email AND sl.action = 'LOGIN_SUCCESS' AND sl."createdAt" >= :p2) AS active_days_30d,
  (SELECT COUNT(*) FROM public."Task" t WHERE t."ownerId" = u.id) AS total_tasks,
  (SELECT COUNT(*) FROM public."Document" d WHERE d."ownerId" = u.id) AS total_documents,
  (SELECT COUNT(*) FROM public."Vendor" v WHERE v."ownerId" = u.id) AS total_vendors
FROM public.users u
LEFT JOIN public."Organization" o ON u."currentOrganizationId" = o.id
WHERE u.email = :p1
LIMIT 1
"""

LOGIN_ATTEMPTS_SQL = f"""
SELECT sl."createdAt" AS login_time, sl.action, sl."ipAddress" AS ip, sl."userAgent" AS user_agent, sl.details
FROM public."SecurityLog" sl
WHERE sl.email = :p1 AND sl."createdAt" BETWEEN :p2 AND :p3 AND sl.action IN ({LOGIN_ACTIONS_SQL})
ORDER BY sl."createdAt" ASC
"""

INTERNAL_VENDORS_SQL = """
SELECT
  'internal' AS vendor_type,
  CAST(v.id AS TEXT) AS id,
  v.name,
  v.country,
  v.url AS website,
  v."createdAt" AS added_date,
  v."updatedAt" AS last_updated,
  v."reviewStatus" AS review_status,
  v."contractStartDate" AS contract_start,
  v."contractEndDate" AS contract_end,
  owner.email AS added_by_email,
  o.name AS organization_name,
  (v."ownerId" = u.id) AS created_by_user,
  va.score AS current_score,
  va.grade AS current_grade,
  va."lastSecurityScan" AS last_security_scan
FROM public."Vendor" v
JOIN public."Organization" o ON v."organizationId" = o.id
JOIN public.users u ON (u."currentOrganizationId" = o.id OR v."ownerId" = u.id)
LEFT JOIN public.users owner ON v."ownerId" = owner.id
LEFT JOIN public."VendorAPI" va ON va.id = v.id
WHERE u.email = :p1 AND v."isActive" = true
"""

EXTERNAL_VENDORS_SQL = """
SELECT
  'external' AS vendor_type,
  CAST(va.id AS TEXT) AS id,
  va.name,
  NULL AS country,
  va.domain AS website,
  va."createdAt" AS added_date,
  va."updatedAt" AS last_updated,
  'COMPLETED' AS review_status,
  NULL AS contract_start,
  NULL AS contract_end,
  NULL AS added_by_email,
  STRING_AGG(DISTINCT o.name, ', ') AS organization_name,
  false AS created_by_user,
  va.score AS current_score,
  va.grade AS current_grade,
  va."lastSecurityScan" AS last_security_scan
FROM public."VendorAPI" va
JOIN public."VendorOnOrganization" voo ON va.id = voo."vendorId"
JOIN public."Organization" o ON voo."organizationId" = o.id
JOIN public.users u ON u."currentOrganizationId" = o.id
WHERE u.email = :p1
GROUP BY va.id, va.name, va.domain, va."createdAt", va."updatedAt", va.score, va.grade, va."lastSecurityScan"
"""

VENDOR_HISTORY_SQL = """
SELECT vah.id, vah."vendorAPIId" AS vendor_api_id, vah.score, vah.grade, vah."createdAt" AS created_at,
       va.name AS vendor_name
FROM public."VendorAPIHistory" vah
JOIN public."VendorAPI" va ON vah."vendorAPIId" = va.id
WHERE vah."createdAt" BETWEEN :p2 AND :p3
  AND EXISTS (
    SELECT 1 FROM public."VendorOnOrganization" voo
    JOIN public.users u ON u."currentOrganizationId" = voo."organizationId"
    WHERE voo."vendorId" = va.id AND u.email = :p1
  )
ORDER BY vah."createdAt" DESC
"""

TASKS_SQL = """
SELECT
  t.id, t.name AS title, t.description, t.status, t."createdAt" AS created_at, t."updatedAt" AS updated_at,
  CASE WHEN t.status = 'PASS' THEN EXTRACT(EPOCH FROM (t."updatedAt" - t."createdAt")) / 86400 END
    AS completion_days
FROM public."Task" t
JOIN public.users u ON t."ownerId" = u.id
WHERE u.email = :p1 AND t."createdAt" BETWEEN :p2 AND :p3
ORDER BY t."createdAt" DESC
"""

DOCUMENTS_SQL = """
SELECT d.id, d.name, d.type, d.status, d."createdAt" AS created_at, d."updatedAt" AS updated_at,
       d."evidenceStatus" AS evidence_status, d."nextRefresh" AS next_refresh
FROM public."Document" d
JOIN public.users u ON d."ownerId" = u.id
WHERE u.email = :p1 AND d."createdAt" BETWEEN :p2 AND :p3
ORDER BY d."createdAt" DESC
"""

SECURITY_EVENTS_SQL = f"""
SELECT sl.action, sl."createdAt" AS created_at, sl."ipAddress" AS ip, sl.severity, sl.details
FROM public."SecurityLog" sl
WHERE sl.email = :p1 AND sl."createdAt" BETWEEN :p2 AND :p3 AND sl.action != '{LOGIN_SUCCESS}'
ORDER BY sl."createdAt" DESC
"""

FEATURE_USAGE_SQL = """
SELECT
  (SELECT COUNT(*) FROM public."Task" t JOIN public.users u ON t."ownerId" = u.id
   WHERE u.email = :p1 AND t."createdAt" BETWEEN :p2 AND :p3) AS task_count,
  (SELECT COUNT(*) FROM public."Document" d JOIN public.users u ON d."ownerId" = u.id
   WHERE u.email = :p1 AND d."createdAt" BETWEEN :p2 AND :p3) AS document_count,
  (SELECT COUNT(*) FROM public."Vendor" v JOIN public.users u ON v."ownerId" = u.id
   WHERE u.email = :p1 AND v."createdAt" BETWEEN :p2 AND :p3) AS vendor_count
"""

# Scalar subqueries keep each signal independent of the others' row counts.
RISK_SIGNALS_SQL = """
SELECT
  (SELECT AVG(va.score) FROM public."Vendor" v JOIN public."VendorAPI" va ON va.id = v.id
   WHERE v."ownerId" = u.id AND v."createdAt" BETWEEN :p2 AND :p3) AS avg_vendor_score,
  (SELECT COUNT(*) FROM public."Vendor" v JOIN public."VendorAPI" va ON va.id = v.id
   WHERE v."ownerId" = u.id AND v."createdAt" BETWEEN :p2 AND :p3 AND va.score < :p4) AS high_risk_vendors,
  (SELECT COUNT(*) FROM public."Task" t
   WHERE t."ownerId" = u.id AND t."createdAt" BETWEEN :p2 AND :p3 AND t.status = 'FAIL') AS high_risk_tasks,
  (SELECT COUNT(*) FROM public."SecurityLog" sl
   WHERE sl.email = u.email AND sl."createdAt" BETWEEN :p2 AND :p3 AND sl.severity = 'HIGH') AS high_severity_events,
  (SELECT COUNT(*) FROM public."SecurityLog" sl
   WHERE sl.email = u.email AND sl."createdAt" BETWEEN :p2 AND :p3 AND sl.action LIKE '%FAIL%') AS failed_logins
FROM public.users u
WHERE u.email = :p1
"""

USER_SEARCH_COLUMNS = ("u.email", 'u."firstName"', 'u."lastName"', "o.name")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _int(value: Any) -> int:
    if value is None:
        return 0
    return int(value)


async def _read(executor: QueryExecutor, name: str, query: str, params: list[Any]) -> list[dict[str, Any]]:
    try:
        return await executor.execute(query, params)
    except Exception as exc:  # noqa: BLE001 - surfaced as a source failure
        raise SourceReadFailure(name) from exc


def _window_params(email: str, window: MetricWindow) -> list[Any]:
    return [email, window.start, window.end]


async def load_profile(executor: QueryExecutor, email: str, window: MetricWindow) -> dict[str, Any] | None:
    rows = await _read(executor, "profile", PROFILE_SQL, [email, window.end - ACTIVE_DAYS_LOOKBACK])
    if not rows:
        return None
    row = rows[0]
    return {
        **row,
        "id": str(row.get("id")),
        "total_logins": _int(row.get("total_logins")),
        "active_days_30d": _int(row.get("active_days_30d")),
        "total_tasks": _int(row.get("total_tasks")),
        "total_documents": _int(row.get("total_documents")),
        "total_vendors": _int(row.get("total_vendors")),
    }


async def load_login_sessions(executor: QueryExecutor, email: str, window: MetricWindow) -> list[LoginSession]:
    settings = get_settings()
    rows = await _read(executor, "login_sessions", LOGIN_ATTEMPTS_SQL, _window_params(email, window))
    attempts = [
        LoginAttempt(timestamp=as_utc(row["login_time"]), succeeded=row.get("action") == LOGIN_SUCCESS)  # type: ignore[arg-type]
        for row in rows
    ]
    minutes = estimate_session_minutes(
        attempts,
        default_minutes=settings.session_default_minutes,
        max_minutes=settings.session_max_minutes,
    )
    sessions = [
        LoginSession(
            timestamp=attempt.timestamp,
            action=row.get("action") or "",
            ip=row.get("ip"),
            user_agent=row.get("user_agent"),
            session_minutes=estimate,
        )
        for row, attempt, estimate in zip(rows, attempts, minutes)
    ]
    sessions.reverse()
    return sessions


def activity_type_for(action: str) -> str:
    if "login" in action:
        return "login"
    if action == "user.create":
        return "signup"
    if action == "organization.create":
        return "organization"
    if "vendor" in action:
        return "vendor"
    if "security" in action:
        return "security_scan"
    if "task" in action:
        return "task"
    if "document" in action:
        return "document"
    return "general"


CATEGORIES = {
    "user": "User Management",
    "vendor": "Vendor Management",
    "organization": "Organization",
    "security": "Security",
    "task": "Tasks",
    "document": "Documents",
}


def category_for(entity_type: str) -> str:
    return CATEGORIES.get(entity_type, "General")


def timeline_description(activity: Activity) -> str:
    event = activity.metadata.get("event")
    if event:
        return str(event)
    name = activity.entity_name
    fallbacks = {
        "user.create": f"New user account created: {name}",
        "organization.create": f"New organization created: {name}",
        "vendor.create": f"New vendor added: {name}",
        "vendor.assign": f"Added vendor to portfolio: {name}",
        "vendor.update": f"Vendor updated: {name}",
        "vendor.delete": f"Vendor removed: {name}",
        "security.scan_completed": f"Security scan completed for {name}",
        "user.login": "Logged in",
    }
    return fallbacks.get(activity.action, f"{activity.action}: {name}")


def belongs_to_actor(activity: Activity, email: str) -> bool:
    target = email.lower()
    candidates = (activity.actor_email, activity.entity_name, activity.metadata.get("email"))
    return any(isinstance(value, str) and value.lower() == target for value in candidates)


def timeline_item(activity: Activity) -> dict[str, Any]:
    return {
        "id": activity.id,
        "activity_type": activity_type_for(activity.action),
        "timestamp": activity.timestamp,
        "action": activity.action,
        "category": category_for(activity.entity_type),
        "description": timeline_description(activity),
        "metadata": {
            **activity.metadata,
            "entity_id": activity.entity_id,
            "entity_name": activity.entity_name,
            "user_name": activity.actor_name,
            "organization_name": activity.organization_name,
            "ip": activity.ip,
            "user_agent": activity.user_agent,
        },
    }


async def load_activity_timeline(executor: QueryExecutor, email: str, window: MetricWindow) -> list[dict[str, Any]]:
    settings = get_settings()
    filters = ActivityFilters(date_from=window.start, date_to=window.end)
    merged = await collect(executor, filters, with_estimate=False)
    considered = merged.activities[: settings.journey_timeline_limit]
    return [timeline_item(activity) for activity in considered if belongs_to_actor(activity, email)]


def _contract_active(vendor: dict[str, Any], now: datetime) -> bool:
    start = vendor.get("contract_start")
    end = vendor.get("contract_end")
    if not isinstance(start, datetime) or not isinstance(end, datetime):
        return False
    return as_utc(start) <= now <= as_utc(end)  # type: ignore[operator]


def summarize_vendors(
    internal: list[dict[str, Any]],
    external: list[dict[str, Any]],
    history: list[dict[str, Any]],
    window: MetricWindow,
) -> dict[str, Any]:
    vendors = [*internal, *external]
    created_by_user = [vendor for vendor in vendors if vendor.get("created_by_user")]
    distribution = {"low": 0, "medium": 0, "high": 0, "critical": 0, "not_assessed": 0}
    for vendor in vendors:
        distribution[vendor_risk_band(vendor.get("current_score"))] += 1
    scores = [float(vendor["current_score"]) for vendor in vendors if vendor.get("current_score") is not None]
    additions = [
        vendor
        for vendor in vendors
        if isinstance(vendor.get("added_date"), datetime)
        and window.start <= as_utc(vendor["added_date"]) <= window.end  # type: ignore[operator]
    ]
    return {
        "total_vendors": len(vendors),
        "internal_vendors": len(internal),
        "external_vendors": len(external),
        "user_created_vendors": len(created_by_user),
        "organization_vendors": len(vendors) - len(created_by_user),
        "risk_distribution": distribution,
        "avg_score": round_half_up(sum(scores) / len(scores)) if scores else 0,
        "contract_count": sum(1 for vendor in vendors if vendor.get("contract_start")),
        "active_contracts": sum(1 for vendor in vendors if _contract_active(vendor, window.end)),
        "trends": {"vendor_additions_period": len(additions), "security_scans_period": len(history)},
    }


def empty_vendor_journey(window: MetricWindow) -> dict[str, Any]:
    return {
        "summary": summarize_vendors([], [], [], window),
        "vendors": [],
        "vendor_history": [],
        "scan_timeline": [],
    }


async def load_vendor_journey(executor: QueryExecutor, email: str, window: MetricWindow) -> dict[str, Any]:
    internal = await _read(executor, "vendor_journey", INTERNAL_VENDORS_SQL, [email])
    external = await _read(executor, "vendor_journey", EXTERNAL_VENDORS_SQL, [email])
    history = await _read(executor, "vendor_journey", VENDOR_HISTORY_SQL, _window_params(email, window))
    vendors = sorted(
        [*internal, *external],
        key=lambda vendor: as_utc(vendor.get("added_date")) or window.start,
        reverse=True,
    )
    return {
        "summary": summarize_vendors(internal, external, history, window),
        "vendors": vendors,
        "vendor_history": history,
        "scan_timeline": [
            {
                "date": entry.get("created_at"),
                "vendor_name": entry.get("vendor_name"),
                "score": entry.get("score"),
                "grade": entry.get("grade"),
            }
            for entry in history
        ],
    }


def _distribution(rows: list[dict[str, Any]], labels: dict[str, str]) -> dict[str, int]:
    counts = {label: 0 for label in labels.values()}
    for row in rows:
        label = labels.get(row.get("status") or "")
        if label:
            counts[label] += 1
    return counts


def summarize_tasks(tasks: list[dict[str, Any]]) -> dict[str, Any]:
    durations = [float(task["completion_days"]) for task in tasks if task.get("completion_days") is not None]
    return {
        "total_tasks": len(tasks),
        "status_distribution": _distribution(tasks, TASK_STATUS_LABELS),
        "avg_completion_days": round(sum(durations) / len(durations), 1) if durations else 0,
        "recent_tasks": tasks[:RECENT_TASKS],
    }


def summarize_documents(documents: list[dict[str, Any]]) -> dict[str, Any]:
    types: dict[str, int] = {}
    for document in documents:
        key = document.get("type") or "unknown"
        types[key] = types.get(key, 0) + 1
    return {
        "total_documents": len(documents),
        "status_distribution": _distribution(documents, DOCUMENT_STATUS_LABELS),
        "type_distribution": types,
        "recent_documents": documents[:RECENT_DOCUMENTS],
    }


async def load_task_journey(executor: QueryExecutor, email: str, window: MetricWindow) -> dict[str, Any]:
    tasks = await _read(executor, "task_journey", TASKS_SQL, _window_params(email, window))
    return {"tasks": tasks, "summary": summarize_tasks(tasks)}


async def load_document_journey(executor: QueryExecutor, email: str, window: MetricWindow) -> dict[str, Any]:
    documents = await _read(executor, "document_journey", DOCUMENTS_SQL, _window_params(email, window))
    return {"documents": documents, "summary": summarize_documents(documents)}


def summarize_security(events: list[dict[str, Any]]) -> dict[str, Any]:
    return {
        "total_security_events": len(events),
        "severity_distribution": {
            severity.lower(): sum(1 for event in events if event.get("severity") == severity) for severity in SEVERITIES
        },
        "unique_ips": len({event.get("ip") for event in events if event.get("ip")}),
        "recent_events": events[:RECENT_SECURITY_EVENTS],
    }


async def load_security_journey(executor: QueryExecutor, email: str, window: MetricWindow) -> dict[str, Any]:
    events = await _read(executor, "security_journey", SECURITY_EVENTS_SQL, _window_params(email, window))
    return {"security_events": events, "summary": summarize_security(events)}


def summarize_feature_usage(row: dict[str, Any]) -> dict[str, Any]:
    features = [{"feature": feature, "count": _int(row.get(key))} for feature, key in FEATURES]
    total = sum(item["count"] for item in features)
    most_used = None
    if total > 0:
        # max() keeps the first feature on ties.
        most_used = max(features, key=lambda item: item["count"])["feature"]
    return {
        "features": [{**item, "percentage": ratio_pct(item["count"], total)} for item in features],
        "most_used_feature": most_used,
        "total_actions": total,
    }


async def load_feature_usage(executor: QueryExecutor, email: str, window: MetricWindow) -> dict[str, Any]:
    rows = await _read(executor, "feature_usage", FEATURE_USAGE_SQL, _window_params(email, window))
    return summarize_feature_usage(rows[0] if rows else {})


def build_risk_profile(row: dict[str, Any]) -> RiskProfile:
    high_risk_vendors = _int(row.get("high_risk_vendors"))
    high_risk_tasks = _int(row.get("high_risk_tasks"))
    high_severity_events = _int(row.get("high_severity_events"))
    failed_logins = _int(row.get("failed_logins"))
    score = risk_score(
        high_risk_vendors=high_risk_vendors,
        high_risk_tasks=high_risk_tasks,
        high_severity_events=high_severity_events,
        failed_logins=failed_logins,
    )
    average = row.get("avg_vendor_score")
    return RiskProfile(
        risk_score=score,
        risk_level=risk_level(score),
        avg_vendor_score=round_half_up(float(average)) if average is not None else 0,
        high_risk_vendors=high_risk_vendors,
        high_risk_tasks=high_risk_tasks,
        high_severity_events=high_severity_events,
        failed_logins=failed_logins,
    )


async def load_risk_profile(executor: QueryExecutor, email: str, window: MetricWindow) -> RiskProfile:
    params = [*_window_params(email, window), HIGH_RISK_VENDOR_SCORE]
    rows = await _read(executor, "risk_profile", RISK_SIGNALS_SQL, params)
    return build_risk_profile(rows[0] if rows else {})


def default_window(now: datetime | None = None) -> MetricWindow:
    settings = get_settings()
    return MetricWindow.trailing(days=settings.journey_default_window_days, now=now or _utc_now())


async def compose(
    executor: QueryExecutor,
    actor_email: str,
    window: MetricWindow | None = None,
) -> Journey:
    """Build the per-actor journey.

    The profile is read first and is the only hard dependency: a missing
    actor raises ``NotFoundError`` and an unreadable profile raises
    ``AggregationFailure``. Every other sub-result is read concurrently and
    degrades to its empty default on failure or timeout.
    """
    settings = get_settings()
    window = window or default_window()
    try:
        profile = await load_profile(executor, actor_email, window)
    except SourceReadFailure as exc:
        logger.warning("journey_profile_failed email=%s", actor_email, exc_info=exc.__cause__ or exc)
        raise AggregationFailure(f"Could not load profile for {actor_email}") from exc
    if profile is None:
        raise NotFoundError(f"User not found: {actor_email}")

    calls = [
        FanoutCall("login_sessions", partial(load_login_sessions, executor, actor_email, window), list),
        FanoutCall("activity_timeline", partial(load_activity_timeline, executor, actor_email, window), list),
        FanoutCall(
            "vendor_journey",
            partial(load_vendor_journey, executor, actor_email, window),
            partial(empty_vendor_journey, window),
        ),
        FanoutCall(
            "task_journey",
            partial(load_task_journey, executor, actor_email, window),
            lambda: {"tasks": [], "summary": summarize_tasks([])},
        ),
        FanoutCall(
            "document_journey",
            partial(load_document_journey, executor, actor_email, window),
            lambda: {"documents": [], "summary": summarize_documents([])},
        ),
        FanoutCall(
            "security_journey",
            partial(load_security_journey, executor, actor_email, window),
            lambda: {"security_events": [], "summary": summarize_security([])},
        ),
        FanoutCall(
            "feature_usage",
            partial(load_feature_usage, executor, actor_email, window),
            lambda: summarize_feature_usage({}),
        ),
        FanoutCall(
            "risk_profile",
            partial(load_risk_profile, executor, actor_email, window),
            lambda: build_risk_profile({}),
        ),
    ]
    results = await gather_with_defaults(calls, timeout_s=settings.journey_subquery_timeout_s)
    return Journey(profile=profile, window=window, **results)


async def search_users(executor: QueryExecutor, search: str | None, *, limit: int = 20) -> list[dict[str, Any]]:
    # Actors that can be analyzed, optionally narrowed by free text.
    builder = PredicateBuilder()
    builder.search(USER_SEARCH_COLUMNS, search)
    limit_placeholder = builder.bind(limit)
    query = (
        'SELECT CAST(u.id AS TEXT) AS id, u.email, u."firstName" AS first_name, u."lastName" AS last_name, '
        'u."createdAt" AS created_at, o.name AS organization_name '
        'FROM public.users u LEFT JOIN public."Organization" o ON u."currentOrganizationId" = o.id '
        f'{builder.sql()} ORDER BY u."createdAt" DESC LIMIT {limit_placeholder}'
    )
    return await _read(executor, "users", query, builder.params)
