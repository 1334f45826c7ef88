from __future__ import annotations

from datetime import datetime, timedelta, timezone
from functools import partial
from typing import Any

from activityportal.core.config import get_settings
from activityportal.core.errors import SourceReadFailure
from activityportal.domain.activity import as_utc
from activityportal.domain.analytics import MetricWindow
from activityportal.persistence.executor import QueryExecutor
from activityportal.services.fanout import FanoutCall, gather_with_defaults
from activityportal.services.heuristics import share_pct
from activityportal.services.sources.base import full_name


DOCUMENT_STATE_LABELS = {
    "NOT_RUN": "Created",
    "IN_PROGRESS": "In Review",
    "PASS": "Approved",
    "FAIL": "Rejected",
}
RECENT_DOCUMENT_DAYS = 7

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

MOST_ACTIVE_ACTORS_SQL = """
SELECT
  sl.email,
  MIN(CAST(u.id AS TEXT)) AS user_id,
  MIN(u."firstName") AS first_name,
  MIN(u."lastName") AS last_name,
  COUNT(*) AS event_count,
  MAX(sl."createdAt") AS last_activity,
  COUNT(DISTINCT DATE(sl."createdAt")) AS active_days,
  COUNT(*) FILTER (WHERE sl.action = 'LOGIN_SUCCESS') AS successful_logins,
  COUNT(*) FILTER (WHERE sl.action LIKE '%FAIL%') AS failed_logins
FROM public."SecurityLog" sl
LEFT JOIN public.users u ON sl.email = u.email
WHERE sl."createdAt" >= :p1 AND sl."createdAt" < :p2 AND sl.email IS NOT NULL
GROUP BY sl.email
ORDER BY event_count DESC, last_activity DESC
LIMIT :p3
"""

MOST_SCANNED_ENTITIES_SQL = """
SELECT
  va.id,
  va.name,
  va.domain,
  va.score,
  va.grade,
  va."lastSecurityScan" AS last_scan,
  (
    SELECT COUNT(*) FROM public."VendorAPIHistory" vh
    WHERE vh."vendorAPIId" = va.id AND vh."createdAt" >= :p1 AND vh."createdAt" < :p2
  ) AS scan_count
FROM public."VendorAPI" va
WHERE va."lastSecurityScan" >= :p1 AND va."lastSecurityScan" < :p2
ORDER BY va.score ASC NULLS LAST, va."lastSecurityScan" DESC
LIMIT :p3
"""

TASK_STATUS_SQL = """
SELECT t.status, COUNT(*) AS count
FROM public."Task" t
WHERE t."createdAt" >= :p1 AND t."createdAt" < :p2
GROUP BY t.status
"""

DOCUMENT_STATE_SQL = """
SELECT
  d.status,
  COUNT(*) AS count,
  COUNT(*) FILTER (WHERE d."createdAt" >= :p3) AS recent_count
FROM public."Document" d
WHERE d."createdAt" >= :p1 AND d."createdAt" < :p2
GROUP BY d.status
"""


def _recency(value: Any) -> float:
    timestamp = as_utc(value) if isinstance(value, datetime) else None
    return (timestamp or _EPOCH).timestamp()


def rank_actors(rows: list[dict[str, Any]], limit: int) -> list[dict[str, Any]]:
    # Most events first; ties go to the most recently active actor.
    ranked = sorted(
        rows,
        key=lambda row: (-int(row.get("event_count") or 0), -_recency(row.get("last_activity")), row.get("email") or ""),
    )
    return [
        {
            "email": row.get("email"),
            "user_id": row.get("user_id"),
            "name": full_name(row.get("first_name"), row.get("last_name")) or row.get("email"),
            "event_count": int(row.get("event_count") or 0),
            "last_activity": as_utc(row.get("last_activity")),
            "active_days": int(row.get("active_days") or 0),
            "successful_logins": int(row.get("successful_logins") or 0),
            "failed_logins": int(row.get("failed_logins") or 0),
        }
        for row in ranked[:limit]
    ]


def rank_entities(rows: list[dict[str, Any]], limit: int) -> list[dict[str, Any]]:
    # Worst risk score first, unscored entities last; ties go to the latest scan.
    def _key(row: dict[str, Any]) -> tuple[bool, float, float]:
        score = row.get("score")
        return (score is None, float(score) if score is not None else 0.0, -_recency(row.get("last_scan")))

    return [
        {
            "id": str(row.get("id")),
            "name": row.get("name") or row.get("domain"),
            "domain": row.get("domain"),
            "score": row.get("score"),
            "grade": row.get("grade"),
            "last_scan": as_utc(row.get("last_scan")),
            "scan_count": int(row.get("scan_count") or 0),
        }
        for row in sorted(rows, key=_key)[:limit]
    ]


def status_breakdown(rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
    total = sum(int(row.get("count") or 0) for row in rows)
    items = [
        {
            "status": row.get("status"),
            "count": int(row.get("count") or 0),
            "percentage": share_pct(int(row.get("count") or 0), total),
        }
        for row in rows
    ]
    return sorted(items, key=lambda item: (-item["count"], str(item["status"])))


def document_state_breakdown(rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
    items = status_breakdown(rows)
    recent = {row.get("status"): int(row.get("recent_count") or 0) for row in rows}
    return [
        {
            "state": DOCUMENT_STATE_LABELS.get(item["status"], item["status"]),
            "status": item["status"],
            "count": item["count"],
            "percentage": item["percentage"],
            "recent_count": recent.get(item["status"], 0),
        }
        for item in items
    ]


async def _read(executor: QueryExecutor, name: str, query: str, params: list[Any]) -> list[dict[str, Any]]:
    try:
        return await executor.execute(query, params)
    except Exception as exc:  # noqa: BLE001 - surfaced as a source failure
        raise SourceReadFailure(name) from exc


async def most_active_actors(executor: QueryExecutor, window: MetricWindow, limit: int = 10) -> list[dict[str, Any]]:
    rows = await _read(executor, "most_active_actors", MOST_ACTIVE_ACTORS_SQL, [window.start, window.end, limit])
    return rank_actors(rows, limit)


async def most_scanned_entities(
    executor: QueryExecutor,
    window: MetricWindow,
    limit: int = 10,
) -> list[dict[str, Any]]:
    rows = await _read(executor, "most_scanned_entities", MOST_SCANNED_ENTITIES_SQL, [window.start, window.end, limit])
    return rank_entities(rows, limit)


async def task_status_breakdown(executor: QueryExecutor, window: MetricWindow) -> list[dict[str, Any]]:
    rows = await _read(executor, "task_status_breakdown", TASK_STATUS_SQL, [window.start, window.end])
    return status_breakdown(rows)


async def document_states(executor: QueryExecutor, window: MetricWindow) -> list[dict[str, Any]]:
    recent_since = window.end - timedelta(days=RECENT_DOCUMENT_DAYS)
    rows = await _read(executor, "document_state_breakdown", DOCUMENT_STATE_SQL, [window.start, window.end, recent_since])
    return document_state_breakdown(rows)


async def get_top_lists(
    executor: QueryExecutor,
    window: MetricWindow,
    *,
    limit: int | None = None,
) -> dict[str, list[dict[str, Any]]]:
    settings = get_settings()
    size = limit or settings.top_list_default_limit
    calls = [
        FanoutCall("most_active_actors", partial(most_active_actors, executor, window, size), list),
        FanoutCall("most_scanned_entities", partial(most_scanned_entities, executor, window, size), list),
        FanoutCall("task_status_breakdown", partial(task_status_breakdown, executor, window), list),
        FanoutCall("document_state_breakdown", partial(document_states, executor, window), list),
    ]
    return await gather_with_defaults(calls, timeout_s=settings.kpi_family_timeout_s)
