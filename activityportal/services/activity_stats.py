from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Iterable

from activityportal.domain.activity import Activity, ActivityFilters
from activityportal.persistence.executor import QueryExecutor
from activityportal.services.federation import collect


STATS_DEFAULT_DAYS = 30
STATS_TOP_LIMIT = 10


@dataclass(frozen=True)
class ActivityStats:
    # Aggregate view over the merged activity stream for one filter set.
    total_activities: int
    actions_by_type: dict[str, int]
    entities_by_type: dict[str, int]
    top_users: list[dict[str, Any]]
    top_entities: list[dict[str, Any]]
    time_series: list[dict[str, Any]]


def build_daily_points(*, start_date: date, days: int, counts_by_date: dict[date, int]) -> list[dict[str, Any]]:
    # Fill missing dates so chart consumers receive contiguous series points.
    points: list[dict[str, Any]] = []
    for offset in range(days):
        current = start_date + timedelta(days=offset)
        points.append({"date": current.isoformat(), "count": int(counts_by_date.get(current, 0))})
    return points


def top_users(activities: Iterable[Activity], limit: int) -> list[dict[str, Any]]:
    counts: Counter[tuple[str | None, str]] = Counter()
    for activity in activities:
        if activity.actor_email:
            counts[(activity.actor_id, activity.actor_email)] += 1
    ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0][1]))
    return [
        {"user_id": actor_id, "user_email": email, "count": count}
        for (actor_id, email), count in ranked[:limit]
    ]


def top_entities(activities: Iterable[Activity], limit: int) -> list[dict[str, Any]]:
    counts: Counter[tuple[str, str]] = Counter()
    names: dict[tuple[str, str], str | None] = {}
    for activity in activities:
        if activity.entity_id is None:
            continue
        key = (activity.entity_type, activity.entity_id)
        counts[key] += 1
        names.setdefault(key, activity.entity_name)
    ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    return [
        {"entity_type": entity_type, "entity_id": entity_id, "entity_name": names[(entity_type, entity_id)], "count": count}
        for (entity_type, entity_id), count in ranked[:limit]
    ]


def summarize(
    activities: list[Activity],
    *,
    total: int,
    start: datetime,
    end: datetime,
    limit: int = STATS_TOP_LIMIT,
) -> ActivityStats:
    by_day: Counter[date] = Counter(activity.timestamp.date() for activity in activities)
    days = (end.date() - start.date()).days + 1
    return ActivityStats(
        total_activities=total,
        actions_by_type=dict(Counter(activity.action for activity in activities)),
        entities_by_type=dict(Counter(activity.entity_type for activity in activities)),
        top_users=top_users(activities, limit),
        top_entities=top_entities(activities, limit),
        time_series=build_daily_points(start_date=start.date(), days=max(days, 0), counts_by_date=by_day),
    )


async def get_activity_stats(
    executor: QueryExecutor,
    filters: ActivityFilters | None = None,
    *,
    now: datetime | None = None,
) -> ActivityStats:
    """Summarize the merged activity stream.

    Counts reflect the merged, capped slice each source contributes; the
    ``total_activities`` figure uses the same estimate as paginated listings.
    Without explicit dates the last 30 days are summarized.
    """
    base = filters or ActivityFilters()
    end = base.date_to or now or datetime.now(timezone.utc)
    start = base.date_from or (end - timedelta(days=STATS_DEFAULT_DAYS - 1)).replace(
        hour=0, minute=0, second=0, microsecond=0
    )
    scoped = base.model_copy(update={"date_from": start, "date_to": end})
    merged = await collect(executor, scoped)
    return summarize(merged.activities, total=merged.total_estimate, start=start, end=end)
