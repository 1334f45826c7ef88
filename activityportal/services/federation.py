from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from functools import partial

from activityportal.core.config import get_settings
from activityportal.domain.activity import Activity, ActivityFilters, ActivityPage
from activityportal.persistence.executor import QueryExecutor
from activityportal.services.fanout import FanoutCall, gather_with_defaults
from activityportal.services.identity import parse
from activityportal.services.query_filters import page_offset, total_pages
from activityportal.services.sources import SourceAdapter, SourceSlice, default_sources, source_by_name


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MergedActivities:
    # Filtered, newest-first activities plus the estimated size of the full log.
    activities: list[Activity]
    total_estimate: int


def _empty_slice() -> SourceSlice:
    return SourceSlice(activities=[], complete=False)


def sort_activities(activities: list[Activity]) -> list[Activity]:
    # Newest first; equal timestamps fall back to id so pages are stable.
    return sorted(activities, key=lambda item: (item.timestamp, item.id), reverse=True)


def _searchable_text(activity: Activity) -> str:
    parts = [
        activity.entity_name,
        activity.actor_email,
        activity.actor_name,
        activity.action,
        activity.organization_name,
        activity.metadata.get("event"),
    ]
    return " ".join(str(part) for part in parts if part).lower()


def _within(timestamp: datetime, start: datetime | None, end: datetime | None) -> bool:
    if start is not None and timestamp < start:
        return False
    if end is not None and timestamp > end:
        return False
    return True


def matches_filters(activity: Activity, filters: ActivityFilters) -> bool:
    # In-memory predicate applied after the merge; pushed-down filters are re-checked here.
    if filters.tenant_id and activity.tenant_id != filters.tenant_id:
        return False
    if filters.actor_id and activity.actor_id != filters.actor_id:
        return False
    if filters.actor_email and (activity.actor_email or "").lower() != filters.actor_email.lower():
        return False
    if filters.entity_type and activity.entity_type != filters.entity_type:
        return False
    if filters.action and activity.action != filters.action:
        return False
    if not _within(activity.timestamp, filters.date_from, filters.date_to):
        return False
    if filters.q and filters.q.strip().lower() not in _searchable_text(activity):
        return False
    return True


async def collect(
    executor: QueryExecutor,
    filters: ActivityFilters,
    *,
    sources: list[SourceAdapter] | None = None,
    with_estimate: bool = True,
) -> MergedActivities:
    """Fan out to every eligible source, merge and filter in memory.

    Each source contributes at most its row cap, so for large tables the
    merged set is the union of per-source recent slices and deep pages are
    approximate. When every source returned fewer rows than its cap the
    merged set is complete and the total is its filtered size. Otherwise the
    total is estimated from per-source row counts, with any action filter
    pushed into the count, unless a free-text or actor filter is active; then
    it is again the filtered size.
    """
    settings = get_settings()
    selected = [source for source in (sources or default_sources()) if source.emits(filters)]
    calls = [
        FanoutCall(name=f"{source.name}:rows", func=partial(source.read, executor, filters), default=_empty_slice)
        for source in selected
    ]
    estimate_counts = with_estimate and not filters.has_text_filters()
    if estimate_counts:
        calls.extend(
            FanoutCall(name=f"{source.name}:count", func=partial(source.count, executor, filters), default=int)
            for source in selected
        )
    results = await gather_with_defaults(calls, timeout_s=settings.federation_source_timeout_s)

    merged: list[Activity] = []
    complete = True
    for source in selected:
        part: SourceSlice = results[f"{source.name}:rows"]
        merged.extend(part.activities)
        complete = complete and part.complete
    filtered = [activity for activity in sort_activities(merged) if matches_filters(activity, filters)]

    total = len(filtered)
    if estimate_counts and not complete:
        estimate = sum(int(results[f"{source.name}:count"]) for source in selected)
        total = max(estimate, total)
    logger.debug(
        "federation_collect sources=%s merged=%s filtered=%s total=%s",
        len(selected),
        len(merged),
        len(filtered),
        total,
    )
    return MergedActivities(activities=filtered, total_estimate=total)


async def merge(
    executor: QueryExecutor,
    filters: ActivityFilters,
    *,
    page: int,
    page_size: int,
    sources: list[SourceAdapter] | None = None,
) -> tuple[list[Activity], int]:
    # Slice [offset, offset + page_size) out of the merged, filtered stream.
    result = await collect(executor, filters, sources=sources)
    offset = page_offset(page, page_size)
    return result.activities[offset : offset + page_size], result.total_estimate


def resolve_page_size(limit: int | None) -> int:
    settings = get_settings()
    size = limit or settings.activity_page_size_default
    return max(1, min(size, settings.activity_page_size_max))


async def get_activities(
    executor: QueryExecutor,
    filters: ActivityFilters,
    *,
    sources: list[SourceAdapter] | None = None,
) -> ActivityPage:
    page_size = resolve_page_size(filters.limit)
    data, total = await merge(executor, filters, page=filters.page, page_size=page_size, sources=sources)
    return ActivityPage(
        data=data,
        total=total,
        page=filters.page,
        limit=page_size,
        total_pages=total_pages(total, page_size),
    )


async def get_activity_by_id(
    executor: QueryExecutor,
    identifier: str,
    *,
    sources: list[SourceAdapter] | None = None,
) -> Activity | None:
    # Re-read the single origin row and re-project it; unknown ids resolve to None.
    parsed = parse(identifier)
    if parsed is None:
        return None
    source = source_by_name(parsed.source, sources)
    if source is None:
        return None
    for activity in await source.fetch_by_origin(executor, parsed.origin_id):
        if activity.id == identifier:
            return activity
    return None
