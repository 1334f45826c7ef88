from __future__ import annotations

from datetime import datetime
from typing import Any

from activityportal.domain.activity import Activity, ActivityFilters
from activityportal.domain.analytics import Journey, KPIResult, MetricWindow
from activityportal.domain.filters import TabFilters, VendorSearchFilters
from activityportal.persistence.executor import QueryExecutor, get_executor
from activityportal.services import activity_stats, activity_tabs, federation, journey, kpis, timeseries, toplists
from activityportal.services import lookups, vendor_overview, vendor_search
from activityportal.services.activity_stats import ActivityStats


# Public entry points; every call takes an optional executor and defaults to the configured database.


def _resolve(executor: QueryExecutor | None) -> QueryExecutor:
    return executor or get_executor()


async def get_activities(
    filters: ActivityFilters | dict[str, Any] | None = None,
    *,
    executor: QueryExecutor | None = None,
) -> dict[str, Any]:
    parsed = filters if isinstance(filters, ActivityFilters) else ActivityFilters.model_validate(filters or {})
    page = await federation.get_activities(_resolve(executor), parsed)
    return page.as_dict()


async def get_activity_by_id(identifier: str, *, executor: QueryExecutor | None = None) -> Activity | None:
    return await federation.get_activity_by_id(_resolve(executor), identifier)


async def get_dashboard_kpis(
    window: MetricWindow,
    *,
    tenant_id: str | None = None,
    executor: QueryExecutor | None = None,
) -> dict[str, KPIResult]:
    return await kpis.get_dashboard_kpis(_resolve(executor), window, tenant_id=tenant_id)


async def get_login_metrics(window: MetricWindow, *, executor: QueryExecutor | None = None) -> KPIResult:
    return await kpis.get_login_metrics(_resolve(executor), window)


async def get_time_series(
    window: MetricWindow,
    source: str,
    granularity: str = "day",
    *,
    fill_missing: bool = False,
    executor: QueryExecutor | None = None,
) -> list[dict[str, Any]]:
    return await timeseries.get_time_series(
        _resolve(executor),
        window,
        source,
        granularity,
        fill_missing=fill_missing,
    )


async def get_top_lists(
    window: MetricWindow,
    *,
    limit: int | None = None,
    executor: QueryExecutor | None = None,
) -> dict[str, list[dict[str, Any]]]:
    return await toplists.get_top_lists(_resolve(executor), window, limit=limit)


async def get_user_journey(
    actor_email: str,
    window: MetricWindow | None = None,
    *,
    executor: QueryExecutor | None = None,
) -> Journey:
    return await journey.compose(_resolve(executor), actor_email, window)


async def search_users(
    search: str | None = None,
    *,
    limit: int = 20,
    executor: QueryExecutor | None = None,
) -> list[dict[str, Any]]:
    return await journey.search_users(_resolve(executor), search, limit=limit)


async def search_vendors(
    filters: VendorSearchFilters | dict[str, Any] | None = None,
    *,
    executor: QueryExecutor | None = None,
) -> dict[str, Any]:
    parsed = filters if isinstance(filters, VendorSearchFilters) else VendorSearchFilters.model_validate(filters or {})
    return await vendor_search.search_vendors(_resolve(executor), parsed)


async def get_vendor_details(vendor_id: str, *, executor: QueryExecutor | None = None) -> dict[str, Any]:
    return await vendor_search.get_vendor_details(_resolve(executor), vendor_id)


async def get_top_vendors_by_risk(limit: int = 10, *, executor: QueryExecutor | None = None) -> list[dict[str, Any]]:
    return await vendor_search.get_top_vendors_by_risk(_resolve(executor), limit)


async def get_vendor_security_trends(
    window: MetricWindow,
    *,
    executor: QueryExecutor | None = None,
) -> list[dict[str, Any]]:
    return await vendor_search.get_vendor_security_trends(_resolve(executor), window)


async def get_vendor_overview(
    window: MetricWindow,
    *,
    organization_id: str | None = None,
    executor: QueryExecutor | None = None,
) -> dict[str, Any]:
    return await vendor_overview.vendor_overview(_resolve(executor), window, organization_id=organization_id)


async def get_vendor_stats(
    window: MetricWindow,
    *,
    organization_id: str | None = None,
    executor: QueryExecutor | None = None,
) -> dict[str, Any]:
    return await vendor_overview.get_vendor_stats(_resolve(executor), window, organization_id=organization_id)


async def get_recent_vendors(limit: int = 20, *, executor: QueryExecutor | None = None) -> list[dict[str, Any]]:
    return await vendor_overview.get_recent_vendors(_resolve(executor), limit)


async def get_vendors_by_organization(*, executor: QueryExecutor | None = None) -> list[dict[str, Any]]:
    return await vendor_overview.get_vendors_by_organization(_resolve(executor))


async def get_vendor_contract_summary(*, executor: QueryExecutor | None = None) -> dict[str, Any]:
    return await vendor_overview.get_vendor_contract_summary(_resolve(executor))


async def get_recent_vendor_activities(
    window: MetricWindow,
    limit: int = 50,
    *,
    executor: QueryExecutor | None = None,
) -> list[dict[str, Any]]:
    return await vendor_overview.get_recent_vendor_activities(_resolve(executor), window, limit)


async def list_users(*, executor: QueryExecutor | None = None) -> list[dict[str, Any]]:
    return await lookups.list_users(_resolve(executor))


async def list_vendors(*, executor: QueryExecutor | None = None) -> list[dict[str, Any]]:
    return await lookups.list_vendors(_resolve(executor))


async def list_organizations(*, executor: QueryExecutor | None = None) -> list[dict[str, Any]]:
    return await lookups.list_organizations(_resolve(executor))


async def get_activity_stats(
    filters: ActivityFilters | dict[str, Any] | None = None,
    *,
    now: datetime | None = None,
    executor: QueryExecutor | None = None,
) -> ActivityStats:
    parsed = filters if isinstance(filters, ActivityFilters) else ActivityFilters.model_validate(filters or {})
    return await activity_stats.get_activity_stats(_resolve(executor), parsed, now=now)


def _tab_filters(filters: TabFilters | dict[str, Any] | None) -> TabFilters:
    if isinstance(filters, TabFilters):
        return filters
    return TabFilters.model_validate(filters or {})


async def get_login_activity(
    filters: TabFilters | dict[str, Any] | None = None,
    *,
    executor: QueryExecutor | None = None,
) -> dict[str, Any]:
    return await activity_tabs.get_login_activity(_resolve(executor), _tab_filters(filters))


async def get_task_activity(
    filters: TabFilters | dict[str, Any] | None = None,
    *,
    executor: QueryExecutor | None = None,
) -> dict[str, Any]:
    return await activity_tabs.get_task_activity(_resolve(executor), _tab_filters(filters))


async def get_document_activity(
    filters: TabFilters | dict[str, Any] | None = None,
    *,
    executor: QueryExecutor | None = None,
) -> dict[str, Any]:
    return await activity_tabs.get_document_activity(_resolve(executor), _tab_filters(filters))


async def get_vendor_scan_activity(
    filters: TabFilters | dict[str, Any] | None = None,
    *,
    executor: QueryExecutor | None = None,
) -> dict[str, Any]:
    return await activity_tabs.get_vendor_scan_activity(_resolve(executor), _tab_filters(filters))


async def get_security_test_activity(
    filters: TabFilters | dict[str, Any] | None = None,
    *,
    executor: QueryExecutor | None = None,
) -> dict[str, Any]:
    return await activity_tabs.get_security_test_activity(_resolve(executor), _tab_filters(filters))


async def get_audit_activity(
    filters: TabFilters | dict[str, Any] | None = None,
    *,
    executor: QueryExecutor | None = None,
) -> dict[str, Any]:
    return await activity_tabs.get_audit_activity(_resolve(executor), _tab_filters(filters))
