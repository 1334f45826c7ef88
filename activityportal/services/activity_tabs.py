from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable

from activityportal.core.errors import SourceReadFailure
from activityportal.domain.filters import TabFilters
from activityportal.persistence.executor import QueryExecutor
from activityportal.services.query_filters import PredicateBuilder, SortSpec, page_offset, parse_sort, total_pages
from activityportal.services.sources.accounts import LOGIN_ACTIONS_SQL, LOGIN_SUCCESS


def _no_options(builder: PredicateBuilder, filters: TabFilters) -> None:
    return None


@dataclass(frozen=True)
class TabSpec:
    # Paginated listing of one source table.
    name: str
    columns: str
    from_sql: str
    timestamp_column: str
    search_columns: tuple[str, ...]
    where: tuple[str, ...] = ()
    options: Callable[[PredicateBuilder, TabFilters], None] = _no_options
    sorts: dict[str, SortSpec] = field(default_factory=dict)
    default_sort: str = "timestamp"

    def sort_options(self) -> dict[str, SortSpec]:
        return {"timestamp": SortSpec(self.timestamp_column), **self.sorts}


def _login_options(builder: PredicateBuilder, filters: TabFilters) -> None:
    if filters.success is True:
        builder.condition(f"sl.action = '{LOGIN_SUCCESS}'")
    elif filters.success is False:
        builder.condition("sl.action LIKE '%FAIL%'")


def _task_options(builder: PredicateBuilder, filters: TabFilters) -> None:
    builder.equals("t.status", filters.status)
    builder.equals('CAST(t."frameworkId" AS TEXT)', filters.framework)


def _document_options(builder: PredicateBuilder, filters: TabFilters) -> None:
    builder.equals("d.status", filters.status)
    builder.equals("d.type", filters.type)


def _scan_options(builder: PredicateBuilder, filters: TabFilters) -> None:
    builder.equals("va.grade", filters.grade)
    builder.at_least("va.score", filters.min_score)


def _test_options(builder: PredicateBuilder, filters: TabFilters) -> None:
    builder.equals("tc.status", filters.result)


def _audit_options(builder: PredicateBuilder, filters: TabFilters) -> None:
    builder.equals("ar.grade", filters.grade)
    builder.at_least("ar.score", filters.min_score)


LOGIN_TAB = TabSpec(
    name="logins",
    columns=(
        "CAST(sl.id AS TEXT) AS id, sl.email, "
        "COALESCE(u.\"firstName\" || ' ' || u.\"lastName\", sl.email) AS user_name, sl.action, "
        'sl."ipAddress" AS ip, sl."userAgent" AS user_agent, sl."createdAt" AS created_at, sl.details, '
        f"sl.severity, o.name AS organization_name, (sl.action = '{LOGIN_SUCCESS}') AS success"
    ),
    from_sql=(
        'public."SecurityLog" sl LEFT JOIN public.users u ON sl.email = u.email '
        'LEFT JOIN public."Organization" o ON u."currentOrganizationId" = o.id'
    ),
    timestamp_column='sl."createdAt"',
    search_columns=("sl.email", 'u."firstName"', 'u."lastName"'),
    where=(f"sl.action IN ({LOGIN_ACTIONS_SQL})",),
    options=_login_options,
    sorts={"email": SortSpec("sl.email")},
)

TASK_TAB = TabSpec(
    name="tasks",
    columns=(
        't.id, t.name AS title, t.description, t.status, t."frameworkId" AS framework_id, '
        't."createdAt" AS created_at, t."updatedAt" AS updated_at, t."ownerId" AS owner_id, '
        "COALESCE(u.\"firstName\" || ' ' || u.\"lastName\", 'Unassigned') AS owner_name, "
        "o.name AS organization_name"
    ),
    from_sql=(
        'public."Task" t LEFT JOIN public.users u ON t."ownerId" = u.id '
        'LEFT JOIN public."Organization" o ON t."organizationId" = o.id'
    ),
    timestamp_column='t."createdAt"',
    search_columns=("t.name", "t.description"),
    options=_task_options,
    sorts={"status": SortSpec("t.status"), "updated_at": SortSpec('t."updatedAt"')},
)

DOCUMENT_TAB = TabSpec(
    name="documents",
    columns=(
        'd.id, d.name, d.description, d.type, d.status, d."createdAt" AS created_at, '
        'd."updatedAt" AS updated_at, d."ownerId" AS owner_id, '
        "COALESCE(u.\"firstName\" || ' ' || u.\"lastName\", 'Unassigned') AS owner_name, "
        'o.name AS organization_name, d."evidenceStatus" AS evidence_status, d."nextRefresh" AS next_refresh'
    ),
    from_sql=(
        'public."Document" d LEFT JOIN public.users u ON d."ownerId" = u.id '
        'LEFT JOIN public."Organization" o ON d."organizationId" = o.id'
    ),
    timestamp_column='d."createdAt"',
    search_columns=("d.name", "d.description"),
    options=_document_options,
    sorts={"status": SortSpec("d.status"), "type": SortSpec("d.type")},
)

VENDOR_SCAN_TAB = TabSpec(
    name="vendor_scans",
    columns=(
        "va.id, COALESCE(v.name, va.name) AS vendor_name, va.domain, va.score, va.grade, "
        'va."lastSecurityScan" AS last_scan, va."lastAssessmentDate" AS last_assessment, va.status, '
        'v.country, v."contractStartDate" AS contract_start, v."contractEndDate" AS contract_end'
    ),
    from_sql='public."VendorAPI" va LEFT JOIN public."Vendor" v ON v.id = va.id',
    timestamp_column='va."lastSecurityScan"',
    search_columns=("COALESCE(v.name, va.name)", "va.domain"),
    where=('va."lastSecurityScan" IS NOT NULL',),
    options=_scan_options,
    sorts={"score": SortSpec("va.score", nulls_last=True)},
)

SECURITY_TEST_TAB = TabSpec(
    name="security_tests",
    columns=(
        'tc.id, tc.name AS title, tc.description, tc.status AS result, tc."updatedAt" AS executed_at, '
        'tc."createdAt" AS created_at, tc."ownerId" AS owner_id, '
        "COALESCE(u.\"firstName\" || ' ' || u.\"lastName\", 'System') AS executed_by, "
        "o.name AS organization_name"
    ),
    from_sql=(
        'public."TestCase" tc LEFT JOIN public.users u ON tc."ownerId" = u.id '
        'LEFT JOIN public."Organization" o ON tc."organizationId" = o.id'
    ),
    timestamp_column='tc."updatedAt"',
    search_columns=("tc.name", "tc.description"),
    where=("tc.status IS NOT NULL",),
    options=_test_options,
    sorts={"result": SortSpec("tc.status")},
)

AUDIT_TAB = TabSpec(
    name="audits",
    columns=(
        'ar.id, ar."organizationId" AS organization_id, o.name AS organization_name, ar.score, ar.grade, '
        'ar."createdAt" AS created_at, ar."updatedAt" AS updated_at, ar."frameworkId" AS framework_id, '
        "'AI Assessment' AS audit_type"
    ),
    from_sql='public."AiAuditResult" ar LEFT JOIN public."Organization" o ON ar."organizationId" = o.id',
    timestamp_column='ar."createdAt"',
    search_columns=("o.name",),
    where=("ar.score IS NOT NULL",),
    options=_audit_options,
    sorts={"score": SortSpec("ar.score", nulls_last=True)},
)


def build_tab_queries(spec: TabSpec, filters: TabFilters) -> tuple[str, str, list[Any], list[Any]]:
    sort = parse_sort(
        sort_by=filters.sort_by,
        sort_order=filters.sort_order,
        allowed=spec.sort_options(),
        default=spec.default_sort,
    )
    builder = PredicateBuilder()
    builder.between(spec.timestamp_column, filters.date_from, filters.date_to)
    for condition in spec.where:
        builder.condition(condition)
    builder.search(spec.search_columns, filters.search)
    spec.options(builder, filters)
    where = builder.sql()
    count_params = builder.params
    count_query = f"SELECT COUNT(*) AS total FROM {spec.from_sql} {where}"
    limit = builder.bind(filters.limit)
    offset = builder.bind(page_offset(filters.page, filters.limit))
    data_query = (
        f"SELECT {spec.columns} FROM {spec.from_sql} {where} "
        f"ORDER BY {sort.sql()} LIMIT {limit} OFFSET {offset}"
    )
    return data_query, count_query, builder.params, count_params


async def list_tab(executor: QueryExecutor, spec: TabSpec, filters: TabFilters) -> dict[str, Any]:
    data_query, count_query, params, count_params = build_tab_queries(spec, filters)
    try:
        rows = await executor.execute(data_query, params)
        count_rows = await executor.execute(count_query, count_params)
    except Exception as exc:  # noqa: BLE001 - surfaced as a source failure
        raise SourceReadFailure(spec.name) from exc
    total = int(count_rows[0].get("total") or 0) if count_rows else 0
    return {
        "data": rows,
        "total": total,
        "page": filters.page,
        "limit": filters.limit,
        "total_pages": total_pages(total, filters.limit),
    }


async def get_login_activity(executor: QueryExecutor, filters: TabFilters) -> dict[str, Any]:
    return await list_tab(executor, LOGIN_TAB, filters)


async def get_task_activity(executor: QueryExecutor, filters: TabFilters) -> dict[str, Any]:
    return await list_tab(executor, TASK_TAB, filters)


async def get_document_activity(executor: QueryExecutor, filters: TabFilters) -> dict[str, Any]:
    return await list_tab(executor, DOCUMENT_TAB, filters)


async def get_vendor_scan_activity(executor: QueryExecutor, filters: TabFilters) -> dict[str, Any]:
    return await list_tab(executor, VENDOR_SCAN_TAB, filters)


async def get_security_test_activity(executor: QueryExecutor, filters: TabFilters) -> dict[str, Any]:
    return await list_tab(executor, SECURITY_TEST_TAB, filters)


async def get_audit_activity(executor: QueryExecutor, filters: TabFilters) -> dict[str, Any]:
    return await list_tab(executor, AUDIT_TAB, filters)
