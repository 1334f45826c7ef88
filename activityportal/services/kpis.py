from __future__ import annotations

from dataclasses import dataclass, field
from functools import partial
from typing import Any

from activityportal.core.config import get_settings
from activityportal.core.errors import SourceReadFailure
from activityportal.domain.analytics import KPIResult, MetricWindow
from activityportal.persistence.executor import QueryExecutor
from activityportal.services.fanout import FanoutCall, gather_with_defaults
from activityportal.services.heuristics import delta_pct, ratio_pct, round_half_up
from activityportal.services.query_filters import PredicateBuilder
from activityportal.services.sources.accounts import LOGIN_ACTIONS_SQL


GRADES = ("A", "B", "C", "D", "F")
# Bind order shared by every family query: current window, then previous window.
_PERIOD_BINDS = {"current": (":p1", ":p2"), "previous": (":p3", ":p4")}


@dataclass(frozen=True)
class Counter:
    # One counted metric; the first counter of a family is its headline value.
    name: str
    column: str
    condition: str | None = None
    distinct: str | None = None


@dataclass(frozen=True)
class Ratio:
    name: str
    numerator: str
    denominator: str


@dataclass(frozen=True)
class FamilySpec:
    name: str
    from_sql: str
    counters: tuple[Counter, ...]
    where: tuple[str, ...] = ()
    tenant_condition: str | None = None
    # (value column, window column) pairs for current-window averages and grades.
    average: tuple[str, str] | None = None
    grades: tuple[str, str] | None = None
    ratios: tuple[Ratio, ...] = field(default_factory=tuple)


FAMILIES: tuple[FamilySpec, ...] = (
    FamilySpec(
        name="logins",
        from_sql='public."SecurityLog" sl LEFT JOIN public.users u ON sl.email = u.email',
        where=(f"sl.action IN ({LOGIN_ACTIONS_SQL})",),
        tenant_condition='u."currentOrganizationId" = {0}',
        counters=(
            Counter("total", 'sl."createdAt"'),
            Counter("success", 'sl."createdAt"', "sl.action = 'LOGIN_SUCCESS'"),
            Counter("failed", 'sl."createdAt"', "sl.action LIKE '%FAIL%'"),
        ),
    ),
    FamilySpec(
        name="active_users",
        from_sql='public."SecurityLog" sl LEFT JOIN public.users u ON sl.email = u.email',
        where=("sl.email IS NOT NULL",),
        tenant_condition='u."currentOrganizationId" = {0}',
        counters=(Counter("users", 'sl."createdAt"', distinct="sl.email"),),
    ),
    FamilySpec(
        name="tasks",
        from_sql='public."Task" t',
        tenant_condition='t."organizationId" = {0}',
        counters=(
            Counter("created", 't."createdAt"'),
            Counter("completed", 't."updatedAt"', "t.status = 'PASS'"),
        ),
        ratios=(Ratio("completion_rate", "completed", "created"),),
    ),
    FamilySpec(
        name="documents",
        from_sql='public."Document" d',
        tenant_condition='d."organizationId" = {0}',
        counters=(
            Counter("created", 'd."createdAt"'),
            Counter("approved", 'd."updatedAt"', "d.status = 'PASS'"),
        ),
    ),
    FamilySpec(
        name="vendor_scans",
        from_sql='public."VendorAPI" va',
        where=('va."lastSecurityScan" IS NOT NULL',),
        tenant_condition=(
            'EXISTS (SELECT 1 FROM public."VendorOnOrganization" voo '
            'WHERE voo."vendorId" = va.id AND voo."organizationId" = {0})'
        ),
        counters=(Counter("scans", 'va."lastSecurityScan"'),),
        average=("va.score", 'va."lastSecurityScan"'),
        grades=("va.grade", 'va."lastSecurityScan"'),
    ),
    FamilySpec(
        name="security_tests",
        from_sql='public."TestCase" tc',
        where=("tc.status IS NOT NULL",),
        tenant_condition='tc."organizationId" = {0}',
        counters=(
            Counter("executions", 'tc."updatedAt"'),
            Counter("passed", 'tc."updatedAt"', "tc.status = 'PASS'"),
        ),
        ratios=(Ratio("pass_rate", "passed", "executions"),),
    ),
    FamilySpec(
        name="audits",
        from_sql='public."AiAuditResult" ar',
        where=("ar.score IS NOT NULL",),
        tenant_condition='ar."organizationId" = {0}',
        counters=(Counter("audits", 'ar."createdAt"'),),
        average=("ar.score", 'ar."createdAt"'),
        grades=("ar.grade", 'ar."createdAt"'),
    ),
)

FAMILY_NAMES = tuple(spec.name for spec in FAMILIES)


def _window_sql(column: str, period: str) -> str:
    start, end = _PERIOD_BINDS[period]
    return f"{column} >= {start} AND {column} < {end}"


def _filtered(aggregate: str, column: str, period: str, condition: str | None = None) -> str:
    clause = _window_sql(column, period)
    if condition:
        clause = f"{clause} AND {condition}"
    return f"{aggregate} FILTER (WHERE {clause})"


def build_family_query(
    spec: FamilySpec,
    window: MetricWindow,
    *,
    tenant_id: str | None = None,
) -> tuple[str, list[Any]]:
    # One aggregate statement computes both windows for the whole family.
    previous = window.previous()
    builder = PredicateBuilder(start=5)
    for condition in spec.where:
        builder.condition(condition)
    if spec.tenant_condition and tenant_id:
        builder.condition(spec.tenant_condition, tenant_id)

    columns: list[str] = []
    for counter in spec.counters:
        aggregate = f"COUNT(DISTINCT {counter.distinct})" if counter.distinct else "COUNT(*)"
        for period in ("current", "previous"):
            expression = _filtered(aggregate, counter.column, period, counter.condition)
            columns.append(f"{expression} AS {period}_{counter.name}")
    if spec.average:
        value_column, window_column = spec.average
        columns.append(f"{_filtered(f'AVG({value_column})', window_column, 'current')} AS current_avg_score")
    if spec.grades:
        grade_column, window_column = spec.grades
        for grade in GRADES:
            condition = f"{grade_column} = '{grade}'"
            columns.append(f"{_filtered('COUNT(*)', window_column, 'current', condition)} AS grade_{grade.lower()}")

    query = f"SELECT {', '.join(columns)} FROM {spec.from_sql} {builder.sql()}"
    params: list[Any] = [window.start, window.end, previous.start, previous.end, *builder.params]
    return query, params


def _count(row: dict[str, Any], key: str) -> int:
    value = row.get(key)
    if value is None:
        return 0
    return int(value)


def reduce_family_row(spec: FamilySpec, row: dict[str, Any]) -> KPIResult:
    results: dict[str, KPIResult] = {}
    for counter in spec.counters:
        current = _count(row, f"current_{counter.name}")
        previous = _count(row, f"previous_{counter.name}")
        results[counter.name] = KPIResult(
            current_count=current,
            previous_count=previous,
            delta_pct=delta_pct(current, previous),
        )
    derived: dict[str, Any] = {}
    for ratio in spec.ratios:
        derived[ratio.name] = ratio_pct(
            results[ratio.numerator].current_count,
            results[ratio.denominator].current_count,
        )
    if spec.average:
        average = row.get("current_avg_score")
        derived["avg_score"] = round_half_up(float(average)) if average is not None else 0
    if spec.grades:
        derived["grade_distribution"] = {grade: _count(row, f"grade_{grade.lower()}") for grade in GRADES}

    headline = results[spec.counters[0].name]
    breakdown = {name: result for name, result in results.items() if name != spec.counters[0].name}
    return KPIResult(
        current_count=headline.current_count,
        previous_count=headline.previous_count,
        delta_pct=headline.delta_pct,
        breakdown=breakdown,
        derived=derived,
    )


def empty_family_result(spec: FamilySpec) -> KPIResult:
    # Zeroed result used when a family query fails or times out.
    return reduce_family_row(spec, {})


def family_spec(name: str) -> FamilySpec:
    for spec in FAMILIES:
        if spec.name == name:
            return spec
    raise KeyError(name)


async def compute_family(
    executor: QueryExecutor,
    spec: FamilySpec,
    window: MetricWindow,
    *,
    tenant_id: str | None = None,
) -> KPIResult:
    query, params = build_family_query(spec, window, tenant_id=tenant_id)
    try:
        rows = await executor.execute(query, params)
    except Exception as exc:  # noqa: BLE001 - reported as a failed family
        raise SourceReadFailure(spec.name) from exc
    return reduce_family_row(spec, rows[0] if rows else {})


async def get_login_metrics(executor: QueryExecutor, window: MetricWindow) -> KPIResult:
    # Login totals for the window: current_count is the total, breakdown holds success/failed.
    return await compute_family(executor, family_spec("logins"), window)


async def get_dashboard_kpis(
    executor: QueryExecutor,
    window: MetricWindow,
    *,
    tenant_id: str | None = None,
) -> dict[str, KPIResult]:
    settings = get_settings()
    calls = [
        FanoutCall(
            name=spec.name,
            func=partial(compute_family, executor, spec, window, tenant_id=tenant_id),
            default=partial(empty_family_result, spec),
        )
        for spec in FAMILIES
    ]
    return await gather_with_defaults(calls, timeout_s=settings.kpi_family_timeout_s)
