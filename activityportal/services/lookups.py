from __future__ import annotations

from typing import Any

from activityportal.core.errors import SourceReadFailure
from activityportal.persistence.executor import QueryExecutor


# Option lists for filter pickers; each is a full, name-ordered listing.
USERS_SQL = (
    "SELECT CAST(u.id AS TEXT) AS id, u.email, "
    "TRIM(COALESCE(u.\"firstName\", '') || ' ' || COALESCE(u.\"lastName\", '')) AS name "
    "FROM public.users u ORDER BY u.email"
)
VENDORS_SQL = 'SELECT CAST(va.id AS TEXT) AS id, va.name, va.domain FROM public."VendorAPI" va ORDER BY va.name'
ORGANIZATIONS_SQL = 'SELECT CAST(o.id AS TEXT) AS id, o.name FROM public."Organization" o ORDER BY o.name'


async def _read(executor: QueryExecutor, name: str, query: str) -> list[dict[str, Any]]:
    try:
        return await executor.execute(query, [])
    except Exception as exc:  # noqa: BLE001 - surfaced as a source failure
        raise SourceReadFailure(name) from exc


async def list_users(executor: QueryExecutor) -> list[dict[str, Any]]:
    return await _read(executor, "users", USERS_SQL)


async def list_vendors(executor: QueryExecutor) -> list[dict[str, Any]]:
    return await _read(executor, "vendors", VENDORS_SQL)


async def list_organizations(executor: QueryExecutor) -> list[dict[str, Any]]:
    return await _read(executor, "organizations", ORGANIZATIONS_SQL)
