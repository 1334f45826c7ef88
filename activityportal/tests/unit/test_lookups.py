from __future__ import annotations

import pytest

from activityportal.core.errors import SourceReadFailure
from activityportal.services import portal
from activityportal.services.lookups import list_organizations, list_users, list_vendors
from activityportal.tests.utils.fakes import FailingExecutor, FakeExecutor


@pytest.mark.asyncio
async def test_lookup_lists_are_name_ordered() -> None:
    executor = (
        FakeExecutor()
        .on("FROM public.users u", [{"id": "1", "email": "ada@example.com", "name": "Ada Lovelace"}])
        .on('FROM public."VendorAPI" va', [{"id": "4", "name": "Globex", "domain": "globex.test"}])
        .on('FROM public."Organization" o', [{"id": "2", "name": "Acme"}])
    )

    assert (await list_users(executor))[0]["email"] == "ada@example.com"
    assert (await list_vendors(executor))[0]["domain"] == "globex.test"
    assert (await list_organizations(executor)) == [{"id": "2", "name": "Acme"}]
    queries = [query for query, _ in executor.calls]
    assert queries[0].endswith("ORDER BY u.email")
    assert queries[1].endswith("ORDER BY va.name")
    assert queries[2].endswith("ORDER BY o.name")
    assert all(params == [] for _, params in executor.calls)


@pytest.mark.asyncio
async def test_lookup_failure_names_the_list() -> None:
    with pytest.raises(SourceReadFailure) as excinfo:
        await list_organizations(FailingExecutor())

    assert excinfo.value.source == "organizations"


@pytest.mark.asyncio
async def test_portal_exposes_lookups() -> None:
    executor = FakeExecutor().on("FROM public.users u", [{"id": "1", "email": "a@example.com", "name": "A"}])

    assert await portal.list_users(executor=executor) == [{"id": "1", "email": "a@example.com", "name": "A"}]
    assert await portal.list_vendors(executor=executor) == []
