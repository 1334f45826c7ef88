from __future__ import annotations

import pytest

from activityportal.services import portal
from activityportal.tests.utils.fakes import FakeExecutor


@pytest.mark.asyncio
async def test_activity_listing_accepts_plain_options() -> None:
    executor = FakeExecutor()

    page = await portal.get_activities({"entity_type": "vendor", "limit": 10, "unknown": "x"}, executor=executor)

    assert page == {"data": [], "total": 0, "page": 1, "limit": 10, "total_pages": 0}
    assert executor.queries_containing("SecurityLog") == []
    assert executor.queries_containing('public."Vendor" v')


@pytest.mark.asyncio
async def test_vendor_search_accepts_plain_options() -> None:
    executor = FakeExecutor().on("SELECT COUNT(*) AS total FROM vendor_search", [{"total": 2}])

    result = await portal.search_vendors({"risk_level": "critical", "search": " "}, executor=executor)

    assert result["total"] == 2
    _, params = executor.queries_containing("SELECT COUNT(*) AS total FROM vendor_search")[0]
    assert params == [40]


@pytest.mark.asyncio
async def test_tab_listing_accepts_plain_options() -> None:
    executor = FakeExecutor()

    page = await portal.get_document_activity({"status": "PASS", "page": 3}, executor=executor)

    assert page["page"] == 3
    _, params = executor.queries_containing('SELECT COUNT(*) AS total FROM public."Document" d')[0]
    assert params == ["PASS"]


@pytest.mark.asyncio
async def test_unknown_activity_id() -> None:
    assert await portal.get_activity_by_id("nothing-here", executor=FakeExecutor()) is None
