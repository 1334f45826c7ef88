from __future__ import annotations

import asyncio

import pytest

from activityportal.services.fanout import FanoutCall, gather_with_defaults


async def _value(value: int) -> int:
    return value


async def _boom() -> int:
    raise RuntimeError("source offline")


async def _slow() -> int:
    await asyncio.sleep(1.0)
    return 99


@pytest.mark.asyncio
async def test_results_are_joined_by_name() -> None:
    results = await gather_with_defaults(
        [FanoutCall("a", lambda: _value(1), int), FanoutCall("b", lambda: _value(2), int)],
        timeout_s=1.0,
    )

    assert results == {"a": 1, "b": 2}


@pytest.mark.asyncio
async def test_failure_and_timeout_use_defaults() -> None:
    results = await gather_with_defaults(
        [
            FanoutCall("ok", lambda: _value(5), int),
            FanoutCall("failed", _boom, list),
            FanoutCall("slow", _slow, lambda: -1),
        ],
        timeout_s=0.05,
    )

    assert results == {"ok": 5, "failed": [], "slow": -1}


@pytest.mark.asyncio
async def test_failures_are_logged(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level("WARNING", logger="activityportal.services.fanout")

    await gather_with_defaults([FanoutCall("failed", _boom, int)], timeout_s=None)

    assert any("fanout_call_failed name=failed" in record.getMessage() for record in caplog.records)
