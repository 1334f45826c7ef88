from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FanoutCall:
    # One named unit of concurrent work with the value used when it fails.
    name: str
    func: Callable[[], Awaitable[Any]]
    default: Callable[[], Any]


async def _run_bounded(call: FanoutCall, timeout_s: float | None) -> Any:
    # Bound each call independently so one slow source cannot stall the join.
    try:
        if timeout_s is not None and timeout_s > 0:
            return await asyncio.wait_for(call.func(), timeout=timeout_s)
        return await call.func()
    except asyncio.TimeoutError:
        logger.warning("fanout_call_timeout name=%s timeout_s=%s", call.name, timeout_s)
    except Exception as exc:  # noqa: BLE001 - degrade to the call default
        logger.warning("fanout_call_failed name=%s", call.name, exc_info=exc)
    return call.default()


async def gather_with_defaults(calls: list[FanoutCall], *, timeout_s: float | None) -> dict[str, Any]:
    # Run calls concurrently and join them by name; failures become defaults.
    results = await asyncio.gather(*(_run_bounded(call, timeout_s) for call in calls))
    return {call.name: result for call, result in zip(calls, results)}
