from __future__ import annotations

import asyncio
from typing import Any, Callable, Sequence


Rows = list[dict[str, Any]]


class FakeExecutor:
    # Answer queries by the first registered SQL fragment they contain; record every call.

    def __init__(self) -> None:
        self._routes: list[tuple[str, Callable[[str, list[Any]], Rows]]] = []
        self._failures: list[str] = []
        self._delays: dict[str, float] = {}
        self.calls: list[tuple[str, list[Any]]] = []

    def on(self, fragment: str, rows: Rows | Callable[[str, list[Any]], Rows]) -> "FakeExecutor":
        if callable(rows):
            self._routes.append((fragment, rows))
        else:
            snapshot = [dict(row) for row in rows]
            self._routes.append((fragment, lambda _query, _params: [dict(row) for row in snapshot]))
        return self

    def fail_on(self, fragment: str) -> "FakeExecutor":
        self._failures.append(fragment)
        return self

    def delay_on(self, fragment: str, seconds: float) -> "FakeExecutor":
        self._delays[fragment] = seconds
        return self

    def queries_containing(self, fragment: str) -> list[tuple[str, list[Any]]]:
        return [call for call in self.calls if fragment in call[0]]

    async def execute(self, query: str, params: Sequence[Any] = ()) -> Rows:
        bound = list(params)
        self.calls.append((query, bound))
        for fragment, seconds in self._delays.items():
            if fragment in query:
                await asyncio.sleep(seconds)
        for fragment in self._failures:
            if fragment in query:
                raise RuntimeError(f"forced failure for {fragment}")
        for fragment, handler in self._routes:
            if fragment in query:
                return handler(query, bound)
        return []


class FailingExecutor:
    # Every statement fails, as if the database were unreachable.

    def __init__(self) -> None:
        self.calls: list[str] = []

    async def execute(self, query: str, params: Sequence[Any] = ()) -> Rows:
        self.calls.append(query)
        raise RuntimeError("database unavailable")
