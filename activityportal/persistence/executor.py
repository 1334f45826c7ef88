from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Protocol, Sequence

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from activityportal.core.config import get_settings
from activityportal.core.errors import DatabaseError


logger = logging.getLogger(__name__)


class QueryExecutor(Protocol):
    # Read-only access to the source tables; placeholders are :p1..:pN.
    async def execute(self, query: str, params: Sequence[Any] = ()) -> list[dict[str, Any]]:
        ...


def bind_params(params: Sequence[Any], *, naive_timestamps: bool) -> dict[str, Any]:
    # Map positional values onto the numbered bind names used in query text.
    bound: dict[str, Any] = {}
    for index, value in enumerate(params, start=1):
        if naive_timestamps and isinstance(value, datetime) and value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        bound[f"p{index}"] = value
    return bound


class SqlAlchemyExecutor:
    def __init__(self, session_factory: Callable[[], AsyncSession] | None = None) -> None:
        self._session_factory = session_factory

    def _factory(self) -> Callable[[], AsyncSession]:
        if self._session_factory is None:
            # Defer engine creation until the first query.
            from activityportal.persistence.db import SessionLocal

            self._session_factory = SessionLocal
        return self._session_factory

    async def execute(self, query: str, params: Sequence[Any] = ()) -> list[dict[str, Any]]:
        settings = get_settings()
        bound = bind_params(params, naive_timestamps=settings.database_naive_timestamps)
        started = time.monotonic()
        try:
            # One short-lived session per statement so concurrent reads never share a connection.
            async with self._factory()() as session:
                result = await session.execute(text(query), bound)
                rows = [dict(row) for row in result.mappings().all()]
        except SQLAlchemyError as exc:
            logger.warning("query_failed params=%s", len(bound), exc_info=exc)
            raise DatabaseError("Query execution failed") from exc
        duration_ms = int((time.monotonic() - started) * 1000)
        if duration_ms > settings.slow_query_ms:
            logger.warning("slow_query duration_ms=%s rows=%s query=%s", duration_ms, len(rows), query[:200])
        return rows


_default_executor: SqlAlchemyExecutor | None = None


def get_executor() -> QueryExecutor:
    # Share one executor per process; sessions are still per statement.
    global _default_executor
    if _default_executor is None:
        _default_executor = SqlAlchemyExecutor()
    return _default_executor
