from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import pytest
from sqlalchemy.exc import OperationalError

from activityportal.core.config import Settings
from activityportal.core.errors import DatabaseError
from activityportal.persistence.db import engine_options
from activityportal.persistence.executor import SqlAlchemyExecutor, bind_params


class _Result:
    def __init__(self, rows: list[dict[str, Any]]) -> None:
        self._rows = rows

    def mappings(self) -> "_Result":
        return self

    def all(self) -> list[dict[str, Any]]:
        return self._rows


class _Session:
    def __init__(self, rows: list[dict[str, Any]], error: Exception | None = None) -> None:
        self.rows = rows
        self.error = error
        self.statements: list[tuple[str, dict[str, Any]]] = []

    async def __aenter__(self) -> "_Session":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        return None

    async def execute(self, statement: Any, params: dict[str, Any]) -> _Result:
        self.statements.append((str(statement), params))
        if self.error is not None:
            raise self.error
        return _Result(self.rows)


def test_bind_params_names_and_naive_utc() -> None:
    aware = datetime(2026, 5, 1, 12, 0, tzinfo=timezone(timedelta(hours=2)))

    bound = bind_params(["a", aware, 3], naive_timestamps=True)

    assert bound == {"p1": "a", "p2": datetime(2026, 5, 1, 10, 0), "p3": 3}
    assert bind_params([aware], naive_timestamps=False) == {"p1": aware}


@pytest.mark.asyncio
async def test_execute_returns_plain_dicts() -> None:
    session = _Session([{"id": 1, "email": "ada@example.com"}])
    executor = SqlAlchemyExecutor(session_factory=lambda: session)

    rows = await executor.execute("SELECT id, email FROM public.users u WHERE u.email = :p1", ["ada@example.com"])

    assert rows == [{"id": 1, "email": "ada@example.com"}]
    assert session.statements == [
        ("SELECT id, email FROM public.users u WHERE u.email = :p1", {"p1": "ada@example.com"})
    ]


@pytest.mark.asyncio
async def test_driver_errors_become_database_errors() -> None:
    session = _Session([], error=OperationalError("SELECT 1", {}, Exception("connection refused")))
    executor = SqlAlchemyExecutor(session_factory=lambda: session)

    with pytest.raises(DatabaseError):
        await executor.execute("SELECT 1")


def test_engine_options_bound_the_pool() -> None:
    options = engine_options(Settings(db_pool_size=0, db_statement_timeout_ms=2500))

    assert options["pool_size"] == 1
    assert options["connect_args"] == {
        "server_settings": {"default_transaction_read_only": "on", "statement_timeout": "2500"}
    }
    assert engine_options(Settings(database_url="sqlite+aiosqlite:///:memory:")) == {"pool_pre_ping": True}
