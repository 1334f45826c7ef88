from __future__ import annotations

from typing import Any

from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from activityportal.core.config import Settings, get_settings


def engine_options(settings: Settings) -> dict[str, Any]:
    # Analytics only reads; the fan-out opens several sessions per request, so keep the pool bounded.
    options: dict[str, Any] = {"pool_pre_ping": True}
    if settings.database_url.startswith("sqlite"):
        return options
    options["pool_size"] = max(1, int(settings.db_pool_size))
    options["max_overflow"] = max(0, int(settings.db_max_overflow))
    options["pool_timeout"] = 30
    options["pool_recycle"] = 1800
    server_settings = {"default_transaction_read_only": "on"}
    if settings.db_statement_timeout_ms > 0:
        server_settings["statement_timeout"] = str(int(settings.db_statement_timeout_ms))
    options["connect_args"] = {"server_settings": server_settings}
    return options


settings = get_settings()
engine = create_async_engine(settings.database_url, **engine_options(settings))
SessionLocal = async_sessionmaker(engine, expire_on_commit=False)
