import time
from dataclasses import dataclass
from pathlib import Path
from threading import Lock
from typing import Any

import structlog
from sqlalchemy import event
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.engine.url import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from cardpay.shared.core.config import get_settings
from cardpay.shared.db.base import Base

logger = structlog.get_logger()

# Ensure ORM mappings are registered for scripts/workers that import the DB layer.
import cardpay.models  # noqa: F401, E402

SLOW_QUERY_THRESHOLD_SECONDS = 0.5


@dataclass(slots=True)
class _DBRuntime:
    engine: AsyncEngine
    session_maker: async_sessionmaker[AsyncSession]
    effective_url: str


_db_runtime: _DBRuntime | None = None
_db_runtime_lock = Lock()


def _normalize_db_url(raw_url: str) -> str:
    url = (raw_url or "").strip()
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if url.startswith("sqlite:///"):
        return url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
    return url


def _ensure_sqlite_directory(effective_url: str) -> None:
    url = make_url(effective_url)
    database = url.database or ""
    if not database or database == ":memory:":
        return
    Path(database).expanduser().parent.mkdir(parents=True, exist_ok=True)


def _enable_sqlite_foreign_keys(dbapi_connection: Any, _connection_record: Any) -> None:
    """Subscriptions cascade with their tenant only when SQLite enforces FKs."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def before_cursor_execute(
    conn: Connection,
    _cursor: Any,
    _statement: str,
    _parameters: Any,
    _context: Any,
    _executemany: bool,
) -> None:
    """Record query start time."""
    conn.info.setdefault("query_start_time", []).append(time.perf_counter())


def after_cursor_execute(
    conn: Connection,
    _cursor: Any,
    statement: str,
    _parameters: Any,
    _context: Any,
    _executemany: bool,
) -> None:
    """Log slow queries."""
    total = time.perf_counter() - conn.info["query_start_time"].pop(-1)
    if total > SLOW_QUERY_THRESHOLD_SECONDS:
        logger.warning(
            "slow_query_detected",
            duration_seconds=round(total, 3),
            threshold_seconds=SLOW_QUERY_THRESHOLD_SECONDS,
            statement=statement[:200] + "..." if len(statement) > 200 else statement,
        )


def register_engine_event_listeners(engine: AsyncEngine) -> None:
    sync_engine: Engine = engine.sync_engine
    if sync_engine.dialect.name == "sqlite":
        event.listen(sync_engine, "connect", _enable_sqlite_foreign_keys)
    event.listen(sync_engine, "before_cursor_execute", before_cursor_execute)
    event.listen(sync_engine, "after_cursor_execute", after_cursor_execute)


def build_engine(database_url: str, *, echo: bool = False) -> AsyncEngine:
    """Create an async engine with the listeners every runtime needs."""
    effective_url = _normalize_db_url(database_url)
    pool_config: dict[str, Any] = {"echo": echo, "pool_pre_ping": True}
    if "sqlite" in effective_url:
        _ensure_sqlite_directory(effective_url)
        if ":memory:" in effective_url:
            pool_config["poolclass"] = StaticPool
    engine = create_async_engine(effective_url, **pool_config)
    register_engine_event_listeners(engine)
    return engine


def _build_db_runtime() -> _DBRuntime:
    settings = get_settings()
    engine = build_engine(settings.DATABASE_URL, echo=settings.DB_ECHO)
    session_maker = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    return _DBRuntime(
        engine=engine,
        session_maker=session_maker,
        effective_url=str(engine.url),
    )


def _get_db_runtime() -> _DBRuntime:
    global _db_runtime
    runtime = _db_runtime
    if runtime is not None:
        return runtime
    with _db_runtime_lock:
        runtime = _db_runtime
        if runtime is None:
            runtime = _build_db_runtime()
            _db_runtime = runtime
    return runtime


async def dispose_db_runtime() -> None:
    """Dispose the active engine; the next access rebuilds it from settings."""
    global _db_runtime
    runtime = _db_runtime
    _db_runtime = None
    if runtime is None:
        return
    await runtime.engine.dispose()
    logger.info("db_engine_disposed")


def get_engine() -> AsyncEngine:
    """Return the active async engine."""
    return _get_db_runtime().engine


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    """Return the active session factory (injected into services)."""
    return _get_db_runtime().session_maker


async def init_db(engine: AsyncEngine | None = None) -> None:
    """Create missing tables (idempotent, like CREATE TABLE IF NOT EXISTS)."""
    target = engine or get_engine()
    async with target.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("db_schema_ready", url=target.url.render_as_string(hide_password=True))

