from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from sqlalchemy import event
from sqlalchemy.exc import IntegrityError, NoResultFound, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from flecto_manager.core.config import get_settings
from flecto_manager.core.errors import StorageError


settings = get_settings()
_is_sqlite = settings.database_url.startswith("sqlite")
_engine_kwargs: dict[str, Any] = {"pool_pre_ping": True}
# Configure bounded asyncpg pools for predictable latency under load.
if not _is_sqlite:
    _engine_kwargs["pool_size"] = max(1, int(settings.api_db_pool_size))
    _engine_kwargs["max_overflow"] = max(0, int(settings.api_db_max_overflow))
    _engine_kwargs["pool_timeout"] = 30
    _engine_kwargs["pool_recycle"] = 1800
    if settings.api_db_statement_timeout_ms > 0:
        _engine_kwargs["connect_args"] = {
            "server_settings": {"statement_timeout": str(int(settings.api_db_statement_timeout_ms))}
        }
engine = create_async_engine(settings.database_url, **_engine_kwargs)
SessionLocal = async_sessionmaker(engine, expire_on_commit=False)

if _is_sqlite:

    @event.listens_for(engine.sync_engine, "connect")
    def _configure_sqlite_connection(dbapi_connection, _connection_record) -> None:
        # SQLite ignores ON DELETE CASCADE unless foreign keys are enabled per connection.
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()
        # Let SQLAlchemy emit BEGIN itself so SAVEPOINT works.
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_sqlite_transaction(connection) -> None:
        connection.exec_driver_sql("BEGIN")


@asynccontextmanager
async def get_session() -> AsyncIterator[AsyncSession]:
    async with SessionLocal() as session:
        yield session


def pool_stats() -> dict[str, int | None]:
    # Expose DB pool counters for health output without querying database internals.
    pool = engine.sync_engine.pool
    checked_out_fn = getattr(pool, "checkedout", None)
    checked_in_fn = getattr(pool, "checkedin", None)
    overflow_fn = getattr(pool, "overflow", None)
    size_fn = getattr(pool, "size", None)
    return {
        "size": int(size_fn()) if callable(size_fn) else None,
        "checked_out": int(checked_out_fn()) if callable(checked_out_fn) else None,
        "checked_in": int(checked_in_fn()) if callable(checked_in_fn) else None,
        "overflow": int(overflow_fn()) if callable(overflow_fn) else None,
    }


# Driver messages that signal a lock could not be acquired (Postgres, MySQL, SQLite).
_LOCK_ERROR_MARKERS = (
    "database is locked",
    "database table is locked",
    "could not obtain lock",
    "lock wait timeout",
    "try restarting transaction",
)


def is_lock_error(exc: BaseException) -> bool:
    text = str(exc).lower()
    return any(marker in text for marker in _LOCK_ERROR_MARKERS)


def storage_error(exc: SQLAlchemyError) -> StorageError:
    # Classify raw driver failures so callers never see SQLAlchemy types.
    if is_lock_error(exc):
        return StorageError(StorageError.LOCK_CONFLICT, "Database lock conflict")
    if isinstance(exc, IntegrityError):
        return StorageError(StorageError.CONSTRAINT, "Database constraint violated")
    if isinstance(exc, NoResultFound):
        return StorageError(StorageError.NOT_FOUND, "Row not found")
    return StorageError(StorageError.UNKNOWN, "Database error")


@asynccontextmanager
async def transaction(session: AsyncSession) -> AsyncIterator[AsyncSession]:
    # Commit once on success; any failure (including cancellation) rolls the whole unit back.
    try:
        yield session
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        raise storage_error(exc) from exc
    except BaseException:
        await session.rollback()
        raise
