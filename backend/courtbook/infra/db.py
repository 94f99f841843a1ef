import asyncio
import logging
from datetime import timezone
from typing import Any, AsyncGenerator, Awaitable, Callable, TypeVar

import sqlalchemy as sa
from sqlalchemy import event
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError, SQLAlchemyError, TimeoutError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.types import TypeDecorator

from courtbook.domain.errors import DomainError, UnavailableError
from courtbook.settings import settings

# Defined before Base so model modules can import it without a cycle.
UUID_TYPE = sa.Uuid(as_uuid=True)


class UTCDateTime(TypeDecorator):
    impl = sa.DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):  # type: ignore[override]
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):  # type: ignore[override]
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


Base = declarative_base()

# Import models that use string-based relationship references to ensure they are registered
# when Base metadata is configured.
import courtbook.infra.models  # noqa: F401,E402

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None

logger = logging.getLogger(__name__)


def _is_postgres(url: str) -> bool:
    return url.startswith(("postgresql://", "postgresql+"))


def _is_sqlite(url: str) -> bool:
    return url.startswith(("sqlite://", "sqlite+"))


def build_engine(database_url: str, **overrides: Any) -> AsyncEngine:
    engine_kwargs: dict[str, Any] = {
        "pool_pre_ping": True,
    }
    is_postgres = _is_postgres(database_url)
    if is_postgres:
        engine_kwargs.update({
            "pool_size": settings.database_pool_size,
            "max_overflow": settings.database_max_overflow,
            "pool_timeout": settings.database_pool_timeout_seconds,
            "connect_args": {
                "options": f"-c statement_timeout={int(settings.database_statement_timeout_ms)}",
            },
        })
    engine_kwargs.update(overrides)

    engine = create_async_engine(database_url, **engine_kwargs)
    _configure_logging(engine)
    if _is_sqlite(database_url):
        _configure_sqlite_transactions(engine)
    return engine


def _get_session_factory() -> async_sessionmaker[AsyncSession]:
    global _engine, _session_factory
    if _session_factory is None:
        _engine = build_engine(settings.database_url)
        _session_factory = async_sessionmaker(
            _engine,
            expire_on_commit=False,
            class_=AsyncSession,
        )
    return _session_factory


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    session_factory = _get_session_factory()
    try:
        async with session_factory() as session:
            yield session
    except TimeoutError as exc:
        logger.warning("db_pool_timeout", exc_info=exc)
        raise


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    return _get_session_factory()


async def dispose_engine() -> None:
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None


def _configure_logging(engine: AsyncEngine) -> None:
    @event.listens_for(engine.sync_engine, "handle_error")
    def receive_error(context):  # noqa: ANN001
        exc = context.original_exception or context.sqlalchemy_exception
        if isinstance(exc, TimeoutError):
            logger.warning(
                "db_pool_timeout",
                extra={"extra": {"operation": str(context.statement) if context.statement else None}},
            )


def _configure_sqlite_transactions(engine: AsyncEngine) -> None:
    # SQLite has no row locks; BEGIN IMMEDIATE takes the database write lock up
    # front so check-then-insert sequences are serialized across connections.
    @event.listens_for(engine.sync_engine, "connect")
    def configure_connection(dbapi_connection, connection_record):  # noqa: ANN001
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def begin_immediate(conn):  # noqa: ANN001
        conn.exec_driver_sql("BEGIN IMMEDIATE")


T = TypeVar("T")


async def rollback_quietly(session: AsyncSession, operation: str) -> None:
    try:
        await session.rollback()
    except SQLAlchemyError as exc:
        logger.warning(
            "rollback_failed",
            extra={"extra": {"operation": operation, "error_type": type(exc).__name__}},
        )


def storage_unavailable(operation: str, reason: str, exc: BaseException) -> UnavailableError:
    logger.warning(
        "storage_unavailable",
        extra={"extra": {"operation": operation, "reason": reason, "error_type": type(exc).__name__}},
    )
    return UnavailableError(detail="Storage is temporarily unavailable, retry later")


async def run_storage_operation(
    session: AsyncSession,
    operation: str,
    work: Callable[[], Awaitable[T]],
    timeout: float | None = None,
    *,
    on_integrity_error: Callable[[IntegrityError], DomainError | None] | None = None,
) -> T:
    """Run one unit of work under the operation timeout.

    Any failure rolls the session back. Timeouts, pool exhaustion, operational
    errors and invalidated connections surface as a retryable UnavailableError.
    ``on_integrity_error`` may translate a constraint violation into a domain
    error; untranslated integrity errors propagate unchanged.
    """

    limit = timeout if timeout is not None else settings.booking_operation_timeout_seconds
    try:
        return await asyncio.wait_for(work(), timeout=limit)
    except DomainError:
        await rollback_quietly(session, operation)
        raise
    except asyncio.TimeoutError as exc:
        await rollback_quietly(session, operation)
        raise storage_unavailable(operation, "timeout", exc) from exc
    except IntegrityError as exc:
        await rollback_quietly(session, operation)
        mapped = on_integrity_error(exc) if on_integrity_error is not None else None
        if mapped is not None:
            raise mapped from exc
        raise
    except (TimeoutError, OperationalError) as exc:
        await rollback_quietly(session, operation)
        raise storage_unavailable(operation, "storage_error", exc) from exc
    except DBAPIError as exc:
        await rollback_quietly(session, operation)
        if exc.connection_invalidated:
            raise storage_unavailable(operation, "connection_lost", exc) from exc
        raise
