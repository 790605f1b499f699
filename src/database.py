"""Single-connection persistence adapter over the embedded SQLite store.

Every statement goes through one ``Database`` instance: one pooled
connection, one lock, one retry policy. SQLite admits a single writer, so
funnelling everything through one connection avoids cross-connection lock
contention inside the process; WAL keeps outside readers unblocked.
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple, TypeVar, Union

from fastapi import Request
from sqlalchemy import event, text
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool
from sqlalchemy.sql import Executable
from tenacity import (
    AsyncRetrying,
    RetryError,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

from src.shared.exceptions import StoreFailure, TransientStoreError

logger = logging.getLogger(__name__)

Base = declarative_base()

T = TypeVar("T")
Statement = Union[Executable, str]
StatementSpec = Union[Statement, Tuple[Statement, Optional[Dict[str, Any]]]]

_TRANSIENT_MARKERS = ("locked", "busy")


def is_transient(exc: BaseException) -> bool:
    """Lock/busy errors are worth retrying; everything else is final."""
    if not isinstance(exc, OperationalError):
        return False
    message = str(exc.orig or exc).lower()
    return any(marker in message for marker in _TRANSIENT_MARKERS)


@dataclass
class StatementResult:
    rows: Optional[List[Dict[str, Any]]] = None
    rows_affected: Optional[int] = None
    inserted_id: Optional[int] = None


class Database:
    def __init__(
        self,
        url: str,
        *,
        busy_timeout_ms: int = 30000,
        cache_size: int = 10000,
        retry_attempts: int = 3,
        retry_backoff_seconds: float = 1.0,
        slow_query_threshold_ms: int = 2000,
        echo: bool = False,
    ):
        self.url = url
        self.busy_timeout_ms = busy_timeout_ms
        self.cache_size = cache_size
        self.retry_attempts = retry_attempts
        self.retry_backoff_seconds = retry_backoff_seconds
        self.slow_query_threshold_ms = slow_query_threshold_ms

        self.engine = create_async_engine(url, echo=echo, poolclass=StaticPool)
        event.listen(self.engine.sync_engine, "connect", self._configure_connection)
        event.listen(self.engine.sync_engine, "begin", self._begin)
        self._lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, settings) -> "Database":
        return cls(
            settings.SQLALCHEMY_DATABASE_URI,
            busy_timeout_ms=settings.SQLITE_BUSY_TIMEOUT_MS,
            cache_size=settings.SQLITE_CACHE_SIZE,
            retry_attempts=settings.STORE_RETRY_ATTEMPTS,
            retry_backoff_seconds=settings.STORE_RETRY_BACKOFF_SECONDS,
            slow_query_threshold_ms=settings.SLOW_QUERY_THRESHOLD_MS,
        )

    def _configure_connection(self, dbapi_connection, connection_record):
        # Let SQLAlchemy emit BEGIN itself so reads and writes share one transaction
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        for pragma in (
            "PRAGMA journal_mode = WAL",
            "PRAGMA synchronous = NORMAL",
            f"PRAGMA cache_size = {int(self.cache_size)}",
            "PRAGMA temp_store = MEMORY",
            f"PRAGMA busy_timeout = {int(self.busy_timeout_ms)}",
            "PRAGMA foreign_keys = ON",
        ):
            cursor.execute(pragma)
        cursor.close()
        logger.info("SQLite connection configured for %s", self.url)

    @staticmethod
    def _begin(conn):
        conn.exec_driver_sql("BEGIN")

    async def run(self, work: Callable[[AsyncConnection], Awaitable[T]]) -> T:
        """Run ``work`` inside BEGIN/COMMIT on the owned connection.

        Lock/busy failures roll back and are retried with linear backoff
        (attempt * backoff). Once the attempts are spent the last error is
        raised as ``StoreFailure``.
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.retry_attempts),
            wait=wait_incrementing(
                start=self.retry_backoff_seconds,
                increment=self.retry_backoff_seconds,
            ),
            retry=retry_if_exception_type(TransientStoreError),
            before_sleep=before_sleep_log(logger, logging.WARNING),
        )
        try:
            async for attempt in retrying:
                with attempt:
                    return await self._attempt(work)
        except RetryError as exc:
            last_error = exc.last_attempt.exception()
            raise StoreFailure(
                f"Query failed after {self.retry_attempts} attempts: {last_error}"
            ) from last_error

    async def _attempt(self, work: Callable[[AsyncConnection], Awaitable[T]]) -> T:
        async with self._lock:
            started = time.perf_counter()
            try:
                async with self.engine.begin() as conn:
                    result = await work(conn)
            except OperationalError as exc:
                if is_transient(exc):
                    raise TransientStoreError(str(exc.orig)) from exc
                raise StoreFailure(str(exc.orig)) from exc
            except SQLAlchemyError as exc:
                raise StoreFailure(str(getattr(exc, "orig", None) or exc)) from exc

            elapsed_ms = (time.perf_counter() - started) * 1000
            if elapsed_ms > self.slow_query_threshold_ms:
                logger.warning("Slow store operation (%.0fms)", elapsed_ms)
            return result

    async def execute(
        self, statement: Statement, parameters: Optional[Dict[str, Any]] = None
    ) -> StatementResult:
        async def work(conn: AsyncConnection) -> StatementResult:
            return await self._execute_on(conn, statement, parameters)

        return await self.run(work)

    async def run_transaction(self, statements: Sequence[StatementSpec]) -> List[StatementResult]:
        """Execute ``statements`` in order inside one transaction.

        Items are statements or ``(statement, parameters)`` pairs. A failure
        anywhere rolls the whole group back.
        """
        async def work(conn: AsyncConnection) -> List[StatementResult]:
            results = []
            for spec in statements:
                statement, parameters = spec if isinstance(spec, tuple) else (spec, None)
                results.append(await self._execute_on(conn, statement, parameters))
            return results

        return await self.run(work)

    @staticmethod
    async def _execute_on(
        conn: AsyncConnection, statement: Statement, parameters: Optional[Dict[str, Any]]
    ) -> StatementResult:
        if isinstance(statement, str):
            statement = text(statement)
        result = await conn.execute(statement, parameters)
        if result.returns_rows:
            return StatementResult(rows=[dict(row) for row in result.mappings().all()])
        inserted_id = result.lastrowid if result.is_insert else None
        return StatementResult(rows_affected=result.rowcount, inserted_id=inserted_id)

    async def init_models(self) -> None:
        # Import all models to ensure they are registered in Base.metadata
        from src.employees import models as employee_models  # noqa: F401
        from src.protocols import models as protocol_models  # noqa: F401

        async def work(conn: AsyncConnection) -> None:
            await conn.run_sync(Base.metadata.create_all)

        await self.run(work)
        logger.info("Database tables created.")

    async def dispose(self) -> None:
        await self.engine.dispose()


# Dependency
def get_db(request: Request) -> Database:
    return request.app.state.database
