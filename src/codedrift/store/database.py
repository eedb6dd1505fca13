"""Database engine and transaction helpers.

This module provides:
- Database: Connection manager with WAL mode for concurrent access
- Session utilities for ORM and serializable transactions
- Retry logic for SQLite busy timeout handling

Use plain sessions for reads and single-row updates. Use
immediate_transaction for check-then-write sequences (sync job exclusivity,
event claiming) so the check and the write share one RESERVED lock.
"""

from __future__ import annotations

import time
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import event
from sqlalchemy.exc import OperationalError
from sqlmodel import Session, SQLModel, create_engine

if TYPE_CHECKING:
    from sqlalchemy import Connection, Engine

    from codedrift.config.models import DatabaseConfig

logger = structlog.get_logger()

# Retry configuration for SQLite busy handling
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_BASE_DELAY = 0.1  # 100ms base
DEFAULT_RETRY_MAX_DELAY = 2.0  # 2s max
DEFAULT_BUSY_TIMEOUT_MS = 30000


def _is_database_locked_error(error: Exception) -> bool:
    """Check if error is a SQLite database locked error."""
    error_str = str(error).lower()
    return "database is locked" in error_str or "database is busy" in error_str


class Database:
    """SQLite connection manager with WAL mode for concurrent access.

    Includes retry logic with exponential backoff for handling
    SQLite busy timeouts during concurrent writes.
    """

    def __init__(
        self,
        db_path: Path,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_base_delay: float = DEFAULT_RETRY_BASE_DELAY,
        retry_max_delay: float = DEFAULT_RETRY_MAX_DELAY,
        busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS,
    ) -> None:
        self.db_path = db_path
        self._max_retries = max_retries
        self._retry_base_delay = retry_base_delay
        self._retry_max_delay = retry_max_delay
        self._busy_timeout_ms = busy_timeout_ms
        self.engine = self._create_engine()

    @classmethod
    def from_config(cls, db_path: Path, config: DatabaseConfig) -> Database:
        db_path.parent.mkdir(parents=True, exist_ok=True)
        return cls(
            db_path,
            max_retries=config.max_retries,
            retry_base_delay=config.retry_base_delay_sec,
            busy_timeout_ms=config.busy_timeout_ms,
        )

    def _create_engine(self) -> Engine:
        engine = create_engine(
            f"sqlite:///{self.db_path}",
            connect_args={"check_same_thread": False},
            pool_pre_ping=True,
        )
        busy_timeout_ms = self._busy_timeout_ms

        def _configure_pragmas(dbapi_conn: Any, _connection_record: Any) -> None:
            """Configure SQLite for concurrent access."""
            # Let BEGIN IMMEDIATE through instead of pysqlite's implicit BEGIN
            dbapi_conn.isolation_level = None
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute(f"PRAGMA busy_timeout={int(busy_timeout_ms)}")
            cursor.execute("PRAGMA synchronous=NORMAL")  # Safe with WAL
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        def _begin(conn: Any) -> None:
            # Deferred BEGIN for ordinary sessions; immediate_transaction
            # issues its own BEGIN IMMEDIATE first.
            if not conn.info.get("immediate"):
                conn.exec_driver_sql("BEGIN")

        event.listen(engine, "connect", _configure_pragmas)
        event.listen(engine, "begin", _begin)
        return engine

    def create_all(self) -> None:
        """Create all tables from SQLModel metadata."""
        from codedrift.store import models  # noqa: F401

        SQLModel.metadata.create_all(self.engine)

    def drop_all(self) -> None:
        """Drop all tables. Use with caution."""
        SQLModel.metadata.drop_all(self.engine)

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        """ORM session for low-volume operations."""
        with Session(self.engine, expire_on_commit=False) as session:
            yield session

    @contextmanager
    def immediate_transaction(
        self,
        max_retries: int | None = None,
    ) -> Generator[Session, None, None]:
        """
        Session with BEGIN IMMEDIATE for serializable writes.

        BEGIN IMMEDIATE acquires a RESERVED lock immediately, blocking other
        writers but allowing readers. Acquiring the lock is retried with
        exponential backoff; once the body runs it is never re-entered.

        The session auto-commits on successful exit and rolls back
        on exception.

        Args:
            max_retries: Override default max retries (default: 3)
        """
        retries = max_retries if max_retries is not None else self._max_retries

        connection = self._acquire_immediate(retries)
        try:
            with Session(bind=connection, expire_on_commit=False) as session:
                try:
                    yield session
                    session.flush()
                except BaseException:
                    session.rollback()
                    connection.rollback()
                    raise
            connection.commit()
        finally:
            connection.info.pop("immediate", None)
            connection.close()

    def _acquire_immediate(self, retries: int) -> Connection:
        """Open a connection holding BEGIN IMMEDIATE, backing off while locked."""
        attempt = 0
        while True:
            connection = self.engine.connect()
            connection.info["immediate"] = True
            try:
                connection.exec_driver_sql("BEGIN IMMEDIATE")
                return connection
            except OperationalError as e:
                connection.info.pop("immediate", None)
                connection.close()
                if not _is_database_locked_error(e) or attempt >= retries:
                    raise
                delay = min(self._retry_base_delay * (2**attempt), self._retry_max_delay)
                logger.warning(
                    "sqlite_busy_retry",
                    attempt=attempt + 1,
                    max_retries=retries,
                    delay_sec=delay,
                )
                time.sleep(delay)
                attempt += 1
