"""SQLite access for the automation pipeline

One DatabaseConnectionPool is constructed at process start (the API lifespan
or a CLI entry point) and handed to whoever needs it. There is no module-level
pool: every repository receives its pool explicitly and the owner closes it on
shutdown.

Provides:
- Connection pooling (WAL mode, Row factory, bounded temporary overflow)
- connection()/transaction() context managers on the pool handle
- retry_on_db_lock decorator for write paths
- Database path resolution from BIOSYNTH_DB_PATH
"""

from __future__ import annotations

import os
import random
import sqlite3
import time
from collections.abc import Callable, Generator
from contextlib import contextmanager
from functools import wraps
from pathlib import Path
from queue import Empty, Full, Queue
from threading import Lock
from typing import Any, TypeVar

from biosynth.config import (
    DB_CONNECT_TIMEOUT,
    DB_PATH,
    DB_POOL_SIZE,
    DB_POOL_TIMEOUT,
    DB_RETRY_BASE_DELAY,
    DB_RETRY_JITTER,
    DB_RETRY_MAX,
    DB_RETRY_MAX_DELAY,
    DB_TEMP_CONN_MAX,
)
from biosynth.observability.logging import get_logger
from biosynth.observability.telemetry import counter, log_event

F = TypeVar("F", bound=Callable[..., Any])

logger = get_logger(__name__)


def retry_on_db_lock(
    max_retries: int = DB_RETRY_MAX,
    base_delay: float = DB_RETRY_BASE_DELAY,
    max_delay: float = DB_RETRY_MAX_DELAY,
) -> Callable[[F], F]:
    """
    Decorator to retry database operations on SQLITE_BUSY errors

    The scheduler thread and API worker threads write to the same file, so
    "database is locked" can surface under contention. Retries use
    exponential backoff with jitter.

    Side Effects:
        - Retries wrapped function up to max_retries times on database lock errors
        - Sleeps between retries
        - Logs a warning per retry and an error when retries are exhausted
    """

    def decorator(func: F) -> F:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            for attempt in range(max_retries + 1):
                try:
                    return func(*args, **kwargs)
                except sqlite3.OperationalError as e:
                    message = str(e).lower()
                    if "locked" not in message and "busy" not in message:
                        raise

                    if attempt >= max_retries:
                        logger.error(
                            "Database lock retry exhausted after %d attempts: %s",
                            max_retries,
                            e,
                        )
                        raise

                    delay = min(base_delay * (2**attempt), max_delay)
                    sleep_time = delay + random.uniform(0, delay * DB_RETRY_JITTER)
                    logger.warning(
                        "Database locked (attempt %d/%d), retrying in %.2fs: %s",
                        attempt + 1,
                        max_retries,
                        sleep_time,
                        e,
                    )
                    time.sleep(sleep_time)
            return None

        return wrapper  # type: ignore[return-value]

    return decorator


class PooledConnection(sqlite3.Connection):
    """sqlite3 connection that records whether it belongs to the pool."""

    is_temporary = False


class DatabaseConnectionPool:
    """
    Thread-safe connection pool for SQLite

    Lifecycle: construct once, pass down, call close_all() on shutdown.
    """

    def __init__(
        self,
        db_path: str | Path,
        pool_size: int = DB_POOL_SIZE,
        pool_timeout: float = DB_POOL_TIMEOUT,
        temp_conn_max: int = DB_TEMP_CONN_MAX,
    ):
        self.db_path = Path(db_path)
        self.pool_size = pool_size
        self.pool_timeout = pool_timeout
        self.pool: Queue[sqlite3.Connection] = Queue(maxsize=pool_size)
        self.lock = Lock()
        self.closed = False
        self.temp_conn_count = 0
        self.temp_conn_max = temp_conn_max

        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._initialize_pool()

    def _create_connection(self) -> PooledConnection:
        """
        Open a configured SQLite connection

        Side Effects:
            - Opens (and creates if missing) the database file
            - Executes PRAGMA statements (journal_mode, synchronous, foreign_keys)
        """
        conn = sqlite3.connect(
            str(self.db_path),
            timeout=DB_CONNECT_TIMEOUT,
            check_same_thread=False,
            factory=PooledConnection,
        )
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")
        conn.execute("PRAGMA foreign_keys=ON")
        conn.row_factory = sqlite3.Row
        return conn

    def _initialize_pool(self) -> None:
        for _ in range(self.pool_size):
            try:
                self.pool.put(self._create_connection())
            except sqlite3.Error as e:
                logger.warning("Failed to create pooled connection: %s", e)

    def get_connection(self) -> sqlite3.Connection:
        """
        Take a connection from the pool, or open a temporary one when exhausted

        Raises:
            RuntimeError: If the pool is closed or the temporary connection limit is hit

        Side Effects:
            - May open a temporary connection and bump temp_conn_count
            - Emits database.pool_exhausted telemetry when the pool runs dry
        """
        if self.closed:
            raise RuntimeError("Connection pool has been closed")

        try:
            return self.pool.get(block=True, timeout=self.pool_timeout)
        except Empty:
            with self.lock:
                if self.temp_conn_count >= self.temp_conn_max:
                    logger.critical(
                        "Temporary connection limit reached: %d/%d (pool_size=%d)",
                        self.temp_conn_count,
                        self.temp_conn_max,
                        self.pool_size,
                    )
                    msg = (
                        "Database connection pool exhausted and temporary "
                        f"connection limit reached. pool_size={self.pool_size}, "
                        f"temp_conn_max={self.temp_conn_max}."
                    )
                    raise RuntimeError(msg) from None

                self.temp_conn_count += 1
                temp_count = self.temp_conn_count

            logger.error(
                "Connection pool exhausted (pool_size=%d). Creating temporary connection %d/%d.",
                self.pool_size,
                temp_count,
                self.temp_conn_max,
            )
            counter("database.pool_exhausted")
            log_event(
                "database.pool_exhausted",
                pool_size=self.pool_size,
                temp_conn_count=temp_count,
            )

            try:
                conn = self._create_connection()
            except sqlite3.Error:
                with self.lock:
                    self.temp_conn_count -= 1
                raise
            conn.is_temporary = True
            return conn

    def return_connection(self, conn: sqlite3.Connection) -> None:
        """
        Hand a connection back (temporary ones are closed)

        Side Effects:
            - Closes temporary connections and decrements temp_conn_count
            - Puts pooled connections back on the queue
        """
        is_temp = getattr(conn, "is_temporary", False)

        if self.closed or is_temp:
            conn.close()
            if is_temp:
                with self.lock:
                    self.temp_conn_count -= 1
            return

        try:
            self.pool.put_nowait(conn)
        except Full:
            logger.warning("Failed to return connection to pool (pool full), closing")
            conn.close()

    @contextmanager
    def connection(self) -> Generator[sqlite3.Connection, None, None]:
        """
        Borrow a pooled connection for the duration of the block

        Usage:
            with pool.connection() as conn:
                rows = conn.execute("SELECT * FROM algorithms").fetchall()
        """
        conn = self.get_connection()
        try:
            yield conn
        finally:
            self.return_connection(conn)

    @contextmanager
    def transaction(self) -> Generator[sqlite3.Connection, None, None]:
        """
        Borrow a connection and commit on success, roll back on error

        Side Effects:
            - Commits or rolls back the transaction on the borrowed connection
        """
        with self.connection() as conn:
            try:
                yield conn
                conn.commit()
            except Exception:
                conn.rollback()
                raise

    def stats(self) -> dict[str, Any]:
        """Pool health metrics for /health/db."""
        available = self.pool.qsize()
        in_use = self.pool_size - available
        usage_percent = (in_use / self.pool_size) * 100 if self.pool_size > 0 else 0

        return {
            "pool_size": self.pool_size,
            "available": available,
            "in_use": in_use,
            "temporary": self.temp_conn_count,
            "usage_percent": round(usage_percent, 1),
            "closed": self.closed,
        }

    def close_all(self) -> None:
        """
        Close every pooled connection

        Side Effects:
            - Marks the pool closed; later get_connection() calls raise
            - Closes and drains all queued connections
        """
        self.closed = True
        while not self.pool.empty():
            try:
                self.pool.get_nowait().close()
            except Empty:
                break


def get_db_path() -> Path:
    """
    Database path (environment-aware)

    BIOSYNTH_DB_PATH wins, otherwise biosynth/data/biosynth.db.
    """
    if env_path := os.getenv("BIOSYNTH_DB_PATH"):
        return Path(env_path)

    return DB_PATH
