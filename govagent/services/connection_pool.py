"""
Pooled psycopg2 connections for the proposal store.

After ``max_failures`` consecutive failures to reach the database, the
pool refuses to connect until ``backoff_seconds`` have passed, so a dead
database fails requests fast instead of stalling every worker thread.
"""

import threading
import time
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

import psycopg2
from psycopg2 import pool

from govagent.config.database_config import DatabaseConfig, get_connection_string
from govagent.utils.logger import logger


class DatabaseConnectionPool:
    """Thread-safe connection pool with failure backoff."""

    def __init__(self, config: DatabaseConfig, min_connections: int = 1, max_connections: int = 5,
                 max_failures: int = 3, backoff_seconds: float = 30.0):
        self._config = config
        self._min = min_connections
        self._max = max_connections
        self._max_failures = max_failures
        self._backoff_seconds = backoff_seconds
        self._pool: Optional[pool.ThreadedConnectionPool] = None
        self._lock = threading.Lock()
        self._failures = 0
        self._last_failure = 0.0

    def _in_backoff(self) -> bool:
        return self._failures >= self._max_failures and time.time() - self._last_failure <= self._backoff_seconds

    def _fail(self, what: str, error: Exception) -> RuntimeError:
        self._failures += 1
        self._last_failure = time.time()
        logger.error("DatabaseConnectionPool: %s failed (%d in a row): %s", what, self._failures, error)
        return RuntimeError(f"{what} failed: {error}")

    def get_connection(self):
        with self._lock:
            if self._in_backoff():
                raise RuntimeError(
                    f"Database unavailable after {self._failures} failures; "
                    f"retrying in at most {self._backoff_seconds:.0f}s"
                )

            if self._pool is None:
                logger.info("DatabaseConnectionPool: connecting to %s (min=%d, max=%d)",
                            get_connection_string(self._config), self._min, self._max)
                try:
                    self._pool = pool.ThreadedConnectionPool(self._min, self._max,
                                                             **self._config.get_connection_params())
                except psycopg2.Error as e:
                    raise self._fail("Creating the connection pool", e) from e

            try:
                conn = self._pool.getconn()
            except (psycopg2.Error, pool.PoolError) as e:
                # A pool whose connections keep failing is rebuilt on the next call
                if self._failures >= 1:
                    self._discard_pool()
                raise self._fail("Borrowing a connection", e) from e

            self._failures = 0
            return conn

    def return_connection(self, conn, close_connection: bool = False) -> None:
        if self._pool is None:
            return
        try:
            self._pool.putconn(conn, close=close_connection)
        except (psycopg2.Error, pool.PoolError) as e:
            logger.warning("DatabaseConnectionPool: could not return connection: %s", e)

    @contextmanager
    def connection(self) -> Iterator[Any]:
        """Borrow a connection; commit on success, roll back and discard broken ones on error."""
        conn = self.get_connection()
        broken = False
        try:
            yield conn
            conn.commit()
        except Exception:
            try:
                conn.rollback()
            except psycopg2.Error:
                broken = True
            if getattr(conn, "closed", 0):
                broken = True
            raise
        finally:
            self.return_connection(conn, close_connection=broken)

    def _discard_pool(self) -> None:
        current, self._pool = self._pool, None
        if current is None:
            return
        try:
            current.closeall()
            logger.info("DatabaseConnectionPool: pool closed")
        except psycopg2.Error as e:
            logger.warning("DatabaseConnectionPool: error closing pool: %s", e)

    def close(self) -> None:
        with self._lock:
            self._discard_pool()

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "pool_exists": self._pool is not None,
                "min_connections": self._min,
                "max_connections": self._max,
                "failure_count": self._failures,
                "in_backoff": self._in_backoff(),
            }
