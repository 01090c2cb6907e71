"""
PostgreSQL key/value store implementation.
Keeps a small kv_store table and a shared connection pool.
"""
import asyncio
import logging
import time
import traceback
from functools import wraps
from typing import Any, Callable, Optional

import psycopg2
from psycopg2 import pool

from app.base.errors import PersistenceError
from db.kv_store import KeyValueStore
from utils.config import DATABASE_RETRY_INITIAL_WAIT, DATABASE_RETRY_MAX_ATTEMPTS

# Configure module logger
logger = logging.getLogger(__name__)

CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS kv_store (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
)
"""

def retry_on_db_error(
    max_attempts: int = DATABASE_RETRY_MAX_ATTEMPTS,
    initial_wait: float = DATABASE_RETRY_INITIAL_WAIT,
    error_classes: tuple = (psycopg2.OperationalError,),
) -> Callable:
    """
    Decorator to retry a database operation on specific PostgreSQL errors.

    Args:
        max_attempts (int): Maximum number of retry attempts
        initial_wait (float): Initial wait time in seconds
        error_classes (tuple): Tuple of error classes to catch and retry

    Returns:
        Decorator function
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            wait_time = initial_wait
            last_error = None

            for attempt in range(max_attempts):
                try:
                    return func(*args, **kwargs)
                except error_classes as e:
                    last_error = e
                    # Exponential backoff
                    wait_time *= 2
                    logger.warning(f"Database error, retrying in {wait_time:.2f}s (attempt {attempt+1}/{max_attempts}): {str(e)}")
                    time.sleep(wait_time)

            # If we got here, all retries failed
            logger.error(f"Database still failing after {max_attempts} attempts: {last_error}")
            raise last_error

        return wrapper

    return decorator

class PostgresKeyValueStore(KeyValueStore):
    """KeyValueStore backed by a PostgreSQL table."""

    def __init__(self, db_name: str, db_user: str, db_password: str, db_host: str, db_port: int,
                 min_connections: int = 1, max_connections: int = 5):
        self.db_name = db_name
        self.db_user = db_user
        self.db_password = db_password
        self.db_host = db_host
        self.db_port = db_port
        self.min_connections = min_connections
        self.max_connections = max_connections
        self._pool: Optional[Any] = None
        self._table_ready = False

    def _get_pool(self) -> Any:
        """Create the connection pool on first use."""
        if self._pool is None:
            self._pool = pool.ThreadedConnectionPool(
                self.min_connections,
                self.max_connections,
                database=self.db_name,
                user=self.db_user,
                password=self.db_password,
                host=self.db_host,
                port=self.db_port,
            )
            logger.debug(f"Connected to PostgreSQL database at {self.db_host}:{self.db_port}/{self.db_name}")
        return self._pool

    def _run(self, query: str, params: tuple = (), fetch: bool = False) -> Optional[Any]:
        connection_pool = self._get_pool()
        conn = connection_pool.getconn()
        try:
            with conn.cursor() as cursor:
                if not self._table_ready:
                    cursor.execute(CREATE_TABLE_SQL)
                cursor.execute(query, params)
                row = cursor.fetchone() if fetch else None
            conn.commit()
            self._table_ready = True
            return row
        except Exception:
            conn.rollback()
            raise
        finally:
            connection_pool.putconn(conn)

    @retry_on_db_error()
    def _get(self, key: str) -> Optional[str]:
        row = self._run("SELECT value FROM kv_store WHERE key = %s", (key,), fetch=True)
        return row[0] if row else None

    @retry_on_db_error()
    def _set(self, key: str, value: str) -> None:
        self._run(
            """
            INSERT INTO kv_store (key, value, updated_at) VALUES (%s, %s, CURRENT_TIMESTAMP)
            ON CONFLICT (key) DO UPDATE SET value = EXCLUDED.value, updated_at = CURRENT_TIMESTAMP
            """,
            (key, value),
        )

    @retry_on_db_error()
    def _remove(self, key: str) -> None:
        self._run("DELETE FROM kv_store WHERE key = %s", (key,))

    async def _call(self, func: Callable, *args: Any) -> Any:
        try:
            return await asyncio.to_thread(func, *args)
        except psycopg2.Error as e:
            logger.error(f"PostgreSQL key/value operation failed: {e}")
            logger.error(traceback.format_exc())
            raise PersistenceError(f"Database operation failed: {e}") from e

    async def get(self, key: str) -> Optional[str]:
        return await self._call(self._get, key)

    async def set(self, key: str, value: str) -> None:
        await self._call(self._set, key, value)

    async def remove(self, key: str) -> None:
        await self._call(self._remove, key)

    def close(self) -> None:
        """Close all connections in the pool."""
        if self._pool is not None:
            self._pool.closeall()
            self._pool = None
            logger.debug("All connections in the pool have been closed")
