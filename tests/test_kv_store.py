#!/usr/bin/env python3
"""
Tests for the durable key/value stores.
"""
import sys
from pathlib import Path
from unittest.mock import MagicMock, patch

import psycopg2
import pytest

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from app.base.errors import PersistenceError
from db.connections.postgresql import CREATE_TABLE_SQL, PostgresKeyValueStore
from db.kv_store import JsonFileKeyValueStore, MemoryKeyValueStore, create_kv_store


@pytest.mark.unit
class TestJsonFileKeyValueStore:
    """Tests for the single-file JSON store."""

    @pytest.mark.asyncio
    async def test_set_get_remove(self, tmp_path):
        store = JsonFileKeyValueStore(str(tmp_path / "nested" / "store.json"))

        assert await store.get("k") is None
        await store.set("k", "v1")
        await store.set("other", "v2")
        assert await store.get("k") == "v1"

        # A fresh instance sees the same document
        reopened = JsonFileKeyValueStore(str(tmp_path / "nested" / "store.json"))
        assert await reopened.get("other") == "v2"

        await store.remove("k")
        assert await store.get("k") is None
        await store.remove("missing")

    @pytest.mark.asyncio
    async def test_no_temp_files_left_behind(self, tmp_path):
        store = JsonFileKeyValueStore(str(tmp_path / "store.json"))
        await store.set("k", "v")
        assert [p.name for p in tmp_path.iterdir()] == ["store.json"]

    @pytest.mark.asyncio
    async def test_corrupt_file(self, tmp_path):
        path = tmp_path / "store.json"
        path.write_text("{broken", encoding="utf-8")
        store = JsonFileKeyValueStore(str(path))

        with pytest.raises(PersistenceError):
            await store.get("k")
        with pytest.raises(PersistenceError):
            await store.set("k", "v")

    @pytest.mark.asyncio
    async def test_non_object_file(self, tmp_path):
        path = tmp_path / "store.json"
        path.write_text("[1, 2]", encoding="utf-8")

        with pytest.raises(PersistenceError):
            await JsonFileKeyValueStore(str(path)).get("k")


@pytest.mark.unit
class TestCreateKvStore:
    """Tests for create_kv_store."""

    def test_memory(self):
        assert isinstance(create_kv_store("memory"), MemoryKeyValueStore)

    def test_file(self, tmp_path):
        store = create_kv_store("FILE", str(tmp_path / "s.json"))
        assert isinstance(store, JsonFileKeyValueStore)
        assert store.path == tmp_path / "s.json"

    def test_postgres_is_lazy(self):
        with patch('db.connections.postgresql.pool.ThreadedConnectionPool') as pool_class:
            store = create_kv_store("postgres")
        assert isinstance(store, PostgresKeyValueStore)
        pool_class.assert_not_called()

    def test_unknown(self):
        with pytest.raises(ValueError):
            create_kv_store("redis")


def mock_pool(fetchone=None, execute_side_effect=None):
    """Build a pool mock whose connection yields a scripted cursor."""
    cursor = MagicMock()
    cursor.fetchone.return_value = fetchone
    if execute_side_effect is not None:
        cursor.execute.side_effect = execute_side_effect
    conn = MagicMock()
    conn.cursor.return_value.__enter__.return_value = cursor
    connection_pool = MagicMock()
    connection_pool.getconn.return_value = conn
    return connection_pool, conn, cursor


@pytest.mark.unit
class TestPostgresKeyValueStore:
    """Tests for the PostgreSQL store with a mocked connection pool."""

    def make_store(self) -> PostgresKeyValueStore:
        return PostgresKeyValueStore("suisage", "postgres", "secret", "localhost", 5432)

    @pytest.mark.asyncio
    async def test_get_creates_table_once(self):
        connection_pool, conn, cursor = mock_pool(fetchone=("stored",))
        store = self.make_store()

        with patch('db.connections.postgresql.pool.ThreadedConnectionPool', return_value=connection_pool):
            assert await store.get("k") == "stored"
            assert await store.get("k") == "stored"

        statements = [call.args[0] for call in cursor.execute.call_args_list]
        assert statements.count(CREATE_TABLE_SQL) == 1
        assert cursor.execute.call_args_list[1].args[1] == ("k",)
        assert conn.commit.call_count == 2
        assert connection_pool.putconn.call_count == 2

    @pytest.mark.asyncio
    async def test_missing_key(self):
        connection_pool, _, _ = mock_pool(fetchone=None)
        store = self.make_store()

        with patch('db.connections.postgresql.pool.ThreadedConnectionPool', return_value=connection_pool):
            assert await store.get("k") is None

    @pytest.mark.asyncio
    async def test_set_upserts(self):
        connection_pool, _, cursor = mock_pool()
        store = self.make_store()

        with patch('db.connections.postgresql.pool.ThreadedConnectionPool', return_value=connection_pool):
            await store.set("k", "v")

        query, params = cursor.execute.call_args_list[-1].args
        assert "ON CONFLICT (key) DO UPDATE" in query
        assert params == ("k", "v")

    @pytest.mark.asyncio
    async def test_database_error_becomes_persistence_error(self):
        connection_pool, conn, _ = mock_pool(execute_side_effect=psycopg2.ProgrammingError("bad query"))
        store = self.make_store()

        with patch('db.connections.postgresql.pool.ThreadedConnectionPool', return_value=connection_pool):
            with pytest.raises(PersistenceError):
                await store.remove("k")

        conn.rollback.assert_called_once()
        connection_pool.putconn.assert_called_once_with(conn)

    @pytest.mark.asyncio
    async def test_operational_error_is_retried(self):
        connection_pool, _, _ = mock_pool(
            fetchone=("stored",),
            execute_side_effect=[psycopg2.OperationalError("server closed the connection"), None, None],
        )
        store = self.make_store()

        with patch('db.connections.postgresql.pool.ThreadedConnectionPool', return_value=connection_pool), \
                patch('db.connections.postgresql.time.sleep') as sleep:
            assert await store.get("k") == "stored"

        sleep.assert_called_once()

    def test_close(self):
        connection_pool, _, _ = mock_pool()
        store = self.make_store()
        store._pool = connection_pool

        store.close()
        connection_pool.closeall.assert_called_once()
        assert store._pool is None
