"""
Durable key/value stores used to persist training data.

Values are opaque serialized strings. Every failure surfaces as
PersistenceError so callers only have one error to handle.
"""
import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, Optional

from app.base.errors import PersistenceError

logger = logging.getLogger(__name__)

class KeyValueStore:
    """Abstract async key/value store."""

    async def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    async def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    async def remove(self, key: str) -> None:
        raise NotImplementedError

class MemoryKeyValueStore(KeyValueStore):
    """Process-local store; contents are lost on exit."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def remove(self, key: str) -> None:
        self._data.pop(key, None)

class JsonFileKeyValueStore(KeyValueStore):
    """All keys in one JSON document on disk.

    Writes go to a temporary file that replaces the document atomically, so a
    reader never sees a half-written value.
    """

    def __init__(self, path: str):
        self.path = Path(path)

    def _read_all(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise PersistenceError(f"Failed to read {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise PersistenceError(f"Store file {self.path} does not contain a JSON object")
        return data

    def _write_all(self, data: Dict[str, str]) -> None:
        directory = self.path.parent if str(self.path.parent) else Path(".")
        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=f".{self.path.name}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(data, f)
                os.replace(tmp_path, self.path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            raise PersistenceError(f"Failed to write {self.path}: {e}") from e

    def _set(self, key: str, value: str) -> None:
        data = self._read_all()
        data[key] = value
        self._write_all(data)

    def _remove(self, key: str) -> None:
        data = self._read_all()
        if key in data:
            del data[key]
            self._write_all(data)

    async def get(self, key: str) -> Optional[str]:
        data = await asyncio.to_thread(self._read_all)
        return data.get(key)

    async def set(self, key: str, value: str) -> None:
        await asyncio.to_thread(self._set, key, value)

    async def remove(self, key: str) -> None:
        await asyncio.to_thread(self._remove, key)

def create_kv_store(backend: str, path: Optional[str] = None) -> KeyValueStore:
    """Build the configured store.

    Args:
        backend: "file", "postgres" or "memory"
        path: File location for the "file" backend

    Returns:
        KeyValueStore instance
    """
    from utils import config

    backend = backend.lower()
    if backend == "memory":
        logger.warning("Using in-memory storage; training data will not survive a restart")
        return MemoryKeyValueStore()
    if backend == "file":
        return JsonFileKeyValueStore(path or config.STORAGE_PATH)
    if backend == "postgres":
        from db.connections.postgresql import PostgresKeyValueStore
        return PostgresKeyValueStore(
            db_name=config.DB_NAME,
            db_user=config.DB_USER,
            db_password=config.DB_PASSWORD,
            db_host=config.DB_HOST,
            db_port=config.DB_PORT,
        )
    raise ValueError(f"Unknown storage backend: {backend}")
