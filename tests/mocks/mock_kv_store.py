"""
Key/value store doubles for training data tests.
"""
from typing import Optional

from app.base.errors import PersistenceError
from db.kv_store import MemoryKeyValueStore


class FailingKeyValueStore(MemoryKeyValueStore):
    """Memory store whose reads and/or writes can be switched to fail."""

    def __init__(self, fail_reads: bool = False, fail_writes: bool = False):
        super().__init__()
        self.fail_reads = fail_reads
        self.fail_writes = fail_writes
        self.set_calls = 0

    async def get(self, key: str) -> Optional[str]:
        if self.fail_reads:
            raise PersistenceError("storage unreadable")
        return await super().get(key)

    async def set(self, key: str, value: str) -> None:
        self.set_calls += 1
        if self.fail_writes:
            raise PersistenceError("quota exceeded")
        await super().set(key, value)

    async def remove(self, key: str) -> None:
        if self.fail_writes:
            raise PersistenceError("storage read-only")
        await super().remove(key)
