"""
Database package initialization.
This module exports the durable key/value stores used by the training data store.
"""
from db.kv_store import (
    KeyValueStore,
    MemoryKeyValueStore,
    JsonFileKeyValueStore,
    create_kv_store
)

__all__ = [
    'KeyValueStore',
    'MemoryKeyValueStore',
    'JsonFileKeyValueStore',
    'create_kv_store'
]
