"""
TrainingDataStore - bounded durable log of user-judged comparison sessions.

The whole entry list is serialized as one JSON value under one key of a
durable key/value store, newest entry first.
"""
import asyncio
import json
import logging
from typing import Any, Dict, List, Optional

from app.base.comparison_session import ComparisonSession
from app.base.errors import InvalidSelection, PersistenceError
from app.base.models import TrainingDataEntry, project_wallet_context
from db.kv_store import KeyValueStore
from utils.config import MAX_TRAINING_ENTRIES, TRAINING_DATA_KEY

logger = logging.getLogger(__name__)

class TrainingDataStore:
    """Append-only, size-bounded log of finalized comparison sessions."""

    def __init__(
        self,
        kv_store: KeyValueStore,
        max_entries: int = MAX_TRAINING_ENTRIES,
        storage_key: str = TRAINING_DATA_KEY,
    ):
        """Initialize the store.

        Args:
            kv_store: Durable key/value store holding the serialized list
            max_entries: Number of newest entries retained after every append
            storage_key: Key under which the list is stored
        """
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.kv_store = kv_store
        self.max_entries = max_entries
        self.storage_key = storage_key
        self._lock = asyncio.Lock()

    async def _load(self) -> List[Dict[str, Any]]:
        """Read the raw list.

        A stored value that is not a JSON list is logged and read as empty, so
        the next append replaces it and saving recovers on its own.

        Raises:
            PersistenceError: When the durable store itself cannot be read
        """
        try:
            raw = await self.kv_store.get(self.storage_key)
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to read training data: {e}") from e
        if raw is None:
            return []
        try:
            data = json.loads(raw)
        except ValueError as e:
            logger.error(f"Stored training data is not valid JSON, treating it as empty: {str(e)}")
            return []
        if not isinstance(data, list):
            logger.error("Stored training data is not a list, treating it as empty")
            return []
        return data

    async def append(self, entry: TrainingDataEntry) -> None:
        """Add an entry as the newest and trim to max_entries.

        Read, prepend, trim and write happen under one lock so concurrent
        appends cannot push the log past its bound.

        Raises:
            PersistenceError: If the durable store cannot be read or written
        """
        async with self._lock:
            existing = await self._load()
            updated = [entry.to_dict()] + existing
            updated = updated[: self.max_entries]
            try:
                await self.kv_store.set(self.storage_key, json.dumps(updated))
            except PersistenceError:
                raise
            except Exception as e:
                raise PersistenceError(f"Failed to write training data: {e}") from e
        logger.info(f"Saved comparison data: {entry.id}")

    async def save_comparison(self, session: ComparisonSession) -> bool:
        """Persist a session the user has judged.

        A failed save is logged and reported as False; it never interrupts the chat flow.

        Returns:
            bool: True if the entry was written
        """
        try:
            entry = session.to_entry()
        except InvalidSelection as e:
            logger.warning(f"Not saving session {session.id}: {str(e)}")
            return False

        try:
            await self.append(entry)
        except PersistenceError as e:
            logger.error(f"Failed to save training data for session {session.id}: {str(e)}")
            return False

        session.mark_persisted()
        return True

    async def list_all(self) -> List[Dict[str, Any]]:
        """Get every stored record as persisted, newest first.

        Unreadable storage is logged and treated as empty.
        """
        try:
            return await self._load()
        except PersistenceError as e:
            logger.error(f"Failed to load training data: {str(e)}")
            return []

    async def entries(self) -> List[TrainingDataEntry]:
        """Get every stored record that parses, newest first."""
        parsed: List[TrainingDataEntry] = []
        for raw in await self.list_all():
            try:
                parsed.append(TrainingDataEntry.from_dict(raw))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed training entry: {str(e)}")
        return parsed

    async def clear(self) -> None:
        """Delete all training data.

        Raises:
            PersistenceError: If the durable store rejects the removal
        """
        async with self._lock:
            try:
                await self.kv_store.remove(self.storage_key)
            except PersistenceError:
                raise
            except Exception as e:
                raise PersistenceError(f"Failed to clear training data: {e}") from e
        logger.info("Cleared all training data")

    async def export_as_json(self) -> str:
        """Export judged entries with the wallet context reduced to counts."""
        exported = []
        for raw in await self.list_all():
            if not isinstance(raw, dict) or raw.get("selected_option") is None:
                continue
            wallet_data: Optional[Dict[str, Any]] = raw.get("wallet_data")
            exported.append({
                "prompt": raw.get("question"),
                "context": project_wallet_context(wallet_data) if isinstance(wallet_data, dict) else None,
                "chat_mode": raw.get("chat_mode"),
                "selected_chain": raw.get("selected_chain"),
                "responses": raw.get("responses") or {},
                "chain_responses": raw.get("chain_responses"),
                "selected": raw.get("selected_option"),
                "timestamp": raw.get("timestamp"),
            })
        return json.dumps(exported, indent=2)
