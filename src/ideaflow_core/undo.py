"""Single-slot undo cache for the last approve/reject action.

The slot is persisted under one fixed key so an undo survives a process
restart within the validity window. Records older than the window are
discarded when the slot is loaded.
"""
import asyncio
import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Optional

from pydantic import ValidationError

from .schemas import UndoRecord

logger = logging.getLogger("ideaflow-core.undo")

UNDO_STATE_KEY = "ideaflow.last_action"
DEFAULT_UNDO_WINDOW_SECONDS = 300


# ============================================================================
# Key-value resources
# ============================================================================


class KeyValueStore(ABC):
    """Small durable key-value resource holding JSON-compatible values."""

    @abstractmethod
    def get(self, key: str) -> Optional[dict]:
        ...

    @abstractmethod
    def set(self, key: str, value: dict) -> None:
        ...

    @abstractmethod
    def delete(self, key: str) -> None:
        ...


class MemoryKeyValueStore(KeyValueStore):
    """Process-local store, used in tests and when no state path is configured."""

    def __init__(self, initial: Optional[dict] = None):
        self._data: dict[str, dict] = dict(initial or {})

    def get(self, key: str) -> Optional[dict]:
        return self._data.get(key)

    def set(self, key: str, value: dict) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileKeyValueStore(KeyValueStore):
    """All keys in one JSON object on disk, rewritten on every change.

    Reads and writes block; UndoCache calls them from a worker thread.
    """

    def __init__(self, path: str):
        self.path = Path(path)

    def _read(self) -> dict:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            logger.warning(f"Ignoring unreadable state file {self.path}")
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: dict) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        tmp_path.replace(self.path)

    def get(self, key: str) -> Optional[dict]:
        return self._read().get(key)

    def set(self, key: str, value: dict) -> None:
        data = self._read()
        data[key] = value
        self._write(data)

    def delete(self, key: str) -> None:
        data = self._read()
        if key in data:
            del data[key]
            self._write(data)


# ============================================================================
# Undo cache
# ============================================================================


class UndoCache:
    """Holds at most one UndoRecord; a new record overwrites the previous one."""

    def __init__(
        self,
        kv: KeyValueStore,
        window_seconds: int = DEFAULT_UNDO_WINDOW_SECONDS,
        revalidate_on_read: bool = False,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.kv = kv
        self.window = timedelta(seconds=window_seconds)
        self.revalidate_on_read = revalidate_on_read
        self.clock = clock
        self._record: Optional[UndoRecord] = None

    def is_expired(self, record: UndoRecord) -> bool:
        return self.clock() - record.timestamp > self.window

    async def load(self) -> Optional[UndoRecord]:
        """Read the persisted slot, discarding records that are malformed or expired."""
        raw = await asyncio.to_thread(self.kv.get, UNDO_STATE_KEY)
        if raw is None:
            self._record = None
            return None

        try:
            record = UndoRecord.model_validate(raw)
        except ValidationError as e:
            logger.warning(f"Discarding malformed undo record: {e}")
            await self.clear()
            return None

        if self.is_expired(record):
            logger.info(f"Discarding expired undo record for idea #{record.idea_id} from {record.timestamp.isoformat()}")
            await self.clear()
            return None

        self._record = record
        logger.info(f"Loaded undo record: {record.action.value} on idea #{record.idea_id}")
        return record

    async def put(self, record: UndoRecord) -> None:
        """Replace the slot with ``record``."""
        self._record = record
        try:
            await asyncio.to_thread(self.kv.set, UNDO_STATE_KEY, record.model_dump(mode="json"))
        except OSError as e:
            logger.error(f"Undo record for idea #{record.idea_id} kept in memory only: {e}", exc_info=True)

    def peek(self) -> Optional[UndoRecord]:
        """
        Return the current record without consuming it.

        An expired record is dropped from memory only; the persisted copy is
        discarded by the next ``load``.
        """
        if self._record is not None and self.revalidate_on_read and self.is_expired(self._record):
            logger.info(f"Undo record for idea #{self._record.idea_id} expired")
            self._record = None
        return self._record

    async def take(self) -> Optional[UndoRecord]:
        """Return the current record and clear the slot."""
        record = self.peek()
        await self.clear()
        return record

    async def clear(self) -> None:
        self._record = None
        try:
            await asyncio.to_thread(self.kv.delete, UNDO_STATE_KEY)
        except OSError as e:
            logger.error(f"Failed to clear persisted undo record: {e}", exc_info=True)
