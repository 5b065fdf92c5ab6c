"""Record persistence backends.

The conversation store talks to a ``RecordBackend``; the default
``JsonFileBackend`` keeps one JSON document per entity:

    <data_dir>/inbox/<storage_key>.json    direct contacts
    <data_dir>/groups/<storage_key>.json   groups

Writes go to a temp file in the same directory and are moved into place
with ``os.replace`` so a reader never sees a half-written record.
"""

import asyncio
import logging
import os
import tempfile
import weakref
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from .errors import RevisionConflictError
from .records import ConversationRecord, storage_key

logger = logging.getLogger("herald.storage")

INBOX_DIR = "inbox"
GROUPS_DIR = "groups"


class RecordBackend(ABC):
    """Abstract persistence for conversation records."""

    @abstractmethod
    async def read(self, entity_id: str, is_group: bool) -> Optional[ConversationRecord]:
        """Return the stored record, or None when missing or unreadable."""
        ...

    @abstractmethod
    async def write(self, record: ConversationRecord, expected_revision: Optional[int] = None) -> None:
        """Persist ``record``.

        With ``expected_revision`` set, the write only happens when the stored
        revision still equals it; otherwise ``RevisionConflictError`` is raised.
        """
        ...

    @abstractmethod
    async def list_records(self, is_group: bool) -> list[ConversationRecord]:
        """All readable records of one kind, in storage-key order."""
        ...


class JsonFileBackend(RecordBackend):
    """One JSON file per entity, written atomically."""

    def __init__(self, data_dir: str | os.PathLike):
        self.data_dir = Path(data_dir)
        self.inbox_dir = self.data_dir / INBOX_DIR
        self.groups_dir = self.data_dir / GROUPS_DIR
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def _dir(self, is_group: bool) -> Path:
        return self.groups_dir if is_group else self.inbox_dir

    def path_for(self, entity_id: str, is_group: bool) -> Path:
        return self._dir(is_group) / f"{storage_key(entity_id)}.json"

    def _lock(self, path: Path) -> asyncio.Lock:
        key = str(path)
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    # ── sync helpers (run in a worker thread) ──

    @staticmethod
    def _read_file(path: Path) -> Optional[ConversationRecord]:
        try:
            raw = path.read_bytes()
        except FileNotFoundError:
            return None
        try:
            return ConversationRecord.model_validate_json(raw.decode("utf-8"))
        except (ValidationError, ValueError) as e:
            # UnicodeDecodeError is a ValueError
            logger.warning(f"Unreadable record {path.name}: {e}")
            return None

    @staticmethod
    def _write_file(path: Path, payload: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.stem}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp, path)
        except BaseException:
            try:
                os.unlink(tmp)
            except OSError:
                pass
            raise

    @classmethod
    def _stored_revision(cls, path: Path) -> int:
        # missing and unreadable files both count as revision 0, matching a load miss
        record = cls._read_file(path)
        return record.revision if record is not None else 0

    # ── RecordBackend ──

    async def read(self, entity_id: str, is_group: bool) -> Optional[ConversationRecord]:
        return await asyncio.to_thread(self._read_file, self.path_for(entity_id, is_group))

    async def write(self, record: ConversationRecord, expected_revision: Optional[int] = None) -> None:
        path = self.path_for(record.entity_id, record.is_group)
        payload = record.model_dump_json(indent=2)
        async with self._lock(path):
            if expected_revision is not None:
                found = await asyncio.to_thread(self._stored_revision, path)
                if found != expected_revision:
                    raise RevisionConflictError(record.entity_id, expected_revision, found)
            await asyncio.to_thread(self._write_file, path, payload)

    async def list_records(self, is_group: bool) -> list[ConversationRecord]:
        directory = self._dir(is_group)

        def _scan() -> list[ConversationRecord]:
            if not directory.is_dir():
                return []
            records = []
            for path in sorted(directory.glob("*.json")):
                record = self._read_file(path)
                if record is not None:
                    records.append(record)
            return records

        return await asyncio.to_thread(_scan)
