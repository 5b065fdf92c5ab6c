"""Per-contact and per-group conversation records.

Every read-modify-write runs under a per-entity ``asyncio.Lock`` and saves
with the revision it loaded. When the backend reports a newer revision (a
second process wrote the same file), the record is reloaded, the mutation is
reapplied and the save is retried a bounded number of times.
"""

import asyncio
import logging
import weakref
from typing import Any, Callable, Optional

from .errors import RevisionConflictError
from .language import detect_script_language
from .records import (
    ConversationRecord,
    MessageRecord,
    Participant,
    Preferences,
    Profile,
    Stats,
    merge_participant,
    utcnow,
)
from .storage import RecordBackend

logger = logging.getLogger("herald.store")

_PROFILE_IMMUTABLE = {"created_at"}


class ConversationStore:
    """Async facade over a ``RecordBackend``."""

    def __init__(self, backend: RecordBackend, max_history: int = 100, save_retries: int = 3):
        self.backend = backend
        self.max_history = max_history
        self.save_retries = save_retries
        # entries drop out once no caller holds the lock
        self._locks: weakref.WeakValueDictionary[tuple[bool, str], asyncio.Lock] = weakref.WeakValueDictionary()

    def _lock(self, entity_id: str, is_group: bool) -> asyncio.Lock:
        key = (is_group, entity_id)
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    async def load(self, entity_id: str, is_group: bool) -> ConversationRecord:
        """Return the stored record or a fresh skeleton."""
        try:
            record = await self.backend.read(entity_id, is_group)
        except OSError as e:
            logger.warning(f"Failed to read record for {entity_id}: {e}")
            record = None
        if record is None:
            return ConversationRecord(entity_id=entity_id, is_group=is_group)
        return record

    async def save(self, record: ConversationRecord) -> None:
        """Persist the whole record, last writer wins."""
        record.profile.updated_at = utcnow()
        record.revision += 1
        await self.backend.write(record)

    async def _mutate(
        self,
        entity_id: str,
        is_group: bool,
        apply: Callable[[ConversationRecord], bool],
    ) -> ConversationRecord:
        """Load, apply and save with a revision check.

        ``apply`` mutates the record in place and returns False when nothing
        changed, in which case no write happens.
        """
        async with self._lock(entity_id, is_group):
            attempts = self.save_retries + 1
            attempt = 0
            while True:
                attempt += 1
                record = await self.load(entity_id, is_group)
                if not apply(record):
                    return record
                expected = record.revision
                record.revision = expected + 1
                record.profile.updated_at = utcnow()
                try:
                    await self.backend.write(record, expected_revision=expected)
                    return record
                except RevisionConflictError as e:
                    if attempt >= attempts:
                        raise
                    logger.warning(f"{e}; reapplying (attempt {attempt}/{attempts})")

    async def add_message(
        self,
        entity_id: str,
        is_group: bool,
        message: MessageRecord,
        from_self: bool = False,
    ) -> ConversationRecord:
        """Append a message and update participants and stats."""
        entry = message.model_copy(deep=True)
        entry.from_self = from_self
        if from_self:
            entry.sender = None

        def apply(record: ConversationRecord) -> bool:
            record.append_message(entry.model_copy(deep=True), self.max_history)
            now = utcnow()
            record.stats.message_count += 1
            record.stats.last_activity_at = now

            sender = entry.sender
            if sender is None:
                return True

            participant = record.participants.get(sender.address)
            if participant is None:
                participant = record.participants[sender.address] = Participant()
            if sender.display_name:
                participant.display_name = sender.display_name
            participant.last_seen = entry.timestamp
            participant.last_updated = now
            participant.message_count += 1

            if record.is_group:
                record.refresh_top_participants()
            elif sender.display_name:
                record.profile.display_name = sender.display_name
            return True

        return await self._mutate(entity_id, is_group, apply)

    async def update_profile(
        self,
        entity_id: str,
        is_group: bool,
        profile_patch: dict[str, Any],
        extra: Optional[dict[str, Any]] = None,
    ) -> ConversationRecord:
        """Shallow-merge ``profile_patch`` into the profile.

        ``extra`` may carry ``preferences`` and ``stats`` (field-merged) and
        ``participants`` (address -> fields, merged without losing names).
        """
        extra = extra or {}

        def apply(record: ConversationRecord) -> bool:
            patch = {k: v for k, v in profile_patch.items() if k not in _PROFILE_IMMUTABLE}
            if patch:
                record.profile = Profile.model_validate({**record.profile.model_dump(), **patch})

            prefs = extra.get("preferences")
            if prefs:
                record.preferences = Preferences.model_validate(
                    {**record.preferences.model_dump(), **prefs}
                )

            participants = extra.get("participants") or {}
            for address, fields in participants.items():
                incoming = fields if isinstance(fields, Participant) else Participant.model_validate(fields)
                record.participants[address] = merge_participant(
                    record.participants.get(address), incoming
                )
            if participants and record.is_group:
                record.refresh_top_participants()

            stats = extra.get("stats")
            if stats:
                record.stats = Stats.model_validate({**record.stats.model_dump(), **stats})
            return True

        return await self._mutate(entity_id, is_group, apply)

    async def detect_and_set_language(self, entity_id: str, is_group: bool, text: str) -> str:
        """Detect the script language of ``text``.

        The preference is only written while it is still ``auto``; the
        detection is returned either way.
        """
        detected = detect_script_language(text)
        if detected == "auto":
            return detected

        def apply(record: ConversationRecord) -> bool:
            if record.preferences.language != "auto":
                return False
            record.preferences.language = detected
            return True

        await self._mutate(entity_id, is_group, apply)
        return detected

    async def list_records(self, is_group: bool) -> list[ConversationRecord]:
        return await self.backend.list_records(is_group)

    async def counts(self) -> dict[str, int]:
        """Aggregate counts for status output."""
        direct = await self.list_records(False)
        groups = await self.list_records(True)
        messages = sum(r.stats.message_count for r in direct + groups)
        return {"direct": len(direct), "groups": len(groups), "messages": messages}
