"""Bounded in-memory message tracking.

``MessageCache`` keeps the most recent messages by id so a reply command can
refer back to them. ``ProcessedIds`` remembers which inbound ids were
already handled. Both are process-local and start empty on restart.
"""

import logging
from collections import OrderedDict
from typing import Any, Optional

from .errors import MissingMessageIdError

logger = logging.getLogger("herald.cache")


class MessageCache:
    """Fixed-capacity id -> message map with strict FIFO eviction.

    Eviction follows insertion order only; ``get`` does not refresh an entry.
    Re-adding a known id replaces the stored message without moving it.
    """

    def __init__(self, capacity: int = 100):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._messages: OrderedDict[str, Any] = OrderedDict()

    def add(self, message: Any) -> str:
        message_id = getattr(message, "id", None)
        if not message_id:
            raise MissingMessageIdError("message has no id")
        if message_id in self._messages:
            self._messages[message_id] = message
            return message_id
        while len(self._messages) >= self.capacity:
            evicted, _ = self._messages.popitem(last=False)
            logger.debug(f"Evicted message {evicted}")
        self._messages[message_id] = message
        return message_id

    def get(self, message_id: str) -> Optional[Any]:
        return self._messages.get(message_id)

    def remove(self, message_id: str) -> bool:
        return self._messages.pop(message_id, None) is not None

    def latest(self) -> Optional[Any]:
        """Most recently inserted message, if any."""
        if not self._messages:
            return None
        return next(reversed(self._messages.values()))

    def size(self) -> int:
        return len(self._messages)

    def clear(self) -> None:
        self._messages.clear()

    def __len__(self) -> int:
        return len(self._messages)

    def __contains__(self, message_id: object) -> bool:
        return message_id in self._messages


class ProcessedIds:
    """Recently processed message ids.

    Once more than ``cap`` ids are held, only the most recent ``keep`` survive.
    """

    def __init__(self, cap: int = 1000, keep: int = 500):
        self.cap = cap
        self.keep = min(keep, cap)
        self._ids: dict[str, None] = {}

    def __contains__(self, message_id: object) -> bool:
        return message_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def add(self, message_id: str) -> bool:
        """Record ``message_id``; False when it was already present."""
        if message_id in self._ids:
            return False
        self._ids[message_id] = None
        if len(self._ids) > self.cap:
            recent = list(self._ids)[-self.keep:] if self.keep else []
            self._ids = dict.fromkeys(recent)
            logger.debug(f"Trimmed processed ids to {len(self._ids)}")
        return True
