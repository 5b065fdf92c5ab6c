"""Messaging transport boundary.

Herald does not speak the WhatsApp wire protocol itself. A ``Transport``
implementation (a bridge to a Baileys-style socket, for instance) delivers
messages and answers group metadata queries; inbound upsert events are
parsed with ``InboundMessage.from_event``.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from .records import MessageRecord, Sender

GROUP_SUFFIX = "@g.us"


def is_group_address(address: Optional[str]) -> bool:
    return bool(address) and address.endswith(GROUP_SUFFIX)


def local_part(address: str) -> str:
    """``8801711@s.whatsapp.net`` -> ``8801711``; device suffixes are dropped."""
    return address.split("@", 1)[0].split(":", 1)[0]


@dataclass
class GroupParticipant:
    address: str
    is_admin: bool = False
    is_super_admin: bool = False
    name: Optional[str] = None


@dataclass
class GroupMetadata:
    subject: Optional[str] = None
    description: Optional[str] = None
    participants: list[GroupParticipant] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> "GroupMetadata":
        """Accepts both ``{address, isAdmin, isSuperAdmin}`` participants and
        Baileys' ``{id, admin: "admin" | "superadmin"}`` form."""
        participants = []
        for p in data.get("participants") or []:
            address = p.get("address") or p.get("id")
            if not address:
                continue
            admin = p.get("admin")
            participants.append(GroupParticipant(
                address=address,
                is_admin=bool(p.get("isAdmin") or admin in ("admin", "superadmin")),
                is_super_admin=bool(p.get("isSuperAdmin") or admin == "superadmin"),
                name=p.get("name") or p.get("notify"),
            ))
        return cls(
            subject=data.get("subject") or None,
            description=data.get("description") or data.get("desc") or None,
            participants=participants,
        )


class Transport(ABC):
    """Outbound side of the messaging connection."""

    @abstractmethod
    async def send_message(
        self, address: str, content: dict[str, Any], options: Optional[dict[str, Any]] = None,
    ) -> Any:
        """Send ``content`` (e.g. ``{"text": ...}``).

        Implementations raise ``TransportError`` when the message cannot be
        handed to the network.
        """
        ...

    @abstractmethod
    async def group_metadata(self, address: str) -> GroupMetadata:
        """Current subject, description and roster of a group."""
        ...


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, dict):
        value = value.get("low")
    try:
        return datetime.fromtimestamp(int(value), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        return datetime.now(timezone.utc)


@dataclass
class InboundMessage:
    id: Optional[str]
    chat_id: str
    sender: str
    text: str = ""
    from_self: bool = False
    push_name: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    raw: dict = field(default_factory=dict, repr=False)

    @property
    def is_group(self) -> bool:
        return is_group_address(self.chat_id)

    @classmethod
    def from_event(cls, event: dict) -> "InboundMessage":
        """Parse one entry of a messages-upsert event."""
        key = event.get("key") or {}
        chat_id = key.get("remoteJid") or ""
        body = event.get("message") or {}
        text = (
            body.get("conversation")
            or (body.get("extendedTextMessage") or {}).get("text")
            or ""
        )
        return cls(
            id=key.get("id") or None,
            chat_id=chat_id,
            sender=key.get("participant") or chat_id,
            text=text,
            from_self=bool(key.get("fromMe")),
            push_name=event.get("pushName") or None,
            timestamp=_parse_timestamp(event.get("messageTimestamp")),
            raw=event,
        )

    def to_record(self) -> MessageRecord:
        return MessageRecord(
            id=self.id or "",
            text=self.text,
            timestamp=self.timestamp,
            from_self=self.from_self,
            sender=None if self.from_self else Sender(address=self.sender, display_name=self.push_name),
        )
