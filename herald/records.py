"""Conversation records persisted per contact and per group."""

from datetime import datetime, timezone
from typing import Literal, Optional

from pydantic import BaseModel, Field

MAX_TOP_PARTICIPANTS = 10

Language = Literal["auto", "en", "bn", "ar", "hi"]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def storage_key(entity_id: str) -> str:
    """Map an address to a filename-safe token.

    ASCII letters and digits pass through; every other character, ``_``
    included, becomes ``_<hex codepoint>_``. The mapping is injective, so
    ``123@s.whatsapp.net`` and ``123_s_whatsapp_net`` land in different files.
    """
    out = []
    for ch in entity_id:
        if ch.isascii() and ch.isalnum():
            out.append(ch)
        else:
            out.append(f"_{ord(ch):x}_")
    return "".join(out)


class Profile(BaseModel):
    display_name: Optional[str] = None
    description: Optional[str] = None
    avatar_ref: Optional[str] = None
    member_count: Optional[int] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Participant(BaseModel):
    display_name: Optional[str] = None
    is_admin: bool = False
    is_super_admin: bool = False
    last_seen: Optional[datetime] = None
    last_updated: datetime = Field(default_factory=utcnow)
    message_count: int = 0


class Sender(BaseModel):
    address: str
    display_name: Optional[str] = None


class MessageRecord(BaseModel):
    id: str
    text: str = ""
    timestamp: datetime = Field(default_factory=utcnow)
    from_self: bool = False
    sender: Optional[Sender] = None
    reply_to_address: Optional[str] = None


class Preferences(BaseModel):
    language: Language = "auto"
    ai_enabled: bool = True
    notify_on_mention: bool = True


class ParticipantCount(BaseModel):
    address: str
    display_name: Optional[str] = None
    count: int = 0


class Stats(BaseModel):
    message_count: int = 0
    last_activity_at: Optional[datetime] = None
    top_participants: list[ParticipantCount] = Field(default_factory=list)


class ConversationRecord(BaseModel):
    entity_id: str
    is_group: bool
    revision: int = 0
    profile: Profile = Field(default_factory=Profile)
    participants: dict[str, Participant] = Field(default_factory=dict)
    history: list[MessageRecord] = Field(default_factory=list)
    preferences: Preferences = Field(default_factory=Preferences)
    stats: Stats = Field(default_factory=Stats)

    @property
    def key(self) -> str:
        return storage_key(self.entity_id)

    def append_message(self, message: MessageRecord, max_history: int) -> None:
        """Append to history, dropping the oldest entries beyond the bound."""
        self.history.append(message)
        if len(self.history) > max_history:
            del self.history[: len(self.history) - max_history]

    def refresh_top_participants(self) -> None:
        """Rank participants by message count, keeping the top ten."""
        ranked = sorted(
            (
                ParticipantCount(address=address, display_name=p.display_name, count=p.message_count)
                for address, p in self.participants.items()
                if p.message_count
            ),
            key=lambda c: c.count,
            reverse=True,
        )
        self.stats.top_participants = ranked[:MAX_TOP_PARTICIPANTS]


def merge_participant(existing: Optional[Participant], incoming: Participant) -> Participant:
    """Merge a participant update without losing a known name.

    Admin flags come from the incoming side; group metadata is authoritative.
    """
    if existing is None:
        return incoming.model_copy()
    return Participant(
        display_name=incoming.display_name or existing.display_name,
        is_admin=incoming.is_admin,
        is_super_admin=incoming.is_super_admin,
        last_seen=incoming.last_seen or existing.last_seen,
        last_updated=utcnow(),
        message_count=max(incoming.message_count, existing.message_count),
    )
