"""Pytest configuration and shared fixtures."""

import itertools
from typing import Optional

import pytest

from herald.conversation_store import ConversationStore
from herald.errors import TransportError
from herald.llm.provider import ChatMessage, ChatResponse, LLMProvider
from herald.storage import JsonFileBackend
from herald.transport import GroupMetadata, Transport

GROUP = "120363041234567890@g.us"
ALICE = "8801711111111@s.whatsapp.net"
BOB = "8801722222222@s.whatsapp.net"


class FakeTransport(Transport):
    """Records sends; ``fail_sends`` makes the next N sends raise."""

    def __init__(self, metadata: Optional[dict[str, GroupMetadata]] = None):
        self.sent: list[tuple[str, dict, Optional[dict]]] = []
        self.metadata = metadata or {}
        self.fail_sends = 0
        self.fail_addresses: set[str] = set()
        self.metadata_error: Optional[Exception] = None
        self._ids = itertools.count(1)

    async def send_message(self, address, content, options=None):
        if self.fail_sends > 0:
            self.fail_sends -= 1
            raise TransportError("socket closed")
        if address in self.fail_addresses:
            raise TransportError(f"cannot reach {address}")
        self.sent.append((address, content, options))
        return {"key": {"id": f"OUT{next(self._ids)}", "remoteJid": address}}

    async def group_metadata(self, address):
        if self.metadata_error:
            raise self.metadata_error
        return self.metadata.get(address) or GroupMetadata()

    def texts_to(self, address: str) -> list[str]:
        return [content["text"] for addr, content, _ in self.sent if addr == address]


class FakeProvider(LLMProvider):
    """Returns canned replies in order (the last one repeats)."""

    def __init__(self, *replies: str, error: Optional[Exception] = None):
        self.replies = list(replies) or ["ok"]
        self.error = error
        self.calls: list[list[ChatMessage]] = []

    @property
    def name(self) -> str:
        return "fake"

    async def chat(self, messages, model=None, temperature=0.7, max_tokens=None):
        self.calls.append(messages)
        if self.error:
            raise self.error
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        return ChatResponse(content=reply, model="fake-model")


def make_event(
    text: str,
    msg_id: str = "MSG1",
    chat: str = GROUP,
    participant: Optional[str] = ALICE,
    push_name: Optional[str] = "Alice",
    from_me: bool = False,
) -> dict:
    """A messages-upsert entry in the transport's shape."""
    key = {"id": msg_id, "remoteJid": chat, "fromMe": from_me}
    if participant and chat.endswith("@g.us"):
        key["participant"] = participant
    event = {
        "key": key,
        "message": {"conversation": text},
        "messageTimestamp": 1700000000,
    }
    if push_name:
        event["pushName"] = push_name
    return event


@pytest.fixture
def backend(tmp_path):
    return JsonFileBackend(tmp_path / "data")


@pytest.fixture
def store(backend):
    return ConversationStore(backend, max_history=100, save_retries=3)


@pytest.fixture
def transport():
    return FakeTransport()
