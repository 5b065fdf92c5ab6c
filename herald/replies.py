"""Operator reply commands over recently cached messages.

    !reply <id> <text>       reply to a cached message, quoting it
    !qr                      list quick replies
    !qr <id> <shortcut>      send a quick reply to a cached message
    !addqr <shortcut> <text> add or replace a quick reply
    !help                    command summary
    !<shortcut>              quick reply to the most recent message
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from .cache import MessageCache
from .errors import classify_error
from .transport import InboundMessage, Transport

logger = logging.getLogger("herald.replies")

DEFAULT_QUICK_REPLIES = {
    "!hi": "Hello! Thanks for your message. How can I help you today?",
    "!gm": "Good morning! Hope you're having a great day.",
    "!ga": "Good afternoon! How can I assist you?",
    "!ge": "Good evening! How can I help you tonight?",
    "!thx": "Thank you for your message. I appreciate it!",
    "!busy": "I'm currently busy, but I'll get back to you as soon as possible.",
    "!away": "I'm away right now. I'll respond when I return.",
    "!meet": "I'm in a meeting right now. I'll contact you afterward.",
    "!call": "Please give me a call when you're free.",
    "!email": "Could you please send me an email with the details?",
    "!docs": "I've received your documents. I'll review them soon.",
    "!schedule": "Let's schedule a meeting to discuss this further.",
    "!ack": "I've seen your message in the group. I'll respond shortly.",
    "!noted": "Noted. I'll take care of this.",
    "!gthanks": "Thanks for mentioning me in the group. I'll look into it.",
}

HELP_TEXT = """Commands:
  !reply <id> <text>        Reply to a message
  !qr                       List quick replies
  !qr <id> <shortcut>       Quick reply to a message
  !addqr <shortcut> <text>  Add a quick reply
  !<shortcut>               Quick reply to the latest message
  !help                     Show this help"""


def _shortcut(name: str) -> str:
    return name if name.startswith("!") else f"!{name}"


@dataclass
class CommandResult:
    ok: bool
    text: str = ""


class ReplyCommandProcessor:
    """Executes operator commands against the message cache."""

    def __init__(
        self,
        transport: Transport,
        cache: MessageCache,
        quick_replies: Optional[dict[str, str]] = None,
    ):
        self.transport = transport
        self.cache = cache
        self.quick_replies = dict(DEFAULT_QUICK_REPLIES if quick_replies is None else quick_replies)
        self._send_lock = asyncio.Lock()

    def add_quick_reply(self, shortcut: str, text: str) -> str:
        key = _shortcut(shortcut)
        self.quick_replies[key] = text
        return key

    def list_quick_replies(self) -> str:
        if not self.quick_replies:
            return "No quick replies defined."
        return "\n".join(f"{k}: {v}" for k, v in self.quick_replies.items())

    async def send_reply(self, target: InboundMessage, text: str) -> CommandResult:
        """Send ``text`` into ``target``'s chat, quoting it."""
        if not target.chat_id or "@" not in target.chat_id:
            return CommandResult(False, f"Message {target.id} has no valid chat address")
        try:
            async with self._send_lock:
                await self.transport.send_message(target.chat_id, {"text": text}, {"quoted": target.raw or None})
        except Exception as e:
            logger.error(f"Reply to {target.chat_id} failed: {e}", exc_info=True)
            return CommandResult(False, classify_error(e))
        logger.info(f"Replied in {target.chat_id}: {text[:50]}")
        return CommandResult(True, f"Reply sent to {target.chat_id}")

    def _lookup(self, message_id: str) -> Optional[InboundMessage]:
        return self.cache.get(message_id)

    async def process(self, command: str) -> CommandResult:
        command = (command or "").strip()
        if not command.startswith("!"):
            return CommandResult(False, "Commands start with '!'. Try !help")

        if command in self.quick_replies:
            latest = self.cache.latest()
            if latest is None:
                return CommandResult(False, "No recent message to reply to")
            return await self.send_reply(latest, self.quick_replies[command])

        name, _, rest = command.partition(" ")
        rest = rest.strip()

        if name == "!help":
            return CommandResult(True, HELP_TEXT)

        if name == "!qr" and not rest:
            return CommandResult(True, self.list_quick_replies())

        if name in ("!reply", "!qr", "!addqr"):
            first, _, tail = rest.partition(" ")
            tail = tail.strip()
            if not first or not tail:
                return CommandResult(False, f"Usage: see !help ({name} needs two arguments)")

            if name == "!addqr":
                key = self.add_quick_reply(first, tail)
                return CommandResult(True, f"Quick reply {key} saved")

            target = self._lookup(first)
            if target is None:
                return CommandResult(False, f"Message {first} not found (it may have expired)")

            if name == "!reply":
                return await self.send_reply(target, tail)

            text = self.quick_replies.get(_shortcut(tail.split()[0]))
            if text is None:
                return CommandResult(False, f"Unknown quick reply: {tail.split()[0]}")
            return await self.send_reply(target, text)

        return CommandResult(False, f"Unknown command: {name}. Try !help")
