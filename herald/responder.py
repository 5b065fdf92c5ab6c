"""AI auto-replies for messages that mention nobody."""

import logging
import time
from typing import Optional

from .conversation_store import ConversationStore
from .dispatcher import message_id_of
from .llm.provider import ChatMessage, LLMProvider
from .records import ConversationRecord, MessageRecord
from .transport import InboundMessage, Transport, local_part

logger = logging.getLogger("herald.responder")

FALLBACK_REPLY = "Wait for me, {name}"

LANGUAGE_INSTRUCTIONS = {
    "bn": "Respond primarily in Bengali (Bangla) unless the user asks in another language.",
    "en": "Respond primarily in English unless the user asks in another language.",
    "ar": "Respond primarily in Arabic unless the user asks in another language.",
    "hi": "Respond primarily in Hindi unless the user asks in another language.",
    "auto": (
        "Detect the language of the user's message and respond in the same language. "
        "You understand English, Bengali (Bangla), Arabic and Hindi."
    ),
}

NAME_POLICIES = {
    "always": 'Always address the user by their name "{name}".',
    "never": (
        'You know the user\'s name is "{name}", but don\'t use it unless '
        "they ask about their name."
    ),
    "occasional": (
        'You know the user\'s name is "{name}", but don\'t overuse it. Use it only '
        "occasionally when it feels natural, no more than once every 3-4 messages."
    ),
}


def build_system_prompt(record: ConversationRecord, bot_name: str, name_policy: str) -> str:
    lang = record.preferences.language
    lines = [
        f"You are {bot_name}, a helpful WhatsApp assistant. Be concise, friendly, and "
        f"conversational. {LANGUAGE_INSTRUCTIONS.get(lang, LANGUAGE_INSTRUCTIONS['auto'])}",
        "",
        "Pay attention to the conversation history to keep context. "
        "Adapt your tone to the user's style.",
        "",
        f"Messages so far: {record.stats.message_count}",
    ]

    profile = record.profile
    if record.is_group:
        lines.append("This is a group chat.")
        if profile.display_name:
            lines.append(f'Group name: "{profile.display_name}"')
        if profile.description:
            lines.append(f"Group description: {profile.description}")
        named = [p.display_name for p in record.participants.values() if p.display_name]
        total = profile.member_count or len(record.participants)
        if total:
            lines.append(f"The group has {total} members.")
        if named:
            roster = ", ".join(named)
            unknown = total - len(named)
            if unknown > 0:
                roster += f" and {unknown} others whose names are not known"
            lines.append(f"Known members: {roster}.")
        lines.append(
            "When replying to a specific member, use their name only when needed for clarity."
        )
    else:
        lines.append("This is a direct message.")
        if profile.display_name:
            lines.append(f"User's name: {profile.display_name}")
            policy = NAME_POLICIES.get(name_policy, NAME_POLICIES["occasional"])
            lines.append("")
            lines.append(policy.format(name=profile.display_name))
    return "\n".join(lines)


def format_history(record: ConversationRecord, limit: int, skip_id: Optional[str] = None) -> list[ChatMessage]:
    """Recent history as chat turns; group senders are labelled when they change."""
    entries = [m for m in record.history if m.id != skip_id]
    if limit <= 0:
        return []
    messages = []
    current_sender = None
    for entry in entries[-limit:]:
        content = entry.text
        if record.is_group and not entry.from_self and entry.sender:
            if entry.sender.address != current_sender:
                current_sender = entry.sender.address
                if entry.sender.display_name:
                    content = f"[{entry.sender.display_name}]: {content}"
        if not content:
            continue
        messages.append(ChatMessage(role="assistant" if entry.from_self else "user", content=content))
    return messages


class AutoResponder:
    """Replies to messages without mentions, through the LLM when available."""

    def __init__(
        self,
        store: ConversationStore,
        transport: Transport,
        provider: Optional[LLMProvider] = None,
        *,
        enabled: bool = True,
        group_enabled: bool = True,
        direct_enabled: bool = False,
        ai_enabled: bool = True,
        history_messages: int = 10,
        name_policy: str = "occasional",
        bot_name: str = "Herald",
    ):
        self.store = store
        self.transport = transport
        self.provider = provider
        self.enabled = enabled
        self.group_enabled = group_enabled
        self.direct_enabled = direct_enabled
        self.ai_enabled = ai_enabled
        self.history_messages = history_messages
        self.name_policy = name_policy
        self.bot_name = bot_name

    def applies_to(self, message: InboundMessage) -> bool:
        if not self.enabled or message.from_self:
            return False
        return self.group_enabled if message.is_group else self.direct_enabled

    async def generate(self, message: InboundMessage) -> str:
        """AI reply text, or the fallback when AI is off or fails."""
        fallback = FALLBACK_REPLY.format(name=message.push_name or local_part(message.sender))
        if not (self.ai_enabled and self.provider and message.text):
            return fallback

        record = await self.store.load(message.chat_id, message.is_group)
        if not record.preferences.ai_enabled:
            return fallback

        prompt = [ChatMessage(role="system", content=build_system_prompt(record, self.bot_name, self.name_policy))]
        prompt += format_history(record, self.history_messages, skip_id=message.id)
        prompt.append(ChatMessage(role="user", content=message.text))
        try:
            reply = (await self.provider.complete(prompt)).strip()
        except Exception as e:
            logger.warning(f"AI reply failed for {message.chat_id}: {e}")
            return fallback
        return reply or fallback

    async def respond(self, message: InboundMessage) -> bool:
        """Send an auto-reply when enabled for this chat type."""
        if not self.applies_to(message):
            return False

        reply = await self.generate(message)
        result = await self.transport.send_message(
            message.chat_id, {"text": reply}, {"quoted": message.raw or None},
        )
        logger.info(f"Auto-replied in {message.chat_id}: {reply[:50]}{'...' if len(reply) > 50 else ''}")

        sent = MessageRecord(
            id=message_id_of(result) or f"auto-{int(time.time() * 1000)}",
            text=reply,
            from_self=True,
            reply_to_address=message.sender,
        )
        await self.store.add_message(message.chat_id, message.is_group, sent, from_self=True)
        return True
