"""Relay message composition.

Turns the text left after stripping mentions into the message a mentioned
person receives: optionally polished by the LLM, then framed with who sent
it and from which group, in the configured display language.
"""

import logging
from typing import Optional

from .language import detect_language, detect_relay_intent
from .llm.provider import ChatMessage, LLMProvider
from .locale import LocaleTable, load_locales, pick_locale

logger = logging.getLogger("herald.composer")

_QUOTES = "\"'“”‘’"

LANGUAGE_INSTRUCTIONS = {
    "bn": "Respond in Bengali (Bangla). Make sure your response is in Bangla script.",
    "en": "Respond in English only. Do NOT translate to Bengali.",
    "ar": "Respond in Arabic.",
    "hi": "Respond in Hindi.",
}

RELAY_INSTRUCTIONS = """
IMPORTANT: This message asks to relay information to someone else.
- Extract ONLY the part that should be relayed and remove the instruction
- Remove phrases like "tell X", "say to X", "X ke bolo", "ke bolo", "bolte bolo"
- For example:
  * "Tell John I'll be late" -> "I'll be late"
  * "X ke bolo ami aschi" -> "ami aschi"
- If nothing is left to relay, return a simple greeting like "Hello" or "হ্যালো"
"""

SYSTEM_PROMPT = """You are a message relay assistant. {language_instruction} Relay the message with ZERO changes to meaning:
1. Fix only obvious spelling errors
2. Keep the same meaning, intent, and tone
3. Do NOT add any new information
4. Filter out inappropriate or offensive language while keeping the intent

{context}
{relay_instruction}
Do NOT add explanations or notes. Return the message text only, without quotation marks."""


def strip_quotes(text: str) -> str:
    """Remove quotation marks wrapping ``text``."""
    return text.strip().strip(_QUOTES).strip()


class RelayComposer:
    """Builds relay messages for mentioned recipients.

    ``display_language`` selects the framing locale; ``auto`` follows the
    detected language of each message.
    """

    def __init__(
        self,
        provider: Optional[LLMProvider] = None,
        locales: Optional[dict[str, LocaleTable]] = None,
        display_language: str = "bn",
    ):
        self.provider = provider
        self.locales = locales or load_locales()
        self.display_language = display_language

    def locale_for(self, text: str = "") -> LocaleTable:
        lang = self.display_language
        if lang == "auto":
            lang = detect_language(text)
        return pick_locale(self.locales, lang)

    def build_prompt(
        self,
        text: str,
        language: str,
        recipient_name: str = "",
        group_name: str = "",
        sender_name: str = "",
        relay_intent: bool = False,
    ) -> list[ChatMessage]:
        context = []
        if recipient_name:
            context.append(f"This message will be sent to {recipient_name}.")
        if group_name:
            context.append(f'This message is from a group chat named "{group_name}".')
        if sender_name:
            context.append(f"The message was sent by {sender_name}.")
        system = SYSTEM_PROMPT.format(
            language_instruction=LANGUAGE_INSTRUCTIONS.get(language, LANGUAGE_INSTRUCTIONS["en"]),
            context=" ".join(context),
            relay_instruction=RELAY_INSTRUCTIONS if relay_intent else "",
        )
        return [
            ChatMessage(role="system", content=system),
            ChatMessage(role="user", content=f'Relay this message with NO changes to meaning: "{text}"'),
        ]

    async def polish(
        self,
        text: str,
        recipient_name: str = "",
        group_name: str = "",
        sender_name: str = "",
        relay_intent: bool = False,
    ) -> str:
        """LLM pass over ``text``; any failure returns ``text`` unchanged."""
        if self.provider is None or not text:
            return text
        messages = self.build_prompt(
            text, detect_language(text), recipient_name, group_name, sender_name, relay_intent,
        )
        try:
            polished = await self.provider.complete(messages)
        except Exception as e:
            logger.warning(f"Polishing failed, relaying original text: {e}")
            return text
        polished = strip_quotes(polished or "")
        return polished or text

    async def compose(
        self,
        raw_text: str,
        recipient_name: str = "",
        group_name: str = "",
        sender_name: str = "",
        relay_intent: Optional[bool] = None,
    ) -> str:
        """Final relay text for one recipient.

        ``raw_text`` is the message with mentions removed. ``relay_intent``
        defaults to detection on ``raw_text`` itself.
        """
        if relay_intent is None:
            relay_intent = detect_relay_intent(raw_text, raw_text)
        locale = self.locale_for(raw_text)

        payload = await self.polish(raw_text, recipient_name, group_name, sender_name, relay_intent)
        payload = strip_quotes(payload) or locale.greeting

        template = locale.relay if relay_intent else locale.generic
        return template.format(
            group=locale.translate_name(group_name) if group_name else locale.group_fallback,
            sender=locale.translate_name(sender_name),
            message=payload,
        )
