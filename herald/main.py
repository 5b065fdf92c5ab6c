"""Herald application wiring.

A transport bridge (whatever owns the WhatsApp connection) builds a
``HeraldApp`` with its ``Transport`` implementation and feeds it upsert
events through ``on_messages``. Operator commands go through
``handle_command``.
"""

import logging
import os
from typing import Iterable, Optional

from .cache import MessageCache, ProcessedIds
from .composer import RelayComposer
from .config import HeraldSettings, load_settings
from .conversation_store import ConversationStore
from .dispatcher import Dispatcher
from .llm.openai import OpenAIProvider
from .llm.provider import LLMProvider
from .locale import load_locales
from .pipeline import MentionPipeline, PipelineResult
from .replies import CommandResult, ReplyCommandProcessor
from .resolver import IdentityResolver
from .responder import AutoResponder
from .storage import JsonFileBackend
from .transport import InboundMessage, Transport

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

logger = logging.getLogger("herald")


def configure_logging(settings: HeraldSettings) -> None:
    """Console logging plus an optional file; quiet HTTP client chatter."""
    handlers: list[logging.Handler] = [logging.StreamHandler()]  # stderr
    if settings.log_file:
        handlers.append(logging.FileHandler(os.path.expanduser(settings.log_file), encoding="utf-8"))
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def create_provider(settings: HeraldSettings) -> Optional[LLMProvider]:
    """OpenAI-compatible provider from settings, or None without a key."""
    if not settings.ai_enabled or not settings.llm_api_key:
        return None
    return OpenAIProvider(
        api_key=settings.llm_api_key,
        chat_model=settings.llm_model,
        base_url=settings.llm_base_url,
        timeout=settings.llm_timeout,
    )


def create_store(settings: HeraldSettings) -> ConversationStore:
    return ConversationStore(
        JsonFileBackend(settings.data_dir),
        max_history=settings.max_history,
        save_retries=settings.store_save_retries,
    )


class HeraldApp:
    """Everything wired from settings around one transport."""

    def __init__(
        self,
        transport: Transport,
        settings: Optional[HeraldSettings] = None,
        provider: Optional[LLMProvider] = None,
    ):
        self.settings = settings or load_settings()
        s = self.settings
        self.transport = transport
        self.provider = provider if provider is not None else create_provider(s)

        self.store = create_store(s)
        self.cache = MessageCache(s.message_cache_size)
        self.processed = ProcessedIds(s.processed_ids_cap, s.processed_ids_keep)
        self.composer = RelayComposer(
            provider=self.provider if s.ai_enabled else None,
            locales=load_locales(s.locale_file),
            display_language=s.relay_language,
        )
        self.dispatcher = Dispatcher(transport, domain=s.transport_domain)
        self.resolver = IdentityResolver(self.store, match=s.resolver_match)
        self.responder = AutoResponder(
            self.store,
            transport,
            self.provider,
            enabled=s.auto_reply_enabled,
            group_enabled=s.group_auto_reply,
            direct_enabled=s.direct_auto_reply,
            ai_enabled=s.ai_enabled,
            history_messages=s.ai_history_messages,
            name_policy=s.use_name_in_replies,
            bot_name=s.bot_name,
        )
        self.pipeline = MentionPipeline(
            store=self.store,
            transport=transport,
            composer=self.composer,
            dispatcher=self.dispatcher,
            resolver=self.resolver,
            cache=self.cache,
            processed=self.processed,
            responder=self.responder,
        )
        self.commands = ReplyCommandProcessor(transport, self.cache)

    async def on_messages(self, events: Iterable[dict], upsert_type: str = "notify") -> list[PipelineResult]:
        """Process one messages-upsert batch.

        History syncs (``upsert_type`` other than ``notify``) are ignored.
        A failing event is logged and does not affect the rest of the batch.
        """
        if upsert_type != "notify":
            return []
        results = []
        for event in events:
            try:
                message = InboundMessage.from_event(event)
                if message.from_self:
                    continue
                results.append(await self.pipeline.handle(message))
            except Exception as e:
                logger.error(f"Error processing event: {type(e).__name__}: {e}", exc_info=True)
        return results

    async def handle_command(self, command: str) -> CommandResult:
        return await self.commands.process(command)
