"""Inbound message pipeline: record, extract mentions, relay, confirm.

Per message::

    RECEIVED -> EXTRACTED -> (resolve each number/name) -> COMPOSED
             -> DISPATCHED -> CONFIRMED | FAILED

with early exits DUPLICATE (id already processed), IGNORED (own message or
no id) and NO_MENTIONS (nothing to relay; may be auto-replied).

Each mention runs inside its own error boundary so one bad target never
stops the others.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from .cache import MessageCache, ProcessedIds
from .composer import RelayComposer
from .conversation_store import ConversationStore
from .dispatcher import DeliveryResult, Dispatcher
from .errors import classify_error
from .language import detect_relay_intent
from .mentions import MentionExtractor, RegexMentionExtractor
from .records import Participant
from .resolver import IdentityResolver
from .transport import InboundMessage, Transport, local_part

logger = logging.getLogger("herald.pipeline")


class PipelineState(str, Enum):
    RECEIVED = "received"
    EXTRACTED = "extracted"
    COMPOSED = "composed"
    DISPATCHED = "dispatched"
    CONFIRMED = "confirmed"
    FAILED = "failed"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"
    NO_MENTIONS = "no_mentions"


class OutcomeStatus(str, Enum):
    CONFIRMED = "confirmed"          # delivered and confirmation posted
    DELIVERED = "delivered"          # delivered, confirmation could not be posted
    FAILED = "failed"                # delivery failed after the retry
    NOT_FOUND = "not_found"          # name did not resolve
    INVALID = "invalid"              # number token did not normalise
    DUPLICATE = "duplicate"          # target already handled for this message
    ERROR = "error"                  # unexpected exception


@dataclass
class MentionOutcome:
    kind: str                         # 'number' or 'name'
    token: str
    address: Optional[str] = None
    status: OutcomeStatus = OutcomeStatus.FAILED
    delivery: Optional[DeliveryResult] = None
    error: Optional[str] = None

    @property
    def delivered(self) -> bool:
        return self.status in (OutcomeStatus.CONFIRMED, OutcomeStatus.DELIVERED)


@dataclass
class PipelineResult:
    state: PipelineState
    message_id: Optional[str] = None
    group_name: Optional[str] = None
    outcomes: list[MentionOutcome] = field(default_factory=list)
    auto_replied: bool = False
    states: list[PipelineState] = field(default_factory=list)   # path taken, ending with state


class MentionPipeline:
    """Processes inbound messages end to end."""

    def __init__(
        self,
        store: ConversationStore,
        transport: Transport,
        composer: RelayComposer,
        dispatcher: Dispatcher,
        resolver: IdentityResolver,
        cache: MessageCache,
        processed: ProcessedIds,
        extractor: Optional[MentionExtractor] = None,
        responder=None,
    ):
        self.store = store
        self.transport = transport
        self.composer = composer
        self.dispatcher = dispatcher
        self.resolver = resolver
        self.cache = cache
        self.processed = processed
        self.extractor = extractor or RegexMentionExtractor()
        self.responder = responder

    async def handle(self, message: InboundMessage) -> PipelineResult:
        trail = [PipelineState.RECEIVED]
        if not message.id:
            logger.warning(f"Ignoring message without id from {message.chat_id}")
            return _finish(trail, PipelineState.IGNORED)
        if message.from_self:
            return _finish(trail, PipelineState.IGNORED, message_id=message.id)
        if not self.processed.add(message.id):
            logger.debug(f"Message {message.id} already processed, skipping")
            return _finish(trail, PipelineState.DUPLICATE, message_id=message.id)

        self.cache.add(message)
        await self._record(message)

        group_name = None
        if message.is_group:
            group_name = await self.refresh_group(message)

        try:
            await self.store.detect_and_set_language(message.chat_id, message.is_group, message.text)
        except Exception as e:
            logger.warning(f"Language detection failed for {message.chat_id}: {e}")

        mentions = None
        if message.is_group and message.text:
            mentions = self.extractor.extract(message.text)
        if not mentions:
            auto_replied = await self._auto_reply(message)
            return _finish(
                trail, PipelineState.NO_MENTIONS,
                message_id=message.id,
                group_name=group_name,
                auto_replied=auto_replied,
            )

        trail.append(PipelineState.EXTRACTED)
        logger.info(
            f"Message {message.id}: {len(mentions.numbers)} number(s), "
            f"{len(mentions.names)} name(s) mentioned"
        )
        payload = self.extractor.strip_mentions(message.text, mentions.numbers, mentions.names)
        relay_intent = detect_relay_intent(message.text, payload)
        sender_name = message.push_name or local_part(message.sender)
        context = _RelayContext(message, payload, relay_intent, group_name or "", sender_name, trail)

        outcomes = []
        seen: set[str] = set()
        for number in mentions.numbers:
            outcomes.append(await self._guarded("number", self._relay_number, context, number, seen))
        for name in mentions.names:
            outcomes.append(await self._guarded("name", self._relay_name, context, name, seen))

        delivered = any(o.delivered for o in outcomes)
        return _finish(
            trail, PipelineState.CONFIRMED if delivered else PipelineState.FAILED,
            message_id=message.id,
            group_name=group_name,
            outcomes=outcomes,
        )

    # ── bookkeeping ──

    async def _record(self, message: InboundMessage) -> None:
        try:
            await self.store.add_message(
                message.chat_id, message.is_group, message.to_record(), from_self=False,
            )
        except Exception as e:
            logger.error(f"Failed to record message {message.id}: {e}", exc_info=True)

    async def refresh_group(self, message: InboundMessage) -> str:
        """Refresh stored group metadata and return the group's name.

        Name order: live subject, stored subject, local part of the address.
        """
        chat_id = message.chat_id
        record = await self.store.load(chat_id, True)
        try:
            meta = await self.transport.group_metadata(chat_id)
        except Exception as e:
            logger.warning(f"Could not fetch metadata for {chat_id}: {e}")
            meta = None

        name = (meta.subject if meta else None) or record.profile.display_name or local_part(chat_id)
        if meta is None:
            return name

        patch = {}
        if meta.subject:
            patch["display_name"] = meta.subject
        if meta.description:
            patch["description"] = meta.description
        if meta.participants:
            patch["member_count"] = len(meta.participants)

        participants = {}
        for p in meta.participants:
            display_name = p.name
            if p.address == message.sender and message.push_name:
                display_name = message.push_name
            participants[p.address] = Participant(
                display_name=display_name,
                is_admin=p.is_admin,
                is_super_admin=p.is_super_admin,
            )
        try:
            await self.store.update_profile(chat_id, True, patch, {"participants": participants})
        except Exception as e:
            logger.error(f"Failed to update group {chat_id}: {e}", exc_info=True)
        return name

    async def _auto_reply(self, message: InboundMessage) -> bool:
        if self.responder is None:
            return False
        try:
            return await self.responder.respond(message)
        except Exception as e:
            logger.error(f"Auto-reply failed for {message.id}: {e}", exc_info=True)
            return False

    async def _post(self, chat_id: str, text: str) -> bool:
        """Post a notice back into the originating chat."""
        try:
            await self.transport.send_message(chat_id, {"text": text})
            return True
        except Exception as e:
            logger.warning(f"Could not post to {chat_id}: {e}")
            return False

    # ── per-mention handling ──

    async def _guarded(
        self, kind: str, handler, context: "_RelayContext", token: str, seen: set[str],
    ) -> MentionOutcome:
        try:
            return await handler(context, token, seen)
        except Exception as e:
            logger.error(f"Relay to {kind} {token} failed: {e}", exc_info=True)
            return MentionOutcome(kind=kind, token=token, status=OutcomeStatus.ERROR, error=classify_error(e))

    async def _relay_number(self, context: "_RelayContext", number: str, seen: set[str]) -> MentionOutcome:
        address = self.dispatcher.normalize_address(number)
        if address is None:
            logger.warning(f"Skipping invalid number mention: {number!r}")
            return MentionOutcome(kind="number", token=number, status=OutcomeStatus.INVALID)
        return await self._deliver(context, "number", number, address, "", seen)

    async def _relay_name(self, context: "_RelayContext", name: str, seen: set[str]) -> MentionOutcome:
        stored = await self.resolver.resolve_name_to_address(name)
        address = self.dispatcher.normalize_address(stored) if stored else None
        if address is None:
            locale = self.composer.locale_for(context.payload)
            await self._post(context.message.chat_id, locale.not_found.format(name=name))
            return MentionOutcome(kind="name", token=name, status=OutcomeStatus.NOT_FOUND)
        return await self._deliver(context, "name", name, address, name, seen)

    async def _deliver(
        self,
        context: "_RelayContext",
        kind: str,
        token: str,
        address: str,
        recipient_name: str,
        seen: set[str],
    ) -> MentionOutcome:
        if address in seen:
            logger.info(f"Skipping duplicate target {address} ({kind} {token})")
            return MentionOutcome(kind=kind, token=token, address=address, status=OutcomeStatus.DUPLICATE)
        seen.add(address)

        text = await self.composer.compose(
            context.payload,
            recipient_name=recipient_name,
            group_name=context.group_name,
            sender_name=context.sender_name,
            relay_intent=context.relay_intent,
        )
        context.reach(PipelineState.COMPOSED)
        delivery = await self.dispatcher.send(address, text)
        context.reach(PipelineState.DISPATCHED)
        if not delivery.delivered:
            return MentionOutcome(
                kind=kind, token=token, address=address,
                status=OutcomeStatus.FAILED, delivery=delivery, error=delivery.error,
            )

        locale = self.composer.locale_for(context.payload)
        template = locale.confirm_number if kind == "number" else locale.confirm_name
        confirmed = await self._post(context.message.chat_id, template.format(target=token))
        logger.info(f"Relayed {kind} {token} -> {address} (confirmed={confirmed})")
        return MentionOutcome(
            kind=kind, token=token, address=address,
            status=OutcomeStatus.CONFIRMED if confirmed else OutcomeStatus.DELIVERED,
            delivery=delivery,
        )


@dataclass
class _RelayContext:
    message: InboundMessage
    payload: str
    relay_intent: bool
    group_name: str
    sender_name: str
    trail: list[PipelineState] = field(default_factory=list)

    def reach(self, state: PipelineState) -> None:
        if state not in self.trail:
            self.trail.append(state)


def _finish(trail: list[PipelineState], state: PipelineState, **kwargs) -> PipelineResult:
    return PipelineResult(state=state, states=[*trail, state], **kwargs)
