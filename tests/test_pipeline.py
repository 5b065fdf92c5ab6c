"""End-to-end tests for the mention pipeline."""

import pytest

from herald.cache import MessageCache, ProcessedIds
from herald.composer import RelayComposer
from herald.dispatcher import Dispatcher
from herald.llm.provider import LLMRateLimitError
from herald.pipeline import MentionPipeline, OutcomeStatus, PipelineState
from herald.resolver import IdentityResolver
from herald.responder import AutoResponder
from herald.transport import GroupMetadata, GroupParticipant, InboundMessage

from conftest import ALICE, BOB, GROUP, FakeProvider, FakeTransport, make_event

NUMBER_TARGET = "1234567890@s.whatsapp.net"


def build_pipeline(store, transport, provider=None, responder=None, language="en"):
    return MentionPipeline(
        store=store,
        transport=transport,
        composer=RelayComposer(provider=provider, display_language=language),
        dispatcher=Dispatcher(transport),
        resolver=IdentityResolver(store),
        cache=MessageCache(100),
        processed=ProcessedIds(),
        responder=responder,
    )


def incoming(text, **kwargs) -> InboundMessage:
    return InboundMessage.from_event(make_event(text, **kwargs))


@pytest.fixture
def family_transport():
    return FakeTransport(metadata={
        GROUP: GroupMetadata(
            subject="Family",
            participants=[
                GroupParticipant(address=ALICE),
                GroupParticipant(address=BOB, is_admin=True, name="Bob"),
            ],
        ),
    })


class TestRelayByNumber:

    @pytest.mark.asyncio
    async def test_relay_and_confirm(self, store, family_transport):
        provider = FakeProvider("I'm on my way")
        pipeline = build_pipeline(store, family_transport, provider)

        result = await pipeline.handle(incoming("Hey @1234567890 tell him I'm on my way"))

        assert result.state == PipelineState.CONFIRMED
        assert result.group_name == "Family"
        [outcome] = result.outcomes
        assert outcome.status == OutcomeStatus.CONFIRMED
        assert outcome.address == NUMBER_TARGET
        assert family_transport.texts_to(NUMBER_TARGET) == [
            'Alice from Family asked me to pass this on to you:\n\n"I\'m on my way"'
        ]
        assert family_transport.texts_to(GROUP) == ["✅ Message sent: your message reached 1234567890"]

        # the LLM saw the payload without the mention
        user_turn = provider.calls[0][-1].content
        assert "Hey tell him I'm on my way" in user_turn
        assert "@" not in user_turn

    @pytest.mark.asyncio
    async def test_llm_failure_relays_payload(self, store, family_transport):
        pipeline = build_pipeline(store, family_transport, FakeProvider(error=LLMRateLimitError("429")))
        await pipeline.handle(incoming("@1234567890 see you at 5"))
        assert family_transport.texts_to(NUMBER_TARGET) == ['Alice from Family told you:\n\n"see you at 5"']

    @pytest.mark.asyncio
    async def test_duplicate_targets_sent_once(self, store, family_transport):
        pipeline = build_pipeline(store, family_transport)
        result = await pipeline.handle(incoming("@1234567890 @+1234567890 hello"))
        assert [o.status for o in result.outcomes] == [OutcomeStatus.CONFIRMED, OutcomeStatus.DUPLICATE]
        assert len(family_transport.texts_to(NUMBER_TARGET)) == 1

    @pytest.mark.asyncio
    async def test_one_failure_does_not_block_others(self, store, family_transport):
        family_transport.fail_addresses.add("111@s.whatsapp.net")
        pipeline = build_pipeline(store, family_transport)
        result = await pipeline.handle(incoming("@111 and @222 tell them dinner is ready"))
        statuses = {o.token: o.status for o in result.outcomes}
        assert statuses == {"111": OutcomeStatus.FAILED, "222": OutcomeStatus.CONFIRMED}
        assert result.state == PipelineState.CONFIRMED
        assert family_transport.texts_to(GROUP) == ["✅ Message sent: your message reached 222"]

    @pytest.mark.asyncio
    async def test_all_failed(self, store, family_transport):
        family_transport.fail_addresses.add(NUMBER_TARGET)
        result = await build_pipeline(store, family_transport).handle(incoming("@1234567890 hi"))
        assert result.state == PipelineState.FAILED
        assert family_transport.texts_to(GROUP) == []

    @pytest.mark.asyncio
    async def test_unconfirmed_delivery(self, store, family_transport):
        family_transport.fail_addresses.add(GROUP)
        result = await build_pipeline(store, family_transport).handle(incoming("@1234567890 hi"))
        assert result.outcomes[0].status == OutcomeStatus.DELIVERED
        assert result.state == PipelineState.CONFIRMED

    @pytest.mark.asyncio
    async def test_bengali_framing(self, store, family_transport):
        pipeline = build_pipeline(store, family_transport, language="bn")
        await pipeline.handle(incoming("@1234567890 ami aschi"))
        [relay] = family_transport.texts_to(NUMBER_TARGET)
        assert relay.startswith("Family থেকে Alice")
        assert "নম্বরে" in family_transport.texts_to(GROUP)[0]


class TestRelayByName:

    @pytest.mark.asyncio
    async def test_direct_contact(self, store, family_transport):
        await store.update_profile(BOB, False, {"display_name": "Karim"})
        pipeline = build_pipeline(store, family_transport)
        result = await pipeline.handle(incoming("@Karim tell him dinner is ready"))
        assert result.outcomes[0].status == OutcomeStatus.CONFIRMED
        assert result.outcomes[0].address == BOB
        assert family_transport.texts_to(BOB)[0].endswith('"tell him dinner is ready"')
        assert family_transport.texts_to(GROUP) == ["✅ Message sent: your message reached Karim"]

    @pytest.mark.asyncio
    async def test_name_learned_from_group_roster(self, store, family_transport):
        pipeline = build_pipeline(store, family_transport)
        result = await pipeline.handle(incoming("@Bob call me"))
        assert result.outcomes[0].address == BOB

    @pytest.mark.asyncio
    async def test_not_found_notice(self, store, family_transport):
        pipeline = build_pipeline(store, family_transport)
        result = await pipeline.handle(incoming("@Zara please call"))
        assert result.state == PipelineState.FAILED
        assert result.outcomes[0].status == OutcomeStatus.NOT_FOUND
        [notice] = family_transport.texts_to(GROUP)
        assert notice.startswith("I couldn't find a phone number for Zara")

    @pytest.mark.asyncio
    async def test_corrupt_contact_file_still_gives_notice(self, store, backend, family_transport):
        backend.inbox_dir.mkdir(parents=True)
        (backend.inbox_dir / "junk.json").write_bytes(b"\xff\xfe garbage")
        result = await build_pipeline(store, family_transport).handle(incoming("@Zara call me"))
        assert result.outcomes[0].status == OutcomeStatus.NOT_FOUND
        [notice] = family_transport.texts_to(GROUP)
        assert notice.startswith("I couldn't find a phone number for Zara")

    @pytest.mark.asyncio
    async def test_bengali_digits_are_not_a_number(self, store, family_transport):
        result = await build_pipeline(store, family_transport).handle(incoming("@০১৭১১ call me"))
        [outcome] = result.outcomes
        assert outcome.kind == "name"
        assert outcome.status == OutcomeStatus.NOT_FOUND
        assert len(family_transport.texts_to(GROUP)) == 1

    @pytest.mark.asyncio
    async def test_number_and_name_for_same_person(self, store, family_transport):
        await store.update_profile(BOB, False, {"display_name": "Karim"})
        pipeline = build_pipeline(store, family_transport)
        result = await pipeline.handle(incoming("@8801722222222 @Karim hi"))
        assert [o.status for o in result.outcomes] == [OutcomeStatus.CONFIRMED, OutcomeStatus.DUPLICATE]
        assert len(family_transport.texts_to(BOB)) == 1


class TestBookkeeping:

    @pytest.mark.asyncio
    async def test_duplicate_message(self, store, family_transport):
        pipeline = build_pipeline(store, family_transport)
        await pipeline.handle(incoming("@1234567890 hi"))
        sent = len(family_transport.sent)
        again = await pipeline.handle(incoming("@1234567890 hi"))
        assert again.state == PipelineState.DUPLICATE
        assert len(family_transport.sent) == sent

    @pytest.mark.asyncio
    async def test_own_and_idless_messages_ignored(self, store, family_transport):
        pipeline = build_pipeline(store, family_transport)
        assert (await pipeline.handle(incoming("@123 hi", from_me=True))).state == PipelineState.IGNORED
        idless = incoming("@123 hi")
        idless.id = None
        assert (await pipeline.handle(idless)).state == PipelineState.IGNORED
        assert family_transport.sent == []

    @pytest.mark.asyncio
    async def test_message_recorded_and_cached(self, store, family_transport):
        pipeline = build_pipeline(store, family_transport)
        await pipeline.handle(incoming("good morning everyone"))
        record = await store.load(GROUP, True)
        assert [m.id for m in record.history] == ["MSG1"]
        assert record.preferences.language == "en"
        assert "MSG1" in pipeline.cache

    @pytest.mark.asyncio
    async def test_group_metadata_refreshed(self, store, family_transport):
        await build_pipeline(store, family_transport).handle(incoming("hello"))
        record = await store.load(GROUP, True)
        assert record.profile.display_name == "Family"
        assert record.profile.member_count == 2
        assert record.participants[ALICE].display_name == "Alice"
        assert record.participants[ALICE].message_count == 1
        assert record.participants[BOB].is_admin

    @pytest.mark.asyncio
    async def test_metadata_failure_falls_back_to_address(self, store, transport):
        transport.metadata_error = ConnectionError("offline")
        result = await build_pipeline(store, transport).handle(incoming("@1234567890 hi"))
        assert result.group_name == "120363041234567890"
        assert result.state == PipelineState.CONFIRMED

    @pytest.mark.asyncio
    async def test_stored_name_used_when_subject_missing(self, store, transport):
        await store.update_profile(GROUP, True, {"display_name": "Old Name"})
        result = await build_pipeline(store, transport).handle(incoming("hi"))
        assert result.group_name == "Old Name"


class TestNoMentions:

    @pytest.mark.asyncio
    async def test_group_auto_reply(self, store, family_transport):
        responder = AutoResponder(store, family_transport, provider=None)
        pipeline = build_pipeline(store, family_transport, responder=responder)
        result = await pipeline.handle(incoming("good morning all"))
        assert result.state == PipelineState.NO_MENTIONS
        assert result.auto_replied
        assert family_transport.texts_to(GROUP) == ["Wait for me, Alice"]

    @pytest.mark.asyncio
    async def test_direct_messages_skip_extraction(self, store, transport):
        responder = AutoResponder(store, transport, provider=None)
        pipeline = build_pipeline(store, transport, responder=responder)
        result = await pipeline.handle(incoming("@1234567890 hi", chat=ALICE))
        assert result.state == PipelineState.NO_MENTIONS
        assert not result.auto_replied
        assert transport.sent == []

    @pytest.mark.asyncio
    async def test_without_responder(self, store, family_transport):
        result = await build_pipeline(store, family_transport).handle(incoming("nothing to see"))
        assert result.state == PipelineState.NO_MENTIONS
        assert not result.auto_replied


class TestStateTrail:

    @pytest.mark.asyncio
    async def test_relay_walks_every_state(self, store, family_transport):
        result = await build_pipeline(store, family_transport).handle(incoming("@1234567890 hi"))
        assert result.states == [
            PipelineState.RECEIVED,
            PipelineState.EXTRACTED,
            PipelineState.COMPOSED,
            PipelineState.DISPATCHED,
            PipelineState.CONFIRMED,
        ]

    @pytest.mark.asyncio
    async def test_states_not_repeated_per_mention(self, store, family_transport):
        result = await build_pipeline(store, family_transport).handle(incoming("@111 and @222 hi"))
        assert result.states.count(PipelineState.DISPATCHED) == 1
        assert result.states[-1] == PipelineState.CONFIRMED

    @pytest.mark.asyncio
    async def test_failed_delivery_still_dispatched(self, store, family_transport):
        family_transport.fail_addresses.add(NUMBER_TARGET)
        result = await build_pipeline(store, family_transport).handle(incoming("@1234567890 hi"))
        assert result.states[-2:] == [PipelineState.DISPATCHED, PipelineState.FAILED]

    @pytest.mark.asyncio
    async def test_unresolved_name_never_composed(self, store, family_transport):
        result = await build_pipeline(store, family_transport).handle(incoming("@Zara call me"))
        assert result.states == [PipelineState.RECEIVED, PipelineState.EXTRACTED, PipelineState.FAILED]

    @pytest.mark.asyncio
    async def test_early_exits(self, store, family_transport):
        pipeline = build_pipeline(store, family_transport)
        assert (await pipeline.handle(incoming("hello"))).states == [
            PipelineState.RECEIVED, PipelineState.NO_MENTIONS,
        ]
        assert (await pipeline.handle(incoming("hello"))).states == [
            PipelineState.RECEIVED, PipelineState.DUPLICATE,
        ]
        own = await pipeline.handle(incoming("hi", from_me=True, msg_id="OWN1"))
        assert own.states == [PipelineState.RECEIVED, PipelineState.IGNORED]
