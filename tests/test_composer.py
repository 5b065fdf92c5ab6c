"""Tests for relay message composition."""

import pytest

from herald.composer import RelayComposer, strip_quotes
from herald.llm.provider import LLMRateLimitError

from conftest import FakeProvider


class TestStripQuotes:
    @pytest.mark.parametrize("raw,expected", [
        ('"I\'m on my way"', "I'm on my way"),
        ("“hello”", "hello"),
        ("  plain  ", "plain"),
        ('""', ""),
    ])
    def test_strip(self, raw, expected):
        assert strip_quotes(raw) == expected


class TestBuildPrompt:
    def test_context_lines(self):
        composer = RelayComposer()
        system, user = composer.build_prompt(
            "dinner is ready", "en", recipient_name="Karim", group_name="Family", sender_name="Alice",
        )
        assert system.role == "system"
        assert "sent to Karim" in system.content
        assert 'group chat named "Family"' in system.content
        assert "sent by Alice" in system.content
        assert "Respond in English only" in system.content
        assert "relay information" not in system.content
        assert user.content.endswith('"dinner is ready"')

    def test_relay_instructions(self):
        system, _ = RelayComposer().build_prompt("ami aschi", "bn", relay_intent=True)
        assert "relay information to someone else" in system.content
        assert "Bangla script" in system.content


class TestCompose:

    @pytest.mark.asyncio
    async def test_generic_bengali_without_provider(self):
        composer = RelayComposer(display_language="bn")
        text = await composer.compose("ami aschi", group_name="Family", sender_name="Karim", relay_intent=False)
        assert text == 'Family থেকে করিম আপনাকে বলেছে:\n\n"ami aschi"'

    @pytest.mark.asyncio
    async def test_relay_english_with_provider(self):
        provider = FakeProvider('"I\'m on my way"')
        composer = RelayComposer(provider=provider, display_language="en")
        text = await composer.compose(
            "Hey tell him I'm on my way", group_name="Family", sender_name="Alice", relay_intent=True,
        )
        assert text == 'Alice from Family asked me to pass this on to you:\n\n"I\'m on my way"'
        assert len(provider.calls) == 1

    @pytest.mark.asyncio
    async def test_missing_group_uses_fallback(self):
        text = await RelayComposer(display_language="en").compose("hi", sender_name="Alice", relay_intent=False)
        assert text.startswith("Alice from a group told you")

    @pytest.mark.asyncio
    async def test_empty_payload_becomes_greeting(self):
        text = await RelayComposer(display_language="en").compose("", group_name="G", sender_name="A")
        assert text.endswith('"Hello"')

    @pytest.mark.asyncio
    async def test_provider_failure_keeps_text(self):
        composer = RelayComposer(provider=FakeProvider(error=LLMRateLimitError("429")), display_language="en")
        text = await composer.compose("see you at 5", group_name="G", sender_name="A", relay_intent=False)
        assert text.endswith('"see you at 5"')

    @pytest.mark.asyncio
    async def test_blank_polish_keeps_text(self):
        composer = RelayComposer(provider=FakeProvider('""'), display_language="en")
        assert await composer.polish("see you at 5") == "see you at 5"

    @pytest.mark.asyncio
    async def test_intent_detected_when_not_given(self):
        text = await RelayComposer(display_language="en").compose("tell him hi", group_name="G", sender_name="A")
        assert "asked me to pass this on" in text

    @pytest.mark.asyncio
    async def test_auto_display_language(self):
        composer = RelayComposer(display_language="auto")
        english = await composer.compose("see you soon", group_name="G", sender_name="A", relay_intent=False)
        bengali = await composer.compose("আমি আসছি", group_name="G", sender_name="A", relay_intent=False)
        assert english.startswith("A from G")
        assert "থেকে" in bengali

    def test_locale_for_unknown_language(self):
        assert RelayComposer(display_language="ar").locale_for("x").language == "en"
