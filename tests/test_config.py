"""Tests for settings loading."""

import logging
import os

import pytest
from pydantic import ValidationError

from herald.config import HeraldSettings, load_settings


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    # keep a developer's .env and HERALD_* variables out of the tests
    monkeypatch.chdir(tmp_path)
    for key in list(os.environ):
        if key.startswith("HERALD_"):
            monkeypatch.delenv(key)


class TestHeraldSettings:
    def test_defaults(self):
        s = HeraldSettings()
        assert s.data_dir == "data"
        assert s.max_history == 100
        assert s.message_cache_size == 100
        assert s.processed_ids_cap == 1000
        assert s.processed_ids_keep == 500
        assert s.resolver_match == "substring"
        assert s.relay_language == "bn"
        assert s.llm_api_key is None
        assert s.group_auto_reply is True
        assert s.direct_auto_reply is False
        assert s.use_name_in_replies == "occasional"

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("HERALD_MAX_HISTORY", "20")
        monkeypatch.setenv("HERALD_RESOLVER_MATCH", "word")
        monkeypatch.setenv("HERALD_DIRECT_AUTO_REPLY", "true")
        s = HeraldSettings()
        assert s.max_history == 20
        assert s.resolver_match == "word"
        assert s.direct_auto_reply is True

    def test_dotenv_file(self, tmp_path):
        (tmp_path / ".env").write_text("HERALD_BOT_NAME=Courier\nUNRELATED=1\n", encoding="utf-8")
        assert HeraldSettings().bot_name == "Courier"

    def test_invalid_values_rejected(self, monkeypatch):
        monkeypatch.setenv("HERALD_RESOLVER_MATCH", "fuzzy")
        with pytest.raises(ValidationError):
            HeraldSettings()

    def test_cache_size_must_be_positive(self, monkeypatch):
        monkeypatch.setenv("HERALD_MESSAGE_CACHE_SIZE", "0")
        with pytest.raises(ValidationError):
            HeraldSettings()


class TestLoadSettings:
    def test_warns_without_api_key(self, caplog):
        with caplog.at_level(logging.WARNING, logger="herald.config"):
            load_settings()
        assert "HERALD_LLM_API_KEY" in caplog.text

    def test_quiet_with_api_key(self, monkeypatch, caplog):
        monkeypatch.setenv("HERALD_LLM_API_KEY", "k")
        with caplog.at_level(logging.WARNING, logger="herald.config"):
            load_settings()
        assert caplog.text == ""

    def test_warns_when_keep_exceeds_cap(self, monkeypatch, caplog):
        monkeypatch.setenv("HERALD_LLM_API_KEY", "k")
        monkeypatch.setenv("HERALD_PROCESSED_IDS_CAP", "10")
        monkeypatch.setenv("HERALD_PROCESSED_IDS_KEEP", "20")
        with caplog.at_level(logging.WARNING, logger="herald.config"):
            load_settings()
        assert "HERALD_PROCESSED_IDS_KEEP" in caplog.text
