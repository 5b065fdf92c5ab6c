"""Herald configuration management."""

import logging
from typing import Literal, Optional

from pydantic_settings import BaseSettings
from pydantic import Field


class HeraldSettings(BaseSettings):
    """Settings loaded from environment variables or .env file."""

    # Storage
    data_dir: str = Field(default="data", description="Directory holding inbox/ and groups/ JSON records")
    max_history: int = Field(default=100, ge=1, description="Messages kept per conversation record")
    store_save_retries: int = Field(
        default=3, ge=0,
        description="Reload-and-reapply attempts after a revision conflict",
    )

    # Logging
    log_level: str = Field(default="INFO", description="Root log level")
    log_file: Optional[str] = Field(default=None, description="Optional log file path")

    # Identity
    bot_name: str = Field(default="Herald", description="Name used in AI replies")
    transport_domain: str = Field(default="s.whatsapp.net", description="Domain for direct-chat addresses")

    # Message tracking
    message_cache_size: int = Field(default=100, ge=1, description="Recent messages kept for !reply")
    processed_ids_cap: int = Field(default=1000, ge=1, description="De-duplication set size that triggers a trim")
    processed_ids_keep: int = Field(default=500, ge=0, description="Most recent ids kept after a trim")

    # Mention relay
    resolver_match: Literal["substring", "word"] = Field(
        default="substring",
        description="Name matching policy: substring (permissive) or word",
    )
    relay_language: str = Field(
        default="bn",
        description="Language of relayed message framing, or 'auto' to follow the message",
    )
    locale_file: Optional[str] = Field(default=None, description="JSON file with extra locale templates/names")

    # LLM (OpenAI-compatible; Mistral by default)
    llm_api_key: Optional[str] = Field(default=None, description="API key for the chat completions endpoint")
    llm_base_url: str = Field(default="https://api.mistral.ai/v1", description="Chat completions base URL")
    llm_model: str = Field(default="mistral-large-latest", description="Chat model")
    llm_timeout: float = Field(default=60.0, gt=0, description="LLM request timeout in seconds")

    # Auto-reply
    ai_enabled: bool = Field(default=True, description="Use the LLM for relays and auto-replies")
    ai_history_messages: int = Field(default=10, ge=0, description="History messages sent as AI context")
    use_name_in_replies: Literal["always", "occasional", "never"] = Field(
        default="occasional",
        description="How often auto-replies address a direct contact by name",
    )
    auto_reply_enabled: bool = Field(default=True, description="Master switch for auto-replies")
    group_auto_reply: bool = Field(default=True, description="Auto-reply to group messages without mentions")
    direct_auto_reply: bool = Field(default=False, description="Auto-reply to direct messages")

    model_config = {"env_prefix": "HERALD_", "env_file": ".env", "extra": "ignore"}


def load_settings() -> HeraldSettings:
    """Load settings from environment."""
    settings = HeraldSettings()

    logger = logging.getLogger("herald.config")
    if settings.ai_enabled and not settings.llm_api_key:
        logger.warning(
            "⚠️ No HERALD_LLM_API_KEY set: relayed messages go out unpolished "
            "and auto-replies use the fallback text."
        )
    if settings.processed_ids_keep > settings.processed_ids_cap:
        logger.warning(
            f"HERALD_PROCESSED_IDS_KEEP ({settings.processed_ids_keep}) exceeds "
            f"HERALD_PROCESSED_IDS_CAP ({settings.processed_ids_cap}); trims keep everything."
        )

    return settings
