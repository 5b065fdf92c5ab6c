"""OpenAI-compatible provider (Mistral, OpenAI, Groq, Together, etc.)."""

import asyncio
import logging
from typing import Optional

import httpx

from .provider import (
    LLMProvider,
    ChatMessage,
    ChatResponse,
    LLMAuthError,
    LLMBadRequestError,
    LLMEmptyResponseError,
    LLMRateLimitError,
)

logger = logging.getLogger("herald.llm.openai")

MISTRAL_BASE_URL = "https://api.mistral.ai/v1"


def _merge_consecutive(messages: list[dict]) -> list[dict]:
    """Merge consecutive same-role messages (some endpoints reject them)."""
    if not messages:
        return messages
    result = [messages[0]]
    for msg in messages[1:]:
        prev = result[-1]
        if msg["role"] == prev["role"] and msg["role"] in ("user", "system"):
            prev_content = prev.get("content", "") or ""
            msg_content = msg.get("content", "") or ""
            prev["content"] = (prev_content + "\n" + msg_content).strip()
        else:
            result.append(msg)
    return result


class OpenAIProvider(LLMProvider):
    """OpenAI-compatible chat completions provider.

    Works with any OpenAI-compatible endpoint:
    - Mistral: https://api.mistral.ai/v1 (default)
    - OpenAI:  https://api.openai.com/v1
    - Groq:    https://api.groq.com/openai/v1
    """

    def __init__(
        self,
        api_key: str,
        chat_model: str = "mistral-large-latest",
        base_url: str = MISTRAL_BASE_URL,
        provider_name: str = "mistral",
        timeout: float = 60.0,
    ):
        self.api_key = api_key
        self.chat_model = chat_model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._provider_name = provider_name

    @property
    def name(self) -> str:
        return self._provider_name

    def _get_headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    def _format_messages(self, messages: list[ChatMessage]) -> list[dict]:
        formatted = [{"role": m.role, "content": m.content} for m in messages]
        return _merge_consecutive(formatted)

    async def chat(
        self,
        messages: list[ChatMessage],
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
    ) -> ChatResponse:
        model = model or self.chat_model

        body: dict = {
            "model": model,
            "messages": self._format_messages(messages),
            "temperature": temperature,
        }
        if max_tokens and max_tokens > 0:
            body["max_tokens"] = max_tokens

        logger.debug(f"Request: model={model}, messages={len(messages)}")

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            for attempt in range(2):
                try:
                    resp = await client.post(
                        f"{self.base_url}/chat/completions",
                        json=body,
                        headers=self._get_headers(),
                    )
                except httpx.ReadTimeout:
                    if attempt < 1:
                        logger.warning(f"{self.name} read timeout, retrying (attempt 1/2)")
                        await asyncio.sleep(1)
                        continue
                    raise

                if 500 <= resp.status_code < 600 and attempt < 1:
                    logger.warning(
                        f"{self.name} {resp.status_code}, retrying in 1s "
                        f"(attempt {attempt + 1}/2): {resp.text[:200]}"
                    )
                    await asyncio.sleep(1)
                    continue

                if resp.status_code == 429:
                    logger.error(f"Rate limited (429): {resp.text[:200]}")
                    raise LLMRateLimitError(f"{self.name} rate limited: {resp.text[:200]}")
                if resp.status_code in (401, 403):
                    raise LLMAuthError(f"{self.name} auth failed ({resp.status_code})")
                if resp.status_code == 400:
                    raise LLMBadRequestError(f"{self.name} bad request: {resp.text[:200]}")
                resp.raise_for_status()
                data = resp.json()
                break

        choices = data.get("choices") or []
        content = ""
        if choices:
            content = (choices[0].get("message") or {}).get("content") or ""
        if not content.strip():
            raise LLMEmptyResponseError(f"{self.name} returned no content")

        usage = data.get("usage") or {}
        logger.debug(f"Response: {content[:100]}{'...' if len(content) > 100 else ''}")

        return ChatResponse(
            content=content,
            model=data.get("model", model),
            input_tokens=usage.get("prompt_tokens", 0),
            output_tokens=usage.get("completion_tokens", 0),
        )
