"""Herald exception hierarchy and user-facing error classification."""

import asyncio
import json

import httpx
from pydantic import ValidationError

from .llm.provider import LLMRateLimitError, LLMAuthError, LLMBadRequestError, LLMEmptyResponseError


class HeraldError(Exception):
    """Base class for all Herald errors."""
    pass

class TransportError(HeraldError):
    """The messaging transport rejected or failed a call."""
    pass

class MissingMessageIdError(HeraldError, ValueError):
    """A message without a transport-assigned identifier."""
    pass

class RevisionConflictError(HeraldError):
    """A checked save found a newer revision on disk."""

    def __init__(self, entity_id: str, expected: int, found: int):
        super().__init__(
            f"Revision conflict for {entity_id}: expected {expected}, found {found}"
        )
        self.entity_id = entity_id
        self.expected = expected
        self.found = found


def classify_error(e: Exception) -> str:
    """Classify any exception into a short message for the control channel."""
    if isinstance(e, LLMRateLimitError):
        return "Rate limited by the AI provider. Please wait a moment and try again."
    if isinstance(e, LLMAuthError):
        return "AI provider authentication failed. Check HERALD_LLM_API_KEY."
    if isinstance(e, LLMBadRequestError):
        return "AI provider rejected the request."
    if isinstance(e, LLMEmptyResponseError):
        return "AI provider returned an empty response. Please try again."

    if isinstance(e, MissingMessageIdError):
        return "Message has no ID and cannot be tracked."
    if isinstance(e, RevisionConflictError):
        return "Conversation record changed concurrently. Please retry."
    if isinstance(e, TransportError):
        return f"Transport error: {e}"

    if isinstance(e, httpx.HTTPStatusError):
        code = e.response.status_code
        if 500 <= code < 600:
            return "AI provider is having server issues. Please try again later."
        return f"AI provider returned HTTP {code}. Please try again later."
    if isinstance(e, httpx.ConnectError):
        return "Cannot connect to the AI provider. Please check connectivity."
    if isinstance(e, (httpx.ReadTimeout, httpx.WriteTimeout, httpx.PoolTimeout, httpx.ConnectTimeout)):
        return "Request timed out. Please try again."
    if isinstance(e, asyncio.TimeoutError):
        return "Request timed out. Please try again."

    if isinstance(e, (json.JSONDecodeError, ValidationError)):
        return "Stored data could not be read."

    type_name = type(e).__name__
    return f"Something went wrong ({type_name}). Check logs for details."
