"""Direct-message delivery to mention targets."""

import logging
import re
from dataclasses import dataclass
from typing import Any, Optional

from .mentions import INVISIBLE_CHARS
from .transport import Transport, local_part

logger = logging.getLogger("herald.dispatcher")

DEFAULT_DOMAIN = "s.whatsapp.net"

_INVISIBLE_RE = re.compile(rf"[{INVISIBLE_CHARS}\u2800]")
_NOT_NUMBER_RE = re.compile(r"[^0-9+]")


def normalize_address(number_like: Optional[str], domain: str = DEFAULT_DOMAIN) -> Optional[str]:
    """Turn a phone-number-like token into ``<digits>@<domain>``.

    Accepts ``@8801711...``, ``+880 17-11...`` and full addresses; returns
    None when no digits remain.
    """
    if not number_like:
        return None
    value = str(number_like).strip()
    if value.startswith("@"):
        value = value[1:]
    if "@" in value:
        value = local_part(value)
    value = _INVISIBLE_RE.sub("", value)
    value = _NOT_NUMBER_RE.sub("", value)
    if not value.startswith("+"):
        value = "+" + value
    value = value[1:]
    if not value.isdigit() or not value.isascii():
        return None
    return f"{value}@{domain}"


def message_id_of(result: Any) -> Optional[str]:
    if isinstance(result, dict):
        return (result.get("key") or {}).get("id")
    key = getattr(result, "key", None)
    if isinstance(key, dict):
        return key.get("id")
    return getattr(key, "id", None)


@dataclass
class DeliveryResult:
    delivered: bool
    address: Optional[str]
    message_id: Optional[str] = None
    error: Optional[str] = None
    attempts: int = 0


class Dispatcher:
    """Sends relayed messages, retrying once through a plain fallback send."""

    def __init__(self, transport: Transport, domain: str = DEFAULT_DOMAIN):
        self.transport = transport
        self.domain = domain

    def normalize_address(self, number_like: Optional[str]) -> Optional[str]:
        return normalize_address(number_like, self.domain)

    async def send(
        self, address: str, text: str, options: Optional[dict[str, Any]] = None,
    ) -> DeliveryResult:
        """Deliver ``text``; never raises."""
        target = self.normalize_address(address)
        if not target:
            logger.error(f"Cannot send to invalid address: {address!r}")
            return DeliveryResult(delivered=False, address=None, error="invalid address")
        if not text:
            return DeliveryResult(delivered=False, address=target, error="empty message")

        logger.info(f"Sending to {target}: {text[:50]}{'...' if len(text) > 50 else ''}")
        try:
            result = await self.transport.send_message(target, {"text": text}, options)
            return DeliveryResult(delivered=True, address=target, message_id=message_id_of(result), attempts=1)
        except Exception as e:
            logger.warning(f"Send to {target} failed ({e}), trying fallback")

        retry_target = self.normalize_address(address)
        try:
            result = await self.transport.send_message(retry_target, {"text": text})
            logger.info(f"Fallback send to {retry_target} succeeded")
            return DeliveryResult(delivered=True, address=retry_target, message_id=message_id_of(result), attempts=2)
        except Exception as e:
            logger.error(f"Fallback send to {retry_target} failed: {e}")
            return DeliveryResult(delivered=False, address=retry_target, error=str(e) or type(e).__name__, attempts=2)
