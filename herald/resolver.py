"""Name-to-address resolution over stored conversation records."""

import logging
from typing import Optional

from .conversation_store import ConversationStore

logger = logging.getLogger("herald.resolver")

MATCH_SUBSTRING = "substring"
MATCH_WORD = "word"


def normalize_name(name: str) -> str:
    return " ".join(name.replace("_", " ").lower().split())


def names_match(candidate: str, query: str, mode: str = MATCH_SUBSTRING) -> bool:
    """Equal, or one contains the other.

    In ``word`` mode containment must fall on word boundaries, so "sam" no
    longer matches "samantha".
    """
    if not candidate or not query:
        return False
    if candidate == query:
        return True
    if mode == MATCH_WORD:
        padded_c, padded_q = f" {candidate} ", f" {query} "
        return padded_q in padded_c or padded_c in padded_q
    return query in candidate or candidate in query


class IdentityResolver:
    """Resolves a mentioned name to a stored contact address.

    Direct contacts are searched before group rosters; the first match in
    storage-key order wins.
    """

    def __init__(self, store: ConversationStore, match: str = MATCH_SUBSTRING):
        self.store = store
        self.match = match

    async def resolve_name_to_address(self, name: str) -> Optional[str]:
        query = normalize_name(name or "")
        if not query:
            return None

        for record in await self.store.list_records(is_group=False):
            stored = normalize_name(record.profile.display_name or "")
            if names_match(stored, query, self.match):
                logger.info(f"Resolved '{name}' to {record.entity_id} (direct)")
                return record.entity_id

        for record in await self.store.list_records(is_group=True):
            for address, participant in record.participants.items():
                stored = normalize_name(participant.display_name or "")
                if names_match(stored, query, self.match):
                    logger.info(f"Resolved '{name}' to {address} (group {record.entity_id})")
                    return address

        logger.info(f"No address found for '{name}'")
        return None
