"""
Presence queries.

A user is online when a live connection record exists for them and that
record still lists at least one connection. A record whose connection list
is empty only marks the grace window after a disconnect and reads as offline.
"""
import logging
from typing import Iterable, Iterator, List, Sequence, Set

from ..db.store import BATCH_GET_LIMIT
from .connection_store import ConnectionRecordStore

logger = logging.getLogger(__name__)


def chunked(user_ids: Sequence[str], size: int = BATCH_GET_LIMIT) -> Iterator[List[str]]:
    """Split a candidate list into store-sized batches"""
    if size < 1:
        raise ValueError("size must be positive")
    unique = list(dict.fromkeys(user_ids))
    for start in range(0, len(unique), size):
        yield unique[start:start + size]


class PresenceQueryEngine:
    """Answers online/offline questions from the connection record store."""

    def __init__(self, connection_store: ConnectionRecordStore):
        self.connection_store = connection_store

    async def is_online(self, user_id: str) -> bool:
        record = await self.connection_store.get(user_id)
        return record is not None and record.is_connected

    async def bulk_is_online(self, user_ids: Iterable[str]) -> Set[str]:
        """Online users among a bounded candidate set.

        Callers split larger inputs with ``chunked`` first.
        """
        records = await self.connection_store.get_many(user_ids)
        return {
            user_id for user_id, record in records.items()
            if record.is_connected
        }

    async def online_users(self) -> Set[str]:
        """Every user currently online"""
        return await self.connection_store.list_online_users(
            connected_only=True
        )
