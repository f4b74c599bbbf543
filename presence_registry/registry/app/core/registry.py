"""
Connection registry facade used by transport event handlers.
"""
import logging
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Set

from presence_registry.shared.db.exceptions import InvalidIdentifierError
from presence_registry.shared.utils.timeutils import utc_now

from .activity_ledger import LastActivityLedger
from .connection_store import ConnectionRecordStore
from .models import ConnectionRecord
from .presence_query import PresenceQueryEngine

logger = logging.getLogger(__name__)


def _require(value: Optional[str], field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidIdentifierError(field)
    return value


class ConnectionRegistry:
    """Folds connect, disconnect and activity events into presence state.

    Every operation is a read-modify-write against the store with no local
    locking, so two events racing for the same user resolve as
    last-writer-wins on the whole connection list. A stale entry left behind
    that way disappears with the record's TTL or the next event for it.
    """

    def __init__(
        self,
        connection_store: ConnectionRecordStore,
        activity_ledger: LastActivityLedger,
        presence_query: Optional[PresenceQueryEngine] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.connection_store = connection_store
        self.activity_ledger = activity_ledger
        self.presence_query = presence_query or PresenceQueryEngine(
            connection_store
        )
        self._clock = clock

    async def on_connect(
        self,
        user_id: str,
        connection_id: str,
        timestamp: Optional[datetime] = None,
    ) -> ConnectionRecord:
        """Register a newly opened connection for a user"""
        _require(user_id, "user_id")
        _require(connection_id, "connection_id")

        record = await self.connection_store.get(user_id)
        if record is None:
            record = ConnectionRecord(user_id=user_id)
        record.add_connection(connection_id, timestamp or self._clock())

        await self.connection_store.save(record)
        logger.info(
            f"User {user_id} connected via {connection_id} "
            f"({len(record.connections)} open connection(s))"
        )
        return record

    async def on_disconnect(
        self, user_id: str, connection_id: str
    ) -> Optional[ConnectionRecord]:
        """Drop a closed connection; the record is kept even when emptied"""
        _require(user_id, "user_id")
        _require(connection_id, "connection_id")

        record = await self.connection_store.get(user_id)
        if record is None:
            logger.info(
                f"Disconnect of {connection_id} for user {user_id} "
                "with no connection record, nothing to do"
            )
            return None

        if not record.remove_connection(connection_id):
            logger.debug(
                f"Connection {connection_id} was not registered for user {user_id}"
            )
        await self.connection_store.save(record)
        logger.info(
            f"User {user_id} disconnected {connection_id} "
            f"({len(record.connections)} open connection(s))"
        )
        return record

    async def on_activity(
        self,
        user_id: str,
        connection_id: str,
        timestamp: Optional[datetime] = None,
    ) -> ConnectionRecord:
        """Extend a connection's TTL window and update the user's last-seen time.

        An unknown connection is registered, since activity on it proves it is
        open. The two writes are independent and the second may fail after
        the first succeeded.
        """
        _require(user_id, "user_id")
        _require(connection_id, "connection_id")

        record = await self.connection_store.get(user_id)
        if record is None:
            record = ConnectionRecord(user_id=user_id)
        record.touch_connection(connection_id, timestamp or self._clock())

        await self.connection_store.save(record)
        await self.activity_ledger.record_activity(user_id)
        return record

    async def get(self, user_id: str) -> Optional[ConnectionRecord]:
        _require(user_id, "user_id")
        return await self.connection_store.get(user_id)

    async def delete(self, user_id: str) -> bool:
        """Remove the whole record, unlike on_disconnect"""
        _require(user_id, "user_id")
        return await self.connection_store.delete(user_id)

    async def is_online(self, user_id: str) -> bool:
        _require(user_id, "user_id")
        return await self.presence_query.is_online(user_id)

    async def bulk_is_online(self, user_ids: Iterable[str]) -> Set[str]:
        candidates: List[str] = [
            _require(user_id, "user_id") for user_id in user_ids
        ]
        return await self.presence_query.bulk_is_online(candidates)

    async def online_users(self) -> Set[str]:
        return await self.presence_query.online_users()

    async def get_last_activity(self, user_ids: Iterable[str]) -> Dict[str, datetime]:
        candidates: List[str] = [
            _require(user_id, "user_id") for user_id in user_ids
        ]
        return await self.activity_ledger.get_activity(candidates)
