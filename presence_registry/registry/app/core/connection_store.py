"""
Connection record store.

Persists one ConnectionRecord per user under the ``userConnections``
partition. Each save is a full overwrite that also pushes the record's
expiry forward; once the expiry passes the store drops the record.
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

from dateutil.parser import isoparse

from presence_registry.shared.utils.timeutils import format_timestamp, utc_now

from ..db.store import BATCH_GET_LIMIT, KeyValueStore, StoredItem
from .models import ConnectionEntry, ConnectionRecord

logger = logging.getLogger(__name__)

USER_CONNECTION_PARTITION = "userConnections"
CONNECTIONS_ATTRIBUTE = "connections"
DEFAULT_CONNECTION_TTL = timedelta(minutes=30)


def _dedupe(user_ids: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(user_ids))


class ConnectionRecordStore:
    """Reads and writes per-user connection records."""

    def __init__(
        self,
        store: KeyValueStore,
        ttl: timedelta = DEFAULT_CONNECTION_TTL,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.ttl = ttl
        self._clock = clock

    @staticmethod
    def _serialize(record: ConnectionRecord) -> Dict[str, Any]:
        # An empty list is left out entirely rather than stored as []
        if not record.connections:
            return {}
        return {
            CONNECTIONS_ATTRIBUTE: [
                {
                    "id": entry.connection_id,
                    "time": format_timestamp(entry.last_active_at),
                }
                for entry in record.connections
            ]
        }

    @staticmethod
    def _deserialize(item: StoredItem) -> ConnectionRecord:
        raw = item.attributes.get(CONNECTIONS_ATTRIBUTE) or []
        return ConnectionRecord(
            user_id=item.key,
            connections=[
                ConnectionEntry(
                    connection_id=entry["id"],
                    last_active_at=isoparse(entry["time"]),
                )
                for entry in raw
            ],
        )

    def _check_batch(self, user_ids: List[str]) -> None:
        if len(user_ids) > BATCH_GET_LIMIT:
            raise ValueError(
                f"At most {BATCH_GET_LIMIT} users can be checked per request, "
                f"got {len(user_ids)}"
            )

    async def get(self, user_id: str) -> Optional[ConnectionRecord]:
        """Get a user's connection record, or None when there is none"""
        item = await self.store.get_item(USER_CONNECTION_PARTITION, user_id)
        if item is None:
            return None
        return self._deserialize(item)

    async def save(self, record: ConnectionRecord) -> bool:
        """Overwrite a user's record and recompute its expiry"""
        expires_at = record.expires_at(self._clock(), self.ttl)
        await self.store.put_item(
            USER_CONNECTION_PARTITION,
            record.user_id,
            self._serialize(record),
            expires_at,
        )
        logger.debug(
            f"Saved {len(record.connections)} connection(s) for user "
            f"{record.user_id}, expires at {expires_at.isoformat()}"
        )
        return True

    async def delete(self, user_id: str) -> bool:
        """Remove a user's record; deleting a missing record succeeds"""
        await self.store.delete_item(USER_CONNECTION_PARTITION, user_id)
        return True

    async def get_many(self, user_ids: Iterable[str]) -> Dict[str, ConnectionRecord]:
        """Batch-read the records of a bounded set of users"""
        candidates = _dedupe(user_ids)
        if not candidates:
            return {}
        self._check_batch(candidates)

        items = await self.store.batch_get(
            USER_CONNECTION_PARTITION, candidates
        )
        return {key: self._deserialize(item) for key, item in items.items()}

    async def list_online_users(
        self,
        user_ids: Optional[Iterable[str]] = None,
        connected_only: bool = False,
    ) -> Set[str]:
        """Users that currently have a record.

        Without candidates every live key in the partition is returned;
        with candidates only those are checked, in one bounded batch read.
        Records with an empty connection list are included unless
        ``connected_only`` is set.
        """
        projection = [CONNECTIONS_ATTRIBUTE] if connected_only else []

        if user_ids is None:
            items = await self.store.query(
                USER_CONNECTION_PARTITION, projection=projection
            )
        else:
            candidates = _dedupe(user_ids)
            if not candidates:
                return set()
            self._check_batch(candidates)
            items = await self.store.batch_get(
                USER_CONNECTION_PARTITION, candidates, projection=projection
            )

        if not connected_only:
            return set(items)
        return {
            key for key, item in items.items()
            if item.attributes.get(CONNECTIONS_ATTRIBUTE)
        }
