"""
Key-value store boundary used by the registry.

Items live in logical partitions and are addressed by a string key. Every
item carries an ``expires_at`` attribute that the store's own background
reaper honours; the registry never deletes expired items itself.
"""
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import (
    Any,
    Callable,
    Dict,
    Iterator,
    List,
    Optional,
    Protocol,
    Sequence,
    runtime_checkable,
)

from motor.motor_asyncio import AsyncIOMotorCollection
from pydantic import BaseModel, Field
from pymongo import ASCENDING
from pymongo.errors import PyMongoError

from presence_registry.shared.db.exceptions import StoreError
from presence_registry.shared.utils.timeutils import ensure_utc, utc_now

logger = logging.getLogger(__name__)

PARTITION_FIELD = "pk"
KEY_FIELD = "sk"
EXPIRY_FIELD = "expires_at"
RESERVED_FIELDS = {"_id", PARTITION_FIELD, KEY_FIELD, EXPIRY_FIELD}

# Largest key set accepted by a single batch read
BATCH_GET_LIMIT = 100


class StoredItem(BaseModel):
    """A single item as returned by the store"""
    key: str
    attributes: Dict[str, Any] = Field(default_factory=dict)
    expires_at: datetime


@runtime_checkable
class KeyValueStore(Protocol):
    """Operations the registry needs from its backing store."""

    async def get_item(self, partition: str, key: str) -> Optional[StoredItem]:
        ...

    async def put_item(
        self,
        partition: str,
        key: str,
        attributes: Dict[str, Any],
        expires_at: datetime,
    ) -> None:
        ...

    async def delete_item(self, partition: str, key: str) -> None:
        ...

    async def batch_get(
        self,
        partition: str,
        keys: Sequence[str],
        projection: Optional[Sequence[str]] = None,
    ) -> Dict[str, StoredItem]:
        ...

    async def query(
        self,
        partition: str,
        projection: Optional[Sequence[str]] = None,
    ) -> Dict[str, StoredItem]:
        ...


@contextmanager
def _store_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except PyMongoError as e:
        logger.error(f"MongoDB {operation} failed: {e}")
        raise StoreError(operation, str(e)) from e


class MongoKeyValueStore:
    """KeyValueStore backed by a single MongoDB collection.

    Documents are shaped ``{pk, sk, expires_at, **attributes}``. A TTL index on
    ``expires_at`` removes expired documents; since the reaper only runs
    periodically, reads also skip documents whose expiry has already passed.
    """

    def __init__(
        self,
        collection: AsyncIOMotorCollection,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.collection = collection
        self._clock = clock

    async def ensure_indexes(self) -> None:
        """Create the key index and the TTL index the reaper relies on"""
        with _store_errors("create_index"):
            await self.collection.create_index(
                [(PARTITION_FIELD, ASCENDING), (KEY_FIELD, ASCENDING)],
                unique=True,
                name="pk_sk",
            )
            await self.collection.create_index(
                EXPIRY_FIELD,
                expireAfterSeconds=0,
                name="expires_at_ttl",
            )
        logger.info(
            f"Indexes ensured on collection {self.collection.name}"
        )

    def _live_filter(self, partition: str) -> Dict[str, Any]:
        return {
            PARTITION_FIELD: partition,
            EXPIRY_FIELD: {"$gt": self._clock()},
        }

    @staticmethod
    def _projection(projection: Optional[Sequence[str]]) -> Dict[str, int]:
        if projection is None:
            return {"_id": 0}
        fields = {"_id": 0, KEY_FIELD: 1, EXPIRY_FIELD: 1}
        for name in projection:
            fields[name] = 1
        return fields

    @staticmethod
    def _to_item(document: Dict[str, Any]) -> StoredItem:
        return StoredItem(
            key=document[KEY_FIELD],
            attributes={
                name: value for name, value in document.items()
                if name not in RESERVED_FIELDS
            },
            expires_at=ensure_utc(document[EXPIRY_FIELD]),
        )

    async def get_item(self, partition: str, key: str) -> Optional[StoredItem]:
        query = self._live_filter(partition)
        query[KEY_FIELD] = key
        with _store_errors("get_item"):
            document = await self.collection.find_one(
                query, projection=self._projection(None)
            )
        if not document:
            return None
        return self._to_item(document)

    async def put_item(
        self,
        partition: str,
        key: str,
        attributes: Dict[str, Any],
        expires_at: datetime,
    ) -> None:
        clashing = RESERVED_FIELDS.intersection(attributes)
        if clashing:
            raise ValueError(f"Reserved attribute names: {sorted(clashing)}")

        document = dict(attributes)
        document[PARTITION_FIELD] = partition
        document[KEY_FIELD] = key
        document[EXPIRY_FIELD] = ensure_utc(expires_at)

        with _store_errors("put_item"):
            await self.collection.replace_one(
                {PARTITION_FIELD: partition, KEY_FIELD: key},
                document,
                upsert=True,
            )
        logger.debug(f"Stored {partition}/{key} until {document[EXPIRY_FIELD]}")

    async def delete_item(self, partition: str, key: str) -> None:
        with _store_errors("delete_item"):
            await self.collection.delete_one(
                {PARTITION_FIELD: partition, KEY_FIELD: key}
            )
        logger.debug(f"Deleted {partition}/{key}")

    async def batch_get(
        self,
        partition: str,
        keys: Sequence[str],
        projection: Optional[Sequence[str]] = None,
    ) -> Dict[str, StoredItem]:
        if not keys:
            return {}
        if len(keys) > BATCH_GET_LIMIT:
            raise ValueError(
                f"batch_get accepts at most {BATCH_GET_LIMIT} keys, "
                f"got {len(keys)}"
            )

        query = self._live_filter(partition)
        query[KEY_FIELD] = {"$in": list(keys)}
        with _store_errors("batch_get"):
            cursor = self.collection.find(
                query, projection=self._projection(projection)
            )
            documents: List[Dict[str, Any]] = await cursor.to_list(length=None)
        return {doc[KEY_FIELD]: self._to_item(doc) for doc in documents}

    async def query(
        self,
        partition: str,
        projection: Optional[Sequence[str]] = None,
    ) -> Dict[str, StoredItem]:
        with _store_errors("query"):
            cursor = self.collection.find(
                self._live_filter(partition),
                projection=self._projection(projection),
            )
            documents: List[Dict[str, Any]] = await cursor.to_list(length=None)
        return {doc[KEY_FIELD]: self._to_item(doc) for doc in documents}
