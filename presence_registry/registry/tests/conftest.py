"""
Shared fixtures for the presence registry tests.

The registry talks to its backing store only through the KeyValueStore
protocol, so most tests run against the in-memory implementation below.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pytest
from jose import jwt

from presence_registry.registry.app.core.activity_ledger import LastActivityLedger
from presence_registry.registry.app.core.config import Settings
from presence_registry.registry.app.core.connection_store import (
    ConnectionRecordStore,
)
from presence_registry.registry.app.core.registry import ConnectionRegistry
from presence_registry.registry.app.db.store import StoredItem
from presence_registry.shared.db.exceptions import StoreError

TEST_SECRET = "test-secret-key-that-is-long-enough-for-hs256"
START_TIME = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that only moves when told to"""

    def __init__(self, now: datetime = START_TIME):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class InMemoryKeyValueStore:
    """KeyValueStore keeping items in a dict and honouring expiry on read"""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.items: Dict[Tuple[str, str], Tuple[Dict[str, Any], datetime]] = {}
        self.calls: List[str] = []
        self.failing: set = set()

    def _check(self, operation: str) -> None:
        self.calls.append(operation)
        if operation in self.failing:
            raise StoreError(operation, "simulated outage")

    def _live(self, partition: str, key: str) -> Optional[StoredItem]:
        entry = self.items.get((partition, key))
        if entry is None:
            return None
        attributes, expires_at = entry
        if expires_at <= self.clock():
            del self.items[(partition, key)]
            return None
        return StoredItem(key=key, attributes=dict(attributes), expires_at=expires_at)

    @staticmethod
    def _project(item: StoredItem, projection: Optional[Sequence[str]]) -> StoredItem:
        if projection is None:
            return item
        return StoredItem(
            key=item.key,
            attributes={k: v for k, v in item.attributes.items() if k in projection},
            expires_at=item.expires_at,
        )

    async def get_item(self, partition: str, key: str) -> Optional[StoredItem]:
        self._check("get_item")
        return self._live(partition, key)

    async def put_item(
        self,
        partition: str,
        key: str,
        attributes: Dict[str, Any],
        expires_at: datetime,
    ) -> None:
        self._check("put_item")
        self.items[(partition, key)] = (dict(attributes), expires_at)

    async def delete_item(self, partition: str, key: str) -> None:
        self._check("delete_item")
        self.items.pop((partition, key), None)

    async def batch_get(
        self,
        partition: str,
        keys: Sequence[str],
        projection: Optional[Sequence[str]] = None,
    ) -> Dict[str, StoredItem]:
        self._check("batch_get")
        result = {}
        for key in keys:
            item = self._live(partition, key)
            if item is not None:
                result[key] = self._project(item, projection)
        return result

    async def query(
        self,
        partition: str,
        projection: Optional[Sequence[str]] = None,
    ) -> Dict[str, StoredItem]:
        self._check("query")
        result = {}
        for item_partition, key in list(self.items):
            if item_partition != partition:
                continue
            item = self._live(partition, key)
            if item is not None:
                result[key] = self._project(item, projection)
        return result

    def raw(self, partition: str, key: str) -> Optional[Dict[str, Any]]:
        entry = self.items.get((partition, key))
        return entry[0] if entry else None

    def expiry(self, partition: str, key: str) -> Optional[datetime]:
        entry = self.items.get((partition, key))
        return entry[1] if entry else None


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock) -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore(clock)


@pytest.fixture
def connection_store(store, clock) -> ConnectionRecordStore:
    return ConnectionRecordStore(store, clock=clock)


@pytest.fixture
def ledger(store, clock) -> LastActivityLedger:
    return LastActivityLedger(store, clock=clock)


@pytest.fixture
def registry(connection_store, ledger, clock) -> ConnectionRegistry:
    return ConnectionRegistry(connection_store, ledger, clock=clock)


@pytest.fixture
def settings() -> Settings:
    return Settings(JWT_SECRET_KEY=TEST_SECRET, _env_file=None)


def make_token(user_id: Optional[str], claim: str = "sub", secret: str = TEST_SECRET) -> str:
    payload = {"exp": datetime.now(timezone.utc) + timedelta(minutes=5)}
    if user_id is not None:
        payload[claim] = user_id
    return jwt.encode(payload, secret, algorithm="HS256")
