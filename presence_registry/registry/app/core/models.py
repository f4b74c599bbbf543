# presence_registry/registry/app/core/models.py
from datetime import datetime, timedelta
from typing import List, Optional

from dateutil.relativedelta import relativedelta
from pydantic import BaseModel, Field, field_validator

from presence_registry.shared.utils.timeutils import ensure_utc


class ConnectionEntry(BaseModel):
    """One open transport session (a device or browser tab) of a user"""
    connection_id: str
    last_active_at: datetime

    @field_validator("last_active_at")
    @classmethod
    def normalise_timestamp(cls, v: datetime) -> datetime:
        return ensure_utc(v)


class ConnectionRecord(BaseModel):
    """The set of live connections held by a single user.

    An empty ``connections`` list means the user just disconnected and the
    record is riding out its grace window before the store expires it.
    """
    user_id: str
    connections: List[ConnectionEntry] = Field(default_factory=list)

    @property
    def is_connected(self) -> bool:
        return len(self.connections) > 0

    @property
    def connection_ids(self) -> List[str]:
        return [entry.connection_id for entry in self.connections]

    def find_connection(self, connection_id: str) -> Optional[ConnectionEntry]:
        for entry in self.connections:
            if entry.connection_id == connection_id:
                return entry
        return None

    def add_connection(
        self, connection_id: str, last_active_at: datetime
    ) -> "ConnectionRecord":
        """Append a connection, replacing any entry with the same id"""
        self.connections = [
            entry for entry in self.connections
            if entry.connection_id != connection_id
        ]
        self.connections.append(
            ConnectionEntry(
                connection_id=connection_id, last_active_at=last_active_at
            )
        )
        return self

    def touch_connection(
        self, connection_id: str, last_active_at: datetime
    ) -> "ConnectionRecord":
        """Refresh a connection's activity time in place, appending it if unknown"""
        entry = self.find_connection(connection_id)
        if entry is None:
            return self.add_connection(connection_id, last_active_at)
        entry.last_active_at = ensure_utc(last_active_at)
        return self

    def remove_connection(self, connection_id: str) -> bool:
        """Drop a connection; returns False when it was not present"""
        remaining = [
            entry for entry in self.connections
            if entry.connection_id != connection_id
        ]
        removed = len(remaining) != len(self.connections)
        self.connections = remaining
        return removed

    def expires_at(self, now: datetime, ttl: timedelta) -> datetime:
        """Expiry derived from the most recent activity, never earlier than now"""
        latest = ensure_utc(now)
        for entry in self.connections:
            if entry.last_active_at > latest:
                latest = entry.last_active_at
        return latest + ttl


class LastActivitySeen(BaseModel):
    """Long-lived record of when a user was last observed active"""
    user_id: str
    seen_at: datetime

    @field_validator("seen_at")
    @classmethod
    def normalise_timestamp(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    def expires_at(self, retention_months: int) -> datetime:
        return self.seen_at + relativedelta(months=retention_months)
