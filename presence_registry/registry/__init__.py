"""
Presence Registry Service

Tracks the live connections of each user, derives online status from them
and keeps a long-lived last-seen ledger.
"""

from .app.core.activity_ledger import LastActivityLedger
from .app.core.connection_store import ConnectionRecordStore
from .app.core.models import ConnectionEntry, ConnectionRecord, LastActivitySeen
from .app.core.presence_query import PresenceQueryEngine, chunked
from .app.core.registry import ConnectionRegistry

__all__ = [
    "ConnectionEntry",
    "ConnectionRecord",
    "ConnectionRecordStore",
    "ConnectionRegistry",
    "LastActivityLedger",
    "LastActivitySeen",
    "PresenceQueryEngine",
    "chunked",
]
