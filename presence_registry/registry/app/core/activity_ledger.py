"""
Last-activity ledger.

Keeps a single last-seen timestamp per user under the ``lastActivity``
partition. Entries are only ever overwritten; they disappear when their
retention horizon (six months by default) passes.
"""
import logging
from datetime import datetime
from typing import Callable, Dict, Iterable, List

from dateutil.parser import isoparse

from presence_registry.shared.utils.timeutils import (
    ensure_utc,
    format_timestamp,
    utc_now,
)

from ..db.store import BATCH_GET_LIMIT, KeyValueStore
from .models import LastActivitySeen

logger = logging.getLogger(__name__)

LAST_ACTIVITY_PARTITION = "lastActivity"
TIME_ATTRIBUTE = "time"
DEFAULT_RETENTION_MONTHS = 6


class LastActivityLedger:
    """Records and reports when users were last seen."""

    def __init__(
        self,
        store: KeyValueStore,
        retention_months: int = DEFAULT_RETENTION_MONTHS,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.retention_months = retention_months
        self._clock = clock

    async def record_activity(self, user_id: str) -> bool:
        """Mark the user as seen now"""
        seen = LastActivitySeen(user_id=user_id, seen_at=self._clock())
        await self.store.put_item(
            LAST_ACTIVITY_PARTITION,
            user_id,
            {TIME_ATTRIBUTE: format_timestamp(seen.seen_at)},
            seen.expires_at(self.retention_months),
        )
        logger.debug(f"Recorded activity for user {user_id}")
        return True

    async def get_activity(self, user_ids: Iterable[str]) -> Dict[str, datetime]:
        """Last-seen times for the candidates that have one"""
        candidates: List[str] = list(dict.fromkeys(user_ids))
        if not candidates:
            return {}
        if len(candidates) > BATCH_GET_LIMIT:
            raise ValueError(
                f"At most {BATCH_GET_LIMIT} users can be looked up per request, "
                f"got {len(candidates)}"
            )

        items = await self.store.batch_get(LAST_ACTIVITY_PARTITION, candidates)
        return {
            key: ensure_utc(isoparse(item.attributes[TIME_ATTRIBUTE]))
            for key, item in items.items()
            if TIME_ATTRIBUTE in item.attributes
        }
