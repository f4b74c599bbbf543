import logging
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Optional

import socketio

from presence_registry.shared.db.exceptions import StoreError
from presence_registry.shared.utils.timeutils import utc_now

from .config import Settings
from .registry import ConnectionRegistry
from .security import decode_user_id, extract_bearer_token

logger = logging.getLogger(__name__)


class ClientEvents(str, Enum):
    """Events sent from clients to server"""
    ACTIVITY = "presence_activity"
    MESSAGE = "message"


class ServerEvents(str, Enum):
    """Events sent from server to clients"""
    ERROR = "presence_error"


class RegistryEvents:
    """Maps Socket.IO lifecycle events onto the connection registry.

    The Socket.IO sid doubles as the connection id. The sid -> user mapping
    only lives as long as the socket does on this process.
    """

    def __init__(
        self,
        sio: socketio.AsyncServer,
        registry: ConnectionRegistry,
        settings: Settings,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.sio = sio
        self.registry = registry
        self.settings = settings
        self._clock = clock
        self.sid_to_user: Dict[str, str] = {}

        self.sio.on("connect", self.on_connect)
        self.sio.on("disconnect", self.on_disconnect)
        self.sio.on(ClientEvents.ACTIVITY.value, self.on_activity)
        self.sio.on(ClientEvents.MESSAGE.value, self.on_activity)

    def resolve_user_id(
        self, environ: Dict[str, Any], auth: Optional[Any]
    ) -> Optional[str]:
        """User id from the auth payload token, falling back to the header"""
        token = None
        if isinstance(auth, dict):
            token = extract_bearer_token(auth.get("token"))
        if not token:
            token = extract_bearer_token(environ.get("HTTP_AUTHORIZATION"))
        if not token:
            return None
        return decode_user_id(token, self.settings)

    async def on_connect(
        self, sid: str, environ: Dict[str, Any], auth: Optional[Any] = None
    ) -> None:
        """Handle new socket connection"""
        user_id = self.resolve_user_id(environ, auth)
        if not user_id:
            logger.warning(f"Connection {sid} refused: no valid user identity")
            raise ConnectionRefusedError("invalid authorization")

        try:
            await self.registry.on_connect(user_id, sid, self._clock())
        except StoreError as e:
            logger.error(f"Could not register connection {sid} for {user_id}: {e}")
            raise ConnectionRefusedError("presence unavailable") from e

        self.sid_to_user[sid] = user_id
        logger.info(f"User {user_id} connected with sid {sid}")

    async def on_disconnect(self, sid: str, reason: Optional[Any] = None) -> None:
        """Handle socket disconnection"""
        user_id = self.sid_to_user.pop(sid, None)
        if user_id is None:
            logger.warning(f"Could not find user for disconnected sid {sid}")
            return

        try:
            await self.registry.on_disconnect(user_id, sid)
        except StoreError as e:
            # The record's TTL clears the stale entry if this write is lost
            logger.error(f"Could not unregister sid {sid} for {user_id}: {e}")
            return
        logger.info(f"User {user_id} disconnected sid {sid} ({reason})")

    async def on_activity(self, sid: str, data: Optional[Any] = None) -> None:
        """Handle an activity ping or message from a connected client"""
        user_id = self.sid_to_user.get(sid)
        if user_id is None:
            logger.warning(f"Activity from unknown sid {sid}")
            await self.sio.emit(
                ServerEvents.ERROR.value,
                {"message": "invalid authorization"},
                to=sid,
            )
            return

        try:
            await self.registry.on_activity(user_id, sid, self._clock())
        except StoreError as e:
            logger.error(f"Could not record activity for {user_id}: {e}")
            await self.sio.emit(
                ServerEvents.ERROR.value,
                {"message": "Failed to record activity"},
                to=sid,
            )
