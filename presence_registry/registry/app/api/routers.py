import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Dict, Iterator, List

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import PlainTextResponse
from fastapi.security import OAuth2PasswordBearer
from pydantic import BaseModel, Field
from starlette.status import (
    HTTP_400_BAD_REQUEST,
    HTTP_401_UNAUTHORIZED,
    HTTP_503_SERVICE_UNAVAILABLE,
)

from presence_registry.shared.db.exceptions import (
    InvalidIdentifierError,
    StoreError,
)

from ..core.config import Settings
from ..core.presence_query import chunked
from ..core.registry import ConnectionRegistry
from ..core.security import decode_user_id

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="token")

router = APIRouter(tags=["presence"])

logger = logging.getLogger(__name__)

MAX_BULK_USERS = 1000


class BulkPresenceRequest(BaseModel):
    """Model for bulk presence and last-activity requests"""

    user_ids: List[str] = Field(default=..., max_length=MAX_BULK_USERS)


class OnlineUsersResponse(BaseModel):
    """Model for online user listings"""

    online: List[str]


class LastActivityResponse(BaseModel):
    """Model for last-activity lookups"""

    last_activity: Dict[str, datetime]


class ErrorResponse(BaseModel):
    """Model for error responses"""

    detail: str


def get_settings_dependency(request: Request) -> Settings:
    return request.app.state.settings


def get_registry(request: Request) -> ConnectionRegistry:
    """Get the ConnectionRegistry instance from the app state"""
    registry = getattr(request.app.state, "registry", None)
    if registry is None:
        raise HTTPException(
            status_code=HTTP_503_SERVICE_UNAVAILABLE,
            detail="Presence registry not initialized"
        )
    return registry


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    settings: Settings = Depends(get_settings_dependency),
) -> str:
    """Extract and validate user ID from JWT token"""
    user_id = decode_user_id(token, settings)
    if user_id is None:
        raise HTTPException(
            status_code=HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user_id


@contextmanager
def presence_errors(action: str) -> Iterator[None]:
    """Map registry failures onto HTTP errors.

    A failed presence lookup is reported as unavailable, never as offline.
    """
    try:
        yield
    except InvalidIdentifierError as e:
        raise HTTPException(status_code=HTTP_400_BAD_REQUEST, detail=str(e))
    except StoreError as e:
        logger.error(f"Error during {action}: {e}")
        raise HTTPException(
            status_code=HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Presence store unavailable during {action}",
        )


@router.get("/presence/health")
async def health_check(request: Request):
    """Health check endpoint."""
    healthy = await request.app.state.health_check()
    return {"status": "healthy"} if healthy else {"status": "unhealthy"}


@router.get(
    "/presence/online",
    response_model=OnlineUsersResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Unauthorized"},
        503: {"model": ErrorResponse, "description": "Store unavailable"},
    },
)
async def list_online_users(
    current_user: str = Depends(get_current_user),
    registry: ConnectionRegistry = Depends(get_registry),
):
    """
    List every user that currently holds at least one connection
    """
    with presence_errors("online listing"):
        online = await registry.online_users()
    return OnlineUsersResponse(online=sorted(online))


@router.post(
    "/presence/online",
    response_model=OnlineUsersResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Bad request"},
        401: {"model": ErrorResponse, "description": "Unauthorized"},
        503: {"model": ErrorResponse, "description": "Store unavailable"},
    },
)
async def bulk_online_check(
    body: BulkPresenceRequest,
    current_user: str = Depends(get_current_user),
    registry: ConnectionRegistry = Depends(get_registry),
):
    """
    Check which of the given users are online

    Parameters:
    - **user_ids**: users to check, split into store-sized batches

    Returns:
    - **OnlineUsersResponse**: the subset that is online, in request order
    """
    online = set()
    with presence_errors("bulk online check"):
        for batch in chunked(body.user_ids):
            online |= await registry.bulk_is_online(batch)
    ordered = [uid for uid in dict.fromkeys(body.user_ids) if uid in online]
    return OnlineUsersResponse(online=ordered)


@router.post(
    "/presence/last-activity",
    response_model=LastActivityResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Bad request"},
        401: {"model": ErrorResponse, "description": "Unauthorized"},
        503: {"model": ErrorResponse, "description": "Store unavailable"},
    },
)
async def last_activity(
    body: BulkPresenceRequest,
    current_user: str = Depends(get_current_user),
    registry: ConnectionRegistry = Depends(get_registry),
):
    """
    Get the last time each of the given users was seen

    Users that were never seen (or not within the retention window) are
    left out of the response.
    """
    seen: Dict[str, datetime] = {}
    with presence_errors("last activity lookup"):
        for batch in chunked(body.user_ids):
            seen.update(await registry.get_last_activity(batch))
    return LastActivityResponse(last_activity=seen)


@router.get(
    "/presence/users/{user_id}",
    response_class=PlainTextResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Unauthorized"},
        503: {"model": ErrorResponse, "description": "Store unavailable"},
    },
)
async def is_online(
    user_id: str,
    current_user: str = Depends(get_current_user),
    registry: ConnectionRegistry = Depends(get_registry),
):
    """
    Get a user's presence as plain text: ``online`` or ``offline``
    """
    with presence_errors("online check"):
        online = await registry.is_online(user_id)
    return PlainTextResponse("online" if online else "offline")
