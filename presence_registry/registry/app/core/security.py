"""
Identity resolution for incoming requests and socket connections.

Tokens are issued elsewhere; this module only verifies them and extracts the
user identifier they carry.
"""
import logging
from typing import Any, Dict, Optional

from jose import JWTError, jwt

from .config import Settings

logger = logging.getLogger(__name__)

USER_ID_CLAIMS = ("sub", "userId")


def extract_bearer_token(value: Optional[str]) -> Optional[str]:
    """Strip an optional ``Bearer`` prefix from a header or auth value"""
    if not value:
        return None
    scheme, _, credentials = value.strip().partition(" ")
    if credentials and scheme.lower() == "bearer":
        return credentials.strip() or None
    return value.strip() or None


def decode_user_id(token: str, settings: Settings) -> Optional[str]:
    """Return the user id carried by a valid token, None otherwise"""
    try:
        payload: Dict[str, Any] = jwt.decode(
            token,
            settings.JWT_SECRET_KEY.get_secret_value(),
            algorithms=[settings.JWT_ALGORITHM],
        )
    except JWTError as e:
        logger.warning(f"Rejected access token: {e}")
        return None

    for claim in USER_ID_CLAIMS:
        user_id = payload.get(claim)
        if isinstance(user_id, str) and user_id.strip():
            return user_id
    return None
