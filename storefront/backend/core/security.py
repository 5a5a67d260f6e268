"""JWT helpers for the admin back office.

Access tokens are issued by the storefront auth service and signed with the
shared WEB_SECRET_KEY. Claims used here:
    sub          admin id
    username     display name for the audit trail
    role         "superadmin" bypasses permission checks
    permissions  list of "resource:action" strings
    type         must be "access"
"""
import logging
from typing import Any, Dict, Optional

from jose import jwt, JWTError

from storefront.backend.core.config import get_web_settings

logger = logging.getLogger(__name__)


def decode_token(token: str) -> Optional[Dict[str, Any]]:
    """
    Decode and validate JWT token.

    Args:
        token: JWT token to decode

    Returns:
        Token payload if valid, None otherwise
    """
    settings = get_web_settings()

    try:
        payload = jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.jwt_algorithm]
        )
        return payload
    except JWTError as e:
        logger.debug("Token decode error: %s", e)
        return None
