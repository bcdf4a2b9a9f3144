from typing import Optional

from fastapi import Header, HTTPException

from app.core.config import get_settings
from app.core.logging import get_logger

logger = get_logger(__name__)


def optional_bearer_token(
    authorization: Optional[str] = Header(default=None),
) -> Optional[str]:
    """
    Extract the bearer token when present.

    Token verification belongs to the identity provider; this dependency only
    enforces presence when REQUIRE_AUTH is set and otherwise warns.
    """
    token = None
    if authorization and authorization.lower().startswith("bearer "):
        token = authorization[7:].strip() or None

    if token is None:
        if get_settings().REQUIRE_AUTH:
            raise HTTPException(status_code=401, detail="Bearer token required")
        logger.warning("Caption request without bearer token")
    return token
