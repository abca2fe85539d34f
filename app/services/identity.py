"""Bearer token identity resolution."""
import logging
from typing import Optional, Dict, Any
import jwt

from app.core.config import Settings

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Return the token from an ``Authorization: Bearer <token>`` header value."""
    if not authorization:
        return None
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def decode_access_token(token: str, config: Settings) -> Optional[Dict[str, Any]]:
    """Verify an access token and return its claims, or None if it is not valid."""
    if not config.auth_jwt_secret:
        return None
    try:
        claims = jwt.decode(
            token,
            config.auth_jwt_secret,
            algorithms=[JWT_ALGORITHM],
            audience=config.auth_jwt_audience,
            options={"require": ["exp", "sub"]},
        )
    except jwt.PyJWTError as e:
        logger.info(f"Rejected bearer token: {type(e).__name__}")
        return None
    return claims if isinstance(claims, dict) else None


def resolve_identity(authorization: Optional[str], config: Settings) -> Optional[str]:
    """
    Resolve the user behind a tap, if any.

    A missing or invalid token is not an error: the physical tap usually
    happens before the customer has logged in, so the caller falls back to a
    pending reward.

    Args:
        authorization: Raw Authorization header value
        config: Settings holding the token secret

    Returns:
        User id (the token's ``sub`` claim) or None for anonymous taps
    """
    token = extract_bearer_token(authorization)
    if token is None:
        return None

    if not config.auth_jwt_secret:
        logger.warning("AUTH_JWT_SECRET is not configured; treating tap as anonymous")
        return None

    claims = decode_access_token(token, config)
    if not claims:
        return None

    user_id = claims.get("sub")
    return str(user_id) if user_id else None
