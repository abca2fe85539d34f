from fastapi import Header, Depends
from typing import Optional

from app.core.config import Settings, settings
from app.core.errors import UnauthorizedError
from app.services.identity import resolve_identity


def get_settings() -> Settings:
    """
    FastAPI dependency for application settings.

    Handlers take configuration from here instead of importing it, so tests
    can override it per case.
    """
    return settings


def get_current_user(
    authorization: Optional[str] = Header(None, alias="Authorization"),
    config: Settings = Depends(get_settings)
) -> str:
    """
    FastAPI dependency that requires a valid bearer token and returns the user id.

    Used by endpoints that only make sense after login (claim redemption).

    Raises:
        UnauthorizedError: If the header is missing or the token is invalid or expired
    """
    if not authorization:
        raise UnauthorizedError("Missing Authorization header")

    user_id = resolve_identity(authorization, config)
    if not user_id:
        raise UnauthorizedError("Invalid or expired bearer token")

    return user_id
