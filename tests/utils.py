"""Test utility functions."""
import os
import time
from typing import Optional
import jwt

from app.services.sun_validator import compute_sun_mac

TEST_NFC_UID = "04A1B2C3D4E5F6"


def make_access_token(
    user_id: str,
    expires_in: int = 3600,
    secret: Optional[str] = None,
    audience: str = "authenticated"
) -> str:
    """Create an access token like the auth backend issues."""
    payload = {
        "sub": user_id,
        "aud": audience,
        "exp": int(time.time()) + expires_in,
        "role": "authenticated",
    }
    return jwt.encode(payload, secret or os.environ["AUTH_JWT_SECRET"], algorithm="HS256")


def sign_tap(uid_hex: str, counter: int, master_key_hex: Optional[str] = None) -> str:
    """Compute the cmac a genuine tag would put in its URL."""
    master_key = bytes.fromhex(master_key_hex or os.environ["NFC_MASTER_KEY"])
    return compute_sun_mac(master_key, bytes.fromhex(uid_hex), counter).hex().upper()
