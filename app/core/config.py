from pydantic_settings import BaseSettings
from pydantic import field_validator
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    database_url: str = "sqlite:///./tap_loyalty.db"
    environment: str = "development"
    store_timeout_seconds: int = 5  # Upper bound for every backing-store call

    # NFC tag authentication (NTAG 424 DNA SUN)
    nfc_master_key: Optional[str] = None  # 16-byte AES key as hex; never logged
    allow_dev_taps: bool = False  # Dev-mode (QR, unsigned) taps are rejected unless enabled

    # Identity provider (HS256 access tokens issued by the auth backend)
    auth_jwt_secret: Optional[str] = None
    auth_jwt_audience: str = "authenticated"

    # Rewards
    rate_limit_window_seconds: int = 60
    pending_claim_ttl_minutes: int = 15

    # Redirect targets (relative to the frontend)
    frontend_base_url: str = ""
    success_path: str = "/puntos"
    login_path: str = "/auth/login"
    error_path: str = "/verify-tap"

    @field_validator('nfc_master_key')
    @classmethod
    def validate_master_key(cls, v: Optional[str]) -> Optional[str]:
        """Validate the master key is a 16-byte AES key encoded as hex."""
        if v is None or not v.strip():
            return None
        v = v.strip()
        try:
            key = bytes.fromhex(v)
        except ValueError:
            raise ValueError("NFC_MASTER_KEY must be a hex string")
        if len(key) != 16:
            raise ValueError("NFC_MASTER_KEY must be 32 hex characters (AES-128 key)")
        return v

    @field_validator('rate_limit_window_seconds', 'pending_claim_ttl_minutes', 'store_timeout_seconds')
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Validate durations are positive."""
        if v <= 0:
            raise ValueError("must be a positive integer")
        return v

    @field_validator('frontend_base_url')
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        # Allow .env file to be missing (will use environment variables only)
        env_ignore_empty = True


# Initialize settings
# Note: If .env file doesn't exist, pydantic-settings will use environment variables only
settings = Settings()
