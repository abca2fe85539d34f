from pydantic import BaseModel, Field
from typing import Optional
import enum


class TapMode(str, enum.Enum):
    """Tap mode: signed NFC tap or unsigned QR test scan."""
    DEV = "dev"
    PROD = "prod"


class TapEvent(BaseModel):
    """Normalized tap parameters from one request."""

    uid: str = Field(..., description="Device UID as hex (or prototype id in dev mode)")
    counter: Optional[int] = Field(None, ge=0, description="Monotonic tag read counter")
    cmac: Optional[str] = Field(None, description="Truncated SUN MAC as hex")
    mode: TapMode = Field(TapMode.PROD, description="dev skips signature validation")

    def log_fields(self) -> dict:
        """Fields safe to log (the MAC is left out)."""
        return {"uid": self.uid, "counter": self.counter, "mode": self.mode.value}


class ClaimRequest(BaseModel):
    """Request schema for redeeming a pending reward."""

    token: str = Field(..., min_length=1, description="Pending reward token from the login redirect")


class ClaimResponse(BaseModel):
    """Response schema for a redeemed reward."""

    status: str = Field("success", description="Always 'success'")
    transaction_id: str
    current_stamps: int = Field(..., description="Stamp total after the redemption")
