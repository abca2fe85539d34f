from fastapi import status
from fastapi import HTTPException
from typing import Optional, Dict, Any


class APIError(HTTPException):
    """Base API error with consistent error code format."""

    def __init__(
        self,
        status_code: int,
        code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            status_code=status_code,
            detail={
                "code": code,
                "message": message,
                "details": details or {}
            }
        )


class MissingParameterError(APIError):
    """400 error for a missing tap parameter."""

    def __init__(self, parameter: str, reason: Optional[str] = None):
        message = f"Missing required parameter: {parameter}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            code="MISSING_PARAMETER",
            message=message,
            details={"parameter": parameter}
        )


class InvalidParameterError(APIError):
    """400 error for a malformed tap parameter."""

    def __init__(self, parameter: str, reason: str):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            code="INVALID_PARAMETER",
            message=f"Invalid parameter {parameter}: {reason}",
            details={"parameter": parameter, "reason": reason}
        )


class UnauthorizedError(APIError):
    """401 error for a missing or invalid bearer token."""

    def __init__(self, reason: str = "Invalid or missing bearer token"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            code="UNAUTHORIZED",
            message=reason,
            details={}
        )


class ClaimInvalidError(APIError):
    """410 error when a pending reward token cannot be redeemed."""

    def __init__(self):
        super().__init__(
            status_code=status.HTTP_410_GONE,
            code="CLAIM_INVALID",
            message="Reward claim is invalid, expired or already redeemed",
            details={}
        )


class TapError(Exception):
    """
    Internal exception for tap verification failures (not HTTP).

    The reason code is the only thing ever shown to the end user; the message
    stays in the logs.
    """

    reason = "internal_error"
    # Security event type to record for this failure, if any
    security_event: Optional[str] = None

    def __init__(self, message: str = "", security_event: Optional[str] = None):
        self.message = message
        if security_event is not None:
            self.security_event = security_event
        super().__init__(f"{self.reason}: {message}")


class DeviceNotFound(TapError):
    """Unknown, inactive or revoked device."""
    reason = "device_not_found"


class InvalidSignature(TapError):
    """Tag authentication failed."""
    reason = "invalid_signature"
    security_event = "invalid_signature"


class ReplayDetected(TapError):
    """Counter did not strictly increase."""
    reason = "replay_attack"
    security_event = "replay_attack"


class RateLimited(TapError):
    """Device tapped again inside the cooldown window."""
    reason = "rate_limit"


class AwardFailed(TapError):
    """Atomic stamp award could not be committed."""
    reason = "award_failed"


class ClaimInvalid(TapError):
    """Pending claim token unknown, expired or already redeemed."""
    reason = "claim_invalid"


class InternalError(TapError):
    reason = "internal_error"
