"""Redirect responses for tap outcomes."""
from urllib.parse import urlencode
from fastapi import status
from fastapi.responses import RedirectResponse

from app.core.config import Settings

# Only these reason codes ever leave the service
ERROR_REASONS = frozenset({
    "device_not_found",
    "invalid_signature",
    "replay_attack",
    "rate_limit",
    "award_failed",
    "claim_invalid",
    "internal_error",
})


def _redirect(config: Settings, path: str, params: dict) -> RedirectResponse:
    query = urlencode(params, safe="/")
    url = f"{config.frontend_base_url}{path}?{query}"
    return RedirectResponse(url=url, status_code=status.HTTP_302_FOUND)


def success_redirect(current_stamps: int, config: Settings) -> RedirectResponse:
    """Stamp awarded: show the customer's card."""
    return _redirect(config, config.success_path, {"status": "success", "stamps": current_stamps})


def pending_redirect(token: str, config: Settings) -> RedirectResponse:
    """Anonymous tap: send the customer to log in, then back to their card."""
    return _redirect(config, config.login_path, {"pending": token, "redirect": config.success_path})


def error_redirect(reason: str, config: Settings) -> RedirectResponse:
    """Any failure: generic error page with the reason code only."""
    if reason not in ERROR_REASONS:
        reason = "internal_error"
    return _redirect(config, config.error_path, {"status": "error", "reason": reason})
