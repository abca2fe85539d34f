"""Tap verification endpoint."""
from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from sqlalchemy.orm import Session
import logging

from app.db.session import get_db
from app.api.deps import get_settings
from app.core.config import Settings
from app.core.errors import TapError
from app.services.tap_parser import parse_tap_request
from app.services.tap_service import verify_tap
from app.services.redirects import success_redirect, pending_redirect, error_redirect

logger = logging.getLogger(__name__)

router = APIRouter()

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
}


@router.api_route("/verify-tap", methods=["GET", "POST", "OPTIONS"])
async def verify_tap_endpoint(
    request: Request,
    db: Session = Depends(get_db),
    config: Settings = Depends(get_settings)
):
    """
    Verify an NFC tap (or dev-mode QR scan) and award a loyalty stamp.

    Always answers with a redirect: to the stamp card on success, to login
    with a pending reward token for anonymous taps, or to the error page with
    a reason code. Malformed requests get a 400 JSON error instead.
    """
    if request.method == "OPTIONS":
        return Response(status_code=status.HTTP_200_OK, headers=CORS_HEADERS)

    tap = parse_tap_request(request.query_params)

    try:
        outcome = verify_tap(db, tap, request.headers.get("Authorization"), config)
    except TapError as e:
        logger.info(f"Tap rejected: {e.reason}", extra={"reason": e.reason, **tap.log_fields()})
        return error_redirect(e.reason, config)
    except HTTPException:
        # Missing parameters are answered by FastAPI as 400 JSON, not redirected
        raise
    except Exception as e:
        logger.error(f"Unexpected error verifying tap: {e}", exc_info=True)
        return error_redirect("internal_error", config)

    if outcome.awarded:
        return success_redirect(outcome.current_stamps, config)
    return pending_redirect(outcome.claim_token, config)
