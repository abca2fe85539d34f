"""Pending reward redemption endpoint."""
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
import logging

from app.db.session import get_db
from app.api.deps import get_current_user
from app.schemas.taps import ClaimRequest, ClaimResponse
from app.services.rewards import redeem_claim
from app.core.errors import APIError, ClaimInvalid, ClaimInvalidError, TapError

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/rewards/claim", response_model=ClaimResponse)
async def claim_reward(
    request: ClaimRequest,
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Redeem a pending reward token after login.

    The token comes from the login redirect of an anonymous tap and is valid
    once, for a limited time.
    """
    try:
        result = redeem_claim(db, request.token, user_id)
    except ClaimInvalid:
        raise ClaimInvalidError()
    except TapError as e:
        logger.error(f"Claim redemption failed for user {user_id}: {e.reason}")
        raise APIError(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            code=e.reason.upper(),
            message="Reward could not be redeemed. Please try again.",
        )

    return ClaimResponse(
        status="success",
        transaction_id=result.transaction_id,
        current_stamps=result.current_stamps
    )
