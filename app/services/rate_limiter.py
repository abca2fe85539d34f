"""Per-device tap cooldown."""
import logging
from datetime import datetime, timedelta
from sqlalchemy.orm import Session

from app.db.models import LoyaltyTransaction, PendingReward, TransactionSource
from app.core.errors import RateLimited

logger = logging.getLogger(__name__)


def check_rate_limit(
    db: Session,
    device_id: str,
    now: datetime,
    window_seconds: int
) -> None:
    """
    Reject a tap if the device was tapped for a reward inside the window.

    Tap transactions and pending claims count, so anonymous taps are
    throttled the same way as authenticated ones. Claim redemptions do not:
    their tap was already counted by the pending claim.

    Raises:
        RateLimited: If a reward for this device exists at or after now - window
    """
    since = now - timedelta(seconds=window_seconds)

    recent_transaction = db.query(LoyaltyTransaction.id).filter(
        LoyaltyTransaction.device_id == device_id,
        LoyaltyTransaction.source == TransactionSource.TAP,
        LoyaltyTransaction.created_at >= since
    ).first()

    recent_claim = None
    if recent_transaction is None:
        recent_claim = db.query(PendingReward.id).filter(
            PendingReward.device_id == device_id,
            PendingReward.created_at >= since
        ).first()

    if recent_transaction is not None or recent_claim is not None:
        logger.info(
            f"Rate limit exceeded for device {device_id} (window {window_seconds}s)",
            extra={"device_id": device_id}
        )
        raise RateLimited(f"device tapped within the last {window_seconds} seconds")
