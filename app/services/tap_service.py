"""Tap verification pipeline."""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import Settings
from app.core.errors import TapError, InternalError
from app.schemas.taps import TapEvent
from app.services.device_resolver import resolve_device
from app.services.sun_validator import validate_authenticity
from app.services.replay_guard import check_counter
from app.services.rate_limiter import check_rate_limit
from app.services.identity import resolve_identity
from app.services.rewards import award_stamp, create_pending_claim
from app.services.security_events import record_security_event

logger = logging.getLogger(__name__)


@dataclass
class TapOutcome:
    """Terminal state of a verified tap: awarded or deferred."""
    awarded: bool
    current_stamps: Optional[int] = None
    claim_token: Optional[str] = None
    transaction_id: Optional[str] = None


def verify_tap(
    db: Session,
    tap: TapEvent,
    authorization: Optional[str],
    config: Settings,
    now: Optional[datetime] = None
) -> TapOutcome:
    """
    Validate a tap and award (or defer) its stamp.

    Steps run in order and stop at the first failure:
    device lookup, authenticity, counter check, rate limit, identity, reward.
    Signature and replay failures are also written to the security event log.

    Args:
        db: Database session
        tap: Parsed tap parameters
        authorization: Raw Authorization header value, if any
        config: Application settings (master key, dev gate, limits)
        now: Tap time (defaults to utcnow)

    Returns:
        TapOutcome describing the award or the pending claim

    Raises:
        TapError: A subclass naming the failure reason
        MissingParameterError: If a prod tap lacks counter or cmac
    """
    now = now or datetime.utcnow()
    logger.info("Tap received", extra=tap.log_fields())

    device = None
    try:
        device = resolve_device(db, tap.uid)
        validate_authenticity(tap, config)
        staged_counter = check_counter(device, tap.counter)
        check_rate_limit(db, device.id, now=now, window_seconds=config.rate_limit_window_seconds)

        user_id = resolve_identity(authorization, config)

        if user_id:
            result = award_stamp(db, device, user_id, tap, staged_counter, now=now)
            return TapOutcome(
                awarded=True,
                current_stamps=result.current_stamps,
                transaction_id=result.transaction_id
            )

        token = create_pending_claim(
            db, device, tap, staged_counter,
            now=now, ttl_minutes=config.pending_claim_ttl_minutes
        )
        return TapOutcome(awarded=False, claim_token=token)

    except TapError as e:
        if e.security_event:
            record_security_event(db, device.id if device else None, e.security_event, tap, now=now)
        raise
    except SQLAlchemyError as e:
        # Lookups failing (timeouts included) must never fall through to an award
        logger.error(f"Store error while verifying tap: {e}", exc_info=True)
        db.rollback()
        raise InternalError("store error during verification")
