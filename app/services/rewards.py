"""Stamp awarding, pending reward claims and claim redemption."""
import hashlib
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional
from sqlalchemy import update, func
from sqlalchemy.exc import SQLAlchemyError, OperationalError, TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session

from app.db.models import LoyaltyTransaction, PendingReward, TransactionSource
from app.db.models import NfcDevice
from app.core.errors import AwardFailed, ClaimInvalid, InternalError, ReplayDetected, TapError
from app.schemas.taps import TapEvent
from app.services.replay_guard import commit_counter

logger = logging.getLogger(__name__)


@dataclass
class AwardResult:
    """Outcome of a committed stamp award."""
    transaction_id: str
    current_stamps: int


def generate_claim_token() -> str:
    """Generate a secure random opaque token."""
    return secrets.token_urlsafe(32)


def hash_claim_token(token: str) -> str:
    """Only the hash of a claim token is ever stored."""
    return hashlib.sha256(token.encode()).hexdigest()


def build_tap_metadata(tap: TapEvent, now: datetime) -> dict:
    """Context stored alongside a reward."""
    return {
        "tap_mode": tap.mode.value,
        "counter": tap.counter,
        "timestamp": now.isoformat(),
    }


def count_stamps(db: Session, user_id: str, restaurant_id: Optional[str]) -> int:
    """Total stamps a user holds for a restaurant (None = unassigned devices)."""
    query = db.query(func.coalesce(func.sum(LoyaltyTransaction.stamps), 0)).filter(
        LoyaltyTransaction.user_id == user_id
    )
    if restaurant_id is None:
        query = query.filter(LoyaltyTransaction.restaurant_id.is_(None))
    else:
        query = query.filter(LoyaltyTransaction.restaurant_id == restaurant_id)
    return int(query.scalar() or 0)


def award_stamp(
    db: Session,
    device: NfcDevice,
    user_id: str,
    tap: TapEvent,
    counter: Optional[int],
    now: Optional[datetime] = None
) -> AwardResult:
    """
    Credit one stamp to an authenticated user.

    In a single transaction: commit the staged counter, insert exactly one
    ledger row and compute the new stamp total. If any step fails nothing is
    written, so the counter is never consumed without a matching stamp.

    Args:
        db: Database session
        device: Validated device
        user_id: Authenticated user
        tap: The tap being rewarded
        counter: Staged counter from the replay guard (None for counter-less dev taps)
        now: Award time (defaults to utcnow)

    Raises:
        ReplayDetected: If a concurrent tap already committed this counter
        AwardFailed: If the store rejected the transaction
        InternalError: If the store timed out or was unreachable
    """
    now = now or datetime.utcnow()
    device_id = device.id
    restaurant_id = device.assigned_restaurant_id

    try:
        commit_counter(db, device_id, counter)

        transaction = LoyaltyTransaction(
            user_id=user_id,
            device_id=device_id,
            restaurant_id=restaurant_id,
            stamps=1,
            source=TransactionSource.TAP,
            tap_metadata=build_tap_metadata(tap, now),
            created_at=now
        )
        db.add(transaction)
        db.flush()

        transaction_id = transaction.id
        current_stamps = count_stamps(db, user_id, restaurant_id)
        db.commit()
    except ReplayDetected:
        db.rollback()
        raise
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to award stamp for device {device_id}: {e}", exc_info=True)
        raise _store_failure(e, "award")

    logger.info(
        f"Stamp awarded to user {user_id}: current_stamps={current_stamps}",
        extra={"device_id": device_id, "counter": counter}
    )
    return AwardResult(transaction_id=transaction_id, current_stamps=current_stamps)


def create_pending_claim(
    db: Session,
    device: NfcDevice,
    tap: TapEvent,
    counter: Optional[int],
    ttl_minutes: int,
    now: Optional[datetime] = None
) -> str:
    """
    Defer a reward for an anonymous tap.

    The counter is committed because the tap itself was genuine; only the
    attribution to a user waits for login.

    Returns:
        Raw claim token (only its hash is stored)

    Raises:
        ReplayDetected: If a concurrent tap already committed this counter
        AwardFailed: If the store rejected the transaction
        InternalError: If the store timed out or was unreachable
    """
    now = now or datetime.utcnow()
    device_id = device.id
    token = generate_claim_token()

    try:
        commit_counter(db, device_id, counter)

        claim = PendingReward(
            token_hash=hash_claim_token(token),
            device_id=device_id,
            restaurant_id=device.assigned_restaurant_id,
            tap_metadata=build_tap_metadata(tap, now),
            created_at=now,
            expires_at=now + timedelta(minutes=ttl_minutes)
        )
        db.add(claim)
        db.commit()
    except ReplayDetected:
        db.rollback()
        raise
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to create pending reward for device {device_id}: {e}", exc_info=True)
        raise _store_failure(e, "pending reward")

    logger.info(
        f"Pending reward created for device {device_id}, expires in {ttl_minutes} minutes",
        extra={"device_id": device_id, "counter": counter}
    )
    return token


def redeem_claim(
    db: Session,
    token: str,
    user_id: str,
    now: Optional[datetime] = None
) -> AwardResult:
    """
    Exchange a pending reward token for one stamp.

    The claim is invalidated with a conditional update, so a token can only
    be redeemed once even when two requests race.

    Raises:
        ClaimInvalid: If the token is unknown, expired or already redeemed
        AwardFailed: If the store rejected the transaction
        InternalError: If the store timed out or was unreachable
    """
    now = now or datetime.utcnow()
    token_hash = hash_claim_token(token)

    try:
        claim = db.query(PendingReward).filter(PendingReward.token_hash == token_hash).first()
        if claim is None:
            raise ClaimInvalid("unknown token")

        claim_id = claim.id
        device_id = claim.device_id
        restaurant_id = claim.restaurant_id
        metadata = dict(claim.tap_metadata or {})

        result = db.execute(
            update(PendingReward)
            .where(
                PendingReward.id == claim_id,
                PendingReward.claimed_at.is_(None),
                PendingReward.expires_at > now
            )
            .values(claimed_at=now, claimed_by=user_id)
        )
        if result.rowcount == 0:
            raise ClaimInvalid("claim expired or already redeemed")

        metadata.update({"claim_id": claim_id, "redeemed_at": now.isoformat()})
        transaction = LoyaltyTransaction(
            user_id=user_id,
            device_id=device_id,
            restaurant_id=restaurant_id,
            stamps=1,
            source=TransactionSource.CLAIM,
            tap_metadata=metadata,
            created_at=now
        )
        db.add(transaction)
        db.flush()

        transaction_id = transaction.id
        current_stamps = count_stamps(db, user_id, restaurant_id)
        db.commit()
    except ClaimInvalid as e:
        db.rollback()
        logger.info(f"Claim redemption rejected for user {user_id}: {e.message}")
        raise
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to redeem claim for user {user_id}: {e}", exc_info=True)
        raise _store_failure(e, "claim redemption")

    logger.info(f"Claim {claim_id} redeemed by user {user_id}: current_stamps={current_stamps}")
    return AwardResult(transaction_id=transaction_id, current_stamps=current_stamps)


def _store_failure(error: SQLAlchemyError, operation: str) -> TapError:
    """Timeouts and connectivity errors leave the outcome unknown; everything else is a rejected award."""
    if isinstance(error, (OperationalError, PoolTimeoutError)):
        return InternalError(f"store unavailable during {operation}")
    return AwardFailed(f"{operation} was not committed")
