"""Security event audit trail."""
import logging
from datetime import datetime
from typing import Optional
from sqlalchemy.orm import Session

from app.db.models import SecurityEvent, SecurityEventType
from app.schemas.taps import TapEvent

logger = logging.getLogger(__name__)


def record_security_event(
    db: Session,
    device_id: Optional[str],
    event_type: str,
    tap: TapEvent,
    now: Optional[datetime] = None
) -> Optional[SecurityEvent]:
    """
    Record a suspicious tap, best-effort.

    A failure to write the event is logged and swallowed so it can never
    change the response to the tap.

    Args:
        db: Database session (must not hold uncommitted tap work)
        device_id: Device the tap claimed to come from
        event_type: SecurityEventType value
        tap: The rejected tap
        now: Event time (defaults to utcnow)

    Returns:
        The stored event, or None if it could not be written
    """
    tap_params = tap.log_fields()
    logger.warning(
        f"SECURITY_EVENT: {event_type}",
        extra={"event_type": event_type, "device_id": device_id, **tap_params}
    )

    try:
        event = SecurityEvent(
            device_id=device_id,
            event_type=SecurityEventType(event_type),
            tap_params=tap_params,
            created_at=now or datetime.utcnow()
        )
        db.add(event)
        db.commit()
        return event
    except Exception as e:
        logger.error(f"Failed to record security event {event_type}: {e}", exc_info=True)
        try:
            db.rollback()
        except Exception as rollback_error:
            logger.error(f"Rollback after security event failure also failed: {rollback_error}")
        return None
