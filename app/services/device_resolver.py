"""Device lookup for incoming taps."""
import logging
from sqlalchemy.orm import Session

from app.db.models import NfcDevice, DeviceStatus
from app.core.errors import DeviceNotFound

logger = logging.getLogger(__name__)


def resolve_device(db: Session, uid: str) -> NfcDevice:
    """
    Look up an active device by UID.

    Unknown and inactive/revoked devices raise the same error so the endpoint
    cannot be used to enumerate provisioned tags.

    Raises:
        DeviceNotFound: If no active device has this UID
    """
    device = db.query(NfcDevice).filter(
        NfcDevice.uid_hex == uid,
        NfcDevice.status == DeviceStatus.ACTIVE
    ).first()

    if not device:
        logger.info("Tap for unknown or inactive device", extra={"uid": uid})
        raise DeviceNotFound(f"No active device with uid {uid}")

    return device
