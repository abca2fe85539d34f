"""Counter-based replay protection."""
import logging
from typing import Optional
from sqlalchemy import update
from sqlalchemy.orm import Session

from app.db.models import NfcDevice
from app.core.errors import ReplayDetected

logger = logging.getLogger(__name__)


def check_counter(device: NfcDevice, counter: Optional[int]) -> Optional[int]:
    """
    Check that a tap's counter is strictly greater than the device's last one.

    Nothing is written here; the returned counter is staged and committed
    together with the reward by ``commit_counter``.

    Args:
        device: Resolved device
        counter: Counter from the tap, or None for counter-less dev taps

    Returns:
        The counter to commit, or None if there is nothing to commit

    Raises:
        ReplayDetected: If counter <= device.last_counter
    """
    if counter is None:
        return None

    if counter <= device.last_counter:
        logger.warning(
            f"Replay detected: received {counter}, expected > {device.last_counter}",
            extra={"uid": device.uid_hex, "counter": counter}
        )
        raise ReplayDetected(f"counter {counter} <= last_counter {device.last_counter}")

    return counter


def commit_counter(db: Session, device_id: str, counter: Optional[int]) -> None:
    """
    Raise the device counter inside the caller's transaction.

    Uses a conditional update so that of two concurrent taps carrying the same
    counter exactly one updates the row; the other sees zero rows and loses.
    Does not commit.

    Raises:
        ReplayDetected: If the stored counter is already >= counter
    """
    if counter is None:
        return

    result = db.execute(
        update(NfcDevice)
        .where(NfcDevice.id == device_id, NfcDevice.last_counter < counter)
        .values(last_counter=counter)
    )

    if result.rowcount == 0:
        logger.warning(
            f"Counter {counter} already consumed for device {device_id} (conditional update returned 0 rows)",
            extra={"device_id": device_id, "counter": counter}
        )
        raise ReplayDetected(f"counter {counter} lost the commit race")
