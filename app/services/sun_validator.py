"""
Tap authenticity validation for NTAG 424 DNA Secure Unique NFC (SUN) messages.

Each tag mirrors its UID, read counter and a truncated MAC into the tap URL.
The MAC key is diversified per tag from the master key and the UID, so a
leaked tag key never exposes other tags:

    K_dev = CMAC(master_key, 0x01 || UID)
    K_ses = CMAC(K_dev, 3C C3 00 01 00 80 || UID || counter as 3-byte little-endian)
    MAC   = CMAC(K_ses, "") with the odd-indexed bytes kept (8 bytes)
"""
import hmac
import logging
from typing import Optional

from cryptography.hazmat.primitives.cmac import CMAC
from cryptography.hazmat.primitives.ciphers import algorithms

from app.core.config import Settings
from app.core.errors import InvalidSignature, InternalError, MissingParameterError
from app.db.models import SecurityEventType
from app.schemas.taps import TapEvent, TapMode

logger = logging.getLogger(__name__)

UID_LENGTH = 7
MAX_COUNTER = 0xFFFFFF  # SDM read counter is 24 bits
DIVERSIFICATION_CONSTANT = b"\x01"
SESSION_MAC_VECTOR_PREFIX = bytes.fromhex("3CC300010080")


def aes_cmac(key: bytes, message: bytes) -> bytes:
    """Compute a full 16-byte AES-CMAC."""
    mac = CMAC(algorithms.AES(key))
    mac.update(message)
    return mac.finalize()


def derive_device_key(master_key: bytes, uid: bytes) -> bytes:
    """Diversify the per-tag key from the master key and the tag UID."""
    return aes_cmac(master_key, DIVERSIFICATION_CONSTANT + uid)


def compute_sdm_mac(file_read_key: bytes, uid: bytes, counter: int) -> bytes:
    """Truncated SDM MAC for a tag whose SDM file read key is ``file_read_key``."""
    if len(uid) != UID_LENGTH:
        raise ValueError(f"UID must be {UID_LENGTH} bytes")
    if not 0 <= counter <= MAX_COUNTER:
        raise ValueError("counter out of range for a 24-bit read counter")

    session_vector = SESSION_MAC_VECTOR_PREFIX + uid + counter.to_bytes(3, "little")
    session_key = aes_cmac(file_read_key, session_vector)
    full_mac = aes_cmac(session_key, b"")
    return full_mac[1::2]


def compute_sun_mac(master_key: bytes, uid: bytes, counter: int) -> bytes:
    """
    Compute the truncated 8-byte SUN MAC a genuine tag produces for ``counter``.

    Args:
        master_key: 16-byte AES master key
        uid: 7-byte tag UID
        counter: Read counter (0 to 0xFFFFFF)

    Returns:
        8-byte truncated MAC
    """
    return compute_sdm_mac(derive_device_key(master_key, uid), uid, counter)


def verify_sun_mac(master_key: bytes, uid_hex: str, counter: int, cmac_hex: str) -> bool:
    """
    Check a tap's MAC in constant time.

    Malformed inputs (non-hex UID or MAC, wrong lengths, counter out of range)
    simply fail verification.
    """
    try:
        uid = bytes.fromhex(uid_hex)
        supplied = bytes.fromhex(cmac_hex)
    except ValueError:
        return False
    if len(uid) != UID_LENGTH or not 0 <= counter <= MAX_COUNTER:
        return False

    expected = compute_sun_mac(master_key, uid, counter)
    return hmac.compare_digest(expected, supplied)


def validate_authenticity(tap: TapEvent, config: Settings) -> None:
    """
    Prove the tap came from the genuine tag.

    Dev-mode taps are accepted without a signature only when the deployment
    explicitly enables them; this is meant for controlled testing with
    static QR cards and must stay off in production.

    Raises:
        InvalidSignature: If the MAC does not match, or dev taps are disabled
        MissingParameterError: If a prod tap lacks counter or cmac
        InternalError: If prod validation is requested but no master key is configured
    """
    if tap.mode == TapMode.DEV:
        if not config.allow_dev_taps:
            logger.warning("Dev-mode tap rejected: dev taps are disabled", extra=tap.log_fields())
            raise InvalidSignature(
                "dev taps are disabled",
                security_event=SecurityEventType.DEV_MODE_DISABLED.value
            )
        logger.debug("Dev-mode tap: skipping signature validation", extra=tap.log_fields())
        return

    if tap.counter is None:
        raise MissingParameterError("counter", "required in prod mode")
    if not tap.cmac:
        raise MissingParameterError("cmac", "required in prod mode")

    master_key = _load_master_key(config.nfc_master_key)

    if not verify_sun_mac(master_key, tap.uid, tap.counter, tap.cmac):
        logger.warning("SUN MAC validation failed", extra=tap.log_fields())
        raise InvalidSignature("SUN MAC mismatch")


def _load_master_key(master_key_hex: Optional[str]) -> bytes:
    if not master_key_hex:
        # Never fall back to accepting the tap
        logger.error("NFC_MASTER_KEY is not configured; rejecting prod tap")
        raise InternalError("tag validation is not configured")
    return bytes.fromhex(master_key_hex)
