"""Tap request parsing."""
from typing import Mapping, Optional

from app.core.errors import MissingParameterError, InvalidParameterError
from app.schemas.taps import TapEvent, TapMode
from app.services.sun_validator import MAX_COUNTER


def parse_tap_request(params: Mapping[str, str]) -> TapEvent:
    """
    Extract and validate tap parameters from the query string.

    Args:
        params: Query parameters (uid, counter, cmac, mode)

    Returns:
        Normalized TapEvent

    Raises:
        MissingParameterError: If uid is absent, or counter/cmac are absent in prod mode
        InvalidParameterError: If counter or mode is malformed, or counter exceeds 24 bits
    """
    uid = (params.get("uid") or "").strip()
    if not uid:
        raise MissingParameterError("uid")

    mode = _parse_mode(params.get("mode"))
    counter = _parse_counter(params.get("counter"))
    cmac = (params.get("cmac") or "").strip() or None

    if mode == TapMode.PROD:
        if counter is None:
            raise MissingParameterError("counter", "required in prod mode")
        if cmac is None:
            raise MissingParameterError("cmac", "required in prod mode")

    return TapEvent(uid=uid, counter=counter, cmac=cmac, mode=mode)


def _parse_mode(raw: Optional[str]) -> TapMode:
    if raw is None or not raw.strip():
        return TapMode.PROD
    try:
        return TapMode(raw.strip().lower())
    except ValueError:
        raise InvalidParameterError("mode", "must be 'dev' or 'prod'")


def _parse_counter(raw: Optional[str]) -> Optional[int]:
    if raw is None or not raw.strip():
        return None
    raw = raw.strip()
    # ASCII digits only: no signs, no unicode digits such as "²"
    if not (raw.isascii() and raw.isdecimal()):
        raise InvalidParameterError("counter", "must be a non-negative integer")
    counter = int(raw)
    if counter > MAX_COUNTER:
        raise InvalidParameterError("counter", f"must not exceed {MAX_COUNTER}")
    return counter
