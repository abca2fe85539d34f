"""Unit tests for SUN MAC tap authentication."""
import pytest
from unittest.mock import patch

from app.services.sun_validator import (
    compute_sdm_mac, compute_sun_mac, derive_device_key, verify_sun_mac, validate_authenticity
)
from app.core.errors import InvalidSignature, InternalError, MissingParameterError
from app.schemas.taps import TapEvent, TapMode

from utils import TEST_NFC_UID, sign_tap

MASTER_KEY = bytes.fromhex("000102030405060708090A0B0C0D0E0F")


class TestSunMac:
    """Test MAC computation and verification."""

    def test_sdm_mac_reference_vector(self):
        """Test SDM MAC against the NXP application note example (zero key)."""
        uid = bytes.fromhex("04DE5F1EACC040")
        mac = compute_sdm_mac(bytes(16), uid, 0x3D)
        assert mac.hex().upper() == "94EED9EE65337086"

    def test_mac_is_eight_bytes(self):
        """Test MAC is truncated to 8 bytes."""
        mac = compute_sun_mac(MASTER_KEY, bytes.fromhex(TEST_NFC_UID), 11)
        assert len(mac) == 8

    def test_device_keys_differ_per_uid(self):
        """Test per-tag key diversification."""
        key_a = derive_device_key(MASTER_KEY, bytes.fromhex("04A1B2C3D4E5F6"))
        key_b = derive_device_key(MASTER_KEY, bytes.fromhex("04A1B2C3D4E5F7"))
        assert key_a != key_b
        assert len(key_a) == 16

    def test_verify_valid_mac(self):
        """Test a genuine MAC verifies."""
        cmac = sign_tap(TEST_NFC_UID, 11)
        assert verify_sun_mac(MASTER_KEY, TEST_NFC_UID, 11, cmac)

    def test_verify_is_case_insensitive(self):
        """Test lowercase hex MAC verifies."""
        cmac = sign_tap(TEST_NFC_UID, 11).lower()
        assert verify_sun_mac(MASTER_KEY, TEST_NFC_UID, 11, cmac)

    def test_verify_rejects_other_counter(self):
        """Test a MAC captured for one counter does not verify for another."""
        cmac = sign_tap(TEST_NFC_UID, 11)
        assert not verify_sun_mac(MASTER_KEY, TEST_NFC_UID, 12, cmac)

    def test_verify_rejects_other_uid(self):
        """Test a MAC from one tag does not verify for another."""
        cmac = sign_tap(TEST_NFC_UID, 11)
        assert not verify_sun_mac(MASTER_KEY, "04A1B2C3D4E5F7", 11, cmac)

    def test_verify_rejects_other_master_key(self):
        """Test MACs made with a different master key fail."""
        cmac = sign_tap(TEST_NFC_UID, 11, master_key_hex="FF" * 16)
        assert not verify_sun_mac(MASTER_KEY, TEST_NFC_UID, 11, cmac)

    @pytest.mark.parametrize("uid, counter, cmac", [
        ("PROTO_001", 11, "00" * 8),          # UID not hex
        ("04A1B2", 11, "00" * 8),             # UID too short
        (TEST_NFC_UID, 0x1000000, "00" * 8),  # counter beyond 24 bits
        (TEST_NFC_UID, 11, "not-hex"),        # MAC not hex
        (TEST_NFC_UID, 11, "00" * 4),         # MAC truncated
    ])
    def test_verify_rejects_malformed_input(self, uid, counter, cmac):
        """Test malformed inputs fail verification instead of raising."""
        assert not verify_sun_mac(MASTER_KEY, uid, counter, cmac)

    def test_compute_rejects_bad_uid_length(self):
        """Test MAC computation requires a 7-byte UID."""
        with pytest.raises(ValueError):
            compute_sun_mac(MASTER_KEY, b"\x04\x01", 1)


class TestValidateAuthenticity:
    """Test mode handling of the authenticity check."""

    def test_prod_valid(self, test_settings):
        """Test genuine prod tap passes."""
        tap = TapEvent(uid=TEST_NFC_UID, counter=11, cmac=sign_tap(TEST_NFC_UID, 11), mode=TapMode.PROD)
        validate_authenticity(tap, test_settings)

    def test_prod_invalid(self, test_settings):
        """Test forged prod tap fails with InvalidSignature."""
        tap = TapEvent(uid=TEST_NFC_UID, counter=11, cmac="00" * 8, mode=TapMode.PROD)
        with pytest.raises(InvalidSignature) as exc_info:
            validate_authenticity(tap, test_settings)
        assert exc_info.value.security_event == "invalid_signature"

    def test_prod_missing_cmac(self, test_settings):
        """Test prod tap without cmac is a missing parameter."""
        tap = TapEvent(uid=TEST_NFC_UID, counter=11, mode=TapMode.PROD)
        with pytest.raises(MissingParameterError):
            validate_authenticity(tap, test_settings)

    def test_prod_missing_counter(self, test_settings):
        """Test prod tap without counter is a missing parameter."""
        tap = TapEvent(uid=TEST_NFC_UID, cmac="00" * 8, mode=TapMode.PROD)
        with pytest.raises(MissingParameterError):
            validate_authenticity(tap, test_settings)

    def test_prod_without_master_key_fails_closed(self, test_settings):
        """Test prod taps are rejected, not accepted, when no key is configured."""
        test_settings.nfc_master_key = None
        tap = TapEvent(uid=TEST_NFC_UID, counter=11, cmac=sign_tap(TEST_NFC_UID, 11), mode=TapMode.PROD)
        with pytest.raises(InternalError):
            validate_authenticity(tap, test_settings)

    def test_dev_bypasses_signature(self, test_settings):
        """Test dev taps skip MAC checks regardless of cmac content."""
        for cmac in (None, "garbage", "00" * 8):
            tap = TapEvent(uid="PROTO_001", counter=4, cmac=cmac, mode=TapMode.DEV)
            with patch("app.services.sun_validator.verify_sun_mac") as mock_verify:
                validate_authenticity(tap, test_settings)
                mock_verify.assert_not_called()

    def test_dev_rejected_when_disabled(self, test_settings):
        """Test dev taps fail when the deployment has not enabled them."""
        test_settings.allow_dev_taps = False
        tap = TapEvent(uid="PROTO_001", counter=4, mode=TapMode.DEV)
        with pytest.raises(InvalidSignature) as exc_info:
            validate_authenticity(tap, test_settings)
        assert exc_info.value.security_event == "dev_mode_disabled"
