"""Tests for prototype device provisioning."""
import json
import pytest
from urllib.parse import urlparse, parse_qs

from app.db.models import NfcDevice, DeviceStatus
from app.db.seed_devices import (
    PROTOTYPE_DEVICES, build_tap_url, seed_prototype_devices, build_manifest, main
)


class TestBuildTapUrl:

    def test_dev_url(self):
        url = build_tap_url("https://api.example.com/api/v1/verify-tap", "PROTO_001")
        assert url == "https://api.example.com/api/v1/verify-tap?uid=PROTO_001&mode=dev"

    def test_prod_url(self):
        url = build_tap_url("https://x/verify-tap", "04A1B2C3D4E5F6", mode="prod", counter=7, cmac="94EED9EE65337086")
        query = parse_qs(urlparse(url).query)
        assert query == {
            "uid": ["04A1B2C3D4E5F6"],
            "counter": ["7"],
            "cmac": ["94EED9EE65337086"],
            "mode": ["prod"],
        }


class TestSeedPrototypeDevices:

    def test_seed_registers_all_devices(self, test_db):
        devices = seed_prototype_devices(test_db, restaurant_id="restaurant-1")

        assert len(devices) == len(PROTOTYPE_DEVICES)
        stored = test_db.query(NfcDevice).all()
        assert {d.uid_hex for d in stored} == {d["uid"] for d in PROTOTYPE_DEVICES}
        for device in stored:
            assert device.device_type == "qr_mock"
            assert device.status == DeviceStatus.ACTIVE
            assert device.last_counter == 0
            assert device.assigned_restaurant_id == "restaurant-1"

    def test_seed_is_idempotent(self, test_db):
        """Test re-seeding keeps existing devices and their counters."""
        seed_prototype_devices(test_db)
        device = test_db.query(NfcDevice).filter(NfcDevice.uid_hex == "PROTO_001").one()
        device.last_counter = 12
        test_db.commit()

        seed_prototype_devices(test_db)

        assert test_db.query(NfcDevice).count() == len(PROTOTYPE_DEVICES)
        test_db.expire_all()
        device = test_db.query(NfcDevice).filter(NfcDevice.uid_hex == "PROTO_001").one()
        assert device.last_counter == 12


class TestManifest:

    def test_manifest_structure(self):
        manifest = build_manifest("https://api.example.com/api/v1/verify-tap")

        assert manifest["mode"] == "dev"
        assert manifest["baseUrl"] == "https://api.example.com/api/v1/verify-tap"
        assert [d["id"] for d in manifest["devices"]] == [d["uid"] for d in PROTOTYPE_DEVICES]
        assert all("mode=dev" in d["url"] for d in manifest["devices"])
        assert "generatedAt" in manifest

    def test_main_without_db(self, capsys):
        manifest = main(["--no-db", "--base-url", "https://tap.example.com/api/v1/verify-tap"])

        output = capsys.readouterr().out
        assert "PROTO_005" in output
        assert "Security note" in output
        assert manifest["baseUrl"] == "https://tap.example.com/api/v1/verify-tap"
        # Manifest JSON is printed last
        printed = json.loads(output[output.index("{"):])
        assert printed["devices"][0]["id"] == "PROTO_001"
