"""
Provision the prototype QR devices and print their dev-mode tap URLs.

Usage:
    python -m app.db.seed_devices
    python -m app.db.seed_devices --base-url https://api.example.com/api/v1/verify-tap

Dev-mode URLs are static and reusable: anyone holding one can earn stamps
(subject to the rate limit). Only hand them to trusted staff, and only on
deployments with ALLOW_DEV_TAPS enabled.
"""
import argparse
import json
import logging
from datetime import datetime
from typing import List, Dict, Optional
from urllib.parse import urlencode
from sqlalchemy.orm import Session

from app.db.models import NfcDevice, DeviceStatus

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:8000/api/v1/verify-tap"

PROTOTYPE_DEVICES = [
    {"uid": "PROTO_001", "label": "Main Counter (Garzón 1)"},
    {"uid": "PROTO_002", "label": "Bar Area (Garzón 2)"},
    {"uid": "PROTO_003", "label": "Takeout/Delivery"},
    {"uid": "PROTO_004", "label": "Manager Device (Testing)"},
    {"uid": "PROTO_005", "label": "Spare"},
]


def build_tap_url(
    base_url: str,
    uid: str,
    mode: str = "dev",
    counter: Optional[int] = None,
    cmac: Optional[str] = None
) -> str:
    """Build the URL a tag (or QR card) opens when tapped."""
    params = {"uid": uid}
    if counter is not None:
        params["counter"] = counter
    if cmac is not None:
        params["cmac"] = cmac
    params["mode"] = mode
    return f"{base_url}?{urlencode(params)}"


def seed_prototype_devices(db: Session, restaurant_id: Optional[str] = None) -> List[NfcDevice]:
    """
    Register the prototype QR devices (idempotent).

    Existing devices are left untouched so their counters are preserved.
    """
    devices = []
    for spec in PROTOTYPE_DEVICES:
        device = db.query(NfcDevice).filter(NfcDevice.uid_hex == spec["uid"]).first()
        if device is None:
            device = NfcDevice(
                uid_hex=spec["uid"],
                device_type="qr_mock",
                label=spec["label"],
                status=DeviceStatus.ACTIVE,
                assigned_restaurant_id=restaurant_id,
                last_counter=0
            )
            db.add(device)
            logger.info(f"Registered prototype device {spec['uid']}")
        devices.append(device)
    db.commit()
    return devices


def build_manifest(base_url: str) -> Dict:
    """JSON manifest of the prototype devices and their dev-mode URLs."""
    return {
        "baseUrl": base_url,
        "mode": "dev",
        "devices": [
            {"id": d["uid"], "label": d["label"], "url": build_tap_url(base_url, d["uid"])}
            for d in PROTOTYPE_DEVICES
        ],
        "generatedAt": datetime.utcnow().isoformat(),
    }


def main(argv: Optional[List[str]] = None) -> Dict:
    parser = argparse.ArgumentParser(description="Provision prototype QR devices and print their tap URLs")
    parser.add_argument("--base-url", default=DEFAULT_BASE_URL, help="Public URL of the verify-tap endpoint")
    parser.add_argument("--restaurant-id", default=None, help="Restaurant to assign new devices to")
    parser.add_argument("--no-db", action="store_true", help="Only print URLs, do not touch the database")
    args = parser.parse_args(argv)

    if not args.no_db:
        from app.db.init_db import init_db
        from app.db.session import SessionLocal

        init_db()
        db = SessionLocal()
        try:
            seed_prototype_devices(db, args.restaurant_id)
        finally:
            db.close()

    manifest = build_manifest(args.base_url)
    print(f"Base URL: {manifest['baseUrl']}")
    print("Mode: DEV (QR mock)")
    for index, device in enumerate(manifest["devices"], start=1):
        print(f"\nDevice {index}: {device['id']}")
        print(f"   Purpose: {device['label']}")
        print(f"   URL: {device['url']}")
    print("\nSecurity note: DEV mode URLs are static and reusable. Only use for controlled testing with trusted staff.")
    print(json.dumps(manifest, indent=2, ensure_ascii=False))
    return manifest


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
    main()
