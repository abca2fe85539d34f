"""Pytest configuration and fixtures."""
import pytest
import os
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient
from typing import Callable, Generator

# Set test environment variables BEFORE importing app modules
# This prevents pydantic-settings from trying to read .env file
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["NFC_MASTER_KEY"] = "000102030405060708090A0B0C0D0E0F"
os.environ["AUTH_JWT_SECRET"] = "test-jwt-secret-for-testing-only-0123456789"
os.environ["ALLOW_DEV_TAPS"] = "true"

# Import models first to ensure they're registered with Base.metadata
from app.db.models import NfcDevice, LoyaltyTransaction, PendingReward, SecurityEvent, DeviceStatus
from app.db.session import Base, get_db
from app.main import app
from app.api.deps import get_settings
from app.core.config import Settings, settings

from utils import TEST_NFC_UID, make_access_token, sign_tap


@pytest.fixture(scope="function")
def test_db() -> Generator[Session, None, None]:
    """Create a test database session."""
    # One shared in-memory connection so the app thread sees the fixture data
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    _ = NfcDevice, LoyaltyTransaction, PendingReward, SecurityEvent
    Base.metadata.create_all(bind=engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db

    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        app.dependency_overrides.clear()
        engine.dispose()


@pytest.fixture
def test_settings() -> Settings:
    """A private copy of the settings that a test may modify."""
    return settings.model_copy()


@pytest.fixture(scope="function")
def client(test_db: Session, test_settings: Settings) -> Generator[TestClient, None, None]:
    """Create a test client that does not follow redirects."""
    app.dependency_overrides[get_settings] = lambda: test_settings
    with TestClient(app, follow_redirects=False) as test_client:
        yield test_client


@pytest.fixture
def test_device(test_db: Session) -> NfcDevice:
    """Registered prototype QR device with last_counter=3."""
    device = NfcDevice(
        uid_hex="PROTO_001",
        device_type="qr_mock",
        last_counter=3,
        status=DeviceStatus.ACTIVE,
        assigned_restaurant_id="restaurant-1",
        label="Main Counter"
    )
    test_db.add(device)
    test_db.commit()
    test_db.refresh(device)
    return device


@pytest.fixture
def nfc_device(test_db: Session) -> NfcDevice:
    """Registered NTAG 424 DNA device with last_counter=10."""
    device = NfcDevice(
        uid_hex=TEST_NFC_UID,
        device_type="ntag424_dna",
        last_counter=10,
        status=DeviceStatus.ACTIVE,
        assigned_restaurant_id="restaurant-1"
    )
    test_db.add(device)
    test_db.commit()
    test_db.refresh(device)
    return device


@pytest.fixture
def access_token() -> str:
    """Valid bearer token for user-123."""
    return make_access_token("user-123")


@pytest.fixture
def auth_headers(access_token: str) -> dict:
    return {"Authorization": f"Bearer {access_token}"}


@pytest.fixture
def signed_tap() -> Callable[[int], str]:
    """Return a function producing the genuine cmac for TEST_NFC_UID at a counter."""
    def _sign(counter: int, uid: str = TEST_NFC_UID) -> str:
        return sign_tap(uid, counter)
    return _sign
