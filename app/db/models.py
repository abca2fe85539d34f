from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, JSON, Index, Enum as SQLEnum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from datetime import datetime
import uuid
import enum

from app.db.session import Base


def generate_uuid():
    """Generate a UUID string."""
    return str(uuid.uuid4())


class DeviceStatus(str, enum.Enum):
    """Device lifecycle status."""
    ACTIVE = "active"
    INACTIVE = "inactive"
    REVOKED = "revoked"


class TransactionSource(str, enum.Enum):
    """How a loyalty transaction was created."""
    TAP = "tap"
    CLAIM = "claim"


class SecurityEventType(str, enum.Enum):
    """Security event types."""
    INVALID_SIGNATURE = "invalid_signature"
    REPLAY_ATTACK = "replay_attack"
    DEV_MODE_DISABLED = "dev_mode_disabled"


class NfcDevice(Base):
    """Physical NFC tag (or prototype QR card) that customers tap."""

    __tablename__ = "nfc_devices"

    id = Column(String, primary_key=True, default=generate_uuid)
    uid_hex = Column(String, unique=True, nullable=False, index=True)
    device_type = Column(String, nullable=False, default="ntag424_dna")
    # Highest counter ever accepted; only ever raised through a conditional update
    last_counter = Column(Integer, nullable=False, default=0)
    status = Column(SQLEnum(DeviceStatus), nullable=False, default=DeviceStatus.ACTIVE, index=True)
    assigned_restaurant_id = Column(String, nullable=True)
    label = Column(String, nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    transactions = relationship("LoyaltyTransaction", back_populates="device")


class LoyaltyTransaction(Base):
    """Append-only ledger of awarded stamps."""

    __tablename__ = "loyalty_transactions"
    __table_args__ = (
        Index("ix_loyalty_transactions_device_created", "device_id", "created_at"),
    )

    id = Column(String, primary_key=True, default=generate_uuid)
    user_id = Column(String, nullable=False, index=True)
    device_id = Column(String, ForeignKey("nfc_devices.id"), nullable=False)
    restaurant_id = Column(String, nullable=True, index=True)
    stamps = Column(Integer, nullable=False, default=1)
    source = Column(SQLEnum(TransactionSource), nullable=False, default=TransactionSource.TAP)
    tap_metadata = Column("metadata", JSON, nullable=False, default=dict)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    device = relationship("NfcDevice", back_populates="transactions")


class PendingReward(Base):
    """Stamp from an anonymous tap, waiting for the customer to log in."""

    __tablename__ = "pending_rewards"
    __table_args__ = (
        Index("ix_pending_rewards_device_created", "device_id", "created_at"),
    )

    id = Column(String, primary_key=True, default=generate_uuid)
    token_hash = Column(String, unique=True, nullable=False, index=True)
    device_id = Column(String, ForeignKey("nfc_devices.id"), nullable=False)
    restaurant_id = Column(String, nullable=True)
    tap_metadata = Column("metadata", JSON, nullable=False, default=dict)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    expires_at = Column(DateTime, nullable=False)
    claimed_at = Column(DateTime, nullable=True)
    claimed_by = Column(String, nullable=True)

    device = relationship("NfcDevice")

    def is_redeemable(self, now: datetime) -> bool:
        """Check if claim is unclaimed and not yet expired."""
        return self.claimed_at is None and now < self.expires_at


class SecurityEvent(Base):
    """Audit trail of rejected taps that look like attacks."""

    __tablename__ = "security_events"

    id = Column(String, primary_key=True, default=generate_uuid)
    device_id = Column(String, ForeignKey("nfc_devices.id", ondelete="SET NULL"), nullable=True, index=True)
    event_type = Column(SQLEnum(SecurityEventType), nullable=False, index=True)
    tap_params = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
