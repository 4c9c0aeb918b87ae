"""
SQLAlchemy models for the device registry tables the engine reads and writes.

devices, ownership_history, device_events, reports are read to assemble a
DeviceHistory; trust_scores and device_fingerprints are upserted (one row per
device, last write wins).
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()

DEVICE_STATUS_CLEAN = "clean"
DEVICE_STATUS_FLAGGED = "flagged"
DEVICE_STATUS_UNDER_INVESTIGATION = "under_investigation"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Device(Base):
    """
    Registered device. current_trust_score / risk_category mirror the latest
    trust_scores row for listing; the engine never reads them back.
    """

    __tablename__ = "devices"

    id = Column(Integer, primary_key=True, autoincrement=True)
    serial_number = Column(String(255), unique=True, nullable=False, index=True)
    imei = Column(String(32), unique=True, nullable=True, index=True)
    device_name = Column(String(255), nullable=False, default="")
    brand = Column(String(100), nullable=True)
    model = Column(String(100), nullable=True)
    status = Column(String(32), nullable=False, default=DEVICE_STATUS_CLEAN)
    current_trust_score = Column(Integer, nullable=False, default=50)
    risk_category = Column(String(20), nullable=False, default="medium")
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "serialNumber": self.serial_number,
            "imei": self.imei,
            "deviceName": self.device_name,
            "brand": self.brand,
            "model": self.model,
            "status": self.status,
            "currentTrustScore": self.current_trust_score,
            "riskCategory": self.risk_category,
        }


class OwnershipHistory(Base):
    __tablename__ = "ownership_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    device_id = Column(Integer, ForeignKey("devices.id", ondelete="CASCADE"), nullable=False, index=True)
    owner_alias = Column(String(255), nullable=False, default="")
    transfer_date = Column(DateTime(timezone=True), nullable=False, default=_utcnow, index=True)
    is_current_owner = Column(Boolean, nullable=False, default=False)


class DeviceEventRow(Base):
    __tablename__ = "device_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    device_id = Column(Integer, ForeignKey("devices.id", ondelete="CASCADE"), nullable=False, index=True)
    event_type = Column(String(100), nullable=False)
    event_description = Column(Text, nullable=True)
    event_date = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    verified = Column(Boolean, nullable=False, default=False)


class Report(Base):
    """Dispute filed against a device (stolen, fraud, tampered, other)."""

    __tablename__ = "reports"

    id = Column(Integer, primary_key=True, autoincrement=True)
    device_id = Column(Integer, ForeignKey("devices.id", ondelete="CASCADE"), nullable=False, index=True)
    reporter_alias = Column(String(255), nullable=False, default="")
    report_type = Column(String(100), nullable=False)
    status = Column(String(50), nullable=False, default="pending")
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, index=True)


class TrustScoreRow(Base):
    __tablename__ = "trust_scores"

    id = Column(Integer, primary_key=True, autoincrement=True)
    device_id = Column(Integer, ForeignKey("devices.id", ondelete="CASCADE"), unique=True, nullable=False)
    score = Column(Integer, nullable=False)
    risk_category = Column(String(20), nullable=False)
    ownership_continuity_score = Column(Integer, nullable=False, default=0)
    history_completeness_score = Column(Integer, nullable=False, default=0)
    repair_history_score = Column(Integer, nullable=False, default=0)
    dispute_penalty = Column(Integer, nullable=False, default=0)
    calculated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)


class DeviceFingerprintRow(Base):
    __tablename__ = "device_fingerprints"

    id = Column(Integer, primary_key=True, autoincrement=True)
    device_id = Column(Integer, ForeignKey("devices.id", ondelete="CASCADE"), unique=True, nullable=False)
    fingerprint_hash = Column(String(64), nullable=False, index=True)
    sensor_patterns = Column(JSON, nullable=True)
    cpu_gpu_id = Column(String(255), nullable=True)
    mac_addresses = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
