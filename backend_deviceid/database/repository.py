"""
Storage collaborator for the trust and identity engine.

Loads DeviceHistory snapshots and the fingerprint catalog, and upserts the
engine's outputs (trust score, fingerprint) keyed by device id. Rows are
mapped to engine dataclasses inside the session so callers never hold ORM
objects.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from backend_deviceid.analysis_engine.models import (
    EVENT_FINGERPRINT_CREATED,
    CatalogEntry,
    DeviceEvent,
    DeviceFingerprint,
    DeviceHistory,
    Dispute,
    OwnershipRecord,
    RiskCategory,
    TrustScoreComponents,
    TrustScoreResult,
    as_utc,
)
from backend_deviceid.core.exceptions import DeviceNotFoundError, InvalidIdentifierError
from backend_deviceid.database.connection import session_scope
from backend_deviceid.database.models import (
    DEVICE_STATUS_CLEAN,
    DEVICE_STATUS_FLAGGED,
    DEVICE_STATUS_UNDER_INVESTIGATION,
    Device,
    DeviceEventRow,
    DeviceFingerprintRow,
    OwnershipHistory,
    Report,
    TrustScoreRow,
)
from backend_deviceid.deviceid_logging import get_logger

logger = get_logger(__name__)

IDENTIFIER_SERIAL = "serial"
IDENTIFIER_IMEI = "imei"

# Report type -> device status it escalates to; other types leave status alone
REPORT_STATUS_ESCALATION = {
    "stolen": DEVICE_STATUS_FLAGGED,
    "fraud": DEVICE_STATUS_FLAGGED,
    "suspicious": DEVICE_STATUS_UNDER_INVESTIGATION,
    "tampered": DEVICE_STATUS_UNDER_INVESTIGATION,
}
_STATUS_SEVERITY = {
    DEVICE_STATUS_CLEAN: 0,
    DEVICE_STATUS_UNDER_INVESTIGATION: 1,
    DEVICE_STATUS_FLAGGED: 2,
}


def _utc(value: datetime | None) -> datetime:
    return as_utc(value) if value is not None else datetime.now(timezone.utc)


def _fingerprint_from_row(row: DeviceFingerprintRow) -> DeviceFingerprint:
    return DeviceFingerprint(
        sensor_patterns=row.sensor_patterns or None,
        cpu_gpu_id=row.cpu_gpu_id or None,
        mac_addresses=frozenset(row.mac_addresses or ()),
    )


def _trust_score_from_row(row: TrustScoreRow) -> TrustScoreResult:
    return TrustScoreResult(
        score=row.score,
        risk_category=RiskCategory(row.risk_category),
        components=TrustScoreComponents(
            ownership_continuity=row.ownership_continuity_score,
            history_completeness=row.history_completeness_score,
            repair_history=row.repair_history_score,
            dispute_penalty=row.dispute_penalty,
        ),
        calculated_at=as_utc(row.calculated_at),
        device_id=row.device_id,
    )


class DeviceRepository:
    """SQLAlchemy-backed device registry storage."""

    def __init__(self, session_factory: sessionmaker | None = None) -> None:
        self._session_factory = session_factory

    def _scope(self):
        return session_scope(self._session_factory)

    @staticmethod
    def _require_device(session: Session, device_id: int) -> Device:
        device = session.get(Device, device_id)
        if device is None:
            raise DeviceNotFoundError(device_id)
        return device

    # ------------------------------------------------------------------
    # Devices and history rows
    # ------------------------------------------------------------------

    def add_device(
        self,
        serial_number: str,
        *,
        imei: str | None = None,
        device_name: str = "",
        brand: str | None = None,
        model: str | None = None,
        status: str = DEVICE_STATUS_CLEAN,
    ) -> int:
        """Insert a device and return its id. Raises IntegrityError on duplicate serial/IMEI."""
        serial_number = (serial_number or "").strip()
        if not serial_number:
            raise ValueError("serial_number must be non-empty")
        with self._scope() as session:
            device = Device(
                serial_number=serial_number,
                imei=(imei or "").strip() or None,
                device_name=device_name,
                brand=brand,
                model=model,
                status=status,
            )
            session.add(device)
            session.flush()
            device_id = device.id
        logger.info("device_added", device_id=device_id)
        return device_id

    def get_device(self, device_id: int) -> dict[str, Any] | None:
        with self._scope() as session:
            device = session.get(Device, device_id)
            return device.to_dict() if device else None

    def find_device_by_identifier(self, identifier: str, identifier_type: str) -> dict[str, Any] | None:
        """Look up a device by serial number or IMEI; None when absent."""
        if identifier_type == IDENTIFIER_SERIAL:
            column = Device.serial_number
        elif identifier_type == IDENTIFIER_IMEI:
            column = Device.imei
        else:
            raise InvalidIdentifierError(identifier_type)
        identifier = (identifier or "").strip()
        if not identifier:
            return None
        with self._scope() as session:
            device = session.query(Device).filter(column == identifier).first()
            return device.to_dict() if device else None

    def list_device_ids(self) -> list[int]:
        with self._scope() as session:
            return [row[0] for row in session.query(Device.id).order_by(Device.id).all()]

    def add_ownership_record(
        self,
        device_id: int,
        transfer_date: datetime | None = None,
        *,
        is_current_owner: bool = True,
        owner_alias: str = "",
    ) -> None:
        """Record a transfer. A new current owner clears the flag on earlier records."""
        with self._scope() as session:
            self._require_device(session, device_id)
            if is_current_owner:
                session.query(OwnershipHistory).filter(
                    OwnershipHistory.device_id == device_id,
                    OwnershipHistory.is_current_owner.is_(True),
                ).update({"is_current_owner": False}, synchronize_session=False)
            session.add(
                OwnershipHistory(
                    device_id=device_id,
                    owner_alias=owner_alias,
                    transfer_date=_utc(transfer_date),
                    is_current_owner=is_current_owner,
                )
            )

    def add_event(
        self,
        device_id: int,
        event_type: str,
        *,
        verified: bool = False,
        description: str | None = None,
        event_date: datetime | None = None,
    ) -> None:
        with self._scope() as session:
            self._require_device(session, device_id)
            session.add(
                DeviceEventRow(
                    device_id=device_id,
                    event_type=event_type,
                    event_description=description,
                    event_date=_utc(event_date),
                    verified=verified,
                )
            )

    def add_report(
        self,
        device_id: int,
        report_type: str,
        *,
        status: str = "pending",
        created_at: datetime | None = None,
        reporter_alias: str = "",
    ) -> str:
        """
        File a dispute and escalate the device status in the same transaction.

        stolen/fraud flag the device; suspicious/tampered put it under
        investigation. A status is never downgraded. Returns the device status.
        """
        with self._scope() as session:
            device = self._require_device(session, device_id)
            session.add(
                Report(
                    device_id=device_id,
                    report_type=report_type,
                    status=status,
                    created_at=_utc(created_at),
                    reporter_alias=reporter_alias,
                )
            )
            escalated = REPORT_STATUS_ESCALATION.get(report_type)
            if escalated and _STATUS_SEVERITY[escalated] > _STATUS_SEVERITY.get(device.status, 0):
                logger.info(
                    "device_status_changed",
                    device_id=device_id,
                    old_status=device.status,
                    new_status=escalated,
                    report_type=report_type,
                )
                device.status = escalated
            return device.status

    # ------------------------------------------------------------------
    # Engine boundary
    # ------------------------------------------------------------------

    def load_device_history(self, device_id: int) -> DeviceHistory:
        """Ownership (newest first), events and reports for one device."""
        with self._scope() as session:
            self._require_device(session, device_id)
            ownership = (
                session.query(OwnershipHistory)
                .filter(OwnershipHistory.device_id == device_id)
                .order_by(OwnershipHistory.transfer_date.desc(), OwnershipHistory.id.desc())
                .all()
            )
            events = (
                session.query(DeviceEventRow)
                .filter(DeviceEventRow.device_id == device_id)
                .order_by(DeviceEventRow.id)
                .all()
            )
            reports = (
                session.query(Report)
                .filter(Report.device_id == device_id)
                .order_by(Report.id)
                .all()
            )
            return DeviceHistory(
                ownership_records=[
                    OwnershipRecord(as_utc(o.transfer_date), bool(o.is_current_owner)) for o in ownership
                ],
                events=[DeviceEvent(e.event_type, bool(e.verified)) for e in events],
                disputes=[Dispute(r.report_type, r.status or "", as_utc(r.created_at)) for r in reports],
            )

    def load_fingerprint_catalog(self) -> list[CatalogEntry]:
        """Every stored fingerprint with its hash, in device id order."""
        with self._scope() as session:
            rows = session.query(DeviceFingerprintRow).order_by(DeviceFingerprintRow.device_id).all()
            return [
                CatalogEntry(row.device_id, _fingerprint_from_row(row), row.fingerprint_hash)
                for row in rows
            ]

    def get_fingerprint(self, device_id: int) -> CatalogEntry | None:
        with self._scope() as session:
            row = (
                session.query(DeviceFingerprintRow)
                .filter(DeviceFingerprintRow.device_id == device_id)
                .first()
            )
            if row is None:
                return None
            return CatalogEntry(row.device_id, _fingerprint_from_row(row), row.fingerprint_hash)

    def get_trust_score(self, device_id: int) -> TrustScoreResult | None:
        with self._scope() as session:
            row = session.query(TrustScoreRow).filter(TrustScoreRow.device_id == device_id).first()
            return _trust_score_from_row(row) if row else None

    def persist_trust_score(self, device_id: int, result: TrustScoreResult) -> None:
        """
        Upsert the trust_scores row and mirror score/risk onto the device row.
        Concurrent writers for the same device: last write wins.
        """
        values = {
            "score": result.score,
            "risk_category": result.risk_category.value,
            "ownership_continuity_score": result.components.ownership_continuity,
            "history_completeness_score": result.components.history_completeness,
            "repair_history_score": result.components.repair_history,
            "dispute_penalty": result.components.dispute_penalty,
            "calculated_at": as_utc(result.calculated_at),
        }
        try:
            self._upsert_trust_score(device_id, values)
        except IntegrityError:
            # Another writer inserted first; retry as an update
            logger.debug("trust_score_upsert_retry", device_id=device_id)
            self._upsert_trust_score(device_id, values)
        logger.info(
            "trust_score_persisted",
            device_id=device_id,
            score=result.score,
            risk_category=result.risk_category.value,
        )

    def _upsert_trust_score(self, device_id: int, values: dict[str, Any]) -> None:
        with self._scope() as session:
            device = self._require_device(session, device_id)
            row = session.query(TrustScoreRow).filter(TrustScoreRow.device_id == device_id).first()
            if row is None:
                session.add(TrustScoreRow(device_id=device_id, **values))
            else:
                for key, value in values.items():
                    setattr(row, key, value)
            device.current_trust_score = values["score"]
            device.risk_category = values["risk_category"]

    def persist_fingerprint(
        self,
        device_id: int,
        fingerprint: DeviceFingerprint,
        fingerprint_hash: str,
    ) -> None:
        """Upsert the device's fingerprint (overwrite, no history) and log a verified event."""
        values = {
            "fingerprint_hash": fingerprint_hash,
            "sensor_patterns": (
                {k: list(v) for k, v in fingerprint.sensor_patterns.items()}
                if fingerprint.sensor_patterns is not None
                else None
            ),
            "cpu_gpu_id": fingerprint.cpu_gpu_id,
            "mac_addresses": sorted(fingerprint.mac_addresses),
            "created_at": datetime.now(timezone.utc),
        }
        with self._scope() as session:
            self._require_device(session, device_id)
            row = (
                session.query(DeviceFingerprintRow)
                .filter(DeviceFingerprintRow.device_id == device_id)
                .first()
            )
            if row is None:
                session.add(DeviceFingerprintRow(device_id=device_id, **values))
            else:
                for key, value in values.items():
                    setattr(row, key, value)
            session.add(
                DeviceEventRow(
                    device_id=device_id,
                    event_type=EVENT_FINGERPRINT_CREATED,
                    event_description="Device fingerprint generated",
                    verified=True,
                )
            )
        logger.info("fingerprint_persisted", device_id=device_id, fingerprint_hash=fingerprint_hash[:16])
