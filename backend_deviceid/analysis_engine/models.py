"""
Domain models for the trust and identity engine.

Inputs (DeviceHistory, DeviceFingerprint) are assembled by the caller from
storage; outputs (TrustScoreResult, MatchCandidate) are built fresh per call.
to_dict() uses the camelCase field names the HTTP layer serializes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable, Mapping, NamedTuple, Sequence


class RiskCategory(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class MatchType(str, Enum):
    EXACT = "exact"
    PARTIAL = "partial"
    NONE = "none"


class VerificationResult(str, Enum):
    VERIFIED = "verified"
    SUSPICIOUS = "suspicious"
    NOT_FOUND = "not_found"


EVENT_REGISTRATION = "registration"
EVENT_PURCHASE = "purchase"
EVENT_REPAIR = "repair"
EVENT_FINGERPRINT_CREATED = "fingerprint_created"

REPORT_STOLEN = "stolen"
REPORT_FRAUD = "fraud"
REPORT_TAMPERED = "tampered"
REPORT_OTHER = "other"

STATUS_VERIFIED = "verified"


def as_utc(value: datetime) -> datetime:
    """Naive datetimes are treated as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class OwnershipRecord:
    transfer_date: datetime
    is_current_owner: bool = False


@dataclass(frozen=True)
class DeviceEvent:
    event_type: str
    verified: bool = False


@dataclass(frozen=True)
class Dispute:
    """Third-party report against a device; status other than 'verified' counts as unverified."""

    report_type: str
    status: str
    created_at: datetime

    @property
    def is_verified(self) -> bool:
        return self.status == STATUS_VERIFIED


@dataclass(frozen=True)
class DeviceHistory:
    """
    Snapshot of a device's stored history.

    ownership_records: newest first; at most one has is_current_owner=True.
    events: no ordering requirement.
    disputes: reports filed against the device.
    """

    ownership_records: tuple[OwnershipRecord, ...] = ()
    events: tuple[DeviceEvent, ...] = ()
    disputes: tuple[Dispute, ...] = ()

    def __post_init__(self) -> None:
        # Accept lists from callers; store immutable tuples
        object.__setattr__(self, "ownership_records", tuple(self.ownership_records or ()))
        object.__setattr__(self, "events", tuple(self.events or ()))
        object.__setattr__(self, "disputes", tuple(self.disputes or ()))

    @property
    def is_empty(self) -> bool:
        return not (self.ownership_records or self.events or self.disputes)

    @property
    def current_owner(self) -> OwnershipRecord | None:
        for record in self.ownership_records:
            if record.is_current_owner:
                return record
        return None

    @property
    def verified_event_count(self) -> int:
        return sum(1 for e in self.events if e.verified)


@dataclass(frozen=True)
class TrustScoreComponents:
    ownership_continuity: int = 0
    history_completeness: int = 0
    repair_history: int = 0
    dispute_penalty: int = 0

    @property
    def total(self) -> int:
        return (
            self.ownership_continuity
            + self.history_completeness
            + self.repair_history
            + self.dispute_penalty
        )

    def to_dict(self) -> dict[str, int]:
        return {
            "ownershipContinuity": self.ownership_continuity,
            "historyCompleteness": self.history_completeness,
            "repairHistory": self.repair_history,
            "disputePenalty": self.dispute_penalty,
        }


@dataclass(frozen=True)
class TrustScoreResult:
    """
    Clamped trust score plus the breakdown that produced it.

    score: int in [0, 100].
    risk_category: derived from score (low >= 80, medium >= 50, else high).
    components: individually bounded parts; score = clamp(total + base).
    calculated_at: when the computation ran (the `now` it was given).
    """

    score: int
    risk_category: RiskCategory
    components: TrustScoreComponents
    calculated_at: datetime
    device_id: int | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "score": self.score,
            "riskCategory": self.risk_category.value,
            "components": self.components.to_dict(),
            "calculatedAt": self.calculated_at.isoformat(),
        }
        if self.device_id is not None:
            out["deviceId"] = self.device_id
        return out


def _float_list(values: Iterable[Any]) -> list[float]:
    return [float(v) for v in values]


@dataclass(frozen=True)
class DeviceFingerprint:
    """
    Hardware/sensor signal bundle used to re-identify a device.

    sensor_patterns: optional named vectors (accelerometer, gyroscope, magnetometer).
    cpu_gpu_id: optional opaque identifier.
    mac_addresses: order-insensitive set.
    """

    sensor_patterns: Mapping[str, Sequence[float]] | None = None
    cpu_gpu_id: str | None = None
    mac_addresses: frozenset[str] = frozenset()

    def __post_init__(self) -> None:
        if self.sensor_patterns is not None:
            patterns = {
                name: tuple(_float_list(values))
                for name, values in self.sensor_patterns.items()
                if values is not None
            }
            object.__setattr__(self, "sensor_patterns", patterns)
        object.__setattr__(self, "mac_addresses", frozenset(self.mac_addresses or ()))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> DeviceFingerprint:
        """Build from camelCase (API) or snake_case (storage) keys."""
        data = data or {}
        sensors = data.get("sensorPatterns", data.get("sensor_patterns"))
        cpu_gpu = data.get("cpuGpuId", data.get("cpu_gpu_id"))
        macs = data.get("macAddresses", data.get("mac_addresses")) or ()
        return cls(
            sensor_patterns=dict(sensors) if sensors else None,
            cpu_gpu_id=cpu_gpu or None,
            mac_addresses=frozenset(macs),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "sensorPatterns": (
                {k: list(v) for k, v in self.sensor_patterns.items()}
                if self.sensor_patterns is not None
                else None
            ),
            "cpuGpuId": self.cpu_gpu_id,
            "macAddresses": sorted(self.mac_addresses),
        }


class CatalogEntry(NamedTuple):
    """One stored fingerprint; fingerprint_hash is computed on demand when None."""

    device_id: int
    fingerprint: DeviceFingerprint
    fingerprint_hash: str | None = None


@dataclass(frozen=True)
class MatchCandidate:
    """Scored guess that a submitted fingerprint belongs to a catalogued device."""

    device_id: int
    match_score: int
    match_type: MatchType
    matched_components: tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        object.__setattr__(self, "matched_components", tuple(self.matched_components))

    def to_dict(self) -> dict[str, Any]:
        return {
            "deviceId": self.device_id,
            "matchScore": self.match_score,
            "matchType": self.match_type.value,
            "matchedComponents": list(self.matched_components),
        }
