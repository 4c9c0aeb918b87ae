"""
Verification request handler: composes the trust score calculator and the
fingerprint matcher for a single verification request.

Flow: storage -> engine -> response. The only writes are the trust score
upsert (through the write-through cache) and fingerprint registration.
The blended confidence figure lives here, not in the engine.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from backend_deviceid.analysis_engine.fingerprint import (
    fingerprint_hash,
    match_fingerprint,
    rank_candidates,
    score_identifier_match,
    verification_result,
)
from backend_deviceid.analysis_engine.models import (
    DeviceFingerprint,
    DeviceHistory,
    MatchCandidate,
    TrustScoreResult,
    VerificationResult,
)
from backend_deviceid.analysis_engine.trust_score import calculate_trust_score
from backend_deviceid.config.settings import Settings, get_settings
from backend_deviceid.core.exceptions import DeviceNotFoundError, InvalidIdentifierError
from backend_deviceid.database.repository import (
    IDENTIFIER_IMEI,
    IDENTIFIER_SERIAL,
    DeviceRepository,
)
from backend_deviceid.deviceid_logging import bind_device, get_logger
from backend_deviceid.verification.cache import TrustScoreCache

logger = get_logger(__name__)

IDENTIFIER_FINGERPRINT = "fingerprint"
IDENTIFIER_TYPES = (IDENTIFIER_SERIAL, IDENTIFIER_IMEI, IDENTIFIER_FINGERPRINT)

CONFIDENCE_BASE = 70
CONFIDENCE_MAX = 100
CONFIDENCE_VERIFIED_EVENTS_MIN = 2
CONFIDENCE_VERIFIED_EVENTS_BONUS = 10
CONFIDENCE_TRUST_SCORE_MIN = 70
CONFIDENCE_TRUST_SCORE_BONUS = 15
CONFIDENCE_FINGERPRINT_BONUS = 10
CONFIDENCE_OWNERSHIP_BONUS = 5


def blend_confidence(
    verified_event_count: int,
    trust_score: int,
    has_fingerprint_match: bool,
    has_ownership_history: bool,
) -> int:
    """Base 70; +10 for >2 verified events, +15 for score >70, +10 fingerprint, +5 ownership; cap 100."""
    confidence = CONFIDENCE_BASE
    if verified_event_count > CONFIDENCE_VERIFIED_EVENTS_MIN:
        confidence += CONFIDENCE_VERIFIED_EVENTS_BONUS
    if trust_score > CONFIDENCE_TRUST_SCORE_MIN:
        confidence += CONFIDENCE_TRUST_SCORE_BONUS
    if has_fingerprint_match:
        confidence += CONFIDENCE_FINGERPRINT_BONUS
    if has_ownership_history:
        confidence += CONFIDENCE_OWNERSHIP_BONUS
    return min(CONFIDENCE_MAX, confidence)


@dataclass(frozen=True)
class TrustScoreResponse:
    trust_score: TrustScoreResult
    previous_score: int | None = None
    score_change: int | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"trustScore": self.trust_score.to_dict()}
        if self.previous_score is not None:
            out["previousScore"] = self.previous_score
            out["scoreChange"] = self.score_change
        return out


@dataclass(frozen=True)
class FingerprintVerification:
    matches: list[MatchCandidate] = field(default_factory=list)
    verification_result: VerificationResult = VerificationResult.NOT_FOUND

    @property
    def primary_match(self) -> MatchCandidate | None:
        return self.matches[0] if self.matches else None

    def to_dict(self) -> dict[str, Any]:
        primary = self.primary_match
        return {
            "matches": [m.to_dict() for m in self.matches],
            "primaryMatch": primary.to_dict() if primary else None,
            "verificationResult": self.verification_result.value,
        }


@dataclass(frozen=True)
class VerificationReport:
    device: dict[str, Any]
    trust_score: TrustScoreResult
    fingerprint: FingerprintVerification | None
    confidence: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "device": self.device,
            "trustScore": self.trust_score.to_dict(),
            "fingerprint": self.fingerprint.to_dict() if self.fingerprint else None,
            "confidence": self.confidence,
        }


def _has_fingerprint_signal(candidate: MatchCandidate, identifier_type: str) -> bool:
    return any(c != identifier_type for c in candidate.matched_components)


class VerificationHandler:
    """
    Orchestrates one verification request against a DeviceRepository.

    Stateless apart from the trust score cache; safe to share across threads.
    """

    def __init__(
        self,
        repository: DeviceRepository,
        settings: Settings | None = None,
        cache: TrustScoreCache | None = None,
    ) -> None:
        self.repository = repository
        self.settings = settings or get_settings()
        self.cache = cache or TrustScoreCache(repository, ttl_seconds=self.settings.trust_cache_ttl_sec)

    def calculate_trust_score(
        self,
        device_id: int,
        now: datetime | None = None,
        history: DeviceHistory | None = None,
    ) -> TrustScoreResponse:
        """
        Recompute from history, persist through the cache, report the delta to the previous score.

        history: an already loaded snapshot to score; loaded from storage when None.
        """
        log = bind_device(device_id)
        previous = self.cache.get(device_id)
        if history is None:
            history = self.repository.load_device_history(device_id)
        result = calculate_trust_score(
            history, now, device_id=device_id, settings=self.settings.scoring
        )
        self.cache.put(device_id, result)
        log.info(
            "trust_score_calculated",
            score=result.score,
            risk_category=result.risk_category.value,
            previous_score=previous.score if previous else None,
        )
        if previous is None:
            return TrustScoreResponse(trust_score=result)
        return TrustScoreResponse(
            trust_score=result,
            previous_score=previous.score,
            score_change=result.score - previous.score,
        )

    def get_trust_score(self, device_id: int) -> TrustScoreResult | None:
        return self.cache.get(device_id)

    def register_fingerprint(self, device_id: int, fingerprint: DeviceFingerprint) -> str:
        """Store (overwrite) the device's fingerprint; returns its hash."""
        digest = fingerprint_hash(fingerprint)
        self.repository.persist_fingerprint(device_id, fingerprint, digest)
        # The verified fingerprint_created event changes the history
        self.cache.invalidate(device_id)
        return digest

    def verify_fingerprint(
        self,
        identifier: str,
        identifier_type: str,
        fingerprint: DeviceFingerprint | None = None,
    ) -> FingerprintVerification:
        """
        Resolve identity by hash, or by serial/IMEI cross-verified with a fingerprint.

        The catalog similarity scan runs only when no identifier match was found
        and a raw fingerprint was submitted.
        """
        if identifier_type not in IDENTIFIER_TYPES:
            raise InvalidIdentifierError(identifier_type)
        matching = self.settings.matching

        if identifier_type == IDENTIFIER_FINGERPRINT:
            matches = match_fingerprint(
                None,
                self.repository.load_fingerprint_catalog(),
                exact_hash=identifier,
                settings=matching,
            )
        else:
            matches = []
            device = self.repository.find_device_by_identifier(identifier, identifier_type)
            if device is not None:
                stored = self.repository.get_fingerprint(device["id"])
                matches.append(
                    score_identifier_match(
                        device["id"],
                        identifier_type,
                        fingerprint,
                        stored.fingerprint if stored else None,
                        settings=matching,
                    )
                )
            elif fingerprint is not None:
                matches = match_fingerprint(
                    fingerprint,
                    self.repository.load_fingerprint_catalog(),
                    settings=matching,
                    max_workers=self.settings.match_workers,
                )

        ranked = rank_candidates(matches, matching.max_results)
        result = verification_result(ranked, matching)
        logger.info(
            "fingerprint_verified",
            identifier_type=identifier_type,
            match_count=len(ranked),
            verification_result=result.value,
        )
        return FingerprintVerification(matches=ranked, verification_result=result)

    def verify_device(
        self,
        identifier: str,
        identifier_type: str,
        fingerprint: DeviceFingerprint | None = None,
        now: datetime | None = None,
    ) -> VerificationReport:
        """Full verification: device lookup, fresh trust score, optional fingerprint, blended confidence."""
        fingerprint_check: FingerprintVerification | None = None
        if identifier_type == IDENTIFIER_FINGERPRINT:
            fingerprint_check = self.verify_fingerprint(identifier, identifier_type)
            primary = fingerprint_check.primary_match
            device = self.repository.get_device(primary.device_id) if primary else None
        elif identifier_type in (IDENTIFIER_SERIAL, IDENTIFIER_IMEI):
            device = self.repository.find_device_by_identifier(identifier, identifier_type)
            if device is not None and fingerprint is not None:
                fingerprint_check = self.verify_fingerprint(identifier, identifier_type, fingerprint)
        else:
            raise InvalidIdentifierError(identifier_type)

        if device is None:
            raise DeviceNotFoundError(identifier)

        device_id = device["id"]
        history = self.repository.load_device_history(device_id)
        # Score and confidence bonuses come from the same snapshot
        trust = self.calculate_trust_score(device_id, now, history=history).trust_score
        has_match = bool(
            fingerprint_check
            and any(
                m.device_id == device_id and _has_fingerprint_signal(m, identifier_type)
                for m in fingerprint_check.matches
            )
        )
        confidence = blend_confidence(
            history.verified_event_count,
            trust.score,
            has_match,
            bool(history.ownership_records),
        )
        bind_device(device_id).info(
            "device_verified",
            status=device.get("status"),
            score=trust.score,
            confidence=confidence,
        )
        # Status and score on the device dict reflect the fresh computation
        device = {**device, "currentTrustScore": trust.score, "riskCategory": trust.risk_category.value}
        return VerificationReport(
            device=device,
            trust_score=trust,
            fingerprint=fingerprint_check,
            confidence=confidence,
        )
