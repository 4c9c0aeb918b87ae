"""
Analysis engine package: device trust score and fingerprint identity matching.

Consumes device history and fingerprint catalogs assembled by the caller and
produces bounded trust scores with breakdowns and ranked match candidates.
"""

from backend_deviceid.analysis_engine.comparators import (
    Comparator,
    CpuGpuIdComparator,
    MacAddressComparator,
    SensorPatternComparator,
    array_similarity,
    default_comparators,
    sensor_similarity,
)
from backend_deviceid.analysis_engine.fingerprint import (
    SimilarityResult,
    calculate_similarity,
    fingerprint_hash,
    match_fingerprint,
    rank_candidates,
    score_identifier_match,
    verification_result,
)
from backend_deviceid.analysis_engine.models import (
    CatalogEntry,
    DeviceEvent,
    DeviceFingerprint,
    DeviceHistory,
    Dispute,
    MatchCandidate,
    MatchType,
    OwnershipRecord,
    RiskCategory,
    TrustScoreComponents,
    TrustScoreResult,
    VerificationResult,
)
from backend_deviceid.analysis_engine.trust_score import (
    calculate_trust_score,
    risk_category_for,
)

__all__ = [
    "CatalogEntry",
    "Comparator",
    "CpuGpuIdComparator",
    "DeviceEvent",
    "DeviceFingerprint",
    "DeviceHistory",
    "Dispute",
    "MacAddressComparator",
    "MatchCandidate",
    "MatchType",
    "OwnershipRecord",
    "RiskCategory",
    "SensorPatternComparator",
    "SimilarityResult",
    "TrustScoreComponents",
    "TrustScoreResult",
    "VerificationResult",
    "array_similarity",
    "calculate_similarity",
    "calculate_trust_score",
    "default_comparators",
    "fingerprint_hash",
    "match_fingerprint",
    "rank_candidates",
    "risk_category_for",
    "score_identifier_match",
    "sensor_similarity",
]
