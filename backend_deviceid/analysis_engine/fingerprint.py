"""
Fingerprint matching: resolve device identity from partial hardware signals.

Two lookup modes:
- Exact: caller supplies a fingerprint hash; an equal stored hash is a 100-point exact match.
- Similarity: a raw fingerprint is scored against every catalog entry with the
  comparators (sensor patterns, CPU/GPU id, MAC addresses); entries below the
  floor are dropped, the rest ranked by score.

A serial/IMEI match is scored separately by score_identifier_match (base 50
plus fingerprint points). The two paths keep different exact thresholds
(70 with an identifier, 40 without).

Read-only and stateless; per-candidate scoring has no cross-candidate
dependency so the catalog scan may fan out over threads.
"""

from __future__ import annotations

import hashlib
import json
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Iterable, Sequence

from backend_deviceid.analysis_engine.comparators import (
    LABEL_FINGERPRINT_HASH,
    Comparator,
    default_comparators,
)
from backend_deviceid.analysis_engine.models import (
    CatalogEntry,
    DeviceFingerprint,
    MatchCandidate,
    MatchType,
    VerificationResult,
)
from backend_deviceid.config.settings import MatchSettings
from backend_deviceid.deviceid_logging import get_logger

logger = get_logger(__name__)

DEFAULT_MATCHING = MatchSettings()


@dataclass(frozen=True)
class SimilarityResult:
    score: int
    matched_components: tuple[str, ...] = field(default_factory=tuple)


def canonical_fingerprint(fingerprint: DeviceFingerprint) -> str:
    """Deterministic JSON form; MAC addresses sorted so order does not change the hash."""
    sensors = (
        {name: list(values) for name, values in fingerprint.sensor_patterns.items()}
        if fingerprint.sensor_patterns is not None
        else None
    )
    payload = {
        "sensors": sensors,
        "cpu_gpu": fingerprint.cpu_gpu_id,
        "mac_addresses": sorted(fingerprint.mac_addresses),
    }
    return json.dumps(payload, sort_keys=True, separators=(",", ":"))


def fingerprint_hash(fingerprint: DeviceFingerprint) -> str:
    """SHA-256 hex digest of the canonical fingerprint."""
    return hashlib.sha256(canonical_fingerprint(fingerprint).encode("utf-8")).hexdigest()


def calculate_similarity(
    submitted: DeviceFingerprint,
    stored: DeviceFingerprint,
    comparators: Sequence[Comparator] | None = None,
    settings: MatchSettings = DEFAULT_MATCHING,
) -> SimilarityResult:
    """Sum comparator points for one pair, capped at settings.max_score."""
    comparators = comparators if comparators is not None else default_comparators(settings)
    score = 0
    matched: list[str] = []
    for comparator in comparators:
        points, label = comparator.compare(submitted, stored)
        if label is None:
            continue
        score += points
        matched.append(label)
    return SimilarityResult(score=min(settings.max_score, score), matched_components=tuple(matched))


def _as_entry(item: Any) -> CatalogEntry:
    if isinstance(item, CatalogEntry):
        return item
    return CatalogEntry(*item)


def _stored_hash(entry: CatalogEntry) -> str:
    return entry.fingerprint_hash or fingerprint_hash(entry.fingerprint)


def rank_candidates(
    candidates: Iterable[MatchCandidate],
    limit: int = DEFAULT_MATCHING.max_results,
) -> list[MatchCandidate]:
    """Score descending; ties keep input order (sorted is stable)."""
    return sorted(candidates, key=lambda c: c.match_score, reverse=True)[:limit]


def _score_entry(
    submitted: DeviceFingerprint,
    entry: CatalogEntry,
    comparators: Sequence[Comparator],
    settings: MatchSettings,
) -> MatchCandidate | None:
    similarity = calculate_similarity(submitted, entry.fingerprint, comparators, settings)
    if similarity.score < settings.candidate_floor:
        return None
    match_type = (
        MatchType.EXACT
        if similarity.score >= settings.fingerprint_exact_threshold
        else MatchType.PARTIAL
    )
    return MatchCandidate(
        device_id=entry.device_id,
        match_score=similarity.score,
        match_type=match_type,
        matched_components=similarity.matched_components,
    )


def match_fingerprint(
    submitted: DeviceFingerprint | None,
    catalog: Iterable[CatalogEntry | tuple],
    exact_hash: str | None = None,
    *,
    settings: MatchSettings | None = None,
    comparators: Sequence[Comparator] | None = None,
    max_workers: int = 1,
) -> list[MatchCandidate]:
    """
    Rank catalog entries against a submitted fingerprint.

    Args:
        submitted: Raw fingerprint; None when only a hash is being looked up.
        catalog: (device_id, fingerprint[, fingerprint_hash]) entries.
        exact_hash: Precomputed fingerprint hash for exact lookup.
        settings: Threshold overrides.
        comparators: Signal comparators; defaults to sensor, CPU/GPU and MAC.
        max_workers: > 1 scores candidates on a thread pool; order is preserved.

    Returns:
        Up to settings.max_results candidates, best first. Empty when nothing
        clears the floor; never raises on empty or incomparable input.
    """
    settings = settings or DEFAULT_MATCHING
    entries = [_as_entry(item) for item in catalog]

    if exact_hash:
        for entry in entries:
            if _stored_hash(entry) == exact_hash:
                logger.debug("fingerprint_exact_match", device_id=entry.device_id)
                return [
                    MatchCandidate(
                        device_id=entry.device_id,
                        match_score=settings.max_score,
                        match_type=MatchType.EXACT,
                        matched_components=(LABEL_FINGERPRINT_HASH,),
                    )
                ]

    if submitted is None or not entries:
        return []

    comparators = comparators if comparators is not None else default_comparators(settings)
    if max_workers > 1 and len(entries) > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            scored = list(
                executor.map(lambda e: _score_entry(submitted, e, comparators, settings), entries)
            )
    else:
        scored = [_score_entry(submitted, e, comparators, settings) for e in entries]

    ranked = rank_candidates((c for c in scored if c is not None), settings.max_results)
    logger.debug(
        "fingerprint_similarity_scan",
        catalog_size=len(entries),
        match_count=len(ranked),
        best_score=ranked[0].match_score if ranked else None,
    )
    return ranked


def score_identifier_match(
    device_id: int,
    identifier_type: str,
    submitted: DeviceFingerprint | None = None,
    stored: DeviceFingerprint | None = None,
    *,
    settings: MatchSettings | None = None,
    comparators: Sequence[Comparator] | None = None,
) -> MatchCandidate:
    """
    Candidate for a device found by serial/IMEI, cross-verified with its fingerprint.

    Starts at identifier_base_score with the identifier type as the first matched
    component; fingerprint similarity is added when both fingerprints exist.
    Exact once the combined score reaches identifier_exact_threshold.
    """
    settings = settings or DEFAULT_MATCHING
    score = settings.identifier_base_score
    components = [identifier_type]
    if submitted is not None and stored is not None:
        similarity = calculate_similarity(submitted, stored, comparators, settings)
        score += similarity.score
        components.extend(similarity.matched_components)
    score = min(settings.max_score, score)
    match_type = (
        MatchType.EXACT if score >= settings.identifier_exact_threshold else MatchType.PARTIAL
    )
    return MatchCandidate(
        device_id=device_id,
        match_score=score,
        match_type=match_type,
        matched_components=tuple(components),
    )


def verification_result(
    candidates: Sequence[MatchCandidate],
    settings: MatchSettings | None = None,
) -> VerificationResult:
    """verified if the best score >= 80, suspicious if >= 50, else not_found."""
    settings = settings or DEFAULT_MATCHING
    if not candidates:
        return VerificationResult.NOT_FOUND
    best = max(c.match_score for c in candidates)
    if best >= settings.verified_threshold:
        return VerificationResult.VERIFIED
    if best >= settings.suspicious_threshold:
        return VerificationResult.SUSPICIOUS
    return VerificationResult.NOT_FOUND
