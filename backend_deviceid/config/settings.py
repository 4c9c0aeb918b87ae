"""
Application settings and engine thresholds.

Settings are read from DEVICEID_* environment variables (and .env). Scoring
and matching thresholds live in ScoringSettings / MatchSettings so every
weight used by the engine has one named, overridable home.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from backend_deviceid.config.env import env_int, get_database_url, load_deviceid_env

DEFAULT_TRUST_CACHE_TTL_SEC = 300
DEFAULT_MAX_MATCH_RESULTS = 5
DEFAULT_MATCH_WORKERS = 1


@dataclass(frozen=True)
class ScoringSettings:
    """Weights and caps for the trust score calculator."""

    base_score: int = 25
    min_score: int = 0
    max_score: int = 100

    # Risk tiers (score >= low_risk_min is low, >= medium_risk_min is medium)
    low_risk_min: int = 80
    medium_risk_min: int = 50

    # Ownership continuity
    ownership_max: int = 30
    ownership_period_days: int = 30
    ownership_churn_free_records: int = 5
    ownership_churn_penalty: int = 2

    # History completeness
    required_events: tuple[str, ...] = ("registration", "purchase")
    required_event_points: int = 8
    extra_event_points: int = 3
    extra_events_max: int = 9

    # Repair history
    repair_neutral: int = 10
    repair_max: int = 20
    repair_verified_points: int = 2
    repair_unverified_penalty: int = 3

    # Dispute penalty: report_type -> (verified, unverified)
    dispute_penalties: dict[str, tuple[int, int]] = field(
        default_factory=lambda: {
            "stolen": (-25, -15),
            "fraud": (-20, -10),
            "tampered": (-15, -8),
        }
    )
    default_dispute_penalty: tuple[int, int] = (-10, -5)
    old_dispute_days: int = 365
    old_dispute_factor: float = 0.5
    aging_dispute_days: int = 180
    aging_dispute_factor: float = 0.7


@dataclass(frozen=True)
class MatchSettings:
    """Points and thresholds for the fingerprint matcher."""

    sensor_names: tuple[str, ...] = ("accelerometer", "gyroscope", "magnetometer")
    sensor_full_threshold: float = 0.8
    sensor_partial_threshold: float = 0.6
    sensor_full_points: int = 30
    sensor_partial_points: int = 15
    cpu_gpu_points: int = 25
    mac_points_each: int = 10
    mac_points_max: int = 20
    max_score: int = 100

    # Serial/IMEI match starts from this base before fingerprint points are added
    identifier_base_score: int = 50
    # Exact thresholds differ by path; the identifier path starts at identifier_base_score
    identifier_exact_threshold: int = 70
    fingerprint_exact_threshold: int = 40
    # Pure fingerprint candidates below this are dropped
    candidate_floor: int = 30
    max_results: int = DEFAULT_MAX_MATCH_RESULTS

    # Verdict from the best candidate
    verified_threshold: int = 80
    suspicious_threshold: int = 50


@dataclass(frozen=True)
class Settings:
    """Service-level settings for storage, cache and matcher fan-out."""

    database_url: str
    trust_cache_ttl_sec: int = DEFAULT_TRUST_CACHE_TTL_SEC
    match_workers: int = DEFAULT_MATCH_WORKERS
    scoring: ScoringSettings = field(default_factory=ScoringSettings)
    matching: MatchSettings = field(default_factory=MatchSettings)


def get_settings() -> Settings:
    """
    Return the current application settings.

    Reads DEVICEID_TRUST_CACHE_TTL_SEC, DEVICEID_MATCH_WORKERS and
    DEVICEID_MAX_MATCH_RESULTS; the database URL comes from get_database_url().
    """
    load_deviceid_env()
    max_results = env_int("DEVICEID_MAX_MATCH_RESULTS", DEFAULT_MAX_MATCH_RESULTS, minimum=1)
    return Settings(
        database_url=get_database_url(),
        trust_cache_ttl_sec=env_int("DEVICEID_TRUST_CACHE_TTL_SEC", DEFAULT_TRUST_CACHE_TTL_SEC, minimum=0),
        match_workers=env_int("DEVICEID_MATCH_WORKERS", DEFAULT_MATCH_WORKERS, minimum=1),
        matching=MatchSettings(max_results=max_results),
    )
