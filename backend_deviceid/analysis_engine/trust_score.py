"""
Trust score computation for a device's stored history.

Four individually bounded components plus a fixed base, clamped to 0-100:

    ownership_continuity  0..30  one point per 30 days with the current owner, minus churn
    history_completeness  0..25  8 per verified required event, 3 per other verified event (max 9)
    repair_history        0..20  neutral 10, +2 verified repair, -3 unverified repair
    dispute_penalty       <= 0   per-report penalty by type/status, decayed with age

No ML and no I/O; the result is a pure function of (history, now).
Recomputed wholesale on every call.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone

from backend_deviceid.analysis_engine.models import (
    EVENT_REPAIR,
    DeviceHistory,
    Dispute,
    RiskCategory,
    TrustScoreComponents,
    TrustScoreResult,
    as_utc,
)
from backend_deviceid.config.settings import ScoringSettings
from backend_deviceid.deviceid_logging import get_logger

logger = get_logger(__name__)

SECONDS_PER_DAY = 86400
DEFAULT_SCORING = ScoringSettings()


def days_between(earlier: datetime, now: datetime) -> int:
    """Whole days from earlier to now (floor; negative when earlier is in the future)."""
    delta = as_utc(now) - as_utc(earlier)
    return int(delta.total_seconds() // SECONDS_PER_DAY)


def risk_category_for(score: int, settings: ScoringSettings = DEFAULT_SCORING) -> RiskCategory:
    """low >= 80, medium >= 50, else high."""
    if score >= settings.low_risk_min:
        return RiskCategory.LOW
    if score >= settings.medium_risk_min:
        return RiskCategory.MEDIUM
    return RiskCategory.HIGH


def ownership_continuity_score(
    history: DeviceHistory,
    now: datetime,
    settings: ScoringSettings = DEFAULT_SCORING,
) -> int:
    current = history.current_owner
    if current is None:
        return 0
    days = days_between(current.transfer_date, now)
    points = min(settings.ownership_max, days // settings.ownership_period_days)
    record_count = len(history.ownership_records)
    if record_count > settings.ownership_churn_free_records:
        points -= settings.ownership_churn_penalty * (record_count - settings.ownership_churn_free_records)
    return max(0, points)


def history_completeness_score(
    history: DeviceHistory,
    settings: ScoringSettings = DEFAULT_SCORING,
) -> int:
    verified_types = [e.event_type for e in history.events if e.verified]
    points = 0
    for required in settings.required_events:
        if required in verified_types:
            points += settings.required_event_points
    extra = sum(1 for t in verified_types if t not in settings.required_events)
    points += min(settings.extra_events_max, extra * settings.extra_event_points)
    return points


def repair_history_score(
    history: DeviceHistory,
    settings: ScoringSettings = DEFAULT_SCORING,
) -> int:
    points = settings.repair_neutral
    for event in history.events:
        if event.event_type != EVENT_REPAIR:
            continue
        if event.verified:
            points += settings.repair_verified_points
        else:
            points -= settings.repair_unverified_penalty
    # Clamp once after folding every repair in
    return max(0, min(settings.repair_max, points))


def dispute_base_penalty(dispute: Dispute, settings: ScoringSettings = DEFAULT_SCORING) -> int:
    verified, unverified = settings.dispute_penalties.get(
        dispute.report_type, settings.default_dispute_penalty
    )
    return verified if dispute.is_verified else unverified


def decayed_penalty(
    penalty: int,
    days_since_report: int,
    settings: ScoringSettings = DEFAULT_SCORING,
) -> int:
    """
    Apply time decay to a (negative) penalty.

    math.floor on a negative product rounds away from zero: -12.5 -> -13.
    """
    if days_since_report > settings.old_dispute_days:
        return math.floor(penalty * settings.old_dispute_factor)
    if days_since_report > settings.aging_dispute_days:
        return math.floor(penalty * settings.aging_dispute_factor)
    return penalty


def dispute_penalty_score(
    history: DeviceHistory,
    now: datetime,
    settings: ScoringSettings = DEFAULT_SCORING,
) -> int:
    total = 0
    for dispute in history.disputes:
        penalty = dispute_base_penalty(dispute, settings)
        total += decayed_penalty(penalty, days_between(dispute.created_at, now), settings)
    return total


def calculate_trust_score(
    history: DeviceHistory | None,
    now: datetime | None = None,
    *,
    device_id: int | None = None,
    settings: ScoringSettings | None = None,
) -> TrustScoreResult:
    """
    Compute the trust score and its component breakdown.

    Args:
        history: Ownership, event and dispute snapshot; None is treated as empty.
        now: Reference time for day arithmetic; defaults to the current UTC time.
        device_id: Carried onto the result for persistence and logging only.
        settings: Weight overrides; defaults to the documented constants.

    Returns:
        TrustScoreResult with score in [0, 100]. A device with no history at all
        gets the neutral default: every component 0, score = base, risk medium.
    """
    settings = settings or DEFAULT_SCORING
    now = as_utc(now) if now is not None else datetime.now(timezone.utc)
    history = history or DeviceHistory()

    if history.is_empty:
        logger.debug("trust_score_no_history", device_id=device_id, score=settings.base_score)
        return TrustScoreResult(
            score=settings.base_score,
            risk_category=RiskCategory.MEDIUM,
            components=TrustScoreComponents(),
            calculated_at=now,
            device_id=device_id,
        )

    components = TrustScoreComponents(
        ownership_continuity=ownership_continuity_score(history, now, settings),
        history_completeness=history_completeness_score(history, settings),
        repair_history=repair_history_score(history, settings),
        dispute_penalty=dispute_penalty_score(history, now, settings),
    )
    score = max(settings.min_score, min(settings.max_score, components.total + settings.base_score))
    risk = risk_category_for(score, settings)

    logger.debug(
        "trust_score_calculated",
        device_id=device_id,
        score=score,
        risk_category=risk.value,
        components=components.to_dict(),
    )
    return TrustScoreResult(
        score=score,
        risk_category=risk,
        components=components,
        calculated_at=now,
        device_id=device_id,
    )
