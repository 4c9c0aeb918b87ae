"""
End-to-end tests for VerificationHandler: storage -> engine -> response.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from backend_deviceid.analysis_engine.models import DeviceFingerprint, MatchType, VerificationResult
from backend_deviceid.core.exceptions import DeviceNotFoundError, InvalidIdentifierError
from backend_deviceid.verification.handler import VerificationHandler, blend_confidence

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)

SENSORS = {
    "accelerometer": [0.12, 9.81, 0.05],
    "gyroscope": [12.0, -4.5, 7.25],
    "magnetometer": [45.1, -12.3, 30.0],
}
FINGERPRINT = DeviceFingerprint(SENSORS, "Apple-A17/GPU-6c", frozenset({"aa:01", "aa:02"}))


def _device(repository, serial="SN-100", imei=None, owned_days=90, events=()):
    device_id = repository.add_device(serial, imei=imei)
    if owned_days is not None:
        repository.add_ownership_record(device_id, NOW - timedelta(days=owned_days))
    for event_type in events:
        repository.add_event(device_id, event_type, verified=True)
    return device_id


# --- Blended confidence ---


def test_blend_confidence_base_and_bonuses():
    assert blend_confidence(0, 25, False, False) == 70
    assert blend_confidence(3, 25, False, False) == 80
    assert blend_confidence(2, 71, False, False) == 85
    assert blend_confidence(0, 70, True, True) == 85
    assert blend_confidence(5, 95, True, True) == 100


# --- Trust score ---


def test_calculate_trust_score_reports_previous_and_change(handler, repository):
    device_id = _device(repository, events=("registration", "purchase"))

    first = handler.calculate_trust_score(device_id, NOW)
    assert first.trust_score.score == 54
    assert first.previous_score is None
    assert "previousScore" not in first.to_dict()

    repository.add_report(device_id, "stolen", status="verified", created_at=NOW - timedelta(days=10))
    second = handler.calculate_trust_score(device_id, NOW)
    assert second.trust_score.score == 29
    assert second.previous_score == 54
    assert second.score_change == -25
    assert second.to_dict()["scoreChange"] == -25

    assert handler.get_trust_score(device_id).score == 29
    assert repository.get_trust_score(device_id).score == 29
    assert repository.get_device(device_id)["riskCategory"] == "high"


def test_calculate_trust_score_unknown_device(handler):
    with pytest.raises(DeviceNotFoundError):
        handler.calculate_trust_score(4040, NOW)


def test_get_trust_score_before_any_calculation(handler, repository):
    device_id = _device(repository)
    assert handler.get_trust_score(device_id) is None


# --- Fingerprint registration and lookup ---


def test_register_fingerprint_returns_hash_and_invalidates_cache(handler, repository):
    device_id = _device(repository)
    handler.calculate_trust_score(device_id, NOW)
    assert len(handler.cache) == 1

    digest = handler.register_fingerprint(device_id, FINGERPRINT)
    assert len(digest) == 64
    assert len(handler.cache) == 0
    assert repository.get_fingerprint(device_id).fingerprint_hash == digest


def test_verify_fingerprint_by_hash(handler, repository):
    device_id = _device(repository)
    digest = handler.register_fingerprint(device_id, FINGERPRINT)

    check = handler.verify_fingerprint(digest, "fingerprint")
    assert check.verification_result == VerificationResult.VERIFIED
    assert check.primary_match.device_id == device_id
    assert check.primary_match.match_score == 100
    assert check.to_dict()["primaryMatch"]["matchedComponents"] == ["fingerprint_hash"]


def test_verify_fingerprint_unknown_hash(handler, repository):
    handler.register_fingerprint(_device(repository), FINGERPRINT)
    check = handler.verify_fingerprint("f" * 64, "fingerprint")
    assert check.matches == []
    assert check.primary_match is None
    assert check.verification_result == VerificationResult.NOT_FOUND


def test_verify_fingerprint_serial_cross_check(handler, repository):
    device_id = _device(repository, serial="SN-cross")
    handler.register_fingerprint(device_id, FINGERPRINT)

    check = handler.verify_fingerprint("SN-cross", "serial", FINGERPRINT)
    (candidate,) = check.matches
    assert candidate.device_id == device_id
    assert candidate.match_score == 100
    assert candidate.match_type == MatchType.EXACT
    assert candidate.matched_components[0] == "serial"
    assert check.verification_result == VerificationResult.VERIFIED


def test_verify_fingerprint_serial_without_fingerprint_is_suspicious(handler, repository):
    _device(repository, serial="SN-bare", imei="490154203237518")
    check = handler.verify_fingerprint("490154203237518", "imei")
    assert check.primary_match.match_score == 50
    assert check.primary_match.match_type == MatchType.PARTIAL
    assert check.verification_result == VerificationResult.SUSPICIOUS


def test_unknown_serial_falls_back_to_catalog_scan(handler, repository):
    known = _device(repository, serial="SN-known")
    handler.register_fingerprint(known, FINGERPRINT)
    other = _device(repository, serial="SN-other")
    handler.register_fingerprint(other, DeviceFingerprint(None, "Other-SoC", frozenset({"ff:ff"})))

    check = handler.verify_fingerprint("SN-unregistered", "serial", FINGERPRINT)
    assert [m.device_id for m in check.matches] == [known]
    assert check.primary_match.match_score == 75
    assert check.verification_result == VerificationResult.SUSPICIOUS


def test_catalog_scan_with_worker_pool(repository, settings):
    handler = VerificationHandler(repository, settings=replace(settings, match_workers=4))
    ids = [_device(repository, serial=f"SN-{i}") for i in range(6)]
    for device_id in ids:
        handler.register_fingerprint(device_id, FINGERPRINT)
    check = handler.verify_fingerprint("SN-missing", "serial", FINGERPRINT)
    assert [m.device_id for m in check.matches] == ids[:5]


def test_unknown_serial_without_fingerprint_finds_nothing(handler, repository):
    handler.register_fingerprint(_device(repository), FINGERPRINT)
    check = handler.verify_fingerprint("SN-unregistered", "serial")
    assert check.matches == []
    assert check.verification_result == VerificationResult.NOT_FOUND


def test_invalid_identifier_type(handler):
    with pytest.raises(InvalidIdentifierError):
        handler.verify_fingerprint("x", "barcode")
    with pytest.raises(InvalidIdentifierError):
        handler.verify_device("x", "barcode")


# --- Full verification ---


def test_verify_device_with_matching_fingerprint(handler, repository):
    """
    Ownership 90 days, registration/purchase/repair verified, fingerprint registered:
    3 + (16 + 2*3) + 12 + 0 + 25 = 62; confidence 70 + 10 + 10 + 5 = 95.
    """
    device_id = _device(repository, serial="SN-full", events=("registration", "purchase", "repair"))
    handler.register_fingerprint(device_id, FINGERPRINT)

    report = handler.verify_device("SN-full", "serial", FINGERPRINT, now=NOW)

    assert report.trust_score.score == 62
    assert report.confidence == 95
    assert report.fingerprint.verification_result == VerificationResult.VERIFIED
    data = report.to_dict()
    assert data["device"]["id"] == device_id
    assert data["device"]["currentTrustScore"] == 62
    assert data["trustScore"]["riskCategory"] == "medium"
    assert data["confidence"] == 95


def test_verify_device_without_history(handler, repository):
    _device(repository, serial="SN-new", owned_days=None)
    report = handler.verify_device("SN-new", "serial", now=NOW)
    assert report.trust_score.score == 25
    assert report.fingerprint is None
    assert report.confidence == 70


def test_verify_device_identifier_only_match_gets_no_fingerprint_bonus(handler, repository):
    device_id = _device(repository, serial="SN-mismatch")
    handler.register_fingerprint(device_id, FINGERPRINT)
    stranger = DeviceFingerprint(None, "Different-SoC", frozenset({"00:00"}))

    report = handler.verify_device("SN-mismatch", "serial", stranger, now=NOW)

    assert report.fingerprint.primary_match.matched_components == ("serial",)
    # only the fingerprint_created event is verified; ownership bonus applies
    assert report.trust_score.score == 41
    assert report.confidence == 75


def test_verify_device_confidence_capped_at_100(handler, repository):
    device_id = _device(
        repository,
        serial="SN-cap",
        owned_days=1000,
        events=("registration", "purchase", "repair", "repair"),
    )
    handler.register_fingerprint(device_id, FINGERPRINT)
    report = handler.verify_device("SN-cap", "serial", FINGERPRINT, now=NOW)
    assert report.trust_score.score == 94
    assert report.confidence == 100


def test_verify_device_by_fingerprint_hash(handler, repository):
    device_id = _device(repository, serial="SN-hash")
    digest = handler.register_fingerprint(device_id, FINGERPRINT)
    report = handler.verify_device(digest, "fingerprint", now=NOW)
    assert report.device["id"] == device_id
    assert report.fingerprint.primary_match.match_score == 100


def test_verify_device_not_found(handler):
    with pytest.raises(DeviceNotFoundError) as exc:
        handler.verify_device("SN-ghost", "serial", now=NOW)
    assert exc.value.to_dict()["code"] == "DEVICE_NOT_FOUND"
    with pytest.raises(DeviceNotFoundError):
        handler.verify_device("0" * 64, "fingerprint", now=NOW)


def test_verify_device_scores_and_blends_from_one_history_load(handler, repository, monkeypatch):
    device_id = _device(repository, serial="SN-once", events=("registration", "purchase", "repair"))
    loads = []
    original = repository.load_device_history

    def counting_load(requested_id):
        loads.append(requested_id)
        return original(requested_id)

    monkeypatch.setattr(repository, "load_device_history", counting_load)
    report = handler.verify_device("SN-once", "serial", now=NOW)

    assert loads == [device_id]
    # 3 verified events and ownership: 70 + 10 + 5
    assert report.confidence == 85


def test_verify_device_reports_flagged_status(handler, repository):
    device_id = _device(repository, serial="SN-stolen", events=("registration", "purchase"))
    repository.add_report(device_id, "stolen", status="verified", created_at=NOW - timedelta(days=10))

    report = handler.verify_device("SN-stolen", "serial", now=NOW)

    assert report.device["status"] == "flagged"
    assert report.trust_score.score == 29
    assert report.to_dict()["trustScore"]["riskCategory"] == "high"
