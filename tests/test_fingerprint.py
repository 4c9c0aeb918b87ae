"""
Pytest tests for fingerprint similarity, catalog matching and identifier cross-verification.
"""

from __future__ import annotations

import pytest

from backend_deviceid.analysis_engine.comparators import (
    LABEL_CPU_GPU_ID,
    LABEL_MAC_ADDRESSES,
    LABEL_SENSOR_PATTERNS,
    LABEL_SENSOR_PATTERNS_PARTIAL,
    array_similarity,
    default_comparators,
    sensor_similarity,
)
from backend_deviceid.analysis_engine.fingerprint import (
    calculate_similarity,
    fingerprint_hash,
    match_fingerprint,
    score_identifier_match,
    verification_result,
)
from backend_deviceid.analysis_engine.models import (
    CatalogEntry,
    DeviceFingerprint,
    MatchCandidate,
    MatchType,
    VerificationResult,
)
from backend_deviceid.config.settings import MatchSettings

SENSORS = {
    "accelerometer": [0.12, 9.81, 0.05, 3.2],
    "gyroscope": [12.0, -4.5, 7.25, 0.0],
    "magnetometer": [45.1, -12.3, 30.0, 22.2],
}
CPU = "Qualcomm-SM8550/Adreno-740"


def _fp(sensors=None, cpu=None, macs=()) -> DeviceFingerprint:
    return DeviceFingerprint(sensor_patterns=sensors, cpu_gpu_id=cpu, mac_addresses=frozenset(macs))


# --- Sensor similarity ---


def test_array_similarity_identical_is_one():
    assert array_similarity([1.0, -2.0, 300.0], [1.0, -2.0, 300.0]) == pytest.approx(1.0)


def test_array_similarity_relative_difference():
    # 1 and 1 - 2/4 averaged
    assert array_similarity([1.0, 2.0], [1.0, 4.0]) == pytest.approx(0.75)
    # small magnitudes use a denominator of at least 1
    assert array_similarity([0.1], [0.3]) == pytest.approx(0.8)


def test_array_similarity_mismatched_or_empty_is_zero():
    assert array_similarity([1.0, 2.0], [1.0, 2.0, 3.0]) == 0.0
    assert array_similarity([], []) == 0.0


def test_sensor_similarity_is_symmetric():
    a = {"accelerometer": [0.5, 9.0, -1.0], "gyroscope": [3.0, 3.0]}
    b = {"accelerometer": [0.7, 8.0, -1.5], "gyroscope": [2.0, 6.0]}
    assert sensor_similarity(a, b) == pytest.approx(sensor_similarity(b, a))
    assert array_similarity([0.5, 9.0], [0.7, 8.0]) == pytest.approx(array_similarity([0.7, 8.0], [0.5, 9.0]))


def test_sensor_similarity_averages_only_shared_sensors():
    a = {"accelerometer": [1.0, 2.0], "gyroscope": [1.0, 2.0], "magnetometer": [5.0]}
    b = {"accelerometer": [1.0, 2.0], "gyroscope": [1.0, 4.0]}
    assert sensor_similarity(a, b) == pytest.approx((1.0 + 0.75) / 2)


def test_sensor_similarity_mismatched_length_counts_as_zero():
    a = {"accelerometer": [1.0, 2.0], "gyroscope": [1.0, 2.0]}
    b = {"accelerometer": [1.0, 2.0], "gyroscope": [1.0, 2.0, 3.0]}
    assert sensor_similarity(a, b) == pytest.approx(0.5)


def test_sensor_similarity_no_comparable_sensors():
    assert sensor_similarity(None, SENSORS) == 0.0
    assert sensor_similarity({"barometer": [1.0]}, {"barometer": [1.0]}) == 0.0


# --- Pair scoring ---


def test_full_signal_similarity():
    submitted = _fp(SENSORS, CPU, ["aa:bb", "cc:dd"])
    stored = _fp(SENSORS, CPU, ["cc:dd", "aa:bb", "ee:ff"])
    result = calculate_similarity(submitted, stored)
    assert result.score == 75
    assert result.matched_components == (LABEL_SENSOR_PATTERNS, LABEL_CPU_GPU_ID, LABEL_MAC_ADDRESSES)


def test_partial_sensor_similarity_scores_15():
    result = calculate_similarity(
        _fp({"accelerometer": [1.0, 2.0]}), _fp({"accelerometer": [1.0, 4.0]})
    )
    assert result.score == 15
    assert result.matched_components == (LABEL_SENSOR_PATTERNS_PARTIAL,)


def test_dissimilar_sensors_score_nothing():
    result = calculate_similarity(
        _fp({"accelerometer": [1.0, 2.0]}), _fp({"accelerometer": [40.0, -30.0]})
    )
    assert result.score == 0
    assert result.matched_components == ()


def test_mac_points_capped_at_20():
    macs = ["01", "02", "03", "04"]
    assert calculate_similarity(_fp(macs=macs), _fp(macs=macs)).score == 20
    assert calculate_similarity(_fp(macs=["01", "09"]), _fp(macs=["01"])).score == 10


def test_cpu_gpu_mismatch_scores_nothing():
    assert calculate_similarity(_fp(cpu="A"), _fp(cpu="B")).score == 0
    assert calculate_similarity(_fp(cpu=None), _fp(cpu=None)).score == 0


def test_custom_comparator_extends_scoring():
    class SerialPrefixComparator:
        name = "serial_prefix"

        def compare(self, submitted, stored):
            return 5, "serial_prefix"

    settings = MatchSettings()
    comparators = default_comparators(settings) + [SerialPrefixComparator()]
    result = calculate_similarity(_fp(cpu=CPU), _fp(cpu=CPU), comparators)
    assert result.score == 30
    assert result.matched_components == (LABEL_CPU_GPU_ID, "serial_prefix")


# --- Hashing and exact mode ---


def test_fingerprint_hash_ignores_mac_order():
    a = _fp(SENSORS, CPU, ["aa", "bb", "cc"])
    b = _fp(SENSORS, CPU, ["cc", "aa", "bb"])
    assert fingerprint_hash(a) == fingerprint_hash(b)
    assert len(fingerprint_hash(a)) == 64
    assert fingerprint_hash(a) != fingerprint_hash(_fp(SENSORS, CPU, ["aa"]))


def test_exact_hash_match_returns_single_100_point_candidate():
    stored = _fp(SENSORS, CPU, ["aa", "bb"])
    catalog = [
        CatalogEntry(1, _fp(cpu="other")),
        CatalogEntry(2, stored, fingerprint_hash(stored)),
    ]
    submitted = _fp(SENSORS, CPU, ["bb", "aa"])
    matches = match_fingerprint(submitted, catalog, exact_hash=fingerprint_hash(submitted))
    assert matches == [MatchCandidate(2, 100, MatchType.EXACT, ("fingerprint_hash",))]


def test_exact_hash_computed_when_catalog_has_no_hash():
    stored = _fp(cpu=CPU, macs=["aa"])
    matches = match_fingerprint(None, [(5, stored)], exact_hash=fingerprint_hash(stored))
    assert len(matches) == 1
    assert matches[0].device_id == 5
    assert matches[0].match_score == 100


def test_unknown_hash_without_fingerprint_is_empty():
    catalog = [CatalogEntry(1, _fp(cpu=CPU), "deadbeef")]
    assert match_fingerprint(None, catalog, exact_hash="0" * 64) == []


def test_unknown_hash_with_fingerprint_falls_back_to_similarity():
    catalog = [CatalogEntry(1, _fp(cpu=CPU, macs=["aa", "bb"]), "deadbeef")]
    matches = match_fingerprint(_fp(cpu=CPU, macs=["aa"]), catalog, exact_hash="0" * 64)
    assert [(m.device_id, m.match_score) for m in matches] == [(1, 35)]


# --- Similarity mode ---


def test_cpu_only_match_is_below_floor_and_dropped():
    catalog = [CatalogEntry(1, _fp(cpu=CPU))]
    matches = match_fingerprint(_fp(cpu=CPU), catalog)
    assert all(m.device_id != 1 for m in matches)
    assert matches == []


def test_match_type_thresholds_on_fingerprint_path():
    catalog = [
        CatalogEntry(1, _fp(cpu=CPU, macs=["aa"])),
        CatalogEntry(2, _fp(cpu=CPU, macs=["aa", "bb"])),
    ]
    matches = match_fingerprint(_fp(cpu=CPU, macs=["aa", "bb"]), catalog)
    by_device = {m.device_id: m for m in matches}
    assert by_device[1].match_score == 35
    assert by_device[1].match_type == MatchType.PARTIAL
    assert by_device[2].match_score == 45
    assert by_device[2].match_type == MatchType.EXACT
    assert [m.device_id for m in matches] == [2, 1]


def test_ranking_keeps_top_five_and_catalog_order_on_ties():
    catalog = [CatalogEntry(i, _fp(cpu=CPU, macs=["aa"])) for i in range(1, 8)]
    catalog.append(CatalogEntry(8, _fp(SENSORS, CPU, ["aa"])))
    matches = match_fingerprint(_fp(SENSORS, CPU, ["aa"]), catalog)
    assert len(matches) == 5
    assert [m.device_id for m in matches] == [8, 1, 2, 3, 4]
    assert matches[0].match_score == 65


def test_parallel_scan_matches_serial_scan():
    catalog = [CatalogEntry(i, _fp(cpu=CPU if i % 2 else "x", macs=["aa", str(i)])) for i in range(1, 30)]
    submitted = _fp(cpu=CPU, macs=["aa", "3", "5"])
    serial = match_fingerprint(submitted, catalog)
    parallel = match_fingerprint(submitted, catalog, max_workers=4)
    assert parallel == serial


def test_empty_catalog_and_incomparable_fingerprints():
    assert match_fingerprint(_fp(SENSORS, CPU, ["aa"]), []) == []
    assert match_fingerprint(_fp(), [CatalogEntry(1, _fp(SENSORS, CPU, ["aa"]))]) == []


# --- Identifier cross-verification ---


def test_identifier_match_without_fingerprint_is_partial_50():
    candidate = score_identifier_match(9, "serial")
    assert candidate.match_score == 50
    assert candidate.match_type == MatchType.PARTIAL
    assert candidate.matched_components == ("serial",)


def test_identifier_match_exact_at_70_combined():
    with_cpu = score_identifier_match(9, "imei", _fp(cpu=CPU), _fp(cpu=CPU))
    assert with_cpu.match_score == 75
    assert with_cpu.match_type == MatchType.EXACT
    assert with_cpu.matched_components == ("imei", LABEL_CPU_GPU_ID)

    with_mac = score_identifier_match(9, "imei", _fp(macs=["aa"]), _fp(macs=["aa"]))
    assert with_mac.match_score == 60
    assert with_mac.match_type == MatchType.PARTIAL


def test_identifier_match_capped_at_100():
    fp = _fp(SENSORS, CPU, ["aa", "bb"])
    candidate = score_identifier_match(9, "serial", fp, fp)
    assert candidate.match_score == 100
    assert candidate.match_type == MatchType.EXACT


# --- Verdict ---


@pytest.mark.parametrize(
    "score,expected",
    [
        (100, VerificationResult.VERIFIED),
        (80, VerificationResult.VERIFIED),
        (79, VerificationResult.SUSPICIOUS),
        (50, VerificationResult.SUSPICIOUS),
        (49, VerificationResult.NOT_FOUND),
    ],
)
def test_verification_result_from_best_candidate(score, expected):
    candidates = [MatchCandidate(1, score, MatchType.PARTIAL), MatchCandidate(2, 30, MatchType.PARTIAL)]
    assert verification_result(candidates) == expected


def test_verification_result_without_candidates():
    assert verification_result([]) == VerificationResult.NOT_FOUND


def test_candidate_serializes_with_api_field_names():
    data = MatchCandidate(3, 45, MatchType.EXACT, ["cpu_gpu_id", "mac_addresses"]).to_dict()
    assert data == {
        "deviceId": 3,
        "matchScore": 45,
        "matchType": "exact",
        "matchedComponents": ["cpu_gpu_id", "mac_addresses"],
    }


def test_fingerprint_from_dict_accepts_api_keys():
    fp = DeviceFingerprint.from_dict(
        {"sensorPatterns": {"gyroscope": [1, 2]}, "cpuGpuId": CPU, "macAddresses": ["b", "a"]}
    )
    assert fp.sensor_patterns == {"gyroscope": (1.0, 2.0)}
    assert fp.cpu_gpu_id == CPU
    assert fp.mac_addresses == frozenset({"a", "b"})
    assert fp.to_dict()["macAddresses"] == ["a", "b"]
