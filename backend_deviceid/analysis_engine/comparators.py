"""
Per-signal fingerprint comparators.

Each comparator scores one signal of a (submitted, stored) fingerprint pair
and returns (points, matched_label). Label is None when the signal did not
contribute. The matcher sums points across comparators, so a new signal is a
new Comparator, not a change to the aggregation.
"""

from __future__ import annotations

from typing import Mapping, Optional, Protocol, Sequence

import numpy as np

from backend_deviceid.analysis_engine.models import DeviceFingerprint
from backend_deviceid.config.settings import MatchSettings

LABEL_SENSOR_PATTERNS = "sensor_patterns"
LABEL_SENSOR_PATTERNS_PARTIAL = "sensor_patterns_partial"
LABEL_CPU_GPU_ID = "cpu_gpu_id"
LABEL_MAC_ADDRESSES = "mac_addresses"
LABEL_FINGERPRINT_HASH = "fingerprint_hash"

ComparatorResult = tuple[int, Optional[str]]


class Comparator(Protocol):
    name: str

    def compare(self, submitted: DeviceFingerprint, stored: DeviceFingerprint) -> ComparatorResult:
        ...


def array_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Mean per-element similarity 1 - |a_i - b_i| / max(|a_i|, |b_i|, 1).

    Mismatched or empty vectors score 0. Symmetric in (a, b).
    """
    if len(a) != len(b) or len(a) == 0:
        return 0.0
    left = np.asarray(a, dtype=float)
    right = np.asarray(b, dtype=float)
    scale = np.maximum(np.maximum(np.abs(left), np.abs(right)), 1.0)
    return float(np.mean(1.0 - np.abs(left - right) / scale))


def sensor_similarity(
    submitted: Mapping[str, Sequence[float]] | None,
    stored: Mapping[str, Sequence[float]] | None,
    sensor_names: Sequence[str] = MatchSettings().sensor_names,
) -> float:
    """Average array_similarity over the named sensors present in both; 0 when none are."""
    if not submitted or not stored:
        return 0.0
    scores = [
        array_similarity(submitted[name], stored[name])
        for name in sensor_names
        if submitted.get(name) is not None and stored.get(name) is not None
    ]
    if not scores:
        return 0.0
    return sum(scores) / len(scores)


class SensorPatternComparator:
    name = LABEL_SENSOR_PATTERNS

    def __init__(self, settings: MatchSettings) -> None:
        self.settings = settings

    def compare(self, submitted: DeviceFingerprint, stored: DeviceFingerprint) -> ComparatorResult:
        similarity = sensor_similarity(
            submitted.sensor_patterns, stored.sensor_patterns, self.settings.sensor_names
        )
        if similarity > self.settings.sensor_full_threshold:
            return self.settings.sensor_full_points, LABEL_SENSOR_PATTERNS
        if similarity > self.settings.sensor_partial_threshold:
            return self.settings.sensor_partial_points, LABEL_SENSOR_PATTERNS_PARTIAL
        return 0, None


class CpuGpuIdComparator:
    name = LABEL_CPU_GPU_ID

    def __init__(self, settings: MatchSettings) -> None:
        self.settings = settings

    def compare(self, submitted: DeviceFingerprint, stored: DeviceFingerprint) -> ComparatorResult:
        if submitted.cpu_gpu_id and submitted.cpu_gpu_id == stored.cpu_gpu_id:
            return self.settings.cpu_gpu_points, LABEL_CPU_GPU_ID
        return 0, None


class MacAddressComparator:
    name = LABEL_MAC_ADDRESSES

    def __init__(self, settings: MatchSettings) -> None:
        self.settings = settings

    def compare(self, submitted: DeviceFingerprint, stored: DeviceFingerprint) -> ComparatorResult:
        common = len(submitted.mac_addresses & stored.mac_addresses)
        if common == 0:
            return 0, None
        points = min(self.settings.mac_points_max, common * self.settings.mac_points_each)
        return points, LABEL_MAC_ADDRESSES


def default_comparators(settings: MatchSettings) -> list[Comparator]:
    return [
        SensorPatternComparator(settings),
        CpuGpuIdComparator(settings),
        MacAddressComparator(settings),
    ]
