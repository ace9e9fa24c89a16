"""Anomaly detection for GPS trajectories.

Six independent checks classify samples of a trajectory: abnormal
speed, abnormal acceleration, position jumps, gradual drift, missing
data and abnormal point density.  Each check is a pure function of the
samples and a `DetectorConfig` and returns zero or more `Anomaly`
records.  `AnomalyDetector` composes them in a fixed order.

Speed and jump thresholds can adapt to the trajectory: the configured
maximum is lowered to a multiple of a high percentile of the observed
values, so that a slow walk with one car-speed spike is caught even
though the spike is below the global speed limit.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from ..common.trajectory import Sample
from ..utils.kinematics import acceleration, distance_m, elapsed_seconds
from ..utils.logging import get_logger

logger = get_logger(__name__)


class AnomalyType(str, Enum):
    """Category of a detected anomaly."""

    SPEED = "speed_anomaly"
    ACCELERATION = "acceleration_anomaly"
    JUMP = "jump"
    DRIFT = "drift"
    MISSING = "missing"
    DENSITY = "density_anomaly"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(frozen=True)
class Anomaly:
    """One detected anomaly category with the samples it concerns."""

    type: AnomalyType
    description: str
    count: int
    severity: Severity
    indices: Tuple[int, ...] = ()
    """Positions of the flagged samples."""

    gaps: Tuple[Tuple[int, int], ...] = ()
    """(start, end) positions bracketing each missing-data gap."""

    def to_dict(self) -> Dict:
        return {
            "type": self.type.value,
            "description": self.description,
            "count": self.count,
            "severity": self.severity.value,
            "indices": list(self.indices),
            "gaps": [list(g) for g in self.gaps],
        }


@dataclass(frozen=True)
class DetectorConfig:
    """Thresholds used by the anomaly checks."""

    max_speed: float = 120.0
    """Maximum plausible speed in km/h."""

    max_acceleration: float = 10.0
    """Maximum plausible acceleration in m/s²."""

    max_jump: float = 500.0
    """Maximum plausible distance between consecutive samples in metres."""

    drift_threshold: float = 0.0001
    """Per-axis deviation in degrees above which a sample may be drifting."""

    adaptive: bool = True
    """Derive speed and jump thresholds from the trajectory itself."""

    drift_window: int = 5
    density_window: int = 10
    density_min_samples: int = 20
    sparse_distance: float = 100.0
    """Mean spacing (m) above which a window is sparse."""

    dense_distance: float = 0.1
    """Mean spacing (m) below which a window is dense."""

    gap_factor: float = 5.0
    """An interval is a gap when it exceeds this multiple of the mean interval."""

    gap_min_seconds: float = 10.0

    def __post_init__(self):
        for name in ("max_speed", "max_acceleration", "max_jump", "drift_threshold"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be non-negative")
        if self.drift_window < 3 or self.density_window < 2:
            raise ValueError("drift_window must be >= 3 and density_window >= 2")


def percentile_value(values: Sequence[float], lower: float, upper: float, q: float) -> Optional[float]:
    """Return the `q` quantile of the values strictly inside (lower, upper).

    The quantile is taken by index on a sorted, filtered copy
    (``int(n * q)``, clamped to the last element).  Returns None when
    no value survives the filter.
    """
    kept = sorted(v for v in values if lower < v < upper)
    if not kept:
        return None
    idx = min(int(len(kept) * q), len(kept) - 1)
    return kept[idx]


def adaptive_speed_threshold(samples: Sequence[Sample], config: DetectorConfig) -> float:
    """1.5 x the 95th percentile speed, capped at the configured maximum."""
    p95 = percentile_value([s.speed for s in samples], 0.0, 300.0, 0.95)
    if p95 is None:
        return config.max_speed
    return min(p95 * 1.5, config.max_speed)


def adaptive_jump_threshold(samples: Sequence[Sample], config: DetectorConfig) -> float:
    """10 x the 99th percentile step distance, capped at the configured maximum."""
    distances = [distance_m(a, b) for a, b in zip(samples, samples[1:])]
    p99 = percentile_value(distances, 0.0, 10000.0, 0.99)
    if p99 is None:
        return config.max_jump
    return min(p99 * 10.0, config.max_jump)


def mean_interval(samples: Sequence[Sample]) -> float:
    """Mean of the plausible (0 < dt < 1000 s) sampling intervals, 1 s if none."""
    intervals = []
    for a, b in zip(samples, samples[1:]):
        dt = elapsed_seconds(a, b)
        if dt is not None and 0 < dt < 1000:
            intervals.append(dt)
    if not intervals:
        return 1.0
    return float(np.mean(intervals))


def detect_speed(samples: Sequence[Sample], config: DetectorConfig) -> List[Anomaly]:
    """Flag samples whose recorded speed exceeds the (adaptive) threshold."""
    threshold = adaptive_speed_threshold(samples, config) if config.adaptive else config.max_speed
    logger.debug("Speed threshold: %.2f km/h", threshold)

    indices = [i for i, s in enumerate(samples) if s.speed > threshold]
    if not indices:
        return []

    peak = max(samples[i].speed for i in indices)
    ratio = peak / threshold if threshold > 0 else float("inf")
    if ratio > 2:
        severity = Severity.HIGH
    elif ratio > 1.5:
        severity = Severity.MEDIUM
    else:
        severity = Severity.LOW

    return [Anomaly(
        type=AnomalyType.SPEED,
        description="Abnormal speed detected",
        count=len(indices),
        severity=severity,
        indices=tuple(indices),
    )]


def detect_acceleration(samples: Sequence[Sample], config: DetectorConfig) -> List[Anomaly]:
    """Flag the middle sample of each triple with implausible acceleration."""
    indices = []
    extreme = False
    for i in range(2, len(samples)):
        accel = abs(acceleration(samples[i - 2], samples[i - 1], samples[i]))
        if accel > config.max_acceleration:
            indices.append(i - 1)
            if accel > config.max_acceleration * 2:
                extreme = True

    if not indices:
        return []

    return [Anomaly(
        type=AnomalyType.ACCELERATION,
        description="Abnormal acceleration detected",
        count=len(indices),
        severity=Severity.HIGH if extreme else Severity.MEDIUM,
        indices=tuple(indices),
    )]


def detect_jumps(samples: Sequence[Sample], config: DetectorConfig) -> List[Anomaly]:
    """Flag samples reached by an implausibly long step.

    A step is a jump when it is longer than the absolute (adaptive)
    threshold and, if the elapsed time is known and positive, also
    longer than the distance coverable at `max_speed`.
    """
    threshold = adaptive_jump_threshold(samples, config) if config.adaptive else config.max_jump
    logger.debug("Jump threshold: %.2f m", threshold)

    indices = []
    largest = 0.0
    for i in range(1, len(samples)):
        dist = distance_m(samples[i - 1], samples[i])
        if dist <= threshold:
            continue
        dt = elapsed_seconds(samples[i - 1], samples[i])
        if dt is not None and dt > 0 and dist <= (config.max_speed / 3.6) * dt:
            continue
        indices.append(i)
        largest = max(largest, dist)

    if not indices:
        return []

    if len(indices) > len(samples) * 0.1 or largest > config.max_jump * 2:
        severity = Severity.HIGH
    else:
        severity = Severity.MEDIUM

    return [Anomaly(
        type=AnomalyType.JUMP,
        description="Position jump detected",
        count=len(indices),
        severity=severity,
        indices=tuple(indices),
    )]


def _fitted_last(values: np.ndarray) -> float:
    """Least-squares line through (index, value), evaluated at the last index."""
    x = np.arange(len(values), dtype=float)
    xc = x - x.mean()
    slope = np.dot(xc, values - values.mean()) / np.dot(xc, xc)
    return float(values.mean() + slope * xc[-1])


def _consistent(diffs: np.ndarray, threshold: float) -> bool:
    half = len(diffs) // 2
    return int(np.sum(diffs > threshold)) > half or int(np.sum(diffs < -threshold)) > half


def detect_drift(samples: Sequence[Sample], config: DetectorConfig) -> List[Anomaly]:
    """Flag samples that deviate consistently from their local linear trend.

    For each sample a line is fitted through the window of
    `drift_window` samples ending at it.  The sample drifts when it is
    off the fitted position by more than `drift_threshold` on an axis
    and the majority of the last half-window deviates the same way on
    that axis.
    """
    window = config.drift_window
    n = len(samples)
    if n < window:
        return []

    lats = np.array([s.latitude for s in samples])
    lons = np.array([s.longitude for s in samples])
    thr = config.drift_threshold

    indices = []
    for i in range(window, n):
        lo = i - window + 1
        expected_lat = _fitted_last(lats[lo:i + 1])
        expected_lon = _fitted_last(lons[lo:i + 1])
        recent = slice(i - window // 2, i + 1)

        lat_drift = (abs(lats[i] - expected_lat) > thr
                     and _consistent(lats[recent] - expected_lat, thr))
        lon_drift = (abs(lons[i] - expected_lon) > thr
                     and _consistent(lons[recent] - expected_lon, thr))
        if lat_drift or lon_drift:
            indices.append(i)

    if not indices:
        return []

    if len(indices) > n * 0.2:
        severity = Severity.HIGH
    elif len(indices) > n * 0.1:
        severity = Severity.MEDIUM
    else:
        severity = Severity.LOW

    return [Anomaly(
        type=AnomalyType.DRIFT,
        description="GPS position drift detected",
        count=len(indices),
        severity=severity,
        indices=tuple(indices),
    )]


def find_time_gaps(samples: Sequence[Sample], config: DetectorConfig) -> List[Tuple[int, int]]:
    """Merge consecutive over-long intervals into (start, end) ranges."""
    limit = max(mean_interval(samples) * config.gap_factor, config.gap_min_seconds)
    gaps = []
    start = None
    for i in range(1, len(samples)):
        dt = elapsed_seconds(samples[i - 1], samples[i])
        if dt is not None and dt > limit:
            if start is None:
                start = i - 1
        elif start is not None:
            gaps.append((start, i - 1))
            start = None
    if start is not None:
        gaps.append((start, len(samples) - 1))
    return gaps


def detect_missing(samples: Sequence[Sample], config: DetectorConfig) -> List[Anomaly]:
    """Report segments where samples are missing from the time series."""
    gaps = find_time_gaps(samples, config)
    if not gaps:
        return []

    avg = mean_interval(samples)
    missing = 0
    for start, end in gaps:
        span = samples[end].timestamp - samples[start].timestamp
        missing += max(0, int(round(span / avg)) - (end - start))

    n = len(samples)
    if missing > n * 0.2:
        severity = Severity.HIGH
    elif missing > n * 0.1:
        severity = Severity.MEDIUM
    else:
        severity = Severity.LOW

    return [Anomaly(
        type=AnomalyType.MISSING,
        description="Missing data segment",
        count=len(gaps),
        severity=severity,
        gaps=tuple(gaps),
    )]


def detect_density(samples: Sequence[Sample], config: DetectorConfig) -> List[Anomaly]:
    """Flag windows whose mean spacing is far too sparse or too dense."""
    window = config.density_window
    n = len(samples)
    if n < max(window, config.density_min_samples):
        return []

    steps = np.array([distance_m(a, b) for a, b in zip(samples, samples[1:])])
    sparse = []
    dense = []
    for i in range(n - window + 1):
        avg = steps[i:i + window - 1].mean()
        if avg > config.sparse_distance:
            sparse.append(i + window // 2)
        elif avg < config.dense_distance:
            dense.append(i + window // 2)

    anomalies = []
    if sparse:
        anomalies.append(Anomaly(
            type=AnomalyType.DENSITY,
            description="Sparse point density detected",
            count=len(sparse),
            severity=Severity.HIGH if len(sparse) > n * 0.1 else Severity.MEDIUM,
            indices=tuple(sparse),
        ))
    if dense:
        anomalies.append(Anomaly(
            type=AnomalyType.DENSITY,
            description="Dense point clustering detected",
            count=len(dense),
            severity=Severity.LOW,
            indices=tuple(dense),
        ))
    return anomalies


DETECTION_ORDER = (
    detect_speed,
    detect_acceleration,
    detect_jumps,
    detect_drift,
    detect_missing,
    detect_density,
)


@dataclass
class AnomalyDetector:
    """Run every anomaly check over a trajectory."""

    config: DetectorConfig = field(default_factory=DetectorConfig)

    def detect_all(self, samples: Sequence[Sample]) -> List[Anomaly]:
        """Union of all checks, ordered speed, acceleration, jump, drift, missing, density."""
        anomalies: List[Anomaly] = []
        for check in DETECTION_ORDER:
            anomalies.extend(check(samples, self.config))
        logger.debug("Detected %d anomaly groups over %d samples", len(anomalies), len(samples))
        return anomalies

    def detect_speed_anomalies(self, samples: Sequence[Sample]) -> List[Anomaly]:
        return detect_speed(samples, self.config)

    def detect_acceleration_anomalies(self, samples: Sequence[Sample]) -> List[Anomaly]:
        return detect_acceleration(samples, self.config)

    def detect_jumps(self, samples: Sequence[Sample]) -> List[Anomaly]:
        return detect_jumps(samples, self.config)

    def detect_drift(self, samples: Sequence[Sample]) -> List[Anomaly]:
        return detect_drift(samples, self.config)

    def detect_missing(self, samples: Sequence[Sample]) -> List[Anomaly]:
        return detect_missing(samples, self.config)

    def detect_density_anomalies(self, samples: Sequence[Sample]) -> List[Anomaly]:
        return detect_density(samples, self.config)
