"""Noise-aware Douglas-Peucker trajectory simplification.

The classic recursion keeps the sample farthest from the chord between
the ends of a range whenever that distance exceeds a tolerance.  The
distance is a triangle height computed with Heron's formula over
haversine side lengths, so it is geodesic in metres.  Two extensions
bias what is discarded:

* fast samples (more than 1.5x a 50 km/h reference) weigh 1.2x, so they
  are harder to drop;
* the tolerance of each range is scaled by ``1 + noise``, where noise is
  the mean small (<10°) heading change in the range divided by 45°.

Large trajectories can be simplified segment-wise in a thread pool.
"""

import math
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Dict, Iterable, List, Sequence, Tuple

from ..common.trajectory import Sample
from ..utils.geodesy import bearing, bearing_delta, haversine_distance
from ..utils.logging import get_logger

logger = get_logger(__name__)

REFERENCE_SPEED_KMH = 50.0
FAST_SPEED_FACTOR = 1.5
FAST_DISTANCE_WEIGHT = 1.2
STRAIGHT_TURN_DEG = 10.0
NOISE_NORMALIZER_DEG = 45.0

PARALLEL_MIN_SAMPLES = 1000
MIN_SEGMENT_SIZE = 100
DUPLICATE_DISTANCE_M = 1.0


def perpendicular_distance(point: Sample, start: Sample, end: Sample) -> float:
    """Height of `point` above the chord start-end, in metres.

    Falls back to the distance from `start` when the chord has zero
    length.
    """
    base = haversine_distance(start.latitude, start.longitude, end.latitude, end.longitude)
    d1 = haversine_distance(start.latitude, start.longitude, point.latitude, point.longitude)
    if base == 0:
        return d1
    d2 = haversine_distance(end.latitude, end.longitude, point.latitude, point.longitude)

    s = (d1 + d2 + base) / 2
    # Rounding can push a flat triangle's product slightly negative.
    area_sq = max(s * (s - d1) * (s - d2) * (s - base), 0.0)
    return 2 * math.sqrt(area_sq) / base


def partition(n: int, workers: int) -> List[Tuple[int, int]]:
    """Split ``range(n)`` into at most `workers` slices of at least 100 samples.

    The last slice absorbs the remainder, so no slice is shorter than
    `MIN_SEGMENT_SIZE` unless `n` itself is.
    """
    size = max(n // workers, MIN_SEGMENT_SIZE)
    count = max(1, min(workers, n // size))
    bounds = [(i * size, (i + 1) * size) for i in range(count)]
    bounds[-1] = (bounds[-1][0], n)
    return bounds


@dataclass
class NoiseAwareSimplifier:
    """Douglas-Peucker simplifier weighted by speed and local noise."""

    epsilon: float = 1.0
    """Base tolerance in metres."""

    consider_noise: bool = True
    """Scale the tolerance of each range by its angular noise."""

    min_points: int = 2
    """Trajectories of at most this many samples are returned as is."""

    def __post_init__(self):
        if self.epsilon < 0:
            raise ValueError(f"epsilon must be non-negative, got {self.epsilon}")
        if self.min_points < 2:
            raise ValueError("min_points must be at least 2")

    # ------------------------------------------------------------------
    # Core recursion
    # ------------------------------------------------------------------
    def effective_distance(self, point: Sample, start: Sample, end: Sample) -> float:
        dist = perpendicular_distance(point, start, end)
        if point.speed / REFERENCE_SPEED_KMH > FAST_SPEED_FACTOR:
            dist *= FAST_DISTANCE_WEIGHT
        return dist

    def estimate_noise(self, samples: Sequence[Sample], first: int, last: int) -> float:
        """Angular noise of the range in [0, 1]; 0 for ranges under 3 steps."""
        if last - first < 3:
            return 0.0
        total = 0.0
        count = 0
        for i in range(first + 1, last):
            a, b, c = samples[i - 1], samples[i], samples[i + 1]
            turn = bearing_delta(
                bearing(a.latitude, a.longitude, b.latitude, b.longitude),
                bearing(b.latitude, b.longitude, c.latitude, c.longitude),
            )
            if turn < STRAIGHT_TURN_DEG:
                total += turn
            count += 1
        return min(total / count / NOISE_NORMALIZER_DEG, 1.0)

    def _farthest(self, samples: Sequence[Sample], first: int, last: int) -> Tuple[float, int]:
        max_dist = 0.0
        max_idx = first
        for i in range(first + 1, last):
            dist = self.effective_distance(samples[i], samples[first], samples[last])
            if dist > max_dist:
                max_dist, max_idx = dist, i
        return max_dist, max_idx

    def _mark(self, samples: Sequence[Sample], first: int, last: int, keep: List[bool]) -> None:
        # Explicit stack; long straight traces would otherwise recurse deeply.
        stack = [(first, last)]
        while stack:
            lo, hi = stack.pop()
            if hi - lo <= 1:
                continue
            max_dist, max_idx = self._farthest(samples, lo, hi)
            threshold = self.epsilon
            if self.consider_noise:
                threshold *= 1.0 + self.estimate_noise(samples, lo, hi)
            if max_dist > threshold:
                keep[max_idx] = True
                stack.append((max_idx, hi))
                stack.append((lo, max_idx))

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------
    def simplify(self, samples: Sequence[Sample]) -> List[Sample]:
        """Simplify a trajectory, always keeping its first and last sample.

        Returns
        -------
        list of Sample
            A subsequence of `samples` (the same objects, not copies).
        """
        if len(samples) <= self.min_points:
            return list(samples)

        keep = [False] * len(samples)
        keep[0] = keep[-1] = True
        self._mark(samples, 0, len(samples) - 1, keep)

        result = [s for s, k in zip(samples, keep) if k]
        if len(result) < self.min_points:
            return list(samples)
        return result

    def simplify_with_preservation(self, samples: Sequence[Sample], preserve: Iterable[int]) -> List[Sample]:
        """Simplify only between positions that must be kept.

        Out-of-range positions in `preserve` are ignored; first and last
        are always kept.
        """
        n = len(samples)
        if n <= self.min_points:
            return list(samples)

        anchors = {i for i in preserve if 0 <= i < n}
        anchors.update((0, n - 1))
        keep = [False] * n
        for i in anchors:
            keep[i] = True

        ordered = sorted(anchors)
        for first, last in zip(ordered, ordered[1:]):
            if last - first > 1:
                self._mark(samples, first, last, keep)

        return [s for s, k in zip(samples, keep) if k]

    def simplify_parallel(self, samples: Sequence[Sample], workers: int = 4) -> List[Sample]:
        """Simplify large trajectories segment by segment in a thread pool.

        Trajectories of up to 1000 samples, or a single worker, fall back
        to `simplify`.  Segments are merged in order; a segment's first
        sample is dropped when it lies within 1 m of the previously
        retained sample.
        """
        if workers < 1:
            raise ValueError(f"workers must be at least 1, got {workers}")
        if len(samples) <= PARALLEL_MIN_SAMPLES or workers == 1:
            return self.simplify(samples)

        segments = partition(len(samples), workers)
        logger.debug("Simplifying %d samples in %d segments", len(samples), len(segments))

        results: Dict[int, List[Sample]] = {}
        with ThreadPoolExecutor(max_workers=workers) as executor:
            future_to_segment = {
                executor.submit(self.simplify, samples[start:end]): k
                for k, (start, end) in enumerate(segments)
            }
            for future in as_completed(future_to_segment):
                results[future_to_segment[future]] = future.result()

        merged: List[Sample] = []
        for k in range(len(segments)):
            part = results[k]
            if merged and part:
                last, head = merged[-1], part[0]
                if haversine_distance(last.latitude, last.longitude,
                                      head.latitude, head.longitude) < DUPLICATE_DISTANCE_M:
                    part = part[1:]
            merged.extend(part)
        return merged

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------
    @staticmethod
    def compression_ratio(original: Sequence[Sample], simplified: Sequence[Sample]) -> float:
        """``len(original) / len(simplified)``; 0 when either is empty."""
        if not original or not simplified:
            return 0.0
        return len(original) / len(simplified)

    @staticmethod
    def simplification_error(original: Sequence[Sample], simplified: Sequence[Sample]) -> float:
        """Largest distance from an original sample to the simplified line."""
        if len(simplified) < 2:
            return 0.0
        worst = 0.0
        for point in original:
            nearest = min(
                perpendicular_distance(point, a, b)
                for a, b in zip(simplified, simplified[1:])
            )
            worst = max(worst, nearest)
        return worst
