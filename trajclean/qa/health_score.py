"""Trajectory health scoring.

`HealthScorer` rates a (corrected) trajectory on four dimensions, each
scored 0-100:

completeness
    share of samples with a timestamp, an elevation and no ``missing``
    status.
accuracy
    share of samples not involved in an anomaly, with extra penalties
    for high-severity anomalies and for large corrections.
consistency
    share of time-ordered pairs and of smooth speed changes.
smoothness
    spread of heading changes and the number of zig-zag oscillations.

The weighted sum of the four, rounded to an integer, is the total
score; it maps to a rating of excellent, good, fair or poor.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Sequence

import numpy as np

from ..common.trajectory import Sample, SampleStatus
from ..utils.geodesy import bearing, bearing_delta, haversine_distance
from ..utils.logging import get_logger

logger = get_logger(__name__)

NEUTRAL_SCORE = 50.0
HIGH_SEVERITY = "high"
SPEED_JUMP_KMH = 30.0
STRAIGHT_TURN_DEG = 10.0
SHARP_TURN_DEG = 30.0


class Rating(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"

    @classmethod
    def from_total(cls, total: float) -> "Rating":
        if total >= 85:
            return cls.EXCELLENT
        if total >= 70:
            return cls.GOOD
        if total >= 50:
            return cls.FAIR
        return cls.POOR


@dataclass
class ScoreDetail:
    """One scored dimension."""

    score: float
    weight: float
    description: str


@dataclass
class HealthScore:
    """Overall score with its per-dimension breakdown."""

    total: int
    rating: Rating
    breakdown: Dict[str, ScoreDetail] = field(default_factory=dict)

    def to_dict(self) -> Dict:
        return {
            "total": self.total,
            "rating": self.rating.value,
            "breakdown": {
                name: {"score": d.score, "weight": d.weight, "description": d.description}
                for name, d in self.breakdown.items()
            },
        }


def _round(value: float) -> float:
    """Round half away from zero."""
    return float(math.floor(abs(value) + 0.5)) * (1 if value >= 0 else -1)


def _clamp(value: float) -> float:
    return max(0.0, min(100.0, value))


def turn_angles(samples: Sequence[Sample]) -> List[float]:
    """Heading change in degrees at every interior sample."""
    turns = []
    for a, b, c in zip(samples, samples[1:], samples[2:]):
        turns.append(bearing_delta(
            bearing(a.latitude, a.longitude, b.latitude, b.longitude),
            bearing(b.latitude, b.longitude, c.latitude, c.longitude),
        ))
    return turns


def count_oscillations(turns: Sequence[float]) -> int:
    """Count straight-sharp-straight and sharp-straight-sharp triples."""
    count = 0
    for t1, t2, t3 in zip(turns, turns[1:], turns[2:]):
        if t1 < STRAIGHT_TURN_DEG and t2 > SHARP_TURN_DEG and t3 < STRAIGHT_TURN_DEG:
            count += 1
        elif t1 > SHARP_TURN_DEG and t2 < STRAIGHT_TURN_DEG and t3 > SHARP_TURN_DEG:
            count += 1
    return count


def average_deviation(samples: Sequence[Sample]) -> float:
    """Mean distance in metres between corrected and original positions."""
    deviations = [
        haversine_distance(s.original_latitude, s.original_longitude, s.latitude, s.longitude)
        for s in samples if s.was_moved
    ]
    if not deviations:
        return 0.0
    return sum(deviations) / len(deviations)


@dataclass
class HealthScorer:
    """Weighted four-dimension trajectory quality score."""

    completeness_weight: float = 0.25
    accuracy_weight: float = 0.25
    consistency_weight: float = 0.25
    smoothness_weight: float = 0.25

    def __post_init__(self):
        weights = (self.completeness_weight, self.accuracy_weight,
                   self.consistency_weight, self.smoothness_weight)
        if any(w < 0 for w in weights):
            raise ValueError("score weights must be non-negative")
        if abs(sum(weights) - 1.0) > 1e-6:
            raise ValueError(f"score weights must sum to 1, got {sum(weights)}")

    def calculate(self, samples: Sequence[Sample], anomalies: Sequence) -> HealthScore:
        """Score a trajectory against the anomalies detected on its raw input.

        Parameters
        ----------
        samples : sequence of Sample
            Trajectory to score, usually the corrected one.
        anomalies : sequence of Anomaly
            Anomalies found before correction.

        Returns
        -------
        HealthScore
        """
        breakdown = {
            "completeness": self.completeness(samples),
            "accuracy": self.accuracy(samples, anomalies),
            "consistency": self.consistency(samples),
            "smoothness": self.smoothness(samples),
        }
        total = int(_round(sum(d.score * d.weight for d in breakdown.values())))
        total = int(_clamp(total))
        logger.debug("Health score %d (%s)", total,
                     ", ".join(f"{k}={d.score:.0f}" for k, d in breakdown.items()))
        return HealthScore(total=total, rating=Rating.from_total(total), breakdown=breakdown)

    def completeness(self, samples: Sequence[Sample]) -> ScoreDetail:
        if not samples:
            return ScoreDetail(0.0, self.completeness_weight, "No data available")

        n = len(samples)
        timed = sum(1 for s in samples if s.has_timestamp) / n
        elevated = sum(1 for s in samples if s.has_elevation) / n
        present = sum(1 for s in samples if s.status != SampleStatus.MISSING) / n

        score = (0.4 * timed + 0.3 * elevated + 0.3 * present) * 100
        return ScoreDetail(
            _round(score), self.completeness_weight,
            "Data completeness ratio (time, elevation, gaps)",
        )

    def accuracy(self, samples: Sequence[Sample], anomalies: Sequence) -> ScoreDetail:
        if not samples:
            return ScoreDetail(0.0, self.accuracy_weight, "No data available")

        flagged = sum(a.count for a in anomalies)
        high = sum(a.count for a in anomalies if a.severity == HIGH_SEVERITY)

        score = (1.0 - flagged / len(samples)) * 100
        score -= 2 * high
        deviation = average_deviation(samples)
        if deviation > 0:
            score -= min(deviation / 10, 20)

        return ScoreDetail(
            _round(_clamp(score)), self.accuracy_weight,
            "Position accuracy assessment (anomalies, deviations)",
        )

    def consistency(self, samples: Sequence[Sample]) -> ScoreDetail:
        if len(samples) < 2:
            return ScoreDetail(NEUTRAL_SCORE, self.consistency_weight,
                               "Insufficient data for consistency check")

        n = len(samples)
        out_of_order = sum(
            1 for a, b in zip(samples, samples[1:])
            if a.has_timestamp and b.has_timestamp and b.timestamp < a.timestamp
        )
        # The first sample's speed is undefined, so pairs start at the second.
        speed_jumps = sum(
            1 for a, b in zip(samples[1:], samples[2:])
            if a.speed > 0 and b.speed > 0 and abs(b.speed - a.speed) > SPEED_JUMP_KMH
        )

        order_score = (1.0 - out_of_order / n) * 100
        speed_score = (1.0 - speed_jumps / n) * 100
        score = 0.6 * order_score + 0.4 * speed_score
        return ScoreDetail(
            _round(_clamp(score)), self.consistency_weight,
            "Temporal consistency check (time order, speed changes)",
        )

    def smoothness(self, samples: Sequence[Sample]) -> ScoreDetail:
        if len(samples) < 3:
            return ScoreDetail(NEUTRAL_SCORE, self.smoothness_weight,
                               "Insufficient data for smoothness check")

        turns = turn_angles(samples)
        score = 100 - 3 * float(np.std(turns)) - 2 * count_oscillations(turns)
        return ScoreDetail(
            _round(_clamp(score)), self.smoothness_weight,
            "Trajectory smoothness score (angle changes, oscillations)",
        )

    # Single-dimension accessors
    def completeness_score(self, samples: Sequence[Sample]) -> float:
        return self.completeness(samples).score

    def accuracy_score(self, samples: Sequence[Sample], anomalies: Sequence) -> float:
        return self.accuracy(samples, anomalies).score

    def consistency_score(self, samples: Sequence[Sample]) -> float:
        return self.consistency(samples).score

    def smoothness_score(self, samples: Sequence[Sample]) -> float:
        return self.smoothness(samples).score
