"""Unit tests for trajectory health scoring."""

import numpy as np
import pytest

from trajclean.common.trajectory import Sample, SampleStatus, samples_from_array
from trajclean.correction.detector import Anomaly, AnomalyType, Severity
from trajclean.qa.health_score import HealthScorer, Rating, count_oscillations

T0 = 1700000000.0


def make_samples(n=20, elevation=15.0, noise=0.0, seed=0):
    rng = np.random.default_rng(seed)
    k = np.arange(n, dtype=float)
    lat = 52.0 + 0.0001 * k + rng.normal(0, noise, n) if noise else 52.0 + 0.0001 * k
    lon = np.full(n, 5.0) + (rng.normal(0, noise, n) if noise else 0.0)
    return samples_from_array(np.column_stack([lat, lon, T0 + k, np.full(n, elevation)]))


def anomaly(count, severity=Severity.MEDIUM):
    return Anomaly(
        type=AnomalyType.SPEED,
        description="test",
        count=count,
        severity=severity,
        indices=tuple(range(count)),
    )


class TestRating:
    """Test suite for Rating."""

    def test_thresholds(self):
        """Totals map onto the four ratings."""
        assert Rating.from_total(100) is Rating.EXCELLENT
        assert Rating.from_total(85) is Rating.EXCELLENT
        assert Rating.from_total(84) is Rating.GOOD
        assert Rating.from_total(70) is Rating.GOOD
        assert Rating.from_total(50) is Rating.FAIR
        assert Rating.from_total(49) is Rating.POOR


class TestHealthScorer:
    """Test suite for HealthScorer."""

    def test_weights_must_sum_to_one(self):
        """Unbalanced weights are rejected."""
        with pytest.raises(ValueError):
            HealthScorer(completeness_weight=0.5)

    def test_clean_trajectory(self):
        """A clean, complete trajectory scores high on completeness and accuracy."""
        samples = make_samples()
        score = HealthScorer().calculate(samples, [])

        assert score.breakdown["completeness"].score >= 90
        assert score.breakdown["accuracy"].score >= 90
        assert score.total == 100
        assert score.rating is Rating.EXCELLENT

    def test_total_always_in_range(self):
        """Whatever the input, the total stays within 0..100."""
        scorer = HealthScorer()
        cases = [
            ([], []),
            (make_samples(1), []),
            (make_samples(5, elevation=0.0), [anomaly(50, Severity.HIGH)]),
            (make_samples(50, noise=1e-4, seed=2), [anomaly(10), anomaly(3, Severity.HIGH)]),
        ]
        for samples, anomalies in cases:
            score = scorer.calculate(samples, anomalies)
            assert 0 <= score.total <= 100
            for detail in score.breakdown.values():
                assert 0.0 <= detail.score <= 100.0

    def test_neutral_scores_for_short_input(self):
        """Consistency and smoothness fall back to 50."""
        scorer = HealthScorer()
        one = make_samples(1)
        two = make_samples(2)
        assert scorer.consistency_score(one) == 50.0
        assert scorer.smoothness_score(two) == 50.0
        assert scorer.completeness_score([]) == 0.0

    def test_completeness(self):
        """Time, elevation and gap ratios are weighted 0.4/0.3/0.3."""
        samples = make_samples(10)
        for s in samples[:5]:
            s.elevation = None
        assert HealthScorer().completeness_score(samples) == 85.0

        samples[9].status = SampleStatus.MISSING
        # 40 + 15 + 27
        assert HealthScorer().completeness_score(samples) == 82.0

    def test_accuracy_penalties(self):
        """Anomalous samples, high severity and corrections lower accuracy."""
        scorer = HealthScorer()
        samples = make_samples(20)
        assert scorer.accuracy_score(samples, [anomaly(2)]) == 90.0
        assert scorer.accuracy_score(samples, [anomaly(2, Severity.HIGH)]) == 86.0

        moved = samples[3]
        moved.original_latitude = moved.latitude - 0.0009  # ~100 m
        moved.original_longitude = moved.longitude
        assert scorer.accuracy_score(samples, []) == 90.0

    def test_consistency(self):
        """Out-of-order times and abrupt speed changes are penalised."""
        scorer = HealthScorer()
        samples = [Sample(i, 52.0 + 0.0001 * i, 5.0, timestamp=T0 + i, speed=30.0) for i in range(10)]
        assert scorer.consistency_score(samples) == 100.0

        samples[5].timestamp = T0 + 3.5
        assert scorer.consistency_score(samples) == 94.0

        samples[5].timestamp = T0 + 5
        samples[3].speed = 80.0
        assert scorer.consistency_score(samples) == 92.0

    def test_smoothness(self):
        """Straight traces are perfectly smooth, zig-zags are not."""
        scorer = HealthScorer()
        assert scorer.smoothness_score(make_samples(20)) == 100.0

        zigzag = make_samples(20)
        for i, s in enumerate(zigzag):
            s.longitude = 5.0 + (0.0001 if i % 3 == 0 else 0.0)
        assert scorer.smoothness_score(zigzag) < 100.0

    def test_oscillations(self):
        """Alternating straight and sharp turns are oscillations."""
        assert count_oscillations([5.0, 40.0, 5.0, 40.0, 5.0]) == 3
        assert count_oscillations([5.0, 5.0, 5.0]) == 0
        assert count_oscillations([40.0, 5.0]) == 0

    def test_to_dict(self):
        """The score serialises with plain values."""
        data = HealthScorer().calculate(make_samples(), []).to_dict()
        assert data["rating"] == "excellent"
        assert set(data["breakdown"]) == {"completeness", "accuracy", "consistency", "smoothness"}
