"""End-to-end trajectory correction pipeline.

`CorrectionPipeline` detects anomalies on the raw trajectory and then
applies the enabled correction stages in a fixed order:

1. adaptive RTS smoothing,
2. gap interpolation,
3. noise-aware simplification,
4. removal of samples flagged by high-severity anomalies.

The trajectory is finally scored against the anomalies found before
correction.  Every stage works on copies, so the caller's samples are
never modified.

Usage::

    from trajclean.correction.pipeline import CorrectionPipeline, PipelineConfig

    config = PipelineConfig.from_yaml("configs/default.yaml")
    report = CorrectionPipeline(config).run(samples)
    print(report.health.total, report.health.rating)
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import pandas as pd

from ..common.trajectory import (
    Sample,
    SampleStatus,
    TrajectoryStats,
    compute_stats,
    copy_samples,
    validate_samples,
)
from ..qa.health_score import HealthScore, HealthScorer
from ..utils.config import load_config
from ..utils.logging import get_logger
from .detector import Anomaly, AnomalyDetector, AnomalyType, DetectorConfig, Severity
from .interpolator import GapInterpolator
from .simplifier import NoiseAwareSimplifier
from .smoother import AdaptiveRTSSmoother

logger = get_logger(__name__)

# Anomaly categories that are written back onto the samples, in the
# order they are applied; later categories win.
STATUS_BY_ANOMALY = {
    AnomalyType.SPEED: SampleStatus.SPEED_ANOMALY,
    AnomalyType.ACCELERATION: SampleStatus.ACCELERATION_ANOMALY,
    AnomalyType.JUMP: SampleStatus.JUMP,
    AnomalyType.DRIFT: SampleStatus.DRIFT,
}

SCORE_DIMENSIONS = ("completeness", "accuracy", "consistency", "smoothness")


@dataclass
class PipelineConfig:
    """Thresholds, stage toggles and stage parameters of a correction run."""

    detector: DetectorConfig = field(default_factory=DetectorConfig)

    smoothing: bool = True
    interpolation: bool = True
    simplification: bool = True
    outlier_removal: bool = True

    simplify_epsilon: float = 1.0
    """Simplification tolerance in metres."""

    consider_noise: bool = True
    simplifier_workers: int = 1
    max_gap_seconds: float = 60.0

    score_weights: Dict[str, float] = field(default_factory=lambda: {
        "completeness": 0.25,
        "accuracy": 0.25,
        "consistency": 0.25,
        "smoothness": 0.25,
    })

    def __post_init__(self):
        if self.simplify_epsilon < 0:
            raise ValueError(f"simplify_epsilon must be non-negative, got {self.simplify_epsilon}")
        if self.simplifier_workers < 1:
            raise ValueError(f"simplifier_workers must be at least 1, got {self.simplifier_workers}")
        if self.max_gap_seconds <= 0:
            raise ValueError(f"max_gap_seconds must be positive, got {self.max_gap_seconds}")
        # Construct once so invalid weights fail here rather than mid-run.
        self.scorer()

    @property
    def any_stage_enabled(self) -> bool:
        return self.smoothing or self.interpolation or self.simplification or self.outlier_removal

    def scorer(self) -> HealthScorer:
        w = self.score_weights
        return HealthScorer(
            completeness_weight=w.get("completeness", 0.25),
            accuracy_weight=w.get("accuracy", 0.25),
            consistency_weight=w.get("consistency", 0.25),
            smoothness_weight=w.get("smoothness", 0.25),
        )

    @classmethod
    def from_dict(cls, cfg: Dict[str, Any]) -> "PipelineConfig":
        """Build a configuration from a nested dictionary.

        Recognised sections are ``thresholds``, ``algorithms``,
        ``simplification``, ``interpolation`` and ``scoring``.  Unknown
        keys are ignored and missing keys keep their defaults.
        """
        thresholds = cfg.get("thresholds") or {}
        algorithms = cfg.get("algorithms") or {}
        simplification = cfg.get("simplification") or {}
        interpolation = cfg.get("interpolation") or {}
        scoring = cfg.get("scoring") or {}

        defaults = DetectorConfig()
        detector = DetectorConfig(
            max_speed=float(thresholds.get("max_speed", defaults.max_speed)),
            max_acceleration=float(thresholds.get("max_acceleration", defaults.max_acceleration)),
            max_jump=float(thresholds.get("max_jump", defaults.max_jump)),
            drift_threshold=float(thresholds.get("drift_threshold", defaults.drift_threshold)),
            adaptive=bool(thresholds.get("adaptive", defaults.adaptive)),
        )

        kwargs: Dict[str, Any] = {
            "detector": detector,
            "smoothing": bool(algorithms.get("adaptive_rts", True)),
            "interpolation": bool(algorithms.get("gap_interpolation", True)),
            "simplification": bool(algorithms.get("simplification", True)),
            "outlier_removal": bool(algorithms.get("outlier_removal", True)),
            "simplify_epsilon": float(simplification.get("epsilon", 1.0)),
            "consider_noise": bool(simplification.get("consider_noise", True)),
            "simplifier_workers": int(simplification.get("workers", 1)),
            "max_gap_seconds": float(interpolation.get("max_gap_seconds", 60.0)),
        }
        weights = scoring.get("weights")
        if weights:
            # All four dimensions or none.
            missing = [k for k in SCORE_DIMENSIONS if k not in weights]
            if missing:
                raise ValueError(
                    f"scoring.weights must list all of {', '.join(SCORE_DIMENSIONS)}; "
                    f"missing {', '.join(missing)}"
                )
            kwargs["score_weights"] = {k: float(v) for k, v in weights.items()}
        return cls(**kwargs)

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "PipelineConfig":
        """Load a configuration file; a missing or unreadable file gives the defaults."""
        return cls.from_dict(load_config(path))


@dataclass
class StageInfo:
    """What one correction stage did."""

    name: str
    description: str
    processed: int
    """Samples entering the stage."""

    fixed: int = 0
    removed: int = 0
    added: int = 0
    fixed_indices: List[int] = field(default_factory=list)
    """Output positions of samples the stage corrected or created."""

    parameters: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "processed": self.processed,
            "fixed": self.fixed,
            "removed": self.removed,
            "added": self.added,
            "fixed_indices": list(self.fixed_indices),
            "parameters": dict(self.parameters),
        }


@dataclass
class CorrectionReport:
    """Outcome of a pipeline run."""

    samples: List[Sample]
    """Corrected trajectory."""

    anomalies: List[Anomaly]
    """Anomalies detected on the raw trajectory."""

    health: HealthScore
    original_stats: TrajectoryStats
    corrected_stats: TrajectoryStats
    stages: List[StageInfo] = field(default_factory=list)
    interpolated_added: int = 0
    simplified_removed: int = 0
    outlier_removed: int = 0

    @property
    def total_processed(self) -> int:
        """Samples removed by simplification and outlier removal together."""
        return self.simplified_removed + self.outlier_removed

    @property
    def normal_points(self) -> int:
        return sum(1 for s in self.samples if s.status == SampleStatus.NORMAL)

    @property
    def anomaly_points(self) -> int:
        return sum(
            1 for s in self.samples
            if s.status not in (SampleStatus.NORMAL, SampleStatus.INTERPOLATED)
        )

    def to_dict(self, include_samples: bool = True) -> Dict[str, Any]:
        """Convert the report to a JSON-ready dictionary."""
        data = {
            "original": self.original_stats.to_dict(),
            "corrected": self.corrected_stats.to_dict(),
            "diagnostics": {
                "normal_points": self.normal_points,
                "anomaly_points": self.anomaly_points,
                "interpolated_added": self.interpolated_added,
                "simplified_removed": self.simplified_removed,
                "outlier_removed": self.outlier_removed,
                "total_processed": self.total_processed,
                "anomalies": [a.to_dict() for a in self.anomalies],
                "stages": [s.to_dict() for s in self.stages],
                "health_score": self.health.to_dict(),
            },
        }
        if include_samples:
            data["samples"] = [s.to_dict() for s in self.samples]
        return data

    def anomalies_frame(self) -> pd.DataFrame:
        """One row per anomaly with its type, severity, count and description."""
        columns = ["type", "severity", "count", "description", "indices", "gaps"]
        rows = [a.to_dict() for a in self.anomalies]
        return pd.DataFrame(rows, columns=columns)


def mark_statuses(samples: Sequence[Sample], anomalies: Sequence[Anomaly]) -> None:
    """Write the status of each flagged sample in place.

    Anomalies are applied in the given order, so a sample flagged by
    several categories ends up with the status of the last one.
    Categories without a per-sample status (missing, density) are
    skipped.
    """
    n = len(samples)
    for anomaly in anomalies:
        status = STATUS_BY_ANOMALY.get(anomaly.type)
        if status is None:
            continue
        for idx in anomaly.indices:
            if 0 <= idx < n:
                samples[idx].status = status


def remove_outliers(samples: Sequence[Sample], anomalies: Sequence[Anomaly]) -> List[Sample]:
    """Drop samples whose index appears in a high-severity anomaly.

    Interpolated samples are always kept.
    """
    outliers = set()
    for anomaly in anomalies:
        if anomaly.severity == Severity.HIGH:
            outliers.update(anomaly.indices)
    if not outliers:
        return list(samples)
    return [s for s in samples if s.is_interpolated or s.index not in outliers]


class CorrectionPipeline:
    """Detect, correct and score a GPS trajectory."""

    def __init__(self, config: Optional[PipelineConfig] = None):
        """Initialize the pipeline.

        Parameters
        ----------
        config : PipelineConfig, optional
            Run configuration; defaults apply when omitted.
        """
        self.config = config or PipelineConfig()

        self.detector = AnomalyDetector(self.config.detector)
        self.smoother = AdaptiveRTSSmoother()
        self.interpolator = GapInterpolator(max_gap_seconds=self.config.max_gap_seconds)
        self.simplifier = NoiseAwareSimplifier(
            epsilon=self.config.simplify_epsilon,
            consider_noise=self.config.consider_noise,
        )
        self.scorer = self.config.scorer()

    def step_1_detect(self, samples: Sequence[Sample]) -> List[Anomaly]:
        anomalies = self.detector.detect_all(samples)
        logger.info("Detection: %d anomaly groups over %d samples", len(anomalies), len(samples))
        for a in anomalies:
            logger.debug("  %s (%s): %d", a.type.value, a.severity.value, a.count)
        return anomalies

    def step_2_smooth(self, samples: List[Sample]) -> Tuple[List[Sample], StageInfo]:
        result = self.smoother.smooth(samples)
        fixed = [i for i, s in enumerate(result) if s.corrected_by == self.smoother.name]
        logger.info("Smoothing: %d of %d samples corrected", len(fixed), len(result))
        return result, StageInfo(
            name=self.smoother.name,
            description="Forward-backward Kalman smoothing with online noise estimation",
            processed=len(samples),
            fixed=len(fixed),
            fixed_indices=fixed,
            parameters={
                "vb_alpha": self.smoother.vb_alpha,
                "vb_beta": self.smoother.vb_beta,
                "drift_pull": self.smoother.drift_pull,
            },
        )

    def step_3_interpolate(self, samples: List[Sample]) -> Tuple[List[Sample], StageInfo]:
        result = self.interpolator.interpolate(samples)
        added = len(result) - len(samples)
        created = [i for i, s in enumerate(result) if s.corrected_by == self.interpolator.name]
        logger.info("Interpolation: %d -> %d samples (%d added)", len(samples), len(result), added)
        return result, StageInfo(
            name=self.interpolator.name,
            description="Hermite interpolation across short time gaps",
            processed=len(samples),
            fixed=len(created),
            added=added,
            fixed_indices=created,
            parameters={
                "max_gap_seconds": self.interpolator.max_gap_seconds,
                "gap_threshold_seconds": self.interpolator.gap_threshold_seconds,
            },
        )

    def step_4_simplify(self, samples: List[Sample]) -> Tuple[List[Sample], StageInfo]:
        result = self.simplifier.simplify_parallel(samples, self.config.simplifier_workers)
        removed = len(samples) - len(result)
        logger.info("Simplification: %d -> %d samples (ratio %.2f)", len(samples), len(result),
                    self.simplifier.compression_ratio(samples, result))
        return result, StageInfo(
            name="simplification",
            description="Noise-aware Douglas-Peucker simplification",
            processed=len(samples),
            removed=removed,
            parameters={
                "epsilon": self.simplifier.epsilon,
                "consider_noise": self.simplifier.consider_noise,
                "workers": self.config.simplifier_workers,
            },
        )

    def step_5_remove_outliers(
        self, samples: List[Sample], anomalies: Sequence[Anomaly]
    ) -> Tuple[List[Sample], StageInfo]:
        result = remove_outliers(samples, anomalies)
        removed = len(samples) - len(result)
        logger.info("Outlier removal: %d samples removed", removed)
        return result, StageInfo(
            name="outlier_removal",
            description="Removal of samples flagged by high-severity anomalies",
            processed=len(samples),
            removed=removed,
            parameters={"severity": Severity.HIGH.value},
        )

    def run(self, samples: Sequence[Sample]) -> CorrectionReport:
        """Run detection, the enabled correction stages and scoring.

        Parameters
        ----------
        samples : sequence of Sample
            Raw trajectory in time order.

        Returns
        -------
        CorrectionReport

        Raises
        ------
        ValueError
            If a sample carries out-of-range coordinates.
        """
        validate_samples(samples)
        original_stats = compute_stats(samples)

        anomalies = self.step_1_detect(samples)
        working = copy_samples(samples)
        mark_statuses(working, anomalies)

        if not self.config.any_stage_enabled:
            logger.info("All correction stages disabled, reporting detection only")

        stages: List[StageInfo] = []
        interpolated = simplified = outliers = 0

        if self.config.smoothing:
            working, info = self.step_2_smooth(working)
            stages.append(info)
        if self.config.interpolation:
            working, info = self.step_3_interpolate(working)
            interpolated = info.added
            stages.append(info)
        if self.config.simplification:
            working, info = self.step_4_simplify(working)
            simplified = info.removed
            stages.append(info)
        if self.config.outlier_removal:
            working, info = self.step_5_remove_outliers(working, anomalies)
            outliers = info.removed
            stages.append(info)

        health = self.scorer.calculate(working, anomalies)
        logger.info("Health score: %d (%s)", health.total, health.rating.value)

        return CorrectionReport(
            samples=working,
            anomalies=anomalies,
            health=health,
            original_stats=original_stats,
            corrected_stats=compute_stats(working),
            stages=stages,
            interpolated_added=interpolated,
            simplified_removed=simplified,
            outlier_removed=outliers,
        )
