"""Trajectory correction package.

This package contains the stages that turn a raw GPS trajectory into a
corrected one: anomaly detection, adaptive RTS smoothing, gap
interpolation and noise-aware simplification, plus the pipeline that
composes them and scores the result.
"""

from .detector import (
    Anomaly,
    AnomalyDetector,
    AnomalyType,
    DetectorConfig,
    Severity,
    detect_speed,
    detect_acceleration,
    detect_jumps,
    detect_drift,
    detect_missing,
    detect_density,
)
from .smoother import AdaptiveRTSSmoother, FilterState
from .interpolator import GapInterpolator
from .simplifier import NoiseAwareSimplifier
from .pipeline import CorrectionPipeline, CorrectionReport, PipelineConfig, StageInfo

__all__ = [
    "Anomaly",
    "AnomalyDetector",
    "AnomalyType",
    "DetectorConfig",
    "Severity",
    "detect_speed",
    "detect_acceleration",
    "detect_jumps",
    "detect_drift",
    "detect_missing",
    "detect_density",
    "AdaptiveRTSSmoother",
    "FilterState",
    "GapInterpolator",
    "NoiseAwareSimplifier",
    "CorrectionPipeline",
    "CorrectionReport",
    "PipelineConfig",
    "StageInfo",
]
