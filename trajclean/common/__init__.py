"""Trajectory data model shared by detection, correction and QA."""

from .trajectory import (
    Sample,
    SampleStatus,
    Bounds,
    ElevationStats,
    TrajectoryStats,
    copy_samples,
    validate_samples,
    samples_from_array,
    samples_to_frame,
    compute_stats,
)

__all__ = [
    "Sample",
    "SampleStatus",
    "Bounds",
    "ElevationStats",
    "TrajectoryStats",
    "copy_samples",
    "validate_samples",
    "samples_from_array",
    "samples_to_frame",
    "compute_stats",
]
