"""Trajectory data model.

A trajectory is a plain Python list of `Sample` records ordered in time
(or in ingestion order when timestamps are absent).  Each correction
stage receives such a list, copies the samples it changes and returns a
new list, so the caller's trajectory is never modified.

This module also provides the thin adapter that turns an ``(N, 3)`` or
``(N, 4)`` array of ``[lat, lon, time, ele]`` rows into samples, the
defensive range checks run at pipeline entry, and summary statistics
for a trajectory.
"""

import copy
import math
from dataclasses import dataclass, asdict, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence

import numpy as np
import pandas as pd

from ..utils.geodesy import haversine_distance
from ..utils.kinematics import annotate_kinematics


class SampleStatus(str, Enum):
    """Classification attached to a sample by detection or correction."""

    NORMAL = "normal"
    DRIFT = "drift"
    JUMP = "jump"
    SPEED_ANOMALY = "speed_anomaly"
    ACCELERATION_ANOMALY = "acceleration_anomaly"
    MISSING = "missing"
    INTERPOLATED = "interpolated"


# Earliest and latest accepted timestamps (2000-01-01 and 2100-01-01).
MIN_TIMESTAMP = 946684800.0
MAX_TIMESTAMP = 4102444800.0


def _coordinates_valid(latitude: float, longitude: float) -> bool:
    return (
        math.isfinite(latitude) and math.isfinite(longitude)
        and -90.0 <= latitude <= 90.0
        and -180.0 <= longitude <= 180.0
    )


@dataclass
class Sample:
    """One timestamped geographic position with derived kinematics."""

    index: int
    """Position of the sample in the ingested trajectory."""

    latitude: float
    longitude: float

    elevation: Optional[float] = None
    """Elevation in metres; non-positive values count as absent."""

    timestamp: Optional[float] = None
    """POSIX seconds, or None when the source had no time."""

    status: SampleStatus = SampleStatus.NORMAL

    speed: float = 0.0
    """Speed from the previous sample in km/h."""

    bearing: float = 0.0
    """Bearing from the previous sample in degrees."""

    acceleration: Optional[float] = None
    """Acceleration in m/s², set for interior samples."""

    original_latitude: Optional[float] = None
    original_longitude: Optional[float] = None
    corrected_by: Optional[str] = None
    is_interpolated: bool = False

    def __post_init__(self):
        if not _coordinates_valid(self.latitude, self.longitude):
            raise ValueError(
                f"sample {self.index}: coordinates ({self.latitude}, {self.longitude}) "
                "outside [-90, 90] x [-180, 180]"
            )
        self.status = SampleStatus(self.status)

    @property
    def has_elevation(self) -> bool:
        return self.elevation is not None and self.elevation > 0

    @property
    def has_timestamp(self) -> bool:
        return self.timestamp is not None

    @property
    def was_moved(self) -> bool:
        """True if a correction stage recorded the pre-correction position."""
        return self.original_latitude is not None and self.original_longitude is not None

    def to_dict(self) -> Dict[str, Any]:
        """Convert the sample to a JSON-ready dictionary."""
        data = asdict(self)
        data["status"] = self.status.value
        return data


@dataclass
class Bounds:
    """Geographic bounding box."""

    north: float = 0.0
    south: float = 0.0
    east: float = 0.0
    west: float = 0.0


@dataclass
class ElevationStats:
    """Elevation summary over samples carrying an elevation."""

    min: float = 0.0
    max: float = 0.0
    gain: float = 0.0
    loss: float = 0.0
    avg: float = 0.0


@dataclass
class TrajectoryStats:
    """Summary statistics for a trajectory."""

    point_count: int = 0
    distance: float = 0.0
    """Total haversine length in metres."""

    duration_seconds: float = 0.0
    bounds: Bounds = field(default_factory=Bounds)
    elevation: ElevationStats = field(default_factory=ElevationStats)
    avg_speed: float = 0.0
    """Mean of the positive sample speeds in km/h."""

    max_speed: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def copy_samples(samples: Iterable[Sample]) -> List[Sample]:
    """Return independent copies of `samples`."""
    return [copy.copy(s) for s in samples]


def validate_samples(samples: Sequence[Sample]) -> None:
    """Check coordinate ranges of every sample.

    Samples are range-checked on construction, but attributes can be
    reassigned afterwards.  This check runs at pipeline entry so that a
    corrupted trajectory fails loudly instead of corrupting filter
    state.

    Raises
    ------
    ValueError
        If any sample has non-finite or out-of-range coordinates.
    """
    invalid = [
        i for i, s in enumerate(samples)
        if not _coordinates_valid(s.latitude, s.longitude)
    ]
    if invalid:
        raise ValueError(f"Invalid coordinates at positions: {invalid}")


def samples_from_array(points: np.ndarray, annotate: bool = True) -> List[Sample]:
    """Build samples from rows of ``[lat, lon, time, ele?]``.

    Parameters
    ----------
    points : numpy.ndarray
        Array of shape (N, 3) or (N, 4).  A NaN time marks a sample
        without timestamp; a NaN or missing elevation marks a sample
        without elevation.
    annotate : bool, optional
        Fill speed, bearing and acceleration from neighbouring samples.

    Returns
    -------
    list of Sample

    Raises
    ------
    ValueError
        If the array has the wrong shape or any row has invalid
        coordinates or a timestamp outside 2000-01-01..2100-01-01.  The
        message lists every offending row.
    """
    arr = np.asarray(points, dtype=float)
    if arr.ndim != 2 or arr.shape[1] not in (3, 4):
        raise ValueError("points must have shape (N, 3) or (N, 4): lat, lon, time[, ele]")

    invalid = []
    samples: List[Sample] = []
    for i, row in enumerate(arr):
        lat, lon, ts = row[0], row[1], row[2]
        if not _coordinates_valid(lat, lon):
            invalid.append(i)
            continue
        timestamp: Optional[float] = None
        if not np.isnan(ts):
            if not MIN_TIMESTAMP <= ts <= MAX_TIMESTAMP:
                invalid.append(i)
                continue
            timestamp = float(ts)
        elevation: Optional[float] = None
        if arr.shape[1] == 4 and np.isfinite(row[3]):
            elevation = float(row[3])
        samples.append(Sample(
            index=i,
            latitude=float(lat),
            longitude=float(lon),
            elevation=elevation,
            timestamp=timestamp,
        ))

    if invalid:
        raise ValueError(
            f"Invalid points at indices: {invalid} (check lat, lon, time ranges)"
        )
    if annotate:
        annotate_kinematics(samples)
    return samples


def samples_to_frame(samples: Sequence[Sample]) -> pd.DataFrame:
    """Tabulate samples, one row per sample, status as plain string."""
    return pd.DataFrame([s.to_dict() for s in samples])


def compute_bounds(samples: Sequence[Sample]) -> Bounds:
    """Bounding box of the sample positions."""
    if not samples:
        return Bounds()
    lats = [s.latitude for s in samples]
    lons = [s.longitude for s in samples]
    return Bounds(north=max(lats), south=min(lats), east=max(lons), west=min(lons))


def compute_elevation_stats(samples: Sequence[Sample]) -> ElevationStats:
    """Min/max/average elevation plus cumulative gain and loss.

    Only samples with a present elevation contribute; gain and loss are
    accumulated between consecutive samples that both carry one.
    """
    values = [s.elevation for s in samples if s.has_elevation]
    if not values:
        return ElevationStats()

    gain = 0.0
    loss = 0.0
    for prev, cur in zip(samples, samples[1:]):
        if prev.has_elevation and cur.has_elevation:
            diff = cur.elevation - prev.elevation
            if diff > 0:
                gain += diff
            else:
                loss -= diff

    return ElevationStats(
        min=min(values),
        max=max(values),
        gain=gain,
        loss=loss,
        avg=sum(values) / len(values),
    )


def compute_stats(samples: Sequence[Sample]) -> TrajectoryStats:
    """Compute length, duration, bounds, elevation and speed statistics."""
    if not samples:
        return TrajectoryStats()

    distance = sum(
        haversine_distance(a.latitude, a.longitude, b.latitude, b.longitude)
        for a, b in zip(samples, samples[1:])
    )
    speeds = [s.speed for s in samples[1:] if s.speed > 0]

    duration = 0.0
    first, last = samples[0], samples[-1]
    if len(samples) > 1 and first.has_timestamp and last.has_timestamp:
        duration = last.timestamp - first.timestamp

    return TrajectoryStats(
        point_count=len(samples),
        distance=distance,
        duration_seconds=duration,
        bounds=compute_bounds(samples),
        elevation=compute_elevation_stats(samples),
        avg_speed=sum(speeds) / len(speeds) if speeds else 0.0,
        max_speed=max(speeds) if speeds else 0.0,
    )
