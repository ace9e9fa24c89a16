"""Gap filling for trajectories with missing samples.

Consecutive samples more than `gap_threshold_seconds` apart form a
gap; neighbouring over-long intervals are merged into one gap.  Gaps
no longer than `max_gap_seconds` are filled with synthesized samples
on a cubic Hermite curve between the samples bracketing the interval.
Longer gaps are left open and their interior samples are marked
``missing``.

The curve uses the secant slope as derivative at both ends, so over a
two-point span it reduces to straight-line interpolation.  Latitude,
longitude and (when both ends carry one) elevation are interpolated
independently; timestamps are spaced evenly.
"""

from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

from ..common.trajectory import Sample, SampleStatus, copy_samples
from ..utils.geodesy import bearing
from ..utils.kinematics import elapsed_seconds, speed_kmh, update_motion
from ..utils.logging import get_logger

logger = get_logger(__name__)


def hermite(y1: float, y2: float, m1: float, m2: float, t: float) -> float:
    """Evaluate the cubic Hermite curve from y1 to y2 at t in [0, 1].

    Written as ``a + b t + c t² + d t³`` with slopes `m1`, `m2` at
    the ends of a unit interval.
    """
    dy = y2 - y1
    c = 3 * dy - 2 * m1 - m2
    d = m1 + m2 - 2 * dy
    return y1 + m1 * t + c * t * t + d * t * t * t


def secant_curve(y1: float, y2: float, t: float) -> float:
    """Hermite curve whose end slopes both equal the secant slope."""
    slope = y2 - y1
    return hermite(y1, y2, slope, slope, t)


@dataclass
class GapInterpolator:
    """Fill short temporal gaps with synthesized samples."""

    max_gap_seconds: float = 60.0
    """Longest gap that is filled; longer gaps are marked missing."""

    gap_threshold_seconds: float = 10.0
    """Intervals longer than this are gaps."""

    local_window: int = 5
    """Samples on each side of a gap used to estimate the local cadence."""

    max_cadence_seconds: float = 100.0
    """Intervals at or above this are ignored when estimating the cadence."""

    max_synthesized: int = 100
    """Upper bound on samples synthesized per interval."""

    name: str = "gap_interpolation"

    def __post_init__(self):
        if self.max_gap_seconds <= 0 or self.gap_threshold_seconds <= 0:
            raise ValueError("gap durations must be positive")
        if self.max_synthesized < 1:
            raise ValueError("max_synthesized must be at least 1")

    def find_gaps(self, samples: Sequence[Sample]) -> List[Tuple[int, int]]:
        """Positions (start, end) bracketing each run of over-long intervals."""
        gaps = []
        start = None
        for i in range(1, len(samples)):
            dt = elapsed_seconds(samples[i - 1], samples[i])
            if dt is not None and dt > self.gap_threshold_seconds:
                if start is None:
                    start = i - 1
            elif start is not None:
                gaps.append((start, i - 1))
                start = None
        if start is not None:
            gaps.append((start, len(samples) - 1))
        return gaps

    def local_interval(self, samples: Sequence[Sample], start: int, end: int) -> float:
        """Mean interval in the window around a gap, 1 s if none.

        Every interval strictly between 0 and `max_cadence_seconds` counts,
        the over-long intervals of the gap itself included.
        """
        lo = max(0, start - self.local_window)
        hi = min(len(samples) - 1, end + self.local_window)
        intervals = []
        for i in range(lo + 1, hi + 1):
            dt = elapsed_seconds(samples[i - 1], samples[i])
            if dt is not None and 0 < dt < self.max_cadence_seconds:
                intervals.append(dt)
        if not intervals:
            return 1.0
        return sum(intervals) / len(intervals)

    def interpolate(self, samples: Sequence[Sample]) -> List[Sample]:
        """Fill every fillable gap of a trajectory.

        Returns
        -------
        list of Sample
            New samples with synthesized ones inserted.  The input is
            left untouched; trajectories shorter than two samples are
            returned as a plain copy.
        """
        if len(samples) < 2:
            return list(samples)

        gaps = self.find_gaps(samples)
        if not gaps:
            return copy_samples(samples)

        result: List[Sample] = []
        cursor = 0
        for start, end in gaps:
            result.extend(copy_samples(samples[cursor:start]))
            duration = samples[end].timestamp - samples[start].timestamp

            if duration > self.max_gap_seconds or duration <= 0:
                logger.debug("Gap %d-%d of %.1f s left open", start, end, duration)
                result.append(copy_samples([samples[start]])[0])
                for sample in copy_samples(samples[start + 1:end]):
                    sample.status = SampleStatus.MISSING
                    result.append(sample)
                cursor = end
                continue

            avg = self.local_interval(samples, start, end)
            for i in range(start, end):
                anchor = copy_samples([samples[i]])[0]
                result.append(anchor)
                dt = elapsed_seconds(samples[i], samples[i + 1])
                if dt is None or dt <= self.gap_threshold_seconds:
                    continue
                count = min(max(int(dt / avg), 1), self.max_synthesized)
                result.extend(self._synthesize(anchor, samples[i + 1], count))
            cursor = end

        result.extend(copy_samples(samples[cursor:]))
        for i in range(1, len(result)):
            if result[i - 1].is_interpolated and not result[i].is_interpolated:
                update_motion(result[i - 1], result[i])

        logger.debug("Interpolated %d samples into %d gaps",
                     len(result) - len(samples), len(gaps))
        return result

    def _synthesize(self, first: Sample, last: Sample, count: int) -> List[Sample]:
        """`count` samples evenly spaced in time strictly between two samples."""
        with_elevation = first.has_elevation and last.has_elevation
        out: List[Sample] = []
        prev = first
        for k in range(count):
            t = (k + 1) / (count + 1)
            timestamp: Optional[float] = None
            if first.timestamp is not None and last.timestamp is not None:
                timestamp = first.timestamp + (last.timestamp - first.timestamp) * t
            sample = Sample(
                index=first.index,
                latitude=secant_curve(first.latitude, last.latitude, t),
                longitude=secant_curve(first.longitude, last.longitude, t),
                elevation=secant_curve(first.elevation, last.elevation, t) if with_elevation else None,
                timestamp=timestamp,
                status=SampleStatus.INTERPOLATED,
                corrected_by=self.name,
                is_interpolated=True,
            )
            update_motion(prev, sample)
            out.append(sample)
            prev = sample
        return out

    def interpolate_indices(self, samples: Sequence[Sample], indices: Iterable[int]) -> List[Sample]:
        """Replace single samples by the midpoint of their neighbours.

        Endpoints are skipped, as is any position whose neighbour is
        already interpolated, so that errors do not compound.
        """
        result = copy_samples(samples)
        n = len(result)
        for idx in sorted(set(indices)):
            if idx <= 0 or idx >= n - 1:
                continue
            prev, nxt = result[idx - 1], result[idx + 1]
            if prev.is_interpolated or nxt.is_interpolated:
                continue

            timestamp = prev.timestamp
            if prev.timestamp is not None and nxt.timestamp is not None:
                timestamp = prev.timestamp + (nxt.timestamp - prev.timestamp) / 2
            with_elevation = prev.has_elevation and nxt.has_elevation

            result[idx] = Sample(
                index=result[idx].index,
                latitude=secant_curve(prev.latitude, nxt.latitude, 0.5),
                longitude=secant_curve(prev.longitude, nxt.longitude, 0.5),
                elevation=secant_curve(prev.elevation, nxt.elevation, 0.5) if with_elevation else None,
                timestamp=timestamp,
                status=SampleStatus.INTERPOLATED,
                speed=speed_kmh(prev, nxt),
                bearing=bearing(prev.latitude, prev.longitude, nxt.latitude, nxt.longitude),
                corrected_by=self.name,
                is_interpolated=True,
            )
        return result
