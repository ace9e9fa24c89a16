"""Unit tests for gap interpolation."""

import numpy as np
import pytest

from trajclean.common.trajectory import Sample, SampleStatus, samples_from_array
from trajclean.correction.interpolator import GapInterpolator, hermite, secant_curve

T0 = 1700000000.0


def make_trace(n, dlat=0.0001, elevation=None):
    k = np.arange(n, dtype=float)
    cols = [52.0 + dlat * k, np.full(n, 5.0), T0 + k]
    if elevation is not None:
        cols.append(np.full(n, elevation))
    return np.column_stack(cols)


def with_gap(arr, after, seconds, extra_lat=0.0):
    """Delay every row after position `after` by `seconds`."""
    arr = arr.copy()
    arr[after + 1:, 2] += seconds
    arr[after + 1:, 0] += extra_lat
    return arr


class TestCurve:
    """Test suite for the Hermite helpers."""

    def test_endpoints(self):
        """The curve passes through both ends."""
        assert hermite(1.0, 3.0, 0.5, 4.0, 0.0) == pytest.approx(1.0)
        assert hermite(1.0, 3.0, 0.5, 4.0, 1.0) == pytest.approx(3.0)

    def test_secant_is_linear(self):
        """Secant slopes reduce the curve to a straight line."""
        for t in (0.1, 0.25, 0.5, 0.9):
            assert secant_curve(2.0, 6.0, t) == pytest.approx(2.0 + 4.0 * t)


class TestGapInterpolator:
    """Test suite for GapInterpolator."""

    def test_short_trajectories_pass_through(self):
        """Fewer than two samples are returned unchanged."""
        interp = GapInterpolator()
        assert interp.interpolate([]) == []
        single = [Sample(0, 52.0, 5.0, timestamp=T0)]
        assert interp.interpolate(single) == single

    def test_invalid_ceiling(self):
        """A non-positive gap ceiling is rejected."""
        with pytest.raises(ValueError):
            GapInterpolator(max_gap_seconds=0)

    def test_find_gaps_merges_runs(self):
        """Consecutive over-long intervals form one bracketed gap."""
        arr = with_gap(make_trace(20), after=4, seconds=15)
        arr = with_gap(arr, after=9, seconds=12)
        arr = with_gap(arr, after=10, seconds=12)
        samples = samples_from_array(arr)

        interp = GapInterpolator()
        assert interp.find_gaps(samples) == [(4, 5), (9, 11)]
        assert interp.local_interval(samples, 4, 5) == pytest.approx(37.0 / 10)

    def test_no_gaps(self):
        """A regular trace is copied unchanged."""
        samples = samples_from_array(make_trace(10))
        result = GapInterpolator().interpolate(samples)
        assert len(result) == 10
        assert not any(s.is_interpolated for s in result)

    def test_thirty_second_gap(self):
        """A 30 s gap over 100 m is filled with monotonic interpolated samples."""
        # 0.0009 degrees of latitude is about 100 m
        arr = with_gap(make_trace(20), after=9, seconds=29.0, extra_lat=0.0008)
        samples = samples_from_array(arr)
        result = GapInterpolator().interpolate(samples)

        added = [s for s in result if s.is_interpolated]
        assert len(added) > 0
        assert len(result) == len(samples) + len(added)

        start = result.index(next(s for s in result if s.is_interpolated)) - 1
        block = result[start:start + len(added) + 2]
        assert block[0].index == 9 and block[-1].index == 10
        lats = [s.latitude for s in block]
        times = [s.timestamp for s in block]
        assert all(b > a for a, b in zip(lats, lats[1:]))
        assert all(b > a for a, b in zip(times, times[1:]))
        for s in added:
            assert s.status is SampleStatus.INTERPOLATED
            assert s.corrected_by == "gap_interpolation"
            assert s.index == 9
            assert s.speed > 0

    def test_count_follows_local_cadence(self):
        """The gap's own interval counts toward the local cadence."""
        arr = with_gap(make_trace(20), after=9, seconds=29.0)
        samples = samples_from_array(arr)
        interp = GapInterpolator()

        # ten 1 s intervals and the 30 s gap within five samples of it
        assert interp.local_interval(samples, 9, 10) == pytest.approx(40.0 / 11)
        result = interp.interpolate(samples)
        assert sum(s.is_interpolated for s in result) == 8

    def test_cadence_ignores_very_long_intervals(self):
        """Intervals of 100 s or more do not count toward the cadence."""
        arr = with_gap(make_trace(20), after=5, seconds=149.0)
        arr = with_gap(arr, after=9, seconds=19.0)
        samples = samples_from_array(arr)
        # the 150 s interval at 5-6 is skipped: nine 1 s intervals and the 20 s gap
        assert GapInterpolator().local_interval(samples, 9, 10) == pytest.approx(29.0 / 10)

    def test_long_gap_left_open(self):
        """A gap over the ceiling adds nothing."""
        arr = with_gap(make_trace(20), after=9, seconds=89.0)
        result = GapInterpolator().interpolate(samples_from_array(arr))
        assert len(result) == 20
        assert not any(s.is_interpolated for s in result)

    def test_long_merged_gap_marks_interior_missing(self):
        """Samples inside an unfillable merged gap are marked missing."""
        arr = with_gap(make_trace(20), after=9, seconds=39.0)
        arr = with_gap(arr, after=10, seconds=39.0)
        result = GapInterpolator().interpolate(samples_from_array(arr))

        assert len(result) == 20
        assert result[10].status is SampleStatus.MISSING
        assert result[9].status is SampleStatus.NORMAL
        assert result[11].status is SampleStatus.NORMAL

    def test_short_merged_gap_keeps_interior(self):
        """A fillable merged gap is filled on both sides of its interior sample."""
        arr = with_gap(make_trace(20), after=9, seconds=14.0)
        arr = with_gap(arr, after=10, seconds=14.0)
        result = GapInterpolator().interpolate(samples_from_array(arr))

        assert sum(s.is_interpolated for s in result) == 8
        assert [s.index for s in result if not s.is_interpolated] == list(range(20))

    def test_elevation_requires_both_ends(self):
        """Elevation is interpolated only between samples that carry one."""
        arr = with_gap(make_trace(20, elevation=10.0), after=9, seconds=29.0)
        arr[10:, 3] = 20.0
        result = GapInterpolator().interpolate(samples_from_array(arr))
        elevations = [s.elevation for s in result if s.is_interpolated]
        assert all(10.0 < e < 20.0 for e in elevations)

        arr[10, 3] = np.nan
        result = GapInterpolator().interpolate(samples_from_array(arr))
        assert all(s.elevation is None for s in result if s.is_interpolated)

    def test_input_untouched(self):
        """The input list and its samples are not modified."""
        samples = samples_from_array(with_gap(make_trace(20), after=9, seconds=29.0))
        speeds = [s.speed for s in samples]
        GapInterpolator().interpolate(samples)
        assert len(samples) == 20
        assert [s.speed for s in samples] == speeds


class TestInterpolateIndices:
    """Test suite for GapInterpolator.interpolate_indices."""

    def test_replaces_with_midpoint(self):
        """A single index becomes the midpoint of its neighbours."""
        arr = make_trace(10)
        arr[5, 0] += 0.001
        samples = samples_from_array(arr)
        result = GapInterpolator().interpolate_indices(samples, [5])

        assert len(result) == 10
        assert result[5].is_interpolated
        assert result[5].index == 5
        assert result[5].latitude == pytest.approx(52.0005)
        assert result[5].timestamp == pytest.approx(T0 + 5)
        assert not samples[5].is_interpolated

    def test_skips_endpoints_and_neighbours(self):
        """Endpoints and samples next to an interpolated one are left alone."""
        samples = samples_from_array(make_trace(10))
        result = GapInterpolator().interpolate_indices(samples, [0, 4, 5, 9])

        flags = [s.is_interpolated for s in result]
        assert flags == [False, False, False, False, True, False, False, False, False, False]
