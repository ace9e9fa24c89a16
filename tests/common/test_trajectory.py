"""Unit tests for the trajectory data model."""

import numpy as np
import pytest

from trajclean.common.trajectory import (
    Sample,
    SampleStatus,
    compute_stats,
    copy_samples,
    samples_from_array,
    samples_to_frame,
    validate_samples,
)

T0 = 1700000000.0


class TestSample:
    """Test suite for Sample."""

    def test_rejects_out_of_range_coordinates(self):
        """Latitude above 90 fails loudly."""
        with pytest.raises(ValueError):
            Sample(index=0, latitude=91.0, longitude=0.0)

    def test_rejects_nan(self):
        """Non-finite coordinates fail loudly."""
        with pytest.raises(ValueError):
            Sample(index=0, latitude=float("nan"), longitude=0.0)

    def test_elevation_presence(self):
        """Only positive elevations count as present."""
        assert Sample(0, 1.0, 1.0, elevation=10.0).has_elevation
        assert not Sample(0, 1.0, 1.0, elevation=0.0).has_elevation
        assert not Sample(0, 1.0, 1.0).has_elevation

    def test_status_from_string(self):
        """A plain string status is coerced to SampleStatus."""
        s = Sample(0, 1.0, 1.0, status="drift")
        assert s.status is SampleStatus.DRIFT

    def test_to_dict(self):
        """Status is serialised as its string value."""
        data = Sample(3, 1.0, 2.0, timestamp=T0).to_dict()
        assert data["index"] == 3
        assert data["status"] == "normal"
        assert data["timestamp"] == T0

    def test_copies_are_independent(self):
        """Changing a copy leaves the original untouched."""
        original = [Sample(0, 1.0, 1.0)]
        copied = copy_samples(original)
        copied[0].latitude = 2.0
        assert original[0].latitude == 1.0


class TestValidation:
    """Test suite for validate_samples."""

    def test_valid(self):
        """A valid trajectory passes silently."""
        validate_samples([Sample(0, 1.0, 1.0), Sample(1, 1.1, 1.1)])

    def test_reassigned_coordinate_fails(self):
        """A coordinate corrupted after construction is caught."""
        samples = [Sample(0, 1.0, 1.0), Sample(1, 1.1, 1.1)]
        samples[1].longitude = 200.0
        with pytest.raises(ValueError, match=r"\[1\]"):
            validate_samples(samples)


class TestSamplesFromArray:
    """Test suite for samples_from_array."""

    def test_three_columns(self):
        """Rows of lat, lon, time become annotated samples."""
        arr = np.array([
            [52.0, 5.0, T0],
            [52.001, 5.0, T0 + 10],
            [52.002, 5.0, T0 + 20],
        ])
        samples = samples_from_array(arr)
        assert [s.index for s in samples] == [0, 1, 2]
        assert samples[1].speed == pytest.approx(40.03, rel=1e-3)
        assert all(s.elevation is None for s in samples)

    def test_four_columns_and_nan_time(self):
        """NaN time maps to None, the fourth column is elevation."""
        arr = np.array([
            [52.0, 5.0, np.nan, 12.5],
            [52.001, 5.0, T0, 13.0],
        ])
        samples = samples_from_array(arr)
        assert samples[0].timestamp is None
        assert samples[1].timestamp == T0
        assert samples[0].elevation == 12.5

    def test_reports_every_bad_row(self):
        """Out-of-range coordinates and timestamps are listed together."""
        arr = np.array([
            [52.0, 5.0, T0],
            [95.0, 5.0, T0 + 1],
            [52.0, 5.0, 100.0],
        ])
        with pytest.raises(ValueError, match=r"\[1, 2\]"):
            samples_from_array(arr)

    def test_wrong_shape(self):
        """Two columns are rejected."""
        with pytest.raises(ValueError):
            samples_from_array(np.zeros((3, 2)))

    def test_frame(self):
        """Samples tabulate to one row each."""
        arr = np.array([[52.0, 5.0, T0], [52.001, 5.0, T0 + 1]])
        frame = samples_to_frame(samples_from_array(arr))
        assert len(frame) == 2
        assert list(frame["status"]) == ["normal", "normal"]


class TestStats:
    """Test suite for compute_stats."""

    def test_empty(self):
        """An empty trajectory has zero statistics."""
        stats = compute_stats([])
        assert stats.point_count == 0
        assert stats.distance == 0.0

    def test_statistics(self):
        """Distance, duration, bounds and elevation gain/loss."""
        arr = np.array([
            [52.0, 5.0, T0, 10.0],
            [52.001, 5.0, T0 + 10, 15.0],
            [52.002, 5.001, T0 + 20, 12.0],
        ])
        stats = compute_stats(samples_from_array(arr))
        assert stats.point_count == 3
        assert stats.duration_seconds == 20.0
        assert stats.distance > 200.0
        assert stats.bounds.north == 52.002
        assert stats.bounds.west == 5.0
        assert stats.elevation.gain == pytest.approx(5.0)
        assert stats.elevation.loss == pytest.approx(3.0)
        assert stats.elevation.min == 10.0
        assert stats.elevation.max == 15.0
        assert stats.max_speed >= stats.avg_speed > 0

    def test_elevation_ignores_absent_values(self):
        """Non-positive elevations are left out of the summary."""
        samples = [
            Sample(0, 52.0, 5.0, elevation=0.0, timestamp=T0),
            Sample(1, 52.001, 5.0, elevation=20.0, timestamp=T0 + 1),
        ]
        stats = compute_stats(samples)
        assert stats.elevation.min == 20.0
        assert stats.elevation.gain == 0.0
