"""Speed and acceleration between trajectory samples.

All functions accept any objects exposing ``latitude``, ``longitude``
and ``timestamp`` (POSIX seconds or ``None``).  They are total: a
missing timestamp or a non-positive interval yields 0 instead of a
division by zero.
"""

from typing import Optional, Sequence

from .geodesy import bearing, haversine_distance


def elapsed_seconds(a, b) -> Optional[float]:
    """Seconds from sample `a` to sample `b`, or None if either lacks a time."""
    if a.timestamp is None or b.timestamp is None:
        return None
    return b.timestamp - a.timestamp


def distance_m(a, b) -> float:
    """Haversine distance between two samples in metres."""
    return haversine_distance(a.latitude, a.longitude, b.latitude, b.longitude)


def speed_kmh(a, b) -> float:
    """Average speed from `a` to `b` in km/h."""
    dt = elapsed_seconds(a, b)
    if dt is None or dt <= 0:
        return 0.0
    return (distance_m(a, b) / 1000.0) / (dt / 3600.0)


def acceleration(a, b, c) -> float:
    """Finite-difference acceleration at `b` in m/s².

    The speeds over (a, b) and (b, c) are differenced and divided by
    the mean of the two intervals.
    """
    dt1 = elapsed_seconds(a, b)
    dt2 = elapsed_seconds(b, c)
    if dt1 is None or dt2 is None or dt1 <= 0 or dt2 <= 0:
        return 0.0
    v1 = speed_kmh(a, b) / 3.6
    v2 = speed_kmh(b, c) / 3.6
    return (v2 - v1) / ((dt1 + dt2) / 2.0)


def update_motion(prev, sample) -> None:
    """Recompute `sample.speed` and `sample.bearing` against its predecessor."""
    sample.speed = speed_kmh(prev, sample)
    sample.bearing = bearing(prev.latitude, prev.longitude, sample.latitude, sample.longitude)


def annotate_kinematics(samples: Sequence) -> None:
    """Fill speed, bearing and acceleration of every sample in place.

    Speed and bearing of sample ``i`` are measured from sample ``i-1``;
    the first sample keeps speed 0.  Acceleration is set for interior
    samples only.
    """
    for i in range(1, len(samples)):
        update_motion(samples[i - 1], samples[i])
    for i in range(1, len(samples) - 1):
        samples[i].acceleration = acceleration(samples[i - 1], samples[i], samples[i + 1])
