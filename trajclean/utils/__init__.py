"""Utility functions for the trajectory correction engine."""

from .logging import get_logger
from .config import load_config
from .geodesy import haversine_distance, bearing, bearing_delta
from .kinematics import speed_kmh, acceleration, annotate_kinematics

__all__ = [
    "get_logger",
    "load_config",
    "haversine_distance",
    "bearing",
    "bearing_delta",
    "speed_kmh",
    "acceleration",
    "annotate_kinematics",
]
