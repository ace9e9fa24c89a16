"""GPS trajectory cleaning: anomaly detection, correction and health scoring."""

__version__ = "0.1.0"
