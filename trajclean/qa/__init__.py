"""Quality assessment for corrected trajectories."""

from .health_score import HealthScore, HealthScorer, Rating, ScoreDetail

__all__ = ["HealthScore", "HealthScorer", "Rating", "ScoreDetail"]
