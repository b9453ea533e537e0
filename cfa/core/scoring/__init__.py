"""
CFA Scoring Module.

Fantasy points for match performances and per-game standings.
"""

from cfa.core.scoring.points import (
    PointSystemConfig,
    PlayerMatchRecord,
    calculate_points,
    points_breakdown,
)
from cfa.core.scoring.service import ScoringService

__all__ = [
    "PointSystemConfig",
    "PlayerMatchRecord",
    "calculate_points",
    "points_breakdown",
    "ScoringService",
]
