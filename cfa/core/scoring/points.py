"""
Points Engine - Fantasy points for one player in one match.

calculate_points(record, config) is a pure sum of independent sub-rules:
batting, duck penalty, strike rate, bowling, economy, fielding and the
playing-XI bonus. Tiered bonuses are exclusive: only the highest tier
reached applies.
"""

from typing import Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# Models
# =============================================================================


class PointSystemConfig(BaseModel):
    """Per-game point values. Bounds match what the operator may set."""

    model_config = ConfigDict(extra="forbid")

    # Batting
    run_points: int = Field(1, ge=0, le=10)
    four_bonus: int = Field(4, ge=0, le=20)
    six_bonus: int = Field(6, ge=0, le=30)
    runs25_bonus: int = Field(4, ge=0, le=50)
    runs50_bonus: int = Field(8, ge=0, le=100)
    runs75_bonus: int = Field(12, ge=0, le=100)
    runs100_bonus: int = Field(16, ge=0, le=200)
    duck_penalty: int = Field(-2, ge=-50, le=0)
    sr130_bonus: int = Field(2, ge=0, le=50)
    sr150_bonus: int = Field(4, ge=0, le=50)
    sr170_bonus: int = Field(6, ge=0, le=50)

    # Bowling
    wicket_points: int = Field(25, ge=0, le=100)
    lbw_bowled_bonus: int = Field(8, ge=0, le=50)
    maiden_points: int = Field(6, ge=0, le=50)
    dot_ball_points: int = Field(1, ge=0, le=10)
    wickets3_bonus: int = Field(4, ge=0, le=100)
    wickets4_bonus: int = Field(8, ge=0, le=100)
    wickets5_bonus: int = Field(12, ge=0, le=150)
    econ5_bonus: int = Field(6, ge=0, le=50)
    econ6_bonus: int = Field(4, ge=0, le=50)
    econ7_bonus: int = Field(2, ge=0, le=50)

    # Fielding
    catch_points: int = Field(8, ge=0, le=50)
    catches3_bonus: int = Field(4, ge=0, le=50)
    stumping_points: int = Field(12, ge=0, le=50)
    direct_runout: int = Field(12, ge=0, le=50)
    indirect_runout: int = Field(6, ge=0, le=50)
    playing_xi_bonus: int = Field(4, ge=0, le=20)


class PlayerMatchRecord(BaseModel):
    """One cricketer's statistics for one match."""

    model_config = ConfigDict(extra="forbid")

    in_playing_xi: bool = False
    runs: int = Field(0, ge=0, le=500)
    balls_faced: int = Field(0, ge=0, le=200)
    fours: int = Field(0, ge=0, le=50)
    sixes: int = Field(0, ge=0, le=30)
    dismissal_type: Optional[str] = None
    wickets: int = Field(0, ge=0, le=10)
    overs_bowled: float = Field(0, ge=0, le=10)
    runs_conceded: int = Field(0, ge=0, le=200)
    maidens: int = Field(0, ge=0, le=10)
    dot_balls: int = Field(0, ge=0, le=60)
    lbw_bowled_dismissals: int = Field(0, ge=0, le=10)
    catches: int = Field(0, ge=0, le=10)
    stumpings: int = Field(0, ge=0, le=5)
    direct_runouts: int = Field(0, ge=0, le=5)
    indirect_runouts: int = Field(0, ge=0, le=5)


# =============================================================================
# Sub-rules
# =============================================================================

# Strike rate and economy thresholds only count over a minimum sample
MIN_BALLS_FOR_STRIKE_RATE = 10
MIN_OVERS_FOR_ECONOMY = 2


def _highest_tier(value: float, tiers: Sequence[Tuple[float, int]]) -> int:
    """Bonus of the highest threshold reached; tiers sorted descending."""
    for threshold, bonus in tiers:
        if value >= threshold:
            return bonus
    return 0


def batting_points(record: PlayerMatchRecord, config: PointSystemConfig) -> int:
    total = (
        record.runs * config.run_points
        + record.fours * config.four_bonus
        + record.sixes * config.six_bonus
    )
    total += _highest_tier(record.runs, (
        (100, config.runs100_bonus),
        (75, config.runs75_bonus),
        (50, config.runs50_bonus),
        (25, config.runs25_bonus),
    ))
    return total


def duck_points(record: PlayerMatchRecord, config: PointSystemConfig) -> int:
    """Penalty only for a dismissed batter who faced a ball and scored nothing."""
    if record.runs == 0 and record.dismissal_type and record.balls_faced > 0:
        return config.duck_penalty
    return 0


def strike_rate_points(record: PlayerMatchRecord, config: PointSystemConfig) -> int:
    if record.balls_faced < MIN_BALLS_FOR_STRIKE_RATE:
        return 0
    strike_rate = record.runs / record.balls_faced * 100
    return _highest_tier(strike_rate, (
        (170, config.sr170_bonus),
        (150, config.sr150_bonus),
        (130, config.sr130_bonus),
    ))


def bowling_points(record: PlayerMatchRecord, config: PointSystemConfig) -> int:
    total = (
        record.wickets * config.wicket_points
        + record.lbw_bowled_dismissals * config.lbw_bowled_bonus
        + record.maidens * config.maiden_points
        + record.dot_balls * config.dot_ball_points
    )
    total += _highest_tier(record.wickets, (
        (5, config.wickets5_bonus),
        (4, config.wickets4_bonus),
        (3, config.wickets3_bonus),
    ))
    return total


def economy_points(record: PlayerMatchRecord, config: PointSystemConfig) -> int:
    if record.overs_bowled < MIN_OVERS_FOR_ECONOMY:
        return 0
    economy = record.runs_conceded / record.overs_bowled
    if economy < 5:
        return config.econ5_bonus
    if economy < 6:
        return config.econ6_bonus
    if economy < 7:
        return config.econ7_bonus
    return 0


def fielding_points(record: PlayerMatchRecord, config: PointSystemConfig) -> int:
    total = (
        record.catches * config.catch_points
        + record.stumpings * config.stumping_points
        + record.direct_runouts * config.direct_runout
        + record.indirect_runouts * config.indirect_runout
    )
    if record.catches >= 3:
        total += config.catches3_bonus
    return total


def playing_xi_points(record: PlayerMatchRecord, config: PointSystemConfig) -> int:
    return config.playing_xi_bonus if record.in_playing_xi else 0


SUB_RULES = (
    batting_points,
    duck_points,
    strike_rate_points,
    bowling_points,
    economy_points,
    fielding_points,
    playing_xi_points,
)


def calculate_points(record: PlayerMatchRecord, config: Optional[PointSystemConfig] = None) -> int:
    """Total fantasy points for a match record."""
    if config is None:
        config = PointSystemConfig()
    return sum(rule(record, config) for rule in SUB_RULES)


def points_breakdown(record: PlayerMatchRecord, config: Optional[PointSystemConfig] = None) -> dict:
    """Per-rule contributions, keyed by rule name without the _points suffix."""
    if config is None:
        config = PointSystemConfig()
    return {
        rule.__name__[: -len("_points")]: rule(record, config)
        for rule in SUB_RULES
    }
