"""
Roster rules - Stateless checks for bids and substitutions.

Every function is pure: it takes a roster snapshot (the cricketers a
participant currently owns) plus limits, and never touches storage.
The bid rules are evaluated in order by the lot state machine; the
first failure is reported.
"""

from typing import Optional, Sequence, Tuple

from cfa.core.config import AuctionConfig
from cfa.core.game.models import Cricketer


# =============================================================================
# Predicates
# =============================================================================


def foreign_count(roster: Sequence[Cricketer]) -> int:
    return sum(1 for c in roster if c.is_foreign)


def has_room_for_one_more(roster: Sequence[Cricketer], team_size: int) -> bool:
    """Whether the roster can take one more player."""
    return len(roster) < team_size


def foreign_quota_allows(
    roster: Sequence[Cricketer],
    candidate_is_foreign: bool,
    max_foreign: int,
) -> bool:
    """Whether adding the candidate keeps the foreign count within the cap."""
    if not candidate_is_foreign:
        return True
    return foreign_count(roster) < max_foreign


def remaining_slots_after_pick(roster: Sequence[Cricketer], team_size: int) -> int:
    return max(0, team_size - len(roster) - 1)


def max_affordable_bid(
    budget_remaining: float,
    roster: Sequence[Cricketer],
    team_size: int,
    min_player_price: float,
) -> float:
    """
    Largest bid that still leaves min_player_price for every slot that
    would remain empty after winning this lot.
    """
    reserve = remaining_slots_after_pick(roster, team_size) * min_player_price
    return budget_remaining - reserve


# =============================================================================
# Composite Validators
# =============================================================================


def check_roster_for_bid(
    roster: Sequence[Cricketer],
    candidate: Cricketer,
    budget_remaining: float,
    amount: float,
    config: AuctionConfig,
) -> Tuple[bool, str, str, Optional[float]]:
    """
    Run the roster-dependent bid rules in order (size, foreign, budget).

    Returns:
        (is_valid, rule, error_message, limit)
    """
    if not has_room_for_one_more(roster, config.team_size):
        return False, "roster_full", "Your team is already full", None

    if not foreign_quota_allows(roster, candidate.is_foreign, config.max_foreign_players):
        return (
            False,
            "foreign_quota",
            f"Maximum foreign players limit reached ({config.max_foreign_players})",
            None,
        )

    ceiling = max_affordable_bid(
        budget_remaining, roster, config.team_size, config.min_player_price
    )
    if amount > ceiling:
        return False, "budget_ceiling", f"Maximum bid allowed is ${ceiling:.2f}", ceiling

    return True, "", "", None


def validate_substitution(
    roster: Sequence[Cricketer],
    drop: Optional[Cricketer],
    add: Optional[Cricketer],
    config: AuctionConfig,
) -> Tuple[bool, str]:
    """
    Validate a drop/add pair against the owner's roster.

    The pair is applied atomically, so team size is preserved; the
    foreign quota is checked on the resulting roster.

    Returns:
        (is_valid, error_message)
    """
    owned = {c.cricketer_id for c in roster}

    if drop is None or drop.cricketer_id not in owned:
        return False, "Player not in your team"

    if add is None:
        return False, "Player not found"

    if add.game_id != drop.game_id:
        return False, "Player not found"

    if add.is_picked or add.cricketer_id in owned:
        return False, "Player already picked by another team"

    resulting = foreign_count(roster) - int(drop.is_foreign) + int(add.is_foreign)
    if resulting > config.max_foreign_players:
        return False, f"Maximum {config.max_foreign_players} foreign players allowed"

    return True, ""
