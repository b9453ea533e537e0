"""
Achievements - Badges earned during the auction.

The auction engine calls this service after every successful assignment
and once when the auction ends. Each participant earns a given type at
most once; storage enforces that with a (participant, type) key.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, List, Optional

from cfa.core.config import AuctionConfig
from cfa.core.game.models import PlayerType
from cfa.core.auction.roster import foreign_count
from cfa.utils.logger import get_logger

if TYPE_CHECKING:
    from cfa.core.storage import StorageManager

logger = get_logger("achievements")


# =============================================================================
# Definitions
# =============================================================================


@dataclass(frozen=True)
class AchievementDefinition:
    name: str
    description: str
    rarity: str
    points: int


ACHIEVEMENT_DEFINITIONS: Dict[str, AchievementDefinition] = {
    "first_pick": AchievementDefinition(
        "First Blood", "First player picked in the auction", "rare", 25),
    "big_spender": AchievementDefinition(
        "Big Spender", "Spent 50+ on a single player", "common", 10),
    "bargain_hunter": AchievementDefinition(
        "Bargain Hunter", "Won a player at base price", "common", 10),
    "bidding_war_winner": AchievementDefinition(
        "Bidding War Veteran", "Won a player after 10+ competing bids", "rare", 20),
    "full_squad": AchievementDefinition(
        "Squad Complete", "Built a full squad", "common", 15),
    "foreign_legion": AchievementDefinition(
        "Foreign Legion", "Picked the maximum number of foreign players", "rare", 20),
    "budget_master": AchievementDefinition(
        "Budget Master", "Finished the auction with 20+ remaining", "epic", 30),
    "balanced_squad": AchievementDefinition(
        "Balanced Squad", "Have at least 2 players of each type", "common", 15),
    "ipl_collector": AchievementDefinition(
        "IPL Collector", "Have players from 5+ different IPL teams", "rare", 20),
}

# Thresholds
BIG_SPENDER_PRICE = 50
BARGAIN_PRICE = 2
BIDDING_WAR_BIDS = 10
BALANCED_PER_TYPE = 2
COLLECTOR_TEAMS = 5
BUDGET_MASTER_REMAINING = 20


class AchievementService:
    """
    Awards achievements from committed auction outcomes.

    Usage:
        service = AchievementService(storage)
        earned = service.on_lot_assigned(game_id, participant_id, cricketer_id, 12.5, 4)
    """

    def __init__(self, storage: "StorageManager", config: Optional[AuctionConfig] = None):
        self.storage = storage
        self.config = config or AuctionConfig()

    def _award(self, participant_id: str, achievement_type: str, metadata: Optional[dict] = None) -> bool:
        if self.storage.award_achievement(participant_id, achievement_type, metadata):
            logger.info(f"Achievement {achievement_type} awarded to {participant_id[:8]}")
            return True
        return False

    def on_lot_assigned(
        self,
        game_id: str,
        participant_id: str,
        cricketer_id: str,
        price: float,
        bid_count: int,
    ) -> List[str]:
        """
        Check auction and team achievements after a pick.

        Returns:
            Achievement types newly earned by the winner
        """
        candidates: List[tuple] = []

        if self.storage.count_picked(game_id) == 1:
            candidates.append(("first_pick", None))
        if price >= BIG_SPENDER_PRICE:
            candidates.append(("big_spender", {"price_paid": price}))
        if price <= BARGAIN_PRICE:
            candidates.append(("bargain_hunter", {"price_paid": price}))
        if bid_count >= BIDDING_WAR_BIDS:
            candidates.append(("bidding_war_winner", {"bid_count": bid_count}))

        roster = self.storage.list_roster(participant_id)
        if len(roster) >= self.config.team_size:
            candidates.append(("full_squad", None))
        if foreign_count(roster) >= self.config.max_foreign_players:
            candidates.append(("foreign_legion", None))

        per_type = {ptype: 0 for ptype in PlayerType}
        for member in roster:
            per_type[member.player_type] += 1
        if all(count >= BALANCED_PER_TYPE for count in per_type.values()):
            candidates.append(("balanced_squad", None))

        teams = {member.ipl_team for member in roster if member.ipl_team}
        if len(teams) >= COLLECTOR_TEAMS:
            candidates.append(("ipl_collector", {"teams": len(teams)}))

        earned = [t for t, meta in candidates if self._award(participant_id, t, meta)]
        if earned:
            logger.debug(f"Pick of {cricketer_id[:8]} earned {earned}")
        return earned

    def on_auction_end(self, game_id: str) -> Dict[str, List[str]]:
        """Budget-based awards. Returns {participant_id: [types]}."""
        earned: Dict[str, List[str]] = {}
        for participant in self.storage.list_participants(game_id):
            if participant.budget_remaining >= BUDGET_MASTER_REMAINING:
                if self._award(
                    participant.participant_id,
                    "budget_master",
                    {"budget_remaining": participant.budget_remaining},
                ):
                    earned[participant.participant_id] = ["budget_master"]
        return earned

    def list_for_participant(self, participant_id: str) -> List[dict]:
        result = []
        for achievement_type in self.storage.list_achievements(participant_id):
            definition = ACHIEVEMENT_DEFINITIONS.get(achievement_type)
            if definition is None:
                continue
            result.append({
                "type": achievement_type,
                "name": definition.name,
                "description": definition.description,
                "rarity": definition.rarity,
                "points": definition.points,
            })
        return result
