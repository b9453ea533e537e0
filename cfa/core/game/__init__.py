"""
CFA Game Module.

Games, participants and the cricketer pool.
"""

from cfa.core.game.models import (
    AuctionState,
    AuctionStatus,
    Bid,
    BidLogEntry,
    Cricketer,
    Game,
    GameStatus,
    Participant,
    PickStatus,
    PlayerType,
)
from cfa.core.game.service import GameService

__all__ = [
    "AuctionState",
    "AuctionStatus",
    "Bid",
    "BidLogEntry",
    "Cricketer",
    "Game",
    "GameStatus",
    "Participant",
    "PickStatus",
    "PlayerType",
    "GameService",
]
