"""
CFA Auction Module.

This module provides the live auction:
- Roster rules (size, foreign quota, budget reserve)
- Pure lot transitions
- The serialized, persisted engine
- Optional server-side lot expiry
"""

from cfa.core.auction.roster import (
    foreign_count,
    has_room_for_one_more,
    foreign_quota_allows,
    max_affordable_bid,
    check_roster_for_bid,
    validate_substitution,
)

from cfa.core.auction.lot import (
    LotEvent,
    Transition,
    Award,
    minimum_next_bid,
    bid_increment,
)

from cfa.core.auction.engine import AuctionEngine
from cfa.core.auction.timer import LotExpiryScheduler

__all__ = [
    # Roster
    "foreign_count",
    "has_room_for_one_more",
    "foreign_quota_allows",
    "max_affordable_bid",
    "check_roster_for_bid",
    "validate_substitution",
    # Lot
    "LotEvent",
    "Transition",
    "Award",
    "minimum_next_bid",
    "bid_increment",
    # Engine
    "AuctionEngine",
    "LotExpiryScheduler",
]
