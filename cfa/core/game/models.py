"""
Game domain models.

Plain dataclasses for the records the auction core reads and writes:
games, participants, cricketers, bids and the per-game AuctionState.
Timestamps are integer milliseconds since the epoch.
"""

import time
import uuid
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional


def now_ms() -> int:
    """Current wall-clock time in milliseconds."""
    return int(time.time() * 1000)


def new_id() -> str:
    return uuid.uuid4().hex


def ms_to_iso(value: Optional[int]) -> Optional[str]:
    if value is None:
        return None
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc).isoformat()


# =============================================================================
# Enums
# =============================================================================


class GameStatus(str, Enum):
    """Lifecycle of a game."""
    PRE_AUCTION = "pre_auction"
    AUCTION_ACTIVE = "auction_active"
    AUCTION_PAUSED = "auction_paused"
    AUCTION_ENDED = "auction_ended"
    SCORING = "scoring"
    COMPLETED = "completed"


class AuctionStatus(str, Enum):
    """Status of the current lot."""
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    PAUSED = "paused"
    COMPLETED = "completed"


class PlayerType(str, Enum):
    BATSMAN = "batsman"
    BOWLER = "bowler"
    WICKETKEEPER = "wicketkeeper"
    ALLROUNDER = "allrounder"


class PickStatus(str, Enum):
    """Disposition of a cricketer in the pool."""
    UNPICKED = "unpicked"
    PICKED = "picked"
    SKIPPED = "skipped"


# =============================================================================
# Records
# =============================================================================


@dataclass
class Game:
    game_id: str
    name: str
    created_by: str  # operator user id
    status: GameStatus = GameStatus.PRE_AUCTION
    joining_allowed: bool = True
    created_at: int = field(default_factory=now_ms)

    def is_operator(self, user_id: str) -> bool:
        return self.created_by == user_id

    def to_dict(self) -> dict:
        return {
            "id": self.game_id,
            "name": self.name,
            "created_by": self.created_by,
            "status": self.status.value,
            "joining_allowed": self.joining_allowed,
            "created_at": ms_to_iso(self.created_at),
        }


@dataclass
class Participant:
    participant_id: str
    game_id: str
    user_id: str
    team_name: str
    budget_remaining: float = 200.0
    joined_at: int = field(default_factory=now_ms)

    def to_dict(self) -> dict:
        return {
            "id": self.participant_id,
            "game_id": self.game_id,
            "user_id": self.user_id,
            "team_name": self.team_name,
            "budget_remaining": self.budget_remaining,
        }


@dataclass
class Cricketer:
    cricketer_id: str
    game_id: str
    first_name: str
    last_name: str
    player_type: PlayerType
    is_foreign: bool = False
    ipl_team: str = ""
    is_picked: bool = False
    picked_by: Optional[str] = None  # participant id
    price_paid: Optional[float] = None
    pick_order: Optional[int] = None
    was_skipped: bool = False
    auction_order: Optional[int] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def pick_status(self) -> PickStatus:
        if self.is_picked:
            return PickStatus.PICKED
        if self.was_skipped:
            return PickStatus.SKIPPED
        return PickStatus.UNPICKED

    def to_dict(self) -> dict:
        return {
            "id": self.cricketer_id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "player_type": self.player_type.value,
            "is_foreign": self.is_foreign,
            "ipl_team": self.ipl_team,
            "is_picked": self.is_picked,
            "picked_by": self.picked_by,
            "price_paid": self.price_paid,
            "pick_order": self.pick_order,
            "was_skipped": self.was_skipped,
            "pick_status": self.pick_status.value,
        }


@dataclass(frozen=True)
class Bid:
    """An accepted bid. Never updated or deleted."""
    bid_id: str
    game_id: str
    cricketer_id: str
    participant_id: str
    amount: float
    timestamp: int


@dataclass
class BidLogEntry:
    participant_id: str
    team_name: str
    amount: float
    timestamp: int

    def to_dict(self) -> dict:
        data = asdict(self)
        data["timestamp"] = ms_to_iso(self.timestamp)
        return data

    def to_record(self) -> dict:
        return asdict(self)

    @classmethod
    def from_record(cls, data: Dict) -> "BidLogEntry":
        return cls(
            participant_id=data["participant_id"],
            team_name=data["team_name"],
            amount=float(data["amount"]),
            timestamp=int(data["timestamp"]),
        )


@dataclass
class AuctionState:
    """
    Per-game auction singleton.

    Invariant: current_high_bid == 0 iff current_high_bidder_id is None.
    """
    state_id: str
    game_id: str
    current_cricketer_id: Optional[str] = None
    auction_status: AuctionStatus = AuctionStatus.NOT_STARTED
    timer_end_time: Optional[int] = None
    timer_paused_at: Optional[int] = None
    current_high_bid: float = 0.0
    current_high_bidder_id: Optional[str] = None
    bidding_log: List[BidLogEntry] = field(default_factory=list)
    last_win_message: Optional[str] = None
    version: int = 0

    @property
    def has_bid(self) -> bool:
        return self.current_high_bidder_id is not None and self.current_high_bid > 0

    def remaining_ms(self, now: int) -> Optional[int]:
        """Bidding time left; frozen at the pause moment while paused."""
        if self.timer_end_time is None:
            return None
        reference = self.timer_paused_at if self.timer_paused_at is not None else now
        return max(0, self.timer_end_time - reference)

    def is_expired(self, now: int) -> bool:
        return (
            self.auction_status == AuctionStatus.IN_PROGRESS
            and self.timer_end_time is not None
            and now >= self.timer_end_time
        )
