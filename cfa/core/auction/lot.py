"""
Lot State Machine - Pure transitions for the live auction.

Each operation takes the current AuctionState (plus whatever records it
needs) and returns a Transition: the next state, the side-effect records
to persist, and the events to fan out. Nothing here reads or writes
storage or talks to clients; the engine does that.

Lot lifecycle:
    not_started -> in_progress <-> paused -> not_started (assign/skip)
    any -> completed (end)
"""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Sequence

from cfa.core.auction.roster import check_roster_for_bid
from cfa.core.config import AuctionConfig
from cfa.core.errors import BidRejectedError, ConflictError, NotFoundError
from cfa.core.game.models import (
    AuctionState,
    AuctionStatus,
    Bid,
    BidLogEntry,
    Cricketer,
    GameStatus,
    Participant,
    new_id,
)


# =============================================================================
# Event Names
# =============================================================================

AUCTION_UPDATE = "auction:update"
AUCTION_BID = "auction:bid"
PLAYER_PICKED = "auction:player_picked"
PLAYER_SKIPPED = "auction:player_skipped"
AUCTION_PAUSED = "auction:paused"
AUCTION_ENDED = "auction:ended"
ACHIEVEMENTS_AWARDED = "achievements:awarded"

_UNCHANGED = object()


# =============================================================================
# Data Structures
# =============================================================================


@dataclass
class LotEvent:
    """An event for the game room. AUCTION_UPDATE payloads are filled by the engine."""
    name: str
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Award:
    """A lot won: the one place budget and roster change permanently."""
    cricketer_id: str
    participant_id: str
    price: float
    pick_order: int
    bid_count: int


@dataclass
class Transition:
    state: AuctionState
    events: List[LotEvent] = field(default_factory=list)
    game_patch: Dict[str, Any] = field(default_factory=dict)
    bid: Optional[Bid] = None
    award: Optional[Award] = None
    skipped_cricketer_id: Optional[str] = None


# =============================================================================
# Helpers
# =============================================================================


def bid_increment(current_high_bid: float, config: AuctionConfig) -> float:
    if current_high_bid < config.increment_threshold:
        return config.low_increment
    return config.high_increment


def minimum_next_bid(current_high_bid: float, config: AuctionConfig) -> float:
    """Smallest acceptable bid given the current high bid."""
    if current_high_bid <= 0:
        return config.min_player_price
    return current_high_bid + bid_increment(current_high_bid, config)


def _cleared(state: AuctionState, status: AuctionStatus, message=_UNCHANGED) -> AuctionState:
    return replace(
        state,
        current_cricketer_id=None,
        auction_status=status,
        timer_end_time=None,
        timer_paused_at=None,
        current_high_bid=0.0,
        current_high_bidder_id=None,
        bidding_log=[],
        last_win_message=state.last_win_message if message is _UNCHANGED else message,
    )


def _cricketer_summary(cricketer: Cricketer) -> dict:
    return {
        "id": cricketer.cricketer_id,
        "first_name": cricketer.first_name,
        "last_name": cricketer.last_name,
    }


def _require_lot(state: AuctionState, message: str) -> None:
    if not state.current_cricketer_id:
        raise ConflictError(message)


# =============================================================================
# Transitions
# =============================================================================


def start_lot(
    state: AuctionState,
    cricketer: Cricketer,
    now: int,
    config: AuctionConfig,
) -> Transition:
    """Put a cricketer up for auction with a fresh timer."""
    if cricketer.game_id != state.game_id:
        raise NotFoundError("Cricketer not found in this game")
    if state.auction_status == AuctionStatus.COMPLETED:
        raise ConflictError("Auction has ended")
    if state.current_cricketer_id and state.auction_status in (
        AuctionStatus.IN_PROGRESS, AuctionStatus.PAUSED
    ):
        raise ConflictError("Another cricketer is already up for auction")
    if cricketer.is_picked:
        raise ConflictError("Cricketer already picked")

    next_state = replace(
        state,
        current_cricketer_id=cricketer.cricketer_id,
        auction_status=AuctionStatus.IN_PROGRESS,
        timer_end_time=now + config.lot_duration_seconds * 1000,
        timer_paused_at=None,
        current_high_bid=0.0,
        current_high_bidder_id=None,
        bidding_log=[],
        last_win_message=None,
    )
    return Transition(
        state=next_state,
        events=[LotEvent(AUCTION_UPDATE)],
        game_patch={"status": GameStatus.AUCTION_ACTIVE, "joining_allowed": False},
    )


def place_bid(
    state: AuctionState,
    participant: Participant,
    roster: Sequence[Cricketer],
    cricketer: Cricketer,
    amount: float,
    now: int,
    config: AuctionConfig,
) -> Transition:
    """
    Validate and accept a bid on the current lot.

    Rules, first failure wins:
    1. lot in progress
    2. minimum increment
    3. roster size
    4. foreign quota
    5. budget reserve

    Raises:
        ConflictError: no lot in progress
        BidRejectedError: rules 2-5
    """
    if state.auction_status != AuctionStatus.IN_PROGRESS:
        raise ConflictError("Auction is not in progress")
    if not state.current_cricketer_id:
        raise ConflictError("No cricketer currently up for auction")
    if cricketer.cricketer_id != state.current_cricketer_id:
        raise ConflictError("Bid is not for the current lot")

    minimum = minimum_next_bid(state.current_high_bid, config)
    if amount < minimum:
        raise BidRejectedError(f"Minimum bid is ${minimum:.2f}", rule="min_bid", limit=minimum)

    ok, rule, reason, limit = check_roster_for_bid(
        roster, cricketer, participant.budget_remaining, amount, config
    )
    if not ok:
        raise BidRejectedError(reason, rule=rule, limit=limit)

    entry = BidLogEntry(
        participant_id=participant.participant_id,
        team_name=participant.team_name,
        amount=amount,
        timestamp=now,
    )
    bid = Bid(
        bid_id=new_id(),
        game_id=state.game_id,
        cricketer_id=cricketer.cricketer_id,
        participant_id=participant.participant_id,
        amount=amount,
        timestamp=now,
    )
    next_state = replace(
        state,
        current_high_bid=amount,
        current_high_bidder_id=participant.participant_id,
        bidding_log=state.bidding_log + [entry],
    )
    return Transition(
        state=next_state,
        events=[LotEvent(AUCTION_BID, {"bid": entry.to_dict()})],
        bid=bid,
    )


def pause(state: AuctionState, now: int) -> Transition:
    """Freeze the lot; timer_end_time is kept so the remainder can be restored."""
    if state.auction_status != AuctionStatus.IN_PROGRESS:
        raise ConflictError("Auction is not in progress")

    next_state = replace(state, auction_status=AuctionStatus.PAUSED, timer_paused_at=now)
    return Transition(
        state=next_state,
        events=[
            LotEvent(AUCTION_UPDATE),
            LotEvent(AUCTION_PAUSED, {"message": "Auction paused. Back shortly!"}),
        ],
        game_patch={"status": GameStatus.AUCTION_PAUSED},
    )


def resume(state: AuctionState, now: int) -> Transition:
    """Restart the clock with exactly the time that was left at pause."""
    if state.auction_status != AuctionStatus.PAUSED:
        raise ConflictError("Auction is not paused")

    timer_end = None
    if state.timer_end_time is not None and state.timer_paused_at is not None:
        remaining = state.timer_end_time - state.timer_paused_at
        timer_end = now + remaining

    next_state = replace(
        state,
        auction_status=AuctionStatus.IN_PROGRESS,
        timer_end_time=timer_end,
        timer_paused_at=None,
    )
    return Transition(
        state=next_state,
        events=[LotEvent(AUCTION_UPDATE)],
        game_patch={"status": GameStatus.AUCTION_ACTIVE},
    )


def add_time(state: AuctionState, seconds: int, now: int) -> Transition:
    """
    Move the timer end by `seconds` (may be negative).

    The end is never moved before the reference instant (now, or the
    pause moment while paused), so the timer cannot be set into the past.
    """
    if state.timer_end_time is None:
        raise ConflictError("No active timer")

    floor = state.timer_paused_at if state.timer_paused_at is not None else now
    timer_end = max(state.timer_end_time + seconds * 1000, floor)

    next_state = replace(state, timer_end_time=timer_end)
    return Transition(state=next_state, events=[LotEvent(AUCTION_UPDATE)])


def _unpause_patch(state: AuctionState) -> Dict[str, Any]:
    """A lot closed while paused puts the game back to active."""
    if state.auction_status == AuctionStatus.PAUSED:
        return {"status": GameStatus.AUCTION_ACTIVE}
    return {}


def skip(state: AuctionState, cricketer: Cricketer) -> Transition:
    """Close the lot with no winner; the cricketer is marked skipped."""
    _require_lot(state, "No cricketer currently up for auction")

    summary = _cricketer_summary(cricketer)
    summary["was_skipped"] = True
    return Transition(
        state=_cleared(state, AuctionStatus.NOT_STARTED),
        events=[
            LotEvent(PLAYER_SKIPPED, {"cricketer": summary}),
            LotEvent(AUCTION_UPDATE),
        ],
        skipped_cricketer_id=cricketer.cricketer_id,
        game_patch=_unpause_patch(state),
    )


def assign(
    state: AuctionState,
    cricketer: Cricketer,
    winner: Optional[Participant],
    max_pick_order: int,
    expected_cricketer_id: Optional[str] = None,
) -> Transition:
    """
    Resolve the lot from the final (high bid, high bidder) pair.

    With no bid the lot is skipped. A second call for a lot that was
    already resolved is a conflict, never a second payout.
    """
    _require_lot(state, "No cricketer to assign")
    if expected_cricketer_id and expected_cricketer_id != state.current_cricketer_id:
        raise ConflictError("Lot already resolved")

    if not state.has_bid:
        message = f"{cricketer.full_name} - No bids, skipped"
        summary = _cricketer_summary(cricketer)
        summary["was_skipped"] = True
        return Transition(
            state=_cleared(state, AuctionStatus.NOT_STARTED, message),
            events=[
                LotEvent(PLAYER_SKIPPED, {"cricketer": summary, "reason": "no_bids"}),
                LotEvent(AUCTION_UPDATE),
            ],
            skipped_cricketer_id=cricketer.cricketer_id,
        game_patch=_unpause_patch(state),
        )

    if winner is None or winner.participant_id != state.current_high_bidder_id:
        raise NotFoundError("Invalid cricketer or participant")

    price = state.current_high_bid
    message = f"{cricketer.full_name} → {winner.team_name}"
    award = Award(
        cricketer_id=cricketer.cricketer_id,
        participant_id=winner.participant_id,
        price=price,
        pick_order=max_pick_order + 1,
        bid_count=len(state.bidding_log),
    )

    summary = _cricketer_summary(cricketer)
    summary["price_paid"] = price
    return Transition(
        state=_cleared(state, AuctionStatus.NOT_STARTED, message),
        events=[
            LotEvent(PLAYER_PICKED, {
                "message": message,
                "cricketer": summary,
                "winner": {
                    "id": winner.participant_id,
                    "user_id": winner.user_id,
                    "team_name": winner.team_name,
                },
            }),
            LotEvent(AUCTION_UPDATE),
        ],
        award=award,
        game_patch=_unpause_patch(state),
    )


def end(state: AuctionState) -> Transition:
    """Close the auction for the game."""
    if state.auction_status == AuctionStatus.COMPLETED:
        raise ConflictError("Auction already ended")

    return Transition(
        state=_cleared(state, AuctionStatus.COMPLETED),
        events=[
            LotEvent(AUCTION_ENDED, {"message": "Auction has ended!"}),
            LotEvent(AUCTION_UPDATE),
        ],
        game_patch={"status": GameStatus.AUCTION_ENDED},
    )
