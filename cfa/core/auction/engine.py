"""
Auction Engine - Serialized, persisted execution of lot transitions.

Every mutating operation runs the same pipeline under a per-game lock:

    1. load the AuctionState (and whatever records the transition needs)
    2. run the pure transition from lot.py
    3. persist state + side-effect records in one transaction, guarded
       by the state row's version
    4. fan out events to the game room (best effort)
    5. notify state listeners (e.g. the expiry scheduler)

Two bids for the same lot can therefore never be validated against the
same high bid: the second one waits for the lock and then reads the
first one's committed state.
"""

import threading
from dataclasses import replace
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Protocol

from cfa.core.auction import lot
from cfa.core.auction.lot import LotEvent, Transition, minimum_next_bid
from cfa.core.config import AuctionConfig
from cfa.core.errors import (
    AuctionError,
    AuthorizationError,
    ConflictError,
    InvalidInputError,
    NotFoundError,
)
from cfa.core.game.models import (
    AuctionState,
    Cricketer,
    Game,
    Participant,
    ms_to_iso,
    now_ms,
)
from cfa.utils.logger import get_logger
from cfa.utils.validation import validate_amount, validate_seconds

if TYPE_CHECKING:
    from cfa.core.achievements import AchievementService
    from cfa.core.storage import StorageManager

logger = get_logger("auction.engine")


class Broadcaster(Protocol):
    def emit_to_game_room(self, game_id: str, event: str, payload: Dict[str, Any]) -> None:
        ...


StateListener = Callable[[str, AuctionState], None]


class AuctionEngine:
    """
    Server-authoritative auction for every game in the process.

    Usage:
        engine = AuctionEngine(storage, broadcaster=gateway)
        engine.start_lot(game_id, operator_id, cricketer_id)
        engine.place_bid(game_id, user_id, 1.5)
        engine.assign(game_id, operator_id)
    """

    def __init__(
        self,
        storage: "StorageManager",
        broadcaster: Optional[Broadcaster] = None,
        achievements: Optional["AchievementService"] = None,
        config: Optional[AuctionConfig] = None,
        clock: Callable[[], int] = now_ms,
    ):
        self.storage = storage
        self.broadcaster = broadcaster
        self.achievements = achievements
        self.config = config or AuctionConfig()
        self.clock = clock

        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        self._listeners: List[StateListener] = []

    def add_state_listener(self, listener: StateListener) -> None:
        """Register a callback invoked with (game_id, state) after every commit."""
        self._listeners.append(listener)

    def _lock_for(self, game_id: str) -> threading.Lock:
        with self._locks_guard:
            if game_id not in self._locks:
                self._locks[game_id] = threading.Lock()
            return self._locks[game_id]

    # =========================================================================
    # Lookups and Authorization
    # =========================================================================

    def _load_game(self, game_id: str) -> Game:
        game = self.storage.get_game(game_id)
        if game is None:
            raise NotFoundError("Game not found")
        return game

    def _require_operator(self, game_id: str, user_id: str) -> Game:
        game = self._load_game(game_id)
        if not game.is_operator(user_id):
            logger.warning(f"User {user_id} denied operator action on game {game_id[:8]}")
            raise AuthorizationError("Only the game creator can control the auction")
        return game

    def _require_participant(self, game_id: str, user_id: str) -> Participant:
        self._load_game(game_id)
        participant = self.storage.find_participant(game_id, user_id)
        if participant is None:
            raise AuthorizationError("Not a participant in this game")
        return participant

    def _cricketer_in_game(self, game_id: str, cricketer_id: str) -> Cricketer:
        cricketer = self.storage.get_cricketer(cricketer_id)
        if cricketer is None or cricketer.game_id != game_id:
            raise NotFoundError("Cricketer not found in this game")
        return cricketer

    def _current_cricketer(self, state: AuctionState, message: str) -> Cricketer:
        if not state.current_cricketer_id:
            raise ConflictError(message)
        return self._cricketer_in_game(state.game_id, state.current_cricketer_id)

    # =========================================================================
    # Pipeline
    # =========================================================================

    def _run(
        self,
        game_id: str,
        build: Callable[[AuctionState, int], Optional[Transition]],
    ) -> Optional[dict]:
        """Load, transition, persist, broadcast. Returns the new snapshot."""
        with self._lock_for(game_id):
            before = self.storage.get_or_create_auction_state(game_id)
            now = self.clock()
            transition = build(before, now)
            if transition is None:
                return None

            self._commit(before, transition)
            after = replace(transition.state, version=before.version + 1)
            # Emitted under the lock so rooms and listeners see commit order
            return self._after_commit(game_id, after, transition, now)

    def _commit(self, before: AuctionState, transition: Transition) -> None:
        storage = self.storage
        with storage.transaction():
            storage.save_auction_state(transition.state, expected_version=before.version)

            if transition.bid is not None:
                storage.create_bid(transition.bid)

            award = transition.award
            if award is not None:
                # Debit the committed budget
                winner = storage.get_participant(award.participant_id)
                if winner is None:
                    raise NotFoundError("Invalid cricketer or participant")
                storage.update_cricketer(award.cricketer_id, {
                    "is_picked": True,
                    "picked_by": award.participant_id,
                    "price_paid": award.price,
                    "pick_order": award.pick_order,
                })
                storage.update_participant_budget(
                    award.participant_id, winner.budget_remaining - award.price
                )

            if transition.skipped_cricketer_id is not None:
                storage.update_cricketer(transition.skipped_cricketer_id, {"was_skipped": True})

            if transition.game_patch:
                storage.update_game(before.game_id, transition.game_patch)

    def _after_commit(
        self,
        game_id: str,
        state: AuctionState,
        transition: Transition,
        now: int,
    ) -> dict:
        events = list(transition.events)

        if transition.award is not None:
            events.extend(self._award_hook(game_id, transition, events))
        if any(e.name == lot.AUCTION_ENDED for e in events):
            events.extend(self._end_hook(game_id))

        snapshot = self.snapshot(state, now)
        for event in events:
            self._emit(game_id, event, snapshot)

        for listener in self._listeners:
            try:
                listener(game_id, state)
            except Exception:
                logger.exception(f"State listener failed for game {game_id[:8]}")
        return snapshot

    def _award_hook(self, game_id: str, transition: Transition, events: List[LotEvent]) -> List[LotEvent]:
        if self.achievements is None:
            return []
        award = transition.award
        try:
            earned = self.achievements.on_lot_assigned(
                game_id,
                award.participant_id,
                award.cricketer_id,
                award.price,
                award.bid_count,
            )
        except Exception:
            logger.exception(f"Achievement check failed for game {game_id[:8]}")
            return []

        if not earned:
            return []
        for event in events:
            if event.name == lot.PLAYER_PICKED:
                event.payload["achievements"] = earned
        return [LotEvent(lot.ACHIEVEMENTS_AWARDED, {
            "participant_id": award.participant_id,
            "achievements": earned,
        })]

    def _end_hook(self, game_id: str) -> List[LotEvent]:
        if self.achievements is None:
            return []
        try:
            earned = self.achievements.on_auction_end(game_id)
        except Exception:
            logger.exception(f"End-of-auction achievements failed for game {game_id[:8]}")
            return []

        return [
            LotEvent(lot.ACHIEVEMENTS_AWARDED, {
                "participant_id": participant_id,
                "achievements": types,
            })
            for participant_id, types in earned.items()
            if types
        ]

    def _emit(self, game_id: str, event: LotEvent, snapshot: dict) -> None:
        if self.broadcaster is None:
            return

        payload = dict(event.payload)
        if event.name in (lot.AUCTION_UPDATE, lot.AUCTION_BID):
            payload["state"] = snapshot
        try:
            self.broadcaster.emit_to_game_room(game_id, event.name, payload)
        except Exception:
            # State is already committed and pollable
            logger.warning(f"Broadcast of {event.name} to game {game_id[:8]} failed", exc_info=True)

    # =========================================================================
    # Operator Commands
    # =========================================================================

    def start_lot(self, game_id: str, user_id: str, cricketer_id: str) -> dict:
        """Put a cricketer up for auction."""
        self._require_operator(game_id, user_id)

        def build(state: AuctionState, now: int) -> Transition:
            cricketer = self._cricketer_in_game(game_id, cricketer_id)
            return lot.start_lot(state, cricketer, now, self.config)

        snapshot = self._run(game_id, build)
        logger.info(f"Lot started: game {game_id[:8]} cricketer {cricketer_id[:8]}")
        return snapshot

    def pause(self, game_id: str, user_id: str) -> dict:
        self._require_operator(game_id, user_id)
        snapshot = self._run(game_id, lambda state, now: lot.pause(state, now))
        logger.info(f"Auction paused: game {game_id[:8]}")
        return snapshot

    def resume(self, game_id: str, user_id: str) -> dict:
        self._require_operator(game_id, user_id)
        snapshot = self._run(game_id, lambda state, now: lot.resume(state, now))
        logger.info(f"Auction resumed: game {game_id[:8]}")
        return snapshot

    def add_time(self, game_id: str, user_id: str, seconds: int) -> dict:
        """Shift the timer end; negative values are clamped to the current instant."""
        valid, err = validate_seconds(seconds)
        if not valid:
            raise InvalidInputError(err)
        self._require_operator(game_id, user_id)
        snapshot = self._run(game_id, lambda state, now: lot.add_time(state, seconds, now))
        logger.info(f"Timer adjusted by {seconds}s: game {game_id[:8]}")
        return snapshot

    def skip(self, game_id: str, user_id: str) -> dict:
        self._require_operator(game_id, user_id)

        def build(state: AuctionState, now: int) -> Transition:
            cricketer = self._current_cricketer(state, "No cricketer currently up for auction")
            return lot.skip(state, cricketer)

        snapshot = self._run(game_id, build)
        logger.info(f"Lot skipped: game {game_id[:8]}")
        return snapshot

    def assign(
        self,
        game_id: str,
        user_id: str,
        expected_cricketer_id: Optional[str] = None,
    ) -> dict:
        """
        Award the current lot to its high bidder, or skip it if nobody bid.

        Args:
            expected_cricketer_id: the lot the caller believes is expiring;
                if it was already resolved the call is a conflict.
        """
        self._require_operator(game_id, user_id)
        return self._run(game_id, self._build_assign(expected_cricketer_id))

    def end(self, game_id: str, user_id: str) -> dict:
        """Close the auction. A second call is a conflict."""
        self._require_operator(game_id, user_id)

        def build(state: AuctionState, now: int) -> Transition:
            if state.has_bid:
                logger.warning(
                    f"Ending game {game_id[:8]} with an unresolved bid of "
                    f"{state.current_high_bid} on the current lot"
                )
            return lot.end(state)

        snapshot = self._run(game_id, build)
        logger.info(f"Auction ended: game {game_id[:8]}")
        return snapshot

    def _build_assign(self, expected_cricketer_id: Optional[str]):
        def build(state: AuctionState, now: int) -> Transition:
            if expected_cricketer_id and state.current_cricketer_id != expected_cricketer_id:
                raise ConflictError("Lot already resolved")
            cricketer = self._current_cricketer(state, "No cricketer to assign")
            winner = None
            if state.has_bid:
                winner = self.storage.get_participant(state.current_high_bidder_id)
            max_pick_order = self.storage.find_max_pick_order(state.game_id)
            transition = lot.assign(
                state, cricketer, winner, max_pick_order, expected_cricketer_id
            )
            if transition.award is not None:
                logger.info(
                    f"Lot assigned: {cricketer.full_name} to {winner.team_name} "
                    f"for {transition.award.price}"
                )
            else:
                logger.info(f"Lot closed with no bids: {cricketer.full_name}")
            return transition
        return build

    # =========================================================================
    # Participant Commands
    # =========================================================================

    def place_bid(self, game_id: str, user_id: str, amount: float) -> dict:
        """Validate and record a bid by the participant owned by user_id."""
        valid, err = validate_amount(amount, self.config.starting_budget)
        if not valid:
            raise InvalidInputError(err)
        amount = float(amount)

        def build(state: AuctionState, now: int) -> Transition:
            participant = self._require_participant(game_id, user_id)
            cricketer = self._current_cricketer(state, "No cricketer currently up for auction")
            roster = self.storage.list_roster(participant.participant_id)
            return lot.place_bid(state, participant, roster, cricketer, amount, now, self.config)

        try:
            snapshot = self._run(game_id, build)
        except AuctionError as e:
            logger.warning(f"Bid of {amount} rejected in game {game_id[:8]}: {e.reason}")
            raise
        logger.debug(f"Bid accepted: {amount} by {user_id} in game {game_id[:8]}")
        return snapshot

    # =========================================================================
    # Timer Expiry
    # =========================================================================

    def expire_lot(self, game_id: str, cricketer_id: str) -> Optional[dict]:
        """
        Server-timer entry point: assign the lot if it is still the one
        that was armed and its timer has really run out.

        Returns:
            The new snapshot, or None if there was nothing to do
        """
        assign = self._build_assign(cricketer_id)

        def build(state: AuctionState, now: int) -> Optional[Transition]:
            if state.current_cricketer_id != cricketer_id or not state.is_expired(now):
                logger.debug(f"Expiry for {cricketer_id[:8]} ignored in game {game_id[:8]}")
                return None
            return assign(state, now)

        return self._run(game_id, build)

    # =========================================================================
    # Queries
    # =========================================================================

    def get_state(self, game_id: str) -> dict:
        """Current serialized AuctionState; always pollable."""
        self._load_game(game_id)
        state = self.storage.get_or_create_auction_state(game_id)
        return self.snapshot(state, self.clock())

    def get_bidding_log(self, game_id: str) -> List[dict]:
        self._load_game(game_id)
        state = self.storage.get_or_create_auction_state(game_id)
        return [entry.to_dict() for entry in state.bidding_log]

    def snapshot(self, state: AuctionState, now: Optional[int] = None) -> dict:
        """Serialize an AuctionState with the records clients display."""
        if now is None:
            now = self.clock()

        cricketer = None
        if state.current_cricketer_id:
            found = self.storage.get_cricketer(state.current_cricketer_id)
            cricketer = found.to_dict() if found else None

        bidder = None
        if state.current_high_bidder_id:
            found = self.storage.get_participant(state.current_high_bidder_id)
            if found:
                bidder = {
                    "id": found.participant_id,
                    "user_id": found.user_id,
                    "team_name": found.team_name,
                    "budget_remaining": found.budget_remaining,
                }

        return {
            "id": state.state_id,
            "game_id": state.game_id,
            "auction_status": state.auction_status.value,
            "current_cricketer": cricketer,
            "current_high_bid": state.current_high_bid,
            "current_high_bidder": bidder,
            "minimum_next_bid": (
                minimum_next_bid(state.current_high_bid, self.config)
                if state.current_cricketer_id else None
            ),
            "timer_end_time": ms_to_iso(state.timer_end_time),
            "timer_paused_at": ms_to_iso(state.timer_paused_at),
            "remaining_ms": state.remaining_ms(now),
            "bidding_log": [entry.to_dict() for entry in state.bidding_log],
            "last_win_message": state.last_win_message,
            "version": state.version,
        }
