"""
Snake-Draft Substitution Sequencer.

After the auction, participants take turns swapping one owned player for
one unpicked player. Turn order is fixed per round:

    Round 1: worst to best (by cumulative points)
    Round 2: best to worst

Exactly one participant holds the turn. A turn ends with a valid
substitution or a skip; either way the round advances and closes itself
after the last position. Round state is persisted, so a restart resumes
at the same turn.
"""

import threading
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence, Tuple

from cfa.core.auction.roster import validate_substitution
from cfa.core.config import AuctionConfig
from cfa.core.errors import (
    AuthorizationError,
    ConflictError,
    InvalidInputError,
    NotFoundError,
)
from cfa.core.game.models import GameStatus, new_id, now_ms
from cfa.utils.logger import get_logger

if TYPE_CHECKING:
    from cfa.core.game.service import GameService
    from cfa.core.scoring.service import ScoringService
    from cfa.core.storage import StorageManager

logger = get_logger("subs")

ROUNDS = (1, 2)
SUBS_UPDATE = "subs:update"
OPEN_STATUSES = (GameStatus.AUCTION_ENDED, GameStatus.SCORING, GameStatus.COMPLETED)


def snake_order(standings: Sequence[Tuple[str, int]], round_no: int) -> List[str]:
    """
    Turn order for a round.

    Args:
        standings: (participant_id, points) in join order
        round_no: 1 (worst first) or 2 (best first)
    """
    if round_no not in ROUNDS:
        raise InvalidInputError("Invalid round")
    # Stable sort: equal points keep join order in either direction
    ranked = sorted(standings, key=lambda item: item[1], reverse=(round_no == 2))
    return [participant_id for participant_id, _ in ranked]


class SubstitutionSequencer:
    """
    Runs substitution rounds for a game.

    Usage:
        subs = SubstitutionSequencer(storage, games, scoring)
        subs.start_round(game_id, operator_id, 1)
        subs.substitute(game_id, user_id, drop_id, add_id)
    """

    def __init__(
        self,
        storage: "StorageManager",
        games: "GameService",
        scoring: "ScoringService",
        broadcaster: Optional[Any] = None,
        config: Optional[AuctionConfig] = None,
    ):
        self.storage = storage
        self.games = games
        self.scoring = scoring
        self.broadcaster = broadcaster
        self.config = config or AuctionConfig()
        self._lock = threading.Lock()

    # =========================================================================
    # Round Lifecycle
    # =========================================================================

    def start_round(self, game_id: str, user_id: str, round_no: int) -> dict:
        game = self.games.require_operator(game_id, user_id)
        if game.status not in OPEN_STATUSES:
            raise ConflictError("Substitutions open after the auction has ended")

        with self._lock:
            current = self.storage.get_sub_round(game_id)
            if current and current["active"]:
                raise ConflictError("A substitution round is already in progress")

            totals = self.scoring.participant_totals(game_id)
            standings = [
                (p.participant_id, totals.get(p.participant_id, 0))
                for p in self.storage.list_participants(game_id)
            ]
            if not standings:
                raise ConflictError("No participants to substitute")

            order = snake_order(standings, round_no)
            self.storage.save_sub_round(game_id, round_no, order)

        logger.info(f"Substitution round {round_no} started for game {game_id[:8]}")
        return self._publish(game_id)

    def end_round(self, game_id: str, user_id: str) -> dict:
        """Close the active round early."""
        self.games.require_operator(game_id, user_id)
        with self._lock:
            current = self._active_round(game_id)
            self.storage.update_sub_round(game_id, current["position"], active=False)
        logger.info(f"Substitution round {current['round_no']} closed for game {game_id[:8]}")
        return self._publish(game_id)

    def _active_round(self, game_id: str) -> dict:
        current = self.storage.get_sub_round(game_id)
        if not current or not current["active"]:
            raise ConflictError("No substitution round in progress")
        return current

    # =========================================================================
    # Turns
    # =========================================================================

    def current_turn(self, game_id: str) -> Optional[dict]:
        """Who is up, or None when no round is active."""
        self.games.get_game(game_id)
        current = self.storage.get_sub_round(game_id)
        if not current or not current["active"]:
            return None
        participant_id = current["turn_order"][current["position"]]
        participant = self.storage.get_participant(participant_id)
        return {
            "round": current["round_no"],
            "position": current["position"] + 1,
            "participant_id": participant_id,
            "team_name": participant.team_name if participant else None,
            "turn_order": current["turn_order"],
        }

    def _authorize_turn(self, game_id: str, user_id: str, participant_id: str) -> None:
        game = self.games.get_game(game_id)
        if game.is_operator(user_id):
            return
        participant = self.storage.find_participant(game_id, user_id)
        if participant is None or participant.participant_id != participant_id:
            raise AuthorizationError("Not your turn")

    def substitute(self, game_id: str, user_id: str, drop_id: str, add_id: str) -> dict:
        """
        Swap one owned player for one unpicked player and pass the turn.

        The drop and the add commit together; the newcomer costs nothing
        and takes the next pick order.
        """
        with self._lock:
            current = self._active_round(game_id)
            participant_id = current["turn_order"][current["position"]]
            self._authorize_turn(game_id, user_id, participant_id)

            roster = self.storage.list_roster(participant_id)
            drop = self.storage.get_cricketer(drop_id)
            add = self.storage.get_cricketer(add_id)
            if add is not None and add.game_id != game_id:
                add = None
            ok, reason = validate_substitution(roster, drop, add, self.config)
            if not ok:
                if reason == "Player not found":
                    raise NotFoundError(reason)
                raise ConflictError(reason)

            pick_order = self.storage.find_max_pick_order(game_id) + 1
            with self.storage.transaction():
                self.storage.update_cricketer(drop_id, {
                    "is_picked": False,
                    "picked_by": None,
                    "price_paid": None,
                    "pick_order": None,
                })
                self.storage.update_cricketer(add_id, {
                    "is_picked": True,
                    "picked_by": participant_id,
                    "price_paid": 0.0,
                    "pick_order": pick_order,
                    "was_skipped": False,
                })
                self._advance(game_id, current, participant_id, "substituted", drop_id, add_id)

        logger.info(
            f"Substitution in game {game_id[:8]}: {drop.full_name} out, {add.full_name} in"
        )
        return self._publish(game_id)

    def skip_turn(self, game_id: str, user_id: str) -> dict:
        with self._lock:
            current = self._active_round(game_id)
            participant_id = current["turn_order"][current["position"]]
            self._authorize_turn(game_id, user_id, participant_id)
            with self.storage.transaction():
                self._advance(game_id, current, participant_id, "skipped")

        logger.info(f"Substitution turn skipped in game {game_id[:8]}")
        return self._publish(game_id)

    def _advance(
        self,
        game_id: str,
        current: dict,
        participant_id: str,
        outcome: str,
        drop_id: Optional[str] = None,
        add_id: Optional[str] = None,
    ) -> None:
        self.storage.record_substitution({
            "sub_id": new_id(),
            "game_id": game_id,
            "participant_id": participant_id,
            "round_no": current["round_no"],
            "outcome": outcome,
            "drop_cricketer_id": drop_id,
            "add_cricketer_id": add_id,
            "created_at": now_ms(),
        })
        position = current["position"] + 1
        active = position < len(current["turn_order"])
        self.storage.update_sub_round(game_id, position if active else current["position"], active)

    def history(self, game_id: str, participant_id: Optional[str] = None) -> List[dict]:
        self.games.get_game(game_id)
        return self.storage.list_substitutions(game_id, participant_id)

    # =========================================================================
    # Status
    # =========================================================================

    def status(self, game_id: str) -> Dict[str, Any]:
        current = self.storage.get_sub_round(game_id)
        return {
            "game_id": game_id,
            "round": current["round_no"] if current else None,
            "active": bool(current and current["active"]),
            "turn": self.current_turn(game_id),
        }

    def _publish(self, game_id: str) -> dict:
        status = self.status(game_id)
        if self.broadcaster is not None:
            try:
                self.broadcaster.emit_to_game_room(game_id, SUBS_UPDATE, status)
            except Exception:
                logger.warning(f"Broadcast of {SUBS_UPDATE} to game {game_id[:8]} failed", exc_info=True)
        return status
