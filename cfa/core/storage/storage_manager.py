import json
from pathlib import Path
from typing import Optional, List, Dict, Any

from cfa.core.errors import StaleStateError
from cfa.core.game.models import (
    AuctionState,
    AuctionStatus,
    Bid,
    BidLogEntry,
    Cricketer,
    Game,
    GameStatus,
    Participant,
    PlayerType,
    new_id,
    now_ms,
)
from cfa.core.storage.sqlite_adapter import SQLiteAdapter
from cfa.utils.logger import get_logger

logger = get_logger("storage.manager")


class StorageManager:
    """
    Persistence collaborator for the auction core.

    Maps SQLite rows to game records. Handles:
    - Games, participants and the cricketer pool
    - The per-game AuctionState singleton (optimistically versioned)
    - Bid audit trail, pick ordering
    - Points configs, matches, scores, achievements, substitution rounds
    """

    def __init__(self, data_dir: Path, db_name: str = "auction.db"):
        self.data_dir = Path(data_dir)
        self.db_path = self.data_dir / db_name
        self.adapter = SQLiteAdapter(self.db_path)

        logger.info(f"StorageManager initialized at {self.db_path}")

    def transaction(self):
        """Group several writes into one atomic unit."""
        return self.adapter.transaction()

    def close(self) -> None:
        self.adapter.close()

    # =========================================================================
    # Games
    # =========================================================================

    def create_game(self, game: Game) -> Game:
        self.adapter.insert("games", {
            "game_id": game.game_id,
            "name": game.name,
            "created_by": game.created_by,
            "status": game.status.value,
            "joining_allowed": int(game.joining_allowed),
            "created_at": game.created_at,
        })
        return game

    def get_game(self, game_id: str) -> Optional[Game]:
        row = self.adapter.fetch_one("SELECT * FROM games WHERE game_id = ?", (game_id,))
        if not row:
            return None
        return Game(
            game_id=row["game_id"],
            name=row["name"],
            created_by=row["created_by"],
            status=GameStatus(row["status"]),
            joining_allowed=bool(row["joining_allowed"]),
            created_at=row["created_at"],
        )

    def update_game(self, game_id: str, patch: Dict[str, Any]) -> None:
        values = dict(patch)
        if isinstance(values.get("status"), GameStatus):
            values["status"] = values["status"].value
        if "joining_allowed" in values:
            values["joining_allowed"] = int(values["joining_allowed"])
        self.adapter.update("games", "game_id", game_id, values)

    def list_games(self) -> List[Game]:
        rows = self.adapter.fetch_all("SELECT game_id FROM games ORDER BY created_at ASC")
        return [self.get_game(row["game_id"]) for row in rows]

    # =========================================================================
    # Participants
    # =========================================================================

    def create_participant(self, participant: Participant) -> Participant:
        self.adapter.insert("participants", {
            "participant_id": participant.participant_id,
            "game_id": participant.game_id,
            "user_id": participant.user_id,
            "team_name": participant.team_name,
            "budget_remaining": participant.budget_remaining,
            "joined_at": participant.joined_at,
        })
        return participant

    def delete_participant(self, participant_id: str) -> None:
        with self.adapter.transaction() as conn:
            conn.execute("DELETE FROM participants WHERE participant_id = ?", (participant_id,))

    @staticmethod
    def _participant_from_row(row) -> Participant:
        return Participant(
            participant_id=row["participant_id"],
            game_id=row["game_id"],
            user_id=row["user_id"],
            team_name=row["team_name"],
            budget_remaining=row["budget_remaining"],
            joined_at=row["joined_at"],
        )

    def get_participant(self, participant_id: str) -> Optional[Participant]:
        row = self.adapter.fetch_one(
            "SELECT * FROM participants WHERE participant_id = ?", (participant_id,)
        )
        return self._participant_from_row(row) if row else None

    def find_participant(self, game_id: str, user_id: str) -> Optional[Participant]:
        row = self.adapter.fetch_one(
            "SELECT * FROM participants WHERE game_id = ? AND user_id = ?",
            (game_id, user_id),
        )
        return self._participant_from_row(row) if row else None

    def list_participants(self, game_id: str) -> List[Participant]:
        rows = self.adapter.fetch_all(
            "SELECT * FROM participants WHERE game_id = ? ORDER BY joined_at ASC, rowid ASC",
            (game_id,),
        )
        return [self._participant_from_row(row) for row in rows]

    def update_participant_budget(self, participant_id: str, new_budget: float) -> None:
        if new_budget < 0:
            raise ValueError(f"Budget cannot go negative: {new_budget}")
        self.adapter.update(
            "participants", "participant_id", participant_id,
            {"budget_remaining": new_budget},
        )

    # =========================================================================
    # Cricketers
    # =========================================================================

    def create_cricketer(self, cricketer: Cricketer) -> Cricketer:
        self.adapter.insert("cricketers", {
            "cricketer_id": cricketer.cricketer_id,
            "game_id": cricketer.game_id,
            "first_name": cricketer.first_name,
            "last_name": cricketer.last_name,
            "player_type": cricketer.player_type.value,
            "is_foreign": int(cricketer.is_foreign),
            "ipl_team": cricketer.ipl_team,
            "is_picked": int(cricketer.is_picked),
            "picked_by": cricketer.picked_by,
            "price_paid": cricketer.price_paid,
            "pick_order": cricketer.pick_order,
            "was_skipped": int(cricketer.was_skipped),
            "auction_order": cricketer.auction_order,
        })
        return cricketer

    @staticmethod
    def _cricketer_from_row(row) -> Cricketer:
        return Cricketer(
            cricketer_id=row["cricketer_id"],
            game_id=row["game_id"],
            first_name=row["first_name"],
            last_name=row["last_name"],
            player_type=PlayerType(row["player_type"]),
            is_foreign=bool(row["is_foreign"]),
            ipl_team=row["ipl_team"],
            is_picked=bool(row["is_picked"]),
            picked_by=row["picked_by"],
            price_paid=row["price_paid"],
            pick_order=row["pick_order"],
            was_skipped=bool(row["was_skipped"]),
            auction_order=row["auction_order"],
        )

    def get_cricketer(self, cricketer_id: str) -> Optional[Cricketer]:
        row = self.adapter.fetch_one(
            "SELECT * FROM cricketers WHERE cricketer_id = ?", (cricketer_id,)
        )
        return self._cricketer_from_row(row) if row else None

    def list_cricketers(self, game_id: str) -> List[Cricketer]:
        rows = self.adapter.fetch_all(
            "SELECT * FROM cricketers WHERE game_id = ? "
            "ORDER BY auction_order IS NULL, auction_order ASC, rowid ASC",
            (game_id,),
        )
        return [self._cricketer_from_row(row) for row in rows]

    def list_roster(self, participant_id: str) -> List[Cricketer]:
        rows = self.adapter.fetch_all(
            "SELECT * FROM cricketers WHERE picked_by = ? AND is_picked = 1 "
            "ORDER BY pick_order ASC",
            (participant_id,),
        )
        return [self._cricketer_from_row(row) for row in rows]

    def update_cricketer(self, cricketer_id: str, patch: Dict[str, Any]) -> None:
        values = dict(patch)
        for flag in ("is_picked", "was_skipped"):
            if flag in values:
                values[flag] = int(values[flag])
        self.adapter.update("cricketers", "cricketer_id", cricketer_id, values)

    def find_max_pick_order(self, game_id: str) -> int:
        value = self.adapter.scalar(
            "SELECT MAX(pick_order) FROM cricketers WHERE game_id = ? AND is_picked = 1",
            (game_id,),
        )
        return value or 0

    def count_picked(self, game_id: str) -> int:
        return self.adapter.scalar(
            "SELECT COUNT(*) FROM cricketers WHERE game_id = ? AND is_picked = 1",
            (game_id,),
        )

    def next_auction_order(self, game_id: str) -> int:
        value = self.adapter.scalar(
            "SELECT MAX(auction_order) FROM cricketers WHERE game_id = ?", (game_id,)
        )
        return (value or 0) + 1

    # =========================================================================
    # Auction State
    # =========================================================================

    @staticmethod
    def _state_from_row(row) -> AuctionState:
        return AuctionState(
            state_id=row["state_id"],
            game_id=row["game_id"],
            current_cricketer_id=row["current_cricketer_id"],
            auction_status=AuctionStatus(row["auction_status"]),
            timer_end_time=row["timer_end_time"],
            timer_paused_at=row["timer_paused_at"],
            current_high_bid=row["current_high_bid"],
            current_high_bidder_id=row["current_high_bidder_id"],
            bidding_log=[BidLogEntry.from_record(e) for e in json.loads(row["bidding_log"])],
            last_win_message=row["last_win_message"],
            version=row["version"],
        )

    def get_or_create_auction_state(self, game_id: str) -> AuctionState:
        """Load the game's AuctionState, creating it on first access."""
        with self.adapter.transaction():
            row = self.adapter.fetch_one(
                "SELECT * FROM auction_states WHERE game_id = ?", (game_id,)
            )
            if row:
                return self._state_from_row(row)

            state = AuctionState(state_id=new_id(), game_id=game_id)
            self.adapter.insert("auction_states", {
                "state_id": state.state_id,
                "game_id": game_id,
                "auction_status": state.auction_status.value,
                "current_high_bid": 0.0,
                "bidding_log": "[]",
                "version": 0,
            })
            logger.debug(f"Created auction state for game {game_id[:8]}")
            return state

    def update_auction_state(
        self,
        state_id: str,
        patch: Dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> None:
        """
        Apply a field patch to an AuctionState.

        Raises:
            StaleStateError: if expected_version no longer matches
        """
        values = dict(patch)
        if isinstance(values.get("auction_status"), AuctionStatus):
            values["auction_status"] = values["auction_status"].value
        if "bidding_log" in values:
            values["bidding_log"] = json.dumps([e.to_record() for e in values["bidding_log"]])

        updated = self.adapter.update(
            "auction_states", "state_id", state_id, values,
            expected_version=expected_version,
        )
        if expected_version is not None and updated == 0:
            raise StaleStateError("Auction state changed, please retry")

    def save_auction_state(self, state: AuctionState, expected_version: int) -> None:
        """Write every mutable field of an AuctionState."""
        self.update_auction_state(state.state_id, {
            "current_cricketer_id": state.current_cricketer_id,
            "auction_status": state.auction_status,
            "timer_end_time": state.timer_end_time,
            "timer_paused_at": state.timer_paused_at,
            "current_high_bid": state.current_high_bid,
            "current_high_bidder_id": state.current_high_bidder_id,
            "bidding_log": state.bidding_log,
            "last_win_message": state.last_win_message,
        }, expected_version=expected_version)

    # =========================================================================
    # Bids
    # =========================================================================

    def create_bid(self, bid: Bid) -> None:
        self.adapter.insert("bids", {
            "bid_id": bid.bid_id,
            "game_id": bid.game_id,
            "cricketer_id": bid.cricketer_id,
            "participant_id": bid.participant_id,
            "amount": bid.amount,
            "timestamp": bid.timestamp,
        })

    def list_bids(self, game_id: str, cricketer_id: Optional[str] = None) -> List[Bid]:
        sql = "SELECT * FROM bids WHERE game_id = ?"
        params: tuple = (game_id,)
        if cricketer_id:
            sql += " AND cricketer_id = ?"
            params += (cricketer_id,)
        rows = self.adapter.fetch_all(sql + " ORDER BY timestamp ASC, rowid ASC", params)
        return [
            Bid(
                bid_id=row["bid_id"],
                game_id=row["game_id"],
                cricketer_id=row["cricketer_id"],
                participant_id=row["participant_id"],
                amount=row["amount"],
                timestamp=row["timestamp"],
            )
            for row in rows
        ]

    # =========================================================================
    # Points Config, Matches, Scores
    # =========================================================================

    def get_points_config(self, game_id: str) -> Optional[dict]:
        row = self.adapter.fetch_one("SELECT data FROM point_configs WHERE game_id = ?", (game_id,))
        return json.loads(row["data"]) if row else None

    def save_points_config(self, game_id: str, data: dict) -> None:
        self.adapter.insert("point_configs", {
            "game_id": game_id,
            "data": json.dumps(data),
        }, replace=True)

    def create_match(self, match: dict) -> dict:
        self.adapter.insert("matches", match)
        return match

    def get_match(self, match_id: str) -> Optional[dict]:
        row = self.adapter.fetch_one("SELECT * FROM matches WHERE match_id = ?", (match_id,))
        return dict(row) if row else None

    def list_matches(self, game_id: str) -> List[dict]:
        rows = self.adapter.fetch_all(
            "SELECT * FROM matches WHERE game_id = ? ORDER BY match_number ASC", (game_id,)
        )
        return [dict(row) for row in rows]

    def mark_match_scored(self, match_id: str) -> None:
        self.adapter.update("matches", "match_id", match_id, {"scores_populated": 1})

    def save_match_score(self, match_id: str, cricketer_id: str, data: dict, points: int) -> None:
        """Insert or overwrite the score for (match, cricketer)."""
        self.adapter.insert("player_match_scores", {
            "match_id": match_id,
            "cricketer_id": cricketer_id,
            "data": json.dumps(data),
            "calculated_points": points,
        }, replace=True)

    def list_match_scores(self, match_id: str) -> List[dict]:
        rows = self.adapter.fetch_all(
            "SELECT * FROM player_match_scores WHERE match_id = ?", (match_id,)
        )
        return [
            {
                "cricketer_id": row["cricketer_id"],
                "record": json.loads(row["data"]),
                "calculated_points": row["calculated_points"],
            }
            for row in rows
        ]

    def points_by_cricketer(self, game_id: str) -> Dict[str, int]:
        """Sum of calculated points per cricketer over all the game's matches."""
        rows = self.adapter.fetch_all(
            "SELECT s.cricketer_id AS cricketer_id, SUM(s.calculated_points) AS total "
            "FROM player_match_scores s JOIN matches m ON m.match_id = s.match_id "
            "WHERE m.game_id = ? GROUP BY s.cricketer_id",
            (game_id,),
        )
        return {row["cricketer_id"]: row["total"] for row in rows}

    # =========================================================================
    # Achievements
    # =========================================================================

    def award_achievement(
        self,
        participant_id: str,
        achievement_type: str,
        metadata: Optional[dict] = None,
    ) -> bool:
        """Record an achievement. Returns False if already earned."""
        return self.adapter.insert_ignore("achievements", {
            "participant_id": participant_id,
            "achievement_type": achievement_type,
            "awarded_at": now_ms(),
            "metadata": json.dumps(metadata) if metadata else None,
        })

    def list_achievements(self, participant_id: str) -> List[str]:
        rows = self.adapter.fetch_all(
            "SELECT achievement_type FROM achievements WHERE participant_id = ? "
            "ORDER BY awarded_at ASC",
            (participant_id,),
        )
        return [row["achievement_type"] for row in rows]

    # =========================================================================
    # Substitution Rounds
    # =========================================================================

    def get_sub_round(self, game_id: str) -> Optional[dict]:
        row = self.adapter.fetch_one("SELECT * FROM sub_rounds WHERE game_id = ?", (game_id,))
        if not row:
            return None
        return {
            "game_id": row["game_id"],
            "round_no": row["round_no"],
            "turn_order": json.loads(row["turn_order"]),
            "position": row["position"],
            "active": bool(row["active"]),
        }

    def save_sub_round(self, game_id: str, round_no: int, turn_order: List[str]) -> None:
        self.adapter.insert("sub_rounds", {
            "game_id": game_id,
            "round_no": round_no,
            "turn_order": json.dumps(turn_order),
            "position": 0,
            "active": 1,
        }, replace=True)

    def update_sub_round(self, game_id: str, position: int, active: bool) -> None:
        self.adapter.update("sub_rounds", "game_id", game_id, {
            "position": position,
            "active": int(active),
        })

    def record_substitution(self, record: dict) -> None:
        self.adapter.insert("substitutions", record)

    def list_substitutions(self, game_id: str, participant_id: Optional[str] = None) -> List[dict]:
        sql = "SELECT * FROM substitutions WHERE game_id = ?"
        params: tuple = (game_id,)
        if participant_id:
            sql += " AND participant_id = ?"
            params += (participant_id,)
        rows = self.adapter.fetch_all(sql + " ORDER BY created_at ASC, rowid ASC", params)
        return [dict(row) for row in rows]
