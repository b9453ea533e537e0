"""
Scoring Service - Points tables, match scores and the leaderboard.

Stored scores always carry the points computed from the game's table at
the time they were saved; re-submitting a match overwrites them.
"""

from datetime import date
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional

from pydantic import ValidationError

from cfa.core.errors import ConflictError, InvalidInputError, NotFoundError
from cfa.core.game.models import GameStatus, new_id
from cfa.core.scoring.points import PlayerMatchRecord, PointSystemConfig, calculate_points
from cfa.utils.logger import get_logger
from cfa.utils.validation import validate_integer, validate_string

if TYPE_CHECKING:
    from cfa.core.game.service import GameService
    from cfa.core.storage import StorageManager

logger = get_logger("scoring")

SCORING_STATUSES = (GameStatus.AUCTION_ENDED, GameStatus.SCORING, GameStatus.COMPLETED)


def _validation_reason(error: ValidationError) -> str:
    first = error.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    return f"{location}: {first.get('msg')}" if location else first.get("msg", "invalid input")


class ScoringService:
    """
    Per-game points configuration and match scoring.

    Usage:
        scoring = ScoringService(storage, games)
        match = scoring.create_match(game_id, operator_id, 1, "CSK", "MI", "2026-04-01")
        scoring.save_match_scores(game_id, operator_id, match["match_id"], records)
    """

    def __init__(self, storage: "StorageManager", games: "GameService"):
        self.storage = storage
        self.games = games

    # =========================================================================
    # Points Configuration
    # =========================================================================

    def get_points_config(self, game_id: str) -> PointSystemConfig:
        """The game's table, created with defaults on first access."""
        self.games.get_game(game_id)
        data = self.storage.get_points_config(game_id)
        if data is None:
            config = PointSystemConfig()
            self.storage.save_points_config(game_id, config.model_dump())
            return config
        return PointSystemConfig.model_validate(data)

    def update_points_config(self, game_id: str, user_id: str, changes: Dict[str, Any]) -> PointSystemConfig:
        """Apply a partial update. Operator only, before the auction starts."""
        game = self.games.require_operator(game_id, user_id)
        if game.status != GameStatus.PRE_AUCTION:
            raise ConflictError("Points can only be changed before the auction starts")

        current = self.get_points_config(game_id)
        try:
            updated = PointSystemConfig.model_validate({**current.model_dump(), **changes})
        except ValidationError as e:
            raise InvalidInputError(_validation_reason(e)) from None

        self.storage.save_points_config(game_id, updated.model_dump())
        logger.info(f"Points table updated for game {game_id[:8]}: {sorted(changes)}")
        return updated

    # =========================================================================
    # Matches
    # =========================================================================

    def create_match(
        self,
        game_id: str,
        user_id: str,
        match_number: int,
        team1: str,
        team2: str,
        match_date: str,
    ) -> dict:
        game = self.games.require_operator(game_id, user_id)
        if game.status not in SCORING_STATUSES:
            raise ConflictError("Matches can only be added after the auction has ended")

        valid, err = validate_integer(match_number, "match_number", min_val=1)
        if not valid:
            raise InvalidInputError(err)
        for name, value in (("team1", team1), ("team2", team2)):
            valid, err = validate_string(value, name, max_length=50, min_length=2)
            if not valid:
                raise InvalidInputError(err)
        try:
            parsed_date = date.fromisoformat(match_date)
        except (TypeError, ValueError):
            raise InvalidInputError("Invalid date format") from None

        if any(m["match_number"] == match_number for m in self.storage.list_matches(game_id)):
            raise ConflictError("Match number already exists for this game")

        match = {
            "match_id": new_id(),
            "game_id": game_id,
            "match_number": match_number,
            "team1": team1.strip(),
            "team2": team2.strip(),
            "match_date": parsed_date.isoformat(),
            "scores_populated": 0,
        }
        with self.storage.transaction():
            self.storage.create_match(match)
            if game.status == GameStatus.AUCTION_ENDED:
                self.storage.update_game(game_id, {"status": GameStatus.SCORING})

        logger.info(f"Match {match_number} created for game {game_id[:8]}")
        return match

    def _match_in_game(self, game_id: str, match_id: str) -> dict:
        match = self.storage.get_match(match_id)
        if match is None or match["game_id"] != game_id:
            raise NotFoundError("Match not found")
        return match

    def save_match_scores(
        self,
        game_id: str,
        user_id: str,
        match_id: str,
        records: Iterable[Dict[str, Any]],
    ) -> List[dict]:
        """
        Validate, score and store player records for one match.

        Each record is a dict with `cricketer_id` plus PlayerMatchRecord
        fields. Nothing is written unless every record is valid.
        """
        self.games.require_operator(game_id, user_id)
        self._match_in_game(game_id, match_id)
        config = self.get_points_config(game_id)
        pool = {c.cricketer_id for c in self.storage.list_cricketers(game_id)}

        scored = []
        for raw in records:
            data = dict(raw)
            cricketer_id = data.pop("cricketer_id", None)
            if cricketer_id not in pool:
                raise NotFoundError(f"Cricketer not found in this game: {cricketer_id}")
            try:
                record = PlayerMatchRecord.model_validate(data)
            except ValidationError as e:
                raise InvalidInputError(_validation_reason(e)) from None
            scored.append((cricketer_id, record, calculate_points(record, config)))

        with self.storage.transaction():
            for cricketer_id, record, points in scored:
                self.storage.save_match_score(match_id, cricketer_id, record.model_dump(), points)
            self.storage.mark_match_scored(match_id)

        logger.info(f"Saved {len(scored)} scores for match {match_id[:8]}")
        return [
            {"cricketer_id": cid, "calculated_points": points}
            for cid, _, points in scored
        ]

    def match_scores(self, game_id: str, match_id: str) -> List[dict]:
        self._match_in_game(game_id, match_id)
        return self.storage.list_match_scores(match_id)

    # =========================================================================
    # Standings
    # =========================================================================

    def participant_totals(self, game_id: str) -> Dict[str, int]:
        """Cumulative points of each participant's current roster."""
        by_cricketer = self.storage.points_by_cricketer(game_id)
        totals = {}
        for participant in self.storage.list_participants(game_id):
            roster = self.storage.list_roster(participant.participant_id)
            totals[participant.participant_id] = sum(
                by_cricketer.get(c.cricketer_id, 0) for c in roster
            )
        return totals

    def leaderboard(self, game_id: str, up_to_match: Optional[int] = None) -> List[dict]:
        """
        Participants ranked by points, highest first. Ties keep join order.

        Args:
            up_to_match: only count matches numbered up to this one
        """
        self.games.get_game(game_id)
        matches = [
            m for m in self.storage.list_matches(game_id)
            if up_to_match is None or m["match_number"] <= up_to_match
        ]
        match_points = {
            m["match_id"]: {
                s["cricketer_id"]: s["calculated_points"]
                for s in self.storage.list_match_scores(m["match_id"])
            }
            for m in matches
        }

        rows = []
        for participant in self.storage.list_participants(game_id):
            owned = [c.cricketer_id for c in self.storage.list_roster(participant.participant_id)]
            by_match = [
                {
                    "match_number": m["match_number"],
                    "points": sum(match_points[m["match_id"]].get(cid, 0) for cid in owned),
                }
                for m in matches
            ]
            rows.append({
                "participant_id": participant.participant_id,
                "team_name": participant.team_name,
                "budget_remaining": participant.budget_remaining,
                "team_size": len(owned),
                "total_points": sum(entry["points"] for entry in by_match),
                "points_by_match": by_match,
            })

        rows.sort(key=lambda row: row["total_points"], reverse=True)
        for rank, row in enumerate(rows, start=1):
            row["rank"] = rank
        return rows
