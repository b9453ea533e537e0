"""
Game Service - Games, membership and the cricketer pool.

Everything that happens before (and around) the live auction: creating
a game, joining and leaving it, loading the player pool, and the access
checks the other services share.
"""

from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional

from cfa.core.config import AuctionConfig
from cfa.core.errors import (
    AuthorizationError,
    ConflictError,
    InvalidInputError,
    NotFoundError,
)
from cfa.core.game.models import (
    Cricketer,
    Game,
    GameStatus,
    Participant,
    PlayerType,
    new_id,
)
from cfa.core.scoring.points import PointSystemConfig
from cfa.utils.logger import get_logger
from cfa.utils.validation import validate_identifier, validate_string

if TYPE_CHECKING:
    from cfa.core.storage import StorageManager

logger = get_logger("game")

GAME_NAME_MIN = 3
GAME_NAME_MAX = 50
TEAM_NAME_MAX = 50
PLAYER_NAME_MAX = 100


def parse_player_type(value: Any) -> PlayerType:
    if isinstance(value, PlayerType):
        return value
    try:
        return PlayerType(str(value).strip().lower())
    except ValueError:
        allowed = ", ".join(t.value for t in PlayerType)
        raise InvalidInputError(f"player_type must be one of {allowed}, got {value!r}") from None


def parse_flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "y")


class GameService:
    """
    Manages games and their membership.

    Usage:
        games = GameService(storage)
        game = games.create_game("Sunday League", "alice")
        games.join_game(game.game_id, "bob", "Bob's XI")
    """

    def __init__(self, storage: "StorageManager", config: Optional[AuctionConfig] = None):
        self.storage = storage
        self.config = config or AuctionConfig()

    # =========================================================================
    # Access Checks
    # =========================================================================

    def get_game(self, game_id: str) -> Game:
        game = self.storage.get_game(game_id)
        if game is None:
            raise NotFoundError("Game not found")
        return game

    def require_operator(self, game_id: str, user_id: str) -> Game:
        game = self.get_game(game_id)
        if not game.is_operator(user_id):
            raise AuthorizationError("Only the game creator can do this")
        return game

    def require_participant(self, game_id: str, user_id: str) -> Participant:
        self.get_game(game_id)
        participant = self.storage.find_participant(game_id, user_id)
        if participant is None:
            raise AuthorizationError("Not a participant in this game")
        return participant

    def require_member(self, game_id: str, user_id: str) -> Game:
        """Operator or participant."""
        game = self.get_game(game_id)
        if game.is_operator(user_id):
            return game
        if self.storage.find_participant(game_id, user_id) is None:
            raise AuthorizationError("Access denied to this game")
        return game

    def _require_pre_auction(self, game: Game, message: str) -> None:
        if game.status != GameStatus.PRE_AUCTION:
            raise ConflictError(message)

    # =========================================================================
    # Games
    # =========================================================================

    def create_game(self, name: str, creator_user_id: str) -> Game:
        """Create a game together with its auction state and default points table."""
        valid, err = validate_string(name, "name", max_length=GAME_NAME_MAX, min_length=GAME_NAME_MIN)
        if not valid:
            raise InvalidInputError(err)
        valid, err = validate_identifier(creator_user_id, "user_id")
        if not valid:
            raise InvalidInputError(err)

        game = Game(game_id=new_id(), name=name.strip(), created_by=creator_user_id)
        with self.storage.transaction():
            self.storage.create_game(game)
            self.storage.get_or_create_auction_state(game.game_id)
            self.storage.save_points_config(game.game_id, PointSystemConfig().model_dump())

        logger.info(f"Game created: {game.name} ({game.game_id[:8]}) by {creator_user_id}")
        return game

    def update_game(
        self,
        game_id: str,
        user_id: str,
        name: Optional[str] = None,
        joining_allowed: Optional[bool] = None,
    ) -> Game:
        self.require_operator(game_id, user_id)
        patch: Dict[str, Any] = {}
        if name is not None:
            valid, err = validate_string(
                name, "name", max_length=GAME_NAME_MAX, min_length=GAME_NAME_MIN
            )
            if not valid:
                raise InvalidInputError(err)
            patch["name"] = name.strip()
        if joining_allowed is not None:
            patch["joining_allowed"] = parse_flag(joining_allowed)
        if patch:
            self.storage.update_game(game_id, patch)
        return self.get_game(game_id)

    def list_games(self) -> List[Game]:
        return self.storage.list_games()

    # =========================================================================
    # Membership
    # =========================================================================

    def join_game(self, game_id: str, user_id: str, team_name: str) -> Participant:
        """
        Add a participant with the starting budget.

        Raises:
            ConflictError: joining closed, auction started, creator, or already joined
        """
        valid, err = validate_identifier(user_id, "user_id")
        if not valid:
            raise InvalidInputError(err)
        valid, err = validate_string(team_name, "team_name", max_length=TEAM_NAME_MAX, min_length=1)
        if not valid:
            raise InvalidInputError(err)

        game = self.get_game(game_id)
        if not game.joining_allowed:
            raise ConflictError("This game is no longer accepting new players")
        self._require_pre_auction(game, "This game has already started")
        if game.is_operator(user_id):
            raise ConflictError("You are the creator of this game")
        if self.storage.find_participant(game_id, user_id) is not None:
            raise ConflictError("You have already joined this game")

        participant = Participant(
            participant_id=new_id(),
            game_id=game_id,
            user_id=user_id,
            team_name=team_name.strip(),
            budget_remaining=self.config.starting_budget,
        )
        self.storage.create_participant(participant)
        logger.info(f"{user_id} joined game {game_id[:8]} as {participant.team_name}")
        return participant

    def leave_game(self, game_id: str, user_id: str) -> None:
        game = self.get_game(game_id)
        if game.is_operator(user_id):
            raise ConflictError("Game creator cannot leave the game")
        participant = self.require_participant(game_id, user_id)
        self._require_pre_auction(game, "Cannot leave after auction has started")

        self.storage.delete_participant(participant.participant_id)
        logger.info(f"{user_id} left game {game_id[:8]}")

    def participants(self, game_id: str) -> List[Participant]:
        self.get_game(game_id)
        return self.storage.list_participants(game_id)

    def roster(self, participant_id: str) -> List[Cricketer]:
        if self.storage.get_participant(participant_id) is None:
            raise NotFoundError("Participant not found")
        return self.storage.list_roster(participant_id)

    # =========================================================================
    # Cricketer Pool
    # =========================================================================

    def _build_cricketer(self, game_id: str, row: Dict[str, Any], auction_order: int) -> Cricketer:
        if not isinstance(row, dict):
            raise InvalidInputError(f"Cricketer row must be an object, got {type(row).__name__}")
        first_name = row.get("first_name", "")
        last_name = row.get("last_name", "")
        for field_name, value in (("first_name", first_name), ("last_name", last_name)):
            valid, err = validate_string(value, field_name, max_length=PLAYER_NAME_MAX)
            if not valid:
                raise InvalidInputError(err)
        if not (first_name.strip() or last_name.strip()):
            raise InvalidInputError("Cricketer needs a name")

        ipl_team = row.get("ipl_team") or ""
        valid, err = validate_string(ipl_team, "ipl_team", max_length=PLAYER_NAME_MAX)
        if not valid:
            raise InvalidInputError(err)

        return Cricketer(
            cricketer_id=new_id(),
            game_id=game_id,
            first_name=first_name.strip(),
            last_name=last_name.strip(),
            player_type=parse_player_type(row.get("player_type")),
            is_foreign=parse_flag(row.get("is_foreign", False)),
            ipl_team=ipl_team.strip(),
            auction_order=auction_order,
        )

    def add_cricketer(self, game_id: str, user_id: str, **fields: Any) -> Cricketer:
        """Add one cricketer to the pool (operator, before the auction)."""
        return self.import_cricketers(game_id, user_id, [fields])[0]

    def import_cricketers(
        self,
        game_id: str,
        user_id: str,
        rows: Iterable[Dict[str, Any]],
    ) -> List[Cricketer]:
        """
        Bulk-load cricketers. Every row is validated before anything is
        written; auction_order continues from the current pool.
        """
        game = self.require_operator(game_id, user_id)
        self._require_pre_auction(game, "Cannot change the player pool after the auction has started")

        start = self.storage.next_auction_order(game_id)
        cricketers = [
            self._build_cricketer(game_id, row, start + index)
            for index, row in enumerate(rows)
        ]
        with self.storage.transaction():
            for cricketer in cricketers:
                self.storage.create_cricketer(cricketer)

        logger.info(f"Imported {len(cricketers)} cricketers into game {game_id[:8]}")
        return cricketers

    def set_auction_order(self, game_id: str, user_id: str, order: List[str]) -> List[Cricketer]:
        """Renumber auction_order from a list of cricketer ids."""
        self.require_operator(game_id, user_id)
        if not isinstance(order, list):
            raise InvalidInputError("Order must be an array of cricketer IDs")
        for cricketer_id in order:
            valid, err = validate_identifier(cricketer_id, "cricketer_id")
            if not valid:
                raise InvalidInputError(err)

        pool = {c.cricketer_id for c in self.storage.list_cricketers(game_id)}
        unknown = [cid for cid in order if cid not in pool]
        if unknown:
            raise NotFoundError(f"Cricketer not found in this game: {unknown[0]}")

        with self.storage.transaction():
            for index, cricketer_id in enumerate(order):
                self.storage.update_cricketer(cricketer_id, {"auction_order": index + 1})
        return self.storage.list_cricketers(game_id)

    def list_cricketers(self, game_id: str) -> List[Cricketer]:
        self.get_game(game_id)
        return self.storage.list_cricketers(game_id)

    def list_unpicked(self, game_id: str) -> List[Cricketer]:
        """Cricketers still available for a lot, in auction order."""
        return [
            c for c in self.list_cricketers(game_id)
            if not c.is_picked and not c.was_skipped
        ]

    def summary(self, game_id: str) -> dict:
        game = self.get_game(game_id)
        teams = []
        for participant in self.storage.list_participants(game_id):
            roster = self.storage.list_roster(participant.participant_id)
            entry = participant.to_dict()
            entry["roster_size"] = len(roster)
            entry["foreign_players"] = sum(1 for c in roster if c.is_foreign)
            teams.append(entry)
        data = game.to_dict()
        data["participants"] = teams
        data["cricketers"] = len(self.storage.list_cricketers(game_id))
        return data
