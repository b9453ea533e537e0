"""
Broadcast Gateway - Game rooms and the client command relay.

Outbound: every event the engine emits for a game is delivered to each
subscriber of that game's room. Delivery is best effort; a slow or
broken subscriber never fails the operation that produced the event,
and clients recover by polling the state.

Inbound: client commands are attributed to the connection's user,
validated, and relayed to the engine and services. Domain errors come
back as structured failures; storage failures as a generic server error.
"""

import sqlite3
import threading
from typing import Any, Callable, Dict, List, Optional, Protocol, Set

from cfa.core.errors import AuctionError, InvalidInputError, NotFoundError
from cfa.core.services import Services
from cfa.utils.logger import get_logger
from cfa.utils.validation import validate_command, validate_identifier

logger = get_logger("gateway")

SERVER_ERROR = {"ok": False, "error": "server_error", "reason": "Internal server error"}


class Subscriber(Protocol):
    user_id: Optional[str]

    def deliver(self, game_id: str, event: str, payload: Dict[str, Any]) -> None:
        ...


def room_name(game_id: str) -> str:
    return f"game:{game_id}"


class BroadcastGateway:
    """
    Room registry and fan-out.

    Joining or leaving a room is idempotent and independent of any
    in-flight auction operation.
    """

    def __init__(self):
        self._rooms: Dict[str, Set[Subscriber]] = {}
        self._lock = threading.Lock()

    def join_room(self, game_id: str, subscriber: Subscriber) -> bool:
        """Returns False if already a member."""
        with self._lock:
            members = self._rooms.setdefault(room_name(game_id), set())
            if subscriber in members:
                return False
            members.add(subscriber)
        logger.debug(f"{subscriber.user_id} joined {room_name(game_id)}")
        return True

    def leave_room(self, game_id: str, subscriber: Subscriber) -> bool:
        with self._lock:
            members = self._rooms.get(room_name(game_id))
            if not members or subscriber not in members:
                return False
            members.discard(subscriber)
            if not members:
                del self._rooms[room_name(game_id)]
        return True

    def leave_all(self, subscriber: Subscriber) -> int:
        """Drop a subscriber from every room (on disconnect)."""
        removed = 0
        with self._lock:
            for name in list(self._rooms):
                members = self._rooms[name]
                if subscriber in members:
                    members.discard(subscriber)
                    removed += 1
                if not members:
                    del self._rooms[name]
        return removed

    def members(self, game_id: str) -> List[Subscriber]:
        with self._lock:
            return list(self._rooms.get(room_name(game_id), ()))

    def emit_to_game_room(self, game_id: str, event: str, payload: Dict[str, Any]) -> int:
        """
        Deliver an event to every subscriber of the game's room.

        Returns:
            Number of subscribers it was handed to
        """
        count = 0
        for subscriber in self.members(game_id):
            try:
                subscriber.deliver(game_id, event, payload)
                count += 1
            except Exception as e:
                logger.warning(f"Dropped {event} for {subscriber.user_id}: {e}")
        logger.debug(f"Emitted {event} to {count} subscribers of {room_name(game_id)}")
        return count


# =============================================================================
# Command Relay
# =============================================================================


def _require(args: Dict[str, Any], name: str) -> Any:
    if name not in args or args[name] is None:
        raise InvalidInputError(f"Missing required field: {name}")
    return args[name]


def _require_id(args: Dict[str, Any], name: str) -> str:
    value = _require(args, name)
    valid, err = validate_identifier(value, name)
    if not valid:
        raise InvalidInputError(err)
    return value


Handler = Callable[[Subscriber, Dict[str, Any]], Any]


class CommandRelay:
    """
    Maps client commands onto service calls.

    Usage:
        relay = CommandRelay(services, gateway)
        relay.dispatch(session, {"command": "auction.bid", "args": {"game_id": g, "amount": 2}})
    """

    def __init__(self, services: Services, gateway: BroadcastGateway):
        self.services = services
        self.gateway = gateway
        self._handlers: Dict[str, Handler] = {}
        self._register_default_handlers()

    def register_handler(self, command: str, handler: Handler) -> None:
        self._handlers[command] = handler

    @property
    def commands(self) -> List[str]:
        return sorted(self._handlers)

    def dispatch(self, session: Subscriber, data: Any) -> Dict[str, Any]:
        """
        Run one command for the session's user.

        Returns:
            {"ok": True, "result": ...} or an error dict
        """
        try:
            valid, err = validate_command(data)
            if not valid:
                raise InvalidInputError(err)
            if not session.user_id:
                raise InvalidInputError("Say HELLO first")

            handler = self._handlers.get(data["command"])
            if handler is None:
                raise InvalidInputError(f"Unknown command: {data['command']}")
            result = handler(session, data.get("args", {}))
            return {"ok": True, "result": result}

        except AuctionError as e:
            logger.debug(f"Command {data.get('command') if isinstance(data, dict) else data!r} rejected: {e.reason}")
            return e.to_dict()
        except sqlite3.Error:
            logger.exception("Storage failure while handling command")
            return SERVER_ERROR.copy()
        except Exception:
            logger.exception(f"Unhandled error in command {data.get('command') if isinstance(data, dict) else data!r}")
            return SERVER_ERROR.copy()

    # =========================================================================
    # Handlers
    # =========================================================================

    def _register_default_handlers(self) -> None:
        s = self.services
        engine = s.engine

        # Auction
        self._handlers["auction.start_lot"] = lambda session, a: engine.start_lot(
            _require_id(a, "game_id"), session.user_id, _require_id(a, "cricketer_id"))
        self._handlers["auction.bid"] = lambda session, a: engine.place_bid(
            _require_id(a, "game_id"), session.user_id, _require(a, "amount"))
        self._handlers["auction.pause"] = lambda session, a: engine.pause(
            _require_id(a, "game_id"), session.user_id)
        self._handlers["auction.resume"] = lambda session, a: engine.resume(
            _require_id(a, "game_id"), session.user_id)
        self._handlers["auction.add_time"] = lambda session, a: engine.add_time(
            _require_id(a, "game_id"), session.user_id, _require(a, "seconds"))
        self._handlers["auction.skip"] = lambda session, a: engine.skip(
            _require_id(a, "game_id"), session.user_id)
        self._handlers["auction.assign"] = lambda session, a: engine.assign(
            _require_id(a, "game_id"), session.user_id, a.get("cricketer_id"))
        self._handlers["auction.end"] = lambda session, a: engine.end(
            _require_id(a, "game_id"), session.user_id)
        self._handlers["auction.state"] = self._auction_state
        self._handlers["auction.log"] = self._auction_log

        # Games
        self._handlers["game.create"] = lambda session, a: s.games.create_game(
            _require(a, "name"), session.user_id).to_dict()
        self._handlers["game.join"] = lambda session, a: s.games.join_game(
            _require_id(a, "game_id"), session.user_id, _require(a, "team_name")).to_dict()
        self._handlers["game.leave"] = self._game_leave
        self._handlers["game.show"] = self._game_show
        self._handlers["game.subscribe"] = self._subscribe
        self._handlers["game.unsubscribe"] = self._unsubscribe
        self._handlers["game.update"] = lambda session, a: s.games.update_game(
            _require_id(a, "game_id"), session.user_id,
            a.get("name"), a.get("joining_allowed")).to_dict()

        # Cricketers
        self._handlers["cricketer.add"] = self._cricketer_add
        self._handlers["cricketer.import"] = self._cricketer_import
        self._handlers["cricketer.unpicked"] = self._cricketer_unpicked
        self._handlers["cricketer.order"] = lambda session, a: [
            c.to_dict() for c in s.games.set_auction_order(
                _require_id(a, "game_id"), session.user_id, _require(a, "order"))
        ]

        # Scoring
        self._handlers["points.get"] = self._points_get
        self._handlers["points.update"] = lambda session, a: s.scoring.update_points_config(
            _require_id(a, "game_id"), session.user_id, _require(a, "changes")).model_dump()
        self._handlers["match.create"] = lambda session, a: s.scoring.create_match(
            _require_id(a, "game_id"), session.user_id, _require(a, "match_number"),
            _require(a, "team1"), _require(a, "team2"), _require(a, "match_date"))
        self._handlers["match.scores"] = lambda session, a: s.scoring.save_match_scores(
            _require_id(a, "game_id"), session.user_id, _require_id(a, "match_id"),
            _require(a, "records"))
        self._handlers["leaderboard"] = self._leaderboard

        # Substitutions
        self._handlers["subs.start"] = lambda session, a: s.subs.start_round(
            _require_id(a, "game_id"), session.user_id, _require(a, "round"))
        self._handlers["subs.turn"] = self._subs_turn
        self._handlers["subs.substitute"] = lambda session, a: s.subs.substitute(
            _require_id(a, "game_id"), session.user_id,
            _require_id(a, "drop_id"), _require_id(a, "add_id"))
        self._handlers["subs.skip"] = lambda session, a: s.subs.skip_turn(
            _require_id(a, "game_id"), session.user_id)
        self._handlers["subs.end"] = lambda session, a: s.subs.end_round(
            _require_id(a, "game_id"), session.user_id)
        self._handlers["subs.history"] = self._subs_history
        self._handlers["achievements"] = self._achievements

    def _member_game(self, session: Subscriber, args: Dict[str, Any]) -> str:
        game_id = _require_id(args, "game_id")
        self.services.games.require_member(game_id, session.user_id)
        return game_id

    def _auction_state(self, session: Subscriber, args: Dict[str, Any]) -> dict:
        return self.services.engine.get_state(self._member_game(session, args))

    def _auction_log(self, session: Subscriber, args: Dict[str, Any]) -> list:
        return self.services.engine.get_bidding_log(self._member_game(session, args))

    def _game_leave(self, session: Subscriber, args: Dict[str, Any]) -> dict:
        game_id = _require_id(args, "game_id")
        self.services.games.leave_game(game_id, session.user_id)
        self.gateway.leave_room(game_id, session)
        return {"left": game_id}

    def _game_show(self, session: Subscriber, args: Dict[str, Any]) -> dict:
        return self.services.games.summary(self._member_game(session, args))

    def _subscribe(self, session: Subscriber, args: Dict[str, Any]) -> dict:
        """Join the game's room and return the current state to sync from."""
        game_id = self._member_game(session, args)
        self.gateway.join_room(game_id, session)
        return self.services.engine.get_state(game_id)

    def _unsubscribe(self, session: Subscriber, args: Dict[str, Any]) -> dict:
        game_id = _require_id(args, "game_id")
        self.gateway.leave_room(game_id, session)
        return {"room": room_name(game_id), "subscribed": False}

    def _cricketer_add(self, session: Subscriber, args: Dict[str, Any]) -> dict:
        fields = {k: v for k, v in args.items() if k != "game_id"}
        cricketer = self.services.games.add_cricketer(
            _require_id(args, "game_id"), session.user_id, **fields)
        return cricketer.to_dict()

    def _cricketer_import(self, session: Subscriber, args: Dict[str, Any]) -> list:
        rows = _require(args, "rows")
        if not isinstance(rows, list):
            raise InvalidInputError("rows must be a list")
        imported = self.services.games.import_cricketers(
            _require_id(args, "game_id"), session.user_id, rows)
        return [c.to_dict() for c in imported]

    def _cricketer_unpicked(self, session: Subscriber, args: Dict[str, Any]) -> list:
        game_id = self._member_game(session, args)
        return [c.to_dict() for c in self.services.games.list_unpicked(game_id)]

    def _points_get(self, session: Subscriber, args: Dict[str, Any]) -> dict:
        game_id = self._member_game(session, args)
        return self.services.scoring.get_points_config(game_id).model_dump()

    def _leaderboard(self, session: Subscriber, args: Dict[str, Any]) -> list:
        game_id = self._member_game(session, args)
        return self.services.scoring.leaderboard(game_id, args.get("up_to_match"))

    def _subs_turn(self, session: Subscriber, args: Dict[str, Any]) -> dict:
        game_id = self._member_game(session, args)
        return self.services.subs.status(game_id)

    def _subs_history(self, session: Subscriber, args: Dict[str, Any]) -> list:
        game_id = self._member_game(session, args)
        return self.services.subs.history(game_id, args.get("participant_id"))

    def _achievements(self, session: Subscriber, args: Dict[str, Any]) -> list:
        """Achievements of the caller, or of another participant in the same game."""
        game_id = self._member_game(session, args)
        participant_id = args.get("participant_id")
        if participant_id is None:
            participant_id = self.services.games.require_participant(game_id, session.user_id).participant_id
        elif all(p.participant_id != participant_id for p in self.services.games.participants(game_id)):
            raise NotFoundError("Participant not found")
        return self.services.achievements.list_for_participant(participant_id)
