"""
Unit tests for game rooms and the command relay.
"""

import sqlite3

import pytest

from cfa.core.auction import lot
from cfa.network.gateway import BroadcastGateway, CommandRelay, room_name


class FakeSession:
    def __init__(self, user_id=None):
        self.user_id = user_id
        self.received = []

    def deliver(self, game_id, event, payload):
        self.received.append((game_id, event, payload))

    def events(self):
        return [event for _, event, _ in self.received]


class BrokenSession(FakeSession):
    def deliver(self, game_id, event, payload):
        raise ConnectionError("gone")


@pytest.fixture
def gateway():
    return BroadcastGateway()


@pytest.fixture
def relay(services, gateway):
    services.engine.broadcaster = gateway
    services.subs.broadcaster = gateway
    return CommandRelay(services, gateway)


def run(relay, session, command, **args):
    return relay.dispatch(session, {"command": command, "args": args})


# =============================================================================
# Rooms
# =============================================================================


class TestRooms:
    def test_room_name(self):
        assert room_name("abc") == "game:abc"

    def test_join_is_idempotent(self, gateway):
        s = FakeSession("alice")
        assert gateway.join_room("g1", s)
        assert not gateway.join_room("g1", s)
        assert gateway.members("g1") == [s]

    def test_emit_reaches_room_only(self, gateway):
        a, b = FakeSession("a"), FakeSession("b")
        gateway.join_room("g1", a)
        gateway.join_room("g2", b)
        assert gateway.emit_to_game_room("g1", "auction:update", {"x": 1}) == 1
        assert a.received == [("g1", "auction:update", {"x": 1})]
        assert b.received == []

    def test_broken_subscriber_does_not_block_others(self, gateway):
        good = FakeSession("good")
        gateway.join_room("g1", BrokenSession("bad"))
        gateway.join_room("g1", good)
        assert gateway.emit_to_game_room("g1", "auction:bid", {}) == 1
        assert good.events() == ["auction:bid"]

    def test_leave(self, gateway):
        s = FakeSession("alice")
        gateway.join_room("g1", s)
        gateway.join_room("g2", s)
        assert gateway.leave_room("g1", s)
        assert not gateway.leave_room("g1", s)
        assert gateway.leave_all(s) == 1
        assert gateway.members("g2") == []


# =============================================================================
# Command Relay
# =============================================================================


class TestDispatch:
    def test_requires_hello(self, relay):
        result = run(relay, FakeSession(None), "leaderboard", game_id="g1")
        assert result == {"ok": False, "error": "validation", "reason": "Say HELLO first"}

    def test_bad_envelope(self, relay):
        result = relay.dispatch(FakeSession("alice"), ["not", "a", "dict"])
        assert result["error"] == "validation"

    def test_unknown_command(self, relay):
        result = run(relay, FakeSession("alice"), "auction.teleport")
        assert result["reason"] == "Unknown command: auction.teleport"

    def test_missing_field(self, relay):
        result = run(relay, FakeSession("op"), "game.create")
        assert result["reason"] == "Missing required field: name"

    def test_domain_errors_become_dicts(self, relay):
        result = run(relay, FakeSession("alice"), "game.show", game_id="missing")
        assert result == {"ok": False, "error": "not_found", "reason": "Game not found"}

    def test_storage_failure_is_generic(self, relay):
        def broken(session, args):
            raise sqlite3.OperationalError("disk I/O error")

        relay.register_handler("game.show", broken)
        result = run(relay, FakeSession("alice"), "game.show", game_id="g1")
        assert result == {"ok": False, "error": "server_error", "reason": "Internal server error"}

    def test_unexpected_failure_is_generic(self, relay):
        def broken(session, args):
            raise KeyError("boom")

        relay.register_handler("game.show", broken)
        result = run(relay, FakeSession("alice"), "game.show", game_id="g1")
        assert result == {"ok": False, "error": "server_error", "reason": "Internal server error"}

    def test_commands_registered(self, relay):
        assert {"auction.bid", "auction.start_lot", "game.subscribe", "subs.substitute", "leaderboard"} <= set(relay.commands)


class TestAuctionOverRelay:
    @pytest.fixture
    def sessions(self):
        return FakeSession("op"), FakeSession("alice"), FakeSession("bob")

    @pytest.fixture
    def game_id(self, relay, sessions):
        op, alice, bob = sessions
        created = run(relay, op, "game.create", name="Relay League")
        game_id = created["result"]["id"]
        assert run(relay, alice, "game.join", game_id=game_id, team_name="Alice XI")["ok"]
        assert run(relay, bob, "game.join", game_id=game_id, team_name="Bob XI")["ok"]
        imported = run(relay, op, "cricketer.import", game_id=game_id, rows=[
            {"first_name": "Virat", "last_name": "Kohli", "player_type": "batsman"},
            {"first_name": "Jasprit", "last_name": "Bumrah", "player_type": "bowler"},
        ])
        assert len(imported["result"]) == 2
        return game_id

    def test_subscribe_requires_membership(self, relay, game_id):
        result = run(relay, FakeSession("mallory"), "game.subscribe", game_id=game_id)
        assert result["error"] == "forbidden"

    def test_subscribers_receive_auction_events(self, relay, gateway, sessions, game_id):
        op, alice, bob = sessions
        state = run(relay, bob, "game.subscribe", game_id=game_id)
        assert state["result"]["auction_status"] == "not_started"

        cricketer_id = run(relay, alice, "cricketer.unpicked", game_id=game_id)["result"][0]["id"]
        assert run(relay, op, "auction.start_lot", game_id=game_id, cricketer_id=cricketer_id)["ok"]
        assert run(relay, alice, "auction.bid", game_id=game_id, amount=2)["ok"]

        assert bob.events() == [lot.AUCTION_UPDATE, lot.AUCTION_BID]
        _, _, payload = bob.received[-1]
        assert payload["state"]["current_high_bid"] == 2
        assert alice.received == []

    def test_rejected_bid_carries_rule(self, relay, sessions, game_id):
        op, alice, bob = sessions
        cricketer_id = run(relay, alice, "cricketer.unpicked", game_id=game_id)["result"][0]["id"]
        run(relay, op, "auction.start_lot", game_id=game_id, cricketer_id=cricketer_id)
        run(relay, alice, "auction.bid", game_id=game_id, amount=5)
        result = run(relay, bob, "auction.bid", game_id=game_id, amount=5)
        assert result["ok"] is False
        assert result["rule"] == "min_bid"
        assert result["limit"] == 5.5

    def test_unsubscribe_and_leave(self, relay, gateway, sessions, game_id):
        op, alice, bob = sessions
        run(relay, bob, "game.subscribe", game_id=game_id)
        assert run(relay, bob, "game.unsubscribe", game_id=game_id)["result"]["subscribed"] is False
        run(relay, alice, "game.subscribe", game_id=game_id)
        assert run(relay, alice, "game.leave", game_id=game_id)["ok"]
        assert gateway.members(game_id) == []

    def test_points_and_leaderboard(self, relay, sessions, game_id):
        op, alice, _ = sessions
        updated = run(relay, op, "points.update", game_id=game_id, changes={"six_bonus": 8})
        assert updated["result"]["six_bonus"] == 8
        assert run(relay, alice, "points.get", game_id=game_id)["result"]["six_bonus"] == 8
        board = run(relay, alice, "leaderboard", game_id=game_id)["result"]
        assert [row["team_name"] for row in board] == ["Alice XI", "Bob XI"]

    def test_operator_updates_game_and_order(self, relay, sessions, game_id):
        op, alice, _ = sessions
        renamed = run(relay, op, "game.update", game_id=game_id, name="Renamed League", joining_allowed=False)
        assert renamed["result"]["name"] == "Renamed League"
        assert run(relay, alice, "game.update", game_id=game_id, name="Mine")["error"] == "forbidden"

        ids = [c["id"] for c in run(relay, alice, "cricketer.unpicked", game_id=game_id)["result"]]
        reordered = run(relay, op, "cricketer.order", game_id=game_id, order=list(reversed(ids)))
        assert [c["id"] for c in reordered["result"]] == list(reversed(ids))

    def test_achievements_and_history_start_empty(self, relay, sessions, game_id):
        _, alice, _ = sessions
        assert run(relay, alice, "achievements", game_id=game_id)["result"] == []
        assert run(relay, alice, "subs.history", game_id=game_id)["result"] == []
        missing = run(relay, alice, "achievements", game_id=game_id, participant_id="nobody")
        assert missing["error"] == "not_found"

    def test_malformed_import_rows_are_rejected(self, relay, sessions, game_id):
        op, _, _ = sessions
        result = run(relay, op, "cricketer.import", game_id=game_id, rows=["not-a-row"])
        assert result["ok"] is False
        assert result["error"] == "validation"

    def test_malformed_order_entries_are_rejected(self, relay, sessions, game_id):
        op, _, _ = sessions
        result = run(relay, op, "cricketer.order", game_id=game_id, order=[{"x": 1}])
        assert result["ok"] is False
        assert result["error"] == "validation"

    def test_joining_flag_parses_wire_strings(self, relay, sessions, game_id):
        op, _, _ = sessions
        updated = run(relay, op, "game.update", game_id=game_id, joining_allowed="false")
        assert updated["result"]["joining_allowed"] is False
        result = run(relay, FakeSession("carol"), "game.join", game_id=game_id, team_name="Carol XI")
        assert result["ok"] is False
