"""
Unit tests for the pure lot transitions.
"""

import pytest

from cfa.core.auction import lot
from cfa.core.auction.lot import bid_increment, minimum_next_bid
from cfa.core.config import AuctionConfig
from cfa.core.errors import BidRejectedError, ConflictError, NotFoundError
from cfa.core.game.models import (
    AuctionState,
    AuctionStatus,
    BidLogEntry,
    Cricketer,
    GameStatus,
    Participant,
    PlayerType,
)

NOW = 1_000_000


@pytest.fixture
def config():
    return AuctionConfig()


@pytest.fixture
def state():
    return AuctionState(state_id="s1", game_id="g1")


@pytest.fixture
def player():
    return Cricketer(
        cricketer_id="c1", game_id="g1", first_name="Virat", last_name="Kohli",
        player_type=PlayerType.BATSMAN,
    )


@pytest.fixture
def alice():
    return Participant(participant_id="p1", game_id="g1", user_id="alice", team_name="Alice XI")


@pytest.fixture
def bob():
    return Participant(participant_id="p2", game_id="g1", user_id="bob", team_name="Bob XI")


def live(state, player, config):
    return lot.start_lot(state, player, NOW, config).state


def bid(state, who, player, amount, config, roster=()):
    return lot.place_bid(state, who, list(roster), player, amount, NOW, config).state


# =============================================================================
# Increments
# =============================================================================


class TestIncrements:
    def test_first_bid_minimum(self, config):
        assert minimum_next_bid(0, config) == 0.5

    def test_small_increment_below_ten(self, config):
        assert bid_increment(9.5, config) == 0.5
        assert minimum_next_bid(9.5, config) == 10.0

    def test_large_increment_from_ten(self, config):
        assert bid_increment(10, config) == 1.0
        assert minimum_next_bid(10, config) == 11.0


# =============================================================================
# Start
# =============================================================================


class TestStartLot:
    def test_starts_timer(self, state, player, config):
        t = lot.start_lot(state, player, NOW, config)
        assert t.state.auction_status == AuctionStatus.IN_PROGRESS
        assert t.state.current_cricketer_id == "c1"
        assert t.state.timer_end_time == NOW + 60_000
        assert t.state.current_high_bid == 0
        assert t.state.bidding_log == []
        assert t.game_patch == {"status": GameStatus.AUCTION_ACTIVE, "joining_allowed": False}
        assert [e.name for e in t.events] == [lot.AUCTION_UPDATE]

    def test_does_not_mutate_input(self, state, player, config):
        lot.start_lot(state, player, NOW, config)
        assert state.current_cricketer_id is None

    def test_cricketer_from_other_game(self, state, player, config):
        player.game_id = "g2"
        with pytest.raises(NotFoundError):
            lot.start_lot(state, player, NOW, config)

    def test_picked_cricketer(self, state, player, config):
        player.is_picked = True
        with pytest.raises(ConflictError, match="already picked"):
            lot.start_lot(state, player, NOW, config)

    def test_another_lot_running(self, state, player, config):
        running = live(state, player, config)
        other = Cricketer(
            cricketer_id="c2", game_id="g1", first_name="A", last_name="B",
            player_type=PlayerType.BOWLER,
        )
        with pytest.raises(ConflictError, match="already up for auction"):
            lot.start_lot(running, other, NOW, config)

    def test_after_auction_end(self, state, player, config):
        ended = lot.end(state).state
        with pytest.raises(ConflictError):
            lot.start_lot(ended, player, NOW, config)


# =============================================================================
# Bids
# =============================================================================


class TestPlaceBid:
    def test_accepts_opening_bid(self, state, player, alice, config):
        t = lot.place_bid(live(state, player, config), alice, [], player, 0.5, NOW, config)
        assert t.state.current_high_bid == 0.5
        assert t.state.current_high_bidder_id == "p1"
        assert len(t.state.bidding_log) == 1
        assert t.bid.amount == 0.5
        assert t.events[0].name == lot.AUCTION_BID
        assert t.events[0].payload["bid"]["team_name"] == "Alice XI"

    def test_increment_switches_at_ten(self, state, player, alice, bob, config):
        s = bid(live(state, player, config), alice, player, 9.5, config)
        s = bid(s, bob, player, 10, config)
        with pytest.raises(BidRejectedError) as exc:
            bid(s, alice, player, 10.5, config)
        assert exc.value.rule == "min_bid"
        assert exc.value.limit == 11.0
        assert exc.value.reason == "Minimum bid is $11.00"
        assert bid(s, alice, player, 11, config).current_high_bid == 11

    def test_no_lot_in_progress(self, state, player, alice, config):
        with pytest.raises(ConflictError, match="not in progress"):
            lot.place_bid(state, alice, [], player, 1, NOW, config)

    def test_paused_lot_rejects_bids(self, state, player, alice, config):
        paused = lot.pause(live(state, player, config), NOW).state
        with pytest.raises(ConflictError):
            lot.place_bid(paused, alice, [], player, 1, NOW, config)

    def test_bid_for_other_lot(self, state, player, alice, config):
        other = Cricketer(
            cricketer_id="c2", game_id="g1", first_name="A", last_name="B",
            player_type=PlayerType.BOWLER,
        )
        with pytest.raises(ConflictError, match="current lot"):
            lot.place_bid(live(state, player, config), alice, [], other, 1, NOW, config)

    def test_budget_rule_after_increment(self, state, player, alice, config):
        alice.budget_remaining = 5.5
        roster = [
            Cricketer(cricketer_id=f"r{i}", game_id="g1", first_name="R", last_name=str(i),
                      player_type=PlayerType.BATSMAN, is_picked=True)
            for i in range(10)
        ]
        with pytest.raises(BidRejectedError) as exc:
            bid(live(state, player, config), alice, player, 5.5, config, roster)
        assert exc.value.rule == "budget_ceiling"
        assert exc.value.limit == 5.0

    def test_rejection_leaves_state_untouched(self, state, player, alice, config):
        s = bid(live(state, player, config), alice, player, 2, config)
        with pytest.raises(BidRejectedError):
            lot.place_bid(s, alice, [], player, 2, NOW, config)
        assert s.current_high_bid == 2
        assert len(s.bidding_log) == 1


# =============================================================================
# Pause, Resume, Timer
# =============================================================================


class TestTimer:
    def test_pause_keeps_end_time(self, state, player, config):
        s = live(state, player, config)
        t = lot.pause(s, NOW + 40_000)
        assert t.state.auction_status == AuctionStatus.PAUSED
        assert t.state.timer_end_time == s.timer_end_time
        assert t.state.timer_paused_at == NOW + 40_000
        assert [e.name for e in t.events] == [lot.AUCTION_UPDATE, lot.AUCTION_PAUSED]
        assert t.game_patch == {"status": GameStatus.AUCTION_PAUSED}

    def test_resume_restores_remaining_time(self, state, player, config):
        s = lot.pause(live(state, player, config), NOW + 40_000).state
        resumed = lot.resume(s, NOW + 300_000).state
        assert resumed.auction_status == AuctionStatus.IN_PROGRESS
        assert resumed.timer_paused_at is None
        assert resumed.timer_end_time == NOW + 300_000 + 20_000

    def test_resume_when_not_paused(self, state, player, config):
        with pytest.raises(ConflictError):
            lot.resume(live(state, player, config), NOW)

    def test_pause_twice(self, state, player, config):
        s = lot.pause(live(state, player, config), NOW).state
        with pytest.raises(ConflictError):
            lot.pause(s, NOW)

    def test_add_time(self, state, player, config):
        s = live(state, player, config)
        assert lot.add_time(s, 30, NOW).state.timer_end_time == NOW + 90_000

    def test_negative_add_time_never_goes_past_now(self, state, player, config):
        s = live(state, player, config)
        assert lot.add_time(s, -100, NOW + 10_000).state.timer_end_time == NOW + 10_000

    def test_add_time_while_paused_clamps_to_pause(self, state, player, config):
        s = lot.pause(live(state, player, config), NOW + 50_000).state
        t = lot.add_time(s, -30, NOW + 90_000)
        assert t.state.timer_end_time == NOW + 50_000

    def test_add_time_without_timer(self, state):
        with pytest.raises(ConflictError, match="No active timer"):
            lot.add_time(state, 10, NOW)


# =============================================================================
# Resolution
# =============================================================================


class TestResolution:
    def test_assign_to_high_bidder(self, state, player, alice, bob, config):
        s = bid(live(state, player, config), alice, player, 3, config)
        s = bid(s, bob, player, 4, config)
        t = lot.assign(s, player, bob, max_pick_order=2)

        assert t.award.participant_id == "p2"
        assert t.award.price == 4
        assert t.award.pick_order == 3
        assert t.award.bid_count == 2
        assert t.state.current_cricketer_id is None
        assert t.state.auction_status == AuctionStatus.NOT_STARTED
        assert t.state.current_high_bid == 0
        assert t.state.last_win_message == "Virat Kohli → Bob XI"
        picked = t.events[0]
        assert picked.name == lot.PLAYER_PICKED
        assert picked.payload["winner"]["team_name"] == "Bob XI"
        assert picked.payload["cricketer"]["price_paid"] == 4

    def test_assign_without_bids_skips(self, state, player, config):
        t = lot.assign(live(state, player, config), player, None, 0)
        assert t.award is None
        assert t.skipped_cricketer_id == "c1"
        assert t.state.last_win_message == "Virat Kohli - No bids, skipped"
        assert t.events[0].name == lot.PLAYER_SKIPPED
        assert t.events[0].payload["reason"] == "no_bids"

    def test_assign_with_no_lot(self, state, player):
        with pytest.raises(ConflictError, match="No cricketer to assign"):
            lot.assign(state, player, None, 0)

    def test_assign_stale_lot(self, state, player, alice, config):
        s = bid(live(state, player, config), alice, player, 1, config)
        with pytest.raises(ConflictError, match="already resolved"):
            lot.assign(s, player, alice, 0, expected_cricketer_id="c9")

    def test_assign_requires_matching_winner(self, state, player, alice, bob, config):
        s = bid(live(state, player, config), alice, player, 1, config)
        with pytest.raises(NotFoundError):
            lot.assign(s, player, bob, 0)

    def test_skip(self, state, player, alice, config):
        s = bid(live(state, player, config), alice, player, 1, config)
        t = lot.skip(s, player)
        assert t.award is None
        assert t.skipped_cricketer_id == "c1"
        assert t.state.bidding_log == []
        assert [e.name for e in t.events] == [lot.PLAYER_SKIPPED, lot.AUCTION_UPDATE]

    def test_closing_a_paused_lot_reactivates_game(self, state, player, alice, config):
        s = bid(live(state, player, config), alice, player, 1, config)
        paused = lot.pause(s, NOW + 5_000).state
        assert lot.skip(paused, player).game_patch == {"status": GameStatus.AUCTION_ACTIVE}
        assert lot.assign(paused, player, alice, 0).game_patch == {"status": GameStatus.AUCTION_ACTIVE}
        assert lot.skip(s, player).game_patch == {}

    def test_skip_without_lot(self, state, player):
        with pytest.raises(ConflictError):
            lot.skip(state, player)

    def test_end(self, state, player, alice, config):
        s = bid(live(state, player, config), alice, player, 1, config)
        t = lot.end(s)
        assert t.state.auction_status == AuctionStatus.COMPLETED
        assert t.state.current_cricketer_id is None
        assert t.game_patch == {"status": GameStatus.AUCTION_ENDED}
        assert t.events[0].payload["message"] == "Auction has ended!"

    def test_end_twice(self, state):
        with pytest.raises(ConflictError, match="already ended"):
            lot.end(lot.end(state).state)

    def test_log_entry_record_round_trip(self):
        entry = BidLogEntry(participant_id="p1", team_name="T", amount=1.5, timestamp=NOW)
        assert BidLogEntry.from_record(entry.to_record()) == entry
