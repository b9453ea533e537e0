"""
Unit tests for points tables, match scoring and the leaderboard.
"""

import pytest

from cfa.core.errors import (
    AuthorizationError,
    ConflictError,
    InvalidInputError,
    NotFoundError,
)
from cfa.core.game.models import GameStatus


def run_short_auction(services, league):
    """Alice wins pool[0], Bob wins pool[1], then the auction ends."""
    engine = services.engine
    for cricketer, user in ((league.pool[0], "alice"), (league.pool[1], "bob")):
        engine.start_lot(league.game_id, "op", cricketer.cricketer_id)
        engine.place_bid(league.game_id, user, 5)
        engine.assign(league.game_id, "op")
    engine.end(league.game_id, "op")


# =============================================================================
# Points Configuration
# =============================================================================


class TestPointsConfig:
    def test_partial_update(self, services, league):
        updated = services.scoring.update_points_config(league.game_id, "op", {"wicket_points": 30})
        assert updated.wicket_points == 30
        assert updated.run_points == 1
        assert services.scoring.get_points_config(league.game_id).wicket_points == 30

    def test_out_of_bounds(self, services, league):
        with pytest.raises(InvalidInputError, match="wicket_points"):
            services.scoring.update_points_config(league.game_id, "op", {"wicket_points": 500})

    def test_unknown_key(self, services, league):
        with pytest.raises(InvalidInputError):
            services.scoring.update_points_config(league.game_id, "op", {"style_points": 1})

    def test_participant_cannot_update(self, services, league):
        with pytest.raises(AuthorizationError):
            services.scoring.update_points_config(league.game_id, "alice", {"wicket_points": 30})

    def test_locked_after_auction_starts(self, services, league):
        services.engine.start_lot(league.game_id, "op", league.pool[0].cricketer_id)
        with pytest.raises(ConflictError):
            services.scoring.update_points_config(league.game_id, "op", {"wicket_points": 30})


# =============================================================================
# Matches
# =============================================================================


class TestMatches:
    def test_create_match_moves_game_to_scoring(self, services, league):
        run_short_auction(services, league)
        match = services.scoring.create_match(league.game_id, "op", 1, "CSK", "MI", "2026-04-01")
        assert match["match_number"] == 1
        assert services.games.get_game(league.game_id).status == GameStatus.SCORING

    def test_create_match_before_auction_end(self, services, league):
        with pytest.raises(ConflictError):
            services.scoring.create_match(league.game_id, "op", 1, "CSK", "MI", "2026-04-01")

    def test_duplicate_match_number(self, services, league):
        run_short_auction(services, league)
        services.scoring.create_match(league.game_id, "op", 1, "CSK", "MI", "2026-04-01")
        with pytest.raises(ConflictError):
            services.scoring.create_match(league.game_id, "op", 1, "RR", "GT", "2026-04-02")

    def test_bad_date(self, services, league):
        run_short_auction(services, league)
        with pytest.raises(InvalidInputError, match="date"):
            services.scoring.create_match(league.game_id, "op", 1, "CSK", "MI", "01/04/2026")

    def test_save_scores(self, services, league):
        run_short_auction(services, league)
        match = services.scoring.create_match(league.game_id, "op", 1, "CSK", "MI", "2026-04-01")
        saved = services.scoring.save_match_scores(league.game_id, "op", match["match_id"], [
            {"cricketer_id": league.pool[0].cricketer_id, "in_playing_xi": True, "runs": 10, "balls_faced": 12},
        ])
        assert saved == [{"cricketer_id": league.pool[0].cricketer_id, "calculated_points": 14}]

        stored = services.scoring.match_scores(league.game_id, match["match_id"])
        assert stored[0]["record"]["runs"] == 10
        assert services.storage.get_match(match["match_id"])["scores_populated"] == 1

    def test_resubmission_overwrites(self, services, league):
        run_short_auction(services, league)
        match = services.scoring.create_match(league.game_id, "op", 1, "CSK", "MI", "2026-04-01")
        cid = league.pool[0].cricketer_id
        services.scoring.save_match_scores(league.game_id, "op", match["match_id"], [
            {"cricketer_id": cid, "runs": 10},
        ])
        services.scoring.save_match_scores(league.game_id, "op", match["match_id"], [
            {"cricketer_id": cid, "runs": 30},
        ])
        stored = services.scoring.match_scores(league.game_id, match["match_id"])
        assert len(stored) == 1
        assert stored[0]["calculated_points"] == 34

    def test_invalid_record_writes_nothing(self, services, league):
        run_short_auction(services, league)
        match = services.scoring.create_match(league.game_id, "op", 1, "CSK", "MI", "2026-04-01")
        with pytest.raises(InvalidInputError):
            services.scoring.save_match_scores(league.game_id, "op", match["match_id"], [
                {"cricketer_id": league.pool[0].cricketer_id, "runs": 10},
                {"cricketer_id": league.pool[1].cricketer_id, "wickets": 11},
            ])
        assert services.scoring.match_scores(league.game_id, match["match_id"]) == []

    def test_unknown_cricketer(self, services, league):
        run_short_auction(services, league)
        match = services.scoring.create_match(league.game_id, "op", 1, "CSK", "MI", "2026-04-01")
        with pytest.raises(NotFoundError):
            services.scoring.save_match_scores(league.game_id, "op", match["match_id"], [
                {"cricketer_id": "ghost", "runs": 10},
            ])

    def test_match_from_other_game(self, services, league):
        with pytest.raises(NotFoundError):
            services.scoring.save_match_scores(league.game_id, "op", "no-such-match", [])


# =============================================================================
# Leaderboard
# =============================================================================


class TestLeaderboard:
    def test_ranked_by_points(self, services, league):
        run_short_auction(services, league)
        scoring = services.scoring
        m1 = scoring.create_match(league.game_id, "op", 1, "CSK", "MI", "2026-04-01")
        m2 = scoring.create_match(league.game_id, "op", 2, "RR", "GT", "2026-04-03")
        scoring.save_match_scores(league.game_id, "op", m1["match_id"], [
            {"cricketer_id": league.pool[0].cricketer_id, "runs": 10},
            {"cricketer_id": league.pool[1].cricketer_id, "runs": 20},
        ])
        scoring.save_match_scores(league.game_id, "op", m2["match_id"], [
            {"cricketer_id": league.pool[0].cricketer_id, "runs": 24},
        ])

        board = scoring.leaderboard(league.game_id)
        assert [(r["team_name"], r["total_points"], r["rank"]) for r in board] == [
            ("Alice XI", 34, 1),
            ("Bob XI", 20, 2),
        ]
        assert board[0]["points_by_match"] == [
            {"match_number": 1, "points": 10},
            {"match_number": 2, "points": 24},
        ]

        early = scoring.leaderboard(league.game_id, up_to_match=1)
        assert [r["team_name"] for r in early] == ["Bob XI", "Alice XI"]

    def test_ties_keep_join_order(self, services, league):
        board = services.scoring.leaderboard(league.game_id)
        assert [r["team_name"] for r in board] == ["Alice XI", "Bob XI"]
        assert all(r["total_points"] == 0 for r in board)

    def test_participant_totals(self, services, league):
        run_short_auction(services, league)
        match = services.scoring.create_match(league.game_id, "op", 1, "CSK", "MI", "2026-04-01")
        services.scoring.save_match_scores(league.game_id, "op", match["match_id"], [
            {"cricketer_id": league.pool[1].cricketer_id, "runs": 12},
        ])
        assert services.scoring.participant_totals(league.game_id) == {
            league.alice.participant_id: 0,
            league.bob.participant_id: 12,
        }
