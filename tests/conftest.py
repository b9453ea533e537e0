"""
Shared fixtures: a temporary data dir, a controllable clock and a
league with an operator, two participants and a player pool.
"""

from dataclasses import dataclass
from typing import List

import pytest

from cfa.core.config import AuctionConfig
from cfa.core.game.models import Cricketer, Game, Participant
from cfa.core.services import Services, build_services

START_MS = 1_700_000_000_000


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start: int = START_MS):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += int(seconds * 1000)


class RecordingBroadcaster:
    def __init__(self):
        self.events = []

    def emit_to_game_room(self, game_id, event, payload):
        self.events.append((game_id, event, payload))

    def names(self) -> List[str]:
        return [name for _, name, _ in self.events]

    def last(self, name: str) -> dict:
        for _, event, payload in reversed(self.events):
            if event == name:
                return payload
        raise AssertionError(f"No {name} event emitted")


@dataclass
class League:
    game: Game
    alice: Participant
    bob: Participant
    pool: List[Cricketer]

    @property
    def game_id(self) -> str:
        return self.game.game_id


def make_pool(count: int = 14, foreign_every: int = 0) -> List[dict]:
    types = ["batsman", "bowler", "wicketkeeper", "allrounder"]
    rows = []
    for i in range(count):
        rows.append({
            "first_name": f"Player{i}",
            "last_name": f"Surname{i}",
            "player_type": types[i % len(types)],
            "is_foreign": bool(foreign_every) and i % foreign_every == 0,
            "ipl_team": f"T{i % 6}",
        })
    return rows


@pytest.fixture
def config(tmp_path):
    return AuctionConfig(data_dir=tmp_path / "data", log_dir=tmp_path / "logs")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def broadcaster():
    return RecordingBroadcaster()


@pytest.fixture
def services(config, clock, broadcaster) -> Services:
    built = build_services(config, broadcaster=broadcaster, clock=clock)
    yield built
    built.close()


@pytest.fixture
def league(services) -> League:
    """Operator 'op', participants 'alice' and 'bob', 14 domestic players."""
    game = services.games.create_game("Test League", "op")
    alice = services.games.join_game(game.game_id, "alice", "Alice XI")
    bob = services.games.join_game(game.game_id, "bob", "Bob XI")
    pool = services.games.import_cricketers(game.game_id, "op", make_pool())
    return League(game=game, alice=alice, bob=bob, pool=pool)
