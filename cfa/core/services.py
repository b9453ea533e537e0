"""
Service wiring shared by the server and the CLI.
"""

from dataclasses import dataclass
from typing import Callable, Optional

from cfa.core.achievements import AchievementService
from cfa.core.auction.engine import AuctionEngine, Broadcaster
from cfa.core.config import AuctionConfig
from cfa.core.game.models import now_ms
from cfa.core.game.service import GameService
from cfa.core.scoring.service import ScoringService
from cfa.core.storage import StorageManager
from cfa.core.subs.sequencer import SubstitutionSequencer


@dataclass
class Services:
    config: AuctionConfig
    storage: StorageManager
    games: GameService
    engine: AuctionEngine
    achievements: AchievementService
    scoring: ScoringService
    subs: SubstitutionSequencer

    def close(self) -> None:
        self.storage.close()


def build_services(
    config: AuctionConfig,
    broadcaster: Optional[Broadcaster] = None,
    clock: Callable[[], int] = now_ms,
) -> Services:
    """Create storage and every service on top of it."""
    storage = StorageManager(config.data_dir, config.db_name)
    games = GameService(storage, config)
    achievements = AchievementService(storage, config)
    engine = AuctionEngine(
        storage,
        broadcaster=broadcaster,
        achievements=achievements,
        config=config,
        clock=clock,
    )
    scoring = ScoringService(storage, games)
    subs = SubstitutionSequencer(storage, games, scoring, broadcaster=broadcaster, config=config)
    return Services(
        config=config,
        storage=storage,
        games=games,
        engine=engine,
        achievements=achievements,
        scoring=scoring,
        subs=subs,
    )
