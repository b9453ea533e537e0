"""
Auction configuration parameters for CFA.

Defines roster rules, bidding increments, timer length and operational
settings. Values can be overridden through CFA_* environment variables
or a .env file.
"""

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

ENV_PREFIX = "CFA_"


@dataclass
class AuctionConfig:
    """Game-wide configuration parameters"""

    # Roster rules
    team_size: int = 12  # Players per participant
    max_foreign_players: int = 4  # Foreign-flagged players per roster
    min_player_price: float = 0.5  # Opening bid and per-slot budget reserve

    # Bid increments
    increment_threshold: float = 10.0  # High bid at which the larger increment applies
    low_increment: float = 0.5
    high_increment: float = 1.0

    # Lots
    lot_duration_seconds: int = 60
    starting_budget: float = 200.0
    server_timer: bool = False  # Assign lots from a server-side expiry task

    # Transport
    host: str = "127.0.0.1"
    port: int = 8765

    # Paths
    data_dir: Path = Path("data")
    db_name: str = "auction.db"
    log_dir: Path = Path("logs")
    log_to_file: bool = False  # Also write cfa.log under log_dir

    @property
    def db_path(self) -> Path:
        return self.data_dir / self.db_name

    def ensure_dirs(self) -> None:
        """Create data and log directories"""
        self.data_dir.mkdir(exist_ok=True, parents=True)
        self.log_dir.mkdir(exist_ok=True, parents=True)


def _coerce(name: str, raw: str, current):
    if isinstance(current, bool):
        lowered = raw.strip().lower()
        if lowered in ("1", "true", "yes", "on"):
            return True
        if lowered in ("0", "false", "no", "off"):
            return False
        raise ValueError(f"{ENV_PREFIX}{name.upper()} must be a boolean, got {raw!r}")
    if isinstance(current, Path):
        return Path(raw).expanduser()
    try:
        return type(current)(raw)
    except ValueError:
        raise ValueError(
            f"{ENV_PREFIX}{name.upper()} must be {type(current).__name__}, got {raw!r}"
        ) from None


def load_config(env_file: Optional[str] = None, **overrides) -> AuctionConfig:
    """
    Load configuration from the environment.

    Args:
        env_file: Optional .env file loaded before reading CFA_* variables
        **overrides: Explicit values that win over the environment

    Returns:
        AuctionConfig instance
    """
    if env_file:
        load_dotenv(env_file, override=False)

    config = AuctionConfig()
    for f in fields(AuctionConfig):
        raw = os.environ.get(f"{ENV_PREFIX}{f.name.upper()}")
        if raw is not None:
            setattr(config, f.name, _coerce(f.name, raw, getattr(config, f.name)))

    for key, value in overrides.items():
        if value is None:
            continue
        if not hasattr(config, key):
            raise ValueError(f"Unknown config option: {key}")
        setattr(config, key, value)

    return config
