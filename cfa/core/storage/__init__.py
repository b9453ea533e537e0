"""
Persistent Storage Module.

Provides SQLite-backed persistence for:
- Games, participants and the cricketer pool
- Auction state, bids and pick ordering
- Points configs, match scores, achievements, substitution rounds
"""

from cfa.core.storage.sqlite_adapter import SQLiteAdapter
from cfa.core.storage.storage_manager import StorageManager

__all__ = ["SQLiteAdapter", "StorageManager"]
