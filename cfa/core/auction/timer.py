"""
Lot Expiry Scheduler - Server-driven lot timers.

One cancellable asyncio handle per game, keyed by the lot it was armed
for. Rescheduled from every committed AuctionState:
- in_progress: (re)armed for the remaining time
- anything else (paused, skipped, assigned, ended): cancelled

When a handle fires it asks the engine to expire that exact lot; the
engine ignores the request if the lot moved on or the timer was extended.
"""

import asyncio
import sqlite3
from typing import Callable, Dict, Optional, Set, Tuple

from cfa.core.auction.engine import AuctionEngine
from cfa.core.errors import AuctionError
from cfa.core.game.models import AuctionState, AuctionStatus, now_ms
from cfa.utils.logger import get_logger

logger = get_logger("auction.timer")


class LotExpiryScheduler:
    """
    Arms a deferred expiry per game on an asyncio loop.

    Usage:
        scheduler = LotExpiryScheduler(engine, loop)
        scheduler.attach()
    """

    def __init__(
        self,
        engine: AuctionEngine,
        loop: asyncio.AbstractEventLoop,
        clock: Callable[[], int] = now_ms,
    ):
        self.engine = engine
        self.loop = loop
        self.clock = clock
        self._handles: Dict[str, Tuple[str, asyncio.TimerHandle]] = {}
        self._pending: Set[asyncio.Task] = set()

    def attach(self) -> None:
        self.engine.add_state_listener(self.on_state)

    def on_state(self, game_id: str, state: AuctionState) -> None:
        """State listener; safe to call from any thread."""
        self.loop.call_soon_threadsafe(
            self._reschedule,
            game_id,
            state.current_cricketer_id,
            state.auction_status,
            state.timer_end_time,
        )

    def armed_for(self, game_id: str) -> Optional[str]:
        """Cricketer id the game's timer is armed for, if any."""
        entry = self._handles.get(game_id)
        return entry[0] if entry else None

    def _cancel(self, game_id: str) -> None:
        entry = self._handles.pop(game_id, None)
        if entry:
            entry[1].cancel()

    def _reschedule(
        self,
        game_id: str,
        cricketer_id: Optional[str],
        status: AuctionStatus,
        timer_end_time: Optional[int],
    ) -> None:
        self._cancel(game_id)
        if status != AuctionStatus.IN_PROGRESS or not cricketer_id or timer_end_time is None:
            return

        delay = max(0.0, (timer_end_time - self.clock()) / 1000)
        handle = self.loop.call_later(delay, self._fire, game_id, cricketer_id)
        self._handles[game_id] = (cricketer_id, handle)
        logger.debug(f"Timer armed for {cricketer_id[:8]} in {delay:.1f}s")

    def _fire(self, game_id: str, cricketer_id: str) -> asyncio.Task:
        entry = self._handles.get(game_id)
        if entry and entry[0] == cricketer_id:
            del self._handles[game_id]

        task = self.loop.create_task(self._expire(game_id, cricketer_id))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _expire(self, game_id: str, cricketer_id: str) -> None:
        """Run the expiry off the loop; it takes the game lock and hits storage."""
        try:
            await asyncio.to_thread(self.engine.expire_lot, game_id, cricketer_id)
        except AuctionError as e:
            logger.warning(f"Expiry of {cricketer_id[:8]} in game {game_id[:8]} refused: {e.reason}")
        except sqlite3.Error:
            logger.exception(f"Storage failure expiring {cricketer_id[:8]} in game {game_id[:8]}")

    def cancel_all(self) -> None:
        for game_id in list(self._handles):
            self._cancel(game_id)
        for task in list(self._pending):
            task.cancel()
