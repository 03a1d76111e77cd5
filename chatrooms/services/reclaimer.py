# chatrooms/services/reclaimer.py

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

ExpireCallback = Callable[[str], Awaitable[None]]


class RoomReclaimer:
    """
    Deferred deletion of rooms that became empty.

    Each pending deletion is an asyncio task that sleeps for the grace period
    and then hands the room name to ``on_expire``. There is at most one task
    per room: scheduling again replaces the previous one.

    ``on_expire`` is expected to re-check that the room is still empty
    before deleting anything, because a join can land between the timer
    firing and the delete query completing.
    """

    def __init__(self, on_expire: ExpireCallback, delay: float = 300.0) -> None:
        self.on_expire = on_expire
        self.delay = delay
        self.timers: Dict[str, asyncio.Task] = {}

    def schedule_deletion(self, room: str, delay: Optional[float] = None) -> None:
        self.cancel(room)
        delay = self.delay if delay is None else delay
        loop = asyncio.get_running_loop()
        self.timers[room] = loop.create_task(self._expire(room, delay), name=f"reclaim:{room}")
        logger.info("⏲ Room '%s' scheduled for deletion in %ss", room, delay)

    def cancel(self, room: str) -> bool:
        """Cancel the pending deletion of ``room``. Returns False if there was none."""
        task = self.timers.pop(room, None)
        if task is None:
            return False
        task.cancel()
        logger.info("Pending deletion of room '%s' cancelled", room)
        return True

    def is_pending(self, room: str) -> bool:
        return room in self.timers

    def pending(self) -> List[str]:
        return list(self.timers)

    def shutdown(self) -> None:
        for room in list(self.timers):
            self.cancel(room)

    async def _expire(self, room: str, delay: float) -> None:
        await asyncio.sleep(delay)

        # Past this point the timer can no longer be cancelled
        if self.timers.get(room) is asyncio.current_task():
            del self.timers[room]

        logger.info("⏰ Grace period for room '%s' elapsed", room)
        try:
            await self.on_expire(room)
        except Exception as e:
            logger.error("Reclaiming room '%s' failed: %s", room, e)
