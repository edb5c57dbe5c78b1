"""
Stale Call Sweeper - timeout policy for calls nobody answered.

A pending or ringing session whose provider room has been empty (or gone)
for longer than the room's empty timeout still holds its admission slot.
The sweeper ends such calls with ended_by="timeout", which releases it.
"""
import asyncio
import logging
from datetime import timedelta
from typing import List

from callplane.config.constants import ROOM_EMPTY_TIMEOUT_SEC
from callplane.models.call_session import CallStatus
from callplane.models.database import utcnow
from callplane.services.exceptions import CallServiceError, UpstreamError

logger = logging.getLogger(__name__)

STALE_STATUSES = (CallStatus.PENDING.value, CallStatus.RINGING.value)
TIMEOUT_ENDED_BY = "timeout"


class StaleCallSweeper:
    def __init__(self, sessions, rooms, lifecycle, max_age_seconds: int = ROOM_EMPTY_TIMEOUT_SEC):
        self.sessions = sessions
        self.rooms = rooms
        self.lifecycle = lifecycle
        self.max_age = timedelta(seconds=max_age_seconds)

    async def sweep_once(self) -> List[str]:
        """End every stale call whose room is empty. Returns the ended call ids."""
        stale = await self.sessions.list_stale(STALE_STATUSES, utcnow() - self.max_age)
        if not stale:
            return []

        names = [s.room_name for s in stale if s.room_name]
        try:
            live_rooms = await self.rooms.list_rooms(names) if names else []
        except UpstreamError as e:
            # Room occupancy unknown; try again next round
            logger.warning(f"[Sweeper] Skipping round, room provider unavailable: {e}")
            return []

        occupied = {room.name for room in live_rooms if room.num_participants > 0}

        ended = []
        for session in stale:
            if session.room_name in occupied:
                continue
            try:
                result = await self.lifecycle.end_call(session.call_id, TIMEOUT_ENDED_BY)
            except CallServiceError as e:
                logger.error(f"[Sweeper] Could not end stale call {session.call_id}: {e}")
                continue
            if not result.get("already_ended"):
                ended.append(session.call_id)

        if ended:
            logger.info(f"🧹 [Sweeper] Ended {len(ended)} stale call(s)")
        return ended

    async def run(self, interval_seconds: int) -> None:
        """Sweep forever; stops when the task is cancelled."""
        logger.info(f"🚀 [Sweeper] Started (every {interval_seconds}s, max age {self.max_age})")
        while True:
            try:
                await self.sweep_once()
            except CallServiceError as e:
                logger.error(f"[Sweeper] Round failed: {e}")
            await asyncio.sleep(interval_seconds)
