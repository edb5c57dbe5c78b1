"""
Cleanup script for stale, unanswered calls.

Ends every pending/ringing call older than the room empty timeout whose
LiveKit room is empty or gone, releasing its admission slot. This is the
same pass the API runs in the background; use it when the sweeper is
disabled or to clean up after an outage.
"""
import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Add backend to path
backend_path = Path(__file__).parent.parent / "backend"
sys.path.insert(0, str(backend_path))

from callplane.api.deps import get_sweeper, close_clients
from callplane.config.constants import ROOM_EMPTY_TIMEOUT_SEC
from callplane.config.redis import close_redis
from callplane.models.database import close_db
from callplane.services.call import StaleCallSweeper


async def cleanup_stale_calls(max_age: int):
    print(f"🔍 Searching for pending/ringing calls older than {max_age}s...")

    default = get_sweeper()
    sweeper = StaleCallSweeper(default.sessions, default.rooms, default.lifecycle, max_age_seconds=max_age)
    try:
        ended = await sweeper.sweep_once()
    finally:
        await close_clients()
        await close_redis()
        await close_db()

    if not ended:
        print("✅ No stale calls found. Database is clean!")
        return

    print(f"📞 Ended {len(ended)} stale call(s):")
    for call_id in ended:
        print(f"  - {call_id}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--max-age", type=int, default=ROOM_EMPTY_TIMEOUT_SEC,
                        help="Minimum call age in seconds")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO)
    asyncio.run(cleanup_stale_calls(args.max_age))
