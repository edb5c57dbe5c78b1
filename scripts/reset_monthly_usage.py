"""
Reset monthly call usage for one or all projects.

Run once per billing cycle (e.g. from cron on the 1st). Zeroes
calls_this_month and total_call_minutes and stamps last_reset_date;
concurrent call counters are left alone.
"""
import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Add backend to path
backend_path = Path(__file__).parent.parent / "backend"
sys.path.insert(0, str(backend_path))

from sqlalchemy import select

from callplane.api.deps import get_admission, close_clients
from callplane.config.redis import close_redis
from callplane.models.database import close_db
from callplane.models import AsyncSessionLocal, ProjectQuota


async def reset_monthly_usage(project_ids):
    admission = get_admission()

    if not project_ids:
        async with AsyncSessionLocal() as db:
            result = await db.execute(select(ProjectQuota.project_id))
            project_ids = list(result.scalars().all())

    if not project_ids:
        print("✅ No project quotas found.")
        return

    print(f"🔄 Resetting usage for {len(project_ids)} project(s)...")
    try:
        for project_id in project_ids:
            reset_at = await admission.reset_monthly_usage(project_id)
            print(f"  - {project_id}: reset at {reset_at.isoformat()}")
    finally:
        await close_clients()
        await close_redis()
        await close_db()
    print("✅ Done")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("project_ids", nargs="*", help="Projects to reset (default: all)")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO)
    asyncio.run(reset_monthly_usage(args.project_ids))
