"""Create the call tables directly, bypassing alembic (local SQLite or a fresh database)."""
import asyncio
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from callplane.models import Base, init_db, close_db, engine


async def main():
    print(f"Target: {engine.url.render_as_string(hide_password=True)}")
    for table in Base.metadata.sorted_tables:
        print(f"  - {table.name}")
    await init_db()
    await close_db()
    print("✅ Call tables ready")


if __name__ == "__main__":
    asyncio.run(main())
