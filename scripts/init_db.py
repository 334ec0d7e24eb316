"""Create all tables directly from metadata (local development and SQLite)."""

import asyncio
import sys

from app.database import engine
from app.models import metadata


async def init_db(drop: bool = False) -> None:
    """Initialize the database by creating all tables."""
    async with engine.begin() as conn:
        if drop:
            await conn.run_sync(metadata.drop_all)
            print("✓ Existing tables dropped")

        await conn.run_sync(metadata.create_all)

    await engine.dispose()
    print("✓ Database initialized successfully!")


if __name__ == "__main__":
    asyncio.run(init_db(drop="--drop" in sys.argv[1:]))
