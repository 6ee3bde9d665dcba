"""Script to initialize the database."""

import argparse
import asyncio

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
    print(f"✓ Database initialized successfully! ({len(metadata.tables)} tables)")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create the clinic queue schema.")
    parser.add_argument("--drop", action="store_true", help="Drop existing tables first")
    args = parser.parse_args()
    asyncio.run(init_db(drop=args.drop))
