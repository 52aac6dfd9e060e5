"""Create the nutrition program tables (users, officer details, contractors, supporters, vouchers)"""
import asyncio
from backend.database import engine, Base
from backend.models import *  # noqa: F401,F403 - registers every table on Base.metadata


async def init():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    print(f"Created tables: {', '.join(sorted(Base.metadata.tables))}")


if __name__ == "__main__":
    asyncio.run(init())
