"""
Database setup script - tables plus a demo admin, DEO and active VO
"""
import asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.config import get_settings
from backend.database import engine, Base
from backend.models.user import User, UserRole, DEODetails, VODetails
from backend.api.auth import get_password_hash

settings = get_settings()

DEMO_USERS = [
    # username, full name, role, password
    (settings.DEFAULT_ADMIN_USERNAME, "System Administrator", UserRole.ADMIN, settings.DEFAULT_ADMIN_PASSWORD),
    ("deo", "Demo Data Entry Officer", UserRole.DEO, "deo12345"),
    ("vo", "Demo Verification Officer", UserRole.VO, "vo123456"),
]


async def setup_database():
    """Create tables and seed initial users"""
    print("Creating database tables...")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    print("Tables created")

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        for username, full_name, role, password in DEMO_USERS:
            result = await session.execute(select(User).where(User.username == username))
            if result.scalar_one_or_none():
                print(f"  {username} already exists, skipping")
                continue

            user = User(
                username=username,
                full_name=full_name,
                hashed_password=get_password_hash(password),
                role=role,
            )
            session.add(user)
            await session.flush()

            if role == UserRole.DEO:
                session.add(DEODetails(user_id=user.id, full_name=full_name))
            elif role == UserRole.VO:
                # New vouchers are routed to this officer
                session.add(VODetails(user_id=user.id, full_name=full_name, is_active=True))
            print(f"  Created {role.value} user {username}")

        await session.commit()
        print("Seed data created")

    print("\nDatabase setup complete!")
    print("\nDemo logins:")
    for username, _, role, password in DEMO_USERS:
        print(f"  {role.value:<5} {username} / {password}")


if __name__ == "__main__":
    asyncio.run(setup_database())
