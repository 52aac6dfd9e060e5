"""
Test fixtures - in-memory SQLite database + role-authenticated HTTP clients
"""
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from backend.database import Base, get_db
from backend.main import app
from backend.api.auth import get_password_hash, create_access_token
from backend.models.user import User, UserRole, DEODetails, VODetails


@pytest_asyncio.fixture()
async def db_session():
    """Create a fresh in-memory SQLite database for each test"""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with session_factory() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture()
async def seed_data(db_session):
    """
    Baseline users: admin, two DEOs, an active VO and a second VO with
    inactive details. Ids are exposed as plain ints because a rolled-back
    request expires the ORM objects.
    """
    password = get_password_hash("testpass123")
    admin = User(username="admin", full_name="Admin", hashed_password=password, role=UserRole.ADMIN)
    deo = User(username="deo1", full_name="Dilani Perera", hashed_password=password, role=UserRole.DEO)
    deo2 = User(username="deo2", full_name="Kasun Silva", hashed_password=password, role=UserRole.DEO)
    vo = User(username="vo1", full_name="Nimal Fernando", hashed_password=password, role=UserRole.VO)
    vo2 = User(username="vo2", full_name="Ruwan Jayasinghe", hashed_password=password, role=UserRole.VO)

    db_session.add_all([admin, deo, deo2, vo, vo2])
    await db_session.flush()

    db_session.add_all([
        DEODetails(user_id=deo.id, full_name=deo.full_name, nic_number="900000001V"),
        VODetails(user_id=vo.id, full_name=vo.full_name, nic_number="800000001V", is_active=True),
        VODetails(user_id=vo2.id, full_name=vo2.full_name, nic_number="800000002V", is_active=False),
    ])
    await db_session.commit()

    return {
        "admin": admin,
        "deo": deo,
        "deo2": deo2,
        "vo": vo,
        "vo2": vo2,
        "admin_id": admin.id,
        "deo_id": deo.id,
        "deo2_id": deo2.id,
        "vo_id": vo.id,
        "vo2_id": vo2.id,
    }


def _make_client(db_session, username=None):
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    ac = AsyncClient(transport=transport, base_url="http://test", follow_redirects=True)
    if username:
        token = create_access_token(data={"sub": username})
        ac.headers["Authorization"] = f"Bearer {token}"
    return ac


@pytest_asyncio.fixture()
async def client(db_session, seed_data):
    """Client authenticated as the first Data Entry Officer"""
    async with _make_client(db_session, "deo1") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest_asyncio.fixture()
async def deo2_client(db_session, seed_data):
    async with _make_client(db_session, "deo2") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest_asyncio.fixture()
async def vo_client(db_session, seed_data):
    """Client authenticated as the active Verification Officer"""
    async with _make_client(db_session, "vo1") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest_asyncio.fixture()
async def vo2_client(db_session, seed_data):
    async with _make_client(db_session, "vo2") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest_asyncio.fixture()
async def admin_client(db_session, seed_data):
    async with _make_client(db_session, "admin") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest_asyncio.fixture()
async def unauth_client(db_session):
    """Unauthenticated httpx AsyncClient"""
    async with _make_client(db_session) as ac:
        yield ac
    app.dependency_overrides.clear()
