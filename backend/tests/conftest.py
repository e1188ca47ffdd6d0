"""Pytest configuration and fixtures for GrowTrack tests.

Tests run against a throwaway SQLite file (aiosqlite). The schema is
created before and dropped after every test that touches the database.

Seed fixtures commit, so HTTP requests (which open their own sessions
through ``get_db``) see the same rows as service-level tests.
"""

import os
import tempfile

_TEST_DIR = tempfile.mkdtemp(prefix="growtrack-test-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_DIR}/growtrack_test.db"
os.environ["DEBUG"] = "false"
os.environ["PHOTO_STORAGE"] = "local"
os.environ["MEDIA_ROOT"] = os.path.join(_TEST_DIR, "media")

from typing import AsyncGenerator  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession  # noqa: E402

from growtrack.auth.jwt import create_access_token  # noqa: E402
from growtrack.database import Base, async_session, engine  # noqa: E402
from growtrack.main import app  # noqa: E402
from growtrack.models import Facility, RoomType, Strain, User, UserRole  # noqa: E402
from growtrack.schemas.facility import RackCreate, RoomCreate, TrayCreate  # noqa: E402
from growtrack.services import facility as facility_service  # noqa: E402


# ── Test Database Setup ──────────────────────────────────────────

@pytest_asyncio.fixture
async def test_engine():
    """Create every table, hand the engine over, drop everything afterwards."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Session for service-level tests and seeding."""
    async with async_session() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def client(test_engine) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client over the ASGI app (real ``get_db`` sessions)."""
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as client:
        yield client


# ── Test Data Fixtures ───────────────────────────────────────────

@pytest_asyncio.fixture
async def test_facility(db_session: AsyncSession) -> Facility:
    facility = Facility(name="North Canopy", license_number="CCL-0001")
    db_session.add(facility)
    await db_session.commit()
    return facility


@pytest_asyncio.fixture
async def other_facility(db_session: AsyncSession) -> Facility:
    facility = Facility(name="South Canopy", license_number="CCL-0002")
    db_session.add(facility)
    await db_session.commit()
    return facility


async def _make_user(
    db: AsyncSession, facility: Facility, email: str, role: UserRole
) -> User:
    user = User(
        email=email,
        full_name=email.split("@")[0].replace(".", " ").title(),
        role=role,
        is_active=True,
        facility_id=facility.id,
    )
    db.add(user)
    await db.commit()
    return user


@pytest_asyncio.fixture
async def test_user(db_session: AsyncSession, test_facility: Facility) -> User:
    """Admin of the main test facility."""
    return await _make_user(db_session, test_facility, "admin@example.com", UserRole.ADMIN)


@pytest_asyncio.fixture
async def grower_user(db_session: AsyncSession, test_facility: Facility) -> User:
    return await _make_user(db_session, test_facility, "grower@example.com", UserRole.GROWER)


@pytest_asyncio.fixture
async def viewer_user(db_session: AsyncSession, test_facility: Facility) -> User:
    return await _make_user(db_session, test_facility, "viewer@example.com", UserRole.VIEWER)


@pytest_asyncio.fixture
async def other_user(db_session: AsyncSession, other_facility: Facility) -> User:
    """Admin of a different facility (tenant isolation)."""
    return await _make_user(db_session, other_facility, "other@example.com", UserRole.ADMIN)


@pytest_asyncio.fixture
async def strains(db_session: AsyncSession) -> dict[str, Strain]:
    """Blue Dream and OG Kush, keyed by name."""
    rows = [
        Strain(name="Blue Dream", category="hybrid"),
        Strain(name="OG Kush", category="indica"),
    ]
    db_session.add_all(rows)
    await db_session.commit()
    return {s.name: s for s in rows}


@pytest.fixture
def room_factory(db_session: AsyncSession):
    """Create (and commit) a room with one rack holding trays of the given capacities."""
    counter = {"n": 0}

    async def _make(user: User, capacities=(2,), room_type=RoomType.FLOWER, name=None):
        counter["n"] += 1
        body = RoomCreate(
            name=name or f"Room {counter['n']}",
            room_type=room_type,
            floor_count=1,
            racks=[RackCreate(
                floor=1,
                position=0,
                trays=[
                    TrayCreate(position=i, capacity=c)
                    for i, c in enumerate(capacities)
                ],
            )],
        )
        room = await facility_service.create_room(db_session, user, body)
        await db_session.commit()
        return room

    return _make


# ── Auth Fixtures ────────────────────────────────────────────────

def token_for(user: User) -> str:
    return create_access_token(
        user_id=user.id,
        role=user.role.value,
        facility_id=user.facility_id,
    )


@pytest.fixture
def test_token(test_user: User) -> str:
    return token_for(test_user)


@pytest.fixture
def auth_headers(test_token: str) -> dict:
    """Authorization headers for the facility admin."""
    return {"Authorization": f"Bearer {test_token}"}


@pytest.fixture
def grower_headers(grower_user: User) -> dict:
    return {"Authorization": f"Bearer {token_for(grower_user)}"}


@pytest.fixture
def viewer_headers(viewer_user: User) -> dict:
    return {"Authorization": f"Bearer {token_for(viewer_user)}"}


@pytest.fixture
def other_headers(other_user: User) -> dict:
    """Authorization headers for the admin of a different facility."""
    return {"Authorization": f"Bearer {token_for(other_user)}"}


# ── Test Markers ─────────────────────────────────────────────────

def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "api: HTTP API tests")
    config.addinivalue_line("markers", "integration: Integration tests")
