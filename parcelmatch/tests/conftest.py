"""
Centralized Test Configuration.
"""

import itertools
from datetime import timedelta

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import Pool, StaticPool

from parcelmatch.app.main import app
from parcelmatch.app.core.jwt import create_access_token
from parcelmatch.app.db.session import get_db, Base, utc_now
from parcelmatch.app.models.enums import UserRole
from parcelmatch.app.models.parcel import Parcel
from parcelmatch.app.models.parcel_enums import CapacityClass, ParcelStatus
from parcelmatch.app.models.trip import Trip
from parcelmatch.app.models.trip_enums import TripStatus
from parcelmatch.app.models.user import User

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Reference coordinates
LONDON = (51.5074, -0.1278)
MANCHESTER = (53.4808, -2.2426)


@event.listens_for(Pool, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    if 'sqlite' in str(type(dbapi_conn)).lower():
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


@pytest.fixture(scope="session", autouse=True)
def apply_overrides():
    """Route the app's sessions to the test database for the whole run."""
    async def override_get_db():
        async with TestingSessionLocal() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    yield
    app.dependency_overrides = {}


@pytest.fixture(autouse=True)
async def setup_database():
    """Create tables before each test function and drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def client():
    """Async client for testing."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


# Shared session for fixture data creation
@pytest.fixture
async def db_session():
    async with TestingSessionLocal() as session:
        yield session


_usernames = itertools.count(1)


@pytest.fixture
def make_user(db_session):
    async def _make_user(role: UserRole = UserRole.SENDER, is_active: bool = True) -> User:
        user = User(
            username=f"{role.value}_{next(_usernames)}",
            full_name=f"Test {role.value.title()}",
            role=role,
            is_active=is_active
        )
        db_session.add(user)
        await db_session.commit()
        await db_session.refresh(user)
        return user
    return _make_user


@pytest.fixture
def make_parcel(db_session):
    """Pending London -> Manchester parcel of 5 kg unless overridden."""
    async def _make_parcel(sender: User, **overrides) -> Parcel:
        values = dict(
            sender_id=sender.id,
            pickup_address="London",
            pickup_latitude=LONDON[0],
            pickup_longitude=LONDON[1],
            delivery_address="Manchester",
            delivery_latitude=MANCHESTER[0],
            delivery_longitude=MANCHESTER[1],
            weight_kg=5.0,
            status=ParcelStatus.PENDING,
        )
        values.update(overrides)
        parcel = Parcel(**values)
        db_session.add(parcel)
        await db_session.commit()
        await db_session.refresh(parcel)
        return parcel
    return _make_parcel


@pytest.fixture
def make_trip(db_session):
    """Scheduled London -> Manchester trip, medium capacity, leaving in two days."""
    async def _make_trip(courier: User, **overrides) -> Trip:
        values = dict(
            courier_id=courier.id,
            origin_address="London",
            origin_latitude=LONDON[0],
            origin_longitude=LONDON[1],
            destination_address="Manchester",
            destination_latitude=MANCHESTER[0],
            destination_longitude=MANCHESTER[1],
            departure_time=utc_now() + timedelta(days=2),
            available_capacity=CapacityClass.MEDIUM,
            status=TripStatus.SCHEDULED,
        )
        values.update(overrides)
        trip = Trip(**values)
        db_session.add(trip)
        await db_session.commit()
        await db_session.refresh(trip)
        return trip
    return _make_trip


@pytest.fixture
def auth_headers():
    def _auth_headers(user: User) -> dict:
        token = create_access_token(data={"sub": user.username, "user_id": user.id})
        return {"Authorization": f"Bearer {token}"}
    return _auth_headers
