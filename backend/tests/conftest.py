import os

# Settings are read at import time; pin the test environment first.
os.environ["DB_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["ENABLE_RATE_LIMITING"] = "false"
os.environ["GOOGLE_MAPS_API_KEY"] = ""
os.environ["GEOCODING_ENABLED"] = "false"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["LOG_JSON"] = "false"
os.environ["LOG_LEVEL"] = "WARNING"

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.api.deps import get_directions_client, get_geocoder
from app.core.security import create_access_token
from app.db.base import Base
from app.db.session import get_db_session

API = "/api/v1"


class FakeDirections:
    """Records every route request and answers from a per-pair status table."""

    def __init__(self):
        self.calls = []
        self.statuses = {}
        self.default_status = "OK"

    def fail(self, origin, destination, status="ZERO_RESULTS"):
        self.statuses[(tuple(origin), tuple(destination))] = status

    async def route(self, origin, destination, waypoints=(), optimize_waypoints=False, mode="DRIVING"):
        self.calls.append({
            "origin": tuple(origin),
            "destination": tuple(destination),
            "waypoints": [tuple(w) for w in waypoints],
            "optimize_waypoints": optimize_waypoints,
            "mode": mode,
        })
        status = self.statuses.get((tuple(origin), tuple(destination)), self.default_status)
        if status != "OK":
            return status, {"status": status, "routes": []}
        return status, {
            "status": "OK",
            "routes": [{
                "summary": f"{tuple(origin)}->{tuple(destination)}",
                "waypoint_order": list(range(len(waypoints)))[::-1],
            }],
        }


class FakeGeocoder:
    def __init__(self, result=None):
        self.result = result
        self.queries = []

    async def locate(self, address, city=None):
        self.queries.append((address, city))
        if not address:
            return None
        return self.result


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def directions():
    return FakeDirections()


@pytest.fixture
def geocoder():
    return FakeGeocoder()


@pytest_asyncio.fixture
async def client(session_factory, directions, geocoder):
    from app.main import app

    async def override_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db_session] = override_session
    app.dependency_overrides[get_directions_client] = lambda: directions
    app.dependency_overrides[get_geocoder] = lambda: geocoder

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


def auth_headers(email, name=None, image=None):
    return {"Authorization": f"Bearer {create_access_token(email, name=name, image=image)}"}


@pytest.fixture
def owner_headers():
    return auth_headers("owner@example.com", name="Olive Owner", image="https://img.example/olive.png")


@pytest.fixture
def other_headers():
    return auth_headers("intruder@example.com", name="Ivan")


async def create_trip(client, headers, name="Lisbon", points=()):
    resp = await client.post(f"{API}/trips", json={"name": name, "points": list(points)}, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()


async def create_point(client, headers, trip_id, **fields):
    body = {"name": "Point", **fields}
    resp = await client.post(f"{API}/trips/{trip_id}/points", json=body, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()


async def create_itinerary(client, headers, trip_id, date="2024-05-01"):
    resp = await client.post(f"{API}/trips/{trip_id}/itineraries", json={"date": date}, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()


async def append_item(client, headers, trip_id, itinerary_id, point_id):
    resp = await client.post(
        f"{API}/trips/{trip_id}/itineraries/{itinerary_id}/items",
        json={"pointId": point_id},
        headers=headers,
    )
    assert resp.status_code == 201, resp.text
    return resp.json()
