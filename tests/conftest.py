"""Test fixtures: stub NASA transport, controllable clock, in-memory repositories."""

from collections.abc import Generator
from datetime import datetime
from typing import Callable, Optional

import httpx
import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

from cosmic_watch.cache import TTLCache
from cosmic_watch.config import Settings
from cosmic_watch.main import app, get_neo_service
from cosmic_watch.nasa_client import NASANeoClient
from cosmic_watch.neo_service import NeoService
from cosmic_watch.repositories import DEFAULT_PREFERENCES, get_user_repository, get_watchlist_repository
from cosmic_watch.security import create_access_token

API_PREFIX = "/neo/rest/v1"


def make_asteroid(
    asteroid_id: str = "3542519",
    hazardous: bool = False,
    diameter_km: float = 0.1,
    velocity_kmh="20000",
    miss_km="10000000",
    orbiting_body: str = "Earth",
) -> dict:
    """Build an upstream-shaped asteroid record."""
    return {
        "id": asteroid_id,
        "name": f"({asteroid_id})",
        "absolute_magnitude_h": 21.4,
        "is_potentially_hazardous_asteroid": hazardous,
        "estimated_diameter": {
            "kilometers": {
                "estimated_diameter_min": diameter_km,
                "estimated_diameter_max": diameter_km,
            }
        },
        "close_approach_data": [
            {
                "close_approach_date": "2024-01-01",
                "relative_velocity": {"kilometers_per_hour": velocity_kmh},
                "miss_distance": {"kilometers": miss_km},
                "orbiting_body": orbiting_body,
            }
        ],
    }


def critical_asteroid(asteroid_id: str) -> dict:
    return make_asteroid(asteroid_id, hazardous=True, diameter_km=2.0, velocity_kmh="150000", miss_km="100000")


def high_asteroid(asteroid_id: str) -> dict:
    # 30 + 10 + 8 + 5 = 53
    return make_asteroid(asteroid_id, hazardous=True, diameter_km=0.3, velocity_kmh="30000", miss_km="5000000")


class StubNasa:
    """httpx handler that answers NeoWs paths and records every request."""

    def __init__(self):
        self.routes: dict = {}
        self.requests: list = []

    def add(self, path: str, payload=None, status_code: int = 200):
        self.routes[path] = (status_code, payload)

    def add_handler(self, path: str, handler: Callable[[httpx.Request], httpx.Response]):
        self.routes[path] = handler

    def calls(self, path: Optional[str] = None) -> list:
        return [r for r in self.requests if path is None or r.url.path == API_PREFIX + path]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get(request.url.path[len(API_PREFIX):])
        if route is None:
            return httpx.Response(404, json={"code": 404, "error_message": "Not Found"})
        if callable(route):
            return route(request)
        status_code, payload = route
        return httpx.Response(status_code, json=payload)


class FakeClock:
    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def settings() -> Settings:
    s = Settings()
    s.nasa_api_key = "TEST_KEY"
    s.nasa_base_url = "https://api.nasa.gov" + API_PREFIX
    s.cache_ttl = 3600
    s.filter_page_multiplier = 5
    return s


@pytest.fixture
def stub_nasa() -> StubNasa:
    return StubNasa()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def nasa_client(settings: Settings, stub_nasa: StubNasa, clock: FakeClock) -> NASANeoClient:
    return NASANeoClient(
        settings=settings,
        cache=TTLCache(ttl=settings.cache_ttl, clock=clock),
        transport=httpx.MockTransport(stub_nasa),
    )


@pytest.fixture
def neo_service(nasa_client: NASANeoClient) -> NeoService:
    return NeoService(nasa_client, pages_per_filter=5)


# === IN-MEMORY REPOSITORIES ===

class FakeUserRepository:
    def __init__(self):
        self.users: dict = {}

    async def find_by_email(self, email: str):
        return next((dict(u) for u in self.users.values() if u["email"] == email.lower()), None)

    async def find_by_id(self, user_id: str):
        user = self.users.get(user_id)
        return dict(user) if user else None

    async def create(self, name: str, email: str, password_hash: str) -> dict:
        return self.add(name, email, password_hash)

    def add(self, name: str, email: str, password_hash: str) -> dict:
        user = {
            "id": str(ObjectId()),
            "name": name,
            "email": email.lower(),
            "password_hash": password_hash,
            "interests": [],
            "preferences": dict(DEFAULT_PREFERENCES),
            "viewed_asteroids": [],
            "created_at": datetime.utcnow(),
        }
        self.users[user["id"]] = user
        return dict(user)

    async def update_profile(self, user_id: str, interests=None, preferences=None):
        user = self.users.get(user_id)
        if user is None:
            return None
        if interests is not None:
            user["interests"] = interests
        if preferences:
            user["preferences"] = {**user["preferences"], **preferences}
        return dict(user)

    async def record_viewed(self, user_id: str, asteroid_id: str) -> None:
        self.users[user_id]["viewed_asteroids"].append(
            {"asteroid_id": asteroid_id, "viewed_at": datetime.utcnow()}
        )


class FakeWatchlistRepository:
    def __init__(self):
        self.items: dict = {}

    async def list_for_user(self, user_id: str):
        items = [dict(i) for i in self.items.values() if i["user_id"] == user_id]
        return sorted(items, key=lambda i: i["added_at"], reverse=True)

    async def find_for_user(self, user_id: str, asteroid_id: str):
        return next(
            (dict(i) for i in self.items.values() if i["user_id"] == user_id and i["asteroid_id"] == asteroid_id),
            None,
        )

    async def get(self, item_id: str):
        item = self.items.get(item_id)
        return dict(item) if item else None

    async def create(self, user_id, asteroid_id, asteroid_name, asteroid_data, notes=None):
        item = {
            "id": str(ObjectId()),
            "user_id": user_id,
            "asteroid_id": asteroid_id,
            "asteroid_name": asteroid_name,
            "asteroid_data": asteroid_data,
            "notes": notes,
            "added_at": datetime.utcnow().isoformat(),
        }
        self.items[item["id"]] = item
        return dict(item)

    async def update_notes(self, item_id: str, notes):
        self.items[item_id]["notes"] = notes
        return dict(self.items[item_id])

    async def delete(self, item_id: str) -> bool:
        return self.items.pop(item_id, None) is not None


@pytest.fixture
def user_repo() -> FakeUserRepository:
    return FakeUserRepository()


@pytest.fixture
def watchlist_repo() -> FakeWatchlistRepository:
    return FakeWatchlistRepository()


@pytest.fixture
def test_client(
    neo_service: NeoService,
    user_repo: FakeUserRepository,
    watchlist_repo: FakeWatchlistRepository,
) -> Generator[TestClient, None, None]:
    """Client against the real app with storage and upstream replaced.

    Not used as a context manager, so the MongoDB startup hook never runs.
    """
    app.dependency_overrides[get_neo_service] = lambda: neo_service
    app.dependency_overrides[get_user_repository] = lambda: user_repo
    app.dependency_overrides[get_watchlist_repository] = lambda: watchlist_repo
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def _register(repo: FakeUserRepository, name: str, email: str) -> dict:
    user = repo.add(name, email, "unused-hash")
    token = create_access_token({"sub": user["id"]})
    return {"user": user, "headers": {"Authorization": f"Bearer {token}"}}


@pytest.fixture
def authenticated_user(user_repo: FakeUserRepository) -> dict:
    return _register(user_repo, "Vera Rubin", "vera@example.com")


@pytest.fixture
def other_user(user_repo: FakeUserRepository) -> dict:
    return _register(user_repo, "Clyde Tombaugh", "clyde@example.com")
