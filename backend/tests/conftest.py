"""테스트 공통 fixture -- mongomock DB + httpx AsyncClient"""

from collections.abc import AsyncGenerator
from datetime import datetime, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from mongomock_motor import AsyncMongoMockClient

from app.core.config import settings
from app.core.security import create_access_token
from app.crud import users as users_crud
from app.db import mongo
from app.schemas.user import UserCreate

ADMIN_PASSWORD = "admin-secret"


@pytest.fixture(autouse=True)
def test_settings(monkeypatch, tmp_path):
    monkeypatch.setattr(settings, "ADMIN_USERNAME", "admin")
    monkeypatch.setattr(settings, "ADMIN_PASSWORD", ADMIN_PASSWORD)
    monkeypatch.setattr(settings, "UPLOAD_DIR", str(tmp_path / "uploads"))
    monkeypatch.setattr(settings, "ALLOW_TASK_REOPEN", False)
    monkeypatch.setattr(settings, "ENVIRONMENT", "development")
    return settings


@pytest.fixture
def db(monkeypatch):
    """get_db()가 in-memory mongomock DB를 돌려주도록 교체"""
    database = AsyncMongoMockClient()["taskboard_test"]
    monkeypatch.setattr(mongo, "db", database)
    return database


@pytest_asyncio.fixture
async def app(db):
    from app.main import create_app

    return create_app(use_lifespan=False)


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def fixed_now() -> datetime:
    # mongomock은 datetime을 밀리초로 자르므로 마이크로초 없는 값 사용
    return datetime(2024, 5, 1, 8, 0, tzinfo=timezone.utc)


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    async def _make(role: str = "salesman", password: str = "pass1234", **overrides):
        counter["n"] += 1
        n = counter["n"]
        data = {
            "username": f"user{n}",
            "email": f"user{n}@taskboard.io",
            "password": password,
            "mobile_no": f"+1415555010{n}",
            "role": role,
        }
        data.update(overrides)
        return await users_crud.create_user(UserCreate(**data))

    return _make


def bearer(user_id: str, username: str, role: str) -> dict:
    token = create_access_token(user_id, username, role)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers() -> dict:
    return bearer("admin", "admin", "admin")


@pytest.fixture
def headers_for():
    def _headers(user) -> dict:
        return bearer(user.id, user.username, user.role)

    return _headers
