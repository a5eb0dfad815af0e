"""
Test configuration and fixtures.

Provides:
- Temporary SQLite database, recreated for every test
- Users of every role and JWT tokens for them
- HTTPX AsyncClient bound to the ASGI app
"""
import os
import tempfile
from dataclasses import dataclass
from typing import AsyncGenerator

# Settings are read at import time: configure the environment first
_TMP_DIR = tempfile.mkdtemp(prefix="leadflow-tests-")
os.environ["AUTH_SECRET_KEY"] = "test-secret-key"
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TMP_DIR}/test.db"
os.environ["LOG_DIR"] = os.path.join(_TMP_DIR, "log")
os.environ["LOG_PRINT"] = "0"
os.environ["UPLOAD_DIR"] = os.path.join(_TMP_DIR, "uploads")
os.environ["PASSWORD_HASH_ROUNDS"] = "1000"
os.environ["GOOGLE_CLIENT_ID"] = "test-client-id"
os.environ["ENVIRONMENT"] = "test"

import pytest
from httpx import AsyncClient, ASGITransport

from leadflow.main import app
from leadflow.models.enums import Role
from leadflow.models.user import User
from leadflow.utils.database import Base, AsyncSessionLocal, engine, init_db
from leadflow.utils.log import Log
from leadflow.utils.security import hash_password, create_access_token

PASSWORD = "secret123"


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture(scope="function")
async def database() -> AsyncGenerator[None, None]:
    """Fresh schema per test plus the app-level logger the lifespan would attach."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await init_db()
    app.state.log = Log()
    yield
    await app.state.log.shutdown()
    await engine.dispose()


async def create_user(name: str, email: str, role: Role, password: str = PASSWORD) -> User:
    async with AsyncSessionLocal() as session:
        user = User(name=name, email=email, password=hash_password(password), role=role)
        session.add(user)
        await session.commit()
        await session.refresh(user)
        return user


# =============================================================================
# Auth Fixtures
# =============================================================================

@dataclass
class TestUsers:
    """One user per role, plus a second agent."""
    super_admin: User
    sub_admin: User
    agent: User
    other_agent: User

    @staticmethod
    def headers(user: User) -> dict:
        return {"Authorization": f"Bearer {create_access_token(user.id)}"}


@pytest.fixture(scope="function")
async def users(database) -> TestUsers:
    return TestUsers(
        super_admin=await create_user("Alice Admin", "alice@example.com", Role.SUPER_ADMIN),
        sub_admin=await create_user("Sam Sub", "sam@example.com", Role.SUB_ADMIN),
        agent=await create_user("Bob Agent", "bob@example.com", Role.SUPPORT_AGENT),
        other_agent=await create_user("Carol Agent", "carol@example.com", Role.SUPPORT_AGENT),
    )


# =============================================================================
# Client Fixtures
# =============================================================================

@pytest.fixture(scope="function")
async def client(database) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c


def lead_payload(**overrides) -> dict:
    payload = {
        "name": "Jane Prospect",
        "email": "jane@prospect.io",
        "phone": "+1 555 0100",
        "source": "Website",
    }
    payload.update(overrides)
    return payload
