"""Shared test fixtures for OpenBlind auth."""

import os
from datetime import datetime, timedelta, timezone

import pytest
from httpx import ASGITransport, AsyncClient

from openblind_auth.common.config import OpenBlindSettings
from openblind_auth.common.database import DatabaseManager


JWT_SECRET = "test-jwt-secret-for-unit-tests-0123456789"
SESSION_SECRET = "test-session-secret-for-unit-tests-0123456789"
PASSWORD = "correct-horse-battery"
T0 = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)


class RecordingAuditSink:
    """Audit sink that keeps events in memory."""

    def __init__(self):
        self.events = []

    def append(self, action, resource, resource_id=None, actor_id=None,
               details=None, timestamp=None):
        self.events.append({
            "action": action,
            "resource": resource,
            "resource_id": resource_id,
            "actor_id": actor_id,
            "details": details or {},
            "timestamp": timestamp,
        })

    def actions(self):
        return [e["action"] for e in self.events]


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now=T0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now = self.now + timedelta(seconds=seconds)


@pytest.fixture
def db_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'auth.db'}"


@pytest.fixture
def settings(db_url):
    return OpenBlindSettings(
        jwt_secret=JWT_SECRET,
        session_secret=SESSION_SECRET,
        db_url=db_url,
        bcrypt_rounds=4,
    )


@pytest.fixture
async def db(settings):
    manager = DatabaseManager(settings)
    await manager.init()
    await manager.create_all()
    yield manager
    await manager.close()


@pytest.fixture
def audit_sink():
    return RecordingAuditSink()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def app(db_url):
    """Create a test app backed by a throwaway SQLite file."""
    os.environ["OPENBLIND_DB_URL"] = db_url
    os.environ["OPENBLIND_JWT_SECRET"] = JWT_SECRET
    os.environ["OPENBLIND_SESSION_SECRET"] = SESSION_SECRET
    os.environ["OPENBLIND_BCRYPT_ROUNDS"] = "4"

    # Clear caches and singletons so new env vars take effect
    from openblind_auth.common.config import get_settings
    get_settings.cache_clear()

    from openblind_auth.deps import reset_singletons
    reset_singletons()

    from openblind_auth.app import create_app
    return create_app()


@pytest.fixture
async def client(app):
    # Manually init DB since ASGITransport doesn't run lifespan
    from openblind_auth.deps import get_audit_service, get_db, get_role_service
    db = get_db()
    await db.init()
    await db.create_all()
    async with db.get_session() as session:
        await get_role_service().seed_defaults(session)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    await get_audit_service().drain()
    await db.close()


@pytest.fixture
def create_identity(client):
    """Insert an identity with the given role straight into the store."""

    async def _create(email, role="user", password=PASSWORD, is_active=True):
        from openblind_auth.deps import get_db, get_identity_service, get_role_service
        from openblind_auth.identity.passwords import hash_password

        async with get_db().get_session() as session:
            identity = await get_identity_service().create(
                session, email, await hash_password(password, 4),
                role=role, is_active=is_active,
            )
            await get_role_service().assign(session, identity.id, role)
        return identity

    return _create


@pytest.fixture
def login(client):
    """Log in over HTTP and return (identity_id, bearer headers)."""

    async def _login(email, password=PASSWORD):
        resp = await client.post("/auth/login", json={"email": email, "password": password})
        assert resp.status_code == 200, resp.text
        data = resp.json()
        return data["identity"]["id"], {"Authorization": f"Bearer {data['token']}"}

    return _login
