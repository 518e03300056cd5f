"""Integration tests for app wiring: health, lifespan and error mapping."""

from openblind_auth.common.exceptions import StorageUnavailableError


class TestHealth:
    async def test_health(self, client):
        resp = await client.get("/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "ok"
        assert data["service"] == "openblind-auth"


class TestStorageUnavailable:
    async def test_generic_500(self, app, client, monkeypatch):
        from openblind_auth.deps import get_auth_service

        async def broken_login(*args, **kwargs):
            raise StorageUnavailableError()

        monkeypatch.setattr(get_auth_service(), "login", broken_login)
        resp = await client.post("/auth/login", json={
            "email": "a@example.com", "password": "whatever",
        })
        assert resp.status_code == 500
        assert resp.json() == {
            "error": "Internal server error",
            "code": "STORAGE_UNAVAILABLE",
            "detail": "",
        }


class TestLifespan:
    async def test_startup_and_shutdown(self, app):
        from openblind_auth.deps import get_db, get_role_service, get_session_sweeper

        async with app.router.lifespan_context(app):
            assert get_db().initialized
            assert get_session_sweeper().running
            async with get_db().get_session() as session:
                roles = await get_role_service().list_roles(session)
            assert [r.name for r in roles] == ["admin", "moderator", "user"]
        assert not get_session_sweeper().running
        assert not get_db().initialized
