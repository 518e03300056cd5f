"""Integration tests for the auth router."""

PASSWORD = "correct-horse-battery"


async def _register(client, email="new@example.com", password=PASSWORD):
    return await client.post("/auth/register", json={
        "email": email, "password": password, "display_name": "New",
    })


def _bearer(resp):
    return {"Authorization": f"Bearer {resp.json()['token']}"}


class TestRegister:
    async def test_success(self, client):
        resp = await _register(client)
        assert resp.status_code == 201
        data = resp.json()
        assert data["identity"]["email"] == "new@example.com"
        assert data["identity"]["role"] == "user"
        assert "password_hash" not in data["identity"]
        assert data["token"]

    async def test_duplicate(self, client):
        await _register(client)
        resp = await _register(client, email="NEW@example.com")
        assert resp.status_code == 409
        assert resp.json()["code"] == "DUPLICATE_EMAIL"

    async def test_short_password(self, client):
        resp = await _register(client, password="123")
        assert resp.status_code == 422


class TestLogin:
    async def test_success(self, client, create_identity):
        await create_identity("a@example.com")
        resp = await client.post("/auth/login", json={"email": "a@example.com", "password": PASSWORD})
        assert resp.status_code == 200
        data = resp.json()
        assert data["identity"]["last_login"] is not None
        assert data["expires_at"]

    async def test_wrong_password(self, client, create_identity):
        await create_identity("a@example.com")
        resp = await client.post("/auth/login", json={"email": "a@example.com", "password": "nope"})
        assert resp.status_code == 401
        body = resp.json()
        assert body["code"] == "AUTHENTICATION_FAILED"
        assert body["detail"] == "InvalidCredentials"
        assert resp.headers["www-authenticate"] == "Bearer"

    async def test_inactive(self, client, create_identity):
        await create_identity("a@example.com", is_active=False)
        resp = await client.post("/auth/login", json={"email": "a@example.com", "password": PASSWORD})
        assert resp.status_code == 401
        assert resp.json()["detail"] == "InvalidCredentials"


class TestVerify:
    async def test_valid_token(self, client):
        registered = await _register(client)
        resp = await client.get("/auth/verify", headers=_bearer(registered))
        assert resp.status_code == 200
        data = resp.json()
        assert data["identity"]["id"] == registered.json()["identity"]["id"]
        assert data["session_id"]

    async def test_missing_header(self, client):
        resp = await client.get("/auth/verify")
        assert resp.status_code == 401
        assert resp.json()["detail"] == "MissingToken"

    async def test_wrong_scheme(self, client):
        resp = await client.get("/auth/verify", headers={"Authorization": "Basic abc"})
        assert resp.status_code == 401
        assert resp.json()["detail"] == "MissingToken"

    async def test_malformed(self, client):
        resp = await client.get("/auth/verify", headers={"Authorization": "Bearer garbage"})
        assert resp.status_code == 401
        assert resp.json()["detail"] == "MalformedToken"

    async def test_foreign_signature(self, client):
        from types import SimpleNamespace
        from openblind_auth.tokens.codec import TokenCodec

        identity = SimpleNamespace(id="x", email="x@example.com", role="admin")
        token = TokenCodec("someone-elses-secret-at-least-32-bytes").issue(identity).token
        resp = await client.get("/auth/verify", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401
        assert resp.json()["detail"] == "InvalidSignature"

    async def test_signed_token_without_session(self, client, create_identity):
        from openblind_auth.deps import get_token_codec

        identity = await create_identity("a@example.com")
        token = get_token_codec().issue(identity).token
        resp = await client.get("/auth/verify", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401
        assert resp.json()["detail"] == "SessionNotFound"


class TestLogout:
    async def test_token_rejected_afterwards(self, client):
        registered = await _register(client)
        headers = _bearer(registered)
        resp = await client.post("/auth/logout", headers=headers)
        assert resp.status_code == 204
        resp = await client.get("/auth/verify", headers=headers)
        assert resp.status_code == 401
        assert resp.json()["detail"] == "SessionNotFound"

    async def test_other_sessions_survive(self, client, create_identity, login):
        await create_identity("a@example.com")
        _, first = await login("a@example.com")
        _, second = await login("a@example.com")
        await client.post("/auth/logout", headers=first)
        resp = await client.get("/auth/verify", headers=second)
        assert resp.status_code == 200

    async def test_requires_auth(self, client):
        resp = await client.post("/auth/logout")
        assert resp.status_code == 401


class TestSessions:
    async def test_lists_current(self, client, create_identity, login):
        await create_identity("a@example.com")
        await login("a@example.com")
        _, headers = await login("a@example.com")
        resp = await client.get("/auth/sessions", headers=headers)
        assert resp.status_code == 200
        sessions = resp.json()
        assert len(sessions) == 2
        assert [s["current"] for s in sessions].count(True) == 1


class TestChangePassword:
    async def test_success_ends_other_sessions(self, client, create_identity, login):
        await create_identity("a@example.com")
        _, other = await login("a@example.com")
        _, current = await login("a@example.com")
        resp = await client.put("/auth/change-password", headers=current, json={
            "current_password": PASSWORD, "new_password": "new-password-1",
        })
        assert resp.status_code == 200
        assert resp.json()["sessions_ended"] == 1
        assert (await client.get("/auth/verify", headers=current)).status_code == 200
        assert (await client.get("/auth/verify", headers=other)).status_code == 401
        await login("a@example.com", "new-password-1")

    async def test_wrong_current_password(self, client, create_identity, login):
        await create_identity("a@example.com")
        _, headers = await login("a@example.com")
        resp = await client.put("/auth/change-password", headers=headers, json={
            "current_password": "wrong", "new_password": "new-password-1",
        })
        assert resp.status_code == 400
        assert resp.json()["code"] == "INVALID_PASSWORD"


class TestProfile:
    async def test_get_own_profile(self, client, create_identity, login):
        await create_identity("a@example.com")
        identity_id, headers = await login("a@example.com")
        resp = await client.get("/auth/profile", headers=headers)
        assert resp.status_code == 200
        data = resp.json()
        assert data["id"] == identity_id
        assert data["email"] == "a@example.com"
        assert "password_hash" not in data

    async def test_update_display_name(self, client, create_identity, login):
        await create_identity("a@example.com")
        _, headers = await login("a@example.com")
        resp = await client.put("/auth/profile", json={"display_name": "Ana"}, headers=headers)
        assert resp.status_code == 200
        assert resp.json()["display_name"] == "Ana"
        assert resp.json()["role"] == "user"

        resp = await client.get("/auth/profile", headers=headers)
        assert resp.json()["display_name"] == "Ana"

    async def test_role_is_not_a_profile_field(self, client, create_identity, login):
        await create_identity("a@example.com")
        _, headers = await login("a@example.com")
        resp = await client.put("/auth/profile", json={"role": "admin"}, headers=headers)
        assert resp.status_code == 200
        assert resp.json()["role"] == "user"

    async def test_requires_auth(self, client):
        assert (await client.get("/auth/profile")).status_code == 401
        assert (await client.put("/auth/profile", json={})).status_code == 401
