"""Tests for the identity store and password hashing."""

from datetime import timedelta

import pytest

from openblind_auth.common.exceptions import DuplicateEmailError
from openblind_auth.common.models import utcnow
from openblind_auth.identity.passwords import hash_password, verify_password
from openblind_auth.identity.roles import RoleService
from openblind_auth.identity.service import IdentityService, normalize_email
from openblind_auth.sessions.service import SessionManager


@pytest.fixture
def identities():
    return IdentityService()


class TestPasswords:
    async def test_hash_and_verify(self):
        hashed = await hash_password("hunter22", rounds=4)
        assert hashed != "hunter22"
        assert hashed.startswith("$2")
        assert await verify_password("hunter22", hashed)
        assert not await verify_password("hunter23", hashed)

    async def test_salted(self):
        assert await hash_password("same", rounds=4) != await hash_password("same", rounds=4)

    async def test_non_bcrypt_hash_never_matches(self):
        assert not await verify_password("anything", "plaintext-not-a-hash")


class TestNormalizeEmail:
    def test_lower_and_strip(self):
        assert normalize_email("  Foo@Bar.COM ") == "foo@bar.com"


class TestCreate:
    async def test_defaults(self, db, identities):
        async with db.get_session() as session:
            identity = await identities.create(session, "A@Example.com", "hash")
        assert identity.id
        assert identity.email == "a@example.com"
        assert identity.role == "user"
        assert identity.is_active is True
        assert identity.last_login is None
        assert not identity.is_admin

    async def test_admin(self, db, identities):
        async with db.get_session() as session:
            identity = await identities.create(session, "root@example.com", "hash", role="admin")
        assert identity.is_admin

    async def test_duplicate_email(self, db, identities):
        async with db.get_session() as session:
            await identities.create(session, "a@example.com", "hash")
        async with db.get_session() as session:
            with pytest.raises(DuplicateEmailError):
                await identities.create(session, "A@EXAMPLE.com", "hash")

    async def test_unknown_role(self, db, identities):
        async with db.get_session() as session:
            with pytest.raises(ValueError):
                await identities.create(session, "a@example.com", "hash", role="root")


class TestFind:
    async def test_by_email_and_id(self, db, identities):
        async with db.get_session() as session:
            created = await identities.create(session, "a@example.com", "hash")
        async with db.get_session() as session:
            by_email = await identities.find_by_email(session, "A@example.com")
            by_id = await identities.find_by_id(session, created.id)
        assert by_email.id == created.id
        assert by_id.email == "a@example.com"

    async def test_missing(self, db, identities):
        async with db.get_session() as session:
            assert await identities.find_by_email(session, "x@example.com") is None
            assert await identities.find_by_id(session, "no-such-id") is None


class TestUpdate:
    async def test_fields(self, db, identities):
        async with db.get_session() as session:
            created = await identities.create(session, "a@example.com", "hash")
        async with db.get_session() as session:
            updated = await identities.update(
                session, created.id, display_name="Alice", role="moderator", is_active=False
            )
        assert updated.display_name == "Alice"
        assert updated.role == "moderator"
        assert updated.is_active is False

    async def test_unknown_field(self, db, identities):
        async with db.get_session() as session:
            created = await identities.create(session, "a@example.com", "hash")
            with pytest.raises(ValueError):
                await identities.update(session, created.id, email="b@example.com")

    async def test_missing_identity(self, db, identities):
        async with db.get_session() as session:
            assert await identities.update(session, "no-such-id", display_name="x") is None


class TestDelete:
    async def test_removes_sessions_and_assignments(self, db, identities):
        roles = RoleService()
        manager = SessionManager("delete-test-secret-at-least-32-bytes")
        async with db.get_session() as session:
            await roles.seed_defaults(session)
            identity = await identities.create(session, "a@example.com", "hash")
            await roles.assign(session, identity.id, "user")
            await manager.create(session, identity, "raw-token")
        async with db.get_session() as session:
            assert await identities.delete(session, identity.id) is True
        async with db.get_session() as session:
            assert await identities.find_by_id(session, identity.id) is None
            assert await roles.roles_for(session, identity.id) == []
            assert await manager.list_for_identity(session, identity.id) == []

    async def test_missing(self, db, identities):
        async with db.get_session() as session:
            assert await identities.delete(session, "no-such-id") is False


class TestListIdentities:
    async def test_filters(self, db, identities):
        async with db.get_session() as session:
            await identities.create(session, "a@example.com", "hash")
            await identities.create(session, "b@example.com", "hash", role="moderator")
            await identities.create(session, "c@example.com", "hash", is_active=False)
        async with db.get_session() as session:
            everyone = await identities.list_identities(session)
            moderators = await identities.list_identities(session, role="moderator")
            inactive = await identities.list_identities(session, is_active=False)
        assert len(everyone) == 3
        assert [i.email for i in moderators] == ["b@example.com"]
        assert [i.email for i in inactive] == ["c@example.com"]


class TestCount:
    async def test_filters(self, db, identities):
        async with db.get_session() as session:
            await identities.create(session, "a@example.com", "hash")
            await identities.create(session, "b@example.com", "hash", is_active=False)
            await identities.create(session, "root@example.com", "hash", role="admin")

            assert await identities.count_identities(session) == 3
            assert await identities.count_identities(session, role="user") == 2
            assert await identities.count_identities(session, is_active=True) == 2
            assert await identities.count_identities(
                session, role="user", is_active=False
            ) == 1

    async def test_created_since(self, db, identities):
        async with db.get_session() as session:
            await identities.create(session, "a@example.com", "hash")
            later = utcnow() + timedelta(days=1)
            assert await identities.count_identities(session, created_since=later) == 0
            earlier = utcnow() - timedelta(days=1)
            assert await identities.count_identities(session, created_since=earlier) == 1
