"""Tests for the session manager and the expired-session sweeper."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from openblind_auth.common.exceptions import AuthenticationError, AuthenticationFailure
from openblind_auth.identity.service import IdentityService
from openblind_auth.sessions.models import SessionModel
from openblind_auth.sessions.service import SessionManager, fingerprint_token
from openblind_auth.sessions.sweeper import SessionSweeper


SECRET = "session-test-secret-at-least-32-bytes"
T0 = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def manager():
    return SessionManager(SECRET)


async def _identity(db, email="s@example.com", is_active=True):
    async with db.get_session() as session:
        return await IdentityService().create(
            session, email, "not-a-real-hash", is_active=is_active
        )


class TestFingerprint:
    def test_deterministic(self):
        assert fingerprint_token("tok", SECRET) == fingerprint_token("tok", SECRET)

    def test_keyed(self):
        assert fingerprint_token("tok", SECRET) != fingerprint_token("tok", SECRET + "x")

    def test_is_sha256_hex(self):
        assert len(fingerprint_token("tok", SECRET)) == 64


class TestCreate:
    async def test_row_stores_fingerprint_not_token(self, db, manager):
        identity = await _identity(db)
        async with db.get_session() as session:
            record = await manager.create(
                session, identity, "raw-token", "10.0.0.1", "pytest", T0
            )
        assert record.token_fingerprint == manager.fingerprint("raw-token")
        assert record.token_fingerprint != "raw-token"
        assert record.origin_ip == "10.0.0.1"
        assert record.user_agent == "pytest"

    async def test_expires_after_ttl(self, db, manager):
        identity = await _identity(db)
        async with db.get_session() as session:
            record = await manager.create(session, identity, "raw-token", now=T0)
        assert record.expires_at == T0 + timedelta(hours=24)

    async def test_custom_ttl(self, db):
        identity = await _identity(db)
        manager = SessionManager(SECRET, ttl_seconds=600)
        async with db.get_session() as session:
            record = await manager.create(session, identity, "raw-token", now=T0)
        assert record.expires_at == T0 + timedelta(minutes=10)


class TestValidate:
    async def test_live_session(self, db, manager):
        identity = await _identity(db)
        async with db.get_session() as session:
            created = await manager.create(session, identity, "raw-token", now=T0)
        async with db.get_session() as session:
            record, owner = await manager.validate(session, "raw-token", T0 + timedelta(hours=1))
        assert record.id == created.id
        assert owner.id == identity.id
        assert record.expires_at.tzinfo is not None

    async def test_unknown_token(self, db, manager):
        async with db.get_session() as session:
            with pytest.raises(AuthenticationError) as exc_info:
                await manager.validate(session, "never-issued", T0)
        assert exc_info.value.kind == AuthenticationFailure.SESSION_NOT_FOUND

    async def test_expired_at_boundary(self, db, manager):
        identity = await _identity(db)
        async with db.get_session() as session:
            record = await manager.create(session, identity, "raw-token", now=T0)
        async with db.get_session() as session:
            with pytest.raises(AuthenticationError) as exc_info:
                await manager.validate(session, "raw-token", record.expires_at)
        assert exc_info.value.kind == AuthenticationFailure.SESSION_EXPIRED

    async def test_expired_row_kept_until_sweep(self, db, manager):
        identity = await _identity(db)
        async with db.get_session() as session:
            await manager.create(session, identity, "raw-token", now=T0)
        later = T0 + timedelta(days=2)
        for _ in range(2):
            async with db.get_session() as session:
                with pytest.raises(AuthenticationError):
                    await manager.validate(session, "raw-token", later)
        async with db.get_session() as session:
            rows = (await session.execute(select(SessionModel))).scalars().all()
        assert len(rows) == 1

    async def test_inactive_identity(self, db, manager):
        identity = await _identity(db)
        async with db.get_session() as session:
            await manager.create(session, identity, "raw-token", now=T0)
        async with db.get_session() as session:
            await IdentityService().update(session, identity.id, is_active=False)
        async with db.get_session() as session:
            with pytest.raises(AuthenticationError) as exc_info:
                await manager.validate(session, "raw-token", T0)
        assert exc_info.value.kind == AuthenticationFailure.IDENTITY_INACTIVE

    async def test_wrong_secret_does_not_find_session(self, db, manager):
        identity = await _identity(db)
        async with db.get_session() as session:
            await manager.create(session, identity, "raw-token", now=T0)
        other = SessionManager(SECRET + "-rotated")
        async with db.get_session() as session:
            with pytest.raises(AuthenticationError) as exc_info:
                await other.validate(session, "raw-token", T0)
        assert exc_info.value.kind == AuthenticationFailure.SESSION_NOT_FOUND


class TestDestroy:
    async def test_destroy(self, db, manager):
        identity = await _identity(db)
        async with db.get_session() as session:
            record = await manager.create(session, identity, "raw-token", now=T0)
        async with db.get_session() as session:
            assert await manager.destroy(session, record.id) is True
        async with db.get_session() as session:
            assert await manager.destroy(session, record.id) is False
            with pytest.raises(AuthenticationError) as exc_info:
                await manager.validate(session, "raw-token", T0)
        assert exc_info.value.kind == AuthenticationFailure.SESSION_NOT_FOUND

    async def test_destroy_all(self, db, manager):
        alice = await _identity(db, "alice@example.com")
        bob = await _identity(db, "bob@example.com")
        async with db.get_session() as session:
            for i in range(3):
                await manager.create(session, alice, f"alice-{i}", now=T0)
            await manager.create(session, bob, "bob-0", now=T0)
        async with db.get_session() as session:
            assert await manager.destroy_all(session, alice.id) == 3
        async with db.get_session() as session:
            record, _ = await manager.validate(session, "bob-0", T0)
            assert record.identity_id == bob.id

    async def test_destroy_all_keeps_current(self, db, manager):
        identity = await _identity(db)
        async with db.get_session() as session:
            keep = await manager.create(session, identity, "keep", now=T0)
            await manager.create(session, identity, "drop", now=T0)
        async with db.get_session() as session:
            ended = await manager.destroy_all(session, identity.id, except_session_id=keep.id)
        assert ended == 1
        async with db.get_session() as session:
            remaining = await manager.list_for_identity(session, identity.id, T0)
        assert [r.id for r in remaining] == [keep.id]


class TestSweepExpired:
    async def test_removes_exactly_the_expired(self, db):
        identity = await _identity(db)
        manager = SessionManager(SECRET, ttl_seconds=60)
        async with db.get_session() as session:
            await manager.create(session, identity, "old-1", now=T0)
            await manager.create(session, identity, "old-2", now=T0)
            await manager.create(session, identity, "fresh", now=T0 + timedelta(hours=1))
        async with db.get_session() as session:
            removed = await manager.sweep_expired(session, T0 + timedelta(minutes=30))
        assert removed == 2
        async with db.get_session() as session:
            record, _ = await manager.validate(session, "fresh", T0 + timedelta(minutes=60, seconds=30))
            assert record is not None

    async def test_nothing_to_sweep(self, db, manager):
        async with db.get_session() as session:
            assert await manager.sweep_expired(session, T0) == 0


class TestListForIdentity:
    async def test_only_live_sessions_newest_first(self, db):
        identity = await _identity(db)
        manager = SessionManager(SECRET, ttl_seconds=3600)
        async with db.get_session() as session:
            await manager.create(session, identity, "expired", now=T0 - timedelta(hours=2))
            older = await manager.create(session, identity, "older", now=T0 - timedelta(minutes=10))
            newer = await manager.create(session, identity, "newer", now=T0)
        async with db.get_session() as session:
            records = await manager.list_for_identity(session, identity.id, T0)
        assert [r.id for r in records] == [newer.id, older.id]


class TestSweeper:
    async def test_run_once_uses_clock(self, db, clock):
        identity = await _identity(db)
        manager = SessionManager(SECRET, ttl_seconds=60)
        async with db.get_session() as session:
            await manager.create(session, identity, "tok", now=clock())
        sweeper = SessionSweeper(db, manager, clock=clock)
        assert await sweeper.run_once() == 0
        clock.advance(60)
        assert await sweeper.run_once() == 1

    async def test_start_and_stop(self, db, manager):
        sweeper = SessionSweeper(db, manager, interval_seconds=0.01)
        sweeper.start()
        assert sweeper.running
        await asyncio.sleep(0.05)
        await sweeper.stop()
        assert not sweeper.running

    async def test_start_twice_keeps_one_task(self, db, manager):
        sweeper = SessionSweeper(db, manager, interval_seconds=10)
        sweeper.start()
        first = sweeper._task
        sweeper.start()
        assert sweeper._task is first
        await sweeper.stop()

    async def test_failed_tick_keeps_loop_alive(self, manager):
        class BrokenDB:
            def __init__(self):
                self.calls = 0

            def get_session(self):
                self.calls += 1
                raise RuntimeError("store down")

        broken = BrokenDB()
        sweeper = SessionSweeper(broken, manager, interval_seconds=0.01)
        sweeper.start()
        await asyncio.sleep(0.1)
        assert sweeper.running
        assert broken.calls >= 2
        await sweeper.stop()

    async def test_stop_without_start(self, db, manager):
        sweeper = SessionSweeper(db, manager)
        await sweeper.stop()
        assert not sweeper.running
