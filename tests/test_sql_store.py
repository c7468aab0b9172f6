import asyncio
from datetime import timezone

import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine

from session_auth.core.exceptions import SessionStoreError, TokenFailure
from session_auth.core.security import hash_token
from session_auth.crud.crud_refresh_token import SqlRefreshStore
from session_auth.crud.crud_token_family import SqlFamilyRegistry
from session_auth.db.initial_data import ensure_schema
from session_auth.db.session import make_session_factory
from session_auth.schemas.session import ClientMetadata
from session_auth.services.token_service import SessionTokenService, build_database_service

USER = ("user_123", "test@example.com", "admin")


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'sessions.db'}"


def _enforce_foreign_keys(engine):
    # SQLite só aplica FK (como o Postgres) com o pragma ligado em cada conexão
    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


async def _engine(database_url):
    engine = create_async_engine(database_url)
    _enforce_foreign_keys(engine)
    await ensure_schema(engine)
    return engine


async def _service(database_url, test_settings, clock):
    engine = await _engine(database_url)
    return engine, build_database_service(test_settings, make_session_factory(engine), clock=clock)


async def test_rotation_and_reuse_cascade(database_url, test_settings, clock):
    engine, service = await _service(database_url, test_settings, clock)
    try:
        p0 = await service.issue(*USER, ClientMetadata(user_agent="Browser/1", ip_address="10.0.0.1"))
        p1 = await service.rotate(p0.refresh_token)
        assert p1.ok

        record = await service.store.get(hash_token(p1.value.refresh_token))
        assert record.rotation_count == 1
        assert record.expires_at.tzinfo is not None
        assert record.expires_at == clock().astimezone(timezone.utc) + service.rotation.refresh_ttl

        family = await service.families.get(record.family_id)
        assert family.rotation_count == 1

        replay = await service.rotate(p0.refresh_token)
        assert replay.failure == TokenFailure.REUSE_DETECTED
        assert (await service.families.get(record.family_id)).compromised
        assert not (await service.rotate(p1.value.refresh_token)).ok
    finally:
        await engine.dispose()


async def test_consume_is_single_use(database_url, test_settings, clock):
    engine, service = await _service(database_url, test_settings, clock)
    try:
        pair = await service.issue(*USER)
        token_hash = hash_token(pair.refresh_token)

        assert (await service.store.consume(token_hash, clock())) is not None
        assert (await service.store.consume(token_hash, clock())) is None
        entry = await service.store.get_blacklisted(token_hash)
        assert entry is not None
        assert entry.consumed_at == clock()
    finally:
        await engine.dispose()


async def test_sessions_revocation_and_cleanup(database_url, test_settings, clock):
    engine, service = await _service(database_url, test_settings, clock)
    try:
        first = await service.issue(*USER, ClientMetadata(user_agent="A", ip_address="1.1.1.1"))
        await service.issue(*USER, ClientMetadata(user_agent="B", ip_address="2.2.2.2"))
        assert {s.user_agent for s in await service.list_sessions(USER[0])} == {"A", "B"}

        assert await service.revoke_one(first.refresh_token) is True
        assert [s.user_agent for s in await service.list_sessions(USER[0])] == ["B"]

        clock.advance(days=7, seconds=test_settings.CLOCK_SKEW_SECONDS + 1)
        report = await service.cleanup.run_once()
        assert report.expired_tokens == 1
        assert report.pruned_blacklist == 1
        assert report.pruned_families == 2
        assert await service.store.list_by_user(USER[0]) == []
    finally:
        await engine.dispose()


async def test_revoke_all_for_user(database_url, test_settings, clock):
    engine, service = await _service(database_url, test_settings, clock)
    try:
        a = await service.issue(*USER)
        b = await service.issue(*USER)
        await service.revoke_all_for_user(USER[0])

        assert not (await service.rotate(a.refresh_token)).ok
        assert not (await service.rotate(b.refresh_token)).ok
        assert await service.list_sessions(USER[0]) == []
    finally:
        await engine.dispose()


class _RotateDuringListing(SqlRefreshStore):
    """Uma rotação do mesmo usuário chega enquanto o logout global lista os registros."""

    service = None
    token = None
    outcome = None

    async def list_by_user(self, user_id):
        if self.token is not None:
            token, self.token = self.token, None
            self.outcome = await self.service.rotate(token)
        return await super().list_by_user(user_id)


async def test_revoke_all_with_rotation_in_flight(database_url, test_settings, clock):
    engine = await _engine(database_url)
    try:
        factory = make_session_factory(engine)
        store = _RotateDuringListing(factory)
        service = SessionTokenService(test_settings, store, SqlFamilyRegistry(factory), clock=clock)
        pair = await service.issue(*USER)
        store.service, store.token = service, pair.refresh_token

        await service.revoke_all_for_user(USER[0])

        assert not store.outcome.ok
        assert store.outcome.failure.is_security_event
        assert not (await service.rotate(pair.refresh_token)).ok
        assert await service.list_sessions(USER[0]) == []
        assert await service.store.list_by_user(USER[0]) == []
    finally:
        await engine.dispose()


class _SuccessorBeforeFamilyDelete(SqlFamilyRegistry):
    """Um sucessor é gravado depois da listagem, logo antes da remoção das famílias."""

    store = None
    late_record = None

    async def delete_for_user(self, user_id, now):
        if self.late_record is not None:
            await self.store.put(self.late_record)
        return await super().delete_for_user(user_id, now)


async def test_revoke_all_blacklists_late_successor(database_url, test_settings, clock):
    engine = await _engine(database_url)
    try:
        factory = make_session_factory(engine)
        families = _SuccessorBeforeFamilyDelete(factory)
        service = SessionTokenService(test_settings, SqlRefreshStore(factory), families, clock=clock)
        pair = await service.issue(*USER)
        family_id = (await service.store.get(hash_token(pair.refresh_token))).family_id

        secret = service.issuer.generate_refresh_secret()
        families.store = service.store
        families.late_record = service.rotation.new_record(
            hash_token(secret),
            user_id=USER[0],
            email=USER[1],
            role=USER[2],
            family_id=family_id,
            rotation_count=1,
            metadata=None,
        )

        await service.revoke_all_for_user(USER[0])

        assert await service.families.get(family_id) is None
        assert await service.store.get(hash_token(secret)) is None
        assert await service.store.get_blacklisted(hash_token(secret)) is not None
        assert (await service.rotate(secret)).failure == TokenFailure.REUSE_DETECTED
    finally:
        await engine.dispose()


async def test_concurrent_rotations_on_database_backend(database_url, test_settings, clock):
    engine, service = await _service(database_url, test_settings, clock)
    try:
        pair = await service.issue(*USER)

        outcomes = await asyncio.gather(*(service.rotate(pair.refresh_token) for _ in range(6)))

        losers = [o for o in outcomes if not o.ok]
        assert len(outcomes) - len(losers) <= 1
        assert all(o.failure.is_security_event for o in losers)
        assert await service.list_sessions(USER[0]) == []
    finally:
        await engine.dispose()


async def test_backend_errors_surface_as_store_error(tmp_path, clock):
    # Banco sem tabelas: qualquer operação falha no SQLAlchemy
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'empty.db'}")
    try:
        store = SqlRefreshStore(make_session_factory(engine))
        with pytest.raises(SessionStoreError):
            await store.get("deadbeef")
    finally:
        await engine.dispose()
