import asyncio
import threading
from datetime import timedelta

from session_auth.core.exceptions import TokenFailure
from session_auth.core.security import hash_token
from session_auth.crud.memory_store import MemoryFamilyRegistry, MemoryRefreshStore
from session_auth.schemas.session import ClientMetadata
from session_auth.services.token_service import SessionTokenService

USER = ("user_123", "test@example.com", "admin")


async def test_issue_returns_verifiable_pair(service):
    pair = await service.issue(*USER)

    assert pair.expires_in == 900
    assert pair.refresh_expires_in == 604800
    assert pair.token_type == "bearer"

    claims = service.verify_access(pair.access_token)
    assert claims.ok
    assert (claims.value.user_id, claims.value.email, claims.value.role) == USER


async def test_refresh_token_rotates_exactly_once(service):
    pair = await service.issue(*USER)

    first = await service.rotate(pair.refresh_token)
    assert first.ok
    assert first.value.refresh_token != pair.refresh_token

    second = await service.rotate(pair.refresh_token)
    assert not second.ok


async def test_unknown_token_is_plain_invalid(service):
    outcome = await service.rotate("invalid-token")
    assert outcome.failure == TokenFailure.INVALID_TOKEN
    assert not outcome.failure.is_security_event


async def test_reuse_invalidates_whole_family(service):
    # issue(u1) -> P0; rotate(P0) -> P1; replay P0 -> reuse; rotate(P1) -> falha
    p0 = await service.issue(*USER)
    p1 = await service.rotate(p0.refresh_token)
    assert p1.ok
    record = await service.store.get(hash_token(p1.value.refresh_token))
    assert record.rotation_count == 1

    replay = await service.rotate(p0.refresh_token)
    assert replay.failure == TokenFailure.REUSE_DETECTED

    family = await service.families.get(record.family_id)
    assert family.compromised

    after = await service.rotate(p1.value.refresh_token)
    assert not after.ok
    assert after.failure.is_security_event
    assert await service.list_sessions(USER[0]) == []


async def test_chain_preserves_identity_and_counts(service):
    pair = await service.issue(*USER)
    family_id = (await service.store.get(hash_token(pair.refresh_token))).family_id

    token = pair.refresh_token
    for hop in range(1, 6):
        outcome = await service.rotate(token)
        assert outcome.ok
        token = outcome.value.refresh_token

        record = await service.store.get(hash_token(token))
        assert record.rotation_count == hop
        assert record.family_id == family_id
        assert (record.user_id, record.email, record.role) == USER

        claims = service.verify_access(outcome.value.access_token).value
        assert (claims.user_id, claims.email, claims.role) == USER

    family = await service.families.get(family_id)
    assert family.rotation_count == 5
    assert not family.compromised


async def test_rotation_records_new_client_metadata(service, clock):
    pair = await service.issue(*USER, ClientMetadata(user_agent="Browser/1", ip_address="10.0.0.1"))
    clock.advance(hours=1)

    outcome = await service.rotate(pair.refresh_token, ClientMetadata(user_agent="Browser/2", ip_address="10.0.0.2"))
    record = await service.store.get(hash_token(outcome.value.refresh_token))

    assert record.user_agent == "Browser/2"
    assert record.ip_address == "10.0.0.2"
    assert record.created_at == clock()
    assert record.expires_at == clock() + timedelta(days=7)


async def test_expired_token_fails_without_cascade(service, clock):
    p0 = await service.issue(*USER)
    family_id = (await service.store.get(hash_token(p0.refresh_token))).family_id

    clock.advance(days=7, seconds=1)
    outcome = await service.rotate(p0.refresh_token)
    assert outcome.failure == TokenFailure.EXPIRED_TOKEN

    # Falha suave: família intacta, registro removido, nada na blacklist
    assert not (await service.families.get(family_id)).compromised
    assert await service.store.get(hash_token(p0.refresh_token)) is None
    assert await service.store.get_blacklisted(hash_token(p0.refresh_token)) is None

    fresh = await service.issue(*USER)
    fresh_family = (await service.store.get(hash_token(fresh.refresh_token))).family_id
    assert fresh_family != family_id
    assert (await service.rotate(fresh.refresh_token)).ok


async def test_compromised_family_is_rechecked(service):
    pair = await service.issue(*USER)
    family_id = (await service.store.get(hash_token(pair.refresh_token))).family_id
    await service.families.mark_compromised(family_id)

    outcome = await service.rotate(pair.refresh_token)
    assert outcome.failure == TokenFailure.FAMILY_COMPROMISED
    assert await service.store.list_by_family(family_id) == []


class _RacingStore(MemoryRefreshStore):
    """Simula outro chamador consumindo o token entre o lookup e o consume."""

    async def get(self, token_hash):
        record = await super().get(token_hash)
        if record is not None:
            await super().consume(token_hash, record.created_at)
        return record


async def test_losing_consume_race_counts_as_reuse(test_settings, clock):
    service = SessionTokenService(test_settings, _RacingStore(), MemoryFamilyRegistry(), clock=clock)
    pair = await service.issue(*USER)
    family_id = (await service.store.list_by_user(USER[0]))[0].family_id

    outcome = await service.rotate(pair.refresh_token)
    assert outcome.failure == TokenFailure.REUSE_DETECTED
    assert (await service.families.get(family_id)).compromised


class _CascadeDuringRotation(MemoryFamilyRegistry):
    """Simula uma cascata concorrente que chega logo depois do put do sucessor."""

    async def touch(self, family_id, now):
        await self.mark_compromised(family_id)
        return await super().touch(family_id, now)


async def test_successor_does_not_survive_concurrent_cascade(test_settings, clock):
    service = SessionTokenService(test_settings, MemoryRefreshStore(), _CascadeDuringRotation(), clock=clock)
    pair = await service.issue(*USER)

    outcome = await service.rotate(pair.refresh_token)
    assert outcome.failure == TokenFailure.FAMILY_COMPROMISED
    assert await service.store.list_by_user(USER[0]) == []


def test_concurrent_rotations_allow_at_most_one_winner(service):
    pair = asyncio.run(service.issue(*USER))
    family_id = asyncio.run(service.store.list_by_user(USER[0]))[0].family_id

    workers = 8
    barrier = threading.Barrier(workers)
    outcomes = []
    lock = threading.Lock()

    def attempt():
        barrier.wait()
        outcome = asyncio.run(service.rotate(pair.refresh_token))
        with lock:
            outcomes.append(outcome)

    threads = [threading.Thread(target=attempt) for _ in range(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    winners = [o for o in outcomes if o.ok]
    losers = [o for o in outcomes if not o.ok]
    assert len(outcomes) == workers
    assert len(winners) <= 1
    assert all(o.failure.is_security_event for o in losers)
    assert asyncio.run(service.families.get(family_id)).compromised
    assert asyncio.run(service.list_sessions(USER[0])) == []


async def test_concurrent_rotations_in_one_event_loop(service):
    pair = await service.issue(*USER)

    outcomes = await asyncio.gather(*(service.rotate(pair.refresh_token) for _ in range(5)))

    assert sum(1 for o in outcomes if o.ok) <= 1
    assert await service.list_sessions(USER[0]) == []
