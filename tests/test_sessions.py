from session_auth.core.security import hash_token
from session_auth.schemas.session import ClientMetadata

USER = ("user_123", "test@example.com", "admin")


async def test_lists_sessions_without_secrets(service, clock):
    first = await service.issue(*USER, ClientMetadata(user_agent="Mozilla/5.0 Test Browser", ip_address="192.168.1.1"))
    clock.advance(minutes=5)
    second = await service.issue(*USER, ClientMetadata(user_agent="curl/8.0", ip_address="10.1.1.1"))

    sessions = await service.list_sessions(USER[0])
    assert len(sessions) == 2

    # Mais recente primeiro
    assert sessions[0].user_agent == "curl/8.0"
    assert sessions[0].ip_address == "10.1.1.1"
    assert sessions[1].user_agent == "Mozilla/5.0 Test Browser"
    assert sessions[1].ip_address == "192.168.1.1"
    assert all(s.rotation_count == 0 for s in sessions)

    dumped = "".join(s.model_dump_json() for s in sessions)
    for pair in (first, second):
        assert pair.refresh_token not in dumped
        assert hash_token(pair.refresh_token) not in dumped
    assert "token_hash" not in dumped


async def test_rotation_count_and_expiry_visible(service, clock):
    pair = await service.issue(*USER)
    clock.advance(days=1)
    await service.rotate(pair.refresh_token)

    (session,) = await service.list_sessions(USER[0])
    assert session.rotation_count == 1
    assert session.created_at == clock()
    assert session.expires_at > clock()


async def test_expired_and_compromised_sessions_hidden(service, clock):
    stale = await service.issue(*USER)
    clock.advance(days=6)
    live = await service.issue(*USER)
    burned = await service.issue(*USER)
    burned_family = (await service.store.get(hash_token(burned.refresh_token))).family_id
    await service.families.mark_compromised(burned_family)

    clock.advance(days=1, seconds=1)
    sessions = await service.list_sessions(USER[0])

    live_family = (await service.store.get(hash_token(live.refresh_token))).family_id
    assert [s.family_id for s in sessions] == [live_family]
    # O registro expirado ainda existe fisicamente até o sweep
    assert await service.store.get(hash_token(stale.refresh_token)) is not None


async def test_no_sessions_for_unknown_user(service):
    assert await service.list_sessions("nobody") == []
