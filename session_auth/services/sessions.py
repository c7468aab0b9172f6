# session_auth/services/sessions.py
from typing import Dict, List

from session_auth.core.clock import Clock, utc_now
from session_auth.crud.base import FamilyRegistry, RefreshStore
from session_auth.schemas.session import SessionInfo


class SessionEnumerator:
    """Listagem somente-leitura das sessões ativas de um usuário."""

    def __init__(self, store: RefreshStore, families: FamilyRegistry, clock: Clock = utc_now):
        self._store = store
        self._families = families
        self._clock = clock

    async def list_sessions(self, user_id: str) -> List[SessionInfo]:
        now = self._clock()
        compromised: Dict[str, bool] = {}
        sessions: List[SessionInfo] = []
        for record in await self._store.list_by_user(user_id):
            if record.is_expired(now):
                continue
            if record.family_id not in compromised:
                family = await self._families.get(record.family_id)
                compromised[record.family_id] = family is None or family.compromised
            if compromised[record.family_id]:
                continue
            # O hash nunca sai daqui
            sessions.append(SessionInfo(
                family_id=record.family_id,
                created_at=record.created_at,
                expires_at=record.expires_at,
                user_agent=record.user_agent,
                ip_address=record.ip_address,
                rotation_count=record.rotation_count,
            ))
        sessions.sort(key=lambda s: s.created_at, reverse=True)
        return sessions
