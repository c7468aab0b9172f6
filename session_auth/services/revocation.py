# session_auth/services/revocation.py
from loguru import logger

from session_auth.core.clock import Clock, utc_now
from session_auth.core.logging import short_hash
from session_auth.core.security import hash_token
from session_auth.crud.base import FamilyRegistry, RefreshStore


class Revocation:
    """Invalidação explícita: uma sessão, todas as sessões de um usuário, ou uma família."""

    def __init__(self, store: RefreshStore, families: FamilyRegistry, clock: Clock = utc_now):
        self._store = store
        self._families = families
        self._clock = clock

    async def revoke_one(self, refresh_token: str) -> bool:
        """Consome (blacklist + remove) apenas este token. Não afeta a família."""
        token_hash = hash_token(refresh_token)
        record = await self._store.consume(token_hash, self._clock())
        if record is None:
            return False
        logger.info(f"Refresh token {short_hash(token_hash)} revogado (family {record.family_id}).")
        return True

    async def revoke_all_for_user(self, user_id: str) -> int:
        """
        Logout global: marca as famílias do usuário como comprometidas, consome
        todos os tokens e remove as famílias.

        O tombstone vem primeiro: uma rotação concorrente que já passou da
        checagem de família descarta o sucessor no `touch` pós-gravação.
        """
        now = self._clock()
        await self._families.mark_compromised_for_user(user_id)
        count = 0
        for record in await self._store.list_by_user(user_id):
            if await self._store.consume(record.token_hash, now) is not None:
                count += 1
        families_removed = await self._families.delete_for_user(user_id, now)
        # Backend sem FK: sucessores gravados entre a listagem e a remoção ficam órfãos
        for record in await self._store.list_by_user(user_id):
            if await self._families.get(record.family_id) is not None:
                continue
            if await self._store.consume(record.token_hash, now) is not None:
                count += 1
        logger.info(f"Revogados {count} refresh token(s) e {families_removed} família(s) do usuário {user_id}.")
        return count

    async def invalidate_family(self, family_id: str) -> int:
        """
        Marca a família como comprometida (tombstone) e consome todos os seus
        registros ativos. Usado na revogação explícita e na cascata de reuso.
        """
        await self._families.mark_compromised(family_id)
        now = self._clock()
        count = 0
        for record in await self._store.list_by_family(family_id):
            if await self._store.consume(record.token_hash, now) is not None:
                count += 1
        logger.info(f"Família {family_id} invalidada: {count} token(s) ativo(s) consumido(s).")
        return count
