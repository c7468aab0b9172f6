# session_auth/crud/base.py
from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from session_auth.schemas.session import BlacklistEntry, RefreshTokenRecord, TokenFamily


class RefreshStore(ABC):
    """
    Armazenamento de metadados de refresh tokens, endereçado por hash(segredo).

    `consume` é a primitiva atômica de toda a rotação/revogação: move o hash
    para a blacklist e remove o registro ativo numa única operação.
    """

    @abstractmethod
    async def put(self, record: RefreshTokenRecord) -> None: ...

    @abstractmethod
    async def get(self, token_hash: str) -> Optional[RefreshTokenRecord]: ...

    @abstractmethod
    async def delete(self, token_hash: str) -> bool: ...

    @abstractmethod
    async def list_by_user(self, user_id: str) -> List[RefreshTokenRecord]: ...

    @abstractmethod
    async def list_by_family(self, family_id: str) -> List[RefreshTokenRecord]: ...

    @abstractmethod
    async def consume(self, token_hash: str, now: datetime) -> Optional[RefreshTokenRecord]:
        """Retorna o registro consumido, ou None se outro chamador consumiu antes."""

    @abstractmethod
    async def get_blacklisted(self, token_hash: str) -> Optional[BlacklistEntry]: ...

    @abstractmethod
    async def purge_expired(self, now: datetime) -> int: ...

    @abstractmethod
    async def prune_blacklist(self, cutoff: datetime) -> int:
        """Remove entradas da blacklist com consumed_at < cutoff."""


class FamilyRegistry(ABC):

    @abstractmethod
    async def create(self, user_id: str, now: datetime) -> TokenFamily: ...

    @abstractmethod
    async def get(self, family_id: str) -> Optional[TokenFamily]: ...

    @abstractmethod
    async def mark_compromised(self, family_id: str) -> bool: ...

    @abstractmethod
    async def touch(self, family_id: str, now: datetime) -> Optional[TokenFamily]:
        """Atualiza last_used e incrementa rotation_count em 1."""

    @abstractmethod
    async def mark_compromised_for_user(self, user_id: str) -> int: ...

    @abstractmethod
    async def delete_for_user(self, user_id: str, now: datetime) -> int:
        """
        Remove as famílias do usuário. Backends com FK consomem (blacklist) na
        mesma transação qualquer registro ainda ligado a essas famílias.
        """

    @abstractmethod
    async def purge_inactive(self, cutoff: datetime) -> int:
        """Remove famílias com last_used < cutoff (nenhum token vivo pode restar)."""
