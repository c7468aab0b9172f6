# session_auth/services/token_service.py
from typing import List, Optional

from loguru import logger

from session_auth.core.clock import Clock, utc_now
from session_auth.core.config import Settings
from session_auth.core.results import Outcome
from session_auth.core.security import TokenIssuer, hash_token
from session_auth.crud.base import FamilyRegistry, RefreshStore
from session_auth.crud.memory_store import MemoryFamilyRegistry, MemoryRefreshStore
from session_auth.schemas.session import ClientMetadata, SessionInfo
from session_auth.schemas.token import AccessTokenClaims, TokenPair
from session_auth.services.cleanup import CleanupSweep
from session_auth.services.revocation import Revocation
from session_auth.services.rotation import RotationEngine
from session_auth.services.sessions import SessionEnumerator


class SessionTokenService:
    """
    Fachada exposta à camada HTTP: issue, rotate, verify_access, revoke_one,
    revoke_all_for_user, invalidate_family, list_sessions.

    Os stores são construídos uma vez e injetados; nada aqui é estado de módulo.
    """

    def __init__(
        self,
        settings: Settings,
        store: RefreshStore,
        families: FamilyRegistry,
        clock: Clock = utc_now,
    ):
        self.settings = settings
        self.store = store
        self.families = families
        self._clock = clock
        self.issuer = TokenIssuer(settings, clock=clock)
        self.revocation = Revocation(store, families, clock=clock)
        self.rotation = RotationEngine(settings, self.issuer, store, families, self.revocation, clock=clock)
        self.sessions = SessionEnumerator(store, families, clock=clock)
        self.cleanup = CleanupSweep(settings, store, families, clock=clock)

    async def issue(
        self, user_id: str, email: str, role: str, metadata: Optional[ClientMetadata] = None
    ) -> TokenPair:
        """Emite um par novo no login, iniciando uma nova família."""
        # Família e primeiro registro com o mesmo instante: last_used nunca precede created_at
        now = self._clock()
        family = await self.families.create(user_id, now)
        secret = self.issuer.generate_refresh_secret()
        record = self.rotation.new_record(
            hash_token(secret),
            user_id=user_id,
            email=email,
            role=role,
            family_id=family.family_id,
            rotation_count=0,
            metadata=metadata,
            now=now,
        )
        await self.store.put(record)
        logger.info(f"Tokens emitidos para user {user_id} (family {family.family_id}).")
        return self.rotation.build_pair(record, secret)

    async def rotate(self, refresh_token: str, metadata: Optional[ClientMetadata] = None) -> Outcome[TokenPair]:
        return await self.rotation.rotate(refresh_token, metadata)

    def verify_access(self, access_token: str) -> Outcome[AccessTokenClaims]:
        return self.issuer.decode_access_token(access_token)

    async def revoke_one(self, refresh_token: str) -> bool:
        return await self.revocation.revoke_one(refresh_token)

    async def revoke_all_for_user(self, user_id: str) -> None:
        await self.revocation.revoke_all_for_user(user_id)

    async def invalidate_family(self, family_id: str) -> int:
        return await self.revocation.invalidate_family(family_id)

    async def list_sessions(self, user_id: str) -> List[SessionInfo]:
        return await self.sessions.list_sessions(user_id)


def build_memory_service(settings: Settings, clock: Clock = utc_now) -> SessionTokenService:
    return SessionTokenService(settings, MemoryRefreshStore(), MemoryFamilyRegistry(), clock=clock)


def build_database_service(settings: Settings, session_factory, clock: Clock = utc_now) -> SessionTokenService:
    # Import tardio: o backend em memória não precisa do SQLAlchemy carregado
    from session_auth.crud.crud_refresh_token import SqlRefreshStore
    from session_auth.crud.crud_token_family import SqlFamilyRegistry

    return SessionTokenService(
        settings, SqlRefreshStore(session_factory), SqlFamilyRegistry(session_factory), clock=clock
    )
