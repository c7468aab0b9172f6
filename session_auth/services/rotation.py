# session_auth/services/rotation.py
from datetime import datetime, timedelta
from typing import Optional

from loguru import logger

from session_auth.core.clock import Clock, utc_now
from session_auth.core.config import Settings
from session_auth.core.exceptions import TokenFailure
from session_auth.core.logging import short_hash
from session_auth.core.results import Outcome
from session_auth.core.security import TokenIssuer, hash_token
from session_auth.crud.base import FamilyRegistry, RefreshStore
from session_auth.schemas.session import ClientMetadata, RefreshTokenRecord
from session_auth.schemas.token import TokenPair
from session_auth.services.revocation import Revocation


class RotationEngine:
    """
    Troca um refresh token válido por um novo par, invalidando o apresentado.

    O lookup e o consumo são separados, mas só o `consume` atômico do store
    decide quem vence: um chamador que viu o registro e perdeu a corrida é
    tratado como reuso.
    """

    def __init__(
        self,
        settings: Settings,
        issuer: TokenIssuer,
        store: RefreshStore,
        families: FamilyRegistry,
        revocation: Revocation,
        clock: Clock = utc_now,
    ):
        self._settings = settings
        self._issuer = issuer
        self._store = store
        self._families = families
        self._revocation = revocation
        self._clock = clock

    @property
    def refresh_ttl(self) -> timedelta:
        return timedelta(days=self._settings.REFRESH_TOKEN_EXPIRE_DAYS)

    def build_pair(self, record: RefreshTokenRecord, refresh_token: str) -> TokenPair:
        return TokenPair(
            access_token=self._issuer.create_access_token(record.user_id, record.email, record.role),
            refresh_token=refresh_token,
            expires_in=self._settings.access_token_ttl_seconds,
            refresh_expires_in=self._settings.refresh_token_ttl_seconds,
        )

    def new_record(
        self,
        token_hash: str,
        *,
        user_id: str,
        email: str,
        role: str,
        family_id: str,
        rotation_count: int,
        metadata: Optional[ClientMetadata],
        now: Optional[datetime] = None,
    ) -> RefreshTokenRecord:
        now = now or self._clock()
        metadata = metadata or ClientMetadata()
        return RefreshTokenRecord(
            token_hash=token_hash,
            user_id=user_id,
            email=email,
            role=role,
            family_id=family_id,
            created_at=now,
            expires_at=now + self.refresh_ttl,
            rotation_count=rotation_count,
            user_agent=metadata.user_agent,
            ip_address=metadata.ip_address,
        )

    async def _security_failure(
        self, failure: TokenFailure, family_id: str, token_hash: str, user_id: Optional[str] = None
    ) -> Outcome[TokenPair]:
        logger.bind(security_event=True, family_id=family_id, failure=failure.value).warning(
            f"SECURITY: {failure.value} para refresh token {short_hash(token_hash)} "
            f"(family {family_id}, user {user_id or '?'}); invalidando a família."
        )
        await self._revocation.invalidate_family(family_id)
        return Outcome.fail(failure)

    async def rotate(self, refresh_token: str, metadata: Optional[ClientMetadata] = None) -> Outcome[TokenPair]:
        token_hash = hash_token(refresh_token)

        record = await self._store.get(token_hash)
        if record is None:
            entry = await self._store.get_blacklisted(token_hash)
            if entry is not None:
                # Segredo já consumido sendo reapresentado: possível roubo
                return await self._security_failure(TokenFailure.REUSE_DETECTED, entry.family_id, token_hash)
            logger.debug(f"Refresh token {short_hash(token_hash)} desconhecido.")
            return Outcome.fail(TokenFailure.INVALID_TOKEN)

        now = self._clock()
        if record.is_expired(now):
            # Falha "suave": sem cascata
            await self._store.delete(token_hash)
            logger.info(f"Refresh token {short_hash(token_hash)} expirado (user {record.user_id}).")
            return Outcome.fail(TokenFailure.EXPIRED_TOKEN)

        family = await self._families.get(record.family_id)
        if family is None or family.compromised:
            return await self._security_failure(
                TokenFailure.FAMILY_COMPROMISED, record.family_id, token_hash, record.user_id
            )

        consumed = await self._store.consume(token_hash, now)
        if consumed is None:
            # Outro chamador consumiu entre o lookup e o consume
            return await self._security_failure(
                TokenFailure.REUSE_DETECTED, record.family_id, token_hash, record.user_id
            )

        new_secret = self._issuer.generate_refresh_secret()
        new_record = self.new_record(
            hash_token(new_secret),
            user_id=consumed.user_id,
            email=consumed.email,
            role=consumed.role,
            family_id=consumed.family_id,
            rotation_count=consumed.rotation_count + 1,
            metadata=metadata,
        )
        await self._store.put(new_record)

        family = await self._families.touch(consumed.family_id, self._clock())
        if family is None or family.compromised:
            # Cascata concorrente entre o consume e o put: o sucessor não pode sobreviver
            await self._store.consume(new_record.token_hash, self._clock())
            return await self._security_failure(
                TokenFailure.FAMILY_COMPROMISED, consumed.family_id, token_hash, consumed.user_id
            )

        logger.debug(
            f"Refresh token rotacionado para user {consumed.user_id} "
            f"(family {consumed.family_id}, rotation {new_record.rotation_count})."
        )
        return Outcome.success(self.build_pair(new_record, new_secret))
