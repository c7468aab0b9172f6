# session_auth/crud/crud_refresh_token.py
from datetime import datetime
from typing import List, Optional

from sqlalchemy import delete
from sqlalchemy.future import select
from sqlalchemy.orm import sessionmaker

from session_auth.crud.base import RefreshStore
from session_auth.crud.sql_common import from_db_datetime, to_db_datetime, transaction
from session_auth.models.refresh_token import BlacklistedToken, RefreshToken
from session_auth.schemas.session import BlacklistEntry, RefreshTokenRecord


def _to_record(row: RefreshToken) -> RefreshTokenRecord:
    return RefreshTokenRecord(
        token_hash=row.token_hash,
        user_id=row.user_id,
        email=row.email,
        role=row.role,
        family_id=row.family_id,
        created_at=from_db_datetime(row.created_at),
        expires_at=from_db_datetime(row.expires_at),
        rotation_count=row.rotation_count,
        user_agent=row.user_agent,
        ip_address=row.ip_address,
    )


class SqlRefreshStore(RefreshStore):
    """RefreshStore sobre SQLAlchemy async (tabelas refresh_tokens / token_blacklist)."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    async def put(self, record: RefreshTokenRecord) -> None:
        async with transaction(self._session_factory, "put") as db:
            db.add(RefreshToken(
                token_hash=record.token_hash,
                user_id=record.user_id,
                email=record.email,
                role=record.role,
                family_id=record.family_id,
                created_at=to_db_datetime(record.created_at),
                expires_at=to_db_datetime(record.expires_at),
                rotation_count=record.rotation_count,
                user_agent=record.user_agent,
                ip_address=record.ip_address,
            ))

    async def get(self, token_hash: str) -> Optional[RefreshTokenRecord]:
        async with transaction(self._session_factory, "get") as db:
            row = await db.get(RefreshToken, token_hash)
            return _to_record(row) if row else None

    async def delete(self, token_hash: str) -> bool:
        async with transaction(self._session_factory, "delete") as db:
            result = await db.execute(
                delete(RefreshToken)
                .where(RefreshToken.token_hash == token_hash)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount == 1

    async def list_by_user(self, user_id: str) -> List[RefreshTokenRecord]:
        async with transaction(self._session_factory, "list_by_user") as db:
            result = await db.execute(select(RefreshToken).where(RefreshToken.user_id == user_id))
            return [_to_record(row) for row in result.scalars().all()]

    async def list_by_family(self, family_id: str) -> List[RefreshTokenRecord]:
        async with transaction(self._session_factory, "list_by_family") as db:
            result = await db.execute(select(RefreshToken).where(RefreshToken.family_id == family_id))
            return [_to_record(row) for row in result.scalars().all()]

    async def consume(self, token_hash: str, now: datetime) -> Optional[RefreshTokenRecord]:
        async with transaction(self._session_factory, "consume") as db:
            row = await db.get(RefreshToken, token_hash)
            if row is None:
                return None
            record = _to_record(row)
            # Só quem efetivamente removeu a linha vence; um DELETE concorrente vê 0 linhas
            result = await db.execute(
                delete(RefreshToken)
                .where(RefreshToken.token_hash == token_hash)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                return None
            await db.merge(BlacklistedToken(
                token_hash=token_hash,
                family_id=record.family_id,
                consumed_at=to_db_datetime(now),
            ))
            return record

    async def get_blacklisted(self, token_hash: str) -> Optional[BlacklistEntry]:
        async with transaction(self._session_factory, "get_blacklisted") as db:
            row = await db.get(BlacklistedToken, token_hash)
            if row is None:
                return None
            return BlacklistEntry(
                token_hash=row.token_hash,
                family_id=row.family_id,
                consumed_at=from_db_datetime(row.consumed_at),
            )

    async def purge_expired(self, now: datetime) -> int:
        async with transaction(self._session_factory, "purge_expired") as db:
            result = await db.execute(
                delete(RefreshToken)
                .where(RefreshToken.expires_at <= to_db_datetime(now))
                .execution_options(synchronize_session=False)
            )
            return result.rowcount

    async def prune_blacklist(self, cutoff: datetime) -> int:
        async with transaction(self._session_factory, "prune_blacklist") as db:
            result = await db.execute(
                delete(BlacklistedToken)
                .where(BlacklistedToken.consumed_at < to_db_datetime(cutoff))
                .execution_options(synchronize_session=False)
            )
            return result.rowcount
