# session_auth/crud/crud_token_family.py
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import delete, select, update
from sqlalchemy.orm import sessionmaker

from session_auth.crud.base import FamilyRegistry
from session_auth.crud.sql_common import from_db_datetime, to_db_datetime, transaction
from session_auth.models.refresh_token import BlacklistedToken, RefreshToken
from session_auth.models.refresh_token import TokenFamily as TokenFamilyModel
from session_auth.schemas.session import TokenFamily


def _to_family(row: TokenFamilyModel) -> TokenFamily:
    return TokenFamily(
        family_id=row.family_id,
        user_id=row.user_id,
        created_at=from_db_datetime(row.created_at),
        last_used=from_db_datetime(row.last_used),
        rotation_count=row.rotation_count,
        compromised=row.compromised,
    )


class SqlFamilyRegistry(FamilyRegistry):
    """FamilyRegistry sobre SQLAlchemy async. Cada método roda numa transação própria."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    async def create(self, user_id: str, now: datetime) -> TokenFamily:
        row = TokenFamilyModel(
            family_id=str(uuid.uuid4()),
            user_id=user_id,
            created_at=to_db_datetime(now),
            last_used=to_db_datetime(now),
            rotation_count=0,
            compromised=False,
        )
        async with transaction(self._session_factory, "family_create") as db:
            db.add(row)
        return _to_family(row)

    async def get(self, family_id: str) -> Optional[TokenFamily]:
        async with transaction(self._session_factory, "family_get") as db:
            row = await db.get(TokenFamilyModel, family_id)
            return _to_family(row) if row else None

    async def mark_compromised(self, family_id: str) -> bool:
        async with transaction(self._session_factory, "family_mark_compromised") as db:
            result = await db.execute(
                update(TokenFamilyModel)
                .where(TokenFamilyModel.family_id == family_id)
                .values(compromised=True)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount > 0

    async def touch(self, family_id: str, now: datetime) -> Optional[TokenFamily]:
        async with transaction(self._session_factory, "family_touch") as db:
            result = await db.execute(
                update(TokenFamilyModel)
                .where(TokenFamilyModel.family_id == family_id)
                .values(
                    last_used=to_db_datetime(now),
                    rotation_count=TokenFamilyModel.rotation_count + 1,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                return None
            row = await db.get(TokenFamilyModel, family_id, populate_existing=True)
            return _to_family(row) if row else None

    async def mark_compromised_for_user(self, user_id: str) -> int:
        async with transaction(self._session_factory, "family_mark_compromised_for_user") as db:
            result = await db.execute(
                update(TokenFamilyModel)
                .where(TokenFamilyModel.user_id == user_id)
                .values(compromised=True)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount

    async def delete_for_user(self, user_id: str, now: datetime) -> int:
        family_ids = select(TokenFamilyModel.family_id).where(TokenFamilyModel.user_id == user_id)
        async with transaction(self._session_factory, "family_delete_for_user") as db:
            # Registros gravados após a listagem do logout global entram na blacklist aqui
            leftovers = await db.execute(
                select(RefreshToken.token_hash, RefreshToken.family_id)
                .where(RefreshToken.family_id.in_(family_ids))
            )
            for token_hash, family_id in leftovers.all():
                await db.merge(BlacklistedToken(
                    token_hash=token_hash,
                    family_id=family_id,
                    consumed_at=to_db_datetime(now),
                ))
            await db.execute(
                delete(RefreshToken)
                .where(RefreshToken.family_id.in_(family_ids))
                .execution_options(synchronize_session=False)
            )
            result = await db.execute(
                delete(TokenFamilyModel)
                .where(TokenFamilyModel.user_id == user_id)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount

    async def purge_inactive(self, cutoff: datetime) -> int:
        async with transaction(self._session_factory, "family_purge_inactive") as db:
            result = await db.execute(
                delete(TokenFamilyModel)
                .where(TokenFamilyModel.last_used < to_db_datetime(cutoff))
                .execution_options(synchronize_session=False)
            )
            return result.rowcount
