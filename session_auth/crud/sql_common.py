# session_auth/crud/sql_common.py
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import sessionmaker

from session_auth.core.exceptions import SessionStoreError


def to_db_datetime(value: datetime) -> datetime:
    """Colunas DateTime guardam UTC naive (mesma convenção para SQLite e Postgres)."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def from_db_datetime(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@asynccontextmanager
async def transaction(session_factory: sessionmaker, operation: str) -> AsyncIterator[AsyncSession]:
    """Abre uma sessão com transação; commit ao sair, rollback em erro."""
    try:
        async with session_factory() as db:
            async with db.begin():
                yield db
    except SQLAlchemyError as e:
        logger.error(f"Erro no session store durante '{operation}': {e}")
        raise SessionStoreError(operation=operation) from e
