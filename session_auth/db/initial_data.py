# session_auth/db/initial_data.py
import asyncio
import os

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncEngine

from session_auth.db.base import Base
from session_auth.db.session import get_async_engine, dispose_engine

# Importar TODOS os modelos para que Base.metadata os conheça
from session_auth.models import refresh_token # noqa F401


async def ensure_schema(engine: AsyncEngine) -> None:
    """Cria as tabelas de sessão que ainda não existem (usado no startup da API)."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Tabelas do session store verificadas/criadas.")


async def init_db() -> None:
    logger.info("Iniciando a recriação do banco de dados (DROP ALL / CREATE ALL)...")
    engine = get_async_engine()
    async with engine.begin() as conn:
        logger.info("Removendo todas as tabelas existentes (se houver)...")
        await conn.run_sync(Base.metadata.drop_all)
        logger.info("Criando todas as tabelas definidas nos modelos...")
        await conn.run_sync(Base.metadata.create_all)
        logger.info("Tabelas criadas com sucesso.")

    logger.info("Processo de inicialização do banco de dados concluído.")
    await dispose_engine()


if __name__ == "__main__":
    # Política de loop de eventos do asyncio (importante no Windows)
    if os.name == 'nt':
        asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

    try:
        asyncio.run(init_db())
    except Exception:
        logger.exception("Ocorreu um erro durante a inicialização do banco de dados")
        raise
