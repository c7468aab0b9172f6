# session_auth/db/session.py
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker
from session_auth.core.config import settings
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncEngine # For type hinting

# --- Delay Engine and Session Creation ---
_async_engine: Optional[AsyncEngine] = None
_AsyncSessionLocal: Optional[sessionmaker] = None

def get_async_engine(database_url: Optional[str] = None) -> AsyncEngine:
    """Creates the engine if it doesn't exist yet."""
    global _async_engine
    if _async_engine is None:
        # O usuário é responsável por fornecer o driver async correto no .env
        # Ex: "postgresql+asyncpg://...", "sqlite+aiosqlite:///..."
        db_url = database_url or settings.DATABASE_URL
        if not db_url:
            raise RuntimeError("DATABASE_URL not loaded from settings. Check .env file and config.py")
        try:
            _async_engine = create_async_engine(
                db_url,
                pool_pre_ping=True,
                echo=False # Change to True to see SQL logs
            )
        except Exception as e:
            raise RuntimeError(f"Could not create async engine: {e}")
    return _async_engine

def make_session_factory(engine: AsyncEngine) -> sessionmaker:
    return sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )

def get_session_local() -> sessionmaker:
    """Creates the session factory if it doesn't exist yet."""
    global _AsyncSessionLocal
    if _AsyncSessionLocal is None:
        _AsyncSessionLocal = make_session_factory(get_async_engine())
    return _AsyncSessionLocal
# --- End Delay ---

# Function to dispose engine on shutdown (called from the app lifespan)
async def dispose_engine():
     global _async_engine, _AsyncSessionLocal
     if _async_engine:
         await _async_engine.dispose()
         _async_engine = None
         _AsyncSessionLocal = None
