# main.py
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Depends, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

# --- Imports do slowapi ---
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
# --- Fim imports slowapi ---

from session_auth.api.endpoints import auth, mgmt
from session_auth.api.dependencies import get_api_key
from session_auth.core.config import Settings, settings
from session_auth.core.exceptions import SessionStoreError
from session_auth.core.logging import configure_logging
from session_auth.services.token_service import (
    SessionTokenService, build_database_service, build_memory_service,
)

api_prefix = "/api/v1"


async def _build_service(app_settings: Settings) -> SessionTokenService:
    if app_settings.SESSION_STORE_BACKEND == "database":
        # Import tardio: só o backend durável precisa de engine/tabelas
        from session_auth.db.initial_data import ensure_schema
        from session_auth.db.session import get_async_engine, get_session_local

        await ensure_schema(get_async_engine(app_settings.DATABASE_URL))
        return build_database_service(app_settings, get_session_local())
    return build_memory_service(app_settings)


def create_app(app_settings: Settings = settings, service: Optional[SessionTokenService] = None) -> FastAPI:

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(app_settings.LOG_LEVEL, serialize=app_settings.LOG_JSON)
        token_service = service or await _build_service(app_settings)
        app.state.token_service = token_service
        logger.info(f"Session store backend: {app_settings.SESSION_STORE_BACKEND}")
        await token_service.cleanup.start()
        try:
            yield
        finally:
            await token_service.cleanup.stop()
            if app_settings.SESSION_STORE_BACKEND == "database" and service is None:
                from session_auth.db.session import dispose_engine
                logger.info("Shutting down: Disposing database engine...")
                await dispose_engine()

    app = FastAPI(
        title="Session Auth API",
        description="Emissão e rotação de tokens de sessão com detecção de reuso",
        version="1.0.0",
        lifespan=lifespan,
    )

    limiter = Limiter(
        key_func=get_remote_address,
        default_limits=[app_settings.RATE_LIMIT_DEFAULT],
        enabled=app_settings.RATE_LIMIT_ENABLED,
    )
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(SessionStoreError)
    async def session_store_error_handler(request: Request, exc: SessionStoreError):
        logger.error(f"Session store indisponível em {request.url.path}: {exc.operation}")
        return JSONResponse(status_code=503, content={"detail": "Service temporarily unavailable"})

    # --- Router de Autenticação ---
    # /refresh e /logout usam o refresh token; /me, /sessions e /logout-all exigem Bearer
    app.include_router(auth.router, prefix=f"{api_prefix}/auth", tags=["Authentication"])

    # --- Router de Gerenciamento ---
    # Protegido APENAS pela chave de API (emissão após login, revogação administrativa)
    app.include_router(
        mgmt.router,
        prefix=f"{api_prefix}/mgmt",
        tags=["Management"],
        dependencies=[Depends(get_api_key)],
    )

    @app.get("/")
    def read_root():
        return {"message": "Session Auth API is running!"}

    return app


app = create_app()
