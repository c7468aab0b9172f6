# session_auth/api/dependencies.py
import secrets # Importar secrets para comparação segura

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import APIKeyHeader, OAuth2PasswordBearer

from session_auth.core.config import Settings
from session_auth.schemas.session import ClientMetadata
from session_auth.schemas.token import AccessTokenClaims
from session_auth.services.token_service import SessionTokenService

# tokenUrl aponta para o refresh: o login acontece fora deste serviço
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/refresh")

# Resposta única para qualquer falha de token (sem oráculo para o atacante)
INVALID_TOKEN_DETAIL = "Invalid or expired token"


def credentials_exception() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=INVALID_TOKEN_DETAIL,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_token_service(request: Request) -> SessionTokenService:
    return request.app.state.token_service


def get_settings(service: SessionTokenService = Depends(get_token_service)) -> Settings:
    return service.settings


def get_client_metadata(request: Request) -> ClientMetadata:
    return ClientMetadata(
        user_agent=request.headers.get("user-agent"),
        ip_address=request.client.host if request.client else None,
    )


async def get_current_claims(
    token: str = Depends(oauth2_scheme),
    service: SessionTokenService = Depends(get_token_service),
) -> AccessTokenClaims:
    outcome = service.verify_access(token)
    if not outcome.ok:
        raise credentials_exception()
    return outcome.value


# --- DEPENDÊNCIA DA CHAVE DE API (X-API-Key) ---
api_key_header_scheme = APIKeyHeader(name="X-API-Key")

async def get_api_key(
    api_key: str = Depends(api_key_header_scheme),
    settings: Settings = Depends(get_settings),
) -> str:
    """
    Verifica se a X-API-Key enviada no header é válida.
    """
    if not settings.INTERNAL_API_KEY:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="INTERNAL_API_KEY não está configurada no servidor",
        )
    # Compara as chaves de forma segura para evitar timing attacks
    if not secrets.compare_digest(api_key, settings.INTERNAL_API_KEY):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Chave de API inválida ou ausente",
        )
    return api_key
# --- FIM DEPENDÊNCIA DA CHAVE DE API ---
