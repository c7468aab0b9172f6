# session_auth/api/endpoints/auth.py
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Request, Response, status
from loguru import logger

from session_auth.api.dependencies import (
    credentials_exception, get_client_metadata, get_current_claims, get_token_service,
)
from session_auth.core.config import Settings
from session_auth.schemas.session import ClientMetadata, SessionInfo
from session_auth.schemas.token import AccessTokenClaims, RefreshTokenRequest, TokenPair
from session_auth.services.token_service import SessionTokenService

router = APIRouter()


def _presented_refresh_token(
    request: Request, refresh_request: Optional[RefreshTokenRequest], settings: Settings
) -> Optional[str]:
    """Body tem precedência; senão usa o cookie httpOnly."""
    if refresh_request and refresh_request.refresh_token:
        return refresh_request.refresh_token
    return request.cookies.get(settings.REFRESH_COOKIE_NAME)


def set_refresh_cookie(response: Response, token_pair: TokenPair, settings: Settings) -> None:
    response.set_cookie(
        key=settings.REFRESH_COOKIE_NAME,
        value=token_pair.refresh_token,
        max_age=token_pair.refresh_expires_in,
        httponly=True,
        secure=settings.REFRESH_COOKIE_SECURE,
        samesite="strict",
        path="/api/v1/auth",
    )


@router.post("/refresh", response_model=TokenPair)
async def refresh_access_token(
    *,
    request: Request,
    response: Response,
    refresh_request: Optional[RefreshTokenRequest] = None,
    service: SessionTokenService = Depends(get_token_service),
    metadata: ClientMetadata = Depends(get_client_metadata),
) -> Any:
    """
    Rotaciona o refresh token (body ou cookie) e retorna um novo par.
    Qualquer falha (inválido, expirado, reuso, família comprometida) gera o mesmo 401.
    """
    refresh_token_str = _presented_refresh_token(request, refresh_request, service.settings)
    if not refresh_token_str:
        raise credentials_exception()

    outcome = await service.rotate(refresh_token_str, metadata)
    if not outcome.ok:
        raise credentials_exception()

    set_refresh_cookie(response, outcome.value, service.settings)
    return outcome.value


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    *,
    request: Request,
    response: Response,
    refresh_request: Optional[RefreshTokenRequest] = None,
    service: SessionTokenService = Depends(get_token_service),
):
    refresh_token_str = _presented_refresh_token(request, refresh_request, service.settings)
    if refresh_token_str:
        await service.revoke_one(refresh_token_str)
    response.delete_cookie(service.settings.REFRESH_COOKIE_NAME, path="/api/v1/auth")
    return None


@router.post("/logout-all", status_code=status.HTTP_204_NO_CONTENT)
async def logout_everywhere(
    *,
    response: Response,
    claims: AccessTokenClaims = Depends(get_current_claims),
    service: SessionTokenService = Depends(get_token_service),
):
    await service.revoke_all_for_user(claims.user_id)
    response.delete_cookie(service.settings.REFRESH_COOKIE_NAME, path="/api/v1/auth")
    logger.info(f"Logout global solicitado pelo usuário {claims.user_id}.")
    return None


@router.get("/me", response_model=AccessTokenClaims)
async def read_current_claims(claims: AccessTokenClaims = Depends(get_current_claims)) -> Any:
    return claims


@router.get("/sessions", response_model=List[SessionInfo])
async def list_my_sessions(
    claims: AccessTokenClaims = Depends(get_current_claims),
    service: SessionTokenService = Depends(get_token_service),
) -> Any:
    return await service.list_sessions(claims.user_id)


@router.delete("/sessions/{family_id}", status_code=status.HTTP_204_NO_CONTENT)
async def revoke_my_session(
    *,
    family_id: str = Path(...),
    claims: AccessTokenClaims = Depends(get_current_claims),
    service: SessionTokenService = Depends(get_token_service),
):
    """Encerra uma sessão (família) do próprio usuário, ex: "sair deste dispositivo"."""
    family = await service.families.get(family_id)
    # Família de outro usuário responde igual a inexistente
    if family is None or family.user_id != claims.user_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Sessão não encontrada")
    await service.invalidate_family(family_id)
    return None
