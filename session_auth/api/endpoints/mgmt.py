# session_auth/api/endpoints/mgmt.py
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Path, status

from session_auth.api.dependencies import get_client_metadata, get_token_service
from session_auth.schemas.session import ClientMetadata
from session_auth.schemas.token import IssueTokenRequest, TokenPair
from session_auth.services.token_service import SessionTokenService

router = APIRouter()


@router.post("/sessions", response_model=TokenPair, status_code=status.HTTP_201_CREATED)
async def issue_session(
    *,
    identity: IssueTokenRequest,
    service: SessionTokenService = Depends(get_token_service),
    metadata: ClientMetadata = Depends(get_client_metadata),
) -> Any:
    """
    Emite um novo par de tokens para uma identidade já autenticada.
    Chamado pelo serviço de login (protegido pela X-API-Key, definido no main.py).

    Exemplo de Body:
    {
        "user_id": "user_123",
        "email": "user@example.com",
        "role": "admin"
    }
    """
    return await service.issue(identity.user_id, identity.email, identity.role, metadata)


@router.delete("/users/{user_id}/sessions", status_code=status.HTTP_204_NO_CONTENT)
async def revoke_user_sessions(
    *,
    user_id: str = Path(...),
    service: SessionTokenService = Depends(get_token_service),
):
    """Logout global de um usuário (ex: troca de senha, conta desativada)."""
    await service.revoke_all_for_user(user_id)
    return None


@router.delete("/families/{family_id}", status_code=status.HTTP_204_NO_CONTENT)
async def invalidate_family(
    *,
    family_id: str = Path(...),
    service: SessionTokenService = Depends(get_token_service),
):
    family = await service.families.get(family_id)
    if family is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Família não encontrada")
    await service.invalidate_family(family_id)
    return None
