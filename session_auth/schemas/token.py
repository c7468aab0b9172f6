# session_auth/schemas/token.py
from pydantic import BaseModel, Field
from typing import Literal, Optional

class TokenPair(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int # segundos (900 com o default de 15 min)
    refresh_expires_in: int # segundos (604800 com o default de 7 dias)

class AccessTokenClaims(BaseModel):
    """Claims verificados de um access token."""
    user_id: str = Field(alias="sub")
    email: str
    role: str
    token_type: Literal["access"]
    exp: int

    model_config = {"populate_by_name": True}

class RefreshTokenRequest(BaseModel):
    # Opcional: o token também pode vir no cookie httpOnly
    refresh_token: Optional[str] = None

class IssueTokenRequest(BaseModel):
    """Identidade entregue pelo passo de login (já autenticado) para emissão de tokens."""
    user_id: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3)
    role: str = Field(..., min_length=1)
