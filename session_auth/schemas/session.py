# session_auth/schemas/session.py
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class ClientMetadata(BaseModel):
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None


class RefreshTokenRecord(BaseModel):
    """Metadados de um refresh token ativo. Guarda apenas o hash, nunca o segredo."""

    model_config = ConfigDict(frozen=True)

    token_hash: str
    user_id: str
    email: str
    role: str
    family_id: str
    created_at: datetime
    expires_at: datetime
    rotation_count: int = 0
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now


class TokenFamily(BaseModel):
    """Linhagem de refresh tokens originada de um único login."""

    family_id: str
    user_id: str
    created_at: datetime
    last_used: datetime
    rotation_count: int = 0
    compromised: bool = False


class BlacklistEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    token_hash: str
    family_id: str
    consumed_at: datetime


class SessionInfo(BaseModel):
    """Visão pública de uma sessão ativa (sem hash nem segredo)."""

    family_id: str
    created_at: datetime
    expires_at: datetime
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None
    rotation_count: int
