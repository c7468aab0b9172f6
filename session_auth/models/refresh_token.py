# session_auth/models/refresh_token.py
from sqlalchemy import String, DateTime, ForeignKey, Integer, Boolean, Index
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime
from typing import Optional

from session_auth.db.base import Base

class TokenFamily(Base):
    __tablename__ = "token_families"

    family_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False) # UTC naive
    last_used: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    rotation_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    # Tombstone: registros desta família são inválidos mesmo antes de removidos
    compromised: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)


class RefreshToken(Base):
    __tablename__ = "refresh_tokens"

    # Armazena um HASH do token, não o token em si, por segurança
    token_hash: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(100), nullable=False)
    # CASCADE: um sucessor gravado durante o logout global some junto com a família
    family_id: Mapped[str] = mapped_column(
        ForeignKey("token_families.family_id", ondelete="CASCADE"), nullable=False, index=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    rotation_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    user_agent: Mapped[Optional[str]] = mapped_column(String(512))
    ip_address: Mapped[Optional[str]] = mapped_column(String(64))

    __table_args__ = (Index("ix_refresh_tokens_user_expires", "user_id", "expires_at"),)


class BlacklistedToken(Base):
    __tablename__ = "token_blacklist"

    # Sem FK: a entrada deve sobreviver à remoção da família (logout global)
    token_hash: Mapped[str] = mapped_column(String(64), primary_key=True)
    family_id: Mapped[str] = mapped_column(String(36), nullable=False)
    consumed_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
