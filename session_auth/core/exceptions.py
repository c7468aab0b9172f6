# session_auth/core/exceptions.py
from enum import Enum


class TokenFailure(str, Enum):
    """Motivo interno de falha. Nunca exposto ao cliente HTTP."""

    INVALID_TOKEN = "invalid_token"
    EXPIRED_TOKEN = "expired_token"
    REUSE_DETECTED = "reuse_detected"
    FAMILY_COMPROMISED = "family_compromised"

    @property
    def is_security_event(self) -> bool:
        return self in (TokenFailure.REUSE_DETECTED, TokenFailure.FAMILY_COMPROMISED)


class ConfigurationError(Exception):
    """Levantada na inicialização quando a configuração é inválida (ex: SECRET_KEY curta)."""


class SessionStoreError(Exception):
    """Falha do backend de armazenamento (banco indisponível, erro de transação)."""
    def __init__(self, message="Session store unavailable", operation: str | None = None):
        self.message = message
        self.operation = operation
        super().__init__(self.message)
