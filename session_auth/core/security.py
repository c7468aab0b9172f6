# session_auth/core/security.py
import hashlib
import secrets
from datetime import timedelta
from typing import Any, Dict

from jose import jwt, JWTError
from loguru import logger
from pydantic import ValidationError

from .clock import Clock, utc_now
from .config import Settings, MIN_SECRET_KEY_BYTES
from .exceptions import ConfigurationError, TokenFailure
from .results import Outcome
from session_auth.schemas.token import AccessTokenClaims


def hash_token(token: str) -> str:
    """Hash determinístico e de mão única usado como chave do RefreshStore."""
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


class TokenIssuer:
    """
    Geração/verificação stateless de access tokens (JWT) e geração dos
    segredos opacos de refresh token.
    """

    def __init__(self, settings: Settings, clock: Clock = utc_now):
        if not settings.SECRET_KEY or len(settings.SECRET_KEY.encode('utf-8')) < MIN_SECRET_KEY_BYTES:
            raise ConfigurationError(f"SECRET_KEY must be at least {MIN_SECRET_KEY_BYTES} bytes")
        self._settings = settings
        self._clock = clock

    @property
    def access_ttl(self) -> timedelta:
        return timedelta(minutes=self._settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    def create_access_token(self, user_id: str, email: str, role: str) -> str:
        now = self._clock()
        expire = now + self.access_ttl
        to_encode: Dict[str, Any] = {
            "iss": self._settings.JWT_ISSUER,
            "aud": self._settings.JWT_AUDIENCE,
            "iat": int(now.timestamp()),
            "exp": int(expire.timestamp()),
            "jti": secrets.token_hex(8),
            "sub": str(user_id),
            "email": email,
            "role": role,
            "token_type": "access",
        }
        return jwt.encode(to_encode, self._settings.SECRET_KEY, algorithm=self._settings.ALGORITHM)

    def decode_access_token(self, token: str) -> Outcome[AccessTokenClaims]:
        """
        Verifica assinatura, iss/aud, expiração e token_type == "access".
        A expiração é comparada com o relógio do issuer, não com o relógio da lib.
        """
        try:
            payload = jwt.decode(
                token,
                self._settings.SECRET_KEY,
                algorithms=[self._settings.ALGORITHM],
                audience=self._settings.JWT_AUDIENCE,
                issuer=self._settings.JWT_ISSUER,
                options={"verify_exp": False},
            )
        except JWTError as e:
            logger.debug(f"Access token rejeitado: {e}")
            return Outcome.fail(TokenFailure.INVALID_TOKEN)

        # Rejeita refresh/outros tipos mesmo que bem formados
        if payload.get("token_type") != "access":
            logger.warning("Token com token_type incorreto apresentado como access token.")
            return Outcome.fail(TokenFailure.INVALID_TOKEN)

        try:
            claims = AccessTokenClaims.model_validate(payload)
        except ValidationError:
            return Outcome.fail(TokenFailure.INVALID_TOKEN)

        if claims.exp <= int(self._clock().timestamp()):
            return Outcome.fail(TokenFailure.EXPIRED_TOKEN)
        return Outcome.success(claims)

    def generate_refresh_secret(self) -> str:
        # token_urlsafe(64) -> 512 bits; nunca logar o retorno
        return secrets.token_urlsafe(self._settings.REFRESH_TOKEN_BYTES)
