# session_auth/core/logging.py
import sys
from typing import Any, Dict

from loguru import logger

_SENSITIVE_KEYS = ("token", "secret", "hash")


def _redact(value: Any) -> Any:
    if isinstance(value, str) and len(value) > 4:
        return value[:2] + "***" + value[-2:]
    return value


def redact_sensitive_extra(record: Dict[str, Any]) -> None:
    """Patcher do loguru: mascara campos `extra` com nomes sensíveis."""
    extra = record["extra"]
    for key in list(extra.keys()):
        if any(s in key.lower() for s in _SENSITIVE_KEYS):
            extra[key] = _redact(extra[key])


def short_hash(token_hash: str) -> str:
    """Prefixo do hash para logs; o hash completo nunca é logado."""
    return token_hash[:8]


def configure_logging(level: str = "INFO", serialize: bool = False) -> None:
    logger.remove()
    logger.configure(patcher=redact_sensitive_extra)
    logger.add(sys.stderr, level=level.upper(), serialize=serialize, backtrace=False, diagnose=False)
