# session_auth/core/results.py
from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

from session_auth.core.exceptions import TokenFailure

T = TypeVar("T")


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Resultado explícito de uma operação com falhas esperadas.

    Exatamente um de `value` / `failure` está preenchido.
    """

    value: Optional[T] = None
    failure: Optional[TokenFailure] = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    @classmethod
    def success(cls, value: T) -> "Outcome[T]":
        return cls(value=value)

    @classmethod
    def fail(cls, failure: TokenFailure) -> "Outcome[T]":
        return cls(failure=failure)
