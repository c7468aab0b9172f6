import asyncio
import inspect
import os
from datetime import datetime, timedelta, timezone

# Ambiente mínimo antes de qualquer import que carregue `settings`
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-testing-only-do-not-use-in-production")
os.environ.setdefault("INTERNAL_API_KEY", "test-internal-api-key")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("REFRESH_COOKIE_SECURE", "false")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest  # noqa: E402

from session_auth.core.config import Settings  # noqa: E402
from session_auth.core.logging import configure_logging  # noqa: E402
from session_auth.services.token_service import build_memory_service  # noqa: E402

configure_logging("WARNING")

TEST_SECRET_KEY = "test-secret-key-for-testing-only-do-not-use-in-production"
TEST_API_KEY = "test-internal-api-key"


class FrozenClock:
    """Relógio virtual: só anda quando o teste manda."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


def pytest_pyfunc_call(pyfuncitem):
    if inspect.iscoroutinefunction(pyfuncitem.obj):
        call_kwargs = {
            name: pyfuncitem.funcargs[name]
            for name in pyfuncitem._fixtureinfo.argnames
            if name in pyfuncitem.funcargs
        }
        asyncio.run(pyfuncitem.obj(**call_kwargs))
        return True
    return None


def pytest_configure(config):
    config.addinivalue_line("markers", "asyncio: mark test as async")


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        SECRET_KEY=TEST_SECRET_KEY,
        INTERNAL_API_KEY=TEST_API_KEY,
        RATE_LIMIT_ENABLED=False,
        REFRESH_COOKIE_SECURE=False,
        SESSION_STORE_BACKEND="memory",
    )


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def service(test_settings, clock):
    return build_memory_service(test_settings, clock=clock)
