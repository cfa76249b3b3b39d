import os
import sys
import asyncio

import pytest

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

# A sufficiently long JWT secret for tests
TEST_JWT_SECRET = "x" * 32
os.environ.setdefault("JWT_SECRET", TEST_JWT_SECRET)

from clubrank.stores import MemoryStoreBackend, SqlStoreBackend  # noqa: E402

SQLITE_MEMORY_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture(autouse=True)
def jwt_secret(monkeypatch):
    """Ensure a strong JWT secret is present and Sentry stays off for all tests."""
    monkeypatch.setenv("JWT_SECRET", TEST_JWT_SECRET)
    monkeypatch.delenv("SENTRY_DSN", raising=False)
    yield


@pytest.fixture
def loop():
    """Dedicated event loop for sync tests driving async store code."""

    loop = asyncio.new_event_loop()
    yield loop
    loop.close()


def make_backend(kind: str, loop: asyncio.AbstractEventLoop):
    if kind == "memory":
        return MemoryStoreBackend()
    backend = SqlStoreBackend.from_url(SQLITE_MEMORY_URL)
    loop.run_until_complete(backend.create_schema())
    return backend


@pytest.fixture(params=["memory", "sql"])
def backend(request, loop):
    """Every store backend, each starting empty."""

    backend = make_backend(request.param, loop)
    yield backend
    loop.run_until_complete(backend.dispose())
