# tests/conftest.py
import os

# Set up test environment variables BEFORE any other imports
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("DATABASE_URL", "")
os.environ.setdefault("KV_BACKEND", "memory")
os.environ.setdefault("OBJECT_BACKEND", "local")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from app.core.context import CoordinationContext
from app.database import build_engine
from app.main import create_app
from app.services.kv_store import KeyValueStore, MemoryKeyValueBackend
from app.services.object_store import LocalObjectBackend, ObjectStore


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def kv_store(clock):
    """Create a key-value store over the in-memory backend."""
    return KeyValueStore(MemoryKeyValueBackend(clock=clock))


@pytest.fixture
def object_store(tmp_path):
    """Create an object store over a temporary directory."""
    return ObjectStore(LocalObjectBackend(tmp_path / "objects"))


@pytest_asyncio.fixture
async def context(tmp_path, kv_store, object_store):
    """Create an initialized storage context on a throwaway SQLite database."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    ctx = CoordinationContext(engine, kv_store, object_store)
    await ctx.initialize()
    try:
        yield ctx
    finally:
        await ctx.close()


@pytest_asyncio.fixture
async def client(context):
    """Create a test client bound to the storage context."""
    app = create_app(context=context)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def unconfigured_client():
    """Create a test client for an app running without storage."""
    app = create_app(context=None)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


def sample_messages(count: int = 3) -> list[dict]:
    roles = ["user", "assistant"]
    return [
        {"id": f"m{i}", "role": roles[i % 2], "content": f"message {i}"}
        for i in range(1, count + 1)
    ]


@pytest.fixture
def messages():
    return sample_messages()
