"""Shared fixtures: temporary database, in-memory blob store, mocked Gemini client."""

import os
import base64

os.environ.setdefault("CHAT_DB_KEY", base64.urlsafe_b64encode(os.urandom(32)).decode())
os.environ.setdefault("GEMINI_API_KEY", "AIzaTestKey")
os.environ.setdefault("AI_AGENT", "gemini-test")

from types import SimpleNamespace  # noqa: E402
from unittest.mock import AsyncMock, MagicMock  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402

from studychat.core import db  # noqa: E402
from studychat.core.errors import ResourceError  # noqa: E402
from studychat.core.gemini_api import GeminiCompletion  # noqa: E402
from studychat.core.rate_limit import RateLimiter  # noqa: E402
from studychat.core.chat_service import ChatService  # noqa: E402


class MemoryStorage:
    """Blob store double keeping objects in a dict"""

    def __init__(self):
        self.objects = {}
        self.removed = []

    async def download(self, path):
        if path not in self.objects:
            raise ResourceError(f"Object not found: {path}")
        return self.objects[path]

    async def upload(self, path, data, content_type=None):
        self.objects[path] = data
        return path

    async def remove(self, path):
        self.objects.pop(path, None)
        self.removed.append(path)


class FakeClock:
    def __init__(self, start=1000.0):
        self.now = start
        self.sleeps = []

    def __call__(self):
        return self.now

    async def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


def make_gemini_client(*replies):
    client = MagicMock()
    responses = [SimpleNamespace(text=reply) for reply in (replies or ("Sure, here is an answer.",))]
    client.aio.models.generate_content = AsyncMock(side_effect=responses * 10)
    return client


@pytest_asyncio.fixture
async def database(tmp_path, monkeypatch):
    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'studychat.db'}")
    await db.dispose_engine()
    await db.init_db()
    yield
    await db.dispose_engine()


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def gemini_client():
    return make_gemini_client()


@pytest.fixture
def service(database, storage, gemini_client):
    return ChatService(
        completion=GeminiCompletion(client=gemini_client, model="gemini-test"),
        storage=storage,
        rate_limiter=RateLimiter(base_delay=0),
    )
