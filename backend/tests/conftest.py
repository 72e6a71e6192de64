"""
Shared fixtures for the ledger tests.

The Valkey server is replaced by ``FakeValkey``, an in-memory client with a
manual clock, injected through the store's client factory. Each test gets
its own SQLite database in a temporary directory.
"""

import re
from typing import Dict, Optional, Tuple

import httpx
import pytest
import pytest_asyncio
from valkey.exceptions import ConnectionError as ValkeyConnectionError

from ledger.api.deps import AppServices
from ledger.database import UserRepository
from ledger.main import create_app
from ledger.models.enums import UserRole, UserStatus
from ledger.utils.config import AppConfig
from ledger.utils.security import create_access_token


def _glob_to_regex(pattern: str) -> "re.Pattern[str]":
    """Translate a Valkey glob (with backslash escapes) to a regex."""
    parts = []
    i = 0
    while i < len(pattern):
        char = pattern[i]
        if char == "\\" and i + 1 < len(pattern):
            parts.append(re.escape(pattern[i + 1]))
            i += 2
            continue
        if char == "*":
            parts.append(".*")
        elif char == "?":
            parts.append(".")
        elif char == "[":
            end = pattern.find("]", i + 1)
            if end == -1:
                parts.append(re.escape(char))
            else:
                parts.append("[" + pattern[i + 1:end] + "]")
                i = end
        else:
            parts.append(re.escape(char))
        i += 1
    return re.compile("^" + "".join(parts) + "$", re.DOTALL)


class FakeValkey:
    """In-memory stand-in for ``valkey.asyncio.Valkey``."""

    def __init__(self):
        self.data: Dict[str, Tuple[str, Optional[float]]] = {}
        self.now = 0.0
        self.fail = False
        self.closed = False
        self.ping_failures = 0

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def _check(self) -> None:
        if self.fail:
            raise ValkeyConnectionError("simulated outage")

    def _live(self, key: str) -> Optional[str]:
        entry = self.data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and expires_at <= self.now:
            del self.data[key]
            return None
        return value

    def ttl(self, key: str) -> Optional[float]:
        entry = self.data.get(key)
        if entry is None or entry[1] is None:
            return None
        return entry[1] - self.now

    async def ping(self):
        if self.ping_failures > 0:
            self.ping_failures -= 1
            raise ValkeyConnectionError("connection refused")
        self._check()
        return True

    async def get(self, key):
        self._check()
        return self._live(key)

    async def set(self, key, value, ex=None):
        self._check()
        self.data[key] = (value, self.now + ex if ex else None)
        return True

    async def scan_iter(self, match=None, count=None):
        self._check()
        regex = _glob_to_regex(match or "*")
        for key in list(self.data):
            if self._live(key) is not None and regex.match(key):
                yield key

    async def delete(self, *keys):
        self._check()
        removed = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                removed += 1
        return removed

    async def aclose(self, close_connection_pool=False):
        self.closed = True


@pytest.fixture
def fake_valkey():
    return FakeValkey()


@pytest.fixture
def app_config(tmp_path):
    return AppConfig(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'ledger-test.db'}",
        jwt_secret="test-secret-key",
        cache_max_retries=3,
        cache_retry_base_delay=0,
        cache_retry_max_delay=0,
        upload_max_bytes=64 * 1024,
    )


@pytest_asyncio.fixture
async def services(app_config, fake_valkey):
    services = AppServices.from_config(app_config, client_factory=lambda config: fake_valkey)
    await services.open()
    yield services
    await services.close()


@pytest.fixture
def app(services):
    return create_app(services=services)


@pytest_asyncio.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app, raise_app_exceptions=False)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


async def _create_user(services, email, status):
    async with services.database.session() as session:
        return await UserRepository(session).create(
            email, email.split("@")[0].title(), UserRole.USER.value, status.value
        )


@pytest_asyncio.fixture
async def active_user(services):
    return await _create_user(services, "agent@example.com", UserStatus.ACTIVE)


@pytest_asyncio.fixture
async def inactive_user(services):
    return await _create_user(services, "former@example.com", UserStatus.INACTIVE)


@pytest.fixture
def auth_headers(app_config, active_user):
    token = create_access_token(active_user.id, app_config)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def inactive_headers(app_config, inactive_user):
    token = create_access_token(inactive_user.id, app_config)
    return {"Authorization": f"Bearer {token}"}
