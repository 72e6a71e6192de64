"""
Tests for the fail-soft cache store adapter.

Covers configuration, bounded reconnection with capped exponential
backoff, observable state transitions and the degrade-to-miss behaviour
of every operation.
"""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from ledger.cache import (
    CacheConfig,
    CacheConfigurationError,
    CacheConnectionError,
    CacheState,
    CacheStore,
)


def make_store(fake, **overrides):
    config = CacheConfig(**{"max_retries": 3, "retry_base_delay": 0.1, "retry_max_delay": 3.0, **overrides})
    return CacheStore(config, client_factory=lambda config: fake)


class TestCacheConfig:
    """Test cache configuration."""

    def test_defaults(self):
        config = CacheConfig()
        assert config.host == "localhost"
        assert config.port == 6379
        assert config.default_ttl == 60
        assert config.max_retries == 10

    def test_settings_are_not_read_from_environment(self):
        with patch.dict("os.environ", {"VALKEY_HOST": "cache.internal", "CACHE_TTL_SECONDS": "30"}):
            config = CacheConfig()
        assert config.host == "localhost"
        assert config.default_ttl == 60
        assert not hasattr(CacheConfig, "from_env")

    def test_store_requires_config(self):
        with pytest.raises(TypeError):
            CacheStore()

    def test_backoff_doubles_and_caps(self):
        config = CacheConfig(retry_base_delay=0.1, retry_max_delay=3.0)
        assert config.backoff_delay(1) == pytest.approx(0.1)
        assert config.backoff_delay(2) == pytest.approx(0.2)
        assert config.backoff_delay(5) == pytest.approx(1.6)
        assert config.backoff_delay(10) == pytest.approx(3.0)

    def test_string_hides_password(self):
        assert "s3cret" not in str(CacheConfig(password="s3cret"))

    def test_pool_kwargs(self):
        kwargs = CacheConfig(max_connections=15, database=2).to_connection_pool_kwargs()
        assert kwargs["max_connections"] == 15
        assert kwargs["db"] == 2
        assert "password" not in kwargs

    def test_invalid_settings_rejected(self):
        with pytest.raises(CacheConfigurationError):
            CacheConfig(max_retries=0)
        with pytest.raises(CacheConfigurationError):
            CacheConfig(retry_base_delay=2.0, retry_max_delay=1.0)


class TestCacheStoreConnect:
    """Test connection lifecycle."""

    @pytest.mark.asyncio
    async def test_connect_success(self, fake_valkey):
        store = make_store(fake_valkey)
        transitions = []
        store.add_state_listener(lambda old, new: transitions.append((old, new)))

        await store.connect()

        assert store.is_connected
        assert store.state == CacheState.CONNECTED
        assert transitions == [(CacheState.DISCONNECTED, CacheState.CONNECTED)]

    @pytest.mark.asyncio
    async def test_connect_retries_with_backoff(self, fake_valkey):
        fake_valkey.ping_failures = 2
        store = make_store(fake_valkey)
        states = []
        store.add_state_listener(lambda old, new: states.append(new))

        with patch("ledger.cache.client.asyncio.sleep", new_callable=AsyncMock) as sleep:
            await store.connect()

        assert store.is_connected
        assert [call.args[0] for call in sleep.await_args_list] == [
            pytest.approx(0.1),
            pytest.approx(0.2),
        ]
        assert states == [CacheState.RECONNECTING, CacheState.CONNECTED]
        assert store.get_connection_info()["connection_attempts"] == 3

    @pytest.mark.asyncio
    async def test_connect_gives_up(self, fake_valkey):
        fake_valkey.ping_failures = 100
        store = make_store(fake_valkey)

        with patch("ledger.cache.client.asyncio.sleep", new_callable=AsyncMock):
            with pytest.raises(CacheConnectionError):
                await store.connect()

        assert store.state == CacheState.DISCONNECTED
        assert not store.is_connected
        assert fake_valkey.ping_failures == 97

    @pytest.mark.asyncio
    async def test_close_releases_client(self, fake_valkey):
        store = make_store(fake_valkey)
        await store.connect()
        await store.close()

        assert fake_valkey.closed
        assert store.state == CacheState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_listener_errors_do_not_break_transitions(self, fake_valkey):
        store = make_store(fake_valkey)

        def broken(old, new):
            raise RuntimeError("listener bug")

        store.add_state_listener(broken)
        await store.connect()
        assert store.is_connected


class TestCacheStoreOperations:
    """Test get / set / delete behaviour."""

    @pytest.mark.asyncio
    async def test_set_and_get(self, fake_valkey):
        store = make_store(fake_valkey)
        await store.connect()

        assert await store.set_with_ttl("cache:/a:1", '{"x":1}', 60)
        assert await store.get("cache:/a:1") == '{"x":1}'
        assert fake_valkey.ttl("cache:/a:1") == 60

    @pytest.mark.asyncio
    async def test_values_expire(self, fake_valkey):
        store = make_store(fake_valkey)
        await store.connect()
        await store.set_with_ttl("cache:/a:1", "v", 60)

        fake_valkey.advance(61)
        assert await store.get("cache:/a:1") is None

    @pytest.mark.asyncio
    async def test_non_positive_ttl_is_refused(self, fake_valkey):
        store = make_store(fake_valkey)
        await store.connect()

        assert not await store.set_with_ttl("cache:/a:1", "v", 0)
        assert fake_valkey.data == {}

    @pytest.mark.asyncio
    async def test_delete_matching_counts(self, fake_valkey):
        store = make_store(fake_valkey)
        await store.connect()
        for key in ("cache:/api/travel-data/s1:aaa", "cache:/api/travel-data/s1:bbb", "cache:/api/travel-data/s2:aaa"):
            await store.set_with_ttl(key, "v", 60)

        assert await store.delete_matching("cache:/api/travel-data/s1:*") == 2
        assert list(fake_valkey.data) == ["cache:/api/travel-data/s2:aaa"]

    @pytest.mark.asyncio
    async def test_operations_when_never_connected(self, fake_valkey):
        store = make_store(fake_valkey)

        assert await store.get("k") is None
        assert not await store.set_with_ttl("k", "v", 60)
        assert await store.delete_matching("*") == 0

    @pytest.mark.asyncio
    async def test_failure_degrades_and_reconnects(self, fake_valkey):
        store = make_store(fake_valkey)
        await store.connect()
        await store.set_with_ttl("k", "v", 60)

        fake_valkey.fail = True
        with patch("ledger.cache.client.asyncio.sleep", new_callable=AsyncMock):
            assert await store.get("k") is None
            assert store.state != CacheState.CONNECTED

            # Outage ends before the retry budget runs out
            fake_valkey.fail = False
            await asyncio.wait_for(store._reconnect_task, timeout=1)

        assert store.is_connected
        assert await store.get("k") == "v"
        await store.close()

    @pytest.mark.asyncio
    async def test_context_manager(self, fake_valkey):
        async with make_store(fake_valkey) as store:
            assert store.is_connected
        assert fake_valkey.closed
