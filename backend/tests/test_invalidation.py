"""
Tests for write-path cache invalidation.
"""

import pytest

from ledger.cache import CACHE_HEADER, CacheInvalidator, derive_cache_key

SESSION = "session-gamma"


async def warm(client, services, headers, session_id=SESSION):
    response = await client.get(f"/api/travel-data/{session_id}", headers=headers)
    await services.writer.drain()
    return response


class TestCacheInvalidator:
    """Test the invalidation gateway directly."""

    @pytest.mark.asyncio
    async def test_session_pages_are_dropped(self, services, fake_valkey):
        for key in (
            derive_cache_key(f"/api/travel-data/{SESSION}", {"page": "1"}),
            derive_cache_key(f"/api/travel-data/{SESSION}", {"page": "2"}),
            derive_cache_key("/api/travel-data/other", {"page": "1"}),
        ):
            await services.store.set_with_ttl(key, "{}", 60)

        deleted = await services.invalidator.invalidate_session(SESSION)

        assert deleted == 2
        assert list(fake_valkey.data) == [derive_cache_key("/api/travel-data/other", {"page": "1"})]

    @pytest.mark.asyncio
    async def test_missing_session_clears_namespace(self, services, fake_valkey):
        await services.store.set_with_ttl(derive_cache_key("/api/travel-data/a"), "{}", 60)
        await services.store.set_with_ttl(derive_cache_key("/api/travel-data/b"), "{}", 60)

        assert await services.invalidator.invalidate_session(None) == 2
        assert fake_valkey.data == {}

    @pytest.mark.asyncio
    async def test_sessions_are_deduplicated(self, services):
        calls = []
        invalidator = CacheInvalidator(services.store)

        async def record(pattern):
            calls.append(pattern)
            return 0

        invalidator.invalidate = record
        await invalidator.invalidate_sessions(["a", "a", "b"])

        assert calls == ["cache:/api/travel-data/a:*", "cache:/api/travel-data/b:*"]

    @pytest.mark.asyncio
    async def test_unavailable_cache_reports_zero(self, services):
        await services.store.close()
        assert await services.invalidator.invalidate_session(SESSION) == 0


class TestWritesInvalidate:
    """Test that every write makes the next read a miss showing the change."""

    @pytest.mark.asyncio
    async def test_create(self, client, services, auth_headers):
        assert (await warm(client, services, auth_headers)).json()["total"] == 0

        await client.post(
            "/api/travel-data", json={"session_id": SESSION, "voucher": "JV-1"}, headers=auth_headers
        )
        response = await client.get(f"/api/travel-data/{SESSION}", headers=auth_headers)

        assert response.headers[CACHE_HEADER] == "MISS"
        assert response.json()["total"] == 1

    @pytest.mark.asyncio
    async def test_update(self, client, services, auth_headers):
        created = (await client.post(
            "/api/travel-data", json={"session_id": SESSION, "pnr": "AB12CD"}, headers=auth_headers
        )).json()
        await warm(client, services, auth_headers)

        await client.patch(
            f"/api/travel-data/{created['id']}", json={"pnr": "QW34ER"}, headers=auth_headers
        )
        response = await client.get(f"/api/travel-data/{SESSION}", headers=auth_headers)

        assert response.headers[CACHE_HEADER] == "MISS"
        assert response.json()["data"][0]["pnr"] == "QW34ER"

    @pytest.mark.asyncio
    async def test_delete(self, client, services, auth_headers):
        created = (await client.post(
            "/api/travel-data", json={"session_id": SESSION}, headers=auth_headers
        )).json()
        await warm(client, services, auth_headers)

        await client.delete(f"/api/travel-data/{created['id']}", headers=auth_headers)
        response = await client.get(f"/api/travel-data/{SESSION}", headers=auth_headers)

        assert response.headers[CACHE_HEADER] == "MISS"
        assert response.json()["data"] == []

    @pytest.mark.asyncio
    async def test_other_sessions_stay_cached(self, client, services, auth_headers):
        await warm(client, services, auth_headers, session_id="untouched")

        await client.post(
            "/api/travel-data", json={"session_id": SESSION}, headers=auth_headers
        )
        response = await client.get("/api/travel-data/untouched", headers=auth_headers)

        assert response.headers[CACHE_HEADER] == "HIT"

    @pytest.mark.asyncio
    async def test_failed_write_keeps_entry(self, client, services, auth_headers):
        await warm(client, services, auth_headers)

        await client.patch(
            "/api/travel-data/00000000-0000-0000-0000-000000000000",
            json={"session_id": SESSION, "profit": 5},
            headers=auth_headers,
        )
        response = await client.get(f"/api/travel-data/{SESSION}", headers=auth_headers)

        assert response.headers[CACHE_HEADER] == "HIT"
