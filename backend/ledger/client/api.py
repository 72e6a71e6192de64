"""
Async HTTP client for the travel-data resource.

Each call returns only after the server has confirmed the change, so the
caller can apply the confirmed record to its local view.
"""

import logging
from typing import Any, Dict, Optional

import httpx

logger = logging.getLogger(__name__)


class TravelDataAPIError(Exception):
    """The server rejected a travel-data request."""

    def __init__(self, status_code: int, message: str, payload: Optional[Dict[str, Any]] = None):
        self.status_code = status_code
        self.message = message
        self.payload = payload or {}
        super().__init__(f"{status_code}: {message}")


def normalize_record(item: Dict[str, Any]) -> Dict[str, Any]:
    """Make sure a record carries ``id`` even if the server sent only ``_id``."""
    record = dict(item or {})
    if record.get("id") is None and record.get("_id") is not None:
        record["id"] = record["_id"]
    return record


class TravelDataAPI:
    """
    Thin wrapper over ``/api/travel-data``.

    Args:
        base_url: Server root, e.g. ``http://localhost:8000``
        token: Bearer token sent with every request
        client: Existing httpx client to use; it is not closed by ``aclose``
        timeout: Request timeout in seconds for an owned client
    """

    def __init__(
        self,
        base_url: str = "",
        token: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ):
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)
        self.token = token

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        response = await self._client.request(method, path, headers=self._headers(), **kwargs)
        if response.status_code >= 400:
            try:
                payload = response.json()
            except ValueError:
                payload = {}
            message = payload.get("message") if isinstance(payload, dict) else None
            logger.debug(f"{method} {path} failed with {response.status_code}")
            raise TravelDataAPIError(
                response.status_code,
                message or response.reason_phrase,
                payload if isinstance(payload, dict) else None,
            )
        return response

    async def list_page(self, session_id: str, page: int = 1, page_size: int = 50) -> Dict[str, Any]:
        """Fetch one page of a session; records are normalized."""
        response = await self._request(
            "GET",
            f"/api/travel-data/{session_id}",
            params={"page": page, "pageSize": page_size},
        )
        body = response.json()
        data = body.get("data")
        body["data"] = [normalize_record(item) for item in data] if isinstance(data, list) else []
        return body

    async def create(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        response = await self._request("POST", "/api/travel-data", json=fields)
        return normalize_record(response.json())

    async def update(self, record_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        response = await self._request("PATCH", f"/api/travel-data/{record_id}", json=changes)
        return normalize_record(response.json())

    async def delete(self, record_id: str) -> None:
        await self._request("DELETE", f"/api/travel-data/{record_id}")

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()
