"""
HTTP transport for a REST-style system of record.

Route shape, per queued table:
    INSERT  → POST   {base_url}/{table}
    UPDATE  → PUT    {base_url}/{table}/{record_id}
    DELETE  → DELETE {base_url}/{table}/{record_id}

Record fields travel as the JSON body. Any non-2xx response or network
error becomes a TransportError, so the engine counts it as an item failure.
"""
import logging
from typing import Optional

import httpx

from fieldsync.models.mutation import Delete, Insert, Mutation, Update
from fieldsync.transport.base import RemoteTransport, TransportError

logger = logging.getLogger(__name__)


class HttpTransport(RemoteTransport):
    """Async client for the remote sync API."""

    def __init__(
        self,
        base_url: str,
        api_token: str = "",
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_token = api_token
        self.timeout = timeout
        self.client = client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the async HTTP client."""
        if self.client is None:
            headers = {"Accept": "application/json"}
            if self.api_token:
                headers["Authorization"] = f"Bearer {self.api_token}"
            self.client = httpx.AsyncClient(headers=headers, timeout=self.timeout)
        return self.client

    async def close(self) -> None:
        if self.client:
            await self.client.aclose()
            self.client = None

    def build_request(self, mutation: Mutation):
        """Return (method, url, json_body) for a mutation."""
        table_url = f"{self.base_url}/{mutation.table_name}"
        if isinstance(mutation, Insert):
            return "POST", table_url, mutation.fields
        if isinstance(mutation, Update):
            return "PUT", f"{table_url}/{mutation.record_id}", mutation.fields
        if isinstance(mutation, Delete):
            return "DELETE", f"{table_url}/{mutation.record_id}", None
        raise TypeError(f"Unsupported mutation type: {type(mutation).__name__}")

    async def dispatch(self, mutation: Mutation) -> None:
        method, url, body = self.build_request(mutation)
        client = await self._get_client()
        try:
            response = await client.request(method, url, json=body)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise TransportError(
                f"{method} {url} returned HTTP {e.response.status_code}: {e.response.text[:200]}"
            ) from e
        except httpx.HTTPError as e:
            raise TransportError(f"{method} {url} failed: {e}") from e
        logger.debug("%s %s → %s", method, url, response.status_code)
