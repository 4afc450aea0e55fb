"""
HTTP client utilities for the storage client
"""

import httpx
from typing import Optional, Dict, Any


class HttpClient:
    """
    HTTP client wrapper with connection pooling.

    Requests are sent once; retry policy belongs to the caller.
    """

    def __init__(
        self,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        options: Dict[str, Any] = {
            "limits": httpx.Limits(max_connections=100, max_keepalive_connections=100),
        }
        if timeout is not None:
            options["timeout"] = timeout
        if transport is not None:
            options["transport"] = transport
        self._client = httpx.AsyncClient(**options)

    async def put(
        self,
        url: str,
        content: Optional[bytes] = None,
        headers: Optional[Dict[str, str]] = None,
        **kwargs
    ) -> httpx.Response:
        """Make a PUT request."""
        return await self._client.request("PUT", url, content=content, headers=headers, **kwargs)

    async def stream_get(
        self,
        url: str,
        headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        """
        Make a GET request without reading the body.

        The caller must close the returned response with ``aclose()``.
        """
        request = self._client.build_request("GET", url, headers=headers)
        return await self._client.send(request, stream=True)

    async def delete(
        self,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        **kwargs
    ) -> httpx.Response:
        """Make a DELETE request."""
        return await self._client.request("DELETE", url, headers=headers, **kwargs)

    async def close(self):
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
