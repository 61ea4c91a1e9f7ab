"""httpx-backed transport."""
import httpx
import structlog

from .base import Transport, TransportResponse

log = structlog.get_logger()


class HttpxTransport(Transport):
    """Transport implementation on top of httpx.AsyncClient.

    Timeouts and cancellation are httpx's; no retries are attempted.
    """

    def __init__(self, timeout: float = 10.0, client: httpx.AsyncClient | None = None):
        """
        Initialize httpx transport.

        Args:
            timeout: Per-request timeout in seconds (ignored when client is given)
            client: Pre-built client, e.g. one wired to an ASGI app in tests
        """
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def request(
        self,
        method: str,
        url: str,
        content: bytes | None = None,
        headers: dict[str, str] | None = None,
    ) -> TransportResponse:
        response = await self._client.request(method, url, content=content, headers=headers)
        log.debug(
            "transport.response",
            method=method,
            url=url,
            status_code=response.status_code,
        )
        return TransportResponse(
            status_code=response.status_code,
            content=response.content,
            headers=dict(response.headers),
        )

    async def close(self) -> None:
        """Close the underlying client if this transport created it."""
        if self._owns_client:
            await self._client.aclose()
