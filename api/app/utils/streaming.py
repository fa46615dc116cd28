from typing import AsyncIterator, Dict, Optional

import httpx

from app.errors import StreamFailure
from app.models import MediaSource
from app.utils.logging import get_logger


logger = get_logger(__name__)


class UpstreamStream:
    """An opened upstream response whose body has not been read yet."""

    def __init__(self, response: httpx.Response, chunk_size: int, log_extra: Optional[Dict[str, str]] = None) -> None:
        self.response = response
        self.chunk_size = chunk_size
        self.log_extra = log_extra or {}
        self.bytes_sent = 0

    @property
    def content_length(self) -> Optional[str]:
        # aiter_bytes decodes, so an encoded body's length no longer matches
        if self.response.headers.get("content-encoding", "identity") != "identity":
            return None
        return self.response.headers.get("content-length")

    async def iter_bytes(self) -> AsyncIterator[bytes]:
        """Relay chunks as they arrive; always closes the upstream response.

        Cancellation (client disconnect) lands here as ``CancelledError`` and
        only triggers the ``finally`` block.
        """
        try:
            async for chunk in self.response.aiter_bytes(self.chunk_size):
                self.bytes_sent += len(chunk)
                yield chunk
        except httpx.HTTPError as exc:
            logger.error("stream aborted after %d bytes: %s", self.bytes_sent, exc, extra=self.log_extra)
            raise StreamFailure(f"Upstream stream failed: {exc}") from exc
        finally:
            await self.response.aclose()


class MediaStreamer:
    """Owns the shared ``httpx.AsyncClient`` used to pull media bytes."""

    def __init__(
        self,
        chunk_size: int = 64 * 1024,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.chunk_size = chunk_size
        # No read deadline: long downloads may idle between chunks
        self.client = httpx.AsyncClient(
            follow_redirects=True,
            timeout=httpx.Timeout(timeout, read=None),
            transport=transport,
        )

    async def open(self, source: MediaSource, log_extra: Optional[Dict[str, str]] = None) -> UpstreamStream:
        request = self.client.build_request("GET", source.url, headers=source.headers)
        try:
            response = await self.client.send(request, stream=True)
        except httpx.HTTPError as exc:
            raise StreamFailure(f"Could not reach media host: {exc}") from exc
        if response.status_code >= 400:
            await response.aclose()
            raise StreamFailure(f"Media host answered {response.status_code}")
        return UpstreamStream(response, self.chunk_size, log_extra)

    async def aclose(self) -> None:
        await self.client.aclose()
