import asyncio

import httpx
import pytest

from app.errors import StreamFailure
from app.models import MediaSource
from app.utils.streaming import MediaStreamer


class BrokenBody(httpx.AsyncByteStream):
    async def __aiter__(self):
        yield b"abcdefgh"
        raise httpx.ReadError("connection reset")

    async def aclose(self):
        pass


def _streamer(handler):
    return MediaStreamer(chunk_size=4, transport=httpx.MockTransport(handler))


def test_open_forwards_headers_and_relays_chunks():
    seen = []

    def handler(request):
        seen.append(request.headers.get("user-agent"))
        return httpx.Response(200, content=b"abcdefghij")

    async def scenario():
        streamer = _streamer(handler)
        upstream = await streamer.open(MediaSource(url="https://media.example/a", headers={"User-Agent": "UA"}))
        assert upstream.content_length == "10"
        chunks = [chunk async for chunk in upstream.iter_bytes()]
        assert upstream.response.is_closed
        await streamer.aclose()
        return chunks

    chunks = asyncio.run(scenario())
    assert b"".join(chunks) == b"abcdefghij"
    assert seen == ["UA"]


def test_open_rejects_error_status():
    async def scenario():
        streamer = _streamer(lambda request: httpx.Response(410))
        try:
            await streamer.open(MediaSource(url="https://media.example/gone"))
        finally:
            await streamer.aclose()

    with pytest.raises(StreamFailure, match="410"):
        asyncio.run(scenario())


def test_mid_stream_error_becomes_stream_failure():
    async def scenario():
        streamer = _streamer(lambda request: httpx.Response(200, stream=BrokenBody()))
        upstream = await streamer.open(MediaSource(url="https://media.example/broken"))
        received = []
        with pytest.raises(StreamFailure):
            async for chunk in upstream.iter_bytes():
                received.append(chunk)
        assert upstream.response.is_closed
        await streamer.aclose()
        return received

    assert b"".join(asyncio.run(scenario())) == b"abcdefgh"


def test_disconnect_closes_upstream():
    async def scenario():
        streamer = _streamer(lambda request: httpx.Response(200, content=b"x" * 64))
        upstream = await streamer.open(MediaSource(url="https://media.example/long"))
        body = upstream.iter_bytes()
        assert await body.__anext__() == b"xxxx"
        # what Starlette does when the client goes away
        await body.aclose()
        closed = upstream.response.is_closed
        await streamer.aclose()
        return closed

    assert asyncio.run(scenario())
