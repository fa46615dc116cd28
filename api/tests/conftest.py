from typing import Dict, List, Optional

import httpx
import pytest
from fastapi.testclient import TestClient

from app.config import Settings
from app.errors import ResolverFailure
from app.main import create_app
from app.models import FormatDescriptor, MediaSource, ResolvedVideo, VideoMetadata
from app.providers.base import FormatResolver
from app.utils.jobs import JobStore
from app.utils.streaming import MediaStreamer


MEDIA_BYTES = b"\x00\x00\x00\x18ftypmp42" + b"x" * 4096


def make_formats() -> List[FormatDescriptor]:
    return [
        FormatDescriptor("137", "video/mp4", "mp4", "1080p", has_video=True, has_audio=False, approx_size=5_000_000),
        FormatDescriptor("18", 'video/mp4; codecs="avc1.42001E, mp4a.40.2"', "mp4", "360p", True, True, 1_200_000),
        FormatDescriptor("140", "audio/mp4", "m4a", "128kbps", has_video=False, has_audio=True),
        FormatDescriptor("sb0", "image/jpeg", "mhtml", "storyboard", has_video=False, has_audio=False),
    ]


class FakeResolver(FormatResolver):
    name = "fake"

    def __init__(self, title: str = "Test Video", formats: Optional[List[FormatDescriptor]] = None) -> None:
        self.title = title
        self.formats = make_formats() if formats is None else formats
        self.fail = False
        self.resolve_calls: List[str] = []
        self.closed = False

    def resolve(self, url: str, platform: str = "youtube") -> ResolvedVideo:
        self.resolve_calls.append(url)
        if self.fail:
            raise ResolverFailure("upstream said no")
        return ResolvedVideo(
            source_url=url,
            video=VideoMetadata(title=self.title, duration=212, author="Uploader", thumbnails=("https://i.example/t.jpg",)),
            formats=list(self.formats),
        )

    def locate(self, resolved: ResolvedVideo, fmt: FormatDescriptor, note: str = "") -> MediaSource:
        return MediaSource(url=f"https://media.example/{fmt.format_key}", mime_type=fmt.mime_type, container=fmt.container)

    def close(self) -> None:
        self.closed = True


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def media_requests() -> List[httpx.Request]:
    return []


@pytest.fixture
def streamer(media_requests) -> MediaStreamer:
    def handler(request: httpx.Request) -> httpx.Response:
        media_requests.append(request)
        if request.url.path == "/missing":
            return httpx.Response(403)
        return httpx.Response(200, content=MEDIA_BYTES, headers={"Content-Type": "video/mp4"})

    return MediaStreamer(chunk_size=1024, transport=httpx.MockTransport(handler))


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock) -> JobStore:
    return JobStore(ttl=600, sweep_interval=60, clock=clock)


@pytest.fixture
def resolver() -> FakeResolver:
    return FakeResolver()


@pytest.fixture
def settings(monkeypatch) -> Settings:
    for name in ("PUBLIC_BASE_URL", "ALLOW_SOURCE_OVERRIDE", "RESOLVER"):
        monkeypatch.delenv(name, raising=False)
    return Settings()


@pytest.fixture
def client(settings, resolver, store, streamer):
    app = create_app(settings=settings, resolver=resolver, store=store, streamer=streamer)
    with TestClient(app) as test_client:
        yield test_client


def analyze(client: TestClient, url: str = "https://example.com/watch?v=abc12345678") -> Dict:
    resp = client.post("/mates/en/analyze/ajax", data={"url": url, "platform": "youtube"})
    assert resp.status_code == 200, resp.text
    return resp.json()
