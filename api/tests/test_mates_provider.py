import asyncio

import pytest
import requests

from app import pipeline
from app.errors import ResolverFailure
from app.providers.mates_provider import MatesResolver, parse_analyze_payload


class StubResponse:
    def __init__(self, payload, status_code=200):
        self.payload = payload
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        return self.payload


class StubSession:
    def __init__(self, responses):
        self.headers = {}
        self.responses = responses
        self.calls = []

    def post(self, url, data=None, params=None, timeout=None):
        self.calls.append({"url": url, "data": data, "params": params})
        path = url.split("://", 1)[1].split("/", 1)[1]
        return self.responses["/" + path]

    def close(self):
        pass


ANALYZE = {
    "status": "success",
    "result": {
        "id": "remote-42",
        "title": "Remote Video",
        "duration": "95",
        "thumbnail": "https://i.example/r.jpg",
        "video_formats": [
            {"format": "18", "note": "360p", "ext": "mp4", "size": "12.5 MB"},
            {"format": "137", "note": "1080p", "ext": "mp4", "hasAudio": False},
        ],
        "audio_formats": [{"format": "140", "note": "128kbps", "ext": "m4a"}],
    },
}


def _resolver(responses):
    session = StubSession(responses)
    return MatesResolver("https://mates.example", mhash="h", user_agent="UA", session=session), session


def test_parse_analyze_payload_lists():
    parsed = parse_analyze_payload(ANALYZE)
    assert parsed["remote_id"] == "remote-42"
    assert parsed["video"].duration == 95
    keys = [(f.format_key, f.has_video, f.has_audio) for f in parsed["formats"]]
    assert keys == [("18", True, True), ("137", True, False), ("140", False, True)]
    assert parsed["formats"][0].approx_size == int(12.5 * 1024 * 1024)


def test_parse_analyze_payload_links_dict():
    parsed = parse_analyze_payload({
        "vid": "abc",
        "title": "T",
        "links": {"mp4": {"18": {"q": "360p", "size": "3 MB"}}, "mp3": {"mp3128": {"q": "128kbps"}}},
    })
    assert parsed["remote_id"] == "abc"
    assert [(f.format_key, f.container, f.has_video) for f in parsed["formats"]] == [
        ("18", "mp4", True),
        ("mp3128", "mp3", False),
    ]


def test_resolve_and_locate():
    resolver, session = _resolver({
        "/mates/en/analyze/ajax": StubResponse(ANALYZE),
        "/mates/en/convert": StubResponse({"status": "success", "downloadUrl": "https://cdn.example/file.mp4"}),
    })
    resolved = resolver.resolve("https://youtu.be/x")
    assert session.calls[0]["data"]["mhash"] == "h"
    assert resolved.video.title == "Remote Video"

    source = resolver.locate(resolved, resolved.find_format("18"))
    assert source.url == "https://cdn.example/file.mp4"
    assert source.headers == {"User-Agent": "UA"}
    convert = session.calls[1]
    assert convert["params"] == {"id": "remote-42"}
    assert convert["data"]["format"] == "18"
    assert convert["data"]["note"] == "360p"


def test_resolve_without_id_fails():
    resolver, _ = _resolver({"/mates/en/analyze/ajax": StubResponse({"status": "fail"})})
    with pytest.raises(ResolverFailure, match="Cannot extract ID"):
        resolver.resolve("https://youtu.be/x")


def test_upstream_http_error_is_resolver_failure():
    resolver, _ = _resolver({"/mates/en/analyze/ajax": StubResponse({}, status_code=500)})
    with pytest.raises(ResolverFailure):
        resolver.resolve("https://youtu.be/x")


def test_convert_without_link_fails():
    resolver, _ = _resolver({
        "/mates/en/analyze/ajax": StubResponse(ANALYZE),
        "/mates/en/convert": StubResponse({"status": "success"}),
    })
    resolved = resolver.resolve("https://youtu.be/x")
    with pytest.raises(ResolverFailure, match="No download link found"):
        resolver.locate(resolved, resolved.formats[0])


def test_one_shot_link_with_id_only_analyze():
    resolver, session = _resolver({
        "/mates/en/analyze/ajax": StubResponse({"status": "success", "id": "remote-1"}),
        "/mates/en/convert": StubResponse({"status": "success", "downloadUrl": "https://cdn.example/18.mp4"}),
    })
    source, fmt = asyncio.run(pipeline.direct_link(resolver, "https://youtu.be/x", "18", "360p"))
    assert source.url == "https://cdn.example/18.mp4"
    assert fmt.format_key == "18"
    convert = session.calls[1]
    assert convert["params"] == {"id": "remote-1"}
    assert convert["data"]["format"] == "18"
    assert convert["data"]["note"] == "360p"
    assert convert["data"]["ext"] == "mp4"
