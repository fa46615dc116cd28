from typing import Any, Dict, Iterable, List, Optional

import requests

from app.errors import ResolverFailure
from app.models import FormatDescriptor, MediaSource, ResolvedVideo, VideoMetadata
from app.providers.base import FormatResolver
from app.utils.logging import get_logger
from app.utils.media import mime_for
from app.utils.text import parse_size


logger = get_logger(__name__)

_AUDIO_CONTAINERS = {"mp3", "m4a", "ogg", "opus", "wav", "aac"}


def _as_list(value: Any) -> List[Dict[str, Any]]:
    """Format groups come back either as a list or as a dict keyed by format id."""
    if isinstance(value, list):
        return [item for item in value if isinstance(item, dict)]
    if isinstance(value, dict):
        items = []
        for key, item in value.items():
            if isinstance(item, dict):
                items.append({"_key": key, **item})
        return items
    return []


def _descriptor(item: Dict[str, Any], default_ext: str) -> Optional[FormatDescriptor]:
    key = item.get("format") or item.get("itag") or item.get("f") or item.get("_key") or item.get("k")
    if key is None:
        return None
    container = str(item.get("ext") or item.get("type") or default_ext).lower()
    audio_only = container in _AUDIO_CONTAINERS
    has_video = bool(item.get("hasVideo", not audio_only))
    has_audio = bool(item.get("hasAudio", True))
    return FormatDescriptor(
        format_key=str(key),
        mime_type=str(item.get("mimeType") or mime_for(container, has_video)),
        container=container,
        quality_label=str(item.get("note") or item.get("quality") or item.get("q") or "unknown"),
        has_video=has_video,
        has_audio=has_audio,
        approx_size=parse_size(item.get("filesize") or item.get("size")),
    )


def parse_analyze_payload(data: Dict[str, Any]) -> Dict[str, Any]:
    """Pull id, metadata and formats out of an analyze/ajax response."""
    result = data.get("result") if isinstance(data.get("result"), dict) else data
    remote_id = data.get("id") or result.get("id") or result.get("vid")

    thumbs = result.get("thumbnails") or ([result["thumbnail"]] if result.get("thumbnail") else [])
    duration = result.get("duration") or result.get("t")
    try:
        duration = int(float(duration)) if duration is not None else None
    except (TypeError, ValueError):
        duration = None
    video = VideoMetadata(
        title=result.get("title"),
        duration=duration,
        author=result.get("author") or result.get("a"),
        thumbnails=tuple(str(t) for t in thumbs),
    )

    groups: Iterable[tuple] = []
    if isinstance(result.get("formats"), (list, dict)):
        groups = [("mp4", result["formats"])]
    elif isinstance(result.get("links"), dict):
        groups = list(result["links"].items())
    else:
        groups = [
            ("mp4", result.get("video_formats") or result.get("video") or []),
            ("mp3", result.get("audio_formats") or result.get("audio") or []),
        ]

    formats: List[FormatDescriptor] = []
    seen = set()
    for ext, group in groups:
        for item in _as_list(group):
            desc = _descriptor(item, ext)
            if desc is not None and desc.format_key not in seen:
                seen.add(desc.format_key)
                formats.append(desc)
    return {"remote_id": remote_id, "video": video, "formats": formats}


class MatesResolver(FormatResolver):
    """Resolves through a remote site's ``mates/en/analyze/ajax`` and ``convert`` endpoints."""

    name = "mates"

    def __init__(
        self,
        base_url: str,
        country: str = "NP",
        mhash: str = "",
        user_agent: str = "",
        timeout: float = 60.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.country = country
        self.mhash = mhash
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"X-Requested-With": "XMLHttpRequest"})
        if user_agent:
            self.session.headers["User-Agent"] = user_agent

    def _post(self, path: str, form: Dict[str, str], params: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            resp = self.session.post(url, data=form, params=params, timeout=self.timeout)
            resp.raise_for_status()
            data = resp.json()
        except requests.RequestException as exc:
            raise ResolverFailure(f"Upstream request to {path} failed: {exc}") from exc
        except ValueError as exc:
            raise ResolverFailure(f"Upstream {path} returned non-JSON body") from exc
        if not isinstance(data, dict):
            raise ResolverFailure(f"Upstream {path} returned unexpected payload")
        return data

    def resolve(self, url: str, platform: str = "youtube") -> ResolvedVideo:
        logger.info("mates analyze", extra={"url": url, "resolver": self.name})
        data = self._post(
            "/mates/en/analyze/ajax",
            {
                "url": url,
                "platform": platform,
                "country": self.country,
                "retry": "undefined",
                "mhash": self.mhash,
            },
        )
        parsed = parse_analyze_payload(data)
        if not parsed["remote_id"]:
            raise ResolverFailure("Cannot extract ID")
        return ResolvedVideo(
            source_url=url,
            video=parsed["video"],
            formats=parsed["formats"],
            extras={"remote_id": str(parsed["remote_id"]), "platform": platform},
        )

    def locate(self, resolved: ResolvedVideo, fmt: FormatDescriptor, note: str = "") -> MediaSource:
        remote_id = resolved.extras["remote_id"]
        logger.info("mates convert", extra={"url": resolved.source_url, "format_key": fmt.format_key})
        data = self._post(
            "/mates/en/convert",
            {
                "platform": resolved.extras.get("platform", "youtube"),
                "url": resolved.source_url,
                "id": remote_id,
                "ext": fmt.container or "mp4",
                "note": note or fmt.quality_label,
                "format": fmt.format_key,
            },
            params={"id": remote_id},
        )
        result = data.get("result") if isinstance(data.get("result"), dict) else {}
        download_url = data.get("downloadUrl") or result.get("downloadUrl")
        if not download_url:
            raise ResolverFailure("No download link found")
        user_agent = self.session.headers.get("User-Agent")
        return MediaSource(
            url=str(download_url),
            headers={"User-Agent": user_agent} if user_agent else {},
            mime_type=fmt.mime_type,
            container=fmt.container,
        )

    def close(self) -> None:
        self.session.close()
