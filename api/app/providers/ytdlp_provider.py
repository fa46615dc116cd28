from typing import Any, Dict, List, Optional

import yt_dlp

from app.errors import FormatUnavailable, ResolverFailure
from app.models import FormatDescriptor, MediaSource, ResolvedVideo, VideoMetadata
from app.providers.base import FormatResolver
from app.utils.logging import get_logger
from app.utils.media import mime_for


logger = get_logger(__name__)

# Only plain progressive downloads can be relayed as a single byte stream.
_STREAMABLE_PROTOCOLS = {"http", "https"}


def _has_stream(codec: Optional[str]) -> bool:
    return bool(codec) and codec != "none"


def _quality_label(fmt: Dict[str, Any]) -> str:
    if fmt.get("format_note"):
        return str(fmt["format_note"])
    if fmt.get("height"):
        return f"{fmt['height']}p"
    if fmt.get("abr"):
        return f"{round(fmt['abr'])}kbps"
    return "unknown"


def to_descriptor(fmt: Dict[str, Any]) -> FormatDescriptor:
    vcodec, acodec = fmt.get("vcodec"), fmt.get("acodec")
    if vcodec is None and acodec is None:
        # Generic extractors often omit codecs for a single muxed file
        has_video = has_audio = fmt.get("ext") not in (None, "mhtml")
    else:
        has_video, has_audio = _has_stream(vcodec), _has_stream(acodec)
    container = fmt.get("ext") or ""
    return FormatDescriptor(
        format_key=str(fmt.get("format_id")),
        mime_type=mime_for(container, has_video),
        container=container,
        quality_label=_quality_label(fmt),
        has_video=has_video,
        has_audio=has_audio,
        approx_size=fmt.get("filesize") or fmt.get("filesize_approx"),
    )


def to_metadata(info: Dict[str, Any]) -> VideoMetadata:
    thumbnails: List[str] = [t["url"] for t in info.get("thumbnails") or [] if t.get("url")]
    if not thumbnails and info.get("thumbnail"):
        thumbnails = [info["thumbnail"]]
    duration = info.get("duration")
    return VideoMetadata(
        title=info.get("title"),
        duration=int(duration) if duration is not None else None,
        author=info.get("uploader") or info.get("channel"),
        thumbnails=tuple(thumbnails),
    )


class YtDlpResolver(FormatResolver):
    """Resolves formats in-process with the yt-dlp library."""

    name = "ytdlp"

    def __init__(self) -> None:
        self.opts: Dict[str, Any] = {
            "quiet": True,
            "no_warnings": True,
            "skip_download": True,
            "noplaylist": True,
        }

    def extract(self, url: str) -> Dict[str, Any]:
        logger.info("yt-dlp extract_info", extra={"url": url, "resolver": self.name})
        try:
            with yt_dlp.YoutubeDL(self.opts) as ydl:
                info = ydl.extract_info(url, download=False)
                return ydl.sanitize_info(info) or {}
        except yt_dlp.utils.DownloadError as exc:
            raise ResolverFailure(f"yt-dlp could not resolve {url}: {exc}") from exc

    def resolve(self, url: str, platform: str = "youtube") -> ResolvedVideo:
        info = self.extract(url)
        if not info or not (info.get("title") or info.get("formats") or info.get("url")):
            raise ResolverFailure("yt-dlp returned no usable metadata")
        raw_formats = info.get("formats") or ([info] if info.get("url") else [])

        formats: List[FormatDescriptor] = []
        sources: Dict[str, MediaSource] = {}
        for raw in raw_formats:
            if not raw.get("url") or raw.get("format_id") is None:
                continue
            if (raw.get("protocol") or "https") not in _STREAMABLE_PROTOCOLS:
                continue
            desc = to_descriptor(raw)
            if desc.format_key in sources:
                continue
            formats.append(desc)
            sources[desc.format_key] = MediaSource(
                url=raw["url"],
                headers=dict(raw.get("http_headers") or {}),
                mime_type=desc.mime_type,
                container=desc.container,
            )
        return ResolvedVideo(
            source_url=url,
            video=to_metadata(info),
            formats=formats,
            extras={"sources": sources},
        )

    def locate(self, resolved: ResolvedVideo, fmt: FormatDescriptor, note: str = "") -> MediaSource:
        source = resolved.extras.get("sources", {}).get(fmt.format_key)
        if source is None:
            raise FormatUnavailable(f"Format {fmt.format_key} has no direct URL")
        return source
