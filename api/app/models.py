from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple


@dataclass(frozen=True)
class VideoMetadata:
    title: Optional[str] = None
    duration: Optional[int] = None
    author: Optional[str] = None
    thumbnails: Tuple[str, ...] = ()


@dataclass(frozen=True)
class FormatDescriptor:
    """One downloadable encoding of a video, as reported at resolve time."""

    format_key: str
    mime_type: str = "application/octet-stream"
    container: str = ""
    quality_label: str = "unknown"
    has_video: bool = False
    has_audio: bool = False
    approx_size: Optional[int] = None

    @property
    def playable(self) -> bool:
        return self.has_video or self.has_audio

    @property
    def combined(self) -> bool:
        return self.has_video and self.has_audio


@dataclass(frozen=True)
class Job:
    id: str
    source_url: str
    video: VideoMetadata
    formats: Tuple[FormatDescriptor, ...]
    created_at: float
    platform: str = "youtube"


@dataclass(frozen=True)
class MediaSource:
    """A live handle the streamer can fetch bytes from."""

    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    mime_type: str = "application/octet-stream"
    container: str = ""


@dataclass
class ResolvedVideo:
    """Resolver output. ``extras`` holds per-format data only the resolver understands."""

    source_url: str
    video: VideoMetadata
    formats: List[FormatDescriptor]
    extras: Dict[str, Any] = field(default_factory=dict)

    def find_format(self, format_key: str) -> Optional[FormatDescriptor]:
        for fmt in self.formats:
            if fmt.format_key == format_key:
                return fmt
        return None
