from typing import Iterable, List, Optional

from app.models import FormatDescriptor


_VIDEO_MIME = {
    "mp4": "video/mp4",
    "webm": "video/webm",
    "3gp": "video/3gpp",
    "mkv": "video/x-matroska",
    "flv": "video/x-flv",
    "mov": "video/quicktime",
}

_AUDIO_MIME = {
    "m4a": "audio/mp4",
    "mp4": "audio/mp4",
    "webm": "audio/webm",
    "mp3": "audio/mpeg",
    "ogg": "audio/ogg",
    "opus": "audio/ogg",
    "wav": "audio/wav",
    "aac": "audio/aac",
}


def mime_for(container: str, has_video: bool = True) -> str:
    ext = (container or "").lower().lstrip(".")
    if has_video:
        return _VIDEO_MIME.get(ext) or _AUDIO_MIME.get(ext) or "application/octet-stream"
    return _AUDIO_MIME.get(ext) or _VIDEO_MIME.get(ext) or "application/octet-stream"


def content_type(mime_type: Optional[str]) -> str:
    """type/subtype only; parameters such as ``codecs=...`` are dropped."""
    base = (mime_type or "").split(";", 1)[0].strip().lower()
    if "/" not in base:
        return "application/octet-stream"
    return base


def extension_for(fmt: FormatDescriptor) -> str:
    if fmt.container:
        return fmt.container.lower().lstrip(".")
    subtype = content_type(fmt.mime_type).split("/", 1)[1]
    return {"mpeg": "mp3", "x-matroska": "mkv", "3gpp": "3gp", "quicktime": "mov"}.get(subtype, subtype)


def playable_formats(formats: Iterable[FormatDescriptor]) -> List[FormatDescriptor]:
    # Descriptors with neither stream are metadata only (storyboards etc.)
    return [fmt for fmt in formats if fmt.playable]


def choose_default_format(formats: Iterable[FormatDescriptor]) -> Optional[FormatDescriptor]:
    """First combined video+audio format in stored order, else the first one."""
    formats = list(formats)
    for fmt in formats:
        if fmt.combined:
            return fmt
    return formats[0] if formats else None
