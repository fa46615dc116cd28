import re
from typing import Optional
from urllib.parse import urlparse

from app.errors import InvalidInput


_HTML_ESCAPES = {
    "&": "&amp;",
    "<": "&lt;",
    ">": "&gt;",
    '"': "&quot;",
    "'": "&#39;",
}

_BARE_VIDEO_ID = re.compile(r"^[A-Za-z0-9_-]{11}$")
_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def escape_html(value: object) -> str:
    text = "" if value is None else str(value)
    return "".join(_HTML_ESCAPES.get(ch, ch) for ch in text)


def normalize_source_url(raw: Optional[str]) -> str:
    """Accept an http(s) URL or a bare 11-char YouTube id; raise InvalidInput otherwise."""
    value = (raw or "").strip()
    if not value:
        raise InvalidInput("Missing url parameter")
    if _BARE_VIDEO_ID.match(value):
        return f"https://www.youtube.com/watch?v={value}"
    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise InvalidInput(f"Not a recognizable video URL or id: {value[:200]}")
    return value


def safe_filename(title: Optional[str], ext: str = "", fallback: str = "video", max_length: int = 120) -> str:
    stem = _UNSAFE_FILENAME_CHARS.sub("_", title or "").strip("._")[:max_length].rstrip("._")
    if not stem:
        stem = fallback
    ext = _UNSAFE_FILENAME_CHARS.sub("", ext or "").strip(".")
    return f"{stem}.{ext}" if ext else stem


def format_duration(seconds: Optional[int]) -> str:
    if seconds is None:
        return "unknown"
    seconds = int(seconds)
    hh, rest = divmod(seconds, 3600)
    mm, ss = divmod(rest, 60)
    if hh:
        return f"{hh}:{mm:02d}:{ss:02d}"
    return f"{mm}:{ss:02d}"


def format_size(num_bytes: Optional[int]) -> str:
    if num_bytes is None:
        return "unknown"
    if num_bytes < 1024:
        return f"{num_bytes} B"
    size = num_bytes / 1024
    for unit in ("KB", "MB"):
        if size < 1024:
            return f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} GB"


def parse_size(value: object) -> Optional[int]:
    """Best-effort byte count from ints or strings like ``"12.5 MB"``."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value) if value > 0 else None
    match = re.match(r"^\s*([\d.]+)\s*([KMG]?B)?\s*$", str(value), re.IGNORECASE)
    if not match:
        return None
    try:
        number = float(match.group(1))
    except ValueError:
        return None
    unit = (match.group(2) or "B").upper()
    scale = {"B": 1, "KB": 1024, "MB": 1024 ** 2, "GB": 1024 ** 3}[unit]
    return int(number * scale) or None
