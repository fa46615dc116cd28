from typing import Optional

from app.config import Settings, settings as default_settings
from app.providers.base import FormatResolver
from app.providers.mates_provider import MatesResolver
from app.providers.ytdlp_provider import YtDlpResolver


def get_resolver(settings: Optional[Settings] = None) -> FormatResolver:
    settings = settings or default_settings
    name = (settings.resolver or "ytdlp").lower()
    if name == "mates":
        return MatesResolver(
            base_url=settings.mates_base_url,
            country=settings.mates_country,
            mhash=settings.mates_mhash,
            user_agent=settings.user_agent,
            timeout=settings.http_timeout_seconds,
        )
    # yt-dlp picks its own client headers per extractor
    return YtDlpResolver()
