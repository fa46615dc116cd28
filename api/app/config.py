import os
from typing import Optional

try:
    # Load environment variables from .env if present (for local runs)
    from dotenv import load_dotenv, find_dotenv  # type: ignore

    load_dotenv(find_dotenv(usecwd=True))
except ImportError:
    pass


DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Linux; Android 10; K) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/137 Mobile Safari/537.36"
)


def _env_bool(name: str, default: bool = False) -> bool:
    return os.getenv(name, "true" if default else "false").strip().lower() in ("1", "true", "yes", "on")


class Settings:
    """Runtime configuration. Values are read when the instance is created."""

    def __init__(self) -> None:
        self.service_name: str = os.getenv("SERVICE_NAME", "Hana YouTube API")
        self.host: str = os.getenv("HOST", "0.0.0.0")
        self.port: int = int(os.getenv("PORT", "3000"))
        self.log_level: str = os.getenv("LOG_LEVEL", "INFO")
        self.cors_origins: str = os.getenv("CORS_ORIGINS", "*")

        self.resolver: str = os.getenv("RESOLVER", "ytdlp").lower()
        self.job_ttl_seconds: float = float(os.getenv("JOB_TTL_SECONDS", "600"))
        self.sweep_interval_seconds: float = float(os.getenv("SWEEP_INTERVAL_SECONDS", "60"))
        self.status_max_formats: int = int(os.getenv("STATUS_MAX_FORMATS", "5"))
        self.stream_chunk_size: int = int(os.getenv("STREAM_CHUNK_SIZE", str(64 * 1024)))
        self.public_base_url: Optional[str] = os.getenv("PUBLIC_BASE_URL") or None
        self.allow_source_override: bool = _env_bool("ALLOW_SOURCE_OVERRIDE")

        self.mates_base_url: str = os.getenv("MATES_BASE_URL", "https://yt1d.com").rstrip("/")
        self.mates_country: str = os.getenv("MATES_COUNTRY", "NP")
        self.mates_mhash: str = os.getenv("MATES_MHASH", "12972224f183e7ef9")
        self.user_agent: str = os.getenv("USER_AGENT", DEFAULT_USER_AGENT)
        self.http_timeout_seconds: float = float(os.getenv("HTTP_TIMEOUT_SECONDS", "60"))

    @property
    def cors_origin_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


settings = Settings()
