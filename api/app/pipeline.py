"""Analyze → convert → stream job pipeline.

The HTTP layer in ``app.main`` only parses requests and renders responses;
everything that touches the job store or the resolver lives here. Resolver
calls are blocking and run in a worker thread, so every ``await`` below is a
point after which the store may have changed: jobs are re-read, never reused.
"""

import asyncio
from dataclasses import dataclass, replace
from typing import Optional, Tuple
from urllib.parse import urlencode

from app.errors import FormatUnavailable, InvalidInput, JobNotFound, MissingInput, RelayError, ResolverFailure
from app.models import FormatDescriptor, Job, MediaSource, ResolvedVideo
from app.providers.base import FormatResolver
from app.utils.jobs import JobStore
from app.utils.logging import get_logger
from app.utils.media import choose_default_format, content_type, extension_for, playable_formats
from app.utils.streaming import MediaStreamer, UpstreamStream
from app.utils.text import escape_html, format_duration, format_size, normalize_source_url, safe_filename


logger = get_logger(__name__)


async def _resolve(resolver: FormatResolver, url: str, platform: str) -> ResolvedVideo:
    try:
        resolved = await asyncio.to_thread(resolver.resolve, url, platform)
    except ResolverFailure:
        logger.error("resolver %s failed", resolver.name, exc_info=True, extra={"url": url})
        raise
    except RelayError:
        raise
    except Exception as exc:  # noqa: BLE001
        logger.error("resolver %s crashed", resolver.name, exc_info=True, extra={"url": url})
        raise ResolverFailure(f"Could not resolve video: {exc}") from exc
    if resolved is None or resolved.video is None:
        raise ResolverFailure("Resolver returned no usable metadata")
    return resolved


async def _locate(resolver: FormatResolver, resolved: ResolvedVideo, fmt: FormatDescriptor, note: str = "") -> MediaSource:
    try:
        return await asyncio.to_thread(resolver.locate, resolved, fmt, note)
    except RelayError:
        raise
    except Exception as exc:  # noqa: BLE001
        logger.error("resolver %s could not locate format", resolver.name, exc_info=True,
                     extra={"url": resolved.source_url, "format_key": fmt.format_key})
        raise ResolverFailure(f"Could not obtain media link: {exc}") from exc


def require_job(store: JobStore, job_id: Optional[str]) -> Job:
    if not job_id:
        raise MissingInput("Missing id parameter")
    job = store.get(job_id)
    if job is None:
        raise JobNotFound(job_id)
    return job


# --- Analyze -----------------------------------------------------------------

async def analyze(store: JobStore, resolver: FormatResolver, raw_url: Optional[str], platform: str = "youtube") -> Job:
    url = normalize_source_url(raw_url)
    resolved = await _resolve(resolver, url, platform)
    formats = playable_formats(resolved.formats)

    job = Job(
        id=store.new_id(),
        source_url=url,
        video=resolved.video,
        formats=tuple(formats),
        created_at=store.clock(),
        platform=platform,
    )
    store.put(job)
    logger.info("job created with %d format(s)", len(formats), extra={"job_id": job.id, "url": url})
    return job


# --- Convert -----------------------------------------------------------------

def convert(
    store: JobStore,
    job_id: Optional[str],
    format_key: Optional[str] = None,
    source_url: Optional[str] = None,
    allow_override: bool = False,
) -> Tuple[Job, str]:
    """Commit to a format for a job. Never fetches bytes."""
    job = require_job(store, job_id)

    if source_url:
        url = normalize_source_url(source_url)
        if url != job.source_url:
            if not allow_override:
                raise InvalidInput("url does not match the analyzed video for this id")
            job = replace(job, source_url=url)
            store.replace(job)
            logger.warning("job source url overridden", extra={"job_id": job.id, "url": url})

    if format_key:
        return job, str(format_key)

    chosen = choose_default_format(job.formats)
    if chosen is None:
        raise FormatUnavailable("No downloadable formats for this video")
    return job, chosen.format_key


def build_download_url(base_url: str, job_id: str, format_key: str) -> str:
    query = urlencode({"id": job_id, "itag": format_key})
    return f"{base_url.rstrip('/')}/download/file?{query}"


# --- Status ------------------------------------------------------------------

def render_status(job: Job, max_formats: int = 5) -> str:
    video = job.video
    parts = ['<div class="job-status">']
    if video.thumbnails:
        parts.append(f'<img class="thumb" src="{escape_html(video.thumbnails[0])}" alt="">')
    parts.append(f"<h3>{escape_html(video.title or 'Untitled')}</h3>")
    parts.append(f"<p>Author: {escape_html(video.author or 'unknown')}</p>")
    parts.append(f"<p>Duration: {escape_html(format_duration(video.duration))}</p>")
    parts.append("<ul>")
    for fmt in job.formats[:max_formats]:
        streams = "+".join(name for name, on in (("video", fmt.has_video), ("audio", fmt.has_audio)) if on)
        parts.append(
            f'<li data-itag="{escape_html(fmt.format_key)}">'
            f"{escape_html(fmt.quality_label)} {escape_html(fmt.container)} "
            f"({escape_html(streams)}, {escape_html(format_size(fmt.approx_size))})</li>"
        )
    parts.append("</ul>")
    if len(job.formats) > max_formats:
        parts.append(f"<p>+{len(job.formats) - max_formats} more format(s)</p>")
    parts.append("</div>")
    return "".join(parts)


# --- Stream ------------------------------------------------------------------

@dataclass
class PreparedStream:
    job: Job
    format: FormatDescriptor
    upstream: UpstreamStream
    filename: str
    media_type: str

    @property
    def headers(self) -> dict:
        headers = {"Content-Disposition": f'attachment; filename="{self.filename}"'}
        if self.upstream.content_length:
            headers["Content-Length"] = self.upstream.content_length
        return headers


async def prepare_stream(
    store: JobStore,
    resolver: FormatResolver,
    streamer: MediaStreamer,
    job_id: Optional[str],
    format_key: Optional[str],
) -> PreparedStream:
    """Re-resolve the job's source and open the upstream body, sending nothing yet.

    Analyze-time descriptors may be stale (signed media URLs expire), so the
    format is looked up in a fresh resolution before any bytes are fetched.
    """
    job = require_job(store, job_id)
    if not format_key:
        raise MissingInput("Missing itag parameter")

    resolved = await _resolve(resolver, job.source_url, job.platform)
    if store.get(job.id) is None:
        raise JobNotFound(job.id)

    fmt = resolved.find_format(format_key)
    if fmt is None or not fmt.playable:
        raise FormatUnavailable(f"Format {format_key} is no longer available")

    source = await _locate(resolver, resolved, fmt)
    log_extra = {"job_id": job.id, "format_key": fmt.format_key}
    upstream = await streamer.open(source, log_extra=log_extra)

    title = resolved.video.title or job.video.title
    filename = safe_filename(title, extension_for(fmt))
    media_type = content_type(source.mime_type or fmt.mime_type)
    logger.info("streaming %s", filename, extra=log_extra)
    return PreparedStream(job=job, format=fmt, upstream=upstream, filename=filename, media_type=media_type)


# --- One-shot relay ----------------------------------------------------------

async def direct_link(
    resolver: FormatResolver,
    raw_url: Optional[str],
    format_key: Optional[str] = None,
    note: str = "",
    platform: str = "youtube",
) -> Tuple[MediaSource, FormatDescriptor]:
    """Resolve and return the media link for one format without creating a job.

    A requested ``format_key`` is passed through to the resolver even when the
    resolution did not list it; the resolver decides whether it exists.
    """
    url = normalize_source_url(raw_url)
    resolved = await _resolve(resolver, url, platform)
    if format_key:
        fmt = resolved.find_format(format_key) or FormatDescriptor(
            format_key=str(format_key),
            mime_type="video/mp4",
            container="mp4",
            quality_label=note or "unknown",
            has_video=True,
            has_audio=True,
        )
    else:
        fmt = choose_default_format(playable_formats(resolved.formats))
    if fmt is None:
        raise FormatUnavailable("No downloadable formats for this video")
    source = await _locate(resolver, resolved, fmt, note)
    return source, fmt
