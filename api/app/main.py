from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, StreamingResponse
from pydantic import ValidationError

from app import pipeline
from app.config import Settings, settings as default_settings
from app.errors import InvalidInput, RelayError
from app.providers.base import FormatResolver
from app.providers.factory import get_resolver
from app.schemas import (
    AnalyzeRequest,
    AnalyzeResponse,
    ConvertRequest,
    ConvertResponse,
    ErrorResponse,
    StatusResponse,
)
from app.utils.jobs import JobStore
from app.utils.logging import configure_json_logging, get_logger
from app.utils.streaming import MediaStreamer


logger = get_logger(__name__)


async def read_params(request: Request) -> Dict[str, Any]:
    """Query string merged with a form or JSON body (body wins)."""
    params: Dict[str, Any] = dict(request.query_params)
    if request.method in ("GET", "HEAD"):
        return params
    ctype = request.headers.get("content-type", "")
    if ctype.startswith("application/json"):
        try:
            body = await request.json()
        except ValueError as exc:
            raise InvalidInput("Request body is not valid JSON") from exc
        if isinstance(body, dict):
            params.update(body)
    elif ctype.startswith(("application/x-www-form-urlencoded", "multipart/form-data")):
        form = await request.form()
        params.update({k: v for k, v in form.items() if isinstance(v, str)})
    return params


def _validate(model, params: Dict[str, Any]):
    try:
        return model.model_validate(params)
    except ValidationError as exc:
        first = exc.errors()[0]
        field = ".".join(str(p) for p in first.get("loc", ())) or "request"
        raise InvalidInput(f"Missing or invalid {field} parameter") from exc


def get_store(request: Request) -> JobStore:
    return request.app.state.store


def get_resolver_dep(request: Request) -> FormatResolver:
    return request.app.state.resolver


def get_streamer(request: Request) -> MediaStreamer:
    return request.app.state.streamer


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def create_app(
    settings: Optional[Settings] = None,
    resolver: Optional[FormatResolver] = None,
    store: Optional[JobStore] = None,
    streamer: Optional[MediaStreamer] = None,
) -> FastAPI:
    settings = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        configure_json_logging(settings.log_level)
        app.state.store.start()
        logger.info("%s ready (resolver=%s)", settings.service_name, app.state.resolver.name)
        yield
        await app.state.store.stop()
        await app.state.streamer.aclose()
        app.state.resolver.close()

    app = FastAPI(title=settings.service_name, version="1.0.0", lifespan=lifespan)
    app.state.settings = settings
    if store is None:
        store = JobStore(ttl=settings.job_ttl_seconds, sweep_interval=settings.sweep_interval_seconds)
    app.state.store = store
    app.state.resolver = resolver if resolver is not None else get_resolver(settings)
    app.state.streamer = streamer if streamer is not None else MediaStreamer(
        chunk_size=settings.stream_chunk_size, timeout=settings.http_timeout_seconds
    )

    origins = settings.cors_origin_list or ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials="*" not in origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RelayError)
    async def relay_error_handler(request: Request, exc: RelayError) -> JSONResponse:
        return JSONResponse(ErrorResponse(error=exc.message).model_dump(), status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(ErrorResponse(error="Invalid request parameters").model_dump(), status_code=400)

    @app.get("/", response_class=PlainTextResponse)
    def root() -> str:
        return f"{settings.service_name} is running"

    @app.post("/mates/en/analyze/ajax", response_model=AnalyzeResponse)
    async def analyze(
        params: Dict[str, Any] = Depends(read_params),
        store: JobStore = Depends(get_store),
        resolver: FormatResolver = Depends(get_resolver_dep),
    ) -> AnalyzeResponse:
        req = _validate(AnalyzeRequest, params)
        job = await pipeline.analyze(store, resolver, req.url, req.platform)
        return AnalyzeResponse.from_job(job)

    @app.post("/mates/en/convert", response_model=ConvertResponse)
    async def convert(
        request: Request,
        params: Dict[str, Any] = Depends(read_params),
        store: JobStore = Depends(get_store),
        cfg: Settings = Depends(get_settings),
    ) -> ConvertResponse:
        req = _validate(ConvertRequest, params)
        job, format_key = pipeline.convert(
            store, req.id, req.format, source_url=req.url, allow_override=cfg.allow_source_override
        )
        base_url = cfg.public_base_url or str(request.base_url)
        return ConvertResponse(downloadUrl=pipeline.build_download_url(base_url, job.id, format_key), itag=format_key)

    @app.get("/mates/en/status", response_model=StatusResponse)
    async def status(
        id: Optional[str] = None,
        store: JobStore = Depends(get_store),
        cfg: Settings = Depends(get_settings),
    ):
        try:
            job = pipeline.require_job(store, id)
        except RelayError as exc:
            # Soft failure: the page embedding this keeps working
            return JSONResponse(ErrorResponse(error=exc.message).model_dump())
        return StatusResponse(result=pipeline.render_status(job, cfg.status_max_formats))

    @app.get("/download/file")
    async def download_file(
        id: Optional[str] = None,
        itag: Optional[str] = None,
        format: Optional[str] = None,
        store: JobStore = Depends(get_store),
        resolver: FormatResolver = Depends(get_resolver_dep),
        streamer: MediaStreamer = Depends(get_streamer),
    ):
        try:
            prepared = await pipeline.prepare_stream(store, resolver, streamer, id, itag or format)
        except RelayError as exc:
            # Nothing has been sent yet, so a normal error response is still possible
            return PlainTextResponse(exc.message, status_code=exc.status_code)
        return StreamingResponse(
            prepared.upstream.iter_bytes(),
            media_type=prepared.media_type,
            headers=prepared.headers,
        )

    @app.get("/download", response_model=ConvertResponse)
    async def download_link(
        url: Optional[str] = None,
        note: str = "360p",
        format: str = "18",
        platform: str = "youtube",
        resolver: FormatResolver = Depends(get_resolver_dep),
    ):
        try:
            source, fmt = await pipeline.direct_link(resolver, url, format, note, platform)
        except RelayError as exc:
            # Legacy relay contract: failures are always a 200 with status false
            return JSONResponse(ErrorResponse(error=exc.message).model_dump())
        return ConvertResponse(downloadUrl=source.url, itag=fmt.format_key)

    return app


app = create_app()


def run() -> None:
    import uvicorn

    uvicorn.run("app.main:app", host=default_settings.host, port=default_settings.port, log_config=None)


if __name__ == "__main__":
    run()
