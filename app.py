"""
FastAPI application for the Hindi voice relay.

Accepts a recorded clip, relays it through speech-to-text, the conversational
agent and text-to-speech, and streams the spoken reply back with metadata
headers. Starts in degraded mode when provider credentials are missing.
"""

import os
import sys
import time
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Optional
from urllib.parse import quote

# Only load .env file in development (not on Vercel)
# Vercel sets environment variables directly
if os.getenv("VERCEL") != "1":
    from dotenv import load_dotenv
    load_dotenv()

from fastapi import APIRouter, FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.datastructures import FormData, UploadFile
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import AppConfig, ConfigValidator, load_config, validate_config_on_startup
from connection import Providers
from errors import ErrorCode, TurnError
from logger import get_logger
from models import ErrorResponse, HealthResponse, ProviderStatus, TurnRequest, TurnResult
from pipeline import TurnPipeline
from rate_limit import RateLimiter
from session_store import SessionStore, SessionSweeper

logger = get_logger(__name__)

# Check if running in serverless environment
IS_SERVERLESS = os.getenv("VERCEL") == "1" or os.getenv("AWS_LAMBDA_FUNCTION_NAME") is not None

METADATA_HEADERS = ["X-Session-Id", "X-Transcription", "X-Response-Text", "X-Processing-Time"]

router = APIRouter()


def encode_header_value(value: str) -> str:
    """Percent-encode like JavaScript's encodeURIComponent so Devanagari survives headers."""
    return quote(value, safe="-_.!~*'()")


def error_response(request: Request, error: TurnError) -> JSONResponse:
    """Render a TurnError; internals only in development."""
    config: AppConfig = request.app.state.config
    return JSONResponse(
        status_code=error.status_code,
        content=error.to_payload(include_details=config.is_development),
    )


def _form_text(form: FormData, key: str) -> Optional[str]:
    value = form.get(key)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


async def _read_turn_request(request: Request, form: FormData, max_audio_bytes: int) -> TurnRequest:
    """Turn the multipart form into a TurnRequest; admission decides if it is acceptable."""
    session_id = request.headers.get("x-session-id") or _form_text(form, "sessionId")
    # Files under any field count; only the "audio" field is relayed
    files = [value for _, value in form.multi_items() if isinstance(value, UploadFile)]
    uploads = [item for item in form.getlist("audio") if isinstance(item, UploadFile)]

    audio = b""
    mime_type = ""
    if uploads:
        # One byte past the ceiling is enough to know it is too large
        audio = await uploads[0].read(max_audio_bytes + 1)
        mime_type = uploads[0].content_type or ""

    return TurnRequest(
        audio=audio,
        mime_type=mime_type,
        session_id=session_id.strip() if session_id and session_id.strip() else None,
        tts_provider=_form_text(form, "ttsProvider"),
        voice_preference=_form_text(form, "voicePreference"),
        file_count=len(files),
    )


async def _relay_audio(result: TurnResult) -> AsyncIterator[bytes]:
    sent = 0
    try:
        async for chunk in result.audio.chunks():
            sent += len(chunk)
            yield chunk
    except Exception as e:
        # Headers are already out; the client sees a truncated body
        logger.error(
            f"Audio stream failed mid-delivery: {str(e)}",
            session_id=result.session_id,
            bytes_sent=sent,
            exc_info=True
        )
        raise
    logger.info("Audio delivered", session_id=result.session_id, bytes_sent=sent)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan with graceful degradation.

    Missing credentials never stop the server; turns are refused with
    SERVICE_UNAVAILABLE until the configuration is fixed.
    """
    config: AppConfig = app.state.config
    pipeline: TurnPipeline = app.state.pipeline

    logger.info("=" * 60)
    logger.info(f"Starting Hindi Voice Bot API (Serverless: {IS_SERVERLESS})")
    logger.info("=" * 60)

    validator = ConfigValidator()
    if not validator.validate():
        logger.warning("[STARTUP] Configuration incomplete")
    validator.log_status(logger)

    if pipeline.providers is None:
        pipeline.providers = Providers.from_config(config)

    sweeper = SessionSweeper(app.state.store, config.session_sweep_interval_seconds)
    sweeper.start()
    app.state.sweeper = sweeper

    logger.info(f"[STARTUP] Final status: providers ready={pipeline.providers.is_ready()}")

    yield

    logger.info("Shutting down gracefully...")
    await sweeper.stop()
    try:
        await pipeline.providers.aclose()
    except Exception as e:
        logger.error(f"Error during shutdown: {e}")
    app.state.store.clear()


TURN_ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    401: {"model": ErrorResponse},
    429: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}


@router.post("/turn", responses=TURN_ERROR_RESPONSES)
@router.post("/chat", responses=TURN_ERROR_RESPONSES)
async def voice_turn(request: Request):
    """
    Run one voice turn.

    Multipart fields: ``audio`` (file), ``ttsProvider``, ``voicePreference``,
    optional ``sessionId``. The ``X-Session-Id`` header takes precedence.
    """
    state = request.app.state
    pipeline: TurnPipeline = state.pipeline
    session_id = request.headers.get("x-session-id")

    if pipeline.providers is None and state.lazy_providers:
        pipeline.providers = Providers.from_config(state.config)

    form = None
    try:
        client_host = request.client.host if request.client else "unknown"
        state.rate_limiter.check(client_host)

        form = await request.form()
        turn = await _read_turn_request(request, form, pipeline.max_audio_bytes)
        session_id = turn.session_id
        result = await pipeline.run(turn)
    except TurnError as e:
        if e.session_id is None:
            e.session_id = session_id
        return error_response(request, e)
    finally:
        if form is not None:
            await form.close()

    headers = {
        "X-Session-Id": result.session_id,
        "X-Transcription": encode_header_value(result.transcript),
        "X-Response-Text": encode_header_value(result.reply),
        "X-Processing-Time": str(result.processing_ms),
    }
    logger.info(
        f"Sending audio response (Processing time: {result.processing_ms}ms)",
        session_id=result.session_id,
        provider=result.provider,
    )
    return StreamingResponse(_relay_audio(result), media_type=result.media_type, headers=headers)


@router.get("/health")
async def health_check(request: Request):
    """Overall health, per-provider flags and the live session count."""
    state = request.app.state
    providers: Optional[Providers] = state.pipeline.providers
    apis = providers.status() if providers is not None else {}
    all_healthy = bool(apis) and all(apis.values())

    health = HealthResponse(
        status="healthy" if all_healthy else "unhealthy",
        timestamp=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        active_sessions=len(state.store),
        uptime=round(time.time() - state.started_at, 3),
        environment=state.config.environment,
        apis=ProviderStatus(**apis),
        error=None if all_healthy else "Some API clients are not initialized",
    )
    return health.model_dump(exclude_none=True)


@router.get("/session/{session_id}")
async def get_session(session_id: str, request: Request):
    """Read-only session metadata; does not extend the session's lifetime."""
    info = request.app.state.store.describe(session_id)
    if info is None:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"error": "Session not found", "code": ErrorCode.NOT_FOUND.value},
        )
    return info.model_dump(mode="json")


def create_app(
    config: Optional[AppConfig] = None,
    providers: Optional[Providers] = None,
    store: Optional[SessionStore] = None,
    serverless: bool = IS_SERVERLESS,
) -> FastAPI:
    """Build the application; tests pass their own providers and store."""
    config = config or load_config()
    if store is None:
        store = SessionStore(timeout_seconds=config.session_timeout_seconds)

    app = FastAPI(
        title="Hindi Voice Bot API",
        description="Voice chat relay: speech-to-text, Gemini conversation, text-to-speech",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.store = store
    app.state.pipeline = TurnPipeline(store, providers, max_audio_bytes=config.max_audio_bytes)
    app.state.rate_limiter = RateLimiter(config.rate_limit_requests, config.rate_limit_window)
    app.state.lazy_providers = serverless
    app.state.started_at = time.time()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "X-Session-Id", "X-Requested-With", "Accept", "Origin", "Authorization"],
        expose_headers=METADATA_HEADERS,
    )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code in (status.HTTP_404_NOT_FOUND, status.HTTP_405_METHOD_NOT_ALLOWED):
            return JSONResponse(
                status_code=status.HTTP_404_NOT_FOUND,
                content={"error": "Endpoint not found", "code": ErrorCode.NOT_FOUND.value},
            )
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": str(exc.detail), "code": ErrorCode.UNHANDLED_ERROR.value},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Handle all uncaught exceptions."""
        logger.error(
            f"Unhandled exception: {str(exc)}",
            path=request.url.path,
            method=request.method,
            exc_info=True
        )
        error = TurnError(
            ErrorCode.UNHANDLED_ERROR,
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "Something went wrong!",
            cause=exc,
        )
        return error_response(request, error)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all HTTP requests with timing."""
        start_time = time.time()
        request_id = str(uuid.uuid4())[:8]

        logger.debug(
            "Request started",
            request_id=request_id,
            method=request.method,
            path=request.url.path
        )

        try:
            response = await call_next(request)
        except Exception as e:
            duration = (time.time() - start_time) * 1000
            logger.error(
                f"Request failed: {str(e)}",
                request_id=request_id,
                method=request.method,
                path=request.url.path,
                duration_ms=duration
            )
            raise

        duration = (time.time() - start_time) * 1000
        logger.request(
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration_ms=duration,
            request_id=request_id
        )
        return response

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "message": "Hindi Voice Bot API",
            "version": app.version,
            "status": "running",
            "serverless": serverless,
            "docs": "/docs"
        }

    app.include_router(router)
    app.include_router(router, prefix="/api")
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    try:
        config = validate_config_on_startup()
    except ValueError as e:
        logger.error(f"Failed to initialize API clients: {e}")
        logger.error("Make sure all API keys are set in your environment variables")
        config = load_config()
        # Don't exit in production, just log the error
        if config.environment.lower() != "production":
            sys.exit(1)

    uvicorn.run(
        "app:app",
        host=config.host,
        port=config.port,
        log_level=config.log_level.lower()
    )
