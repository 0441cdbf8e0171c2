import logging
import sys
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

# Loads .env before anything reads the environment
from .config import Settings, get_settings
from .errors import GatewayError, InvalidInput
from .gateway import ConversationGateway
from .middleware import RateLimitMiddleware, RequestLogMiddleware, SecurityHeadersMiddleware
from .routes.api import conversation, router
from .services.registry import Services, build_services

logger = logging.getLogger(__name__)

AVAILABLE_ENDPOINTS = [
    "GET /",
    "GET /api/health",
    "POST /conversation/text",
    "POST /conversation/voice",
    "GET /conversation/history",
]


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stdout,
    )


def register_exception_handlers(app: FastAPI, settings: Settings) -> None:
    include_detail = not settings.is_production

    @app.exception_handler(GatewayError)
    async def _gateway_error_handler(request: Request, exc: GatewayError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.cause or exc)
        return JSONResponse(exc.to_body(include_detail), status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def _validation_exception_handler(request: Request, exc: RequestValidationError):
        logger.debug("validation error on %s: %s", request.url.path, exc.errors())
        error = InvalidInput(title="Validation Error")
        body = error.to_body()
        if include_detail:
            body["detail"] = str(exc.errors())
        return JSONResponse(body, status_code=status.HTTP_400_BAD_REQUEST)

    @app.exception_handler(StarletteHTTPException)
    async def _http_exception_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == status.HTTP_404_NOT_FOUND:
            return JSONResponse(
                {
                    "error": "Route not found",
                    "message": f"The requested path {request.url.path} does not exist.",
                    "availableEndpoints": AVAILABLE_ENDPOINTS,
                },
                status_code=exc.status_code,
            )
        return JSONResponse({"error": str(exc.detail), "message": str(exc.detail)}, status_code=exc.status_code)

    @app.exception_handler(Exception)
    async def _unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        body = {"error": "Something went wrong!", "message": "An unexpected error occurred. Please try again."}
        if include_detail:
            body["message"] = str(exc)
        return JSONResponse(body, status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    logger.info("%s starting (%s), frontend origin %s", settings.app_name, settings.environment, settings.frontend_url)
    transcriber = app.state.services.transcriber
    if hasattr(transcriber, "warmup"):
        # Preload heavy models to avoid cold-start latency
        transcriber.warmup()
    yield
    logger.info("%s shutting down", settings.app_name)


def create_app(settings: Optional[Settings] = None, services: Optional[Services] = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level)
    services = services if services is not None else build_services(settings)

    app = FastAPI(title=settings.app_name, version=settings.app_version, lifespan=lifespan)
    app.state.settings = settings
    app.state.services = services
    app.state.started_at = time.monotonic()
    app.state.gateway = ConversationGateway(
        generator=services.generator,
        transcriber=services.transcriber,
        synthesizer=services.synthesizer,
        publisher=services.publisher,
        max_message_length=settings.max_message_length,
        max_upload_bytes=settings.max_upload_bytes,
    )

    # Last added runs first: CORS, headers, gzip, timing, then the limiters
    app.add_middleware(
        RateLimitMiddleware,
        limit=settings.rate_limit,
        window=settings.rate_window,
        path_prefix="/conversation",
        trust_proxy=settings.trust_proxy,
    )
    app.add_middleware(
        RateLimitMiddleware,
        limit=settings.general_rate_limit,
        window=settings.rate_window,
        path_prefix="/",
        trust_proxy=settings.trust_proxy,
        error="Too many requests",
        message="Please wait a moment before trying again.",
    )
    app.add_middleware(RequestLogMiddleware)
    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_url],
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    register_exception_handlers(app, settings)
    app.include_router(router)
    app.include_router(conversation)

    # Locally published TTS audio
    settings.uploads_dir.mkdir(parents=True, exist_ok=True)
    app.mount("/uploads", StaticFiles(directory=str(settings.uploads_dir)), name="uploads")
    return app
