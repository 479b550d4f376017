"""
Main FastAPI application entry point.

Run with: uvicorn formcraft.main:create_app --factory
"""
from contextlib import asynccontextmanager
import logging
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from botocore.exceptions import BotoCoreError, ClientError
import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration
from prometheus_fastapi_instrumentator import Instrumentator

from formcraft.core.config import Settings, get_settings
from formcraft.core.database import make_engine, make_session_factory
from formcraft.core.cache import ViewCounter
from formcraft.models.orm import Base
from formcraft.services.forms import FormNotFoundError, FormPermissionError, StoreError
from formcraft.services.generation import FormGenerator, GenerationError, GenerationNotConfigured
from formcraft.services.storage import BlobStore
from formcraft.api.ai import router as ai_router
from formcraft.api.forms import router as forms_router
from formcraft.api.public import router as public_router

logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    """
    settings: Settings = app.state.settings
    logger.info(f"Starting {settings.APP_NAME} API...")

    Base.metadata.create_all(app.state.engine)
    logger.info("Database initialized")

    blobs: BlobStore = app.state.blob_store
    if blobs.configured:
        try:
            blobs.ensure_bucket()
            logger.info(f"Storage bucket {blobs.bucket} ready")
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Storage bucket check failed, uploads will use inline fallback: {e}")

    yield

    logger.info(f"Shutting down {settings.APP_NAME} API...")
    app.state.view_counter.close()
    app.state.engine.dispose()
    logger.info("Shutdown complete")

def _error(status_code: int, message: str, details=None) -> JSONResponse:
    content = {"error": message}
    if details is not None:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content)

def add_exception_handlers(app: FastAPI, settings: Settings) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        content = exc.detail if isinstance(exc.detail, dict) else {"error": exc.detail}
        return JSONResponse(status_code=exc.status_code, content=content, headers=getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        details = [{"loc": list(e["loc"]), "msg": e["msg"], "type": e["type"]} for e in exc.errors()]
        return _error(status.HTTP_422_UNPROCESSABLE_ENTITY, "Validation error", details)

    @app.exception_handler(FormNotFoundError)
    async def not_found_handler(request: Request, exc: FormNotFoundError):
        return _error(status.HTTP_404_NOT_FOUND, str(exc) or "Form not found")

    @app.exception_handler(FormPermissionError)
    async def permission_handler(request: Request, exc: FormPermissionError):
        return _error(status.HTTP_403_FORBIDDEN, str(exc))

    @app.exception_handler(StoreError)
    async def store_error_handler(request: Request, exc: StoreError):
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc))

    @app.exception_handler(GenerationNotConfigured)
    async def generation_not_configured_handler(request: Request, exc: GenerationNotConfigured):
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc))

    @app.exception_handler(GenerationError)
    async def generation_error_handler(request: Request, exc: GenerationError):
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "AI service request failed", str(exc))

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        if settings.is_production():
            return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "An internal error occurred")
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "An internal error occurred", str(exc))

def create_app(settings: Optional[Settings] = None, *, view_counter: Optional[ViewCounter] = None,
               blob_store: Optional[BlobStore] = None, generator: Optional[FormGenerator] = None) -> FastAPI:
    """Build the application; collaborators default to ones made from settings."""
    settings = settings or get_settings()

    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    if settings.SENTRY_DSN:
        sentry_sdk.init(
            dsn=settings.SENTRY_DSN,
            environment=settings.ENVIRONMENT,
            integrations=[
                FastApiIntegration(transaction_style="endpoint"),
                SqlalchemyIntegration(),
            ],
            traces_sample_rate=settings.SENTRY_TRACES_SAMPLE_RATE,
        )

    app = FastAPI(
        title=settings.APP_NAME,
        description=settings.APP_DESCRIPTION,
        version=settings.APP_VERSION,
        docs_url=None if settings.is_production() else "/docs",
        redoc_url=None if settings.is_production() else "/redoc",
        lifespan=lifespan,
    )

    engine = make_engine(settings)
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = make_session_factory(engine)
    app.state.view_counter = view_counter or ViewCounter.from_settings(settings)
    app.state.blob_store = blob_store or BlobStore(settings)
    app.state.generator = generator or FormGenerator(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
        allow_methods=settings.CORS_ALLOW_METHODS,
        allow_headers=settings.CORS_ALLOW_HEADERS,
    )

    if settings.PROMETHEUS_ENABLED:
        Instrumentator().instrument(app).expose(app, endpoint="/metrics")

    add_exception_handlers(app, settings)

    app.include_router(ai_router, prefix="/api/ai", tags=["ai"])
    app.include_router(forms_router, prefix="/api", tags=["forms"])
    app.include_router(public_router, tags=["public"])

    @app.get("/health", tags=["Health"])
    def health():
        return {"status": "ok", "app": settings.APP_NAME, "version": settings.APP_VERSION,
                "environment": settings.ENVIRONMENT}

    return app
