"""
StyleMate Outfits API - Style archetypes and identity-preserving outfit generation
FastAPI Backend Entry Point
"""

import logging
import re
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from starlette.exceptions import HTTPException

from app.api import classify, outfits
from app.core.config import Settings, get_settings
from app.core.runtime import Runtime, build_runtime
from app.workers.base import OutfitJobError

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S"
)
logger = logging.getLogger("app")


def _error(status_code: int, message: str, **extra) -> JSONResponse:
    return JSONResponse({"ok": False, "error": message, **extra}, status_code=status_code)


def create_app(settings: Optional[Settings] = None, runtime: Optional[Runtime] = None) -> FastAPI:
    """Build the FastAPI app. A prebuilt runtime is used as-is and not closed on shutdown."""
    settings = runtime.settings if runtime else (settings or get_settings())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup and shutdown events."""
        logger.info(f"Starting {settings.APP_NAME} ({settings.BUILD})...")
        owned = runtime is None
        app.state.runtime = runtime or build_runtime(settings)
        logger.info(
            f"Dispatch mode: {settings.JOB_DISPATCH_MODE} | storage: {settings.STORAGE_BACKEND}"
        )
        yield
        logger.info(f"Shutting down {settings.APP_NAME}...")
        if owned:
            app.state.runtime.close()

    app = FastAPI(
        title=settings.APP_NAME,
        description="Style archetype classification and identity-preserving outfit generation",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # CORS middleware: any origin that starts with the allowed one is echoed back
    app.add_middleware(
        CORSMiddleware,
        allow_origin_regex=re.escape(settings.ALLOWED_ORIGIN) + ".*",
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
        max_age=86400,
    )

    @app.middleware("http")
    async def build_headers(request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Build"] = settings.BUILD
        if "cache-control" not in response.headers:
            response.headers["Cache-Control"] = "no-store"
        return response

    @app.exception_handler(OutfitJobError)
    async def outfit_error_handler(request: Request, exc: OutfitJobError):
        if exc.http_status >= 500:
            logger.error(f"[API] {request.url.path}: {exc.message}")
        return _error(exc.http_status, exc.message, **exc.details)

    @app.exception_handler(HTTPException)
    async def http_error_handler(request: Request, exc: HTTPException):
        return _error(exc.status_code, str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        fields = sorted({str(e["loc"][-1]) for e in exc.errors() if e.get("loc")})
        return _error(400, "Некорректный запрос", fields=fields)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception(f"[API] Unhandled error on {request.url.path}")
        return _error(500, "Server exception", debug=str(exc))

    # Include routers
    app.include_router(classify.router, tags=["Classification"])
    app.include_router(outfits.router, prefix="/outfits", tags=["Outfits"])

    @app.get("/health", tags=["Health"])
    async def health_check(request: Request):
        """
        Health check endpoint for deploy probes and monitoring.
        Returns detailed status of critical services.
        """
        rt: Runtime = request.app.state.runtime
        status = {
            "status": "healthy",
            "build": settings.BUILD,
            "environment": {
                "storage": settings.STORAGE_BACKEND,
                "dispatch": settings.JOB_DISPATCH_MODE,
            },
            "services": {}
        }

        # Check database connection
        try:
            with rt.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            status["services"]["database"] = "ok"
        except Exception as e:
            status["services"]["database"] = f"error: {str(e)}"
            status["status"] = "degraded"

        # Check Redis connection (rq dispatch only)
        if rt.redis_manager is not None:
            redis_status = rt.redis_manager.health_check()
            if redis_status.get("connected"):
                status["services"]["redis"] = "ok"
                status["services"]["redis_version"] = redis_status.get("redis_version")
            else:
                status["services"]["redis"] = f"error: {redis_status.get('error', 'not connected')}"
                status["status"] = "degraded"

        # Check storage availability
        try:
            status["services"]["storage"] = rt.storage.health_check()
        except Exception as e:
            status["services"]["storage"] = f"error: {str(e)}"
            status["status"] = "degraded"

        return status

    @app.get("/", tags=["Root"])
    async def root():
        """Root endpoint."""
        return {
            "message": settings.APP_NAME,
            "docs": "/docs",
            "health": "/health",
        }

    return app


app = create_app()
