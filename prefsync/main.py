"""
Preference Sync Service - Main FastAPI Application
HTTP and WebSocket surface over the optimistic preference stores
"""
from contextlib import asynccontextmanager
from typing import Optional

import httpx
import redis.asyncio as redis
import uvicorn
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from prefsync import __version__
from prefsync.core.config import PersistenceBackend, Settings, get_settings
from prefsync.core.logging import StructuredLogger
from prefsync.preferences import PersistentStore, PreferenceService, create_persistent_store
from prefsync.routes import health, preference_api
from prefsync.services import HttpPreferenceAuthority


def create_app(settings: Optional[Settings] = None,
               authority=None,
               persistent_store: Optional[PersistentStore] = None) -> FastAPI:
    """Create and configure FastAPI application.

    ``authority`` and ``persistent_store`` replace the configured backends,
    which is how tests run the app without network or disk.
    """
    settings = settings or get_settings()
    logger = StructuredLogger(
        service_name=settings.service_name,
        environment=settings.environment.value,
        log_level=settings.log_level.value,
        json_logs=settings.is_production
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager"""
        logger.info("Starting preference sync service",
                    environment=settings.environment.value,
                    upstream=settings.upstream_api_url,
                    version=__version__)

        http_client = None
        redis_client = None

        service_authority = authority
        if service_authority is None:
            http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(settings.request_timeout_seconds)
            )
            service_authority = HttpPreferenceAuthority(settings, logger, http_client=http_client)

        store = persistent_store
        if store is None:
            if settings.persistence_backend == PersistenceBackend.REDIS:
                if not settings.redis_url:
                    raise RuntimeError("PREFSYNC_REDIS_URL is required for the redis backend")
                redis_client = redis.from_url(settings.redis_url)
                logger.info("Redis client created", url=settings.redis_url)
            store = create_persistent_store(settings, logger, redis_client=redis_client)

        service = PreferenceService(settings, service_authority, store, logger)

        # Store components in app state
        app.state.settings = settings
        app.state.logger = logger
        app.state.preference_service = service

        logger.info("Preference sync service startup completed")

        yield

        # Shutdown
        logger.info("Shutting down preference sync service")
        await service.stop()
        if redis_client is not None:
            await redis_client.aclose()
        if http_client is not None:
            await http_client.aclose()
        logger.info("Preference sync service shutdown completed")

    app = FastAPI(
        title="Preference Sync Service",
        description="Optimistic user preference synchronization across consumers",
        version=__version__,
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router, tags=["health"])
    app.include_router(preference_api.router)

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        logger.warning("HTTP exception occurred",
                       status_code=exc.status_code,
                       detail=exc.detail,
                       path=request.url.path,
                       method=request.method)
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail, "status_code": exc.status_code}
        )

    return app


def run():
    """Development server entry point"""
    settings = get_settings()
    uvicorn.run(
        "prefsync.main:create_app",
        factory=True,
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.value.lower(),
    )


if __name__ == "__main__":
    run()
