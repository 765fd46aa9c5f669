"""FastAPI application wiring for the identity service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from psycopg_pool import ConnectionPool

from .api.routes import router as v1_router
from .config import Settings, get_settings
from .domain.errors import StorageError
from .domain.service import IdentityLifecycle
from .repository import IdentityStore, InMemoryIdentityStore, PostgresIdentityStore
from .security.passwords import CredentialManager
from .security.tokens import TokenService

logger = logging.getLogger(__name__)

_SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
}


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def _open_pool(settings: Settings) -> ConnectionPool:
    pool = ConnectionPool(
        settings.database_url,
        min_size=settings.pool_min_size,
        max_size=settings.pool_max_size,
        timeout=settings.pool_timeout_seconds,
        kwargs={"options": f"-c statement_timeout={settings.statement_timeout_ms}"},
        open=False,
    )
    pool.open()
    return pool


def create_app(settings: Settings | None = None, store: IdentityStore | None = None) -> FastAPI:
    """Build the application; ``store`` overrides the configured backend."""
    settings = settings or get_settings()
    settings.validate()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Initialise the account store and identity lifecycle for the app lifecycle."""
        pool: ConnectionPool | None = None
        active_store = store
        if active_store is None and settings.store_backend == "memory":
            logger.warning("identity store using in-memory backend; data is not durable")
            active_store = InMemoryIdentityStore()
        elif active_store is None:
            pool = _open_pool(settings)
            postgres_store = PostgresIdentityStore(pool)
            postgres_store.ensure_schema()
            active_store = postgres_store
        app.state.identity_lifecycle = IdentityLifecycle(
            active_store,
            CredentialManager(settings.bcrypt_rounds),
            TokenService.from_settings(settings),
        )
        logger.info("%s %s started", settings.app_name, settings.version)
        try:
            yield
        finally:
            if pool is not None:
                pool.close()

    app = FastAPI(title=settings.app_name, version=settings.version, lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_allowed_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        max_age=600,
    )

    @app.middleware("http")
    async def security_headers(request: Request, call_next) -> Response:
        response = await call_next(request)
        for header, value in _SECURITY_HEADERS.items():
            response.headers.setdefault(header, value)
        return response

    @app.exception_handler(StorageError)
    async def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
        logger.error("storage failure on %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "storage backend unavailable"},
        )

    @app.get("/healthz", tags=["health"])
    def healthz() -> dict[str, str]:
        """Return a minimal readiness indicator used by orchestration systems."""
        return {"status": "ok"}

    app.include_router(v1_router)

    # Prometheus metrics endpoint for Prometheus scrapes
    @app.get("/metrics")
    def metrics() -> Response:
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    return app


def run() -> None:
    """Console entry point: serve the application with uvicorn."""
    import uvicorn

    settings = get_settings()
    configure_logging(settings.log_level)
    uvicorn.run(create_app(settings), host=settings.http_host, port=settings.http_port)
