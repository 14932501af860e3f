"""
ChittyContext FastAPI Application.

Runtime context API: every request passes through the boundary middleware,
which attaches a context for the calling principal and audits the request.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from chittycontext import __version__
from chittycontext.api.middleware import ChittyContextMiddleware
from chittycontext.api.routes import contexts, conversations
from chittycontext.api.schemas import HealthResponse
from chittycontext.config import Settings
from chittycontext.db.connection import (
    check_connection,
    create_db_engine,
    create_session_factory,
    init_db,
)
from chittycontext.exceptions import ContextAccessError
from chittycontext.logging_config import setup_logging
from chittycontext.store import InMemoryKeyValueStore, KeyValueStore, SqlKeyValueStore
from chittycontext.tasks import InMemoryTaskChannel, TaskChannel

logger = logging.getLogger(__name__)


def build_store(settings: Settings) -> KeyValueStore:
    """Create the store selected by ``settings.store_backend``."""
    if settings.store_backend == "sql":
        engine = create_db_engine(settings.database_url)
        init_db(engine)
        logger.info(f"Using SQL store at {engine.url.render_as_string(hide_password=True)}")
        return SqlKeyValueStore(create_session_factory(engine))
    logger.info("Using in-memory store")
    return InMemoryKeyValueStore()


async def context_access_error_handler(
    request: Request, exc: ContextAccessError
) -> JSONResponse:
    headers = None
    if exc.retry_after is not None:
        headers = {"Retry-After": str(exc.retry_after)}
    return JSONResponse(
        status_code=exc.status_code, content=exc.to_dict(), headers=headers
    )


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[KeyValueStore] = None,
    channel: Optional[TaskChannel] = None,
) -> FastAPI:
    """
    Build the API application.

    Args:
        settings: Application settings (module settings if None)
        store: Key-value store; built from settings if None
        channel: Notification channel; an in-memory channel is created when
            notifications are enabled and none is given

    Returns:
        Configured FastAPI application
    """
    if settings is None:
        from chittycontext.config import settings as default_settings

        settings = default_settings

    if store is None:
        store = build_store(settings)
    if channel is None and settings.notifications_enabled:
        channel = InMemoryTaskChannel()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(context="api", settings=settings)
        logger.info(
            f"ChittyContext API starting ({settings.environment}, "
            f"store={settings.store_backend})"
        )
        yield
        logger.info("Application shutdown complete")

    app = FastAPI(
        lifespan=lifespan,
        title="ChittyContext API",
        description="Runtime context tracking for ChittyID principals",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.settings = settings
    app.state.store = store
    app.state.channel = channel

    app.add_exception_handler(ContextAccessError, context_access_error_handler)
    app.add_middleware(
        ChittyContextMiddleware,
        options=settings.middleware_options(),
        store=store,
        channel=channel,
    )

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        """Health check endpoint."""
        healthy = True
        if isinstance(store, SqlKeyValueStore):
            healthy = check_connection(store.engine)
        return HealthResponse(
            status="healthy" if healthy else "degraded",
            store=type(store).__name__,
            version=__version__,
        )

    app.include_router(contexts.router)
    app.include_router(conversations.router)
    return app


app = create_app()


def run() -> None:
    """Serve the module-level app with uvicorn."""
    import uvicorn

    from chittycontext.config import settings

    setup_logging(context="api", settings=settings)
    uvicorn.run(
        "chittycontext.api.app:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_reload,
    )
