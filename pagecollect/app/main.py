"""
pagecollect example host application

FastAPI app with the collection layer installed:
- page tracking for every HTML route
- POST /api/ev collect endpoint (and /api/ev/debug when DEBUG_ROUTE=true)
- server-side events from handlers (see /api/signup)
- /health and Prometheus /metrics

Rules come from DEFAULT_EVENT_TYPES, or from the YAML file named by
COLLECT_CONFIG (e.g. config/collect.yaml).

Run with: uvicorn pagecollect.app.main:app
"""
import uuid
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse, JSONResponse
from prometheus_client import make_asgi_app

from pagecollect.core.config import CollectConfig, load_collect_config, settings
from pagecollect.core.exceptions import CollectException
from pagecollect.core.logging import setup_logging
from pagecollect.core.pipeline import EventPipeline
from pagecollect.core.version import LIBRARY_NAME, VERSION
from pagecollect.middleware.collect import CollectMiddleware


setup_logging(settings.LOG_LEVEL, json=settings.LOG_JSON)
logger = structlog.get_logger(__name__)

DEFAULT_EVENT_TYPES = [
    ("/api*", "$skip"),
    ("/metrics*", "$skip"),
    ("/health", "$skip"),
    ("/*", "page"),
]


def create_app(config: Optional[CollectConfig] = None) -> FastAPI:
    """
    Build the application.

    Raises:
        ConfigurationError: Invalid rules or destinations
    """
    if config is None:
        if settings.COLLECT_CONFIG:
            config = load_collect_config(settings.COLLECT_CONFIG)
        else:
            config = CollectConfig.from_settings(event_types=DEFAULT_EVENT_TYPES)
    pipeline = EventPipeline.from_config(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator:
        logger.info(
            "Starting collection app",
            env=settings.ENV,
            api_route=config.api_route,
            destinations=[d.describe() for d in pipeline.dispatcher.destinations],
        )
        yield
        logger.info("Shutting down collection app", pending_dispatches=pipeline.dispatcher.pending)
        await pipeline.dispatcher.aclose()

    app = FastAPI(
        title="pagecollect",
        version=VERSION,
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url=None,
        openapi_url="/openapi.json" if settings.DEBUG else None,
        lifespan=lifespan,
    )

    # ========================================================================
    # MIDDLEWARE
    # ========================================================================

    app.add_middleware(CollectMiddleware, pipeline=pipeline)

    @app.middleware("http")
    async def add_request_id_middleware(request: Request, call_next):
        """Add request ID to all requests for tracing"""
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response

    # ========================================================================
    # EXCEPTION HANDLERS
    # ========================================================================

    @app.exception_handler(CollectException)
    async def collect_exception_handler(request: Request, exc: CollectException):
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": exc.error_code,
                "message": exc.message,
                "details": exc.details,
            },
        )

    # ========================================================================
    # ROUTES
    # ========================================================================

    @app.get("/", response_class=HTMLResponse)
    async def index():
        return "<html><body><h1>pagecollect demo</h1></body></html>"

    @app.get("/health")
    async def health_check():
        return {"status": "healthy", "name": LIBRARY_NAME, "version": VERSION}

    @app.post("/api/signup")
    async def signup(request: Request):
        """Identify the user server-side, then track the signup"""
        payload = await request.json()
        analytics = request.state.analytics
        await analytics.identify(payload.get("email"), {"email": payload.get("email")})
        await analytics.track("signup", {"plan": payload.get("plan", "free")})
        return {"ok": True}

    @app.post("/api/logout")
    async def logout(request: Request):
        request.state.analytics.reset()
        return {"ok": True}

    app.mount("/metrics", make_asgi_app())

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("pagecollect.app.main:app", host="0.0.0.0", port=8000, reload=settings.DEBUG)
