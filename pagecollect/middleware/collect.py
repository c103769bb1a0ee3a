"""
Collect Middleware

Installs the collection pipeline in a Starlette / FastAPI application.

Entry points:
- page tracking: every request the classifier accepts produces an event;
  delivery runs in the background, the host response is never delayed by
  destinations nor altered by tracking failures
- POST {api_route}: client-submitted event, answered after every
  destination settled
- GET {api_route}/debug?type=&path= (debug_route only): the event the
  pipeline would build for this request, not delivered

Handlers can emit server-side events through request.state.analytics.

Example:
    app.add_middleware(
        CollectMiddleware,
        config=CollectConfig.from_settings(event_types=[("/api*", "$skip"), ("/*", "page")]),
    )
"""
from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp

from pagecollect.contracts.collect import CollectResponse, parse_collect_event
from pagecollect.contracts.event import now_iso
from pagecollect.core.config import CollectConfig
from pagecollect.core.exceptions import MalformedEventError
from pagecollect.core.logging import get_logger
from pagecollect.core.metrics import events_skipped_counter
from pagecollect.core.pipeline import EventPipeline, ServerAnalytics
from pagecollect.middleware.starlette_context import StarletteRequestContext


logger = get_logger(__name__)


def _json(ok: bool, status_code: int = 200, error: Optional[str] = None) -> JSONResponse:
    body = CollectResponse(ok=ok, error=error).model_dump(exclude_none=True)
    return JSONResponse(body, status_code=status_code)


class CollectMiddleware(BaseHTTPMiddleware):
    """Page tracking + collect endpoint; configuration is resolved once here"""

    def __init__(
        self,
        app: ASGIApp,
        config: Optional[CollectConfig] = None,
        pipeline: Optional[EventPipeline] = None,
    ):
        super().__init__(app)
        self.config = config or (pipeline.config if pipeline else CollectConfig.from_settings())
        # ConfigurationError surfaces here, at startup
        self.pipeline = pipeline or EventPipeline.from_config(self.config)
        self.debug_route = f"{self.config.api_route.rstrip('/')}/debug"

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        path = request.url.path
        if path == self.config.api_route:
            return await self.handle_collect(request)
        if self.config.debug_route and path == self.debug_route:
            return await self.handle_debug(request)

        ctx = StarletteRequestContext(request)
        request.state.analytics = ServerAnalytics(self.pipeline, ctx)

        response = await call_next(request)
        ctx.response = response

        await self.track_page(ctx)
        ctx.apply_cookies(response)
        return response

    async def track_page(self, ctx: StarletteRequestContext) -> None:
        """Classify, build and enrich; delivery is scheduled, not awaited"""
        try:
            event_type = self.pipeline.classifier.classify(ctx)
            if not event_type:
                events_skipped_counter.inc()
                return
            event = self.pipeline.new_event(event_type, ctx)
            await self.pipeline.run(event, ctx, wait=False, entry_point="page")
        except Exception as e:
            logger.error(
                "page_tracking_failed",
                path=ctx.path,
                error=str(e),
                exc_info=True,
            )

    async def handle_collect(self, request: Request) -> Response:
        if request.method != "POST":
            return _json(False, 405, f"Only POST is supported. Received {request.method}")

        try:
            body = await request.json()
        except ValueError:
            return _json(False, 400, "Malformed request, body is not valid JSON")

        try:
            event = parse_collect_event(body)
        except MalformedEventError as e:
            logger.info("collect_rejected", error=e.message)
            return _json(False, e.status_code, e.message)
        except Exception as e:
            logger.error("collect_parse_failed", error=str(e), exc_info=True)
            return _json(False, 500, str(e))

        ctx = StarletteRequestContext(request)
        try:
            # client-supplied anonymous id wins over the cookie
            if not event.anonymous_id:
                event.anonymous_id = self.pipeline.anonymous_id(ctx)
            event.request_ip = ctx.ip
            if not event.context.ip:
                event.context.ip = ctx.ip
            event.received_at = now_iso()
            await self.pipeline.run(event, ctx, wait=True, entry_point="collect")
        except Exception as e:
            logger.error("collect_failed", message_id=event.message_id, error=str(e), exc_info=True)
            return _json(False, 500, str(e))

        return ctx.apply_cookies(_json(True))

    async def handle_debug(self, request: Request) -> Response:
        event_type = request.query_params.get("type") or "page"
        ctx = StarletteRequestContext(request, path=request.query_params.get("path") or None)
        event = self.pipeline.new_event(event_type, ctx)
        await self.pipeline.process(event, ctx)
        return ctx.apply_cookies(JSONResponse(event.to_wire()))
