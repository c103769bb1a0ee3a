"""
Event pipeline

Shared by every entry point (page tracking, collect endpoint, debug
endpoint, server-side analytics calls):

    build -> default timestamp -> enrichment -> identity recall -> dispatch

Enrichment always completes before any destination is invoked. Whether the
caller waits for delivery is the entry point's choice (run(wait=...)).
"""
import ipaddress
from typing import Any, Dict, Optional

from pagecollect.contracts.event import AnalyticsEvent, now_iso
from pagecollect.core.builder import build_event
from pagecollect.core.classifier import EventClassifier
from pagecollect.core.config import CollectConfig, Settings
from pagecollect.core.context import RequestContext
from pagecollect.core.dispatcher import Dispatcher
from pagecollect.core.enrichment import run_enrichment
from pagecollect.core.identity import recall_identity, reset_identity, resolve_anonymous_id
from pagecollect.core.metrics import events_collected_counter
from pagecollect.core.url import get_primary_domain
from pagecollect.destinations.registry import resolve_destinations


def _is_ip(host: str) -> bool:
    try:
        ipaddress.ip_address(host.strip("[]"))
    except ValueError:
        return False
    return True


class EventPipeline:
    """Process-wide pipeline; built once, read-only afterwards"""

    def __init__(self, config: CollectConfig, dispatcher: Dispatcher):
        self.config = config
        self.dispatcher = dispatcher
        self.classifier = EventClassifier(
            config.event_types,
            api_route=config.api_route,
            filter=config.filter,
        )

    @classmethod
    def from_config(cls, config: CollectConfig, source: Optional[Settings] = None) -> "EventPipeline":
        """
        Raises:
            ConfigurationError: Bad rules or destination list
        """
        destinations = resolve_destinations(
            config.destinations,
            source=source,
            timeout_ms=config.remote_timeout_ms,
        )
        return cls(config, Dispatcher(destinations, config.error_handler))

    def cookie_domain(self, ctx: RequestContext) -> Optional[str]:
        """Configured domain, else the primary domain of the request host"""
        if self.config.cookie_domain:
            return self.config.cookie_domain
        host = ctx.public_url.host
        # browsers reject Domain= for single-label hosts and ip addresses
        if "." not in host or _is_ip(host):
            return None
        return get_primary_domain(host)

    def anonymous_id(self, ctx: RequestContext) -> str:
        return resolve_anonymous_id(self.config.cookie_name, self.cookie_domain(ctx), ctx)

    def new_event(self, event_type: str, ctx: RequestContext) -> AnalyticsEvent:
        return build_event(event_type, ctx, self.anonymous_id(ctx))

    async def process(self, event: AnalyticsEvent, ctx: RequestContext) -> AnalyticsEvent:
        """Everything up to, but excluding, delivery"""
        if not event.timestamp:
            event.timestamp = event.sent_at or now_iso()
        await run_enrichment(event, ctx, self.config.enrich)
        recall_identity(event, ctx, self.cookie_domain(ctx))
        return event

    async def run(
        self,
        event: AnalyticsEvent,
        ctx: RequestContext,
        wait: bool = True,
        entry_point: str = "server",
    ) -> AnalyticsEvent:
        """
        Process and deliver an event.

        Args:
            wait: True awaits every destination, False schedules delivery
                in the background and returns right after enrichment
            entry_point: Metrics label (page, collect, server)
        """
        await self.process(event, ctx)
        events_collected_counter.labels(event_type=event.event_type, entry_point=entry_point).inc()
        if wait:
            await self.dispatcher.dispatch(event, ctx)
        else:
            self.dispatcher.schedule(event, ctx)
        return event


class ServerAnalytics:
    """
    Segment-style calls from request handlers:

        analytics = request.state.analytics
        await analytics.identify("user-1", {"email": "a@b.c"})
        await analytics.track("signup", {"plan": "pro"})

    Events go through the same pipeline as tracked pages and are awaited.
    """

    def __init__(self, pipeline: EventPipeline, ctx: RequestContext):
        self.pipeline = pipeline
        self.ctx = ctx

    async def _emit(self, event_type: str, **fields: Any) -> AnalyticsEvent:
        event = self.pipeline.new_event(event_type, self.ctx)
        for name, value in fields.items():
            if value is not None:
                setattr(event, name, value)
        return await self.pipeline.run(event, self.ctx, wait=True, entry_point="server")

    async def page(self, name: Optional[str] = None, properties: Optional[Dict[str, Any]] = None) -> AnalyticsEvent:
        return await self._emit("page", name=name, properties=properties)

    async def track(self, name: str, properties: Optional[Dict[str, Any]] = None) -> AnalyticsEvent:
        return await self._emit(name, properties=properties)

    async def identify(self, user_id: Optional[str] = None, traits: Optional[Dict[str, Any]] = None) -> AnalyticsEvent:
        return await self._emit("identify", user_id=user_id, traits=traits)

    async def group(self, group_id: str, traits: Optional[Dict[str, Any]] = None) -> AnalyticsEvent:
        return await self._emit("group", group_id=group_id, traits=traits)

    def reset(self) -> None:
        """Forget persisted user and group identity"""
        reset_identity(self.ctx, self.pipeline.cookie_domain(self.ctx))
