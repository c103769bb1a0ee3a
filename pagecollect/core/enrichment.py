"""
Enrichment Hook

A custom hook wraps the default enrichment instead of replacing it:

    async def enrich(event, ctx, call_previous):
        call_previous(event)                 # geo, deployment, matched route
        event.user_id = await lookup_user(ctx.get_cookie("session"))

Not calling call_previous skips the default step for that event. The hook
may be sync or async. Errors are logged and swallowed: the event keeps
whatever state it had reached when the hook failed.
"""
import inspect
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from pagecollect.contracts.event import AnalyticsEvent, Geo, GeoLocation
from pagecollect.core.config import get_settings
from pagecollect.core.context import RequestContext
from pagecollect.core.logging import get_logger
from pagecollect.core.metrics import enrichment_failures_counter


logger = get_logger(__name__)

CallPrevious = Callable[[AnalyticsEvent], None]
EnrichmentHook = Callable[
    [AnalyticsEvent, RequestContext, CallPrevious],
    Union[None, Awaitable[None]],
]


def _to_float(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def geo_from_headers(ctx: RequestContext) -> Optional[Geo]:
    """Edge geo headers (Vercel, Cloudflare country); None when absent"""
    country = ctx.get_header("x-vercel-ip-country") or ctx.get_header("cf-ipcountry")
    if not country:
        return None
    lat = _to_float(ctx.get_header("x-vercel-ip-latitude"))
    lon = _to_float(ctx.get_header("x-vercel-ip-longitude"))
    return Geo(
        country=country,
        region=ctx.get_header("x-vercel-ip-country-region"),
        city=ctx.get_header("x-vercel-ip-city"),
        timezone=ctx.get_header("x-vercel-ip-timezone"),
        location=GeoLocation(lat=lat, lon=lon) if lat is not None or lon is not None else None,
    )


def deployment_properties() -> Dict[str, str]:
    source = get_settings()
    tags: Dict[str, str] = {}
    if source.VERCEL:
        if source.VERCEL_GIT_COMMIT_SHA:
            tags["deployId"] = source.VERCEL_GIT_COMMIT_SHA
        if source.VERCEL_ENV:
            tags["env"] = source.VERCEL_ENV
    if source.DEPLOYMENT_ENV:
        tags["env"] = source.DEPLOYMENT_ENV
    return tags


def default_enrichment(event: AnalyticsEvent, ctx: RequestContext) -> None:
    """Geo headers, deployment tags, matched route"""
    geo = geo_from_headers(ctx)
    if geo is not None:
        event.context.geo = geo

    tags = deployment_properties()
    if tags:
        event.properties = {**event.properties, **tags}

    matched_path = ctx.get_header("x-matched-path")
    if matched_path:
        event.context.page.matched_path = matched_path


def _default_hook(event: AnalyticsEvent, ctx: RequestContext, call_previous: CallPrevious) -> None:
    call_previous(event)


async def run_enrichment(
    event: AnalyticsEvent,
    ctx: RequestContext,
    hook: Optional[EnrichmentHook] = None,
) -> AnalyticsEvent:
    """
    Run hook (or the default enrichment) and wait for it to settle.

    Never raises; a failing hook is counted and logged.
    """
    hook = hook or _default_hook

    def call_previous(ev: AnalyticsEvent) -> None:
        default_enrichment(ev, ctx)

    try:
        result = hook(event, ctx, call_previous)
        if inspect.isawaitable(result):
            await result
    except Exception as e:
        enrichment_failures_counter.inc()
        logger.warning(
            "Enrichment failed, continuing with partially enriched event",
            message_id=event.message_id,
            error=str(e),
            exc_info=True,
        )
    return event


def enrich_with(
    data: Union[Dict[str, Any], Callable[[RequestContext], Dict[str, Any]]],
    call_default: bool = True,
) -> EnrichmentHook:
    """
    Hook deep-merging static or request-derived data over the event.

    Values from data take precedence over inferred ones, nested objects
    merge key by key.

    Example:
        enrich_with(lambda ctx: {"userId": ctx.get_header("x-user-id"),
                                 "properties": {"plan": "pro"}})
    """
    def hook(event: AnalyticsEvent, ctx: RequestContext, call_previous: CallPrevious) -> None:
        if call_default:
            call_previous(event)
        overrides = data(ctx) if callable(data) else data
        if overrides:
            event.merge(overrides)

    return hook
