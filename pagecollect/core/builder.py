"""
Event Builder

Turns a classified request into an AnalyticsEvent: network, page, campaign
and click-id context, anonymous id, timestamps. Delivers nothing.
"""
from typing import Any, Dict, Optional

from user_agents import parse as parse_user_agent

from pagecollect.contracts.event import (
    AnalyticsEvent,
    EventContext,
    Library,
    PageContext,
    classify,
    now_iso,
)
from pagecollect.core.context import RequestContext
from pagecollect.core.utm import get_click_ids, get_utms
from pagecollect.core.version import LIBRARY_NAME, VERSION


DEFAULT_LIBRARY = Library(name=LIBRARY_NAME, version=VERSION)


def primary_locale(accept_language: Optional[str]) -> Optional[str]:
    """'en-US,en;q=0.9' -> 'en-US'"""
    if not accept_language:
        return None
    first = accept_language.split(",")[0].split(";")[0].strip()
    return first or None


def user_agent_info(user_agent: Optional[str]) -> Dict[str, Any]:
    """Parsed browser / os / device; empty for a missing header"""
    if not user_agent:
        return {}
    ua = parse_user_agent(user_agent)
    if ua.is_mobile:
        device_type = "mobile"
    elif ua.is_tablet:
        device_type = "tablet"
    elif ua.is_pc:
        device_type = "desktop"
    else:
        device_type = "unknown"
    return {
        "browser": {"name": ua.browser.family, "version": ua.browser.version_string},
        "os": {"name": ua.os.family, "version": ua.os.version_string},
        "device": {"vendor": ua.device.brand, "model": ua.device.model, "type": device_type},
        "isBot": ua.is_bot,
    }


def build_context(ctx: RequestContext, library: Library = DEFAULT_LIBRARY) -> EventContext:
    url = ctx.public_url
    user_agent = ctx.get_header("user-agent")
    return EventContext(
        page=PageContext(
            url=url.url,
            path=url.path,
            referrer=ctx.get_header("referer") or "",
            title="",
            search=url.query_string,
        ),
        ip=ctx.ip,
        user_agent=user_agent,
        user_agent_info=user_agent_info(user_agent),
        locale=primary_locale(ctx.get_header("accept-language")),
        library=library,
        campaign=get_utms(url.query),
        click_ids=get_click_ids(url.query),
    )


def build_event(
    event_type: str,
    ctx: RequestContext,
    anonymous_id: Optional[str],
    library: Library = DEFAULT_LIBRARY,
) -> AnalyticsEvent:
    """
    Assemble the base event for a request.

    Args:
        event_type: Classifier result; canonical types (page, identify...)
            are kept, anything else becomes a "track" event with that name
        ctx: Request context
        anonymous_id: Resolved anonymous id
        library: Library identity stamped into context.library

    Returns:
        AnalyticsEvent with fresh messageId, timestamp and sentAt
    """
    kind, name = classify(event_type)
    created = now_iso()
    return AnalyticsEvent(
        type=kind,
        name=name,
        anonymous_id=anonymous_id,
        timestamp=created,
        sent_at=created,
        request_ip=ctx.ip,
        context=build_context(ctx, library),
    )
