"""Plausible Analytics events API"""
from typing import Any, Dict

from pagecollect.contracts.event import AnalyticsEvent
from pagecollect.core.config import Settings
from pagecollect.core.context import DEFAULT_IP, RequestContext
from pagecollect.core.exceptions import ConfigurationError
from pagecollect.core.logging import get_logger
from pagecollect.core.remote import remote_call
from pagecollect.destinations.base import Destination, DestinationFactory, HttpDestination


logger = get_logger(__name__)

PLAUSIBLE_EVENT_URL = "https://plausible.io/api/event"

# Plausible has no notion of users or groups
IGNORED_TYPES = frozenset({"identify", "group", "alias"})


class PlausibleDestination(HttpDestination):

    def __init__(self, domain: str, timeout_ms: int, api_url: str = PLAUSIBLE_EVENT_URL):
        self.domain = domain
        self.api_url = api_url
        self.timeout_ms = timeout_ms

    def describe(self) -> str:
        return f"Plausible @ {self.domain}"

    def payload(self, event: AnalyticsEvent) -> Dict[str, Any]:
        page = event.context.page
        body = {
            "domain": self.domain,
            "name": "pageview" if event.type == "page" else event.event_type,
            "url": page.url,
            "referrer": page.referrer or None,
            "props": event.properties or None,
            "revenue": event.properties.get("revenue"),
        }
        return {key: value for key, value in body.items() if value is not None}

    async def send(self, event: AnalyticsEvent, ctx: RequestContext) -> None:
        if event.type in IGNORED_TYPES:
            logger.debug("plausible_skip", event_type=event.type, message_id=event.message_id)
            return
        await remote_call(
            self.api_url,
            method="POST",
            headers={
                "X-Forwarded-For": event.context.ip or event.request_ip or DEFAULT_IP,
                "User-Agent": event.context.user_agent or "",
            },
            payload=self.payload(event),
            timeout_ms=self.timeout_ms,
            client=self.client,
        )


class PlausibleFactory(DestinationFactory):
    name = "plausible"
    defaults = {"api_url": PLAUSIBLE_EVENT_URL}

    def config_from_env(self, source: Settings) -> Dict[str, Any]:
        return {"domain": source.PLAUSIBLE_DOMAIN}

    def build(self, config: Dict[str, Any], timeout_ms: int) -> Destination:
        domain = config.get("domain")
        if not domain:
            raise ConfigurationError(
                "Missing Plausible domain. It should be either set as env variable "
                "PLAUSIBLE_DOMAIN or passed as option"
            )
        return PlausibleDestination(domain, timeout_ms=timeout_ms, api_url=config["api_url"])


plausible = PlausibleFactory()
