"""
Segment-compatible destinations (Segment, Jitsu, RudderStack)

All three accept the Segment HTTP tracking API:
POST {api_base}/{event.type} with Basic auth base64("<write_key>:").
"""
import base64
from typing import Any, Callable, Dict

from pagecollect.contracts.event import AnalyticsEvent
from pagecollect.core.config import Settings
from pagecollect.core.context import RequestContext
from pagecollect.core.exceptions import ConfigurationError
from pagecollect.core.remote import remote_call
from pagecollect.core.utm import to_segment_campaign
from pagecollect.destinations.base import Destination, DestinationFactory, HttpDestination


SEGMENT_API_BASE = "https://api.segment.io/v1"


def mask_write_key(write_key: str) -> str:
    """abcdefghijklmn -> abc***lmn, shorter keys reveal less"""
    if len(write_key) < 5:
        return "***"
    if len(write_key) < 8:
        visible = 1
    elif len(write_key) < 11:
        visible = 2
    else:
        visible = 3
    return f"{write_key[:visible]}***{write_key[-visible:]}"


def normalize_api_base(api_base: str) -> str:
    """Strip trailing slashes, default to https when no scheme is given"""
    api_base = api_base.strip().rstrip("/")
    if not api_base.startswith(("http://", "https://")):
        api_base = f"https://{api_base}"
    return api_base


def segment_payload(event: AnalyticsEvent) -> Dict[str, Any]:
    payload = event.to_wire()
    if event.type == "track" and event.name:
        payload["event"] = event.name
    context = payload.get("context", {})
    if context.get("campaign"):
        context["campaign"] = to_segment_campaign(context["campaign"])
    return payload


class SegmentLikeDestination(HttpDestination):

    def __init__(self, display_name: str, api_base: str, write_key: str, timeout_ms: int):
        self.display_name = display_name
        self.api_base = normalize_api_base(api_base)
        self.write_key = write_key
        self.timeout_ms = timeout_ms
        token = base64.b64encode(f"{write_key}:".encode()).decode()
        self._auth_header = f"Basic {token}"

    def describe(self) -> str:
        return f"{self.display_name} @ {self.api_base} (key: {mask_write_key(self.write_key)})"

    async def send(self, event: AnalyticsEvent, ctx: RequestContext) -> None:
        await remote_call(
            f"{self.api_base}/{event.type}",
            method="POST",
            headers={"Authorization": self._auth_header},
            payload=segment_payload(event),
            timeout_ms=self.timeout_ms,
            client=self.client,
        )


class SegmentLikeFactory(DestinationFactory):
    """One factory per Segment-compatible vendor"""

    def __init__(
        self,
        name: str,
        display_name: str,
        env: Callable[[Settings], Dict[str, Any]],
        api_base: str = SEGMENT_API_BASE,
    ):
        self.name = name
        self.display_name = display_name
        self.defaults = {"api_base": api_base}
        self._env = env

    def config_from_env(self, source: Settings) -> Dict[str, Any]:
        return self._env(source)

    def build(self, config: Dict[str, Any], timeout_ms: int) -> Destination:
        write_key = config.get("write_key")
        if not write_key:
            raise ConfigurationError(
                f"Missing write_key for {self.name} destination. It should be either "
                f"set as env variable or passed as option"
            )
        return SegmentLikeDestination(
            self.display_name,
            api_base=config.get("api_base") or SEGMENT_API_BASE,
            write_key=write_key,
            timeout_ms=timeout_ms,
        )


segment = SegmentLikeFactory(
    "segment",
    "Segment",
    lambda s: {"api_base": s.SEGMENT_API_BASE, "write_key": s.SEGMENT_WRITE_KEY},
)

jitsu = SegmentLikeFactory(
    "jitsu",
    "Jitsu",
    lambda s: {"api_base": s.JITSU_API_BASE, "write_key": s.JITSU_WRITE_KEY},
)

rudder = SegmentLikeFactory(
    "rudder",
    "RudderStack",
    lambda s: {"api_base": s.RUDDER_STACK_API_BASE, "write_key": s.RUDDER_STACK_WRITE_KEY},
)
