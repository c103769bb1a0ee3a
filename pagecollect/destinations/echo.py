"""Echo destination: logs every event, for local development"""
import itertools
from typing import Any, Dict

from pagecollect.contracts.event import AnalyticsEvent
from pagecollect.core.context import RequestContext
from pagecollect.core.logging import get_logger
from pagecollect.destinations.base import Destination, DestinationFactory


logger = get_logger(__name__)

_event_counter = itertools.count()


class EchoDestination(Destination):

    def describe(self) -> str:
        return "Echo"

    async def send(self, event: AnalyticsEvent, ctx: RequestContext) -> None:
        logger.info("echo_event", seq=next(_event_counter), event=event.to_wire())


class EchoFactory(DestinationFactory):
    name = "echo"

    def build(self, config: Dict[str, Any], timeout_ms: int) -> Destination:
        return EchoDestination()


echo = EchoFactory()
