"""
Fan-Out Dispatcher

Delivers one event to every configured destination concurrently.

Guarantees:
- each destination's send() is invoked exactly once per dispatch
- a failure (sync raise or async error) in one destination never affects
  another
- dispatch() returns after every destination settled and never raises
"""
import asyncio
import inspect
from typing import Any, Callable, List, Optional, Sequence, Set

from pagecollect.contracts.event import AnalyticsEvent
from pagecollect.core.context import RequestContext
from pagecollect.core.logging import get_logger
from pagecollect.core.metrics import destination_deliveries_counter
from pagecollect.core.objects import truncate
from pagecollect.destinations.base import Destination


logger = get_logger(__name__)

MAX_LOGGED_ERROR_LEN = 1000

ErrorHandler = Callable[[str, BaseException], Any]


class Dispatcher:
    """Destination list + failure policy, shared by all requests"""

    def __init__(
        self,
        destinations: Sequence[Destination],
        error_handler: Optional[ErrorHandler] = None,
    ):
        self.destinations: List[Destination] = list(destinations)
        self.error_handler = error_handler
        self._background: Set[asyncio.Task] = set()

    async def _deliver(self, destination: Destination, event: AnalyticsEvent, ctx: RequestContext) -> None:
        try:
            result = destination.send(event, ctx)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            destination_deliveries_counter.labels(destination=destination.type, outcome="failure").inc()
            await self._handle_error(destination, event, e)
        else:
            destination_deliveries_counter.labels(destination=destination.type, outcome="success").inc()

    async def _handle_error(self, destination: Destination, event: AnalyticsEvent, error: Exception) -> None:
        if self.error_handler is None:
            logger.warning(
                "destination_failed",
                destination=destination.describe(),
                message_id=event.message_id,
                error=truncate(str(error), MAX_LOGGED_ERROR_LEN),
            )
            return
        try:
            handled = self.error_handler(destination.type, error)
            if inspect.isawaitable(handled):
                await handled
        except Exception as handler_error:
            logger.error(
                "error_handler_failed",
                destination=destination.describe(),
                original_error=truncate(str(error), MAX_LOGGED_ERROR_LEN),
                error=truncate(str(handler_error), MAX_LOGGED_ERROR_LEN),
            )

    async def dispatch(self, event: AnalyticsEvent, ctx: RequestContext) -> None:
        """Send to all destinations; resolves once every send settled"""
        if not self.destinations:
            return
        await asyncio.gather(*(self._deliver(d, event, ctx) for d in self.destinations))
        logger.debug(
            "event_dispatched",
            message_id=event.message_id,
            event_type=event.event_type,
            destinations=len(self.destinations),
        )

    def schedule(self, event: AnalyticsEvent, ctx: RequestContext) -> Optional[asyncio.Task]:
        """
        Fire-and-forget dispatch on the running loop.

        The task is referenced until done so it can't be garbage collected
        mid-flight.
        """
        if not self.destinations:
            return None
        task = asyncio.get_running_loop().create_task(self.dispatch(event, ctx))
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def aclose(self) -> None:
        """Close every destination handle (shared HTTP clients)"""
        for destination in self.destinations:
            try:
                await destination.aclose()
            except Exception as e:
                logger.warning("destination_close_failed", destination=destination.describe(), error=str(e))

    @property
    def pending(self) -> int:
        """Background dispatches still in flight"""
        return len(self._background)
