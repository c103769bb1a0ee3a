"""
Request classification: which event, if any, a request produces.

Rules (PrefixMap) are consulted first. SKIP means no event, an event type
string is used as-is, a None resolution or no match falls back to the
default filter:
- prefetch requests, /_next, /api, /favicon and the collect route: no event
- everything else: "page"

A custom filter callable, when given, replaces both.
"""
from typing import Any, Callable, Optional

from pagecollect.core.config import DEFAULT_API_ROUTE
from pagecollect.core.context import RequestContext
from pagecollect.core.prefix_map import SKIP, PrefixMap


EventFilter = Callable[[RequestContext], Any]

IGNORED_PREFIXES = ("/_next", "/api", "/favicon")


class EventClassifier:

    def __init__(
        self,
        rules: Any = None,
        api_route: str = DEFAULT_API_ROUTE,
        filter: Optional[EventFilter] = None,
    ):
        self.rules = rules if isinstance(rules, PrefixMap) else PrefixMap.from_config(rules)
        self.api_route = api_route
        self.filter = filter

    def default_filter(self, ctx: RequestContext) -> Optional[str]:
        path = ctx.path
        if ctx.is_prefetch:
            return None
        if path.startswith(IGNORED_PREFIXES) or path.startswith(self.api_route):
            return None
        return "page"

    def classify(self, ctx: RequestContext) -> Optional[str]:
        """Event type for this request, None to skip it"""
        if self.filter is not None:
            return self.filter(ctx) or None

        resolution = self.rules.get(ctx.path)
        if resolution == SKIP:
            return None
        if isinstance(resolution, str):
            return resolution
        return self.default_filter(ctx)
