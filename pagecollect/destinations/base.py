"""
Destination interface

A destination is built once per process from a factory and then receives
every event through send(). Factories merge, in increasing priority:
defaults, values derived from environment settings, explicit options.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union

import httpx

from pagecollect.contracts.event import AnalyticsEvent
from pagecollect.core.config import DEFAULT_REMOTE_TIMEOUT_MS, Settings, get_settings
from pagecollect.core.context import RequestContext


class Destination(ABC):
    """Ready-to-use sink; holds only configuration resolved at construction"""

    type: str = "custom"

    @abstractmethod
    async def send(self, event: AnalyticsEvent, ctx: RequestContext) -> None:
        """Deliver a single enriched event. Raise on failure."""

    @abstractmethod
    def describe(self) -> str:
        """Human readable description for logs, no secrets"""

    async def aclose(self) -> None:
        """Release resources held by the handle"""

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.describe()}>"


class HttpDestination(Destination):
    """
    Destination talking to an HTTP API.

    One AsyncClient per handle, opened on first use and reused by every send
    until aclose().
    """

    _client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            # timing is enforced by remote_call
            self._client = httpx.AsyncClient(timeout=None)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


class DestinationFactory(ABC):
    """Builds a Destination from merged configuration"""

    name: str = "custom"
    defaults: Dict[str, Any] = {}

    def config_from_env(self, source: Settings) -> Dict[str, Any]:
        return {}

    @abstractmethod
    def build(self, config: Dict[str, Any], timeout_ms: int) -> Destination:
        """
        Raises:
            ConfigurationError: Required option missing
        """

    def create(
        self,
        options: Optional[Dict[str, Any]] = None,
        source: Optional[Settings] = None,
        timeout_ms: int = DEFAULT_REMOTE_TIMEOUT_MS,
    ) -> Destination:
        env = {
            key: value
            for key, value in self.config_from_env(source or get_settings()).items()
            if value
        }
        config = {**self.defaults, **env, **(options or {})}
        destination = self.build(config, timeout_ms)
        destination.type = self.name
        return destination


@dataclass(frozen=True)
class DestinationSpec:
    """
    Destination reference with options.

    Attributes:
        type: Registered destination name or a DestinationFactory
        options: Overrides on top of defaults and env-derived values
    """
    type: Union[str, DestinationFactory]
    options: Dict[str, Any] = field(default_factory=dict)
