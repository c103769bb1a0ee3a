"""
Destination registry and resolution

Built-in factories are registered once at import and exposed read-only.
Resolution turns the configured destination list into handles:

    ["segment", {"type": "postgrest", "options": {...}}, None]

- str: registered name
- DestinationSpec / {"type": ..., "options": ...}: name or factory + options
- Destination: used as-is
- falsy: slot skipped
"""
from types import MappingProxyType
from typing import Any, Iterable, List, Mapping, Optional

from pagecollect.core.config import DEFAULT_REMOTE_TIMEOUT_MS, Settings, get_settings
from pagecollect.core.exceptions import ConfigurationError
from pagecollect.core.logging import get_logger
from pagecollect.destinations.base import Destination, DestinationFactory, DestinationSpec
from pagecollect.destinations.echo import echo
from pagecollect.destinations.plausible import plausible
from pagecollect.destinations.postgrest import postgrest
from pagecollect.destinations.segment import jitsu, rudder, segment


logger = get_logger(__name__)

DESTINATIONS: Mapping[str, DestinationFactory] = MappingProxyType({
    factory.name: factory
    for factory in (segment, jitsu, rudder, plausible, postgrest, echo)
})


def self_configured_destinations(source: Optional[Settings] = None) -> List[str]:
    """Destinations whose credentials are present in the environment"""
    source = source or get_settings()
    names = []
    if source.SEGMENT_WRITE_KEY:
        names.append("segment")
    if source.JITSU_API_BASE and source.JITSU_WRITE_KEY:
        names.append("jitsu")
    if source.RUDDER_STACK_API_BASE and source.RUDDER_STACK_WRITE_KEY:
        names.append("rudder")
    if source.echo_enabled:
        names.append("echo")
    return names


def _factory(name: str) -> DestinationFactory:
    factory = DESTINATIONS.get(name)
    if factory is None:
        raise ConfigurationError(
            f"Unknown destination {name!r}. Known destinations: {', '.join(sorted(DESTINATIONS))}"
        )
    return factory


def resolve_destination(
    spec: Any,
    source: Optional[Settings] = None,
    timeout_ms: int = DEFAULT_REMOTE_TIMEOUT_MS,
) -> Optional[Destination]:
    """
    Raises:
        ConfigurationError: Unknown name, unparseable spec, missing credentials
    """
    if not spec:
        return None
    if isinstance(spec, Destination):
        return spec
    if isinstance(spec, str):
        return _factory(spec).create(source=source, timeout_ms=timeout_ms)
    if isinstance(spec, DestinationFactory):
        return spec.create(source=source, timeout_ms=timeout_ms)

    if isinstance(spec, Mapping) and "type" in spec:
        spec = DestinationSpec(type=spec["type"], options=dict(spec.get("options") or {}))
    if not isinstance(spec, DestinationSpec):
        raise ConfigurationError(f"Can't parse destination definition {spec!r}: unknown structure")

    factory = _factory(spec.type) if isinstance(spec.type, str) else spec.type
    if not isinstance(factory, DestinationFactory):
        raise ConfigurationError(f"Can't parse destination type {spec.type!r}")
    return factory.create(spec.options, source=source, timeout_ms=timeout_ms)


def resolve_destinations(
    specs: Optional[Iterable[Any]],
    source: Optional[Settings] = None,
    timeout_ms: int = DEFAULT_REMOTE_TIMEOUT_MS,
) -> List[Destination]:
    """Resolve the configured list, or the self-configured one when None"""
    if specs is None:
        specs = self_configured_destinations(source)

    destinations = []
    for spec in specs:
        destination = resolve_destination(spec, source=source, timeout_ms=timeout_ms)
        if destination is not None:
            destinations.append(destination)

    logger.info(
        "destinations_resolved",
        destinations=[d.describe() for d in destinations],
    )
    return destinations
