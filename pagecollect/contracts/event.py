"""
Analytics Event Contract

Canonical event record forwarded to destinations. Wire format is the
Segment-style camelCase JSON (messageId, anonymousId, context.page.url...),
Python attributes are snake_case.

Contract:
- exactly one classification: `type` is one of EVENT_TYPES, custom event
  names live in `name` with type "track"; `eventType` is name or type
- messageId generated at construction, never reused
- userId/groupId/anonymousId: None means unknown, "" is normalized to None
- keys that are not canonical fields are moved into `properties`
"""
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from pagecollect.core.identity import random_id
from pagecollect.core.objects import deep_merge


EVENT_TYPES = frozenset({"page", "track", "identify", "group", "alias", "screen"})


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def classify(event_type: str) -> Tuple[str, Optional[str]]:
    """
    Map a classifier result to (type, name).

    "page" -> ("page", None), "page_view" -> ("track", "page_view")
    """
    if event_type.lower() in EVENT_TYPES:
        return event_type.lower(), None
    return "track", event_type


class WireModel(BaseModel):
    """camelCase on the wire, accepts both spellings on input"""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        validate_assignment=True,
        extra="allow",
    )


class PageContext(WireModel):
    url: Optional[str] = None
    path: Optional[str] = None
    referrer: Optional[str] = None
    title: Optional[str] = None
    search: Optional[str] = None
    matched_path: Optional[str] = None


class GeoLocation(WireModel):
    lat: Optional[float] = None
    lon: Optional[float] = None


class Geo(WireModel):
    country: Optional[str] = None
    region: Optional[str] = None
    city: Optional[str] = None
    timezone: Optional[str] = None
    postal_code: Optional[str] = None
    location: Optional[GeoLocation] = None


class Library(WireModel):
    name: str
    version: str


class EventContext(WireModel):
    """
    Request-derived metadata.

    campaign holds utm_* parameters with their original (lower-cased) names,
    click_ids holds gclid/fbclid/dclid.
    """
    page: PageContext = Field(default_factory=PageContext)
    ip: Optional[str] = None
    user_agent: Optional[str] = None
    user_agent_info: Dict[str, Any] = Field(default_factory=dict)
    locale: Optional[str] = None
    geo: Optional[Geo] = None
    library: Optional[Library] = None
    campaign: Dict[str, str] = Field(default_factory=dict)
    click_ids: Dict[str, str] = Field(default_factory=dict)


class AnalyticsEvent(BaseModel):
    """Event record, one per tracked request or collect call"""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    type: str
    name: Optional[str] = None
    message_id: str = Field(default_factory=random_id)
    anonymous_id: Optional[str] = None
    user_id: Optional[str] = None
    group_id: Optional[str] = None
    timestamp: Optional[str] = None
    sent_at: Optional[str] = None
    received_at: Optional[str] = None
    request_ip: Optional[str] = None
    context: EventContext = Field(default_factory=EventContext)
    properties: Dict[str, Any] = Field(default_factory=dict)
    traits: Dict[str, Any] = Field(default_factory=dict)

    @computed_field(alias="eventType")
    @property
    def event_type(self) -> str:
        return self.name or self.type

    @model_validator(mode="before")
    @classmethod
    def normalize_shape(cls, data: Any) -> Any:
        """Unknown keys -> properties, custom type -> track + name"""
        if not isinstance(data, dict):
            return data

        known = set()
        for field_name, info in cls.model_fields.items():
            known.add(field_name)
            known.add(info.alias or field_name)

        data = dict(data)
        data.pop("eventType", None)
        data.pop("event_type", None)

        # Segment track calls carry their name in `event`
        if "event" in data and not data.get("name"):
            data["name"] = data.pop("event")

        properties = data.get("properties")
        if properties is not None and not isinstance(properties, dict):
            raise ValueError("properties must be an object")

        extras = {key: data.pop(key) for key in list(data) if key not in known}
        if extras:
            properties = dict(properties or {})
            for key, value in extras.items():
                properties.setdefault(key, value)
            data["properties"] = properties

        raw_type = data.get("type")
        if isinstance(raw_type, str) and raw_type:
            event_type, custom_name = classify(raw_type)
            data["type"] = event_type
            if custom_name and not data.get("name"):
                data["name"] = custom_name
        return data

    @field_validator("anonymous_id", "user_id", "group_id", mode="before")
    @classmethod
    def empty_id_is_unknown(cls, v):
        if v is None or v == "":
            return None
        return str(v)

    @field_validator("type")
    @classmethod
    def type_not_empty(cls, v: str) -> str:
        if not v:
            raise ValueError("type must not be empty")
        return v

    def to_wire(self) -> Dict[str, Any]:
        """JSON-ready camelCase dict without None values"""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    def merge(self, data: Dict[str, Any]) -> "AnalyticsEvent":
        """
        Deep-merge data over this event in place.

        Nested dicts merge recursively, scalars from data win, keys only
        present on the event survive. Both camelCase and snake_case keys are
        accepted for canonical fields.
        """
        current = self.model_dump(by_alias=True, exclude_none=True)
        current.pop("eventType", None)
        merged = type(self).model_validate(deep_merge(current, _to_aliases(data)))
        for field_name in type(self).model_fields:
            setattr(self, field_name, getattr(merged, field_name))
        return self


def _to_aliases(data: Dict[str, Any]) -> Dict[str, Any]:
    """Rename top-level snake_case canonical keys to their wire alias"""
    fields = AnalyticsEvent.model_fields
    return {
        (fields[key].alias or key) if key in fields else key: value
        for key, value in data.items()
    }
