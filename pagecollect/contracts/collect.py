"""
Collect Endpoint Contracts

Request:  POST {api_route}  {"event": {"messageId": ..., "type": ..., ...}}
Response: {"ok": true} | {"ok": false, "error": "..."}

Only messageId and type are validated strictly; everything else is
normalized by AnalyticsEvent (unknown keys end up in properties).
"""
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, ValidationError

from pagecollect.contracts.event import AnalyticsEvent
from pagecollect.core.exceptions import MalformedEventError


REQUIRED_EVENT_FIELDS = ("messageId", "type")


class CollectRequest(BaseModel):
    """Body of a client collect call"""
    event: Dict[str, Any] = Field(..., description="Partial Segment-style event")


class CollectResponse(BaseModel):
    ok: bool = Field(..., description="True once every destination settled")
    error: Optional[str] = Field(None, description="Reason for a rejected request")


def parse_collect_event(body: Any) -> AnalyticsEvent:
    """
    Validate a decoded collect request body.

    Raises:
        MalformedEventError: Body is not an object, event is missing, or the
            event lacks messageId / type
    """
    if not isinstance(body, dict):
        raise MalformedEventError(f"Malformed request, expected a JSON object, got {type(body).__name__}")
    try:
        request = CollectRequest.model_validate(body)
    except ValidationError:
        raise MalformedEventError("Malformed request, event is not present in request")

    raw = request.event
    for field_name in REQUIRED_EVENT_FIELDS:
        if not raw.get(field_name):
            raise MalformedEventError(
                f"Malformed request, {field_name} is not present in request",
                details={"missing": field_name},
            )
    try:
        return AnalyticsEvent.model_validate(raw)
    except ValidationError as e:
        raise MalformedEventError(f"Malformed event: {e.errors()[0]['msg']}")
