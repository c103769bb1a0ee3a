"""
Anonymous id and persisted user/group identity.

Cookies:
- anonymous id: name configurable (default nc_id), plain value
- nc_next-collect-uid: JSON {"userId": ..., "traits": {...}}
- nc_next-collect-gruid: JSON {"groupId": ..., "traits": {...}}

Identity is passed around as values; nothing is cached between requests.
Two workers racing on the same missing cookie may each generate an id, the
last Set-Cookie wins.
"""
import json
import uuid
from typing import Any, Dict, Optional

from pagecollect.core.context import RequestContext
from pagecollect.core.logging import get_logger


logger = get_logger(__name__)

COOKIE_PREFIX = "nc_"
USER_PERSIST_KEY = "next-collect-uid"
GROUP_PERSIST_KEY = "next-collect-gruid"
USER_COOKIE = f"{COOKIE_PREFIX}{USER_PERSIST_KEY}"
GROUP_COOKIE = f"{COOKIE_PREFIX}{GROUP_PERSIST_KEY}"


def random_id() -> str:
    return uuid.uuid4().hex


def resolve_anonymous_id(
    cookie_name: str,
    cookie_domain: Optional[str],
    ctx: RequestContext,
) -> str:
    """
    Return the anonymous id from cookie_name, creating it if absent.

    A present non-empty cookie is returned as-is (no validation, no
    regeneration). Otherwise a fresh id is written to the response and
    is what subsequent calls in the same request see.
    """
    existing = ctx.get_cookie(cookie_name)
    if existing:
        return existing

    new_id = random_id()
    ctx.set_cookie(cookie_name, new_id, domain=cookie_domain)
    logger.debug("Anonymous id created", cookie=cookie_name, domain=cookie_domain)
    return new_id


def parse_persisted(what: str, raw: Optional[str]) -> Optional[Dict[str, Any]]:
    """JSON cookie payload, or None if missing/garbled (logged, never raised)"""
    if not raw:
        return None
    try:
        value = json.loads(raw)
    except (ValueError, TypeError) as e:
        logger.warning("Can't parse persisted identity", cookie=what, value=raw[:200], error=str(e))
        return None
    if not isinstance(value, dict):
        logger.warning("Persisted identity is not an object", cookie=what, value=raw[:200])
        return None
    return value


def recall_identity(event, ctx: RequestContext, cookie_domain: Optional[str]) -> None:
    """
    Fill missing userId/groupId from persisted cookies, or persist them.

    - event without groupId: take it from the group cookie if present
    - group event carrying groupId: write it to the group cookie
    - same for userId with identify events and the user cookie
    """
    if not event.group_id:
        persisted = parse_persisted(GROUP_COOKIE, ctx.get_cookie(GROUP_COOKIE))
        if persisted and persisted.get("groupId"):
            event.group_id = str(persisted["groupId"])
    elif event.type == "group":
        payload = {"groupId": event.group_id}
        if event.traits:
            payload["traits"] = event.traits
        ctx.set_cookie(GROUP_COOKIE, json.dumps(payload), domain=cookie_domain)

    if not event.user_id:
        persisted = parse_persisted(USER_COOKIE, ctx.get_cookie(USER_COOKIE))
        if persisted and persisted.get("userId"):
            event.user_id = str(persisted["userId"])
    elif event.type == "identify":
        payload = {"userId": event.user_id}
        if event.traits:
            payload["traits"] = event.traits
        ctx.set_cookie(USER_COOKIE, json.dumps(payload), domain=cookie_domain)


def reset_identity(ctx: RequestContext, cookie_domain: Optional[str] = None) -> None:
    """Forget persisted user and group (e.g. on logout)"""
    ctx.clear_cookie(USER_COOKIE, domain=cookie_domain)
    ctx.clear_cookie(GROUP_COOKIE, domain=cookie_domain)
