"""
Request context: the only view of the hosting framework the pipeline has.

Each hosting integration provides exactly one adapter implementing the
abstract primitives below (see middleware/starlette_context.py).
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional
from urllib.parse import quote, unquote

from pagecollect.core.url import PublicUrl


# 10 years
COOKIE_MAX_AGE = 60 * 60 * 24 * 365 * 10

IP_HEADERS = ("x-forwarded-for", "x-real-ip", "cf-connecting-ip", "true-client-ip")
DEFAULT_IP = "127.0.0.1"


def encode_cookie(value: str) -> str:
    return quote(value, safe="")


def decode_cookie(value: Optional[str]) -> Optional[str]:
    return unquote(value) if value else None


_UNSET = object()


class RequestContext(ABC):
    """Request/response pair of one inbound HTTP request"""

    def __init__(self):
        # cookies written during this request, None for cleared ones
        self._pending_cookies: Dict[str, Optional[str]] = {}

    @abstractmethod
    def get_header(self, name: str) -> Optional[str]:
        """Header value (case-insensitive), repeated headers joined with ','"""

    @abstractmethod
    def _raw_cookie(self, name: str) -> Optional[str]:
        """Cookie value exactly as sent by the client"""

    @abstractmethod
    def _write_cookie(
        self,
        name: str,
        value: str,
        *,
        domain: Optional[str],
        max_age: int,
        secure: bool,
        samesite: str,
    ) -> None:
        """Emit a Set-Cookie header on the response"""

    @property
    @abstractmethod
    def public_url(self) -> PublicUrl:
        """URL the client used, as seen before any proxy"""

    @property
    @abstractmethod
    def client_host(self) -> Optional[str]:
        """Socket peer address"""

    @property
    def raw_request(self) -> Any:
        return None

    @property
    def raw_response(self) -> Any:
        return None

    # ------------------------------------------------------------------
    # Derived helpers
    # ------------------------------------------------------------------

    @property
    def path(self) -> str:
        return self.public_url.path

    def query(self, name: str) -> Optional[str]:
        return self.public_url.query.get(name) or None

    def get_cookie(self, name: str) -> Optional[str]:
        """URL-decoded cookie value; cookies set during this request included"""
        pending = self._pending_cookies.get(name, _UNSET)
        if pending is not _UNSET:
            return pending
        return decode_cookie(self._raw_cookie(name))

    def set_cookie(self, name: str, value: str, domain: Optional[str] = None) -> None:
        """
        Persist a cookie for COOKIE_MAX_AGE on path '/'.

        Secure + SameSite=None on https, SameSite=Lax otherwise. The value is
        visible to get_cookie() for the rest of this request.
        """
        secure = self.public_url.is_secure
        self._write_cookie(
            name,
            encode_cookie(value),
            domain=domain,
            max_age=COOKIE_MAX_AGE,
            secure=secure,
            samesite="none" if secure else "lax",
        )
        self._pending_cookies[name] = value

    def clear_cookie(self, name: str, domain: Optional[str] = None) -> None:
        self._write_cookie(name, "", domain=domain, max_age=0, secure=False, samesite="lax")
        self._pending_cookies[name] = None

    @property
    def ip(self) -> str:
        """First entry of the first proxy header present, else socket peer"""
        for header in IP_HEADERS:
            value = self.get_header(header)
            if value:
                first = value.split(",")[0].strip()
                if first:
                    return first
        return self.client_host or DEFAULT_IP

    @property
    def is_prefetch(self) -> bool:
        return bool(self.get_header("next-router-prefetch")) or self.get_header("purpose") == "prefetch"

