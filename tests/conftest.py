"""Shared fixtures: in-memory RequestContext and event factories"""
from typing import Dict, List, Optional
from urllib.parse import parse_qsl, urlsplit

import pytest

from pagecollect.core.context import RequestContext
from pagecollect.core.url import PublicUrl, non_default_port


class FakeRequestContext(RequestContext):
    """RequestContext over plain dicts; records every Set-Cookie"""

    def __init__(
        self,
        url: str = "https://www.example.com/",
        headers: Optional[Dict[str, str]] = None,
        cookies: Optional[Dict[str, str]] = None,
        client_host: Optional[str] = "10.0.0.1",
    ):
        super().__init__()
        parts = urlsplit(url)
        self._url = PublicUrl(
            protocol=parts.scheme,
            host=parts.hostname,
            path=parts.path or "/",
            query=dict(parse_qsl(parts.query)),
            port=non_default_port(parts.scheme, str(parts.port) if parts.port else None),
        )
        self._headers = {k.lower(): v for k, v in (headers or {}).items()}
        self._cookies = dict(cookies or {})
        self._client_host = client_host
        self.written: List[Dict] = []

    def get_header(self, name):
        return self._headers.get(name.lower())

    def _raw_cookie(self, name):
        return self._cookies.get(name)

    def _write_cookie(self, name, value, *, domain, max_age, secure, samesite):
        self.written.append({
            "name": name,
            "value": value,
            "domain": domain,
            "max_age": max_age,
            "secure": secure,
            "samesite": samesite,
        })

    @property
    def public_url(self):
        return self._url

    @property
    def client_host(self):
        return self._client_host


@pytest.fixture
def make_ctx():
    """Factory: make_ctx(url, headers=..., cookies=...)"""
    return FakeRequestContext


@pytest.fixture
def ctx():
    return FakeRequestContext(
        "https://www.example.com/blog/post-1?utm_source=x&gclid=y",
        headers={
            "user-agent": "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
                          "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
            "accept-language": "en-US,en;q=0.9",
            "referer": "https://google.com/",
            "x-forwarded-for": "203.0.113.7, 10.0.0.1",
        },
    )
