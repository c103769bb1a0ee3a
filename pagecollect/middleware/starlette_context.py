"""
Starlette adapter for RequestContext

Cookies written during the request are queued and copied onto whichever
response is finally returned (apply_cookies), since in a middleware the
response object usually does not exist yet when the event is built.
"""
from typing import Any, Dict, Optional, Tuple

from starlette.requests import Request
from starlette.responses import Response

from pagecollect.core.context import RequestContext
from pagecollect.core.url import PublicUrl, non_default_port, normalize_protocol


def split_host(value: str) -> Tuple[str, Optional[str]]:
    """'example.com:8080' -> ('example.com', '8080'), '[::1]:80' -> ('[::1]', '80')"""
    if value.startswith("["):
        host, _, rest = value.partition("]")
        port = rest[1:] if rest.startswith(":") else None
        return f"{host}]", port or None
    host, _, port = value.partition(":")
    return host, port or None


class StarletteRequestContext(RequestContext):

    def __init__(self, request: Request, path: Optional[str] = None):
        super().__init__()
        self.request = request
        self._path_override = path
        self._public_url: Optional[PublicUrl] = None
        self._cookie_queue: Dict[str, Dict[str, Any]] = {}
        # set by the middleware once the handler returned
        self.response: Optional[Response] = None

    def get_header(self, name: str) -> Optional[str]:
        values = self.request.headers.getlist(name)
        return ",".join(values) if values else None

    def _raw_cookie(self, name: str) -> Optional[str]:
        return self.request.cookies.get(name)

    def _write_cookie(self, name, value, *, domain, max_age, secure, samesite) -> None:
        self._cookie_queue[name] = {
            "value": value,
            "domain": domain,
            "max_age": max_age,
            "secure": secure,
            "samesite": samesite,
        }

    @property
    def public_url(self) -> PublicUrl:
        if self._public_url is None:
            self._public_url = self._parse_public_url()
        return self._public_url

    def _parse_public_url(self) -> PublicUrl:
        url = self.request.url
        raw_host = (
            self.get_header("x-forwarded-host")
            or self.get_header("host")
            or url.netloc
            or "localhost"
        ).split(",")[0].strip()
        host, port = split_host(raw_host)
        protocol = normalize_protocol(self.get_header("x-forwarded-proto") or url.scheme)
        return PublicUrl(
            protocol=protocol,
            host=host,
            path=self._path_override or url.path or "/",
            query=dict(self.request.query_params),
            port=non_default_port(protocol, port),
        )

    @property
    def client_host(self) -> Optional[str]:
        return self.request.client.host if self.request.client else None

    @property
    def raw_request(self) -> Request:
        return self.request

    @property
    def raw_response(self) -> Optional[Response]:
        return self.response

    def apply_cookies(self, response: Response) -> Response:
        """Copy queued Set-Cookie headers onto response"""
        for name, cookie in self._cookie_queue.items():
            response.set_cookie(
                name,
                cookie["value"],
                max_age=cookie["max_age"],
                path="/",
                domain=cookie["domain"],
                secure=cookie["secure"],
                httponly=False,
                samesite=cookie["samesite"],
            )
        return response
