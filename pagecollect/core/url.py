"""
Public URL of a request, decomposed into JSON-friendly parts
"""
from dataclasses import dataclass, field
from typing import Dict, Optional
from urllib.parse import quote

from pagecollect.core.objects import remove_suffix


# Registrable domains where every subdomain belongs to a different owner;
# cookies must be scoped one label deeper.
PUBLIC_SUFFIXES = frozenset({
    "vercel.app",
    "herokuapp.com",
    "co.uk",
    "com.au",
    "fly.dev",
    "fly.io",
    "netlify.app",
    "onrender.com",
    "now.sh",
})


@dataclass(frozen=True)
class PublicUrl:
    """
    Attributes:
        protocol: "http" or "https", never with ':'
        host: Host without port
        path: Always starts with '/'
        query: Query parameters (last value wins for repeated names)
        port: Only set for non-default ports
    """
    protocol: str
    host: str
    path: str
    query: Dict[str, str] = field(default_factory=dict)
    port: Optional[str] = None

    @property
    def host_with_port(self) -> str:
        return f"{self.host}:{self.port}" if self.port else self.host

    @property
    def query_string(self) -> str:
        if not self.query:
            return ""
        return "?" + "&".join(f"{name}={quote(value, safe='')}" for name, value in self.query.items())

    @property
    def url(self) -> str:
        return f"{self.protocol}://{self.host_with_port}{self.path}{self.query_string}"

    @property
    def is_secure(self) -> bool:
        return self.protocol == "https"


def non_default_port(protocol: str, port: Optional[str]) -> Optional[str]:
    if (protocol == "http" and port == "80") or (protocol == "https" and port == "443"):
        return None
    return port or None


def normalize_protocol(value: Optional[str]) -> str:
    protocol = remove_suffix((value or "http").split(",")[0].strip().lower(), ["/", ":"])
    return "https" if protocol == "https" else "http"


def get_primary_domain(host: str) -> str:
    """
    Registrable domain used as cookie domain.

    sub.myapp.com -> myapp.com, myapp.herokuapp.com -> myapp.herokuapp.com,
    localhost -> localhost
    """
    parts = host.split(".")
    if len(parts) <= 2:
        return host
    primary = ".".join(parts[-2:])
    if primary.lower() in PUBLIC_SUFFIXES:
        return ".".join(parts[-3:])
    return primary
