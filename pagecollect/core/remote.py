"""
Remote Call

Single outbound HTTP attempt used by every destination.

- JSON in, JSON out (Accept / Content-Type application/json)
- Timeout covers the time until response headers arrive; on expiry the
  in-flight request is cancelled
- Non-2xx responses raise RemoteHTTPError with a truncated body
- No retries
"""
import asyncio
import json
import time
from typing import Any, Dict, Optional

import httpx

from pagecollect.core.config import DEFAULT_REMOTE_TIMEOUT_MS
from pagecollect.core.exceptions import RemoteHTTPError, RemoteNetworkError, RemoteTimeoutError
from pagecollect.core.logging import get_logger
from pagecollect.core.metrics import remote_call_latency
from pagecollect.core.objects import truncate
from pagecollect.core.version import get_user_agent


logger = get_logger(__name__)

MAX_ERROR_BODY_LEN = 5000


def _parse_body(text: str) -> Any:
    if not text:
        return None
    try:
        return json.loads(text)
    except ValueError:
        return text


async def remote_call(
    url: str,
    method: str = "GET",
    headers: Optional[Dict[str, str]] = None,
    payload: Any = None,
    timeout_ms: int = DEFAULT_REMOTE_TIMEOUT_MS,
    client: Optional[httpx.AsyncClient] = None,
) -> Any:
    """
    Call a remote JSON endpoint.

    Args:
        url: Absolute URL
        method: HTTP method
        headers: Extra headers, override the defaults
        payload: JSON-serializable body
        timeout_ms: Time allowed until response headers are received
        client: Shared AsyncClient; a short-lived one is created when None

    Returns:
        Parsed JSON body, raw text if the body is not JSON, None if empty

    Raises:
        RemoteTimeoutError: No response headers within timeout_ms
        RemoteHTTPError: Non-2xx status
        RemoteNetworkError: Connection-level failure
    """
    method = method.upper()
    request_headers = {
        "Accept": "application/json",
        "User-Agent": get_user_agent(),
    }
    content = None
    if payload is not None:
        request_headers["Content-Type"] = "application/json"
        content = json.dumps(payload, default=str)
    request_headers.update(headers or {})

    owns_client = client is None
    if owns_client:
        # timing is enforced by wait_for below
        client = httpx.AsyncClient(timeout=None)

    started = time.monotonic()
    try:
        request = client.build_request(method, url, headers=request_headers, content=content)
        try:
            response = await asyncio.wait_for(
                client.send(request, stream=True),
                timeout=timeout_ms / 1000,
            )
        except asyncio.TimeoutError:
            elapsed_ms = (time.monotonic() - started) * 1000
            raise RemoteTimeoutError(
                f"{method} {url} timeouts after {timeout_ms}ms (elapsed {elapsed_ms:.0f}ms)",
                url=url,
                timeout_ms=timeout_ms,
                elapsed_ms=elapsed_ms,
            )
        except httpx.HTTPError as e:
            raise RemoteNetworkError(f"{method} {url} failed: {e!r}", url=url) from e
        finally:
            remote_call_latency.labels(method=method).observe(time.monotonic() - started)

        try:
            await response.aread()
        except httpx.HTTPError as e:
            raise RemoteNetworkError(f"{method} {url} failed reading body: {e!r}", url=url) from e
        finally:
            await response.aclose()

        body = response.text
        if not response.is_success:
            logger.debug("remote_call_failed", method=method, url=url, status=response.status_code)
            raise RemoteHTTPError(
                f"{method} {url} failed with status {response.status_code}: "
                f"{truncate(body, MAX_ERROR_BODY_LEN)}",
                url=url,
                status_code=response.status_code,
                body=truncate(body, MAX_ERROR_BODY_LEN),
            )
        return _parse_body(body)
    finally:
        if owns_client:
            await client.aclose()
