"""Tests for core.remote - timeout-bounded outbound calls"""
import asyncio
import json

import httpx
import pytest

from pagecollect.core.exceptions import RemoteHTTPError, RemoteNetworkError, RemoteTimeoutError
from pagecollect.core.remote import remote_call


def client_for(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestRemoteCall:

    @pytest.mark.asyncio
    async def test_json_response_parsed(self):
        async def handler(request):
            return httpx.Response(200, json={"ok": True})

        async with client_for(handler) as client:
            result = await remote_call("https://api.test/v1/page", client=client)
        assert result == {"ok": True}

    @pytest.mark.asyncio
    async def test_request_headers_and_body(self):
        seen = {}

        async def handler(request):
            seen["method"] = request.method
            seen["headers"] = request.headers
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={})

        async with client_for(handler) as client:
            await remote_call(
                "https://api.test/v1/track",
                method="post",
                headers={"Authorization": "Basic xyz"},
                payload={"type": "track"},
                client=client,
            )

        assert seen["method"] == "POST"
        assert seen["headers"]["accept"] == "application/json"
        assert seen["headers"]["content-type"] == "application/json"
        assert seen["headers"]["authorization"] == "Basic xyz"
        assert seen["headers"]["user-agent"].startswith("pagecollect/")
        assert seen["body"] == {"type": "track"}

    @pytest.mark.asyncio
    async def test_empty_body_is_none(self):
        async def handler(request):
            return httpx.Response(204)

        async with client_for(handler) as client:
            assert await remote_call("https://api.test/", client=client) is None

    @pytest.mark.asyncio
    async def test_late_server_times_out(self):
        async def handler(request):
            await asyncio.sleep(2)
            return httpx.Response(200, json={})

        async with client_for(handler) as client:
            with pytest.raises(RemoteTimeoutError) as exc_info:
                await remote_call("https://slow.test/", timeout_ms=50, client=client)

        error = exc_info.value
        assert "timeouts after 50ms" in str(error)
        assert "elapsed" in str(error)
        assert error.elapsed_ms >= 45
        assert isinstance(error, TimeoutError)

    @pytest.mark.asyncio
    async def test_non_2xx_raises_with_truncated_body(self):
        async def handler(request):
            return httpx.Response(400, text="x" * 6000)

        async with client_for(handler) as client:
            with pytest.raises(RemoteHTTPError) as exc_info:
                await remote_call("https://api.test/", method="POST", payload={}, client=client)

        error = exc_info.value
        assert error.response_status == 400
        assert error.body.endswith("... (truncated; len=6000)")
        assert len(error.body) < 6000

    @pytest.mark.asyncio
    async def test_network_failure(self):
        async def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with client_for(handler) as client:
            with pytest.raises(RemoteNetworkError):
                await remote_call("https://down.test/", client=client)
