"""Tests for core.pipeline - enrichment, identity and delivery ordering"""
import asyncio
import json

import pytest

from pagecollect.contracts.event import AnalyticsEvent
from pagecollect.core.config import CollectConfig
from pagecollect.core.dispatcher import Dispatcher
from pagecollect.core.exceptions import ConfigurationError
from pagecollect.core.identity import GROUP_COOKIE, USER_COOKIE
from pagecollect.core.pipeline import EventPipeline, ServerAnalytics
from pagecollect.destinations.base import Destination


class CapturingDestination(Destination):
    type = "capture"

    def __init__(self):
        self.events = []

    def describe(self):
        return "Capture"

    async def send(self, event, ctx):
        self.events.append(event.to_wire())


@pytest.fixture
def sink():
    return CapturingDestination()


def make_pipeline(sink, **options):
    return EventPipeline(CollectConfig(**options), Dispatcher([sink]))


class TestEventPipeline:

    @pytest.mark.asyncio
    async def test_enrichment_completes_before_delivery(self, sink, make_ctx):
        async def enrich(event, ctx, call_previous):
            await asyncio.sleep(0.01)
            event.properties = {"enriched": True}

        pipeline = make_pipeline(sink, enrich=enrich)
        ctx = make_ctx()
        await pipeline.run(pipeline.new_event("page", ctx), ctx, wait=True)

        assert sink.events[0]["properties"] == {"enriched": True}

    @pytest.mark.asyncio
    async def test_background_delivery(self, sink, make_ctx):
        pipeline = make_pipeline(sink)
        ctx = make_ctx()
        await pipeline.run(pipeline.new_event("page", ctx), ctx, wait=False)

        assert pipeline.dispatcher.pending == 1
        await asyncio.sleep(0.01)
        assert len(sink.events) == 1

    @pytest.mark.asyncio
    async def test_timestamp_defaults_to_sent_at(self, sink, make_ctx):
        pipeline = make_pipeline(sink)
        event = AnalyticsEvent(type="track", name="x", sent_at="2024-01-01T00:00:00.000Z")
        await pipeline.process(event, make_ctx())
        assert event.timestamp == "2024-01-01T00:00:00.000Z"

    @pytest.mark.asyncio
    async def test_identity_recalled_after_enrichment(self, sink, make_ctx):
        ctx = make_ctx(cookies={USER_COOKIE: json.dumps({"userId": "cookie-user"})})
        pipeline = make_pipeline(sink)
        await pipeline.run(pipeline.new_event("page", ctx), ctx)
        assert sink.events[0]["userId"] == "cookie-user"

    def test_cookie_domain(self, sink, make_ctx):
        pipeline = make_pipeline(sink)
        assert pipeline.cookie_domain(make_ctx("https://app.example.com/")) == "example.com"
        assert pipeline.cookie_domain(make_ctx("http://localhost:3000/")) is None
        assert pipeline.cookie_domain(make_ctx("http://127.0.0.1/")) is None

        pinned = make_pipeline(sink, cookie_domain="example.org")
        assert pinned.cookie_domain(make_ctx("https://app.example.com/")) == "example.org"

    def test_from_config_unknown_destination(self):
        with pytest.raises(ConfigurationError, match="Unknown destination"):
            EventPipeline.from_config(CollectConfig(destinations=["nope"]))

    def test_from_config_bad_rule(self):
        with pytest.raises(ConfigurationError):
            EventPipeline.from_config(CollectConfig(event_types=[("/a*b*", "x")], destinations=[]))


class TestServerAnalytics:

    @pytest.mark.asyncio
    async def test_identify_then_track(self, sink, make_ctx):
        ctx = make_ctx()
        analytics = ServerAnalytics(make_pipeline(sink), ctx)

        await analytics.identify("u1", {"email": "a@b.c"})
        await analytics.track("signup", {"plan": "pro"})

        identify, track = sink.events
        assert identify["type"] == "identify"
        assert identify["traits"] == {"email": "a@b.c"}
        assert track["eventType"] == "signup"
        assert track["userId"] == "u1"
        assert track["anonymousId"] == identify["anonymousId"]

    @pytest.mark.asyncio
    async def test_group_persisted(self, sink, make_ctx):
        ctx = make_ctx()
        await ServerAnalytics(make_pipeline(sink), ctx).group("g1")
        assert json.loads(ctx.get_cookie(GROUP_COOKIE)) == {"groupId": "g1"}

    def test_reset(self, sink, make_ctx):
        ctx = make_ctx(cookies={USER_COOKIE: "x"})
        ServerAnalytics(make_pipeline(sink), ctx).reset()
        assert ctx.get_cookie(USER_COOKIE) is None
