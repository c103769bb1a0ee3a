"""Tests for core.enrichment - default enrichment and custom hooks"""
from unittest.mock import patch

import pytest

from pagecollect.contracts.event import AnalyticsEvent
from pagecollect.core.config import settings
from pagecollect.core.enrichment import default_enrichment, enrich_with, run_enrichment


VERCEL_HEADERS = {
    "x-vercel-ip-country": "DE",
    "x-vercel-ip-country-region": "BE",
    "x-vercel-ip-city": "Berlin",
    "x-vercel-ip-timezone": "Europe/Berlin",
    "x-vercel-ip-latitude": "52.52",
    "x-vercel-ip-longitude": "13.40",
    "x-matched-path": "/blog/[slug]",
}


class TestDefaultEnrichment:

    def test_geo_and_matched_path(self, make_ctx):
        event = AnalyticsEvent(type="page")
        default_enrichment(event, make_ctx(headers=VERCEL_HEADERS))

        geo = event.context.geo
        assert geo.country == "DE"
        assert geo.city == "Berlin"
        assert geo.location.lat == 52.52
        assert geo.location.lon == 13.40
        assert event.context.page.matched_path == "/blog/[slug]"

    def test_cloudflare_country(self, make_ctx):
        event = AnalyticsEvent(type="page")
        default_enrichment(event, make_ctx(headers={"cf-ipcountry": "FR"}))
        assert event.context.geo.country == "FR"
        assert event.context.geo.location is None

    def test_no_geo_headers(self, make_ctx):
        event = AnalyticsEvent(type="page")
        default_enrichment(event, make_ctx())
        assert event.context.geo is None

    def test_vercel_deployment_tags(self, make_ctx):
        event = AnalyticsEvent(type="page", properties={"a": 1})
        with patch.object(settings, "VERCEL", "1"), \
                patch.object(settings, "VERCEL_ENV", "preview"), \
                patch.object(settings, "VERCEL_GIT_COMMIT_SHA", "abc123"):
            default_enrichment(event, make_ctx())
        assert event.properties == {"a": 1, "deployId": "abc123", "env": "preview"}

    def test_deployment_env_setting(self, make_ctx):
        event = AnalyticsEvent(type="page")
        with patch.object(settings, "DEPLOYMENT_ENV", "staging"):
            default_enrichment(event, make_ctx())
        assert event.properties["env"] == "staging"


class TestRunEnrichment:

    @pytest.mark.asyncio
    async def test_default_runs_without_hook(self, make_ctx):
        event = AnalyticsEvent(type="page")
        await run_enrichment(event, make_ctx(headers=VERCEL_HEADERS))
        assert event.context.geo.country == "DE"

    @pytest.mark.asyncio
    async def test_async_hook_awaited(self, make_ctx):
        async def hook(event, ctx, call_previous):
            call_previous(event)
            event.user_id = "u1"

        event = AnalyticsEvent(type="page")
        await run_enrichment(event, make_ctx(headers=VERCEL_HEADERS), hook)
        assert event.user_id == "u1"
        assert event.context.geo.country == "DE"

    @pytest.mark.asyncio
    async def test_hook_without_call_previous_skips_default(self, make_ctx):
        def hook(event, ctx, call_previous):
            event.properties = {"custom": True}

        event = AnalyticsEvent(type="page")
        await run_enrichment(event, make_ctx(headers=VERCEL_HEADERS), hook)
        assert event.context.geo is None
        assert event.properties == {"custom": True}

    @pytest.mark.asyncio
    async def test_failing_hook_keeps_partial_state(self, make_ctx):
        async def hook(event, ctx, call_previous):
            event.user_id = "u1"
            raise RuntimeError("lookup failed")

        event = AnalyticsEvent(type="page")
        result = await run_enrichment(event, make_ctx(), hook)
        assert result is event
        assert event.user_id == "u1"


class TestEnrichWith:

    @pytest.mark.asyncio
    async def test_static_data_merged_over_default(self, make_ctx):
        event = AnalyticsEvent(type="page", properties={"a": 1})
        hook = enrich_with({"properties": {"b": 2}, "context": {"geo": {"city": "Paris"}}})
        await run_enrichment(event, make_ctx(headers=VERCEL_HEADERS), hook)

        assert event.properties == {"a": 1, "b": 2}
        assert event.context.geo.city == "Paris"
        assert event.context.geo.country == "DE"

    @pytest.mark.asyncio
    async def test_request_derived_data(self, make_ctx):
        hook = enrich_with(lambda ctx: {"userId": ctx.get_header("x-user-id")})
        event = AnalyticsEvent(type="page")
        await run_enrichment(event, make_ctx(headers={"x-user-id": "u9"}), hook)
        assert event.user_id == "u9"
