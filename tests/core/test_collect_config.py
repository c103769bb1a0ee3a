"""Tests for core.config - settings and YAML collect config"""
from pathlib import Path

import pytest

from pagecollect.core.config import (
    DEFAULT_API_ROUTE,
    DEFAULT_COOKIE_NAME,
    CollectConfig,
    Settings,
    is_truish,
    load_collect_config,
)
from pagecollect.core.exceptions import ConfigurationError
from pagecollect.core.prefix_map import SKIP, PrefixMap


class TestSettings:

    def test_defaults(self):
        source = Settings(_env_file=None)
        assert source.COOKIE_NAME == DEFAULT_COOKIE_NAME
        assert source.API_ROUTE == DEFAULT_API_ROUTE
        assert source.REMOTE_TIMEOUT_MS == 5000

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("SEGMENT_WRITE_KEY", "wk")
        monkeypatch.setenv("COLLECT_ECHO", "yes")
        source = Settings(_env_file=None)
        assert source.SEGMENT_WRITE_KEY == "wk"
        assert source.echo_enabled

    @pytest.mark.parametrize("value,expected", [
        ("1", True), ("true", True), ("YES", True), ("0", False), ("", False), (None, False),
    ])
    def test_is_truish(self, value, expected):
        assert is_truish(value) is expected


class TestCollectConfig:

    def test_from_settings_with_overrides(self):
        source = Settings(_env_file=None, COOKIE_NAME="uid", DEBUG_ROUTE=True)
        config = CollectConfig.from_settings(source, api_route="/collect")
        assert config.cookie_name == "uid"
        assert config.debug_route is True
        assert config.api_route == "/collect"

    def test_load_yaml(self, tmp_path):
        path = tmp_path / "collect.yaml"
        path.write_text(
            "event_types:\n"
            "  - ['/api*', '$skip']\n"
            "  - ['/*', page_view]\n"
            "destinations:\n"
            "  - echo\n"
            "cookie_name: visitor\n"
        )
        config = load_collect_config(str(path))
        assert config.event_types == [["/api*", "$skip"], ["/*", "page_view"]]
        assert config.destinations == ["echo"]
        assert config.cookie_name == "visitor"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            load_collect_config(str(tmp_path / "missing.yaml"))

    def test_malformed_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("event_types: [unclosed\n")
        with pytest.raises(ConfigurationError, match="Can't parse"):
            load_collect_config(str(path))

    def test_not_a_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigurationError, match="must be a mapping"):
            load_collect_config(str(path))

    def test_unknown_keys(self, tmp_path):
        path = tmp_path / "typo.yaml"
        path.write_text("cookie_nmae: x\n")
        with pytest.raises(ConfigurationError, match="cookie_nmae"):
            load_collect_config(str(path))

    def test_shipped_example_config(self):
        path = Path(__file__).resolve().parents[2] / "config" / "collect.yaml"
        config = load_collect_config(str(path))
        rules = PrefixMap.from_config(config.event_types)
        assert rules.get("/api/ev") == SKIP
        assert rules.get("/logo.svg") == SKIP
        assert rules.get("/pricing") == "pricing_view"
        assert rules.get("/blog/a") == "page"
        assert config.debug_route is True
        assert config.remote_timeout_ms == 3000
