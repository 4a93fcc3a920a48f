"""Tests for common/config_loader.py and the settings derived from it."""

from __future__ import annotations

from common import config_loader
from common.config_loader import deep_merge, get_config, load_yaml


def test_deep_merge_overrides_nested_values():
    base = {"scraper": {"timeout": 60, "base_urls": {"sea": ["a", "b"]}}, "cache": {"ttl": 1}}
    override = {"scraper": {"base_urls": {"sea": ["c"]}}}

    merged = deep_merge(base, override)

    assert merged["scraper"]["timeout"] == 60
    # 列表整体替换，不做拼接
    assert merged["scraper"]["base_urls"]["sea"] == ["c"]
    assert merged["cache"] == {"ttl": 1}
    assert base["scraper"]["base_urls"]["sea"] == ["a", "b"]


def test_missing_yaml_is_empty(tmp_path):
    assert load_yaml(tmp_path / "absent.yaml") == {}


def test_local_yaml_overrides_defaults(tmp_path):
    (tmp_path / "defaults.yaml").write_text("warmup:\n  workers: 3\n  timeout: 1800\n", encoding="utf-8")
    (tmp_path / "local.yaml").write_text("warmup:\n  workers: 8\n", encoding="utf-8")

    config = get_config(tmp_path)
    assert config["warmup"] == {"workers": 8, "timeout": 1800}


def test_get_section_reads_shipped_defaults():
    config_loader.clear_config_cache()
    scraper = config_loader.get_section("scraper")
    assert set(scraper["base_urls"]) >= {"lms", "sea"}
    assert config_loader.get_section("no_such_section") == {}


def test_settings_expose_immutable_base_urls():
    from settings import settings

    urls = settings.base_urls
    assert isinstance(urls["sea"], tuple)
    assert urls["sea"]
    assert settings.scraper_workers >= 1
