"""Tests for parameter parsing and the config models."""

import json

from drive_ingestion.config import (
    ALL_DRIVES,
    AppConfig,
    ClientConfig,
    CrawlConfig,
    FilterConfig,
    ListingOptions,
    get_max_size,
    get_supported_mime_types,
    split_csv,
)
from drive_ingestion.models import EPOCH, to_date, to_epoch_millis


def test_client_config_defaults():
    config = ClientConfig.from_params({})
    assert config.read_timeout == 20000
    assert config.connect_timeout == 20000
    assert config.timeout == (20.0, 20.0)
    assert config.refresh_token_interval == 3540
    assert config.max_cached_content_size == 1024 * 1024
    assert config.proxies == {}


def test_client_config_overrides():
    config = ClientConfig.from_params(
        {
            "read_timeout": "5000",
            "connect_timeout": "1500",
            "proxy_host": "proxy.local",
            "proxy_port": "3128",
            "refresh_token_interval": "600",
        }
    )
    assert config.timeout == (1.5, 5.0)
    assert config.refresh_token_interval == 600
    assert config.proxies["https"] == "http://proxy.local:3128"


def test_supported_mime_types():
    assert get_supported_mime_types({}) == [".*"]
    assert get_supported_mime_types({"supported_mimetypes": "  "}) == [".*"]
    assert get_supported_mime_types({"supported_mimetypes": "text/.*, application/pdf"}) == [
        "text/.*",
        "application/pdf",
    ]


def test_max_size_falls_back_on_invalid_value():
    assert get_max_size({}) == 10000000
    assert get_max_size({"max_size": "2048"}) == 2048
    assert get_max_size({"max_size": "big"}) == 10000000


def test_split_csv_drops_blanks():
    assert split_csv(None) == []
    assert split_csv("a, ,b,") == ["a", "b"]


def test_filter_config_from_params():
    config = FilterConfig.from_params(
        {
            "ignore_folder": "false",
            "ignore_error": "FALSE",
            "include_pattern": "https://drive\\.google\\.com/.*",
            "default_permissions": "{role}admin, {user}alice",
        }
    )
    assert config.ignore_folder is False
    assert config.ignore_error is False
    assert config.default_permissions == ("{role}admin", "{user}alice")
    assert config.url_filter.match("https://drive.google.com/uc?id=1")
    assert not config.url_filter.match("https://example.com/")


def test_filter_config_defaults():
    config = FilterConfig.from_params({})
    assert config.ignore_folder is True
    assert config.ignore_error is True
    assert config.url_filter.is_empty


def test_listing_defaults():
    options = ListingOptions.from_params({})
    assert options.corpora == ALL_DRIVES
    assert options.fields == "*"
    assert options.query is None


def test_crawl_config_threads():
    assert CrawlConfig.from_params({}).number_of_threads == 1
    assert CrawlConfig.from_params({"number_of_threads": "4"}).number_of_threads == 4
    assert CrawlConfig.from_params({"number_of_threads": "0"}).number_of_threads == 1


def test_app_config_from_json(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(
        json.dumps(
            {
                "name": "drive",
                "params": {"query": "trashed = false", "number_of_threads": 3},
                "field_mapping": {"title": "file.name"},
                "record_sink": {"type": "memory"},
            }
        )
    )
    config = AppConfig.from_json(path)
    assert config.crawl.name == "drive"
    assert config.crawl.params["number_of_threads"] == "3"
    assert config.crawl.listing.query == "trashed = false"
    assert config.crawl.field_mapping == {"title": "file.name"}
    assert config.record_sink.type == "memory"
    assert config.failure_sink.type == "sqlite"


def test_to_date():
    assert to_date(None) is None
    assert to_date(0) == EPOCH
    parsed = to_date("2024-03-01T12:30:00.000Z")
    assert parsed.year == 2024 and parsed.hour == 12
    assert to_epoch_millis(parsed) == 1709296200000
    assert to_date(1709296200000) == parsed
