"""Configuration models and helpers for the Drive crawler."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .filters import UrlFilter

logger = logging.getLogger(__name__)

# credential parameters
PRIVATE_KEY_PARAM = "private_key"
PRIVATE_KEY_ID_PARAM = "private_key_id"
CLIENT_EMAIL_PARAM = "client_email"

# client parameters
PROXY_HOST = "proxy_host"
PROXY_PORT = "proxy_port"
READ_TIMEOUT = "read_timeout"
CONNECT_TIMEOUT = "connect_timeout"
REFRESH_TOKEN_INTERVAL = "refresh_token_interval"
MAX_CACHED_CONTENT_SIZE = "max_cached_content_size"

# crawl parameters
MAX_SIZE = "max_size"
IGNORE_FOLDER = "ignore_folder"
IGNORE_ERROR = "ignore_error"
SUPPORTED_MIMETYPES = "supported_mimetypes"
INCLUDE_PATTERN = "include_pattern"
EXCLUDE_PATTERN = "exclude_pattern"
DEFAULT_PERMISSIONS = "default_permissions"
NUMBER_OF_THREADS = "number_of_threads"
QUERY = "query"
CORPORA = "corpora"
SPACES = "spaces"
FIELDS = "fields"

ALL_DRIVES = "allDrives"
DEFAULT_FIELDS = "*"
DEFAULT_TIMEOUT_MS = 20000
DEFAULT_REFRESH_TOKEN_INTERVAL = 3540
DEFAULT_MAX_CACHED_CONTENT_SIZE = 1024 * 1024
DEFAULT_MAX_SIZE = 10000000


def _is_blank(value: Optional[str]) -> bool:
    return value is None or not str(value).strip()


def split_csv(value: Optional[str]) -> List[str]:
    """Split a comma separated parameter, trimming entries and dropping blanks."""
    if _is_blank(value):
        return []
    return [item.strip() for item in str(value).split(",") if item.strip()]


def _get_bool(params: Mapping[str, str], key: str, default: bool) -> bool:
    value = params.get(key)
    if _is_blank(value):
        return default
    return str(value).strip().lower() == "true"


def _get_int(params: Mapping[str, str], key: str, default: int) -> int:
    value = params.get(key)
    if _is_blank(value):
        return default
    return int(str(value).strip())


def get_max_size(params: Mapping[str, str]) -> int:
    try:
        return _get_int(params, MAX_SIZE, DEFAULT_MAX_SIZE)
    except ValueError:
        logger.warning("Invalid %s: %s", MAX_SIZE, params.get(MAX_SIZE))
        return DEFAULT_MAX_SIZE


def is_ignore_folder(params: Mapping[str, str]) -> bool:
    return _get_bool(params, IGNORE_FOLDER, True)


def is_ignore_error(params: Mapping[str, str]) -> bool:
    return _get_bool(params, IGNORE_ERROR, True)


def get_supported_mime_types(params: Mapping[str, str]) -> List[str]:
    value = params.get(SUPPORTED_MIMETYPES)
    if _is_blank(value):
        return [".*"]
    return [item.strip() for item in str(value).split(",")]


def get_url_filter(params: Mapping[str, str]) -> UrlFilter:
    includes = [] if _is_blank(params.get(INCLUDE_PATTERN)) else [params[INCLUDE_PATTERN]]
    excludes = [] if _is_blank(params.get(EXCLUDE_PATTERN)) else [params[EXCLUDE_PATTERN]]
    return UrlFilter(includes, excludes)


@dataclass(frozen=True)
class ClientConfig:
    """HTTP and token settings for the Drive client."""

    read_timeout: int = DEFAULT_TIMEOUT_MS
    connect_timeout: int = DEFAULT_TIMEOUT_MS
    proxy_host: Optional[str] = None
    proxy_port: Optional[int] = None
    refresh_token_interval: int = DEFAULT_REFRESH_TOKEN_INTERVAL
    max_cached_content_size: int = DEFAULT_MAX_CACHED_CONTENT_SIZE

    @property
    def timeout(self) -> Tuple[float, float]:
        """``(connect, read)`` in seconds, as expected by ``requests``."""
        return self.connect_timeout / 1000.0, self.read_timeout / 1000.0

    @property
    def proxies(self) -> Dict[str, str]:
        if _is_blank(self.proxy_host) or self.proxy_port is None:
            return {}
        proxy = f"http://{self.proxy_host}:{self.proxy_port}"
        return {"http": proxy, "https": proxy}

    @classmethod
    def from_params(cls, params: Mapping[str, str]) -> "ClientConfig":
        proxy_port = params.get(PROXY_PORT)
        return cls(
            read_timeout=_get_int(params, READ_TIMEOUT, DEFAULT_TIMEOUT_MS),
            connect_timeout=_get_int(params, CONNECT_TIMEOUT, DEFAULT_TIMEOUT_MS),
            proxy_host=params.get(PROXY_HOST) or None,
            proxy_port=None if _is_blank(proxy_port) else int(str(proxy_port)),
            refresh_token_interval=_get_int(
                params, REFRESH_TOKEN_INTERVAL, DEFAULT_REFRESH_TOKEN_INTERVAL
            ),
            max_cached_content_size=_get_int(
                params, MAX_CACHED_CONTENT_SIZE, DEFAULT_MAX_CACHED_CONTENT_SIZE
            ),
        )


@dataclass(frozen=True)
class FilterConfig:
    """Per-run crawl rules. Read-only once the run has started."""

    max_size: int = DEFAULT_MAX_SIZE
    ignore_folder: bool = True
    ignore_error: bool = True
    supported_mimetypes: Tuple[str, ...] = (".*",)
    url_filter: UrlFilter = field(default_factory=UrlFilter)
    default_permissions: Tuple[str, ...] = ()

    @classmethod
    def from_params(cls, params: Mapping[str, str]) -> "FilterConfig":
        return cls(
            max_size=get_max_size(params),
            ignore_folder=is_ignore_folder(params),
            ignore_error=is_ignore_error(params),
            supported_mimetypes=tuple(get_supported_mime_types(params)),
            url_filter=get_url_filter(params),
            default_permissions=tuple(split_csv(params.get(DEFAULT_PERMISSIONS))),
        )


@dataclass(frozen=True)
class ListingOptions:
    query: Optional[str] = None
    corpora: Optional[str] = ALL_DRIVES
    spaces: Optional[str] = None
    fields: Optional[str] = DEFAULT_FIELDS

    @classmethod
    def from_params(cls, params: Mapping[str, str]) -> "ListingOptions":
        return cls(
            query=params.get(QUERY),
            corpora=params.get(CORPORA, ALL_DRIVES),
            spaces=params.get(SPACES),
            fields=params.get(FIELDS, DEFAULT_FIELDS),
        )


@dataclass
class CrawlConfig:
    """Everything a single crawl run needs, parsed from string parameters."""

    name: str
    params: Dict[str, str]
    client: ClientConfig = field(default_factory=ClientConfig)
    filters: FilterConfig = field(default_factory=FilterConfig)
    listing: ListingOptions = field(default_factory=ListingOptions)
    number_of_threads: int = 1
    field_mapping: Dict[str, str] = field(default_factory=dict)
    default_data: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_params(
        cls,
        params: Mapping[str, str],
        name: str = "google_drive",
        field_mapping: Optional[Dict[str, str]] = None,
        default_data: Optional[Dict[str, Any]] = None,
    ) -> "CrawlConfig":
        params = {key: str(value) for key, value in params.items()}
        return cls(
            name=name,
            params=params,
            client=ClientConfig.from_params(params),
            filters=FilterConfig.from_params(params),
            listing=ListingOptions.from_params(params),
            number_of_threads=max(1, _get_int(params, NUMBER_OF_THREADS, 1)),
            field_mapping=dict(field_mapping or {}),
            default_data=dict(default_data or {}),
        )


@dataclass
class StorageTargetConfig:
    """Settings for a record or failure sink."""

    type: str
    params: Dict[str, Any] = field(default_factory=dict)


@dataclass
class AppConfig:
    """Top-level configuration used by the command line entry point."""

    crawl: CrawlConfig
    record_sink: StorageTargetConfig
    failure_sink: StorageTargetConfig

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AppConfig":
        crawl = CrawlConfig.from_params(
            data.get("params", {}),
            name=data.get("name", "google_drive"),
            field_mapping=data.get("field_mapping"),
            default_data=data.get("default_data"),
        )
        record_sink = StorageTargetConfig(**data.get("record_sink", DEFAULT_RECORD_SINK))
        failure_sink = StorageTargetConfig(**data.get("failure_sink", DEFAULT_FAILURE_SINK))
        return cls(crawl=crawl, record_sink=record_sink, failure_sink=failure_sink)

    @classmethod
    def from_json(cls, path: Path) -> "AppConfig":
        data = json.loads(path.read_text())
        return cls.from_dict(data)


DEFAULT_RECORD_SINK = {"type": "jsonl", "params": {"path": "./_records/records.jsonl"}}
DEFAULT_FAILURE_SINK = {"type": "sqlite", "params": {"path": "./_records/failures.db"}}
