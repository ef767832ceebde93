"""Domain models used throughout the crawl pipeline."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Union

logger = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def to_date(value: Union[None, int, str, datetime]) -> Optional[datetime]:
    """Convert an RFC 3339 string or epoch milliseconds to a UTC datetime."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, int):
        return EPOCH + timedelta(milliseconds=value)
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def to_epoch_millis(value: datetime) -> int:
    return (value - EPOCH) // timedelta(milliseconds=1)


def _lenient(convert, data: Mapping[str, Any], key: str) -> Any:
    value = data.get(key)
    try:
        return convert(value)
    except (AttributeError, TypeError, ValueError):
        logger.warning("Invalid %s for %s: %r", key, data.get("id"), value)
        return None


def _to_size(value: Any) -> Optional[int]:
    return int(value) if value is not None else None


@dataclass(frozen=True)
class TokenState:
    """Snapshot of the current bearer token. Replaced, never mutated."""

    access_token: Optional[str]
    issued_at: datetime
    expiry: Optional[datetime]
    token_type: str = "Bearer"


@dataclass(frozen=True)
class User:
    email_address: Optional[str] = None
    display_name: Optional[str] = None
    permission_id: Optional[str] = None

    @classmethod
    def from_api(cls, data: Mapping[str, Any]) -> "User":
        return cls(
            email_address=data.get("emailAddress"),
            display_name=data.get("displayName"),
            permission_id=data.get("permissionId"),
        )

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {
            "email_address": self.email_address,
            "display_name": self.display_name,
            "permission_id": self.permission_id,
        }


@dataclass(frozen=True)
class Permission:
    type: Optional[str]
    email_address: Optional[str] = None
    domain: Optional[str] = None
    role: Optional[str] = None
    deleted: bool = False

    @classmethod
    def from_api(cls, data: Mapping[str, Any]) -> "Permission":
        return cls(
            type=data.get("type"),
            email_address=data.get("emailAddress"),
            domain=data.get("domain"),
            role=data.get("role"),
            deleted=bool(data.get("deleted", False)),
        )


@dataclass(frozen=True)
class FileDescriptor:
    """Immutable snapshot of a Drive ``File`` resource as returned by listing."""

    id: Optional[str]
    name: Optional[str]
    mime_type: Optional[str]
    size: Optional[int] = None
    description: Optional[str] = None
    parents: List[str] = field(default_factory=list)
    owners: List[User] = field(default_factory=list)
    permissions: List[Permission] = field(default_factory=list)
    web_view_link: Optional[str] = None
    web_content_link: Optional[str] = None
    thumbnail_link: Optional[str] = None
    icon_link: Optional[str] = None
    export_links: Dict[str, str] = field(default_factory=dict)
    created_time: Optional[datetime] = None
    modified_time: Optional[datetime] = None
    viewed_by_me_time: Optional[datetime] = None
    modified_by_me_time: Optional[datetime] = None
    trashed_time: Optional[datetime] = None
    capabilities: Dict[str, bool] = field(default_factory=dict)
    raw: Dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def from_api(cls, data: Mapping[str, Any]) -> "FileDescriptor":
        return cls(
            id=data.get("id"),
            name=data.get("name"),
            mime_type=data.get("mimeType"),
            size=_lenient(_to_size, data, "size"),
            description=data.get("description"),
            parents=list(data.get("parents", [])),
            owners=[User.from_api(owner) for owner in data.get("owners", [])],
            permissions=[Permission.from_api(p) for p in data.get("permissions", [])],
            web_view_link=data.get("webViewLink"),
            web_content_link=data.get("webContentLink"),
            thumbnail_link=data.get("thumbnailLink"),
            icon_link=data.get("iconLink"),
            export_links=dict(data.get("exportLinks", {})),
            created_time=_lenient(to_date, data, "createdTime"),
            modified_time=_lenient(to_date, data, "modifiedTime"),
            viewed_by_me_time=_lenient(to_date, data, "viewedByMeTime"),
            modified_by_me_time=_lenient(to_date, data, "modifiedByMeTime"),
            trashed_time=_lenient(to_date, data, "trashedTime"),
            capabilities=dict(data.get("capabilities", {})),
            raw=dict(data),
        )

    def get(self, key: str, default: Any = None) -> Any:
        """Look up a passthrough field of the raw API resource."""
        return self.raw.get(key, default)


class CrawlOutcome(Enum):
    PREPARED = "prepared"
    EVALUATED = "evaluated"
    FINISHED = "finished"
    DISCARDED = "discarded"
    EXCEPTION = "exception"
    ACCESS_EXCEPTION = "access_exception"


@dataclass
class CrawlStats:
    """Per-file bookkeeping, finalized exactly once by the pipeline."""

    file_id: Optional[str]
    url: Optional[str] = None
    outcome: CrawlOutcome = CrawlOutcome.PREPARED
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None

    @property
    def closed(self) -> bool:
        return self.finished_at is not None
