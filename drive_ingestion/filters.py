"""URL filtering and the ordered guard chain applied before a file is crawled."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Pattern, Union

logger = logging.getLogger(__name__)

FOLDER_MIMETYPE = "application/vnd.google-apps.folder"


class UrlFilter:
    """Include/exclude regular expressions matched against the whole URL.

    A URL passes when it matches at least one include pattern (or no include
    pattern is configured) and matches no exclude pattern.
    """

    def __init__(
        self,
        includes: Iterable[str] = (),
        excludes: Iterable[str] = (),
    ) -> None:
        self._includes: List[Pattern[str]] = [re.compile(p) for p in includes]
        self._excludes: List[Pattern[str]] = [re.compile(p) for p in excludes]

    @property
    def is_empty(self) -> bool:
        return not self._includes and not self._excludes

    def match(self, url: Optional[str]) -> bool:
        if url is None:
            return self.is_empty
        if self._includes and not any(p.fullmatch(url) for p in self._includes):
            return False
        return not any(p.fullmatch(url) for p in self._excludes)

    def __repr__(self) -> str:
        return (
            f"UrlFilter(includes={[p.pattern for p in self._includes]}, "
            f"excludes={[p.pattern for p in self._excludes]})"
        )


@dataclass(frozen=True)
class Proceed:
    url: Optional[str]


@dataclass(frozen=True)
class Discard:
    reason: str
    url: Optional[str] = None


FilterDecision = Union[Proceed, Discard]


def matches_mime_type(mime_type: Optional[str], patterns: Iterable[str]) -> bool:
    if mime_type is None:
        return False
    return any(re.fullmatch(pattern, mime_type) for pattern in patterns)


def evaluate(
    mime_type: Optional[str],
    url: Optional[str],
    ignore_folder: bool,
    supported_mimetypes: Iterable[str],
    url_filter: Optional[UrlFilter],
) -> FilterDecision:
    """Run the guard chain; the first guard that rejects the file wins."""
    if ignore_folder and mime_type == FOLDER_MIMETYPE:
        logger.debug("Ignore item: %s", url)
        return Discard("folder", url)
    if not matches_mime_type(mime_type, supported_mimetypes):
        logger.debug("%s is not an indexing target.", mime_type)
        return Discard("unsupported_mimetype", url)
    if url_filter is not None and not url_filter.match(url):
        logger.debug("Not matched: %s", url)
        return Discard("url_filter", url)
    return Proceed(url)
