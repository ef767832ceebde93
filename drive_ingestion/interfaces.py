"""Interface definitions for the remote client, extractors, and sinks."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import IO, Any, Dict, Iterator, Mapping, Optional

from .models import FileDescriptor


class RemoteFileClient(ABC):
    """Authenticated access to a remote file tree."""

    @abstractmethod
    def list_files(
        self,
        query: Optional[str] = None,
        corpora: Optional[str] = None,
        spaces: Optional[str] = None,
        fields: Optional[str] = None,
    ) -> Iterator[FileDescriptor]:
        """Yield file descriptors page by page."""

    @abstractmethod
    def export_text(self, file_id: str, mime_type: str) -> str:
        """Export a native document to the given MIME type as text."""

    @abstractmethod
    def download_media(self, file_id: str) -> IO[bytes]:
        """Return a stream over the raw bytes; the caller closes it."""


class Extractor(ABC):
    """Turns a byte stream of a given MIME type into plain text."""

    @abstractmethod
    def get_text(self, stream: IO[bytes], mime_type: Optional[str]) -> str:
        """Return the extracted text."""


class RoleMapper(ABC):
    """Maps a principal to the role token used for document-level security."""

    @abstractmethod
    def map_permission(self, kind: str, principal: Optional[str]) -> Optional[str]:
        """Return a role token for ``kind`` ("user" or "group"), or ``None``."""


class RecordSink(ABC):
    """Receives normalized records. Called concurrently from worker threads."""

    @abstractmethod
    def store(self, params: Mapping[str, str], record: Dict[str, Any]) -> None:
        """Persist a single record."""


class FailureSink(ABC):
    """Receives per-file failures. Called concurrently from worker threads."""

    @abstractmethod
    def store(self, run_name: str, error_name: str, url: str, cause: BaseException) -> None:
        """Record that ``url`` failed with ``error_name``."""
