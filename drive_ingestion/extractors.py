"""Text extraction for Drive files.

Google-native documents are exported by the Drive API itself. Every other
file is downloaded and handed to an ``ExtractorFactory`` that dispatches on
the MIME type.
"""

from __future__ import annotations

import json
import logging
import re
from typing import IO, List, Optional, Pattern, Tuple

from pypdf import PdfReader
from pypdf.errors import PyPdfError

from .errors import ExtractionError
from .filetypes import SIGNATURE_PROBE_SIZE, detect_mime_from_magic
from .interfaces import Extractor, RemoteFileClient
from .models import FileDescriptor

logger = logging.getLogger(__name__)

GOOGLE_APPS_MIMETYPE = re.compile(r"application/vnd\.google-apps\.(.*)")
SCRIPT_EXPORT_MIMETYPE = "application/vnd.google-apps.script+json"

# Google-native kinds and the format they are exported to
EXPORT_MIMETYPES = {
    "document": "text/plain",
    "presentation": "text/plain",
    "spreadsheet": "text/csv",
}


def _decode(data: bytes) -> str:
    return data.decode("utf-8-sig", errors="replace")


class PlainTextExtractor(Extractor):
    def get_text(self, stream: IO[bytes], mime_type: Optional[str]) -> str:
        return _decode(stream.read())


class PdfExtractor(Extractor):
    """Extracts the text layer of a PDF, page by page."""

    def get_text(self, stream: IO[bytes], mime_type: Optional[str]) -> str:
        try:
            reader = PdfReader(stream)
            pages = [page.extract_text() or "" for page in reader.pages]
        except (PyPdfError, ValueError, KeyError) as e:
            raise ExtractionError(f"Failed to read PDF content: {e}") from e
        return "\n".join(pages)


class DefaultExtractor(Extractor):
    """Fallback for unregistered MIME types.

    Refuses content whose leading bytes identify a known binary format and
    decodes everything else as text.
    """

    def get_text(self, stream: IO[bytes], mime_type: Optional[str]) -> str:
        data = stream.read()
        detected = detect_mime_from_magic(data[:SIGNATURE_PROBE_SIZE])
        if detected is not None:
            raise ExtractionError(f"No extractor for {mime_type} (detected {detected}).")
        if b"\x00" in data[:1024]:
            raise ExtractionError(f"No extractor for binary content of {mime_type}.")
        return _decode(data)


class ExtractorFactory:
    """Registry of extractors keyed by MIME type pattern.

    Patterns are matched against the whole MIME type in registration order;
    the first match wins.
    """

    def __init__(self, default: Optional[Extractor] = None) -> None:
        self._extractors: List[Tuple[Pattern[str], Extractor]] = []
        self._default = default or DefaultExtractor()

    def register(self, pattern: str, extractor: Extractor) -> "ExtractorFactory":
        self._extractors.append((re.compile(pattern), extractor))
        return self

    def get_extractor(self, mime_type: Optional[str]) -> Optional[Extractor]:
        if not mime_type:
            return None
        for pattern, extractor in self._extractors:
            if pattern.fullmatch(mime_type):
                return extractor
        return None

    def extract(self, stream: IO[bytes], mime_type: Optional[str]) -> str:
        extractor = self.get_extractor(mime_type)
        if extractor is None:
            logger.debug("use the default extractor for %s", mime_type)
            extractor = self._default
        return extractor.get_text(stream, mime_type)


def build_default_factory() -> ExtractorFactory:
    text = PlainTextExtractor()
    factory = ExtractorFactory()
    factory.register(r"text/.*", text)
    factory.register(r"application/(json|xml|javascript|x-sh|x-yaml)", text)
    factory.register(r"application/.*\+(json|xml)", text)
    factory.register(r"application/pdf", PdfExtractor())
    return factory


def parse_script_bundle(text: str) -> str:
    """Concatenate the name and source of each file in an Apps Script export."""
    try:
        bundle = json.loads(text)
    except ValueError:
        logger.warning("Failed to parse a json content.", exc_info=True)
        return ""
    if not isinstance(bundle, dict) or "files" not in bundle:
        return ""
    parts: List[str] = []
    for entry in bundle["files"] or []:
        parts.append(f"{entry.get('name', '')}\n{entry.get('source', '')}\n")
    return "".join(parts)


class ContentExtractor:
    """Materializes the text of a Drive file."""

    def __init__(
        self,
        client: RemoteFileClient,
        factory: Optional[ExtractorFactory] = None,
        ignore_error: bool = True,
    ) -> None:
        self._client = client
        self._factory = factory or build_default_factory()
        self._ignore_error = ignore_error

    def get_file_contents(self, file: FileDescriptor) -> str:
        mime_type = file.mime_type or ""
        match = GOOGLE_APPS_MIMETYPE.fullmatch(mime_type)
        if match:
            kind = match.group(1)
            if kind in EXPORT_MIMETYPES:
                return self._client.export_text(file.id, EXPORT_MIMETYPES[kind])
            if kind == "script":
                return parse_script_bundle(
                    self._client.export_text(file.id, SCRIPT_EXPORT_MIMETYPE)
                )

        try:
            with self._client.download_media(file.id) as stream:
                return self._factory.extract(stream, file.mime_type)
        except Exception as e:
            if self._ignore_error:
                logger.warning("Failed to get contents: %s", file.name, exc_info=True)
                return ""
            raise ExtractionError(
                f"Failed to get contents: {file.name}", url=file.web_content_link
            ) from e
