"""MIME type helpers: file-type labels and magic-byte sniffing."""

from __future__ import annotations

import logging
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_FILETYPE = "others"

# MIME type to the coarse file type stored with each record
MIME_TO_FILETYPE = {
    # Documents
    "text/html": "html",
    "application/xhtml+xml": "html",
    "application/pdf": "pdf",
    "text/plain": "txt",
    "application/rtf": "rtf",
    "application/msword": "word",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": "word",
    "application/vnd.oasis.opendocument.text": "word",
    "application/vnd.google-apps.document": "word",

    # Spreadsheets
    "application/vnd.ms-excel": "excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": "excel",
    "application/vnd.oasis.opendocument.spreadsheet": "excel",
    "application/vnd.google-apps.spreadsheet": "excel",
    "text/csv": "csv",

    # Presentations
    "application/vnd.ms-powerpoint": "powerpoint",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation": "powerpoint",
    "application/vnd.oasis.opendocument.presentation": "powerpoint",
    "application/vnd.google-apps.presentation": "powerpoint",

    # Code
    "application/vnd.google-apps.script": "script",
    "application/json": "json",
    "application/xml": "xml",
    "text/xml": "xml",
    "text/javascript": "javascript",
    "application/javascript": "javascript",

    # Folders
    "application/vnd.google-apps.folder": "folder",
}

# Media prefixes mapped when no exact entry exists
PREFIX_TO_FILETYPE = {
    "image/": "image",
    "video/": "video",
    "audio/": "audio",
}

# File signature magic bytes for binary formats that are not plain text
FILE_SIGNATURES = {
    b"%PDF": "application/pdf",
    b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1": "application/msword",
    b"PK\x03\x04": "application/zip",
    b"\xff\xd8\xff": "image/jpeg",
    b"\x89PNG\r\n\x1a\n": "image/png",
    b"GIF87a": "image/gif",
    b"GIF89a": "image/gif",
    b"II*\x00": "image/tiff",
    b"MM\x00*": "image/tiff",
    b"ID3": "audio/mpeg",
    b"fLaC": "audio/flac",
    b"RIFF": "audio/wav",
    b"\x52\x61\x72\x21": "application/x-rar-compressed",
    b"\x1f\x8b": "application/gzip",
    b"7z\xbc\xaf\x27\x1c": "application/x-7z-compressed",
    b"SQLite format 3": "application/x-sqlite3",
}

SIGNATURE_PROBE_SIZE = max(len(signature) for signature in FILE_SIGNATURES)


def get_filetype(mime_type: Optional[str]) -> str:
    """Return the file type label for a MIME type, ``others`` if unknown."""
    if not mime_type:
        return DEFAULT_FILETYPE
    base = mime_type.split(";", 1)[0].strip().lower()
    if base in MIME_TO_FILETYPE:
        return MIME_TO_FILETYPE[base]
    for prefix, filetype in PREFIX_TO_FILETYPE.items():
        if base.startswith(prefix):
            return filetype
    return DEFAULT_FILETYPE


def detect_mime_from_magic(data: bytes) -> Optional[str]:
    """Detect a binary MIME type from the leading bytes, if recognised."""
    for signature, mime_type in FILE_SIGNATURES.items():
        if data.startswith(signature):
            return mime_type
    return None
