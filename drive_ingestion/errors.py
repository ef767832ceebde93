"""Exception hierarchy shared by the client, extractors and pipeline."""

from __future__ import annotations

from typing import List, Optional


class DriveIngestionError(Exception):
    """Base class for all errors raised by this package."""


class CredentialConfigError(DriveIngestionError):
    """Service-account parameters are missing or unusable. Never retried."""


class KeyFormatError(CredentialConfigError):
    """The private key could not be decoded into an RSA key."""


class AuthError(DriveIngestionError):
    """Token exchange with the OAuth endpoint failed."""


class CrawlingAccessError(DriveIngestionError):
    """A single file could not be accessed; isolated by the pipeline."""

    def __init__(self, message: str, url: Optional[str] = None) -> None:
        super().__init__(message)
        self.url = url


class DataAccessError(CrawlingAccessError):
    """Network or API failure while talking to the Drive API."""

    def __init__(self, message: str, remote_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.remote_id = remote_id


class ExtractionError(CrawlingAccessError):
    """Text could not be extracted from a file."""


class MultipleCrawlingAccessError(CrawlingAccessError):
    """Wraps several access errors raised for the same file."""

    def __init__(self, message: str, causes: List[BaseException]) -> None:
        super().__init__(message)
        self.causes = list(causes)


class MaxLengthExceededError(DriveIngestionError):
    """The effective size of a file is above the configured limit."""
