"""Client for the Google Drive v3 REST API.

This client implements:
- Bearer authentication through a ``CredentialManager``
- Pagination with ``nextPageToken``
- Export of Google-native documents
- Media download spilled to a temporary file above a size threshold
- Retry on transient network errors and rate limiting
"""

from __future__ import annotations

import logging
import tempfile
import time
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import IO, Any, Dict, Iterator, Optional

import requests
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..auth import Credential, CredentialManager
from ..config import ALL_DRIVES, ClientConfig
from ..errors import AuthError, DataAccessError, ExtractionError
from ..interfaces import RemoteFileClient
from ..models import FileDescriptor

logger = logging.getLogger(__name__)

DRIVE_API_ENDPOINT = "https://www.googleapis.com/drive/v3"
DOWNLOAD_CHUNK_SIZE = 64 * 1024
DEFAULT_RETRY_AFTER = 60


def _retry_after_seconds(value: Optional[str]) -> int:
    """Seconds to wait for a Retry-After header given as seconds or an HTTP date."""
    if not value:
        return DEFAULT_RETRY_AFTER
    try:
        return max(0, int(value))
    except ValueError:
        pass
    try:
        retry_at = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        retry_at = None
    if retry_at is None:
        logger.debug("Unparseable Retry-After: %s", value)
        return DEFAULT_RETRY_AFTER
    if retry_at.tzinfo is None:
        retry_at = retry_at.replace(tzinfo=timezone.utc)
    return max(0, int((retry_at - datetime.now(timezone.utc)).total_seconds()))


class GoogleDriveClient(RemoteFileClient):
    """Authenticated access to the Drive ``files`` resource."""

    def __init__(
        self,
        credentials: CredentialManager,
        config: Optional[ClientConfig] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._credentials = credentials
        self._config = config or ClientConfig()
        self._session = session or requests.Session()
        if self._config.proxies:
            self._session.proxies.update(self._config.proxies)

    @classmethod
    def from_params(cls, params: Dict[str, str]) -> "GoogleDriveClient":
        """Build a client and its credential manager from string parameters.

        Missing or malformed credential parameters raise
        ``CredentialConfigError`` before any network access happens.
        """
        config = ClientConfig.from_params(params)
        session = requests.Session()
        credentials = CredentialManager(
            Credential.from_params(params),
            session=session,
            refresh_interval=config.refresh_token_interval,
            timeout=config.timeout,
        )
        return cls(credentials, config=config, session=session)

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def credentials(self) -> CredentialManager:
        return self._credentials

    def start(self) -> "GoogleDriveClient":
        self._credentials.start()
        return self

    def close(self) -> None:
        self._credentials.close()
        self._session.close()

    def __enter__(self) -> "GoogleDriveClient":
        return self.start()

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    @retry(
        retry=retry_if_exception_type(
            (requests.exceptions.ConnectionError, requests.exceptions.Timeout)
        ),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _request(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        """Send an authenticated request.

        Args:
            method: HTTP method
            url: Full URL or path relative to the Drive API endpoint
            **kwargs: Additional arguments passed to requests

        Returns:
            The response, after ``raise_for_status``
        """
        if not url.startswith("https://"):
            url = f"{DRIVE_API_ENDPOINT}{url}"
        kwargs.setdefault("timeout", self._config.timeout)
        headers = kwargs.pop("headers", {})
        self._credentials.apply(headers)

        logger.debug("Making %s request to: %s", method, url)
        response = self._session.request(method, url, headers=headers, **kwargs)

        if response.status_code == 429:
            retry_after = _retry_after_seconds(response.headers.get("Retry-After"))
            logger.warning("Rate limited. Waiting %d seconds...", retry_after)
            response.close()
            time.sleep(retry_after)
            response = self._session.request(method, url, headers=headers, **kwargs)

        if response.status_code == 401:
            logger.info("Access token rejected, refreshing...")
            response.close()
            try:
                self._credentials.refresh()
            except AuthError:
                # the 401 stands and is raised below
                logger.warning("Failed to refresh an access token.", exc_info=True)
            else:
                self._credentials.apply(headers)
                response = self._session.request(method, url, headers=headers, **kwargs)

        response.raise_for_status()
        return response

    def list_files(
        self,
        query: Optional[str] = None,
        corpora: Optional[str] = None,
        spaces: Optional[str] = None,
        fields: Optional[str] = None,
    ) -> Iterator[FileDescriptor]:
        """Yield every file matching the query, one page at a time.

        The next page is only requested once the caller has consumed the
        current one. A new call always starts again from the first page.
        """
        logger.debug(
            "query: %s, corpora: %s, spaces: %s, fields: %s", query, corpora, spaces, fields
        )
        params: Dict[str, Any] = {}
        if query and query.strip():
            params["q"] = query
        if fields and fields.strip():
            params["fields"] = fields
        if corpora and corpora.strip():
            params["corpora"] = corpora
        if corpora == ALL_DRIVES:
            params["includeItemsFromAllDrives"] = "true"
            params["supportsAllDrives"] = "true"
        if spaces and spaces.strip():
            params["spaces"] = spaces

        page_token: Optional[str] = None
        counter = 1
        while True:
            if page_token:
                params["pageToken"] = page_token
            logger.debug("Accessing files: %d=>%s", counter, page_token)
            try:
                response = self._request("GET", "/files", params=dict(params))
                payload = response.json()
            except (requests.exceptions.RequestException, ValueError) as e:
                raise DataAccessError("Failed to access files.") from e

            if not isinstance(payload, dict):
                raise DataAccessError(f"Unexpected file list response: {payload!r}")
            files = payload.get("files", [])
            logger.info("Fetched %d files from page %d", len(files), counter)
            for item in files:
                if not isinstance(item, dict):
                    logger.warning("Skip an unexpected file entry: %r", item)
                    continue
                yield FileDescriptor.from_api(item)

            page_token = payload.get("nextPageToken")
            if not page_token:
                break
            counter += 1

    def export_text(self, file_id: str, mime_type: str) -> str:
        """Export a Google-native document to ``mime_type`` and decode it."""
        try:
            response = self._request(
                "GET", f"/files/{file_id}/export", params={"mimeType": mime_type}
            )
            return response.content.decode("utf-8")
        except (requests.exceptions.RequestException, UnicodeDecodeError) as e:
            raise ExtractionError(f"Failed to extract a text from {file_id}") from e

    def download_media(self, file_id: str) -> IO[bytes]:
        """Stream the raw bytes of a file.

        Content up to ``max_cached_content_size`` stays in memory, anything
        larger is written to a temporary file. Closing the returned stream
        releases the buffer or deletes the temporary file.
        """
        buffer = tempfile.SpooledTemporaryFile(
            max_size=self._config.max_cached_content_size,
            prefix="crawler-drive-",
            suffix=".out",
        )
        try:
            response = self._request(
                "GET",
                f"/files/{file_id}",
                params={"alt": "media", "supportsAllDrives": "true"},
                stream=True,
            )
            with response:
                for chunk in response.iter_content(chunk_size=DOWNLOAD_CHUNK_SIZE):
                    if chunk:
                        buffer.write(chunk)
            buffer.flush()
            buffer.seek(0)
            return buffer
        except requests.exceptions.RequestException as e:
            buffer.close()
            raise DataAccessError(
                f"Failed to create an input stream from {file_id}", remote_id=file_id
            ) from e
        except BaseException:
            buffer.close()
            raise
