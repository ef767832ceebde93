"""Service-account authentication for the Google Drive API.

Implements the OAuth 2.0 JWT bearer grant:
- Parse the PKCS8 private key from the service-account parameters
- Sign an RS256 assertion for the Drive scope
- Exchange the assertion for a short-lived access token
- Refresh the token on a background thread before it expires
"""

from __future__ import annotations

import base64
import logging
import re
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Mapping, MutableMapping, Optional, Tuple

import jwt
import requests
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from .config import (
    CLIENT_EMAIL_PARAM,
    DEFAULT_REFRESH_TOKEN_INTERVAL,
    PRIVATE_KEY_ID_PARAM,
    PRIVATE_KEY_PARAM,
)
from .errors import AuthError, CredentialConfigError, KeyFormatError
from .models import TokenState

logger = logging.getLogger(__name__)

TOKEN_URL = "https://www.googleapis.com/oauth2/v4/token"
DRIVE_SCOPE = "https://www.googleapis.com/auth/drive"
JWT_BEARER_GRANT_TYPE = "urn:ietf:params:oauth:grant-type:jwt-bearer"
ASSERTION_LIFETIME = timedelta(hours=1)

# PEM armour lines, escaped "\n" sequences and any whitespace
_PEM_NOISE = re.compile(r"-----[A-Z ]+-----|\\n|\\r|\s")


def parse_private_key(private_key_pem: str) -> rsa.RSAPrivateKey:
    """Decode a PKCS8 PEM (with real or escaped newlines) into an RSA key."""
    if not private_key_pem:
        raise KeyFormatError("The private key is empty.")
    try:
        der = base64.b64decode(_PEM_NOISE.sub("", private_key_pem), validate=True)
        key = serialization.load_der_private_key(der, password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise KeyFormatError("Failed to parse the private key.") from e
    if not isinstance(key, rsa.RSAPrivateKey):
        raise KeyFormatError(f"Expected an RSA private key, got {type(key).__name__}.")
    return key


@dataclass(frozen=True)
class Credential:
    """Service-account identity used to sign token assertions."""

    private_key_pem: str = field(repr=False)
    private_key_id: str
    client_email: str
    audience_url: str = TOKEN_URL
    scope: str = DRIVE_SCOPE
    private_key: rsa.RSAPrivateKey = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        missing = [
            name
            for name, value in (
                (PRIVATE_KEY_PARAM, self.private_key_pem),
                (PRIVATE_KEY_ID_PARAM, self.private_key_id),
                (CLIENT_EMAIL_PARAM, self.client_email),
            )
            if not value
        ]
        if missing:
            names = ", ".join(f"'{name}'" for name in missing)
            raise CredentialConfigError(f"parameter {names} is required")
        object.__setattr__(self, "private_key", parse_private_key(self.private_key_pem))

    @classmethod
    def from_params(cls, params: Mapping[str, str]) -> "Credential":
        return cls(
            private_key_pem=params.get(PRIVATE_KEY_PARAM, ""),
            private_key_id=params.get(PRIVATE_KEY_ID_PARAM, ""),
            client_email=params.get(CLIENT_EMAIL_PARAM, ""),
        )


class CredentialManager:
    """Owns the token lifecycle for one credential.

    The current token is held as an immutable ``TokenState`` that is replaced
    wholesale on refresh, so request threads can read it without locking.
    """

    def __init__(
        self,
        credential: Credential,
        session: Optional[requests.Session] = None,
        refresh_interval: int = DEFAULT_REFRESH_TOKEN_INTERVAL,
        timeout: Tuple[float, float] = (20.0, 20.0),
    ) -> None:
        self._credential = credential
        self._session = session or requests.Session()
        self._refresh_interval = refresh_interval
        self._timeout = timeout
        self._token_state = TokenState(
            access_token=None, issued_at=datetime.now(timezone.utc), expiry=None
        )
        self._stopped = threading.Event()
        self._refresher: Optional[threading.Thread] = None

    @property
    def credential(self) -> Credential:
        return self._credential

    @property
    def token_state(self) -> TokenState:
        return self._token_state

    @property
    def closed(self) -> bool:
        return self._stopped.is_set()

    def create_assertion(self, now: Optional[datetime] = None) -> str:
        """Build the signed JWT exchanged for an access token."""
        now = now or datetime.now(timezone.utc)
        claims: Dict[str, Any] = {
            "iss": self._credential.client_email,
            "sub": self._credential.client_email,
            "aud": self._credential.audience_url,
            "scope": self._credential.scope,
            "iat": int(now.timestamp()),
            "exp": int((now + ASSERTION_LIFETIME).timestamp()),
        }
        return jwt.encode(
            claims,
            self._credential.private_key,
            algorithm="RS256",
            headers={"kid": self._credential.private_key_id},
        )

    def authorize(self) -> TokenState:
        """Exchange a fresh assertion for a token without publishing it."""
        now = datetime.now(timezone.utc)
        data = {
            "assertion": self.create_assertion(now),
            "grant_type": JWT_BEARER_GRANT_TYPE,
        }
        try:
            response = self._session.post(
                self._credential.audience_url, data=data, timeout=self._timeout
            )
        except requests.exceptions.RequestException as e:
            raise AuthError("Failed to authorize Google Drive API.") from e

        try:
            payload = response.json()
        except ValueError as e:
            raise AuthError(
                f"Invalid token response (HTTP {response.status_code})."
            ) from e

        if not isinstance(payload, dict):
            raise AuthError(
                f"Unexpected token response (HTTP {response.status_code}): {payload!r}"
            )
        if not response.ok or "error" in payload or not payload.get("access_token"):
            error = payload.get("error", f"HTTP {response.status_code}")
            description = payload.get("error_description", "")
            raise AuthError(f"Failed to authorize Google Drive API: {error} {description}".strip())

        expires_in = payload.get("expires_in")
        try:
            expiry = now + timedelta(seconds=int(expires_in)) if expires_in else None
        except (TypeError, ValueError) as e:
            raise AuthError(f"Invalid expires_in in token response: {expires_in!r}") from e
        return TokenState(
            access_token=payload["access_token"],
            issued_at=now,
            expiry=expiry,
            token_type=payload.get("token_type") or "Bearer",
        )

    def refresh(self) -> TokenState:
        """Authorize and publish the new token."""
        logger.debug("Refreshing access token.")
        state = self.authorize()
        self._token_state = state
        logger.debug("Access token refreshed, expires at %s", state.expiry)
        return state

    def start(self) -> "CredentialManager":
        """Obtain the first token and schedule periodic refreshes."""
        self.refresh()
        if self._refresh_interval > 0 and self._refresher is None:
            self._refresher = threading.Thread(
                target=self._refresh_periodically,
                name="drive-token-refresher",
                daemon=True,
            )
            self._refresher.start()
        return self

    def _refresh_periodically(self) -> None:
        while not self._stopped.wait(self._refresh_interval):
            try:
                self.refresh()
            except AuthError:
                logger.warning("Failed to refresh an access token.", exc_info=True)

    def apply(self, headers: MutableMapping[str, str]) -> MutableMapping[str, str]:
        """Set the Authorization header from the current token snapshot."""
        state = self._token_state
        headers["Authorization"] = f"{state.token_type} {state.access_token}"
        return headers

    def close(self) -> None:
        self._stopped.set()
        refresher = self._refresher
        if refresher is not None and refresher is not threading.current_thread():
            refresher.join(timeout=5)
        self._refresher = None

    def __enter__(self) -> "CredentialManager":
        return self.start()

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
