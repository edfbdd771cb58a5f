"""
Service-account authentication for the BigQuery REST API.

Implements the OAuth2 JWT bearer grant without an external crypto library:

1. Parse the credential's PKCS#8 private key (bqvirtual.asn1)
2. Build header.payload, base64url-encoded, and sign it RS256 (bqvirtual.rsa)
3. POST grant_type=urn:ietf:params:oauth:grant-type:jwt-bearer&assertion=<jwt>
   to the token endpoint
4. Cache the returned access token until 5 minutes before it expires

TokenManager has two states: Unauthenticated (no usable cached token) and
Authenticated. get_access_token() only does I/O in the first state.

Each TokenManager owns a private TokenCache unless one is passed in, so by
default every adapter construction performs one full token exchange. Pass a
shared TokenCache to reuse one token across managers; refreshes happen under
its lock, so concurrent callers trigger a single exchange.
"""

import base64
import json
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from bqvirtual import rsa
from bqvirtual.asn1 import RsaKeyMaterial, parse_private_key_pem
from bqvirtual.config import Configuration
from bqvirtual.errors import AuthenticationError


TOKEN_SCOPE = "https://www.googleapis.com/auth/bigquery"
JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"
ASSERTION_LIFETIME = timedelta(hours=1)

# Hard constant: a token is usable only while now < expiry - 5 minutes.
EXPIRY_BUFFER = timedelta(minutes=5)


def base64url_encode(data: bytes) -> str:
    """Base64 with + -> -, / -> _ and all = padding stripped."""
    return (
        base64.b64encode(data).decode("ascii")
        .replace("+", "-")
        .replace("/", "_")
        .replace("=", "")
    )


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ServiceAccountCredential:
    """client_email + private_key from a service-account JSON key file."""
    client_email: str
    private_key_pem: str

    @classmethod
    def from_json(cls, blob: str) -> "ServiceAccountCredential":
        """
        Parse the service-account JSON blob.

        Raises:
            AuthenticationError: If the blob is not JSON or lacks
                client_email / private_key
        """
        try:
            info = json.loads(blob)
        except (TypeError, ValueError) as e:
            raise AuthenticationError(f"Service account JSON is not valid JSON: {e}") from e

        if not isinstance(info, dict):
            raise AuthenticationError("Service account JSON must be an object")

        missing = [k for k in ("client_email", "private_key") if not info.get(k)]
        if missing:
            raise AuthenticationError(f"Service account JSON missing fields: {missing}")

        return cls(client_email=info["client_email"], private_key_pem=info["private_key"])

    def __repr__(self) -> str:
        return f"ServiceAccountCredential(client_email={self.client_email})"


@dataclass
class AccessToken:
    """Bearer token and the instant it expires."""
    value: str
    expires_at: datetime

    def is_usable(self, now: datetime) -> bool:
        return now < self.expires_at - EXPIRY_BUFFER

    def __repr__(self) -> str:
        return f"AccessToken(expires_at={self.expires_at.isoformat()})"


def _encode_segment(obj: dict) -> str:
    return base64url_encode(json.dumps(obj, separators=(",", ":")).encode("utf-8"))


def build_jwt_assertion(
    credential: ServiceAccountCredential,
    audience: str,
    now: datetime,
    key: Optional[RsaKeyMaterial] = None,
) -> str:
    """
    Build and sign the JWT assertion for the bearer grant.

    Args:
        credential: Service-account identity
        audience: Token endpoint URL (the "aud" claim)
        now: Issue time
        key: Pre-parsed key; parsed from credential.private_key_pem when omitted

    Returns:
        Compact JWT: base64url(header).base64url(payload).base64url(signature)

    Raises:
        ParseError: If the private key is malformed
    """
    if key is None:
        key = parse_private_key_pem(credential.private_key_pem)

    iat = int(now.timestamp())
    header = {"alg": "RS256", "typ": "JWT"}
    payload = {
        "iss": credential.client_email,
        "scope": TOKEN_SCOPE,
        "aud": audience,
        "exp": iat + int(ASSERTION_LIFETIME.total_seconds()),
        "iat": iat,
    }

    signing_input = f"{_encode_segment(header)}.{_encode_segment(payload)}"
    signature = rsa.sign(signing_input.encode("utf-8"), key)
    return f"{signing_input}.{base64url_encode(signature)}"


class TokenCache:
    """One AccessToken slot plus the lock that serializes refreshes."""

    def __init__(self):
        self.token: Optional[AccessToken] = None
        self.lock = threading.Lock()


class TokenManager:
    """Mints and caches bearer tokens for one Configuration."""

    def __init__(
        self,
        config: Configuration,
        session,
        cache: Optional[TokenCache] = None,
        clock: Optional[Callable[[], datetime]] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Args:
            config: Connection configuration (credential + token_url)
            session: requests.Session-compatible object with post()
            cache: Shared token cache; a private one is created when omitted
            clock: Returns the current UTC datetime (injectable for tests)
            logger: Tracing sink
        """
        self.config = config
        self.session = session
        self.cache = cache if cache is not None else TokenCache()
        self._clock = clock or _utcnow
        self.logger = logger or logging.getLogger(__name__)

    @property
    def is_authenticated(self) -> bool:
        token = self.cache.token
        return token is not None and token.is_usable(self._clock())

    def get_access_token(self) -> str:
        """
        Return a usable bearer token, exchanging a new JWT if needed.

        Raises:
            AuthenticationError: Token endpoint failure or malformed response
            ParseError: Malformed private key
        """
        token = self.cache.token
        if token is not None and token.is_usable(self._clock()):
            return token.value

        with self.cache.lock:
            # Another holder of the same cache may have refreshed meanwhile.
            token = self.cache.token
            if token is not None and token.is_usable(self._clock()):
                return token.value

            try:
                token = self._refresh()
            except Exception as e:
                self.logger.error(f"Failed to get access token: {e}")
                raise

            self.cache.token = token
            self.logger.info("Access token obtained successfully.")
            return token.value

    def _refresh(self) -> AccessToken:
        credential = ServiceAccountCredential.from_json(self.config.service_account_json)
        key = parse_private_key_pem(credential.private_key_pem)
        assertion = build_jwt_assertion(credential, self.config.token_url, self._clock(), key=key)
        return self._exchange(assertion)

    def _exchange(self, assertion: str) -> AccessToken:
        response = self.session.post(
            self.config.token_url,
            data={"grant_type": JWT_BEARER_GRANT, "assertion": assertion},
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        status = response.status_code
        body = response.text

        if not 200 <= status < 300:
            raise AuthenticationError("Token exchange failed", status_code=status, body=body)

        try:
            data = response.json()
            value = data["access_token"]
            expires_in = int(data["expires_in"])
        except (ValueError, KeyError, TypeError) as e:
            raise AuthenticationError(
                f"Malformed token response: {e}", status_code=status, body=body
            ) from e

        if not isinstance(value, str) or not value:
            raise AuthenticationError(
                "Malformed token response: empty access_token", status_code=status, body=body
            )

        return AccessToken(value=value, expires_at=self._clock() + timedelta(seconds=expires_in))
