"""Client-credentials token cache for the CoreAPI.

The gateway authenticates as itself against the CoreAPI authorization server
and reuses the resulting bearer token across requests and process restarts.

Lifecycle:
    - First ``get_token()`` tries the on-disk cache file
    - Corrupt, incomplete or integrity-mismatched cache files are deleted
    - Missing or expired tokens trigger one client-credentials request
    - Every freshly issued token is written back to the same file

The integrity hash covers the API URL, client ID, secret and scopes, so a
cache file written with other credentials is never reused.
"""
from __future__ import annotations
import hashlib
import json
import logging
import os
import tempfile
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from authlib.integrations.requests_client import OAuth2Session

from .exceptions import ConfigurationError, TokenAcquisitionError

logger = logging.getLogger(__name__)

USER_AGENT = "signup-gateway (Server/python; +https://imageengine.io/)"
ACCESS_TOKEN_PATH = "/oauth/token"
CACHE_FILENAME = "coreapi-access-token.json"
REQUEST_TIMEOUT = 5

REQUIRED_CACHE_FIELDS = ("token_type", "expires_in", "access_token", "hash")


@dataclass(frozen=True)
class Credentials:
    """Service credentials for the CoreAPI client-credentials grant.

    Attributes:
        api_url: CoreAPI base URL including scheme (e.g. https://core.example.com)
        client_id: OAuth2 client ID
        client_secret: OAuth2 client secret
        scopes: OAuth2 scopes, space delimited
    """
    api_url: str
    client_id: str
    client_secret: str
    scopes: str = ""

    @property
    def integrity_hash(self) -> str:
        """SHA-256 over the concatenated credential fields (hex)."""
        digest = hashlib.sha256()
        digest.update(self.api_url.encode("utf-8"))
        digest.update(self.client_id.encode("utf-8"))
        digest.update(self.client_secret.encode("utf-8"))
        digest.update(self.scopes.encode("utf-8"))
        return digest.hexdigest()

    @property
    def token_url(self) -> str:
        return f"{self.api_url.rstrip('/')}{ACCESS_TOKEN_PATH}"


@dataclass
class CachedToken:
    """Bearer token plus the metadata needed to validate it."""
    token_type: str
    expires_in: int
    access_token: str
    expires_at: float
    integrity_hash: str
    extra: Dict[str, Any] = field(default_factory=dict)

    def is_expired(self) -> bool:
        return time.time() >= self.expires_at

    def to_dict(self) -> Dict[str, Any]:
        data = dict(self.extra)
        data.update({
            "token_type": self.token_type,
            "expires_in": self.expires_in,
            "access_token": self.access_token,
            "expires_at": self.expires_at,
            "hash": self.integrity_hash,
        })
        return data

    @classmethod
    def from_token_response(cls, token: Dict[str, Any], integrity_hash: str) -> "CachedToken":
        """Build from an authorization-server response (authlib OAuth2Token or dict)."""
        expires_in = int(token["expires_in"])
        expires_at = token.get("expires_at")
        if expires_at is None:
            expires_at = int(time.time()) + expires_in
        extra = {
            key: value
            for key, value in token.items()
            if key not in ("token_type", "expires_in", "access_token", "expires_at", "hash")
        }
        return cls(
            token_type=token.get("token_type", "Bearer"),
            expires_in=expires_in,
            access_token=token["access_token"],
            expires_at=float(expires_at),
            integrity_hash=integrity_hash,
            extra=extra,
        )


class TokenCache:
    """Process-wide holder of the CoreAPI bearer token.

    Construct once per process and pass it to every CoreAPIClient. Calls to
    ``get_token()`` are thread-safe; concurrent callers without a valid token
    share a single acquisition.

    Usage:
        cache = TokenCache(Credentials(url, client_id, secret, "api"), cache_dir="/var/cache")
        token = cache.get_token()
    """

    def __init__(self, credentials: Optional[Credentials] = None, cache_dir: Optional[str] = None):
        self._credentials: Optional[Credentials] = None
        self._cache_dir = Path(cache_dir or tempfile.gettempdir())
        self._token: Optional[CachedToken] = None
        self._lock = threading.Lock()
        if credentials is not None:
            self.configure(credentials)

    # ─────────────────────────────────────────────────────────────────────
    # Configuration
    # ─────────────────────────────────────────────────────────────────────
    def configure(self, credentials: Credentials) -> None:
        """Set the credentials used to contact the CoreAPI.

        Raises:
            ConfigurationError: If a token has already been obtained
        """
        if self._token is not None:
            raise ConfigurationError("Credentials must be configured before a token is obtained")
        self._credentials = credentials

    def set_cache_dir(self, cache_dir: str) -> None:
        """Set the directory holding the cache file.

        Raises:
            ConfigurationError: If a token has already been obtained
        """
        if self._token is not None:
            raise ConfigurationError("Cache directory must be set before a token is obtained")
        self._cache_dir = Path(cache_dir)

    @property
    def credentials(self) -> Credentials:
        if self._credentials is None:
            raise ConfigurationError("CoreAPI credentials are not configured")
        return self._credentials

    @property
    def cache_path(self) -> Path:
        return self._cache_dir / CACHE_FILENAME

    @property
    def has_token(self) -> bool:
        return self._token is not None

    # ─────────────────────────────────────────────────────────────────────
    # Token access
    # ─────────────────────────────────────────────────────────────────────
    def get_token(self) -> CachedToken:
        """Return a non-expired token, loading or requesting one if needed.

        Raises:
            ConfigurationError: If no credentials were configured
            TokenAcquisitionError: If the authorization server call fails
        """
        token = self._token
        if token is not None and not token.is_expired():
            return token

        with self._lock:
            # Another thread may have refreshed while we waited
            token = self._token
            if token is not None and not token.is_expired():
                return token

            cached = self._load_cached_token()
            if cached is not None and not cached.is_expired():
                logger.info("Restored CoreAPI access token from cache")
                self._token = cached
                return cached

            logger.info("Getting new CoreAPI access token")
            token = self._request_new_token()
            self._token = token
            self._save_cached_token(token)
            return token

    def _request_new_token(self) -> CachedToken:
        """Run the client-credentials grant against the authorization server."""
        credentials = self.credentials
        try:
            with OAuth2Session(
                credentials.client_id,
                credentials.client_secret,
                scope=credentials.scopes,
            ) as oauth:
                result = oauth.fetch_token(
                    credentials.token_url,
                    grant_type="client_credentials",
                    headers={"User-Agent": USER_AGENT},
                    timeout=REQUEST_TIMEOUT,
                )
            token = CachedToken.from_token_response(result, credentials.integrity_hash)
        except Exception as exc:
            msg = f"Unable to retrieve CoreAPI OAuth2 access token: {exc}"
            logger.error(msg)
            raise TokenAcquisitionError(msg) from exc

        logger.info("New CoreAPI access token obtained")
        return token

    # ─────────────────────────────────────────────────────────────────────
    # Disk persistence
    # ─────────────────────────────────────────────────────────────────────
    def _load_cached_token(self) -> Optional[CachedToken]:
        """Read the cache file, deleting it when it cannot be trusted."""
        path = self.cache_path
        try:
            contents = path.read_text(encoding="utf-8")
            mtime = path.stat().st_mtime
        except FileNotFoundError:
            return None
        except OSError as exc:
            logger.warning(f"Unable to read access token cache file: {exc}")
            return None

        try:
            data = json.loads(contents)
        except ValueError:
            self._discard_cache_file("unable to parse cache data file")
            return None

        if not isinstance(data, dict) or any(key not in data for key in REQUIRED_CACHE_FIELDS):
            self._discard_cache_file("cache data file is missing required fields")
            return None

        if not isinstance(data["access_token"], str) or not data["access_token"]:
            self._discard_cache_file("cache data file has no usable access token")
            return None

        if data["hash"] != self.credentials.integrity_hash:
            self._discard_cache_file("cached access token was generated with different credentials")
            return None

        try:
            expires_in = int(data["expires_in"])
            expires_at = float(data.get("expires_at") or mtime + expires_in)
        except (TypeError, ValueError):
            self._discard_cache_file("cache data file has an invalid expiry")
            return None

        extra = {
            key: value
            for key, value in data.items()
            if key not in ("token_type", "expires_in", "access_token", "expires_at", "hash")
        }
        return CachedToken(
            token_type=data["token_type"],
            expires_in=expires_in,
            access_token=data["access_token"],
            expires_at=expires_at,
            integrity_hash=data["hash"],
            extra=extra,
        )

    def _discard_cache_file(self, reason: str) -> None:
        logger.warning(f"Removing access token cache file: {reason}")
        try:
            self.cache_path.unlink()
        except FileNotFoundError:
            pass

    def _save_cached_token(self, token: CachedToken) -> None:
        """Write the token atomically as 2-space indented JSON."""
        path = self.cache_path
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=str(path.parent), prefix=".coreapi-token-")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(token.to_dict(), handle, indent=2)
            os.chmod(tmp_name, 0o600)
            os.replace(tmp_name, path)
        except OSError as exc:
            logger.error(f"Unable to store CoreAPI auth cache {path}: {exc}")
            try:
                os.unlink(tmp_name)
            except OSError:
                pass
            return
        logger.info(f"CoreAPI auth cache stored successfully: {path}")
