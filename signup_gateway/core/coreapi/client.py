"""Low-level HTTP client for the CoreAPI.

Handles bearer authentication (via TokenCache) and response classification.
"""
from __future__ import annotations
import logging
from typing import Any, Dict, Optional

import requests

from .exceptions import CoreAPIError
from .token_cache import REQUEST_TIMEOUT, USER_AGENT, TokenCache

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v2"

# Statuses returned to the caller as domain-level results instead of raised
NON_EXCEPTIONAL_STATUSES = frozenset({400, 404})


class CoreAPIClient:
    """HTTP client for the CoreAPI with automatic token management.

    Features:
    - Bearer token from a shared TokenCache, refreshed when expired
    - 2xx/3xx, 400 and 404 responses are returned for the caller to inspect
    - 5xx, other 4xx and network failures raise CoreAPIError

    Usage:
        client = CoreAPIClient(token_cache)
        response = client.get("/users/search:(email=a%40b.com)")
    """

    def __init__(self, token_cache: TokenCache, base_url: Optional[str] = None):
        """Initialize CoreAPI client.

        Args:
            token_cache: Shared token cache holding the service credentials
            base_url: CoreAPI base URL (defaults to the credentials' api_url,
                read on each request so the cache may be configured later)
        """
        self.token_cache = token_cache
        self._base_url = base_url.rstrip("/") if base_url else None

    @property
    def base_url(self) -> str:
        """Explicit base URL, else the api_url of the credentials configured on the cache."""
        if self._base_url is not None:
            return self._base_url
        return self.token_cache.credentials.api_url.rstrip("/")

    def get(self, path: str, **kwargs) -> requests.Response:
        """Execute GET request against ``/api/v2<path>``."""
        return self._request("get", path, **kwargs)

    def post(self, path: str, json: Optional[Dict[str, Any]] = None, **kwargs) -> requests.Response:
        """Execute POST request with a JSON body against ``/api/v2<path>``."""
        return self._request("post", path, json=json, **kwargs)

    def patch(self, path: str, json: Optional[Dict[str, Any]] = None, **kwargs) -> requests.Response:
        """Execute PATCH request with a JSON body against ``/api/v2<path>``."""
        return self._request("patch", path, json=json, **kwargs)

    def _request(self, method: str, path: str, json: Optional[Dict[str, Any]] = None, **kwargs) -> requests.Response:
        token = self.token_cache.get_token()
        url = f"{self.base_url}{API_PREFIX}{path}"
        headers = dict(kwargs.pop("headers", None) or {})
        headers["User-Agent"] = USER_AGENT
        headers["Authorization"] = f"Bearer {token.access_token}"
        if json is not None:
            headers["Content-Type"] = "application/json"

        logger.info(f"Making CoreAPI request: {method.upper()} {url}")
        try:
            resp = requests.request(
                method,
                url,
                json=json,
                headers=headers,
                timeout=REQUEST_TIMEOUT,
                **kwargs,
            )
        except requests.RequestException as exc:
            logger.error(f"CoreAPI client exception: {exc}")
            raise CoreAPIError(None, str(exc), url) from exc

        logger.info(f"CoreAPI response: {resp.status_code}")
        self._handle_error(resp, url)
        return resp

    def _handle_error(self, resp: requests.Response, url: str) -> None:
        """Raise for transport-level failures.

        Raises:
            CoreAPIError: If the status is >= 400 and not 400/404
        """
        if resp.status_code >= 400 and resp.status_code not in NON_EXCEPTIONAL_STATUSES:
            logger.error(f"CoreAPI error response {resp.status_code}: {resp.text}")
            raise CoreAPIError(resp.status_code, resp.text, url)
