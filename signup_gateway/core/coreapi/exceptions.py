"""CoreAPI-specific exceptions for error handling."""
from __future__ import annotations
from typing import Optional


class CoreAPIClientError(Exception):
    """Base exception for all CoreAPI client operations."""
    pass


class ConfigurationError(CoreAPIClientError):
    """Client misuse, e.g. credentials changed after a token was obtained."""
    pass


class TokenAcquisitionError(CoreAPIClientError):
    """The authorization server did not issue a client-credentials token."""
    pass


class CoreAPIError(CoreAPIClientError):
    """HTTP or network failure talking to the CoreAPI.

    Attributes:
        status_code: HTTP status code, None when no response was received
        message: Error message from response (or the network error)
        endpoint: API endpoint that failed
    """

    def __init__(self, status_code: Optional[int], message: str, endpoint: str):
        self.status_code = status_code
        self.message = message
        self.endpoint = endpoint
        if status_code is None:
            super().__init__(f"[network] {endpoint}: {message}")
        else:
            super().__init__(f"[{status_code}] {endpoint}: {message}")


class CountryNotFoundError(CoreAPIClientError):
    """Country lookup by ISO code returned no match."""
    pass
