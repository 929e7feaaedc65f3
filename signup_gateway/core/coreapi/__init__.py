"""CoreAPI client library.

Architecture:
- token_cache.py: client-credentials token, on-disk cache, single-flight refresh
- client.py: authenticated HTTP transport with status classification
- query.py: ``search:()`` / ``with:()`` path fragments
- models.py: typed request payloads
- users.py: user accounts, credentials, password reset, countries
- imageengine.py: subscriptions, domains, origins, demo runs, lead gen, DNS
- exceptions.py: typed exceptions

Usage:
    from signup_gateway.core.coreapi import Credentials, TokenCache, CoreAPIClient, UserService

    cache = TokenCache(Credentials(api_url, client_id, secret, scopes), cache_dir)
    users = UserService(CoreAPIClient(cache))
    users.search_users({"email": "alice@example.com"})
"""
from .client import API_PREFIX, CoreAPIClient
from .exceptions import (
    ConfigurationError,
    CoreAPIClientError,
    CoreAPIError,
    CountryNotFoundError,
    TokenAcquisitionError,
)
from .imageengine import ImageEngineService, deployable_regions
from .models import (
    DNSRecord,
    NewDemoRun,
    NewDomain,
    NewLeadGen,
    NewOrigin,
    NewSubscription,
    NewUser,
    WelcomeEmail,
)
from .query import construct_search, construct_with
from .token_cache import CachedToken, Credentials, TokenCache
from .users import UserService

__all__ = [
    # Transport
    "API_PREFIX",
    "CoreAPIClient",
    "construct_search",
    "construct_with",

    # Token cache
    "CachedToken",
    "Credentials",
    "TokenCache",

    # Exceptions
    "ConfigurationError",
    "CoreAPIClientError",
    "CoreAPIError",
    "CountryNotFoundError",
    "TokenAcquisitionError",

    # Services
    "ImageEngineService",
    "UserService",
    "deployable_regions",

    # Payloads
    "DNSRecord",
    "NewDemoRun",
    "NewDomain",
    "NewLeadGen",
    "NewOrigin",
    "NewSubscription",
    "NewUser",
    "WelcomeEmail",
]
