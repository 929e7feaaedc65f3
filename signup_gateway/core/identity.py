"""SSO identity helpers.

Google:
    ID tokens are verified with PyJWT against Google's JWKS (RS256), audience
    = our Google client ID. The verified email must match the email the
    browser claims, otherwise the assertion is treated as forged.

GitHub:
    The OAuth callback stores the GitHub profile (and access token) in the
    session. Profiles without a public email fall back to the private email
    list: primary+verified first, then the first verified address.
"""
from __future__ import annotations
import logging
from typing import Any, Dict, Iterable, List, Optional

import jwt
import requests
from jwt import PyJWKClient
from jwt.exceptions import InvalidTokenError, PyJWKClientError

from .coreapi.token_cache import REQUEST_TIMEOUT, USER_AGENT
from .errors import ForgedIdentityError, IdentityVerificationError

logger = logging.getLogger(__name__)

GOOGLE_JWKS_URL = "https://www.googleapis.com/oauth2/v3/certs"
GOOGLE_ISSUERS = ("accounts.google.com", "https://accounts.google.com")
GITHUB_EMAILS_URL = "https://api.github.com/user/emails"


class GoogleTokenVerifier:
    """Verify Google Sign-In ID tokens for one OAuth client ID.

    The JWKS client caches Google's signing keys (1-hour lifespan).
    """

    def __init__(self, client_id: str, jwks_client: Optional[PyJWKClient] = None):
        self.client_id = client_id
        self._jwks_client = jwks_client

    @property
    def jwks_client(self) -> PyJWKClient:
        if self._jwks_client is None:
            logger.info(f"Initializing JWKS client for: {GOOGLE_JWKS_URL}")
            self._jwks_client = PyJWKClient(
                GOOGLE_JWKS_URL,
                cache_keys=True,
                lifespan=3600,
                headers={"User-Agent": USER_AGENT},
            )
        return self._jwks_client

    def verify(self, id_token: str, claimed_email: str) -> Dict[str, Any]:
        """Verify ``id_token`` and check it belongs to ``claimed_email``.

        Returns:
            Verified token claims

        Raises:
            IdentityVerificationError: Token invalid, expired, wrong audience/issuer
            ForgedIdentityError: Token valid but issued for another email
        """
        if not id_token:
            raise IdentityVerificationError("Google token verification failed")

        try:
            signing_key = self.jwks_client.get_signing_key_from_jwt(id_token)
            claims = jwt.decode(
                id_token,
                signing_key.key,
                algorithms=["RS256"],
                audience=self.client_id,
                options={"require": ["exp", "iat", "iss", "aud"]},
                leeway=5,
            )
        except (InvalidTokenError, PyJWKClientError) as exc:
            logger.warning(f"Google ID token rejected: {exc}")
            raise IdentityVerificationError("Google token verification failed") from exc

        if claims.get("iss") not in GOOGLE_ISSUERS:
            logger.warning(f"Google ID token has unexpected issuer: {claims.get('iss')}")
            raise IdentityVerificationError("Google token verification failed")

        verified_email = str(claims.get("email") or "")
        if not verified_email or verified_email.lower() != str(claimed_email or "").lower():
            logger.warning("Google identity does not match the claimed email")
            raise ForgedIdentityError("Google token verification failed: identity mismatch")

        return claims


def select_github_email(emails: Iterable[Dict[str, Any]]) -> Optional[str]:
    """Pick the best address from GitHub's ``/user/emails`` list.

    Preference: primary and verified, then the first verified address.
    """
    candidates: List[Dict[str, Any]] = [entry for entry in emails if isinstance(entry, dict)]
    for entry in candidates:
        if entry.get("primary") and entry.get("verified") and entry.get("email"):
            return entry["email"]
    for entry in candidates:
        if entry.get("verified") and entry.get("email"):
            return entry["email"]
    return None


def fetch_github_emails(access_token: str) -> List[Dict[str, Any]]:
    """Fetch the private email list of the GitHub account behind ``access_token``."""
    resp = requests.get(
        GITHUB_EMAILS_URL,
        headers={
            "Authorization": f"token {access_token}",
            "Accept": "application/vnd.github+json",
            "User-Agent": USER_AGENT,
        },
        timeout=REQUEST_TIMEOUT,
    )
    resp.raise_for_status()
    emails = resp.json()
    return emails if isinstance(emails, list) else []


def resolve_github_email(profile: Dict[str, Any], access_token: Optional[str] = None) -> str:
    """Return the email to register for a GitHub profile.

    Raises:
        IdentityVerificationError: If no usable email can be found
    """
    email = profile.get("email")
    if email and "@" in str(email):
        return str(email)

    if access_token:
        logger.info("Fetching other emails from GitHub")
        try:
            chosen = select_github_email(fetch_github_emails(access_token))
        except requests.RequestException as exc:
            logger.warning(f"Failed to fetch user email address from GitHub API: {exc}")
            chosen = None
        if chosen:
            return chosen

    raise IdentityVerificationError("Github verification failed (unable to get user email)")


def split_full_name(name: Optional[str]) -> Dict[str, str]:
    """Split a display name into first/last name when it has exactly two parts."""
    if not name:
        return {}
    parts = name.split(" ", 1)
    if len(parts) != 2 or not parts[0].strip() or not parts[1].strip():
        return {}
    # JS-compatible split(' ', 2) keeps only the second token
    last = parts[1].strip().split(" ")[0]
    return {"first_name": parts[0].strip(), "last_name": last}
