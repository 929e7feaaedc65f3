"""CoreAPI user account operations."""
from __future__ import annotations
import logging
from typing import Any, Dict, Optional, Sequence

from .client import CoreAPIClient
from .exceptions import CoreAPIError, CountryNotFoundError
from .models import PASSWORD_RESET_TEMPLATE, NewUser
from .query import construct_search, construct_with, encode_component

logger = logging.getLogger(__name__)


class UserService:
    """Service for CoreAPI users, credentials and related lookups."""

    def __init__(self, client: CoreAPIClient):
        """Initialize user service.

        Args:
            client: CoreAPI client sharing the process token cache
        """
        self.client = client

    def check_credentials(self, username: str, password: str) -> Dict[str, Any]:
        """Check a username (or email) / password pair.

        Returns:
            CoreAPI response body; ``status`` is 200 on success, 400 on bad credentials
        """
        payload = {
            "username": username,
            "password": password,
            "allow_email": True,
        }
        resp = self.client.post("/login", json=payload)
        return resp.json()

    def get_user_by_id(self, user_id: int, with_terms: Optional[Sequence[str]] = None) -> Dict[str, Any]:
        """Get the user with the given ID.

        Args:
            user_id: CoreAPI user ID
            with_terms: Relationships to include (e.g. ["subscriptions", "country"])
        """
        path = f"/user/{encode_component(user_id)}" + construct_with(with_terms)
        resp = self.client.get(path)
        return resp.json()

    def search_users(
        self,
        terms: Optional[Dict[str, Any]] = None,
        with_terms: Optional[Sequence[str]] = None,
    ) -> Dict[str, Any]:
        """List users matching the given field values (e.g. {"email": "foo@bar.com"})."""
        path = "/users" + construct_search(terms) + construct_with(with_terms)
        resp = self.client.get(path)
        return resp.json()

    def email_exists(self, email: str) -> bool:
        """Return True if an account is registered with this email."""
        details = self.search_users({"email": email})
        return len(details.get("data") or []) > 0

    def create_user(self, user: NewUser) -> Dict[str, Any]:
        """Create a new user account.

        Accounts created with ``confirmed=1`` are confirmed right away so the
        user does not need to verify their email.

        Returns:
            CoreAPI response body with the newly-created user in ``data``

        Raises:
            CoreAPIError: If automatic confirmation fails
        """
        payload = {"data": [user.to_payload()]}
        resp = self.client.post("/user", json=payload)
        body = resp.json()

        created = body.get("data") or {}
        if (
            user.confirmed == 1
            and resp.status_code == 201
            and body.get("success")
            and created.get("id") is not None
        ):
            self.confirm_user(created["id"])

        return body

    def confirm_user(self, user_id: int) -> Dict[str, Any]:
        """Mark a user account as confirmed.

        Raises:
            CoreAPIError: If the CoreAPI does not answer 202
        """
        path = f"/users/{encode_component(user_id)}"
        resp = self.client.patch(path, json={"confirmed": 1})
        body = resp.json()
        if resp.status_code != 202:
            raise CoreAPIError(
                resp.status_code,
                f"Unable to confirm user account: {body.get('message')}",
                path,
            )
        return body

    def send_password_reset_email(self, email: str, template: str = PASSWORD_RESET_TEMPLATE) -> Dict[str, Any]:
        """Send a password reset email (lets SSO-created accounts set a password)."""
        resp = self.client.post("/password_reset", json={"email": email, "template": template})
        logger.info(f"Send password reset: {resp.status_code}")
        return resp.json()

    def get_country(self, country_code: str) -> Dict[str, Any]:
        """Look up a country by ISO code.

        Raises:
            CountryNotFoundError: If the CoreAPI has no country with this code
        """
        resp = self.client.get("/country" + construct_search({"code": country_code}))
        logger.info(f"Get country code: {resp.status_code}")
        matches = resp.json().get("data") or []
        if not matches:
            raise CountryNotFoundError(f"Country could not be found: {country_code}")
        return matches[0]
