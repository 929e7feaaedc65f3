"""
Account Service - signup and login against the CoreAPI

Three ways to arrive at ``POST /user``:
    - password: email + password + country_id supplied by the form
    - Google SSO: ``google_token`` (ID token) + claimed email
    - GitHub SSO: ``github`` flag, profile left in the session by the OAuth callback

If the email is already registered the request becomes a login (SSO callers
are trusted, password callers get a credential check). Otherwise a new user is
created; SSO users get a random password and ``confirmed=0`` so that the
provisioning step later sends them a password reset email.
"""
from __future__ import annotations
import logging
import secrets
import string
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from .coreapi import CoreAPIClientError, NewUser, UserService
from .errors import AuthenticationFailure, GatewayError, IdentityVerificationError, UpstreamError, ValidationError
from .identity import GoogleTokenVerifier, resolve_github_email, split_full_name
from .validators import require_fields, validate_email, validate_password

logger = logging.getLogger(__name__)

# 64 URL-safe characters for generated SSO passwords
SSO_PASSWORD_CHARSET = string.ascii_letters + string.digits + "-_"
SSO_PASSWORD_LENGTH = 16


def generate_sso_password(length: int = SSO_PASSWORD_LENGTH) -> str:
    """Random password for accounts created through SSO (never shown to the user)."""
    return "".join(secrets.choice(SSO_PASSWORD_CHARSET) for _ in range(length))


@dataclass
class UserContext:
    """Logged-in user, stored in the session under ``user_context``."""
    user_id: int
    email: str
    is_sso: bool = False
    just_registered: bool = False
    logged_in: bool = True

    def to_session(self) -> Dict[str, Any]:
        return {
            "logged_in": self.logged_in,
            "is_sso": self.is_sso,
            "just_registered": self.just_registered,
            "user_id": self.user_id,
            "email": self.email,
        }

    @classmethod
    def from_session(cls, data: Optional[Mapping[str, Any]]) -> Optional["UserContext"]:
        if not data or not data.get("user_id"):
            return None
        return cls(
            user_id=data["user_id"],
            email=data.get("email", ""),
            is_sso=bool(data.get("is_sso")),
            just_registered=bool(data.get("just_registered")),
            logged_in=bool(data.get("logged_in", True)),
        )


@dataclass
class AccountResult:
    """Outcome of a successful login or signup."""
    status: int
    message: str
    context: UserContext
    user_exists: Optional[bool] = False
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_envelope(self) -> Dict[str, Any]:
        result = {
            "user_id": self.context.user_id,
            "email": self.context.email,
        }
        if self.user_exists is not None:
            result["userExists"] = self.user_exists
        result.update(self.extra)
        return {
            "success": True,
            "status": self.status,
            "message": self.message,
            "result": result,
        }


class AccountService:
    """Login and signup on top of the CoreAPI user endpoints."""

    def __init__(self, users: UserService, google_verifier: Optional[GoogleTokenVerifier] = None):
        self.users = users
        self.google_verifier = google_verifier

    # ─────────────────────────────────────────────────────────────────────────
    # Login
    # ─────────────────────────────────────────────────────────────────────────

    def login(self, email: Optional[str], password: Optional[str]) -> AccountResult:
        """Authenticate an existing password account.

        Raises:
            ValidationError: Missing or malformed email/password
            AuthenticationFailure: Wrong credentials (HTTP 400, success=True)
            GatewayError: CoreAPI answered with another non-200 status
            UpstreamError: CoreAPI unreachable
        """
        require_fields(["email", "password"], {"email": email, "password": password})
        email = validate_email(email)
        validate_password(password)

        try:
            body = self.users.check_credentials(email, password)
        except CoreAPIClientError as exc:
            logger.error(f"Credential check failed: {exc}")
            raise UpstreamError("Authentication server error") from exc

        status = body.get("status")
        if status == 400:
            logger.info("Login rejected: bad credentials")
            raise AuthenticationFailure("User authentication failed")
        if status != 200:
            raise GatewayError(body.get("message") or "Authentication server error", status=status or 500)

        user = body.get("data") or {}
        context = UserContext(user_id=user.get("id"), email=user.get("email", email))
        logger.info(f"User {context.user_id} logged in")
        return AccountResult(status=200, message="Login successful", context=context, user_exists=None)

    # ─────────────────────────────────────────────────────────────────────────
    # Signup (or login of an already-registered email)
    # ─────────────────────────────────────────────────────────────────────────

    def register(
        self,
        body: Mapping[str, Any],
        github_profile: Optional[Mapping[str, Any]] = None,
        github_token: Optional[str] = None,
    ) -> AccountResult:
        """Create an account, or log in when the email is already registered.

        Args:
            body: Request body (email, password, country_id, google_token, github, names)
            github_profile: GitHub profile stored in the session by the OAuth callback
            github_token: GitHub access token stored in the session

        Raises:
            ValidationError: Missing fields, bad email/password, unverifiable SSO identity
            AuthenticationFailure: Existing password account, wrong password
            GatewayError: CoreAPI refused to create the user
            UpstreamError: CoreAPI unreachable
        """
        is_sso = False
        names: Dict[str, Any] = {}

        if body.get("google_token"):
            is_sso = True
            require_fields(["email"], body)
            email = str(body["email"])
            self._verify_google(body["google_token"], email)
            names = {"first_name": body.get("first_name"), "last_name": body.get("last_name")}
        elif body.get("github"):
            is_sso = True
            if not github_profile:
                raise IdentityVerificationError("Github verification failed")
            email = resolve_github_email(dict(github_profile), github_token)
            names = split_full_name(github_profile.get("name"))
        else:
            require_fields(["email", "password", "country_id"], body)
            email = validate_email(body["email"])

        password = generate_sso_password() if is_sso else validate_password(body["password"])

        try:
            existing = (self.users.search_users({"email": email}).get("data") or [])
        except CoreAPIClientError as exc:
            logger.error(f"User lookup failed: {exc}")
            raise UpstreamError("Unable to create user") from exc

        if existing:
            return self._login_existing(existing[0], email, password, is_sso)

        new_user = NewUser(
            username=email,
            email=email,
            password=password,
            country_id=body.get("country_id"),
            confirmed=0 if is_sso else 1,
            first_name=names.get("first_name"),
            last_name=names.get("last_name"),
        )
        return self._create(new_user, is_sso)

    def _verify_google(self, token: str, email: str) -> None:
        if self.google_verifier is None:
            raise IdentityVerificationError("Google token verification failed")
        self.google_verifier.verify(token, email)

    def _login_existing(self, record: Mapping[str, Any], email: str, password: str, is_sso: bool) -> AccountResult:
        if is_sso:
            # The identity provider already authenticated this user
            context = UserContext(user_id=record.get("id"), email=record.get("email", email), is_sso=True)
            logger.info(f"SSO login for existing user {context.user_id}")
            return AccountResult(status=200, message="User login successful", context=context, user_exists=True)

        try:
            body = self.users.check_credentials(email, password)
        except CoreAPIClientError as exc:
            logger.error(f"Credential check failed: {exc}")
            raise UpstreamError("Unable to create user", result={"userExists": True}) from exc

        if body.get("status") != 200:
            raise AuthenticationFailure("User authentication failed", result={"userExists": True})

        user = body.get("data") or {}
        context = UserContext(user_id=user.get("id"), email=user.get("email", email))
        return AccountResult(status=200, message="User login successful", context=context, user_exists=True)

    def _create(self, new_user: NewUser, is_sso: bool) -> AccountResult:
        try:
            body = self.users.create_user(new_user)
        except CoreAPIClientError as exc:
            logger.error(f"User creation failed: {exc}")
            raise UpstreamError("Unable to create user", result={"userExists": False}) from exc

        created = body.get("data") or {}
        if body.get("status") != 201 or not created.get("id"):
            raise GatewayError(
                body.get("message") or "Unable to create user",
                status=body.get("status") or 500,
                result={"userExists": False},
            )

        context = UserContext(
            user_id=created["id"],
            email=new_user.email,
            is_sso=is_sso,
            just_registered=True,
        )
        logger.info(f"Created user {context.user_id} (sso={is_sso})")
        return AccountResult(status=201, message="User created successfully", context=context, user_exists=False)


def require_context(data: Optional[Mapping[str, Any]]) -> UserContext:
    """Return the logged-in user context or raise."""
    context = UserContext.from_session(data)
    if context is None or not context.logged_in:
        raise ValidationError("You must be logged in to access this resource")
    return context
