"""Control panel API (/api/v1/coreapi/*).

Every route answers with the front-end envelope:

    {"success": bool, "status": int, "message": str | None, "result": {...}}

and the HTTP status mirrors ``status``. ``/checkemail`` is the only exception
(``{"exists": bool}``).

Session keys:
    user_context          logged-in user (see core.account_service.UserContext)
    github_user_details   GitHub profile left by the OAuth callback
    github_token          GitHub access token left by the OAuth callback
"""

from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional

from flask import Blueprint, current_app, jsonify, request, session

from signup_gateway.core.account_service import AccountService, UserContext, require_context
from signup_gateway.core.coreapi import (
    CoreAPIClientError,
    CountryNotFoundError,
    ImageEngineService,
    UserService,
    WelcomeEmail,
)
from signup_gateway.core.errors import GatewayError, ProvisioningError, ValidationError
from signup_gateway.core.provisioning_pipeline import ProvisioningPipeline, ProvisioningRequest

bp = Blueprint("coreapi", __name__, url_prefix="/api/v1/coreapi")

logger = logging.getLogger(__name__)

SESSION_USER_CONTEXT = "user_context"
SESSION_GITHUB_PROFILE = "github_user_details"
SESSION_GITHUB_TOKEN = "github_token"

DEFAULT_COUNTRY = {
    "countryName": "Unknown",
    "countryCode": "US",
    "countryID": 230,
}


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────

def _envelope(success: bool, status: int, message: Optional[str] = None, result: Optional[Dict[str, Any]] = None):
    return jsonify({
        "success": success,
        "status": status,
        "message": message,
        "result": result if result is not None else {},
    }), status


def _json_body() -> Dict[str, Any]:
    body = request.get_json(silent=True)
    return body if isinstance(body, dict) else {}


def _user_service() -> UserService:
    return UserService(current_app.extensions["coreapi"])


def _imageengine_service() -> ImageEngineService:
    return ImageEngineService(current_app.extensions["coreapi"])


def _account_service() -> AccountService:
    return AccountService(_user_service(), current_app.extensions.get("google_verifier"))


# ─────────────────────────────────────────────────────────────────────────────
# Accounts
# ─────────────────────────────────────────────────────────────────────────────

@bp.route("/checkemail/<path:email>", methods=["GET"])
def check_email(email: str):
    """Whether an account already uses this email."""
    exists = _user_service().email_exists(email.lower())
    return jsonify({"exists": exists})


@bp.route("/login", methods=["POST"])
def login():
    if session.get(SESSION_USER_CONTEXT):
        raise ValidationError("You must logout to access this resource")

    body = _json_body()
    outcome = _account_service().login(body.get("email"), body.get("password"))
    session[SESSION_USER_CONTEXT] = outcome.context.to_session()
    return jsonify(outcome.to_envelope()), outcome.status


@bp.route("/logout", methods=["GET"])
def logout():
    try:
        session.clear()
    except Exception as exc:
        logger.warning(f"Session destroy failed: {exc}")
        return _envelope(False, 400, "Logout failed")
    return _envelope(True, 200, "Logged out successful")


@bp.route("/user", methods=["POST"])
def create_user():
    """Create an account (password, Google or GitHub) or log in an existing one.

    Request (password):
        {"email": "...", "password": "...", "country_id": 230}
    Request (Google):
        {"email": "...", "google_token": "<ID token>", "first_name": "...", "last_name": "..."}
    Request (GitHub, after the OAuth callback):
        {"github": true, "country_id": 230}

    Response 201:
        {"success": true, "status": 201, "message": "User created successfully",
         "result": {"userExists": false, "user_id": 12345, "email": "..."}}
    """
    # Creating an account always drops the current login
    session.pop(SESSION_USER_CONTEXT, None)

    body = _json_body()
    outcome = _account_service().register(
        body,
        github_profile=session.get(SESSION_GITHUB_PROFILE),
        github_token=session.get(SESSION_GITHUB_TOKEN),
    )
    session[SESSION_USER_CONTEXT] = outcome.context.to_session()
    return jsonify(outcome.to_envelope()), outcome.status


# ─────────────────────────────────────────────────────────────────────────────
# Location
# ─────────────────────────────────────────────────────────────────────────────

@bp.route("/location", methods=["GET"])
def location():
    """Country of the caller, for pre-filling the signup form."""
    lookup = current_app.extensions.get("geoip")
    iso_code = lookup.country_code(request.remote_addr) if lookup is not None else None
    if not iso_code:
        return _envelope(False, 400, None, dict(DEFAULT_COUNTRY))

    try:
        country = _user_service().get_country(iso_code)
    except (CountryNotFoundError, CoreAPIClientError) as exc:
        logger.warning(f"Country lookup failed for {iso_code}: {exc}")
        return _envelope(False, 400, None, dict(DEFAULT_COUNTRY))

    return _envelope(True, 200, None, {
        "countryName": country.get("name"),
        "countryCode": country.get("code"),
        "countryID": country.get("country_id"),
    })


# ─────────────────────────────────────────────────────────────────────────────
# ImageEngine
# ─────────────────────────────────────────────────────────────────────────────

def _mark_password_reset_sent(context: UserContext, completed_steps: List[str]) -> None:
    # The reset email goes out once per new SSO account, even if a later step fails
    if "password_reset" in completed_steps:
        context.just_registered = False
        session[SESSION_USER_CONTEXT] = context.to_session()


@bp.route("/imageengine", methods=["POST"])
def create_imageengine_subscription():
    """Provision an ImageEngine subscription for the logged-in user.

    Request:
        {"accountName": "...", "origin": "https://example.com/", "demoID": "...",
         "domain": "...", "campaignName": "...", "queryString": "utm_source=..."}
    """
    context = require_context(session.get(SESSION_USER_CONTEXT))
    provisioning_request = ProvisioningRequest.from_body(_json_body(), context.user_id)

    send_password_reset = context.is_sso and context.just_registered
    pipeline = ProvisioningPipeline(_imageengine_service(), _user_service())
    try:
        result = pipeline.run(provisioning_request, send_password_reset=send_password_reset)
    except ProvisioningError as exc:
        _mark_password_reset_sent(context, exc.completed_steps)
        raise
    _mark_password_reset_sent(context, pipeline.completed_steps)

    return _envelope(result.success, result.status, result.message, result.to_result())


@bp.route("/send-welcome-email", methods=["POST"])
def send_welcome_email():
    require_context(session.get(SESSION_USER_CONTEXT))
    body = _json_body()

    email = WelcomeEmail(
        subscription_id=body.get("subscription_id"),
        user_id=body.get("user_id"),
        website=body.get("website"),
        demo_id=body.get("demo_id"),
        current_cms=body.get("currentCMS"),
        delivery_address=body.get("delivery_address"),
        country=body.get("country"),
    )
    try:
        response = _imageengine_service().send_welcome_email(email)
    except CoreAPIClientError as exc:
        logger.error(f"Unable to send welcome email: {exc}")
        raise GatewayError("Unable to send welcome email", status=400) from exc

    return _envelope(True, 200, "Sent welcome email.", response)
