"""Health check endpoints."""
import logging

from flask import Blueprint, current_app

from signup_gateway.core.coreapi import CoreAPIClientError

bp = Blueprint("health", __name__)

logger = logging.getLogger(__name__)


@bp.route("/health")
def health_check():
    """Basic health check endpoint."""
    return ("ok", 200, {"Content-Type": "text/plain"})


@bp.route("/ready")
def readiness_check():
    """Ready once a CoreAPI access token is held.

    Without a token, the probe tries to fetch one so a worker whose startup
    prewarm failed becomes ready once the CoreAPI recovers.
    """
    client = current_app.extensions.get("coreapi")
    if client is None:
        return ("not ready", 503, {"Content-Type": "text/plain"})
    if not client.token_cache.has_token:
        try:
            client.token_cache.get_token()
        except CoreAPIClientError as exc:
            logger.warning(f"Readiness check could not obtain a CoreAPI token: {exc}")
            return ("not ready", 503, {"Content-Type": "text/plain"})
    return ("ready", 200, {"Content-Type": "text/plain"})
