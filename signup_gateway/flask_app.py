"""Flask application factory and bootstrap.

This module provides the create_app() factory function for initializing
the Flask application with blueprints, server-side sessions, the shared
CoreAPI client and the SSO/GeoIP helpers.

Run with gunicorn:
    gunicorn -c gunicorn.conf.py "signup_gateway.flask_app:create_app()"
"""
from __future__ import annotations
import logging
import os
from typing import Optional

from flask import Flask
from flask_session import Session
from werkzeug.middleware.proxy_fix import ProxyFix

from signup_gateway.config import AppConfig, load_settings
from signup_gateway.core.coreapi import CoreAPIClient, CoreAPIClientError, Credentials, TokenCache
from signup_gateway.core.geoip import GeoIPLookup
from signup_gateway.core.identity import GoogleTokenVerifier

logger = logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────────────────────
# Application Factory
# ─────────────────────────────────────────────────────────────────────────────
def create_app(cfg: Optional[AppConfig] = None, prewarm_token: bool = True) -> Flask:
    """Create and configure Flask application."""
    if cfg is None:
        cfg = load_settings()

    logging.basicConfig(
        level=getattr(logging, cfg.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    app = Flask(__name__)

    # Store config for easy access in routes
    app.config["APP_CONFIG"] = cfg
    app.config["DEMO_MODE"] = cfg.demo_mode

    # Flask session configuration
    app.config["SECRET_KEY"] = cfg.secret_key
    app.config["SESSION_TYPE"] = cfg.session_driver
    if app.config["SESSION_TYPE"] == "filesystem":
        os.makedirs(cfg.session_storage_path, exist_ok=True)
        app.config["SESSION_FILE_DIR"] = cfg.session_storage_path

    app.config["SESSION_COOKIE_HTTPONLY"] = True
    app.config["SESSION_COOKIE_SAMESITE"] = "Lax"
    app.config["SESSION_COOKIE_SECURE"] = cfg.session_cookie_secure

    # Initialize session
    Session(app)

    # Trust X-Forwarded-* headers from the reverse proxy (client IP for /location)
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1)  # type: ignore

    _init_services(app, cfg)

    # Register blueprints
    from signup_gateway.api import coreapi, errors, health

    app.register_blueprint(coreapi.bp)
    app.register_blueprint(health.bp)

    # Register error handlers
    errors.register_error_handlers(app)

    if prewarm_token:
        _prewarm_token(app)

    mode_label = "DEMO" if cfg.demo_mode else "PRODUCTION"
    print(f"[flask_app] Mode={mode_label}")
    print("[flask_app] Control panel API registered at /api/v1/coreapi")

    if cfg.demo_mode:
        print("[flask_app] WARNING: Demo mode active - do not deploy with demo credentials")

    return app


def _init_services(app: Flask, cfg: AppConfig) -> None:
    """Attach the process-wide CoreAPI client and SSO/GeoIP helpers."""
    token_cache = TokenCache(
        Credentials(
            api_url=cfg.coreapi_url,
            client_id=cfg.coreapi_client_id,
            client_secret=cfg.coreapi_secret,
            scopes=cfg.coreapi_scope,
        ),
        cache_dir=cfg.coreapi_cache_dir,
    )
    app.extensions["coreapi"] = CoreAPIClient(token_cache)
    app.extensions["google_verifier"] = GoogleTokenVerifier(cfg.google_client_id)
    app.extensions["geoip"] = GeoIPLookup(cfg.geoip2_database or None)


def _prewarm_token(app: Flask) -> None:
    """Obtain the CoreAPI token at startup; failures are retried on first use."""
    try:
        app.extensions["coreapi"].token_cache.get_token()
        logger.info("CoreAPI access token ready")
    except CoreAPIClientError as exc:
        logger.error(f"Unable to obtain CoreAPI access token at startup: {exc}")


if __name__ == "__main__":
    create_app().run(host="0.0.0.0", port=5000, debug=True)
