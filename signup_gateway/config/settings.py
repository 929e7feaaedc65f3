"""Settings loader with environment variable, .env and Docker secrets integration."""
from __future__ import annotations
import os
import secrets
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

SECRETS_DIR = Path("/run/secrets")

# Variables a production deployment must provide
REQUIRED_VARS = [
    "SITE_URL",
    "COREAPI_URL",
    "COREAPI_CLIENT_ID",
    "COREAPI_SECRET",
    "COREAPI_SCOPE",
    "GOOGLE_CLIENT_ID",
    "GOOGLE_CLIENT_SECRET",
    "GITHUB_CLIENT_ID",
    "GITHUB_CLIENT_SECRET",
]

DEMO_DEFAULTS = {
    "SITE_URL": "http://localhost:5000",
    "COREAPI_URL": "http://127.0.0.1:8000",
    "COREAPI_CLIENT_ID": "demo-client",
    "COREAPI_SECRET": "demo-secret",
    "COREAPI_SCOPE": "users subscriptions",
    "GOOGLE_CLIENT_ID": "demo.apps.googleusercontent.com",
    "GOOGLE_CLIENT_SECRET": "demo-google-secret",
    "GITHUB_CLIENT_ID": "demo-github-client",
    "GITHUB_CLIENT_SECRET": "demo-github-secret",
}


def _load_secret_from_file(secret_name: str, env_var: str | None = None) -> str | None:
    """
    Load secret from /run/secrets (Docker secrets pattern).

    Priority:
    1. /run/secrets/{secret_name} (Docker secrets mount)
    2. Environment variable (fallback)

    Returns:
        Secret value or None if not found
    """
    secret_file = SECRETS_DIR / secret_name

    if secret_file.exists() and secret_file.is_file():
        try:
            secret_value = secret_file.read_text().strip()
            if secret_value:
                print(f"[settings] ✓ Loaded {secret_name} from /run/secrets")
                return secret_value
        except OSError as e:
            print(f"[settings] ✗ Failed to read /run/secrets/{secret_name}: {e}")

    if env_var:
        secret_value = os.getenv(env_var)
        if secret_value:
            return secret_value

    return None


def _get_or_generate(var_name: str, demo_default: Optional[str] = None, required: bool = True, demo_mode: bool = False) -> str:
    """Get a variable from /run/secrets or the environment, else use the demo default."""
    value = _load_secret_from_file(var_name.lower(), var_name)
    if value:
        return value

    if demo_mode and demo_default is not None:
        print(f"[demo-mode] Using default for {var_name}")
        os.environ[var_name] = demo_default
        return demo_default

    if not required:
        return ""

    raise RuntimeError(f"Environment variable {var_name} is required in production mode.")


def _env_flag(var_name: str, default: bool) -> bool:
    raw = os.environ.get(var_name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class AppConfig:
    """Application configuration container."""
    # Mode
    demo_mode: bool

    # Flask
    secret_key: str
    site_url: str = ""
    session_cookie_secure: bool = True
    session_driver: str = "filesystem"
    session_storage_path: str = ""
    log_level: str = "INFO"

    # CoreAPI (client-credentials)
    coreapi_url: str = ""
    coreapi_client_id: str = ""
    coreapi_secret: str = ""
    coreapi_scope: str = ""
    coreapi_cache_dir: str = ""

    # SSO
    google_client_id: str = ""
    google_client_secret: str = ""
    github_client_id: str = ""
    github_client_secret: str = ""

    # GeoIP2 country database (optional)
    geoip2_database: str = ""


def load_settings(env_file: str | None = None) -> AppConfig:
    """Load application settings from /run/secrets, the environment and .env.

    Values already present in the environment win over the .env file.
    """
    load_dotenv(env_file, override=False)

    demo_mode = _env_flag("DEMO_MODE", False)

    # ─────────────────────────────────────────────────────────────────────────
    # Flask secret key
    # ─────────────────────────────────────────────────────────────────────────
    secret_key = _load_secret_from_file("app_secret", "APP_SECRET")
    if not secret_key:
        if demo_mode:
            secret_key = secrets.token_urlsafe(48)
            os.environ["APP_SECRET"] = secret_key
            print("[demo-mode] Generated temporary APP_SECRET")
        else:
            raise RuntimeError("APP_SECRET not found in /run/secrets or environment")

    # ─────────────────────────────────────────────────────────────────────────
    # Required variables (all reported at once)
    # ─────────────────────────────────────────────────────────────────────────
    values = {}
    missing = []
    for var_name in REQUIRED_VARS:
        try:
            values[var_name] = _get_or_generate(var_name, DEMO_DEFAULTS.get(var_name), demo_mode=demo_mode)
        except RuntimeError:
            missing.append(var_name)
    if missing:
        raise RuntimeError(f"Missing required environment variable(s): {', '.join(missing)}")

    # Comma or space separated in the environment, space delimited on the wire
    coreapi_scope = " ".join(values["COREAPI_SCOPE"].replace(",", " ").split())

    coreapi_cache_dir = os.environ.get("COREAPI_CACHE_DIR") or tempfile.gettempdir()
    session_storage_path = os.environ.get("SESSION_STORAGE_PATH") or str(
        Path(tempfile.gettempdir()) / "signup-gateway-sessions"
    )

    session_cookie_secure = _env_flag("FLASK_SESSION_COOKIE_SECURE", not demo_mode)
    log_level = os.environ.get("LOG_LEVEL", "INFO").strip().upper() or "INFO"

    geoip2_database = os.environ.get("GEOIP2_DATABASE", "")
    if not geoip2_database:
        print("[settings] GEOIP2_DATABASE not set; /location will return the default country")

    mode_label = "DEMO" if demo_mode else "PRODUCTION"
    print(f"[settings] Mode={mode_label}; coreapi={values['COREAPI_URL']}; client_id={values['COREAPI_CLIENT_ID']}")

    if demo_mode:
        print("[settings] WARNING: Demo credentials in use. Do not deploy with these defaults.")

    return AppConfig(
        demo_mode=demo_mode,
        secret_key=secret_key,
        site_url=values["SITE_URL"],
        session_cookie_secure=session_cookie_secure,
        session_driver=os.environ.get("SESSION_DRIVER", "filesystem"),
        session_storage_path=session_storage_path,
        log_level=log_level,
        coreapi_url=values["COREAPI_URL"],
        coreapi_client_id=values["COREAPI_CLIENT_ID"],
        coreapi_secret=values["COREAPI_SECRET"],
        coreapi_scope=coreapi_scope,
        coreapi_cache_dir=coreapi_cache_dir,
        google_client_id=values["GOOGLE_CLIENT_ID"],
        google_client_secret=values["GOOGLE_CLIENT_SECRET"],
        github_client_id=values["GITHUB_CLIENT_ID"],
        github_client_secret=values["GITHUB_CLIENT_SECRET"],
        geoip2_database=geoip2_database,
    )
