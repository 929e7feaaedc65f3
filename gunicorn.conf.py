"""Gunicorn configuration for the signup gateway.

Usage:
    gunicorn -c gunicorn.conf.py

Every worker builds its own app (and TokenCache) after fork. Workers share the
CoreAPI token through the on-disk cache file, so only the first worker to start
with an empty or expired cache requests a new token.
"""
import os

wsgi_app = "signup_gateway.flask_app:create_app()"

bind = os.environ.get("GUNICORN_BIND", "0.0.0.0:5000")
workers = int(os.environ.get("GUNICORN_WORKERS", "2"))
threads = int(os.environ.get("GUNICORN_THREADS", "4"))
timeout = int(os.environ.get("GUNICORN_TIMEOUT", "60"))
loglevel = os.environ.get("LOG_LEVEL", "info").lower()
accesslog = "-"


def post_fork(server, worker):
    """
    Called just after a worker has been forked.

    Reports where secrets will be read from; settings.py does the loading.
    """
    from pathlib import Path
    secrets_dir = Path("/run/secrets")
    if secrets_dir.exists() and secrets_dir.is_dir():
        secret_files = list(secrets_dir.glob("*"))
        if secret_files:
            worker.log.info(f"Found {len(secret_files)} secrets in /run/secrets")
            return
    worker.log.info("No Docker secrets mounted; using environment and .env")
