"""Input validation helpers for signup, login and provisioning requests."""
from __future__ import annotations
import re
from typing import Any, Iterable, List, Mapping, Tuple
from urllib.parse import urlsplit

from .errors import ValidationError

PASSWORD_MIN_LENGTH = 5
PASSWORD_MAX_LENGTH = 32

EMAIL_PATTERN = re.compile(
    r'^(([^<>()\[\]\\.,;:\s@"]+(\.[^<>()\[\]\\.,;:\s@"]+)*)|(".+"))'
    r"@((\[[0-9]{1,3}\.[0-9]{1,3}\.[0-9]{1,3}\.[0-9]{1,3}\])|(([a-zA-Z\-0-9]+\.)+[a-zA-Z]{2,}))$"
)


def get_missing_fields(required: Iterable[str], body: Mapping[str, Any], allow_empty: bool = False) -> List[str]:
    """Return the required fields that are absent (or empty unless allowed)."""
    missing = []
    for field in required:
        value = body.get(field)
        if field not in body or value is None or (not allow_empty and value == ""):
            missing.append(field)
    return missing


def require_fields(required: Iterable[str], body: Mapping[str, Any]) -> None:
    """Raise ValidationError listing every missing required field."""
    missing = get_missing_fields(required, body)
    if missing:
        raise ValidationError(f"Missing required field(s): {', '.join(missing)}")


def validate_email(email: str) -> str:
    """Validate email address.

    Args:
        email: Email address to validate

    Returns:
        Lowercased email address

    Raises:
        ValidationError: If email is invalid
    """
    email = str(email).strip().lower()
    if not EMAIL_PATTERN.match(email):
        raise ValidationError("Invalid email address provided")
    return email


def validate_password(password: str) -> str:
    """Password must be 5-32 characters long."""
    if not isinstance(password, str) or not PASSWORD_MIN_LENGTH <= len(password) <= PASSWORD_MAX_LENGTH:
        raise ValidationError("Invalid password")
    return password


def parse_origin_url(raw: str) -> Tuple[str, str]:
    """Parse an origin URL.

    Returns:
        (url without trailing slashes, scheme)

    Raises:
        ValidationError: If the value is not an absolute URL
    """
    value = str(raw).strip()
    try:
        parts = urlsplit(value)
    except ValueError:
        raise ValidationError("Unable to parse origin URL")

    if not parts.scheme or not parts.netloc:
        raise ValidationError("Unable to parse origin URL")

    return value.rstrip("/"), parts.scheme.lower()
