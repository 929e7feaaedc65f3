"""Tests for request validation helpers."""
import pytest

from signup_gateway.core.errors import ValidationError
from signup_gateway.core.validators import (
    get_missing_fields,
    parse_origin_url,
    require_fields,
    validate_email,
    validate_password,
)


@pytest.mark.parametrize("length", [5, 6, 31, 32])
def test_password_length_accepted(length):
    assert validate_password("p" * length) == "p" * length


@pytest.mark.parametrize("length", [0, 4, 33, 64])
def test_password_length_rejected(length):
    with pytest.raises(ValidationError, match="Invalid password"):
        validate_password("p" * length)


def test_password_must_be_string():
    with pytest.raises(ValidationError):
        validate_password(123456)


@pytest.mark.parametrize("email", ["Alice@Example.COM", " bob.smith@mail.example.org ", "x+tag@sub.example.io"])
def test_valid_emails_are_lowercased(email):
    assert validate_email(email) == email.strip().lower()


@pytest.mark.parametrize("email", ["", "alice", "alice@", "@example.com", "alice@example", "a b@example.com"])
def test_invalid_emails_rejected(email):
    with pytest.raises(ValidationError, match="Invalid email address provided"):
        validate_email(email)


def test_missing_fields_treat_empty_as_missing():
    body = {"email": "", "password": "secret"}
    assert get_missing_fields(["email", "password", "country_id"], body) == ["email", "country_id"]
    assert get_missing_fields(["email", "password"], body, allow_empty=True) == []


def test_require_fields_lists_all_missing():
    with pytest.raises(ValidationError) as excinfo:
        require_fields(["email", "password"], {})
    assert excinfo.value.message == "Missing required field(s): email, password"
    assert excinfo.value.status == 400


def test_parse_origin_url():
    assert parse_origin_url("HTTP://example.com/images///") == ("HTTP://example.com/images", "http")
