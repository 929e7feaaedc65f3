"""Tests for the GeoIP country lookup wrapper."""
from unittest.mock import MagicMock

import geoip2.database
from geoip2.errors import AddressNotFoundError

from signup_gateway.core.geoip import GeoIPLookup


def make_reader(iso_code="NO"):
    reader = MagicMock(spec=geoip2.database.Reader)
    reader.country.return_value.country.iso_code = iso_code
    return reader


def test_lookup_returns_iso_code():
    reader = make_reader("NO")
    lookup = GeoIPLookup(reader=reader)

    assert lookup.loaded
    assert lookup.country_code("84.208.0.1") == "NO"
    reader.country.assert_called_once_with("84.208.0.1")


def test_unknown_address_returns_none():
    reader = make_reader()
    reader.country.side_effect = AddressNotFoundError("not found")

    assert GeoIPLookup(reader=reader).country_code("10.0.0.1") is None


def test_malformed_address_returns_none():
    reader = make_reader()
    reader.country.side_effect = ValueError("'nope' does not appear to be an IPv4 or IPv6 address")

    assert GeoIPLookup(reader=reader).country_code("nope") is None


def test_without_database_lookups_return_none():
    lookup = GeoIPLookup()

    assert not lookup.loaded
    assert lookup.country_code("84.208.0.1") is None


def test_missing_database_file_is_not_fatal(tmp_path):
    lookup = GeoIPLookup(str(tmp_path / "missing.mmdb"))

    assert not lookup.loaded


def test_close_releases_reader():
    reader = make_reader()
    lookup = GeoIPLookup(reader=reader)

    lookup.close()

    reader.close.assert_called_once()
    assert not lookup.loaded
