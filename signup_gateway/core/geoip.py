"""Country lookup for client IP addresses (MaxMind GeoIP2 / GeoLite2 database)."""
from __future__ import annotations
import logging
from typing import Optional

import geoip2.database
import maxminddb
from geoip2.errors import AddressNotFoundError

logger = logging.getLogger(__name__)


class GeoIPLookup:
    """Resolve an IP address to an ISO country code.

    Lookups return None when no database is loaded, the address is not in the
    database, or the address is malformed.
    """

    def __init__(self, database_path: Optional[str] = None, reader: Optional[geoip2.database.Reader] = None):
        self._reader = reader
        if reader is None and database_path:
            try:
                self._reader = geoip2.database.Reader(database_path)
                logger.info(f"Loaded GeoIP database: {database_path}")
            except (OSError, maxminddb.InvalidDatabaseError) as exc:
                logger.error(f"Unable to load GeoIP database {database_path}: {exc}")
        elif reader is None:
            logger.warning("GeoIP module not loaded, please check the env var GEOIP2_DATABASE")

    @property
    def loaded(self) -> bool:
        return self._reader is not None

    def country_code(self, ip_address: Optional[str]) -> Optional[str]:
        if self._reader is None or not ip_address:
            return None
        try:
            return self._reader.country(ip_address).country.iso_code
        except AddressNotFoundError:
            return None
        except ValueError as exc:
            logger.warning(f"GeoIP lookup rejected address {ip_address}: {exc}")
            return None

    def close(self) -> None:
        if self._reader is not None:
            self._reader.close()
            self._reader = None
