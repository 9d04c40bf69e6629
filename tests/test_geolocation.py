import ipaddress
import json
from types import SimpleNamespace

import geoip2.database
import geoip2.errors
import maxminddb
import pytest
import redis

from dropshot.config import settings
from dropshot.core.exceptions import GeolocationError
from dropshot.security.blacklist import parse_blacklist
from dropshot.security.evaluator import BlacklistContext, allow
from dropshot.security.geofence import Geofence
from dropshot.security.geolocation import GeoLocator
from tests.conftest import StubResolver

X = ipaddress.ip_address("198.51.100.7")


class FakeReader:
    def __init__(self, latitude=36.17, longitude=-115.14, accuracy_radius=5):
        self.location = SimpleNamespace(
            latitude=latitude, longitude=longitude, accuracy_radius=accuracy_radius
        )
        self.lookups = 0
        self.closed = False

    def city(self, ip):
        self.lookups += 1
        return SimpleNamespace(location=self.location)

    def close(self):
        self.closed = True


class RaisingReader:
    def __init__(self, error):
        self.error = error

    def city(self, ip):
        raise self.error


class FakeCache:
    def __init__(self):
        self.values = {}

    def get(self, key):
        return self.values.get(key)

    def setex(self, key, ttl, value):
        self.values[key] = value


class BrokenCache:
    def get(self, key):
        raise redis.ConnectionError("redis is down")

    def setex(self, key, ttl, value):
        raise redis.ConnectionError("redis is down")


def test_locate_uses_accuracy_radius_in_meters():
    fence = GeoLocator(FakeReader()).locate(X)
    assert fence == Geofence(36.17, -115.14, 5000.0)


def test_locate_without_coordinates():
    with pytest.raises(GeolocationError):
        GeoLocator(FakeReader(latitude=None)).locate(X)


@pytest.mark.parametrize("error", [
    geoip2.errors.AddressNotFoundError("not found"),
    geoip2.errors.GeoIP2Error("lookup failed"),
    maxminddb.InvalidDatabaseError("The MaxMind DB file's search tree is corrupt"),
    ValueError("Attempt to read from a closed MaxMind DB."),
    OSError("read error"),
])
def test_reader_errors_become_geolocation_errors(error):
    with pytest.raises(GeolocationError):
        GeoLocator(RaisingReader(error)).locate(X)


def test_corrupt_database_denies_request():
    reader = RaisingReader(maxminddb.InvalidDatabaseError("search tree is corrupt"))
    context = BlacklistContext(geolocator=GeoLocator(reader), resolver=StubResolver())

    assert allow(parse_blacklist("!@ 0, 0 (1m)"), X, context) is False


def test_locations_are_cached():
    reader = FakeReader()
    cache = FakeCache()
    locator = GeoLocator(reader, cache=cache, cache_ttl=60)

    first = locator.locate(X)
    second = locator.locate(X)

    assert first == second
    assert reader.lookups == 1
    assert json.loads(cache.values["geo:198.51.100.7"])["radius"] == 5000.0


def test_cache_errors_fall_back_to_reader():
    reader = FakeReader()
    locator = GeoLocator(reader, cache=BrokenCache())

    assert locator.locate(X).radius == 5000.0
    assert reader.lookups == 1


def test_from_settings_without_database(monkeypatch):
    monkeypatch.setattr(settings, "geo_db", None)
    assert GeoLocator.from_settings() is None


def test_from_settings_with_cache(monkeypatch):
    reader = FakeReader()
    connections = []
    monkeypatch.setattr(settings, "geo_db", "/data/GeoLite2-City.mmdb")
    monkeypatch.setattr(settings, "geo_cache_enabled", True)
    monkeypatch.setattr(settings, "geo_cache_ttl", 120)
    monkeypatch.setattr(geoip2.database, "Reader", lambda path: reader)
    monkeypatch.setattr(redis, "from_url", lambda url, **kwargs: connections.append(url) or FakeCache())

    locator = GeoLocator.from_settings()

    assert locator.reader is reader
    assert isinstance(locator.cache, FakeCache)
    assert locator.cache_ttl == 120
    assert connections == [settings.redis_url]

    locator.close()
    assert reader.closed


def test_from_settings_unreadable_database(monkeypatch, tmp_path):
    monkeypatch.setattr(settings, "geo_db", str(tmp_path / "missing.mmdb"))
    assert GeoLocator.from_settings() is None
