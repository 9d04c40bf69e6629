import ipaddress

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from dropshot.core.database import Base
from dropshot.core.exceptions import GeolocationError
from dropshot.models.entry import Entry
from dropshot.security.evaluator import BlacklistContext
from dropshot.security.geofence import Geofence
from dropshot.services.entry_store import EntryStore


class StubResolver:
    def __init__(self, names=None, addresses=None):
        self.names = names or {}
        self.addresses = addresses or {}
        self.reverse_calls = 0

    def lookup_names(self, ip):
        self.reverse_calls += 1
        return self.names.get(str(ip), [])

    def lookup_addresses(self, hostname):
        return [ipaddress.ip_address(a) for a in self.addresses.get(hostname, [])]


class StubGeolocator:
    def __init__(self, locations=None):
        self.locations = locations or {}
        self.calls = 0

    def locate(self, ip):
        self.calls += 1
        location = self.locations.get(str(ip))
        if location is None:
            raise GeolocationError(f"address {ip} not in database")
        return location


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)
    engine.dispose()


@pytest.fixture
def store(session_factory):
    return EntryStore(session_factory)


@pytest.fixture
def resolver():
    return StubResolver()


@pytest.fixture
def geolocator():
    return StubGeolocator({
        "198.51.100.7": Geofence(36.17, -115.14, 5000.0),
        "203.0.113.9": Geofence(37.7749, -122.4194, 1000.0),
    })


@pytest.fixture
def context(geolocator, resolver):
    return BlacklistContext(geolocator=geolocator, databases=None, resolver=resolver)


@pytest.fixture
def make_entry(store):
    def make(name, **fields):
        values = {
            "url": "https://example.com/" + name,
            "redirect": True,
            "filename": "",
            "content_type": "",
            "owner_token": "",
            "access_blacklist": "",
            "access_redirect_on_deny": "",
            "access_blacklist_count": 0,
            "access_expire": False,
            "access_expire_count": 0,
            "access_count": 0,
            "access_train": False,
        }
        values.update(fields)
        return store.update(Entry(name=name, **values))

    return make
