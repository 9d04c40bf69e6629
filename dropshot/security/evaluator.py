import ipaddress
from dataclasses import dataclass, field
from typing import Optional, Union

from dropshot.core.exceptions import DatabaseLookupError, GeolocationError
from dropshot.core.logger import logger
from dropshot.security.blacklist import Blacklist, IPAddress
from dropshot.security.dns_resolver import DNSResolver
from dropshot.security.geofence import Geofence


@dataclass
class BlacklistContext:
    """External data needed by some rule types.

    ``geolocator`` answers geofence rules, ``databases`` answers ``db`` rules
    and ``resolver`` answers hostname rules.
    """

    geolocator: Optional[object] = None
    databases: Optional[object] = None
    resolver: DNSResolver = field(default_factory=DNSResolver)


class BlacklistScan:
    def __init__(self, context: BlacklistContext):
        self.context = context
        self.resolver = context.resolver
        self._location: Optional[Geofence] = None

    def requester_location(self, ip: IPAddress) -> Geofence:
        if self._location is None:
            if self.context.geolocator is None:
                raise GeolocationError("no geolocation database provided")
            self._location = self.context.geolocator.locate(ip)
        return self._location

    def database_contains(self, name: str, ip: IPAddress) -> bool:
        if self.context.databases is None:
            raise DatabaseLookupError(f"database {name!r} not provided")
        return self.context.databases.contains(name, ip)


def normalize_ip(ip: Union[str, IPAddress]) -> IPAddress:
    address = ipaddress.ip_address(ip) if isinstance(ip, str) else ip
    if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped is not None:
        return address.ipv4_mapped
    return address


def allow(blacklist: Blacklist, ip: Union[str, IPAddress], context: BlacklistContext) -> bool:
    """Decide whether the blacklist permits ``ip``.

    Every rule is checked in order and the last matching rule decides:
    a plain rule denies, a negated rule allows. Geofence and database rules
    deny the whole request when their lookup fails.
    """
    ip = normalize_ip(ip)
    scan = BlacklistScan(context)
    allowed = True

    for rule in blacklist:
        try:
            matched = rule.matches(ip, scan)
        except GeolocationError as e:
            logger.warning("blacklist_geofence_denied", ip=str(ip), error=str(e))
            return False
        except DatabaseLookupError as e:
            logger.warning("blacklist_database_denied", ip=str(ip), error=str(e))
            return False

        if matched:
            allowed = rule.negated

    return allowed
