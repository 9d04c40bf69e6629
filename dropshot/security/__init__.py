from dropshot.security.geofence import Geofence, SetIntersection
from dropshot.security.blacklist import Blacklist, Rule, parse_blacklist, parse_rule
from dropshot.security.dns_resolver import DNSResolver
from dropshot.security.evaluator import BlacklistContext, allow
from dropshot.security.geolocation import GeoLocator
from dropshot.security.ip_databases import IntervalSet, IPDatabases
from dropshot.security.remote_addr import real_remote_ip

__all__ = [
    "Geofence",
    "SetIntersection",
    "Blacklist",
    "Rule",
    "parse_blacklist",
    "parse_rule",
    "DNSResolver",
    "BlacklistContext",
    "allow",
    "GeoLocator",
    "IntervalSet",
    "IPDatabases",
    "real_remote_ip",
]
