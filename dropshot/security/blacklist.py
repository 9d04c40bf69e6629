"""Blacklist rules and the line-oriented text format they are stored in.

One rule per line::

    # comment
    *                       every address
    !203.0.113.0/24         negated network
    198.51.100.7            single address
    example.com             hostname (forward and reverse DNS)
    ~\\.example\\.net$        reverse DNS hostname pattern
    @ 36.17, -115.14 (2km)  geofence, radius defaults to 25m
    db cloudflare           named IP range database

Parsing never fails: a line that cannot be understood becomes a
CommentRule whose comment starts with ``Error:``.
"""

import ipaddress
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import ClassVar, Iterable, Iterator, Union

from dropshot.security.geofence import Geofence, SetIntersection

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]
IPNetwork = Union[ipaddress.IPv4Network, ipaddress.IPv6Network]

GEOFENCE_PATTERN = re.compile(
    r"^([-+]?[0-9]*\.?[0-9]+)[^-+0-9]+([-+]?[0-9]*\.?[0-9]+)"
    r"(?:[^0-9]+([0-9]*\.?[0-9]+)([A-Za-z]*)[^0-9]*)?$"
)
GEOFENCE_UNITS = {
    "": 1.0,
    "m": 1.0,
    "km": 1000.0,
    "mi": 1609.0,
    "ft": 1609.0 / 5280.0,
}
DEFAULT_GEOFENCE_RADIUS = 25.0

COMMENT_START = re.compile(r"(?<!\\)#")
HEADER = re.compile(r"^\s*#\s*(Empty blacklist|Blacklist with \d+ items?)\s*$")


def _format_float(value: float) -> str:
    text = repr(float(value))
    if "e" in text or "E" in text:
        text = format(Decimal(text), "f")
    if text.endswith(".0"):
        text = text[:-2]
    return text


def _escape(value: str) -> str:
    return value.replace("#", "\\#")


@dataclass(frozen=True, kw_only=True)
class Rule(ABC):
    negated: bool = False
    comment: str = ""

    # whether the rule can ever match an address
    matchable: ClassVar[bool] = True

    @abstractmethod
    def matches(self, ip: IPAddress, scan) -> bool:
        pass

    @abstractmethod
    def payload(self) -> str:
        pass

    def to_text(self) -> str:
        value = ("!" if self.negated else "") + self.payload()
        if self.comment:
            value += " # " + self.comment
        return value


@dataclass(frozen=True, kw_only=True)
class WildcardRule(Rule):
    def matches(self, ip, scan) -> bool:
        return True

    def payload(self) -> str:
        return "*"


@dataclass(frozen=True)
class NetworkRule(Rule):
    network: IPNetwork

    def matches(self, ip, scan) -> bool:
        return ip in self.network

    def payload(self) -> str:
        return str(self.network)


@dataclass(frozen=True)
class SingleIPRule(Rule):
    ip: IPAddress

    def matches(self, ip, scan) -> bool:
        return ip == self.ip

    def payload(self) -> str:
        return str(self.ip)


@dataclass(frozen=True)
class HostnameRule(Rule):
    hostname: str

    def matches(self, ip, scan) -> bool:
        for name in scan.resolver.lookup_names(ip):
            if name == self.hostname:
                return True

        for address in scan.resolver.lookup_addresses(self.hostname):
            if address == ip:
                return True

        return False

    def payload(self) -> str:
        return _escape(self.hostname)


@dataclass(frozen=True)
class HostnamePatternRule(Rule):
    pattern: str

    def matches(self, ip, scan) -> bool:
        regex = re.compile(self.pattern)
        return any(regex.search(name) for name in scan.resolver.lookup_names(ip))

    def payload(self) -> str:
        return "~" + _escape(self.pattern)


@dataclass(frozen=True)
class GeofenceRule(Rule):
    geofence: Geofence

    def matches(self, ip, scan) -> bool:
        user = scan.requester_location(ip)
        relation = self.geofence.intersection(user)
        if self.negated:
            # whitelisted only when the requester lies entirely inside
            return bool(relation & SetIntersection.SUPERSET)
        return not relation & SetIntersection.DISJOINT

    def payload(self) -> str:
        fence = self.geofence
        return (
            f"@ {_format_float(fence.latitude)}, {_format_float(fence.longitude)} "
            f"({_format_float(fence.radius)}m)"
        )


@dataclass(frozen=True)
class DatabaseRule(Rule):
    database: str

    def matches(self, ip, scan) -> bool:
        return scan.database_contains(self.database, ip)

    def payload(self) -> str:
        return "db " + self.database


@dataclass(frozen=True, kw_only=True)
class CommentRule(Rule):
    matchable: ClassVar[bool] = False

    def matches(self, ip, scan) -> bool:
        return False

    def payload(self) -> str:
        return ""

    def to_text(self) -> str:
        return "# " + self.comment if self.comment else "#"


@dataclass
class Blacklist:
    """Ordered rule list. Order matters: the last matching rule decides."""

    rules: list[Rule] = field(default_factory=list)

    def __iter__(self) -> Iterator[Rule]:
        return iter(self.rules)

    def __len__(self) -> int:
        return len(self.rules)

    def add(self, rule: Rule) -> None:
        self.rules.append(rule)

    def extend(self, rules: Iterable[Rule]) -> None:
        self.rules.extend(rules)

    @property
    def item_count(self) -> int:
        return sum(1 for rule in self.rules if rule.matchable)

    def to_text(self) -> str:
        count = self.item_count
        if count == 0:
            header = "# Empty blacklist"
        elif count == 1:
            header = "# Blacklist with 1 item"
        else:
            header = f"# Blacklist with {count} items"

        return "\n".join([header] + [rule.to_text() for rule in self.rules])

    def __str__(self) -> str:
        return self.to_text()


def _error(line: str, message: str) -> CommentRule:
    return CommentRule(comment=f"Error: {line}: {message}")


def _split_comment(line: str) -> tuple[str, str]:
    match = COMMENT_START.search(line)
    if match is None:
        return line.replace("\\#", "#"), ""
    return line[:match.start()].replace("\\#", "#"), line[match.end():].strip()


def _parse_geofence(line: str, negated: bool, comment: str) -> Rule:
    matches = GEOFENCE_PATTERN.match(line)
    if matches is None:
        return _error(line, "invalid format: must be <lat>, <lng> (<radius><unit>)?")

    lat_text, lng_text, radius_text, units = matches.groups()
    units = (units or "").lower()

    try:
        latitude = float(lat_text)
    except ValueError as e:
        return _error(line, f"could not parse latitude: {e}")

    try:
        longitude = float(lng_text)
    except ValueError as e:
        return _error(line, f"could not parse longitude: {e}")

    radius = DEFAULT_GEOFENCE_RADIUS
    if radius_text:
        try:
            radius = float(radius_text)
        except ValueError as e:
            return _error(line, f"could not parse radius: {e}")

    factor = GEOFENCE_UNITS.get(units)
    if factor is None:
        return _error(line, f"invalid radial units: {units!r}")

    return GeofenceRule(
        Geofence(latitude=latitude, longitude=longitude, radius=radius * factor),
        negated=negated,
        comment=comment,
    )


def parse_rule(line: str, database_names: Iterable[str] = ()) -> Union[Rule, None]:
    """Parse a single line. Returns None for a blank separator line."""
    line, comment = _split_comment(line)

    line = line.strip()
    if not line:
        return CommentRule(comment=comment) if comment else None

    negated = False
    if line[0] == "!":
        negated = True
        line = line[1:].strip()
        if not line:
            return _error("!", "negation without a pattern")

    if line == "*":
        return WildcardRule(negated=negated, comment=comment)

    if line[:3] == "db ":
        name = line[3:].strip().lower()
        if name not in {db.lower() for db in database_names}:
            return _error(line, f"No database specified named {name!r}")
        return DatabaseRule(name, negated=negated, comment=comment)

    if line[0] == "@":
        return _parse_geofence(line[1:].strip(), negated, comment)

    if line[0] == "~":
        pattern = line[1:].strip()
        try:
            re.compile(pattern)
        except re.error as e:
            return _error(pattern, f"malformed regular expression: {e}")
        return HostnamePatternRule(pattern, negated=negated, comment=comment)

    if "/" in line:
        try:
            network = ipaddress.ip_network(line, strict=False)
        except ValueError:
            pass
        else:
            return NetworkRule(network, negated=negated, comment=comment)

    try:
        address = ipaddress.ip_address(line)
    except ValueError:
        pass
    else:
        return SingleIPRule(address, negated=negated, comment=comment)

    return HostnameRule(line.lower(), negated=negated, comment=comment)


def parse_blacklist(text: str, database_names: Iterable[str] = ()) -> Blacklist:
    database_names = {name.lower() for name in database_names}
    blacklist = Blacklist()

    lines = (text or "").split("\n")

    # drop the header written by Blacklist.to_text
    if lines and HEADER.match(lines[0]):
        lines = lines[1:]

    for line in lines:
        rule = parse_rule(line, database_names)
        if rule is not None:
            blacklist.add(rule)

    return blacklist
