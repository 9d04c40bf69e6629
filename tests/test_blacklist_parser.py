import ipaddress
import pytest
from dropshot.security.blacklist import (
    CommentRule,
    DatabaseRule,
    GeofenceRule,
    HostnamePatternRule,
    HostnameRule,
    NetworkRule,
    SingleIPRule,
    WildcardRule,
    parse_blacklist,
)
from dropshot.security.geofence import Geofence


def test_parse_empty():
    assert len(parse_blacklist("")) == 0
    assert len(parse_blacklist("\n   \n\n")) == 0


def test_parse_rule_types():
    text = "\n".join([
        "*",
        "!10.0.0.0/8",
        "192.168.1.1",
        "Example.COM",
        "~\\.evil\\.net$",
        "@ 36.1699, -115.1398 (2km)",
        "db Cloudflare",
    ])
    rules = parse_blacklist(text, {"cloudflare"}).rules

    assert rules[0] == WildcardRule()
    assert rules[1] == NetworkRule(ipaddress.ip_network("10.0.0.0/8"), negated=True)
    assert rules[2] == SingleIPRule(ipaddress.ip_address("192.168.1.1"))
    assert rules[3] == HostnameRule("example.com")
    assert rules[4] == HostnamePatternRule("\\.evil\\.net$")
    assert rules[5] == GeofenceRule(Geofence(36.1699, -115.1398, 2000.0))
    assert rules[6] == DatabaseRule("cloudflare")


def test_parse_comments():
    rules = parse_blacklist("# just a note\n\n10.1.2.3 # office").rules
    assert rules == [
        CommentRule(comment="just a note"),
        SingleIPRule(ipaddress.ip_address("10.1.2.3"), comment="office"),
    ]


def test_parse_escaped_hash():
    rules = parse_blacklist("~^host\\#1$ # numbered").rules
    assert rules == [HostnamePatternRule("^host#1$", comment="numbered")]


def test_parse_cidr_masks_host_bits():
    rules = parse_blacklist("10.1.2.3/8").rules
    assert rules == [NetworkRule(ipaddress.ip_network("10.0.0.0/8"))]


def test_parse_ipv6():
    rules = parse_blacklist("2001:db8::/32\n::1").rules
    assert rules == [
        NetworkRule(ipaddress.ip_network("2001:db8::/32")),
        SingleIPRule(ipaddress.ip_address("::1")),
    ]


@pytest.mark.parametrize("line, radius", [
    ("@36.1, -115.1", 25.0),
    ("@36.1, -115.1 (100)", 100.0),
    ("@36.1, -115.1 (100m)", 100.0),
    ("@36.1, -115.1 (1.5km)", 1500.0),
    ("@36.1, -115.1 (2mi)", 3218.0),
    ("@36.1, -115.1 (5280ft)", 1609.0),
    ("@36.1 -115.1 10KM", 10000.0),
])
def test_parse_geofence_units(line, radius):
    rule = parse_blacklist(line).rules[0]
    assert isinstance(rule, GeofenceRule)
    assert rule.geofence.latitude == 36.1
    assert rule.geofence.longitude == -115.1
    assert rule.geofence.radius == pytest.approx(radius)


def test_parse_malformed_geofence():
    rules = parse_blacklist("@not,numbers").rules
    assert len(rules) == 1
    assert isinstance(rules[0], CommentRule)
    assert rules[0].comment.startswith("Error:")


def test_parse_unknown_geofence_unit():
    rule = parse_blacklist("@36.1, -115.1 (3parsecs)").rules[0]
    assert isinstance(rule, CommentRule)
    assert "invalid radial units" in rule.comment


def test_parse_bad_regex():
    rule = parse_blacklist("~([a-z]+").rules[0]
    assert isinstance(rule, CommentRule)
    assert "malformed regular expression" in rule.comment


def test_parse_unknown_database():
    rule = parse_blacklist("db aws", {"cloudflare"}).rules[0]
    assert isinstance(rule, CommentRule)
    assert rule.comment.startswith("Error:")
    assert "aws" in rule.comment


def test_parse_never_raises_on_garbage():
    text = "!\n@\n~\ndb \n!!!\n\x00\n###"
    blacklist = parse_blacklist(text)
    assert blacklist.item_count <= len(blacklist)


def test_to_text_header_counts_matchable_rules():
    assert parse_blacklist("").to_text() == "# Empty blacklist"
    assert parse_blacklist("# note\n*").to_text().splitlines()[0] == "# Blacklist with 1 item"
    text = parse_blacklist("*\n# note\n@bad\n10.0.0.1\nexample.com").to_text()
    assert text.splitlines()[0] == "# Blacklist with 3 items"


def test_to_text_round_trip():
    original = parse_blacklist(
        "10.0.0.0/8 # lan\n"
        "!Example.com\n"
        "@ 36.1699, -115.1398 (1.5km) # vegas\n"
        "~^mail\\..*\n"
        "db cloudflare\n"
        "# trailing note",
        {"cloudflare"},
    )
    reparsed = parse_blacklist(original.to_text(), {"cloudflare"})
    assert reparsed.rules == original.rules


def test_to_text_formats_rules():
    text = parse_blacklist("!@ 1, 2 (3km)\n*  #  everyone").to_text()
    assert text.splitlines()[1:] == ["!@ 1, 2 (3000m)", "* # everyone"]
