import ipaddress

from dropshot.security.ip_databases import IntervalSet
from dropshot.security.remote_addr import real_remote_ip


def cloudflare():
    intervals = IntervalSet()
    intervals.add_network("173.245.48.0/20")
    return intervals


def test_direct_peer():
    assert real_remote_ip("198.51.100.7", {}) == ipaddress.ip_address("198.51.100.7")


def test_mapped_peer_is_unwrapped():
    assert real_remote_ip("::ffff:198.51.100.7", {}) == ipaddress.ip_address("198.51.100.7")


def test_real_ip_trusted_from_loopback():
    headers = {"x-real-ip": "203.0.113.9"}
    assert real_remote_ip("127.0.0.1", headers) == ipaddress.ip_address("203.0.113.9")


def test_real_ip_ignored_from_remote_peer():
    headers = {"x-real-ip": "203.0.113.9"}
    assert real_remote_ip("198.51.100.7", headers) == ipaddress.ip_address("198.51.100.7")


def test_cloudflare_header_trusted_from_cloudflare():
    headers = {"cf-connecting-ip": "203.0.113.9"}
    assert real_remote_ip("173.245.48.1", headers, cloudflare()) == ipaddress.ip_address("203.0.113.9")


def test_cloudflare_header_ignored_from_others():
    headers = {"cf-connecting-ip": "203.0.113.9"}
    assert real_remote_ip("198.51.100.7", headers, cloudflare()) == ipaddress.ip_address("198.51.100.7")
    assert real_remote_ip("173.245.48.1", headers) == ipaddress.ip_address("173.245.48.1")


def test_unparsable_values():
    assert real_remote_ip(None, {}) is None
    assert real_remote_ip("127.0.0.1", {"x-real-ip": "garbage"}) == ipaddress.ip_address("127.0.0.1")
