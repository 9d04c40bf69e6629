import ipaddress
import socket
from dropshot.core.logger import logger


class DNSResolver:
    """Forward and reverse lookups. Failures yield empty results."""

    def lookup_addresses(self, hostname: str) -> list:
        try:
            infos = socket.getaddrinfo(hostname, None)
        except (socket.gaierror, socket.herror, UnicodeError, OSError) as e:
            logger.debug("dns_forward_lookup_failed", hostname=hostname, error=str(e))
            return []

        addresses = []
        for info in infos:
            host = info[4][0].split("%", 1)[0]
            try:
                address = ipaddress.ip_address(host)
            except ValueError:
                continue
            if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped is not None:
                address = address.ipv4_mapped
            if address not in addresses:
                addresses.append(address)
        return addresses

    def lookup_names(self, ip) -> list[str]:
        try:
            hostname, aliases, _ = socket.gethostbyaddr(str(ip))
        except (socket.gaierror, socket.herror, OSError) as e:
            logger.debug("dns_reverse_lookup_failed", ip=str(ip), error=str(e))
            return []

        return [name.lower().rstrip(".") for name in [hostname, *aliases] if name]
