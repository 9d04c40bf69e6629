from typing import Mapping, Optional

from dropshot.core.logger import logger
from dropshot.security.evaluator import normalize_ip
from dropshot.security.ip_databases import IntervalSet


def _parse(value: Optional[str]):
    if not value:
        return None
    try:
        return normalize_ip(value.strip())
    except ValueError:
        return None


def real_remote_ip(peer: Optional[str], headers: Mapping[str, str], cloudflare: Optional[IntervalSet] = None):
    """Address of the requester behind known proxies.

    ``CF-Connecting-IP`` is trusted only from Cloudflare's ranges and
    ``X-Real-IP`` only from a loopback peer.
    """
    ip = _parse(peer)

    if ip is not None:
        if cloudflare is not None and ip in cloudflare:
            connecting = headers.get("cf-connecting-ip", "")
            logger.debug("cloudflare_peer_detected", peer=str(ip), forwarding=connecting)
            forwarded = _parse(connecting)
            if forwarded is not None:
                return forwarded

        if not ip.is_loopback:
            return ip

    real = _parse(headers.get("x-real-ip"))
    if real is not None:
        return real

    return ip
