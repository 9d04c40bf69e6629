import bisect
import ipaddress
from pathlib import Path
from typing import Iterable, Optional

import requests

from dropshot.config import settings
from dropshot.core.exceptions import DatabaseLookupError
from dropshot.core.logger import logger

CLOUDFLARE_URLS = [
    "https://www.cloudflare.com/ips-v4",
    "https://www.cloudflare.com/ips-v6",
]


class IntervalSet:
    """Sorted, non-overlapping address intervals for both IP versions."""

    def __init__(self):
        self._intervals: dict[int, list[tuple[int, int, str]]] = {4: [], 6: []}
        self._starts: dict[int, list[int]] = {4: [], 6: []}

    def __len__(self) -> int:
        return sum(len(intervals) for intervals in self._intervals.values())

    def add(self, first, last, label: str = "") -> None:
        version = self._insert(first, last, label)
        self._merge(version)

    def _insert(self, first, last, label: str) -> int:
        first = ipaddress.ip_address(first)
        last = ipaddress.ip_address(last)
        if first.version != last.version:
            raise ValueError(f"mixed address versions: {first} - {last}")
        if int(last) < int(first):
            first, last = last, first

        self._intervals[first.version].append((int(first), int(last), label))
        return first.version

    def _merge(self, version: int) -> None:
        merged: list[tuple[int, int, str]] = []
        for start, end, name in sorted(self._intervals[version]):
            if merged and start <= merged[-1][1] + 1:
                prev_start, prev_end, prev_name = merged[-1]
                merged[-1] = (prev_start, max(prev_end, end), prev_name or name)
            else:
                merged.append((start, end, name))

        self._intervals[version] = merged
        self._starts[version] = [start for start, _, _ in merged]

    def add_network(self, network, label: str = "") -> None:
        network = ipaddress.ip_network(network, strict=False)
        self.add(network.network_address, network.broadcast_address, label)

    def find(self, ip) -> Optional[str]:
        """Return the label of the interval holding ``ip`` or None."""
        address = ipaddress.ip_address(ip) if isinstance(ip, str) else ip
        value = int(address)

        index = bisect.bisect_right(self._starts[address.version], value) - 1
        if index < 0:
            return None

        start, end, label = self._intervals[address.version][index]
        if start <= value <= end:
            return label
        return None

    def __contains__(self, ip) -> bool:
        return self.find(ip) is not None

    def load_lines(self, lines: Iterable[str]) -> int:
        """Load CIDR lines or ``first,last[,name,...]`` CSV rows."""
        count = 0
        versions = set()
        for line in lines:
            line = line.strip()
            if not line or line.startswith("#"):
                continue

            try:
                if "," in line:
                    fields = [part.strip() for part in line.split(",")]
                    versions.add(self._insert(fields[0], fields[1], fields[2] if len(fields) > 2 else ""))
                else:
                    network = ipaddress.ip_network(line, strict=False)
                    versions.add(self._insert(network.network_address, network.broadcast_address, ""))
            except (ValueError, IndexError) as e:
                logger.warning("ip_database_bad_line", line=line, error=str(e))
                continue
            count += 1

        for version in versions:
            self._merge(version)
        return count


def fetch_lines(source: str, timeout: float = 30.0) -> list[str]:
    if source.startswith(("http://", "https://")):
        response = requests.get(source, timeout=timeout)
        response.raise_for_status()
        return response.text.splitlines()
    return Path(source).read_text(encoding="utf-8").splitlines()


class IPDatabases:
    """Named interval sets referenced by ``db <name>`` rules."""

    def __init__(self, databases: Optional[dict[str, IntervalSet]] = None):
        self.databases: dict[str, IntervalSet] = {
            name.lower(): intervals for name, intervals in (databases or {}).items()
        }

    @property
    def names(self) -> set[str]:
        return set(self.databases)

    def get(self, name: str) -> Optional[IntervalSet]:
        return self.databases.get(name.lower())

    def contains(self, name: str, ip) -> bool:
        intervals = self.get(name)
        if intervals is None:
            raise DatabaseLookupError(f"database {name!r} not provided")
        try:
            return ip in intervals
        except ValueError as e:
            raise DatabaseLookupError(str(e)) from e

    def load(self, name: str, sources: Iterable[str]) -> Optional[IntervalSet]:
        intervals = IntervalSet()
        for source in sources:
            try:
                intervals.load_lines(fetch_lines(source))
            except (requests.RequestException, OSError) as e:
                logger.error("ip_database_load_failed", database=name, source=source, error=str(e))
                return None

        self.databases[name.lower()] = intervals
        logger.info("ip_database_loaded", database=name, records=len(intervals))
        return intervals

    @classmethod
    def from_settings(cls) -> "IPDatabases":
        databases = cls()
        for name, source in settings.ipcat.items():
            databases.load(name, [source])
        if settings.cloudflare_enabled:
            databases.load("cloudflare", CLOUDFLARE_URLS)
        return databases
