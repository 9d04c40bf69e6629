import enum
import math
from dataclasses import dataclass

EARTH_RADIUS_METERS = 6371000.0


class SetIntersection(enum.IntFlag):
    """Relationship between two sets, as seen from the first one."""

    NONE = 0
    DISJOINT = 1
    # the first set is contained in the second
    SUBSET = 2
    # the second set is contained in the first
    SUPERSET = 4


def great_circle_distance(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Haversine distance in meters between two points given in degrees."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lng2 - lng1)

    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    return 2 * EARTH_RADIUS_METERS * math.atan2(math.sqrt(a), math.sqrt(1 - a))


@dataclass(frozen=True)
class Geofence:
    """A point on the Earth with an accuracy radius in meters."""

    latitude: float
    longitude: float
    radius: float = 25.0

    def distance_to(self, other: "Geofence") -> float:
        return great_circle_distance(self.latitude, self.longitude, other.latitude, other.longitude)

    def intersection(self, other: "Geofence") -> SetIntersection:
        distance = self.distance_to(other)

        radius_sum = self.radius + other.radius
        radius_diff = self.radius - other.radius

        if distance - radius_sum > 0:
            return SetIntersection.DISJOINT

        result = SetIntersection.NONE

        if -distance + radius_diff >= 0:
            result |= SetIntersection.SUPERSET

        if -distance - radius_diff >= 0:
            result |= SetIntersection.SUBSET

        return result
