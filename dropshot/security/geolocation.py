import json
from typing import Optional

import geoip2.database
import geoip2.errors
import redis

from dropshot.config import settings
from dropshot.core.exceptions import GeolocationError
from dropshot.core.logger import logger
from dropshot.security.geofence import Geofence


class GeoLocator:
    """Locates addresses with a MaxMind City database.

    Results are cached in Redis when a cache client is given.
    """

    def __init__(self, reader, cache: Optional[redis.Redis] = None, cache_ttl: int = 3600):
        self.reader = reader
        self.cache = cache
        self.cache_ttl = cache_ttl

    @classmethod
    def from_settings(cls) -> Optional["GeoLocator"]:
        if not settings.geo_db:
            return None

        try:
            reader = geoip2.database.Reader(settings.geo_db)
        except (OSError, ValueError, RuntimeError) as e:
            logger.error("geo_db_open_failed", path=settings.geo_db, error=str(e))
            return None

        cache = None
        if settings.geo_cache_enabled:
            cache = redis.from_url(
                settings.redis_url,
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5
            )

        logger.info("geo_db_loaded", path=settings.geo_db, cache=cache is not None)
        return cls(reader, cache=cache, cache_ttl=settings.geo_cache_ttl)

    def locate(self, ip) -> Geofence:
        cache_key = f"geo:{ip}"

        cached = self._cache_get(cache_key)
        if cached is not None:
            return Geofence(**cached)

        # a corrupt database raises maxminddb.InvalidDatabaseError, a RuntimeError
        try:
            record = self.reader.city(str(ip))
        except (geoip2.errors.GeoIP2Error, RuntimeError, ValueError, OSError) as e:
            raise GeolocationError(str(e)) from e

        location = record.location
        if location.latitude is None or location.longitude is None:
            raise GeolocationError(f"no location known for {ip}")

        # accuracy radius is reported in kilometers
        fence = Geofence(
            latitude=location.latitude,
            longitude=location.longitude,
            radius=float(location.accuracy_radius or 0) * 1000.0,
        )

        self._cache_set(cache_key, fence)
        return fence

    def _cache_get(self, key: str) -> Optional[dict]:
        if self.cache is None:
            return None
        try:
            cached = self.cache.get(key)
            return json.loads(cached) if cached else None
        except (redis.RedisError, ValueError) as e:
            logger.error("geo_cache_error", error=str(e))
            return None

    def _cache_set(self, key: str, fence: Geofence) -> None:
        if self.cache is None:
            return
        try:
            self.cache.setex(key, self.cache_ttl, json.dumps({
                "latitude": fence.latitude,
                "longitude": fence.longitude,
                "radius": fence.radius,
            }))
        except redis.RedisError as e:
            logger.error("geo_cache_error", error=str(e))

    def close(self) -> None:
        close = getattr(self.reader, "close", None)
        if close:
            close()
