from datetime import datetime, timezone
from email.utils import format_datetime
from typing import Iterable, Optional

from sqlalchemy import not_, or_
from sqlalchemy.exc import SQLAlchemyError

from dropshot.core.exceptions import DropshotError, GeolocationError
from dropshot.core.logger import logger
from dropshot.models.entry import Entry
from dropshot.security.blacklist import (
    Blacklist,
    CommentRule,
    GeofenceRule,
    SingleIPRule,
    parse_blacklist,
)
from dropshot.services.entry_store import EntryStore


def is_expired(entry: Entry) -> bool:
    return bool(entry.access_expire) and (entry.access_count or 0) >= (entry.access_expire_count or 0)


class EntryLifecycle:
    """Counters, training and expiry of entries.

    Store failures are logged and swallowed: the access decision made for
    the current request stands even when its side effect is lost.
    """

    def __init__(self, store: EntryStore, geolocator=None, database_names: Iterable[str] = ()):
        self.store = store
        self.geolocator = geolocator
        self.database_names = set(database_names)

    def blacklist(self, entry: Entry) -> Blacklist:
        return parse_blacklist(entry.access_blacklist or "", self.database_names)

    def record_access(self, entry: Entry) -> bool:
        """Count an access. Returns False when the entry expired in the meantime."""
        not_expired = or_(
            not_(Entry.access_expire),
            Entry.access_count < Entry.access_expire_count,
        )
        try:
            count = self.store.increment(entry.name, Entry.access_count, condition=not_expired)
        except (SQLAlchemyError, DropshotError) as e:
            logger.error("record_access_failed", name=entry.name, error=str(e))
            return True

        if count is None:
            return False
        entry.access_count = count
        return True

    def record_denial(self, entry: Entry) -> None:
        try:
            entry.access_blacklist_count = self.store.increment(entry.name, Entry.access_blacklist_count)
        except (SQLAlchemyError, DropshotError) as e:
            logger.error("record_denial_failed", name=entry.name, error=str(e))

    def training_rules(self, ip, now: Optional[datetime] = None) -> list:
        now = now or datetime.now(timezone.utc)
        rules = [
            CommentRule(comment="Automatically added by training on " + format_datetime(now, usegmt=True)),
            SingleIPRule(ip),
        ]

        if self.geolocator is not None:
            try:
                rules.append(GeofenceRule(self.geolocator.locate(ip)))
            except GeolocationError as e:
                logger.info("training_geolocation_skipped", ip=str(ip), error=str(e))

        return rules

    def train(self, entry: Entry, ip) -> Optional[Blacklist]:
        """Append rules blocking ``ip`` to the entry's blacklist.

        The blacklist is re-read under the entry lock so that concurrent
        training appends are never lost.
        """
        rules = self.training_rules(ip)
        trained = {}

        def append(stored: Entry) -> None:
            blacklist = self.blacklist(stored)
            blacklist.extend(rules)
            stored.access_blacklist = blacklist.to_text()
            trained["blacklist"] = blacklist

        try:
            updated = self.store.mutate(entry.name, append)
        except (SQLAlchemyError, DropshotError) as e:
            logger.error("training_failed", name=entry.name, ip=str(ip), error=str(e))
            return None

        entry.access_blacklist = updated.access_blacklist
        logger.info("training_rules_added", name=entry.name, ip=str(ip), rules=len(rules))
        return trained["blacklist"]

    def set_training(self, entry: Entry, on: bool) -> None:
        def toggle(stored: Entry) -> None:
            stored.access_train = on

        try:
            self.store.mutate(entry.name, toggle)
        except (SQLAlchemyError, DropshotError) as e:
            logger.error("set_training_failed", name=entry.name, error=str(e))
            return

        entry.access_train = on
        logger.info("training_toggled", name=entry.name, enabled=on)

    def toggle_training(self, entry: Entry) -> bool:
        state = {}

        def toggle(stored: Entry) -> None:
            stored.access_train = not stored.access_train
            state["on"] = stored.access_train

        self.store.mutate(entry.name, toggle)
        entry.access_train = state["on"]
        logger.info("training_toggled", name=entry.name, enabled=state["on"])
        return state["on"]
