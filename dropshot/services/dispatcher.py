from typing import Optional

from dropshot.config import settings
from dropshot.core.logger import logger
from dropshot.models.entry import Entry
from dropshot.security.evaluator import BlacklistContext, allow, normalize_ip
from dropshot.services.entry_store import EntryStore
from dropshot.services.lifecycle import EntryLifecycle, is_expired
from dropshot.services.self_destruct import SelfDestruct


class ShotDispatcher:
    """Decides whether a requester may see an entry.

    A denied entry with ``access_redirect_on_deny`` set hands the request to
    the named fallback entry, which is checked the same way. Each hop costs
    one unit of the budget; cycles stop when it runs out.
    """

    def __init__(
        self,
        store: EntryStore,
        lifecycle: EntryLifecycle,
        context: BlacklistContext,
        self_destruct: Optional[SelfDestruct] = None,
        redirect_levels: int = settings.redirect_levels,
    ):
        self.store = store
        self.lifecycle = lifecycle
        self.context = context
        self.self_destruct = self_destruct
        self.redirect_levels = redirect_levels

    def access(self, name: str, ip, hops: Optional[int] = None) -> Optional[Entry]:
        """Return the entry to serve, or None when access is denied."""
        ip = normalize_ip(ip)
        budget = self.redirect_levels if hops is None else hops

        while True:
            entry, granted = self._check(name, ip)
            if granted:
                return entry
            if entry is None:
                return None

            fallback = (entry.access_redirect_on_deny or "").strip()
            if not fallback:
                return None

            if budget <= 0:
                logger.warning("redirect_levels_exhausted", name=name, fallback=fallback, ip=str(ip))
                return None

            logger.info("redirect_on_deny", name=name, fallback=fallback, ip=str(ip), remaining=budget - 1)
            budget -= 1
            name = fallback

    def _check(self, name: str, ip) -> tuple[Optional[Entry], bool]:
        """One resolution step. Returns the entry looked up and whether it was granted."""
        if self.self_destruct is not None and self.self_destruct.matches(name):
            logger.critical("self_destruct_requested", ip=str(ip))
            self.self_destruct.trigger()
            return None, False

        entry = self.store.get(name)
        if entry is None:
            return None, False

        if entry.access_train:
            self.lifecycle.train(entry, ip)
            logger.info("access_denied_training", name=entry.name, ip=str(ip))
            return entry, False

        if is_expired(entry):
            logger.info("access_denied_expired", name=entry.name, ip=str(ip))
            self.lifecycle.record_denial(entry)
            return entry, False

        if not allow(self.lifecycle.blacklist(entry), ip, self.context):
            logger.info("access_denied_blacklist", name=entry.name, ip=str(ip))
            self.lifecycle.record_denial(entry)
            return entry, False

        if not self.lifecycle.record_access(entry):
            logger.info("access_denied_expired", name=entry.name, ip=str(ip))
            self.lifecycle.record_denial(entry)
            return entry, False

        logger.info("access_granted", name=entry.name, ip=str(ip))
        return entry, True
