from dataclasses import dataclass
from typing import Optional

from dropshot.config import settings
from dropshot.core.logger import logger
from dropshot.security.dns_resolver import DNSResolver
from dropshot.security.evaluator import BlacklistContext
from dropshot.security.geolocation import GeoLocator
from dropshot.security.ip_databases import IPDatabases
from dropshot.services.dispatcher import ShotDispatcher
from dropshot.services.entry_store import EntryStore
from dropshot.services.lifecycle import EntryLifecycle
from dropshot.services.self_destruct import SelfDestruct


@dataclass
class Services:
    store: EntryStore
    lifecycle: EntryLifecycle
    dispatcher: ShotDispatcher
    databases: IPDatabases
    geolocator: Optional[GeoLocator] = None

    @property
    def database_names(self) -> set[str]:
        return self.databases.names


def build_services(store: Optional[EntryStore] = None) -> Services:
    store = store or EntryStore()
    geolocator = GeoLocator.from_settings()
    databases = IPDatabases.from_settings()

    context = BlacklistContext(geolocator=geolocator, databases=databases, resolver=DNSResolver())
    lifecycle = EntryLifecycle(store, geolocator=geolocator, database_names=databases.names)
    dispatcher = ShotDispatcher(
        store,
        lifecycle,
        context,
        self_destruct=SelfDestruct.from_settings(),
        redirect_levels=settings.redirect_levels,
    )

    logger.info(
        "services_ready",
        geolocation=geolocator is not None,
        databases=sorted(databases.names),
        self_destruct=settings.self_destruct_enabled,
    )

    return Services(
        store=store,
        lifecycle=lifecycle,
        dispatcher=dispatcher,
        databases=databases,
        geolocator=geolocator,
    )
