"""
Composition root: wires caches and module services around one store.

One ``ResourceCache`` per list, one shared ``CategoryFamilyCache``, and the
module services on top.  ``teardown()`` ends every cache's lifetime, as
leaving the application screen would.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from stockroom_config import CompiledAccessPolicy
from stockroom_kernel.domain.clock import Clock, SystemClock
from stockroom_kernel.domain.entities import EntityType
from stockroom_modules.buyers.service import BuyersService
from stockroom_modules.dashboard.service import DashboardService
from stockroom_modules.invoices.service import InvoiceService
from stockroom_modules.parts.service import PartsService
from stockroom_modules.transactions.service import StockMovementService
from stockroom_services.access_control import AccessControl, default_access_control
from stockroom_services.category_cache import CategoryFamilyCache
from stockroom_services.collaborators import IdentityProvider, LoggingNotifier, Notifier
from stockroom_services.list_store import QueryOptions, RemoteListStore
from stockroom_services.resource_cache import ResourceCache


@dataclass
class StockroomWorkspace:
    access: AccessControl
    parts: ResourceCache
    buyers: ResourceCache
    invoices: ResourceCache
    transactions: ResourceCache
    categories: CategoryFamilyCache
    parts_service: PartsService
    buyers_service: BuyersService
    movements: StockMovementService
    invoice_service: InvoiceService
    dashboard: DashboardService

    def teardown(self) -> None:
        for cache in (self.parts, self.buyers, self.invoices, self.transactions):
            cache.teardown()

    async def __aenter__(self) -> StockroomWorkspace:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        self.teardown()


def build_workspace(
    store: RemoteListStore,
    identity: IdentityProvider,
    notifier: Notifier | None = None,
    *,
    clock: Clock | None = None,
    policy: CompiledAccessPolicy | None = None,
    guard_mutations: bool = True,
) -> StockroomWorkspace:
    access = AccessControl(policy) if policy is not None else default_access_control()
    settings = access.policy.settings
    notifier = notifier or LoggingNotifier()
    clock = clock or SystemClock()

    def cache(entity_type: EntityType, query: QueryOptions | None = None) -> ResourceCache:
        return ResourceCache(
            entity_type,
            store,
            identity,
            notifier,
            query,
            access=access if guard_mutations else None,
        )

    parts = cache(EntityType.PARTS, QueryOptions().ordered("part_id"))
    buyers = cache(EntityType.BUYERS, QueryOptions().ordered("buyer_name"))
    invoices = cache(EntityType.INVOICES)
    transactions = cache(EntityType.TRANSACTIONS)
    categories = CategoryFamilyCache(
        store, identity, clock=clock, ttl_seconds=settings.category_cache_ttl_seconds
    )
    movements = StockMovementService(transactions, parts, identity, access)

    return StockroomWorkspace(
        access=access,
        parts=parts,
        buyers=buyers,
        invoices=invoices,
        transactions=transactions,
        categories=categories,
        parts_service=PartsService(parts, categories, identity, access),
        buyers_service=BuyersService(buyers, identity, access),
        movements=movements,
        invoice_service=InvoiceService(
            invoices, parts, transactions, movements, identity, access, clock
        ),
        dashboard=DashboardService(
            parts, invoices, categories, low_stock_threshold=settings.low_stock_threshold
        ),
    )
