"""
stockroom_services.resource_cache -- Generic resource-synchronization cache.

Responsibility:
    Keeps one entity type's collection (parts, buyers, invoices,
    transactions) in memory, synchronized with the remote list store
    through load / create / update / delete / delete_multiple / refresh.
    One instance per entity type and query; instances never share items.

Architecture position:
    Services layer.  Talks to a ``RemoteListStore``, an ``IdentityProvider``
    and a ``Notifier``.  Optionally bound to an ``AccessControl`` component
    so mutations are refused before any remote call.

State machine:
    IDLE -> LOADING -> {READY, FAILED}.  ``load``/``create``/``refresh``
    re-enter LOADING; ``update``/``delete``/``reload_item`` patch the
    collection in place and never pass through LOADING.

Invariants:
    - Mount guard: every state write goes through ``_commit``, which does
      nothing once ``teardown()`` has run.  Listeners and the notifier are
      never called after teardown.
    - Last-issued-wins: each ``load`` takes a request number; only the
      most recently issued load may write ``items``.  A superseded or
      post-teardown load still returns (or raises) to its own caller.
    - ``update``/``delete``/``delete_multiple`` are refused with
      ``ResourceBusyError`` while a load is in flight.
    - After ``create`` resolves, the collection has been reloaded from
      the store.

Failure modes:
    - Remote and authentication failures are recorded in ``state.error``
      as the user-facing message, sent to the notifier, and re-raised once.
    - Partial batch deletion is reported through ``DeleteReport``, not
      raised.
    - Operations after teardown raise ``SubscriptionClosedError``.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Mapping, Sequence

from stockroom_kernel.domain.entities import Entity, EntityType
from stockroom_kernel.exceptions import (
    AuthenticationRequiredError,
    ResourceBusyError,
    SubscriptionClosedError,
    user_message_for,
)
from stockroom_kernel.logging_config import LogContext, get_logger
from stockroom_services.access_control import AccessControl
from stockroom_services.collaborators import IdentityProvider, LoggingNotifier, Notifier
from stockroom_services.list_store import DeleteReport, QueryOptions, RemoteListStore

logger = get_logger("services.resource_cache")


class CacheStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


@dataclass(frozen=True)
class ResourceCollectionState:
    """
    Snapshot of a cache.  ``loading=False`` and ``error=None`` mean
    ``items`` reflects the last successful load or mutation.
    """

    items: tuple[Entity, ...] = ()
    loading: bool = False
    error: str | None = None
    error_code: str | None = None
    status: CacheStatus = CacheStatus.IDLE


Listener = Callable[[ResourceCollectionState], None]

# Mutation -> component action checked by the optional guard.
GUARDED_ACTIONS: Mapping[str, str] = {
    "create": "create",
    "update": "edit",
    "delete": "delete",
    "delete_multiple": "bulk_delete",
}


class ResourceCache:
    """Synchronized in-memory copy of one remote list."""

    def __init__(
        self,
        entity_type: EntityType | str,
        store: RemoteListStore,
        identity: IdentityProvider,
        notifier: Notifier | None = None,
        query: QueryOptions | None = None,
        *,
        access: AccessControl | None = None,
        component: str | None = None,
    ):
        self._entity_type = EntityType(entity_type)
        self._store = store
        self._identity = identity
        self._notifier = notifier or LoggingNotifier()
        self._query = query or QueryOptions()
        self._access = access
        self._component = component or (self._entity_type.value if access else None)

        self._state = ResourceCollectionState()
        self._mounted = True
        self._load_seq = 0
        self._loads_in_flight = 0
        self._listeners: list[Listener] = []

    # -- introspection ------------------------------------------------------

    @property
    def entity_type(self) -> EntityType:
        return self._entity_type

    @property
    def query(self) -> QueryOptions:
        return self._query

    @property
    def state(self) -> ResourceCollectionState:
        return self._state

    @property
    def items(self) -> tuple[Entity, ...]:
        return self._state.items

    @property
    def mounted(self) -> bool:
        return self._mounted

    @property
    def is_loading(self) -> bool:
        return self._loads_in_flight > 0

    def find(self, entity_id: str) -> Entity | None:
        for item in self._state.items:
            if item.entity_id == entity_id:
                return item
        return None

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """Subscribe to state snapshots. Returns the unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # -- lifecycle ----------------------------------------------------------

    def teardown(self) -> None:
        """End the cache's lifetime. Idempotent."""
        if not self._mounted:
            return
        self._mounted = False
        self._listeners.clear()
        logger.debug(
            "resource_cache_torn_down",
            extra={
                "entity_type": self._entity_type.value,
                "loads_in_flight": self._loads_in_flight,
            },
        )

    async def __aenter__(self) -> ResourceCache:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        self.teardown()

    # -- state plumbing -----------------------------------------------------

    def _commit(self, state: ResourceCollectionState) -> bool:
        if not self._mounted:
            return False
        self._state = state
        for listener in list(self._listeners):
            listener(state)
        return True

    def _ensure_open(self, operation: str) -> None:
        if not self._mounted:
            raise SubscriptionClosedError(self._entity_type.value, operation)

    def _ensure_idle(self, operation: str) -> None:
        if self._loads_in_flight:
            logger.info(
                "resource_mutation_rejected_busy",
                extra={"entity_type": self._entity_type.value, "operation": operation},
            )
            raise ResourceBusyError(self._entity_type.value, operation)

    def _guard(self, operation: str) -> None:
        if self._access is None or self._component is None:
            return
        self._access.require_action(
            self._identity.current_role(), self._component, GUARDED_ACTIONS[operation]
        )

    def _log_context(self, operation: str, entity_id: str | None = None):
        return LogContext.bind(
            actor_role=self._identity.current_role(),
            entity_type=self._entity_type,
            entity_id=entity_id,
            operation=operation,
        )

    async def _credential(self, operation: str) -> str:
        credential = await self._identity.get_credential()
        if not credential:
            raise AuthenticationRequiredError(operation)
        return credential

    def _record_failure(self, exc: Exception, operation: str, *, from_load: bool) -> None:
        message = user_message_for(exc)
        logger.warning(
            "resource_operation_failed",
            extra={
                "entity_type": self._entity_type.value,
                "operation": operation,
                "error_code": getattr(exc, "code", type(exc).__name__),
                "error_message": message,
            },
        )
        if not self._mounted:
            return
        if from_load:
            state = replace(
                self._state,
                loading=False,
                error=message,
                error_code=getattr(exc, "code", None),
                status=CacheStatus.FAILED,
            )
        else:
            state = replace(self._state, error=message, error_code=getattr(exc, "code", None))
        self._commit(state)
        self._notifier.notify_error(message)

    def _notify_success(self, message: str) -> None:
        if self._mounted:
            self._notifier.notify_success(message)

    @property
    def _label(self) -> str:
        return self._entity_type.singular.capitalize()

    # -- operations ---------------------------------------------------------

    async def load(self) -> tuple[Entity, ...]:
        """Fetch the collection. Only the most recently issued load is applied."""
        self._ensure_open("load")
        self._load_seq += 1
        request_id = self._load_seq
        self._loads_in_flight += 1
        self._commit(
            replace(self._state, loading=True, error=None, error_code=None, status=CacheStatus.LOADING)
        )

        with self._log_context("load"):
            try:
                credential = await self._credential("load")
                fetched = await self._store.get(self._entity_type, credential, self._query)
            except Exception as exc:
                self._loads_in_flight -= 1
                if request_id == self._load_seq:
                    self._record_failure(exc, "load", from_load=True)
                else:
                    logger.debug("stale_load_failure_discarded", extra={"request_id": request_id})
                raise

            self._loads_in_flight -= 1
            items = tuple(fetched)
            if request_id != self._load_seq:
                logger.debug(
                    "stale_load_discarded",
                    extra={"request_id": request_id, "latest_request_id": self._load_seq},
                )
            elif self._commit(
                ResourceCollectionState(items=items, status=CacheStatus.READY)
            ):
                logger.debug(
                    "resource_loaded",
                    extra={"request_id": request_id, "item_count": len(items)},
                )
            else:
                logger.debug("load_after_teardown_discarded", extra={"request_id": request_id})
            return items

    async def refresh(self) -> tuple[Entity, ...]:
        return await self.load()

    async def reload_item(self, entity_id: str) -> Entity:
        """Re-read one item from the store and patch it into the cache."""
        self._ensure_open("reload_item")
        with self._log_context("reload_item", entity_id):
            try:
                credential = await self._credential("reload_item")
                fresh = await self._store.get_item(self._entity_type, credential, entity_id)
            except Exception as exc:
                self._record_failure(exc, "reload_item", from_load=False)
                raise
            self._commit(
                replace(
                    self._state,
                    items=tuple(
                        fresh if item.entity_id == entity_id else item
                        for item in self._state.items
                    ),
                )
            )
            logger.debug("resource_item_reloaded", extra={"entity_id": entity_id})
        return fresh

    async def create(self, data: Mapping[str, Any]) -> Entity:
        """Create an item remotely, then reload so the cache holds the server's copy."""
        self._ensure_open("create")
        self._guard("create")
        with self._log_context("create"):
            try:
                credential = await self._credential("create")
                created = await self._store.create(self._entity_type, credential, data)
            except Exception as exc:
                self._record_failure(exc, "create", from_load=False)
                raise
            logger.info("resource_created", extra={"entity_id": created.entity_id})
        self._notify_success(f"{self._label} created successfully!")
        if self._mounted:
            await self.load()
        return created

    async def update(self, entity_id: str, data: Mapping[str, Any]) -> Entity:
        """Update an item remotely and merge the result into the cached copy."""
        self._ensure_open("update")
        self._ensure_idle("update")
        self._guard("update")
        with self._log_context("update", entity_id):
            try:
                credential = await self._credential("update")
                updated = await self._store.update(self._entity_type, credential, entity_id, data)
            except Exception as exc:
                self._record_failure(exc, "update", from_load=False)
                raise
            self._commit(
                replace(
                    self._state,
                    items=tuple(
                        item.merged(updated) if item.entity_id == entity_id else item
                        for item in self._state.items
                    ),
                    error=None,
                    error_code=None,
                )
            )
            logger.info("resource_updated", extra={"entity_id": entity_id})
        self._notify_success(f"{self._label} updated successfully!")
        return updated

    async def delete(self, entity_id: str) -> None:
        """Delete an item remotely, then drop it from the cache."""
        self._ensure_open("delete")
        self._ensure_idle("delete")
        self._guard("delete")
        with self._log_context("delete", entity_id):
            try:
                credential = await self._credential("delete")
                await self._store.delete(self._entity_type, credential, entity_id)
            except Exception as exc:
                self._record_failure(exc, "delete", from_load=False)
                raise
            self._commit(
                replace(
                    self._state,
                    items=tuple(i for i in self._state.items if i.entity_id != entity_id),
                    error=None,
                    error_code=None,
                )
            )
            logger.info("resource_deleted", extra={"entity_id": entity_id})
        self._notify_success(f"{self._label} deleted successfully!")

    async def delete_multiple(self, ids: Sequence[str]) -> DeleteReport:
        """
        Delete several items.  Items that were deleted leave the cache;
        failed ones stay.  Partial failure is returned, not raised.
        """
        self._ensure_open("delete_multiple")
        self._ensure_idle("delete_multiple")
        self._guard("delete_multiple")
        ids = list(dict.fromkeys(ids))
        if not ids:
            return DeleteReport()

        with self._log_context("delete_multiple"):
            try:
                credential = await self._credential("delete_multiple")
                report = await self._store.delete_batch(self._entity_type, credential, ids)
            except Exception as exc:
                self._record_failure(exc, "delete_multiple", from_load=False)
                raise

            failed = report.failed_ids
            removed = {i for i in ids if i not in failed}
            error = None
            if report.failed:
                error = f"Failed to delete {report.failed} {self._entity_type.singular}(s)"
            self._commit(
                replace(
                    self._state,
                    items=tuple(i for i in self._state.items if i.entity_id not in removed),
                    error=error,
                    error_code="PARTIAL_DELETE" if error else None,
                )
            )
            if report.failed:
                logger.warning(
                    "resource_batch_delete_partial",
                    extra={
                        "succeeded": report.succeeded,
                        "failed": report.failed,
                        "failed_ids": sorted(failed),
                    },
                )

        if report.succeeded:
            self._notify_success(
                f"Successfully deleted {report.succeeded} {self._entity_type.singular}(s)"
            )
        if report.failed and self._mounted:
            self._notifier.notify_error(error)
        return report
