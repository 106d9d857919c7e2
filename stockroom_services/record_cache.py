"""
Single-record variant of the resource cache.

Holds one entity by id for detail views.  Shares the collection cache's
rules: a mount guard on every state write, user-facing error recording,
re-raise once, and refusal of mutations while a load is in flight.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Mapping

from stockroom_kernel.domain.entities import Entity, EntityType
from stockroom_kernel.exceptions import (
    AuthenticationRequiredError,
    ResourceBusyError,
    SubscriptionClosedError,
    user_message_for,
)
from stockroom_kernel.logging_config import LogContext, get_logger
from stockroom_services.collaborators import IdentityProvider, LoggingNotifier, Notifier
from stockroom_services.list_store import RemoteListStore
from stockroom_services.resource_cache import CacheStatus

logger = get_logger("services.record_cache")


@dataclass(frozen=True)
class RecordState:
    record: Entity | None = None
    loading: bool = False
    error: str | None = None
    error_code: str | None = None
    status: CacheStatus = CacheStatus.IDLE


class RecordCache:
    """In-memory copy of one remote list item."""

    def __init__(
        self,
        entity_type: EntityType | str,
        entity_id: str,
        store: RemoteListStore,
        identity: IdentityProvider,
        notifier: Notifier | None = None,
    ):
        self._entity_type = EntityType(entity_type)
        self._entity_id = entity_id
        self._store = store
        self._identity = identity
        self._notifier = notifier or LoggingNotifier()
        self._state = RecordState()
        self._mounted = True
        self._load_seq = 0
        self._loads_in_flight = 0

    @property
    def state(self) -> RecordState:
        return self._state

    @property
    def record(self) -> Entity | None:
        return self._state.record

    @property
    def mounted(self) -> bool:
        return self._mounted

    def teardown(self) -> None:
        self._mounted = False

    async def __aenter__(self) -> RecordCache:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        self.teardown()

    def _commit(self, state: RecordState) -> bool:
        if not self._mounted:
            return False
        self._state = state
        return True

    def _ensure_open(self, operation: str) -> None:
        if not self._mounted:
            raise SubscriptionClosedError(self._entity_type.value, operation)

    def _log_context(self, operation: str):
        return LogContext.bind(
            actor_role=self._identity.current_role(),
            entity_type=self._entity_type,
            entity_id=self._entity_id,
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
            "record_operation_failed",
            extra={
                "entity_type": self._entity_type.value,
                "entity_id": self._entity_id,
                "operation": operation,
                "error_code": getattr(exc, "code", type(exc).__name__),
            },
        )
        if not self._mounted:
            return
        changes: dict[str, Any] = {"error": message, "error_code": getattr(exc, "code", None)}
        if from_load:
            changes.update(loading=False, status=CacheStatus.FAILED)
        self._commit(replace(self._state, **changes))
        self._notifier.notify_error(message)

    async def load(self) -> Entity | None:
        self._ensure_open("load")
        self._load_seq += 1
        request_id = self._load_seq
        self._loads_in_flight += 1
        self._commit(replace(self._state, loading=True, error=None, error_code=None, status=CacheStatus.LOADING))
        with self._log_context("load"):
            try:
                credential = await self._credential("load")
                entity = await self._store.get_item(self._entity_type, credential, self._entity_id)
            except Exception as exc:
                self._loads_in_flight -= 1
                if request_id == self._load_seq:
                    self._record_failure(exc, "load", from_load=True)
                raise
        self._loads_in_flight -= 1
        if request_id == self._load_seq:
            self._commit(RecordState(record=entity, status=CacheStatus.READY))
        return entity

    async def refresh(self) -> Entity | None:
        return await self.load()

    async def update(self, data: Mapping[str, Any]) -> Entity:
        """Update remotely and replace the held record with the merged result."""
        self._ensure_open("update")
        if self._loads_in_flight:
            raise ResourceBusyError(self._entity_type.value, "update")
        with self._log_context("update"):
            try:
                credential = await self._credential("update")
                updated = await self._store.update(
                    self._entity_type, credential, self._entity_id, data
                )
            except Exception as exc:
                self._record_failure(exc, "update", from_load=False)
                raise
        current = self._state.record
        merged = current.merged(updated) if current is not None else updated
        if self._commit(replace(self._state, record=merged, error=None, error_code=None)):
            self._notifier.notify_success(
                f"{self._entity_type.singular.capitalize()} updated successfully!"
            )
        return updated

    async def delete(self) -> None:
        """Delete remotely and clear the held record."""
        self._ensure_open("delete")
        if self._loads_in_flight:
            raise ResourceBusyError(self._entity_type.value, "delete")
        with self._log_context("delete"):
            try:
                credential = await self._credential("delete")
                await self._store.delete(self._entity_type, credential, self._entity_id)
            except Exception as exc:
                self._record_failure(exc, "delete", from_load=False)
                raise
        if self._commit(replace(self._state, record=None, error=None, error_code=None)):
            self._notifier.notify_success(
                f"{self._entity_type.singular.capitalize()} deleted successfully!"
            )
