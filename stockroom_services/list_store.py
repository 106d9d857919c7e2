"""
stockroom_services.list_store -- Remote list store contract and in-memory adapter.

Responsibility:
    Defines the async ``RemoteListStore`` protocol every cache talks to,
    the query parameters a list read accepts, the partial-failure report
    returned by batch deletion, and ``InMemoryListStore``, the adapter
    used in mock integration mode and throughout the test suite.

Architecture position:
    Services layer.  The production transport lives outside this package
    and only has to satisfy ``RemoteListStore``.

Invariants:
    - A missing credential raises ``AuthenticationRequiredError`` before
      the store is touched.
    - Every read returns fresh ``Entity`` objects; callers never share a
      store's internal copy.
    - ``delete_batch`` attempts every id independently and reports
      failures in a ``DeleteReport`` instead of raising.

Failure modes:
    - Remote failures surface as ``RemoteOperationError`` subclasses or
      ``AuthenticationFailedError``; see
      ``stockroom_kernel.exceptions.remote_error_from_status``.
"""

from __future__ import annotations

import asyncio
import itertools
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Iterable, Mapping, Protocol, Sequence, runtime_checkable

from stockroom_kernel.domain.clock import Clock, SystemClock
from stockroom_kernel.domain.entities import Entity, EntityType
from stockroom_kernel.exceptions import (
    AuthenticationRequiredError,
    RemoteNotFoundError,
    remote_error_from_status,
    user_message_for,
)
from stockroom_kernel.logging_config import get_logger

logger = get_logger("services.list_store")


# ---------------------------------------------------------------------------
# Query options
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class QueryOptions:
    """
    Parameters of a list read.  Frozen and hashable so a cache can be
    keyed by its query.

    ``filters`` are equality matches on fields; ``search`` is a
    case-insensitive substring match across ``search_fields`` (every
    text field when empty).
    """

    filters: tuple[tuple[str, Any], ...] = ()
    search: str | None = None
    search_fields: tuple[str, ...] = ()
    order_by: str | None = None
    descending: bool = False
    top: int | None = None
    skip: int = 0

    @classmethod
    def where(cls, **filters: Any) -> QueryOptions:
        return cls(filters=tuple(sorted(filters.items())))

    def ordered(self, field_name: str, descending: bool = False) -> QueryOptions:
        return replace(self, order_by=field_name, descending=descending)


ALL_ITEMS = QueryOptions()


def _matches_search(entity: Entity, term: str, fields: Sequence[str]) -> bool:
    needle = term.lower()
    names = fields or tuple(k for k, v in entity.fields.items() if isinstance(v, str))
    for name in names:
        value = entity.get(name)
        if value is not None and needle in str(value).lower():
            return True
    return False


def _sort_key(field_name: str):
    def key(entity: Entity) -> tuple:
        value = entity.get(field_name)
        if value is None:
            return (True, False, "")
        if isinstance(value, str):
            return (False, True, value.lower())
        return (False, False, value)

    return key


def apply_query(entities: Iterable[Entity], query: QueryOptions | None) -> list[Entity]:
    """Filter, search, order and page a sequence of entities."""
    items = list(entities)
    if query is None:
        return items

    for name, expected in query.filters:
        items = [e for e in items if e.get(name) == expected]

    if query.search:
        term = query.search.strip()
        if term:
            items = [e for e in items if _matches_search(e, term, query.search_fields)]

    if query.order_by:
        items.sort(key=_sort_key(query.order_by), reverse=query.descending)

    if query.skip:
        items = items[query.skip:]
    if query.top is not None:
        items = items[: query.top]
    return items


# ---------------------------------------------------------------------------
# Batch delete report
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DeleteFailure:
    entity_id: str
    code: str
    message: str


@dataclass(frozen=True)
class DeleteReport:
    """Outcome of a batch delete.  Partial failure is data, not an exception."""

    succeeded: int = 0
    failed: int = 0
    errors: tuple[DeleteFailure, ...] = ()
    deleted_ids: tuple[str, ...] = ()

    @property
    def failed_ids(self) -> frozenset[str]:
        return frozenset(e.entity_id for e in self.errors)

    @property
    def is_partial(self) -> bool:
        return self.succeeded > 0 and self.failed > 0

    @property
    def is_total_failure(self) -> bool:
        return self.failed > 0 and self.succeeded == 0


# ---------------------------------------------------------------------------
# Store protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class RemoteListStore(Protocol):
    """Async CRUD over named remote lists.  Each call is one suspension point."""

    async def get(
        self,
        entity_type: EntityType,
        credential: str | None,
        query: QueryOptions | None = None,
    ) -> list[Entity]: ...

    async def get_item(
        self, entity_type: EntityType, credential: str | None, entity_id: str
    ) -> Entity: ...

    async def create(
        self, entity_type: EntityType, credential: str | None, data: Mapping[str, Any]
    ) -> Entity: ...

    async def update(
        self,
        entity_type: EntityType,
        credential: str | None,
        entity_id: str,
        data: Mapping[str, Any],
    ) -> Entity: ...

    async def delete(
        self, entity_type: EntityType, credential: str | None, entity_id: str
    ) -> None: ...

    async def delete_batch(
        self, entity_type: EntityType, credential: str | None, ids: Sequence[str]
    ) -> DeleteReport: ...


def require_credential(credential: str | None, operation: str) -> str:
    if not credential:
        raise AuthenticationRequiredError(operation)
    return credential


def to_storable(value: Any) -> Any:
    """Normalize a field value to what a remote list stores."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


class ListStoreBase:
    """Shared behaviour of the bundled stores: per-item batch deletion."""

    async def delete(
        self, entity_type: EntityType, credential: str | None, entity_id: str
    ) -> None:
        raise NotImplementedError

    async def delete_batch(
        self, entity_type: EntityType, credential: str | None, ids: Sequence[str]
    ) -> DeleteReport:
        require_credential(credential, "delete_batch")
        deleted: list[str] = []
        errors: list[DeleteFailure] = []
        for entity_id in ids:
            try:
                await self.delete(entity_type, credential, entity_id)
            except Exception as exc:
                errors.append(
                    DeleteFailure(
                        entity_id=entity_id,
                        code=getattr(exc, "code", type(exc).__name__),
                        message=user_message_for(exc),
                    )
                )
                logger.warning(
                    "batch_delete_item_failed",
                    extra={
                        "entity_id": entity_id,
                        "error_code": getattr(exc, "code", type(exc).__name__),
                    },
                )
            else:
                deleted.append(entity_id)

        report = DeleteReport(
            succeeded=len(deleted),
            failed=len(errors),
            errors=tuple(errors),
            deleted_ids=tuple(deleted),
        )
        logger.info(
            "batch_delete_completed",
            extra={
                "entity_type": EntityType(entity_type).value,
                "requested": len(ids),
                "succeeded": report.succeeded,
                "failed": report.failed,
            },
        )
        return report


# ---------------------------------------------------------------------------
# In-memory adapter
# ---------------------------------------------------------------------------


@dataclass
class _InjectedFailure:
    error: Exception | int
    entity_id: str | None = None
    remaining: int = 1


@dataclass
class StoreCall:
    operation: str
    entity_type: EntityType
    entity_id: str | None = None
    data: Mapping[str, Any] = field(default_factory=dict)


class InMemoryListStore(ListStoreBase):
    """
    Remote list store held in process memory.

    Items are kept in insertion order and identified by sequential string
    ids per list, as the remote service assigns them.  An explicit ``id``
    is honoured only when unused; a taken one is refused with a 409, and
    generated ids skip numbers already taken.  ``inject_failure``
    makes the next matching call fail, by exception or by HTTP status.
    ``calls`` records every operation that reached the store.
    """

    def __init__(self, clock: Clock | None = None, actor: str = "stockroom"):
        self._clock = clock or SystemClock()
        self._actor = actor
        self._lists: dict[EntityType, dict[str, Entity]] = {t: {} for t in EntityType}
        self._ids = {t: itertools.count(1) for t in EntityType}
        self._failures: dict[str, list[_InjectedFailure]] = {}
        self.calls: list[StoreCall] = []

    # -- test and seeding helpers ------------------------------------------

    def seed(self, entity_type: EntityType, rows: Iterable[Mapping[str, Any]]) -> list[Entity]:
        """Insert rows without going through the credential check or call log."""
        entity_type = EntityType(entity_type)
        return [self._insert(entity_type, row) for row in rows]

    def inject_failure(
        self,
        operation: str,
        error: Exception | int,
        *,
        entity_id: str | None = None,
        times: int = 1,
    ) -> None:
        """Fail the next ``times`` calls of ``operation`` (optionally for one id)."""
        self._failures.setdefault(operation, []).append(
            _InjectedFailure(error=error, entity_id=entity_id, remaining=times)
        )

    def snapshot(self, entity_type: EntityType) -> list[Entity]:
        return [self._copy(e) for e in self._lists[EntityType(entity_type)].values()]

    def calls_for(self, operation: str) -> list[StoreCall]:
        return [c for c in self.calls if c.operation == operation]

    # -- internals -----------------------------------------------------------

    @staticmethod
    def _copy(entity: Entity) -> Entity:
        return replace(entity, fields=dict(entity.fields))

    def _assign_id(self, operation: str, entity_type: EntityType, requested: Any) -> str:
        items = self._lists[entity_type]
        if requested is None or requested == "":
            # Skip numbers already taken by explicitly keyed items.
            while True:
                candidate = str(next(self._ids[entity_type]))
                if candidate not in items:
                    return candidate
        entity_id = str(requested)
        if entity_id in items:
            raise remote_error_from_status(
                409, operation, f"{entity_type.value} item {entity_id} already exists"
            )
        return entity_id

    def _insert(
        self, entity_type: EntityType, data: Mapping[str, Any], operation: str = "seed"
    ) -> Entity:
        now = self._clock.now()
        fields = {k: to_storable(v) for k, v in data.items() if k != "id"}
        entity_id = self._assign_id(operation, entity_type, data.get("id"))
        entity = Entity(
            entity_id=entity_id,
            entity_type=entity_type,
            fields=fields,
            created_by=self._actor,
            created_at=now,
            modified_by=self._actor,
            modified_at=now,
        )
        self._lists[entity_type][entity_id] = entity
        return self._copy(entity)

    def _raise_injected(self, operation: str, entity_id: str | None = None) -> None:
        queue = self._failures.get(operation, [])
        for failure in queue:
            if failure.entity_id is not None and failure.entity_id != entity_id:
                continue
            failure.remaining -= 1
            if failure.remaining <= 0:
                queue.remove(failure)
            if isinstance(failure.error, int):
                raise remote_error_from_status(failure.error, operation, "injected failure")
            raise failure.error

    async def _enter(
        self,
        operation: str,
        entity_type: EntityType,
        credential: str | None,
        entity_id: str | None = None,
        data: Mapping[str, Any] | None = None,
    ) -> EntityType:
        require_credential(credential, operation)
        entity_type = EntityType(entity_type)
        self.calls.append(StoreCall(operation, entity_type, entity_id, dict(data or {})))
        await asyncio.sleep(0)
        self._raise_injected(operation, entity_id)
        return entity_type

    def _existing(self, operation: str, entity_type: EntityType, entity_id: str) -> Entity:
        try:
            return self._lists[entity_type][entity_id]
        except KeyError:
            raise RemoteNotFoundError(
                operation, f"{entity_type.value} item {entity_id} not found"
            ) from None

    # -- RemoteListStore -----------------------------------------------------

    async def get(
        self,
        entity_type: EntityType,
        credential: str | None,
        query: QueryOptions | None = None,
    ) -> list[Entity]:
        entity_type = await self._enter("get", entity_type, credential)
        items = apply_query(self._lists[entity_type].values(), query)
        return [self._copy(e) for e in items]

    async def get_item(
        self, entity_type: EntityType, credential: str | None, entity_id: str
    ) -> Entity:
        entity_type = await self._enter("get_item", entity_type, credential, entity_id)
        return self._copy(self._existing("get_item", entity_type, entity_id))

    async def create(
        self, entity_type: EntityType, credential: str | None, data: Mapping[str, Any]
    ) -> Entity:
        entity_type = await self._enter("create", entity_type, credential, data=data)
        return self._insert(entity_type, data, "create")

    async def update(
        self,
        entity_type: EntityType,
        credential: str | None,
        entity_id: str,
        data: Mapping[str, Any],
    ) -> Entity:
        entity_type = await self._enter("update", entity_type, credential, entity_id, data)
        current = self._existing("update", entity_type, entity_id)
        updated = replace(
            current,
            fields={**current.fields, **{k: to_storable(v) for k, v in data.items()}},
            modified_by=self._actor,
            modified_at=self._clock.now(),
        )
        self._lists[entity_type][entity_id] = updated
        return self._copy(updated)

    async def delete(
        self, entity_type: EntityType, credential: str | None, entity_id: str
    ) -> None:
        entity_type = await self._enter("delete", entity_type, credential, entity_id)
        self._existing("delete", entity_type, entity_id)
        del self._lists[entity_type][entity_id]
