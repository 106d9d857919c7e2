"""
stockroom_services.sql_list_store -- A persistent local list store.

Responsibility:
    Implements ``RemoteListStore`` over the kernel's SQLAlchemy session
    scope, keeping every list in the ``list_items`` table with the item's
    fields in a JSON column.  Used for offline work and for demos that
    need data to survive a restart.

Architecture position:
    Services layer.  Depends on ``stockroom_kernel.db.engine`` for
    sessions; the engine must be initialized by the caller.

Invariants:
    - Each public method owns its transaction via ``session_scope()``.
    - Session work runs on a worker thread, one unit at a time per store,
      so the event loop never blocks on database I/O.
    - Field values are stored in their list form (Decimal and dates as
      text) and come back that way.

Failure modes:
    - Database errors surface as ``RemoteOperationError`` subclasses:
      a constraint violation as a 409, an unreachable or locked database
      as a 503, anything else as a 500.
"""

from __future__ import annotations

import asyncio
import threading
from typing import Any, Callable, Mapping, TypeVar
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from stockroom_kernel.db.engine import session_scope
from stockroom_kernel.domain.clock import Clock, SystemClock
from stockroom_kernel.domain.entities import Entity, EntityType
from stockroom_kernel.exceptions import (
    RemoteNotFoundError,
    RemoteOperationError,
    remote_error_from_status,
)
from stockroom_kernel.logging_config import get_logger
from stockroom_kernel.models.list_item import ListItemRecord
from stockroom_services.list_store import (
    ListStoreBase,
    QueryOptions,
    apply_query,
    require_credential,
    to_storable,
)

logger = get_logger("services.sql_list_store")

T = TypeVar("T")


def _to_entity(row: ListItemRecord) -> Entity:
    return Entity(
        entity_id=row.item_key,
        entity_type=EntityType(row.list_name),
        fields=dict(row.fields or {}),
        created_by=row.created_by,
        created_at=row.created_at,
        modified_by=row.modified_by,
        modified_at=row.modified_at,
    )


def database_error(operation: str, exc: SQLAlchemyError) -> RemoteOperationError:
    """Map a SQLAlchemy failure onto the remote error taxonomy."""
    detail = str(getattr(exc, "orig", None) or exc)
    if isinstance(exc, IntegrityError):
        status = 409
    elif isinstance(exc, OperationalError):
        status = 503
    else:
        status = 500
    return remote_error_from_status(status, operation, detail)


class SqlListStore(ListStoreBase):
    """List store persisted through SQLAlchemy."""

    def __init__(self, clock: Clock | None = None, actor: str = "stockroom"):
        self._clock = clock or SystemClock()
        self._actor = actor
        self._lock = threading.Lock()

    def _in_session(self, operation: str, work: Callable[[Session], T]) -> T:
        with self._lock:
            try:
                with session_scope() as session:
                    return work(session)
            except SQLAlchemyError as exc:
                logger.warning(
                    "list_store_database_error",
                    extra={"operation": operation, "exc_type": type(exc).__name__},
                )
                raise database_error(operation, exc) from exc

    async def _run(self, operation: str, work: Callable[[Session], T]) -> T:
        return await asyncio.to_thread(self._in_session, operation, work)

    @staticmethod
    def _find(
        session: Session, operation: str, entity_type: EntityType, entity_id: str
    ) -> ListItemRecord:
        row = session.execute(
            select(ListItemRecord).where(
                ListItemRecord.list_name == entity_type.value,
                ListItemRecord.item_key == entity_id,
            )
        ).scalar_one_or_none()
        if row is None:
            raise RemoteNotFoundError(
                operation, f"{entity_type.value} item {entity_id} not found"
            )
        return row

    async def get(
        self,
        entity_type: EntityType,
        credential: str | None,
        query: QueryOptions | None = None,
    ) -> list[Entity]:
        require_credential(credential, "get")
        entity_type = EntityType(entity_type)

        def work(session: Session) -> list[Entity]:
            rows = session.execute(
                select(ListItemRecord)
                .where(ListItemRecord.list_name == entity_type.value)
                .order_by(ListItemRecord.created_at, ListItemRecord.item_key)
            ).scalars()
            return [_to_entity(r) for r in rows]

        return apply_query(await self._run("get", work), query)

    async def get_item(
        self, entity_type: EntityType, credential: str | None, entity_id: str
    ) -> Entity:
        require_credential(credential, "get_item")
        entity_type = EntityType(entity_type)
        return await self._run(
            "get_item",
            lambda session: _to_entity(self._find(session, "get_item", entity_type, entity_id)),
        )

    async def create(
        self, entity_type: EntityType, credential: str | None, data: Mapping[str, Any]
    ) -> Entity:
        require_credential(credential, "create")
        entity_type = EntityType(entity_type)
        now = self._clock.now()
        row = ListItemRecord(
            list_name=entity_type.value,
            item_key=str(data.get("id") or uuid4().hex),
            fields={k: to_storable(v) for k, v in data.items() if k != "id"},
            created_at=now,
            modified_at=now,
            created_by=self._actor,
            modified_by=self._actor,
        )

        def work(session: Session) -> Entity:
            session.add(row)
            session.flush()
            return _to_entity(row)

        entity = await self._run("create", work)
        logger.debug(
            "list_item_created",
            extra={"entity_type": entity_type.value, "entity_id": entity.entity_id},
        )
        return entity

    async def update(
        self,
        entity_type: EntityType,
        credential: str | None,
        entity_id: str,
        data: Mapping[str, Any],
    ) -> Entity:
        require_credential(credential, "update")
        entity_type = EntityType(entity_type)
        changes = {k: to_storable(v) for k, v in data.items()}

        def work(session: Session) -> Entity:
            row = self._find(session, "update", entity_type, entity_id)
            # Reassign so the JSON column is marked dirty.
            row.fields = {**(row.fields or {}), **changes}
            row.modified_at = self._clock.now()
            row.modified_by = self._actor
            session.flush()
            return _to_entity(row)

        return await self._run("update", work)

    async def delete(
        self, entity_type: EntityType, credential: str | None, entity_id: str
    ) -> None:
        require_credential(credential, "delete")
        entity_type = EntityType(entity_type)

        def work(session: Session) -> None:
            session.delete(self._find(session, "delete", entity_type, entity_id))

        await self._run("delete", work)
