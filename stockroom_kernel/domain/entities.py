"""
Entity -- one item of a remote list.

Responsibility:
    The in-memory representation of a part, category, buyer, invoice, or
    transaction.  Stores hand out fresh Entity objects on every read, and
    each cache instance holds its own copies; no two caches share one.

Architecture position:
    Kernel > Domain -- pure value type, zero I/O.

Invariants enforced:
    - Entities are frozen; ``fields`` is a read-only mapping.
    - ``merged()`` never changes ``entity_id`` or ``entity_type``.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum, unique
from types import MappingProxyType
from typing import Any, Mapping


@unique
class EntityType(str, Enum):
    """The remote lists the application works against."""

    PARTS = "parts"
    CATEGORIES = "categories"
    BUYERS = "buyers"
    INVOICES = "invoices"
    TRANSACTIONS = "transactions"

    @property
    def singular(self) -> str:
        return _SINGULAR[self]


_SINGULAR: dict[EntityType, str] = {
    EntityType.PARTS: "part",
    EntityType.CATEGORIES: "category",
    EntityType.BUYERS: "buyer",
    EntityType.INVOICES: "invoice",
    EntityType.TRANSACTIONS: "transaction",
}


def _freeze(fields: Mapping[str, Any]) -> Mapping[str, Any]:
    if isinstance(fields, MappingProxyType):
        return fields
    return MappingProxyType(dict(fields))


@dataclass(frozen=True)
class Entity:
    """A list item with a stable identifier, typed fields, and provenance."""

    entity_id: str
    entity_type: EntityType
    fields: Mapping[str, Any] = field(default_factory=dict)
    created_by: str | None = None
    created_at: datetime | None = None
    modified_by: str | None = None
    modified_at: datetime | None = None

    def __post_init__(self) -> None:
        if not self.entity_id:
            raise ValueError("entity_id must be non-empty")
        object.__setattr__(self, "entity_type", EntityType(self.entity_type))
        object.__setattr__(self, "fields", _freeze(self.fields))

    def get(self, name: str, default: Any = None) -> Any:
        return self.fields.get(name, default)

    def __getitem__(self, name: str) -> Any:
        return self.fields[name]

    def merged(self, other: Entity | Mapping[str, Any]) -> Entity:
        """Return a copy with ``other``'s fields (and provenance) laid over ours."""
        if isinstance(other, Entity):
            combined = {**self.fields, **other.fields}
            return replace(
                self,
                fields=combined,
                modified_by=other.modified_by or self.modified_by,
                modified_at=other.modified_at or self.modified_at,
            )
        return replace(self, fields={**self.fields, **other})

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.entity_id,
            "entity_type": self.entity_type.value,
            **self.fields,
            "created_by": self.created_by,
            "created_at": self.created_at,
            "modified_by": self.modified_by,
            "modified_at": self.modified_at,
        }
