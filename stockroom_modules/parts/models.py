"""
Parts domain models.

Read-side views over part entities and the mapping from part list fields
to the ``partForm`` fields of the access matrix.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from types import MappingProxyType

from stockroom_kernel.domain.entities import Entity
from stockroom_kernel.domain.values import to_decimal, to_quantity

PART_FORM = "partForm"

PART_ID_PATTERN = re.compile(r"^[A-Za-z0-9\-_.]+$")
PART_ID_MIN_LENGTH = 2

# List field -> partForm field.  unit_cost maps to a different form field
# on create (unitCostCreate) and on edit (unitCostEdit).
CREATE_FIELD_MAP = MappingProxyType(
    {
        "part_id": "partId",
        "description": "description",
        "category": "category",
        "unit_cost": "unitCostCreate",
        "unit_price": "unitPrice",
        "inventory_on_hand": "inventoryOnHand",
        "status": "status",
        "supplier": "supplier",
        "notes": "notes",
    }
)

EDIT_FIELD_MAP = MappingProxyType({**CREATE_FIELD_MAP, "unit_cost": "unitCostEdit"})


@dataclass(frozen=True)
class PartWithFamily:
    """A part together with its category's family."""

    part: Entity
    family: str

    @property
    def part_id(self) -> str:
        return str(self.part.get("part_id") or "")

    @property
    def category(self) -> str:
        return str(self.part.get("category") or "")

    @property
    def inventory_on_hand(self) -> int:
        return to_quantity(self.part.get("inventory_on_hand"))


@dataclass(frozen=True)
class FamilyGroup:
    family: str
    parts: tuple[PartWithFamily, ...]

    @property
    def part_count(self) -> int:
        return len(self.parts)

    @property
    def total_inventory(self) -> int:
        return sum(p.inventory_on_hand for p in self.parts)

    @property
    def total_value(self):
        return sum(
            (p.inventory_on_hand * to_decimal(p.part.get("unit_cost")) for p in self.parts),
            to_decimal(0),
        )


@dataclass(frozen=True)
class CategoryDrift:
    """A part whose category is no longer in the category list."""

    entity_id: str
    part_id: str
    category: str
