"""
stockroom_services.inventory_validator -- Inventory consistency validator.

Responsibility:
    Decides whether a set of invoice line items can be fulfilled from the
    latest parts snapshot.  Quantities are summed per part before the
    comparison, so two lines for the same part cannot each pass on their
    own while together overselling it.

Architecture position:
    Services layer.  ``validate_inventory`` is a pure function of its
    inputs; ``InventoryValidator`` pulls the snapshot from a parts
    ``ResourceCache``.

Invariants:
    - Required quantity per part is the sum over every line item naming it.
    - A part missing from the snapshot is a hard shortage
      (``PART_NOT_FOUND``), never silently admitted.
    - Shortages are ordered by each part's first appearance in the lines.
    - No memory between calls, no reservation, no mutation of inputs.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Mapping, Sequence

from stockroom_kernel.domain.entities import Entity
from stockroom_kernel.domain.values import LineItem, to_quantity
from stockroom_kernel.exceptions import InsufficientStockError
from stockroom_kernel.logging_config import get_logger

logger = get_logger("services.inventory_validator")


class ShortageReason(str, Enum):
    INSUFFICIENT_STOCK = "INSUFFICIENT_STOCK"
    PART_NOT_FOUND = "PART_NOT_FOUND"


@dataclass(frozen=True)
class StockShortage:
    part_id: str
    required: int
    available: int
    shortage: int
    line_item_count: int
    reason: ShortageReason = ShortageReason.INSUFFICIENT_STOCK


@dataclass(frozen=True)
class InventoryValidationResult:
    shortages: tuple[StockShortage, ...] = ()
    required_by_part: Mapping[str, int] | None = None

    @property
    def is_admissible(self) -> bool:
        return not self.shortages

    def shortage_for(self, part_id: str) -> StockShortage | None:
        for shortage in self.shortages:
            if shortage.part_id == part_id:
                return shortage
        return None


def index_parts_by_part_id(parts: Iterable[Entity]) -> dict[str, Entity]:
    """Map ``part_id`` field to entity; the first row wins on duplicates."""
    index: dict[str, Entity] = {}
    for part in parts:
        key = str(part.get("part_id") or "").strip()
        if key and key not in index:
            index[key] = part
    return index


def validate_inventory(
    line_items: Sequence[LineItem], parts: Iterable[Entity]
) -> InventoryValidationResult:
    """Aggregate line items per part and compare against on-hand stock."""
    required: dict[str, int] = {}
    line_counts: dict[str, int] = {}
    for item in line_items:
        required[item.part_id] = required.get(item.part_id, 0) + item.quantity
        line_counts[item.part_id] = line_counts.get(item.part_id, 0) + 1

    by_part_id = index_parts_by_part_id(parts)
    shortages: list[StockShortage] = []
    for part_id, needed in required.items():
        part = by_part_id.get(part_id)
        if part is None:
            shortages.append(
                StockShortage(
                    part_id=part_id,
                    required=needed,
                    available=0,
                    shortage=needed,
                    line_item_count=line_counts[part_id],
                    reason=ShortageReason.PART_NOT_FOUND,
                )
            )
            continue
        available = to_quantity(part.get("inventory_on_hand"))
        if needed > available:
            shortages.append(
                StockShortage(
                    part_id=part_id,
                    required=needed,
                    available=available,
                    shortage=needed - available,
                    line_item_count=line_counts[part_id],
                )
            )

    result = InventoryValidationResult(
        shortages=tuple(shortages), required_by_part=dict(required)
    )
    if shortages:
        logger.info(
            "inventory_validation_failed",
            extra={
                "line_item_count": len(line_items),
                "part_count": len(required),
                "shortage_parts": [s.part_id for s in shortages],
            },
        )
    return result


def ensure_admissible(result: InventoryValidationResult) -> None:
    if not result.is_admissible:
        raise InsufficientStockError(result.shortages)


class InventoryValidator:
    """Validates line items against a parts cache's latest snapshot."""

    def __init__(self, parts_cache):
        self._parts = parts_cache

    def validate(self, line_items: Sequence[LineItem]) -> InventoryValidationResult:
        return validate_inventory(line_items, self._parts.items)

    async def validate_fresh(self, line_items: Sequence[LineItem]) -> InventoryValidationResult:
        """Reload the parts collection, then validate against it."""
        parts = await self._parts.refresh()
        return validate_inventory(line_items, parts)
