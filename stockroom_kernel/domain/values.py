"""
Value objects shared by the inventory validator and the module services.

LineItem, movement types, invoice statuses, and the stock helpers that
read ``inventory_on_hand`` off a part entity.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum, unique
from typing import Any

from stockroom_kernel.exceptions import InvalidLineItemError

UNCATEGORIZED = "Uncategorized"
UNKNOWN_FAMILY = "Unknown Family"


@unique
class MovementType(str, Enum):
    """Stock movement types recorded on the transactions list."""

    RECEIVED = "In (Received)"
    SOLD = "Out (Sold)"
    ADJUSTMENT = "Adjustment"
    VOID_ADJUSTMENT = "Void adjustment"

    @property
    def is_outbound(self) -> bool:
        return self is MovementType.SOLD


@unique
class InvoiceStatus(str, Enum):
    DRAFT = "Draft"
    FINALIZED = "Finalized"
    PAID = "Paid"
    VOID = "Void"


# Invoices in these states have moved stock and count as revenue.
REVENUE_STATUSES: frozenset[InvoiceStatus] = frozenset(
    {InvoiceStatus.FINALIZED, InvoiceStatus.PAID}
)


def to_decimal(value: Any, default: Decimal = Decimal("0")) -> Decimal:
    """Coerce a list field to Decimal; blanks and junk become ``default``."""
    if value is None or value == "":
        return default
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return default


def to_quantity(value: Any) -> int:
    """Coerce a list field to an int quantity; blanks and junk become 0."""
    if value is None or value == "":
        return 0
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    try:
        return int(Decimal(str(value)))
    except (InvalidOperation, ValueError):
        return 0


@dataclass(frozen=True)
class LineItem:
    """One invoice line: a part, a quantity and a unit price."""

    part_id: str
    quantity: int
    unit_price: Decimal = Decimal("0")

    def __post_init__(self) -> None:
        if not self.part_id or not str(self.part_id).strip():
            raise InvalidLineItemError(str(self.part_id), "part is required")
        if isinstance(self.quantity, bool) or not isinstance(self.quantity, int):
            raise InvalidLineItemError(self.part_id, "quantity must be a whole number")
        if self.quantity < 0:
            raise InvalidLineItemError(self.part_id, "quantity must not be negative")
        price = self.unit_price
        if not isinstance(price, Decimal):
            try:
                price = Decimal(str(price))
            except (InvalidOperation, ValueError):
                raise InvalidLineItemError(self.part_id, "unit price must be a number")
            object.__setattr__(self, "unit_price", price)
        if price < 0:
            raise InvalidLineItemError(self.part_id, "unit price must not be negative")

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity
