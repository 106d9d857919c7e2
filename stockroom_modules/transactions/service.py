"""
Stock Movement Service (``stockroom_modules.transactions.service``).

Responsibility
--------------
Records one stock movement: a row on the transactions list plus the
matching change to the part's ``inventory_on_hand``.  This is the only
write path for stock levels.

Pricing fields by movement type
-------------------------------
- ``In (Received)``    -- unit_cost (defaults to the part's), supplier
- ``Out (Sold)``       -- unit_price, unit_cost, invoice, buyer
- ``Void adjustment``  -- invoice, buyer
- ``Adjustment``       -- signed quantity, notes only

Invariants
----------
- Stock never goes below zero: an outbound movement or negative
  adjustment that would overdraw the part is rejected before any remote
  write, with an ``InsufficientStockError``.
- The part is re-read from the store before the new level is computed,
  so a stale parts cache cannot overwrite a newer stock level.
- The transaction row is written before the part's stock level.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from stockroom_kernel.domain.entities import Entity
from stockroom_kernel.domain.values import MovementType, to_decimal, to_quantity
from stockroom_kernel.exceptions import (
    InsufficientStockError,
    InvalidFieldValueError,
    RemoteNotFoundError,
)
from stockroom_kernel.logging_config import get_logger
from stockroom_services.access_control import AccessControl, default_access_control
from stockroom_services.collaborators import IdentityProvider
from stockroom_services.inventory_validator import StockShortage, index_parts_by_part_id
from stockroom_services.resource_cache import CacheStatus, ResourceCache

logger = get_logger("modules.transactions.service")

TRANSACTIONS_COMPONENT = "transactions"


@dataclass(frozen=True)
class MovementResult:
    transaction: Entity
    part: Entity
    previous_on_hand: int
    new_on_hand: int

    @property
    def delta(self) -> int:
        return self.new_on_hand - self.previous_on_hand


def movement_delta(movement: MovementType, quantity: int) -> int:
    if movement is MovementType.SOLD:
        return -quantity
    return quantity


class StockMovementService:
    """Writes transactions and keeps part stock levels in step with them."""

    def __init__(
        self,
        transactions: ResourceCache,
        parts: ResourceCache,
        identity: IdentityProvider,
        access: AccessControl | None = None,
    ):
        self._transactions = transactions
        self._parts = parts
        self._identity = identity
        self._access = access or default_access_control()

    async def _find_part(self, part_id: str) -> Entity:
        """The part as the store holds it now, not as the cache last saw it."""
        if self._parts.state.status is CacheStatus.IDLE:
            await self._parts.load()
            part = index_parts_by_part_id(self._parts.items).get(part_id)
        else:
            part = index_parts_by_part_id(self._parts.items).get(part_id)
            if part is not None:
                try:
                    return await self._parts.reload_item(part.entity_id)
                except RemoteNotFoundError:
                    part = None
            if part is None:
                await self._parts.refresh()
                part = index_parts_by_part_id(self._parts.items).get(part_id)
        if part is None:
            raise InvalidFieldValueError("part_id", f"Part {part_id} not found")
        return part

    def _payload(
        self,
        movement: MovementType,
        part: Entity,
        part_id: str,
        quantity: int,
        *,
        unit_cost: Any,
        unit_price: Any,
        invoice: str | None,
        buyer: str | None,
        supplier: str | None,
        notes: str | None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "part_id": part_id,
            "movement_type": movement,
            "quantity": quantity,
            "notes": notes or "",
        }
        if movement is MovementType.RECEIVED:
            payload["unit_cost"] = to_decimal(
                unit_cost if unit_cost is not None else part.get("unit_cost")
            )
            payload["supplier"] = supplier or ""
        elif movement is MovementType.SOLD:
            payload["unit_price"] = to_decimal(
                unit_price if unit_price is not None else part.get("unit_price")
            )
            payload["unit_cost"] = to_decimal(
                unit_cost if unit_cost is not None else part.get("unit_cost")
            )
            payload["invoice"] = invoice or ""
            payload["buyer"] = buyer or ""
        elif movement is MovementType.VOID_ADJUSTMENT:
            payload["invoice"] = invoice or ""
            payload["buyer"] = buyer or ""
        return payload

    async def record_movement(
        self,
        part_id: str,
        movement_type: MovementType | str,
        quantity: int,
        *,
        unit_cost: Decimal | str | None = None,
        unit_price: Decimal | str | None = None,
        invoice: str | None = None,
        buyer: str | None = None,
        supplier: str | None = None,
        notes: str | None = None,
    ) -> MovementResult:
        self._access.require_action(
            self._identity.current_role(), TRANSACTIONS_COMPONENT, "create"
        )
        movement = MovementType(movement_type)
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            raise InvalidFieldValueError("quantity", "must be a whole number")
        if movement is MovementType.ADJUSTMENT:
            if quantity == 0:
                raise InvalidFieldValueError("quantity", "adjustment must not be zero")
        elif quantity <= 0:
            raise InvalidFieldValueError("quantity", "must be greater than 0")

        part = await self._find_part(part_id)
        previous = to_quantity(part.get("inventory_on_hand"))
        new_on_hand = previous + movement_delta(movement, quantity)
        if new_on_hand < 0:
            needed = previous - new_on_hand
            raise InsufficientStockError(
                (
                    StockShortage(
                        part_id=part_id,
                        required=needed,
                        available=previous,
                        shortage=-new_on_hand,
                        line_item_count=1,
                    ),
                )
            )

        payload = self._payload(
            movement,
            part,
            part_id,
            quantity,
            unit_cost=unit_cost,
            unit_price=unit_price,
            invoice=invoice,
            buyer=buyer,
            supplier=supplier,
            notes=notes,
        )
        transaction = await self._transactions.create(payload)
        updated_part = await self._parts.update(
            part.entity_id, {"inventory_on_hand": new_on_hand}
        )

        logger.info(
            "stock_movement_recorded",
            extra={
                "part_id": part_id,
                "movement_type": movement.value,
                "quantity": quantity,
                "previous_on_hand": previous,
                "new_on_hand": new_on_hand,
                "transaction_id": transaction.entity_id,
            },
        )
        return MovementResult(
            transaction=transaction,
            part=part.merged(updated_part),
            previous_on_hand=previous,
            new_on_hand=new_on_hand,
        )
