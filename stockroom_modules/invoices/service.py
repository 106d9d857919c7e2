"""
Invoice Module Service (``stockroom_modules.invoices.service``).

Responsibility
--------------
Finalizes invoices against live stock and voids them again.  Finalizing
is the one multi-list write in the application: an invoice row, then one
``Out (Sold)`` movement per line item.

Finalize sequence
-----------------
1. Permission: ``invoices.create`` plus the invoice form fields written.
2. Input: buyer present, at least one line item, every quantity > 0.
3. Refresh the parts cache and validate the aggregated line items
   against it.  Any shortage raises ``InsufficientStockError`` and
   nothing is written.
4. Create the invoice with status ``Finalized``.
5. Record one ``Out (Sold)`` movement per line item.

Void sequence
-------------
``invoices.void`` (Admin) is required.  Only ``Finalized`` or ``Paid``
invoices may be voided.  Each ``Out (Sold)`` transaction of the invoice
is offset with a ``Void adjustment`` that restores the stock, then the
invoice status becomes ``Void``.

Failure Modes
-------------
- Validation and permission failures are raised before any write.
- A remote failure during step 5 leaves the invoice finalized with the
  movements recorded so far; the error is recorded by the failing cache
  and re-raised.  There is no automatic rollback.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Mapping, Sequence

from stockroom_kernel.domain.clock import Clock, SystemClock
from stockroom_kernel.domain.entities import Entity
from stockroom_kernel.domain.values import InvoiceStatus, LineItem, MovementType, to_quantity
from stockroom_kernel.exceptions import (
    InvalidFieldValueError,
    InvalidLineItemError,
    InvoiceStateError,
)
from stockroom_kernel.logging_config import get_logger
from stockroom_modules.transactions.service import MovementResult, StockMovementService
from stockroom_services.access_control import AccessControl, default_access_control
from stockroom_services.collaborators import IdentityProvider
from stockroom_services.inventory_validator import (
    InventoryValidationResult,
    InventoryValidator,
    ensure_admissible,
)
from stockroom_services.resource_cache import ResourceCache

logger = get_logger("modules.invoices.service")

INVOICES_COMPONENT = "invoices"
INVOICE_FORM = "invoiceForm"
FINALIZE_FIELDS = ("buyer", "invoiceDate", "notes", "lineItems", "finalizeInvoice")
VOIDABLE_STATUSES = frozenset({InvoiceStatus.FINALIZED.value, InvoiceStatus.PAID.value})


@dataclass(frozen=True)
class InvoiceTotals:
    subtotal: Decimal
    line_count: int
    total_quantity: int

    @property
    def total(self) -> Decimal:
        return self.subtotal


def calculate_totals(line_items: Sequence[LineItem]) -> InvoiceTotals:
    return InvoiceTotals(
        subtotal=sum((item.line_total for item in line_items), Decimal("0")),
        line_count=len(line_items),
        total_quantity=sum(item.quantity for item in line_items),
    )


@dataclass(frozen=True)
class FinalizedInvoice:
    invoice: Entity
    movements: tuple[MovementResult, ...]
    totals: InvoiceTotals
    validation: InventoryValidationResult


@dataclass(frozen=True)
class VoidedInvoice:
    invoice: Entity
    movements: tuple[MovementResult, ...]


class InvoiceService:
    """Invoice finalization and voiding."""

    def __init__(
        self,
        invoices: ResourceCache,
        parts: ResourceCache,
        transactions: ResourceCache,
        movements: StockMovementService,
        identity: IdentityProvider,
        access: AccessControl | None = None,
        clock: Clock | None = None,
    ):
        self._invoices = invoices
        self._parts = parts
        self._transactions = transactions
        self._movements = movements
        self._identity = identity
        self._access = access or default_access_control()
        self._clock = clock or SystemClock()
        self._validator = InventoryValidator(parts)

    def generate_invoice_number(self) -> str:
        return self._clock.now().strftime("INV-%Y%m%d-%H%M%S")

    def _check_line_items(self, line_items: Sequence[LineItem]) -> None:
        if not line_items:
            raise InvalidFieldValueError("line_items", "At least one line item is required")
        for item in line_items:
            if item.quantity <= 0:
                raise InvalidLineItemError(item.part_id, "Quantity must be greater than 0")

    async def finalize_invoice(
        self, invoice_data: Mapping[str, Any], line_items: Sequence[LineItem]
    ) -> FinalizedInvoice:
        role = self._identity.current_role()
        self._access.require_action(role, INVOICES_COMPONENT, "create")
        self._access.require_fields(role, INVOICE_FORM, FINALIZE_FIELDS)

        buyer = str(invoice_data.get("buyer") or "").strip()
        if not buyer:
            raise InvalidFieldValueError("buyer", "Buyer selection is required")
        self._check_line_items(line_items)

        validation = await self._validator.validate_fresh(line_items)
        ensure_admissible(validation)

        totals = calculate_totals(line_items)
        invoice_number = (
            str(invoice_data.get("invoice_number") or "").strip()
            or self.generate_invoice_number()
        )
        payload = {
            **invoice_data,
            "invoice_number": invoice_number,
            "buyer": buyer,
            "invoice_date": invoice_data.get("invoice_date") or self._clock.now().date(),
            "total_amount": totals.subtotal,
            "status": InvoiceStatus.FINALIZED,
            "line_items": [
                {
                    "part_id": item.part_id,
                    "quantity": item.quantity,
                    "unit_price": str(item.unit_price),
                }
                for item in line_items
            ],
        }
        invoice = await self._invoices.create(payload)

        movements = []
        for item in line_items:
            movements.append(
                await self._movements.record_movement(
                    item.part_id,
                    MovementType.SOLD,
                    item.quantity,
                    unit_price=item.unit_price,
                    invoice=invoice_number,
                    buyer=buyer,
                    notes=f"Sale - Invoice {invoice_number}",
                )
            )

        logger.info(
            "invoice_finalized",
            extra={
                "invoice_number": invoice_number,
                "entity_id": invoice.entity_id,
                "line_count": totals.line_count,
                "total_amount": totals.subtotal,
            },
        )
        return FinalizedInvoice(
            invoice=invoice,
            movements=tuple(movements),
            totals=totals,
            validation=validation,
        )

    async def void_invoice(self, entity_id: str) -> VoidedInvoice:
        role = self._identity.current_role()
        self._access.require_action(role, INVOICES_COMPONENT, "void")

        await self._invoices.refresh()
        invoice = self._invoices.find(entity_id)
        if invoice is None:
            raise InvoiceStateError(entity_id, None, f"Invoice {entity_id} not found")
        status = str(invoice.get("status") or "")
        if status == InvoiceStatus.VOID.value:
            raise InvoiceStateError(entity_id, status, "Invoice is already voided")
        if status not in VOIDABLE_STATUSES:
            raise InvoiceStateError(
                entity_id, status, f"Cannot void invoice with status {status or 'unknown'}"
            )

        invoice_number = str(invoice.get("invoice_number") or entity_id)
        await self._transactions.refresh()
        sold = [
            t
            for t in self._transactions.items
            if t.get("invoice") == invoice_number
            and t.get("movement_type") == MovementType.SOLD.value
        ]
        if not sold:
            raise InvoiceStateError(
                entity_id, status, f"No transactions found for invoice {invoice_number}"
            )

        movements = []
        for transaction in sold:
            movements.append(
                await self._movements.record_movement(
                    str(transaction.get("part_id")),
                    MovementType.VOID_ADJUSTMENT,
                    to_quantity(transaction.get("quantity")),
                    invoice=invoice_number,
                    buyer=str(invoice.get("buyer") or ""),
                    notes=f"Void adjustment - Invoice {invoice_number} voided",
                )
            )

        updated = await self._invoices.update(entity_id, {"status": InvoiceStatus.VOID})
        logger.info(
            "invoice_voided",
            extra={
                "invoice_number": invoice_number,
                "entity_id": entity_id,
                "offset_count": len(movements),
            },
        )
        return VoidedInvoice(invoice=invoice.merged(updated), movements=tuple(movements))
