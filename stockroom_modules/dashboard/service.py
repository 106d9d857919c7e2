"""
Dashboard summary (``stockroom_modules.dashboard.service``).

Pure aggregation over the parts and invoices snapshots, plus a thin async
wrapper that loads the caches it needs first.

Definitions
-----------
- Inventory value: sum of ``inventory_on_hand * unit_cost``.
- Low stock: ``0 < inventory_on_hand <= low_stock_threshold``.
- Out of stock: ``inventory_on_hand == 0``.
- Revenue: sum of ``total_amount`` over ``Paid`` and ``Finalized`` invoices.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Iterable

from stockroom_kernel.domain.entities import Entity
from stockroom_kernel.domain.values import (
    REVENUE_STATUSES,
    UNKNOWN_FAMILY,
    InvoiceStatus,
    to_decimal,
    to_quantity,
)
from stockroom_kernel.logging_config import get_logger
from stockroom_services.category_cache import CategoryFamilyCache
from stockroom_services.resource_cache import ResourceCache

logger = get_logger("modules.dashboard.service")

_REVENUE_VALUES = frozenset(s.value for s in REVENUE_STATUSES)


@dataclass(frozen=True)
class FamilyStat:
    family: str
    part_count: int
    total_units: int
    total_value: Decimal


@dataclass(frozen=True)
class InventorySummary:
    total_parts: int
    total_units: int
    inventory_value: Decimal
    low_stock_count: int
    out_of_stock_count: int
    low_stock_part_ids: tuple[str, ...]
    out_of_stock_part_ids: tuple[str, ...]
    families: tuple[FamilyStat, ...]
    total_invoices: int
    draft_invoices: int
    paid_invoices: int
    total_revenue: Decimal


def build_inventory_summary(
    parts: Iterable[Entity],
    invoices: Iterable[Entity] = (),
    family_of: Callable[[object], str] | None = None,
    low_stock_threshold: int = 5,
) -> InventorySummary:
    parts = list(parts)
    invoices = list(invoices)
    resolve = family_of or (lambda _category: UNKNOWN_FAMILY)

    total_units = 0
    value = Decimal("0")
    low: list[str] = []
    out: list[str] = []
    families: dict[str, list] = {}
    for part in parts:
        on_hand = to_quantity(part.get("inventory_on_hand"))
        part_value = on_hand * to_decimal(part.get("unit_cost"))
        total_units += on_hand
        value += part_value
        part_id = str(part.get("part_id") or part.entity_id)
        if on_hand == 0:
            out.append(part_id)
        elif on_hand <= low_stock_threshold:
            low.append(part_id)

        stat = families.setdefault(resolve(part.get("category")), [0, 0, Decimal("0")])
        stat[0] += 1
        stat[1] += on_hand
        stat[2] += part_value

    revenue = sum(
        (
            to_decimal(inv.get("total_amount"))
            for inv in invoices
            if inv.get("status") in _REVENUE_VALUES
        ),
        Decimal("0"),
    )

    return InventorySummary(
        total_parts=len(parts),
        total_units=total_units,
        inventory_value=value,
        low_stock_count=len(low),
        out_of_stock_count=len(out),
        low_stock_part_ids=tuple(low),
        out_of_stock_part_ids=tuple(out),
        families=tuple(
            FamilyStat(family=f, part_count=s[0], total_units=s[1], total_value=s[2])
            for f, s in sorted(families.items())
        ),
        total_invoices=len(invoices),
        draft_invoices=sum(1 for i in invoices if i.get("status") == InvoiceStatus.DRAFT.value),
        paid_invoices=sum(1 for i in invoices if i.get("status") == InvoiceStatus.PAID.value),
        total_revenue=revenue,
    )


class DashboardService:
    def __init__(
        self,
        parts: ResourceCache,
        invoices: ResourceCache,
        categories: CategoryFamilyCache,
        low_stock_threshold: int = 5,
    ):
        self._parts = parts
        self._invoices = invoices
        self._categories = categories
        self._threshold = low_stock_threshold

    async def summary(self) -> InventorySummary:
        """Load parts, invoices and categories concurrently, then summarize."""
        await asyncio.gather(
            self._parts.load(), self._invoices.load(), self._categories.load()
        )
        result = build_inventory_summary(
            self._parts.items,
            self._invoices.items,
            family_of=self._categories.get_family_by_category,
            low_stock_threshold=self._threshold,
        )
        logger.info(
            "dashboard_summary_built",
            extra={
                "total_parts": result.total_parts,
                "low_stock_count": result.low_stock_count,
                "out_of_stock_count": result.out_of_stock_count,
            },
        )
        return result
