"""Tests for the inventory consistency validator."""

import asyncio
from decimal import Decimal

import pytest

from stockroom_kernel.domain.entities import Entity, EntityType
from stockroom_kernel.domain.values import LineItem
from stockroom_kernel.exceptions import InsufficientStockError, InvalidLineItemError
from stockroom_services.inventory_validator import (
    InventoryValidator,
    ShortageReason,
    ensure_admissible,
    index_parts_by_part_id,
    validate_inventory,
)


def _part(entity_id: str, part_id: str, on_hand) -> Entity:
    return Entity(
        entity_id=entity_id,
        entity_type=EntityType.PARTS,
        fields={"part_id": part_id, "inventory_on_hand": on_hand},
    )


PARTS = (_part("1", "A", 5), _part("2", "B", 10), _part("3", "C", 0))


class TestValidateInventory:
    def test_quantities_aggregated_per_part(self):
        result = validate_inventory([LineItem("A", 3), LineItem("A", 4)], PARTS)

        assert not result.is_admissible
        [shortage] = result.shortages
        assert shortage.part_id == "A"
        assert shortage.required == 7
        assert shortage.available == 5
        assert shortage.shortage == 2
        assert shortage.line_item_count == 2
        assert shortage.reason is ShortageReason.INSUFFICIENT_STOCK

    def test_each_line_alone_would_pass(self):
        assert validate_inventory([LineItem("A", 3)], PARTS).is_admissible
        assert validate_inventory([LineItem("A", 4)], PARTS).is_admissible

    def test_exact_stock_is_admissible(self):
        result = validate_inventory([LineItem("A", 2), LineItem("A", 3), LineItem("B", 10)], PARTS)
        assert result.is_admissible
        assert result.required_by_part == {"A": 5, "B": 10}

    def test_unknown_part_is_a_shortage(self):
        result = validate_inventory([LineItem("Z", 1)], PARTS)
        [shortage] = result.shortages
        assert shortage.reason is ShortageReason.PART_NOT_FOUND
        assert shortage.available == 0
        assert shortage.shortage == 1

    def test_shortages_in_first_appearance_order(self):
        lines = [LineItem("C", 1), LineItem("B", 1), LineItem("A", 9), LineItem("C", 1)]
        result = validate_inventory(lines, PARTS)
        assert [s.part_id for s in result.shortages] == ["C", "A"]
        assert result.shortage_for("C").required == 2
        assert result.shortage_for("B") is None

    def test_empty_line_items_admissible(self):
        assert validate_inventory([], PARTS).is_admissible

    def test_string_stock_levels_coerced(self):
        parts = (_part("1", "A", "4"),)
        assert validate_inventory([LineItem("A", 4)], parts).is_admissible
        assert not validate_inventory([LineItem("A", 5)], parts).is_admissible

    def test_duplicate_part_rows_first_wins(self):
        parts = (_part("1", "A", 1), _part("2", "A", 100))
        assert index_parts_by_part_id(parts)["A"].entity_id == "1"
        assert not validate_inventory([LineItem("A", 2)], parts).is_admissible

    def test_inputs_not_mutated(self):
        lines = [LineItem("A", 3)]
        parts = list(PARTS)
        validate_inventory(lines, parts)
        assert lines == [LineItem("A", 3)]
        assert parts == list(PARTS)

    def test_failure_logged(self, captured_logs):
        validate_inventory([LineItem("A", 6)], PARTS)
        records = [r for r in captured_logs() if r["message"] == "inventory_validation_failed"]
        assert records[0]["shortage_parts"] == ["A"]


class TestEnsureAdmissible:
    def test_raises_with_shortages(self):
        result = validate_inventory([LineItem("A", 3), LineItem("A", 4)], PARTS)
        with pytest.raises(InsufficientStockError) as exc_info:
            ensure_admissible(result)
        assert exc_info.value.shortages == result.shortages
        assert "A" in str(exc_info.value)

    def test_passes_when_admissible(self):
        ensure_admissible(validate_inventory([LineItem("B", 1)], PARTS))


class TestLineItem:
    def test_price_coerced_to_decimal(self):
        item = LineItem("A", 2, "4.50")
        assert item.unit_price == Decimal("4.50")
        assert item.line_total == Decimal("9.00")

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"part_id": "", "quantity": 1},
            {"part_id": "A", "quantity": -1},
            {"part_id": "A", "quantity": 1.5},
            {"part_id": "A", "quantity": True},
            {"part_id": "A", "quantity": 1, "unit_price": "-2"},
            {"part_id": "A", "quantity": 1, "unit_price": "abc"},
        ],
    )
    def test_invalid_line_items_rejected(self, kwargs):
        with pytest.raises(InvalidLineItemError):
            LineItem(**kwargs)


class TestInventoryValidator:
    def test_validate_fresh_refreshes_snapshot(self, parts_cache, store):
        validator = InventoryValidator(parts_cache)
        asyncio.run(parts_cache.load())
        asyncio.run(store.update(EntityType.PARTS, "token", "1", {"inventory_on_hand": 1}))

        assert validator.validate([LineItem("BP-100", 3)]).is_admissible
        assert not asyncio.run(validator.validate_fresh([LineItem("BP-100", 3)])).is_admissible
        assert len(store.calls_for("get")) == 2
