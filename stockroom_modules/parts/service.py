"""
Parts Module Service (``stockroom_modules.parts.service``).

Responsibility
--------------
Write-side rules for the parts list and the family-enriched read views.
Composes the parts ``ResourceCache``, the ``CategoryFamilyCache`` and the
access control engine.  Stock levels are never written here; they change
only through ``StockMovementService``.

Invariants
----------
- Every rule is checked before the remote call: action and field
  permissions, Part ID format and uniqueness, category membership.
- ``inventory_on_hand`` is set once at creation and rejected on update.

Failure Modes
-------------
- ``PermissionDeniedError``  -- role lacks the action or a written field.
- ``InvalidFieldValueError`` -- malformed Part ID, negative amounts, or a
  stock change attempted through update.
- ``DuplicateIdentifierError`` -- Part ID already used (case-insensitive).
- ``InvalidCategoryError`` -- category not in the category list.
- Remote failures propagate from the cache after being recorded there.

Usage::

    service = PartsService(parts_cache, category_cache, identity)
    part = await service.create_part({"part_id": "BR-100", "category": "Brakes"})
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Mapping, Sequence

from stockroom_kernel.domain.entities import Entity
from stockroom_kernel.domain.values import UNCATEGORIZED, UNKNOWN_FAMILY, to_decimal
from stockroom_kernel.exceptions import (
    DuplicateIdentifierError,
    InvalidCategoryError,
    InvalidFieldValueError,
)
from stockroom_kernel.logging_config import get_logger
from stockroom_modules.parts.models import (
    CREATE_FIELD_MAP,
    EDIT_FIELD_MAP,
    PART_FORM,
    PART_ID_MIN_LENGTH,
    PART_ID_PATTERN,
    CategoryDrift,
    FamilyGroup,
    PartWithFamily,
)
from stockroom_services.access_control import AccessControl, default_access_control
from stockroom_services.category_cache import CategoryFamilyCache
from stockroom_services.collaborators import IdentityProvider
from stockroom_services.list_store import DeleteReport
from stockroom_services.resource_cache import CacheStatus, ResourceCache

logger = get_logger("modules.parts.service")

PARTS_COMPONENT = "parts"


def validate_part_id(value: Any) -> str:
    part_id = str(value or "").strip()
    if not part_id:
        raise InvalidFieldValueError("part_id", "Part ID is required")
    if len(part_id) < PART_ID_MIN_LENGTH:
        raise InvalidFieldValueError(
            "part_id", f"Part ID must be at least {PART_ID_MIN_LENGTH} characters"
        )
    if not PART_ID_PATTERN.match(part_id):
        raise InvalidFieldValueError(
            "part_id",
            "Part ID can only contain letters, numbers, hyphens, underscores, and periods",
        )
    return part_id


def _non_negative_amount(name: str, value: Any) -> Decimal:
    amount = to_decimal(value, default=Decimal("-1"))
    if amount < 0:
        raise InvalidFieldValueError(name, "must be a non-negative number")
    return amount


class PartsService:
    """Part creation, editing and family-aware queries."""

    def __init__(
        self,
        parts: ResourceCache,
        categories: CategoryFamilyCache,
        identity: IdentityProvider,
        access: AccessControl | None = None,
    ):
        self._parts = parts
        self._categories = categories
        self._identity = identity
        self._access = access or default_access_control()
        self._settings = self._access.policy.settings

    async def _ensure_parts_loaded(self) -> tuple[Entity, ...]:
        if self._parts.state.status is CacheStatus.IDLE:
            await self._parts.load()
        return self._parts.items

    def _check_duplicate(self, parts: Sequence[Entity], part_id: str, exclude: str | None) -> None:
        wanted = part_id.casefold()
        for part in parts:
            if part.entity_id == exclude:
                continue
            if str(part.get("part_id") or "").strip().casefold() == wanted:
                raise DuplicateIdentifierError("Part ID", part_id)

    async def _check_category(self, category: Any) -> str:
        name = str(category or "").strip()
        await self._categories.load()
        if not self._categories.validate_category(name):
            raise InvalidCategoryError(name)
        return name

    def _normalize_amounts(self, payload: dict[str, Any]) -> None:
        for name in ("unit_cost", "unit_price"):
            if name in payload:
                payload[name] = _non_negative_amount(name, payload[name])

    async def create_part(self, data: Mapping[str, Any]) -> Entity:
        role = self._identity.current_role()
        self._access.require_action(role, PARTS_COMPONENT, "create")
        self._access.require_fields(
            role, PART_FORM, [CREATE_FIELD_MAP[k] for k in data if k in CREATE_FIELD_MAP]
        )

        payload = dict(data)
        payload["part_id"] = validate_part_id(payload.get("part_id"))

        if str(payload.get("category") or "").strip():
            payload["category"] = await self._check_category(payload["category"])
        else:
            payload["category"] = self._settings.default_part_category or UNCATEGORIZED

        payload.setdefault("status", self._settings.default_part_status)
        on_hand = payload.get("inventory_on_hand", 0)
        if isinstance(on_hand, bool) or not isinstance(on_hand, int) or on_hand < 0:
            raise InvalidFieldValueError(
                "inventory_on_hand", "must be a non-negative whole number"
            )
        payload["inventory_on_hand"] = on_hand
        self._normalize_amounts(payload)

        parts = await self._ensure_parts_loaded()
        self._check_duplicate(parts, payload["part_id"], exclude=None)

        created = await self._parts.create(payload)
        logger.info(
            "part_created",
            extra={"entity_id": created.entity_id, "part_id": payload["part_id"]},
        )
        return created

    async def update_part(self, entity_id: str, data: Mapping[str, Any]) -> Entity:
        role = self._identity.current_role()
        self._access.require_action(role, PARTS_COMPONENT, "edit")
        if "inventory_on_hand" in data:
            raise InvalidFieldValueError(
                "inventory_on_hand",
                "stock levels change only through inventory movements",
            )
        self._access.require_fields(
            role, PART_FORM, [EDIT_FIELD_MAP[k] for k in data if k in EDIT_FIELD_MAP]
        )

        payload = dict(data)
        if "part_id" in payload:
            payload["part_id"] = validate_part_id(payload["part_id"])
            parts = await self._ensure_parts_loaded()
            self._check_duplicate(parts, payload["part_id"], exclude=entity_id)
        if "category" in payload:
            payload["category"] = await self._check_category(payload["category"])
        self._normalize_amounts(payload)

        updated = await self._parts.update(entity_id, payload)
        logger.info("part_updated", extra={"entity_id": entity_id, "fields": sorted(payload)})
        return updated

    async def delete_parts(self, entity_ids: Sequence[str]) -> DeleteReport:
        """Delete one part or many.  Several ids require the bulk delete operation."""
        role = self._identity.current_role()
        self._access.require_action(role, PARTS_COMPONENT, "delete")
        ids = list(dict.fromkeys(entity_ids))
        if len(ids) > 1:
            self._access.require_bulk_operation(role, "delete")
        return await self._parts.delete_multiple(ids)

    # -- family-aware reads ---------------------------------------------------

    async def parts_with_family(self) -> tuple[PartWithFamily, ...]:
        await self._categories.load()
        parts = await self._ensure_parts_loaded()
        return tuple(
            PartWithFamily(
                part=p, family=self._categories.get_family_by_category(p.get("category"))
            )
            for p in parts
        )

    async def parts_grouped_by_family(self) -> tuple[FamilyGroup, ...]:
        groups: dict[str, list[PartWithFamily]] = {}
        for view in await self.parts_with_family():
            groups.setdefault(view.family, []).append(view)
        return tuple(
            FamilyGroup(family=family, parts=tuple(groups[family]))
            for family in sorted(groups, key=lambda f: (f == UNKNOWN_FAMILY, f))
        )

    async def search_parts(self, term: str) -> tuple[PartWithFamily, ...]:
        """Match Part ID, description, category or family; short terms match nothing."""
        needle = (term or "").strip().casefold()
        if len(needle) < self._settings.search_min_term_length:
            return ()
        matches = []
        for view in await self.parts_with_family():
            haystack = (
                view.part_id,
                str(view.part.get("description") or ""),
                view.category,
                view.family,
            )
            if any(needle in text.casefold() for text in haystack):
                matches.append(view)
        return tuple(matches)

    async def find_category_drift(self) -> tuple[CategoryDrift, ...]:
        """Parts whose category has disappeared from the category list."""
        await self._categories.load()
        parts = await self._ensure_parts_loaded()
        drift = []
        for part in parts:
            category = str(part.get("category") or "").strip()
            if not category or category == self._settings.default_part_category:
                continue
            if not self._categories.validate_category(category):
                drift.append(
                    CategoryDrift(
                        entity_id=part.entity_id,
                        part_id=str(part.get("part_id") or ""),
                        category=category,
                    )
                )
        if drift:
            logger.warning("category_drift_detected", extra={"part_count": len(drift)})
        return tuple(drift)
