"""
Buyers Module Service (``stockroom_modules.buyers.service``).

Responsibility
--------------
Write-side rules for the buyers list: role-gated create, edit and delete,
plus the buyer form's field rules.

Invariants
----------
- Every rule is checked before the remote call: the ``buyers`` action,
  the ``buyerForm`` fields being written, and the field formats below.
- A buyer always keeps at least one contact method (email or phone).
- Buyer names are unique, ignoring case.

Field rules
-----------
- ``buyer_name``     -- required, 2 to 100 characters.
- ``contact_email``  -- optional; ``local@domain.tld``, at most 255 characters.
- ``phone``          -- optional; 10 to 15 digits once punctuation is removed.
"""

from __future__ import annotations

import re
from types import MappingProxyType
from typing import Any, Mapping, Sequence

from stockroom_kernel.domain.entities import Entity
from stockroom_kernel.exceptions import DuplicateIdentifierError, InvalidFieldValueError
from stockroom_kernel.logging_config import get_logger
from stockroom_services.access_control import AccessControl, default_access_control
from stockroom_services.collaborators import IdentityProvider
from stockroom_services.list_store import DeleteReport
from stockroom_services.resource_cache import CacheStatus, ResourceCache

logger = get_logger("modules.buyers.service")

BUYERS_COMPONENT = "buyers"
BUYER_FORM = "buyerForm"

# List field -> buyerForm field.
BUYER_FIELD_MAP = MappingProxyType(
    {
        "buyer_name": "buyerName",
        "contact_email": "contactEmail",
        "phone": "phone",
    }
)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
NAME_MIN_LENGTH = 2
NAME_MAX_LENGTH = 100
EMAIL_MAX_LENGTH = 255
PHONE_MIN_DIGITS = 10
PHONE_MAX_DIGITS = 15

CONTACT_REQUIRED = "Please provide at least one contact method (email or phone)"


def validate_buyer_name(value: Any) -> str:
    name = str(value or "").strip()
    if not name:
        raise InvalidFieldValueError("buyer_name", "Buyer name is required")
    if len(name) < NAME_MIN_LENGTH:
        raise InvalidFieldValueError(
            "buyer_name", f"Buyer name must be at least {NAME_MIN_LENGTH} characters"
        )
    if len(name) > NAME_MAX_LENGTH:
        raise InvalidFieldValueError(
            "buyer_name", f"Buyer name cannot exceed {NAME_MAX_LENGTH} characters"
        )
    return name


def validate_contact_email(value: Any) -> str:
    email = str(value or "").strip()
    if not email:
        return ""
    if not EMAIL_PATTERN.match(email):
        raise InvalidFieldValueError("contact_email", "Please enter a valid email address")
    if len(email) > EMAIL_MAX_LENGTH:
        raise InvalidFieldValueError(
            "contact_email", f"Email address cannot exceed {EMAIL_MAX_LENGTH} characters"
        )
    return email


def validate_phone(value: Any) -> str:
    phone = str(value or "").strip()
    if not phone:
        return ""
    digits = re.sub(r"\D", "", phone)
    if len(digits) < PHONE_MIN_DIGITS:
        raise InvalidFieldValueError(
            "phone", f"Phone number must be at least {PHONE_MIN_DIGITS} digits"
        )
    if len(digits) > PHONE_MAX_DIGITS:
        raise InvalidFieldValueError(
            "phone", f"Phone number cannot exceed {PHONE_MAX_DIGITS} digits"
        )
    return phone


_VALIDATORS = {
    "buyer_name": validate_buyer_name,
    "contact_email": validate_contact_email,
    "phone": validate_phone,
}


class BuyersService:
    """Buyer creation, editing and deletion."""

    def __init__(
        self,
        buyers: ResourceCache,
        identity: IdentityProvider,
        access: AccessControl | None = None,
    ):
        self._buyers = buyers
        self._identity = identity
        self._access = access or default_access_control()

    async def _ensure_loaded(self) -> tuple[Entity, ...]:
        if self._buyers.state.status is CacheStatus.IDLE:
            await self._buyers.load()
        return self._buyers.items

    def _check_duplicate(
        self, buyers: Sequence[Entity], name: str, exclude: str | None
    ) -> None:
        wanted = name.casefold()
        for buyer in buyers:
            if buyer.entity_id == exclude:
                continue
            if str(buyer.get("buyer_name") or "").strip().casefold() == wanted:
                raise DuplicateIdentifierError("Buyer name", name)

    def _authorize(self, action: str, data: Mapping[str, Any]) -> None:
        role = self._identity.current_role()
        self._access.require_action(role, BUYERS_COMPONENT, action)
        self._access.require_fields(
            role, BUYER_FORM, [BUYER_FIELD_MAP[k] for k in data if k in BUYER_FIELD_MAP]
        )

    @staticmethod
    def _validated(data: Mapping[str, Any]) -> dict[str, Any]:
        payload = dict(data)
        for name, validate in _VALIDATORS.items():
            if name in payload:
                payload[name] = validate(payload[name])
        return payload

    async def create_buyer(self, data: Mapping[str, Any]) -> Entity:
        self._authorize("create", data)
        payload = self._validated({"buyer_name": "", **data})
        if not payload.get("contact_email") and not payload.get("phone"):
            raise InvalidFieldValueError("contact_email", CONTACT_REQUIRED)

        buyers = await self._ensure_loaded()
        self._check_duplicate(buyers, payload["buyer_name"], exclude=None)

        created = await self._buyers.create(payload)
        logger.info(
            "buyer_created",
            extra={"entity_id": created.entity_id, "buyer_name": payload["buyer_name"]},
        )
        return created

    async def update_buyer(self, entity_id: str, data: Mapping[str, Any]) -> Entity:
        self._authorize("edit", data)
        payload = self._validated(data)

        buyers = await self._ensure_loaded()
        if "buyer_name" in payload:
            self._check_duplicate(buyers, payload["buyer_name"], exclude=entity_id)
        if "contact_email" in payload or "phone" in payload:
            current = self._buyers.find(entity_id)
            merged = {**(current.fields if current is not None else {}), **payload}
            if not merged.get("contact_email") and not merged.get("phone"):
                raise InvalidFieldValueError("contact_email", CONTACT_REQUIRED)

        updated = await self._buyers.update(entity_id, payload)
        logger.info("buyer_updated", extra={"entity_id": entity_id, "fields": sorted(payload)})
        return updated

    async def delete_buyers(self, entity_ids: Sequence[str]) -> DeleteReport:
        """Delete one buyer or many.  Several ids require the bulk delete operation."""
        role = self._identity.current_role()
        self._access.require_action(role, BUYERS_COMPONENT, "delete")
        ids = list(dict.fromkeys(entity_ids))
        if len(ids) > 1:
            self._access.require_bulk_operation(role, "delete")
        return await self._buyers.delete_multiple(ids)
