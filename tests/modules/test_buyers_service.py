"""
Tests for BuyersService: role-gated buyer writes and the buyer form's
name, email and phone rules.
"""

import asyncio

import pytest

from stockroom_kernel.domain.entities import EntityType
from stockroom_kernel.domain.roles import Role
from stockroom_kernel.exceptions import (
    DuplicateIdentifierError,
    InvalidFieldValueError,
    PermissionDeniedError,
)
from stockroom_modules.buyers.service import validate_contact_email, validate_phone

NEW_BUYER = {
    "buyer_name": "Harbor Motors",
    "contact_email": "orders@harbor.example",
    "phone": "(555) 010-2030",
}


def _create(workspace, data):
    return asyncio.run(workspace.buyers_service.create_buyer(data))


def _update(workspace, entity_id, data):
    return asyncio.run(workspace.buyers_service.update_buyer(entity_id, data))


def _buyer_names(store):
    return sorted(b.get("buyer_name") for b in store.snapshot(EntityType.BUYERS))


class TestCreateBuyer:
    def test_user_creates_buyer(self, workspace, store, notifier):
        created = _create(workspace, NEW_BUYER)

        assert created.get("buyer_name") == "Harbor Motors"
        assert workspace.buyers.find(created.entity_id) is not None
        assert "Harbor Motors" in _buyer_names(store)
        assert notifier.successes == ["Buyer created successfully!"]

    def test_read_only_cannot_create(self, workspace, identity, store):
        identity.role = Role.READ_ONLY
        with pytest.raises(PermissionDeniedError) as exc_info:
            _create(workspace, NEW_BUYER)
        assert exc_info.value.key == "create"
        assert store.calls_for("create") == []

    def test_name_is_trimmed(self, workspace):
        created = _create(workspace, {**NEW_BUYER, "buyer_name": "  Harbor Motors  "})
        assert created.get("buyer_name") == "Harbor Motors"

    @pytest.mark.parametrize(
        "name, message",
        [
            ("", "Buyer name is required"),
            ("   ", "Buyer name is required"),
            ("H", "Buyer name must be at least 2 characters"),
            ("H" * 101, "Buyer name cannot exceed 100 characters"),
        ],
    )
    def test_name_rules(self, workspace, store, name, message):
        with pytest.raises(InvalidFieldValueError) as exc_info:
            _create(workspace, {**NEW_BUYER, "buyer_name": name})
        assert exc_info.value.field == "buyer_name"
        assert exc_info.value.reason == message
        assert store.calls_for("create") == []

    def test_missing_name_is_required(self, workspace):
        with pytest.raises(InvalidFieldValueError) as exc_info:
            _create(workspace, {"contact_email": "a@b.example"})
        assert exc_info.value.reason == "Buyer name is required"

    def test_duplicate_name_ignores_case(self, workspace, store):
        with pytest.raises(DuplicateIdentifierError):
            _create(workspace, {**NEW_BUYER, "buyer_name": "acme FLEET"})
        assert store.calls_for("create") == []

    def test_a_contact_method_is_required(self, workspace, store):
        with pytest.raises(InvalidFieldValueError) as exc_info:
            _create(workspace, {"buyer_name": "Harbor Motors"})
        assert "at least one contact method" in exc_info.value.reason
        assert store.calls_for("create") == []

    def test_phone_alone_is_enough(self, workspace):
        created = _create(workspace, {"buyer_name": "Harbor Motors", "phone": "555-010-2030"})
        assert created.get("phone") == "555-010-2030"


class TestContactRules:
    @pytest.mark.parametrize(
        "email",
        ["plain", "no@tld", "two words@x.example", "@x.example"],
    )
    def test_malformed_email(self, email):
        with pytest.raises(InvalidFieldValueError) as exc_info:
            validate_contact_email(email)
        assert exc_info.value.reason == "Please enter a valid email address"

    def test_overlong_email(self):
        with pytest.raises(InvalidFieldValueError) as exc_info:
            validate_contact_email("a" * 250 + "@x.example")
        assert exc_info.value.reason == "Email address cannot exceed 255 characters"

    def test_blank_email_is_allowed(self):
        assert validate_contact_email("  ") == ""

    def test_phone_counts_digits_only(self):
        assert validate_phone("+1 (555) 010-2030") == "+1 (555) 010-2030"

    def test_short_phone(self):
        with pytest.raises(InvalidFieldValueError) as exc_info:
            validate_phone("555-0102")
        assert exc_info.value.reason == "Phone number must be at least 10 digits"

    def test_long_phone(self):
        with pytest.raises(InvalidFieldValueError) as exc_info:
            validate_phone("1" * 16)
        assert exc_info.value.reason == "Phone number cannot exceed 15 digits"


class TestUpdateBuyer:
    def test_user_renames_buyer(self, workspace, store, notifier):
        updated = _update(workspace, "2", {"buyer_name": "Acme Fleet Services"})

        assert updated.get("buyer_name") == "Acme Fleet Services"
        assert "Acme Fleet Services" in _buyer_names(store)
        assert notifier.successes == ["Buyer updated successfully!"]

    def test_keeping_own_name_is_not_a_duplicate(self, workspace):
        updated = _update(workspace, "2", {"buyer_name": "ACME Fleet"})
        assert updated.get("buyer_name") == "ACME Fleet"

    def test_rename_onto_another_buyer_is_rejected(self, workspace, store):
        with pytest.raises(DuplicateIdentifierError):
            _update(workspace, "2", {"buyer_name": "Northside Garage"})
        assert store.calls_for("update") == []

    def test_clearing_the_only_contact_is_rejected(self, workspace, store):
        with pytest.raises(InvalidFieldValueError):
            _update(workspace, "1", {"contact_email": ""})
        assert store.calls_for("update") == []

    def test_swapping_email_for_phone(self, workspace):
        updated = _update(workspace, "1", {"contact_email": "", "phone": "5550102030"})
        assert updated.get("phone") == "5550102030"

    def test_read_only_cannot_edit(self, workspace, identity, store):
        identity.role = Role.READ_ONLY
        with pytest.raises(PermissionDeniedError):
            _update(workspace, "1", {"phone": "5550102030"})
        assert store.calls_for("update") == []


class TestDeleteBuyers:
    def test_user_cannot_delete(self, workspace, store):
        with pytest.raises(PermissionDeniedError) as exc_info:
            asyncio.run(workspace.buyers_service.delete_buyers(["1"]))
        assert exc_info.value.key == "delete"
        assert len(store.snapshot(EntityType.BUYERS)) == 2

    def test_admin_deletes_several(self, workspace, identity, store):
        identity.role = Role.ADMIN
        report = asyncio.run(workspace.buyers_service.delete_buyers(["1", "2", "1"]))

        assert report.succeeded == 2
        assert store.snapshot(EntityType.BUYERS) == []
