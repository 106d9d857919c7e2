"""
Core Invariants Contract.

These invariants are structural law for the synchronization and
authorization core.  No access matrix, setting, or caller option may
override them.

This module exists solely to declare the invariants explicitly.  The
enforcement is distributed across ResourceCache, RecordCache, the access
control engine, and the inventory validator.
"""

from enum import Enum, unique


@unique
class CoreInvariant(str, Enum):
    """Non-configurable invariants enforced by the core."""

    MOUNT_GUARD = "mount_guard"
    """No cache state write, notification, or listener call happens after
    teardown.  Enforced by ResourceCache._commit and RecordCache._commit."""

    MONOTONIC_ACCESS = "monotonic_access"
    """A higher role's access is a superset of a lower role's.  Enforced by
    is_at_least_role, the only place role levels are compared."""

    FAIL_CLOSED = "fail_closed"
    """Unknown roles, components, actions, fields, and editing points are
    denied.  Enforced by the access control lookup functions."""

    NON_NEGATIVE_STOCK = "non_negative_stock"
    """Outbound movements and finalized invoices never drive
    inventory_on_hand below zero.  Enforced by validate_inventory and
    StockMovementService before any remote write."""

    AUTHORITATIVE_AFTER_CREATE = "authoritative_after_create"
    """After create() resolves, the cache reflects the server's copy of
    the collection.  Enforced by ResourceCache.create reloading."""


ALL_CORE_INVARIANTS: frozenset[CoreInvariant] = frozenset(CoreInvariant)

# The kernel package may not import from these packages.
# This is enforced by tests/architecture/test_kernel_boundary.py.
FORBIDDEN_KERNEL_IMPORTS: tuple[str, ...] = (
    "stockroom_services",
    "stockroom_config",
    "stockroom_modules",
)
