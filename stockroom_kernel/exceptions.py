"""
Typed Exception Hierarchy for the stockroom application.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

The UI layer turns failures into user-facing messages and decides whether
an operation may be retried by hand.  Matching on message text is fragile,
so every failure the core raises is:
  1. a TYPED exception class (catch by type, not message)
  2. carrying a CODE class attribute (machine-readable, log-safe)
  3. carrying structured DATA (entity ids, shortages, status codes)

Example:
    try:
        await invoices.finalize_invoice(data, line_items)
    except InsufficientStockError as e:
        for shortage in e.shortages:
            show_row_error(shortage.part_id, shortage.shortage)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    StockroomError (base)
    |
    +-- AuthenticationError
    |   +-- AuthenticationRequiredError
    |   +-- AuthenticationFailedError
    |
    +-- RemoteOperationError
    |   +-- RemoteAccessDeniedError
    |   +-- RemoteNotFoundError
    |   +-- RemoteThrottledError
    |   +-- RemoteServerError
    |
    +-- ValidationError
    |   +-- InvalidCategoryError
    |   +-- InsufficientStockError
    |   +-- DuplicateIdentifierError
    |   +-- InvalidLineItemError
    |   +-- InvalidFieldValueError
    |   +-- InvoiceStateError
    |
    +-- AuthorizationError
    |   +-- PermissionDeniedError
    |   +-- UnknownRoleError
    |
    +-- ConcurrencyError
        +-- ResourceBusyError
        +-- SubscriptionClosedError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Authentication  | AUTHENTICATION_REQUIRED     | No credential available for a remote call
                | AUTHENTICATION_FAILED       | Remote store rejected the credential (401)
----------------|-----------------------------|-----------------------------------------
Remote          | REMOTE_OPERATION_FAILED     | Any other remote failure
                | REMOTE_ACCESS_DENIED        | Remote store returned 403
                | REMOTE_NOT_FOUND            | Remote store returned 404
                | REMOTE_THROTTLED            | Remote store returned 429
                | REMOTE_SERVER_ERROR         | Remote store returned 5xx
----------------|-----------------------------|-----------------------------------------
Validation      | INVALID_CATEGORY            | Category not in the category list
                | INSUFFICIENT_STOCK          | Line items exceed on-hand inventory
                | DUPLICATE_IDENTIFIER        | Part ID already in use
                | INVALID_LINE_ITEM           | Negative quantity or price
                | INVALID_FIELD_VALUE         | Field fails a format or write rule
                | INVOICE_STATE               | Invoice status forbids the transition
----------------|-----------------------------|-----------------------------------------
Authorization   | PERMISSION_DENIED           | Role lacks the action or field
                | UNKNOWN_ROLE                | Role name is not in the hierarchy
----------------|-----------------------------|-----------------------------------------
Concurrency     | RESOURCE_BUSY               | Mutation issued during an in-flight load
                | SUBSCRIPTION_CLOSED         | Operation issued after teardown

===============================================================================
HANDLING PATTERNS
===============================================================================

1. Validation and authorization errors are raised before any remote call.
   Nothing has been written; the caller may fix the input and try again.

2. Remote errors carry ``user_message``, the text shown to the user.
   The resource cache records it in ``state.error`` and re-raises once.

3. Partial batch deletion is NOT an exception.  ``delete_batch`` returns a
   ``DeleteReport``; callers inspect ``failed`` and ``errors``.

===============================================================================
"""

from __future__ import annotations

from typing import Any


class StockroomError(Exception):
    """
    Base exception for all stockroom errors.

    All subclasses must have a ``code`` class attribute for
    machine-readable error identification.
    """

    code: str = "STOCKROOM_ERROR"


# Authentication


class AuthenticationError(StockroomError):
    """Base exception for credential problems."""

    code: str = "AUTHENTICATION_ERROR"


class AuthenticationRequiredError(AuthenticationError):
    """No credential could be obtained for a remote operation."""

    code: str = "AUTHENTICATION_REQUIRED"

    def __init__(self, operation: str = ""):
        self.operation = operation
        self.user_message = "Authentication required. Please sign in."
        super().__init__(self.user_message)


class AuthenticationFailedError(AuthenticationError):
    """The remote store rejected the credential."""

    code: str = "AUTHENTICATION_FAILED"

    def __init__(self, operation: str = "", detail: str = ""):
        self.operation = operation
        self.status_code = 401
        self.detail = detail
        self.user_message = "Authentication failed. Please sign in again."
        super().__init__(self.user_message)


# Remote store


class RemoteOperationError(StockroomError):
    """
    A remote list operation failed.

    ``user_message`` is the text shown to the user; ``detail`` keeps the
    store's own message for logs.
    """

    code: str = "REMOTE_OPERATION_FAILED"

    def __init__(
        self,
        operation: str,
        detail: str = "",
        status_code: int | None = None,
        user_message: str | None = None,
    ):
        self.operation = operation
        self.detail = detail
        self.status_code = status_code
        self.user_message = user_message or f"Operation failed: {detail or operation}"
        super().__init__(self.user_message)


class RemoteAccessDeniedError(RemoteOperationError):
    """Remote store returned 403."""

    code: str = "REMOTE_ACCESS_DENIED"

    def __init__(self, operation: str, detail: str = ""):
        super().__init__(
            operation,
            detail,
            status_code=403,
            user_message=(
                "Access denied. You may not have permission to perform "
                "this operation."
            ),
        )


class RemoteNotFoundError(RemoteOperationError):
    """Remote store returned 404 for a list or item."""

    code: str = "REMOTE_NOT_FOUND"

    def __init__(self, operation: str, detail: str = ""):
        super().__init__(
            operation,
            detail,
            status_code=404,
            user_message="Resource not found. The list or item may not exist.",
        )


class RemoteThrottledError(RemoteOperationError):
    """Remote store returned 429."""

    code: str = "REMOTE_THROTTLED"

    def __init__(self, operation: str, detail: str = ""):
        super().__init__(
            operation,
            detail,
            status_code=429,
            user_message="Too many requests. Please wait a moment and try again.",
        )


class RemoteServerError(RemoteOperationError):
    """Remote store returned a 5xx status."""

    code: str = "REMOTE_SERVER_ERROR"

    def __init__(self, operation: str, detail: str = "", status_code: int = 500):
        super().__init__(
            operation,
            detail,
            status_code=status_code,
            user_message="Server error. Please try again later.",
        )


def remote_error_from_status(
    status_code: int | None, operation: str, detail: str = ""
) -> StockroomError:
    """Map a remote status code to the matching typed exception."""
    if status_code == 401:
        return AuthenticationFailedError(operation, detail)
    if status_code == 403:
        return RemoteAccessDeniedError(operation, detail)
    if status_code == 404:
        return RemoteNotFoundError(operation, detail)
    if status_code == 429:
        return RemoteThrottledError(operation, detail)
    if status_code is not None and status_code >= 500:
        return RemoteServerError(operation, detail, status_code=status_code)
    return RemoteOperationError(operation, detail, status_code=status_code)


def user_message_for(exc: BaseException) -> str:
    """The user-facing text for any exception raised through the core."""
    message = getattr(exc, "user_message", None)
    if message:
        return message
    return str(exc) or type(exc).__name__


# Validation


class ValidationError(StockroomError):
    """Base exception for input rejected before any remote call."""

    code: str = "VALIDATION_ERROR"

    @property
    def user_message(self) -> str:
        return str(self)


class InvalidCategoryError(ValidationError):
    """Category is not in the category list."""

    code: str = "INVALID_CATEGORY"

    def __init__(self, category: str):
        self.category = category
        super().__init__(
            f'Invalid category: "{category}". '
            "Please select a valid category from the list."
        )


class InsufficientStockError(ValidationError):
    """
    Line items require more stock than is on hand.

    ``shortages`` holds one ``StockShortage`` per offending part in the
    order the parts first appear among the line items.
    """

    code: str = "INSUFFICIENT_STOCK"

    def __init__(self, shortages: tuple[Any, ...]):
        self.shortages = tuple(shortages)
        parts = ", ".join(s.part_id for s in self.shortages)
        super().__init__(
            f"Insufficient inventory for {len(self.shortages)} part(s): {parts}"
        )


class DuplicateIdentifierError(ValidationError):
    """An identifier that must be unique is already in use."""

    code: str = "DUPLICATE_IDENTIFIER"

    def __init__(self, field: str, value: str):
        self.field = field
        self.value = value
        super().__init__(f'{field} "{value}" already exists')


class InvalidLineItemError(ValidationError):
    """Line item has a negative quantity or price, or no part."""

    code: str = "INVALID_LINE_ITEM"

    def __init__(self, part_id: str, reason: str):
        self.part_id = part_id
        self.reason = reason
        super().__init__(f"Invalid line item for part {part_id!r}: {reason}")


class InvalidFieldValueError(ValidationError):
    """A field value fails a format or write rule."""

    code: str = "INVALID_FIELD_VALUE"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"{field}: {reason}")


class InvoiceStateError(ValidationError):
    """Invoice status does not allow the requested transition."""

    code: str = "INVOICE_STATE"

    def __init__(self, invoice_id: str, status: str | None, reason: str):
        self.invoice_id = invoice_id
        self.status = status
        self.reason = reason
        super().__init__(reason)


# Authorization


class AuthorizationError(StockroomError):
    """Base exception for access-control denials."""

    code: str = "AUTHORIZATION_ERROR"


class PermissionDeniedError(AuthorizationError):
    """The role does not hold the action or field on the component."""

    code: str = "PERMISSION_DENIED"

    def __init__(self, role: str | None, component: str, key: str):
        self.role = role
        self.component = component
        self.key = key
        self.user_message = "You do not have permission to perform this operation."
        super().__init__(
            f"Role {role!r} may not use '{key}' on component '{component}'"
        )


class UnknownRoleError(AuthorizationError):
    """Role name is not part of the role hierarchy."""

    code: str = "UNKNOWN_ROLE"

    def __init__(self, role: Any):
        self.role = role
        super().__init__(f"Unknown role: {role!r}")


# Concurrency


class ConcurrencyError(StockroomError):
    """Base exception for cache lifecycle and ordering conflicts."""

    code: str = "CONCURRENCY_ERROR"


class ResourceBusyError(ConcurrencyError):
    """A mutation was issued while a load of the same cache is in flight."""

    code: str = "RESOURCE_BUSY"

    def __init__(self, entity_type: str, operation: str):
        self.entity_type = entity_type
        self.operation = operation
        self.user_message = "Data is still loading. Please try again in a moment."
        super().__init__(
            f"Cannot {operation} {entity_type} while a load is in progress"
        )


class SubscriptionClosedError(ConcurrencyError):
    """An operation was issued on a cache after teardown."""

    code: str = "SUBSCRIPTION_CLOSED"

    def __init__(self, entity_type: str, operation: str):
        self.entity_type = entity_type
        self.operation = operation
        super().__init__(
            f"Cannot {operation} on {entity_type}: the cache has been torn down"
        )
