"""
Typed Exception Hierarchy for the Transformation Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Stock movements are the audit trail of physical inventory. Callers (the HTTP
layer, batch jobs, the saga runner) must decide what to do with a failure
without parsing message strings:

    try:
        service.execute_transformation(order_id, actor_id, data)
    except InsufficientStockError as e:
        render_shortfalls(e.items)          # structured data
        api_response(code=e.code)           # machine-readable

Every exception:
  1. Is a TYPED class (catch by type, not by message)
  2. Has a CODE class attribute (stable, API-safe)
  3. Carries structured DATA as attributes

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    TransformationKernelError (base)
    |
    +-- NotFoundError
    |   +-- TemplateNotFoundError
    |   +-- OrderNotFoundError
    |   +-- ItemNotFoundError
    |   +-- StockTransactionNotFoundError
    |
    +-- InvalidStateError
    |   +-- TemplateLockedError
    |
    +-- InvalidTransitionError
    |
    +-- ValidationError
    |   +-- TemplateValidationError
    |   +-- ExecutionDataError
    |
    +-- InsufficientStockError
    |   +-- NegativeStockError
    |
    +-- PersistenceFailureError
    |
    +-- ConcurrencyError
    |   +-- OptimisticLockError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Not found       | TEMPLATE_NOT_FOUND          | Template id unknown or soft-deleted
                | ORDER_NOT_FOUND             | Order id unknown or soft-deleted
                | ITEM_NOT_FOUND              | Catalog item missing
                | STOCK_TRANSACTION_NOT_FOUND | Movement to reverse is missing
----------------|-----------------------------|-----------------------------------------
State           | INVALID_STATE               | Operation not allowed in current status
                | TEMPLATE_LOCKED             | Structural edit of a template in use
                | INVALID_TRANSITION          | State machine edge not allowed
----------------|-----------------------------|-----------------------------------------
Validation      | VALIDATION_ERROR            | Malformed request data
                | TEMPLATE_INVALID            | Template unusable (no inputs/outputs...)
                | INVALID_EXECUTION_DATA      | Line ids not on order, bad quantities
----------------|-----------------------------|-----------------------------------------
Stock           | INSUFFICIENT_STOCK          | One or more items short (all listed)
                | NEGATIVE_STOCK              | Ledger delta would go below zero
----------------|-----------------------------|-----------------------------------------
Persistence     | PERSISTENCE_FAILURE         | Underlying write failed
Concurrency     | OPTIMISTIC_LOCK_CONFLICT    | Version compare-and-swap kept failing
Immutability    | IMMUTABILITY_VIOLATION      | UPDATE/DELETE of an append-only record

===============================================================================
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from transformation_kernel.domain.dtos import InsufficientItem


class TransformationKernelError(Exception):
    """
    Base exception for all transformation kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "TRANSFORMATION_KERNEL_ERROR"


# Not-found exceptions


class NotFoundError(TransformationKernelError):
    """Base exception for missing entities."""

    code: str = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: str, message: str | None = None):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(message or f"{entity_type} not found: {entity_id}")


class TemplateNotFoundError(NotFoundError):
    """Transformation template does not exist (or is soft-deleted)."""

    code: str = "TEMPLATE_NOT_FOUND"

    def __init__(self, template_id: str):
        self.template_id = template_id
        super().__init__("Template", template_id, "Template not found")


class OrderNotFoundError(NotFoundError):
    """Transformation order does not exist (or is soft-deleted)."""

    code: str = "ORDER_NOT_FOUND"

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__("TransformationOrder", order_id, "Order not found")


class ItemNotFoundError(NotFoundError):
    """Catalog item does not exist."""

    code: str = "ITEM_NOT_FOUND"

    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__("Item", item_id)


class StockTransactionNotFoundError(NotFoundError):
    """Stock transaction does not exist."""

    code: str = "STOCK_TRANSACTION_NOT_FOUND"

    def __init__(self, transaction_id: str):
        self.transaction_id = transaction_id
        super().__init__("StockTransaction", transaction_id)


# State exceptions


class InvalidStateError(TransformationKernelError):
    """Operation is not allowed in the entity's current status."""

    code: str = "INVALID_STATE"

    def __init__(
        self,
        entity_id: str,
        current_status: str,
        operation: str,
        required_status: str | None = None,
        message: str | None = None,
    ):
        self.entity_id = entity_id
        self.current_status = current_status
        self.operation = operation
        self.required_status = required_status
        if message is None and required_status is not None:
            message = (
                f"Order must be in {required_status} status to {operation}. "
                f"Current status: {current_status}"
            )
        elif message is None:
            message = f"Cannot {operation} in {current_status} status"
        super().__init__(message)


class TemplateLockedError(InvalidStateError):
    """Template is referenced by orders and cannot be structurally changed."""

    code: str = "TEMPLATE_LOCKED"

    def __init__(self, template_id: str, usage_count: int):
        self.template_id = template_id
        self.usage_count = usage_count
        super().__init__(
            entity_id=template_id,
            current_status="LOCKED",
            operation="modify template",
            message=(
                f"Template {template_id} is used by {usage_count} order(s) "
                "and cannot be modified"
            ),
        )


class InvalidTransitionError(TransformationKernelError):
    """State machine transition is not one of the allowed edges."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        message = f"Invalid transition from {from_status} to {to_status}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


# Validation exceptions


class ValidationError(TransformationKernelError):
    """Request or entity data failed validation."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class TemplateValidationError(ValidationError):
    """Template is not usable (missing, inactive, no inputs, no outputs)."""

    code: str = "TEMPLATE_INVALID"

    def __init__(self, template_id: str, reason: str):
        self.template_id = template_id
        self.reason = reason
        super().__init__(reason)


class ExecutionDataError(ValidationError):
    """Execution payload does not match the order."""

    code: str = "INVALID_EXECUTION_DATA"

    def __init__(self, order_id: str, message: str, field: str | None = None):
        self.order_id = order_id
        super().__init__(message, field=field)


# Stock exceptions


class InsufficientStockError(TransformationKernelError):
    """
    One or more items do not have enough stock.

    Every short item is listed in ``items`` so callers can report all of them
    at once.
    """

    code: str = "INSUFFICIENT_STOCK"

    def __init__(
        self,
        items: Sequence[InsufficientItem],
        order_id: str | None = None,
        message: str | None = None,
    ):
        self.items = tuple(items)
        self.order_id = order_id
        super().__init__(
            message or f"Insufficient stock for {len(self.items)} item(s)"
        )


class NegativeStockError(InsufficientStockError):
    """A ledger delta would drive current stock below zero."""

    code: str = "NEGATIVE_STOCK"

    def __init__(self, item_id: str, warehouse_id: str, available, required):
        from transformation_kernel.domain.dtos import InsufficientItem

        self.item_id = item_id
        self.warehouse_id = warehouse_id
        self.available = available
        self.required = required
        super().__init__(
            items=(
                InsufficientItem(
                    item_id=item_id,
                    item_code=None,
                    item_name=None,
                    required=required,
                    available=available,
                ),
            ),
            message=(
                f"Insufficient stock for item. "
                f"Available: {available}, Required: {required}"
            ),
        )


# Persistence exceptions


class PersistenceFailureError(TransformationKernelError):
    """An underlying database write failed; carries the driver message."""

    code: str = "PERSISTENCE_FAILURE"

    def __init__(self, operation: str, detail: str):
        self.operation = operation
        self.detail = detail
        super().__init__(f"Failed to {operation}: {detail}")


# Concurrency exceptions


class ConcurrencyError(TransformationKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Optimistic locking conflict detected."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str, attempts: int = 1):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.attempts = attempts
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            f"entity was modified by another transaction ({attempts} attempt(s))"
        )


# Immutability exceptions


class ImmutabilityError(TransformationKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
