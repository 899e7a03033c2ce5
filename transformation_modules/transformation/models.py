"""
Transformation Domain Models (``transformation_modules.transformation.models``).

Responsibility
--------------
Frozen dataclass value objects for the nouns of inventory transformation:
templates (recipes), orders (one run of a recipe), their input and output
lines, execution requests and the results returned to callers.

Architecture position
---------------------
**Modules layer** -- pure data definitions with ZERO I/O.  Returned by
``TransformationService`` and the execution orchestrator.  No dependency on
kernel services, database, or engines.

Invariants enforced
-------------------
* All models are ``frozen=True``.
* All quantities and money are ``Decimal`` -- NEVER ``float``.
* Execution request lines reject negative quantities, and quantities finer
  than the stored precision, at construction.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from transformation_kernel.db.types import QUANTITY_DECIMAL_PLACES, decimal_places
from transformation_kernel.domain.dtos import InsufficientItem

_ZERO = Decimal("0")


def _check_quantity(name: str, value: Decimal) -> None:
    if value < _ZERO:
        raise ValueError(f"{name} cannot be negative")
    if decimal_places(value) > QUANTITY_DECIMAL_PLACES:
        raise ValueError(
            f"{name} has more than {QUANTITY_DECIMAL_PLACES} decimal places"
        )


class OrderStatus(str, Enum):
    """Transformation order lifecycle states."""
    DRAFT = "DRAFT"
    PREPARING = "PREPARING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


# -----------------------------------------------------------------------------
# Templates
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class TemplateLineSpec:
    """A template line as supplied by a caller creating or editing a template."""
    item_id: UUID
    quantity: Decimal
    uom_code: str | None = None
    is_scrap: bool = False


@dataclass(frozen=True)
class TemplateInput:
    id: UUID
    item_id: UUID
    quantity: Decimal
    uom_code: str | None
    sequence: int


@dataclass(frozen=True)
class TemplateOutput:
    id: UUID
    item_id: UUID
    quantity: Decimal
    uom_code: str | None
    sequence: int
    is_scrap: bool = False


@dataclass(frozen=True)
class TransformationTemplate:
    """A reusable recipe: inputs consumed and outputs produced per unit."""
    id: UUID
    company_id: UUID | None
    template_code: str
    template_name: str
    description: str | None
    is_active: bool
    usage_count: int
    inputs: tuple[TemplateInput, ...] = ()
    outputs: tuple[TemplateOutput, ...] = ()

    @property
    def is_locked(self) -> bool:
        """Referenced by at least one order: structural edits are refused."""
        return self.usage_count > 0


@dataclass(frozen=True)
class TemplateValidation:
    is_valid: bool
    error: str | None = None


@dataclass(frozen=True)
class TemplateLockStatus:
    template_id: UUID
    is_locked: bool
    usage_count: int


# -----------------------------------------------------------------------------
# Orders
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class OrderInput:
    id: UUID
    item_id: UUID
    uom_code: str | None
    planned_quantity: Decimal
    consumed_quantity: Decimal | None
    unit_cost: Decimal | None
    total_cost: Decimal | None
    stock_transaction_id: UUID | None
    sequence: int


@dataclass(frozen=True)
class OrderOutput:
    id: UUID
    item_id: UUID
    uom_code: str | None
    planned_quantity: Decimal
    produced_quantity: Decimal | None
    wasted_quantity: Decimal | None
    waste_reason: str | None
    is_scrap: bool
    allocated_cost_per_unit: Decimal | None
    total_allocated_cost: Decimal | None
    waste_cost: Decimal | None
    stock_transaction_id: UUID | None
    waste_transaction_id: UUID | None
    sequence: int


@dataclass(frozen=True)
class TransformationOrder:
    """One execution instance of a template."""
    id: UUID
    company_id: UUID | None
    order_code: str
    template_id: UUID
    warehouse_id: UUID
    planned_quantity: Decimal
    actual_quantity: Decimal | None
    status: OrderStatus
    order_date: date
    planned_date: date | None
    execution_date: date | None
    completion_date: datetime | None
    total_input_cost: Decimal
    total_output_cost: Decimal
    total_waste_cost: Decimal
    scrap_write_off: Decimal
    cost_variance: Decimal
    notes: str | None
    reference: str | None
    version: int
    inputs: tuple[OrderInput, ...] = ()
    outputs: tuple[OrderOutput, ...] = ()


@dataclass(frozen=True)
class OrderPage:
    items: tuple[TransformationOrder, ...]
    total: int
    page: int
    limit: int


@dataclass(frozen=True)
class TransitionCheck:
    is_valid: bool
    current_status: OrderStatus
    error: str | None = None


@dataclass(frozen=True)
class StockAvailability:
    is_available: bool
    insufficient_items: tuple[InsufficientItem, ...] = ()
    error: str | None = None


# -----------------------------------------------------------------------------
# Execution
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class InputExecution:
    input_line_id: UUID
    consumed_quantity: Decimal

    def __post_init__(self):
        _check_quantity("consumed_quantity", self.consumed_quantity)


@dataclass(frozen=True)
class OutputExecution:
    output_line_id: UUID
    produced_quantity: Decimal
    wasted_quantity: Decimal = _ZERO
    waste_reason: str | None = None

    def __post_init__(self):
        _check_quantity("produced_quantity", self.produced_quantity)
        _check_quantity("wasted_quantity", self.wasted_quantity)


@dataclass(frozen=True)
class ExecutionData:
    """What actually happened on the shop floor for one order."""
    inputs: tuple[InputExecution, ...]
    outputs: tuple[OutputExecution, ...]
    execution_date: date | None = None
    notes: str | None = None


@dataclass(frozen=True)
class StockTransactionIds:
    inputs: tuple[UUID, ...] = ()
    outputs: tuple[UUID, ...] = ()
    waste: tuple[UUID, ...] = ()


@dataclass(frozen=True)
class ExecutionResult:
    """
    Outcome of ``execute_transformation``.

    On failure ``error``/``code`` describe the first failing precondition or
    step; ``insufficient_items`` lists every short item for stock failures.
    """
    success: bool
    order_id: UUID
    stock_transaction_ids: StockTransactionIds = field(default_factory=StockTransactionIds)
    error: str | None = None
    code: str | None = None
    insufficient_items: tuple[InsufficientItem, ...] = ()
    failed_step: str | None = None
    compensation_failures: tuple[str, ...] = ()
    order: TransformationOrder | None = None

    @classmethod
    def failed(
        cls,
        order_id: UUID,
        error: str,
        code: str,
        insufficient_items: tuple[InsufficientItem, ...] = (),
        failed_step: str | None = None,
        compensation_failures: tuple[str, ...] = (),
    ) -> ExecutionResult:
        return cls(
            success=False,
            order_id=order_id,
            error=error,
            code=code,
            insufficient_items=insufficient_items,
            failed_step=failed_step,
            compensation_failures=compensation_failures,
        )
