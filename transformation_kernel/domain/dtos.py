"""
Kernel DTOs (``transformation_kernel.domain.dtos``).

Responsibility
--------------
Frozen value objects that cross the boundary between kernel services
(ledger, recorder, lineage tracker, item catalog) and their callers.  ORM
models never leave the kernel; these do.

Architecture position
---------------------
**Kernel domain layer** -- pure data.  ZERO I/O.  No imports from ``db/``,
``models/`` or ``services/``.

Invariants enforced
-------------------
* All quantities and monetary values are ``Decimal`` -- NEVER ``float``.
* ``MovementLine`` derives total cost and stock values from its own fields,
  so a recorded line can never disagree with itself.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID


class MovementType(str, Enum):
    """Direction of a stock movement."""

    IN = "in"
    OUT = "out"


class MovementKind(str, Enum):
    """Business meaning of a stock movement."""

    CONSUMPTION = "consumption"
    PRODUCTION = "production"
    WASTE = "waste"
    REVERSAL = "reversal"


class AttributionBasis(str, Enum):
    """How a lineage edge's cost share was derived."""

    COST = "cost"  # input cost / total input cost
    QUANTITY = "quantity"  # consumed quantity / total consumed quantity
    EQUAL = "equal"  # nothing to weigh by


@dataclass(frozen=True)
class InsufficientItem:
    """One item whose stock does not cover the requested quantity."""

    item_id: UUID | str
    item_code: str | None
    item_name: str | None
    required: Decimal
    available: Decimal

    @property
    def shortfall(self) -> Decimal:
        return self.required - self.available


@dataclass(frozen=True)
class ItemSnapshot:
    """Catalog view of an item at the time it is read."""

    id: UUID
    item_code: str
    item_name: str
    cost_price: Decimal
    uom_code: str | None
    is_active: bool = True


@dataclass(frozen=True)
class BalanceSnapshot:
    """
    Stock balance for one item in one warehouse.

    ``exists`` is False when no ledger row has been created yet; quantities
    are then zero.
    """

    item_id: UUID
    warehouse_id: UUID
    current_stock: Decimal
    reserved_stock: Decimal
    version: int
    exists: bool = True

    @property
    def available_stock(self) -> Decimal:
        return self.current_stock - self.reserved_stock


@dataclass(frozen=True)
class BalanceChange:
    """Outcome of a single ledger delta: the before/after pair."""

    item_id: UUID
    warehouse_id: UUID
    delta: Decimal
    qty_before: Decimal
    qty_after: Decimal
    version: int


@dataclass(frozen=True)
class MovementLine:
    """A line to be recorded on a stock transaction."""

    item_id: UUID
    quantity: Decimal
    unit_cost: Decimal
    qty_before: Decimal
    qty_after: Decimal
    uom_code: str | None = None

    @property
    def total_cost(self) -> Decimal:
        return self.unit_cost * self.quantity

    @property
    def stock_value_before(self) -> Decimal:
        return self.qty_before * self.unit_cost

    @property
    def stock_value_after(self) -> Decimal:
        return self.qty_after * self.unit_cost


@dataclass(frozen=True)
class StockMovement:
    """Header data for a stock transaction."""

    movement_type: MovementType
    kind: MovementKind
    warehouse_id: UUID
    reference_type: str
    reference_id: UUID
    reference_code: str | None
    transaction_date: date
    company_id: UUID | None = None
    notes: str | None = None
    reverses_transaction_id: UUID | None = None


@dataclass(frozen=True)
class StockTransactionLine:
    """A persisted stock transaction line."""

    id: UUID
    item_id: UUID
    quantity: Decimal
    uom_code: str | None
    unit_cost: Decimal
    total_cost: Decimal
    qty_before: Decimal
    qty_after: Decimal
    valuation_rate: Decimal
    stock_value_before: Decimal
    stock_value_after: Decimal


@dataclass(frozen=True)
class StockTransaction:
    """A persisted stock transaction with its lines."""

    id: UUID
    transaction_code: str
    movement_type: MovementType
    kind: MovementKind
    warehouse_id: UUID
    reference_type: str
    reference_id: UUID
    reference_code: str | None
    transaction_date: date
    status: str
    notes: str | None = None
    reverses_transaction_id: UUID | None = None
    posted_at: datetime | None = None
    lines: tuple[StockTransactionLine, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class LineageEdge:
    """A recorded attribution from one consumed input to one produced output."""

    id: UUID
    order_id: UUID
    input_line_id: UUID
    output_line_id: UUID
    input_quantity_used: Decimal
    output_quantity_from: Decimal
    cost_attributed: Decimal
    attribution_basis: AttributionBasis


@dataclass(frozen=True)
class LineageEdgeSpec:
    """An attribution computed but not yet persisted."""

    input_line_id: UUID
    output_line_id: UUID
    input_quantity_used: Decimal
    output_quantity_from: Decimal
    cost_attributed: Decimal
    attribution_basis: AttributionBasis
