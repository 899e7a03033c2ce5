"""
Pure domain layer.

Immutable DTOs, the clock abstraction and workflow value objects.  No
dependencies on the ORM, the database or I/O.
"""

from transformation_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from transformation_kernel.domain.dtos import (
    AttributionBasis,
    BalanceChange,
    BalanceSnapshot,
    InsufficientItem,
    ItemSnapshot,
    LineageEdge,
    LineageEdgeSpec,
    MovementKind,
    MovementLine,
    MovementType,
    StockMovement,
    StockTransaction,
    StockTransactionLine,
)
from transformation_kernel.domain.workflow import Guard, Transition, Workflow

__all__ = [
    "AttributionBasis",
    "BalanceChange",
    "BalanceSnapshot",
    "Clock",
    "DeterministicClock",
    "Guard",
    "InsufficientItem",
    "ItemSnapshot",
    "LineageEdge",
    "LineageEdgeSpec",
    "MovementKind",
    "MovementLine",
    "MovementType",
    "StockMovement",
    "StockTransaction",
    "StockTransactionLine",
    "SystemClock",
    "Transition",
    "Workflow",
]
