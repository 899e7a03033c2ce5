"""
Module: transformation_engines
Responsibility:
    Package entrypoint that re-exports the pure calculation engines used by
    transformation execution.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import transformation_kernel domain values and db type helpers.
    MUST NOT import transformation_services or transformation_modules.

Invariants enforced:
    - Purity: engines never read the clock or touch the database.
    - Decimal-only arithmetic.
    - Determinism: identical inputs always produce identical outputs.

Usage:
    from transformation_engines import CostAllocator, LineageAttributor
"""

from transformation_engines.cost_allocation import (
    CostAllocationResult,
    CostAllocator,
    OutputAllocation,
    OutputQuantities,
    apportion,
)
from transformation_engines.lineage_attribution import (
    ConsumedInput,
    LineageAttributor,
    ProducedOutput,
)
from transformation_engines.tracer import compute_input_fingerprint, traced_engine

__all__ = [
    "ConsumedInput",
    "CostAllocationResult",
    "CostAllocator",
    "LineageAttributor",
    "OutputAllocation",
    "OutputQuantities",
    "ProducedOutput",
    "apportion",
    "compute_input_fingerprint",
    "traced_engine",
]
