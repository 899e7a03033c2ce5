"""
Module: transformation_engines.lineage_attribution
Responsibility:
    Compute the N x M lineage edges of one execution: how much of each
    consumed input's quantity and cost went into each output line.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Produces kernel
    ``LineageEdgeSpec`` values that LineageTracker persists.

Invariants enforced:
    - One edge per (input, output) pair.
    - Per output, cost_attributed over its edges sums exactly to that
      output's allocated cost.
    - Per input, input_quantity_used over its edges sums exactly to the
      consumed quantity.
    - Attribution basis:
        * COST      -- input weight = input cost / total input cost;
        * QUANTITY  -- total input cost is zero, weight = consumed / total
                       consumed;
        * EQUAL     -- nothing was consumed either; inputs share equally.
    - The quantity split follows each output's produced + wasted share of
      total output quantity (equal split if that total is zero).

Failure modes:
    - ValueError on duplicate line ids or negative amounts.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from transformation_engines.cost_allocation import apportion
from transformation_engines.tracer import traced_engine
from transformation_kernel.db.types import (
    MONEY_DECIMAL_PLACES,
    QUANTITY_DECIMAL_PLACES,
    ZERO,
    round_money,
    round_quantity,
)
from transformation_kernel.domain.dtos import AttributionBasis, LineageEdgeSpec
from transformation_kernel.logging_config import get_logger

logger = get_logger("engines.lineage_attribution")

_ONE = Decimal("1")


@dataclass(frozen=True)
class ConsumedInput:
    """An input line after consumption."""

    line_id: UUID
    consumed_quantity: Decimal
    total_cost: Decimal


@dataclass(frozen=True)
class ProducedOutput:
    """An output line after production and cost allocation."""

    line_id: UUID
    produced_quantity: Decimal
    wasted_quantity: Decimal
    allocated_cost: Decimal


def _check_unique(ids: Sequence, side: str) -> None:
    if len(set(ids)) != len(ids):
        raise ValueError(f"Duplicate {side} line ids")


class LineageAttributor:
    """Splits output cost and input quantity along every input x output pair."""

    def __init__(
        self,
        money_places: int = MONEY_DECIMAL_PLACES,
        quantity_places: int = QUANTITY_DECIMAL_PLACES,
    ):
        self._money_places = money_places
        self._quantity_places = quantity_places

    @staticmethod
    def basis_for(inputs: Sequence[ConsumedInput]) -> AttributionBasis:
        if sum((i.total_cost for i in inputs), ZERO) > ZERO:
            return AttributionBasis.COST
        if sum((i.consumed_quantity for i in inputs), ZERO) > ZERO:
            return AttributionBasis.QUANTITY
        return AttributionBasis.EQUAL

    @traced_engine("lineage_attribution", "1.0", fingerprint_fields=("inputs", "outputs"))
    def attribute(
        self,
        inputs: Sequence[ConsumedInput],
        outputs: Sequence[ProducedOutput],
    ) -> list[LineageEdgeSpec]:
        """
        Build one LineageEdgeSpec per (input, output) pair, ordered by output
        then input.
        """
        if not inputs or not outputs:
            return []
        _check_unique([i.line_id for i in inputs], "input")
        _check_unique([o.line_id for o in outputs], "output")
        for i in inputs:
            if i.consumed_quantity < ZERO or i.total_cost < ZERO:
                raise ValueError(f"Input {i.line_id}: negative quantity or cost")
        for o in outputs:
            if o.allocated_cost < ZERO:
                raise ValueError(f"Output {o.line_id}: negative allocated cost")

        basis = self.basis_for(inputs)
        if basis is AttributionBasis.COST:
            input_weights = [i.total_cost for i in inputs]
        elif basis is AttributionBasis.QUANTITY:
            input_weights = [i.consumed_quantity for i in inputs]
        else:
            input_weights = [_ONE] * len(inputs)

        output_weights = [o.produced_quantity + o.wasted_quantity for o in outputs]
        if sum(output_weights, ZERO) <= ZERO:
            output_weights = [_ONE] * len(outputs)

        qplaces = self._quantity_places
        # quantity_used[i][o]: input i's consumption split across outputs
        quantity_used = [
            apportion(round_quantity(i.consumed_quantity, qplaces), output_weights, qplaces)
            for i in inputs
        ]

        edges: list[LineageEdgeSpec] = []
        for o_index, output in enumerate(outputs):
            allocated = round_money(output.allocated_cost, self._money_places)
            costs = apportion(allocated, input_weights, self._money_places)
            for i_index, inp in enumerate(inputs):
                edges.append(
                    LineageEdgeSpec(
                        input_line_id=inp.line_id,
                        output_line_id=output.line_id,
                        input_quantity_used=quantity_used[i_index][o_index],
                        output_quantity_from=output.produced_quantity,
                        cost_attributed=costs[i_index],
                        attribution_basis=basis,
                    )
                )

        logger.info("lineage_attribution_computed", extra={
            "input_count": len(inputs),
            "output_count": len(outputs),
            "edge_count": len(edges),
            "attribution_basis": basis.value,
        })
        return edges
