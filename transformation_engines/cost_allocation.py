"""
Module: transformation_engines.cost_allocation
Responsibility:
    Spread the cost consumed by a transformation's inputs across its output
    lines: good production, waste and scrap.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import transformation_kernel domain/db type helpers.

Invariants enforced:
    - One uniform cost per unit over produced + wasted quantity of every
      output line, scrap lines included in the denominator.
    - Scrap lines are allocated zero cost.  Their share is written off
      explicitly as ``scrap_write_off`` instead of silently vanishing.
    - Conservation: total_output_cost + total_waste_cost + scrap_write_off
      == total_input_cost, exactly, after money rounding.  The rounding
      residue lands on one designated figure (see ``_designated_index``).
      A negative residue larger than that figure spills onto the next
      largest figures, so no figure is ever negative.
    - Deterministic: ROUND_HALF_UP, no clock, no I/O.

Failure modes:
    - ValueError on negative total input cost or negative quantities.
    - ValueError on duplicate output line ids.

Usage:
    from transformation_engines.cost_allocation import CostAllocator, OutputQuantities

    result = CostAllocator().allocate(
        total_input_cost=Decimal("150"),
        outputs=[
            OutputQuantities(line_id=a, produced=Decimal("8")),
            OutputQuantities(line_id=b, produced=Decimal("4"), wasted=Decimal("1")),
            OutputQuantities(line_id=c, wasted=Decimal("5"), is_scrap=True),
        ],
    )
    result.line_for(a).allocated_cost   # Decimal("66.67")
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import ROUND_DOWN, Decimal
from uuid import UUID

from transformation_engines.tracer import traced_engine
from transformation_kernel.db.types import (
    MONEY_DECIMAL_PLACES,
    RATE_DECIMAL_PLACES,
    ZERO,
    quantum,
    round_money,
    round_quantity,
)
from transformation_kernel.logging_config import get_logger

logger = get_logger("engines.cost_allocation")


@dataclass(frozen=True)
class OutputQuantities:
    """Quantities reported for one output line at execution time."""

    line_id: UUID | str
    produced: Decimal = ZERO
    wasted: Decimal = ZERO
    is_scrap: bool = False

    def __post_init__(self) -> None:
        if self.produced < ZERO or self.wasted < ZERO:
            raise ValueError(f"Output {self.line_id}: quantities cannot be negative")

    @property
    def total_quantity(self) -> Decimal:
        return self.produced + self.wasted


@dataclass(frozen=True)
class OutputAllocation:
    """
    Cost attributed to one output line.

    ``cost_share`` is the line's nominal share of input cost
    (cost per unit x (produced + wasted)).  For a non-scrap line it is split
    into ``allocated_cost`` (carried into inventory with the good units) and
    ``waste_cost``.  For a scrap line ``allocated_cost`` is zero and the
    share is part of the result's ``scrap_write_off``.
    """

    line_id: UUID | str
    produced: Decimal
    wasted: Decimal
    is_scrap: bool
    cost_per_unit: Decimal
    allocated_cost: Decimal
    waste_cost: Decimal
    cost_share: Decimal
    rounding_adjustment: Decimal = ZERO

    @property
    def allocated_cost_per_unit(self) -> Decimal:
        return ZERO if self.is_scrap else self.cost_per_unit


@dataclass(frozen=True)
class CostAllocationResult:
    """Complete allocation of one execution's input cost."""

    total_input_cost: Decimal
    total_output_quantity: Decimal
    cost_per_unit: Decimal
    lines: tuple[OutputAllocation, ...]
    total_output_cost: Decimal
    total_waste_cost: Decimal
    scrap_write_off: Decimal
    rounding_adjustment: Decimal

    @property
    def cost_variance(self) -> Decimal:
        """Cost that did not end up in good inventory."""
        return self.total_waste_cost + self.scrap_write_off

    @property
    def is_conserved(self) -> bool:
        return (
            self.total_output_cost + self.total_waste_cost + self.scrap_write_off
            == self.total_input_cost
        )

    def line_for(self, line_id: UUID | str) -> OutputAllocation:
        for line in self.lines:
            if line.line_id == line_id:
                return line
        raise KeyError(line_id)


def apportion(amount: Decimal, weights: Sequence[Decimal], places: int) -> list[Decimal]:
    """
    Split ``amount`` into parts proportional to ``weights`` that sum exactly
    to ``amount`` at ``places`` decimals.

    Each part is first truncated; the leftover quanta go one at a time to the
    parts with the largest truncated remainder (ties to the earlier index).
    Parts are never negative when ``amount`` and the weights are not.

    Preconditions:
        - ``weights`` is non-empty and sums to a positive value.
        - ``amount`` is already quantized to ``places``.
    """
    q = quantum(places)
    total_weight = sum(weights, ZERO)
    if not weights or total_weight <= ZERO:
        raise ValueError("apportion requires positive total weight")

    exact = [amount * w / total_weight for w in weights]
    parts = [e.quantize(q, rounding=ROUND_DOWN) for e in exact]
    leftover = int(((amount - sum(parts, ZERO)) / q).to_integral_value())

    order = sorted(range(len(parts)), key=lambda i: (-(exact[i] - parts[i]), i))
    for i in order[:leftover]:
        parts[i] += q
    return parts


class CostAllocator:
    """
    Allocate consumed input cost across output lines.

    Contract:
        Pure function with deterministic rounding.  No I/O, no database.

    Guarantees:
        - cost_per_unit = total_input_cost / total_output_quantity, carried at
          ``cost_per_unit_places`` decimals (0 when nothing was produced or
          wasted).
        - allocated_cost = 0 for scrap, else round(cpu x produced).
        - waste_cost = round(cpu x wasted); counted in total_waste_cost for
          non-scrap lines only.
        - scrap_write_off = round(cpu x (produced + wasted) over scrap lines).
          When nothing at all was produced or wasted, the whole input cost is
          written off.
        - The rounding residue is applied to the designated line so the
          conservation identity holds exactly, without driving any
          figure below zero.
    """

    def __init__(
        self,
        money_places: int = MONEY_DECIMAL_PLACES,
        cost_per_unit_places: int = RATE_DECIMAL_PLACES,
    ):
        self._money_places = money_places
        self._cpu_places = cost_per_unit_places

    @traced_engine(
        "cost_allocation", "1.0", fingerprint_fields=("total_input_cost", "outputs"),
    )
    def allocate(
        self,
        total_input_cost: Decimal,
        outputs: Sequence[OutputQuantities],
    ) -> CostAllocationResult:
        """
        Allocate ``total_input_cost`` over ``outputs``.

        Args:
            total_input_cost: Sum of input line costs (money precision).
            outputs: Output lines in execution order.

        Returns:
            CostAllocationResult whose lines keep the order of ``outputs``.
        """
        if total_input_cost < ZERO:
            raise ValueError("Total input cost cannot be negative")
        ids = [o.line_id for o in outputs]
        if len(set(ids)) != len(ids):
            raise ValueError("Duplicate output line ids")

        places = self._money_places
        total_input_cost = round_money(total_input_cost, places)
        total_qty = sum((o.total_quantity for o in outputs), ZERO)

        logger.info("cost_allocation_started", extra={
            "total_input_cost": str(total_input_cost),
            "total_output_quantity": str(total_qty),
            "output_count": len(outputs),
        })

        if total_qty == ZERO:
            return self._nothing_to_absorb(total_input_cost, outputs)

        exact_cpu = total_input_cost / total_qty
        cost_per_unit = round_quantity(exact_cpu, self._cpu_places)

        allocated = [
            ZERO if o.is_scrap else round_money(exact_cpu * o.produced, places)
            for o in outputs
        ]
        waste = [round_money(exact_cpu * o.wasted, places) for o in outputs]
        shares = [round_money(exact_cpu * o.total_quantity, places) for o in outputs]
        scrap_qty = sum((o.total_quantity for o in outputs if o.is_scrap), ZERO)
        scrap_write_off = round_money(exact_cpu * scrap_qty, places)

        def totals() -> tuple[Decimal, Decimal]:
            out = sum((a for a, o in zip(allocated, outputs) if not o.is_scrap), ZERO)
            wst = sum((w for w, o in zip(waste, outputs) if not o.is_scrap), ZERO)
            return out, wst

        total_output_cost, total_waste_cost = totals()
        residue = total_input_cost - (total_output_cost + total_waste_cost + scrap_write_off)
        adjustments = [ZERO] * len(outputs)

        if residue != ZERO:
            figures: dict[tuple[str, int], Decimal] = {("scrap", -1): scrap_write_off}
            for i, o in enumerate(outputs):
                if not o.is_scrap:
                    figures[("allocated", i)] = allocated[i]
                    figures[("waste", i)] = waste[i]
            targets = self._residue_targets(outputs, figures, residue)
            for (kind, index), amount in targets:
                if kind == "allocated":
                    allocated[index] += amount
                elif kind == "waste":
                    waste[index] += amount
                else:
                    scrap_write_off += amount
                    continue
                adjustments[index] += amount
            total_output_cost, total_waste_cost = totals()
            logger.debug("cost_allocation_rounding_applied", extra={
                "residue": str(residue),
                "targets": [f"{kind}[{index}]" for (kind, index), _ in targets],
            })

        lines = tuple(
            OutputAllocation(
                line_id=o.line_id,
                produced=o.produced,
                wasted=o.wasted,
                is_scrap=o.is_scrap,
                cost_per_unit=cost_per_unit,
                allocated_cost=allocated[i],
                waste_cost=waste[i],
                cost_share=shares[i],
                rounding_adjustment=adjustments[i],
            )
            for i, o in enumerate(outputs)
        )
        result = CostAllocationResult(
            total_input_cost=total_input_cost,
            total_output_quantity=total_qty,
            cost_per_unit=cost_per_unit,
            lines=lines,
            total_output_cost=total_output_cost,
            total_waste_cost=total_waste_cost,
            scrap_write_off=scrap_write_off,
            rounding_adjustment=residue,
        )

        logger.info("cost_allocation_completed", extra={
            "cost_per_unit": str(cost_per_unit),
            "total_output_cost": str(total_output_cost),
            "total_waste_cost": str(total_waste_cost),
            "scrap_write_off": str(scrap_write_off),
            "rounding_adjustment": str(residue),
        })
        return result

    @staticmethod
    def _designated_index(outputs: Sequence[OutputQuantities]) -> tuple[int, str]:
        """
        Where the rounding residue goes, in order of preference:
        the last non-scrap line with good production, the last non-scrap line
        with waste, then the scrap write-off.
        """
        for i in range(len(outputs) - 1, -1, -1):
            if not outputs[i].is_scrap and outputs[i].produced > ZERO:
                return i, "allocated"
        for i in range(len(outputs) - 1, -1, -1):
            if not outputs[i].is_scrap and outputs[i].wasted > ZERO:
                return i, "waste"
        return -1, "scrap"

    @classmethod
    def _residue_targets(
        cls,
        outputs: Sequence[OutputQuantities],
        figures: dict[tuple[str, int], Decimal],
        residue: Decimal,
    ) -> list[tuple[tuple[str, int], Decimal]]:
        """
        Split the residue into (figure, amount) adjustments.

        A positive residue goes whole to the designated figure.  A negative
        one is taken from the designated figure down to zero, then from the
        remaining figures largest first.  The figures sum to
        ``total_input_cost - residue``, so they always cover it.
        """
        index, target = cls._designated_index(outputs)
        designated = (target, index)
        if residue > ZERO:
            return [(designated, residue)]

        others = sorted(
            (key for key in figures if key != designated),
            key=lambda key: figures[key],
            reverse=True,
        )
        remaining = -residue
        targets = []
        for key in [designated, *others]:
            if remaining == ZERO:
                break
            take = min(figures[key], remaining)
            if take > ZERO:
                targets.append((key, -take))
                remaining -= take
        return targets

    def _nothing_to_absorb(
        self,
        total_input_cost: Decimal,
        outputs: Sequence[OutputQuantities],
    ) -> CostAllocationResult:
        """Zero output quantity: every line gets nothing, input cost is written off."""
        if total_input_cost > ZERO:
            logger.warning("cost_allocation_no_output_quantity", extra={
                "total_input_cost": str(total_input_cost),
            })
        lines = tuple(
            OutputAllocation(
                line_id=o.line_id,
                produced=o.produced,
                wasted=o.wasted,
                is_scrap=o.is_scrap,
                cost_per_unit=ZERO,
                allocated_cost=ZERO,
                waste_cost=ZERO,
                cost_share=ZERO,
            )
            for o in outputs
        )
        return CostAllocationResult(
            total_input_cost=total_input_cost,
            total_output_quantity=ZERO,
            cost_per_unit=ZERO,
            lines=lines,
            total_output_cost=ZERO,
            total_waste_cost=ZERO,
            scrap_write_off=total_input_cost,
            rounding_adjustment=ZERO,
        )
