"""
Tests for CostAllocator.

Covers:
- Uniform cost per unit over produced + wasted quantity
- Scrap lines carry no inventory cost; their share is written off
- Conservation of input cost after money rounding
- Rounding residue placement
- Zero output quantity
- Input validation
"""

from decimal import Decimal

import pytest

from transformation_engines.cost_allocation import (
    CostAllocator,
    OutputQuantities,
    apportion,
)


class TestCostPerUnit:
    """One rate applies to every unit produced or wasted."""

    def setup_method(self):
        self.allocator = CostAllocator()

    def test_single_output_absorbs_everything(self):
        result = self.allocator.allocate(
            total_input_cost=Decimal("120.00"),
            outputs=[OutputQuantities(line_id="a", produced=Decimal("12"))],
        )

        assert result.cost_per_unit == Decimal("10")
        assert result.line_for("a").allocated_cost == Decimal("120.00")
        assert result.total_output_cost == Decimal("120.00")
        assert result.cost_variance == Decimal("0")

    def test_rate_includes_wasted_quantity(self):
        """Waste is in the denominator, so good units are not overloaded."""
        result = self.allocator.allocate(
            total_input_cost=Decimal("100"),
            outputs=[
                OutputQuantities(line_id="a", produced=Decimal("8"), wasted=Decimal("2")),
            ],
        )

        line = result.line_for("a")
        assert result.cost_per_unit == Decimal("10")
        assert line.allocated_cost == Decimal("80.00")
        assert line.waste_cost == Decimal("20.00")
        assert line.cost_share == Decimal("100.00")
        assert result.total_waste_cost == Decimal("20.00")

    def test_lines_keep_input_order(self):
        result = self.allocator.allocate(
            total_input_cost=Decimal("30"),
            outputs=[
                OutputQuantities(line_id="z", produced=Decimal("1")),
                OutputQuantities(line_id="a", produced=Decimal("2")),
            ],
        )

        assert [line.line_id for line in result.lines] == ["z", "a"]


class TestWorkedExample:
    """
    150.00 of input over 18 units: 8 good, 4 good + 1 waste, 5 scrap.

    Cost per unit 8.333...; the second line's share is 41.67 of which 33.33
    goes into inventory and 8.33 is waste.
    """

    def setup_method(self):
        self.result = CostAllocator().allocate(
            total_input_cost=Decimal("150.00"),
            outputs=[
                OutputQuantities(line_id="a", produced=Decimal("8")),
                OutputQuantities(line_id="b", produced=Decimal("4"), wasted=Decimal("1")),
                OutputQuantities(line_id="c", wasted=Decimal("5"), is_scrap=True),
            ],
        )

    def test_cost_per_unit(self):
        assert self.result.total_output_quantity == Decimal("18")
        assert self.result.cost_per_unit == Decimal("8.333333333")

    def test_good_line(self):
        line = self.result.line_for("a")
        assert line.allocated_cost == Decimal("66.67")
        assert line.waste_cost == Decimal("0.00")

    def test_line_with_waste(self):
        line = self.result.line_for("b")
        assert line.allocated_cost == Decimal("33.33")
        assert line.waste_cost == Decimal("8.33")
        assert line.cost_share == Decimal("41.67")

    def test_scrap_line(self):
        line = self.result.line_for("c")
        assert line.allocated_cost == Decimal("0")
        assert line.allocated_cost_per_unit == Decimal("0")
        assert line.cost_share == Decimal("41.67")

    def test_totals(self):
        assert self.result.total_output_cost == Decimal("100.00")
        assert self.result.total_waste_cost == Decimal("8.33")
        assert self.result.scrap_write_off == Decimal("41.67")
        assert self.result.cost_variance == Decimal("50.00")

    def test_conserved_without_adjustment(self):
        assert self.result.is_conserved
        assert self.result.rounding_adjustment == Decimal("0")


class TestRounding:
    """The residue never breaks conservation and never drives a figure negative."""

    def setup_method(self):
        self.allocator = CostAllocator()

    def test_residue_goes_to_last_producing_line(self):
        result = self.allocator.allocate(
            total_input_cost=Decimal("100.00"),
            outputs=[
                OutputQuantities(line_id="a", produced=Decimal("1")),
                OutputQuantities(line_id="b", produced=Decimal("1")),
                OutputQuantities(line_id="c", produced=Decimal("1")),
            ],
        )

        assert [line.allocated_cost for line in result.lines] == [
            Decimal("33.33"), Decimal("33.33"), Decimal("33.34"),
        ]
        assert result.line_for("c").rounding_adjustment == Decimal("0.01")
        assert result.rounding_adjustment == Decimal("0.01")
        assert result.is_conserved

    def test_residue_skips_scrap_lines(self):
        result = self.allocator.allocate(
            total_input_cost=Decimal("100.00"),
            outputs=[
                OutputQuantities(line_id="a", produced=Decimal("1")),
                OutputQuantities(line_id="b", produced=Decimal("1")),
                OutputQuantities(line_id="s", produced=Decimal("1"), is_scrap=True),
            ],
        )

        assert result.line_for("s").allocated_cost == Decimal("0")
        assert result.line_for("b").allocated_cost == Decimal("33.34")
        assert result.scrap_write_off == Decimal("33.33")
        assert result.is_conserved

    def test_residue_goes_to_waste_without_production(self):
        result = self.allocator.allocate(
            total_input_cost=Decimal("100.00"),
            outputs=[
                OutputQuantities(line_id="a", wasted=Decimal("1")),
                OutputQuantities(line_id="b", wasted=Decimal("1")),
                OutputQuantities(line_id="c", wasted=Decimal("1")),
            ],
        )

        assert result.total_output_cost == Decimal("0")
        assert result.line_for("c").waste_cost == Decimal("33.34")
        assert result.total_waste_cost == Decimal("100.00")
        assert result.is_conserved

    def test_only_scrap_writes_everything_off(self):
        result = self.allocator.allocate(
            total_input_cost=Decimal("100.00"),
            outputs=[
                OutputQuantities(line_id="a", wasted=Decimal("1"), is_scrap=True),
                OutputQuantities(line_id="b", produced=Decimal("2"), is_scrap=True),
            ],
        )

        assert result.total_output_cost == Decimal("0")
        assert result.total_waste_cost == Decimal("0")
        assert result.scrap_write_off == Decimal("100.00")
        assert result.is_conserved

    def test_negative_residue_taken_from_designated_line(self):
        result = self.allocator.allocate(
            total_input_cost=Decimal("2.00"),
            outputs=[
                OutputQuantities(line_id="a", produced=Decimal("1")),
                OutputQuantities(line_id="b", produced=Decimal("1")),
                OutputQuantities(line_id="c", produced=Decimal("1")),
            ],
        )

        assert [line.allocated_cost for line in result.lines] == [
            Decimal("0.67"), Decimal("0.67"), Decimal("0.66"),
        ]
        assert result.line_for("c").rounding_adjustment == Decimal("-0.01")
        assert result.rounding_adjustment == Decimal("-0.01")

    def test_negative_residue_spills_past_an_exhausted_line(self):
        """Every figure rounds 0.005 up; the last line cannot absorb -0.02 alone."""
        result = self.allocator.allocate(
            total_input_cost=Decimal("0.02"),
            outputs=[
                OutputQuantities(line_id="a", produced=Decimal("0.001")),
                OutputQuantities(line_id="b", wasted=Decimal("0.001")),
                OutputQuantities(
                    line_id="c", produced=Decimal("0.001"), wasted=Decimal("0.001"),
                ),
            ],
        )

        assert [(line.allocated_cost, line.waste_cost) for line in result.lines] == [
            (Decimal("0.00"), Decimal("0.00")),
            (Decimal("0.00"), Decimal("0.01")),
            (Decimal("0.00"), Decimal("0.01")),
        ]
        assert result.rounding_adjustment == Decimal("-0.02")
        assert result.total_output_cost == Decimal("0.00")
        assert result.total_waste_cost == Decimal("0.02")
        assert result.is_conserved

    def test_negative_residue_with_scrap_line(self):
        result = self.allocator.allocate(
            total_input_cost=Decimal("0.01"),
            outputs=[
                OutputQuantities(line_id="a", produced=Decimal("0.001")),
                OutputQuantities(line_id="s", wasted=Decimal("0.001"), is_scrap=True),
            ],
        )

        assert result.line_for("a").allocated_cost == Decimal("0.00")
        assert result.scrap_write_off == Decimal("0.01")
        assert result.is_conserved

    def test_custom_money_places(self):
        result = CostAllocator(money_places=0).allocate(
            total_input_cost=Decimal("10"),
            outputs=[
                OutputQuantities(line_id="a", produced=Decimal("3")),
                OutputQuantities(line_id="b", produced=Decimal("3")),
                OutputQuantities(line_id="c", produced=Decimal("3")),
            ],
        )

        assert sum(line.allocated_cost for line in result.lines) == Decimal("10")
        assert result.is_conserved


class TestNothingProduced:
    """Zero total output quantity."""

    def test_input_cost_is_written_off(self):
        result = CostAllocator().allocate(
            total_input_cost=Decimal("50.00"),
            outputs=[OutputQuantities(line_id="a"), OutputQuantities(line_id="b")],
        )

        assert result.cost_per_unit == Decimal("0")
        assert result.total_output_cost == Decimal("0")
        assert result.scrap_write_off == Decimal("50.00")
        assert all(line.allocated_cost == Decimal("0") for line in result.lines)
        assert result.is_conserved

    def test_zero_cost_zero_quantity(self):
        result = CostAllocator().allocate(
            total_input_cost=Decimal("0"),
            outputs=[OutputQuantities(line_id="a")],
        )

        assert result.scrap_write_off == Decimal("0")
        assert result.cost_variance == Decimal("0")

    def test_zero_cost_with_production(self):
        result = CostAllocator().allocate(
            total_input_cost=Decimal("0"),
            outputs=[OutputQuantities(line_id="a", produced=Decimal("5"))],
        )

        assert result.cost_per_unit == Decimal("0")
        assert result.line_for("a").allocated_cost == Decimal("0")


class TestValidation:

    def test_negative_input_cost_rejected(self):
        with pytest.raises(ValueError, match="cannot be negative"):
            CostAllocator().allocate(
                total_input_cost=Decimal("-1"),
                outputs=[OutputQuantities(line_id="a", produced=Decimal("1"))],
            )

    def test_duplicate_line_ids_rejected(self):
        with pytest.raises(ValueError, match="Duplicate"):
            CostAllocator().allocate(
                total_input_cost=Decimal("10"),
                outputs=[
                    OutputQuantities(line_id="a", produced=Decimal("1")),
                    OutputQuantities(line_id="a", produced=Decimal("2")),
                ],
            )

    def test_negative_quantity_rejected(self):
        with pytest.raises(ValueError, match="cannot be negative"):
            OutputQuantities(line_id="a", produced=Decimal("-1"))

    def test_unknown_line_lookup(self):
        result = CostAllocator().allocate(
            total_input_cost=Decimal("10"),
            outputs=[OutputQuantities(line_id="a", produced=Decimal("1"))],
        )
        with pytest.raises(KeyError):
            result.line_for("missing")


class TestApportion:
    """Largest-remainder split at a fixed number of places."""

    def test_equal_weights_remainder_to_first(self):
        parts = apportion(Decimal("1.00"), [Decimal("1")] * 3, 2)

        assert parts == [Decimal("0.34"), Decimal("0.33"), Decimal("0.33")]

    def test_largest_remainder_wins(self):
        parts = apportion(Decimal("1.00"), [Decimal("2"), Decimal("1")], 2)

        assert parts == [Decimal("0.67"), Decimal("0.33")]

    def test_zero_weight_gets_nothing(self):
        parts = apportion(Decimal("5.00"), [Decimal("0"), Decimal("1")], 2)

        assert parts == [Decimal("0.00"), Decimal("5.00")]

    def test_zero_total_weight_rejected(self):
        with pytest.raises(ValueError, match="positive total weight"):
            apportion(Decimal("1.00"), [Decimal("0"), Decimal("0")], 2)
