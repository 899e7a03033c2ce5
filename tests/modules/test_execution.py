"""
End-to-end execution of a transformation order.

The worked example consumes 10 RAW-A at 10.00 and 10 RAW-B at 5.00 (150.00)
into 8 FG-1, 4 FG-2 (+1 wasted) and 5 wasted scrap:

    cost per unit        150.00 / 18 = 8.333333333
    FG-1 allocated       66.67
    FG-2 allocated       33.33, waste 8.33
    scrap write-off      41.67
    output total         100.00, variance 50.00
"""

from collections import Counter
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from tests.conftest import TEST_ACTOR_ID
from transformation_kernel.domain.dtos import AttributionBasis, MovementKind, MovementType
from transformation_kernel.exceptions import OrderNotFoundError
from transformation_modules.transformation.config import TransformationConfig
from transformation_modules.transformation.models import (
    ExecutionData,
    InputExecution,
    OrderStatus,
    OutputExecution,
)
from transformation_modules.transformation.service import TransformationService


@pytest.fixture
def executed(service, worked_example):
    result = service.execute_transformation(
        worked_example.order.id, TEST_ACTOR_ID, worked_example.execution_data(),
    )
    assert result.success, result.error
    return result


def _balance(ledger, item, warehouse_id):
    return ledger.get_balance(item.id, warehouse_id).current_stock


class TestSuccessfulExecution:

    def test_result_lists_every_movement(self, executed):
        ids = executed.stock_transaction_ids

        assert len(ids.inputs) == 2
        assert len(ids.outputs) == 3
        assert len(ids.waste) == 2
        assert executed.error is None
        assert executed.code is None

    def test_order_completed(self, executed):
        order = executed.order

        assert order.status is OrderStatus.COMPLETED
        assert order.version == 3
        assert order.actual_quantity == Decimal("12")
        assert order.execution_date == date(2024, 3, 15)
        assert order.completion_date is not None

    def test_cost_totals(self, executed):
        order = executed.order

        assert order.total_input_cost == Decimal("150.00")
        assert order.total_output_cost == Decimal("100.00")
        assert order.total_waste_cost == Decimal("8.33")
        assert order.scrap_write_off == Decimal("41.67")
        assert order.cost_variance == Decimal("50.00")

    def test_cost_conservation(self, executed):
        order = executed.order

        assert (
            order.total_output_cost + order.total_waste_cost + order.scrap_write_off
            == order.total_input_cost
        )

    def test_input_lines_record_actuals(self, executed, worked_example):
        by_item = {line.item_id: line for line in executed.order.inputs}
        raw_a = by_item[worked_example.raw_a.id]

        assert raw_a.consumed_quantity == Decimal("10")
        assert raw_a.unit_cost == Decimal("10")
        assert raw_a.total_cost == Decimal("100.00")
        assert raw_a.stock_transaction_id in executed.stock_transaction_ids.inputs
        assert by_item[worked_example.raw_b.id].total_cost == Decimal("50.00")

    def test_output_lines_record_allocation(self, executed, worked_example):
        by_item = {line.item_id: line for line in executed.order.outputs}
        good_1 = by_item[worked_example.good_1.id]
        good_2 = by_item[worked_example.good_2.id]
        scrap = by_item[worked_example.scrap.id]

        assert good_1.allocated_cost_per_unit == Decimal("8.333333333")
        assert good_1.total_allocated_cost == Decimal("66.67")
        assert good_1.waste_transaction_id is None
        assert good_2.total_allocated_cost == Decimal("33.33")
        assert good_2.waste_cost == Decimal("8.33")
        assert good_2.waste_reason == "trim loss"
        assert good_2.waste_transaction_id in executed.stock_transaction_ids.waste
        assert scrap.produced_quantity == Decimal("0")
        assert scrap.total_allocated_cost == Decimal("0")

    def test_balances_moved(self, executed, worked_example, ledger, warehouse_id):
        assert _balance(ledger, worked_example.raw_a, warehouse_id) == Decimal("90")
        assert _balance(ledger, worked_example.raw_b, warehouse_id) == Decimal("90")
        assert _balance(ledger, worked_example.good_1, warehouse_id) == Decimal("8")
        assert _balance(ledger, worked_example.good_2, warehouse_id) == Decimal("4")
        assert _balance(ledger, worked_example.scrap, warehouse_id) == Decimal("0")

    def test_execution_notes_and_date(self, service, worked_example):
        data = worked_example.execution_data()
        data = ExecutionData(
            inputs=data.inputs,
            outputs=data.outputs,
            execution_date=date(2024, 3, 20),
            notes="Night shift",
        )

        result = service.execute_transformation(worked_example.order.id, TEST_ACTOR_ID, data)

        assert result.order.execution_date == date(2024, 3, 20)
        assert result.order.notes == "Night shift"

    def test_completion_logged_with_order_id(self, service, worked_example, captured_logs):
        service.execute_transformation(
            worked_example.order.id, TEST_ACTOR_ID, worked_example.execution_data(),
        )

        completed = [
            r for r in captured_logs() if r["message"] == "transformation_execution_completed"
        ]
        assert len(completed) == 1
        assert completed[0]["order_id"] == str(worked_example.order.id)
        assert completed[0]["transaction_count"] == 7


class TestStockTransactions:

    def test_movements_by_kind(self, service, executed):
        movements = service.stock_transactions_for_order(executed.order_id)

        assert Counter(m.kind for m in movements) == {
            MovementKind.CONSUMPTION: 2,
            MovementKind.PRODUCTION: 3,
            MovementKind.WASTE: 2,
        }
        assert all(m.reference_code == executed.order.order_code for m in movements)
        assert all(m.transaction_code.startswith("ST-") for m in movements)

    def test_consumption_snapshot(self, service, executed, worked_example):
        consumption = [
            m for m in service.stock_transactions_for_order(executed.order_id)
            if m.kind is MovementKind.CONSUMPTION
        ]
        line = next(
            m.lines[0] for m in consumption if m.lines[0].item_id == worked_example.raw_a.id
        )

        assert consumption[0].movement_type is MovementType.OUT
        assert line.quantity == Decimal("10")
        assert line.qty_before == Decimal("100")
        assert line.qty_after == Decimal("90")
        assert line.total_cost == Decimal("100.00")

    def test_waste_does_not_touch_balances(self, service, executed):
        waste = [
            m for m in service.stock_transactions_for_order(executed.order_id)
            if m.kind is MovementKind.WASTE
        ]

        assert {m.notes for m in waste} == {"trim loss", "offcuts"}
        for movement in waste:
            assert movement.movement_type is MovementType.OUT
            assert movement.lines[0].qty_before == Decimal("0")
            assert movement.lines[0].qty_after == Decimal("0")

    def test_unknown_order(self, service):
        with pytest.raises(OrderNotFoundError):
            service.stock_transactions_for_order(uuid4())


class TestLineage:

    def test_edge_per_input_output_pair(self, service, executed):
        edges = service.lineage_for_order(executed.order_id)

        assert len(edges) == 6
        assert {e.attribution_basis for e in edges} == {AttributionBasis.COST}

    def test_edge_costs_sum_to_allocated(self, service, executed, worked_example):
        outputs = {line.item_id: line for line in executed.order.outputs}
        good_1 = outputs[worked_example.good_1.id]

        edges = service.trace_output(good_1.id)

        assert len(edges) == 2
        assert sum(e.cost_attributed for e in edges) == Decimal("66.67")
        assert {e.output_quantity_from for e in edges} == {Decimal("8")}

    def test_trace_input(self, service, executed, worked_example):
        inputs = {line.item_id: line for line in executed.order.inputs}
        raw_a = inputs[worked_example.raw_a.id]

        edges = service.trace_input(raw_a.id)

        assert len(edges) == 3
        assert sum(e.input_quantity_used for e in edges) == Decimal("10")


class TestPreconditions:

    def test_unknown_order(self, service, worked_example):
        result = service.execute_transformation(
            uuid4(), TEST_ACTOR_ID, worked_example.execution_data(),
        )

        assert result.success is False
        assert result.code == "ORDER_NOT_FOUND"
        assert result.error == "Order not found"

    def test_draft_order_rejected(self, service, worked_example, warehouse_id):
        draft = service.create_order_from_template(
            worked_example.template.id, warehouse_id, Decimal("1"), TEST_ACTOR_ID,
        )
        inputs = {line.item_id: line.id for line in draft.inputs}
        outputs = {line.item_id: line.id for line in draft.outputs}
        data = ExecutionData(
            inputs=(InputExecution(inputs[worked_example.raw_a.id], Decimal("1")),),
            outputs=(OutputExecution(outputs[worked_example.good_1.id], Decimal("1")),),
        )

        result = service.execute_transformation(draft.id, TEST_ACTOR_ID, data)

        assert result.code == "INVALID_STATE"
        assert result.error == (
            "Order must be in PREPARING status to execute. Current status: DRAFT"
        )
        assert service.get_order(draft.id).status is OrderStatus.DRAFT

    def test_second_execution_rejected(self, service, worked_example, executed):
        result = service.execute_transformation(
            worked_example.order.id, TEST_ACTOR_ID, worked_example.execution_data(),
        )

        assert result.success is False
        assert result.code == "INVALID_STATE"
        assert "Current status: COMPLETED" in result.error

    def test_foreign_input_line(self, service, worked_example):
        data = worked_example.execution_data()
        stranger = uuid4()
        data = ExecutionData(
            inputs=(InputExecution(stranger, Decimal("1")),) + data.inputs[1:],
            outputs=data.outputs,
        )

        result = service.execute_transformation(worked_example.order.id, TEST_ACTOR_ID, data)

        assert result.code == "INVALID_EXECUTION_DATA"
        assert result.error == f"Invalid input line ID: {stranger}"

    def test_duplicate_input_line(self, service, worked_example):
        data = worked_example.execution_data()
        data = ExecutionData(inputs=(data.inputs[0], data.inputs[0]), outputs=data.outputs)

        result = service.execute_transformation(worked_example.order.id, TEST_ACTOR_ID, data)

        assert result.code == "INVALID_EXECUTION_DATA"
        assert "Duplicate input line ID" in result.error

    def test_foreign_output_line(self, service, worked_example):
        data = worked_example.execution_data()
        data = ExecutionData(
            inputs=data.inputs,
            outputs=(OutputExecution(uuid4(), Decimal("1")),),
        )

        result = service.execute_transformation(worked_example.order.id, TEST_ACTOR_ID, data)

        assert result.code == "INVALID_EXECUTION_DATA"
        assert "Invalid output line ID" in result.error

    def test_no_inputs(self, service, worked_example):
        data = ExecutionData(inputs=(), outputs=worked_example.execution_data().outputs)

        result = service.execute_transformation(worked_example.order.id, TEST_ACTOR_ID, data)

        assert result.code == "INVALID_EXECUTION_DATA"
        assert result.error == "Execution data must list at least one input line"

    def test_precheck_reports_short_item(
        self, service, worked_example, ledger, warehouse_id,
    ):
        result = service.execute_transformation(
            worked_example.order.id,
            TEST_ACTOR_ID,
            worked_example.execution_data(consumed_a="150"),
        )

        assert result.success is False
        assert result.code == "INSUFFICIENT_STOCK"
        assert result.error == "Insufficient stock for 1 item(s)"
        (item,) = result.insufficient_items
        assert item.item_id == worked_example.raw_a.id
        assert item.item_code == "RAW-A"
        assert item.required == Decimal("150")
        assert item.available == Decimal("100")
        assert item.shortfall == Decimal("50")

        assert _balance(ledger, worked_example.raw_b, warehouse_id) == Decimal("100")
        assert service.get_order(worked_example.order.id).status is OrderStatus.PREPARING
        assert service.stock_transactions_for_order(worked_example.order.id) == []

    def test_precheck_reports_every_short_item(self, service, worked_example):
        result = service.execute_transformation(
            worked_example.order.id,
            TEST_ACTOR_ID,
            worked_example.execution_data(consumed_a="200", consumed_b="101"),
        )

        assert result.code == "INSUFFICIENT_STOCK"
        assert {i.item_code for i in result.insufficient_items} == {"RAW-A", "RAW-B"}

    def test_negative_quantities_rejected_at_construction(self, worked_example):
        with pytest.raises(ValueError, match="cannot be negative"):
            InputExecution(worked_example.order.inputs[0].id, Decimal("-1"))

    def test_quantity_finer_than_stored_precision_rejected(self, worked_example):
        with pytest.raises(ValueError, match="more than 9 decimal places"):
            InputExecution(worked_example.order.inputs[0].id, Decimal("0.0000000001"))

    def test_trailing_zeros_do_not_count_as_precision(self, worked_example):
        line = OutputExecution(
            worked_example.order.outputs[0].id, Decimal("1.000000000000"),
        )

        assert line.produced_quantity == Decimal("1")

    def test_quantity_finer_than_configured_places(
        self, session, clock, worked_example,
    ):
        service = TransformationService(
            session, clock=clock, config=TransformationConfig(quantity_places=3),
        )

        result = service.execute_transformation(
            worked_example.order.id,
            TEST_ACTOR_ID,
            worked_example.execution_data(consumed_a="9.0005"),
        )

        assert result.code == "INVALID_EXECUTION_DATA"
        assert result.error == "Quantity 9.0005 has more than 3 decimal places"
        assert service.get_order(worked_example.order.id).status is OrderStatus.PREPARING


class TestTinyQuantities:
    """Half-cent figures all round up; the negative residue must not break execution."""

    @pytest.fixture
    def tiny(self, make_item, put_stock, make_template, make_prepared_order):
        raw = make_item("RAW", cost_price="0.02")
        outputs = [make_item(code) for code in ("OUT-A", "OUT-B", "OUT-C")]
        put_stock(raw.id, "10")
        template = make_template(
            inputs=[(raw, "1")],
            outputs=[(item, "1", False) for item in outputs],
        )
        order = make_prepared_order(template)
        lines = {line.item_id: line.id for line in order.outputs}
        data = ExecutionData(
            inputs=(InputExecution(order.inputs[0].id, Decimal("1")),),
            outputs=(
                OutputExecution(lines[outputs[0].id], Decimal("0.001")),
                OutputExecution(lines[outputs[1].id], Decimal("0"), Decimal("0.001"), "spill"),
                OutputExecution(
                    lines[outputs[2].id], Decimal("0.001"), Decimal("0.001"), "spill",
                ),
            ),
        )
        return raw, order, data

    def test_executes_with_non_negative_costs(self, service, tiny):
        _raw, order, data = tiny

        result = service.execute_transformation(order.id, TEST_ACTOR_ID, data)

        assert result.success, result.error
        completed = result.order
        assert completed.total_input_cost == Decimal("0.02")
        assert (
            completed.total_output_cost + completed.total_waste_cost + completed.scrap_write_off
            == completed.total_input_cost
        )
        for line in completed.outputs:
            assert line.total_allocated_cost >= Decimal("0")
            assert line.waste_cost >= Decimal("0")

    def test_lineage_recorded(self, service, tiny, ledger, warehouse_id):
        raw, order, data = tiny

        service.execute_transformation(order.id, TEST_ACTOR_ID, data)

        edges = service.lineage_for_order(order.id)
        assert len(edges) == 3
        assert all(e.cost_attributed >= Decimal("0") for e in edges)
        assert ledger.get_balance(raw.id, warehouse_id).current_stock == Decimal("9")
