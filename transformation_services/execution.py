"""
TransformationExecutor -- turns a PREPARING order into stock movements.

Responsibility:
    Validates an execution request against its order, then drives the kernel
    services through a saga: complete the order, consume every input, allocate
    cost, produce every output, record waste, and finalize lineage and cost
    totals.

Architecture position:
    Services -- stateful orchestration over kernel services (StockLedger,
    StockTransactionRecorder, LineageTracker, ItemCatalog) and the pure
    engines (CostAllocator, LineageAttributor).  Owns the transaction
    boundaries through SagaRunner: every step commits on its own.

Invariants enforced:
    - Preconditions run before anything is written, in this order: order
      exists, status is PREPARING, line ids belong to the order and carry no
      more decimals than ``quantity_places``, stock covers the consumed
      quantities (when ``precheck_stock`` is on).
    - The order leaves PREPARING through a compare-and-swap on (status,
      version), so two concurrent executions cannot both succeed.
    - Each ledger delta and the stock transaction describing it commit
      together.
    - Cost conservation: total_output_cost + total_waste_cost +
      scrap_write_off == total_input_cost on the finalized order.
    - Any failure after the first step runs the compensations of the
      completed steps in reverse: reversal movements restore balances and the
      order returns to PREPARING.  Waste recording is best-effort unless
      ``strict_waste_recording`` is set.

Failure modes:
    - OrderNotFoundError, InvalidStateError, ExecutionDataError,
      InsufficientStockError raised from ``execute`` before the saga starts.
    - Saga step failures are reported in a failed ExecutionResult.  Database
      errors are reported as PersistenceFailureError naming the step.

Audit relevance:
    Every movement carries reference_type ``transformation_order`` and the
    order code.  Reversals point at the movement they undo.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from transformation_engines.cost_allocation import (
    CostAllocationResult,
    CostAllocator,
    OutputQuantities,
)
from transformation_engines.lineage_attribution import (
    ConsumedInput,
    LineageAttributor,
    ProducedOutput,
)
from transformation_kernel.db.types import ZERO, decimal_places, round_money
from transformation_kernel.domain.clock import Clock, SystemClock
from transformation_kernel.domain.dtos import (
    InsufficientItem,
    MovementKind,
    MovementLine,
    MovementType,
    StockMovement,
)
from transformation_kernel.exceptions import (
    ExecutionDataError,
    InsufficientStockError,
    InvalidStateError,
    NegativeStockError,
    OrderNotFoundError,
    PersistenceFailureError,
    TransformationKernelError,
)
from transformation_kernel.logging_config import LogContext, get_logger
from transformation_kernel.services.item_catalog import ItemCatalog
from transformation_kernel.services.lineage_tracker import LineageTracker
from transformation_kernel.services.stock_ledger import StockLedger
from transformation_kernel.services.transaction_recorder import StockTransactionRecorder
from transformation_modules.transformation.config import TransformationConfig
from transformation_modules.transformation.models import (
    ExecutionData,
    ExecutionResult,
    OrderStatus,
    OutputExecution,
    StockTransactionIds,
)
from transformation_modules.transformation.orm import (
    OrderInputModel,
    OrderOutputModel,
    TransformationOrderModel,
)
from transformation_modules.transformation.workflows import validate_transition
from transformation_services.saga import SagaOutcome, SagaRunner, SagaStep

logger = get_logger("services.execution")

REFERENCE_TYPE = "transformation_order"


def _waste_step_name(index: int) -> str:
    return f"record_waste[{index}]"


# =============================================================================
# Saga state
# =============================================================================


@dataclass(frozen=True)
class _ConsumedLine:
    line_id: UUID
    item_id: UUID
    uom_code: str | None
    quantity: Decimal
    unit_cost: Decimal
    total_cost: Decimal
    transaction_id: UUID
    estimated_unit_cost: Decimal | None = None
    estimated_total_cost: Decimal | None = None


@dataclass(frozen=True)
class _ProducedLine:
    line_id: UUID
    item_id: UUID
    uom_code: str | None
    quantity: Decimal
    unit_cost: Decimal
    transaction_id: UUID


@dataclass
class _ExecutionState:
    """Mutable state threaded through the saga steps of one execution."""

    order_id: UUID
    order_code: str
    company_id: UUID | None
    warehouse_id: UUID
    version: int
    actor_id: UUID
    data: ExecutionData
    execution_date: date
    consumed: list[_ConsumedLine] = field(default_factory=list)
    produced: list[_ProducedLine] = field(default_factory=list)
    allocation: CostAllocationResult | None = None

    def movement(
        self,
        movement_type: MovementType,
        kind: MovementKind,
        notes: str | None = None,
        reverses: UUID | None = None,
    ) -> StockMovement:
        return StockMovement(
            movement_type=movement_type,
            kind=kind,
            warehouse_id=self.warehouse_id,
            reference_type=REFERENCE_TYPE,
            reference_id=self.order_id,
            reference_code=self.order_code,
            transaction_date=self.execution_date,
            company_id=self.company_id,
            notes=notes,
            reverses_transaction_id=reverses,
        )


def failure_result(
    order_id: UUID,
    error: TransformationKernelError,
    failed_step: str | None = None,
    compensation_failures: tuple[str, ...] = (),
) -> ExecutionResult:
    """Failed ExecutionResult for a kernel error."""
    items = error.items if isinstance(error, InsufficientStockError) else ()
    return ExecutionResult.failed(
        order_id=order_id,
        error=str(error),
        code=error.code,
        insufficient_items=items,
        failed_step=failed_step,
        compensation_failures=compensation_failures,
    )


# =============================================================================
# Executor
# =============================================================================


class TransformationExecutor:
    """
    Executes transformation orders.

    Usage:
        executor = TransformationExecutor(session, clock, config)
        result = executor.execute(order_id, actor_id, ExecutionData(...))

    ``execute`` raises for precondition failures and returns a failed
    ExecutionResult when a saga step fails after compensation.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: TransformationConfig | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._config = config or TransformationConfig.with_defaults()
        self._ledger = StockLedger(
            session,
            max_cas_retries=self._config.max_cas_retries,
            quantity_places=self._config.quantity_places,
        )
        self._recorder = StockTransactionRecorder(
            session,
            clock=self._clock,
            code_prefix=self._config.stock_transaction_prefix,
            code_width=self._config.stock_transaction_code_width,
            money_places=self._config.money_decimal_places,
        )
        self._lineage = LineageTracker(session)
        self._catalog = ItemCatalog(session)
        self._allocator = CostAllocator(
            money_places=self._config.money_decimal_places,
            cost_per_unit_places=self._config.cost_per_unit_places,
        )
        self._attributor = LineageAttributor(
            money_places=self._config.money_decimal_places,
            quantity_places=self._config.quantity_places,
        )

    # -------------------------------------------------------------------------
    # Preconditions
    # -------------------------------------------------------------------------

    def _load_order(self, order_id: UUID) -> TransformationOrderModel:
        order = self._session.execute(
            select(TransformationOrderModel)
            .where(TransformationOrderModel.id == order_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if order is None or order.deleted_at is not None:
            raise OrderNotFoundError(str(order_id))
        return order

    def _validate_lines(self, order: TransformationOrderModel, data: ExecutionData) -> None:
        order_id = str(order.id)
        if not data.inputs:
            raise ExecutionDataError(
                order_id, "Execution data must list at least one input line", field="inputs",
            )
        if not data.outputs:
            raise ExecutionDataError(
                order_id, "Execution data must list at least one output line", field="outputs",
            )

        input_ids = {line.id for line in order.inputs}
        seen: set[UUID] = set()
        for entry in data.inputs:
            if entry.input_line_id not in input_ids:
                raise ExecutionDataError(
                    order_id, f"Invalid input line ID: {entry.input_line_id}", field="inputs",
                )
            if entry.input_line_id in seen:
                raise ExecutionDataError(
                    order_id, f"Duplicate input line ID: {entry.input_line_id}", field="inputs",
                )
            seen.add(entry.input_line_id)

        output_ids = {line.id for line in order.outputs}
        seen = set()
        for entry in data.outputs:
            if entry.output_line_id not in output_ids:
                raise ExecutionDataError(
                    order_id, f"Invalid output line ID: {entry.output_line_id}", field="outputs",
                )
            if entry.output_line_id in seen:
                raise ExecutionDataError(
                    order_id, f"Duplicate output line ID: {entry.output_line_id}", field="outputs",
                )
            seen.add(entry.output_line_id)

        places = self._config.quantity_places
        quantities = [("inputs", e.consumed_quantity) for e in data.inputs] + [
            ("outputs", q)
            for e in data.outputs
            for q in (e.produced_quantity, e.wasted_quantity)
        ]
        for field_name, quantity in quantities:
            if decimal_places(quantity) > places:
                raise ExecutionDataError(
                    order_id,
                    f"Quantity {quantity} has more than {places} decimal places",
                    field=field_name,
                )

    def _precheck_stock(self, order: TransformationOrderModel, data: ExecutionData) -> None:
        """Compare total consumption per item with available stock; report every shortfall."""
        lines = {line.id: line for line in order.inputs}
        required: dict[UUID, Decimal] = defaultdict(lambda: ZERO)
        for entry in data.inputs:
            required[lines[entry.input_line_id].item_id] += entry.consumed_quantity

        items = self._catalog.get_items(required)
        shortfalls: list[InsufficientItem] = []
        for item_id, quantity in required.items():
            if quantity <= ZERO:
                continue
            available = self._ledger.available_stock(item_id, order.warehouse_id)
            if available < quantity:
                snapshot = items.get(item_id)
                shortfalls.append(InsufficientItem(
                    item_id=item_id,
                    item_code=snapshot.item_code if snapshot else None,
                    item_name=snapshot.item_name if snapshot else None,
                    required=quantity,
                    available=available,
                ))

        if shortfalls:
            logger.warning("execution_stock_precheck_failed", extra={
                "order_id": str(order.id),
                "insufficient_count": len(shortfalls),
            })
            raise InsufficientStockError(shortfalls, order_id=str(order.id))

    # -------------------------------------------------------------------------
    # Entry point
    # -------------------------------------------------------------------------

    def execute(self, order_id: UUID, actor_id: UUID, data: ExecutionData) -> ExecutionResult:
        """
        Execute ``order_id`` with the quantities in ``data``.

        Raises:
            OrderNotFoundError: unknown or soft-deleted order.
            InvalidStateError: order is not PREPARING.
            ExecutionDataError: line ids do not belong to the order.
            InsufficientStockError: pre-check found short items.
        """
        with LogContext.bind(order_id=order_id, actor_id=actor_id):
            order = self._load_order(order_id)
            if order.status != OrderStatus.PREPARING.value:
                raise InvalidStateError(
                    entity_id=str(order_id),
                    current_status=order.status,
                    operation="execute",
                    required_status=OrderStatus.PREPARING.value,
                )
            validate_transition(order.status, OrderStatus.COMPLETED, via_execution=True)
            self._validate_lines(order, data)
            if self._config.precheck_stock:
                self._precheck_stock(order, data)

            state = _ExecutionState(
                order_id=order.id,
                order_code=order.order_code,
                company_id=order.company_id,
                warehouse_id=order.warehouse_id,
                version=order.version,
                actor_id=actor_id,
                data=data,
                execution_date=data.execution_date or self._clock.today(),
            )

            logger.info("transformation_execution_started", extra={
                "order_code": order.order_code,
                "input_count": len(data.inputs),
                "output_count": len(data.outputs),
            })

            runner = SagaRunner(self._session, name="execute_transformation")
            outcome = runner.run(self._build_steps(state), context=state)

            if not outcome.succeeded:
                return self._failed(state, outcome)

            ids = StockTransactionIds(
                inputs=tuple(c.transaction_id for c in state.consumed),
                outputs=tuple(p.transaction_id for p in state.produced),
                waste=tuple(
                    outcome.results[name][1]
                    for name in map(_waste_step_name, range(len(data.outputs)))
                    if name in outcome.results
                ),
            )
            logger.info("transformation_execution_completed", extra={
                "order_code": state.order_code,
                "total_input_cost": str(state.allocation.total_input_cost),
                "total_output_cost": str(state.allocation.total_output_cost),
                "cost_variance": str(state.allocation.cost_variance),
                "transaction_count": len(ids.inputs) + len(ids.outputs) + len(ids.waste),
            })
            return ExecutionResult(
                success=True,
                order_id=order_id,
                stock_transaction_ids=ids,
                order=self._load_order(order_id).to_dto(),
            )

    def _failed(self, state: _ExecutionState, outcome: SagaOutcome) -> ExecutionResult:
        error = outcome.error
        if isinstance(error, SQLAlchemyError):
            detail = str(getattr(error, "orig", None) or error)
            error = PersistenceFailureError(outcome.failed_step, detail)
        if not isinstance(error, TransformationKernelError):
            raise error

        logger.error("transformation_execution_failed", extra={
            "order_code": state.order_code,
            "failed_step": outcome.failed_step,
            "error_code": error.code,
            "compensation_failures": len(outcome.compensation_failures),
        })
        return failure_result(
            state.order_id,
            error,
            failed_step=outcome.failed_step,
            compensation_failures=outcome.compensation_failures,
        )

    # -------------------------------------------------------------------------
    # Saga steps
    # -------------------------------------------------------------------------

    def _build_steps(self, state: _ExecutionState) -> list[SagaStep]:
        steps = [SagaStep("complete_order", self._complete_order, self._reopen_order)]

        for index, entry in enumerate(state.data.inputs):
            steps.append(SagaStep(
                f"consume_input[{index}]",
                lambda s, entry=entry: self._consume_input(s, entry.input_line_id,
                                                           entry.consumed_quantity),
                self._restore_input,
            ))

        steps.append(SagaStep("allocate_costs", self._allocate_costs))

        for index, entry in enumerate(state.data.outputs):
            steps.append(SagaStep(
                f"produce_output[{index}]",
                lambda s, entry=entry: self._produce_output(s, entry),
                self._remove_output,
            ))

        for index, entry in enumerate(state.data.outputs):
            if entry.wasted_quantity > ZERO:
                steps.append(SagaStep(
                    _waste_step_name(index),
                    lambda s, entry=entry: self._record_waste(s, entry),
                    self._reverse_waste,
                    best_effort=not self._config.strict_waste_recording,
                ))

        steps.append(SagaStep("finalize", self._finalize))
        return steps

    def _complete_order(self, state: _ExecutionState) -> None:
        actual = sum((o.produced_quantity for o in state.data.outputs), ZERO)
        result = self._session.execute(
            update(TransformationOrderModel)
            .where(
                TransformationOrderModel.id == state.order_id,
                TransformationOrderModel.status == OrderStatus.PREPARING.value,
                TransformationOrderModel.version == state.version,
            )
            .values(
                status=OrderStatus.COMPLETED.value,
                version=state.version + 1,
                execution_date=state.execution_date,
                completion_date=self._clock.now(),
                actual_quantity=actual,
                updated_by_id=state.actor_id,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            current = self._session.execute(
                select(TransformationOrderModel.status)
                .where(TransformationOrderModel.id == state.order_id)
            ).scalar_one()
            raise InvalidStateError(
                entity_id=str(state.order_id),
                current_status=current,
                operation="execute",
                required_status=OrderStatus.PREPARING.value,
            )
        state.version += 1
        logger.info("transformation_order_completed", extra={
            "order_code": state.order_code,
            "actual_quantity": str(actual),
            "version": state.version,
        })

    def _reopen_order(self, state: _ExecutionState, _result: None) -> None:
        self._session.execute(
            update(TransformationOrderModel)
            .where(
                TransformationOrderModel.id == state.order_id,
                TransformationOrderModel.status == OrderStatus.COMPLETED.value,
            )
            .values(
                status=OrderStatus.PREPARING.value,
                version=TransformationOrderModel.version + 1,
                execution_date=None,
                completion_date=None,
                actual_quantity=None,
                updated_by_id=state.actor_id,
            )
            .execution_options(synchronize_session=False)
        )
        logger.info("transformation_order_reopened", extra={"order_code": state.order_code})

    def _consume_input(
        self,
        state: _ExecutionState,
        line_id: UUID,
        quantity: Decimal,
    ) -> _ConsumedLine:
        line = self._session.get(OrderInputModel, line_id)
        item = self._catalog.get_item(line.item_id)
        unit_cost = item.cost_price

        try:
            change = self._ledger.apply_delta(
                line.item_id, state.warehouse_id, -quantity, state.actor_id, state.company_id,
            )
        except NegativeStockError as exc:
            raise InsufficientStockError(
                [InsufficientItem(
                    item_id=line.item_id,
                    item_code=item.item_code,
                    item_name=item.item_name,
                    required=quantity,
                    available=exc.available,
                )],
                order_id=str(state.order_id),
                message=(
                    f"Insufficient stock for {item.item_name}. "
                    f"Available: {exc.available}, Required: {quantity}"
                ),
            ) from exc

        uom = line.uom_code or item.uom_code
        txn = self._recorder.record(
            state.movement(MovementType.OUT, MovementKind.CONSUMPTION),
            [MovementLine(
                item_id=line.item_id,
                quantity=quantity,
                unit_cost=unit_cost,
                qty_before=change.qty_before,
                qty_after=change.qty_after,
                uom_code=uom,
            )],
            state.actor_id,
        )

        estimated_unit_cost, estimated_total_cost = line.unit_cost, line.total_cost
        total_cost = round_money(unit_cost * quantity, self._config.money_decimal_places)
        line.consumed_quantity = quantity
        line.unit_cost = unit_cost
        line.total_cost = total_cost
        line.stock_transaction_id = txn.id
        line.updated_by_id = state.actor_id
        self._session.flush()

        consumed = _ConsumedLine(
            line_id=line.id,
            item_id=line.item_id,
            uom_code=uom,
            quantity=quantity,
            unit_cost=unit_cost,
            total_cost=total_cost,
            transaction_id=txn.id,
            estimated_unit_cost=estimated_unit_cost,
            estimated_total_cost=estimated_total_cost,
        )
        state.consumed.append(consumed)
        return consumed

    def _restore_input(self, state: _ExecutionState, consumed: _ConsumedLine) -> None:
        change = self._ledger.apply_delta(
            consumed.item_id, state.warehouse_id, consumed.quantity,
            state.actor_id, state.company_id,
        )
        self._recorder.record(
            state.movement(
                MovementType.IN,
                MovementKind.REVERSAL,
                notes=f"Reversal of consumption for {state.order_code}",
                reverses=consumed.transaction_id,
            ),
            [MovementLine(
                item_id=consumed.item_id,
                quantity=consumed.quantity,
                unit_cost=consumed.unit_cost,
                qty_before=change.qty_before,
                qty_after=change.qty_after,
                uom_code=consumed.uom_code,
            )],
            state.actor_id,
        )
        line = self._session.get(OrderInputModel, consumed.line_id)
        line.consumed_quantity = None
        line.unit_cost = consumed.estimated_unit_cost
        line.total_cost = consumed.estimated_total_cost
        line.stock_transaction_id = None
        line.updated_by_id = state.actor_id
        self._session.flush()

    def _allocate_costs(self, state: _ExecutionState) -> CostAllocationResult:
        scrap = {
            line.id: line.is_scrap
            for line in self._session.execute(
                select(OrderOutputModel).where(OrderOutputModel.order_id == state.order_id)
            ).scalars()
        }
        state.allocation = self._allocator.allocate(
            total_input_cost=sum((c.total_cost for c in state.consumed), ZERO),
            outputs=[
                OutputQuantities(
                    line_id=entry.output_line_id,
                    produced=entry.produced_quantity,
                    wasted=entry.wasted_quantity,
                    is_scrap=scrap[entry.output_line_id],
                )
                for entry in state.data.outputs
            ],
        )
        return state.allocation

    def _produce_output(self, state: _ExecutionState, entry: OutputExecution) -> _ProducedLine:
        line = self._session.get(OrderOutputModel, entry.output_line_id)
        allocation = state.allocation.line_for(entry.output_line_id)
        unit_cost = allocation.allocated_cost_per_unit

        change = self._ledger.apply_delta(
            line.item_id, state.warehouse_id, entry.produced_quantity,
            state.actor_id, state.company_id,
        )
        txn = self._recorder.record(
            state.movement(MovementType.IN, MovementKind.PRODUCTION),
            [MovementLine(
                item_id=line.item_id,
                quantity=entry.produced_quantity,
                unit_cost=unit_cost,
                qty_before=change.qty_before,
                qty_after=change.qty_after,
                uom_code=line.uom_code,
            )],
            state.actor_id,
        )

        line.produced_quantity = entry.produced_quantity
        line.wasted_quantity = entry.wasted_quantity
        line.waste_reason = entry.waste_reason
        line.allocated_cost_per_unit = unit_cost
        line.total_allocated_cost = allocation.allocated_cost
        line.waste_cost = allocation.waste_cost
        line.stock_transaction_id = txn.id
        line.updated_by_id = state.actor_id
        self._session.flush()

        produced = _ProducedLine(
            line_id=line.id,
            item_id=line.item_id,
            uom_code=line.uom_code,
            quantity=entry.produced_quantity,
            unit_cost=unit_cost,
            transaction_id=txn.id,
        )
        state.produced.append(produced)
        return produced

    def _remove_output(self, state: _ExecutionState, produced: _ProducedLine) -> None:
        change = self._ledger.apply_delta(
            produced.item_id, state.warehouse_id, -produced.quantity,
            state.actor_id, state.company_id,
        )
        self._recorder.record(
            state.movement(
                MovementType.OUT,
                MovementKind.REVERSAL,
                notes=f"Reversal of production for {state.order_code}",
                reverses=produced.transaction_id,
            ),
            [MovementLine(
                item_id=produced.item_id,
                quantity=produced.quantity,
                unit_cost=produced.unit_cost,
                qty_before=change.qty_before,
                qty_after=change.qty_after,
                uom_code=produced.uom_code,
            )],
            state.actor_id,
        )
        line = self._session.get(OrderOutputModel, produced.line_id)
        line.produced_quantity = None
        line.wasted_quantity = None
        line.waste_reason = None
        line.allocated_cost_per_unit = None
        line.total_allocated_cost = None
        line.waste_cost = None
        line.stock_transaction_id = None
        line.updated_by_id = state.actor_id
        self._session.flush()

    def _record_waste(
        self, state: _ExecutionState, entry: OutputExecution,
    ) -> tuple[UUID, UUID, Decimal, Decimal]:
        line = self._session.get(OrderOutputModel, entry.output_line_id)
        cost_per_unit = state.allocation.line_for(entry.output_line_id).cost_per_unit

        # Waste never reaches the shelf: no ledger change, 0/0 snapshot.
        txn = self._recorder.record(
            state.movement(MovementType.OUT, MovementKind.WASTE, notes=entry.waste_reason),
            [MovementLine(
                item_id=line.item_id,
                quantity=entry.wasted_quantity,
                unit_cost=cost_per_unit,
                qty_before=ZERO,
                qty_after=ZERO,
                uom_code=line.uom_code,
            )],
            state.actor_id,
        )
        line.waste_transaction_id = txn.id
        line.updated_by_id = state.actor_id
        self._session.flush()

        return line.id, txn.id, entry.wasted_quantity, cost_per_unit

    def _reverse_waste(
        self,
        state: _ExecutionState,
        result: tuple[UUID, UUID, Decimal, Decimal],
    ) -> None:
        line_id, transaction_id, quantity, cost_per_unit = result
        line = self._session.get(OrderOutputModel, line_id)
        self._recorder.record(
            state.movement(
                MovementType.IN,
                MovementKind.REVERSAL,
                notes=f"Reversal of waste for {state.order_code}",
                reverses=transaction_id,
            ),
            [MovementLine(
                item_id=line.item_id,
                quantity=quantity,
                unit_cost=cost_per_unit,
                qty_before=ZERO,
                qty_after=ZERO,
                uom_code=line.uom_code,
            )],
            state.actor_id,
        )
        line.waste_transaction_id = None
        line.updated_by_id = state.actor_id
        self._session.flush()

    def _finalize(self, state: _ExecutionState) -> None:
        allocation = state.allocation
        edges = self._attributor.attribute(
            inputs=[
                ConsumedInput(
                    line_id=c.line_id,
                    consumed_quantity=c.quantity,
                    total_cost=c.total_cost,
                )
                for c in state.consumed
            ],
            outputs=[
                ProducedOutput(
                    line_id=line.line_id,
                    produced_quantity=line.produced,
                    wasted_quantity=line.wasted,
                    allocated_cost=line.allocated_cost,
                )
                for line in allocation.lines
            ],
        )
        if edges:
            self._lineage.record_edges(state.order_id, edges, state.actor_id)

        order = self._load_order(state.order_id)
        order.total_input_cost = allocation.total_input_cost
        order.total_output_cost = allocation.total_output_cost
        order.total_waste_cost = allocation.total_waste_cost
        order.scrap_write_off = allocation.scrap_write_off
        order.cost_variance = allocation.cost_variance
        if state.data.notes:
            order.notes = state.data.notes
        order.updated_by_id = state.actor_id
        self._session.flush()

        logger.info("transformation_order_finalized", extra={
            "order_code": state.order_code,
            "edge_count": len(edges),
            "total_input_cost": str(allocation.total_input_cost),
            "total_output_cost": str(allocation.total_output_cost),
            "total_waste_cost": str(allocation.total_waste_cost),
            "scrap_write_off": str(allocation.scrap_write_off),
        })
