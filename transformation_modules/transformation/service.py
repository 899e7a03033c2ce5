"""
Transformation Module Service (``transformation_modules.transformation.service``).

Responsibility
--------------
Public entry point for inventory transformations: template management,
order lifecycle (create from template, edit, prepare, cancel, delete),
read-only validation (template usability, stock availability, state
transitions), execution, and lineage / movement queries.

Architecture position
---------------------
**Modules layer** -- ERP glue.  ``TransformationService`` composes kernel
services (``ItemCatalog``, ``StockLedger``, ``SequenceService``,
``LineageTracker``, ``StockTransactionRecorder``) and delegates execution to
``transformation_services.execution.TransformationExecutor``.

Invariants enforced
-------------------
* Each mutating method owns the transaction boundary (``commit`` on
  success, ``rollback`` on failure or exception).  Execution is the
  exception: its saga commits step by step.
* Status changes go through ``ORDER_WORKFLOW``; the PREPARING -> COMPLETED
  edge is only taken by execution.
* A template referenced by any order (``usage_count > 0``) refuses
  structural edits.
* Orders and templates are soft-deleted only.

Failure modes
-------------
* Kernel errors (``OrderNotFoundError``, ``InvalidStateError``,
  ``InvalidTransitionError``, ``ValidationError`` ...) propagate from every
  method except ``execute_transformation``, which reports them in a failed
  ``ExecutionResult``.
* Unexpected exceptions roll back the session and re-raise.

Audit relevance
---------------
Structured log events at every state change, carrying order and template
ids and codes.  Stock movements reference the order through
``reference_type = "transformation_order"``.

Usage::

    service = TransformationService(session, clock=clock)
    order = service.create_order_from_template(
        template_id=template.id, warehouse_id=wh_id,
        planned_quantity=Decimal("10"), actor_id=actor_id,
    )
    service.prepare_order(order.id, actor_id)
    result = service.execute_transformation(order.id, actor_id, ExecutionData(...))
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Sequence
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from transformation_kernel.db.types import ZERO, round_money, round_quantity
from transformation_kernel.domain.clock import Clock, SystemClock
from transformation_kernel.domain.dtos import InsufficientItem, LineageEdge, StockTransaction
from transformation_kernel.exceptions import (
    InvalidStateError,
    InvalidTransitionError,
    OrderNotFoundError,
    TemplateLockedError,
    TemplateNotFoundError,
    TemplateValidationError,
    TransformationKernelError,
    ValidationError,
)
from transformation_kernel.logging_config import LogContext, get_logger
from transformation_kernel.services.item_catalog import ItemCatalog
from transformation_kernel.services.lineage_tracker import LineageTracker
from transformation_kernel.services.sequence_service import SequenceService
from transformation_kernel.services.stock_ledger import StockLedger
from transformation_kernel.services.transaction_recorder import StockTransactionRecorder
from transformation_modules.transformation.config import TransformationConfig
from transformation_modules.transformation.models import (
    ExecutionData,
    ExecutionResult,
    OrderPage,
    OrderStatus,
    StockAvailability,
    TemplateLineSpec,
    TemplateLockStatus,
    TemplateValidation,
    TransformationOrder,
    TransformationTemplate,
    TransitionCheck,
)
from transformation_modules.transformation.orm import (
    OrderInputModel,
    OrderOutputModel,
    TemplateInputModel,
    TemplateOutputModel,
    TransformationOrderModel,
    TransformationTemplateModel,
)
from transformation_modules.transformation.workflows import validate_transition
from transformation_services.execution import (
    REFERENCE_TYPE,
    TransformationExecutor,
    failure_result,
)

logger = get_logger("modules.transformation.service")

MAX_PAGE_SIZE = 100


class TransformationService:
    """
    Orchestrates transformation templates and orders.

    Contract
    --------
    * Returns frozen DTOs from ``transformation_modules.transformation.models``;
      ORM rows never leave the service.
    * ``execute_transformation`` never raises kernel errors; it returns an
      ``ExecutionResult``.

    Guarantees
    ----------
    * Clock is injectable for deterministic testing.
    * Order codes are ``<prefix>YYYYMMDD-NNNNN`` from a per-day locked
      counter.
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

        self._catalog = ItemCatalog(session)
        self._ledger = StockLedger(
            session,
            max_cas_retries=self._config.max_cas_retries,
            quantity_places=self._config.quantity_places,
        )
        self._sequence = SequenceService(session)
        self._lineage = LineageTracker(session)
        self._recorder = StockTransactionRecorder(
            session,
            clock=self._clock,
            code_prefix=self._config.stock_transaction_prefix,
            code_width=self._config.stock_transaction_code_width,
            money_places=self._config.money_decimal_places,
        )
        self._executor = TransformationExecutor(session, clock=self._clock, config=self._config)

    # =========================================================================
    # Loaders
    # =========================================================================

    def _template_row(self, template_id: UUID) -> TransformationTemplateModel:
        row = self._session.get(TransformationTemplateModel, template_id)
        if row is None or row.deleted_at is not None:
            raise TemplateNotFoundError(str(template_id))
        return row

    def _order_row(self, order_id: UUID) -> TransformationOrderModel:
        # Execution writes status through Core UPDATEs; always reload.
        row = self._session.get(TransformationOrderModel, order_id, populate_existing=True)
        if row is None or row.deleted_at is not None:
            raise OrderNotFoundError(str(order_id))
        return row

    def _require_draft(self, order: TransformationOrderModel, operation: str) -> None:
        if order.status != OrderStatus.DRAFT.value:
            raise InvalidStateError(
                entity_id=str(order.id),
                current_status=order.status,
                operation=operation,
                required_status=OrderStatus.DRAFT.value,
            )

    # =========================================================================
    # Templates
    # =========================================================================

    def _check_lines(self, lines: Sequence[TemplateLineSpec], side: str) -> None:
        seen: set[UUID] = set()
        for line in lines:
            if line.quantity <= ZERO:
                raise ValidationError(
                    f"Template {side} quantity must be positive", field=side,
                )
            if line.item_id in seen:
                raise ValidationError(
                    f"Item {line.item_id} appears more than once in template {side}",
                    field=side,
                )
            seen.add(line.item_id)
            self._catalog.get_item(line.item_id)

    def _check_code_unique(
        self,
        company_id: UUID | None,
        template_code: str,
        exclude_id: UUID | None = None,
    ) -> None:
        stmt = select(TransformationTemplateModel.id).where(
            TransformationTemplateModel.template_code == template_code,
            TransformationTemplateModel.deleted_at.is_(None),
        )
        if company_id is None:
            stmt = stmt.where(TransformationTemplateModel.company_id.is_(None))
        else:
            stmt = stmt.where(TransformationTemplateModel.company_id == company_id)
        if exclude_id is not None:
            stmt = stmt.where(TransformationTemplateModel.id != exclude_id)
        if self._session.execute(stmt).first() is not None:
            raise ValidationError(
                f"Template code already exists: {template_code}", field="template_code",
            )

    def _build_template_lines(
        self,
        template: TransformationTemplateModel,
        inputs: Sequence[TemplateLineSpec],
        outputs: Sequence[TemplateLineSpec],
        actor_id: UUID,
    ) -> None:
        template.inputs = [
            TemplateInputModel(
                item_id=line.item_id,
                quantity=line.quantity,
                uom_code=line.uom_code,
                sequence=index,
                created_by_id=actor_id,
            )
            for index, line in enumerate(inputs, start=1)
        ]
        template.outputs = [
            TemplateOutputModel(
                item_id=line.item_id,
                quantity=line.quantity,
                uom_code=line.uom_code,
                is_scrap=line.is_scrap,
                sequence=index,
                created_by_id=actor_id,
            )
            for index, line in enumerate(outputs, start=1)
        ]

    def create_template(
        self,
        template_code: str,
        template_name: str,
        inputs: Sequence[TemplateLineSpec],
        outputs: Sequence[TemplateLineSpec],
        actor_id: UUID,
        company_id: UUID | None = None,
        description: str | None = None,
    ) -> TransformationTemplate:
        """
        Create a template.  Lines may be empty here; ``validate_template``
        reports a template without inputs or outputs as unusable.
        """
        try:
            if not template_code or not template_code.strip():
                raise ValidationError("Template code is required", field="template_code")
            if not template_name or not template_name.strip():
                raise ValidationError("Template name is required", field="template_name")
            self._check_lines(inputs, "inputs")
            self._check_lines(outputs, "outputs")
            self._check_code_unique(company_id, template_code)

            template = TransformationTemplateModel(
                company_id=company_id,
                template_code=template_code,
                template_name=template_name,
                description=description,
                is_active=True,
                usage_count=0,
                created_by_id=actor_id,
            )
            self._build_template_lines(template, inputs, outputs, actor_id)
            self._session.add(template)
            self._session.flush()
            dto = template.to_dto()
            self._session.commit()

            logger.info("transformation_template_created", extra={
                "template_id": str(dto.id),
                "template_code": template_code,
                "input_count": len(inputs),
                "output_count": len(outputs),
            })
            return dto

        except Exception:
            self._session.rollback()
            raise

    def update_template(
        self,
        template_id: UUID,
        actor_id: UUID,
        template_code: str | None = None,
        template_name: str | None = None,
        description: str | None = None,
        inputs: Sequence[TemplateLineSpec] | None = None,
        outputs: Sequence[TemplateLineSpec] | None = None,
    ) -> TransformationTemplate:
        """
        Edit a template.  Code, name and lines are structural and are refused
        once an order references the template; description is always editable.
        """
        try:
            template = self._template_row(template_id)
            structural = any(
                value is not None for value in (template_code, template_name, inputs, outputs)
            )
            if structural and template.usage_count > 0:
                raise TemplateLockedError(str(template_id), template.usage_count)

            if template_code is not None:
                self._check_code_unique(template.company_id, template_code, exclude_id=template.id)
                template.template_code = template_code
            if template_name is not None:
                if not template_name.strip():
                    raise ValidationError("Template name is required", field="template_name")
                template.template_name = template_name
            if description is not None:
                template.description = description
            if inputs is not None or outputs is not None:
                new_inputs = inputs if inputs is not None else [
                    TemplateLineSpec(line.item_id, line.quantity, line.uom_code)
                    for line in template.inputs
                ]
                new_outputs = outputs if outputs is not None else [
                    TemplateLineSpec(line.item_id, line.quantity, line.uom_code, line.is_scrap)
                    for line in template.outputs
                ]
                self._check_lines(new_inputs, "inputs")
                self._check_lines(new_outputs, "outputs")
                self._build_template_lines(template, new_inputs, new_outputs, actor_id)

            template.updated_by_id = actor_id
            self._session.flush()
            dto = template.to_dto()
            self._session.commit()

            logger.info("transformation_template_updated", extra={
                "template_id": str(template_id),
                "structural": structural,
            })
            return dto

        except Exception:
            self._session.rollback()
            raise

    def deactivate_template(self, template_id: UUID, actor_id: UUID) -> TransformationTemplate:
        """Deactivation is allowed even for locked templates."""
        try:
            template = self._template_row(template_id)
            template.is_active = False
            template.updated_by_id = actor_id
            self._session.flush()
            dto = template.to_dto()
            self._session.commit()
            logger.info("transformation_template_deactivated", extra={
                "template_id": str(template_id),
                "usage_count": template.usage_count,
            })
            return dto
        except Exception:
            self._session.rollback()
            raise

    def validate_template(self, template_id: UUID) -> TemplateValidation:
        """Read-only usability check.  Never raises for an unusable template."""
        template = self._session.get(TransformationTemplateModel, template_id)
        if template is None or template.deleted_at is not None:
            return TemplateValidation(is_valid=False, error="Template not found")
        if not template.is_active:
            return TemplateValidation(is_valid=False, error="Template is not active")
        if not template.inputs:
            return TemplateValidation(is_valid=False, error="Template has no inputs")
        if not template.outputs:
            return TemplateValidation(is_valid=False, error="Template has no outputs")
        return TemplateValidation(is_valid=True)

    def check_template_lock(self, template_id: UUID) -> TemplateLockStatus:
        template = self._template_row(template_id)
        return TemplateLockStatus(
            template_id=template.id,
            is_locked=template.usage_count > 0,
            usage_count=template.usage_count,
        )

    def get_template(self, template_id: UUID) -> TransformationTemplate:
        return self._template_row(template_id).to_dto()

    # =========================================================================
    # Orders
    # =========================================================================

    def _next_order_code(self, order_date: date) -> str:
        day = order_date.strftime("%Y%m%d")
        return self._sequence.next_code(
            f"{SequenceService.TRANSFORMATION_ORDER}:{day}",
            f"{self._config.order_code_prefix}{day}-",
            self._config.order_code_width,
        )

    def create_order_from_template(
        self,
        template_id: UUID,
        warehouse_id: UUID,
        planned_quantity: Decimal,
        actor_id: UUID,
        order_date: date | None = None,
        planned_date: date | None = None,
        notes: str | None = None,
        reference: str | None = None,
    ) -> TransformationOrder:
        """
        Create a DRAFT order scaled from a template.

        Each line's planned quantity is the template quantity times
        ``planned_quantity``.  Input lines carry a cost estimate from the
        catalog until execution replaces it with the actual cost.
        """
        try:
            validation = self.validate_template(template_id)
            if not validation.is_valid:
                raise TemplateValidationError(str(template_id), validation.error)
            if planned_quantity <= ZERO:
                raise ValidationError(
                    "Planned quantity must be positive", field="planned_quantity",
                )

            template = self._template_row(template_id)
            order_date = order_date or self._clock.today()
            places = self._config.quantity_places
            money = self._config.money_decimal_places
            items = self._catalog.get_items(line.item_id for line in template.inputs)

            order = TransformationOrderModel(
                company_id=template.company_id,
                order_code=self._next_order_code(order_date),
                template_id=template.id,
                warehouse_id=warehouse_id,
                planned_quantity=planned_quantity,
                status=OrderStatus.DRAFT.value,
                order_date=order_date,
                planned_date=planned_date,
                notes=notes,
                reference=reference,
                version=1,
                created_by_id=actor_id,
            )
            for line in template.inputs:
                quantity = round_quantity(line.quantity * planned_quantity, places)
                unit_cost = items[line.item_id].cost_price
                order.inputs.append(OrderInputModel(
                    item_id=line.item_id,
                    uom_code=line.uom_code or items[line.item_id].uom_code,
                    planned_quantity=quantity,
                    unit_cost=unit_cost,
                    total_cost=round_money(unit_cost * quantity, money),
                    sequence=line.sequence,
                    created_by_id=actor_id,
                ))
            for line in template.outputs:
                order.outputs.append(OrderOutputModel(
                    item_id=line.item_id,
                    uom_code=line.uom_code,
                    planned_quantity=round_quantity(line.quantity * planned_quantity, places),
                    is_scrap=line.is_scrap,
                    sequence=line.sequence,
                    created_by_id=actor_id,
                ))

            template.usage_count += 1
            template.updated_by_id = actor_id
            self._session.add(order)
            self._session.flush()
            dto = order.to_dto()
            self._session.commit()

            logger.info("transformation_order_created", extra={
                "order_id": str(dto.id),
                "order_code": dto.order_code,
                "template_id": str(template_id),
                "planned_quantity": str(planned_quantity),
            })
            return dto

        except Exception:
            self._session.rollback()
            raise

    def update_order(
        self,
        order_id: UUID,
        actor_id: UUID,
        planned_quantity: Decimal | None = None,
        planned_date: date | None = None,
        notes: str | None = None,
    ) -> TransformationOrder:
        """
        Edit a DRAFT order.

        A new planned quantity recomputes every line from its template
        quantity, so repeated edits never compound rounding.
        """
        try:
            order = self._order_row(order_id)
            self._require_draft(order, "update")

            if planned_quantity is not None:
                if planned_quantity <= ZERO:
                    raise ValidationError(
                        "Planned quantity must be positive", field="planned_quantity",
                    )
                # The template is locked while it has orders, so its lines still
                # match the order lines by sequence.
                template = self._session.get(TransformationTemplateModel, order.template_id)
                input_qty = {t.sequence: t.quantity for t in template.inputs}
                output_qty = {t.sequence: t.quantity for t in template.outputs}
                places = self._config.quantity_places
                for line in order.inputs:
                    line.planned_quantity = round_quantity(
                        input_qty[line.sequence] * planned_quantity, places,
                    )
                    if line.unit_cost is not None:
                        line.total_cost = round_money(
                            line.unit_cost * line.planned_quantity,
                            self._config.money_decimal_places,
                        )
                    line.updated_by_id = actor_id
                for line in order.outputs:
                    line.planned_quantity = round_quantity(
                        output_qty[line.sequence] * planned_quantity, places,
                    )
                    line.updated_by_id = actor_id
                order.planned_quantity = planned_quantity
            if planned_date is not None:
                order.planned_date = planned_date
            if notes is not None:
                order.notes = notes

            order.version += 1
            order.updated_by_id = actor_id
            self._session.flush()
            dto = order.to_dto()
            self._session.commit()

            logger.info("transformation_order_updated", extra={
                "order_id": str(order_id),
                "order_code": dto.order_code,
                "planned_quantity": str(dto.planned_quantity),
            })
            return dto

        except Exception:
            self._session.rollback()
            raise

    def delete_order(self, order_id: UUID, actor_id: UUID) -> None:
        """Soft-delete a DRAFT order and release its hold on the template."""
        try:
            order = self._order_row(order_id)
            self._require_draft(order, "delete")
            order.deleted_at = self._clock.now()
            order.updated_by_id = actor_id

            template = self._session.get(TransformationTemplateModel, order.template_id)
            if template is not None and template.usage_count > 0:
                template.usage_count -= 1
                template.updated_by_id = actor_id

            self._session.flush()
            self._session.commit()
            logger.info("transformation_order_deleted", extra={
                "order_id": str(order_id),
                "order_code": order.order_code,
            })
        except Exception:
            self._session.rollback()
            raise

    def transition_order(
        self,
        order_id: UUID,
        target: OrderStatus | str,
        actor_id: UUID,
    ) -> TransformationOrder:
        """
        Move an order along a plain workflow edge.

        Raises:
            InvalidTransitionError: undeclared edge, or the execution edge
                (use ``execute_transformation``).
        """
        try:
            order = self._order_row(order_id)
            transition = validate_transition(order.status, target)
            previous = order.status
            order.status = transition.to_state
            order.version += 1
            order.updated_by_id = actor_id
            self._session.flush()
            dto = order.to_dto()
            self._session.commit()

            logger.info("transformation_order_transitioned", extra={
                "order_id": str(order_id),
                "order_code": dto.order_code,
                "from_status": previous,
                "to_status": transition.to_state,
                "action": transition.action,
            })
            return dto

        except Exception:
            self._session.rollback()
            raise

    def prepare_order(self, order_id: UUID, actor_id: UUID) -> TransformationOrder:
        return self.transition_order(order_id, OrderStatus.PREPARING, actor_id)

    def cancel_order(self, order_id: UUID, actor_id: UUID) -> TransformationOrder:
        return self.transition_order(order_id, OrderStatus.CANCELLED, actor_id)

    def validate_state_transition(
        self,
        order_id: UUID,
        target: OrderStatus | str,
    ) -> TransitionCheck:
        """
        Whether ``target`` is reachable from the order's current status.

        The execution edge PREPARING -> COMPLETED is reported as valid: it is
        allowed, but only through ``execute_transformation``.
        """
        order = self._order_row(order_id)
        current = OrderStatus(order.status)
        try:
            validate_transition(current, target, via_execution=True)
        except InvalidTransitionError as exc:
            return TransitionCheck(is_valid=False, current_status=current, error=str(exc))
        return TransitionCheck(is_valid=True, current_status=current)

    def validate_stock_availability(self, order_id: UUID) -> StockAvailability:
        """Compare available stock with every input's planned quantity."""
        order = self._order_row(order_id)
        required: dict[UUID, Decimal] = defaultdict(lambda: ZERO)
        for line in order.inputs:
            required[line.item_id] += line.planned_quantity

        items = self._catalog.get_items(required)
        shortfalls: list[InsufficientItem] = []
        for item_id, quantity in required.items():
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
            return StockAvailability(
                is_available=False,
                insufficient_items=tuple(shortfalls),
                error=f"Insufficient stock for {len(shortfalls)} item(s)",
            )
        return StockAvailability(is_available=True)

    def get_order(self, order_id: UUID) -> TransformationOrder:
        return self._order_row(order_id).to_dto()

    def list_orders(
        self,
        status: OrderStatus | str | None = None,
        template_id: UUID | None = None,
        warehouse_id: UUID | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> OrderPage:
        """Newest orders first, soft-deleted orders excluded."""
        if page < 1:
            raise ValidationError("page must be at least 1", field="page")
        if not 1 <= limit <= MAX_PAGE_SIZE:
            raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}", field="limit")

        criteria = [TransformationOrderModel.deleted_at.is_(None)]
        if status is not None:
            value = status.value if isinstance(status, OrderStatus) else str(status).upper()
            criteria.append(TransformationOrderModel.status == value)
        if template_id is not None:
            criteria.append(TransformationOrderModel.template_id == template_id)
        if warehouse_id is not None:
            criteria.append(TransformationOrderModel.warehouse_id == warehouse_id)

        total = self._session.execute(
            select(func.count()).select_from(TransformationOrderModel).where(*criteria)
        ).scalar_one()
        rows = self._session.execute(
            select(TransformationOrderModel)
            .where(*criteria)
            .order_by(
                TransformationOrderModel.order_date.desc(),
                TransformationOrderModel.order_code.desc(),
            )
            .offset((page - 1) * limit)
            .limit(limit)
        ).scalars().all()
        return OrderPage(
            items=tuple(row.to_dto() for row in rows),
            total=total,
            page=page,
            limit=limit,
        )

    # =========================================================================
    # Execution
    # =========================================================================

    def execute_transformation(
        self,
        order_id: UUID,
        actor_id: UUID,
        data: ExecutionData,
    ) -> ExecutionResult:
        """
        Execute a PREPARING order.  See ``TransformationExecutor``.

        Precondition failures roll back the (read-only) transaction and come
        back as a failed result; saga failures come back after compensation.
        """
        try:
            return self._executor.execute(order_id, actor_id, data)
        except TransformationKernelError as exc:
            self._session.rollback()
            with LogContext.bind(order_id=order_id, actor_id=actor_id):
                logger.warning("transformation_execution_rejected", extra={
                    "error_code": exc.code,
                    "error": str(exc),
                })
            return failure_result(order_id, exc)
        except Exception:
            self._session.rollback()
            raise

    # =========================================================================
    # Lineage and movements
    # =========================================================================

    def lineage_for_order(self, order_id: UUID) -> list[LineageEdge]:
        self._order_row(order_id)
        return self._lineage.edges_for_order(order_id)

    def trace_output(self, output_line_id: UUID) -> list[LineageEdge]:
        """Which consumed inputs an output line was made from."""
        return self._lineage.edges_for_output(output_line_id)

    def trace_input(self, input_line_id: UUID) -> list[LineageEdge]:
        """Which output lines a consumed input went into."""
        return self._lineage.edges_for_input(input_line_id)

    def stock_transactions_for_order(self, order_id: UUID) -> list[StockTransaction]:
        self._order_row(order_id)
        return self._recorder.list_for_reference(REFERENCE_TYPE, order_id)
