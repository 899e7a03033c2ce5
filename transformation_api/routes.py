"""
HTTP routes for transformation orders and templates.

Handlers are thin: parse the body, call ``TransformationService``, shape the
DTO.  Kernel errors raised by the service are turned into responses by
``errors.kernel_error_handler``.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status

from transformation_api.dependencies import get_actor_id, get_service
from transformation_api.errors import error_response, status_for_code
from transformation_api.schemas import (
    CreateOrderRequest,
    CreateTemplateRequest,
    ExecuteRequest,
    ExecutionResponse,
    LineageEdgeResponse,
    OrderPageResponse,
    OrderResponse,
    StockAvailabilityResponse,
    StockTransactionResponse,
    TemplateLineRequest,
    TemplateLockResponse,
    TemplateResponse,
    TemplateValidationResponse,
    TransitionCheckResponse,
    UpdateOrderRequest,
    UpdateTemplateRequest,
)
from transformation_kernel.exceptions import ValidationError
from transformation_modules.transformation.models import (
    ExecutionData,
    InputExecution,
    OrderStatus,
    OutputExecution,
    TemplateLineSpec,
)
from transformation_modules.transformation.service import TransformationService

orders_router = APIRouter(prefix="/transformation-orders", tags=["transformation-orders"])
templates_router = APIRouter(prefix="/transformation-templates", tags=["transformation-templates"])


def _execution_data(body: ExecuteRequest) -> ExecutionData:
    try:
        return ExecutionData(
            inputs=tuple(
                InputExecution(line.input_line_id, line.consumed_quantity)
                for line in body.inputs
            ),
            outputs=tuple(
                OutputExecution(
                    line.output_line_id,
                    line.produced_quantity,
                    line.wasted_quantity,
                    line.waste_reason,
                )
                for line in body.outputs
            ),
            execution_date=body.execution_date,
            notes=body.notes,
        )
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc


def _template_lines(lines: list[TemplateLineRequest] | None) -> list[TemplateLineSpec] | None:
    if lines is None:
        return None
    return [
        TemplateLineSpec(line.item_id, line.quantity, line.uom_code, line.is_scrap)
        for line in lines
    ]


# =============================================================================
# Orders
# =============================================================================


@orders_router.post("", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
def create_order(
    body: CreateOrderRequest,
    actor_id: UUID = Depends(get_actor_id),
    service: TransformationService = Depends(get_service),
):
    order = service.create_order_from_template(
        template_id=body.template_id,
        warehouse_id=body.warehouse_id,
        planned_quantity=body.planned_quantity,
        actor_id=actor_id,
        order_date=body.order_date,
        planned_date=body.planned_date,
        notes=body.notes,
        reference=body.reference,
    )
    return OrderResponse.model_validate(order)


@orders_router.get("", response_model=OrderPageResponse)
def list_orders(
    status_filter: OrderStatus | None = Query(default=None, alias="status"),
    template_id: UUID | None = Query(default=None, alias="templateId"),
    warehouse_id: UUID | None = Query(default=None, alias="warehouseId"),
    page: int = Query(default=1),
    limit: int = Query(default=20),
    service: TransformationService = Depends(get_service),
):
    result = service.list_orders(
        status=status_filter,
        template_id=template_id,
        warehouse_id=warehouse_id,
        page=page,
        limit=limit,
    )
    return OrderPageResponse.model_validate(result)


@orders_router.get("/{order_id}", response_model=OrderResponse)
def get_order(order_id: UUID, service: TransformationService = Depends(get_service)):
    return OrderResponse.model_validate(service.get_order(order_id))


@orders_router.patch("/{order_id}", response_model=OrderResponse)
def update_order(
    order_id: UUID,
    body: UpdateOrderRequest,
    actor_id: UUID = Depends(get_actor_id),
    service: TransformationService = Depends(get_service),
):
    order = service.update_order(
        order_id,
        actor_id,
        planned_quantity=body.planned_quantity,
        planned_date=body.planned_date,
        notes=body.notes,
    )
    return OrderResponse.model_validate(order)


@orders_router.delete("/{order_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_order(
    order_id: UUID,
    actor_id: UUID = Depends(get_actor_id),
    service: TransformationService = Depends(get_service),
):
    service.delete_order(order_id, actor_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@orders_router.post("/{order_id}/prepare", response_model=OrderResponse)
def prepare_order(
    order_id: UUID,
    actor_id: UUID = Depends(get_actor_id),
    service: TransformationService = Depends(get_service),
):
    return OrderResponse.model_validate(service.prepare_order(order_id, actor_id))


@orders_router.post("/{order_id}/cancel", response_model=OrderResponse)
def cancel_order(
    order_id: UUID,
    actor_id: UUID = Depends(get_actor_id),
    service: TransformationService = Depends(get_service),
):
    return OrderResponse.model_validate(service.cancel_order(order_id, actor_id))


@orders_router.post(
    "/{order_id}/execute",
    response_model=ExecutionResponse,
    status_code=status.HTTP_201_CREATED,
)
def execute_order(
    order_id: UUID,
    body: ExecuteRequest,
    actor_id: UUID = Depends(get_actor_id),
    service: TransformationService = Depends(get_service),
):
    result = service.execute_transformation(order_id, actor_id, _execution_data(body))
    if not result.success:
        return error_response(
            status_for_code(result.code),
            result.error,
            result.code,
            result.insufficient_items,
        )
    return ExecutionResponse.model_validate(result)


@orders_router.get("/{order_id}/validate-stock", response_model=StockAvailabilityResponse)
def validate_stock(order_id: UUID, service: TransformationService = Depends(get_service)):
    return StockAvailabilityResponse.model_validate(service.validate_stock_availability(order_id))


@orders_router.get("/{order_id}/validate-transition", response_model=TransitionCheckResponse)
def validate_transition(
    order_id: UUID,
    to: str = Query(...),
    service: TransformationService = Depends(get_service),
):
    return TransitionCheckResponse.model_validate(service.validate_state_transition(order_id, to))


@orders_router.get("/{order_id}/lineage", response_model=list[LineageEdgeResponse])
def order_lineage(order_id: UUID, service: TransformationService = Depends(get_service)):
    return [LineageEdgeResponse.model_validate(e) for e in service.lineage_for_order(order_id)]


@orders_router.get(
    "/{order_id}/stock-transactions",
    response_model=list[StockTransactionResponse],
)
def order_stock_transactions(order_id: UUID, service: TransformationService = Depends(get_service)):
    return [
        StockTransactionResponse.model_validate(t)
        for t in service.stock_transactions_for_order(order_id)
    ]


# =============================================================================
# Templates
# =============================================================================


@templates_router.post("", response_model=TemplateResponse, status_code=status.HTTP_201_CREATED)
def create_template(
    body: CreateTemplateRequest,
    actor_id: UUID = Depends(get_actor_id),
    service: TransformationService = Depends(get_service),
):
    template = service.create_template(
        template_code=body.template_code,
        template_name=body.template_name,
        inputs=_template_lines(body.inputs),
        outputs=_template_lines(body.outputs),
        actor_id=actor_id,
        company_id=body.company_id,
        description=body.description,
    )
    return TemplateResponse.model_validate(template)


@templates_router.get("/{template_id}", response_model=TemplateResponse)
def get_template(template_id: UUID, service: TransformationService = Depends(get_service)):
    return TemplateResponse.model_validate(service.get_template(template_id))


@templates_router.patch("/{template_id}", response_model=TemplateResponse)
def update_template(
    template_id: UUID,
    body: UpdateTemplateRequest,
    actor_id: UUID = Depends(get_actor_id),
    service: TransformationService = Depends(get_service),
):
    template = service.update_template(
        template_id,
        actor_id,
        template_code=body.template_code,
        template_name=body.template_name,
        description=body.description,
        inputs=_template_lines(body.inputs),
        outputs=_template_lines(body.outputs),
    )
    return TemplateResponse.model_validate(template)


@templates_router.get("/{template_id}/validate", response_model=TemplateValidationResponse)
def validate_template(template_id: UUID, service: TransformationService = Depends(get_service)):
    return TemplateValidationResponse.model_validate(service.validate_template(template_id))


@templates_router.get("/{template_id}/lock", response_model=TemplateLockResponse)
def template_lock(template_id: UUID, service: TransformationService = Depends(get_service)):
    return TemplateLockResponse.model_validate(service.check_template_lock(template_id))


@templates_router.post("/{template_id}/deactivate", response_model=TemplateResponse)
def deactivate_template(
    template_id: UUID,
    actor_id: UUID = Depends(get_actor_id),
    service: TransformationService = Depends(get_service),
):
    return TemplateResponse.model_validate(service.deactivate_template(template_id, actor_id))
