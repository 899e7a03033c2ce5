"""
Request and response bodies for the transformation HTTP API.

JSON field names are camelCase; Python attributes stay snake_case.  Response
models are built from the service DTOs with ``from_attributes``.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from transformation_kernel.db.types import QUANTITY_DECIMAL_PLACES
from transformation_kernel.domain.dtos import AttributionBasis, MovementKind, MovementType
from transformation_modules.transformation.models import OrderStatus


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# -----------------------------------------------------------------------------
# Requests
# -----------------------------------------------------------------------------


class InputLineRequest(CamelModel):
    input_line_id: UUID
    consumed_quantity: Decimal = Field(decimal_places=QUANTITY_DECIMAL_PLACES)


class OutputLineRequest(CamelModel):
    output_line_id: UUID
    produced_quantity: Decimal = Field(decimal_places=QUANTITY_DECIMAL_PLACES)
    wasted_quantity: Decimal = Field(Decimal("0"), decimal_places=QUANTITY_DECIMAL_PLACES)
    waste_reason: str | None = None


class ExecuteRequest(CamelModel):
    execution_date: date | None = None
    notes: str | None = None
    inputs: list[InputLineRequest]
    outputs: list[OutputLineRequest]


class CreateOrderRequest(CamelModel):
    template_id: UUID
    warehouse_id: UUID
    planned_quantity: Decimal
    order_date: date | None = None
    planned_date: date | None = None
    notes: str | None = None
    reference: str | None = Field(default=None, max_length=100)


class UpdateOrderRequest(CamelModel):
    planned_quantity: Decimal | None = None
    planned_date: date | None = None
    notes: str | None = None


class TemplateLineRequest(CamelModel):
    item_id: UUID
    quantity: Decimal
    uom_code: str | None = None
    is_scrap: bool = False


class CreateTemplateRequest(CamelModel):
    template_code: str = Field(max_length=50)
    template_name: str = Field(max_length=200)
    company_id: UUID | None = None
    description: str | None = None
    inputs: list[TemplateLineRequest] = []
    outputs: list[TemplateLineRequest] = []


class UpdateTemplateRequest(CamelModel):
    template_code: str | None = Field(default=None, max_length=50)
    template_name: str | None = Field(default=None, max_length=200)
    description: str | None = None
    inputs: list[TemplateLineRequest] | None = None
    outputs: list[TemplateLineRequest] | None = None


# -----------------------------------------------------------------------------
# Responses
# -----------------------------------------------------------------------------


class InsufficientItemResponse(CamelModel):
    item_id: UUID | str
    item_code: str | None
    item_name: str | None
    required: Decimal
    available: Decimal
    shortfall: Decimal


class ErrorResponse(CamelModel):
    success: bool = False
    error: str
    code: str
    insufficient_items: list[InsufficientItemResponse] | None = None


class StockTransactionIdsResponse(CamelModel):
    inputs: list[UUID]
    outputs: list[UUID]
    waste: list[UUID]


class OrderInputResponse(CamelModel):
    id: UUID
    item_id: UUID
    uom_code: str | None
    planned_quantity: Decimal
    consumed_quantity: Decimal | None
    unit_cost: Decimal | None
    total_cost: Decimal | None
    stock_transaction_id: UUID | None
    sequence: int


class OrderOutputResponse(CamelModel):
    id: UUID
    item_id: UUID
    uom_code: str | None
    planned_quantity: Decimal
    produced_quantity: Decimal | None
    wasted_quantity: Decimal | None
    waste_reason: str | None
    is_scrap: bool
    allocated_cost_per_unit: Decimal | None
    total_allocated_cost: Decimal | None
    waste_cost: Decimal | None
    stock_transaction_id: UUID | None
    waste_transaction_id: UUID | None
    sequence: int


class OrderResponse(CamelModel):
    id: UUID
    company_id: UUID | None
    order_code: str
    template_id: UUID
    warehouse_id: UUID
    planned_quantity: Decimal
    actual_quantity: Decimal | None
    status: OrderStatus
    order_date: date
    planned_date: date | None
    execution_date: date | None
    completion_date: datetime | None
    total_input_cost: Decimal
    total_output_cost: Decimal
    total_waste_cost: Decimal
    scrap_write_off: Decimal
    cost_variance: Decimal
    notes: str | None
    reference: str | None
    version: int
    inputs: list[OrderInputResponse]
    outputs: list[OrderOutputResponse]


class OrderPageResponse(CamelModel):
    items: list[OrderResponse]
    total: int
    page: int
    limit: int


class ExecutionResponse(CamelModel):
    success: bool
    order_id: UUID
    stock_transaction_ids: StockTransactionIdsResponse
    order: OrderResponse | None = None


class StockAvailabilityResponse(CamelModel):
    is_available: bool
    error: str | None = None
    insufficient_items: list[InsufficientItemResponse]


class TransitionCheckResponse(CamelModel):
    is_valid: bool
    current_status: OrderStatus
    error: str | None = None


class LineageEdgeResponse(CamelModel):
    id: UUID
    order_id: UUID
    input_line_id: UUID
    output_line_id: UUID
    input_quantity_used: Decimal
    output_quantity_from: Decimal
    cost_attributed: Decimal
    attribution_basis: AttributionBasis


class StockTransactionLineResponse(CamelModel):
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


class StockTransactionResponse(CamelModel):
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
    notes: str | None
    reverses_transaction_id: UUID | None
    posted_at: datetime | None
    lines: list[StockTransactionLineResponse]


class TemplateLineResponse(CamelModel):
    id: UUID
    item_id: UUID
    quantity: Decimal
    uom_code: str | None
    sequence: int
    is_scrap: bool = False


class TemplateResponse(CamelModel):
    id: UUID
    company_id: UUID | None
    template_code: str
    template_name: str
    description: str | None
    is_active: bool
    usage_count: int
    is_locked: bool
    inputs: list[TemplateLineResponse]
    outputs: list[TemplateLineResponse]


class TemplateValidationResponse(CamelModel):
    is_valid: bool
    error: str | None = None


class TemplateLockResponse(CamelModel):
    template_id: UUID
    is_locked: bool
    usage_count: int
