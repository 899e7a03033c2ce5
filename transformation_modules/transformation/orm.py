"""
Module: transformation_modules.transformation.orm
Responsibility: SQLAlchemy ORM persistence for transformation templates,
    transformation orders and their input/output lines.

Architecture position: Modules > Transformation > ORM.  Inherits from
    TrackedBase (transformation_kernel.db.base).  Item lines reference the
    kernel ``items`` table; warehouses are owned by the surrounding
    application and referenced by UUID with no FK.

Invariants enforced:
    - All quantities and money fields are Decimal (Numeric(38,9)).
    - Status stored as String(20) holding OrderStatus values.
    - (company_id, template_code) unique; order_code globally unique.
    - Orders carry a ``version`` column bumped on every status change; the
      execution step completes an order with a compare-and-swap on
      (status, version).
    - Orders and templates are never hard-deleted: ``deleted_at`` marks a
      soft delete.

Failure modes:
    - IntegrityError on duplicate template code within a company.
    - IntegrityError on duplicate order code.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, Date, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from transformation_kernel.db.base import TrackedBase
from transformation_modules.transformation.models import (
    OrderInput,
    OrderOutput,
    OrderStatus,
    TemplateInput,
    TemplateOutput,
    TransformationOrder,
    TransformationTemplate,
)


# =============================================================================
# Templates
# =============================================================================

class TransformationTemplateModel(TrackedBase):
    """
    ORM model for transformation templates (recipes).

    Guarantees:
        - usage_count counts orders created from the template.
        - Structural edits are refused by the service while usage_count > 0.
    """

    __tablename__ = "transformation_templates"

    __table_args__ = (
        UniqueConstraint("company_id", "template_code", name="uq_trn_template_code"),
        Index("idx_trn_template_active", "is_active"),
    )

    company_id: Mapped[UUID | None] = mapped_column(nullable=True)
    template_code: Mapped[str] = mapped_column(String(50))
    template_name: Mapped[str] = mapped_column(String(200))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    usage_count: Mapped[int] = mapped_column(default=0)
    deleted_at: Mapped[datetime | None] = mapped_column(nullable=True)

    inputs: Mapped[list["TemplateInputModel"]] = relationship(
        back_populates="template",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="TemplateInputModel.sequence",
    )

    outputs: Mapped[list["TemplateOutputModel"]] = relationship(
        back_populates="template",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="TemplateOutputModel.sequence",
    )

    def to_dto(self) -> TransformationTemplate:
        return TransformationTemplate(
            id=self.id,
            company_id=self.company_id,
            template_code=self.template_code,
            template_name=self.template_name,
            description=self.description,
            is_active=self.is_active,
            usage_count=self.usage_count,
            inputs=tuple(line.to_dto() for line in self.inputs),
            outputs=tuple(line.to_dto() for line in self.outputs),
        )

    def __repr__(self) -> str:
        return f"<TransformationTemplateModel {self.template_code} uses={self.usage_count}>"


class TemplateInputModel(TrackedBase):
    """Input line of a template: quantity consumed per unit of planned quantity."""

    __tablename__ = "transformation_template_inputs"

    __table_args__ = (
        Index("idx_trn_tpl_input_template", "template_id"),
    )

    template_id: Mapped[UUID] = mapped_column(ForeignKey("transformation_templates.id"))
    item_id: Mapped[UUID] = mapped_column(ForeignKey("items.id"))
    quantity: Mapped[Decimal] = mapped_column()
    uom_code: Mapped[str | None] = mapped_column(String(20), nullable=True)
    sequence: Mapped[int] = mapped_column(default=1)

    template: Mapped["TransformationTemplateModel"] = relationship(back_populates="inputs")

    def to_dto(self) -> TemplateInput:
        return TemplateInput(
            id=self.id,
            item_id=self.item_id,
            quantity=self.quantity,
            uom_code=self.uom_code,
            sequence=self.sequence,
        )


class TemplateOutputModel(TrackedBase):
    """Output line of a template, optionally flagged as scrap."""

    __tablename__ = "transformation_template_outputs"

    __table_args__ = (
        Index("idx_trn_tpl_output_template", "template_id"),
    )

    template_id: Mapped[UUID] = mapped_column(ForeignKey("transformation_templates.id"))
    item_id: Mapped[UUID] = mapped_column(ForeignKey("items.id"))
    quantity: Mapped[Decimal] = mapped_column()
    uom_code: Mapped[str | None] = mapped_column(String(20), nullable=True)
    is_scrap: Mapped[bool] = mapped_column(Boolean, default=False)
    sequence: Mapped[int] = mapped_column(default=1)

    template: Mapped["TransformationTemplateModel"] = relationship(back_populates="outputs")

    def to_dto(self) -> TemplateOutput:
        return TemplateOutput(
            id=self.id,
            item_id=self.item_id,
            quantity=self.quantity,
            uom_code=self.uom_code,
            sequence=self.sequence,
            is_scrap=self.is_scrap,
        )


# =============================================================================
# Orders
# =============================================================================

class TransformationOrderModel(TrackedBase):
    """
    ORM model for transformation orders.

    Guarantees:
        - order_code is globally unique (uq_trn_order_code).
        - Cost totals are written once, by the execution finalize step.
        - warehouse_id references an application-owned warehouse (no FK).
    """

    __tablename__ = "transformation_orders"

    __table_args__ = (
        UniqueConstraint("order_code", name="uq_trn_order_code"),
        Index("idx_trn_order_status", "status"),
        Index("idx_trn_order_template", "template_id"),
        Index("idx_trn_order_warehouse", "warehouse_id"),
    )

    company_id: Mapped[UUID | None] = mapped_column(nullable=True)
    order_code: Mapped[str] = mapped_column(String(50))
    template_id: Mapped[UUID] = mapped_column(ForeignKey("transformation_templates.id"))
    warehouse_id: Mapped[UUID] = mapped_column()

    planned_quantity: Mapped[Decimal] = mapped_column()
    actual_quantity: Mapped[Decimal | None] = mapped_column(nullable=True)

    status: Mapped[str] = mapped_column(String(20), default=OrderStatus.DRAFT.value)

    order_date: Mapped[date] = mapped_column(Date)
    planned_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    execution_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    completion_date: Mapped[datetime | None] = mapped_column(nullable=True)

    total_input_cost: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    total_output_cost: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    total_waste_cost: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    scrap_write_off: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    cost_variance: Mapped[Decimal] = mapped_column(default=Decimal("0"))

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    reference: Mapped[str | None] = mapped_column(String(100), nullable=True)

    version: Mapped[int] = mapped_column(default=1)
    deleted_at: Mapped[datetime | None] = mapped_column(nullable=True)

    inputs: Mapped[list["OrderInputModel"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="OrderInputModel.sequence",
    )

    outputs: Mapped[list["OrderOutputModel"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="OrderOutputModel.sequence",
    )

    def to_dto(self) -> TransformationOrder:
        return TransformationOrder(
            id=self.id,
            company_id=self.company_id,
            order_code=self.order_code,
            template_id=self.template_id,
            warehouse_id=self.warehouse_id,
            planned_quantity=self.planned_quantity,
            actual_quantity=self.actual_quantity,
            status=OrderStatus(self.status),
            order_date=self.order_date,
            planned_date=self.planned_date,
            execution_date=self.execution_date,
            completion_date=self.completion_date,
            total_input_cost=self.total_input_cost,
            total_output_cost=self.total_output_cost,
            total_waste_cost=self.total_waste_cost,
            scrap_write_off=self.scrap_write_off,
            cost_variance=self.cost_variance,
            notes=self.notes,
            reference=self.reference,
            version=self.version,
            inputs=tuple(line.to_dto() for line in self.inputs),
            outputs=tuple(line.to_dto() for line in self.outputs),
        )

    def __repr__(self) -> str:
        return f"<TransformationOrderModel {self.order_code} status={self.status} v{self.version}>"


class OrderInputModel(TrackedBase):
    """Input line of an order; consumption fields are filled at execution."""

    __tablename__ = "transformation_order_inputs"

    __table_args__ = (
        Index("idx_trn_order_input_order", "order_id"),
        Index("idx_trn_order_input_item", "item_id"),
    )

    order_id: Mapped[UUID] = mapped_column(ForeignKey("transformation_orders.id"))
    item_id: Mapped[UUID] = mapped_column(ForeignKey("items.id"))
    uom_code: Mapped[str | None] = mapped_column(String(20), nullable=True)
    planned_quantity: Mapped[Decimal] = mapped_column()
    consumed_quantity: Mapped[Decimal | None] = mapped_column(nullable=True)
    unit_cost: Mapped[Decimal | None] = mapped_column(nullable=True)
    total_cost: Mapped[Decimal | None] = mapped_column(nullable=True)
    stock_transaction_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("stock_transactions.id"), nullable=True,
    )
    sequence: Mapped[int] = mapped_column(default=1)

    order: Mapped["TransformationOrderModel"] = relationship(back_populates="inputs")

    def to_dto(self) -> OrderInput:
        return OrderInput(
            id=self.id,
            item_id=self.item_id,
            uom_code=self.uom_code,
            planned_quantity=self.planned_quantity,
            consumed_quantity=self.consumed_quantity,
            unit_cost=self.unit_cost,
            total_cost=self.total_cost,
            stock_transaction_id=self.stock_transaction_id,
            sequence=self.sequence,
        )


class OrderOutputModel(TrackedBase):
    """Output line of an order; production and cost fields are filled at execution."""

    __tablename__ = "transformation_order_outputs"

    __table_args__ = (
        Index("idx_trn_order_output_order", "order_id"),
        Index("idx_trn_order_output_item", "item_id"),
    )

    order_id: Mapped[UUID] = mapped_column(ForeignKey("transformation_orders.id"))
    item_id: Mapped[UUID] = mapped_column(ForeignKey("items.id"))
    uom_code: Mapped[str | None] = mapped_column(String(20), nullable=True)
    planned_quantity: Mapped[Decimal] = mapped_column()
    produced_quantity: Mapped[Decimal | None] = mapped_column(nullable=True)
    wasted_quantity: Mapped[Decimal | None] = mapped_column(nullable=True)
    waste_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_scrap: Mapped[bool] = mapped_column(Boolean, default=False)
    allocated_cost_per_unit: Mapped[Decimal | None] = mapped_column(nullable=True)
    total_allocated_cost: Mapped[Decimal | None] = mapped_column(nullable=True)
    waste_cost: Mapped[Decimal | None] = mapped_column(nullable=True)
    stock_transaction_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("stock_transactions.id"), nullable=True,
    )
    waste_transaction_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("stock_transactions.id"), nullable=True,
    )
    sequence: Mapped[int] = mapped_column(default=1)

    order: Mapped["TransformationOrderModel"] = relationship(back_populates="outputs")

    def to_dto(self) -> OrderOutput:
        return OrderOutput(
            id=self.id,
            item_id=self.item_id,
            uom_code=self.uom_code,
            planned_quantity=self.planned_quantity,
            produced_quantity=self.produced_quantity,
            wasted_quantity=self.wasted_quantity,
            waste_reason=self.waste_reason,
            is_scrap=self.is_scrap,
            allocated_cost_per_unit=self.allocated_cost_per_unit,
            total_allocated_cost=self.total_allocated_cost,
            waste_cost=self.waste_cost,
            stock_transaction_id=self.stock_transaction_id,
            waste_transaction_id=self.waste_transaction_id,
            sequence=self.sequence,
        )
