"""
Module: transformation_kernel.models.lineage
Responsibility: Append-only N x M edges linking consumed order inputs to
    produced order outputs, with the quantity and cost carried along each edge.
Architecture position: Kernel > Models.  Written only by
    services/lineage_tracker.py.  Order and line ids belong to the
    transformation module; they are referenced by UUID without FKs so the
    kernel does not import module tables.

Invariants enforced:
    - One edge per (input_line_id, output_line_id)  (uq_lineage_input_output).
    - Edges are immutable once written (db/immutability.py).
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from transformation_kernel.db.base import TrackedBase
from transformation_kernel.domain.dtos import AttributionBasis, LineageEdge


class LineageEdgeModel(TrackedBase):
    """One recorded attribution from an input line to an output line."""

    __tablename__ = "transformation_lineage"

    __table_args__ = (
        UniqueConstraint("input_line_id", "output_line_id", name="uq_lineage_input_output"),
        Index("idx_lineage_order", "order_id"),
        Index("idx_lineage_output", "output_line_id"),
        Index("idx_lineage_input", "input_line_id"),
    )

    order_id: Mapped[UUID] = mapped_column()
    input_line_id: Mapped[UUID] = mapped_column()
    output_line_id: Mapped[UUID] = mapped_column()
    input_quantity_used: Mapped[Decimal] = mapped_column()
    output_quantity_from: Mapped[Decimal] = mapped_column()
    cost_attributed: Mapped[Decimal] = mapped_column()
    attribution_basis: Mapped[str] = mapped_column(String(20))

    def to_dto(self) -> LineageEdge:
        return LineageEdge(
            id=self.id,
            order_id=self.order_id,
            input_line_id=self.input_line_id,
            output_line_id=self.output_line_id,
            input_quantity_used=self.input_quantity_used,
            output_quantity_from=self.output_quantity_from,
            cost_attributed=self.cost_attributed,
            attribution_basis=AttributionBasis(self.attribution_basis),
        )
