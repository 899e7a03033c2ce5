"""
Module: transformation_kernel.models.item
Responsibility: Catalog item as seen by the transformation kernel: code, name,
    current cost price and unit of measure.
Architecture position: Kernel > Models.  Inherits TrackedBase.  The full item
    master lives in the surrounding application; this table holds the fields
    the stock-posting workflow reads.

Invariants enforced:
    - (company_id, item_code) is unique.
    - cost_price is Decimal, never float.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from transformation_kernel.db.base import TrackedBase
from transformation_kernel.domain.dtos import ItemSnapshot


class ItemModel(TrackedBase):
    """Catalog item: unit cost and display names used at posting time."""

    __tablename__ = "items"

    __table_args__ = (
        UniqueConstraint("company_id", "item_code", name="uq_item_code_company"),
        Index("idx_items_company", "company_id"),
    )

    company_id: Mapped[UUID | None] = mapped_column(nullable=True)
    item_code: Mapped[str] = mapped_column(String(50))
    item_name: Mapped[str] = mapped_column(String(200))
    cost_price: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    uom_code: Mapped[str | None] = mapped_column(String(20), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    def to_dto(self) -> ItemSnapshot:
        return ItemSnapshot(
            id=self.id,
            item_code=self.item_code,
            item_name=self.item_name,
            cost_price=self.cost_price,
            uom_code=self.uom_code,
            is_active=self.is_active,
        )
