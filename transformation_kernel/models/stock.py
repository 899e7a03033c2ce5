"""
Module: transformation_kernel.models.stock
Responsibility: Persistence for per-warehouse stock balances and the
    append-only stock transaction journal (header + lines).
Architecture position: Kernel > Models.  Written only through
    services/stock_ledger.py and services/transaction_recorder.py.

Invariants enforced:
    - One balance row per (item_id, warehouse_id)  (uq_stock_balance_item_wh).
    - Balance rows carry a monotonically increasing ``version`` used for
      compare-and-swap updates.
    - transaction_code is globally unique (uq_stock_txn_code).
    - StockTransactionModel and StockTransactionItemModel are append-only;
      db/immutability.py rejects UPDATE and DELETE.

Failure modes:
    - IntegrityError on a duplicate balance row (concurrent first receipt;
      the ledger retries inside a savepoint).
    - IntegrityError on a duplicate transaction code.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from transformation_kernel.db.base import TrackedBase
from transformation_kernel.domain.dtos import (
    BalanceSnapshot,
    MovementKind,
    MovementType,
    StockTransaction,
    StockTransactionLine,
)


class StockBalanceModel(TrackedBase):
    """
    On-hand quantity of one item in one warehouse.

    ``warehouse_id`` references a warehouse owned by the surrounding
    application (no FK).
    """

    __tablename__ = "stock_balances"

    __table_args__ = (
        UniqueConstraint("item_id", "warehouse_id", name="uq_stock_balance_item_wh"),
        Index("idx_stock_balance_wh", "warehouse_id"),
    )

    company_id: Mapped[UUID | None] = mapped_column(nullable=True)
    item_id: Mapped[UUID] = mapped_column(ForeignKey("items.id"))
    warehouse_id: Mapped[UUID] = mapped_column()
    current_stock: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    reserved_stock: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    version: Mapped[int] = mapped_column(default=0)

    @property
    def available_stock(self) -> Decimal:
        return self.current_stock - self.reserved_stock

    def to_dto(self) -> BalanceSnapshot:
        return BalanceSnapshot(
            item_id=self.item_id,
            warehouse_id=self.warehouse_id,
            current_stock=self.current_stock,
            reserved_stock=self.reserved_stock,
            version=self.version,
        )


class StockTransactionModel(TrackedBase):
    """
    Immutable stock movement header.

    Reversals are new rows pointing at the movement they undo through
    ``reverses_transaction_id``.
    """

    __tablename__ = "stock_transactions"

    __table_args__ = (
        UniqueConstraint("transaction_code", name="uq_stock_txn_code"),
        Index("idx_stock_txn_reference", "reference_type", "reference_id"),
        Index("idx_stock_txn_warehouse", "warehouse_id"),
        Index("idx_stock_txn_reverses", "reverses_transaction_id"),
    )

    company_id: Mapped[UUID | None] = mapped_column(nullable=True)
    transaction_code: Mapped[str] = mapped_column(String(50))
    transaction_type: Mapped[str] = mapped_column(String(10))
    movement_kind: Mapped[str] = mapped_column(String(20))
    transaction_date: Mapped[date] = mapped_column(Date)
    warehouse_id: Mapped[UUID] = mapped_column()
    reference_type: Mapped[str] = mapped_column(String(50))
    reference_id: Mapped[UUID] = mapped_column()
    reference_code: Mapped[str | None] = mapped_column(String(100), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="posted")
    posted_at: Mapped[datetime] = mapped_column()
    reverses_transaction_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("stock_transactions.id"), nullable=True,
    )

    items: Mapped[list["StockTransactionItemModel"]] = relationship(
        back_populates="transaction",
        lazy="selectin",
        order_by="StockTransactionItemModel.line_number",
    )

    def to_dto(self) -> StockTransaction:
        return StockTransaction(
            id=self.id,
            transaction_code=self.transaction_code,
            movement_type=MovementType(self.transaction_type),
            kind=MovementKind(self.movement_kind),
            warehouse_id=self.warehouse_id,
            reference_type=self.reference_type,
            reference_id=self.reference_id,
            reference_code=self.reference_code,
            transaction_date=self.transaction_date,
            status=self.status,
            notes=self.notes,
            reverses_transaction_id=self.reverses_transaction_id,
            posted_at=self.posted_at,
            lines=tuple(item.to_dto() for item in self.items),
        )


class StockTransactionItemModel(TrackedBase):
    """
    Immutable stock movement line with the balance snapshot it produced.

    qty_before/qty_after and the stock values are what a reconciliation job
    replays against the ledger.
    """

    __tablename__ = "stock_transaction_items"

    __table_args__ = (
        UniqueConstraint("transaction_id", "line_number", name="uq_stock_txn_item_line"),
        Index("idx_stock_txn_item_item", "item_id"),
    )

    transaction_id: Mapped[UUID] = mapped_column(ForeignKey("stock_transactions.id"))
    line_number: Mapped[int] = mapped_column(default=1)
    item_id: Mapped[UUID] = mapped_column(ForeignKey("items.id"))
    quantity: Mapped[Decimal] = mapped_column()
    uom_code: Mapped[str | None] = mapped_column(String(20), nullable=True)
    unit_cost: Mapped[Decimal] = mapped_column()
    total_cost: Mapped[Decimal] = mapped_column()
    qty_before: Mapped[Decimal] = mapped_column()
    qty_after: Mapped[Decimal] = mapped_column()
    valuation_rate: Mapped[Decimal] = mapped_column()
    stock_value_before: Mapped[Decimal] = mapped_column()
    stock_value_after: Mapped[Decimal] = mapped_column()

    transaction: Mapped["StockTransactionModel"] = relationship(back_populates="items")

    def to_dto(self) -> StockTransactionLine:
        return StockTransactionLine(
            id=self.id,
            item_id=self.item_id,
            quantity=self.quantity,
            uom_code=self.uom_code,
            unit_cost=self.unit_cost,
            total_cost=self.total_cost,
            qty_before=self.qty_before,
            qty_after=self.qty_after,
            valuation_rate=self.valuation_rate,
            stock_value_before=self.stock_value_before,
            stock_value_after=self.stock_value_after,
        )
