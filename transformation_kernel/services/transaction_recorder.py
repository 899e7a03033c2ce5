"""
StockTransactionRecorder -- append-only stock movement journal.

Responsibility:
    Writes one immutable stock transaction (header + lines) per physical or
    cost-accounting movement.  Each line carries the balance snapshot
    (qty_before / qty_after) and the valuation taken from the ledger change it
    describes.

Architecture position:
    Kernel > Services -- imperative shell.  Flushes, never commits, so the
    header, its lines and the ledger delta commit or roll back together.

Invariants enforced:
    - Transaction codes come from the locked ``stock_transaction`` counter
      (``ST-00000001``); the storage layer enforces uniqueness.
    - Rows are never updated or deleted (db/immutability.py).  Corrections
      are new ``reversal`` movements pointing at the original through
      ``reverses_transaction_id``.
    - total_cost and the stock values are derived from the line itself and
      rounded to money precision.

Failure modes:
    - ValidationError: a movement with no lines.
    - StockTransactionNotFoundError: ``get`` on an unknown id.
"""

from __future__ import annotations

from collections.abc import Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from transformation_kernel.db.types import MONEY_DECIMAL_PLACES, round_money
from transformation_kernel.domain.clock import Clock, SystemClock
from transformation_kernel.domain.dtos import MovementLine, StockMovement, StockTransaction
from transformation_kernel.exceptions import StockTransactionNotFoundError, ValidationError
from transformation_kernel.logging_config import get_logger
from transformation_kernel.models.stock import StockTransactionItemModel, StockTransactionModel
from transformation_kernel.services.base import BaseService
from transformation_kernel.services.sequence_service import SequenceService

logger = get_logger("services.transaction_recorder")


class StockTransactionRecorder(BaseService[StockTransactionModel]):
    """Records stock movements and reads them back as DTOs."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        code_prefix: str = "ST-",
        code_width: int = 8,
        money_places: int = MONEY_DECIMAL_PLACES,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._sequence = SequenceService(session)
        self._code_prefix = code_prefix
        self._code_width = code_width
        self._money_places = money_places

    def record(
        self,
        movement: StockMovement,
        lines: Sequence[MovementLine],
        actor_id: UUID,
    ) -> StockTransaction:
        """
        Persist a movement header and its lines.

        Preconditions:
            - Each line's qty_before/qty_after come from the ledger change
              applied in the same transaction (or 0/0 for cost-only movements).

        Returns:
            The recorded StockTransaction DTO, lines included.
        """
        if not lines:
            raise ValidationError("A stock transaction needs at least one line", field="lines")

        code = self._sequence.next_code(
            SequenceService.STOCK_TRANSACTION, self._code_prefix, self._code_width,
        )
        header = StockTransactionModel(
            company_id=movement.company_id,
            transaction_code=code,
            transaction_type=movement.movement_type.value,
            movement_kind=movement.kind.value,
            transaction_date=movement.transaction_date,
            warehouse_id=movement.warehouse_id,
            reference_type=movement.reference_type,
            reference_id=movement.reference_id,
            reference_code=movement.reference_code,
            notes=movement.notes,
            status="posted",
            posted_at=self._clock.now(),
            reverses_transaction_id=movement.reverses_transaction_id,
            created_by_id=actor_id,
        )
        places = self._money_places
        for number, line in enumerate(lines, start=1):
            header.items.append(StockTransactionItemModel(
                line_number=number,
                item_id=line.item_id,
                quantity=line.quantity,
                uom_code=line.uom_code,
                unit_cost=line.unit_cost,
                total_cost=round_money(line.total_cost, places),
                qty_before=line.qty_before,
                qty_after=line.qty_after,
                valuation_rate=line.unit_cost,
                stock_value_before=round_money(line.stock_value_before, places),
                stock_value_after=round_money(line.stock_value_after, places),
                created_by_id=actor_id,
            ))
        self.session.add(header)
        self.session.flush()

        logger.info(
            "stock_transaction_recorded",
            extra={
                "transaction_id": str(header.id),
                "transaction_code": code,
                "transaction_type": movement.movement_type.value,
                "movement_kind": movement.kind.value,
                "reference_type": movement.reference_type,
                "reference_id": str(movement.reference_id),
                "line_count": len(lines),
                "reverses_transaction_id": (
                    str(movement.reverses_transaction_id)
                    if movement.reverses_transaction_id else None
                ),
            },
        )
        return header.to_dto()

    def get(self, transaction_id: UUID) -> StockTransaction:
        row = self.session.get(StockTransactionModel, transaction_id)
        if row is None:
            raise StockTransactionNotFoundError(str(transaction_id))
        return row.to_dto()

    def list_for_reference(self, reference_type: str, reference_id: UUID) -> list[StockTransaction]:
        """All movements raised by one source document, in posting order."""
        rows = self.session.execute(
            select(StockTransactionModel)
            .where(
                StockTransactionModel.reference_type == reference_type,
                StockTransactionModel.reference_id == reference_id,
            )
            .order_by(StockTransactionModel.transaction_code)
        ).scalars().all()
        return [row.to_dto() for row in rows]
