"""
StockLedger -- per item x warehouse on-hand balances.

Responsibility:
    The single source of truth for "how much of item X is in warehouse Y right
    now".  Reads balances and applies signed quantity deltas.

Architecture position:
    Kernel > Services -- imperative shell.  Flushes, never commits.  Callers
    pair every ``apply_delta`` with a StockTransactionRecorder.record() in the
    same database transaction.

Invariants enforced:
    - current_stock never goes below zero through ``apply_delta``; a delta
      that would do so raises NegativeStockError and changes nothing.
    - Deltas are rounded to ``quantity_places`` before they are applied;
      the before/after quantities returned always match the stored row.
    - Every successful delta bumps ``version`` by exactly one.  The write is
      ``UPDATE ... WHERE id = :id AND version = :expected`` issued after a
      ``SELECT ... FOR UPDATE``, so no read-modify-write can interleave with
      another writer.
    - One balance row per (item_id, warehouse_id); the first inbound movement
      creates it.

Failure modes:
    - NegativeStockError: delta would make current_stock negative.
    - OptimisticLockError: the compare-and-swap lost ``max_cas_retries``
      times in a row.

Audit relevance:
    Each applied delta is logged with before/after quantities and the new
    version (``stock_delta_applied``).
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from transformation_kernel.db.types import (
    QUANTITY_DECIMAL_PLACES,
    ZERO,
    round_quantity,
    to_decimal,
)
from transformation_kernel.domain.dtos import BalanceChange, BalanceSnapshot
from transformation_kernel.exceptions import NegativeStockError, OptimisticLockError
from transformation_kernel.logging_config import get_logger
from transformation_kernel.models.stock import StockBalanceModel
from transformation_kernel.services.base import BaseService

logger = get_logger("services.stock_ledger")

DEFAULT_MAX_CAS_RETRIES = 3


class StockLedger(BaseService[StockBalanceModel]):
    """
    Reads and mutates stock balances.

    Usage:
        ledger = StockLedger(session)
        change = ledger.apply_delta(item_id, warehouse_id, Decimal("-5"), actor_id)
        recorder.record(movement, [MovementLine(..., qty_before=change.qty_before,
                                                qty_after=change.qty_after)], actor_id)
        session.commit()
    """

    def __init__(
        self,
        session: Session,
        max_cas_retries: int = DEFAULT_MAX_CAS_RETRIES,
        quantity_places: int = QUANTITY_DECIMAL_PLACES,
    ):
        super().__init__(session)
        if max_cas_retries < 1:
            raise ValueError("max_cas_retries must be at least 1")
        self._max_cas_retries = max_cas_retries
        self._quantity_places = quantity_places

    def _select_balance(self, item_id: UUID, warehouse_id: UUID, lock: bool):
        stmt = select(StockBalanceModel).where(
            StockBalanceModel.item_id == item_id,
            StockBalanceModel.warehouse_id == warehouse_id,
        )
        if lock:
            stmt = stmt.with_for_update()
        return self.session.execute(
            stmt.execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def get_balance(self, item_id: UUID, warehouse_id: UUID) -> BalanceSnapshot:
        """
        Current balance, or an all-zero snapshot (``exists=False``) if the item
        has never been stocked in the warehouse.
        """
        row = self._select_balance(item_id, warehouse_id, lock=False)
        if row is None:
            return BalanceSnapshot(
                item_id=item_id,
                warehouse_id=warehouse_id,
                current_stock=ZERO,
                reserved_stock=ZERO,
                version=0,
                exists=False,
            )
        return row.to_dto()

    def available_stock(self, item_id: UUID, warehouse_id: UUID) -> Decimal:
        return self.get_balance(item_id, warehouse_id).available_stock

    def apply_delta(
        self,
        item_id: UUID,
        warehouse_id: UUID,
        delta: Decimal,
        actor_id: UUID,
        company_id: UUID | None = None,
    ) -> BalanceChange:
        """
        Add ``delta`` (signed) to current_stock.

        ``delta`` is rounded to ``quantity_places`` first, so the returned
        quantities are exactly what the balance row stores.

        Preconditions:
            - The caller is inside an open transaction it will commit together
              with the stock transaction that records this change.

        Postconditions:
            - Returns the quantities before and after and the new version.
            - On NegativeStockError nothing was written.

        Raises:
            NegativeStockError: the result would be below zero.
            OptimisticLockError: compare-and-swap kept failing.
        """
        delta = round_quantity(to_decimal(delta), self._quantity_places)

        for attempt in range(1, self._max_cas_retries + 1):
            row = self._select_balance(item_id, warehouse_id, lock=True)

            if row is None:
                if delta < ZERO:
                    raise NegativeStockError(
                        item_id=str(item_id),
                        warehouse_id=str(warehouse_id),
                        available=ZERO,
                        required=-delta,
                    )
                change = self._create_balance(
                    item_id, warehouse_id, delta, actor_id, company_id,
                )
                if change is not None:
                    return change
                # Lost the creation race; the row exists now.
                continue

            qty_before = row.current_stock
            qty_after = qty_before + delta
            if qty_after < ZERO:
                logger.warning(
                    "stock_delta_rejected",
                    extra={
                        "item_id": str(item_id),
                        "warehouse_id": str(warehouse_id),
                        "current_stock": str(qty_before),
                        "delta": str(delta),
                    },
                )
                raise NegativeStockError(
                    item_id=str(item_id),
                    warehouse_id=str(warehouse_id),
                    available=qty_before,
                    required=-delta,
                )

            expected_version = row.version
            result = self.session.execute(
                update(StockBalanceModel)
                .where(
                    StockBalanceModel.id == row.id,
                    StockBalanceModel.version == expected_version,
                )
                .values(
                    current_stock=qty_after,
                    version=expected_version + 1,
                    updated_by_id=actor_id,
                )
                .execution_options(synchronize_session=False)
            )
            self.session.expire(row)

            if result.rowcount == 1:
                logger.info(
                    "stock_delta_applied",
                    extra={
                        "item_id": str(item_id),
                        "warehouse_id": str(warehouse_id),
                        "delta": str(delta),
                        "qty_before": str(qty_before),
                        "qty_after": str(qty_after),
                        "version": expected_version + 1,
                    },
                )
                return BalanceChange(
                    item_id=item_id,
                    warehouse_id=warehouse_id,
                    delta=delta,
                    qty_before=qty_before,
                    qty_after=qty_after,
                    version=expected_version + 1,
                )

            logger.warning(
                "stock_balance_cas_conflict",
                extra={
                    "item_id": str(item_id),
                    "warehouse_id": str(warehouse_id),
                    "expected_version": expected_version,
                    "attempt": attempt,
                },
            )

        raise OptimisticLockError(
            entity_type="StockBalance",
            entity_id=f"{item_id}@{warehouse_id}",
            attempts=self._max_cas_retries,
        )

    def _create_balance(
        self,
        item_id: UUID,
        warehouse_id: UUID,
        quantity: Decimal,
        actor_id: UUID,
        company_id: UUID | None,
    ) -> BalanceChange | None:
        """Insert the first balance row; None if another writer got there first."""
        savepoint = self.session.begin_nested()
        try:
            row = StockBalanceModel(
                company_id=company_id,
                item_id=item_id,
                warehouse_id=warehouse_id,
                current_stock=quantity,
                reserved_stock=ZERO,
                version=1,
                created_by_id=actor_id,
            )
            self.session.add(row)
            self.session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            logger.debug(
                "stock_balance_create_race_retry",
                extra={"item_id": str(item_id), "warehouse_id": str(warehouse_id)},
            )
            return None

        logger.info(
            "stock_balance_created",
            extra={
                "item_id": str(item_id),
                "warehouse_id": str(warehouse_id),
                "qty_after": str(quantity),
            },
        )
        return BalanceChange(
            item_id=item_id,
            warehouse_id=warehouse_id,
            delta=quantity,
            qty_before=ZERO,
            qty_after=quantity,
            version=1,
        )
