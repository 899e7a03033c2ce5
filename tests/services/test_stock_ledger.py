"""
Tests for StockLedger.

Covers:
- Balance reads for stocked and never-stocked items
- Signed deltas with before/after quantities and version bumps
- Refusal to go negative, with nothing written
- Warehouses are independent
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from tests.conftest import TEST_ACTOR_ID
from transformation_kernel.exceptions import InsufficientStockError, NegativeStockError
from transformation_kernel.services.stock_ledger import StockLedger


@pytest.fixture
def item(make_item):
    return make_item("BOLT", cost_price="0.25", uom="PCS")


class TestGetBalance:

    def test_never_stocked_is_zero(self, ledger, item, warehouse_id):
        balance = ledger.get_balance(item.id, warehouse_id)

        assert balance.exists is False
        assert balance.current_stock == Decimal("0")
        assert balance.version == 0
        assert ledger.available_stock(item.id, warehouse_id) == Decimal("0")

    def test_after_receipt(self, ledger, session, item, warehouse_id):
        ledger.apply_delta(item.id, warehouse_id, Decimal("40"), TEST_ACTOR_ID)
        session.commit()

        balance = ledger.get_balance(item.id, warehouse_id)
        assert balance.exists is True
        assert balance.current_stock == Decimal("40")
        assert balance.available_stock == Decimal("40")
        assert balance.version == 1


class TestApplyDelta:

    def test_first_delta_creates_row(self, ledger, item, warehouse_id):
        change = ledger.apply_delta(item.id, warehouse_id, Decimal("10"), TEST_ACTOR_ID)

        assert change.qty_before == Decimal("0")
        assert change.qty_after == Decimal("10")
        assert change.version == 1

    def test_sequential_deltas(self, ledger, session, item, warehouse_id):
        ledger.apply_delta(item.id, warehouse_id, Decimal("10"), TEST_ACTOR_ID)
        session.commit()

        change = ledger.apply_delta(item.id, warehouse_id, Decimal("-4"), TEST_ACTOR_ID)
        session.commit()

        assert change.qty_before == Decimal("10")
        assert change.qty_after == Decimal("6")
        assert change.delta == Decimal("-4")
        assert change.version == 2
        assert ledger.available_stock(item.id, warehouse_id) == Decimal("6")

    def test_draw_to_exactly_zero(self, ledger, session, item, warehouse_id):
        ledger.apply_delta(item.id, warehouse_id, Decimal("3"), TEST_ACTOR_ID)
        change = ledger.apply_delta(item.id, warehouse_id, Decimal("-3"), TEST_ACTOR_ID)
        session.commit()

        assert change.qty_after == Decimal("0")

    def test_warehouses_are_independent(self, ledger, session, item, warehouse_id):
        other = uuid4()
        ledger.apply_delta(item.id, warehouse_id, Decimal("5"), TEST_ACTOR_ID)
        ledger.apply_delta(item.id, other, Decimal("2"), TEST_ACTOR_ID)
        session.commit()

        assert ledger.available_stock(item.id, warehouse_id) == Decimal("5")
        assert ledger.available_stock(item.id, other) == Decimal("2")


class TestPrecision:
    """Returned quantities always equal what the balance row stores."""

    def test_sub_precision_deltas_do_not_drift(self, ledger, session, item, warehouse_id):
        ledger.apply_delta(item.id, warehouse_id, Decimal("10"), TEST_ACTOR_ID)
        session.commit()

        for _ in range(3):
            change = ledger.apply_delta(
                item.id, warehouse_id, Decimal("-0.0000000004"), TEST_ACTOR_ID,
            )
            session.commit()

            stored = ledger.get_balance(item.id, warehouse_id).current_stock
            assert change.qty_after == stored
            assert change.delta == Decimal("0")

        assert ledger.available_stock(item.id, warehouse_id) == Decimal("10")

    def test_delta_rounded_to_quantity_places(self, ledger, session, item, warehouse_id):
        ledger.apply_delta(item.id, warehouse_id, Decimal("10"), TEST_ACTOR_ID)
        session.commit()

        change = ledger.apply_delta(
            item.id, warehouse_id, Decimal("-0.0000000006"), TEST_ACTOR_ID,
        )
        session.commit()

        assert change.delta == Decimal("-0.000000001")
        assert change.qty_after == Decimal("9.999999999")
        assert ledger.get_balance(item.id, warehouse_id).current_stock == change.qty_after

    def test_custom_quantity_places(self, session, item, warehouse_id):
        ledger = StockLedger(session, quantity_places=3)

        change = ledger.apply_delta(item.id, warehouse_id, Decimal("1.23456"), TEST_ACTOR_ID)
        session.commit()

        assert change.qty_after == Decimal("1.235")
        assert ledger.available_stock(item.id, warehouse_id) == Decimal("1.235")


class TestNegativeStock:

    def test_overdraw_rejected(self, ledger, session, item, warehouse_id):
        ledger.apply_delta(item.id, warehouse_id, Decimal("5"), TEST_ACTOR_ID)
        session.commit()

        with pytest.raises(NegativeStockError) as exc_info:
            ledger.apply_delta(item.id, warehouse_id, Decimal("-8"), TEST_ACTOR_ID)

        assert exc_info.value.available == Decimal("5")
        assert exc_info.value.required == Decimal("8")
        assert exc_info.value.items[0].shortfall == Decimal("3")

    def test_overdraw_changes_nothing(self, ledger, session, item, warehouse_id):
        ledger.apply_delta(item.id, warehouse_id, Decimal("5"), TEST_ACTOR_ID)
        session.commit()

        with pytest.raises(NegativeStockError):
            ledger.apply_delta(item.id, warehouse_id, Decimal("-8"), TEST_ACTOR_ID)
        session.rollback()

        balance = ledger.get_balance(item.id, warehouse_id)
        assert balance.current_stock == Decimal("5")
        assert balance.version == 1

    def test_outbound_without_row(self, ledger, item, warehouse_id):
        with pytest.raises(NegativeStockError) as exc_info:
            ledger.apply_delta(item.id, warehouse_id, Decimal("-1"), TEST_ACTOR_ID)

        assert exc_info.value.available == Decimal("0")

    def test_is_an_insufficient_stock_error(self):
        assert issubclass(NegativeStockError, InsufficientStockError)
        assert NegativeStockError.code == "NEGATIVE_STOCK"


class TestConfiguration:

    def test_retries_must_be_positive(self, session):
        with pytest.raises(ValueError):
            StockLedger(session, max_cas_retries=0)
