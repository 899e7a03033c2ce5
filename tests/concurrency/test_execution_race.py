"""
Concurrent execution against a file-backed SQLite database.

Each thread gets its own session and service.  SQLite serializes writers
(BEGIN IMMEDIATE), so these tests check the outcome of the race rather
than its timing: an order is executed at most once, and stock never goes
negative when two orders compete for the same item.
"""

import threading
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy.orm import sessionmaker

from tests.conftest import FIXED_TIME, TEST_ACTOR_ID
from transformation_kernel.db.engine import build_engine, create_tables, drop_tables
from transformation_kernel.domain.clock import DeterministicClock
from transformation_kernel.models.item import ItemModel
from transformation_kernel.services.stock_ledger import StockLedger
from transformation_modules.transformation.config import TransformationConfig
from transformation_modules.transformation.models import (
    ExecutionData,
    InputExecution,
    OrderStatus,
    OutputExecution,
    TemplateLineSpec,
)
from transformation_modules.transformation.service import TransformationService

pytestmark = pytest.mark.slow_locks


@pytest.fixture
def session_factory(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'race.db'}")
    create_tables(engine)
    yield sessionmaker(bind=engine, expire_on_commit=False)
    drop_tables(engine)
    engine.dispose()


def _service(session, **config):
    return TransformationService(
        session, clock=DeterministicClock(FIXED_TIME), config=TransformationConfig(**config),
    )


def _item(session, code, cost_price="0"):
    item = ItemModel(
        item_code=code,
        item_name=code.title(),
        cost_price=Decimal(cost_price),
        uom_code="KG",
        is_active=True,
        created_by_id=TEST_ACTOR_ID,
    )
    session.add(item)
    session.commit()
    return item.id


@pytest.fixture
def setup(session_factory):
    """One raw item with 100 in stock, a 1:1 template, and a helper for prepared orders."""
    warehouse_id = uuid4()
    session = session_factory()
    raw_id = _item(session, "RAW", cost_price="2")
    finished_id = _item(session, "FINISHED")
    StockLedger(session).apply_delta(raw_id, warehouse_id, Decimal("100"), TEST_ACTOR_ID)
    session.commit()

    service = _service(session)
    template = service.create_template(
        "RACE", "Race",
        [TemplateLineSpec(raw_id, Decimal("1"))],
        [TemplateLineSpec(finished_id, Decimal("1"))],
        TEST_ACTOR_ID,
    )

    def prepared_order(consumed: str):
        order = service.create_order_from_template(
            template.id, warehouse_id, Decimal(consumed), TEST_ACTOR_ID,
        )
        order = service.prepare_order(order.id, TEST_ACTOR_ID)
        data = ExecutionData(
            inputs=(InputExecution(order.inputs[0].id, Decimal(consumed)),),
            outputs=(OutputExecution(order.outputs[0].id, Decimal(consumed)),),
        )
        # Release the write lock before the racing threads start.
        session.commit()
        return order, data

    yield warehouse_id, raw_id, prepared_order
    session.close()


def _race(session_factory, jobs, **config):
    """Run each (order_id, data) job in its own thread; return the results in job order."""
    barrier = threading.Barrier(len(jobs))
    results = [None] * len(jobs)
    errors = []

    def run(index, order_id, data):
        session = session_factory()
        try:
            barrier.wait()
            results[index] = _service(session, **config).execute_transformation(
                order_id, TEST_ACTOR_ID, data,
            )
        except Exception as exc:
            errors.append(exc)
        finally:
            session.close()

    threads = [
        threading.Thread(target=run, args=(index, order_id, data))
        for index, (order_id, data) in enumerate(jobs)
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)

    assert errors == []
    return results


def _stock(session_factory, raw_id, warehouse_id):
    session = session_factory()
    try:
        return StockLedger(session).get_balance(raw_id, warehouse_id).current_stock
    finally:
        session.close()


def test_same_order_executes_once(session_factory, setup):
    warehouse_id, raw_id, prepared_order = setup
    order, data = prepared_order("10")

    results = _race(session_factory, [(order.id, data), (order.id, data)])

    assert sorted(r.success for r in results) == [False, True]
    loser = next(r for r in results if not r.success)
    assert loser.code == "INVALID_STATE"
    assert _stock(session_factory, raw_id, warehouse_id) == Decimal("90")

    session = session_factory()
    try:
        service = _service(session)
        assert service.get_order(order.id).status is OrderStatus.COMPLETED
        assert len(service.stock_transactions_for_order(order.id)) == 2
    finally:
        session.close()


@pytest.mark.parametrize("precheck", [True, False])
def test_competing_orders_never_overdraw(session_factory, setup, precheck):
    warehouse_id, raw_id, prepared_order = setup
    first = prepared_order("60")
    second = prepared_order("60")

    results = _race(
        session_factory,
        [(first[0].id, first[1]), (second[0].id, second[1])],
        precheck_stock=precheck,
    )

    assert sorted(r.success for r in results) == [False, True]
    loser = next(r for r in results if not r.success)
    assert loser.code == "INSUFFICIENT_STOCK"
    assert _stock(session_factory, raw_id, warehouse_id) == Decimal("40")

    session = session_factory()
    try:
        assert _service(session).get_order(loser.order_id).status is OrderStatus.PREPARING
    finally:
        session.close()
