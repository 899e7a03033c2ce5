"""
Pytest fixtures for the transformation engine test suite.

Provides:
- An in-memory SQLite database (StaticPool) created and dropped per test
- A deterministic clock
- Captured structured logs
- Item, stock, template and order factories
- A FastAPI TestClient bound to the test session

Environment Variables:
- TEST_DATABASE_URL: run the database tests against another URL (e.g. a
  local PostgreSQL) instead of in-memory SQLite.
"""

import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime, UTC
from decimal import Decimal
from io import StringIO
from uuid import UUID, uuid4

import pytest
from fastapi.testclient import TestClient

from transformation_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session,
    init_engine_from_url,
    reset_engine,
)
from transformation_kernel.db.immutability import register_immutability_listeners
from transformation_kernel.domain.clock import DeterministicClock
from transformation_kernel.domain.dtos import ItemSnapshot
from transformation_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from transformation_kernel.models.item import ItemModel
from transformation_kernel.services.stock_ledger import StockLedger
from transformation_modules.transformation.config import TransformationConfig
from transformation_modules.transformation.models import (
    ExecutionData,
    InputExecution,
    OutputExecution,
    TemplateLineSpec,
    TransformationOrder,
    TransformationTemplate,
)
from transformation_modules.transformation.service import TransformationService


# Test actor ID for all test operations
TEST_ACTOR_ID = UUID("00000000-0000-4000-8000-000000000001")

FIXED_TIME = datetime(2024, 3, 15, 9, 30, tzinfo=UTC)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=StringIO())
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture transformation_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, service):
            service.prepare_order(...)
            logs = captured_logs()
            assert any(r["message"] == "transformation_order_transitioned" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("transformation_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _immutability_listeners():
    register_immutability_listeners()
    yield


@pytest.fixture
def db_engine():
    """Fresh schema per test."""
    eng = init_engine_from_url(os.environ.get("TEST_DATABASE_URL", "sqlite://"))
    create_tables(eng)
    yield eng
    drop_tables(eng)
    reset_engine()


@pytest.fixture
def session(db_engine):
    s = get_session()
    yield s
    s.rollback()
    s.close()


@pytest.fixture
def clock():
    return DeterministicClock(FIXED_TIME)


@pytest.fixture
def config():
    return TransformationConfig()


@pytest.fixture
def service(session, clock, config):
    return TransformationService(session, clock=clock, config=config)


@pytest.fixture
def ledger(session):
    return StockLedger(session)


@pytest.fixture
def warehouse_id() -> UUID:
    return uuid4()


# =============================================================================
# Domain factories
# =============================================================================


@pytest.fixture
def make_item(session):
    """Create a catalog item and commit it."""

    def _make(code: str, cost_price: str = "0", name: str | None = None, uom: str = "KG"):
        item = ItemModel(
            item_code=code,
            item_name=name or code.replace("-", " ").title(),
            cost_price=Decimal(cost_price),
            uom_code=uom,
            is_active=True,
            created_by_id=TEST_ACTOR_ID,
        )
        session.add(item)
        session.commit()
        return item.to_dto()

    return _make


@pytest.fixture
def put_stock(session, warehouse_id):
    """Put quantity on hand for an item (default warehouse)."""

    def _put(item_id: UUID, quantity: str, warehouse: UUID | None = None):
        StockLedger(session).apply_delta(
            item_id, warehouse or warehouse_id, Decimal(quantity), TEST_ACTOR_ID,
        )
        session.commit()

    return _put


@pytest.fixture
def make_template(service):
    """Create a template from (item, quantity) inputs and (item, quantity, is_scrap) outputs."""
    counter = iter(range(1, 1000))

    def _make(inputs, outputs, code: str | None = None) -> TransformationTemplate:
        return service.create_template(
            template_code=code or f"TPL-{next(counter):03d}",
            template_name="Test template",
            inputs=[TemplateLineSpec(item.id, Decimal(qty)) for item, qty in inputs],
            outputs=[
                TemplateLineSpec(item.id, Decimal(qty), is_scrap=scrap)
                for item, qty, scrap in outputs
            ],
            actor_id=TEST_ACTOR_ID,
        )

    return _make


@pytest.fixture
def make_prepared_order(service, warehouse_id):
    """Create an order from a template and move it to PREPARING."""

    def _make(template: TransformationTemplate, planned: str = "1") -> TransformationOrder:
        order = service.create_order_from_template(
            template_id=template.id,
            warehouse_id=warehouse_id,
            planned_quantity=Decimal(planned),
            actor_id=TEST_ACTOR_ID,
        )
        return service.prepare_order(order.id, TEST_ACTOR_ID)

    return _make


@dataclass(frozen=True)
class WorkedExample:
    """Two inputs costing 100 and 50, three outputs, the third one scrap."""

    raw_a: ItemSnapshot
    raw_b: ItemSnapshot
    good_1: ItemSnapshot
    good_2: ItemSnapshot
    scrap: ItemSnapshot
    template: TransformationTemplate
    order: TransformationOrder

    def execution_data(self, consumed_a: str = "10", consumed_b: str = "10") -> ExecutionData:
        inputs = {line.item_id: line.id for line in self.order.inputs}
        outputs = {line.item_id: line.id for line in self.order.outputs}
        return ExecutionData(
            inputs=(
                InputExecution(inputs[self.raw_a.id], Decimal(consumed_a)),
                InputExecution(inputs[self.raw_b.id], Decimal(consumed_b)),
            ),
            outputs=(
                OutputExecution(outputs[self.good_1.id], Decimal("8")),
                OutputExecution(outputs[self.good_2.id], Decimal("4"), Decimal("1"), "trim loss"),
                OutputExecution(outputs[self.scrap.id], Decimal("0"), Decimal("5"), "offcuts"),
            ),
        )


@pytest.fixture
def worked_example(make_item, put_stock, make_template, make_prepared_order) -> WorkedExample:
    raw_a = make_item("RAW-A", cost_price="10")
    raw_b = make_item("RAW-B", cost_price="5")
    good_1 = make_item("FG-1")
    good_2 = make_item("FG-2")
    scrap = make_item("SCRAP")
    put_stock(raw_a.id, "100")
    put_stock(raw_b.id, "100")
    template = make_template(
        inputs=[(raw_a, "10"), (raw_b, "10")],
        outputs=[(good_1, "8", False), (good_2, "4", False), (scrap, "1", True)],
    )
    order = make_prepared_order(template)
    return WorkedExample(raw_a, raw_b, good_1, good_2, scrap, template, order)


# =============================================================================
# HTTP fixtures
# =============================================================================


@pytest.fixture
def client(session, clock, config, monkeypatch):
    """TestClient whose requests share the test session."""
    from transformation_api.app import create_app
    from transformation_api.dependencies import get_clock, get_config, get_db

    monkeypatch.delenv("DATABASE_URL", raising=False)
    app = create_app()

    def _db():
        yield session

    app.dependency_overrides[get_db] = _db
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_config] = lambda: config
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def actor_headers():
    return {"X-Actor-Id": str(TEST_ACTOR_ID)}
