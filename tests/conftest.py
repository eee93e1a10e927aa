"""
Pytest fixtures for the production core test suite.

Provides:
- Structured logging configured once per session, plus captured_logs
- A session-scoped database engine and tables
- Per-test sessions with row cleanup
- Catalog and order seeding helpers
- A deterministic clock

Environment Variables:
- DATABASE_URL: SQLAlchemy URL of the test database.
  If not set, uses an in-memory SQLite database.
"""

import json
import logging
import os
from dataclasses import dataclass
from decimal import Decimal
from io import StringIO
from typing import Any, Generator

import pytest
from sqlalchemy.orm import Session

from production_config.schema import ProductionConfig
from production_kernel.db.base import Base
from production_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session_factory,
    init_engine_from_config,
    reset_engine,
)
from production_kernel.domain.clock import DeterministicClock
from production_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from production_kernel.models.catalog import Category, Product, Shelf, Warehouse
from production_kernel.models.production_order import (
    ProductionGroupOrderModel,
    ProductionOrderModel,
)
from production_kernel.models.shelf_stock import ShelfStock

DEFAULT_TEST_URL = "sqlite+pysqlite:///:memory:"

TEST_ACTOR_ID = "actor-0001"


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
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
    Capture production_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, controller):
            controller.start(...)
            logs = captured_logs()
            assert any(r["message"] == "production_started" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("production_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


def get_database_url() -> str:
    """Get database URL from environment, or use in-memory SQLite."""
    return os.environ.get("DATABASE_URL", DEFAULT_TEST_URL)


# =============================================================================
# Session-scoped DB infrastructure (engine + tables once per suite)
# =============================================================================


@pytest.fixture(scope="session")
def db_engine():
    """Single engine for the entire test session."""
    eng = init_engine_from_config(ProductionConfig(database_url=get_database_url()))
    yield eng
    reset_engine()


@pytest.fixture(scope="session")
def db_tables(db_engine):
    """Create all tables once per session, drop once at end."""
    drop_tables()
    create_tables()
    yield
    drop_tables()


def _delete_all_rows(engine) -> None:
    """Delete every row, children first.

    The lifecycle controller commits, so tests cannot rely on an outer
    rollback for isolation.
    """
    with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())


@pytest.fixture(scope="function")
def session(db_tables, db_engine) -> Generator[Session, None, None]:
    """Provide a database session; all rows are deleted at teardown."""
    sess = get_session_factory()()
    yield sess
    try:
        sess.rollback()
        sess.close()
    finally:
        _delete_all_rows(db_engine)


# =============================================================================
# Common fixtures
# =============================================================================


@pytest.fixture
def test_actor_id() -> str:
    """Provide a consistent test actor ID."""
    return TEST_ACTOR_ID


@pytest.fixture
def deterministic_clock():
    """Provide a deterministic clock for testing."""
    return DeterministicClock()


# =============================================================================
# Catalog seeding
# =============================================================================


@dataclass
class Catalog:
    """Ids of the standard seeded catalog."""

    store: str  # raw material warehouse
    line: str  # production warehouse
    shelf_a: str  # store shelf
    shelf_b: str  # production shelf
    shelf_c: str  # store shelf for finished goods
    product_p: str  # raw material, m2 / ft2
    product_r: str  # second raw material, m / cm
    product_q: str  # finished good, counted in pieces


class CatalogBuilder:
    """Adds catalog rows and stock to a session and commits."""

    def __init__(self, session: Session):
        self.session = session

    def warehouse(self, name: str, is_production: bool = False) -> str:
        w = Warehouse(name=name, is_production=is_production)
        self.session.add(w)
        self.session.flush()
        return w.id

    def shelf(self, name: str, warehouse_id: str | None) -> str:
        s = Shelf(name=name, code=name.upper(), warehouse_id=warehouse_id)
        self.session.add(s)
        self.session.flush()
        return s.id

    def product(
        self,
        name: str,
        main_unit: str | None = None,
        sub_unit: str | None = None,
    ) -> str:
        p = Product(name=name, code=name.upper(), main_unit=main_unit, sub_unit=sub_unit)
        self.session.add(p)
        self.session.flush()
        return p.id

    def category(self, value: str, label: str) -> None:
        self.session.add(Category(value=value, label=label))
        self.session.flush()

    def stock(self, product_id: str, shelf_id: str, quantity: Decimal | str) -> None:
        shelf = self.session.get(Shelf, shelf_id)
        self.session.add(
            ShelfStock(
                product_id=product_id,
                shelf_id=shelf_id,
                warehouse_id=shelf.warehouse_id if shelf else None,
                stock=Decimal(str(quantity)),
            )
        )
        self.session.flush()

    def order(
        self,
        name: str,
        rows: list[dict[str, Any]],
        quantity: Decimal | str | int = 1,
        group_order_id: str | None = None,
    ) -> str:
        o = ProductionOrderModel(
            name=name,
            code=name.upper(),
            quantity=Decimal(str(quantity)),
            material_requirement_rows=rows,
            group_order_id=group_order_id,
        )
        self.session.add(o)
        self.session.flush()
        return o.id

    def group_order(self, name: str) -> str:
        g = ProductionGroupOrderModel(name=name)
        self.session.add(g)
        self.session.flush()
        return g.id

    def commit(self) -> None:
        self.session.commit()


@pytest.fixture
def catalog_builder(session) -> CatalogBuilder:
    return CatalogBuilder(session)


@pytest.fixture
def catalog(catalog_builder) -> Catalog:
    """Two warehouses, three shelves, three products, 100 of P on shelf A."""
    b = catalog_builder
    store = b.warehouse("Main Store")
    line = b.warehouse("Line 1", is_production=True)
    shelf_a = b.shelf("a1", store)
    shelf_b = b.shelf("b1", line)
    shelf_c = b.shelf("c1", store)
    product_p = b.product("sheet", main_unit="m2", sub_unit="ft2")
    product_r = b.product("rail", main_unit="m", sub_unit="cm")
    product_q = b.product("cabinet", main_unit="piece")
    b.category("panel", "Panels")
    b.category("frame", "Frames")
    b.stock(product_p, shelf_a, "100")
    b.stock(product_r, shelf_a, "50")
    b.commit()
    return Catalog(
        store=store,
        line=line,
        shelf_a=shelf_a,
        shelf_b=shelf_b,
        shelf_c=shelf_c,
        product_p=product_p,
        product_r=product_r,
        product_q=product_q,
    )


def bom_row(
    product_id: str | None,
    per_item_usage: str | int,
    category: str = "panel",
    key: str = "sheet",
    pieces: list[dict[str, Any]] | None = None,
    source_shelf_id: str | None = None,
) -> dict[str, Any]:
    """One raw requirement row in the shape the BOM editor stores."""
    row: dict[str, Any] = {
        "key": key,
        "header": {"category": category, "selected_product_id": product_id},
        "pieces": pieces
        if pieces is not None
        else [{"name": "panel", "length": 1, "width": 1, "quantity": 1,
               "final_usage": str(per_item_usage)}],
    }
    if source_shelf_id:
        row["selected_shelf_id"] = source_shelf_id
    return row


@pytest.fixture
def make_bom_row():
    """Factory for raw requirement rows; see bom_row."""
    return bom_row
