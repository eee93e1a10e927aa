"""
Tests for InventoryMoveEngine.

Covers:
- Shelf-to-shelf moves with netting
- All-or-nothing batches on insufficient stock
- Warehouse inheritance on newly created balances
- Rollback, consumption and finished goods
- Product stock / sub_stock synchronization
"""

from decimal import Decimal

import pytest
from sqlalchemy import select

from production_kernel.domain.values import InventoryMove
from production_kernel.exceptions import (
    InsufficientStockError,
    InvalidMoveError,
    ProductNotFoundError,
    ShelfNotFoundError,
)
from production_kernel.models.catalog import Product
from production_kernel.models.shelf_stock import ShelfStock
from production_services.inventory_moves import InventoryMoveEngine


def _move(product, source, target, qty):
    return InventoryMove(product, source, target, Decimal(str(qty)))


@pytest.fixture
def engine(session):
    return InventoryMoveEngine(session)


def _balance_row(session, product_id, shelf_id):
    return session.scalar(
        select(ShelfStock).where(
            ShelfStock.product_id == product_id,
            ShelfStock.shelf_id == shelf_id,
        )
    )


class TestApplyMoves:
    """Tests for apply_moves."""

    def test_move_between_shelves(self, engine, catalog):
        engine.apply_moves([_move(catalog.product_p, catalog.shelf_a, catalog.shelf_b, 20)])

        assert engine.stock_of(catalog.product_p, catalog.shelf_a) == Decimal("80")
        assert engine.stock_of(catalog.product_p, catalog.shelf_b) == Decimal("20")

    def test_duplicate_routes_netted(self, engine, catalog):
        """Two moves of 5 and 3 behave like one move of 8."""
        applied = engine.apply_moves(
            [
                _move(catalog.product_p, catalog.shelf_a, catalog.shelf_b, 5),
                _move(catalog.product_p, catalog.shelf_a, catalog.shelf_b, 3),
            ]
        )

        assert applied == [_move(catalog.product_p, catalog.shelf_a, catalog.shelf_b, 8)]
        assert engine.stock_of(catalog.product_p, catalog.shelf_a) == Decimal("92")
        assert engine.stock_of(catalog.product_p, catalog.shelf_b) == Decimal("8")

    def test_new_row_inherits_shelf_warehouse(self, engine, session, catalog):
        engine.apply_moves([_move(catalog.product_p, catalog.shelf_a, catalog.shelf_b, 1)])

        row = _balance_row(session, catalog.product_p, catalog.shelf_b)
        assert row is not None
        assert row.warehouse_id == catalog.line

    def test_insufficient_stock_writes_nothing(self, engine, catalog):
        """A failing leg later in the batch leaves the earlier legs unwritten."""
        with pytest.raises(InsufficientStockError) as exc_info:
            engine.apply_moves(
                [
                    _move(catalog.product_p, catalog.shelf_a, catalog.shelf_b, 10),
                    _move(catalog.product_r, catalog.shelf_a, catalog.shelf_b, 60),
                ]
            )

        assert exc_info.value.product_id == catalog.product_r
        assert exc_info.value.available == Decimal("50")
        assert engine.stock_of(catalog.product_p, catalog.shelf_a) == Decimal("100")
        assert engine.stock_of(catalog.product_p, catalog.shelf_b) == Decimal("0")

    def test_empty_batch(self, engine, catalog):
        assert engine.apply_moves([]) == []

    def test_unknown_destination_shelf(self, engine, catalog):
        with pytest.raises(ShelfNotFoundError):
            engine.apply_moves([_move(catalog.product_p, catalog.shelf_a, "no-such-shelf", 1)])

    def test_rollback_restores(self, engine, catalog):
        moves = [_move(catalog.product_p, catalog.shelf_a, catalog.shelf_b, 30)]
        engine.apply_moves(moves)
        engine.rollback_moves(moves)

        assert engine.stock_of(catalog.product_p, catalog.shelf_a) == Decimal("100")
        assert engine.stock_of(catalog.product_p, catalog.shelf_b) == Decimal("0")

    def test_rollback_after_stock_left_fails(self, engine, catalog):
        """Rolling back needs the moved stock to still be on the destination."""
        moves = [_move(catalog.product_p, catalog.shelf_a, catalog.shelf_b, 30)]
        engine.apply_moves(moves)
        engine.consume_materials([_move(catalog.product_p, catalog.shelf_b, catalog.shelf_b, 25)])

        with pytest.raises(InsufficientStockError):
            engine.rollback_moves(moves)


class TestConsumption:
    """Tests for consume_materials and add_finished_goods."""

    def test_consume_from_destination_shelf(self, engine, catalog):
        deltas = engine.consume_materials(
            [_move(catalog.product_p, None, catalog.shelf_a, 40)]
        )

        assert [d.delta for d in deltas] == [Decimal("-40")]
        assert engine.stock_of(catalog.product_p, catalog.shelf_a) == Decimal("60")

    def test_consume_uses_fallback_shelf(self, engine, catalog):
        engine.consume_materials(
            [_move(catalog.product_r, catalog.shelf_a, None, 5)],
            fallback_shelf_id=catalog.shelf_a,
        )

        assert engine.stock_of(catalog.product_r, catalog.shelf_a) == Decimal("45")

    def test_consume_more_than_available(self, engine, catalog):
        with pytest.raises(InsufficientStockError):
            engine.consume_materials([_move(catalog.product_p, None, catalog.shelf_a, 101)])

        assert engine.stock_of(catalog.product_p, catalog.shelf_a) == Decimal("100")

    def test_add_finished_goods(self, engine, catalog):
        balance = engine.add_finished_goods(catalog.product_q, catalog.shelf_c, Decimal("10"))
        balance = engine.add_finished_goods(catalog.product_q, catalog.shelf_c, Decimal("2"))

        assert balance == Decimal("12")

    def test_add_zero_finished_goods_is_noop(self, engine, session, catalog):
        balance = engine.add_finished_goods(catalog.product_q, catalog.shelf_c, Decimal("0"))

        assert balance == Decimal("0")
        assert _balance_row(session, catalog.product_q, catalog.shelf_c) is None

    def test_add_negative_finished_goods(self, engine, catalog):
        with pytest.raises(InvalidMoveError):
            engine.add_finished_goods(catalog.product_q, catalog.shelf_c, Decimal("-1"))


class TestProductStockSync:
    """Tests for sync_product_stock."""

    def test_total_and_sub_stock(self, engine, session, catalog):
        engine.apply_moves([_move(catalog.product_p, catalog.shelf_a, catalog.shelf_b, 20)])
        total = engine.sync_product_stock(catalog.product_p)

        product = session.get(Product, catalog.product_p)
        assert total == Decimal("100")
        assert product.stock == Decimal("100")
        assert product.sub_stock == Decimal("1076.397")

    def test_length_sub_stock(self, engine, session, catalog):
        engine.sync_product_stock(catalog.product_r)

        assert session.get(Product, catalog.product_r).sub_stock == Decimal("5000")

    def test_no_sub_unit_means_zero_sub_stock(self, engine, session, catalog):
        engine.add_finished_goods(catalog.product_q, catalog.shelf_c, Decimal("4"))
        engine.sync_product_stock(catalog.product_q)

        product = session.get(Product, catalog.product_q)
        assert product.stock == Decimal("4")
        assert product.sub_stock == Decimal("0")

    def test_custom_sub_stock_places(self, session, catalog):
        InventoryMoveEngine(session, sub_stock_places=1).sync_product_stock(catalog.product_p)

        assert session.get(Product, catalog.product_p).sub_stock == Decimal("1076.4")

    def test_unknown_product(self, engine, catalog):
        with pytest.raises(ProductNotFoundError):
            engine.sync_product_stock("missing")

    def test_sync_is_idempotent(self, engine, session, catalog):
        engine.sync_product_stock(catalog.product_p)
        engine.sync_product_stock(catalog.product_p)

        assert session.get(Product, catalog.product_p).stock == Decimal("100")
