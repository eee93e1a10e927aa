"""
production_services.inventory_moves -- Shelf stock movement with plan-then-write batching.

Responsibility:
    Apply, roll back and consume inventory moves against the shelf_stock
    table, add finished goods, and keep each product's cached stock and
    sub_stock figures in step with its shelf balances.

Architecture position:
    Services -- stateful orchestration over engines + kernel.
    Uses the pure move algebra in production_engines.moves for netting,
    delta planning and simulation; this module only loads and writes rows.

Invariants enforced:
    - Non-negative stock: every batch is simulated in full against
      row-locked balances before any row is written.  A batch that would
      take any balance below zero raises InsufficientStockError and writes
      nothing.
    - Netting: moves are grouped by (product, from, to) before planning, so
      duplicate routes behave exactly like one summed move.
    - New shelf_stock rows inherit the shelf's warehouse id.

Failure modes:
    - InsufficientStockError when a planned leg would go below zero.
    - InvalidMoveError for a negative quantity or a missing id.
    - ShelfNotFoundError when a row must be created on an unknown shelf.
    - ProductNotFoundError from sync_product_stock.
    - SQLAlchemyError (e.g. IntegrityError on a concurrent insert of the
      same (product, shelf) pair) propagates unchanged.

Transaction boundary:
    Never commits.  Writes are flushed into the caller's transaction; the
    lifecycle controller commits or rolls back.

Usage:
    engine = InventoryMoveEngine(session)
    engine.apply_moves([InventoryMove("p1", "shelf-a", "shelf-b", Decimal("8"))])
    engine.sync_product_stock("p1")
    session.commit()
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from production_engines.moves import (
    consumption_deltas,
    net_moves,
    reverse_moves,
    simulate_deltas,
    transfer_deltas,
)
from production_engines.units import convert_quantity
from production_kernel.domain.values import ZERO, InventoryMove, StockDelta
from production_kernel.exceptions import (
    InvalidMoveError,
    ProductNotFoundError,
    ShelfNotFoundError,
)
from production_kernel.logging_config import get_logger
from production_kernel.models.catalog import Product, Shelf
from production_kernel.models.shelf_stock import ShelfStock
from production_kernel.selectors.stock_selector import StockSelector

logger = get_logger("services.inventory_moves")

StockKey = tuple[str, str]


class InventoryMoveEngine:
    """
    Writes stock movements to shelf_stock.

    Contract:
        Receives a Session via constructor injection and only ever flushes.
    Guarantees:
        - ``apply_moves`` / ``rollback_moves`` / ``consume_materials`` /
          ``add_finished_goods`` either write their whole plan or raise
          before writing anything.
        - ``sync_product_stock`` is idempotent.
    Non-goals:
        - Does not record stock transfer audit rows; the lifecycle
          controller knows which order a movement belongs to.
    """

    def __init__(
        self,
        session: Session,
        sub_stock_places: int = 3,
    ):
        self._session = session
        self._sub_stock_places = sub_stock_places
        self._stock = StockSelector(session)

    # ------------------------------------------------------------------
    # Movements
    # ------------------------------------------------------------------

    def apply_moves(self, moves: Iterable[InventoryMove]) -> list[InventoryMove]:
        """Apply moves; returns the netted moves that were applied.

        Raises:
            InsufficientStockError: some source shelf lacks the stock.
            InvalidMoveError: a move is malformed.
        """
        netted = net_moves(moves)
        if not netted:
            return []
        self._execute(transfer_deltas(netted), event="inventory_moves_applied")
        return netted

    def rollback_moves(self, moves: Iterable[InventoryMove]) -> list[InventoryMove]:
        """Undo previously applied moves by applying them in reverse."""
        return self.apply_moves(reverse_moves(moves))

    def consume_materials(
        self,
        moves: Iterable[InventoryMove],
        fallback_shelf_id: str | None = None,
    ) -> list[StockDelta]:
        """Decrement stock where materials sit: ``to_shelf_id`` or the fallback.

        Returns the consumption deltas that were written (negative).
        """
        deltas = consumption_deltas(moves, fallback_shelf_id)
        if not deltas:
            return []
        self._execute(deltas, event="inventory_materials_consumed")
        return deltas

    def add_finished_goods(
        self, product_id: str, shelf_id: str, quantity: Decimal
    ) -> Decimal:
        """Increment ``product_id`` on ``shelf_id``; returns the new balance."""
        if not product_id or not shelf_id:
            raise InvalidMoveError("finished goods need a product and a shelf", product_id)
        if quantity < ZERO:
            raise InvalidMoveError(f"negative quantity {quantity}", product_id)
        if quantity == ZERO:
            return self.stock_of(product_id, shelf_id)
        final = self._execute(
            [StockDelta(product_id, shelf_id, quantity)],
            event="inventory_finished_goods_added",
        )
        return final[(product_id, shelf_id)]

    # ------------------------------------------------------------------
    # Product totals
    # ------------------------------------------------------------------

    def sync_product_stock(self, product_id: str) -> Decimal:
        """Recompute Product.stock and Product.sub_stock from shelf balances."""
        product = self._session.get(Product, product_id)
        if product is None:
            raise ProductNotFoundError(product_id)

        total = self._stock.total_stock(product_id)
        if product.main_unit and product.sub_unit:
            sub_total = convert_quantity(
                total, product.main_unit, product.sub_unit, self._sub_stock_places
            )
        else:
            sub_total = ZERO

        product.stock = total
        product.sub_stock = sub_total
        self._session.flush()

        logger.debug(
            "product_stock_synced",
            extra={
                "product_id": product_id,
                "stock": str(total),
                "sub_stock": str(sub_total),
            },
        )
        return total

    def sync_products(self, product_ids: Iterable[str]) -> None:
        for product_id in dict.fromkeys(pid for pid in product_ids if pid):
            self.sync_product_stock(product_id)

    def stock_of(self, product_id: str, shelf_id: str) -> Decimal:
        return self._stock.stock_of(product_id, shelf_id)

    # ------------------------------------------------------------------
    # Plan-then-write
    # ------------------------------------------------------------------

    def _execute(self, deltas: Sequence[StockDelta], event: str) -> dict[StockKey, Decimal]:
        keys = list(dict.fromkeys(d.stock_key for d in deltas))
        rows = self._lock_rows(keys)
        balances = {key: row.stock for key, row in rows.items()}

        # Raises before anything below writes.
        final = simulate_deltas(deltas, balances)

        missing = [key for key in final if key not in rows]
        warehouses = self._warehouses_for({shelf_id for _, shelf_id in missing})

        for key, value in final.items():
            row = rows.get(key)
            if row is None:
                product_id, shelf_id = key
                self._session.add(
                    ShelfStock(
                        product_id=product_id,
                        shelf_id=shelf_id,
                        warehouse_id=warehouses[shelf_id],
                        stock=value,
                    )
                )
            else:
                row.stock = value
        self._session.flush()

        logger.info(
            event,
            extra={
                "delta_count": len(deltas),
                "rows_created": len(missing),
                "balances": {f"{p}@{s}": str(v) for (p, s), v in final.items()},
            },
        )
        return final

    def _lock_rows(self, keys: Sequence[StockKey]) -> dict[StockKey, ShelfStock]:
        if not keys:
            return {}
        wanted = set(keys)
        stmt = (
            select(ShelfStock)
            .where(
                ShelfStock.product_id.in_(sorted({p for p, _ in keys})),
                ShelfStock.shelf_id.in_(sorted({s for _, s in keys})),
            )
            # Stable lock order across concurrent batches.
            .order_by(ShelfStock.product_id, ShelfStock.shelf_id)
            .with_for_update()
        )
        rows: dict[StockKey, ShelfStock] = {}
        for row in self._session.scalars(stmt):
            key = (row.product_id, row.shelf_id)
            if key in wanted:
                rows[key] = row
        return rows

    def _warehouses_for(self, shelf_ids: set[str]) -> dict[str, str | None]:
        if not shelf_ids:
            return {}
        found = {
            shelf.id: shelf.warehouse_id
            for shelf in self._session.scalars(select(Shelf).where(Shelf.id.in_(sorted(shelf_ids))))
        }
        for shelf_id in shelf_ids:
            if shelf_id not in found:
                raise ShelfNotFoundError(shelf_id)
        return found
