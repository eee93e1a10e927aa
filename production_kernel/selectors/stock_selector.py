"""
Shelf stock query selector.

Point and per-product reads of shelf_stock balances.  Missing rows read
as zero stock.
"""

from decimal import Decimal

from sqlalchemy import select

from production_kernel.models.shelf_stock import ShelfStock
from production_kernel.selectors.base import BaseSelector


class StockSelector(BaseSelector):
    """Read-only shelf stock balances."""

    def stock_of(self, product_id: str, shelf_id: str) -> Decimal:
        value = self.session.scalar(
            select(ShelfStock.stock).where(
                ShelfStock.product_id == product_id,
                ShelfStock.shelf_id == shelf_id,
            )
        )
        return value if value is not None else Decimal("0")

    def stock_by_shelf(self, product_id: str) -> dict[str, Decimal]:
        rows = self.session.execute(
            select(ShelfStock.shelf_id, ShelfStock.stock).where(
                ShelfStock.product_id == product_id
            )
        )
        return {shelf_id: stock for shelf_id, stock in rows}

    def total_stock(self, product_id: str) -> Decimal:
        """Sum of the product's balances across all shelves."""
        return sum(self.stock_by_shelf(product_id).values(), Decimal("0"))
