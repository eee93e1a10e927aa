"""
Catalog query selector.

Read-only lookups the production core needs from the catalog: product
metadata, category labels, and the shelf option lists an operator picks
source and production shelves from.

A shelf belongs to a production warehouse when its warehouse is flagged
``is_production`` or its warehouse name contains one of the configured
production markers (case-insensitive).  Production shelves are never
offered as material sources.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import select

from production_kernel.domain.production import ProductMeta
from production_kernel.models.catalog import Category, Product, Shelf, Warehouse
from production_kernel.models.shelf_stock import ShelfStock
from production_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class ShelfOption:
    """A shelf an operator can pick, with stock when listed for a product."""

    shelf_id: str
    code: str
    name: str
    warehouse_id: str | None
    warehouse_name: str
    stock: Decimal | None = None


class CatalogSelector(BaseSelector):
    """Products, categories, and shelves."""

    def __init__(self, session, production_markers: Sequence[str] = ("production",)):
        super().__init__(session)
        self._production_markers = tuple(m.lower() for m in production_markers if m)

    def product_meta(self, product_ids: Iterable[str] | None = None) -> dict[str, ProductMeta]:
        """Map product id to ProductMeta; all products when ids is None."""
        stmt = select(Product)
        if product_ids is not None:
            ids = {pid for pid in product_ids if pid}
            if not ids:
                return {}
            stmt = stmt.where(Product.id.in_(ids))
        return {p.id: p.to_meta() for p in self.session.scalars(stmt)}

    def product(self, product_id: str) -> ProductMeta | None:
        product = self.session.get(Product, product_id)
        return product.to_meta() if product is not None else None

    def category_labels(self) -> dict[str, str]:
        """Map category value to display label."""
        rows = self.session.execute(select(Category.value, Category.label))
        return {value: label for value, label in rows}

    def shelf(self, shelf_id: str) -> ShelfOption | None:
        row = self.session.execute(
            select(Shelf, Warehouse)
            .outerjoin(Warehouse, Shelf.warehouse_id == Warehouse.id)
            .where(Shelf.id == shelf_id)
        ).first()
        if row is None:
            return None
        shelf, warehouse = row
        return self._option(shelf, warehouse)

    def is_production_warehouse(self, warehouse: Warehouse | None) -> bool:
        if warehouse is None:
            return False
        if warehouse.is_production:
            return True
        name = (warehouse.name or "").lower()
        return any(marker in name for marker in self._production_markers)

    def production_shelf_options(self) -> list[ShelfOption]:
        """Shelves of production warehouses, or every shelf when none are marked."""
        rows = self.session.execute(
            select(Shelf, Warehouse)
            .outerjoin(Warehouse, Shelf.warehouse_id == Warehouse.id)
            .order_by(Shelf.name)
        ).all()
        production = [
            self._option(shelf, warehouse)
            for shelf, warehouse in rows
            if self.is_production_warehouse(warehouse)
        ]
        if production:
            return production
        return [self._option(shelf, warehouse) for shelf, warehouse in rows]

    def source_shelf_options(
        self, product_ids: Iterable[str]
    ) -> dict[str, list[ShelfOption]]:
        """Per product, shelves holding stock > 0 outside production warehouses."""
        ids = {pid for pid in product_ids if pid}
        options: dict[str, list[ShelfOption]] = {pid: [] for pid in ids}
        if not ids:
            return options
        rows = self.session.execute(
            select(ShelfStock, Shelf, Warehouse)
            .join(Shelf, ShelfStock.shelf_id == Shelf.id)
            .outerjoin(Warehouse, Shelf.warehouse_id == Warehouse.id)
            .where(ShelfStock.product_id.in_(ids), ShelfStock.stock > 0)
            .order_by(Shelf.name)
        ).all()
        for stock_row, shelf, warehouse in rows:
            if self.is_production_warehouse(warehouse):
                continue
            options[stock_row.product_id].append(
                self._option(shelf, warehouse, stock_row.stock)
            )
        return options

    @staticmethod
    def _option(
        shelf: Shelf, warehouse: Warehouse | None, stock: Decimal | None = None
    ) -> ShelfOption:
        return ShelfOption(
            shelf_id=shelf.id,
            code=shelf.code or "",
            name=shelf.name,
            warehouse_id=shelf.warehouse_id,
            warehouse_name=warehouse.name if warehouse is not None else "",
            stock=stock,
        )
