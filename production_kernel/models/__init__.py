"""ORM models.  Importing this package registers every table on Base.metadata."""

from production_kernel.models.catalog import Category, Product, Shelf, Warehouse
from production_kernel.models.production_order import (
    ProductionGroupOrderModel,
    ProductionOrderModel,
)
from production_kernel.models.shelf_stock import ShelfStock
from production_kernel.models.stock_transfer import StockTransferModel

__all__ = [
    "Category",
    "Product",
    "Shelf",
    "Warehouse",
    "ProductionGroupOrderModel",
    "ProductionOrderModel",
    "ShelfStock",
    "StockTransferModel",
]
