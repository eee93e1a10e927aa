"""Read-only selectors over catalog and stock tables."""

from production_kernel.selectors.base import BaseSelector
from production_kernel.selectors.catalog_selector import CatalogSelector, ShelfOption
from production_kernel.selectors.stock_selector import StockSelector

__all__ = [
    "BaseSelector",
    "CatalogSelector",
    "ShelfOption",
    "StockSelector",
]
