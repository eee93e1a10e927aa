"""
Production order domain types (``production_kernel.domain.production``).

Responsibility
--------------
Strict, immutable views of production orders and their bill-of-materials
requirement rows.  Raw requirement rows are JSON documents written by an
external BOM editor; they are normalized into these types exactly once,
by the requirement aggregator, and nothing downstream reads raw row keys.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any

from production_kernel.domain.values import ZERO


class OrderStatus(str, Enum):
    """Production order lifecycle status."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class StockTransferType(str, Enum):
    """Reason recorded on each stock transfer audit row."""

    PRODUCTION_START = "production_start"
    PRODUCTION_ROLLBACK = "production_rollback"
    PRODUCTION_CONSUMPTION = "production_consumption"
    PRODUCTION_OUTPUT = "production_output"


@dataclass(frozen=True)
class ProductMeta:
    """Catalog facts about a product needed for grouping and unit conversion."""

    id: str
    name: str
    code: str = ""
    main_unit: str | None = None
    sub_unit: str | None = None


@dataclass(frozen=True)
class PieceRequirement:
    """One piece of a requirement row, scaled by the order quantity.

    ``index`` is the piece's position in the row's persisted ``pieces``
    list, used to write delivered quantities back.
    """

    key: str
    index: int
    name: str
    length: Decimal
    width: Decimal
    quantity: Decimal
    total_quantity: Decimal
    main_unit: str
    sub_unit: str
    per_item_usage: Decimal
    total_usage: Decimal
    sub_usage: Decimal = ZERO


@dataclass(frozen=True)
class MaterialRequirementRow:
    """A normalized bill-of-materials row with a resolved product."""

    order_id: str
    row_index: int
    row_key: str
    category: str
    selected_product_id: str
    selected_product_name: str
    selected_product_code: str
    source_shelf_id: str | None
    production_shelf_id: str | None
    pieces: tuple[PieceRequirement, ...]

    @property
    def total_per_item_usage(self) -> Decimal:
        return sum((p.per_item_usage for p in self.pieces), ZERO)

    @property
    def total_usage(self) -> Decimal:
        return sum((p.total_usage for p in self.pieces), ZERO)


@dataclass(frozen=True)
class UnresolvedRow:
    """A requirement row excluded from grouping for lack of a product."""

    order_id: str
    row_index: int
    row_key: str
    category: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "order_id": self.order_id,
            "row_index": self.row_index,
            "row_key": self.row_key,
            "category": self.category,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> UnresolvedRow:
        return cls(
            order_id=str(data["order_id"]),
            row_index=int(data["row_index"]),
            row_key=str(data["row_key"]),
            category=str(data.get("category") or ""),
        )


@dataclass(frozen=True)
class OrderMaterialSource:
    """What the aggregator needs to know about one production order."""

    order_id: str
    name: str
    code: str
    quantity: Decimal
    rows: tuple[Mapping[str, Any], ...] = field(default=())
