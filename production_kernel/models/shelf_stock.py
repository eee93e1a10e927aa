"""
Module: production_kernel.models.shelf_stock
Responsibility: Per-(product, shelf) stock balances.
Architecture position: Kernel > Models.

Invariants enforced:
    - stock >= 0, checked in the database as well as by the move planner.
    - One row per (product_id, shelf_id); a concurrent insert of the same
      pair fails with IntegrityError instead of double-creating.

Failure modes:
    - IntegrityError on a duplicate (product_id, shelf_id) or negative stock.
"""

from decimal import Decimal

from sqlalchemy import CheckConstraint, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from production_kernel.db.base import TrackedBase


class ShelfStock(TrackedBase):
    """Stock of one product on one shelf."""

    __tablename__ = "shelf_stock"

    __table_args__ = (
        UniqueConstraint("product_id", "shelf_id", name="uq_shelf_stock_product_shelf"),
        CheckConstraint("stock >= 0", name="ck_shelf_stock_non_negative"),
        Index("idx_shelf_stock_shelf", "shelf_id"),
    )

    product_id: Mapped[str] = mapped_column(ForeignKey("products.id"), nullable=False)
    shelf_id: Mapped[str] = mapped_column(ForeignKey("shelves.id"), nullable=False)
    warehouse_id: Mapped[str | None] = mapped_column(
        ForeignKey("warehouses.id"), nullable=True
    )
    stock: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)

    def __repr__(self) -> str:
        return f"<ShelfStock product={self.product_id} shelf={self.shelf_id} stock={self.stock}>"
