"""
Module: production_kernel.models.stock_transfer
Responsibility: Append-only audit rows for every stock change the production
    lifecycle makes (start, rollback, consumption, output).
Architecture position: Kernel > Models.

Audit relevance:
    Shelf stock only holds balances; these rows explain how each balance
    moved and which production order moved it.
"""

from decimal import Decimal

from sqlalchemy import ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from production_kernel.db.base import TrackedBase


class StockTransferModel(TrackedBase):
    """One recorded stock transfer; either shelf may be null for pure in/out."""

    __tablename__ = "stock_transfers"

    __table_args__ = (
        Index("idx_stock_transfer_order", "production_order_id"),
        Index("idx_stock_transfer_product", "product_id"),
    )

    transfer_type: Mapped[str] = mapped_column(String(40), nullable=False)
    product_id: Mapped[str] = mapped_column(ForeignKey("products.id"), nullable=False)
    from_shelf_id: Mapped[str | None] = mapped_column(
        ForeignKey("shelves.id"), nullable=True
    )
    to_shelf_id: Mapped[str | None] = mapped_column(
        ForeignKey("shelves.id"), nullable=True
    )
    quantity: Mapped[Decimal] = mapped_column(nullable=False)
    production_order_id: Mapped[str | None] = mapped_column(
        ForeignKey("production_orders.id"), nullable=True
    )

    def __repr__(self) -> str:
        return (
            f"<StockTransfer {self.transfer_type} product={self.product_id} "
            f"{self.from_shelf_id}->{self.to_shelf_id} qty={self.quantity}>"
        )
