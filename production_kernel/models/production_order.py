"""
Module: production_kernel.models.production_order
Responsibility: Persistence for production orders and the group orders that
    start several of them together.
Architecture position: Kernel > Models.  Inherits from TrackedBase.

Invariants enforced:
    - status is one of OrderStatus; changes go through the lifecycle
      controller, which checks them against PRODUCTION_ORDER_WORKFLOW.
    - material_requirement_rows is a JSON list owned by an external BOM
      editor.  The core only writes the start annotations onto it
      (row: selected_shelf_id, production_shelf_id, delivered_total_qty,
      delivery_rows; piece: delivered_qty) and removes them on stop.
    - production_moves holds the applied start moves as JSON, quantities as
      decimal strings.  JSON columns are always reassigned, never mutated
      in place, so the ORM sees every change.
"""

from collections.abc import Mapping
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import JSON, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from production_kernel.db.base import TrackedBase
from production_kernel.domain.production import OrderMaterialSource, OrderStatus
from production_kernel.domain.values import InventoryMove


class ProductionGroupOrderModel(TrackedBase):
    """
    A batch of production orders started together.

    Its status is derived from its member orders after every transition.
    """

    __tablename__ = "production_group_orders"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), default=OrderStatus.PENDING.value, nullable=False
    )
    started_at: Mapped[datetime | None] = mapped_column(nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return f"<ProductionGroupOrder {self.name} status={self.status}>"


class ProductionOrderModel(TrackedBase):
    """ORM model for a production order."""

    __tablename__ = "production_orders"

    __table_args__ = (
        Index("idx_production_order_status", "status"),
        Index("idx_production_order_group", "group_order_id"),
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), default=OrderStatus.PENDING.value, nullable=False
    )
    quantity: Mapped[Decimal] = mapped_column(default=Decimal("1"), nullable=False)

    material_requirement_rows: Mapped[list[dict[str, Any]] | None] = mapped_column(
        JSON, nullable=True
    )
    production_shelf_id: Mapped[str | None] = mapped_column(
        ForeignKey("shelves.id"), nullable=True
    )
    production_moves: Mapped[list[dict[str, Any]] | None] = mapped_column(
        JSON, nullable=True
    )
    # Final-stage hand-off record:
    # {"target_shelf_id": ..., "groups": [{"selected_product_id": ...,
    #   "pieces": [{"handover_qty": ...}, ...]}, ...]}
    production_handover: Mapped[dict[str, Any] | None] = mapped_column(
        JSON, nullable=True
    )

    started_at: Mapped[datetime | None] = mapped_column(nullable=True)
    stopped_at: Mapped[datetime | None] = mapped_column(nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    output_product_id: Mapped[str | None] = mapped_column(
        ForeignKey("products.id"), nullable=True
    )
    output_shelf_id: Mapped[str | None] = mapped_column(
        ForeignKey("shelves.id"), nullable=True
    )
    output_quantity: Mapped[Decimal | None] = mapped_column(nullable=True)

    group_order_id: Mapped[str | None] = mapped_column(
        ForeignKey("production_group_orders.id"), nullable=True
    )

    @property
    def order_status(self) -> OrderStatus:
        return OrderStatus(self.status)

    def requirement_rows(self) -> list[Any]:
        """Stored requirement rows, every entry kept so indices stay stable."""
        rows = self.material_requirement_rows
        if not isinstance(rows, list):
            return []
        return list(rows)

    def stored_moves(self) -> list[InventoryMove]:
        """Applied start moves, parsed from production_moves."""
        raw = self.production_moves
        if not isinstance(raw, list):
            return []
        return [InventoryMove.from_dict(m) for m in raw if isinstance(m, Mapping)]

    def to_material_source(self) -> OrderMaterialSource:
        return OrderMaterialSource(
            order_id=self.id,
            name=self.name,
            code=self.code or "",
            quantity=self.quantity,
            rows=tuple(self.requirement_rows()),
        )

    def __repr__(self) -> str:
        return f"<ProductionOrder {self.name} status={self.status}>"
