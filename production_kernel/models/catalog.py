"""
Module: production_kernel.models.catalog
Responsibility: Catalog tables the production core reads from and keeps
    cached totals on: warehouses, shelves, categories, and products.
Architecture position: Kernel > Models.  Inherits from TrackedBase.
    Catalog CRUD belongs to the host application; the core only reads these
    rows, except Product.stock / Product.sub_stock which it recomputes.

Invariants enforced:
    - Product.stock is a cache of the sum of the product's shelf_stock rows;
      it is only ever written by InventoryMoveEngine.sync_product_stock.
    - Shelf.warehouse_id is inherited by every shelf_stock row created on
      the shelf.
"""

from decimal import Decimal

from sqlalchemy import Boolean, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from production_kernel.db.base import TrackedBase
from production_kernel.domain.production import ProductMeta


class Warehouse(TrackedBase):
    """
    A warehouse holding shelves.

    ``is_production`` marks production-line warehouses; their shelves are
    offered as production shelves and never as material sources.
    """

    __tablename__ = "warehouses"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    is_production: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    shelves: Mapped[list["Shelf"]] = relationship(back_populates="warehouse")

    def __repr__(self) -> str:
        return f"<Warehouse {self.name} production={self.is_production}>"


class Shelf(TrackedBase):
    """A storage location within a warehouse."""

    __tablename__ = "shelves"

    __table_args__ = (
        Index("idx_shelf_warehouse", "warehouse_id"),
    )

    code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    warehouse_id: Mapped[str | None] = mapped_column(
        ForeignKey("warehouses.id"), nullable=True
    )

    warehouse: Mapped[Warehouse | None] = relationship(back_populates="shelves")

    def __repr__(self) -> str:
        return f"<Shelf {self.code or self.name}>"


class Category(TrackedBase):
    """A material category; ``value`` is what requirement rows reference."""

    __tablename__ = "categories"

    value: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    label: Mapped[str] = mapped_column(String(200), nullable=False)


class Product(TrackedBase):
    """
    A stocked product.

    ``stock`` and ``sub_stock`` are cached figures: stock is the total across
    shelves in ``main_unit``; sub_stock is that total converted to
    ``sub_unit`` (0 when either unit is missing or incompatible).
    """

    __tablename__ = "products"

    __table_args__ = (
        Index("idx_product_code", "code"),
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    main_unit: Mapped[str | None] = mapped_column(String(20), nullable=True)
    sub_unit: Mapped[str | None] = mapped_column(String(20), nullable=True)
    stock: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    sub_stock: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)

    def to_meta(self) -> ProductMeta:
        return ProductMeta(
            id=self.id,
            name=self.name,
            code=self.code or "",
            main_unit=self.main_unit,
            sub_unit=self.sub_unit,
        )

    def __repr__(self) -> str:
        return f"<Product {self.code or self.name} stock={self.stock}>"
