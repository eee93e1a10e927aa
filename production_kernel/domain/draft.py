"""
Start-production draft (``production_kernel.domain.draft``).

Responsibility
--------------
The transient state an operator builds up before starting production:
one ``StartMaterialGroup`` per (category, product) pair across the orders
being started, each with its delivery rows, shelf choices, and
confirmation flag.  The ``Draft`` is an immutable value.  The aggregator
creates it, every delivery ledger operation returns a new one, and the
caller hands it back to ``start``.  Nothing is kept between calls, so a
caller that wants a resumable draft stores ``Draft.to_dict()`` itself.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* ``DeliveryRow.delivered_qty == max(0, length * width * quantity)``.
  It is a property, so it cannot drift from its inputs.
* ``StartMaterialGroup.total_delivered_qty`` is the sum of its rows'
  delivered quantities, also a property.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Any

from production_kernel.domain.production import PieceRequirement, UnresolvedRow
from production_kernel.domain.values import (
    QUANTITY_CONTEXT,
    ZERO,
    quantity_to_str,
    quantize_quantity,
    to_decimal,
)
from production_kernel.exceptions import GroupNotFoundError


@dataclass(frozen=True)
class DeliveryRow:
    """An operator-entered delivery of material to the production line."""

    row_id: str
    name: str = ""
    length: Decimal = ZERO
    width: Decimal = ZERO
    quantity: Decimal = ZERO
    main_unit: str = ""
    sub_unit: str = ""
    piece_key: str | None = None

    @property
    def delivered_qty(self) -> Decimal:
        # INVARIANT: derived_delivery
        ctx = QUANTITY_CONTEXT
        product = ctx.multiply(ctx.multiply(self.length, self.width), self.quantity)
        return quantize_quantity(product) if product > ZERO else ZERO

    def to_dict(self) -> dict[str, Any]:
        return {
            "row_id": self.row_id,
            "name": self.name,
            "length": quantity_to_str(self.length),
            "width": quantity_to_str(self.width),
            "quantity": quantity_to_str(self.quantity),
            "main_unit": self.main_unit,
            "sub_unit": self.sub_unit,
            "piece_key": self.piece_key,
            "delivered_qty": quantity_to_str(self.delivered_qty),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> DeliveryRow:
        return cls(
            row_id=str(data["row_id"]),
            name=str(data.get("name") or ""),
            length=to_decimal(data.get("length")),
            width=to_decimal(data.get("width")),
            quantity=to_decimal(data.get("quantity")),
            main_unit=str(data.get("main_unit") or ""),
            sub_unit=str(data.get("sub_unit") or ""),
            piece_key=data.get("piece_key") or None,
        )


def _piece_to_dict(piece: PieceRequirement) -> dict[str, Any]:
    return {
        "key": piece.key,
        "index": piece.index,
        "name": piece.name,
        "length": quantity_to_str(piece.length),
        "width": quantity_to_str(piece.width),
        "quantity": quantity_to_str(piece.quantity),
        "total_quantity": quantity_to_str(piece.total_quantity),
        "main_unit": piece.main_unit,
        "sub_unit": piece.sub_unit,
        "per_item_usage": quantity_to_str(piece.per_item_usage),
        "total_usage": quantity_to_str(piece.total_usage),
        "sub_usage": quantity_to_str(piece.sub_usage),
    }


def _piece_from_dict(data: Mapping[str, Any]) -> PieceRequirement:
    return PieceRequirement(
        key=str(data["key"]),
        index=int(data.get("index") or 0),
        name=str(data.get("name") or ""),
        length=to_decimal(data.get("length")),
        width=to_decimal(data.get("width")),
        quantity=to_decimal(data.get("quantity")),
        total_quantity=to_decimal(data.get("total_quantity")),
        main_unit=str(data.get("main_unit") or ""),
        sub_unit=str(data.get("sub_unit") or ""),
        per_item_usage=to_decimal(data.get("per_item_usage")),
        total_usage=to_decimal(data.get("total_usage")),
        sub_usage=to_decimal(data.get("sub_usage")),
    )


@dataclass(frozen=True)
class OrderRequirement:
    """One order row's contribution to a material group."""

    order_id: str
    order_name: str
    order_code: str
    row_index: int
    row_key: str
    pieces: tuple[PieceRequirement, ...]

    @property
    def total_per_item_usage(self) -> Decimal:
        return sum((p.per_item_usage for p in self.pieces), ZERO)

    @property
    def total_usage(self) -> Decimal:
        return sum((p.total_usage for p in self.pieces), ZERO)

    def to_dict(self) -> dict[str, Any]:
        return {
            "order_id": self.order_id,
            "order_name": self.order_name,
            "order_code": self.order_code,
            "row_index": self.row_index,
            "row_key": self.row_key,
            "pieces": [_piece_to_dict(p) for p in self.pieces],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> OrderRequirement:
        return cls(
            order_id=str(data["order_id"]),
            order_name=str(data.get("order_name") or ""),
            order_code=str(data.get("order_code") or ""),
            row_index=int(data["row_index"]),
            row_key=str(data["row_key"]),
            pieces=tuple(_piece_from_dict(p) for p in data.get("pieces") or ()),
        )


@dataclass(frozen=True)
class StartMaterialGroup:
    """
    All demand for one (category, product) pair across the orders being started.

    Contract:
        Frozen.  ``key`` is ``"{category}::{product_id}"``.  ``pieces`` is
        the concatenation of every contributing requirement's pieces, in
        order.  ``order_requirements`` keeps the per-order breakdown needed
        to split the pooled delivery back.
    """

    key: str
    category: str
    category_label: str
    product_id: str
    product_name: str
    product_code: str
    pieces: tuple[PieceRequirement, ...] = ()
    order_requirements: tuple[OrderRequirement, ...] = ()
    source_shelf_id: str | None = None
    production_shelf_id: str | None = None
    delivery_rows: tuple[DeliveryRow, ...] = ()
    is_confirmed: bool = False

    @property
    def total_delivered_qty(self) -> Decimal:
        return sum((r.delivered_qty for r in self.delivery_rows), ZERO)

    @property
    def total_per_item_usage(self) -> Decimal:
        return sum((p.per_item_usage for p in self.pieces), ZERO)

    @property
    def total_usage(self) -> Decimal:
        return sum((p.total_usage for p in self.pieces), ZERO)

    @property
    def order_ids(self) -> tuple[str, ...]:
        seen: dict[str, None] = {}
        for req in self.order_requirements:
            seen.setdefault(req.order_id, None)
        return tuple(seen)

    def row(self, row_id: str) -> DeliveryRow | None:
        for r in self.delivery_rows:
            if r.row_id == row_id:
                return r
        return None

    def evolve(self, **changes: Any) -> StartMaterialGroup:
        """Copy with ``changes`` applied.  Any change drops confirmation."""
        changes.setdefault("is_confirmed", False)
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "category": self.category,
            "category_label": self.category_label,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "product_code": self.product_code,
            "pieces": [_piece_to_dict(p) for p in self.pieces],
            "order_requirements": [r.to_dict() for r in self.order_requirements],
            "source_shelf_id": self.source_shelf_id,
            "production_shelf_id": self.production_shelf_id,
            "delivery_rows": [r.to_dict() for r in self.delivery_rows],
            "total_delivered_qty": quantity_to_str(self.total_delivered_qty),
            "is_confirmed": self.is_confirmed,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> StartMaterialGroup:
        return cls(
            key=str(data["key"]),
            category=str(data.get("category") or ""),
            category_label=str(data.get("category_label") or ""),
            product_id=str(data["product_id"]),
            product_name=str(data.get("product_name") or ""),
            product_code=str(data.get("product_code") or ""),
            pieces=tuple(_piece_from_dict(p) for p in data.get("pieces") or ()),
            order_requirements=tuple(
                OrderRequirement.from_dict(r)
                for r in data.get("order_requirements") or ()
            ),
            source_shelf_id=data.get("source_shelf_id") or None,
            production_shelf_id=data.get("production_shelf_id") or None,
            delivery_rows=tuple(
                DeliveryRow.from_dict(r) for r in data.get("delivery_rows") or ()
            ),
            is_confirmed=bool(data.get("is_confirmed", False)),
        )


@dataclass(frozen=True)
class Draft:
    """
    Immutable start-production draft.

    ``unresolved_rows`` lists requirement rows that were left out of
    grouping because no product could be resolved; callers warn on them.
    """

    groups: tuple[StartMaterialGroup, ...] = ()
    unresolved_rows: tuple[UnresolvedRow, ...] = field(default=())

    def group(self, key: str) -> StartMaterialGroup:
        for g in self.groups:
            if g.key == key:
                return g
        raise GroupNotFoundError(key)

    def with_group(self, group: StartMaterialGroup) -> Draft:
        """Return a draft with the same-keyed group replaced."""
        self.group(group.key)
        return replace(
            self,
            groups=tuple(group if g.key == group.key else g for g in self.groups),
        )

    @property
    def confirmed_groups(self) -> tuple[StartMaterialGroup, ...]:
        return tuple(g for g in self.groups if g.is_confirmed)

    @property
    def order_ids(self) -> tuple[str, ...]:
        seen: dict[str, None] = {}
        for g in self.groups:
            for order_id in g.order_ids:
                seen.setdefault(order_id, None)
        return tuple(seen)

    def to_dict(self) -> dict[str, Any]:
        return {
            "groups": [g.to_dict() for g in self.groups],
            "unresolved_rows": [r.to_dict() for r in self.unresolved_rows],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Draft:
        return cls(
            groups=tuple(
                StartMaterialGroup.from_dict(g) for g in data.get("groups") or ()
            ),
            unresolved_rows=tuple(
                UnresolvedRow.from_dict(r) for r in data.get("unresolved_rows") or ()
            ),
        )
