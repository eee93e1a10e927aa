"""
Module: production_engines.aggregation
Responsibility:
    Build the cross-order start draft: one StartMaterialGroup per distinct
    (category, selected product) pair across the orders being started,
    with merged pieces and a per-order breakdown so a pooled delivery can
    later be split back.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  This is the ONLY place
    raw bill-of-materials rows are read; everything downstream sees the
    strict types from production_kernel.domain.production.

Invariants enforced:
    - Groups and requirements appear in first-seen order (orders in the
      order given, rows in row order).  The allocation splitter relies on
      that order never being re-sorted.
    - Order quantity defaults to 1 and is clamped to >= 1.
    - per_item_usage = explicit value if > 0, else total_usage / quantity;
      total_usage = raw total if > 0, else per_item_usage x quantity.

Failure modes:
    - None.  Rows whose product cannot be resolved are reported in
      Draft.unresolved_rows, not raised.

Raw row keys understood (first non-empty wins):
    product       header.selected_product_id, selected_product_id,
                  product_id, then the first piece carrying either id
    category      header.category, category
    source shelf  selected_shelf_id, source_shelf_id
    pieces        pieces (the row itself when absent or empty)
    per item      final_usage, per_item_usage
    total         total_usage
    sub usage     qty_sub, sub_usage (per item)
    units         piece main_unit / sub_unit, then header.main_unit /
                  header.sub_unit
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from production_engines.tracer import traced_engine
from production_kernel.domain.draft import Draft, OrderRequirement, StartMaterialGroup
from production_kernel.domain.production import (
    MaterialRequirementRow,
    OrderMaterialSource,
    PieceRequirement,
    ProductMeta,
    UnresolvedRow,
)
from production_kernel.domain.values import ZERO, quantize_quantity, to_decimal
from production_kernel.logging_config import get_logger

logger = get_logger("engines.aggregation")

UNCATEGORIZED_LABEL = "uncategorized"


def _first(*values: Any) -> Any:
    for value in values:
        if value not in (None, ""):
            return value
    return None


def _mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def order_quantity(raw: Any) -> Decimal:
    """Order quantity; missing, zero or negative values default to 1."""
    qty = to_decimal(raw)
    return qty if qty > ZERO else Decimal("1")


def _row_pieces(row: Mapping[str, Any]) -> list[Mapping[str, Any]]:
    pieces = row.get("pieces")
    if isinstance(pieces, list) and pieces:
        return [_mapping(p) for p in pieces]
    return [row]


def _resolve_product_id(row: Mapping[str, Any]) -> str | None:
    header = _mapping(row.get("header"))
    product_id = _first(
        header.get("selected_product_id"),
        row.get("selected_product_id"),
        row.get("product_id"),
    )
    if product_id is None:
        pieces = row.get("pieces") if isinstance(row.get("pieces"), list) else []
        for piece in map(_mapping, pieces):
            product_id = _first(piece.get("selected_product_id"), piece.get("product_id"))
            if product_id is not None:
                break
    return str(product_id) if product_id is not None else None


def _normalize_piece(
    piece: Mapping[str, Any],
    header: Mapping[str, Any],
    order_id: str,
    row_index: int,
    piece_index: int,
    qty: Decimal,
) -> PieceRequirement:
    total_raw = to_decimal(piece.get("total_usage"))
    per_item_raw = to_decimal(_first(piece.get("final_usage"), piece.get("per_item_usage")))
    if per_item_raw > ZERO:
        per_item = per_item_raw
    elif total_raw > ZERO:
        per_item = quantize_quantity(total_raw / max(Decimal("1"), qty))
    else:
        per_item = ZERO
    total = total_raw if total_raw > ZERO else per_item * qty

    sub_per_item = to_decimal(_first(piece.get("qty_sub"), piece.get("sub_usage")))
    sub_usage = sub_per_item * qty if sub_per_item > ZERO else ZERO

    quantity = to_decimal(piece.get("quantity"))
    if quantity == ZERO:
        quantity = Decimal("1")

    raw_key = _first(piece.get("key")) or "piece"
    return PieceRequirement(
        key=f"{order_id}_{row_index}_{piece_index}_{raw_key}",
        index=piece_index,
        name=str(_first(piece.get("name")) or f"piece {piece_index + 1}"),
        length=to_decimal(piece.get("length")),
        width=to_decimal(piece.get("width")),
        quantity=quantity,
        total_quantity=quantity * qty,
        main_unit=str(_first(piece.get("main_unit"), header.get("main_unit")) or ""),
        sub_unit=str(_first(piece.get("sub_unit"), header.get("sub_unit")) or ""),
        per_item_usage=per_item,
        total_usage=total,
        sub_usage=sub_usage,
    )


def normalize_requirement_rows(
    order: OrderMaterialSource,
    products: Mapping[str, ProductMeta] | None = None,
) -> tuple[list[MaterialRequirementRow], list[UnresolvedRow]]:
    """Normalize one order's raw requirement rows.

    Returns the rows with a resolvable product and, separately, the rows
    without one.
    """
    products = products or {}
    qty = order_quantity(order.quantity)
    resolved: list[MaterialRequirementRow] = []
    unresolved: list[UnresolvedRow] = []

    for row_index, raw in enumerate(order.rows):
        if not isinstance(raw, Mapping):
            continue
        row = raw
        header = _mapping(row.get("header"))
        category = str(_first(header.get("category"), row.get("category")) or "")
        row_key = f"{_first(row.get('key')) or 'group'}_{row_index}"
        product_id = _resolve_product_id(row)

        if product_id is None:
            unresolved.append(
                UnresolvedRow(
                    order_id=order.order_id,
                    row_index=row_index,
                    row_key=row_key,
                    category=category,
                )
            )
            continue

        meta = products.get(product_id)
        pieces = tuple(
            _normalize_piece(piece, header, order.order_id, row_index, piece_index, qty)
            for piece_index, piece in enumerate(_row_pieces(row))
        )
        resolved.append(
            MaterialRequirementRow(
                order_id=order.order_id,
                row_index=row_index,
                row_key=row_key,
                category=category,
                selected_product_id=product_id,
                selected_product_name=str(
                    _first(
                        header.get("selected_product_name"),
                        row.get("selected_product_name"),
                        row.get("product_name"),
                        meta.name if meta else None,
                    )
                    or "-"
                ),
                selected_product_code=str(
                    _first(
                        header.get("selected_product_code"),
                        row.get("selected_product_code"),
                        meta.code if meta else None,
                    )
                    or ""
                ),
                source_shelf_id=_first(
                    row.get("selected_shelf_id"), row.get("source_shelf_id")
                ),
                production_shelf_id=_first(row.get("production_shelf_id")),
                pieces=pieces,
            )
        )

    return resolved, unresolved


@dataclass
class _GroupBuilder:
    key: str
    category: str
    category_label: str
    product_id: str
    product_name: str
    product_code: str
    source_shelf_id: str | None = None
    production_shelf_id: str | None = None
    pieces: list[PieceRequirement] = field(default_factory=list)
    requirements: list[OrderRequirement] = field(default_factory=list)

    def build(self) -> StartMaterialGroup:
        return StartMaterialGroup(
            key=self.key,
            category=self.category,
            category_label=self.category_label,
            product_id=self.product_id,
            product_name=self.product_name,
            product_code=self.product_code,
            pieces=tuple(self.pieces),
            order_requirements=tuple(self.requirements),
            source_shelf_id=self.source_shelf_id,
            production_shelf_id=self.production_shelf_id,
        )


class MaterialRequirementAggregator:
    """
    Groups material requirements across production orders.

    Contract:
        Stateless; ``aggregate`` is deterministic for a fixed input order.
    """

    @traced_engine(
        "material_requirement_aggregator",
        "1.0",
        fingerprint_fields=("orders",),
    )
    def aggregate(
        self,
        orders: Sequence[OrderMaterialSource],
        products: Mapping[str, ProductMeta] | None = None,
        category_labels: Mapping[str, str] | None = None,
    ) -> Draft:
        """Build the start draft for ``orders``.

        Postconditions:
            - One group per distinct (category, product) pair, first-seen order.
            - Every resolvable row appears as exactly one OrderRequirement.
            - Rows without a product are listed in ``unresolved_rows``.
        """
        category_labels = category_labels or {}
        builders: dict[str, _GroupBuilder] = {}
        unresolved: list[UnresolvedRow] = []

        for order in orders:
            rows, missing = normalize_requirement_rows(order, products)
            unresolved.extend(missing)
            for row in rows:
                key = f"{row.category}::{row.selected_product_id}"
                builder = builders.get(key)
                if builder is None:
                    builder = _GroupBuilder(
                        key=key,
                        category=row.category,
                        category_label=(
                            category_labels.get(row.category)
                            or row.category
                            or UNCATEGORIZED_LABEL
                        ),
                        product_id=row.selected_product_id,
                        product_name=row.selected_product_name,
                        product_code=row.selected_product_code,
                    )
                    builders[key] = builder
                if builder.source_shelf_id is None and row.source_shelf_id:
                    builder.source_shelf_id = str(row.source_shelf_id)
                if builder.production_shelf_id is None and row.production_shelf_id:
                    builder.production_shelf_id = str(row.production_shelf_id)
                builder.pieces.extend(row.pieces)
                builder.requirements.append(
                    OrderRequirement(
                        order_id=order.order_id,
                        order_name=order.name,
                        order_code=order.code,
                        row_index=row.row_index,
                        row_key=row.row_key,
                        pieces=row.pieces,
                    )
                )

        draft = Draft(
            groups=tuple(b.build() for b in builders.values()),
            unresolved_rows=tuple(unresolved),
        )

        if unresolved:
            logger.warning(
                "requirement_rows_unresolved",
                extra={
                    "unresolved_count": len(unresolved),
                    "rows": [r.to_dict() for r in unresolved],
                },
            )
        logger.info(
            "material_groups_built",
            extra={
                "order_count": len(orders),
                "group_count": len(draft.groups),
                "group_keys": [g.key for g in draft.groups],
            },
        )
        return draft
