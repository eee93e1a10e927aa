"""
Module: production_engines.moves
Responsibility:
    Pure move algebra for the inventory move engine and the lifecycle
    controller: netting duplicate routes, reversal, turning moves into
    per-shelf stock deltas, simulating deltas against balances, and
    deriving the move lists a lifecycle transition needs (group moves,
    per-order moves from a split, hand-off and bill-of-materials
    consumption moves).

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Netting preserves first-seen route order and sums quantities, so
      (P,A,B,5) + (P,A,B,3) plans exactly like (P,A,B,8).
    - simulate_deltas applies deltas in order and fails on the first one
      that would take a balance below zero; callers write nothing unless
      the whole simulation passes.

Failure modes:
    - InvalidMoveError for a move with no product, a negative quantity, or
      a missing shelf on a leg that needs one.
    - InsufficientStockError from simulate_deltas.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from decimal import Decimal
from typing import Any

from production_engines.aggregation import normalize_requirement_rows
from production_engines.allocation import SplitResult
from production_kernel.domain.draft import StartMaterialGroup
from production_kernel.domain.production import OrderMaterialSource
from production_kernel.domain.values import ZERO, InventoryMove, StockDelta, to_decimal
from production_kernel.exceptions import InsufficientStockError, InvalidMoveError

StockKey = tuple[str, str]


def validate_move(move: InventoryMove, *, require_source: bool = True) -> None:
    if not move.product_id:
        raise InvalidMoveError("missing product id")
    if move.quantity < ZERO:
        raise InvalidMoveError(
            f"negative quantity {move.quantity}", product_id=move.product_id
        )
    if require_source and not move.from_shelf_id:
        raise InvalidMoveError("missing source shelf", product_id=move.product_id)
    if require_source and not move.to_shelf_id:
        raise InvalidMoveError("missing destination shelf", product_id=move.product_id)


def net_moves(moves: Iterable[InventoryMove]) -> list[InventoryMove]:
    """Group moves by (product, from, to), summing quantities.

    Routes keep first-seen order; routes that net to zero are dropped.
    """
    totals: dict[tuple[str, str | None, str | None], InventoryMove] = {}
    for move in moves:
        existing = totals.get(move.route_key)
        if existing is None:
            totals[move.route_key] = move
        else:
            totals[move.route_key] = existing.with_quantity(existing.quantity + move.quantity)
    return [m for m in totals.values() if m.quantity != ZERO]


def reverse_moves(moves: Iterable[InventoryMove]) -> list[InventoryMove]:
    """The same moves with source and destination swapped, in the same order."""
    return [m.reversed() for m in moves]


def transfer_deltas(moves: Iterable[InventoryMove]) -> list[StockDelta]:
    """Per netted move: decrement the source, then increment the destination."""
    deltas: list[StockDelta] = []
    for move in net_moves(moves):
        validate_move(move)
        deltas.append(StockDelta(move.product_id, move.from_shelf_id, -move.quantity))
        deltas.append(StockDelta(move.product_id, move.to_shelf_id, move.quantity))
    return deltas


def consumption_deltas(
    moves: Iterable[InventoryMove], fallback_shelf_id: str | None = None
) -> list[StockDelta]:
    """Decrement-only deltas from ``move.to_shelf_id or fallback_shelf_id``.

    Grouped per (product, shelf) in first-seen order; moves with no
    resolvable shelf are skipped.
    """
    totals: dict[StockKey, Decimal] = {}
    for move in moves:
        validate_move(move, require_source=False)
        shelf_id = move.to_shelf_id or fallback_shelf_id
        if not shelf_id or move.quantity == ZERO:
            continue
        key = (move.product_id, shelf_id)
        totals[key] = totals.get(key, ZERO) + move.quantity
    return [StockDelta(product_id, shelf_id, -qty) for (product_id, shelf_id), qty in totals.items()]


def simulate_deltas(
    deltas: Sequence[StockDelta], balances: Mapping[StockKey, Decimal]
) -> dict[StockKey, Decimal]:
    """Apply ``deltas`` in order to a copy of ``balances``.

    Missing balances start at zero.  Returns the final balance of every
    touched key.

    Raises:
        InsufficientStockError: the first delta that would go below zero.
    """
    state: dict[StockKey, Decimal] = {}
    for delta in deltas:
        key = delta.stock_key
        current = state.get(key, balances.get(key, ZERO))
        nxt = current + delta.delta
        # INVARIANT: non_negative_stock
        if nxt < ZERO:
            raise InsufficientStockError(
                product_id=delta.product_id,
                shelf_id=delta.shelf_id,
                requested=-delta.delta,
                available=current,
            )
        state[key] = nxt
    return state


def group_move(group: StartMaterialGroup) -> InventoryMove:
    """The single source -> production shelf move for a confirmed group."""
    return InventoryMove(
        product_id=group.product_id,
        from_shelf_id=group.source_shelf_id,
        to_shelf_id=group.production_shelf_id,
        quantity=group.total_delivered_qty,
    )


def order_moves_from_split(
    group: StartMaterialGroup, split: SplitResult
) -> dict[str, list[InventoryMove]]:
    """Per order, the share of the group move that order is accountable for.

    Zero shares produce no move.
    """
    per_order: dict[str, list[InventoryMove]] = {}
    for alloc in split.allocations:
        if alloc.delivered_qty <= ZERO:
            continue
        per_order.setdefault(alloc.order_id, []).append(
            InventoryMove(
                product_id=group.product_id,
                from_shelf_id=group.source_shelf_id,
                to_shelf_id=group.production_shelf_id,
                quantity=alloc.delivered_qty,
            )
        )
    return per_order


def _handed_over(piece: Mapping[str, Any]) -> Decimal:
    qty = piece.get("handover_qty")
    if qty in (None, ""):
        qty = piece.get("source_qty")
    return to_decimal(qty)


def handover_moves(
    handover: Mapping[str, Any] | None, fallback_shelf_id: str | None = None
) -> list[InventoryMove]:
    """Consumption moves from a final-stage hand-off record.

    Each hand-off group contributes the sum of its pieces' handed-over
    quantities of its product, on the record's target shelf (or the
    fallback).  Groups with no product or a non-positive total are skipped.
    """
    if not isinstance(handover, Mapping):
        return []
    groups = handover.get("groups")
    if not isinstance(groups, list) or not groups:
        return []
    target = handover.get("target_shelf_id") or fallback_shelf_id
    if not target:
        return []

    moves: list[InventoryMove] = []
    for group in groups:
        if not isinstance(group, Mapping):
            continue
        pieces = [p for p in group.get("pieces") or () if isinstance(p, Mapping)]
        product_id = group.get("selected_product_id")
        if not product_id:
            product_id = next(
                (
                    p.get("selected_product_id") or p.get("product_id")
                    for p in pieces
                    if p.get("selected_product_id") or p.get("product_id")
                ),
                None,
            )
        if not product_id:
            continue
        qty = sum(
            (_handed_over(p) for p in pieces),
            ZERO,
        )
        if qty <= ZERO:
            continue
        moves.append(
            InventoryMove(
                product_id=str(product_id),
                from_shelf_id=str(target),
                to_shelf_id=str(target),
                quantity=qty,
            )
        )
    return moves


def requirement_moves(
    order: OrderMaterialSource, production_shelf_id: str
) -> tuple[list[InventoryMove], list[str]]:
    """Bill-of-materials moves into the production shelf.

    Used at completion when an order has neither a hand-off record nor
    stored start moves.  Returns the moves (row total usage, already
    scaled by order quantity) and the row keys skipped for lack of a
    product.
    """
    rows, unresolved = normalize_requirement_rows(order)
    moves = [
        InventoryMove(
            product_id=row.selected_product_id,
            from_shelf_id=row.source_shelf_id,
            to_shelf_id=production_shelf_id,
            quantity=row.total_usage,
        )
        for row in rows
        if row.total_usage > ZERO
    ]
    return moves, [r.row_key for r in unresolved]
