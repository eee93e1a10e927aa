"""
production_services.lifecycle_service -- Production order lifecycle controller.

Responsibility:
    Drive production orders through pending -> in_progress -> completed
    (and back to pending via stop): build the start draft, confirm its
    material groups, and on each transition validate, move stock, write
    the results back onto the orders, and commit.

Architecture position:
    Services -- stateful orchestration over engines + kernel.
    Thin coordinator: grouping, delivery arithmetic, allocation and move
    algebra live in production_engines; stock writes go through
    InventoryMoveEngine; reads go through the kernel selectors.

Invariants enforced:
    - Every transition is checked against PRODUCTION_ORDER_WORKFLOW.
    - All validation happens before any mutation.  A rejected or failed
      transition rolls the session back, so nothing it touched persists.
    - The controller owns the transaction boundary: it commits on success
      and only then.
    - Stock transfers are recorded for every stock change a transition
      makes (when record_stock_transfers is on).
    - The group order's status follows derive_group_status after every
      member transition.

Failure modes:
    - Validation errors (ValidationError subclasses) -> REJECTED result.
    - Stock / allocation errors (InventoryError, AllocationError) -> FAILED
      result.
    - SQLAlchemyError, including one raised by the commit -> session rolled
      back, exception re-raised unchanged.

Audit relevance:
    Each transition emits ``production_transition_succeeded`` /
    ``_rejected`` / ``_failed`` with the order ids, action and reason code,
    under a LogContext carrying order_id, group_order_id and actor_id.

Usage:
    controller = ProductionLifecycleController(session, config=get_active_config())
    draft = controller.prepare_draft([order_id])
    draft = ledger.add_row(draft, draft.groups[0].key)
    ...
    draft = controller.confirm_group(draft, draft.groups[0].key)
    result = controller.start([order_id], draft)
"""

from __future__ import annotations

import copy
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from production_config.schema import ProductionConfig
from production_engines.aggregation import (
    MaterialRequirementAggregator,
    normalize_requirement_rows,
)
from production_engines.allocation import AllocationSplitter, SplitResult
from production_engines.delivery import DeliveryLedger, check_confirmable
from production_engines.moves import (
    group_move,
    handover_moves,
    order_moves_from_split,
    requirement_moves,
    reverse_moves,
)
from production_kernel.domain.clock import Clock, SystemClock
from production_kernel.domain.draft import Draft, StartMaterialGroup
from production_kernel.domain.production import OrderStatus, StockTransferType
from production_kernel.domain.values import (
    ZERO,
    InventoryMove,
    StockDelta,
    quantity_to_str,
    to_decimal,
)
from production_kernel.domain.workflow import Transition
from production_kernel.exceptions import (
    GroupOrderNotFoundError,
    InvalidQuantityError,
    InvalidTransitionError,
    MissingOutputProductError,
    MissingOutputShelfError,
    NoConfirmedGroupsError,
    NoConsumptionMovesError,
    OrderNotFoundError,
    ProductionKernelError,
    ProductNotFoundError,
    ShelfNotFoundError,
    StaleDraftError,
    ValidationError,
)
from production_kernel.logging_config import LogContext, get_logger
from production_kernel.models.catalog import Product, Shelf
from production_kernel.models.production_order import (
    ProductionGroupOrderModel,
    ProductionOrderModel,
)
from production_kernel.models.stock_transfer import StockTransferModel
from production_kernel.selectors.catalog_selector import CatalogSelector, ShelfOption
from production_kernel.selectors.stock_selector import StockSelector
from production_services.inventory_moves import InventoryMoveEngine
from production_services.workflows import (
    ACTION_COMPLETE,
    ACTION_START,
    ACTION_STOP,
    PRODUCTION_ORDER_WORKFLOW,
)

logger = get_logger("services.lifecycle")

# Row and piece keys written by start and removed by stop.
ROW_DELIVERED_TOTAL = "delivered_total_qty"
ROW_DELIVERY_ROWS = "delivery_rows"
ROW_SOURCE_SHELF = "selected_shelf_id"
ROW_PRODUCTION_SHELF = "production_shelf_id"
PIECE_DELIVERED = "delivered_qty"

WARNING_NO_STORED_MOVES = "no_stored_moves"


class TransitionStatus(str, Enum):
    SUCCEEDED = "succeeded"
    REJECTED = "rejected"  # validation failed, nothing mutated
    FAILED = "failed"  # stock or allocation failure, rolled back


@dataclass(frozen=True)
class TransitionResult:
    """Outcome of one lifecycle transition."""

    status: TransitionStatus
    action: str
    order_ids: tuple[str, ...]
    reason_code: str | None = None
    message: str = ""
    error: ProductionKernelError | None = None
    applied_moves: tuple[InventoryMove, ...] = ()
    warnings: tuple[str, ...] = ()

    @property
    def is_success(self) -> bool:
        return self.status is TransitionStatus.SUCCEEDED


@dataclass(frozen=True)
class _Outcome:
    applied_moves: tuple[InventoryMove, ...] = ()
    warnings: tuple[str, ...] = ()


def derive_group_status(statuses: Iterable[str | OrderStatus]) -> OrderStatus:
    """Group order status from its member orders' statuses.

    All completed -> completed; any in progress or completed -> in progress;
    otherwise (including no members) pending.
    """
    values = [OrderStatus(s) for s in statuses]
    if values and all(s is OrderStatus.COMPLETED for s in values):
        return OrderStatus.COMPLETED
    if any(s in (OrderStatus.IN_PROGRESS, OrderStatus.COMPLETED) for s in values):
        return OrderStatus.IN_PROGRESS
    return OrderStatus.PENDING


class ProductionLifecycleController:
    """
    Coordinates the production lifecycle over one Session.

    Contract:
        Receives a Session via constructor injection.  Engines and the
        move engine are injectable; defaults are built from ``config``.
    Guarantees:
        - ``start`` / ``stop`` / ``complete`` never raise for validation,
          stock or allocation problems; they return a TransitionResult.
        - A non-success result leaves the database as it was.
    Non-goals:
        - Does not serialize concurrent callers; one writer per order is
          the caller's responsibility.
        - Does not edit bills of materials or catalog records.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: ProductionConfig | None = None,
        ledger: DeliveryLedger | None = None,
        aggregator: MaterialRequirementAggregator | None = None,
        splitter: AllocationSplitter | None = None,
        move_engine: InventoryMoveEngine | None = None,
    ):
        config = config or ProductionConfig()
        self._session = session
        self._clock = clock or SystemClock()
        self._record_transfers = config.record_stock_transfers
        self._catalog = CatalogSelector(session, config.production_warehouse_markers)
        self._stock = StockSelector(session)
        self._ledger = ledger or DeliveryLedger()
        self._aggregator = aggregator or MaterialRequirementAggregator()
        self._splitter = splitter or AllocationSplitter()
        self._moves = move_engine or InventoryMoveEngine(
            session, sub_stock_places=config.sub_stock_places
        )

    # ------------------------------------------------------------------
    # Draft preparation
    # ------------------------------------------------------------------

    def prepare_draft(self, order_ids: Sequence[str]) -> Draft:
        """Aggregate the material requirements of ``order_ids`` into a Draft."""
        orders = self._load_orders(order_ids, lock=False)
        sources = [order.to_material_source() for order in orders]

        product_ids = {
            row.selected_product_id
            for source in sources
            for row in normalize_requirement_rows(source)[0]
        }
        return self._aggregator.aggregate(
            orders=sources,
            products=self._catalog.product_meta(product_ids),
            category_labels=self._catalog.category_labels(),
        )

    def confirm_group(self, draft: Draft, group_key: str) -> Draft:
        """Confirm one group, checking its source shelf's live stock.

        Raises the first unmet precondition (see DeliveryLedger.confirm_group).
        """
        group = draft.group(group_key)
        available: Decimal | None = None
        if group.product_id and group.source_shelf_id:
            available = self._stock.stock_of(group.product_id, group.source_shelf_id)
        return self._ledger.confirm_group(draft, group_key, available)

    def source_shelf_options(self, draft: Draft) -> dict[str, list[ShelfOption]]:
        """Per group product, shelves outside production warehouses with stock."""
        return self._catalog.source_shelf_options(g.product_id for g in draft.groups)

    def production_shelf_options(self) -> list[ShelfOption]:
        return self._catalog.production_shelf_options()

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def start(
        self,
        order_ids: Sequence[str],
        draft: Draft,
        group_order_id: str | None = None,
        actor_id: str | None = None,
    ) -> TransitionResult:
        """Move the draft's confirmed deliveries and put the orders in progress."""
        ids = tuple(dict.fromkeys(order_ids))
        with LogContext.bind(
            order_id=ids[0] if len(ids) == 1 else None,
            group_order_id=group_order_id,
            actor_id=actor_id,
        ):
            return self._run(
                ACTION_START,
                ids,
                lambda: self._start(ids, draft, group_order_id, actor_id),
            )

    def stop(self, order_id: str, actor_id: str | None = None) -> TransitionResult:
        """Roll back an in-progress order's start moves and return it to pending."""
        with LogContext.bind(order_id=order_id, actor_id=actor_id):
            return self._run(
                ACTION_STOP, (order_id,), lambda: self._stop(order_id, actor_id)
            )

    def complete(
        self,
        order_id: str,
        output_product_id: str | None,
        output_shelf_id: str | None,
        quantity: Decimal | int | str | None,
        actor_id: str | None = None,
    ) -> TransitionResult:
        """Consume the order's materials and book its finished goods."""
        with LogContext.bind(order_id=order_id, actor_id=actor_id):
            return self._run(
                ACTION_COMPLETE,
                (order_id,),
                lambda: self._complete(
                    order_id, output_product_id, output_shelf_id, quantity, actor_id
                ),
            )

    def _run(
        self,
        action: str,
        order_ids: tuple[str, ...],
        operation: Callable[[], _Outcome],
    ) -> TransitionResult:
        base = {"action": action, "order_ids": list(order_ids)}
        try:
            outcome = operation()
            self._session.commit()
        except ValidationError as exc:
            self._session.rollback()
            logger.warning(
                "production_transition_rejected",
                extra={**base, "reason_code": exc.code, "reason": str(exc)},
            )
            return TransitionResult(
                status=TransitionStatus.REJECTED,
                action=action,
                order_ids=order_ids,
                reason_code=exc.code,
                message=str(exc),
                error=exc,
            )
        except ProductionKernelError as exc:
            self._session.rollback()
            logger.error(
                "production_transition_failed",
                extra={**base, "reason_code": exc.code, "reason": str(exc)},
            )
            return TransitionResult(
                status=TransitionStatus.FAILED,
                action=action,
                order_ids=order_ids,
                reason_code=exc.code,
                message=str(exc),
                error=exc,
            )
        except SQLAlchemyError:
            self._session.rollback()
            logger.exception("production_transition_persistence_error", extra=base)
            raise

        logger.info(
            "production_transition_succeeded",
            extra={
                **base,
                "applied_move_count": len(outcome.applied_moves),
                "warnings": list(outcome.warnings),
            },
        )
        return TransitionResult(
            status=TransitionStatus.SUCCEEDED,
            action=action,
            order_ids=order_ids,
            applied_moves=outcome.applied_moves,
            warnings=outcome.warnings,
        )

    # ------------------------------------------------------------------
    # start
    # ------------------------------------------------------------------

    def _start(
        self,
        order_ids: tuple[str, ...],
        draft: Draft,
        group_order_id: str | None,
        actor_id: str | None,
    ) -> _Outcome:
        orders = self._load_orders(order_ids)
        for order in orders:
            self._require_transition(order, ACTION_START)
        if group_order_id and self._session.get(ProductionGroupOrderModel, group_order_id) is None:
            raise GroupOrderNotFoundError(group_order_id)

        confirmed = [g for g in draft.confirmed_groups if g.total_delivered_qty > ZERO]
        if not confirmed:
            raise NoConfirmedGroupsError(list(order_ids))
        for group in confirmed:
            check_confirmable(group)

        referenced = dict.fromkeys(oid for g in confirmed for oid in g.order_ids)
        unexpected = [oid for oid in referenced if oid not in order_ids]
        if unexpected:
            raise StaleDraftError(unexpected)

        splits = [(g, self._splitter.split(group=g)) for g in confirmed]

        # Raises InsufficientStockError before writing anything.
        applied = self._moves.apply_moves(group_move(g) for g in confirmed)

        per_order: dict[str, list[InventoryMove]] = {}
        for group, split in splits:
            for order_id, moves in order_moves_from_split(group, split).items():
                per_order.setdefault(order_id, []).extend(moves)

        now = self._clock.now()
        warnings: list[str] = []
        for order in orders:
            moves = per_order.get(order.id, [])
            order.material_requirement_rows = _annotate_rows(
                order.requirement_rows(), order.id, splits
            )
            order.production_moves = [m.to_dict() for m in moves]
            order.production_shelf_id = (
                moves[0].to_shelf_id if moves else confirmed[0].production_shelf_id
            )
            order.status = OrderStatus.IN_PROGRESS.value
            order.started_at = now
            if group_order_id:
                order.group_order_id = group_order_id
            order.updated_by_id = actor_id
            if not moves:
                warnings.append(f"order {order.id} received no allocation")
            self._record(StockTransferType.PRODUCTION_START, order.id, moves, actor_id)

        self._moves.sync_products(g.product_id for g in confirmed)
        self._sync_group_orders(orders)
        self._session.flush()

        logger.info(
            "production_started",
            extra={
                "order_ids": list(order_ids),
                "group_keys": [g.key for g in confirmed],
                "moves": [m.to_dict() for m in applied],
            },
        )
        return _Outcome(applied_moves=tuple(applied), warnings=tuple(warnings))

    # ------------------------------------------------------------------
    # stop
    # ------------------------------------------------------------------

    def _stop(self, order_id: str, actor_id: str | None) -> _Outcome:
        (order,) = self._load_orders((order_id,))
        self._require_transition(order, ACTION_STOP)

        stored = order.stored_moves()
        warnings: tuple[str, ...] = ()
        applied: list[InventoryMove] = []
        if stored:
            applied = self._moves.rollback_moves(stored)
            self._moves.sync_products(m.product_id for m in stored)
            self._record(
                StockTransferType.PRODUCTION_ROLLBACK,
                order.id,
                reverse_moves(stored),
                actor_id,
            )
        else:
            logger.warning("production_stop_without_moves", extra={"order_id": order.id})
            warnings = (WARNING_NO_STORED_MOVES,)

        order.material_requirement_rows = _clear_annotations(order.requirement_rows())
        order.status = OrderStatus.PENDING.value
        order.production_shelf_id = None
        order.production_moves = None
        order.stopped_at = self._clock.now()
        order.updated_by_id = actor_id

        self._sync_group_orders([order])
        self._session.flush()
        return _Outcome(applied_moves=tuple(applied), warnings=warnings)

    # ------------------------------------------------------------------
    # complete
    # ------------------------------------------------------------------

    def _complete(
        self,
        order_id: str,
        output_product_id: str | None,
        output_shelf_id: str | None,
        quantity: Any,
        actor_id: str | None,
    ) -> _Outcome:
        (order,) = self._load_orders((order_id,))
        self._require_transition(order, ACTION_COMPLETE)

        if not output_product_id:
            raise MissingOutputProductError(order.id)
        if not output_shelf_id:
            raise MissingOutputShelfError(order.id)
        qty = to_decimal(quantity)
        if qty <= ZERO:
            raise InvalidQuantityError(order.id, qty)
        if self._session.get(Product, output_product_id) is None:
            raise ProductNotFoundError(output_product_id)
        if self._session.get(Shelf, output_shelf_id) is None:
            raise ShelfNotFoundError(output_shelf_id)

        moves, source, warnings = self._consumption_moves(order)
        if not moves:
            raise NoConsumptionMovesError(order.id)

        consumed = self._moves.consume_materials(moves, order.production_shelf_id)
        if not consumed:
            raise NoConsumptionMovesError(order.id)
        self._moves.sync_products(d.product_id for d in consumed)

        self._moves.add_finished_goods(output_product_id, output_shelf_id, qty)
        self._moves.sync_product_stock(output_product_id)

        self._record_consumption(order.id, consumed, actor_id)
        self._record(
            StockTransferType.PRODUCTION_OUTPUT,
            order.id,
            [InventoryMove(output_product_id, None, output_shelf_id, qty)],
            actor_id,
        )

        order.status = OrderStatus.COMPLETED.value
        order.output_product_id = output_product_id
        order.output_shelf_id = output_shelf_id
        order.output_quantity = qty
        order.completed_at = self._clock.now()
        order.updated_by_id = actor_id

        self._sync_group_orders([order])
        self._session.flush()

        logger.info(
            "production_completed",
            extra={
                "order_id": order.id,
                "consumption_source": source,
                "consumed": {f"{d.product_id}@{d.shelf_id}": str(-d.delta) for d in consumed},
                "output_product_id": output_product_id,
                "output_shelf_id": output_shelf_id,
                "output_quantity": str(qty),
            },
        )
        return _Outcome(applied_moves=tuple(moves), warnings=warnings)

    def _consumption_moves(
        self, order: ProductionOrderModel
    ) -> tuple[list[InventoryMove], str, tuple[str, ...]]:
        """Hand-off record first, then stored start moves, then the BOM."""
        moves = handover_moves(order.production_handover, order.production_shelf_id)
        if moves:
            return moves, "handover", ()
        moves = order.stored_moves()
        if moves:
            return moves, "start_moves", ()
        if not order.production_shelf_id:
            return [], "none", ()
        moves, skipped = requirement_moves(
            order.to_material_source(), order.production_shelf_id
        )
        warnings = tuple(f"requirement row {key} has no product" for key in skipped)
        return moves, "requirements", warnings

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _load_orders(
        self, order_ids: Sequence[str], lock: bool = True
    ) -> list[ProductionOrderModel]:
        ids = list(dict.fromkeys(order_ids))
        if not ids:
            raise OrderNotFoundError("")
        stmt = select(ProductionOrderModel).where(ProductionOrderModel.id.in_(ids))
        if lock:
            stmt = stmt.with_for_update()
        found = {o.id: o for o in self._session.scalars(stmt)}
        for order_id in ids:
            if order_id not in found:
                raise OrderNotFoundError(order_id)
        return [found[order_id] for order_id in ids]

    @staticmethod
    def _require_transition(order: ProductionOrderModel, action: str) -> Transition:
        # INVARIANT: one_way_lifecycle
        transition = PRODUCTION_ORDER_WORKFLOW.find_transition(order.status, action)
        if transition is None:
            raise InvalidTransitionError(order.id, order.status, action)
        return transition

    def _record(
        self,
        transfer_type: StockTransferType,
        order_id: str,
        moves: Iterable[InventoryMove],
        actor_id: str | None,
    ) -> None:
        if not self._record_transfers:
            return
        for move in moves:
            self._session.add(
                StockTransferModel(
                    transfer_type=transfer_type.value,
                    product_id=move.product_id,
                    from_shelf_id=move.from_shelf_id,
                    to_shelf_id=move.to_shelf_id,
                    quantity=move.quantity,
                    production_order_id=order_id,
                    created_by_id=actor_id,
                )
            )

    def _record_consumption(
        self, order_id: str, deltas: Iterable[StockDelta], actor_id: str | None
    ) -> None:
        self._record(
            StockTransferType.PRODUCTION_CONSUMPTION,
            order_id,
            [InventoryMove(d.product_id, d.shelf_id, None, -d.delta) for d in deltas],
            actor_id,
        )

    def _sync_group_orders(self, orders: Iterable[ProductionOrderModel]) -> None:
        group_ids = dict.fromkeys(o.group_order_id for o in orders if o.group_order_id)
        if not group_ids:
            return
        self._session.flush()
        now = self._clock.now()
        for group_id in group_ids:
            group = self._session.get(ProductionGroupOrderModel, group_id)
            if group is None:
                raise GroupOrderNotFoundError(group_id)
            statuses = self._session.scalars(
                select(ProductionOrderModel.status).where(
                    ProductionOrderModel.group_order_id == group_id
                )
            ).all()
            previous = group.status
            status = derive_group_status(statuses)
            group.status = status.value
            if status is OrderStatus.IN_PROGRESS and previous == OrderStatus.PENDING.value:
                group.started_at = now
            if status is OrderStatus.COMPLETED:
                group.completed_at = group.completed_at or now
            else:
                group.completed_at = None
            if previous != status.value:
                logger.info(
                    "group_order_status_changed",
                    extra={
                        "group_order_id": group_id,
                        "from_status": previous,
                        "to_status": status.value,
                    },
                )


def _annotate_rows(
    rows: list[Any],
    order_id: str,
    splits: Sequence[tuple[StartMaterialGroup, SplitResult]],
) -> list[Any]:
    """Copy of ``rows`` with each allocation written onto its row and pieces."""
    annotated = [copy.deepcopy(dict(row)) if isinstance(row, Mapping) else row for row in rows]
    for group, split in splits:
        delivery_rows = [r.to_dict() for r in group.delivery_rows]
        for alloc in split.for_order(order_id):
            if not 0 <= alloc.row_index < len(annotated):
                continue
            row = annotated[alloc.row_index]
            if not isinstance(row, dict):
                continue
            row[ROW_SOURCE_SHELF] = group.source_shelf_id or row.get(ROW_SOURCE_SHELF)
            row[ROW_PRODUCTION_SHELF] = (
                group.production_shelf_id or row.get(ROW_PRODUCTION_SHELF)
            )
            row[ROW_DELIVERED_TOTAL] = quantity_to_str(alloc.delivered_qty)
            row[ROW_DELIVERY_ROWS] = delivery_rows
            pieces = row.get("pieces")
            if isinstance(pieces, list) and pieces:
                row["pieces"] = [
                    _with_delivered(piece, alloc.piece_delivered_by_index.get(i))
                    for i, piece in enumerate(pieces)
                ]
            else:
                row[PIECE_DELIVERED] = quantity_to_str(alloc.piece_delivered(0))
    return annotated


def _with_delivered(piece: Any, delivered: Decimal | None) -> Any:
    if delivered is None or not isinstance(piece, dict):
        return piece
    return {**piece, PIECE_DELIVERED: quantity_to_str(delivered)}


def _clear_annotations(rows: list[Any]) -> list[Any]:
    """Copy of ``rows`` without the delivery annotations start wrote.

    The source and production shelf selections stay; the next draft for
    the order starts from them.
    """
    cleared: list[Any] = []
    for raw in rows:
        if not isinstance(raw, Mapping):
            cleared.append(raw)
            continue
        row = {
            k: v
            for k, v in copy.deepcopy(dict(raw)).items()
            if k not in (ROW_DELIVERED_TOTAL, ROW_DELIVERY_ROWS, PIECE_DELIVERED)
        }
        pieces = row.get("pieces")
        if isinstance(pieces, list):
            row["pieces"] = [
                {k: v for k, v in p.items() if k != PIECE_DELIVERED}
                if isinstance(p, dict)
                else p
                for p in pieces
            ]
        cleared.append(row)
    return cleared
