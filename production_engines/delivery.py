"""
Module: production_engines.delivery
Responsibility:
    The delivery ledger: operator-entered delivery rows per material group
    (add, batch delete, field edit, copy/move between groups), shelf
    selection, and the confirmation check that gates ``start``.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Operates on the immutable
    Draft and returns a new Draft from every operation.

Invariants enforced:
    - delivered_qty and total_delivered_qty are derived properties of the
      rows (see production_kernel.domain.draft), so no mutation can leave
      them stale.
    - Numeric fields (length, width, quantity) are clamped to >= 0.
    - Every mutation resets the touched groups' is_confirmed to False.
    - A group is confirmed only with a selected product, a source shelf
      holding stock of it, a production shelf, and a positive delivered
      total.

Failure modes:
    - GroupNotFoundError for an unknown group key.
    - DeliveryRowNotFoundError / UnknownDeliveryFieldError on edit.
    - MissingSelectedProductError, MissingSourceShelfError,
      SourceShelfEmptyError, MissingProductionShelfError,
      InvalidDeliveredQuantityError on confirm (first unmet check wins).
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import replace
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import uuid4

from production_kernel.domain.draft import DeliveryRow, Draft, StartMaterialGroup
from production_kernel.domain.values import (
    ZERO,
    clamp_non_negative,
    quantize_quantity,
)
from production_kernel.exceptions import (
    DeliveryRowNotFoundError,
    InvalidDeliveredQuantityError,
    MissingProductionShelfError,
    MissingSelectedProductError,
    MissingSourceShelfError,
    SourceShelfEmptyError,
    UnknownDeliveryFieldError,
)
from production_kernel.logging_config import get_logger

logger = get_logger("engines.delivery")

NUMERIC_FIELDS = frozenset({"length", "width", "quantity"})
TEXT_FIELDS = frozenset({"name", "main_unit", "sub_unit"})


class TransferMode(str, Enum):
    """How rows are transferred between groups."""

    COPY = "copy"  # clones with new ids, no piece link
    MOVE = "move"  # clones, then removed from the source


def _numeric(value: Any) -> Decimal:
    return quantize_quantity(clamp_non_negative(value))


def _default_row_id() -> str:
    return f"delivery_{uuid4().hex}"


class DeliveryLedger:
    """
    Delivery row operations over a Draft.

    Contract:
        Pure apart from row id generation, which is injectable for
        deterministic tests.
    """

    def __init__(self, id_factory: Callable[[], str] | None = None):
        self._new_id = id_factory or _default_row_id

    def add_row(self, draft: Draft, group_key: str) -> Draft:
        """Append a row defaulted from the group's first piece."""
        group = draft.group(group_key)
        first = group.pieces[0] if group.pieces else None
        row = DeliveryRow(
            row_id=self._new_id(),
            name=first.name if first else "",
            length=_numeric(first.length) if first else ZERO,
            width=_numeric(first.width) if first else ZERO,
            quantity=_numeric(first.quantity) if first else Decimal("1"),
            main_unit=first.main_unit if first else "",
            sub_unit=first.sub_unit if first else "",
        )
        updated = group.evolve(delivery_rows=group.delivery_rows + (row,))
        self._log_change("delivery_row_added", updated, row_ids=[row.row_id])
        return draft.with_group(updated)

    def delete_rows(self, draft: Draft, group_key: str, row_ids: Iterable[str]) -> Draft:
        """Remove every row whose id is in ``row_ids``; unknown ids are ignored."""
        selected = set(row_ids)
        group = draft.group(group_key)
        if not selected:
            return draft
        kept = tuple(r for r in group.delivery_rows if r.row_id not in selected)
        updated = group.evolve(delivery_rows=kept)
        self._log_change("delivery_rows_deleted", updated, row_ids=sorted(selected))
        return draft.with_group(updated)

    def edit_row(
        self,
        draft: Draft,
        group_key: str,
        row_id: str,
        field: str,
        value: Any,
    ) -> Draft:
        """Set one field of one row.

        Numeric fields are parsed and clamped to >= 0; text fields are
        stored as strings (None becomes "").  Values whose delivered total
        would not fit the storage columns raise QuantityOutOfRangeError.
        """
        if field in NUMERIC_FIELDS:
            new_value: Any = _numeric(value)
        elif field in TEXT_FIELDS:
            new_value = "" if value is None else str(value)
        else:
            raise UnknownDeliveryFieldError(field)

        group = draft.group(group_key)
        if group.row(row_id) is None:
            raise DeliveryRowNotFoundError(group_key, row_id)

        rows = tuple(
            _replace_field(r, field, new_value) if r.row_id == row_id else r
            for r in group.delivery_rows
        )
        updated = group.evolve(delivery_rows=rows)
        # Raises QuantityOutOfRangeError for an unstorable delivered total.
        updated.total_delivered_qty
        self._log_change("delivery_row_edited", updated, row_ids=[row_id], field=field)
        return draft.with_group(updated)

    def transfer_rows(
        self,
        draft: Draft,
        source_key: str,
        row_ids: Iterable[str],
        target_key: str,
        mode: TransferMode | str = TransferMode.COPY,
    ) -> Draft:
        """Copy or move rows from one group to another.

        Copies get fresh ids and lose their piece link.  Moving a group's
        rows onto itself, or selecting no existing rows, is a no-op.
        """
        mode = TransferMode(mode)
        selected = set(row_ids)
        source = draft.group(source_key)
        target = draft.group(target_key)
        if mode is TransferMode.MOVE and source_key == target_key:
            return draft

        picked = [r for r in source.delivery_rows if r.row_id in selected]
        if not picked:
            return draft

        copies = tuple(_clone_row(r, self._new_id()) for r in picked)
        target = target.evolve(delivery_rows=target.delivery_rows + copies)
        result = draft.with_group(target)

        if mode is TransferMode.MOVE:
            source = source.evolve(
                delivery_rows=tuple(
                    r for r in source.delivery_rows if r.row_id not in selected
                )
            )
            result = result.with_group(source)

        logger.info(
            "delivery_rows_transferred",
            extra={
                "source_group": source_key,
                "target_group": target_key,
                "mode": mode.value,
                "row_count": len(copies),
                "target_total_delivered_qty": str(target.total_delivered_qty),
            },
        )
        return result

    def set_source_shelf(self, draft: Draft, group_key: str, shelf_id: str | None) -> Draft:
        group = draft.group(group_key)
        return draft.with_group(group.evolve(source_shelf_id=shelf_id or None))

    def set_production_shelf(
        self, draft: Draft, group_key: str, shelf_id: str | None
    ) -> Draft:
        group = draft.group(group_key)
        return draft.with_group(group.evolve(production_shelf_id=shelf_id or None))

    def confirm_group(
        self,
        draft: Draft,
        group_key: str,
        available_stock: Decimal | None = None,
    ) -> Draft:
        """Mark a group confirmed after checking its preconditions.

        ``available_stock`` is the source shelf's stock of the group's
        product; None skips the stock check (the caller has none to offer).
        """
        group = draft.group(group_key)
        check_confirmable(group, available_stock)
        logger.info(
            "material_group_confirmed",
            extra={
                "group_key": group.key,
                "product_id": group.product_id,
                "source_shelf_id": group.source_shelf_id,
                "production_shelf_id": group.production_shelf_id,
                "total_delivered_qty": str(group.total_delivered_qty),
            },
        )
        return draft.with_group(group.evolve(is_confirmed=True))

    @staticmethod
    def _log_change(event: str, group: StartMaterialGroup, **extra: Any) -> None:
        logger.debug(
            event,
            extra={
                "group_key": group.key,
                "row_count": len(group.delivery_rows),
                "total_delivered_qty": str(group.total_delivered_qty),
                **extra,
            },
        )


def check_confirmable(
    group: StartMaterialGroup, available_stock: Decimal | None = None
) -> None:
    """Raise the first unmet confirmation precondition for ``group``."""
    # INVARIANT: confirmation_preconditions
    if not group.product_id:
        raise MissingSelectedProductError(group.key)
    if not group.source_shelf_id:
        raise MissingSourceShelfError(group.key)
    if available_stock is not None and available_stock <= ZERO:
        raise SourceShelfEmptyError(group.key, group.product_id, group.source_shelf_id)
    if not group.production_shelf_id:
        raise MissingProductionShelfError(group.key)
    if group.total_delivered_qty <= ZERO:
        raise InvalidDeliveredQuantityError(group.key, group.total_delivered_qty)


def _replace_field(row: DeliveryRow, field: str, value: Any) -> DeliveryRow:
    return replace(row, **{field: value})


def _clone_row(row: DeliveryRow, row_id: str) -> DeliveryRow:
    return DeliveryRow(
        row_id=row_id,
        name=row.name,
        length=row.length,
        width=row.width,
        quantity=row.quantity,
        main_unit=row.main_unit,
        sub_unit=row.sub_unit,
        piece_key=None,
    )
