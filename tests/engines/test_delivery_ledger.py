"""
Tests for DeliveryLedger.

Covers:
- Row add/delete/edit with derived delivered quantities
- Copy and move between groups
- Shelf selection
- Confirmation preconditions and confirmation reset on mutation
"""

from decimal import Decimal
from itertools import count

import pytest

from production_engines.delivery import DeliveryLedger, TransferMode, check_confirmable
from production_kernel.domain.draft import DeliveryRow, Draft, StartMaterialGroup
from production_kernel.domain.production import PieceRequirement
from production_kernel.exceptions import (
    DeliveryRowNotFoundError,
    GroupNotFoundError,
    InvalidDeliveredQuantityError,
    MissingProductionShelfError,
    MissingSourceShelfError,
    QuantityOutOfRangeError,
    SourceShelfEmptyError,
    UnknownDeliveryFieldError,
)


def _piece(length="2", width="3", quantity="1"):
    return PieceRequirement(
        key="o1_0_0_piece",
        index=0,
        name="top",
        length=Decimal(length),
        width=Decimal(width),
        quantity=Decimal(quantity),
        total_quantity=Decimal(quantity),
        main_unit="m2",
        sub_unit="ft2",
        per_item_usage=Decimal("6"),
        total_usage=Decimal("6"),
    )


def _group(key, product_id="P", pieces=None, **changes):
    return StartMaterialGroup(
        key=key,
        category="panel",
        category_label="Panels",
        product_id=product_id,
        product_name="sheet",
        product_code="SHEET",
        pieces=tuple(pieces) if pieces is not None else (_piece(),),
        **changes,
    )


def _draft(*groups):
    return Draft(groups=tuple(groups))


def _row(row_id, length="1", width="1", quantity="1"):
    return DeliveryRow(
        row_id=row_id,
        length=Decimal(length),
        width=Decimal(width),
        quantity=Decimal(quantity),
    )


class TestRows:
    """Tests for add, delete and edit."""

    def setup_method(self):
        ids = count(1)
        self.ledger = DeliveryLedger(id_factory=lambda: f"row-{next(ids)}")

    def test_add_row_defaults_from_first_piece(self):
        draft = self.ledger.add_row(_draft(_group("panel::P")), "panel::P")

        row = draft.group("panel::P").delivery_rows[0]
        assert row.row_id == "row-1"
        assert row.name == "top"
        assert row.length == Decimal("2")
        assert row.width == Decimal("3")
        assert row.quantity == Decimal("1")
        assert row.main_unit == "m2"
        assert row.delivered_qty == Decimal("6")

    def test_add_row_without_pieces(self):
        draft = self.ledger.add_row(_draft(_group("panel::P", pieces=[])), "panel::P")

        row = draft.group("panel::P").delivery_rows[0]
        assert row.length == Decimal("0")
        assert row.quantity == Decimal("1")
        assert row.delivered_qty == Decimal("0")

    def test_add_row_leaves_input_draft_untouched(self):
        original = _draft(_group("panel::P"))
        self.ledger.add_row(original, "panel::P")

        assert original.group("panel::P").delivery_rows == ()

    def test_unknown_group_raises(self):
        with pytest.raises(GroupNotFoundError):
            self.ledger.add_row(_draft(_group("panel::P")), "panel::X")

    def test_delete_rows_by_id(self):
        group = _group("panel::P", delivery_rows=(_row("a"), _row("b"), _row("c")))
        draft = self.ledger.delete_rows(_draft(group), "panel::P", ["a", "c", "zzz"])

        assert [r.row_id for r in draft.group("panel::P").delivery_rows] == ["b"]

    def test_delete_nothing_selected_is_noop(self):
        draft = _draft(_group("panel::P", delivery_rows=(_row("a"),), is_confirmed=True))

        assert self.ledger.delete_rows(draft, "panel::P", []) is draft

    def test_edit_numeric_field_updates_delivered(self):
        draft = _draft(_group("panel::P", delivery_rows=(_row("a", "2", "2", "1"),)))
        draft = self.ledger.edit_row(draft, "panel::P", "a", "quantity", "5")

        group = draft.group("panel::P")
        assert group.delivery_rows[0].delivered_qty == Decimal("20")
        assert group.total_delivered_qty == Decimal("20")

    def test_edit_negative_value_clamped(self):
        draft = _draft(_group("panel::P", delivery_rows=(_row("a"),)))
        draft = self.ledger.edit_row(draft, "panel::P", "a", "length", "-4")

        assert draft.group("panel::P").delivery_rows[0].length == Decimal("0")
        assert draft.group("panel::P").total_delivered_qty == Decimal("0")

    def test_edit_garbage_number_becomes_zero(self):
        draft = _draft(_group("panel::P", delivery_rows=(_row("a"),)))
        draft = self.ledger.edit_row(draft, "panel::P", "a", "width", "abc")

        assert draft.group("panel::P").delivery_rows[0].width == Decimal("0")

    def test_edit_large_dimensions_keep_exact_total(self):
        draft = _draft(_group("panel::P", delivery_rows=(_row("a", "1e10", "1e10", "1"),)))
        draft = self.ledger.edit_row(draft, "panel::P", "a", "quantity", "1e5")

        assert draft.group("panel::P").total_delivered_qty == Decimal("1e25")

    def test_edit_unstorable_total_raises(self):
        draft = _draft(_group("panel::P", delivery_rows=(_row("a", "1e15", "1e10", "1"),)))

        with pytest.raises(QuantityOutOfRangeError):
            self.ledger.edit_row(draft, "panel::P", "a", "quantity", "1e5")

    def test_edit_unstorable_value_raises(self):
        draft = _draft(_group("panel::P", delivery_rows=(_row("a"),)))

        with pytest.raises(QuantityOutOfRangeError):
            self.ledger.edit_row(draft, "panel::P", "a", "length", "1e40")

    def test_edit_text_field(self):
        draft = _draft(_group("panel::P", delivery_rows=(_row("a"),)))
        draft = self.ledger.edit_row(draft, "panel::P", "a", "name", None)

        assert draft.group("panel::P").delivery_rows[0].name == ""

    def test_edit_unknown_field_raises(self):
        draft = _draft(_group("panel::P", delivery_rows=(_row("a"),)))

        with pytest.raises(UnknownDeliveryFieldError):
            self.ledger.edit_row(draft, "panel::P", "a", "delivered_qty", "9")

    def test_edit_unknown_row_raises(self):
        draft = _draft(_group("panel::P", delivery_rows=(_row("a"),)))

        with pytest.raises(DeliveryRowNotFoundError):
            self.ledger.edit_row(draft, "panel::P", "missing", "length", "1")

    def test_any_change_drops_confirmation(self):
        draft = _draft(_group("panel::P", delivery_rows=(_row("a"),), is_confirmed=True))
        draft = self.ledger.edit_row(draft, "panel::P", "a", "length", "3")

        assert draft.group("panel::P").is_confirmed is False


class TestTransfer:
    """Tests for copying and moving rows between groups."""

    def setup_method(self):
        ids = count(1)
        self.ledger = DeliveryLedger(id_factory=lambda: f"new-{next(ids)}")
        linked = DeliveryRow(row_id="a", length=Decimal("2"), width=Decimal("5"),
                             quantity=Decimal("1"), piece_key="o1_0_0_piece")
        self.draft = _draft(
            _group("panel::P", delivery_rows=(linked, _row("b"))),
            _group("panel::R", product_id="R", delivery_rows=(_row("c"),)),
        )

    def test_copy_keeps_source(self):
        draft = self.ledger.transfer_rows(self.draft, "panel::P", ["a"], "panel::R", "copy")

        assert [r.row_id for r in draft.group("panel::P").delivery_rows] == ["a", "b"]
        target_rows = draft.group("panel::R").delivery_rows
        assert [r.row_id for r in target_rows] == ["c", "new-1"]
        assert target_rows[1].piece_key is None
        assert draft.group("panel::R").total_delivered_qty == Decimal("11")

    def test_move_removes_from_source(self):
        draft = self.ledger.transfer_rows(
            self.draft, "panel::P", ["a", "b"], "panel::R", TransferMode.MOVE
        )

        assert draft.group("panel::P").delivery_rows == ()
        assert len(draft.group("panel::R").delivery_rows) == 3
        assert draft.group("panel::P").total_delivered_qty == Decimal("0")

    def test_move_onto_same_group_is_noop(self):
        draft = self.ledger.transfer_rows(self.draft, "panel::P", ["a"], "panel::P", "move")

        assert draft is self.draft

    def test_no_matching_rows_is_noop(self):
        draft = self.ledger.transfer_rows(self.draft, "panel::P", ["zzz"], "panel::R")

        assert draft is self.draft

    def test_invalid_mode_rejected(self):
        with pytest.raises(ValueError):
            self.ledger.transfer_rows(self.draft, "panel::P", ["a"], "panel::R", "swap")


class TestConfirmation:
    """Tests for confirm_group and check_confirmable."""

    def setup_method(self):
        self.ledger = DeliveryLedger()

    def _ready_group(self, **changes):
        fields = dict(
            source_shelf_id="A",
            production_shelf_id="B",
            delivery_rows=(_row("a", "2", "5", "2"),),
        )
        fields.update(changes)
        return _group("panel::P", **fields)

    def test_confirm_ready_group(self):
        draft = self.ledger.confirm_group(
            _draft(self._ready_group()), "panel::P", available_stock=Decimal("100")
        )

        assert draft.group("panel::P").is_confirmed is True
        assert draft.confirmed_groups[0].total_delivered_qty == Decimal("20")

    def test_missing_source_shelf(self):
        with pytest.raises(MissingSourceShelfError):
            check_confirmable(self._ready_group(source_shelf_id=None))

    def test_empty_source_shelf(self):
        with pytest.raises(SourceShelfEmptyError):
            check_confirmable(self._ready_group(), Decimal("0"))

    def test_stock_check_skipped_without_figure(self):
        check_confirmable(self._ready_group(), None)

    def test_missing_production_shelf(self):
        with pytest.raises(MissingProductionShelfError):
            check_confirmable(self._ready_group(production_shelf_id=None))

    def test_zero_delivered_rejected(self):
        with pytest.raises(InvalidDeliveredQuantityError):
            check_confirmable(self._ready_group(delivery_rows=(_row("a", "0"),)))

    def test_first_unmet_check_wins(self):
        """Source shelf is checked before production shelf and quantity."""
        group = self._ready_group(
            source_shelf_id=None, production_shelf_id=None, delivery_rows=()
        )

        with pytest.raises(MissingSourceShelfError):
            check_confirmable(group)

    def test_shelf_selection_resets_confirmation(self):
        draft = self.ledger.confirm_group(_draft(self._ready_group()), "panel::P")
        draft = self.ledger.set_production_shelf(draft, "panel::P", "B2")

        group = draft.group("panel::P")
        assert group.production_shelf_id == "B2"
        assert group.is_confirmed is False

    def test_clearing_source_shelf_stores_none(self):
        draft = self.ledger.set_source_shelf(_draft(self._ready_group()), "panel::P", "")

        assert draft.group("panel::P").source_shelf_id is None
