"""
Tests for the immutable start draft and quantity values.

Covers:
- DeliveryRow.delivered_qty derivation and clamping
- Draft / group serialization round trip
- Confirmation dropped by evolve
- Quantity parsing and rendering helpers
"""

from decimal import Decimal

import pytest

from production_kernel.domain.draft import DeliveryRow, Draft, StartMaterialGroup
from production_kernel.domain.production import PieceRequirement, UnresolvedRow
from production_kernel.domain.values import (
    InventoryMove,
    clamp_non_negative,
    quantity_to_str,
    to_decimal,
)
from production_kernel.exceptions import GroupNotFoundError, QuantityOutOfRangeError


def _group(**changes):
    piece = PieceRequirement(
        key="o1_0_0_piece", index=0, name="top",
        length=Decimal("2"), width=Decimal("0.5"), quantity=Decimal("1"),
        total_quantity=Decimal("4"), main_unit="m2", sub_unit="ft2",
        per_item_usage=Decimal("1"), total_usage=Decimal("4"),
    )
    fields = dict(
        key="panel::P",
        category="panel",
        category_label="Panels",
        product_id="P",
        product_name="sheet",
        product_code="SHEET",
        pieces=(piece,),
    )
    fields.update(changes)
    return StartMaterialGroup(**fields)


class TestDeliveryRow:
    """delivered_qty is always derived from the row's dimensions."""

    def test_product_of_dimensions(self):
        row = DeliveryRow("r", length=Decimal("1.5"), width=Decimal("2"), quantity=Decimal("3"))

        assert row.delivered_qty == Decimal("9")

    def test_zero_dimension(self):
        row = DeliveryRow("r", length=Decimal("0"), width=Decimal("2"), quantity=Decimal("3"))

        assert row.delivered_qty == Decimal("0")

    def test_negative_product_clamped(self):
        row = DeliveryRow("r", length=Decimal("-1"), width=Decimal("2"), quantity=Decimal("3"))

        assert row.delivered_qty == Decimal("0")

    def test_large_product_is_exact(self):
        row = DeliveryRow("r", length=Decimal("1e10"), width=Decimal("1e10"), quantity=Decimal("1e5"))

        assert row.delivered_qty == Decimal("1e25")

    def test_unstorable_product_raises_typed_error(self):
        row = DeliveryRow("r", length=Decimal("1e20"), width=Decimal("1e10"), quantity=Decimal("1"))

        with pytest.raises(QuantityOutOfRangeError) as exc_info:
            row.delivered_qty
        assert exc_info.value.code == "QUANTITY_OUT_OF_RANGE"

    def test_group_total(self):
        group = _group(
            delivery_rows=(
                DeliveryRow("a", length=Decimal("2"), width=Decimal("2"), quantity=Decimal("1")),
                DeliveryRow("b", length=Decimal("1"), width=Decimal("1"), quantity=Decimal("6")),
            )
        )

        assert group.total_delivered_qty == Decimal("10")


class TestDraft:
    """Draft lookup, replacement and serialization."""

    def test_unknown_group(self):
        with pytest.raises(GroupNotFoundError):
            Draft(groups=(_group(),)).group("frame::R")

    def test_evolve_drops_confirmation(self):
        group = _group(is_confirmed=True)

        assert group.evolve(source_shelf_id="A").is_confirmed is False
        assert group.evolve(is_confirmed=True).is_confirmed is True

    def test_with_group_replaces_by_key(self):
        draft = Draft(groups=(_group(), _group(key="frame::R", product_id="R")))
        updated = draft.with_group(_group(source_shelf_id="A"))

        assert updated.group("panel::P").source_shelf_id == "A"
        assert updated.group("frame::R").product_id == "R"
        assert draft.group("panel::P").source_shelf_id is None

    def test_round_trip(self):
        """A draft stored by a caller restores to an equal draft."""
        draft = Draft(
            groups=(
                _group(
                    source_shelf_id="A",
                    production_shelf_id="B",
                    delivery_rows=(
                        DeliveryRow("d1", name="top", length=Decimal("2"), width=Decimal("0.5"),
                                    quantity=Decimal("4"), main_unit="m2", piece_key="o1_0_0_piece"),
                    ),
                    is_confirmed=True,
                ),
            ),
            unresolved_rows=(UnresolvedRow("o2", 1, "loose_1", "panel"),),
        )

        data = draft.to_dict()
        assert data["groups"][0]["total_delivered_qty"] == "4"
        assert data["groups"][0]["delivery_rows"][0]["delivered_qty"] == "4"
        assert Draft.from_dict(data) == draft

    def test_confirmed_groups(self):
        draft = Draft(groups=(_group(is_confirmed=True), _group(key="frame::R")))

        assert [g.key for g in draft.confirmed_groups] == ["panel::P"]


class TestQuantityValues:
    """Parsing and rendering of quantities."""

    @pytest.mark.parametrize(
        "raw, expected",
        [
            (None, Decimal("0")),
            ("", Decimal("0")),
            ("abc", Decimal("0")),
            ("NaN", Decimal("0")),
            (True, Decimal("0")),
            (0.1, Decimal("0.1")),
            (" 2.50 ", Decimal("2.50")),
            (7, Decimal("7")),
        ],
    )
    def test_to_decimal(self, raw, expected):
        assert to_decimal(raw) == expected

    def test_clamp_non_negative(self):
        assert clamp_non_negative("-3") == Decimal("0")
        assert clamp_non_negative("3") == Decimal("3")

    def test_quantity_to_str(self):
        assert quantity_to_str(Decimal("20.000000000")) == "20"
        assert quantity_to_str(Decimal("0.1000")) == "0.1"
        assert quantity_to_str(Decimal("-0")) == "0"
        assert quantity_to_str(Decimal("1E+3")) == "1000"

    def test_move_round_trip(self):
        move = InventoryMove("P", "A", "B", Decimal("27.5"))

        assert InventoryMove.from_dict(move.to_dict()) == move
        assert move.reversed().reversed() == move
