"""
Value objects for quantities and stock movements.

Responsibility:
    Decimal quantity handling (tolerant parsing of operator input,
    quantization, JSON-safe rendering) and the immutable InventoryMove /
    StockDelta values passed between the engines and the move service.

Architecture position:
    Kernel > Domain -- pure, zero I/O.

Invariants enforced:
    - Quantities are Decimal, never float.  Floats that arrive from JSON are
      converted through ``str()`` so 0.1 stays 0.1.
    - Computed quantities carry at most 9 decimal places, matching the
      Numeric(38, 9) storage columns.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Context, Decimal, InvalidOperation
from typing import Any

from production_kernel.exceptions import QuantityOutOfRangeError

QUANTITY_PLACES = 9
QUANTITY_INTEGER_DIGITS = 29
QUANTITY_EXPONENT = Decimal(1).scaleb(-QUANTITY_PLACES)
ZERO = Decimal("0")

# Exact for the product of three storable quantities.
QUANTITY_CONTEXT = Context(prec=120)


def to_decimal(value: Any) -> Decimal:
    """Parse a raw quantity.

    None, empty strings, non-numeric text, NaN and infinities all become 0;
    booleans are rejected the same way.
    """
    if value is None or isinstance(value, bool):
        return ZERO
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            return ZERO
    if not result.is_finite():
        return ZERO
    return result


def quantize_quantity(value: Decimal) -> Decimal:
    """Round to storage precision (9 places, half-up).

    Raises QuantityOutOfRangeError when ``value`` has more integer digits
    than the Numeric(38, 9) columns hold.
    """
    if value.is_finite() and value.adjusted() >= QUANTITY_INTEGER_DIGITS:
        raise QuantityOutOfRangeError(value)
    return value.quantize(QUANTITY_EXPONENT, rounding=ROUND_HALF_UP, context=QUANTITY_CONTEXT)


def clamp_non_negative(value: Any) -> Decimal:
    """Parse ``value`` and clamp it to >= 0."""
    parsed = to_decimal(value)
    return parsed if parsed > ZERO else ZERO


def quantity_to_str(value: Decimal) -> str:
    """Render a quantity for JSON storage without exponent or trailing zeros."""
    text = format(quantize_quantity(value).normalize(), "f")
    return "0" if text in ("-0", "0") else text


@dataclass(frozen=True, slots=True)
class InventoryMove:
    """
    A shelf-to-shelf stock movement of one product.

    Contract:
        Frozen value.  ``from_shelf_id`` may equal ``to_shelf_id`` for
        hand-off records, which are only ever consumed, never applied.
    """

    product_id: str
    from_shelf_id: str | None
    to_shelf_id: str | None
    quantity: Decimal

    @property
    def route_key(self) -> tuple[str, str | None, str | None]:
        return (self.product_id, self.from_shelf_id, self.to_shelf_id)

    def reversed(self) -> InventoryMove:
        """The same move with source and destination swapped."""
        return InventoryMove(
            product_id=self.product_id,
            from_shelf_id=self.to_shelf_id,
            to_shelf_id=self.from_shelf_id,
            quantity=self.quantity,
        )

    def with_quantity(self, quantity: Decimal) -> InventoryMove:
        return InventoryMove(
            product_id=self.product_id,
            from_shelf_id=self.from_shelf_id,
            to_shelf_id=self.to_shelf_id,
            quantity=quantity,
        )

    def to_dict(self) -> dict[str, str | None]:
        return {
            "product_id": self.product_id,
            "from_shelf_id": self.from_shelf_id,
            "to_shelf_id": self.to_shelf_id,
            "quantity": quantity_to_str(self.quantity),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> InventoryMove:
        return cls(
            product_id=str(data.get("product_id") or ""),
            from_shelf_id=data.get("from_shelf_id") or None,
            to_shelf_id=data.get("to_shelf_id") or None,
            quantity=to_decimal(data.get("quantity")),
        )


@dataclass(frozen=True, slots=True)
class StockDelta:
    """A signed stock change for one (product, shelf) pair."""

    product_id: str
    shelf_id: str
    delta: Decimal

    @property
    def stock_key(self) -> tuple[str, str]:
        return (self.product_id, self.shelf_id)
