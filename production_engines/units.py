"""
Module: production_engines.units
Responsibility:
    Convert stock quantities between the units products are kept in, so a
    product's secondary-unit stock figure can be derived from its
    main-unit total.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Conversions stay within one dimension: area converts through square
      feet, length through metres.
    - Count units (piece, pack) and cross-dimension pairs convert to 0.
    - Results are rounded half-up to 3 decimal places; converting a unit
      to itself only rounds.

Usage:
    convert_quantity(Decimal("1"), "m2", "ft2")  # Decimal("10.764")
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

from production_kernel.domain.values import ZERO, to_decimal

CONVERSION_EXPONENT = Decimal("0.001")

# Square-foot equivalents used by the stock sheets.
FT2_IN_CM2 = Decimal("930.25")
FT2_IN_MM2 = Decimal("93025")
FT2_IN_M2 = Decimal("0.0929025")
M_IN_CM = Decimal("100")
M_IN_MM = Decimal("1000")


class Unit(str, Enum):
    """Stock units."""

    PIECE = "piece"
    PACK = "pack"
    SQUARE_FOOT = "ft2"
    SQUARE_CENTIMETER = "cm2"
    SQUARE_MILLIMETER = "mm2"
    SQUARE_METER = "m2"
    MILLIMETER = "mm"
    CENTIMETER = "cm"
    METER = "m"


COUNT_UNITS = frozenset({Unit.PIECE, Unit.PACK})

# Units per square foot.
_PER_SQUARE_FOOT: dict[Unit, Decimal] = {
    Unit.SQUARE_FOOT: Decimal("1"),
    Unit.SQUARE_CENTIMETER: FT2_IN_CM2,
    Unit.SQUARE_MILLIMETER: FT2_IN_MM2,
    Unit.SQUARE_METER: FT2_IN_M2,
}

# Units per metre.
_PER_METER: dict[Unit, Decimal] = {
    Unit.METER: Decimal("1"),
    Unit.CENTIMETER: M_IN_CM,
    Unit.MILLIMETER: M_IN_MM,
}


def parse_unit(value: str | Unit | None) -> Unit | None:
    """Return the Unit for ``value``, or None when it is not a known unit."""
    if value is None:
        return None
    if isinstance(value, Unit):
        return value
    try:
        return Unit(str(value).strip().lower())
    except ValueError:
        return None


def _round(value: Decimal, places: int = 3) -> Decimal:
    exponent = CONVERSION_EXPONENT if places == 3 else Decimal(1).scaleb(-places)
    return value.quantize(exponent, rounding=ROUND_HALF_UP)


def convert_quantity(
    value: Decimal | int | float | str | None,
    from_unit: str | Unit | None,
    to_unit: str | Unit | None,
    places: int = 3,
) -> Decimal:
    """Convert ``value`` from ``from_unit`` to ``to_unit``.

    Postconditions:
        - Same unit on both sides: the value rounded to ``places`` (default 3).
        - A count unit on either side, an unknown unit, or units of
          different dimensions: 0.
        - Otherwise the converted value, rounded the same way.
    """
    amount = to_decimal(value)
    if from_unit is not None and from_unit == to_unit:
        return _round(amount, places)

    source = parse_unit(from_unit)
    target = parse_unit(to_unit)
    if source is None or target is None:
        return ZERO
    if source == target:
        return _round(amount, places)
    if source in COUNT_UNITS or target in COUNT_UNITS:
        return ZERO

    if source in _PER_SQUARE_FOOT and target in _PER_SQUARE_FOOT:
        return _round(amount / _PER_SQUARE_FOOT[source] * _PER_SQUARE_FOOT[target], places)
    if source in _PER_METER and target in _PER_METER:
        return _round(amount / _PER_METER[source] * _PER_METER[target], places)
    return ZERO
