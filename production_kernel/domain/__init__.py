"""
Pure domain layer.

This module contains pure data transfer objects and domain logic
with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- Time/clock (other than the injectable Clock itself)
- I/O

All domain objects are immutable and deterministic.
"""

from production_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from production_kernel.domain.draft import (
    DeliveryRow,
    Draft,
    OrderRequirement,
    StartMaterialGroup,
)
from production_kernel.domain.production import (
    MaterialRequirementRow,
    OrderMaterialSource,
    OrderStatus,
    PieceRequirement,
    ProductMeta,
    StockTransferType,
    UnresolvedRow,
)
from production_kernel.domain.values import (
    QUANTITY_EXPONENT,
    ZERO,
    InventoryMove,
    StockDelta,
    clamp_non_negative,
    quantity_to_str,
    quantize_quantity,
    to_decimal,
)
from production_kernel.domain.workflow import Guard, Transition, Workflow

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "DeliveryRow",
    "Draft",
    "OrderRequirement",
    "StartMaterialGroup",
    "MaterialRequirementRow",
    "OrderMaterialSource",
    "OrderStatus",
    "PieceRequirement",
    "ProductMeta",
    "StockTransferType",
    "UnresolvedRow",
    "QUANTITY_EXPONENT",
    "ZERO",
    "InventoryMove",
    "StockDelta",
    "clamp_non_negative",
    "quantity_to_str",
    "quantize_quantity",
    "to_decimal",
    "Guard",
    "Transition",
    "Workflow",
]
