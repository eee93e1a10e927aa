"""
Module: production_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    calculation engines.  This is the canonical import surface for
    production_services.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import production_kernel.domain, production_kernel.exceptions,
    production_kernel.logging_config and sibling engine modules.
    MUST NOT import production_services, production_config, SQLAlchemy or
    the kernel's db/models/selectors packages.

Invariants enforced:
    - Purity: engines never read the clock or the database.  Timestamps and
      stock balances are passed in by the services.
    - Decimal-only arithmetic for every quantity.
    - Determinism: identical inputs (in identical order) give identical
      outputs.

Audit relevance:
    Aggregation and allocation are wrapped in ``@traced_engine`` and emit
    PRODUCTION_ENGINE_TRACE records with an input fingerprint and duration.

Usage:
    from production_engines import (
        AllocationSplitter,
        DeliveryLedger,
        MaterialRequirementAggregator,
    )
"""

from production_kernel.logging_config import get_logger

logger = get_logger("engines")

from production_engines.aggregation import (
    MaterialRequirementAggregator,
    normalize_requirement_rows,
    order_quantity,
)
from production_engines.allocation import (
    AllocationSplitter,
    RequirementAllocation,
    SplitResult,
    split_by_weight,
)
from production_engines.delivery import (
    DeliveryLedger,
    TransferMode,
    check_confirmable,
)
from production_engines.moves import (
    consumption_deltas,
    group_move,
    handover_moves,
    net_moves,
    order_moves_from_split,
    requirement_moves,
    reverse_moves,
    simulate_deltas,
    transfer_deltas,
    validate_move,
)
from production_engines.tracer import compute_input_fingerprint, traced_engine
from production_engines.units import Unit, convert_quantity, parse_unit

__all__ = [
    "AllocationSplitter",
    "DeliveryLedger",
    "MaterialRequirementAggregator",
    "RequirementAllocation",
    "SplitResult",
    "TransferMode",
    "Unit",
    "check_confirmable",
    "compute_input_fingerprint",
    "consumption_deltas",
    "convert_quantity",
    "group_move",
    "handover_moves",
    "net_moves",
    "normalize_requirement_rows",
    "order_moves_from_split",
    "order_quantity",
    "parse_unit",
    "requirement_moves",
    "reverse_moves",
    "simulate_deltas",
    "split_by_weight",
    "traced_engine",
    "transfer_deltas",
]
