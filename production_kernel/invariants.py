"""
Production Kernel Invariants Contract.

These invariants hold regardless of configuration.  This module declares
them explicitly; enforcement lives in the delivery ledger, the allocation
splitter, the inventory move engine, the shelf_stock check constraint,
and the lifecycle controller.
"""

from enum import Enum, unique


@unique
class ProductionInvariant(str, Enum):
    """Non-configurable invariants enforced by the production core."""

    DERIVED_DELIVERY = "derived_delivery"
    """A delivery row's delivered quantity is max(0, length x width x
    quantity) and a group's total is the sum of its rows.  Both are
    computed properties and are never stored independently."""

    ALLOCATION_CONSERVATION = "allocation_conservation"
    """A pooled delivered quantity splits across requirements, and each
    requirement's share across its pieces, summing exactly to the input.
    The last element in input order absorbs the rounding remainder."""

    NON_NEGATIVE_STOCK = "non_negative_stock"
    """Shelf stock never goes below zero.  Move batches are planned in
    full before any write and rejected as a whole."""

    CONFIRMATION_PRECONDITIONS = "confirmation_preconditions"
    """A material group is confirmed only with a selected product, a
    source shelf holding stock of it, a production shelf, and a positive
    delivered total."""

    ONE_WAY_LIFECYCLE = "one_way_lifecycle"
    """Orders move pending -> in_progress -> completed; the only way back
    is stop (in_progress -> pending), which reverses the start moves."""


ALL_PRODUCTION_INVARIANTS: frozenset[ProductionInvariant] = frozenset(ProductionInvariant)

# The kernel package may not import from these packages.
# Enforced by tests/architecture/test_kernel_boundary.py.
FORBIDDEN_KERNEL_IMPORTS: tuple[str, ...] = (
    "production_engines",
    "production_services",
    "production_config",
)

# Engines stay pure: no database, no services, no config.
FORBIDDEN_ENGINE_IMPORTS: tuple[str, ...] = (
    "sqlalchemy",
    "production_kernel.db",
    "production_kernel.models",
    "production_kernel.selectors",
    "production_services",
    "production_config",
)
