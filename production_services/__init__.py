"""
production_services -- Package init and public API.

Responsibility:
    Stateful orchestration that composes the pure engines
    (production_engines/) with database sessions and wall-clock time.
    This is the only layer that writes shelf stock or commits.

Architecture position:
    Services -- stateful orchestration over engines + kernel.

    Dependency direction (enforced by tests/architecture/test_kernel_boundary.py):
        production_services/ -> production_engines/  (allowed)
        production_services/ -> production_kernel/   (allowed)
        production_engines/  -> production_services/ (FORBIDDEN)
        production_kernel/   -> production_services/ (FORBIDDEN)
"""

from production_kernel.logging_config import get_logger

logger = get_logger("services")

from production_services.inventory_moves import InventoryMoveEngine
from production_services.lifecycle_service import (
    ProductionLifecycleController,
    TransitionResult,
    TransitionStatus,
    derive_group_status,
)
from production_services.workflows import PRODUCTION_ORDER_WORKFLOW

__all__ = [
    "InventoryMoveEngine",
    "PRODUCTION_ORDER_WORKFLOW",
    "ProductionLifecycleController",
    "TransitionResult",
    "TransitionStatus",
    "derive_group_status",
]
