"""
ProductionConfig schema.

The runtime settings of the production core: database wiring, logging
level, how production warehouses are recognized, the precision of the
derived sub-unit stock figure, and whether stock transfers are recorded.
YAML is parsed into this type by the loader.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

_VALID_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


@dataclass(frozen=True)
class ProductionConfig:
    """Validated, frozen production settings."""

    database_url: str = "sqlite:///:memory:"
    echo_sql: bool = False
    pool_size: int = 5
    max_overflow: int = 10
    log_level: str = "INFO"
    # Warehouse name fragments (lower case) marking production warehouses,
    # in addition to Warehouse.is_production.
    production_warehouse_markers: tuple[str, ...] = ("production",)
    sub_stock_places: int = 3
    record_stock_transfers: bool = True

    def __post_init__(self) -> None:
        if not self.database_url:
            raise ValueError("database_url must not be empty")
        if self.pool_size < 1:
            raise ValueError(f"pool_size must be >= 1, got {self.pool_size}")
        if self.max_overflow < 0:
            raise ValueError(f"max_overflow must be >= 0, got {self.max_overflow}")
        if self.log_level.upper() not in _VALID_LOG_LEVELS:
            raise ValueError(f"Unknown log_level: {self.log_level!r}")
        if not 0 <= self.sub_stock_places <= 9:
            raise ValueError(
                f"sub_stock_places must be between 0 and 9, got {self.sub_stock_places}"
            )
        object.__setattr__(self, "log_level", self.log_level.upper())
        object.__setattr__(
            self,
            "production_warehouse_markers",
            tuple(m.strip().lower() for m in self.production_warehouse_markers if m.strip()),
        )

    @property
    def logging_level(self) -> int:
        return logging.getLevelName(self.log_level)

    def to_dict(self) -> dict[str, Any]:
        return {
            "database_url": self.database_url,
            "echo_sql": self.echo_sql,
            "pool_size": self.pool_size,
            "max_overflow": self.max_overflow,
            "log_level": self.log_level,
            "production_warehouse_markers": list(self.production_warehouse_markers),
            "sub_stock_places": self.sub_stock_places,
            "record_stock_transfers": self.record_stock_transfers,
        }
