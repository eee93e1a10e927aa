"""
production_config -- single public entrypoint for production configuration.

Responsibility:
    Provides the runtime configuration through ``get_active_config()``.
    Reading YAML and environment variables is the loader's job; no other
    component reads them directly.

Architecture position:
    Configuration.  Sits above ``production_kernel`` and beside
    ``production_services``.  The kernel MUST NEVER import from
    ``production_config``; ``init_engine_from_config`` reads the config by
    attribute only.

Failure modes:
    - ``ValueError`` -- unknown keys or invalid values.
    - ``FileNotFoundError`` / ``yaml.YAMLError`` -- bad override file.

Audit relevance:
    The first ``get_active_config()`` call emits a
    ``PRODUCTION_CONFIG_TRACE`` log entry with the effective settings
    (database URL with the password masked).
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path

from sqlalchemy.engine import make_url

from production_config.loader import load_config
from production_config.schema import ProductionConfig

_logger = logging.getLogger("production_kernel.config")

_active: ProductionConfig | None = None
_lock = threading.Lock()


def get_active_config(path: Path | str | None = None) -> ProductionConfig:
    """Return the cached configuration, loading it on first use.

    ``path`` is only honoured by the call that loads; later calls return
    the cached config until ``reset_active_config()``.
    """
    global _active
    with _lock:
        if _active is None:
            _active = load_config(path)
            _logger.info(
                "PRODUCTION_CONFIG_TRACE",
                extra={
                    "trace_type": "PRODUCTION_CONFIG_TRACE",
                    "database_url": make_url(_active.database_url).render_as_string(
                        hide_password=True
                    ),
                    "log_level": _active.log_level,
                    "production_warehouse_markers": list(
                        _active.production_warehouse_markers
                    ),
                    "record_stock_transfers": _active.record_stock_transfers,
                },
            )
        return _active


def reset_active_config() -> None:
    """Drop the cached configuration.  Tests only."""
    global _active
    with _lock:
        _active = None


__all__ = [
    "ProductionConfig",
    "get_active_config",
    "load_config",
    "reset_active_config",
]
