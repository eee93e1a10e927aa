"""
Configuration Loader (``production_config.loader``).

Responsibility
--------------
Builds a ``ProductionConfig`` from three layers, later layers winning:

1. the packaged ``defaults.yaml``,
2. an optional override YAML file,
3. environment variables ``PRODUCTION_DATABASE_URL``,
   ``PRODUCTION_LOG_LEVEL`` and ``PRODUCTION_ECHO_SQL``.

Runtime code should go through ``production_config.get_active_config()``.

Failure modes
-------------
* Missing override file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown keys or invalid values  -> ``ValueError``.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import fields
from pathlib import Path
from typing import Any

import yaml

from production_config.schema import ProductionConfig

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"

ENV_DATABASE_URL = "PRODUCTION_DATABASE_URL"
ENV_LOG_LEVEL = "PRODUCTION_LOG_LEVEL"
ENV_ECHO_SQL = "PRODUCTION_ECHO_SQL"

_TRUE_STRINGS = frozenset({"1", "true", "yes", "on"})
_FALSE_STRINGS = frozenset({"0", "false", "no", "off", ""})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a YAML mapping; an empty file loads as {}.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping, got {type(data).__name__}")
    return data


def parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_STRINGS:
        return True
    if text in _FALSE_STRINGS:
        return False
    raise ValueError(f"Not a boolean: {value!r}")


def _env_overrides(env: Mapping[str, str]) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    if env.get(ENV_DATABASE_URL):
        overrides["database_url"] = env[ENV_DATABASE_URL]
    if env.get(ENV_LOG_LEVEL):
        overrides["log_level"] = env[ENV_LOG_LEVEL]
    if ENV_ECHO_SQL in env:
        overrides["echo_sql"] = parse_bool(env[ENV_ECHO_SQL])
    return overrides


def parse_config(data: Mapping[str, Any]) -> ProductionConfig:
    """Build a ProductionConfig from a merged mapping."""
    known = {f.name for f in fields(ProductionConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"Unknown configuration keys: {', '.join(unknown)}")

    kwargs = dict(data)
    if "production_warehouse_markers" in kwargs:
        markers = kwargs["production_warehouse_markers"]
        if isinstance(markers, str):
            markers = [markers]
        kwargs["production_warehouse_markers"] = tuple(str(m) for m in markers or ())
    for key in ("echo_sql", "record_stock_transfers"):
        if key in kwargs:
            kwargs[key] = parse_bool(kwargs[key])
    for key in ("pool_size", "max_overflow", "sub_stock_places"):
        if key in kwargs:
            kwargs[key] = int(kwargs[key])
    if "log_level" in kwargs:
        kwargs["log_level"] = str(kwargs["log_level"])
    return ProductionConfig(**kwargs)


def load_config(
    path: Path | str | None = None,
    env: Mapping[str, str] | None = None,
) -> ProductionConfig:
    """Load defaults, then ``path``, then environment overrides.

    ``env`` defaults to ``os.environ``; tests pass a plain dict.
    """
    data = load_yaml_file(DEFAULTS_PATH)
    if path is not None:
        data.update(load_yaml_file(Path(path)))
    data.update(_env_overrides(os.environ if env is None else env))
    return parse_config(data)
