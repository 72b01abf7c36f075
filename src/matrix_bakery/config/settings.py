"""Environment-driven defaults for dimension values.

Each axis falls back to ``BAKERY_<DIMENSION>`` (a JSON array) and then to the
built-in defaults in :mod:`matrix_bakery.constants`.
"""

from __future__ import annotations

import json
import os
from typing import Mapping

from ..constants import DEFAULT_DIMENSION_VALUES, ENV_PREFIX
from ..utils.errors import ConfigurationError

CONFIG_PATH_ENV = "BAKERY_CONFIG"
IN_PROCESS_ENV = "BAKERY_IN_PROCESS"


def env_var_for(dimension: str) -> str:
    return f"{ENV_PREFIX}{dimension.upper()}"


def dimension_values_from_env(
    dimension: str,
    *,
    environ: Mapping[str, str] | None = None,
) -> tuple[str, ...] | None:
    """Return the override for ``dimension`` or ``None`` when unset/blank."""

    env = os.environ if environ is None else environ
    var = env_var_for(dimension)
    raw = env.get(var)
    if raw is None or not raw.strip():
        return None
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ConfigurationError(
            ctx={"reason": "env override is not JSON", "variable": var},
            cause=exc,
        ) from exc
    if not isinstance(data, list) or not all(isinstance(item, str) for item in data):
        raise ConfigurationError(
            ctx={"reason": "env override must be a JSON array of strings", "variable": var}
        )
    return tuple(data)


def default_dimension_values(
    dimension: str,
    *,
    environ: Mapping[str, str] | None = None,
) -> tuple[str, ...] | None:
    override = dimension_values_from_env(dimension, environ=environ)
    if override is not None:
        return override
    defaults = DEFAULT_DIMENSION_VALUES.get(dimension)
    return tuple(defaults) if defaults is not None else None


__all__ = [
    "CONFIG_PATH_ENV",
    "IN_PROCESS_ENV",
    "default_dimension_values",
    "dimension_values_from_env",
    "env_var_for",
]
