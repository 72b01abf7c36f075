from typing import Literal, Tuple, get_args, cast

# Canonical build axes shared across the codebase
DimensionName = Literal[
    "target",
    "profile",
    "toolchain",
    "feature_set",
    "os_name",
    "os_version",
    "arch",
    "host",
]

# Canonical axis sequence (single source of truth for default nesting order),
# derived from the Literal at import time to avoid drift.
DIMENSIONS: Tuple[DimensionName, ...] = cast(Tuple[DimensionName, ...], get_args(DimensionName))

RuleKind = Literal["exclude", "include"]

__all__ = ["DimensionName", "DIMENSIONS", "RuleKind"]
