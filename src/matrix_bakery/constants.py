"""Centralized constants for dimensions, identities and work-root layout.

Defines the reserved identity separator, the default axis values used when a
config omits a dimension, and the directory names laid out under the work
root. Update here to change project-wide conventions.
"""

from types import MappingProxyType

from .types import DIMENSIONS

# Joins identity dimension values; no identity value may contain it.
IDENTITY_SEPARATOR = "--"

# Joins the values of a cell into its human-readable job label.
DISPLAY_SEPARATOR = " "

# Axes that select where a job runs rather than what it builds.
NON_IDENTITY_DIMENSIONS = frozenset({"host"})

# Dimension feeding the artifact-spec lookup.
TARGET_DIMENSION = "target"

# Dimensions qualifying the generic artifact channel name.
QUALIFIER_DIMENSIONS = ("profile", "feature_set")

DEFAULT_DIMENSION_VALUES = MappingProxyType(
    {
        "profile": ("test", "release"),
        "feature_set": ("none", "default", "all"),
        "toolchain": ("nightly", "stable"),
        "os_name": ("debian",),
        "os_version": ("testing-slim",),
        "arch": ("x86_64-linux-gnu",),
        "host": ("X64",),
    }
)

# Environment variable prefix for per-dimension JSON overrides (BAKERY_PROFILE, ...).
ENV_PREFIX = "BAKERY_"

STAGING_DIRNAME = "staging"
BUILDS_DIRNAME = "builds"
ARTIFACTS_DIRNAME = "artifacts"
PAGES_DIRNAME = "pages"
REPORTS_DIRNAME = "reports"

DEFAULT_BUILD_COMMAND = "docker/bake.sh {target}"

__all__ = [
    "ARTIFACTS_DIRNAME",
    "BUILDS_DIRNAME",
    "DEFAULT_BUILD_COMMAND",
    "DEFAULT_DIMENSION_VALUES",
    "DIMENSIONS",
    "DISPLAY_SEPARATOR",
    "ENV_PREFIX",
    "IDENTITY_SEPARATOR",
    "NON_IDENTITY_DIMENSIONS",
    "PAGES_DIRNAME",
    "QUALIFIER_DIMENSIONS",
    "REPORTS_DIRNAME",
    "STAGING_DIRNAME",
    "TARGET_DIMENSION",
]
