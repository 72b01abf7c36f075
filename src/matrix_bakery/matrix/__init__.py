"""Build matrix: dimensions, override rules and job identities."""

from .bake_spec import BakeSpec, StageSpec
from .compiler import PlannedJob, compile_matrix, plan_jobs, plan_stage
from .expander import expand
from .identity import IdentityResolver, display_name, identify, resolve_identities
from .loader import load_spec, parse_spec_mapping
from .models import Dimension, DimensionRegistry, MatrixCell, OverrideRule
from .overrides import explain_exclusion, filter_cells, validate_rules

__all__ = [
    "BakeSpec",
    "Dimension",
    "DimensionRegistry",
    "IdentityResolver",
    "MatrixCell",
    "OverrideRule",
    "PlannedJob",
    "StageSpec",
    "compile_matrix",
    "display_name",
    "expand",
    "explain_exclusion",
    "filter_cells",
    "identify",
    "load_spec",
    "parse_spec_mapping",
    "plan_jobs",
    "plan_stage",
    "resolve_identities",
    "validate_rules",
]
