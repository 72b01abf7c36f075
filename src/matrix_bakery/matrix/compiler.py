"""Compilation pipeline: expand, filter and identify one stage's job set."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

from matrix_bakery.matrix.bake_spec import BakeSpec, StageSpec
from matrix_bakery.matrix.expander import expand, expected_size
from matrix_bakery.matrix.identity import IdentityResolver, display_name
from matrix_bakery.matrix.models import DimensionRegistry, MatrixCell, OverrideRule
from matrix_bakery.matrix.overrides import explain_exclusion, filter_cells, validate_rules
from matrix_bakery.constants import TARGET_DIMENSION

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlannedJob:
    """A surviving cell paired with its identity, ready for dispatch."""

    number: int
    identity: str
    cell: MatrixCell
    stage: str

    @property
    def name(self) -> str:
        return display_name(self.cell)

    @property
    def target(self) -> str:
        return self.cell[TARGET_DIMENSION]


def compile_matrix(
    registry: DimensionRegistry,
    excludes: Sequence[OverrideRule] = (),
    includes: Sequence[OverrideRule] = (),
    *,
    allow_unconditional: bool = False,
) -> list[MatrixCell]:
    """Validate rules, expand the registry and apply overrides.

    An empty dimension disables the run: no cells, inclusion rules included.
    """

    validate_rules(registry, excludes, includes, allow_unconditional=allow_unconditional)

    if registry.is_empty:
        empty = [d.name for d in registry.dimensions if d.is_empty]
        logger.info("matrix disabled by empty dimension(s): %s", ", ".join(empty))
        return []

    candidates = expand(registry)
    if logger.isEnabledFor(logging.DEBUG):
        for cell in candidates:
            rule = explain_exclusion(cell, excludes)
            if rule is not None:
                logger.debug("excluded %s by rule #%d %s", display_name(cell), rule.index, rule.as_dict())

    cells = filter_cells(candidates, excludes, includes, order=registry.names)
    logger.info(
        "matrix expanded to %d candidate(s), %d job(s) after overrides",
        expected_size(registry),
        len(cells),
    )
    return cells


def plan_jobs(
    registry: DimensionRegistry,
    excludes: Sequence[OverrideRule] = (),
    includes: Sequence[OverrideRule] = (),
    *,
    stage: str,
    allow_unconditional: bool = False,
) -> list[PlannedJob]:
    """Compile the job set and resolve identities before anything is dispatched."""

    resolver = IdentityResolver.for_registry(registry)
    resolver.check_registry(registry)
    cells = compile_matrix(registry, excludes, includes, allow_unconditional=allow_unconditional)
    return [
        PlannedJob(number=i, identity=identity, cell=cell, stage=stage)
        for i, (identity, cell) in enumerate(resolver.resolve(cells), start=1)
    ]


def stage_registry(spec: BakeSpec, stage: StageSpec) -> DimensionRegistry:
    overrides = dict(stage.dimensions)
    if stage.targets is not None:
        overrides[TARGET_DIMENSION] = stage.targets
    return spec.registry.replace(overrides) if overrides else spec.registry


def plan_stage(spec: BakeSpec, stage: StageSpec) -> list[PlannedJob]:
    """Plan one stage; run-level rules apply after the stage's own."""

    return plan_jobs(
        stage_registry(spec, stage),
        (*stage.excludes, *spec.excludes),
        (*stage.includes, *spec.includes),
        stage=stage.name,
        allow_unconditional=spec.allow_unconditional,
    )


__all__ = ["PlannedJob", "compile_matrix", "plan_jobs", "plan_stage", "stage_registry"]
