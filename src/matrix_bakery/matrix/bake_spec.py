"""Run-level configuration bundle consumed by the orchestrator."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping

from matrix_bakery.artifacts.spec import ArtifactSpec
from matrix_bakery.constants import TARGET_DIMENSION
from matrix_bakery.matrix.models import DimensionRegistry, OverrideRule
from matrix_bakery.utils.errors import ConfigurationError

DEFAULT_STAGE = "bake"


@dataclass(frozen=True)
class StageSpec:
    """One bake over the shared registry with its own targets and overrides."""

    name: str
    targets: tuple[str, ...] | None = None
    dimensions: Mapping[str, tuple[str, ...]] = field(default_factory=dict)
    requires: Mapping[str, str] = field(default_factory=dict)
    needs: tuple[str, ...] = ()
    excludes: tuple[OverrideRule, ...] = ()
    includes: tuple[OverrideRule, ...] = ()
    artifacts: Mapping[str, ArtifactSpec] = field(default_factory=dict)
    fail_fast: bool | None = None


@dataclass(frozen=True)
class BakeSpec:
    registry: DimensionRegistry
    excludes: tuple[OverrideRule, ...] = ()
    includes: tuple[OverrideRule, ...] = ()
    artifacts: Mapping[str, ArtifactSpec] = field(default_factory=dict)
    fail_fast: bool = False
    artifacts_mandatory: bool = False
    allow_unconditional: bool = False
    max_workers: int = 4
    stages: tuple[StageSpec, ...] = ()

    def __post_init__(self) -> None:
        if TARGET_DIMENSION not in self.registry:
            raise ConfigurationError(
                ctx={"reason": "registry must declare the target dimension"}
            )
        if not isinstance(self.max_workers, int) or self.max_workers < 1:
            raise ConfigurationError(
                ctx={"reason": "max_workers must be a positive integer", "value": self.max_workers}
            )
        seen: list[str] = []
        for stage in self.stages:
            if stage.name in seen:
                raise ConfigurationError(ctx={"reason": "duplicate stage name", "stage": stage.name})
            late = [need for need in stage.needs if need not in seen]
            if late:
                raise ConfigurationError(
                    ctx={
                        "reason": "stage needs must name earlier stages",
                        "stage": stage.name,
                        "needs": tuple(late),
                    }
                )
            seen.append(stage.name)

    def effective_stages(self) -> tuple[StageSpec, ...]:
        """Declared stages, or a single implicit stage covering the registry."""
        if self.stages:
            return self.stages
        return (StageSpec(name=DEFAULT_STAGE),)


__all__ = ["BakeSpec", "DEFAULT_STAGE", "StageSpec"]
