"""Multi-stage bake pipeline.

Every stage is planned up front, so configuration and identity errors fail
the run before any build starts. Stages then execute in declaration order,
gated by their ``requires`` and ``needs``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Mapping, Sequence

from matrix_bakery.artifacts.router import ArtifactRouter, artifact_qualifier, spec_for
from matrix_bakery.artifacts.stores import ArtifactStore, LocalArtifactStore, LocalPagesStore, PagesStore
from matrix_bakery.config.paths import Paths
from matrix_bakery.dispatch.backends import BuildBackend, ExtractionBackend
from matrix_bakery.dispatch.results import BuildStatus
from matrix_bakery.matrix.bake_spec import BakeSpec, StageSpec
from matrix_bakery.matrix.compiler import PlannedJob, plan_stage
from matrix_bakery.orchestration.report import RunReport, StageReport, StageStatus
from matrix_bakery.orchestration.run import execute_jobs
from matrix_bakery.utils.errors import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StagePlan:
    stage: StageSpec
    jobs: tuple[PlannedJob, ...]


def plan_pipeline(spec: BakeSpec) -> list[StagePlan]:
    """Plan every stage; raises on the first configuration or collision error."""
    plans = [StagePlan(stage, tuple(plan_stage(spec, stage))) for stage in spec.effective_stages()]
    check_artifact_names(spec, plans)
    return plans


def check_artifact_names(spec: BakeSpec, plans: Sequence[StagePlan]) -> None:
    """Reject planned jobs that would publish under the same generic artifact name.

    The name only carries the qualifier dimensions, so cells differing in any
    other identity dimension map to the same channel.
    """

    owners: dict[tuple[str, str], str] = {}
    for plan in plans:
        artifacts = {**spec.artifacts, **plan.stage.artifacts}
        for job in plan.jobs:
            artifact = spec_for(artifacts, job.cell)
            if artifact is None:
                continue
            key = (artifact_qualifier(job.cell), artifact.dst)
            previous = owners.setdefault(key, job.identity)
            if previous != job.identity:
                raise ConfigurationError(
                    ctx={
                        "reason": "artifact name collision",
                        "artifact": "-".join(part for part in key if part),
                        "identities": (previous, job.identity),
                    }
                )


def missing_requirements(spec: BakeSpec, stage: StageSpec) -> list[str]:
    """``dimension=value`` pairs the stage requires but the run registry lacks."""
    missing: list[str] = []
    for dim, value in stage.requires.items():
        if dim not in spec.registry or value not in spec.registry.get(dim).values:
            missing.append(f"{dim}={value}")
    return missing


def stage_gate(spec: BakeSpec, stage: StageSpec, statuses: Mapping[str, str]) -> str | None:
    """Return the reason a stage must be skipped, or ``None`` when it may run."""

    missing = missing_requirements(spec, stage)
    if missing:
        return "requires " + ", ".join(missing)
    blocked = [f"{need} {statuses.get(need, StageStatus.SKIPPED)}" for need in stage.needs
               if statuses.get(need) != StageStatus.SUCCEEDED]
    if blocked:
        return "needs " + ", ".join(blocked)
    return None


def run_pipeline(
    spec: BakeSpec,
    *,
    backend: BuildBackend,
    paths: Paths,
    extractor: ExtractionBackend | None = None,
    artifact_store: ArtifactStore | None = None,
    pages_store: PagesStore | None = None,
) -> RunReport:
    plans = plan_pipeline(spec)

    router = ArtifactRouter(
        paths,
        extractor if extractor is not None else backend,
        artifact_store if artifact_store is not None else LocalArtifactStore(paths.artifacts_dir),
        pages_store if pages_store is not None else LocalPagesStore(paths.pages_dir),
    )
    report = RunReport(artifacts_mandatory=spec.artifacts_mandatory)
    statuses: dict[str, str] = {}

    for plan in plans:
        stage = plan.stage
        reason = stage_gate(spec, stage, statuses)
        if reason is not None:
            logger.info("stage %s skipped: %s", stage.name, reason)
            statuses[stage.name] = StageStatus.SKIPPED
            report.stages.append(StageReport(stage.name, StageStatus.SKIPPED, reason=reason))
            continue

        fail_fast = spec.fail_fast if stage.fail_fast is None else stage.fail_fast
        logger.info("stage %s: %d job(s)", stage.name, len(plan.jobs))
        jobs = execute_jobs(
            plan.jobs,
            backend=backend,
            router=router,
            artifacts={**spec.artifacts, **stage.artifacts},
            fail_fast=fail_fast,
            max_workers=spec.max_workers,
        )
        report.jobs.extend(jobs)

        ok = all(job.build_status is BuildStatus.SUCCESS for job in jobs)
        if ok and spec.artifacts_mandatory:
            ok = not any(job.artifact_failed for job in jobs)
        statuses[stage.name] = StageStatus.SUCCEEDED if ok else StageStatus.FAILED
        report.stages.append(StageReport(stage.name, statuses[stage.name], jobs=len(jobs)))

    summary = report.summary()
    logger.info(
        "run %s: %d job(s), %d succeeded, %d failed, %d cancelled, %d artifact failure(s)",
        "succeeded" if report.succeeded else "failed",
        summary["jobs"],
        summary[BuildStatus.SUCCESS.value],
        summary[BuildStatus.FAILURE.value],
        summary[BuildStatus.CANCELLED.value],
        summary["artifact_failures"],
    )
    return report


__all__ = [
    "StagePlan",
    "check_artifact_names",
    "missing_requirements",
    "plan_pipeline",
    "run_pipeline",
    "stage_gate",
]
