"""Bake group assets: plan the matrix, register job partitions, run the bake."""

from __future__ import annotations

from typing import Dict, Iterable

import pandas as pd
from dagster import MetadataValue

from matrix_bakery.artifacts.router import ArtifactRouter
from matrix_bakery.assets._decorators import bake_asset
from matrix_bakery.assets.partitions import bake_jobs_partitions
from matrix_bakery.config.paths import Paths
from matrix_bakery.dispatch.results import BuildStatus
from matrix_bakery.matrix.bake_spec import StageSpec
from matrix_bakery.matrix.compiler import PlannedJob
from matrix_bakery.orchestration.pipeline import plan_pipeline, run_pipeline
from matrix_bakery.orchestration.run import execute_jobs
from matrix_bakery.utils.errors import BuildFailure, ConfigurationError

PLAN_COLUMNS = ["stage", "number", "identity", "name"]


def plan_frame(plans) -> pd.DataFrame:
    rows = []
    for plan in plans:
        for job in plan.jobs:
            rows.append(
                {
                    "stage": job.stage,
                    "number": job.number,
                    "identity": job.identity,
                    "name": job.name,
                    **job.cell.as_dict(),
                }
            )
    if not rows:
        return pd.DataFrame(columns=PLAN_COLUMNS)
    return pd.DataFrame(rows)


@bake_asset(required_resource_keys={"bake_config"})
def bake_plan(context) -> pd.DataFrame:
    """Planned jobs of every stage, one row per job identity."""
    spec = context.resources.bake_config.get_spec()
    plans = plan_pipeline(spec)
    df = plan_frame(plans)
    context.add_output_metadata(
        {
            "jobs": MetadataValue.int(len(df)),
            "stages": MetadataValue.text(", ".join(plan.stage.name for plan in plans)),
        }
    )
    return df


@bake_asset(required_resource_keys={"bake_config"})
def register_bake_partitions(context, bake_plan: pd.DataFrame) -> Dict[str, int]:
    """Register one ``bake_jobs`` partition per planned identity (add-only)."""
    instance = context.instance

    def _add_only(name: str, keys: Iterable[str]) -> int:
        keys = [k for k in keys if isinstance(k, str) and k]
        if not keys:
            return 0
        existing = set(instance.get_dynamic_partitions(name))
        to_add = [k for k in dict.fromkeys(keys) if k not in existing]
        if to_add:
            instance.add_dynamic_partitions(name, to_add)
        return len(to_add)

    df = bake_plan if isinstance(bake_plan, pd.DataFrame) else pd.DataFrame()
    added = 0 if df.empty else _add_only(bake_jobs_partitions.name, df["identity"].astype(str))
    context.add_output_metadata({"partitions_added": MetadataValue.int(added)})
    return {"bake_jobs": added}


def _find_job(plans, identity: str) -> tuple[StageSpec, PlannedJob]:
    for plan in plans:
        for job in plan.jobs:
            if job.identity == identity:
                return plan.stage, job
    raise ConfigurationError(ctx={"reason": "identity not in current plan", "identity": identity})


@bake_asset(
    required_resource_keys={"bake_config", "bake_backend"},
    partitions_def=bake_jobs_partitions,
)
def bake_job(context) -> dict:
    """Build a single job, addressed by its identity, and route its artifact."""
    identity = context.partition_key
    spec = context.resources.bake_config.get_spec()
    stage, job = _find_job(plan_pipeline(spec), identity)
    resource = context.resources.bake_backend
    paths = Paths.from_context(context)

    backend = resource.backend()
    router = ArtifactRouter(paths, backend, resource.artifact_store(), resource.pages_store())
    (report,) = execute_jobs(
        [job],
        backend=backend,
        router=router,
        artifacts={**spec.artifacts, **stage.artifacts},
        fail_fast=False,
        max_workers=1,
    )
    row = report.as_row()
    context.add_output_metadata(
        {
            "build_status": MetadataValue.text(row["build_status"]),
            "artifact_status": MetadataValue.text(str(row["artifact_status"])),
        }
    )
    if report.build_status is not BuildStatus.SUCCESS:
        raise BuildFailure(ctx={"reason": report.build_reason or "build failed", "identity": identity})
    return row


@bake_asset(required_resource_keys={"bake_config", "bake_backend"}, deps=["register_bake_partitions"])
def bake_report(context) -> pd.DataFrame:
    """Run every stage and persist the run report CSV under the work root."""
    spec = context.resources.bake_config.get_spec()
    resource = context.resources.bake_backend
    paths = Paths.from_context(context)
    backend = resource.backend()

    report = run_pipeline(
        spec,
        backend=backend,
        paths=paths,
        extractor=backend,
        artifact_store=resource.artifact_store(),
        pages_store=resource.pages_store(),
    )
    report_path = report.write_csv(paths.report_path("bake_report"))
    summary = report.summary()
    context.add_output_metadata(
        {
            "succeeded": MetadataValue.bool(report.succeeded),
            "summary": MetadataValue.json(summary),
            "report_path": MetadataValue.path(str(report_path)),
        }
    )
    if not report.succeeded:
        raise BuildFailure(
            ctx={
                "reason": "bake run failed",
                "report": str(report_path),
                "errors": [f"{e.identity}: {e.reason}" for e in report.errors],
            }
        )
    return report.to_frame()


__all__ = [
    "bake_job",
    "bake_plan",
    "bake_report",
    "plan_frame",
    "register_bake_partitions",
]
