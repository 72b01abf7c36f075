from __future__ import annotations

from pathlib import Path

import pandas as pd
import pytest
import yaml
from dagster import AssetKey, DagsterInstance, Failure, build_asset_context

from matrix_bakery.artifacts.stores import LocalArtifactStore, LocalPagesStore
from matrix_bakery.assets.group_bake import (
    bake_job,
    bake_plan,
    bake_report,
    plan_frame,
    register_bake_partitions,
)
from matrix_bakery.assets.partitions import bake_jobs_partitions
from matrix_bakery.config.paths import Paths
from matrix_bakery.resources import BakeConfigResource


class _BackendResource:
    """Stand-in for BakeBackendResource serving a fake backend."""

    def __init__(self, work_root: Path, backend) -> None:
        self.work_root = str(work_root)
        self._backend = backend

    def backend(self):
        return self._backend

    def artifact_store(self):
        return LocalArtifactStore(Paths.from_str(self.work_root).artifacts_dir)

    def pages_store(self):
        return LocalPagesStore(Paths.from_str(self.work_root).pages_dir)


@pytest.fixture
def config_path(tmp_path: Path) -> Path:
    path = tmp_path / "bake.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "dimensions": {
                    "target": ["app", "lib"],
                    "profile": ["release"],
                    "toolchain": ["stable"],
                    "feature_set": ["default"],
                    "os_name": ["debian"],
                    "os_version": ["slim"],
                    "arch": ["x86_64"],
                    "host": ["X64"],
                },
                "artifacts": {"app": {"dst": "app.bin"}},
            }
        ),
        encoding="utf-8",
    )
    return path


APP = "app--release--stable--default--debian--slim--x86_64"
LIB = "lib--release--stable--default--debian--slim--x86_64"


def test_bake_plan_lists_every_job(config_path: Path) -> None:
    context = build_asset_context(resources={"bake_config": BakeConfigResource(config_path=str(config_path))})

    df = bake_plan(context)

    assert df["identity"].tolist() == [APP, LIB]
    assert df["name"].tolist()[0] == "app release stable default debian slim x86_64 X64"
    assert set(df["stage"]) == {"bake"}


def test_plan_frame_without_jobs_has_columns() -> None:
    df = plan_frame([])

    assert df.empty
    assert list(df.columns) == ["stage", "number", "identity", "name"]


def test_register_bake_partitions_is_add_only(config_path: Path) -> None:
    instance = DagsterInstance.ephemeral()
    instance.add_dynamic_partitions(bake_jobs_partitions.name, [APP])
    context = build_asset_context(
        instance=instance,
        resources={"bake_config": BakeConfigResource(config_path=str(config_path))},
    )
    plan = pd.DataFrame({"identity": [APP, LIB]})

    result = register_bake_partitions(context, plan)

    assert result == {"bake_jobs": 1}
    assert sorted(instance.get_dynamic_partitions(bake_jobs_partitions.name)) == sorted([APP, LIB])


def test_bake_job_builds_one_partition(config_path: Path, tmp_path: Path, make_backend) -> None:
    backend = make_backend(image_files={"app": {"app.bin": b"binary"}})
    instance = DagsterInstance.ephemeral()
    instance.add_dynamic_partitions(bake_jobs_partitions.name, [APP, LIB])
    work = tmp_path / "work"
    context = build_asset_context(
        partition_key=APP,
        instance=instance,
        resources={
            "bake_config": BakeConfigResource(config_path=str(config_path)),
            "bake_backend": _BackendResource(work, backend),
        },
    )

    row = bake_job(context)

    assert row["build_status"] == "success"
    assert row["artifact_status"] == "published"
    assert backend.started == [APP]
    assert (work / "artifacts" / "release-default-app.bin" / "app.bin").read_bytes() == b"binary"


def test_bake_report_runs_pipeline_and_writes_csv(config_path: Path, tmp_path: Path, make_backend) -> None:
    backend = make_backend(image_files={"app": {"app.bin": b"binary"}})
    work = tmp_path / "work"
    context = build_asset_context(
        resources={
            "bake_config": BakeConfigResource(config_path=str(config_path)),
            "bake_backend": _BackendResource(work, backend),
        },
    )

    df = bake_report(context)

    assert df["build_status"].tolist() == ["success", "success"]
    assert df["published"].tolist()[0] == "release-default-app.bin"
    assert (work / "reports" / "bake_report.csv").exists()


def test_bake_report_failure_surfaces_as_dagster_failure(config_path: Path, tmp_path: Path, make_backend) -> None:
    context = build_asset_context(
        resources={
            "bake_config": BakeConfigResource(config_path=str(config_path)),
            "bake_backend": _BackendResource(tmp_path / "work", make_backend(fail={"lib"})),
        },
    )

    with pytest.raises(Failure) as failure_info:
        bake_report(context)

    assert failure_info.value.metadata["error_code"].value == "BUILD_FAILED"
    assert (tmp_path / "work" / "reports" / "bake_report.csv").exists()


def test_bake_report_depends_on_partition_registration() -> None:
    assert AssetKey("register_bake_partitions") in bake_report.dependency_keys
    assert bake_job.partitions_def is bake_jobs_partitions
