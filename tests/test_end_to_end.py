"""End-to-end runs from a YAML config through dispatch, routing and the report."""

from __future__ import annotations

import pandas as pd

from matrix_bakery.artifacts.router import ArtifactStatus
from matrix_bakery.artifacts.spec import ArtifactSpec, ExtractionStrategy
from matrix_bakery.config.paths import Paths
from matrix_bakery.dispatch.backends import ShellBakeBackend
from matrix_bakery.dispatch.results import BuildStatus
from matrix_bakery.matrix import load_spec
from matrix_bakery.matrix.bake_spec import BakeSpec
from matrix_bakery.matrix.cli import main
from matrix_bakery.matrix.models import DimensionRegistry
from matrix_bakery.orchestration import run_pipeline
from matrix_bakery.orchestration.report import StageStatus

AXES = {
    "profile": ["test", "release"],
    "toolchain": ["stable"],
    "feature_set": ["default"],
    "os_name": ["debian"],
    "os_version": ["testing-slim"],
    "arch": ["x86_64-linux-gnu"],
    "host": ["X64"],
}


def test_staged_release_pipeline(write_config, tmp_path, make_backend):
    config = write_config(
        {
            "dimensions": AXES,
            "excludes": [{"profile": "test", "target": "book"}],
            "artifacts": {
                "app": {"dst": "app", "src": "/usr/local/bin/app"},
                "book": {"dst": "book", "src": "/book", "pages": True},
                "image": {"dst": "image.tar", "img": True},
                "bench": {"dst": "bench.json", "runner": True},
            },
            "stages": [
                {"name": "build", "targets": ["app", "image"]},
                {"name": "docs", "targets": ["book"], "needs": ["build"]},
                {"name": "bench", "targets": ["bench"], "requires": {"profile": "bench"}},
            ],
        }
    )
    backend = make_backend(
        image_files={"app": {"/usr/local/bin/app": b"elf"}, "book": {"/book": b"<html>"}},
    )
    paths = Paths.from_str(tmp_path / "work")

    report = run_pipeline(load_spec(config, environ={}), backend=backend, paths=paths)

    assert report.succeeded
    assert [(s.name, s.status) for s in report.stages] == [
        ("build", StageStatus.SUCCEEDED),
        ("docs", StageStatus.SUCCEEDED),
        ("bench", StageStatus.SKIPPED),
    ]
    assert [job.identity.split("--")[:2] for job in report.jobs] == [
        ["app", "test"],
        ["app", "release"],
        ["image", "test"],
        ["image", "release"],
        ["book", "release"],
    ]
    published = sorted(name for job in report.jobs for name in job.published)
    assert published == [
        "release-default-app",
        "release-default-book",
        "release-default-image.tar",
        "test-default-app",
        "test-default-image.tar",
    ]
    assert (paths.pages_dir / "book").read_bytes() == b"<html>"
    assert (paths.artifacts_dir / "test-default-app" / "app").read_bytes() == b"elf"


def test_cli_run_with_shell_backend(write_config, tmp_path, capsys):
    config = write_config({"dimensions": {"target": ["a", "b"], **AXES}})
    work = tmp_path / "work"
    report_path = tmp_path / "run.csv"

    code = main(
        [
            "run",
            str(config),
            "--work-root",
            str(work),
            "--report",
            str(report_path),
            "--build-command",
            'echo "$profile" > "$iid.log"',
        ]
    )

    assert code == 0
    df = pd.read_csv(report_path)
    assert len(df) == 4
    assert set(df["build_status"]) == {BuildStatus.SUCCESS.value}
    logs = sorted(p.name for p in config.parent.glob("*.log"))
    assert logs[0] == "a--release--stable--default--debian--testing-slim--x86_64-linux-gnu.log"
    assert '"success": 4' in capsys.readouterr().out


def test_cli_run_reports_failure_exit_code(write_config, tmp_path, capsys):
    config = write_config({"dimensions": {"target": ["good", "bad"], **AXES}, "fail_fast": True, "max_workers": 1})

    code = main(
        [
            "run",
            str(config),
            "--work-root",
            str(tmp_path / "work"),
            "--build-command",
            'test "$target" != bad',
        ]
    )

    out = capsys.readouterr().out
    assert code == 1
    assert "build error [bake] bad--test" in out
    assert (tmp_path / "work" / "reports" / "run.csv").exists()


def test_concurrent_runner_local_builds_publish_their_own_output(tmp_path):
    spec = BakeSpec(
        registry=DimensionRegistry.from_mapping({"target": ["t"], "profile": ["dev", "release"], "feature_set": ["all"]}),
        artifacts={"t": ArtifactSpec(dst="out.bin", strategy=ExtractionStrategy.RUNNER_LOCAL)},
        max_workers=2,
    )
    paths = Paths.from_str(tmp_path / "work")
    backend = ShellBakeBackend(
        command='sleep 0.2; echo "$profile" > "$outdir/out.bin"',
        workdir=tmp_path,
        build_root=paths.builds_root,
        poll_interval=0.05,
    )

    report = run_pipeline(spec, backend=backend, paths=paths)

    assert report.succeeded
    assert [job.artifact_status for job in report.jobs] == [ArtifactStatus.PUBLISHED] * 2
    assert (paths.artifacts_dir / "dev-all-out.bin" / "out.bin").read_text().strip() == "dev"
    assert (paths.artifacts_dir / "release-all-out.bin" / "out.bin").read_text().strip() == "release"
