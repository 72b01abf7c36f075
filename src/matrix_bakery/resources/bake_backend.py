from __future__ import annotations

from dagster import ConfigurableResource
from pydantic import Field

from matrix_bakery.artifacts.stores import LocalArtifactStore, LocalPagesStore
from matrix_bakery.config.paths import DEFAULT_WORK_ROOT, Paths
from matrix_bakery.constants import DEFAULT_BUILD_COMMAND
from matrix_bakery.dispatch.backends import ShellBakeBackend


class BakeBackendResource(ConfigurableResource):
    """Shell/docker build backend plus local publication stores under one work root.

    Attributes:
        work_root: Root for staging, artifacts, pages and reports.
        build_command: Bake command template; cell values and ``iid`` are substituted.
        build_workdir: Directory the bake command runs in.
        Each build writes its outputs under ``<work_root>/builds/<identity>``.
        timeout_s: Per-build timeout in seconds (None = no limit).
    """

    work_root: str = DEFAULT_WORK_ROOT
    build_command: str = DEFAULT_BUILD_COMMAND
    build_workdir: str = "."
    timeout_s: float | None = Field(default=None, gt=0)

    def paths(self) -> Paths:
        return Paths.from_str(self.work_root)

    def backend(self) -> ShellBakeBackend:
        return ShellBakeBackend(
            command=self.build_command,
            workdir=self.build_workdir,
            timeout=self.timeout_s,
            build_root=self.paths().builds_root,
        )

    def artifact_store(self) -> LocalArtifactStore:
        return LocalArtifactStore(self.paths().artifacts_dir)

    def pages_store(self) -> LocalPagesStore:
        return LocalPagesStore(self.paths().pages_dir)


__all__ = ["BakeBackendResource"]
