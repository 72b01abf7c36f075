from __future__ import annotations

import os
from typing import Any

from dagster import Definitions, in_process_executor, multiprocess_executor

from matrix_bakery.assets.group_bake import (
    bake_job,
    bake_plan,
    bake_report,
    register_bake_partitions,
)
from matrix_bakery.config.paths import Paths
from matrix_bakery.config.settings import CONFIG_PATH_ENV, IN_PROCESS_ENV
from matrix_bakery.resources import BakeBackendResource, BakeConfigResource


# Use in-process executor when BAKERY_IN_PROCESS=1 (helpful for CI/restricted envs).
EXECUTOR = (
    in_process_executor
    if os.environ.get(IN_PROCESS_ENV) == "1"
    else multiprocess_executor.configured({"max_concurrent": 10})
)

BAKE_ASSETS = (
    bake_plan,
    register_bake_partitions,
    bake_job,
    bake_report,
)


def _resources(paths: Paths, config_path: str | None) -> dict[str, Any]:
    return {
        "bake_config": BakeConfigResource(config_path=config_path),
        "bake_backend": BakeBackendResource(work_root=str(paths.work_root)),
    }


def build_definitions(*, paths: Paths | None = None, config_path: str | None = None) -> Definitions:
    resolved_paths = paths or Paths.from_env()
    resolved_config = config_path or os.environ.get(CONFIG_PATH_ENV)
    return Definitions(
        assets=list(BAKE_ASSETS),
        resources=_resources(resolved_paths, resolved_config),
        executor=EXECUTOR,
    )


defs = build_definitions()
