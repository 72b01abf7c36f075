"""Execute one planned stage: dispatch builds and route artifacts per job."""

from __future__ import annotations

import logging
import threading
from typing import Mapping, Sequence

from matrix_bakery.artifacts.router import ArtifactRouter, ArtifactStatus, RoutingOutcome, spec_for
from matrix_bakery.artifacts.spec import ArtifactSpec
from matrix_bakery.dispatch.backends import BuildBackend
from matrix_bakery.dispatch.dispatcher import BuildDispatcher
from matrix_bakery.dispatch.results import JobResult
from matrix_bakery.matrix.compiler import PlannedJob
from matrix_bakery.orchestration.report import JobReport

logger = logging.getLogger(__name__)


def execute_jobs(
    jobs: Sequence[PlannedJob],
    *,
    backend: BuildBackend,
    router: ArtifactRouter,
    artifacts: Mapping[str, ArtifactSpec],
    fail_fast: bool,
    max_workers: int,
) -> list[JobReport]:
    """Build every job and route its artifact right after its own build."""

    outcomes: dict[str, RoutingOutcome] = {}
    lock = threading.Lock()

    def _route(result: JobResult) -> None:
        try:
            outcome = router.route(result, spec_for(artifacts, result.cell))
        except Exception as exc:
            logger.exception("artifact routing for %s raised", result.identity)
            outcome = RoutingOutcome(
                result.identity, ArtifactStatus.FAILED, reason=f"{type(exc).__name__}: {exc}"
            )
        with lock:
            outcomes[result.identity] = outcome

    results = BuildDispatcher(backend, max_workers).dispatch(jobs, fail_fast=fail_fast, on_complete=_route)
    return [JobReport.from_results(result, outcomes.get(result.identity)) for result in results]


__all__ = ["execute_jobs"]
