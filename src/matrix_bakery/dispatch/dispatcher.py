"""Bounded-parallel fan-out of planned jobs to the build backend."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING, Callable, Sequence

from matrix_bakery.dispatch.backends import BuildBackend
from matrix_bakery.dispatch.results import JobResult
from matrix_bakery.utils.errors import BakeryError, Err

if TYPE_CHECKING:
    from matrix_bakery.matrix.compiler import PlannedJob

logger = logging.getLogger(__name__)

CompletionCallback = Callable[[JobResult], None]


class BuildDispatcher:
    """Run one build per job on a thread pool.

    In fail-fast mode the first failure sets a shared cancellation event:
    jobs that have not started yet are reported cancelled, in-flight builds
    see the event through their cancel token, and a build that finishes
    after the event is set is reported cancelled as well. In best-effort
    mode every job runs to completion regardless of sibling failures.
    """

    def __init__(self, backend: BuildBackend, max_workers: int = 4):
        if max_workers < 1:
            raise BakeryError(Err.INVALID_CONFIG, ctx={"reason": "max_workers must be >= 1"})
        self.backend = backend
        self.max_workers = max_workers

    def dispatch(
        self,
        jobs: Sequence["PlannedJob"],
        *,
        fail_fast: bool,
        on_complete: CompletionCallback | None = None,
    ) -> list[JobResult]:
        if not jobs:
            return []
        cancel = threading.Event()
        workers = min(self.max_workers, len(jobs))
        logger.info(
            "dispatching %d job(s) on %d worker(s), %s",
            len(jobs),
            workers,
            "fail-fast" if fail_fast else "best-effort",
        )
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="bake") as pool:
            futures = [
                pool.submit(self._run_job, job, cancel, fail_fast, on_complete) for job in jobs
            ]
            # Collected in submission order so results follow job order.
            return [future.result() for future in futures]

    def _run_job(
        self,
        job: "PlannedJob",
        cancel: threading.Event,
        fail_fast: bool,
        on_complete: CompletionCallback | None,
    ) -> JobResult:
        result = self._build(job, cancel, fail_fast)
        if on_complete is not None:
            try:
                on_complete(result)
            except Exception:
                logger.exception("completion callback for job %s (%s) raised", job.number, job.name)
        return result

    def _build(self, job: "PlannedJob", cancel: threading.Event, fail_fast: bool) -> JobResult:
        meta = {"stage": job.stage, "number": job.number}
        if cancel.is_set():
            logger.info("job %s (%s) cancelled before start", job.number, job.name)
            return JobResult.cancelled(job.identity, job.cell, **meta)

        logger.info("job %s (%s) started", job.number, job.name)
        try:
            handle = self.backend.run_build(job.cell, job.identity, cancel)
        except BakeryError as exc:
            if cancel.is_set() and fail_fast:
                logger.info("job %s (%s) cancelled: %s", job.number, job.name, exc.reason)
                return JobResult.cancelled(job.identity, job.cell, **meta)
            logger.error("job %s (%s) failed: %s", job.number, job.name, exc.reason)
            self._signal(cancel, fail_fast, job)
            return JobResult.failure(job.identity, job.cell, exc.reason, **meta)
        except Exception as exc:
            if cancel.is_set() and fail_fast:
                logger.info("job %s (%s) cancelled: %s: %s", job.number, job.name, type(exc).__name__, exc)
                return JobResult.cancelled(job.identity, job.cell, **meta)
            logger.exception("job %s (%s) raised unexpectedly", job.number, job.name)
            self._signal(cancel, fail_fast, job)
            return JobResult.failure(job.identity, job.cell, f"{type(exc).__name__}: {exc}", **meta)

        if fail_fast and cancel.is_set():
            logger.info("job %s (%s) finished after cancellation", job.number, job.name)
            return JobResult.cancelled(job.identity, job.cell, handle=handle, **meta)
        logger.info("job %s (%s) succeeded", job.number, job.name)
        return JobResult.success(job.identity, job.cell, handle, **meta)

    @staticmethod
    def _signal(cancel: threading.Event, fail_fast: bool, job: "PlannedJob") -> None:
        if fail_fast and not cancel.is_set():
            logger.warning("fail-fast: cancelling remaining jobs after %s", job.identity)
            cancel.set()


__all__ = ["BuildDispatcher", "CompletionCallback"]
