"""Per-job artifact extraction and publication.

Routing runs after the job's own build and never touches another job's
staging directory. Extraction or publication failures end routing for that
artifact only; they are reported on the outcome, not raised.
"""

from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Mapping

from matrix_bakery.artifacts.spec import ArtifactSpec, ExtractionStrategy
from matrix_bakery.artifacts.stores import ArtifactStore, PagesStore
from matrix_bakery.config.paths import Paths
from matrix_bakery.constants import QUALIFIER_DIMENSIONS, TARGET_DIMENSION
from matrix_bakery.dispatch.backends import ExtractionBackend
from matrix_bakery.dispatch.results import JobResult
from matrix_bakery.matrix.models import MatrixCell
from matrix_bakery.utils.errors import BakeryError, Err, ExtractionError, PublicationError

logger = logging.getLogger(__name__)


class ArtifactStatus(str, Enum):
    SKIPPED = "skipped"
    EXTRACTED = "extracted"
    PUBLISHED = "published"
    SITE_PUBLISHED = "site_published"
    FAILED = "failed"


@dataclass(frozen=True)
class RoutingOutcome:
    identity: str
    status: ArtifactStatus
    published: tuple[str, ...] = ()
    site: str | None = None
    reason: str | None = None
    error: BakeryError | None = None

    @property
    def failed(self) -> bool:
        return self.status is ArtifactStatus.FAILED


def artifact_qualifier(cell: MatrixCell) -> str:
    """``<profile>-<feature_set>`` for the cell; absent dimensions are left out."""
    return "-".join(cell[name] for name in QUALIFIER_DIMENSIONS if name in cell)


def _unexpected(
    job: JobResult,
    error_cls: type[BakeryError],
    exc: Exception,
    published: tuple[str, ...] = (),
) -> RoutingOutcome:
    err = error_cls(ctx={"reason": f"{type(exc).__name__}: {exc}", "identity": job.identity}, cause=exc)
    return RoutingOutcome(job.identity, ArtifactStatus.FAILED, published=published, reason=err.reason, error=err)


def spec_for(artifacts: Mapping[str, ArtifactSpec], cell: MatrixCell) -> ArtifactSpec | None:
    return artifacts.get(cell.get(TARGET_DIMENSION, ""))


class ArtifactRouter:
    def __init__(
        self,
        paths: Paths,
        extractor: ExtractionBackend,
        artifact_store: ArtifactStore,
        pages_store: PagesStore,
    ):
        self.paths = paths
        self.extractor = extractor
        self.artifact_store = artifact_store
        self.pages_store = pages_store

    def route(self, job: JobResult, spec: ArtifactSpec | None) -> RoutingOutcome:
        if not job.succeeded:
            return RoutingOutcome(job.identity, ArtifactStatus.SKIPPED, reason=f"build {job.status.value}")
        if spec is None:
            return RoutingOutcome(job.identity, ArtifactStatus.SKIPPED, reason="no artifact declared")

        try:
            staged = self._extract(job, spec)
        except BakeryError as exc:
            logger.warning("artifact extraction failed for %s: %s", job.identity, exc)
            return RoutingOutcome(job.identity, ArtifactStatus.FAILED, reason=exc.reason, error=exc)
        except Exception as exc:
            logger.exception("artifact extraction for %s raised unexpectedly", job.identity)
            return _unexpected(job, ExtractionError, exc)

        qualifier = artifact_qualifier(job.cell)
        try:
            name = self.artifact_store.publish(qualifier, spec.dst, staged)
        except BakeryError as exc:
            logger.warning("artifact publication failed for %s: %s", job.identity, exc)
            return RoutingOutcome(job.identity, ArtifactStatus.FAILED, reason=exc.reason, error=exc)
        except Exception as exc:
            logger.exception("artifact publication for %s raised unexpectedly", job.identity)
            return _unexpected(job, PublicationError, exc)
        published = (name,)

        if not spec.pages:
            return RoutingOutcome(job.identity, ArtifactStatus.PUBLISHED, published=published)
        try:
            site = self.pages_store.publish(spec.dst, staged)
        except BakeryError as exc:
            logger.warning("site publication failed for %s: %s", job.identity, exc)
            return RoutingOutcome(
                job.identity, ArtifactStatus.FAILED, published=published, reason=exc.reason, error=exc
            )
        except Exception as exc:
            logger.exception("site publication for %s raised unexpectedly", job.identity)
            return _unexpected(job, PublicationError, exc, published)
        return RoutingOutcome(job.identity, ArtifactStatus.SITE_PUBLISHED, published=published, site=site)

    def _extract(self, job: JobResult, spec: ArtifactSpec) -> Path:
        staging = self.paths.staging_dir(job.identity)
        final = staging / spec.dst
        partial = staging / f".{spec.dst}.partial"
        try:
            if staging.exists():
                shutil.rmtree(staging)
            staging.mkdir(parents=True)
        except OSError as exc:
            raise BakeryError(
                Err.IO_ERROR, ctx={"reason": "staging unavailable", "staging": str(staging)}, cause=exc
            ) from exc

        handle = job.handle
        if handle is None:
            raise ExtractionError(ctx={"reason": "build produced no handle", "identity": job.identity})
        if spec.strategy is ExtractionStrategy.INNER_FILE:
            self.extractor.copy_from_image(handle, spec.source_path, partial)
        elif spec.strategy is ExtractionStrategy.WHOLE_IMAGE:
            self.extractor.save_image(handle, partial)
        else:
            self.extractor.move_local(handle, spec.source_path, partial)

        if not partial.exists():
            raise ExtractionError(
                ctx={"reason": "extraction produced no output", "strategy": spec.strategy.value, "dst": spec.dst}
            )
        try:
            os.replace(partial, final)
        except OSError as exc:
            raise ExtractionError(
                ctx={"reason": "could not move extraction into place", "dst": spec.dst}, cause=exc
            ) from exc
        logger.info("extracted %s for %s (%s)", spec.dst, job.identity, spec.strategy.value)
        return final


__all__ = [
    "ArtifactRouter",
    "ArtifactStatus",
    "RoutingOutcome",
    "artifact_qualifier",
    "spec_for",
]
