"""Run report: every job with its outcome and every error with its job identity."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pandas as pd

from matrix_bakery.artifacts.router import ArtifactStatus, RoutingOutcome
from matrix_bakery.dispatch.results import BuildStatus, JobResult
from matrix_bakery.matrix.identity import display_name

REPORT_COLUMNS = [
    "stage",
    "number",
    "identity",
    "name",
    "build_status",
    "build_reason",
    "artifact_status",
    "artifact_reason",
    "published",
    "site",
]


class StageStatus:
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class JobReport:
    stage: str
    number: int
    identity: str
    name: str
    build_status: BuildStatus
    build_reason: str | None = None
    artifact_status: ArtifactStatus | None = None
    artifact_reason: str | None = None
    published: tuple[str, ...] = ()
    site: str | None = None

    @classmethod
    def from_results(cls, result: JobResult, outcome: RoutingOutcome | None) -> "JobReport":
        return cls(
            stage=result.stage,
            number=result.number,
            identity=result.identity,
            name=display_name(result.cell),
            build_status=result.status,
            build_reason=result.reason,
            artifact_status=outcome.status if outcome else None,
            artifact_reason=outcome.reason if outcome else None,
            published=outcome.published if outcome else (),
            site=outcome.site if outcome else None,
        )

    @property
    def artifact_failed(self) -> bool:
        return self.artifact_status is ArtifactStatus.FAILED

    def as_row(self) -> dict[str, Any]:
        return {
            "stage": self.stage,
            "number": self.number,
            "identity": self.identity,
            "name": self.name,
            "build_status": self.build_status.value,
            "build_reason": self.build_reason,
            "artifact_status": self.artifact_status.value if self.artifact_status else None,
            "artifact_reason": self.artifact_reason,
            "published": ";".join(self.published),
            "site": self.site,
        }


@dataclass(frozen=True)
class StageReport:
    name: str
    status: str
    reason: str | None = None
    jobs: int = 0


@dataclass(frozen=True)
class ReportError:
    stage: str
    identity: str
    kind: str
    reason: str


@dataclass
class RunReport:
    jobs: list[JobReport] = field(default_factory=list)
    stages: list[StageReport] = field(default_factory=list)
    artifacts_mandatory: bool = False

    @property
    def errors(self) -> list[ReportError]:
        errors: list[ReportError] = []
        for job in self.jobs:
            if job.build_status is BuildStatus.FAILURE:
                errors.append(ReportError(job.stage, job.identity, "build", job.build_reason or "failed"))
            if job.artifact_failed:
                errors.append(ReportError(job.stage, job.identity, "artifact", job.artifact_reason or "failed"))
        return errors

    @property
    def succeeded(self) -> bool:
        """Every build succeeded; artifact failures count only when mandatory."""
        if any(job.build_status is not BuildStatus.SUCCESS for job in self.jobs):
            return False
        if any(stage.status == StageStatus.FAILED for stage in self.stages):
            return False
        if self.artifacts_mandatory and any(job.artifact_failed for job in self.jobs):
            return False
        return True

    def summary(self) -> dict[str, int]:
        counts = Counter(job.build_status.value for job in self.jobs)
        out = {status.value: counts.get(status.value, 0) for status in BuildStatus}
        out["jobs"] = len(self.jobs)
        out["artifact_failures"] = sum(1 for job in self.jobs if job.artifact_failed)
        out["published"] = sum(len(job.published) for job in self.jobs)
        out["stages_skipped"] = sum(1 for stage in self.stages if stage.status == StageStatus.SKIPPED)
        return out

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame([job.as_row() for job in self.jobs], columns=REPORT_COLUMNS)

    def write_csv(self, path: Path | str) -> Path:
        out = Path(path)
        out.parent.mkdir(parents=True, exist_ok=True)
        self.to_frame().to_csv(out, index=False)
        return out


__all__ = [
    "JobReport",
    "REPORT_COLUMNS",
    "ReportError",
    "RunReport",
    "StageReport",
    "StageStatus",
]
