"""Per-job build outcomes."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from matrix_bakery.matrix.models import MatrixCell


class BuildStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class BuildHandle:
    """Opaque reference to a finished build, addressable by job identity.

    ``image`` names the built image for container-based extraction and
    ``workdir`` is where runner-local outputs are resolved from.
    """

    identity: str
    image: str | None = None
    workdir: Path | None = None


@dataclass(frozen=True)
class JobResult:
    identity: str
    cell: MatrixCell
    status: BuildStatus
    handle: BuildHandle | None = None
    reason: str | None = None
    stage: str = ""
    number: int = 0

    @property
    def succeeded(self) -> bool:
        return self.status is BuildStatus.SUCCESS

    @classmethod
    def success(cls, identity: str, cell: MatrixCell, handle: BuildHandle, **kwargs) -> "JobResult":
        return cls(identity, cell, BuildStatus.SUCCESS, handle=handle, **kwargs)

    @classmethod
    def failure(cls, identity: str, cell: MatrixCell, reason: str, **kwargs) -> "JobResult":
        return cls(identity, cell, BuildStatus.FAILURE, reason=reason, **kwargs)

    @classmethod
    def cancelled(cls, identity: str, cell: MatrixCell, **kwargs) -> "JobResult":
        return cls(identity, cell, BuildStatus.CANCELLED, reason="cancelled", **kwargs)


__all__ = ["BuildHandle", "BuildStatus", "JobResult"]
