from __future__ import annotations

"""Work-root aware path helpers for staging, artifacts, pages and reports."""

from dataclasses import dataclass
from pathlib import Path
import os

from ..constants import (
    ARTIFACTS_DIRNAME,
    BUILDS_DIRNAME,
    IDENTITY_SEPARATOR,
    PAGES_DIRNAME,
    REPORTS_DIRNAME,
    STAGING_DIRNAME,
)
from ..utils.errors import ConfigurationError

WORK_ROOT_ENV = "BAKERY_WORK_ROOT"
DEFAULT_WORK_ROOT = "work"


@dataclass(frozen=True)
class Paths:
    """Project path helper bound to a work root."""

    work_root: Path

    def __post_init__(self):
        if self.work_root is None or str(self.work_root).strip() == "":
            raise ConfigurationError(ctx={"reason": "paths_missing_work_root"})
        object.__setattr__(self, "work_root", Path(self.work_root))

    # --- Core directories ---
    @property
    def staging_root(self) -> Path:
        return self.work_root / STAGING_DIRNAME

    @property
    def builds_root(self) -> Path:
        return self.work_root / BUILDS_DIRNAME

    @property
    def artifacts_dir(self) -> Path:
        return self.work_root / ARTIFACTS_DIRNAME

    @property
    def pages_dir(self) -> Path:
        return self.work_root / PAGES_DIRNAME

    @property
    def reports_dir(self) -> Path:
        return self.work_root / REPORTS_DIRNAME

    # --- Per-job helpers ---
    def staging_dir(self, identity: str) -> Path:
        """Staging directory owned by a single job.

        The job identity leads with the build target, so concurrent jobs for
        different targets and cells never share a directory.
        """
        ident = str(identity or "").strip()
        if not ident or "/" in ident or ident in {".", ".."}:
            raise ConfigurationError(
                ctx={"reason": "paths_invalid_identity", "identity": identity}
            )
        return self.staging_root / ident

    def report_path(self, run_name: str, suffix: str = ".csv") -> Path:
        safe = str(run_name).replace("/", IDENTITY_SEPARATOR)
        return self.reports_dir / f"{safe}{suffix}"

    # --- Constructors ---
    @classmethod
    def from_str(cls, work_root: str | Path) -> "Paths":
        return cls(Path(work_root))

    @classmethod
    def from_env(cls, *, env_var: str = WORK_ROOT_ENV, default_root: str = DEFAULT_WORK_ROOT) -> "Paths":
        return cls.from_str(os.environ.get(env_var, default_root))

    @classmethod
    def from_context(cls, context) -> "Paths":
        resources = getattr(context, "resources", None)
        backend = getattr(resources, "bake_backend", None) if resources is not None else None
        work_root = getattr(backend, "work_root", None)
        if work_root:
            return cls.from_str(work_root)
        return cls.from_env()


__all__ = ["Paths", "WORK_ROOT_ENV", "DEFAULT_WORK_ROOT"]
