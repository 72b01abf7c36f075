"""Run orchestration: stage gating, per-stage execution and the run report."""

from .pipeline import StagePlan, plan_pipeline, run_pipeline
from .report import JobReport, RunReport, StageReport

__all__ = [
    "JobReport",
    "RunReport",
    "StagePlan",
    "StageReport",
    "plan_pipeline",
    "run_pipeline",
]
