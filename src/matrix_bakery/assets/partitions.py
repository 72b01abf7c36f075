from __future__ import annotations

from dagster import DynamicPartitionsDefinition

# Job-identity keyed dynamic partitions (one per planned bake job)
bake_jobs_partitions = DynamicPartitionsDefinition(name="bake_jobs")

__all__ = ["bake_jobs_partitions"]
