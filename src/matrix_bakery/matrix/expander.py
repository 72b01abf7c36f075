"""Cartesian expansion of a dimension registry into candidate cells."""

from __future__ import annotations

from itertools import product

from matrix_bakery.matrix.models import DimensionRegistry, MatrixCell


def expand(registry: DimensionRegistry) -> list[MatrixCell]:
    """Expand the registry into its full cartesian product.

    The first declared dimension varies slowest, so identical input always
    yields cells in identical order. Any empty dimension yields no cells.
    """

    if registry.is_empty:
        return []

    names = registry.names
    ordered_values = [dim.values for dim in registry.dimensions]
    return [MatrixCell(tuple(zip(names, combo))) for combo in product(*ordered_values)]


def expected_size(registry: DimensionRegistry) -> int:
    size = 1
    for dim in registry.dimensions:
        size *= len(dim.values)
    return size


__all__ = ["expand", "expected_size"]
