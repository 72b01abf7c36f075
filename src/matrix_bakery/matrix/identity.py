"""Deterministic job identities for surviving matrix cells."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence

from matrix_bakery.constants import DISPLAY_SEPARATOR, IDENTITY_SEPARATOR
from matrix_bakery.matrix.models import DimensionRegistry, MatrixCell
from matrix_bakery.utils.errors import CollisionError, ConfigurationError


@dataclass(frozen=True)
class IdentityResolver:
    """Joins identity dimension values in the order fixed at registry construction."""

    order: tuple[str, ...]
    separator: str = IDENTITY_SEPARATOR

    def __post_init__(self) -> None:
        if not self.order:
            raise ConfigurationError(ctx={"reason": "identity order is empty"})
        if not self.separator:
            raise ConfigurationError(ctx={"reason": "identity separator is empty"})
        object.__setattr__(self, "order", tuple(self.order))

    @classmethod
    def for_registry(cls, registry: DimensionRegistry, separator: str = IDENTITY_SEPARATOR) -> "IdentityResolver":
        return cls(order=registry.identity_names, separator=separator)

    def check_values(self, dimension: str, values: Iterable[str]) -> None:
        """Reject identity values containing the reserved separator."""
        for value in values:
            if self.separator in value:
                raise CollisionError(
                    ctx={
                        "reason": "identity value contains reserved separator",
                        "dimension": dimension,
                        "value": value,
                        "separator": self.separator,
                    }
                )

    def check_registry(self, registry: DimensionRegistry) -> None:
        for name in self.order:
            if name in registry:
                self.check_values(name, registry.get(name).values)

    def identify(self, cell: MatrixCell) -> str:
        try:
            values = cell.project(self.order)
        except KeyError as exc:
            raise ConfigurationError(
                ctx={"reason": "cell lacks identity dimension", "dimension": exc.args[0]},
                cause=exc,
            ) from exc
        return self.separator.join(values)

    def resolve(self, cells: Sequence[MatrixCell]) -> list[tuple[str, MatrixCell]]:
        """Identify every cell eagerly, failing on a reserved separator or the first collision.

        Runs before any dispatch so a bad configuration never spends compute.
        """

        jobs: list[tuple[str, MatrixCell]] = []
        owners: dict[str, MatrixCell] = {}
        for cell in cells:
            for name in self.order:
                if name in cell:
                    self.check_values(name, (cell[name],))
        for cell in cells:
            identity = self.identify(cell)
            previous = owners.get(identity)
            if previous is not None and previous != cell:
                raise CollisionError(
                    ctx={
                        "reason": "job identity collision",
                        "identity": identity,
                        "cells": (previous.as_dict(), cell.as_dict()),
                    }
                )
            owners[identity] = cell
            jobs.append((identity, cell))

        if len(owners) != len(jobs):
            raise CollisionError(
                ctx={
                    "reason": "job identity set smaller than job set",
                    "identities": len(owners),
                    "jobs": len(jobs),
                }
            )
        return jobs


def identify(cell: MatrixCell, order: Sequence[str], separator: str = IDENTITY_SEPARATOR) -> str:
    return IdentityResolver(tuple(order), separator).identify(cell)


def resolve_identities(
    cells: Sequence[MatrixCell], order: Sequence[str], separator: str = IDENTITY_SEPARATOR
) -> list[tuple[str, MatrixCell]]:
    return IdentityResolver(tuple(order), separator).resolve(cells)


def display_name(cell: MatrixCell) -> str:
    """Space-joined values in cell order, used as the job's log label."""
    return DISPLAY_SEPARATOR.join(cell[name] for name in cell)


__all__ = ["IdentityResolver", "display_name", "identify", "resolve_identities"]
