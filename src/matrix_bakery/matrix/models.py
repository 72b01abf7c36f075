"""Data structures backing the build matrix."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, Sequence

from matrix_bakery.constants import NON_IDENTITY_DIMENSIONS
from matrix_bakery.types import RuleKind
from matrix_bakery.utils.errors import ConfigurationError


@dataclass(frozen=True)
class Dimension:
    """Named build axis with its ordered, unique values."""

    name: str
    values: tuple[str, ...]
    identity: bool = True

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name.strip():
            raise ConfigurationError(ctx={"reason": "dimension name must be non-empty string"})
        values = tuple(self.values)
        for value in values:
            if not isinstance(value, str) or not value:
                raise ConfigurationError(
                    ctx={
                        "reason": "dimension values must be non-empty strings",
                        "dimension": self.name,
                        "value": value,
                    }
                )
        seen: set[str] = set()
        duplicates: list[str] = []
        for value in values:
            if value in seen:
                duplicates.append(value)
            seen.add(value)
        if duplicates:
            raise ConfigurationError(
                ctx={
                    "reason": "duplicate dimension values",
                    "dimension": self.name,
                    "duplicates": tuple(duplicates),
                }
            )
        object.__setattr__(self, "values", values)

    @property
    def is_empty(self) -> bool:
        return not self.values


@dataclass(frozen=True)
class DimensionRegistry:
    """Ordered set of dimensions for one orchestration run.

    Declaration order is the nesting order of the expansion (first varies
    slowest) and the order in which identity values are joined.
    """

    dimensions: tuple[Dimension, ...]

    def __post_init__(self) -> None:
        dims = tuple(self.dimensions)
        if not dims:
            raise ConfigurationError(ctx={"reason": "registry needs at least one dimension"})
        names = [d.name for d in dims]
        if len(set(names)) != len(names):
            raise ConfigurationError(
                ctx={"reason": "duplicate dimension names", "names": tuple(names)}
            )
        if not any(d.identity for d in dims):
            raise ConfigurationError(
                ctx={"reason": "registry needs at least one identity dimension"}
            )
        object.__setattr__(self, "dimensions", dims)

    @classmethod
    def from_mapping(
        cls,
        mapping: Mapping[str, Sequence[str]],
        *,
        non_identity: Iterable[str] = NON_IDENTITY_DIMENSIONS,
    ) -> "DimensionRegistry":
        excluded = set(non_identity)
        dims = []
        for name, values in mapping.items():
            if isinstance(values, str) or not isinstance(values, Sequence):
                raise ConfigurationError(
                    ctx={"reason": "dimension values must be a list", "dimension": name}
                )
            dims.append(Dimension(name=name, values=tuple(values), identity=name not in excluded))
        return cls(tuple(dims))

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(d.name for d in self.dimensions)

    @property
    def identity_names(self) -> tuple[str, ...]:
        return tuple(d.name for d in self.dimensions if d.identity)

    @property
    def is_empty(self) -> bool:
        """True when any dimension has no values, which disables the run."""
        return any(d.is_empty for d in self.dimensions)

    def __contains__(self, name: object) -> bool:
        return name in self.names

    def get(self, name: str) -> Dimension:
        for dim in self.dimensions:
            if dim.name == name:
                return dim
        raise ConfigurationError(ctx={"reason": "unknown dimension", "dimension": name})

    def replace(self, overrides: Mapping[str, Sequence[str]]) -> "DimensionRegistry":
        """Return a registry with some dimensions' values swapped out."""
        unknown = [name for name in overrides if name not in self]
        if unknown:
            raise ConfigurationError(
                ctx={"reason": "override names unknown dimension", "dimensions": tuple(unknown)}
            )
        dims = tuple(
            Dimension(d.name, tuple(overrides[d.name]), d.identity) if d.name in overrides else d
            for d in self.dimensions
        )
        return DimensionRegistry(dims)


@dataclass(frozen=True, eq=False)
class MatrixCell(Mapping[str, str]):
    """One fully specified combination of dimension values.

    Equality ignores assignment order; two cells are equal iff every
    dimension carries the same value.
    """

    assignments: tuple[tuple[str, str], ...]
    _index: dict[str, str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        items = tuple((str(k), str(v)) for k, v in self.assignments)
        index = dict(items)
        if len(index) != len(items):
            raise ConfigurationError(ctx={"reason": "cell assigns a dimension twice"})
        object.__setattr__(self, "assignments", items)
        object.__setattr__(self, "_index", index)

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any], order: Sequence[str] | None = None) -> "MatrixCell":
        keys = list(order) if order is not None else list(mapping.keys())
        return cls(tuple((k, mapping[k]) for k in keys))

    def __getitem__(self, key: str) -> str:
        return self._index[key]

    def __iter__(self) -> Iterator[str]:
        return (k for k, _ in self.assignments)

    def __len__(self) -> int:
        return len(self.assignments)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, MatrixCell):
            return self._index == other._index
        if isinstance(other, Mapping):
            return self._index == dict(other)
        return NotImplemented

    def __hash__(self) -> int:
        return hash(frozenset(self.assignments))

    def project(self, names: Sequence[str]) -> tuple[str, ...]:
        return tuple(self._index[name] for name in names)

    def as_dict(self) -> dict[str, str]:
        return dict(self.assignments)


@dataclass(frozen=True)
class OverrideRule:
    """Partial-match record; unconstrained dimensions are wildcards."""

    kind: RuleKind
    criteria: tuple[tuple[str, str], ...]
    index: int = 0

    @classmethod
    def from_mapping(cls, kind: RuleKind, mapping: Mapping[str, Any], *, index: int = 0) -> "OverrideRule":
        if kind not in ("exclude", "include"):
            raise ConfigurationError(ctx={"reason": "unknown rule kind", "kind": kind})
        if not isinstance(mapping, Mapping):
            raise ConfigurationError(
                ctx={"reason": "rules must be mappings", "kind": kind, "index": index}
            )
        criteria = []
        for key, value in mapping.items():
            if not isinstance(key, str) or not isinstance(value, str):
                raise ConfigurationError(
                    ctx={
                        "reason": "rule keys and values must be strings",
                        "kind": kind,
                        "index": index,
                        "key": key,
                    }
                )
            criteria.append((key, value))
        return cls(kind=kind, criteria=tuple(criteria), index=index)

    @property
    def keys(self) -> tuple[str, ...]:
        return tuple(k for k, _ in self.criteria)

    @property
    def is_unconditional(self) -> bool:
        return not self.criteria

    def matches(self, cell: Mapping[str, str]) -> bool:
        return all(key in cell and cell[key] == value for key, value in self.criteria)

    def as_dict(self) -> dict[str, str]:
        return dict(self.criteria)


__all__ = ["Dimension", "DimensionRegistry", "MatrixCell", "OverrideRule"]
