"""Exclusion/inclusion rule evaluation over candidate cells."""

from __future__ import annotations

from typing import Iterable, Sequence

from matrix_bakery.matrix.models import DimensionRegistry, MatrixCell, OverrideRule
from matrix_bakery.utils.errors import ConfigurationError


def validate_rules(
    registry: DimensionRegistry,
    excludes: Sequence[OverrideRule],
    includes: Sequence[OverrideRule],
    *,
    allow_unconditional: bool = False,
) -> None:
    """Reject rules that cannot be evaluated meaningfully against ``registry``.

    Exclusion keys must name declared dimensions. Inclusion rules must assign
    every declared dimension and nothing else. A zero-key rule is rejected
    unless ``allow_unconditional`` is set, and a zero-key inclusion is never
    a full cell.
    """

    names = set(registry.names)

    for rule in excludes:
        _check_kind(rule, "exclude")
        if rule.is_unconditional and not allow_unconditional:
            raise ConfigurationError(
                ctx={"reason": "exclusion rule has no keys", "index": rule.index}
            )
        unknown = [k for k in rule.keys if k not in names]
        if unknown:
            raise ConfigurationError(
                ctx={
                    "reason": "exclusion rule names unknown dimension",
                    "index": rule.index,
                    "dimensions": tuple(unknown),
                }
            )

    for rule in includes:
        _check_kind(rule, "include")
        keys = set(rule.keys)
        unknown = sorted(keys - names)
        if unknown:
            raise ConfigurationError(
                ctx={
                    "reason": "inclusion rule names unknown dimension",
                    "index": rule.index,
                    "dimensions": tuple(unknown),
                }
            )
        missing = [n for n in registry.names if n not in keys]
        if missing:
            raise ConfigurationError(
                ctx={
                    "reason": "inclusion rule must fully specify a cell",
                    "index": rule.index,
                    "missing": tuple(missing),
                }
            )


def _check_kind(rule: OverrideRule, expected: str) -> None:
    if rule.kind != expected:
        raise ConfigurationError(
            ctx={"reason": f"expected {expected} rule", "kind": rule.kind, "index": rule.index}
        )


def explain_exclusion(cell: MatrixCell, excludes: Iterable[OverrideRule]) -> OverrideRule | None:
    """Return the first exclusion rule matching ``cell``, if any."""
    for rule in excludes:
        if rule.matches(cell):
            return rule
    return None


def include_cell(rule: OverrideRule, order: Sequence[str] | None = None) -> MatrixCell:
    return MatrixCell.from_mapping(rule.as_dict(), order=order)


def filter_cells(
    candidates: Sequence[MatrixCell],
    excludes: Sequence[OverrideRule],
    includes: Sequence[OverrideRule],
    *,
    order: Sequence[str] | None = None,
) -> list[MatrixCell]:
    """Remove excluded candidates, then append inclusion cells not yet present.

    Exclusion rules are OR-combined and each rule AND-combines its keys, so
    final membership does not depend on rule order. Inclusion runs strictly
    after exclusion; an excluded candidate named by an inclusion rule is
    restored at its original position, which keeps filtering idempotent.
    """

    included = [include_cell(rule, order) for rule in includes]
    included_set = set(included)

    kept: list[MatrixCell] = []
    present: set[MatrixCell] = set()
    for cell in candidates:
        if cell in present:
            continue
        if explain_exclusion(cell, excludes) is not None and cell not in included_set:
            continue
        present.add(cell)
        kept.append(cell)

    for cell in included:
        if cell in present:
            continue
        present.add(cell)
        kept.append(cell)
    return kept


__all__ = ["explain_exclusion", "filter_cells", "include_cell", "validate_rules"]
