from __future__ import annotations

import itertools

import pytest

from matrix_bakery.matrix.compiler import compile_matrix
from matrix_bakery.matrix.expander import expand, expected_size
from matrix_bakery.matrix.models import Dimension, DimensionRegistry, MatrixCell, OverrideRule
from matrix_bakery.matrix.overrides import explain_exclusion, filter_cells, validate_rules
from matrix_bakery.utils.errors import ConfigurationError, Err


def registry(**dims) -> DimensionRegistry:
    return DimensionRegistry.from_mapping(dims)


def exclude(index: int = 0, **criteria) -> OverrideRule:
    return OverrideRule.from_mapping("exclude", criteria, index=index)


def include(index: int = 0, **criteria) -> OverrideRule:
    return OverrideRule.from_mapping("include", criteria, index=index)


def pairs(cells) -> list[tuple[str, ...]]:
    return [tuple(cell.values()) for cell in cells]


@pytest.mark.parametrize(
    "dims",
    [
        {"target": ["a"]},
        {"target": ["a", "b"], "profile": ["dev", "release"]},
        {"target": ["a", "b", "c"], "profile": ["dev"], "arch": ["x86", "arm", "riscv", "mips"]},
    ],
)
def test_expand_size_is_product_of_dimension_sizes(dims) -> None:
    reg = registry(**dims)
    cells = expand(reg)

    size = 1
    for values in dims.values():
        size *= len(values)
    assert len(cells) == size == expected_size(reg)
    assert len(set(cells)) == size


def test_expand_outer_dimension_varies_slowest() -> None:
    cells = expand(registry(target=["a", "b"], profile=["dev", "release"]))

    assert pairs(cells) == [("a", "dev"), ("a", "release"), ("b", "dev"), ("b", "release")]
    assert list(cells[0].keys()) == ["target", "profile"]


def test_expand_with_empty_dimension_is_empty() -> None:
    reg = registry(target=["a", "b"], profile=[])
    assert reg.is_empty
    assert expand(reg) == []


def test_duplicate_dimension_values_are_rejected() -> None:
    with pytest.raises(ConfigurationError) as err:
        Dimension("profile", ("dev", "dev"))
    assert err.value.code is Err.INVALID_CONFIG
    assert err.value.ctx["duplicates"] == ("dev",)


def test_host_dimension_is_not_part_of_identity() -> None:
    reg = registry(target=["a"], host=["X64"])
    assert reg.identity_names == ("target",)


def test_three_cell_exclusion_scenario() -> None:
    reg = registry(target=["a", "b"], profile=["dev", "release"])

    cells = compile_matrix(reg, [exclude(target="b", profile="dev")])

    assert pairs(cells) == [("a", "dev"), ("a", "release"), ("b", "release")]


def test_filter_is_idempotent() -> None:
    reg = registry(target=["a", "b", "c"], profile=["dev", "release"])
    excludes = [exclude(0, target="b"), exclude(1, profile="dev")]
    includes = [include(0, target="b", profile="dev"), include(1, target="z", profile="dev")]

    once = filter_cells(expand(reg), excludes, includes, order=reg.names)
    twice = filter_cells(once, excludes, includes, order=reg.names)

    assert twice == once


def test_disjoint_exclusions_compose_as_or_regardless_of_order() -> None:
    reg = registry(target=["a", "b"], profile=["dev", "release"], arch=["x86", "arm"])
    rule_a = exclude(0, target="a")
    rule_b = exclude(1, arch="arm")

    forward = filter_cells(expand(reg), [rule_a, rule_b], [])
    backward = filter_cells(expand(reg), [rule_b, rule_a], [])

    assert set(forward) == set(backward)
    for cell in forward:
        assert not rule_a.matches(cell)
        assert not rule_b.matches(cell)
    assert pairs(forward) == [("b", "dev", "x86"), ("b", "release", "x86")]


def test_inclusion_of_existing_cell_does_not_duplicate() -> None:
    reg = registry(target=["a", "b"], profile=["dev"])

    cells = filter_cells(expand(reg), [], [include(target="a", profile="dev")], order=reg.names)

    assert pairs(cells) == [("a", "dev"), ("b", "dev")]


def test_inclusion_outside_registry_is_appended() -> None:
    reg = registry(target=["a"], profile=["dev"])

    cells = compile_matrix(reg, [], [include(profile="bench", target="extra")])

    assert pairs(cells) == [("a", "dev"), ("extra", "bench")]
    # Included cells follow registry order, not rule key order.
    assert list(cells[1].keys()) == ["target", "profile"]


def test_excluded_then_included_cell_is_restored() -> None:
    reg = registry(target=["a", "b"], profile=["dev", "release"])

    cells = compile_matrix(
        reg,
        [exclude(target="b")],
        [include(target="b", profile="dev")],
    )

    assert pairs(cells) == [("a", "dev"), ("a", "release"), ("b", "dev")]


def test_empty_dimension_disables_inclusions() -> None:
    reg = registry(target=[], profile=["dev"])

    cells = compile_matrix(reg, [], [include(target="x", profile="dev")])

    assert cells == []


def test_partial_inclusion_rule_is_rejected() -> None:
    reg = registry(target=["a"], profile=["dev"])

    with pytest.raises(ConfigurationError) as err:
        validate_rules(reg, [], [include(target="a")])
    assert err.value.ctx["missing"] == ("profile",)


def test_rule_naming_unknown_dimension_is_rejected() -> None:
    reg = registry(target=["a"], profile=["dev"])

    with pytest.raises(ConfigurationError) as err:
        validate_rules(reg, [exclude(toolchain="nightly")], [])
    assert err.value.ctx["dimensions"] == ("toolchain",)


def test_zero_key_exclusion_requires_opt_in_and_then_disables_run() -> None:
    reg = registry(target=["a", "b"])
    blanket = OverrideRule.from_mapping("exclude", {})

    with pytest.raises(ConfigurationError):
        compile_matrix(reg, [blanket])

    assert compile_matrix(reg, [blanket], allow_unconditional=True) == []


def test_explain_exclusion_reports_first_matching_rule() -> None:
    cell = MatrixCell.from_mapping({"target": "b", "profile": "dev"})
    rules = [exclude(0, target="a"), exclude(1, profile="dev"), exclude(2, target="b")]

    assert explain_exclusion(cell, rules).index == 1
    assert explain_exclusion(cell, rules[:1]) is None


def test_cells_compare_by_assignments_not_order() -> None:
    left = MatrixCell.from_mapping({"target": "a", "profile": "dev"})
    right = MatrixCell.from_mapping({"profile": "dev", "target": "a"})

    assert left == right
    assert hash(left) == hash(right)
    assert len({left, right}) == 1


def test_filter_result_does_not_depend_on_exclusion_rule_permutation() -> None:
    reg = registry(target=["a", "b", "c"], profile=["dev", "release"])
    rules = [exclude(0, target="a"), exclude(1, profile="release"), exclude(2, target="c", profile="dev")]

    results = {
        tuple(filter_cells(expand(reg), list(perm), []))
        for perm in itertools.permutations(rules)
    }

    assert len(results) == 1
    assert pairs(next(iter(results))) == [("b", "dev")]
